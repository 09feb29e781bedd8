"""
Submission normalizer.

Converts the raw form payload (human-entered 0..10 scores per aspect) into
the scoring DTO (0..100 weights per aspect, exactly 100 per case).
Pure functions, no I/O.
"""
from typing import Any, Dict, List

from pydantic import ValidationError

from shared.constants import (
    MAX_ASPECTS, MAX_CASES, MAX_DURATION_MIN, MAX_RAW_SCORE,
    MIN_DURATION_MIN, TOTAL_WEIGHT
)
from shared.errors import SubmissionValidationError
from shared.formatting import clamp_int, round_half_up, safe_str, split_topics
from shared.schemas import CreateExamDTO


def clamp_score(value: Any) -> int:
    """Non-finite -> 0, otherwise rounded and clamped to [0, 10]."""
    return clamp_int(value, 0, MAX_RAW_SCORE)


def normalize_weights(scores: List[int]) -> List[int]:
    """
    Scale raw scores to integer weights summing to exactly 100.

    Rounding drift is absorbed by the last aspect. An all-zero case gets
    100 split evenly, the last aspect taking the remainder.
    """
    count = len(scores)
    if count == 0:
        return []

    total = sum(scores)
    if total > 0:
        weights = [round_half_up(score / total * TOTAL_WEIGHT) for score in scores]
    else:
        weights = [TOTAL_WEIGHT // count] * count

    weights[-1] = TOTAL_WEIGHT - sum(weights[:-1])
    return weights


def _as_list(value: Any) -> List[Any]:
    return list(value) if isinstance(value, (list, tuple)) else []


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def to_create_exam_dto(answers: Dict[str, Any]) -> Dict[str, Any]:
    """Raw form payload -> DTO dict (wire keys, not yet validated)."""
    answers = _as_dict(answers)
    casos_front = [_as_dict(c) for c in _as_list(answers.get("casos"))[:MAX_CASES]]

    temas = split_topics(casos_front[0].get("temasGuia") if casos_front else "")

    casos = []
    for index, caso in enumerate(casos_front, start=1):
        aspectos = [_as_dict(a) for a in _as_list(caso.get("aspectos"))[:MAX_ASPECTS]]
        weights = normalize_weights([clamp_score(a.get("puntaje")) for a in aspectos])
        casos.append({
            "nombre": f"Caso {index}",
            "aspectos": [
                {"nombre": safe_str(a.get("descripcion")), "ponderacion": w}
                for a, w in zip(aspectos, weights)
            ],
        })

    return {
        "modalidad": safe_str(answers.get("modalidad")),
        "duracionMin": clamp_int(answers.get("duracionMin"), MIN_DURATION_MIN, MAX_DURATION_MIN,
                                 default=MIN_DURATION_MIN),
        "temasGuia": temas,
        "numeroCasos": len(casos),
        "casos": casos,
    }


def build_exam_dto(answers: Dict[str, Any]) -> CreateExamDTO:
    """Normalize and validate; raises SubmissionValidationError."""
    raw = to_create_exam_dto(answers)
    try:
        return CreateExamDTO.model_validate(raw)
    except ValidationError as e:
        details = flatten_validation_error(e)
        details["formErrors"].extend(negative_weight_messages(raw))
        raise SubmissionValidationError(details) from e


def negative_weight_messages(raw: Dict[str, Any]) -> List[str]:
    """
    Explain cases rejected only because rounding pushed the last weight
    below zero (e.g. eight scores of 1 and a 0). The form must change the
    scores; weights are never rebalanced here.
    """
    messages = []
    for caso in raw.get("casos", []):
        weights = [a["ponderacion"] for a in caso["aspectos"]]
        if weights and weights[-1] < 0:
            messages.append(
                f"{caso['nombre']}: rounded weights exceed {TOTAL_WEIGHT} "
                f"(last aspect would get {weights[-1]}); adjust the scores"
            )
    return messages


def flatten_validation_error(error: ValidationError) -> Dict[str, Any]:
    """``{"formErrors": [...], "fieldErrors": {path: [...]}}`` for API callers."""
    form_errors: List[str] = []
    field_errors: Dict[str, List[str]] = {}
    for item in error.errors():
        path = ".".join(str(part) for part in item.get("loc", ()))
        message = item.get("msg", "invalid")
        if path:
            field_errors.setdefault(path, []).append(message)
        else:
            form_errors.append(message)
    return {"formErrors": form_errors, "fieldErrors": field_errors}
