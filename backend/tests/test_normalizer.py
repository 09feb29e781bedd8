"""
Tests for the submission normalizer (raw 0..10 scores -> 0..100 weights).
"""
import pytest

from backend.services.normalizer import (
    build_exam_dto, clamp_score, normalize_weights, to_create_exam_dto
)
from shared.errors import SubmissionValidationError

from conftest import make_answers


class TestNormalizeWeights:
    """Weights are integers summing to exactly 100."""

    def test_proportional_weights(self):
        assert normalize_weights([10, 5, 5]) == [50, 25, 25]

    def test_all_zero_splits_evenly_last_takes_remainder(self):
        assert normalize_weights([0, 0, 0]) == [33, 33, 34]

    def test_rounding_drift_goes_to_last(self):
        # 1/3 -> 33.33 rounds to 33 twice; the last absorbs the drift
        assert normalize_weights([1, 1, 1]) == [33, 33, 34]

    def test_half_rounds_up(self):
        # 1/8 -> 12.5 -> 13
        weights = normalize_weights([1, 1, 1, 1, 1, 1, 1, 1])
        assert weights[:-1] == [13] * 7
        assert sum(weights) == 100

    def test_single_aspect_gets_everything(self):
        assert normalize_weights([7]) == [100]

    def test_worked_example_four_four_two(self):
        assert normalize_weights([4, 4, 2]) == [40, 40, 20]

    def test_single_zero_aspect_gets_everything(self):
        assert normalize_weights([0]) == [100]

    def test_empty(self):
        assert normalize_weights([]) == []

    @pytest.mark.parametrize("scores", [[3, 7], [1, 2, 3, 4], [10] * 10, [0, 10], [9, 0, 0, 1]])
    def test_sum_is_exactly_100(self, scores):
        assert sum(normalize_weights(scores)) == 100


class TestClampScore:

    @pytest.mark.parametrize("raw,expected", [
        (5, 5), (12, 10), (-3, 0), ("7", 7), (4.5, 5), (None, 0), ("abc", 0), (float("nan"), 0),
        (float("inf"), 0),
    ])
    def test_clamp(self, raw, expected):
        assert clamp_score(raw) == expected


class TestToCreateExamDto:

    def test_basic_shape(self):
        dto = to_create_exam_dto(make_answers())
        assert dto["modalidad"] == "Presencial"
        assert dto["duracionMin"] == 60
        assert dto["numeroCasos"] == 1
        assert dto["casos"][0]["nombre"] == "Caso 1"
        assert [a["ponderacion"] for a in dto["casos"][0]["aspectos"]] == [50, 25, 25]
        assert dto["casos"][0]["aspectos"][0]["nombre"] == "Aspecto 1"

    def test_guide_topics_come_from_first_case(self):
        dto = to_create_exam_dto(make_answers())
        assert dto["temasGuia"] == ["Presupuesto", "Riesgos", "Calendario"]

    def test_only_three_cases_and_ten_aspects_kept(self):
        answers = make_answers(scores_per_case=[[5] * 12] * 4)
        dto = to_create_exam_dto(answers)
        assert dto["numeroCasos"] == 3
        assert [c["nombre"] for c in dto["casos"]] == ["Caso 1", "Caso 2", "Caso 3"]
        assert all(len(c["aspectos"]) == 10 for c in dto["casos"])

    def test_duration_clamped(self):
        assert to_create_exam_dto(make_answers(duracionMin=500))["duracionMin"] == 120
        assert to_create_exam_dto(make_answers(duracionMin=0))["duracionMin"] == 1
        assert to_create_exam_dto(make_answers(duracionMin="n/a"))["duracionMin"] == 1

    def test_out_of_range_scores_clamped_before_weighting(self):
        answers = make_answers(scores_per_case=[[20, -4, 10]])
        dto = to_create_exam_dto(answers)
        assert [a["ponderacion"] for a in dto["casos"][0]["aspectos"]] == [50, 0, 50]

    def test_garbage_payload_yields_empty_dto(self):
        dto = to_create_exam_dto({"casos": "nope"})
        assert dto["numeroCasos"] == 0
        assert dto["casos"] == []


class TestBuildExamDto:

    def test_valid_dto(self):
        dto = build_exam_dto(make_answers(scores_per_case=[[10, 5, 5], [0, 0]]))
        assert dto.numero_casos == 2
        assert [a.ponderacion for a in dto.casos[1].aspectos] == [50, 50]
        for caso in dto.casos:
            assert sum(a.ponderacion for a in caso.aspectos) == 100

    def test_no_cases_is_validation_error(self):
        with pytest.raises(SubmissionValidationError) as exc:
            build_exam_dto(make_answers(scores_per_case=[]))
        assert "fieldErrors" in exc.value.details

    def test_case_without_aspects_is_validation_error(self):
        with pytest.raises(SubmissionValidationError):
            build_exam_dto(make_answers(scores_per_case=[[]]))

    def test_negative_remainder_is_rejected(self):
        # eight 1s round to 13 each (104), leaving -4 for the last aspect
        with pytest.raises(SubmissionValidationError):
            build_exam_dto(make_answers(scores_per_case=[[1] * 8 + [0]]))

    def test_negative_remainder_is_explained(self):
        with pytest.raises(SubmissionValidationError) as exc:
            build_exam_dto(make_answers(scores_per_case=[[10, 5, 5], [1] * 8 + [0]]))
        form_errors = exc.value.details["formErrors"]
        assert len(form_errors) == 1
        assert form_errors[0].startswith("Caso 2:")
        assert "-4" in form_errors[0]

    def test_other_failures_carry_no_weight_message(self):
        with pytest.raises(SubmissionValidationError) as exc:
            build_exam_dto(make_answers(scores_per_case=[]))
        assert exc.value.details["formErrors"] == []

    def test_non_object_payload_is_validation_error(self):
        for answers in (None, [], "texto", 7):
            with pytest.raises(SubmissionValidationError):
                build_exam_dto(answers)
