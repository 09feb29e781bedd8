"""
Small validation/formatting helpers shared by the services and renderers.
"""
import math
import re
from typing import Any, Dict, List, Optional

from shared.constants import MAX_GUIDE_TOPICS, PREFILL_FIELDS


_TOPIC_SEPARATORS = re.compile(r"\r?\n|;|,")
_UNSAFE_FILENAME_CHARS = re.compile(r"[^\w\-.]+", re.ASCII)


def safe_str(value: Any) -> str:
    """None-safe string conversion."""
    if value is None:
        return ""
    return str(value)


def to_number(value: Any) -> Optional[float]:
    """Parse a loosely typed number; returns None for anything non-finite."""
    if isinstance(value, bool):
        return float(value)
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


def round_half_up(value: float) -> int:
    """Round half up (2.5 -> 3), unlike the builtin banker's rounding."""
    return int(math.floor(value + 0.5))


def clamp_int(value: Any, low: int, high: int, default: int = 0) -> int:
    """Round and clamp to [low, high]; non-numeric input becomes ``default``."""
    number = to_number(value)
    if number is None:
        return default
    return max(low, min(high, round_half_up(number)))


def split_topics(text: Any, limit: int = MAX_GUIDE_TOPICS) -> List[str]:
    """Split a free-text guidance block on newlines, semicolons and commas."""
    parts = (p.strip() for p in _TOPIC_SEPARATORS.split(safe_str(text)))
    return [p for p in parts if p][:limit]


def safe_filename(name: str, default: str = "documento") -> str:
    """Collapse anything outside [A-Za-z0-9_-.] to underscores."""
    cleaned = _UNSAFE_FILENAME_CHARS.sub("_", safe_str(name).strip()).strip("._")
    return cleaned or default


def safe_folio_segment(folio: Any, position: int) -> str:
    """Archive directory name for a folio; blank folios get a positional name."""
    text = safe_str(folio).strip()
    if not text:
        return f"folio_{position}"
    text = text.replace("/", "_").replace("\\", "_")
    if text in (".", ".."):
        return f"folio_{position}"
    return text


def pick(*values: Any) -> Any:
    """First value that is not None/empty string."""
    for value in values:
        if value is not None and value != "":
            return value
    return ""


def flatten_header(header: Dict[str, Any]) -> Dict[str, str]:
    """
    Flat view of a link header snapshot for the form's read-only fields.

    Links issued by the admin screen store ``plazaCodigo`` and ``jefeNombre``;
    the form expects ``codigoPuesto`` and ``nombreEspecialista``.
    """
    header = header or {}
    flat = {
        "convocatoria": pick(header.get("convocatoria")),
        "unidadAdministrativa": pick(header.get("unidadAdministrativa")),
        "concurso": pick(header.get("concurso")),
        "puesto": pick(header.get("puesto")),
        "codigoPuesto": pick(header.get("codigoPuesto"), header.get("plazaCodigo")),
        "nombreEspecialista": pick(header.get("nombreEspecialista"), header.get("jefeNombre")),
        "folio": pick(header.get("folio")),
    }
    return {key: safe_str(flat[key]) for key in PREFILL_FIELDS}
