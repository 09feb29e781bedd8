"""
Exception types shared by the services and the API layer.
"""
from typing import Any, Dict, Optional

from shared.constants import ErrorCode


class SubmissionError(Exception):
    """A submission was rejected; carries the reason code returned to the caller."""

    def __init__(
        self,
        code: ErrorCode,
        status_code: int = 400,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(code.value)
        self.code = code
        self.status_code = status_code
        self.details = details

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.code.value}
        if self.details:
            payload["details"] = self.details
        return payload


class SubmissionValidationError(ValueError):
    """The normalized scoring DTO failed schema validation."""

    def __init__(self, details: Dict[str, Any]):
        super().__init__("Scoring payload failed validation")
        self.details = details


class ExamNotFoundError(LookupError):
    pass


class ArtifactAccessDenied(PermissionError):
    pass


class ArtifactMissingError(LookupError):
    pass


class BatchRequestError(ValueError):
    """Batch input rejected before any archive byte was produced."""


class RenderError(RuntimeError):
    """A renderer could not build its document from the payload."""
