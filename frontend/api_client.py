"""
API Client for the evaluation backend.

Used by the admin tooling and the evaluation form host to issue links,
submit answers and download generated documents. It only talks HTTP.
"""
import requests
from typing import Optional, List, Dict, Any

from shared.constants import API_BASE_URL, API_ENDPOINTS
from shared.schemas import (
    IssueLinkRequest, IssueLinkResponse, LinkListResponse,
    VerifyResponse, PrefillResponse,
    SubmitRequest, SubmitResponse, ExamListResponse,
    BatchRequest, SingleDocumentRequest, SubmissionPreview
)


class APIClient:
    """
    Client for communicating with the backend API.
    """

    def __init__(self, base_url: str = None, timeout: float = 30):
        self.base_url = (base_url or API_BASE_URL).rstrip("/")
        self.timeout = timeout

    def _url(self, name: str, **params) -> str:
        """Build full URL from an endpoint name."""
        return f"{self.base_url}{API_ENDPOINTS[name].format(**params)}"

    def _raise_for_error(self, response: requests.Response):
        if response.status_code < 400:
            return
        try:
            error = response.json()
        except ValueError:
            raise APIError(response.text, response.status_code)
        message = error.get("error") or error.get("detail") or "Unknown error"
        raise APIError(str(message), response.status_code, details=error.get("details"))

    def _handle_response(self, response: requests.Response) -> Dict[str, Any]:
        """Handle a JSON API response."""
        self._raise_for_error(response)
        return response.json()

    def _handle_binary(self, response: requests.Response) -> bytes:
        self._raise_for_error(response)
        return response.content

    # ==================== HEALTH ====================

    def health_check(self) -> Dict[str, Any]:
        """Check backend health."""
        try:
            response = requests.get(f"{self.base_url}/health", timeout=5)
            return self._handle_response(response)
        except requests.exceptions.ConnectionError:
            return {"status": "unhealthy", "error": "Cannot connect to backend"}

    # ==================== LINKS ====================

    def issue_link(
        self,
        header: Dict[str, Any],
        ttl_hours: Optional[float] = None,
        folios: Optional[List[str]] = None,
        **refs: Optional[str]
    ) -> IssueLinkResponse:
        """Issue an evaluation link; ``folios`` makes it a batch link."""
        request = IssueLinkRequest(
            header=header,
            ttl_hours=ttl_hours,
            is_batch=bool(folios),
            folios=folios or [],
            **refs
        )
        response = requests.post(
            self._url("links"),
            json=request.model_dump(by_alias=True, exclude_none=True),
            timeout=self.timeout
        )
        data = self._handle_response(response)
        return IssueLinkResponse(**data)

    def list_links(self, status: Optional[str] = None, limit: int = 50) -> LinkListResponse:
        params = {"limit": limit}
        if status:
            params["status"] = status
        response = requests.get(self._url("links"), params=params, timeout=self.timeout)
        data = self._handle_response(response)
        return LinkListResponse(**data)

    # ==================== EXAMS ====================

    def verify(self, token: str) -> VerifyResponse:
        response = requests.get(self._url("verify", token=token), timeout=self.timeout)
        data = self._handle_response(response)
        return VerifyResponse(**data)

    def prefill(self, token: str) -> PrefillResponse:
        response = requests.get(self._url("prefill", token=token), timeout=self.timeout)
        data = self._handle_response(response)
        return PrefillResponse(**data)

    def submit(
        self,
        token: str,
        answers: Dict[str, Any],
        consent: Optional[Dict[str, Any]] = None
    ) -> SubmitResponse:
        """
        Submit the evaluator's answers.

        Rejections raise APIError with the reason code as message
        (invalid, expired, used, validation, server-error).
        """
        request = SubmitRequest(answers=answers, consent=consent)
        response = requests.post(
            self._url("submit", token=token),
            json=request.model_dump(by_alias=True),
            timeout=self.timeout
        )
        data = self._handle_response(response)
        return SubmitResponse(**data)

    def list_exams(self, token: str) -> ExamListResponse:
        response = requests.get(self._url("exams"), params={"token": token}, timeout=self.timeout)
        data = self._handle_response(response)
        return ExamListResponse(**data)

    def download_responses(self, exam_id: str, token: str) -> bytes:
        """Stored transcript PDF."""
        response = requests.get(
            self._url("responses_pdf", exam_id=exam_id),
            params={"token": token},
            timeout=self.timeout
        )
        return self._handle_binary(response)

    def delete_exam(self, exam_id: str, token: str) -> bool:
        response = requests.delete(
            self._url("exam_detail", exam_id=exam_id),
            params={"token": token},
            timeout=self.timeout
        )
        self._handle_response(response)
        return True

    # ==================== DOCUMENTS ====================

    def generate_batch(
        self,
        casos: List[Dict[str, Any]],
        folios: List[str],
        header: Optional[Dict[str, Any]] = None,
        responses_only: bool = False
    ) -> bytes:
        """ZIP with the three documents for every folio, or only the transcripts."""
        request = BatchRequest(casos=casos, folios=folios, header=header)
        response = requests.post(
            self._url("responses_batch" if responses_only else "batch"),
            json=request.model_dump(by_alias=True, exclude_none=True),
            timeout=self.timeout
        )
        return self._handle_binary(response)

    def generate_structure(self, casos: List[Dict[str, Any]], header: Optional[Dict[str, Any]] = None) -> bytes:
        return self._generate("fa", casos, header)

    def generate_scoring_sheet(self, casos: List[Dict[str, Any]], header: Optional[Dict[str, Any]] = None) -> bytes:
        return self._generate("fe", casos, header)

    def _generate(self, name: str, casos, header) -> bytes:
        request = SingleDocumentRequest(casos=casos, header=header)
        response = requests.post(
            self._url(name),
            json=request.model_dump(by_alias=True, exclude_none=True),
            timeout=self.timeout
        )
        return self._handle_binary(response)

    # ==================== TRIANGULATION ====================

    def preview_submission(self, exam_id: str, token: str) -> SubmissionPreview:
        response = requests.get(
            self._url("submission_preview", exam_id=exam_id),
            params={"token": token},
            timeout=self.timeout
        )
        data = self._handle_response(response)
        return SubmissionPreview(**data)

    def submission_document(self, exam_id: str, token: str, kind: str = "fa") -> bytes:
        """Structure PDF (``fa``) or scoring sheet (``fe``) rebuilt from a stored submission."""
        response = requests.get(
            self._url(f"submission_{kind}", exam_id=exam_id),
            params={"token": token},
            timeout=self.timeout
        )
        return self._handle_binary(response)


class APIError(Exception):
    """API error with status code."""

    def __init__(self, message: str, status_code: int = 500, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.status_code = status_code
        self.details = details
        super().__init__(self.message)


# Singleton client
_client = None


def get_api_client() -> APIClient:
    """Get or create API client singleton."""
    global _client
    if _client is None:
        _client = APIClient()
    return _client
