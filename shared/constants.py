"""
Shared constants for the practical-case evaluation service.
"""
from enum import Enum


# Link lifecycle
class LinkStatus(str, Enum):
    ISSUED = "ISSUED"
    USED = "USED"
    EXPIRED = "EXPIRED"


# Outcome of a redemption check
class RedeemStatus(str, Enum):
    OK = "OK"
    NOT_FOUND = "NOT_FOUND"
    EXPIRED = "EXPIRED"
    ALREADY_USED = "ALREADY_USED"


# Reason codes surfaced to API callers
class ErrorCode(str, Enum):
    INVALID = "invalid"
    EXPIRED = "expired"
    USED = "used"
    VALIDATION = "validation"
    SERVER_ERROR = "server-error"


REDEEM_REASONS = {
    RedeemStatus.NOT_FOUND: ErrorCode.INVALID,
    RedeemStatus.EXPIRED: ErrorCode.EXPIRED,
    RedeemStatus.ALREADY_USED: ErrorCode.USED,
}


PDF_CONTENT_TYPE = "application/pdf"
XLSX_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
ZIP_CONTENT_TYPE = "application/zip"


# Generated document kinds
class DocumentKind(str, Enum):
    STRUCTURE = "fa"        # structure PDF (Formato de Aplicación)
    SPREADSHEET = "fe"      # scoring spreadsheet (Formato de Evaluación)
    TRANSCRIPT = "resp"     # responses transcript PDF

    @property
    def extension(self) -> str:
        return DOCUMENT_EXTENSIONS[self]

    @property
    def content_type(self) -> str:
        return DOCUMENT_CONTENT_TYPES[self]


DOCUMENT_EXTENSIONS = {
    DocumentKind.STRUCTURE: "pdf",
    DocumentKind.SPREADSHEET: "xlsx",
    DocumentKind.TRANSCRIPT: "pdf",
}

DOCUMENT_CONTENT_TYPES = {
    DocumentKind.STRUCTURE: PDF_CONTENT_TYPE,
    DocumentKind.SPREADSHEET: XLSX_CONTENT_TYPE,
    DocumentKind.TRANSCRIPT: PDF_CONTENT_TYPE,
}

# Batch render order per folio
BATCH_DOCUMENT_ORDER = [
    DocumentKind.STRUCTURE,
    DocumentKind.SPREADSHEET,
    DocumentKind.TRANSCRIPT,
]


# Form limits
MAX_CASES = 3
MAX_ASPECTS = 10
MAX_RAW_SCORE = 10
TOTAL_WEIGHT = 100
MAX_GUIDE_TOPICS = 20
MIN_DURATION_MIN = 1
MAX_DURATION_MIN = 120

DEFAULT_TTL_HOURS = 48


# Flat header fields returned by prefill
PREFILL_FIELDS = [
    "convocatoria",
    "unidadAdministrativa",
    "concurso",
    "puesto",
    "codigoPuesto",
    "nombreEspecialista",
    "folio",
]


# API Endpoints
API_BASE_URL = "http://localhost:8000"
API_ENDPOINTS = {
    "links": "/api/links",
    "verify": "/api/exams/verify/{token}",
    "prefill": "/api/exams/prefill/{token}",
    "submit": "/api/exams/{token}",
    "exams": "/api/exams",
    "exam_detail": "/api/exams/{exam_id}",
    "responses_pdf": "/api/exams/{exam_id}/responses.pdf",
    "batch": "/api/artifacts/generar-lote",
    "responses_batch": "/api/respuestas/generar-lote",
    "fa": "/api/fa/generar",
    "fe": "/api/fe/generar",
    "submission_preview": "/api/triangulacion/submissions/{exam_id}/preview",
    "submission_fa": "/api/triangulacion/submissions/{exam_id}/fa",
    "submission_fe": "/api/triangulacion/submissions/{exam_id}/fe",
}
