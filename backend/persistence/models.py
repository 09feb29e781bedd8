"""
SQLModel models for the evaluation record store.
Tables:
- links: issued evaluation links and their redemption state
- exams: redeemed submissions with their generated transcript
"""
import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import uuid4

from sqlalchemy import Column, LargeBinary
from sqlmodel import SQLModel, Field

from shared.constants import LinkStatus, PDF_CONTENT_TYPE


def utcnow() -> datetime:
    """Timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to values a backend handed back without tzinfo."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def generate_exam_id() -> str:
    return f"EXAM-{uuid4().hex[:12].upper()}"


def _loads(raw: Optional[str], default):
    if not raw:
        return default
    return json.loads(raw)


class Link(SQLModel, table=True):
    """One issued invitation to fill in an evaluation form."""
    __tablename__ = "links"

    id: Optional[int] = Field(default=None, primary_key=True)
    token: str = Field(index=True)
    token_hash: Optional[str] = Field(default=None, index=True)  # absent on pre-hash records

    # Lifecycle
    status: str = Field(default=LinkStatus.ISSUED.value, index=True)
    expires_at: datetime
    used_at: Optional[datetime] = None
    submissions_count: int = Field(default=0)

    # Header snapshot frozen at issuance (JSON dict)
    header: str = Field(default="{}")

    # Batch mode
    is_batch: bool = Field(default=False)
    folios: Optional[str] = None  # JSON array

    # Catalog references, opaque ids as supplied at issuance
    convocatoria_id: Optional[str] = None
    concurso_id: Optional[str] = None
    plaza_id: Optional[str] = None
    especialista_id: Optional[str] = None
    aspirante_id: Optional[str] = None

    # Timestamps
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def get_header(self) -> Dict[str, Any]:
        return _loads(self.header, {})

    def get_folios(self) -> List[str]:
        return _loads(self.folios, [])


class Exam(SQLModel, table=True):
    """A redeemed submission; immutable once written."""
    __tablename__ = "exams"

    id: Optional[int] = Field(default=None, primary_key=True)
    exam_id: str = Field(default_factory=generate_exam_id, unique=True, index=True)
    link_token: str = Field(index=True)

    # Snapshots (JSON)
    header: str = Field(default="{}")
    answers: str = Field(default="{}")
    dto: str = Field(default="{}")
    consent: Optional[str] = None

    # Transcript artifact
    responses_pdf: Optional[bytes] = Field(default=None, sa_column=Column(LargeBinary))
    responses_filename: str = Field(default="respuestas.pdf")
    responses_content_type: str = Field(default=PDF_CONTENT_TYPE)

    created_at: datetime = Field(default_factory=utcnow)

    def get_header(self) -> Dict[str, Any]:
        return _loads(self.header, {})

    def get_answers(self) -> Dict[str, Any]:
        return _loads(self.answers, {})

    def get_dto(self) -> Dict[str, Any]:
        return _loads(self.dto, {})
