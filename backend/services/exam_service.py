"""
Exam recording and the end-to-end submission flow.
"""
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from sqlalchemy.engine import Engine
from sqlmodel import select

from backend.persistence.database import get_db_session
from backend.persistence.models import Exam, Link, as_utc
from backend.renderers.base import DocumentArtifact, RendererSet
from backend.services.link_service import LinkRegistry
from backend.services.normalizer import build_exam_dto
from shared.constants import REDEEM_REASONS, DocumentKind, ErrorCode
from shared.errors import (
    ArtifactAccessDenied, ArtifactMissingError, ExamNotFoundError,
    SubmissionError, SubmissionValidationError
)
from shared.formatting import flatten_header, pick, safe_str
from shared.schemas import (
    AnswersPayload, CreateExamDTO, DocumentPayload, EncabezadoFront, ExamSummary,
    SubmissionPreview
)

logger = logging.getLogger(__name__)


def responses_path(exam_id: str, token: str) -> str:
    """Download reference; the original bearer token is the credential."""
    return f"/api/exams/{quote(exam_id)}/responses.pdf?token={quote(token, safe='')}"


def transcript_header(link_header: Dict[str, Any], answers: AnswersPayload) -> EncabezadoFront:
    """Link snapshot first, then what the evaluator typed."""
    flat = flatten_header(link_header)
    # the admin screen's jefeNombre outranks any other specialist name
    especialista = pick(
        safe_str(link_header.get("jefeNombre")),
        safe_str(link_header.get("nombreEspecialista")),
        answers.nombre_especialista,
    )
    return EncabezadoFront(
        convocatoria=pick(flat["convocatoria"], answers.convocatoria),
        unidad_administrativa=pick(flat["unidadAdministrativa"], answers.unidad_administrativa),
        concurso=pick(flat["concurso"], answers.concurso),
        puesto=pick(flat["puesto"], answers.puesto),
        codigo_puesto=pick(flat["codigoPuesto"], answers.codigo_puesto),
        folio=pick(flat["folio"], answers.folio),
        modalidad=answers.modalidad,
        duracion_min=answers.duracion_min,
        nombre_especialista=especialista,
        puesto_especialista=answers.puesto_especialista,
        fecha_elaboracion=answers.fecha_elaboracion,
    )


def submission_payload(link_header: Dict[str, Any], answers: Dict[str, Any]) -> DocumentPayload:
    """Renderer input for a submission: resolved header plus the typed cases."""
    parsed = AnswersPayload.model_validate(answers)
    return DocumentPayload(header=transcript_header(link_header, parsed), casos=parsed.casos)


@dataclass
class RecordedExam:
    exam_id: str
    responses_path: str


class ExamRecorder:
    """Persists a redeemed submission together with its transcript artifact."""

    def __init__(self, renderers: RendererSet, engine: Optional[Engine] = None):
        self.renderers = renderers
        self.engine = engine

    def record(
        self,
        link: Link,
        token: str,
        answers: Dict[str, Any],
        dto: CreateExamDTO,
        consent: Any = None
    ) -> RecordedExam:
        """Render the transcript once, then store the exam. Renderer errors propagate."""
        header = link.get_header()
        payload = submission_payload(header, answers)
        artifact = self.renderers.render(DocumentKind.TRANSCRIPT, payload)

        exam = Exam(
            link_token=link.token,
            header=json.dumps(header, default=str),
            answers=json.dumps(answers, default=str),
            dto=dto.model_dump_json(by_alias=True),
            consent=json.dumps(consent if consent is not None else {"accepted": False}, default=str),
            responses_pdf=artifact.data,
            responses_filename=artifact.filename,
            responses_content_type=artifact.content_type,
        )

        session = get_db_session(self.engine)
        session.add(exam)
        session.commit()
        session.refresh(exam)
        session.close()

        logger.info(f"[ExamRecorder] Stored {exam.exam_id} for link {link.id} ({len(artifact.data)} bytes)")
        return RecordedExam(exam_id=exam.exam_id, responses_path=responses_path(exam.exam_id, token))

    def _get_exam(self, exam_id: str) -> Exam:
        session = get_db_session(self.engine)
        exam = session.exec(select(Exam).where(Exam.exam_id == exam_id)).first()
        session.close()
        if exam is None:
            raise ExamNotFoundError(exam_id)
        return exam

    def _check_token(self, exam: Exam, token: str) -> None:
        if not token or exam.link_token != token:
            raise ArtifactAccessDenied(exam.exam_id)

    def fetch_artifact(self, exam_id: str, token: str) -> DocumentArtifact:
        exam = self._authorized_exam(exam_id, token)
        if not exam.responses_pdf:
            raise ArtifactMissingError(exam_id)
        return DocumentArtifact(
            data=exam.responses_pdf,
            filename=exam.responses_filename,
            content_type=exam.responses_content_type,
        )

    def delete_exam(self, exam_id: str, token: str) -> None:
        exam = self._authorized_exam(exam_id, token)
        session = get_db_session(self.engine)
        stored = session.get(Exam, exam.id)
        if stored is not None:
            session.delete(stored)
            session.commit()
        session.close()
        logger.info(f"[ExamRecorder] Deleted {exam_id}")

    # ==================== STORED SUBMISSION REVIEW ====================

    def _authorized_exam(self, exam_id: str, token: str) -> Exam:
        exam = self._get_exam(exam_id)
        self._check_token(exam, token)
        return exam

    def preview(self, exam_id: str, token: str) -> SubmissionPreview:
        """The stored answers, with the header resolved the way the transcript shows it."""
        exam = self._authorized_exam(exam_id, token)
        answers = exam.get_answers()
        payload = submission_payload(exam.get_header(), answers)
        return SubmissionPreview(
            exam_id=exam.exam_id,
            encabezado=payload.header,
            casos=payload.casos,
            dto=exam.get_dto(),
            respuestas_originales=answers,
            created_at=as_utc(exam.created_at),
        )

    def regenerate(self, exam_id: str, token: str, kind: DocumentKind) -> DocumentArtifact:
        """Render any document kind again from a stored submission; nothing is written."""
        exam = self._authorized_exam(exam_id, token)
        payload = submission_payload(exam.get_header(), exam.get_answers())
        artifact = self.renderers.render(kind, payload)
        logger.info(f"[ExamRecorder] Regenerated {kind.value} for {exam_id}")
        return artifact

    def list_exams(self, token: str) -> List[ExamSummary]:
        session = get_db_session(self.engine)
        exams = session.exec(
            select(Exam).where(Exam.link_token == token).order_by(Exam.created_at.desc())
        ).all()
        session.close()

        summaries = []
        for exam in exams:
            flat = flatten_header(exam.get_header())
            summaries.append(ExamSummary(
                exam_id=exam.exam_id,
                concurso=flat["concurso"],
                folio=flat["folio"],
                numero_casos=exam.get_dto().get("numeroCasos", 0),
                responses_filename=exam.responses_filename,
                created_at=as_utc(exam.created_at),
            ))
        return summaries


class SubmissionService:
    """
    submit = redeem -> normalize/validate -> record -> mark_used.

    Nothing is written before redemption and validation pass; the link is
    only consumed after the exam is stored.
    """

    def __init__(self, links: LinkRegistry, recorder: ExamRecorder):
        self.links = links
        self.recorder = recorder

    def submit(self, token: str, answers: Any, consent: Any = None) -> RecordedExam:
        result = self.links.redeem(token)
        if not result.ok:
            logger.info(f"[SubmissionService] Rejected submission: {result.status.value}")
            raise SubmissionError(REDEEM_REASONS[result.status], status_code=400)

        try:
            dto = build_exam_dto(answers)
        except SubmissionValidationError as e:
            logger.info(f"[SubmissionService] Validation failed for link {result.link.id}")
            raise SubmissionError(ErrorCode.VALIDATION, status_code=400, details=e.details) from e

        try:
            recorded = self.recorder.record(result.link, token, answers, dto, consent)
        except Exception as e:
            logger.exception(f"[SubmissionService] Recording failed for link {result.link.id}: {e}")
            raise SubmissionError(ErrorCode.SERVER_ERROR, status_code=500) from e

        self.links.mark_used(result.link)
        return recorded
