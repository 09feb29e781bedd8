"""
FastAPI backend for the practical-case evaluation service.

Issues evaluation links, accepts the evaluator's submission, serves the
stored transcript and generates document batches.

Run with:  uvicorn backend.main:create_app --factory
"""
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Optional
from urllib.parse import quote

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response, StreamingResponse
from sqlalchemy.engine import Engine

from backend.config import Settings, get_settings
from backend.persistence.database import get_engine, init_db
from backend.persistence.models import as_utc
from backend.renderers import build_default_renderers
from backend.renderers.base import RendererSet
from backend.services.batch_service import BatchArtifactAssembler
from backend.services.exam_service import ExamRecorder, SubmissionService
from backend.services.link_service import LinkRegistry
from shared.constants import DocumentKind, ErrorCode, ZIP_CONTENT_TYPE
from shared.errors import (
    ArtifactAccessDenied, ArtifactMissingError, BatchRequestError,
    ExamNotFoundError, SubmissionError
)
from shared.schemas import (
    BatchRequest, DocumentPayload, EncabezadoFront, ExamListResponse,
    HealthCheckResponse, IssueLinkRequest, IssueLinkResponse, LinkListResponse,
    PrefillResponse, SingleDocumentRequest, SubmissionPreview, SubmitRequest,
    SubmitResponse, VerifyResponse
)

logger = logging.getLogger(__name__)

API_VERSION = "1.0.0"


@dataclass
class Services:
    settings: Settings
    links: LinkRegistry
    recorder: ExamRecorder
    submissions: SubmissionService
    batch: BatchArtifactAssembler
    responses_batch: BatchArtifactAssembler
    renderers: RendererSet


def build_services(
    settings: Settings,
    engine: Engine,
    renderers: RendererSet
) -> Services:
    links = LinkRegistry(engine=engine)
    recorder = ExamRecorder(renderers=renderers, engine=engine)
    return Services(
        settings=settings,
        links=links,
        recorder=recorder,
        submissions=SubmissionService(links=links, recorder=recorder),
        batch=BatchArtifactAssembler(renderers=renderers),
        responses_batch=BatchArtifactAssembler(renderers=renderers, kinds=[DocumentKind.TRANSCRIPT]),
        renderers=renderers,
    )


def _services(request: Request) -> Services:
    return request.app.state.services


def _public_base(request: Request, settings: Settings) -> str:
    return (settings.public_base_url or str(request.base_url)).rstrip("/")


def _attachment(filename: str) -> dict:
    # latin-1 header; non-ASCII names go in filename* only
    fallback = filename.encode("ascii", "replace").decode("ascii").replace("?", "_")
    return {
        "Content-Disposition": f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename)}",
        "Cache-Control": "no-store",
    }


def create_app(
    settings: Optional[Settings] = None,
    engine: Optional[Engine] = None,
    renderers: Optional[RendererSet] = None
) -> FastAPI:
    """Process bootstrap: owns the engine and the renderer set."""
    settings = settings or get_settings()
    configure_logging(settings)
    engine = engine or get_engine()
    renderers = renderers or build_default_renderers(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup and shutdown events."""
        init_db(engine)
        logger.info("Database initialized")
        yield
        logger.info("Shutting down")

    app = FastAPI(
        title="Casos Prácticos API",
        description="Evaluation links, submissions and document generation",
        version=API_VERSION,
        lifespan=lifespan
    )
    app.state.services = build_services(settings, engine, renderers)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(SubmissionError)
    async def submission_error_handler(request: Request, exc: SubmissionError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_payload())

    # ============================================================
    # HEALTH CHECK
    # ============================================================

    @app.get("/health", response_model=HealthCheckResponse)
    async def health_check(request: Request):
        """Health check endpoint."""
        services = _services(request)
        return HealthCheckResponse(
            status="healthy",
            version=API_VERSION,
            components={
                "database": "ok",
                "renderers": ",".join(k.value for k in services.renderers.kinds()),
            }
        )

    # ============================================================
    # LINK ENDPOINTS
    # ============================================================

    @app.post("/api/links", response_model=IssueLinkResponse)
    def issue_link(body: IssueLinkRequest, request: Request):
        """Issue a time-boxed, single-use evaluation link."""
        services = _services(request)
        ttl = body.ttl_hours if body.ttl_hours is not None else services.settings.default_ttl_hours
        folios = [f for f in body.folios if f.strip()]
        if body.is_batch and not folios:
            raise HTTPException(status_code=400, detail="Batch links need at least one folio")

        link, token = services.links.issue(
            header=body.header,
            ttl_hours=ttl,
            folios=folios,
            refs={
                "convocatoria_id": body.convocatoria_id,
                "concurso_id": body.concurso_id,
                "plaza_id": body.plaza_id,
                "especialista_id": body.especialista_id,
                "aspirante_id": body.aspirante_id,
            },
        )
        form_base = (services.settings.form_base_url or _public_base(request, services.settings)).rstrip("/")
        return IssueLinkResponse(
            token=token,
            url=f"{form_base}/form/{token}",
            expires_at=as_utc(link.expires_at),
            is_batch=link.is_batch,
            folios=link.get_folios(),
        )

    @app.get("/api/links", response_model=LinkListResponse)
    def list_links(request: Request, status: Optional[str] = None, limit: int = 50):
        """List issued links (operators)."""
        links = _services(request).links.list_links(status=status, limit=limit)
        return LinkListResponse(links=links, total_count=len(links))

    # ============================================================
    # EXAM ENDPOINTS
    # ============================================================

    @app.get("/api/exams/verify/{token}", response_model=VerifyResponse, response_model_exclude_none=True)
    def verify_link(token: str, request: Request):
        """Read-only check that a link can still be used."""
        return _services(request).links.verify(token)

    @app.get("/api/exams/prefill/{token}", response_model=PrefillResponse)
    def prefill(token: str, request: Request):
        """Flat header fields for the form's read-only section."""
        result = _services(request).links.prefill(token)
        if result is None:
            raise HTTPException(status_code=404, detail="Link not found")
        return result

    @app.get("/api/exams", response_model=ExamListResponse)
    def list_exams(request: Request, token: str = ""):
        """Exams recorded with a given link token."""
        if not token:
            raise HTTPException(status_code=400, detail="token is required")
        exams = _services(request).recorder.list_exams(token)
        return ExamListResponse(exams=exams, total_count=len(exams))

    @app.post("/api/exams/{token}", response_model=SubmitResponse)
    def submit_exam(token: str, body: SubmitRequest, request: Request):
        """Redeem the link with the evaluator's answers."""
        services = _services(request)
        try:
            recorded = services.submissions.submit(token, body.answers, body.consent)
        except SubmissionError:
            raise
        except Exception as e:
            logger.exception(f"POST /api/exams/{{token}} failed: {e}")
            raise SubmissionError(ErrorCode.SERVER_ERROR, status_code=500) from e

        base = _public_base(request, services.settings)
        return SubmitResponse(exam_id=recorded.exam_id, responses_url=f"{base}{recorded.responses_path}")

    @app.get("/api/exams/{exam_id}/responses.pdf")
    def download_responses(exam_id: str, request: Request, token: str = ""):
        """Stored transcript; the original link token is the credential."""
        if not token:
            raise HTTPException(status_code=400, detail="token is required")
        try:
            artifact = _services(request).recorder.fetch_artifact(exam_id, token)
        except ExamNotFoundError:
            raise HTTPException(status_code=404, detail="not-found")
        except ArtifactAccessDenied:
            raise HTTPException(status_code=403, detail="forbidden")
        except ArtifactMissingError:
            raise HTTPException(status_code=404, detail="no-artifact")
        return Response(
            content=artifact.data,
            media_type=artifact.content_type,
            headers=_attachment(artifact.filename),
        )

    @app.delete("/api/exams/{exam_id}")
    def delete_exam(exam_id: str, request: Request, token: str = ""):
        """Delete an exam (same token binding as the download)."""
        try:
            _services(request).recorder.delete_exam(exam_id, token)
        except ExamNotFoundError:
            raise HTTPException(status_code=404, detail="not-found")
        except ArtifactAccessDenied:
            raise HTTPException(status_code=403, detail="forbidden")
        return {"success": True, "message": f"Exam {exam_id} deleted"}

    # ============================================================
    # DOCUMENT GENERATION ENDPOINTS
    # ============================================================

    def _batch_zip(assembler: BatchArtifactAssembler, body: BatchRequest, filename: str) -> StreamingResponse:
        try:
            assembler.validate(body.casos, body.folios)
        except BatchRequestError as e:
            raise HTTPException(status_code=400, detail=str(e))

        logger.info(f"Batch generation ({filename}): {len(body.casos)} cases x {len(body.folios)} folios")
        return StreamingResponse(
            assembler.stream_zip(body.casos, body.folios, body.header),
            media_type=ZIP_CONTENT_TYPE,
            headers=_attachment(filename),
        )

    @app.post("/api/artifacts/generar-lote")
    def generate_batch(body: BatchRequest, request: Request):
        """One ZIP with FA, FE and transcript for every folio."""
        return _batch_zip(_services(request).batch, body, "ARTIFACTS_lote.zip")

    @app.post("/api/respuestas/generar-lote")
    def generate_responses_batch(body: BatchRequest, request: Request):
        """One ZIP with only the transcript for every folio."""
        return _batch_zip(_services(request).responses_batch, body, "RESPUESTAS_lote.zip")

    def _single_document(kind: DocumentKind, body: SingleDocumentRequest, request: Request) -> Response:
        if not body.casos:
            raise HTTPException(status_code=400, detail="Se requiere al menos un caso")
        payload = DocumentPayload(header=body.header or EncabezadoFront(), casos=body.casos)
        try:
            artifact = _services(request).renderers.render(kind, payload)
        except Exception as e:
            logger.exception(f"Error generating {kind.value}: {e}")
            raise HTTPException(status_code=500, detail="Error interno del servidor")
        return Response(
            content=artifact.data,
            media_type=artifact.content_type,
            headers=_attachment(artifact.filename),
        )

    @app.post("/api/fa/generar")
    def generate_structure(body: SingleDocumentRequest, request: Request):
        """Structure PDF for one set of cases."""
        return _single_document(DocumentKind.STRUCTURE, body, request)

    @app.post("/api/fe/generar")
    def generate_scoring_sheet(body: SingleDocumentRequest, request: Request):
        """Scoring spreadsheet for one set of cases."""
        return _single_document(DocumentKind.SPREADSHEET, body, request)

    # ============================================================
    # TRIANGULATION ENDPOINTS
    # ============================================================

    @app.get(
        "/api/triangulacion/submissions/{exam_id}/preview",
        response_model=SubmissionPreview,
    )
    def preview_submission(exam_id: str, request: Request, token: str = ""):
        """Stored answers with the resolved header (same token binding as the download)."""
        try:
            return _services(request).recorder.preview(exam_id, token)
        except ExamNotFoundError:
            raise HTTPException(status_code=404, detail="not-found")
        except ArtifactAccessDenied:
            raise HTTPException(status_code=403, detail="forbidden")

    def _regenerated(kind: DocumentKind, exam_id: str, token: str, request: Request) -> Response:
        try:
            artifact = _services(request).recorder.regenerate(exam_id, token, kind)
        except ExamNotFoundError:
            raise HTTPException(status_code=404, detail="not-found")
        except ArtifactAccessDenied:
            raise HTTPException(status_code=403, detail="forbidden")
        except Exception as e:
            logger.exception(f"Error regenerating {kind.value} for {exam_id}: {e}")
            raise HTTPException(status_code=500, detail="Error interno del servidor")
        return Response(
            content=artifact.data,
            media_type=artifact.content_type,
            headers=_attachment(artifact.filename),
        )

    @app.get("/api/triangulacion/submissions/{exam_id}/fa")
    def submission_structure(exam_id: str, request: Request, token: str = ""):
        """Structure PDF rebuilt from a stored submission."""
        return _regenerated(DocumentKind.STRUCTURE, exam_id, token, request)

    @app.get("/api/triangulacion/submissions/{exam_id}/fe")
    def submission_scoring_sheet(exam_id: str, request: Request, token: str = ""):
        """Scoring spreadsheet rebuilt from a stored submission."""
        return _regenerated(DocumentKind.SPREADSHEET, exam_id, token, request)

    return app


def configure_logging(settings: Optional[Settings] = None):
    settings = settings or get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# ============================================================
# RUN SERVER
# ============================================================

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(create_app(), host="0.0.0.0", port=8000)
