"""
Shared Pydantic schemas for frontend-backend communication.
All API request/response models and the scoring DTO are defined here.

Wire format is camelCase (the evaluation form posts camelCase keys);
attributes are snake_case through the ``to_camel`` alias generator.
"""
from datetime import datetime
from typing import Annotated, Any, Dict, List, Optional

from pydantic import (
    AliasChoices, BaseModel, BeforeValidator, ConfigDict, Field, model_validator
)
from pydantic.alias_generators import to_camel

from shared.constants import (
    MAX_ASPECTS, MAX_CASES, MAX_DURATION_MIN, MAX_GUIDE_TOPICS,
    MIN_DURATION_MIN, TOTAL_WEIGHT, LinkStatus
)


def _to_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


# Loose text field: null -> "", numbers -> str
Text = Annotated[str, BeforeValidator(_to_text)]


def _object_or_none(value: Any) -> Any:
    return value if isinstance(value, (dict, BaseModel)) else None


def _object_list(value: Any) -> List[Any]:
    if not isinstance(value, (list, tuple)):
        return []
    return [item if isinstance(item, (dict, BaseModel)) else {} for item in value]


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


class FrontModel(CamelModel):
    """Payloads typed by humans in the browser; unknown keys are kept."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )


# ============================================================
# FORM PAYLOADS (as posted by the evaluation form)
# ============================================================

class AspectoFront(FrontModel):
    """One scored criterion; ``puntaje`` is 0..10 but clamped later, not here."""
    descripcion: Text = ""
    puntaje: Any = 0


class EncabezadoFront(FrontModel):
    """Header block shared by every document."""
    convocatoria: Text = ""
    unidad_administrativa: Text = ""
    concurso: Text = ""
    puesto: Text = ""
    codigo_puesto: Text = ""
    folio: Text = ""
    modalidad: Text = ""
    duracion_min: Any = ""
    nombre_especialista: Text = ""
    puesto_especialista: Text = ""
    fecha_elaboracion: Text = ""
    temas_guia: Text = ""
    equipo_adicional: Text = ""


class CasoFront(FrontModel):
    # a malformed encabezado is dropped, not rejected
    encabezado: Annotated[Optional[EncabezadoFront], BeforeValidator(_object_or_none)] = None
    temas_guia: Text = ""
    planteamiento: Text = ""
    equipo_adicional: Text = ""
    aspectos: Annotated[List[AspectoFront], BeforeValidator(_object_list)] = Field(default_factory=list)


class AnswersPayload(EncabezadoFront):
    """Full form submission: header scalars plus 1..3 cases."""
    casos: Annotated[List[CasoFront], BeforeValidator(_object_list)] = Field(default_factory=list)


class DocumentPayload(CamelModel):
    """Input handed to every renderer."""
    header: EncabezadoFront = Field(default_factory=EncabezadoFront)
    casos: List[CasoFront] = Field(default_factory=list)


# ============================================================
# SCORING DTO (validated before anything is persisted)
# ============================================================

class DTOAspecto(CamelModel):
    nombre: str
    ponderacion: int = Field(ge=0, le=TOTAL_WEIGHT)


class DTOCaso(CamelModel):
    nombre: str
    aspectos: List[DTOAspecto] = Field(min_length=1, max_length=MAX_ASPECTS)

    @model_validator(mode="after")
    def _weights_sum_to_total(self):
        total = sum(a.ponderacion for a in self.aspectos)
        if total != TOTAL_WEIGHT:
            raise ValueError(
                f"{self.nombre}: weights sum to {total}, expected {TOTAL_WEIGHT}"
            )
        return self


class CreateExamDTO(CamelModel):
    modalidad: str = ""
    duracion_min: int = Field(ge=MIN_DURATION_MIN, le=MAX_DURATION_MIN)
    temas_guia: List[str] = Field(default_factory=list, max_length=MAX_GUIDE_TOPICS)
    numero_casos: int = Field(ge=1, le=MAX_CASES)
    casos: List[DTOCaso] = Field(min_length=1, max_length=MAX_CASES)

    @model_validator(mode="after")
    def _case_count_matches(self):
        if self.numero_casos != len(self.casos):
            raise ValueError(
                f"numeroCasos={self.numero_casos} but {len(self.casos)} cases were sent"
            )
        return self


# ============================================================
# LINK SCHEMAS
# ============================================================

class IssueLinkRequest(CamelModel):
    """Request to issue an evaluation link."""
    header: Dict[str, Any] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("header", "prefill"),
    )
    ttl_hours: Optional[float] = Field(default=None, ge=0)
    is_batch: bool = False
    folios: List[Text] = Field(default_factory=list)
    convocatoria_id: Optional[Text] = None
    concurso_id: Optional[Text] = None
    plaza_id: Optional[Text] = None
    especialista_id: Optional[Text] = None
    aspirante_id: Optional[Text] = None


class IssueLinkResponse(CamelModel):
    token: str
    url: str
    expires_at: datetime
    is_batch: bool = False
    folios: List[str] = Field(default_factory=list)


class LinkSummary(CamelModel):
    token: str
    status: LinkStatus
    expires_at: datetime
    used_at: Optional[datetime] = None
    submissions_count: int = 0
    is_batch: bool = False
    folios: List[str] = Field(default_factory=list)
    header: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime


class LinkListResponse(CamelModel):
    links: List[LinkSummary]
    total_count: int


class VerifyResponse(CamelModel):
    valid: bool
    header: Optional[Dict[str, Any]] = None
    reason: Optional[str] = None


class PrefillResponse(CamelModel):
    convocatoria: str = ""
    unidad_administrativa: str = ""
    concurso: str = ""
    puesto: str = ""
    codigo_puesto: str = ""
    nombre_especialista: str = ""
    folio: str = ""
    is_batch: bool = False
    folios: List[str] = Field(default_factory=list)


# ============================================================
# EXAM SCHEMAS
# ============================================================

class SubmitRequest(CamelModel):
    # shape errors surface as a "validation" rejection after the link check
    answers: Any = None
    consent: Any = None


class SubmitResponse(CamelModel):
    ok: bool = True
    exam_id: str
    responses_url: str


class ExamSummary(CamelModel):
    exam_id: str
    concurso: str = ""
    folio: str = ""
    numero_casos: int = 0
    responses_filename: str
    created_at: datetime


class ExamListResponse(CamelModel):
    exams: List[ExamSummary]
    total_count: int


class SubmissionPreview(CamelModel):
    """A stored submission for triangulation, header already resolved."""
    exam_id: str
    encabezado: EncabezadoFront
    casos: List[CasoFront] = Field(default_factory=list)
    dto: Dict[str, Any] = Field(default_factory=dict)
    respuestas_originales: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime


# ============================================================
# DOCUMENT GENERATION SCHEMAS
# ============================================================

class BatchRequest(CamelModel):
    """Batch generation: one shared form, many candidate folios."""
    casos: List[CasoFront] = Field(default_factory=list)
    folios: List[Text] = Field(default_factory=list)
    header: Optional[EncabezadoFront] = None


class SingleDocumentRequest(CamelModel):
    casos: List[CasoFront] = Field(default_factory=list)
    header: Optional[EncabezadoFront] = None


# ============================================================
# HEALTH
# ============================================================

class HealthCheckResponse(CamelModel):
    status: str
    version: str
    components: Dict[str, str] = Field(default_factory=dict)
