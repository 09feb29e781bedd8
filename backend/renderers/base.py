"""
Renderer capability consumed by the exam recorder and the batch assembler.

A renderer turns a ``DocumentPayload`` into one ``DocumentArtifact``.
Renderers are built once at process bootstrap and passed in explicitly;
nothing here keeps module-level template or engine state.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Iterable, Optional

from shared.constants import DocumentKind
from shared.errors import RenderError
from shared.formatting import pick, safe_filename, safe_str
from shared.schemas import CasoFront, DocumentPayload, EncabezadoFront

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DocumentArtifact:
    """Opaque document bytes plus download metadata."""
    data: bytes
    filename: str
    content_type: str


class DocumentRenderer(ABC):
    """Builds one kind of document."""

    kind: DocumentKind

    @abstractmethod
    def render(self, payload: DocumentPayload) -> DocumentArtifact:
        ...

    def artifact(self, data: bytes, stem: str) -> DocumentArtifact:
        filename = f"{safe_filename(stem)}.{self.kind.extension}"
        return DocumentArtifact(data=data, filename=filename, content_type=self.kind.content_type)


class RendererSet:
    """The renderers available to a process, keyed by document kind."""

    def __init__(self, renderers: Iterable[DocumentRenderer]):
        self._renderers: Dict[DocumentKind, DocumentRenderer] = {}
        for renderer in renderers:
            self._renderers[renderer.kind] = renderer

    def get(self, kind: DocumentKind) -> DocumentRenderer:
        try:
            return self._renderers[kind]
        except KeyError:
            raise RenderError(f"No renderer registered for '{kind.value}'") from None

    def render(self, kind: DocumentKind, payload: DocumentPayload) -> DocumentArtifact:
        artifact = self.get(kind).render(payload)
        logger.debug(f"[RendererSet] {kind.value} -> {artifact.filename} ({len(artifact.data)} bytes)")
        return artifact

    def kinds(self):
        return list(self._renderers)


HEADER_FIELDS = [
    "convocatoria",
    "unidad_administrativa",
    "concurso",
    "puesto",
    "codigo_puesto",
    "folio",
    "modalidad",
    "duracion_min",
    "nombre_especialista",
    "puesto_especialista",
    "fecha_elaboracion",
]


def resolve_case_header(header: Optional[EncabezadoFront], caso: CasoFront) -> EncabezadoFront:
    """Document header wins; the case's own encabezado fills the gaps."""
    top = header or EncabezadoFront()
    own = caso.encabezado or EncabezadoFront()
    merged = {
        name: pick(getattr(top, name), getattr(own, name))
        for name in HEADER_FIELDS
    }
    return EncabezadoFront(**merged)


def case_guide_topics(header: EncabezadoFront, caso: CasoFront) -> str:
    return pick(caso.temas_guia, (caso.encabezado or header).temas_guia)


def case_extra_equipment(header: EncabezadoFront, caso: CasoFront) -> str:
    return pick(caso.equipo_adicional, (caso.encabezado or header).equipo_adicional)


def require_cases(payload: DocumentPayload) -> None:
    if not payload.casos:
        raise RenderError("Se requiere al menos un caso")


def document_stem(prefix: str, payload: DocumentPayload) -> str:
    header = payload.header
    label = pick(header.folio, header.concurso, "casos")
    return f"{prefix}_{safe_str(label)}"
