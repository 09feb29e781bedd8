"""
Batch artifact assembler.

For every folio, renders the three document kinds from one shared form and
streams them into a single ZIP. A failing renderer never aborts the batch:
its slot becomes a ``<folio>/<kind>_error.txt`` entry and the loop moves on.
Once the first byte has been streamed the response is already 200, so an
error placeholder is the only way a late failure can be reported.
"""
import logging
import zipfile
from typing import Iterator, List, Optional, Sequence, Tuple

from backend.renderers.base import RendererSet
from shared.constants import BATCH_DOCUMENT_ORDER, DocumentKind
from shared.errors import BatchRequestError
from shared.formatting import safe_folio_segment
from shared.schemas import CasoFront, DocumentPayload, EncabezadoFront

logger = logging.getLogger(__name__)


class _ChunkSink:
    """Write-only, non-seekable file object; zipfile streams into it."""

    def __init__(self):
        self._buffer = bytearray()

    def write(self, data) -> int:
        self._buffer.extend(data)
        return len(data)

    def flush(self):
        pass

    def drain(self) -> bytes:
        chunk = bytes(self._buffer)
        self._buffer.clear()
        return chunk


def build_folio_payload(
    casos: Sequence[CasoFront],
    header: Optional[EncabezadoFront],
    folio: str
) -> DocumentPayload:
    """Copy the shared cases and stamp ``folio`` into every header copy."""
    base = header or EncabezadoFront()
    folio_header = base.model_copy(update={"folio": folio}, deep=True)
    folio_casos = []
    for caso in casos:
        own = caso.encabezado or base
        folio_casos.append(caso.model_copy(
            update={"encabezado": own.model_copy(update={"folio": folio}, deep=True)},
            deep=True,
        ))
    return DocumentPayload(header=folio_header, casos=folio_casos)


def entry_name(folio: str, kind: DocumentKind) -> str:
    return f"{folio}/{kind.value}.{kind.extension}"


def error_entry_name(folio: str, kind: DocumentKind) -> str:
    return f"{folio}/{kind.value}_error.txt"


class BatchArtifactAssembler:
    """Sequential folio x kind render loop with continue-on-error."""

    def __init__(self, renderers: RendererSet, kinds: Optional[List[DocumentKind]] = None):
        self.renderers = renderers
        self.kinds = kinds or list(BATCH_DOCUMENT_ORDER)

    def validate(self, casos: Sequence[CasoFront], folios: Sequence[str]) -> None:
        """Checks that must pass before any archive byte is sent."""
        if not casos:
            raise BatchRequestError("Se requiere al menos un caso")
        if not folios:
            raise BatchRequestError("Se requiere una lista de folios")

    def iter_entries(
        self,
        casos: Sequence[CasoFront],
        folios: Sequence[str],
        header: Optional[EncabezadoFront] = None
    ) -> Iterator[Tuple[str, bytes]]:
        """Yield ``(arcname, data)`` for every folio x kind, errors included."""
        for position, raw_folio in enumerate(folios, start=1):
            folio = safe_folio_segment(raw_folio, position)
            payload = build_folio_payload(casos, header, folio)

            for kind in self.kinds:
                try:
                    artifact = self.renderers.render(kind, payload)
                except Exception as e:
                    logger.error(f"[BatchArtifactAssembler] {kind.value} failed for folio {folio}: {e}")
                    message = f"Error generating {kind.value} for folio {folio}: {e}"
                    yield error_entry_name(folio, kind), message.encode("utf-8")
                    continue
                yield entry_name(folio, kind), artifact.data

    def stream_zip(
        self,
        casos: Sequence[CasoFront],
        folios: Sequence[str],
        header: Optional[EncabezadoFront] = None
    ) -> Iterator[bytes]:
        """ZIP bytes, one chunk per entry, then the central directory."""
        sink = _ChunkSink()
        written = 0
        with zipfile.ZipFile(sink, mode="w", compression=zipfile.ZIP_DEFLATED) as archive:
            for name, data in self.iter_entries(casos, folios, header):
                archive.writestr(name, data)
                written += 1
                chunk = sink.drain()
                if chunk:
                    yield chunk
        logger.info(f"[BatchArtifactAssembler] Archive finished: {len(folios)} folios, {written} entries")
        tail = sink.drain()
        if tail:
            yield tail

    def build_zip(
        self,
        casos: Sequence[CasoFront],
        folios: Sequence[str],
        header: Optional[EncabezadoFront] = None
    ) -> bytes:
        self.validate(casos, folios)
        return b"".join(self.stream_zip(casos, folios, header))
