"""Document renderers: structure PDF, scoring spreadsheet, transcript PDF."""
from typing import Optional

from backend.config import Settings, get_settings
from backend.renderers.base import DocumentArtifact, DocumentRenderer, RendererSet
from backend.renderers.scoring_sheet import ScoringSheetRenderer
from backend.renderers.structure_pdf import StructurePdfRenderer
from backend.renderers.transcript_pdf import TranscriptPdfRenderer


def build_default_renderers(settings: Optional[Settings] = None) -> RendererSet:
    """Renderer set owned by the process bootstrap."""
    settings = settings or get_settings()
    return RendererSet([
        StructurePdfRenderer(),
        ScoringSheetRenderer(template_path=settings.scoring_template_path),
        TranscriptPdfRenderer(),
    ])
