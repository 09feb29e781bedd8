"""
Structure PDF (FA): the practical case as handed to the candidate,
two sections per case and no scores.
"""
from reportlab.platypus import PageBreak

from backend.renderers.base import (
    DocumentArtifact, DocumentRenderer, case_extra_equipment, case_guide_topics,
    document_stem, require_cases, resolve_case_header
)
from backend.renderers.pdf_utils import (
    SUBTITLE_STYLE, TITLE_STYLE, build_pdf, header_rows, info_table, section, spacer, text
)
from shared.constants import MAX_CASES, DocumentKind
from shared.schemas import DocumentPayload

TITLE = "ESTRUCTURA PARA EVALUACIÓN DE CASOS PRÁCTICOS"


class StructurePdfRenderer(DocumentRenderer):
    kind = DocumentKind.STRUCTURE

    def render(self, payload: DocumentPayload) -> DocumentArtifact:
        require_cases(payload)
        casos = payload.casos[:MAX_CASES]
        story = []
        for index, caso in enumerate(casos, start=1):
            header = resolve_case_header(payload.header, caso)
            if index > 1:
                story.append(PageBreak())
            story.extend([
                text(TITLE, TITLE_STYLE),
                text(f"Caso práctico {index} de {len(casos)}", SUBTITLE_STYLE),
                info_table(header_rows(header)),
                spacer(),
                section("PLANTEAMIENTO DEL CASO", caso.planteamiento),
                spacer(),
                section("TEMAS GUÍA", case_guide_topics(payload.header, caso)),
                spacer(),
                section("EQUIPO ADICIONAL", case_extra_equipment(payload.header, caso), empty="Ninguno"),
            ])
        data = build_pdf(story, title=TITLE)
        return self.artifact(data, document_stem("FA", payload))
