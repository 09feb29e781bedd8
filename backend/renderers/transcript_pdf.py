"""
Transcript PDF: the evaluator's answers as submitted, one page per case,
with the aspect scores and their total.
"""
from reportlab.lib.units import mm
from reportlab.platypus import PageBreak, Table, TableStyle

from backend.renderers.base import (
    DocumentArtifact, DocumentRenderer, case_extra_equipment, case_guide_topics,
    require_cases, resolve_case_header
)
from backend.renderers.pdf_utils import (
    GRID_COLOR, LABEL_BACKGROUND, LABEL_STYLE, SUBTITLE_STYLE, TITLE_STYLE,
    build_pdf, header_rows, info_table, section, spacer, text
)
from shared.constants import MAX_ASPECTS, MAX_CASES, MAX_RAW_SCORE, DocumentKind
from shared.formatting import clamp_int, pick
from shared.schemas import CasoFront, DocumentPayload

TITLE = "RESPUESTAS DE CASO PRÁCTICO"


def aspects_table(caso: CasoFront) -> Table:
    rows = [[text("No.", LABEL_STYLE), text("Aspecto a evaluar", LABEL_STYLE), text("Puntaje", LABEL_STYLE)]]
    total = 0
    for number, aspecto in enumerate(caso.aspectos[:MAX_ASPECTS], start=1):
        score = clamp_int(aspecto.puntaje, 0, MAX_RAW_SCORE)
        total += score
        rows.append([text(number), text(aspecto.descripcion), text(score)])
    rows.append(["", text("TOTAL", LABEL_STYLE), text(total, LABEL_STYLE)])

    table = Table(rows, colWidths=[12 * mm, 140 * mm, 23 * mm])
    table.setStyle(TableStyle([
        ("GRID", (0, 0), (-1, -1), 0.5, GRID_COLOR),
        ("BACKGROUND", (0, 0), (-1, 0), LABEL_BACKGROUND),
        ("ALIGN", (0, 0), (0, -1), "CENTER"),
        ("ALIGN", (2, 0), (2, -1), "CENTER"),
        ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
    ]))
    return table


class TranscriptPdfRenderer(DocumentRenderer):
    kind = DocumentKind.TRANSCRIPT

    def render(self, payload: DocumentPayload) -> DocumentArtifact:
        require_cases(payload)
        casos = payload.casos[:MAX_CASES]
        story = []
        for index, caso in enumerate(casos, start=1):
            header = resolve_case_header(payload.header, caso)
            if index > 1:
                story.append(PageBreak())
            rows = header_rows(header) + [("Fecha de elaboración", header.fecha_elaboracion)]
            story.extend([
                text(TITLE, TITLE_STYLE),
                text(f"Caso {index} de {len(casos)}", SUBTITLE_STYLE),
                info_table(rows),
                spacer(),
                section("TEMAS GUÍA", case_guide_topics(payload.header, caso)),
                spacer(),
                section("PLANTEAMIENTO", caso.planteamiento),
                spacer(),
                section("EQUIPO ADICIONAL", case_extra_equipment(payload.header, caso), empty="Ninguno"),
                spacer(),
                aspects_table(caso),
            ])
        data = build_pdf(story, title=TITLE)
        concurso = pick(payload.header.concurso, casos[0].encabezado and casos[0].encabezado.concurso, "caso")
        return self.artifact(data, f"Respuestas_Caso_Practico_{concurso}")
