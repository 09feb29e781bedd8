"""
reportlab building blocks shared by the PDF renderers.
"""
from io import BytesIO
from typing import List, Sequence, Tuple
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import letter
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from shared.formatting import safe_str
from shared.schemas import EncabezadoFront

GRID_COLOR = colors.black
LABEL_BACKGROUND = colors.HexColor("#F8F8F8")

_styles = getSampleStyleSheet()

TITLE_STYLE = ParagraphStyle(
    "DocTitle", parent=_styles["Heading2"], fontSize=11, alignment=TA_CENTER, spaceAfter=4
)
SUBTITLE_STYLE = ParagraphStyle(
    "DocSubtitle", parent=_styles["Normal"], fontSize=9, alignment=TA_CENTER,
    fontName="Helvetica-Bold", spaceAfter=6
)
LABEL_STYLE = ParagraphStyle("Label", parent=_styles["Normal"], fontSize=8, fontName="Helvetica-Bold")
BODY_STYLE = ParagraphStyle("Body", parent=_styles["Normal"], fontSize=8, leading=10)
SECTION_STYLE = ParagraphStyle(
    "Section", parent=_styles["Normal"], fontSize=9, fontName="Helvetica-Bold", alignment=TA_CENTER
)


def text(value, style: ParagraphStyle = BODY_STYLE, empty: str = "") -> Paragraph:
    """Paragraph from user text; markup is escaped and newlines kept."""
    raw = safe_str(value).strip() or empty
    return Paragraph(escape(raw).replace("\n", "<br/>"), style)


def header_rows(header: EncabezadoFront) -> List[Tuple[str, str]]:
    return [
        ("Convocatoria", header.convocatoria),
        ("Unidad administrativa", header.unidad_administrativa),
        ("Concurso", header.concurso),
        ("Puesto", header.puesto),
        ("Código de puesto", header.codigo_puesto),
        ("Folio", header.folio),
        ("Modalidad", header.modalidad),
        ("Duración (min)", safe_str(header.duracion_min)),
        ("Persona especialista", header.nombre_especialista),
    ]


def info_table(rows: Sequence[Tuple[str, str]]) -> Table:
    data = [[text(label, LABEL_STYLE), text(value)] for label, value in rows]
    table = Table(data, colWidths=[45 * mm, 130 * mm])
    table.setStyle(TableStyle([
        ("GRID", (0, 0), (-1, -1), 0.5, GRID_COLOR),
        ("BACKGROUND", (0, 0), (0, -1), LABEL_BACKGROUND),
        ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
    ]))
    return table


def section(title: str, body, empty: str = "N/A") -> Table:
    """Bordered box with a shaded title row."""
    table = Table([[text(title, SECTION_STYLE)], [text(body, empty=empty)]], colWidths=[175 * mm])
    table.setStyle(TableStyle([
        ("BOX", (0, 0), (-1, -1), 0.5, GRID_COLOR),
        ("LINEBELOW", (0, 0), (-1, 0), 0.5, GRID_COLOR),
        ("BACKGROUND", (0, 0), (-1, 0), LABEL_BACKGROUND),
        ("TOPPADDING", (0, 1), (-1, 1), 6),
        ("BOTTOMPADDING", (0, 1), (-1, 1), 8),
    ]))
    return table


def spacer(height_mm: float = 4) -> Spacer:
    return Spacer(1, height_mm * mm)


def build_pdf(story: list, title: str) -> bytes:
    buffer = BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=letter,
        title=title,
        topMargin=16 * mm,
        bottomMargin=18 * mm,
        leftMargin=12.7 * mm,
        rightMargin=12.7 * mm,
    )
    doc.build(story)
    return buffer.getvalue()
