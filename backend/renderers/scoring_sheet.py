"""
Scoring spreadsheet (FE) on a fixed coordinate grid.

The sheet has one row block per possible case (1..3). Blocks and aspect rows
that the submission does not use are blanked and hidden, never deleted, so
every populated cell keeps the same absolute coordinate regardless of how
many cases/aspects were filled in.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from io import BytesIO
from pathlib import Path
from typing import Iterable, Optional, Tuple

from openpyxl import Workbook, load_workbook
from openpyxl.cell.cell import MergedCell
from openpyxl.styles import Alignment, Font
from openpyxl.worksheet.worksheet import Worksheet

from backend.renderers.base import (
    DocumentArtifact, DocumentRenderer, document_stem, require_cases, resolve_case_header
)
from shared.constants import MAX_ASPECTS, MAX_CASES, MAX_RAW_SCORE, DocumentKind
from shared.errors import RenderError
from shared.formatting import clamp_int
from shared.schemas import CasoFront, DocumentPayload, EncabezadoFront

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CaseBlock:
    """Row range owned by one case inside the sheet."""
    number: int
    first_row: int
    last_row: int
    aspect_rows: Tuple[int, ...]
    grade_row: int

    @property
    def rows(self) -> range:
        return range(self.first_row, self.last_row + 1)


def _block(number: int, first_row: int) -> CaseBlock:
    # title, 5 header rows, 10 aspect rows each followed by a spacer, grade, 3 separator rows
    aspect_start = first_row + 6
    return CaseBlock(
        number=number,
        first_row=first_row,
        last_row=first_row + 29,
        aspect_rows=tuple(aspect_start + 2 * i for i in range(MAX_ASPECTS)),
        grade_row=first_row + 26,
    )


CASE_BLOCKS = (_block(1, 15), _block(2, 45), _block(3, 75))

HEADER_CELLS = {
    "convocatoria": "C7",
    "concurso": "C8",
    "puesto": "C9",
    "codigo_puesto": "C10",
    "unidad_administrativa": "C11",
}
FOLIO_CELL = "N4"
DATE_CELL = "L6"
NUMBER_COLUMN = "A"
DESCRIPTION_COLUMN = "C"
SCORE_COLUMN = "O"
SIGNATURE_ROW = CASE_BLOCKS[-1].last_row + 2
SIGNATURE_LABEL = "NOMBRE Y FIRMA DE LA PERSONA ESPECIALISTA"


def blank_and_hide(ws: Worksheet, rows: Iterable[int]) -> None:
    """Clear every cell value in ``rows`` and mark the rows hidden."""
    for row in rows:
        for cell in ws[row]:
            if not isinstance(cell, MergedCell):
                cell.value = None
        ws.row_dimensions[row].hidden = True


def build_default_template() -> Workbook:
    """The built-in FE grid, used when no template file is configured."""
    wb = Workbook()
    ws = wb.active
    ws.title = "Evaluación"
    bold = Font(bold=True)

    ws["A1"] = "FORMATO DE EVALUACIÓN DE CASOS PRÁCTICOS"
    ws["A1"].font = Font(bold=True, size=12)
    ws["L4"] = "FOLIO:"
    ws["K6"] = "FECHA:"
    for label, coordinate in zip(
        ["CONVOCATORIA", "CONCURSO", "PUESTO", "CÓDIGO DE PUESTO", "UNIDAD ADMINISTRATIVA"],
        HEADER_CELLS.values(),
    ):
        row = ws[coordinate].row
        ws[f"A{row}"] = label
        ws[f"A{row}"].font = bold

    for block in CASE_BLOCKS:
        ws[f"A{block.first_row}"] = f"CASO PRÁCTICO {block.number}"
        ws[f"A{block.first_row}"].font = bold
        ws[f"A{block.first_row + 4}"] = "No."
        ws[f"C{block.first_row + 4}"] = "ASPECTO A EVALUAR"
        ws[f"O{block.first_row + 4}"] = "PUNTAJE"
        for cell in ("A", "C", "O"):
            ws[f"{cell}{block.first_row + 4}"].font = bold
        ws[f"C{block.grade_row}"] = "CALIFICACIÓN"
        ws[f"C{block.grade_row}"].font = bold

    ws.column_dimensions["A"].width = 6
    ws.column_dimensions["C"].width = 60
    ws.column_dimensions["O"].width = 10
    return wb


class ScoringSheetRenderer(DocumentRenderer):
    kind = DocumentKind.SPREADSHEET

    def __init__(self, template_path: Optional[Path] = None):
        self.template_path = template_path

    def _open_template(self) -> Workbook:
        # a fresh workbook per render; the template file is never mutated
        if self.template_path is None:
            return build_default_template()
        if not self.template_path.exists():
            raise RenderError(f"Plantilla no encontrada en: {self.template_path}")
        return load_workbook(self.template_path)

    def render(self, payload: DocumentPayload) -> DocumentArtifact:
        require_cases(payload)
        casos = payload.casos[:MAX_CASES]
        for index, caso in enumerate(casos, start=1):
            if not caso.aspectos:
                raise RenderError(f"El caso {index} no tiene aspectos")

        wb = self._open_template()
        ws = wb.worksheets[0]
        header = resolve_case_header(payload.header, casos[0])
        self._fill_header(ws, header)

        for block, caso in zip(CASE_BLOCKS, casos):
            self._fill_block(ws, block, caso)
        for block in CASE_BLOCKS[len(casos):]:
            blank_and_hide(ws, block.rows)

        self._fill_signature(ws, header)

        buffer = BytesIO()
        wb.save(buffer)
        return self.artifact(buffer.getvalue(), document_stem("FE", payload))

    def _fill_header(self, ws: Worksheet, header: EncabezadoFront) -> None:
        ws[DATE_CELL] = datetime.now().strftime("%d/%m/%Y")
        ws[FOLIO_CELL] = header.folio
        for field_name, coordinate in HEADER_CELLS.items():
            ws[coordinate] = getattr(header, field_name)

    def _fill_block(self, ws: Worksheet, block: CaseBlock, caso: CasoFront) -> None:
        aspectos = caso.aspectos[:MAX_ASPECTS]
        for number, (row, aspecto) in enumerate(zip(block.aspect_rows, aspectos), start=1):
            number_cell = ws[f"{NUMBER_COLUMN}{row}"]
            number_cell.value = number
            number_cell.font = Font(bold=True)
            number_cell.alignment = Alignment(horizontal="center", vertical="center")

            description_cell = ws[f"{DESCRIPTION_COLUMN}{row}"]
            description_cell.value = aspecto.descripcion
            description_cell.alignment = Alignment(wrap_text=True, vertical="center", horizontal="left")

            score_cell = ws[f"{SCORE_COLUMN}{row}"]
            score_cell.value = clamp_int(aspecto.puntaje, 0, MAX_RAW_SCORE)
            score_cell.alignment = Alignment(horizontal="center", vertical="center")
            score_cell.number_format = "0"

        for row in block.aspect_rows[len(aspectos):]:
            blank_and_hide(ws, (row, row + 1))

        used = block.aspect_rows[:len(aspectos)]
        ws[f"{SCORE_COLUMN}{block.grade_row}"] = (
            f"=SUM({SCORE_COLUMN}{used[0]}:{SCORE_COLUMN}{used[-1]})"
        )

    def _fill_signature(self, ws: Worksheet, header: EncabezadoFront) -> None:
        if header.nombre_especialista:
            name_cell = ws[f"{DESCRIPTION_COLUMN}{SIGNATURE_ROW}"]
            name_cell.value = header.nombre_especialista
            name_cell.font = Font(bold=True)
            name_cell.alignment = Alignment(horizontal="center", vertical="center")
        label_cell = ws[f"{DESCRIPTION_COLUMN}{SIGNATURE_ROW + 2}"]
        label_cell.value = SIGNATURE_LABEL
        label_cell.font = Font(bold=True)
        label_cell.alignment = Alignment(horizontal="center", vertical="center")
