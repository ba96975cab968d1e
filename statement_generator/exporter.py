"""
Workbook Export.

Writes statement trees and notes to an ``.xlsx`` workbook with openpyxl:
one sheet per statement followed by one ``Note N`` sheet per note.

Statement rows that reference a note with its own sheet show their amounts
as formatted text linking to that sheet; every other amount is written as a
number with an accounting format.
"""

from __future__ import annotations

import io
from typing import Any, Iterable, Mapping, Optional, Sequence

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.hyperlink import Hyperlink
from openpyxl.worksheet.worksheet import Worksheet

from statement_generator.errors import SchemaError
from statement_generator.logging_setup import get_logger
from statement_generator.normalizer import format_currency
from statement_generator.schema import Caption, FinancialNote, HierarchicalItem, TableContent

logger = get_logger("exporter")

NUMBER_FORMAT = "#,##0.00;(#,##0.00)"
INDENT = "    "
MAX_SHEET_TITLE = 31

# ---------------------------------------------------------------------------
# Styles
# ---------------------------------------------------------------------------

BOLD = Font(bold=True)
HEADER_FILL = PatternFill("solid", fgColor="FFE0E0E0")
THIN = Side(style="thin")
MEDIUM = Side(style="medium")
DOUBLE = Side(style="double")
TABLE_BORDER = Border(left=THIN, right=THIN, top=THIN, bottom=THIN)
RIGHT = Alignment(horizontal="right")
WRAP = Alignment(vertical="center", horizontal="right", wrap_text=True)


def note_sheet_title(note_number: Any) -> str:
    return f"Note {note_number}"


def _sheet_title(name: str) -> str:
    cleaned = "".join(" " if c in "[]:*?/\\" else c for c in name).strip()
    return (cleaned or "Sheet")[:MAX_SHEET_TITLE].rstrip()


# ---------------------------------------------------------------------------
# Statements
# ---------------------------------------------------------------------------

class _StatementWriter:
    def __init__(self, ws: Worksheet, linked_notes: set[str]) -> None:
        self.ws = ws
        self.linked_notes = linked_notes

    def write(self, items: Iterable[HierarchicalItem], depth: int = 0) -> None:
        for item in items:
            self._row(item, depth)
            self.write(item.children, depth + 1)

    def _row(self, item: HierarchicalItem, depth: int) -> None:
        self.ws.append([f"{INDENT * depth}{item.label}", "" if item.note is None else item.note])
        r = self.ws.max_row
        emphasis = item.is_total or depth == 0

        sheet = note_sheet_title(item.note) if item.note is not None else None
        for col, value in ((3, item.value_current), (4, item.value_previous)):
            cell = self.ws.cell(row=r, column=col)
            if sheet in self.linked_notes:
                cell.value = format_currency(value)
                cell.hyperlink = Hyperlink(ref=cell.coordinate, location=f"'{sheet}'!A1")
                cell.font = Font(color="FF0000FF", underline="single", bold=emphasis)
            else:
                cell.value = value
                cell.number_format = NUMBER_FORMAT
            cell.alignment = RIGHT

        if emphasis:
            for col in (1, 2):
                self.ws.cell(row=r, column=col).font = BOLD
            if sheet not in self.linked_notes:
                for col in (3, 4):
                    self.ws.cell(row=r, column=col).font = BOLD
        if depth == 0 or item.is_grand_total:
            edge = MEDIUM if item.is_grand_total else THIN
            for col in range(1, 5):
                cell = self.ws.cell(row=r, column=col)
                cell.fill = HEADER_FILL
                cell.border = Border(top=edge, bottom=edge)


def _statement_sheet(
    wb: Workbook,
    title: str,
    items: Sequence[HierarchicalItem],
    headers: Sequence[str],
    linked_notes: set[str],
) -> Worksheet:
    ws = wb.create_sheet(_sheet_title(title))
    ws.append(["Particulars", "Note No.", *headers])
    for cell in ws[1]:
        cell.font = BOLD
    for letter, width in zip("ABCD", (60, 15, 25, 25)):
        ws.column_dimensions[letter].width = width
    _StatementWriter(ws, linked_notes).write(items)
    return ws


# ---------------------------------------------------------------------------
# Notes
# ---------------------------------------------------------------------------

def _note_item(ws: Worksheet, item: HierarchicalItem, depth: int) -> None:
    if item.is_narrative:
        ws.append([f"{INDENT * depth}{item.narrative_text or item.label}"])
        return
    if item.is_total or not item.children:
        values = [item.value_current, item.value_previous]
    else:
        values = ["", ""]
    ws.append([f"{INDENT * depth}{item.label}", *values])
    r = ws.max_row
    for col in (2, 3):
        ws.cell(row=r, column=col).number_format = NUMBER_FORMAT
        ws.cell(row=r, column=col).alignment = RIGHT
    if item.is_total:
        bottom = DOUBLE if item.is_grand_total else None
        for col in (1, 2, 3):
            cell = ws.cell(row=r, column=col)
            cell.font = BOLD
            cell.border = Border(top=THIN, bottom=bottom)
    for child in item.children:
        _note_item(ws, child, depth + 1)


def _note_table(ws: Worksheet, table: TableContent) -> None:
    ws.append([])
    if table.headers:
        ws.append(table.headers)
        for cell in ws[ws.max_row][:len(table.headers)]:
            cell.font = BOLD
            cell.fill = HEADER_FILL
            cell.border = TABLE_BORDER
            cell.alignment = Alignment(vertical="center", horizontal="center", wrap_text=True)
    for row in table.rows:
        if not row:
            continue
        ws.append(row)
        for cell in ws[ws.max_row][:len(row)]:
            cell.border = TABLE_BORDER
            cell.alignment = WRAP
        ws.cell(row=ws.max_row, column=1).alignment = Alignment(horizontal="left", wrap_text=True)
    ws.append([])


def _note_sheet(wb: Workbook, note: FinancialNote) -> Worksheet:
    ws = wb.create_sheet(note_sheet_title(note.note_number))
    ws.sheet_view.showGridLines = False
    ws.append([f"Note {note.note_number}: {note.title}"])
    ws["A1"].font = Font(bold=True, size=14)
    if note.subtitle:
        ws.append([note.subtitle])
        ws.cell(row=ws.max_row, column=1).font = Font(italic=True)
    ws.append([])

    for content in note.content:
        if isinstance(content, HierarchicalItem):
            _note_item(ws, content, 0)
        elif isinstance(content, TableContent):
            _note_table(ws, content)
        elif isinstance(content, Caption):
            ws.append([content.text])

    if note.footer:
        ws.append([])
        ws.append([note.footer])
        ws.cell(row=ws.max_row, column=1).font = Font(italic=True)

    ws.column_dimensions["A"].width = 60
    widest = max((len(c.headers) for c in note.content if isinstance(c, TableContent)), default=3)
    for index in range(2, max(widest, 3) + 1):
        ws.column_dimensions[get_column_letter(index)].width = 20
    return ws


# ---------------------------------------------------------------------------
# Workbook
# ---------------------------------------------------------------------------

def export_workbook(
    statements: Mapping[str, Sequence[HierarchicalItem]],
    notes: Sequence[FinancialNote] = (),
    period_headers: Optional[Sequence[str]] = None,
) -> Workbook:
    """Build a workbook of statements and notes.

    Parameters
    ----------
    statements:
        Sheet title → statement tree, in sheet order.
    notes:
        Notes to write after the statements, one sheet each.
    period_headers:
        Column headings for the current and previous amounts.

    Raises
    ------
    SchemaError
        When there are neither statements nor notes.
    """
    if not statements and not notes:
        raise SchemaError("Nothing to export")
    headers = list(period_headers or ("Current period", "Previous period"))
    wb = Workbook()
    wb.remove(wb.active)

    linked = {note_sheet_title(n.note_number) for n in notes}
    for title, items in statements.items():
        _statement_sheet(wb, title, items, headers, linked)
    for note in notes:
        _note_sheet(wb, note)

    logger.info("Exported %d statement(s) and %d note(s)", len(statements), len(notes))
    return wb


def workbook_bytes(wb: Workbook) -> bytes:
    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()
