"""
Tests for exporting statements and notes to a workbook.
"""

from __future__ import annotations

import io

import openpyxl
import pytest

from statement_generator.errors import SchemaError
from statement_generator.exporter import NUMBER_FORMAT, export_workbook, workbook_bytes
from statement_generator.schema import Caption, FinancialNote, HierarchicalItem, TableContent


@pytest.fixture
def statement() -> list[HierarchicalItem]:
    return [
        HierarchicalItem(key="assets", label="ASSETS", is_grand_total=True,
                         value_current=150.0, value_previous=120.0, children=[
            HierarchicalItem(key="ppe", label="Property, plant and equipment", note=3,
                             value_current=100.0, value_previous=-80.0),
            HierarchicalItem(key="cash", label="Cash", note="11a",
                             value_current=50.0, value_previous=200.0),
        ]),
    ]


@pytest.fixture
def notes() -> list[FinancialNote]:
    return [
        FinancialNote(
            note_number=3,
            title="Property, plant and equipment",
            subtitle="Carrying amounts",
            content=[
                Caption("Owned assets"),
                HierarchicalItem(key="gross", label="Gross block", children=[
                    HierarchicalItem(key="land", label="Land", value_current=60.0, value_previous=60.0),
                ]),
                HierarchicalItem(key="n3-total", label="Total", is_subtotal=True,
                                 value_current=100.0, value_previous=80.0),
                TableContent(
                    headers=["Particulars", "< 1 year"],
                    rows=[["Undisputed", "1,787.08\n(1,390.82)"], ["Total", "1,787.08"]],
                ),
            ],
        ),
    ]


def _rows(ws) -> list[tuple]:
    return [tuple(r) for r in ws.iter_rows(values_only=True)]


# ======================================================================
# Statement sheets
# ======================================================================

class TestStatementSheets:
    def test_sheet_order(self, statement, notes) -> None:
        wb = export_workbook({"Balance Sheet": statement, "Cash Flow": []}, notes)
        assert wb.sheetnames == ["Balance Sheet", "Cash Flow", "Note 3"]

    def test_header_and_indent(self, statement) -> None:
        ws = export_workbook({"Balance Sheet": statement}, period_headers=["FY24", "FY23"])["Balance Sheet"]
        rows = _rows(ws)
        assert rows[0] == ("Particulars", "Note No.", "FY24", "FY23")
        assert rows[1] == ("ASSETS", "", 150.0, 120.0)
        assert rows[2][0] == "    Property, plant and equipment"

    def test_plain_amounts_are_numbers(self, statement) -> None:
        ws = export_workbook({"Balance Sheet": statement})["Balance Sheet"]
        assert ws["C4"].value == 50.0
        assert ws["C4"].number_format == NUMBER_FORMAT
        assert ws["C4"].hyperlink is None

    def test_note_rows_link_to_note_sheet(self, statement, notes) -> None:
        ws = export_workbook({"Balance Sheet": statement}, notes)["Balance Sheet"]
        assert ws["B3"].value == 3
        assert ws["C3"].value == "100.00"
        assert ws["D3"].value == "(80.00)"
        assert ws["C3"].hyperlink.location == "'Note 3'!A1"

    def test_note_without_sheet_not_linked(self, statement, notes) -> None:
        ws = export_workbook({"Balance Sheet": statement}, notes)["Balance Sheet"]
        assert ws["B4"].value == "11a"
        assert ws["C4"].hyperlink is None

    def test_totals_emphasised(self, statement) -> None:
        ws = export_workbook({"Balance Sheet": statement})["Balance Sheet"]
        assert ws["A2"].font.bold
        assert ws["A2"].border.top.style == "medium"
        assert not ws["A3"].font.bold

    def test_long_sheet_title_truncated(self) -> None:
        wb = export_workbook({"Statement of changes in equity: detail": []})
        assert wb.sheetnames == ["Statement of changes in equity"]


# ======================================================================
# Note sheets
# ======================================================================

class TestNoteSheets:
    def test_title_and_subtitle(self, notes) -> None:
        ws = export_workbook({}, notes)["Note 3"]
        assert ws["A1"].value == "Note 3: Property, plant and equipment"
        assert ws["A1"].font.bold
        assert ws["A2"].value == "Carrying amounts"

    def test_items_and_captions(self, notes) -> None:
        rows = _rows(export_workbook({}, notes)["Note 3"])
        assert ("Owned assets", None, None) in rows
        assert ("Gross block", "", "") in rows
        assert ("    Land", 60.0, 60.0) in rows
        assert ("Total", 100.0, 80.0) in rows

    def test_table_written_with_cells_intact(self, notes) -> None:
        ws = export_workbook({}, notes)["Note 3"]
        rows = _rows(ws)
        header_index = rows.index(("Particulars", "< 1 year", None))
        assert rows[header_index + 1] == ("Undisputed", "1,787.08\n(1,390.82)", None)
        assert ws.cell(row=header_index + 1, column=1).font.bold


# ======================================================================
# Serialisation
# ======================================================================

class TestWorkbookBytes:
    def test_readable_by_openpyxl(self, statement, notes) -> None:
        data = workbook_bytes(export_workbook({"Balance Sheet": statement}, notes))
        wb = openpyxl.load_workbook(io.BytesIO(data))
        assert wb.sheetnames == ["Balance Sheet", "Note 3"]
        assert wb["Balance Sheet"]["A2"].value == "ASSETS"

    def test_nothing_to_export(self) -> None:
        with pytest.raises(SchemaError):
            export_workbook({}, [])
