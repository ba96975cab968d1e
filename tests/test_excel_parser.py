"""
Tests for reading uploaded trial balances.
"""

from __future__ import annotations

import io
from datetime import datetime
from pathlib import Path

from unittest.mock import MagicMock

import openpyxl
import pytest
import xlrd
from xlrd.sheet import Cell

from statement_generator.errors import UnsupportedFileError
from statement_generator import excel_parser
from statement_generator.excel_parser import read_workbook, rows_to_records


@pytest.fixture
def workbook_path(tmp_path: Path) -> Path:
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = "TB"
    ws.append([None, None, None])
    ws.append(["Account Code", "Name", "Amount", None])
    ws.append(["1000", "Cash", 1500.5, "x"])
    ws.append([None, None, None, None])
    ws.append(["2000", None, -200, None])
    ws.append([3000, "Accrual", datetime(2024, 3, 31), None])
    other = wb.create_sheet("Ignored")
    other.append(["Should", "Not", "Appear"])
    path = tmp_path / "trial_balance.xlsx"
    wb.save(path)
    return path


# ======================================================================
# Workbooks
# ======================================================================

class TestReadWorkbook:
    def test_header_row_and_rows(self, workbook_path: Path) -> None:
        columns, rows = read_workbook(workbook_path)
        assert columns == ["Account Code", "Name", "Amount", "__EMPTY"]
        assert len(rows) == 3
        assert rows[0] == {"Account Code": "1000", "Name": "Cash", "Amount": 1500.5, "__EMPTY": "x"}

    def test_blanks_become_empty_strings(self, workbook_path: Path) -> None:
        _, rows = read_workbook(workbook_path)
        assert rows[1]["Name"] == ""
        assert rows[1]["Amount"] == -200

    def test_dates_as_iso_text(self, workbook_path: Path) -> None:
        _, rows = read_workbook(workbook_path)
        assert rows[2]["Amount"] == "2024-03-31"

    def test_first_sheet_only(self, workbook_path: Path) -> None:
        _, rows = read_workbook(workbook_path)
        assert all("Should" not in r for r in rows)

    def test_stream_with_filename(self, workbook_path: Path) -> None:
        stream = io.BytesIO(workbook_path.read_bytes())
        columns, rows = read_workbook(stream, filename="upload.xlsx")
        assert columns[0] == "Account Code"
        assert len(rows) == 3


# ======================================================================
# Legacy .xls workbooks
# ======================================================================

def _cell(ctype: int, value=""):
    return Cell(ctype, value)


@pytest.fixture
def legacy_book(monkeypatch: pytest.MonkeyPatch) -> MagicMock:
    grid = [
        [_cell(xlrd.XL_CELL_EMPTY), _cell(xlrd.XL_CELL_EMPTY), _cell(xlrd.XL_CELL_EMPTY)],
        [_cell(xlrd.XL_CELL_TEXT, "Account Code"), _cell(xlrd.XL_CELL_TEXT, "Name"),
         _cell(xlrd.XL_CELL_TEXT, "Amount")],
        [_cell(xlrd.XL_CELL_TEXT, "1000"), _cell(xlrd.XL_CELL_BLANK), _cell(xlrd.XL_CELL_NUMBER, 1500.0)],
        [_cell(xlrd.XL_CELL_EMPTY), _cell(xlrd.XL_CELL_EMPTY), _cell(xlrd.XL_CELL_EMPTY)],
        [_cell(xlrd.XL_CELL_NUMBER, 2000.0), _cell(xlrd.XL_CELL_TEXT, "Accrual"),
         _cell(xlrd.XL_CELL_NUMBER, -12.5)],
        [_cell(xlrd.XL_CELL_TEXT, "3000"), _cell(xlrd.XL_CELL_DATE, 45382.0),
         _cell(xlrd.XL_CELL_ERROR, 0x2A)],
    ]
    sheet = MagicMock()
    sheet.name = "TB"
    sheet.nrows = len(grid)
    sheet.row.side_effect = lambda rx: grid[rx]

    book = MagicMock()
    book.datemode = 0
    book.sheet_by_index.return_value = sheet
    monkeypatch.setattr(excel_parser.xlrd, "open_workbook", MagicMock(return_value=book))
    return book


class TestLegacyWorkbook:
    def test_header_row_and_rows(self, legacy_book: MagicMock) -> None:
        columns, rows = read_workbook(Path("old.xls"))
        assert columns == ["Account Code", "Name", "Amount"]
        assert rows[0] == {"Account Code": "1000", "Name": "", "Amount": 1500}
        assert rows[1] == {"Account Code": 2000, "Name": "Accrual", "Amount": -12.5}
        assert len(rows) == 3

    def test_dates_and_errors(self, legacy_book: MagicMock) -> None:
        _, rows = read_workbook(Path("old.xls"))
        assert rows[2]["Name"] == "2024-03-31"
        assert rows[2]["Amount"] == "#N/A"

    def test_first_sheet_only(self, legacy_book: MagicMock) -> None:
        read_workbook(Path("old.xls"))
        legacy_book.sheet_by_index.assert_called_once_with(0)
        legacy_book.release_resources.assert_called_once()

    def test_stream_reads_contents(self, legacy_book: MagicMock) -> None:
        read_workbook(io.BytesIO(b"legacy"), filename="upload.xls")
        excel_parser.xlrd.open_workbook.assert_called_once_with(file_contents=b"legacy", on_demand=True)

    def test_unreadable_workbook(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(
            excel_parser.xlrd, "open_workbook",
            MagicMock(side_effect=xlrd.XLRDError("Unsupported format, or corrupt file")),
        )
        with pytest.raises(UnsupportedFileError, match="Cannot open workbook"):
            read_workbook(io.BytesIO(b"junk"), filename="bad.xls")


# ======================================================================
# CSV and rejections
# ======================================================================

class TestOtherFormats:
    def test_csv_path(self, tmp_path: Path) -> None:
        path = tmp_path / "tb.csv"
        path.write_text("Account Code,Amount\n1000,\"1,234.50\"\n,\n2000,5\n", encoding="utf-8")
        columns, rows = read_workbook(path)
        assert columns == ["Account Code", "Amount"]
        assert rows == [
            {"Account Code": "1000", "Amount": "1,234.50"},
            {"Account Code": "2000", "Amount": "5"},
        ]

    def test_csv_stream(self) -> None:
        stream = io.BytesIO(b"Name,Amount\nCash,\n")
        _, rows = read_workbook(stream, filename="tb.csv")
        assert rows == [{"Name": "Cash", "Amount": ""}]

    def test_unknown_extension(self, tmp_path: Path) -> None:
        with pytest.raises(UnsupportedFileError):
            read_workbook(tmp_path / "notes.pdf")

    def test_corrupt_workbook(self) -> None:
        with pytest.raises(UnsupportedFileError):
            read_workbook(io.BytesIO(b"not a zip"), filename="bad.xlsx")


# ======================================================================
# Header handling
# ======================================================================

class TestRowsToRecords:
    def test_duplicate_headers_suffixed(self) -> None:
        columns, _ = rows_to_records([["Amount", "Amount", None, None]])
        assert columns == ["Amount", "Amount_1", "__EMPTY", "__EMPTY_1"]

    def test_header_cells_stringified(self) -> None:
        columns, _ = rows_to_records([[2024, 2023]])
        assert columns == ["2024", "2023"]

    def test_empty_sheet(self) -> None:
        assert rows_to_records([]) == ([], [])
        assert rows_to_records([[None, " "]]) == ([], [])
