"""
Trial Balance Spreadsheet Reader.

Reads an uploaded trial balance into a list of row dictionaries keyed by the
header row, the way a browser-side sheet-to-JSON conversion would:

- first worksheet only;
- the first non-blank row is the header row;
- blank cells become ``""``;
- blank headers are named ``__EMPTY``, ``__EMPTY_1``, ...; repeated headers
  get ``_1``, ``_2`` suffixes;
- rows that are entirely blank are dropped.

``.xlsx`` / ``.xlsm`` workbooks are read with openpyxl and legacy ``.xls``
workbooks with xlrd.  CSV files are accepted as well.
"""

from __future__ import annotations

import csv
import io
import zipfile
from datetime import date, datetime
from pathlib import Path
from typing import Any, BinaryIO, Dict, Iterable, List, Optional, Sequence, Tuple, Union

import openpyxl
import xlrd
from openpyxl.utils.exceptions import InvalidFileException
from xlrd.biffh import error_text_from_code
from xlrd.compdoc import CompDocError

from statement_generator.errors import UnsupportedFileError
from statement_generator.logging_setup import get_logger

logger = get_logger("excel_parser")

WORKBOOK_EXTENSIONS = {".xlsx", ".xlsm"}
LEGACY_EXTENSIONS = {".xls"}
CSV_EXTENSIONS = {".csv"}
ALLOWED_EXTENSIONS = WORKBOOK_EXTENSIONS | LEGACY_EXTENSIONS | CSV_EXTENSIONS

Source = Union[str, Path, BinaryIO]


def _cell_value(val: Any) -> Any:
    """Blank → ``""``; dates → ISO text; everything else unchanged."""
    if val is None:
        return ""
    if isinstance(val, datetime):
        if val.time() == datetime.min.time():
            return val.date().isoformat()
        return val.isoformat(sep=" ")
    if isinstance(val, date):
        return val.isoformat()
    return val


def _is_blank(values: Iterable[Any]) -> bool:
    return all(v is None or (isinstance(v, str) and not v.strip()) for v in values)


def _header_names(raw: Sequence[Any]) -> List[str]:
    names: List[str] = []
    seen: Dict[str, int] = {}
    for cell in raw:
        base = "" if cell is None else str(cell).strip()
        if not base:
            base = "__EMPTY"
        count = seen.get(base, 0)
        seen[base] = count + 1
        names.append(base if count == 0 else f"{base}_{count}")
    return names


def rows_to_records(rows: Iterable[Sequence[Any]]) -> Tuple[List[str], List[Dict[str, Any]]]:
    """Turn raw sheet rows into ``(columns, records)``."""
    iterator = iter(rows)
    header: Optional[List[str]] = None
    for raw in iterator:
        if not _is_blank(raw):
            header = _header_names(raw)
            break
    if header is None:
        return [], []

    records: List[Dict[str, Any]] = []
    for raw in iterator:
        if _is_blank(raw):
            continue
        values = list(raw) + [None] * (len(header) - len(raw))
        records.append({name: _cell_value(v) for name, v in zip(header, values)})
    return header, records


def _extension(source: Source, filename: Optional[str]) -> str:
    if filename:
        return Path(filename).suffix.lower()
    if isinstance(source, (str, Path)):
        return Path(source).suffix.lower()
    name = getattr(source, "name", None)
    return Path(name).suffix.lower() if isinstance(name, str) else ""


def read_workbook(
    source: Source,
    filename: Optional[str] = None,
) -> Tuple[List[str], List[Dict[str, Any]]]:
    """Read the first sheet of an uploaded file.

    Parameters
    ----------
    source:
        A path or a binary file object (e.g. an upload stream).
    filename:
        Original file name, used to pick the reader when *source* is a stream.

    Returns
    -------
    tuple[list[str], list[dict]]
        ``(columns, rows)``.
    """
    ext = _extension(source, filename)

    if ext in LEGACY_EXTENSIONS:
        return _read_xls(source)
    if ext in CSV_EXTENSIONS:
        return _read_csv(source)
    if ext not in WORKBOOK_EXTENSIONS:
        raise UnsupportedFileError(
            f"Unsupported file type {ext or '(none)'!r}. "
            f"Allowed: {', '.join(sorted(ALLOWED_EXTENSIONS))}"
        )

    try:
        wb = openpyxl.load_workbook(source, read_only=True, data_only=True)
    except (OSError, KeyError, ValueError, zipfile.BadZipFile, InvalidFileException) as exc:
        raise UnsupportedFileError(f"Cannot open workbook: {exc}") from exc

    try:
        ws = wb.worksheets[0]
        logger.info("Reading sheet %r", ws.title)
        columns, records = rows_to_records(ws.iter_rows(values_only=True))
    finally:
        wb.close()

    logger.info("Read %d rows across %d columns", len(records), len(columns))
    return columns, records


def _read_csv(source: Source) -> Tuple[List[str], List[Dict[str, Any]]]:
    if isinstance(source, (str, Path)):
        with open(Path(source), encoding="utf-8-sig", newline="") as fh:
            rows = list(csv.reader(fh))
    else:
        text = io.TextIOWrapper(source, encoding="utf-8-sig", newline="")
        try:
            rows = list(csv.reader(text))
        finally:
            text.detach()
    cleaned = [[c if c.strip() else None for c in row] for row in rows]
    columns, records = rows_to_records(cleaned)
    logger.info("Read %d CSV rows across %d columns", len(records), len(columns))
    return columns, records


def _xls_value(cell: xlrd.sheet.Cell, datemode: int) -> Any:
    if cell.ctype in (xlrd.XL_CELL_EMPTY, xlrd.XL_CELL_BLANK):
        return None
    if cell.ctype == xlrd.XL_CELL_DATE:
        return xlrd.xldate_as_datetime(cell.value, datemode)
    if cell.ctype == xlrd.XL_CELL_NUMBER:
        # BIFF stores every number as a float
        return int(cell.value) if float(cell.value).is_integer() else cell.value
    if cell.ctype == xlrd.XL_CELL_BOOLEAN:
        return bool(cell.value)
    if cell.ctype == xlrd.XL_CELL_ERROR:
        return error_text_from_code.get(cell.value, "#ERR")
    return cell.value


def _read_xls(source: Source) -> Tuple[List[str], List[Dict[str, Any]]]:
    try:
        if isinstance(source, (str, Path)):
            book = xlrd.open_workbook(str(source), on_demand=True)
        else:
            book = xlrd.open_workbook(file_contents=source.read(), on_demand=True)
    except (OSError, xlrd.XLRDError, CompDocError) as exc:
        raise UnsupportedFileError(f"Cannot open workbook: {exc}") from exc

    try:
        sheet = book.sheet_by_index(0)
        logger.info("Reading legacy sheet %r", sheet.name)
        raw = (
            [_xls_value(cell, book.datemode) for cell in sheet.row(rx)]
            for rx in range(sheet.nrows)
        )
        columns, records = rows_to_records(raw)
    finally:
        book.release_resources()

    logger.info("Read %d rows across %d columns", len(records), len(columns))
    return columns, records
