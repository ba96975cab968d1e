"""
Note Table Editing.

Flat note tables hold text cells only.  The first column is the row label
and rows whose label mentions "total" are derived, so neither accepts edits.

Two-line cells
--------------
Some schedules pack the current and previous period into a single cell::

    "1,787.08\\n(1,390.82)"

The previous-period half is wrapped in parentheses by convention.  Editing
either half rewrites the whole cell as ``"{current}\\n({previous})"`` and
keeps the other half's last known value.
"""

from __future__ import annotations

import copy
from typing import Optional, Tuple

from statement_generator.errors import EditError
from statement_generator.logging_setup import get_logger
from statement_generator.schema import TableContent

logger = get_logger("table_editor")

PREVIOUS_PLACEHOLDER = "( )"


def is_total_row(row: list[str]) -> bool:
    return bool(row) and "total" in str(row[0]).lower()


def is_cell_editable(table: TableContent, row_index: int, col_index: int) -> bool:
    if not table.is_editable or col_index == 0:
        return False
    if not 0 <= row_index < len(table.rows):
        return False
    row = table.rows[row_index]
    if not 0 <= col_index < max(len(row), len(table.headers)):
        return False
    return not is_total_row(row)


def _checked_copy(table: TableContent, row_index: int, col_index: int) -> TableContent:
    if not is_cell_editable(table, row_index, col_index):
        raise EditError(f"Cell ({row_index}, {col_index}) is not editable")
    updated = copy.deepcopy(table)
    row = updated.rows[row_index]
    # Short rows are padded so trailing empty cells can be filled in.
    if col_index >= len(row):
        row.extend([""] * (col_index + 1 - len(row)))
    return updated


def set_cell(table: TableContent, row_index: int, col_index: int, value: str) -> TableContent:
    """Return a copy of *table* with one cell replaced."""
    updated = _checked_copy(table, row_index, col_index)
    updated.rows[row_index][col_index] = value
    logger.info("TABLE EDIT: (%d, %d) = %r", row_index, col_index, value)
    return updated


# ---------------------------------------------------------------------------
# Two-line encoding
# ---------------------------------------------------------------------------

def pack(current: str, previous: str) -> str:
    return f"{current}\n({previous})"


def _halves(cell: Optional[str]) -> Tuple[str, Optional[str]]:
    if not cell:
        return "", None
    current, sep, previous = cell.partition("\n")
    return current, (previous if sep else None)


def _unwrap(text: str) -> str:
    text = text.strip()
    if text.startswith("(") and text.endswith(")"):
        return text[1:-1].strip()
    return text


def parse_display_value(cell: Optional[str], is_previous: bool) -> str:
    """Return one half of a packed cell for display.

    The previous half loses its wrapping parentheses; the current half is
    shown as written, so a credit-style ``"(100)"`` survives.  A missing cell
    shows ``""`` for the current half and ``"( )"`` for the previous half.
    """
    if not cell or not cell.strip():
        return PREVIOUS_PLACEHOLDER if is_previous else ""
    current, previous = _halves(cell)
    if is_previous:
        return _unwrap(previous) if previous is not None else PREVIOUS_PLACEHOLDER
    return current.strip()


def parse_edit_value(cell: Optional[str], is_previous: bool) -> str:
    """Return one half of a packed cell as an editable number string.

    Parentheses and thousands separators are stripped; a leading minus sign
    survives.  A missing cell or half yields ``""``.
    """
    current, previous = _halves(cell)
    text = previous if is_previous else current
    if text is None:
        return ""
    return text.replace("(", "").replace(")", "").replace(",", "").strip()


def set_two_line_cell(
    table: TableContent,
    row_index: int,
    col_index: int,
    value: str,
    is_previous: bool,
) -> TableContent:
    """Rewrite one half of a packed cell, preserving the other half.

    A cell that was never packed contributes its text as the current half
    and an empty previous half.
    """
    updated = _checked_copy(table, row_index, col_index)
    existing = updated.rows[row_index][col_index]
    current, previous = _halves(existing)
    current = current.strip()
    previous = "" if previous is None else _unwrap(previous)

    if is_previous:
        previous = value
    else:
        current = value

    updated.rows[row_index][col_index] = pack(current, previous)
    logger.info(
        "TWO-LINE EDIT: (%d, %d) %s = %r",
        row_index,
        col_index,
        "previous" if is_previous else "current",
        value,
    )
    return updated
