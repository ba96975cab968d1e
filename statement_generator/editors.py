"""
Statement and note editors.

Each editor owns a deep copy of the structures it was opened with and only
hands changes back through ``save()``.  The caller's objects are never
aliased, so closing an editor without saving discards every edit.
"""

from __future__ import annotations

import copy
from typing import Iterable, List, Optional, Sequence

from statement_generator.errors import EditError
from statement_generator.hierarchy import (
    Path,
    apply_edit,
    apply_note_edit,
    locate,
    locate_in_note,
    recalculate,
    recalculate_note,
)
from statement_generator.logging_setup import get_logger
from statement_generator import table_editor
from statement_generator.schema import (
    FinancialNote,
    HierarchicalItem,
    NodeKind,
    TableContent,
    ValueField,
)

logger = get_logger("editors")


class NotesEditor:
    """Edit the notes to the financial statements.

    Parameters
    ----------
    notes:
        The notes as rendered; copied on construction.
    focus_note:
        Optional note number to open on.  When set, ``visible_notes`` only
        returns that note.
    """

    def __init__(
        self,
        notes: Iterable[FinancialNote],
        focus_note: Optional[int] = None,
    ) -> None:
        self._notes: List[FinancialNote] = copy.deepcopy(list(notes))
        self.focus_note = focus_note
        if focus_note is not None and self._index(focus_note) is None:
            logger.warning("Focus note %s not found; showing all notes", focus_note)
            self.focus_note = None

    @property
    def notes(self) -> List[FinancialNote]:
        return self._notes

    def visible_notes(self) -> List[FinancialNote]:
        if self.focus_note is None:
            return list(self._notes)
        return [n for n in self._notes if n.note_number == self.focus_note]

    def note(self, note_number: int) -> FinancialNote:
        index = self._index(note_number)
        if index is None:
            raise EditError(f"No note numbered {note_number}")
        return self._notes[index]

    def _index(self, note_number: int) -> Optional[int]:
        for i, n in enumerate(self._notes):
            if n.note_number == note_number:
                return i
        return None

    def _replace(self, note: FinancialNote) -> None:
        self._notes[self._index(note.note_number)] = note

    # ------------------------------------------------------------------ #
    # Edits
    # ------------------------------------------------------------------ #

    def set_value(
        self,
        note_number: int,
        path: Path,
        value_field: ValueField,
        value: Optional[float],
    ) -> FinancialNote:
        """Edit one amount; ``path[0]`` indexes the note's content list."""
        note = self.note(note_number)
        target = locate_in_note(note, tuple(path))
        if not target.accepts_value_edit:
            raise EditError(f"{target.key!r} is not an editable row")
        updated = apply_note_edit(note, path, value_field, value)
        self._replace(updated)
        return updated

    def set_narrative(self, note_number: int, content_index: int, text: str) -> None:
        note = self.note(note_number)
        item = self._content(note, content_index)
        if not isinstance(item, HierarchicalItem) or item.kind is not NodeKind.NARRATIVE:
            raise EditError(f"Content {content_index} of note {note_number} is not a narrative row")
        if not item.is_editable_text:
            raise EditError(f"Narrative {item.key!r} is read-only")
        item.narrative_text = text

    def set_table_cell(
        self,
        note_number: int,
        content_index: int,
        row: int,
        col: int,
        value: str,
    ) -> TableContent:
        note = self.note(note_number)
        table = self._table(note, content_index)
        updated = table_editor.set_cell(table, row, col, value)
        note.content[content_index] = updated
        return updated

    def set_two_line_cell(
        self,
        note_number: int,
        content_index: int,
        row: int,
        col: int,
        value: str,
        is_previous: bool,
    ) -> TableContent:
        note = self.note(note_number)
        table = self._table(note, content_index)
        updated = table_editor.set_two_line_cell(table, row, col, value, is_previous)
        note.content[content_index] = updated
        return updated

    @staticmethod
    def _content(note: FinancialNote, index: int):
        if not 0 <= index < len(note.content):
            raise EditError(f"Content index {index} out of range for note {note.note_number}")
        return note.content[index]

    def _table(self, note: FinancialNote, index: int) -> TableContent:
        item = self._content(note, index)
        if not isinstance(item, TableContent):
            raise EditError(f"Content {index} of note {note.note_number} is not a table")
        return item

    # ------------------------------------------------------------------ #
    # Save
    # ------------------------------------------------------------------ #

    def save(self) -> List[FinancialNote]:
        """Return the notes ready for the backend.

        Totals are recomputed from the current tree; derived amounts
        (non-editable rows, subtotals, grand totals) are then cleared so the
        backend only receives user-entered values.
        """
        saved: List[FinancialNote] = []
        for note in self._notes:
            out = recalculate_note(note)
            for item in out.items():
                _clear_derived(item)
            saved.append(out)
        logger.info("Saving %d notes", len(saved))
        return saved


def _clear_derived(item: HierarchicalItem) -> None:
    if not item.is_editable_row or item.is_total:
        item.value_current = None
        item.value_previous = None
    for child in item.children:
        _clear_derived(child)


class CashFlowEditor:
    """Edit the cash-flow hierarchy; every change recalculates the tree."""

    def __init__(self, items: Sequence[HierarchicalItem]) -> None:
        self._items: List[HierarchicalItem] = recalculate(items)

    @property
    def items(self) -> List[HierarchicalItem]:
        return self._items

    def set_value(self, path: Path, value_field: ValueField, value: Optional[float]) -> List[HierarchicalItem]:
        target = locate(self._items, tuple(path))
        if not target.accepts_value_edit:
            raise EditError(f"{target.key!r} is not an editable row")
        self._items = apply_edit(self._items, path, value_field, value)
        return self._items

    def save(self) -> List[HierarchicalItem]:
        logger.info("Saving cash flow with %d top-level rows", len(self._items))
        return copy.deepcopy(self._items)

