"""
Unit tests for the notes and cash-flow editors.
"""

from __future__ import annotations

import pytest

from statement_generator.editors import CashFlowEditor, NotesEditor
from statement_generator.errors import EditError
from statement_generator.hierarchy import find_item
from statement_generator.schema import (
    Caption,
    FinancialNote,
    HierarchicalItem,
    TableContent,
    ValueField,
)


@pytest.fixture
def notes() -> list[FinancialNote]:
    return [
        FinancialNote(
            note_number=12,
            title="Equity share capital",
            content=[
                Caption("Authorised"),
                HierarchicalItem(key="auth", label="Equity shares", value_current=500.0,
                                 value_previous=500.0, is_editable_row=True),
                HierarchicalItem(key="issued", label="Issued", is_subtotal=True, children=[
                    HierarchicalItem(key="issued-a", value_current=100.0, value_previous=90.0,
                                     is_editable_row=True),
                    HierarchicalItem(key="issued-b", value_current=50.0, value_previous=40.0,
                                     is_editable_row=True),
                ]),
                HierarchicalItem(key="policy", is_narrative=True, is_editable_text=True,
                                 narrative_text="Shares carry one vote each."),
                HierarchicalItem(key="fixed-text", is_narrative=True,
                                 narrative_text="Read only."),
            ],
            total_current=0.0,
            total_previous=0.0,
        ),
        FinancialNote(
            note_number=9,
            title="Trade receivables",
            content=[
                TableContent(
                    headers=["Particulars", "< 6 months"],
                    rows=[["Undisputed", "10.00\n(8.00)"], ["Total", "10.00\n(8.00)"]],
                    is_editable=True,
                ),
                HierarchicalItem(key="locked", value_current=3.0, value_previous=3.0),
            ],
        ),
    ]


# ======================================================================
# Notes editor
# ======================================================================

class TestNotesEditor:
    def test_copy_on_open(self, notes) -> None:
        editor = NotesEditor(notes)
        editor.set_value(12, (1,), ValueField.CURRENT, 600.0)
        assert notes[0].content[1].value_current == 500.0

    def test_focus_note(self, notes) -> None:
        editor = NotesEditor(notes, focus_note=9)
        assert [n.note_number for n in editor.visible_notes()] == [9]

    def test_unknown_focus_shows_all(self, notes) -> None:
        editor = NotesEditor(notes, focus_note=99)
        assert editor.focus_note is None
        assert len(editor.visible_notes()) == 2

    def test_set_value_recalculates(self, notes) -> None:
        editor = NotesEditor(notes)
        updated = editor.set_value(12, (2, 0), ValueField.CURRENT, 200.0)
        assert updated.content[2].value_current == 250.0
        assert updated.total_current == 750.0
        assert editor.note(12).total_current == 750.0

    def test_subtotal_not_editable(self, notes) -> None:
        editor = NotesEditor(notes)
        with pytest.raises(EditError):
            editor.set_value(12, (2,), ValueField.CURRENT, 1.0)

    def test_non_editable_row_rejected(self, notes) -> None:
        editor = NotesEditor(notes)
        with pytest.raises(EditError):
            editor.set_value(9, (1,), ValueField.CURRENT, 1.0)

    def test_unknown_note(self, notes) -> None:
        with pytest.raises(EditError):
            NotesEditor(notes).set_value(1, (0,), ValueField.CURRENT, 1.0)

    def test_set_narrative(self, notes) -> None:
        editor = NotesEditor(notes)
        editor.set_narrative(12, 3, "Shares carry one vote each; no preference shares.")
        assert editor.note(12).content[3].narrative_text.endswith("no preference shares.")

    def test_read_only_narrative(self, notes) -> None:
        with pytest.raises(EditError):
            NotesEditor(notes).set_narrative(12, 4, "changed")

    def test_narrative_on_amount_row(self, notes) -> None:
        with pytest.raises(EditError):
            NotesEditor(notes).set_narrative(12, 1, "changed")

    def test_table_cells(self, notes) -> None:
        editor = NotesEditor(notes)
        editor.set_two_line_cell(9, 0, 0, 1, "7.50", is_previous=True)
        assert editor.note(9).content[0].rows[0][1] == "10.00\n(7.50)"
        editor.set_table_cell(9, 0, 0, 1, "11.00")
        assert editor.note(9).content[0].rows[0][1] == "11.00"

    def test_table_edit_on_item_rejected(self, notes) -> None:
        with pytest.raises(EditError):
            NotesEditor(notes).set_table_cell(9, 1, 0, 1, "x")


class TestNotesSave:
    def test_totals_recomputed(self, notes) -> None:
        saved = NotesEditor(notes).save()
        note = saved[0]
        assert (note.total_current, note.total_previous) == (650.0, 630.0)

    def test_derived_values_cleared(self, notes) -> None:
        saved = NotesEditor(notes).save()
        assert saved[0].content[2].value_current is None
        assert saved[1].content[1].value_current is None

    def test_user_values_kept(self, notes) -> None:
        saved = NotesEditor(notes).save()
        assert saved[0].content[1].value_current == 500.0
        assert saved[0].content[2].children[0].value_previous == 90.0

    def test_save_does_not_touch_editor_state(self, notes) -> None:
        editor = NotesEditor(notes)
        editor.save()
        assert editor.note(12).content[1].value_current == 500.0
        assert editor.note(12).content[2].value_current is None


# ======================================================================
# Cash-flow editor
# ======================================================================

@pytest.fixture
def cash_flow() -> list[HierarchicalItem]:
    return [
        HierarchicalItem(key="cfo", label="Operating activities", id="cfo", is_subtotal=True, children=[
            HierarchicalItem(key="pbt", value_current=100.0, value_previous=90.0, is_editable_row=True),
            HierarchicalItem(key="dep", value_current=20.0, value_previous=15.0, is_editable_row=True),
        ]),
        HierarchicalItem(key="cfi", label="Investing activities", id="cfi", is_subtotal=True, children=[
            HierarchicalItem(key="capex", value_current=-40.0, value_previous=-30.0, is_editable_row=True),
        ]),
        HierarchicalItem(key="net", label="Net change in cash", id="net", is_grand_total=True,
                         formula=("cfo", "+", "cfi")),
    ]


class TestCashFlowEditor:
    def test_recalculated_on_open(self, cash_flow) -> None:
        editor = CashFlowEditor(cash_flow)
        assert find_item(editor.items, "cfo").value_current == 120.0
        assert find_item(editor.items, "net").value_current == 80.0

    def test_edit_propagates(self, cash_flow) -> None:
        editor = CashFlowEditor(cash_flow)
        editor.set_value((1, 0), ValueField.CURRENT, -100.0)
        assert find_item(editor.items, "cfi").value_current == -100.0
        assert find_item(editor.items, "net").value_current == 20.0
        assert find_item(editor.items, "net").value_previous == 75.0

    def test_non_editable_row(self, cash_flow) -> None:
        with pytest.raises(EditError):
            CashFlowEditor(cash_flow).set_value((2,), ValueField.CURRENT, 1.0)

    def test_editable_row_flagged_total(self, cash_flow) -> None:
        cash_flow[0].children[1].is_subtotal = True
        editor = CashFlowEditor(cash_flow)
        with pytest.raises(EditError):
            editor.set_value((0, 1), ValueField.CURRENT, 1.0)
        assert find_item(editor.items, "dep").value_current == 20.0

    def test_save_returns_copy(self, cash_flow) -> None:
        editor = CashFlowEditor(cash_flow)
        saved = editor.save()
        saved[0].children[0].value_current = 0.0
        assert editor.items[0].children[0].value_current == 100.0
        assert cash_flow[0].value_current is None
