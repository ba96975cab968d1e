"""
Hierarchical Recalculation Engine.

Recomputes derived amounts in a statement or note tree after every edit.

Rules
-----
* A node with children that is not an editable row takes the sum of its
  children's values (``None`` counts as zero).
* A formula node takes ``ref op ref [op ref ...]`` over nodes that finished
  processing earlier in the traversal.  Nodes are registered under their
  ``id`` and ``key`` once their own value is final, so a parent can reference
  its descendants and later siblings can reference earlier ones; forward
  references do not resolve.
* Narrative nodes carry text only and pass through untouched.

Every public function returns fresh objects; inputs are never mutated.
"""

from __future__ import annotations

import copy
from typing import Iterable, List, Optional, Sequence, Tuple

from statement_generator.errors import EditError
from statement_generator.logging_setup import get_logger
from statement_generator.schema import (
    FinancialNote,
    HierarchicalItem,
    NodeKind,
    ValueField,
)

logger = get_logger("hierarchy")

Path = Tuple[int, ...]
Totals = Tuple[float, float]


def _num(value: Optional[float]) -> float:
    return 0.0 if value is None else float(value)


class _Recalculator:
    """One bottom-up pass over a tree, carrying the formula registry."""

    def __init__(self) -> None:
        self.totals: dict[str, Totals] = {}

    def run(self, items: Iterable[HierarchicalItem]) -> List[HierarchicalItem]:
        return [self._process(item) for item in items]

    def _process(self, node: HierarchicalItem) -> HierarchicalItem:
        if node.kind is NodeKind.NARRATIVE:
            return node

        node.children = [self._process(c) for c in node.children]

        if node.children and not node.is_editable_row:
            node.value_current = sum(_num(c.value_current) for c in node.children)
            node.value_previous = sum(_num(c.value_previous) for c in node.children)

        if node.formula:
            self._apply_formula(node)

        for name in (node.id, node.key):
            if name:
                self.totals[name] = (_num(node.value_current), _num(node.value_previous))
        return node

    def _apply_formula(self, node: HierarchicalItem) -> None:
        refs = node.formula[0::2]
        ops = node.formula[1::2]
        missing = [r for r in refs if r not in self.totals]
        if missing:
            logger.warning(
                "Formula on %r references unresolved node(s) %s; value left as is",
                node.key,
                missing,
            )
            return

        current, previous = self.totals[refs[0]]
        for op, ref in zip(ops, refs[1:]):
            ref_current, ref_previous = self.totals[ref]
            if op == "+":
                current, previous = current + ref_current, previous + ref_previous
            else:
                current, previous = current - ref_current, previous - ref_previous
        node.value_current = current
        node.value_previous = previous
        logger.debug("Formula %r on %r → (%s, %s)", node.formula, node.key, current, previous)


def recalculate(items: Sequence[HierarchicalItem]) -> List[HierarchicalItem]:
    """Return a recalculated deep copy of *items*."""
    return _Recalculator().run(copy.deepcopy(list(items)))


def locate(items: Sequence[HierarchicalItem], path: Path) -> HierarchicalItem:
    """Follow child indices from the root list; raises ``EditError`` on a bad path."""
    if not path:
        raise EditError("Empty path")
    level: Sequence[HierarchicalItem] = items
    node: Optional[HierarchicalItem] = None
    for depth, index in enumerate(path):
        if not 0 <= index < len(level):
            raise EditError(f"Path {tuple(path)!r} is out of range at depth {depth}")
        node = level[index]
        level = node.children
    assert node is not None
    return node


def _set_value(target: HierarchicalItem, value_field: ValueField, value: Optional[float]) -> None:
    if target.kind is not NodeKind.LEAF:
        raise EditError(f"{target.key!r} is a {target.kind.value} row; its amounts are derived")
    if target.is_total:
        raise EditError(f"{target.key!r} is a total row; its amounts are derived")
    setattr(target, value_field.attr, value)


def apply_edit(
    items: Sequence[HierarchicalItem],
    path: Path,
    value_field: ValueField,
    value: Optional[float],
) -> List[HierarchicalItem]:
    """Set one value and return the fully recalculated tree.

    The whole tree is recalculated, not only the edited branch, so the
    result is consistent regardless of the input's prior state.
    """
    updated = copy.deepcopy(list(items))
    target = locate(updated, tuple(path))
    _set_value(target, value_field, value)
    logger.info("EDIT: %s.%s = %s", target.key, value_field.value, value)
    return _Recalculator().run(updated)


def find_item(items: Iterable[HierarchicalItem], key: str) -> Optional[HierarchicalItem]:
    """Depth-first search by key."""
    for item in items:
        if item.key == key:
            return item
        found = find_item(item.children, key)
        if found is not None:
            return found
    return None


def path_of(items: Sequence[HierarchicalItem], key: str) -> Optional[Path]:
    """Index path to the node with *key*, or ``None``."""
    for index, item in enumerate(items):
        if item.key == key:
            return (index,)
        sub = path_of(item.children, key)
        if sub is not None:
            return (index,) + sub
    return None


# ---------------------------------------------------------------------------
# Notes
# ---------------------------------------------------------------------------

def note_totals(content: Iterable[object]) -> Totals:
    """Sum top-level items that are subtotals or have no children."""
    current = previous = 0.0
    for item in content:
        if not isinstance(item, HierarchicalItem):
            continue
        if item.is_subtotal or not item.children:
            current += _num(item.value_current)
            previous += _num(item.value_previous)
    return current, previous


def recalculate_note(note: FinancialNote) -> FinancialNote:
    """Return a copy of *note* with recalculated items and refreshed totals."""
    updated = copy.deepcopy(note)
    _recalculate_note_in_place(updated)
    return updated


def _recalculate_note_in_place(note: FinancialNote) -> None:
    recalculated = iter(_Recalculator().run(note.items()))
    note.content = [
        next(recalculated) if isinstance(c, HierarchicalItem) else c
        for c in note.content
    ]
    note.total_current, note.total_previous = note_totals(note.content)


def locate_in_note(note: FinancialNote, path: Path) -> HierarchicalItem:
    """Resolve a note path: ``path[0]`` indexes the content list, the rest walks children."""
    if not path:
        raise EditError("Empty path")
    head = path[0]
    if not 0 <= head < len(note.content):
        raise EditError(f"Content index {head} out of range for note {note.note_number}")
    root = note.content[head]
    if not isinstance(root, HierarchicalItem):
        raise EditError(f"Content {head} of note {note.note_number} is a {root.type}, not an item")
    return locate([root], (0,) + tuple(path[1:]))


def apply_note_edit(
    note: FinancialNote,
    path: Path,
    value_field: ValueField,
    value: Optional[float],
) -> FinancialNote:
    """Edit a value inside a note.

    ``path[0]`` indexes the note's full content list (captions and tables
    included); the remainder walks children.
    """
    updated = copy.deepcopy(note)
    target = locate_in_note(updated, path)
    _set_value(target, value_field, value)
    logger.info("NOTE %d EDIT: %s.%s = %s", note.note_number, target.key, value_field.value, value)

    _recalculate_note_in_place(updated)
    return updated
