"""
Canonical schema and data models.

Defines the canonical trial-balance fields that uploaded columns are mapped
into, the period-label construction rule, and the typed structures carried
between the mapper, the recalculation engine, the editors and the journal
page.  Wire (JSON) names use the backend's camelCase; Python attributes use
snake_case.
"""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Optional, Union

from statement_generator.errors import SchemaError
from statement_generator.normalizer import clean_amount


# ---------------------------------------------------------------------------
# Canonical trial-balance schema
# ---------------------------------------------------------------------------

class CanonicalField(str, Enum):
    """
    Every field an uploaded column can be mapped to.

    The ``.value`` is the key used in the normalised row sent to the backend.
    """

    GL_ACCOUNT = "glAccount"
    GL_NAME = "glName"
    LEVEL_1_DESC = "Level 1 Desc"
    LEVEL_2_DESC = "Level 2 Desc"
    ACCOUNT_TYPE = "accountType"
    FUNCTIONAL_AREA = "functionalArea"
    AMOUNT_CURRENT = "amountCurrent"
    AMOUNT_PREVIOUS = "amountPrevious"


DESCRIPTIVE_FIELDS: tuple[CanonicalField, ...] = (
    CanonicalField.GL_NAME,
    CanonicalField.GL_ACCOUNT,
    CanonicalField.ACCOUNT_TYPE,
    CanonicalField.LEVEL_1_DESC,
    CanonicalField.LEVEL_2_DESC,
    CanonicalField.FUNCTIONAL_AREA,
)

AMOUNT_FIELDS: tuple[CanonicalField, ...] = (
    CanonicalField.AMOUNT_CURRENT,
    CanonicalField.AMOUNT_PREVIOUS,
)


def canonical_lookup(name: str) -> Optional[CanonicalField]:
    """Case-insensitive lookup by value or enum name."""
    _lower = name.strip().lower()
    for f in CanonicalField:
        if f.value.lower() == _lower or f.name.lower() == _lower:
            return f
    return None


# ---------------------------------------------------------------------------
# Period labels
# ---------------------------------------------------------------------------

class PeriodType(str, Enum):
    FYE = "Financial Year Ended (FYE)"
    QE = "Quarter Ended (QE)"
    YTD = "Year to Date (YTD)"
    CYE = "Calendar Year Ended (CYE)"


_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def period_label(period_type: Union[PeriodType, str], on: Union[date, str]) -> str:
    """Synthesise the dynamic amount key, e.g. ``"Financial Year Ended (FYE) 2024-03-31"``."""
    if isinstance(period_type, PeriodType):
        period_type = period_type.value
    if isinstance(on, date):
        on = on.isoformat()
    return f"{period_type} {on}"


@dataclass
class PeriodMeta:
    """Period type + date chosen for one amount column."""

    period_type: str = ""
    date: str = ""

    @property
    def label(self) -> str:
        return period_label(self.period_type, self.date)

    def problems(self) -> list[str]:
        """Return human-readable reasons this meta cannot build a valid label."""
        issues: list[str] = []
        if self.period_type not in {p.value for p in PeriodType}:
            issues.append(f"Unknown period type {self.period_type!r}")
        if not _ISO_DATE_RE.match(self.date):
            issues.append(f"Date {self.date!r} is not in YYYY-MM-DD form")
        else:
            try:
                date.fromisoformat(self.date)
            except ValueError:
                issues.append(f"Date {self.date!r} is not a calendar date")
        return issues


# ---------------------------------------------------------------------------
# Mapped trial-balance rows
# ---------------------------------------------------------------------------

@dataclass
class MappedRow:
    """A trial-balance row after column mapping.

    ``amounts`` holds exactly the current and previous period amounts keyed
    by their period labels.  When both labels coincide the mapping holds one
    entry, matching the flat wire form where the later key wins.
    """

    gl_account: Any = ""
    gl_name: Any = ""
    account_type: Any = ""
    level1_desc: Any = ""
    level2_desc: Any = ""
    functional_area: Any = ""
    amounts: dict[str, float] = field(default_factory=dict)

    def amount(self, label: str) -> float:
        return self.amounts.get(label, 0.0)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "glName": self.gl_name,
            "glAccount": self.gl_account,
            "accountType": self.account_type,
            "Level 1 Desc": self.level1_desc,
            "Level 2 Desc": self.level2_desc,
            "functionalArea": self.functional_area,
        }
        out.update(self.amounts)
        return out

    @classmethod
    def from_dict(cls, data: dict[str, Any], labels: list[str]) -> "MappedRow":
        return cls(
            gl_account=data.get("glAccount", ""),
            gl_name=data.get("glName", ""),
            account_type=data.get("accountType", ""),
            level1_desc=data.get("Level 1 Desc", ""),
            level2_desc=data.get("Level 2 Desc", ""),
            functional_area=data.get("functionalArea", ""),
            amounts={label: clean_amount(data.get(label)) for label in labels},
        )


# ---------------------------------------------------------------------------
# Statement / note tree
# ---------------------------------------------------------------------------

class NodeKind(str, Enum):
    LEAF = "leaf"
    AGGREGATE = "aggregate"
    FORMULA = "formula"
    NARRATIVE = "narrative"


class ValueField(str, Enum):
    CURRENT = "valueCurrent"
    PREVIOUS = "valuePrevious"

    @property
    def attr(self) -> str:
        return "value_current" if self is ValueField.CURRENT else "value_previous"


def _opt_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise SchemaError(f"Non-numeric amount {value!r}") from exc


@dataclass
class HierarchicalItem:
    """One line item in a statement or note hierarchy."""

    key: str
    label: str = ""
    value_current: Optional[float] = None
    value_previous: Optional[float] = None
    children: list["HierarchicalItem"] = field(default_factory=list)
    is_subtotal: bool = False
    is_grand_total: bool = False
    is_editable_row: bool = False
    id: Optional[str] = None
    formula: Optional[tuple[str, ...]] = None
    note: Optional[Union[int, str]] = None
    keywords: Optional[list[str]] = None
    is_narrative: bool = False
    is_editable_text: bool = False
    narrative_text: Optional[str] = None
    footer: Optional[str] = None

    type: str = field(default="item", init=False)

    @property
    def kind(self) -> NodeKind:
        if self.is_narrative:
            return NodeKind.NARRATIVE
        if self.formula:
            return NodeKind.FORMULA
        if self.children and not self.is_editable_row:
            return NodeKind.AGGREGATE
        return NodeKind.LEAF

    @property
    def is_total(self) -> bool:
        return self.is_subtotal or self.is_grand_total

    @property
    def accepts_value_edit(self) -> bool:
        """True for rows whose amounts are user-entered rather than derived."""
        return (
            self.is_editable_row
            and not self.children
            and not self.is_total
            and not self.is_narrative
        )

    def get(self, value_field: ValueField) -> Optional[float]:
        return getattr(self, value_field.attr)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "type": self.type,
            "key": self.key,
            "label": self.label,
            "valueCurrent": self.value_current,
            "valuePrevious": self.value_previous,
        }
        if self.children:
            out["children"] = [c.to_dict() for c in self.children]
        for attr, wire in (
            ("is_subtotal", "isSubtotal"),
            ("is_grand_total", "isGrandTotal"),
            ("is_editable_row", "isEditableRow"),
            ("is_narrative", "isNarrative"),
            ("is_editable_text", "isEditableText"),
        ):
            if getattr(self, attr):
                out[wire] = True
        for attr, wire in (
            ("id", "id"),
            ("note", "note"),
            ("keywords", "keywords"),
            ("narrative_text", "narrativeText"),
            ("footer", "footer"),
        ):
            if getattr(self, attr) is not None:
                out[wire] = getattr(self, attr)
        if self.formula:
            out["formula"] = list(self.formula)
        return out

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "HierarchicalItem":
        if not isinstance(data, dict):
            raise SchemaError(f"Hierarchical item must be an object, got {data!r}")
        if "key" not in data:
            raise SchemaError(f"Hierarchical item without a key: {data!r}")
        formula = data.get("formula")
        if formula is not None:
            formula = tuple(str(part) for part in formula)
            _check_formula(formula)
        return cls(
            key=str(data["key"]),
            label=data.get("label", ""),
            value_current=_opt_float(data.get("valueCurrent")),
            value_previous=_opt_float(data.get("valuePrevious")),
            children=[cls.from_dict(c) for c in data.get("children") or []],
            is_subtotal=bool(data.get("isSubtotal", False)),
            is_grand_total=bool(data.get("isGrandTotal", False)),
            is_editable_row=bool(data.get("isEditableRow", False)),
            id=data.get("id"),
            formula=formula,
            note=data.get("note"),
            keywords=data.get("keywords"),
            is_narrative=bool(data.get("isNarrative", False)),
            is_editable_text=bool(data.get("isEditableText", False)),
            narrative_text=data.get("narrativeText"),
            footer=data.get("footer"),
        )


def _check_formula(formula: tuple[str, ...]) -> None:
    if len(formula) < 3 or len(formula) % 2 == 0:
        raise SchemaError(f"Formula must be (ref, op, ref[, op, ref...]): {formula!r}")
    for op in formula[1::2]:
        if op not in ("+", "-"):
            raise SchemaError(f"Unsupported formula operator {op!r}")


@dataclass
class TableContent:
    """A flat text table inside a note (ageing schedules and the like)."""

    headers: list[str] = field(default_factory=list)
    rows: list[list[str]] = field(default_factory=list)
    is_editable: bool = False

    type: str = field(default="table", init=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "headers": list(self.headers),
            "rows": [list(r) for r in self.rows],
            "isEditable": self.is_editable,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TableContent":
        if not isinstance(data, dict):
            raise SchemaError(f"Table must be an object, got {data!r}")
        if not all(isinstance(row, list) for row in data.get("rows", [])):
            raise SchemaError("Table rows must be lists of cells")
        return cls(
            headers=[str(h) for h in data.get("headers", [])],
            rows=[["" if c is None else str(c) for c in row] for row in data.get("rows", [])],
            is_editable=bool(data.get("isEditable", False)),
        )


@dataclass
class Caption:
    """A free-text caption inside a note; never treated as data."""

    text: str

    type: str = field(default="caption", init=False)

    def to_dict(self) -> str:
        return self.text


NoteContent = Union[HierarchicalItem, TableContent, Caption]


def content_from_dict(data: Any) -> NoteContent:
    """Parse one wire-form content element into its tagged variant."""
    if isinstance(data, str):
        return Caption(data)
    if isinstance(data, dict):
        kind = data.get("type")
        if kind == "table":
            return TableContent.from_dict(data)
        if kind == "caption":
            return Caption(str(data.get("text", "")))
        if kind in (None, "item") and "key" in data:
            return HierarchicalItem.from_dict(data)
    raise SchemaError(f"Unrecognised note content element: {data!r}")


@dataclass
class FinancialNote:
    note_number: int
    title: str
    content: list[NoteContent] = field(default_factory=list)
    subtitle: Optional[str] = None
    footer: Optional[str] = None
    total_current: float = 0.0
    total_previous: float = 0.0

    def items(self) -> list[HierarchicalItem]:
        return [c for c in self.content if isinstance(c, HierarchicalItem)]

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "noteNumber": self.note_number,
            "title": self.title,
            "content": [c.to_dict() for c in self.content],
            "totalCurrent": self.total_current,
            "totalPrevious": self.total_previous,
        }
        if self.subtitle is not None:
            out["subtitle"] = self.subtitle
        if self.footer is not None:
            out["footer"] = self.footer
        return out

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FinancialNote":
        try:
            number = int(data["noteNumber"])
        except (KeyError, TypeError, ValueError) as exc:
            raise SchemaError(f"Note without a valid noteNumber: {data!r}") from exc
        return cls(
            note_number=number,
            title=data.get("title", ""),
            content=[content_from_dict(c) for c in data.get("content", [])],
            subtitle=data.get("subtitle"),
            footer=data.get("footer"),
            total_current=float(data.get("totalCurrent") or 0),
            total_previous=float(data.get("totalPrevious") or 0),
        )


# ---------------------------------------------------------------------------
# Adjustment journal
# ---------------------------------------------------------------------------

class TransactionType(str, Enum):
    DEBIT = "Debit"
    CREDIT = "Credit"


@dataclass(frozen=True)
class GLAccountInfo:
    gl_account: str
    gl_name: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> "GLAccountInfo":
        # Older backends send bare account codes.
        if isinstance(data, dict):
            return cls(str(data.get("glAccount", "")), str(data.get("glName", "")))
        return cls(str(data))


@dataclass
class JournalRow:
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    selected_gl_account: Optional[str] = None
    transaction_type: TransactionType = TransactionType.DEBIT
    amounts: dict[str, Union[float, str]] = field(default_factory=dict)


@dataclass(frozen=True)
class JournalEntry:
    gl_account: str
    period: str
    value: float

    def to_dict(self) -> dict[str, Any]:
        return {"glAccount": self.gl_account, "period": self.period, "value": self.value}
