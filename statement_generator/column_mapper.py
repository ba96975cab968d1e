"""
Column Mapping Layer.

Maps the arbitrary headers of an uploaded trial balance onto the canonical
schema and produces the normalised rows the statements are built from.

Flow
----
1. ``auto_map`` assigns each canonical field the first of its aliases that
   matches an uploaded column (case- and whitespace-insensitive).
2. The user overrides or clears fields via ``set_column`` and picks a period
   type and date for each amount column via ``set_period``.
3. ``confirm`` validates the mandatory fields, maps every raw row, records
   the result locally and only then forwards it to the backend.  A failed
   transmission is reported on the outcome but never discards the rows.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from statement_generator.api_client import ApiClient
from statement_generator.config import MapperConfig
from statement_generator.errors import ApiError, MappingError, MappingValidationError
from statement_generator.fuzzy_matcher import ColumnSuggester, ColumnSuggestion
from statement_generator.logging_setup import get_logger
from statement_generator.normalizer import clean_amount, normalize_header
from statement_generator.schema import (
    AMOUNT_FIELDS,
    CanonicalField,
    MappedRow,
    PeriodMeta,
    PeriodType,
    canonical_lookup,
)

logger = get_logger("column_mapper")

RawRow = Dict[str, Any]

REQUIRED_FIELDS_MESSAGE = (
    "Please ensure you have mapped Level 1, Level 2, and Amount columns."
)
SEND_FAILED_MESSAGE = "Failed to send data to the server."


@dataclass(frozen=True)
class FieldSpec:
    """A canonical field, its display label and its accepted header aliases."""

    field: CanonicalField
    label: str
    aliases: tuple[str, ...]


# Alias order matters: the first alias present in the upload wins.
FIELDS: tuple[FieldSpec, ...] = (
    FieldSpec(CanonicalField.GL_ACCOUNT, "G/L Account", ("Account Code", "G/L Account", "G/L Acct")),
    FieldSpec(CanonicalField.GL_NAME, "GL Description", ("Name", "Created by")),
    FieldSpec(CanonicalField.LEVEL_1_DESC, "Level 1 Description", ("Level 1 grouping", "Level 1 Desc")),
    FieldSpec(CanonicalField.LEVEL_2_DESC, "Level 2 Description", ("Level 2 grouping", "Level 2 Desc")),
    FieldSpec(CanonicalField.ACCOUNT_TYPE, "Account Type", ("Nature", "P&L Statement Acct Type")),
    FieldSpec(CanonicalField.FUNCTIONAL_AREA, "Target Grouping", ("Target Grouping", "Functional Area")),
    FieldSpec(CanonicalField.AMOUNT_CURRENT, "Amount (Current Period)", ("Amount",)),
    FieldSpec(CanonicalField.AMOUNT_PREVIOUS, "Amount (Comparative Period)", ("Amount",)),
)

_SPECS: dict[CanonicalField, FieldSpec] = {s.field: s for s in FIELDS}

# Backend financial-variable / text-key column names
FINANCIAL_KEY_COLUMN = "key"
FINANCIAL_CURRENT_COLUMN = "currentAmount"
FINANCIAL_PREVIOUS_COLUMN = "previousAmount"
TEXT_KEY_COLUMN = "Keys"


def auto_map(
    columns: Iterable[str],
    fields: Iterable[FieldSpec] = FIELDS,
) -> dict[CanonicalField, str]:
    """Assign each field the source column matching its earliest alias.

    The returned column names keep the upload's original spelling.
    """
    by_norm: dict[str, str] = {}
    for col in columns:
        by_norm.setdefault(normalize_header(col), col)

    mapping: dict[CanonicalField, str] = {}
    for spec in fields:
        for alias in spec.aliases:
            column = by_norm.get(normalize_header(alias))
            if column is not None:
                mapping[spec.field] = column
                logger.info("AUTO-MAPPED: %s ← %r (alias %r)", spec.field.value, column, alias)
                break
        else:
            logger.info("No alias match for %s", spec.field.value)
    return mapping


def _js_number_text(value: float) -> str:
    return str(int(value)) if value.is_integer() else repr(value)


def build_financial_variables(
    rows: Iterable[RawRow],
    current_label: str,
    previous_label: str,
) -> List[dict[str, Any]]:
    """Re-key backend financial-variable rows by the chosen period labels.

    A column already named after the period label takes precedence over the
    generic ``currentAmount`` / ``previousAmount`` columns.
    """

    def amount(row: RawRow, label: str, fallback: str) -> float:
        if row.get(label) is not None:
            return clean_amount(row[label])
        value = row.get(fallback)
        return clean_amount(0 if value is None else value)

    out: List[dict[str, Any]] = []
    for row in rows:
        key = row.get(FINANCIAL_KEY_COLUMN)
        record: dict[str, Any] = {"key": "" if key is None else key}
        record[current_label] = amount(row, current_label, FINANCIAL_CURRENT_COLUMN)
        record[previous_label] = amount(row, previous_label, FINANCIAL_PREVIOUS_COLUMN)
        out.append(record)
    return out


def build_text_variables(rows: Iterable[RawRow], current_label: str) -> List[dict[str, Any]]:
    """Re-key backend text-key rows; ``None`` and ``"0"`` keys become blank."""
    out: List[dict[str, Any]] = []
    for row in rows:
        key = row.get(TEXT_KEY_COLUMN)
        key_text = "" if key is None or key == "0" else str(key)
        raw = row.get(current_label)
        value = None if raw is None else _js_number_text(clean_amount(raw))
        out.append({"key": key_text, current_label: value})
    return out


@dataclass
class MappingOutcome:
    """Result of a confirmed mapping."""

    rows: List[MappedRow]
    current_label: str
    previous_label: str
    financial_variables: List[dict[str, Any]] = field(default_factory=list)
    text_variables: List[dict[str, Any]] = field(default_factory=list)
    sent: bool = False
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "mappedData": [r.to_dict() for r in self.rows],
            "amountCurrentKey": self.current_label,
            "amountPreviousKey": self.previous_label,
            "financialVariables": self.financial_variables,
            "textVariables": self.text_variables,
            "sent": self.sent,
            "error": self.error,
        }


FieldRef = Union[CanonicalField, str]


class ColumnMapper:
    """Holds the mapping state for one uploaded file.

    Parameters
    ----------
    columns:
        Header names present in the upload.
    config:
        Mandatory fields and suggestion thresholds.
    """

    def __init__(
        self,
        columns: Iterable[str],
        config: Optional[MapperConfig] = None,
    ) -> None:
        self._config = config or MapperConfig()
        self._columns: list[str] = list(columns)
        self._map: dict[CanonicalField, str] = auto_map(self._columns)
        self._meta: dict[CanonicalField, PeriodMeta] = {f: PeriodMeta() for f in AMOUNT_FIELDS}
        self._suggester = ColumnSuggester(self._columns, self._config)

        self.financial_variables: List[RawRow] = []
        self.text_variables: List[RawRow] = []
        self.outcome: Optional[MappingOutcome] = None

    # ------------------------------------------------------------------ #
    # State
    # ------------------------------------------------------------------ #

    @property
    def columns(self) -> list[str]:
        return list(self._columns)

    @property
    def mapping(self) -> dict[str, str]:
        """``{canonical field value: source column}`` for mapped fields."""
        return {f.value: col for f, col in self._map.items()}

    def column_for(self, field_ref: FieldRef) -> Optional[str]:
        return self._map.get(self._resolve(field_ref))

    def period(self, field_ref: FieldRef) -> PeriodMeta:
        return self._meta[self._resolve_amount(field_ref)]

    @staticmethod
    def _resolve(field_ref: FieldRef) -> CanonicalField:
        if isinstance(field_ref, CanonicalField):
            return field_ref
        resolved = canonical_lookup(field_ref)
        if resolved is None:
            raise MappingError(f"Unknown canonical field {field_ref!r}")
        return resolved

    def _resolve_amount(self, field_ref: FieldRef) -> CanonicalField:
        resolved = self._resolve(field_ref)
        if resolved not in AMOUNT_FIELDS:
            raise MappingError(f"{resolved.value!r} is not an amount field")
        return resolved

    # ------------------------------------------------------------------ #
    # User overrides
    # ------------------------------------------------------------------ #

    def set_column(self, field_ref: FieldRef, column: Optional[str]) -> None:
        """Map *field_ref* to *column*; ``None`` or ``""`` skips the field."""
        target = self._resolve(field_ref)
        if not column:
            self._map.pop(target, None)
            logger.info("CLEARED: %s", target.value)
            return
        if column not in self._columns:
            raise MappingError(f"Column {column!r} is not present in the upload")
        self._map[target] = column
        logger.info("OVERRIDE: %s ← %r", target.value, column)

    def set_period(
        self,
        field_ref: FieldRef,
        period_type: Union[PeriodType, str, None] = None,
        date: Optional[str] = None,
    ) -> None:
        """Set the period type and/or date of an amount field."""
        meta = self._meta[self._resolve_amount(field_ref)]
        if period_type is not None:
            meta.period_type = period_type.value if isinstance(period_type, PeriodType) else period_type
        if date is not None:
            meta.date = date

    def apply(self, mapping: Dict[str, Optional[str]], periods: Optional[Dict[str, dict]] = None) -> None:
        """Bulk form of ``set_column`` / ``set_period`` for request payloads."""
        for name, column in mapping.items():
            self.set_column(name, column)
        for name, meta in (periods or {}).items():
            self.set_period(name, meta.get("periodType"), meta.get("date"))

    # ------------------------------------------------------------------ #
    # Suggestions
    # ------------------------------------------------------------------ #

    def suggest_columns(self, field_ref: FieldRef) -> List[ColumnSuggestion]:
        spec = _SPECS[self._resolve(field_ref)]
        return self._suggester.suggest((spec.label,) + spec.aliases)

    def unmapped_suggestions(self) -> dict[str, List[ColumnSuggestion]]:
        """Suggestions for every field auto-mapping left empty."""
        return {
            spec.field.value: self.suggest_columns(spec.field)
            for spec in FIELDS
            if spec.field not in self._map
        }

    # ------------------------------------------------------------------ #
    # Validation & mapping
    # ------------------------------------------------------------------ #

    def missing_required(self) -> list[str]:
        return [
            name for name in self._config.required_fields
            if self._resolve(name) not in self._map
        ]

    def validate(self) -> None:
        missing = self.missing_required()
        if missing:
            logger.warning("Confirmation rejected; unmapped required fields: %s", missing)
            raise MappingValidationError(REQUIRED_FIELDS_MESSAGE, missing=missing)

        if self._config.require_period_meta:
            problems = [
                f"{f.value}: {issue}"
                for f, meta in self._meta.items()
                for issue in meta.problems()
            ]
            if problems:
                raise MappingValidationError("; ".join(problems))

    @property
    def current_label(self) -> str:
        return self._meta[CanonicalField.AMOUNT_CURRENT].label

    @property
    def previous_label(self) -> str:
        return self._meta[CanonicalField.AMOUNT_PREVIOUS].label

    def _value(self, row: RawRow, target: CanonicalField, default: Any = "") -> Any:
        column = self._map.get(target)
        if not column:
            return default
        value = row.get(column)
        return default if value is None else value

    def map_rows(self, raw_rows: Iterable[RawRow]) -> List[MappedRow]:
        current, previous = self.current_label, self.previous_label
        mapped: List[MappedRow] = []
        for row in raw_rows:
            amounts = {
                current: clean_amount(self._value(row, CanonicalField.AMOUNT_CURRENT, 0)),
            }
            amounts[previous] = clean_amount(self._value(row, CanonicalField.AMOUNT_PREVIOUS, 0))
            mapped.append(MappedRow(
                gl_account=self._value(row, CanonicalField.GL_ACCOUNT),
                gl_name=self._value(row, CanonicalField.GL_NAME),
                account_type=self._value(row, CanonicalField.ACCOUNT_TYPE),
                level1_desc=self._value(row, CanonicalField.LEVEL_1_DESC),
                level2_desc=self._value(row, CanonicalField.LEVEL_2_DESC),
                functional_area=self._value(row, CanonicalField.FUNCTIONAL_AREA),
                amounts=amounts,
            ))
        return mapped

    # ------------------------------------------------------------------ #
    # Backend side effects
    # ------------------------------------------------------------------ #

    def load_backend_variables(self, client: ApiClient) -> Optional[str]:
        """Fetch financial variables and text keys; returns an error message on failure."""
        try:
            self.financial_variables = client.fetch_financial_variables()
            self.text_variables = client.fetch_text_keys()
        except ApiError as exc:
            logger.error("Error fetching financial variables: %s", exc)
            return str(exc)
        logger.info(
            "Loaded %d financial variables, %d text keys",
            len(self.financial_variables),
            len(self.text_variables),
        )
        return None

    def confirm(
        self,
        raw_rows: Iterable[RawRow],
        client: Optional[ApiClient] = None,
        on_confirm: Optional[Callable[[MappingOutcome], None]] = None,
    ) -> MappingOutcome:
        """Validate, map and (optionally) transmit the uploaded rows.

        Raises
        ------
        MappingValidationError
            If a mandatory field is unmapped; nothing is mapped or sent.
        """
        self.validate()

        current, previous = self.current_label, self.previous_label
        outcome = MappingOutcome(
            rows=self.map_rows(raw_rows),
            current_label=current,
            previous_label=previous,
            financial_variables=build_financial_variables(self.financial_variables, current, previous),
            text_variables=build_text_variables(self.text_variables, current),
        )
        self.outcome = outcome
        if on_confirm is not None:
            on_confirm(outcome)

        logger.info(
            "Mapping confirmed: rows=%d, current=%r, previous=%r",
            len(outcome.rows), current, previous,
        )

        if client is None:
            return outcome

        try:
            client.post_mapped_data(outcome.rows)
            client.post_financial_variables(outcome.financial_variables)
        except ApiError as exc:
            logger.error("Error sending data to the server: %s", exc)
            outcome.error = f"{SEND_FAILED_MESSAGE} {exc}"
        else:
            outcome.sent = True
        return outcome
