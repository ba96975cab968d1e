"""
Header and Amount Normalization Layer.

Transforms raw spreadsheet headers and cell values into uniform, comparable
representations so the column mapper and the editors operate on clean data.

* Headers are compared case- and whitespace-insensitively.
* Amounts are cleaned leniently: anything that is not a digit, a decimal
  point or a minus sign is stripped, and a value that still fails to parse
  becomes ``0.0`` instead of an error.
"""

from __future__ import annotations

import math
import re
from typing import Any, Optional

from statement_generator.logging_setup import get_logger

logger = get_logger("normalizer")


# Everything except digits, '.', and '-'
_NON_NUMERIC_RE = re.compile(r"[^0-9.\-]")

# Longest leading float literal, as a browser's parseFloat would read it
_LEADING_FLOAT_RE = re.compile(r"^[-]?(\d+\.?\d*|\.\d+)")

_MULTI_SPACE_RE = re.compile(r"\s+")


def normalize_header(raw: Any) -> str:
    """Return the comparable form of a column header (lowercase, single-spaced)."""
    text = "" if raw is None else str(raw)
    return _MULTI_SPACE_RE.sub(" ", text.strip().lower())


def clean_amount(value: Any) -> float:
    """Coerce a raw cell into a float, falling back to ``0.0``.

    >>> clean_amount("$1,234.50")
    1234.5
    >>> clean_amount("abc")
    0.0
    """
    if isinstance(value, str):
        cleaned = _NON_NUMERIC_RE.sub("", value)
        m = _LEADING_FLOAT_RE.match(cleaned)
        if m is None:
            if value.strip():
                logger.debug("clean_amount: %r is not numeric; using 0", value)
            return 0.0
        return float(m.group(0)) + 0.0

    if value is None:
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        logger.debug("clean_amount: cannot coerce %r; using 0", value)
        return 0.0
    if math.isnan(number):
        return 0.0
    return number


def _group_indian(integer_part: str) -> str:
    if len(integer_part) <= 3:
        return integer_part
    head, tail = integer_part[:-3], integer_part[-3:]
    groups = []
    while len(head) > 2:
        groups.insert(0, head[-2:])
        head = head[:-2]
    if head:
        groups.insert(0, head)
    return ",".join(groups + [tail])


def format_currency(amount: Optional[float]) -> str:
    """Render an amount with Indian digit grouping and two decimals.

    Negative amounts are shown in parentheses; ``None`` and NaN render as an
    empty string.
    """
    if amount is None:
        return ""
    try:
        number = float(amount)
    except (TypeError, ValueError):
        return ""
    if math.isnan(number):
        return ""

    integer_part, decimals = f"{abs(number):.2f}".split(".")
    text = f"{_group_indian(integer_part)}.{decimals}"
    return f"({text})" if number < 0 else text
