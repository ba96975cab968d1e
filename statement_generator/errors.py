"""
Exception hierarchy.

Every failure raised by the package derives from ``StatementError`` so the
web layer can translate it into a JSON error payload in one place.
"""

from __future__ import annotations

from typing import Optional


class StatementError(Exception):
    """Base class for all statement-generator errors."""


class SchemaError(StatementError):
    """A payload does not match the expected note / item shape."""


class MappingError(StatementError):
    """An invalid column-mapping operation (unknown field or column)."""


class MappingValidationError(MappingError):
    """Confirmation attempted with mandatory fields left unmapped."""

    def __init__(self, message: str, missing: Optional[list[str]] = None) -> None:
        super().__init__(message)
        self.missing = missing or []


class EditError(StatementError):
    """An edit targeted a path or cell that cannot be edited."""


class JournalError(StatementError):
    """An invalid adjustment-journal operation."""


class EmptyBatchError(JournalError):
    """Posting was requested but no row produced a postable entry."""


class UnsupportedFileError(StatementError):
    """The uploaded file type cannot be read."""


class ApiError(StatementError):
    """A backend request failed (transport error or non-2xx status)."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code
