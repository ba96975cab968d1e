"""
Adjustment Journal.

Posts period-keyed debit/credit adjustments against the GL accounts the
backend knows about.

Lifecycle::

    LOADING ──load_metadata──▶ READY ──add_row/add_period──▶ COMPOSING
    COMPOSING ──post──▶ POSTING ──ok──▶ DONE
                                └─fail─▶ READY (error set, rows kept)

Nothing is retried automatically; the caller re-invokes ``post``.
"""

from __future__ import annotations

import math
from enum import Enum
from typing import List, Optional, Union

from statement_generator.api_client import ApiClient
from statement_generator.errors import ApiError, EmptyBatchError, JournalError
from statement_generator.logging_setup import get_logger
from statement_generator.schema import (
    GLAccountInfo,
    JournalEntry,
    JournalRow,
    TransactionType,
)

logger = get_logger("journal")

METADATA_FAILED_MESSAGE = "Failed to fetch data from the server."
EMPTY_BATCH_MESSAGE = "No valid entries to post."
POST_FAILED_MESSAGE = "Failed to post journal entries."


class PageState(str, Enum):
    LOADING = "loading"
    READY = "ready"
    COMPOSING = "composing"
    POSTING = "posting"
    DONE = "done"


def signed_value(transaction_type: TransactionType, amount: float) -> float:
    """Credits are posted as negative magnitudes; debits keep their value."""
    if transaction_type is TransactionType.CREDIT:
        return -abs(amount)
    return amount


def build_batch(rows: List[JournalRow], periods: List[str]) -> List[JournalEntry]:
    """Flatten rows × selected periods into signed entries.

    Rows without a GL account and blank or NaN amounts are skipped.
    """
    entries: List[JournalEntry] = []
    for row in rows:
        if not row.selected_gl_account:
            continue
        for period in periods:
            amount = row.amounts.get(period)
            if isinstance(amount, bool) or not isinstance(amount, (int, float)):
                continue
            if math.isnan(amount):
                continue
            entries.append(JournalEntry(
                gl_account=row.selected_gl_account,
                period=period,
                value=signed_value(row.transaction_type, float(amount)),
            ))
    return entries


class JournalPage:
    """State holder for one adjustment-journal session.

    Parameters
    ----------
    client:
        Backend client used for the metadata fetch and the batch post.
    """

    def __init__(self, client: ApiClient) -> None:
        self._client = client
        self.state = PageState.LOADING
        self.error: Optional[str] = None
        self.gl_accounts: List[GLAccountInfo] = []
        self.periods: List[str] = []
        self.rows: List[JournalRow] = []
        self.selected_periods: List[str] = []

    # ------------------------------------------------------------------ #
    # Metadata
    # ------------------------------------------------------------------ #

    def load_metadata(self) -> bool:
        """Fetch GL accounts and periods; returns False (with ``error``) on failure."""
        self.state = PageState.LOADING
        try:
            self.gl_accounts, self.periods = self._client.fetch_journal_metadata()
        except ApiError as exc:
            logger.error("Metadata fetch failed: %s", exc)
            self.error = METADATA_FAILED_MESSAGE
            self.state = PageState.READY
            return False
        self.error = None
        self.state = PageState.COMPOSING if self.rows else PageState.READY
        return True

    def available_periods(self) -> List[str]:
        """Fetched periods not yet selected, in backend order."""
        return [p for p in self.periods if p not in self.selected_periods]

    @property
    def account_codes(self) -> List[str]:
        return [a.gl_account for a in self.gl_accounts]

    # ------------------------------------------------------------------ #
    # Composition
    # ------------------------------------------------------------------ #

    def _compose(self) -> None:
        if self.state is PageState.POSTING:
            raise JournalError("A post is already in flight")
        if self.state is PageState.LOADING:
            raise JournalError("Metadata has not been loaded")
        self.state = PageState.COMPOSING

    def add_row(self) -> JournalRow:
        self._compose()
        row = JournalRow()
        self.rows.append(row)
        return row

    def add_period(self, period: str) -> None:
        self._compose()
        if not period or period in self.selected_periods:
            return
        if period not in self.periods:
            raise JournalError(f"Unknown period {period!r}")
        self.selected_periods.append(period)

    def row(self, row_id: str) -> JournalRow:
        for row in self.rows:
            if row.id == row_id:
                return row
        raise JournalError(f"No journal row {row_id!r}")

    def select_account(self, row_id: str, gl_account: Optional[str]) -> None:
        self._compose()
        if gl_account and self.gl_accounts and gl_account not in self.account_codes:
            raise JournalError(f"Unknown GL account {gl_account!r}")
        self.row(row_id).selected_gl_account = gl_account or None

    def select_type(self, row_id: str, transaction_type: Union[TransactionType, str]) -> None:
        self._compose()
        try:
            self.row(row_id).transaction_type = TransactionType(transaction_type)
        except ValueError as exc:
            raise JournalError(f"Unknown transaction type {transaction_type!r}") from exc

    def set_amount(self, row_id: str, period: str, raw: Union[str, float, None]) -> None:
        """Set one amount; ``""`` or ``None`` leaves the cell blank."""
        self._compose()
        row = self.row(row_id)
        if raw is None or (isinstance(raw, str) and not raw.strip()):
            row.amounts[period] = ""
            return
        try:
            row.amounts[period] = float(raw)
        except (TypeError, ValueError) as exc:
            raise JournalError(f"Amount {raw!r} is not a number") from exc

    # ------------------------------------------------------------------ #
    # Posting
    # ------------------------------------------------------------------ #

    def build_batch(self) -> List[JournalEntry]:
        return build_batch(self.rows, self.selected_periods)

    def post(self) -> bool:
        """Post every valid entry as one batch.

        Raises
        ------
        EmptyBatchError
            When no row yields an entry; no request is made.
        JournalError
            When a post is already in flight.
        """
        if self.state is PageState.POSTING:
            raise JournalError("A post is already in flight")

        entries = self.build_batch()
        if not entries:
            self.error = EMPTY_BATCH_MESSAGE
            logger.warning("Post rejected: empty batch")
            raise EmptyBatchError(EMPTY_BATCH_MESSAGE)

        self.state = PageState.POSTING
        try:
            self._client.post_journal_batch(entries)
        except ApiError as exc:
            logger.error("Batch post failed: %s", exc)
            self.error = f"{POST_FAILED_MESSAGE} {exc}"
            self.state = PageState.READY
            return False

        logger.info("Posted %d journal entries", len(entries))
        self.error = None
        self.state = PageState.DONE
        return True
