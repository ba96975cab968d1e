"""
Backend REST client.

Thin wrapper over ``requests`` for the journal / financial-variables API.
The backend itself is out of scope; this module only knows its paths and
payload shapes.  Every transport failure or non-2xx response is raised as
``ApiError`` so callers have one exception to turn into a visible message.
"""

from __future__ import annotations

from typing import Any, Iterable, List, Optional

import requests

from statement_generator.config import ApiConfig
from statement_generator.errors import ApiError
from statement_generator.logging_setup import get_logger
from statement_generator.schema import GLAccountInfo, JournalEntry, MappedRow

logger = get_logger("api_client")


JOURNAL_METADATA = "/api/journal/metadata"
JOURNAL_BATCH_UPDATE = "/api/journal/batch-update"
FINANCIAL_VARIABLES = "/api/financial_variables"
TEXT_KEYS = "/api/text_keys"
MAPPED_DATA = "/api/data"
FINANCIAL_VARIABLES_UPDATED = "/api/financialvar-updated"
TRIAL_BALANCE_PERIODS = "/api/trial-balance/periods"


class ApiClient:
    """Issue requests against the backend API.

    Parameters
    ----------
    config:
        Base URL and timeout.
    session:
        Optional pre-built ``requests.Session`` (or compatible object).
    """

    def __init__(
        self,
        config: Optional[ApiConfig] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._config = config or ApiConfig()
        self._session = session or requests.Session()

    # ------------------------------------------------------------------ #
    # Transport
    # ------------------------------------------------------------------ #

    def _request(self, method: str, path: str, payload: Any = None) -> Any:
        url = self._config.url(path)
        logger.info("%s %s", method, url)
        try:
            response = self._session.request(
                method,
                url,
                json=payload,
                timeout=self._config.timeout,
            )
        except requests.exceptions.Timeout as exc:
            logger.warning("Timeout on %s %s", method, url)
            raise ApiError(f"Request to {path} timed out") from exc
        except requests.exceptions.RequestException as exc:
            logger.error("Transport error on %s %s: %s", method, url, exc)
            raise ApiError(f"Request to {path} failed: {exc}") from exc

        if not 200 <= response.status_code < 300:
            logger.error("%s %s returned HTTP %d", method, url, response.status_code)
            raise ApiError(
                f"{path} returned HTTP {response.status_code}",
                status_code=response.status_code,
            )

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise ApiError(f"{path} returned a non-JSON body") from exc

    def _get(self, path: str) -> Any:
        return self._request("GET", path)

    def _post(self, path: str, payload: Any) -> Any:
        return self._request("POST", path, payload)

    # ------------------------------------------------------------------ #
    # Journal
    # ------------------------------------------------------------------ #

    def fetch_journal_metadata(self) -> tuple[List[GLAccountInfo], List[str]]:
        """Return ``(gl_accounts, periods)`` from the single metadata request."""
        data = self._get(JOURNAL_METADATA) or {}
        accounts = [GLAccountInfo.from_dict(a) for a in data.get("glAccounts") or []]
        periods = [str(p) for p in data.get("periods") or []]
        logger.info("Metadata: %d GL accounts, %d periods", len(accounts), len(periods))
        return accounts, periods

    def post_journal_batch(self, entries: Iterable[JournalEntry]) -> Any:
        payload = [e.to_dict() for e in entries]
        logger.info("Posting %d journal entries", len(payload))
        return self._post(JOURNAL_BATCH_UPDATE, payload)

    # ------------------------------------------------------------------ #
    # Mapping side effects
    # ------------------------------------------------------------------ #

    def fetch_financial_variables(self) -> List[dict[str, Any]]:
        return list(self._get(FINANCIAL_VARIABLES) or [])

    def fetch_text_keys(self) -> List[dict[str, Any]]:
        return list(self._get(TEXT_KEYS) or [])

    def post_mapped_data(self, rows: Iterable[MappedRow]) -> Any:
        return self._post(MAPPED_DATA, {"mappedData": [r.to_dict() for r in rows]})

    def post_financial_variables(self, rows: List[dict[str, Any]]) -> Any:
        return self._post(FINANCIAL_VARIABLES_UPDATED, {"financialVar1": rows})

    # ------------------------------------------------------------------ #
    # Period selection
    # ------------------------------------------------------------------ #

    def fetch_trial_balance_periods(self) -> List[str]:
        data = self._get(TRIAL_BALANCE_PERIODS) or {}
        return [str(p) for p in data.get("periods") or []]


def default_period_pair(periods: List[str]) -> Optional[tuple[str, str]]:
    """Pick ``(current, previous)`` as the first two periods, if available."""
    if len(periods) < 2:
        return None
    return periods[0], periods[1]
