"""
Configuration module for the statement generator.

All tuneable parameters (backend location, mandatory mapping fields,
suggestion thresholds, upload limits) live here.  Nothing is hard-coded in
business logic modules.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Optional


DEFAULT_API_URL = "http://localhost:5000"


@dataclass(frozen=True)
class ApiConfig:
    """Where the backend journal / financial-variables API lives."""

    base_url: str = DEFAULT_API_URL

    # Seconds before a single request is abandoned
    timeout: float = 30.0

    @classmethod
    def from_env(cls) -> "ApiConfig":
        """Build from ``STATEMENT_API_URL`` / ``STATEMENT_API_TIMEOUT``."""
        return cls(
            base_url=os.environ.get("STATEMENT_API_URL", DEFAULT_API_URL),
            timeout=float(os.environ.get("STATEMENT_API_TIMEOUT", "30")),
        )

    def url(self, path: str) -> str:
        return f"{self.base_url.rstrip('/')}/{path.lstrip('/')}"


@dataclass(frozen=True)
class MapperConfig:
    """Controls the column-mapping layer."""

    # Canonical fields that must be mapped before confirmation succeeds.
    required_fields: tuple[str, ...] = (
        "Level 1 Desc",
        "Level 2 Desc",
        "amountCurrent",
    )

    # When True, both amount fields need a period type and an ISO date.
    require_period_meta: bool = False

    # Fuzzy suggestions: minimum similarity score (0-100) to offer a column
    suggestion_threshold: float = 60.0

    # Maximum number of suggested columns per unmapped field
    suggestion_limit: int = 3


@dataclass(frozen=True)
class AppConfig:
    """Top-level configuration aggregating all sub-configs."""

    api: ApiConfig = field(default_factory=ApiConfig)
    mapper: MapperConfig = field(default_factory=MapperConfig)

    log_level: int = logging.INFO
    log_file: Optional[str] = None

    # Upload size cap enforced by the web layer
    max_upload_bytes: int = 16 * 1024 * 1024
