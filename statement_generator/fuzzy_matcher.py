"""
Column Suggestion Layer.

Auto-mapping only accepts exact (case/whitespace-insensitive) alias hits.
When a field is left unmapped, this layer uses ``rapidfuzz`` to rank the
uploaded columns by similarity to the field's label and aliases so the user
can be offered likely candidates.  Suggestions are advisory: they are never
written into the mapping.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List

from rapidfuzz import fuzz, process

from statement_generator.config import MapperConfig
from statement_generator.logging_setup import get_logger
from statement_generator.normalizer import normalize_header

logger = get_logger("fuzzy_matcher")


@dataclass
class ColumnSuggestion:
    """A single candidate column for an unmapped field."""

    column: str
    score: float  # 0-100
    matched: str  # the label or alias that scored best

    def to_dict(self) -> dict:
        return {"column": self.column, "score": round(self.score, 1), "matched": self.matched}


class ColumnSuggester:
    """Rank uploaded columns against a field's label and aliases.

    Parameters
    ----------
    columns:
        Column names exactly as they appear in the uploaded file.
    config:
        Threshold and result-count limits.
    """

    def __init__(self, columns: Iterable[str], config: MapperConfig) -> None:
        self._config = config
        # normalised → original spelling (first occurrence wins)
        self._columns: dict[str, str] = {}
        for col in columns:
            self._columns.setdefault(normalize_header(col), col)
        self._keys: list[str] = [k for k in self._columns if k]

    def suggest(self, targets: Iterable[str]) -> List[ColumnSuggestion]:
        """Return the best columns for any of *targets*, best first."""
        if not self._keys:
            return []

        targets = list(targets)
        best: dict[str, ColumnSuggestion] = {}
        for target in targets:
            norm_target = normalize_header(target)
            if not norm_target:
                continue
            # token_set_ratio tolerates extra words ("Amount INR", "GL Account No")
            results = process.extract(
                norm_target,
                self._keys,
                scorer=fuzz.token_set_ratio,
                limit=self._config.suggestion_limit,
            )
            for key, score, _ in results:
                if score < self._config.suggestion_threshold:
                    continue
                column = self._columns[key]
                current = best.get(column)
                if current is None or score > current.score:
                    best[column] = ColumnSuggestion(column=column, score=score, matched=target)

        ranked = sorted(best.values(), key=lambda s: (-s.score, s.column))
        ranked = ranked[: self._config.suggestion_limit]
        logger.debug("Suggestions for %r: %s", targets, ranked)
        return ranked
