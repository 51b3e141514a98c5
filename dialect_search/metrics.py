"""Search metrics: one log record per executed search."""

import logging

from dialect_search.config import Settings

logger = logging.getLogger(__name__)


class SearchMetrics:
    """Record search timings and result counts through logging."""

    def __init__(self, settings: Settings) -> None:
        self._enabled = settings.FTS_METRICS_ENABLED

    @property
    def enabled(self) -> bool:
        return self._enabled

    def record_search(self, term: str, driver: str, result_count: int, duration_ms: float) -> None:
        if not self._enabled:
            return
        logger.info(
            "search term=%r driver=%s results=%d duration_ms=%.1f",
            term,
            driver,
            result_count,
            duration_ms,
        )
