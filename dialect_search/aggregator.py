# @TEST tests/test_aggregator.py

"""Cross-entity search with one merged ranking.

Each registered entity runs its own search (and resolves its own strategy),
so scores from different entities come from different engines. They are
merged as-is: descending by ``relevance_score``, rows without a score last,
ties kept in per-entity encounter order.
"""

from __future__ import annotations

import logging
import math
import time
from collections.abc import Mapping, Sequence
from typing import Any

from pydantic import BaseModel

from dialect_search.config import Settings, get_settings
from dialect_search.constants import RELEVANCE_SCORE
from dialect_search.metrics import SearchMetrics
from dialect_search.searchable import SearchableEntity

logger = logging.getLogger(__name__)


class AggregatedResult(BaseModel):
    """A single row of a cross-entity search.

    Attributes:
        type: Type tag of the entity the row came from.
        entity: Identifier of the originating entity.
        score: Relevance score, or None when the row carried none.
        data: The entity's original row.
    """

    type: str
    entity: str
    score: float | None = None
    data: dict[str, Any]


def _read_score(row: Mapping[str, Any], entity: SearchableEntity) -> float | None:
    value = row.get(RELEVANCE_SCORE)
    if value is None:
        return None
    try:
        score = float(value)
    except (TypeError, ValueError):
        logger.warning("Unreadable %s %r from %s, treating as unscored", RELEVANCE_SCORE, value, entity.name)
        return None
    return None if math.isnan(score) else score


def rank_results(results: Sequence[AggregatedResult]) -> list[AggregatedResult]:
    """Stable sort: highest score first, unscored results last."""
    return sorted(results, key=lambda r: (r.score is None, -(r.score or 0.0)))


class SearchAggregator:
    """Fans one search out across registered entities and merges the results.

    Args:
        settings: Search settings (defaults to the cached application settings).
        apply_acl_multipliers: Scale each score by
            ``FTS_ACL_RANKING_MULTIPLIERS[row[FTS_ACL_COLUMN]]`` when the row
            carries a known visibility value.
    """

    def __init__(self, settings: Settings | None = None, apply_acl_multipliers: bool = False) -> None:
        self._settings = settings or get_settings()
        self._apply_acl_multipliers = apply_acl_multipliers
        self._entities: list[SearchableEntity] = []
        self._metrics = SearchMetrics(self._settings)

    def register(self, entity: SearchableEntity) -> SearchAggregator:
        if entity not in self._entities:
            self._entities.append(entity)
        return self

    def registered(self) -> tuple[SearchableEntity, ...]:
        return tuple(self._entities)

    def clear(self) -> SearchAggregator:
        self._entities = []
        return self

    async def search(
        self,
        term: str,
        threshold: float | None = None,
        access_filter: Sequence[Any] | None = None,
        per_entity_limit: int = 20,
    ) -> list[AggregatedResult]:
        """Search every registered entity and return one ranked list.

        Entities without a search callable are skipped. Errors raised by an
        entity's search (configuration, schema, missing index) propagate.
        """
        start = time.perf_counter()
        results: list[AggregatedResult] = []

        for entity in self._entities:
            if entity.search is None:
                logger.warning("Entity %s has no search capability, skipping", entity.name)
                continue

            rows = await entity.search(term, threshold, access_filter, per_entity_limit)
            for row in rows:
                results.append(
                    AggregatedResult(
                        type=entity.type,
                        entity=entity.name,
                        score=self._score(row, entity),
                        data=dict(row),
                    )
                )

        ranked = rank_results(results)
        self._metrics.record_search(term, "aggregate", len(ranked), (time.perf_counter() - start) * 1000)
        return ranked

    def _score(self, row: Mapping[str, Any], entity: SearchableEntity) -> float | None:
        score = _read_score(row, entity)
        if score is None or not self._apply_acl_multipliers:
            return score
        visibility = row.get(self._settings.FTS_ACL_COLUMN)
        try:
            multiplier = self._settings.FTS_ACL_RANKING_MULTIPLIERS.get(visibility)
        except TypeError:
            logger.warning(
                "Unusable %s %r from %s, leaving score unweighted",
                self._settings.FTS_ACL_COLUMN,
                visibility,
                entity.name,
            )
            return score
        return score * multiplier if multiplier is not None else score
