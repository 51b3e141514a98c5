# @TEST tests/test_trigram_strategy.py

"""PostgreSQL pg_trgm-based search strategy.

All searchable columns are folded into one composite text expression::

    coalesce(CAST(title AS TEXT), '') || ' ' || coalesce(CAST(body AS TEXT), '')

The GIN index is built on that exact expression (``gin_trgm_ops``) so the
planner can use it for both the ILIKE prefix branch and the similarity
branch of the search predicate.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from sqlalchemy import ColumnElement, Text, cast, column, func, literal_column, or_
from sqlalchemy.exc import DBAPIError

from dialect_search.constants import RELEVANCE_SCORE, TRIGRAM_INDEX_SUFFIX, Dialect
from dialect_search.exceptions import SchemaError
from dialect_search.query import QueryBuilder
from dialect_search.strategies.base import SearchStrategy, sanitize_term

logger = logging.getLogger(__name__)

_LIKE_ESCAPE = "!"


def _escape_like(term: str) -> str:
    return term.replace(_LIKE_ESCAPE, _LIKE_ESCAPE * 2).replace("%", _LIKE_ESCAPE + "%").replace("_", _LIKE_ESCAPE + "_")


def composite_expression(columns: Sequence[ColumnElement[Any]]) -> ColumnElement[Any]:
    """Null-safe, space-joined text concatenation of ``columns``."""
    parts = [func.coalesce(cast(col, Text), literal_column("''")) for col in columns]
    expr = parts[0]
    for part in parts[1:]:
        expr = expr.concat(literal_column("' '")).concat(part)
    return expr.self_group()


class TrigramStrategy(SearchStrategy):
    """Similarity search via pg_trgm.

    Matches rows whose composite text starts with the term (case-insensitive)
    or whose trigram similarity to the term exceeds the threshold. Results
    are ordered by similarity, highest first.

    Thresholds are passed to PostgreSQL unchanged. similarity() never exceeds
    1.0, so a threshold >= 1.0 leaves only the prefix branch able to match.
    """

    supported_engines = frozenset({"postgresql", "postgres", "pgsql"})
    index_suffix = TRIGRAM_INDEX_SUFFIX

    def dialect_name(self) -> str:
        return Dialect.TRIGRAM.value

    # ------------------------------------------------------------------
    # Index lifecycle
    # ------------------------------------------------------------------

    async def index_exists(self, table: str, index_name: str | None = None) -> bool:
        self._ensure_engine()
        rows = await self._fetch(
            "SELECT 1 FROM pg_indexes "
            "WHERE schemaname = current_schema() AND tablename = :table AND indexname = :index",
            {"table": table, "index": index_name or self.default_index_name(table)},
        )
        return bool(rows)

    async def create_index(self, table: str, columns: Sequence[str], index_name: str | None = None) -> None:
        self._ensure_engine()
        names = self._validate_columns(columns)
        index_name = index_name or self.default_index_name(table)

        try:
            await self._execute("CREATE EXTENSION IF NOT EXISTS pg_trgm")

            if await self.index_exists(table, index_name):
                logger.debug("Trigram index %s on %s already exists", index_name, table)
                return

            await self._execute(
                f"CREATE INDEX IF NOT EXISTS {self._quote(index_name)} "
                f"ON {self._quote(table)} "
                f"USING GIN (({self.index_expression(names)}) gin_trgm_ops)"
            )
        except DBAPIError as exc:
            raise SchemaError(f"Could not create trigram index '{index_name}' on '{table}': {exc.orig}") from exc

        logger.info("Created trigram index %s on %s (%s)", index_name, table, ", ".join(names))

    async def drop_index(self, table: str, index_name: str | None = None) -> None:
        self._ensure_engine()
        index_name = index_name or self.default_index_name(table)
        await self._execute(f"DROP INDEX IF EXISTS {self._quote(index_name)}")
        logger.info("Dropped trigram index %s (table %s)", index_name, table)

    def index_expression(self, columns: Sequence[str]) -> str:
        """Render the composite expression over bare column names for DDL."""
        expr = composite_expression([column(name) for name in columns])
        compiled = expr.compile(dialect=self._engine.dialect, compile_kwargs={"literal_binds": True})
        return str(compiled)

    # ------------------------------------------------------------------
    # Query rewriting
    # ------------------------------------------------------------------

    async def apply_search(
        self,
        query: QueryBuilder,
        columns: Sequence[str],
        term: str,
        threshold: float | None = None,
    ) -> QueryBuilder:
        self._ensure_engine(query)
        names = self._validate_columns(columns)

        term = sanitize_term(term)
        if not term:
            logger.debug("Empty trigram search term on %s, matching nothing", query.table.name)
            return self._match_nothing(query)

        if threshold is None:
            threshold = self._settings.FTS_SIMILARITY_THRESHOLD

        expr = composite_expression([query.column(name) for name in names])
        score = func.similarity(expr, term)

        query.where(
            or_(
                expr.ilike(_escape_like(term) + "%", escape=_LIKE_ESCAPE),
                score > float(threshold),
            )
        )
        query.order_by(score.desc())
        query.ensure_default_projection().add_projection(score.label(RELEVANCE_SCORE))
        return query
