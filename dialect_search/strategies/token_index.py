# @TEST tests/test_token_index_strategy.py

"""MySQL/MariaDB FULLTEXT search strategy.

Search runs through ``MATCH(cols) AGAINST(term <mode>)``, which only works
when a FULLTEXT index covers exactly the searched column set. Instead of
silently falling back to a LIKE scan, a search without such an index raises
:class:`MissingIndex`.

Mode selection reuses the threshold argument: below
``FTS_BOOLEAN_MODE_CUTOFF`` (0.1) the permissive BOOLEAN MODE is used,
otherwise NATURAL LANGUAGE MODE. Pass ``mode=`` to choose explicitly.

Terms shorter than ``FTS_MIN_TOKEN_LENGTH`` (InnoDB's
``innodb_ft_min_token_size``, 3 by default) are never indexed, so such a
search matches zero rows. There is no wildcard fallback for short terms: a
``LIKE '%x%'`` scan defeats the index on large tables.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Sequence

from sqlalchemy import Float, type_coerce
from sqlalchemy.dialects.mysql import match
from sqlalchemy.exc import DBAPIError

from dialect_search.constants import RELEVANCE_SCORE, TOKEN_INDEX_SUFFIX, Dialect, SearchMode
from dialect_search.exceptions import InvalidArgument, MissingIndex, SchemaError
from dialect_search.query import QueryBuilder
from dialect_search.strategies.base import SearchStrategy, sanitize_term

logger = logging.getLogger(__name__)

# Characters the natural-language parser chokes on
NATURAL_LANGUAGE_STRIP_CHARS = "@"

# MySQL server error codes
ER_DUP_KEYNAME = 1061
ER_BAD_FT_COLUMN = 1283


def _mysql_error_code(exc: DBAPIError) -> int | None:
    args = getattr(exc.orig, "args", None) or ()
    if args and isinstance(args[0], int):
        return args[0]
    return None


def _is_unsupported_column_error(exc: DBAPIError) -> bool:
    if _mysql_error_code(exc) == ER_BAD_FT_COLUMN:
        return True
    return "cannot be part of fulltext index" in str(exc.orig).lower()


class TokenIndexStrategy(SearchStrategy):
    """Relevance search via FULLTEXT indexes and MATCH ... AGAINST."""

    supported_engines = frozenset({"mysql", "mariadb"})
    index_suffix = TOKEN_INDEX_SUFFIX

    def dialect_name(self) -> str:
        return Dialect.TOKEN_INDEX.value

    # ------------------------------------------------------------------
    # Catalog lookups (always scoped to DATABASE(), never cached)
    # ------------------------------------------------------------------

    async def table_exists(self, table: str) -> bool:
        rows = await self._fetch(
            "SELECT 1 FROM information_schema.tables WHERE table_schema = DATABASE() AND table_name = :table",
            {"table": table},
        )
        return bool(rows)

    async def index_exists(self, table: str, index_name: str | None = None) -> bool:
        self._ensure_engine()
        rows = await self._fetch(
            "SELECT COUNT(*) AS count FROM information_schema.statistics "
            "WHERE table_schema = DATABASE() AND table_name = :table AND index_name = :index",
            {"table": table, "index": index_name or self.default_index_name(table)},
        )
        return bool(rows) and (rows[0][0] or 0) > 0

    async def fulltext_indexes(self, table: str) -> dict[str, list[str]]:
        """Return FULLTEXT index name -> ordered column list for ``table``."""
        rows = await self._fetch(
            "SELECT index_name, column_name FROM information_schema.statistics "
            "WHERE table_schema = DATABASE() AND table_name = :table AND index_type = 'FULLTEXT' "
            "ORDER BY index_name, seq_in_index",
            {"table": table},
        )
        indexes: dict[str, list[str]] = defaultdict(list)
        for index_name, column_name in rows:
            indexes[index_name].append(column_name)
        return dict(indexes)

    async def find_covering_index(self, table: str, columns: Sequence[str]) -> str | None:
        wanted = {name.lower() for name in columns}
        for index_name, index_columns in (await self.fulltext_indexes(table)).items():
            if {name.lower() for name in index_columns} == wanted:
                return index_name
        return None

    # ------------------------------------------------------------------
    # Index lifecycle
    # ------------------------------------------------------------------

    async def create_index(self, table: str, columns: Sequence[str], index_name: str | None = None) -> None:
        self._ensure_engine()
        names = self._validate_columns(columns)
        index_name = index_name or self.default_index_name(table)

        if not await self.table_exists(table):
            raise SchemaError(f"Cannot create FULLTEXT index '{index_name}': table '{table}' does not exist")

        # MySQL has no CREATE FULLTEXT INDEX IF NOT EXISTS
        if await self.index_exists(table, index_name):
            logger.debug("FULLTEXT index %s on %s already exists", index_name, table)
            return

        column_list = ", ".join(self._quote(name) for name in names)
        try:
            await self._execute(
                f"CREATE FULLTEXT INDEX {self._quote(index_name)} ON {self._quote(table)} ({column_list})"
            )
        except DBAPIError as exc:
            if _is_unsupported_column_error(exc):
                raise SchemaError(
                    f"Cannot create FULLTEXT index '{index_name}' on '{table}': one of the columns "
                    f"({', '.join(names)}) has a type that cannot be FULLTEXT indexed. "
                    "Only CHAR, VARCHAR and TEXT columns are supported."
                ) from exc
            if _mysql_error_code(exc) == ER_DUP_KEYNAME:
                logger.debug("FULLTEXT index %s on %s was created concurrently", index_name, table)
                return
            raise

        logger.info("Created FULLTEXT index %s on %s (%s)", index_name, table, ", ".join(names))

    async def drop_index(self, table: str, index_name: str | None = None) -> None:
        self._ensure_engine()
        index_name = index_name or self.default_index_name(table)

        if not await self.index_exists(table, index_name):
            logger.debug("FULLTEXT index %s on %s does not exist, nothing to drop", index_name, table)
            return

        await self._execute(f"DROP INDEX {self._quote(index_name)} ON {self._quote(table)}")
        logger.info("Dropped FULLTEXT index %s on %s", index_name, table)

    # ------------------------------------------------------------------
    # Query rewriting
    # ------------------------------------------------------------------

    def select_mode(self, threshold: float | None) -> SearchMode:
        if threshold is not None and threshold < self._settings.FTS_BOOLEAN_MODE_CUTOFF:
            return SearchMode.BOOLEAN
        return SearchMode.NATURAL_LANGUAGE

    @staticmethod
    def sanitize(term: str, mode: SearchMode = SearchMode.NATURAL_LANGUAGE) -> str:
        strip_chars = NATURAL_LANGUAGE_STRIP_CHARS if mode == SearchMode.NATURAL_LANGUAGE else ""
        return sanitize_term(term, strip_chars)

    async def apply_search(
        self,
        query: QueryBuilder,
        columns: Sequence[str],
        term: str,
        threshold: float | None = None,
        *,
        mode: SearchMode | None = None,
    ) -> QueryBuilder:
        self._ensure_engine(query)
        names = self._validate_columns(columns)
        table = query.table.name

        if mode is None:
            mode = self.select_mode(threshold)
        else:
            try:
                mode = SearchMode(mode)
            except ValueError:
                raise InvalidArgument(f"Unknown search mode {mode!r}") from None

        term = self.sanitize(term, mode)
        if not term:
            logger.debug("Empty FULLTEXT search term on %s, matching nothing", table)
            return self._match_nothing(query)

        min_length = self._settings.FTS_MIN_TOKEN_LENGTH
        if len(term) < min_length:
            logger.warning(
                "Search term %r on %s is shorter than the minimum token length (%d), matching nothing",
                term,
                table,
                min_length,
            )
            return self._match_nothing(query)

        if await self.find_covering_index(table, names) is None:
            raise MissingIndex(table, self.default_index_name(table), names)

        against = match(*(query.column(name) for name in names), against=term)
        against = against.in_boolean_mode() if mode == SearchMode.BOOLEAN else against.in_natural_language_mode()
        score = type_coerce(against, Float)

        query.where(score > 0)
        query.order_by(score.desc())
        query.ensure_default_projection().add_projection(score.label(RELEVANCE_SCORE))
        return query
