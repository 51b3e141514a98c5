"""Search strategy contract.

Every dialect strategy exposes the same surface:

    dialect_name()                                  -> str
    await index_exists(table, index_name=None)      -> bool
    await create_index(table, columns, index_name)  -> None   (idempotent)
    await drop_index(table, index_name=None)        -> None   (idempotent)
    await apply_search(query, columns, term, threshold) -> QueryBuilder

Strategies hold no per-call state, so one instance per connection identity
can be shared by every request on that connection.
"""

from __future__ import annotations

import logging
import unicodedata
from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any, ClassVar

from sqlalchemy import false, text
from sqlalchemy.engine import Row
from sqlalchemy.ext.asyncio import AsyncEngine

from dialect_search.config import Settings, get_settings
from dialect_search.constants import DEFAULT_CONNECTION
from dialect_search.exceptions import InvalidArgument, WrongDriver
from dialect_search.query import QueryBuilder

logger = logging.getLogger(__name__)


def sanitize_term(term: str, strip_chars: str = "") -> str:
    """Normalize a raw search term.

    Whitespace characters become spaces, other control characters and any
    ``strip_chars`` are removed, whitespace runs collapse to a single space,
    and the result is trimmed. Applying it twice gives the same result.
    """
    kept = []
    for ch in term:
        if ch.isspace():
            kept.append(" ")
        elif ch in strip_chars or unicodedata.category(ch) == "Cc":
            continue
        else:
            kept.append(ch)
    return " ".join("".join(kept).split())


class SearchStrategy(ABC):
    """Dialect-specific search implementation bound to one engine.

    Args:
        engine: Async engine of the connection this strategy serves.
        connection_name: Connection identity the strategy was resolved for.
        settings: Search settings (defaults to the cached application settings).
    """

    supported_engines: ClassVar[frozenset[str]] = frozenset()
    index_suffix: ClassVar[str] = ""

    def __init__(
        self,
        engine: AsyncEngine,
        connection_name: str = DEFAULT_CONNECTION,
        settings: Settings | None = None,
    ) -> None:
        self._engine = engine
        self._connection_name = connection_name
        self._settings = settings or get_settings()

    # ------------------------------------------------------------------
    # Contract
    # ------------------------------------------------------------------

    @abstractmethod
    def dialect_name(self) -> str:
        """Stable identifier of the search dialect."""

    @abstractmethod
    async def index_exists(self, table: str, index_name: str | None = None) -> bool:
        """Check the catalog for the search index. Never cached."""

    @abstractmethod
    async def create_index(self, table: str, columns: Sequence[str], index_name: str | None = None) -> None:
        """Create the search index unless it already exists."""

    @abstractmethod
    async def drop_index(self, table: str, index_name: str | None = None) -> None:
        """Drop the search index if it exists."""

    @abstractmethod
    async def apply_search(
        self,
        query: QueryBuilder,
        columns: Sequence[str],
        term: str,
        threshold: float | None = None,
    ) -> QueryBuilder:
        """Add the match predicate, ``relevance_score`` projection and ordering."""

    # ------------------------------------------------------------------
    # Shared helpers
    # ------------------------------------------------------------------

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    @property
    def engine_kind(self) -> str:
        return self._engine.dialect.name

    @property
    def connection_name(self) -> str:
        return self._connection_name

    def default_index_name(self, table: str) -> str:
        return f"{table}{self.index_suffix}"

    def _ensure_engine(self, query: QueryBuilder | None = None) -> None:
        kinds = [self.engine_kind]
        if query is not None and query.bind is not None:
            kinds.append(query.bind.dialect.name)
        for kind in kinds:
            if kind not in self.supported_engines:
                raise WrongDriver(self.dialect_name(), kind)

    @staticmethod
    def _validate_columns(columns: Sequence[str]) -> list[str]:
        if isinstance(columns, str):
            raise InvalidArgument("columns must be a sequence of column names, not a string")
        names = list(columns)
        if not names:
            raise InvalidArgument("At least one searchable column is required")
        if any(not isinstance(name, str) or not name.strip() for name in names):
            raise InvalidArgument(f"Invalid column name in {names!r}")
        if len({name.lower() for name in names}) != len(names):
            raise InvalidArgument(f"Duplicate column name in {names!r}")
        return names

    def _quote(self, identifier: str) -> str:
        return self._engine.dialect.identifier_preparer.quote(identifier)

    @staticmethod
    def _match_nothing(query: QueryBuilder) -> QueryBuilder:
        return query.where(false())

    async def _execute(self, sql: str, params: dict[str, Any] | None = None) -> None:
        """Run a DDL statement in its own transaction."""
        async with self._engine.begin() as conn:
            await conn.execute(text(sql), params or {})

    async def _fetch(self, sql: str, params: dict[str, Any] | None = None) -> list[Row[Any]]:
        async with self._engine.connect() as conn:
            result = await conn.execute(text(sql), params or {})
            return list(result.fetchall())

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self._connection_name} ({self.engine_kind})>"
