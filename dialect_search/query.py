"""Mutable query builder handed to search strategies.

SQLAlchemy ``Select`` objects are immutable, so strategies work on a
``QueryBuilder`` instead: every mutating method changes the builder in place
and returns it, and ``statement`` renders the current state as a ``Select``.

Usage::

    query = QueryBuilder(articles)                     # full-table projection
    query = QueryBuilder(articles, articles.c.id)      # custom projection
    await strategy.apply_search(query, ["title", "body"], "database")
    rows = (await session.execute(query.statement)).mappings().all()
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import ColumnElement, Select, Table, select
from sqlalchemy.ext.asyncio import AsyncEngine

from dialect_search.exceptions import InvalidArgument


class QueryBuilder:
    """Predicate, projection and ordering state for a single-table query.

    Args:
        table: The table being searched.
        *columns: Custom projection. Leave empty for the table's default
            (all columns) projection.
        bind: Engine the query will run on, if known. Strategies check it
            against their own engine kind.
    """

    def __init__(self, table: Table, *columns: Any, bind: AsyncEngine | None = None) -> None:
        self.table = table
        self.bind = bind
        self._projection: list[Any] = list(columns)
        self._criteria: list[ColumnElement[Any]] = []
        self._ordering: list[Any] = []
        self._limit: int | None = None
        self._offset: int | None = None

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def projection(self) -> list[Any]:
        """Return a copy of the current projection list."""
        return list(self._projection)

    @property
    def is_projection_customized(self) -> bool:
        return bool(self._projection)

    @property
    def criteria(self) -> list[ColumnElement[Any]]:
        return list(self._criteria)

    @property
    def ordering(self) -> list[Any]:
        return list(self._ordering)

    def column(self, name: str) -> ColumnElement[Any]:
        """Look up a column of the searched table by name."""
        try:
            return self.table.c[name]
        except KeyError:
            raise InvalidArgument(f"Table '{self.table.name}' has no column '{name}'") from None

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def where(self, *clauses: ColumnElement[Any]) -> QueryBuilder:
        self._criteria.extend(clauses)
        return self

    def ensure_default_projection(self) -> QueryBuilder:
        """Inject the table's full projection when none was specified."""
        if not self._projection:
            self._projection = list(self.table.c)
        return self

    def add_projection(self, *columns: Any) -> QueryBuilder:
        self._projection.extend(columns)
        return self

    def order_by(self, *clauses: Any) -> QueryBuilder:
        self._ordering.extend(clauses)
        return self

    def limit(self, limit: int | None) -> QueryBuilder:
        self._limit = limit
        return self

    def offset(self, offset: int | None) -> QueryBuilder:
        self._offset = offset
        return self

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    @property
    def statement(self) -> Select[Any]:
        stmt = select(*(self._projection or [self.table])).select_from(self.table)
        if self._criteria:
            stmt = stmt.where(*self._criteria)
        if self._ordering:
            stmt = stmt.order_by(*self._ordering)
        if self._limit is not None:
            stmt = stmt.limit(self._limit)
        if self._offset is not None:
            stmt = stmt.offset(self._offset)
        return stmt

    def __repr__(self) -> str:
        return f"<QueryBuilder {self.table.name} criteria={len(self._criteria)} ordering={len(self._ordering)}>"
