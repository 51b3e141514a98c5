# @TEST tests/test_searchable.py

"""Searchable models and entity descriptors.

A declarative model opts into search by mixing in :class:`Searchable` and
declaring its columns::

    class Article(Searchable, Base):
        __tablename__ = "articles"
        __searchable__ = ("title", "body")

        id: Mapped[int] = mapped_column(primary_key=True)
        ...

    query = await Article.search("database engines", acl=["public"])
    rows = await Article.search_rows(session, "database engines", limit=10)

For cross-entity search, describe each model with
:meth:`SearchableEntity.from_model` and register it on a
:class:`~dialect_search.aggregator.SearchAggregator`.
"""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, ClassVar

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from dialect_search.exceptions import InvalidArgument
from dialect_search.metrics import SearchMetrics
from dialect_search.query import QueryBuilder
from dialect_search.resolver import StrategyResolver, get_resolver

SearchCallable = Callable[
    [str, float | None, Sequence[Any] | None, int],
    Awaitable[Sequence[Mapping[str, Any]]],
]


class Searchable:
    """Mixin for declarative models searchable through the resolved strategy."""

    __searchable__: ClassVar[Sequence[str]] = ()
    __search_connection__: ClassVar[str | None] = None

    @classmethod
    def searchable_columns(cls) -> list[str]:
        columns = list(getattr(cls, "__searchable__", ()) or ())
        if not columns:
            raise InvalidArgument(f"{cls.__name__} must declare a non-empty __searchable__ column list")
        return columns

    @classmethod
    async def search(
        cls,
        term: str,
        threshold: float | None = None,
        acl: Sequence[Any] | None = None,
        *,
        resolver: StrategyResolver | None = None,
        query: QueryBuilder | None = None,
    ) -> QueryBuilder:
        """Build a search query over this model's table.

        Args:
            term: Raw search term.
            threshold: Similarity threshold; defaults to ``FTS_SIMILARITY_THRESHOLD``.
            acl: Allowed values of the ``FTS_ACL_COLUMN`` column. Empty or
                ``None`` applies no access filter.
            resolver: Strategy resolver (defaults to the process-wide one).
            query: Builder to extend; a full-table builder is created if omitted.
        """
        resolver = resolver or get_resolver()
        settings = resolver.settings
        if threshold is None:
            threshold = settings.FTS_SIMILARITY_THRESHOLD

        query = query if query is not None else QueryBuilder(cls.__table__)  # type: ignore[attr-defined]
        strategy = resolver.resolve(cls.__search_connection__)
        await strategy.apply_search(query, cls.searchable_columns(), term, threshold)

        if acl:
            query.where(query.column(settings.FTS_ACL_COLUMN).in_(list(acl)))
        return query

    @classmethod
    async def search_rows(
        cls,
        session: AsyncSession,
        term: str,
        threshold: float | None = None,
        acl: Sequence[Any] | None = None,
        limit: int | None = None,
        *,
        resolver: StrategyResolver | None = None,
    ) -> list[dict[str, Any]]:
        """Execute :meth:`search` and return rows as dicts (including ``relevance_score``)."""
        resolver = resolver or get_resolver()
        start = time.perf_counter()

        query = await cls.search(term, threshold, acl, resolver=resolver)
        query.limit(limit)
        result = await session.execute(query.statement)
        rows = [dict(row) for row in result.mappings().all()]

        SearchMetrics(resolver.settings).record_search(
            term,
            resolver.resolve(cls.__search_connection__).dialect_name(),
            len(rows),
            (time.perf_counter() - start) * 1000,
        )
        return rows


@dataclass(frozen=True, slots=True)
class SearchableEntity:
    """Registration record for cross-entity search.

    Equality ignores ``search``, so registering the same entity twice
    (even with a fresh callable) is a no-op.

    Attributes:
        name: Unique identifier of the entity (e.g. dotted model path).
        table: Table the entity searches.
        columns: Searchable columns of that table.
        search: ``(term, threshold, acl, limit) -> rows``. ``None`` marks an
            entity without search capability; the aggregator skips it.
        type_tag: Short type label put on aggregated results (defaults to ``name``).
    """

    name: str
    table: str
    columns: tuple[str, ...] = ()
    search: SearchCallable | None = field(default=None, compare=False)
    type_tag: str | None = None

    @property
    def type(self) -> str:
        return self.type_tag or self.name

    @classmethod
    def from_model(
        cls,
        model: type[Searchable],
        session_factory: async_sessionmaker[AsyncSession],
        resolver: StrategyResolver | None = None,
    ) -> SearchableEntity:
        """Describe a :class:`Searchable` model, searching in a fresh session per call."""

        async def _search(
            term: str,
            threshold: float | None,
            acl: Sequence[Any] | None,
            limit: int,
        ) -> list[dict[str, Any]]:
            async with session_factory() as session:
                return await model.search_rows(session, term, threshold, acl, limit, resolver=resolver)

        return cls(
            name=f"{model.__module__}.{model.__qualname__}",
            table=model.__tablename__,  # type: ignore[attr-defined]
            columns=tuple(model.searchable_columns()),
            search=_search,
            type_tag=model.__name__,
        )
