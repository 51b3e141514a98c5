"""Index management helpers for migrations.

Reads a model's declared searchable columns and delegates to the strategy
resolved for the model's connection::

    async def upgrade() -> None:
        await create_search_index(Article)

    async def downgrade() -> None:
        await drop_search_index(Article)
"""

from __future__ import annotations

from dialect_search.resolver import StrategyResolver, get_resolver
from dialect_search.searchable import Searchable


async def create_search_index(
    model: type[Searchable],
    index_name: str | None = None,
    resolver: StrategyResolver | None = None,
) -> None:
    strategy = (resolver or get_resolver()).resolve(model.__search_connection__)
    await strategy.create_index(model.__tablename__, model.searchable_columns(), index_name)  # type: ignore[attr-defined]


async def drop_search_index(
    model: type[Searchable],
    index_name: str | None = None,
    resolver: StrategyResolver | None = None,
) -> None:
    strategy = (resolver or get_resolver()).resolve(model.__search_connection__)
    await strategy.drop_index(model.__tablename__, index_name)  # type: ignore[attr-defined]
