"""Named async engines.

Each connection identity maps to one SQLAlchemy ``AsyncEngine``. The
``"default"`` engine is built lazily from ``DATABASE_URL``; other names must
be registered explicitly::

    registry = get_engine_registry()
    registry.register("reporting", create_async_engine("mysql+aiomysql://..."))
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from functools import lru_cache

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from dialect_search.config import get_settings
from dialect_search.constants import DEFAULT_CONNECTION
from dialect_search.exceptions import InvalidArgument

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for searchable models."""


def connection_key(connection_name: str | None) -> str:
    """Normalize a connection identity (``None`` means the default connection)."""
    return connection_name or DEFAULT_CONNECTION


class EngineRegistry:
    """Maps connection identities to async engines.

    Args:
        engines: Initial name -> engine mapping.
        database_url: URL used to build the default engine on first use when
            no ``"default"`` engine was registered.
    """

    def __init__(
        self,
        engines: Mapping[str, AsyncEngine] | None = None,
        database_url: str | None = None,
    ) -> None:
        self._engines: dict[str, AsyncEngine] = dict(engines or {})
        self._database_url = database_url

    def register(self, name: str, engine: AsyncEngine) -> None:
        self._engines[connection_key(name)] = engine

    def get(self, connection_name: str | None = None) -> AsyncEngine:
        key = connection_key(connection_name)
        engine = self._engines.get(key)
        if engine is not None:
            return engine

        if key == DEFAULT_CONNECTION and self._database_url:
            engine = create_async_engine(self._database_url, echo=False, pool_pre_ping=True)
            self._engines[key] = engine
            logger.debug("Created default engine (%s)", engine.dialect.name)
            return engine

        raise InvalidArgument(f"No engine registered for connection '{key}'")

    def names(self) -> list[str]:
        return sorted(self._engines)

    async def dispose(self) -> None:
        for engine in self._engines.values():
            await engine.dispose()
        self._engines.clear()


@lru_cache
def get_engine_registry() -> EngineRegistry:
    """Return the process-wide registry with the default engine from settings."""
    return EngineRegistry(database_url=get_settings().async_database_url)
