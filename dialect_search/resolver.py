# @TEST tests/test_resolver.py

"""Per-connection search strategy resolution.

Resolution order for a connection identity:

1. ``FTS_DRIVER`` override (``trigram`` / ``token_index``), validated against
   the engine the connection actually uses; a contradiction raises
   :class:`DriverMismatch` before any SQL is issued. This also covers an
   override on an engine with no strategy at all (e.g. sqlite): the explicit
   setting is what is wrong, so it reports ``DriverMismatch`` rather than
   ``UnsupportedEngine``.
2. Automatic detection from ``engine.dialect.name``.

There is no other fallback: an unknown engine raises
:class:`UnsupportedEngine`.

Resolved strategies are cached per identity in a mapping owned by the
resolver. Strategies are stateless, so two requests racing on an uncached
identity may both build one and the last write wins.
"""

from __future__ import annotations

import logging
from collections.abc import MutableMapping
from functools import lru_cache

from dialect_search.config import Settings, get_settings
from dialect_search.constants import ENGINE_DIALECTS, Dialect, DriverOverride
from dialect_search.database import EngineRegistry, connection_key, get_engine_registry
from dialect_search.exceptions import DriverMismatch, InvalidArgument, UnsupportedEngine
from dialect_search.strategies import SearchStrategy, TokenIndexStrategy, TrigramStrategy

logger = logging.getLogger(__name__)

STRATEGY_CLASSES: dict[Dialect, type[SearchStrategy]] = {
    Dialect.TRIGRAM: TrigramStrategy,
    Dialect.TOKEN_INDEX: TokenIndexStrategy,
}


def detect_dialect(engine_kind: str) -> Dialect | None:
    """Map an engine's dialect name to its search dialect, if any."""
    return ENGINE_DIALECTS.get(engine_kind.lower())


class StrategyResolver:
    """Resolves and caches one :class:`SearchStrategy` per connection identity.

    Args:
        engines: Registry of named engines (defaults to the process-wide one).
        settings: Search settings (defaults to the cached application settings).
        driver: Explicit override of ``settings.FTS_DRIVER``.
        cache: Strategy cache to populate. Pass a fresh dict (or nothing) for
            an isolated resolver.
    """

    def __init__(
        self,
        engines: EngineRegistry | None = None,
        settings: Settings | None = None,
        driver: str | None = None,
        cache: MutableMapping[str, SearchStrategy] | None = None,
    ) -> None:
        self._engines = engines or get_engine_registry()
        self._settings = settings or get_settings()
        try:
            self._driver = DriverOverride(driver or self._settings.FTS_DRIVER)
        except ValueError:
            raise InvalidArgument(f"Unknown FTS driver {driver!r}") from None
        self._cache: MutableMapping[str, SearchStrategy] = cache if cache is not None else {}

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def driver(self) -> DriverOverride:
        return self._driver

    def resolve(self, connection_name: str | None = None) -> SearchStrategy:
        key = connection_key(connection_name)

        strategy = self._cache.get(key)
        if strategy is not None:
            return strategy

        engine = self._engines.get(key)
        dialect = self._select_dialect(engine.dialect.name, key)
        strategy = STRATEGY_CLASSES[dialect](engine, connection_name=key, settings=self._settings)
        self._cache[key] = strategy

        logger.debug("Resolved %s strategy for connection %s", dialect, key)
        return strategy

    def clear_cache(self) -> None:
        self._cache.clear()

    def cached(self) -> dict[str, SearchStrategy]:
        return dict(self._cache)

    def _select_dialect(self, engine_kind: str, connection_name: str) -> Dialect:
        detected = detect_dialect(engine_kind)

        if self._driver != DriverOverride.AUTO:
            wanted = Dialect(self._driver.value)
            if detected != wanted:
                raise DriverMismatch(self._driver.value, engine_kind, connection_name)
            return wanted

        if detected is None:
            raise UnsupportedEngine(engine_kind, connection_name)
        return detected


@lru_cache
def get_resolver() -> StrategyResolver:
    """Return the process-wide resolver over the default engine registry."""
    return StrategyResolver()
