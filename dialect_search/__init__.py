"""Dialect-abstracted fuzzy search for PostgreSQL (pg_trgm) and MySQL (FULLTEXT)."""

from dialect_search.aggregator import AggregatedResult, SearchAggregator
from dialect_search.config import Settings, get_settings
from dialect_search.constants import RELEVANCE_SCORE, Dialect, SearchMode
from dialect_search.database import EngineRegistry, get_engine_registry
from dialect_search.exceptions import (
    DriverMismatch,
    InvalidArgument,
    MissingIndex,
    SchemaError,
    SearchError,
    UnsupportedEngine,
    WrongDriver,
)
from dialect_search.query import QueryBuilder
from dialect_search.resolver import StrategyResolver, get_resolver
from dialect_search.schema import create_search_index, drop_search_index
from dialect_search.searchable import Searchable, SearchableEntity
from dialect_search.strategies import SearchStrategy, TokenIndexStrategy, TrigramStrategy, sanitize_term

__all__ = [
    "RELEVANCE_SCORE",
    "AggregatedResult",
    "Dialect",
    "DriverMismatch",
    "EngineRegistry",
    "InvalidArgument",
    "MissingIndex",
    "QueryBuilder",
    "SchemaError",
    "SearchAggregator",
    "SearchError",
    "SearchMode",
    "SearchStrategy",
    "Searchable",
    "SearchableEntity",
    "Settings",
    "StrategyResolver",
    "TokenIndexStrategy",
    "TrigramStrategy",
    "UnsupportedEngine",
    "WrongDriver",
    "create_search_index",
    "drop_search_index",
    "get_engine_registry",
    "get_resolver",
    "get_settings",
    "sanitize_term",
]
