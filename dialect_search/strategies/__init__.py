"""Dialect search strategies."""

from dialect_search.strategies.base import SearchStrategy, sanitize_term
from dialect_search.strategies.token_index import TokenIndexStrategy
from dialect_search.strategies.trigram import TrigramStrategy

__all__ = [
    "SearchStrategy",
    "TokenIndexStrategy",
    "TrigramStrategy",
    "sanitize_term",
]
