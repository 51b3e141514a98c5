from enum import StrEnum


class Dialect(StrEnum):
    TRIGRAM = "trigram"
    TOKEN_INDEX = "token_index"


class DriverOverride(StrEnum):
    AUTO = "auto"
    TRIGRAM = "trigram"
    TOKEN_INDEX = "token_index"


class SearchMode(StrEnum):
    NATURAL_LANGUAGE = "natural_language"
    BOOLEAN = "boolean"


DEFAULT_CONNECTION = "default"

RELEVANCE_SCORE = "relevance_score"

# SQLAlchemy dialect names (engine.dialect.name) per search dialect
ENGINE_DIALECTS: dict[str, Dialect] = {
    "postgresql": Dialect.TRIGRAM,
    "postgres": Dialect.TRIGRAM,
    "pgsql": Dialect.TRIGRAM,
    "mysql": Dialect.TOKEN_INDEX,
    "mariadb": Dialect.TOKEN_INDEX,
}

TRIGRAM_INDEX_SUFFIX = "_search_trgm_idx"
TOKEN_INDEX_SUFFIX = "_search_ft_idx"

DEFAULT_ACL_RANKING_MULTIPLIERS: dict[str, float] = {
    "public": 1.2,
    "internal": 1.0,
    "private": 0.5,
}
