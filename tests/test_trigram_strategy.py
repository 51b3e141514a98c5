"""Tests for the PostgreSQL pg_trgm search strategy.

Covers index DDL generation and idempotency, query rewriting (prefix OR
similarity predicate, ordering, relevance_score projection), thresholds,
and the dialect guard, without requiring a real PostgreSQL database.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import DBAPIError

from dialect_search.constants import RELEVANCE_SCORE
from dialect_search.exceptions import InvalidArgument, SchemaError, WrongDriver
from dialect_search.query import QueryBuilder
from dialect_search.strategies.trigram import TrigramStrategy
from tests.conftest import compile_params, compile_sql

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_strategy(engine, settings, existing: bool = False) -> TrigramStrategy:
    """Build a TrigramStrategy with catalog lookups and DDL execution mocked."""
    strategy = TrigramStrategy(engine, settings=settings)
    strategy._fetch = AsyncMock(return_value=[(1,)] if existing else [])
    strategy._execute = AsyncMock()
    return strategy


def _executed(strategy: TrigramStrategy) -> list[str]:
    return [call.args[0] for call in strategy._execute.await_args_list]


# ---------------------------------------------------------------------------
# 1. Identity
# ---------------------------------------------------------------------------


class TestIdentity:
    def test_dialect_name(self, pg_engine, settings):
        assert TrigramStrategy(pg_engine, settings=settings).dialect_name() == "trigram"

    def test_default_index_name(self, pg_engine, settings):
        strategy = TrigramStrategy(pg_engine, settings=settings)
        assert strategy.default_index_name("articles") == "articles_search_trgm_idx"

    def test_engine_kind_comes_from_engine_dialect(self, pg_engine, settings):
        assert TrigramStrategy(pg_engine, settings=settings).engine_kind == "postgresql"


# ---------------------------------------------------------------------------
# 2. Index expression and creation
# ---------------------------------------------------------------------------


class TestCreateIndex:
    def test_index_expression_coalesces_casts_and_joins(self, pg_engine, settings):
        strategy = TrigramStrategy(pg_engine, settings=settings)

        expr = strategy.index_expression(["title", "body"])

        assert expr.startswith("(coalesce(CAST(title AS TEXT), '')")
        assert " || ' ' || coalesce(CAST(body AS TEXT), '')" in expr

    @pytest.mark.asyncio
    async def test_create_enables_extension_then_builds_gin_index(self, pg_engine, settings):
        strategy = _make_strategy(pg_engine, settings)

        await strategy.create_index("articles", ["title", "body"])

        statements = _executed(strategy)
        assert statements[0] == "CREATE EXTENSION IF NOT EXISTS pg_trgm"
        ddl = statements[1]
        assert ddl.startswith("CREATE INDEX IF NOT EXISTS articles_search_trgm_idx ON articles USING GIN")
        assert "gin_trgm_ops" in ddl
        assert "coalesce(CAST(title AS TEXT), '')" in ddl

    @pytest.mark.asyncio
    async def test_create_uses_explicit_index_name(self, pg_engine, settings):
        strategy = _make_strategy(pg_engine, settings)

        await strategy.create_index("articles", ["title"], "my_custom_idx")

        assert "CREATE INDEX IF NOT EXISTS my_custom_idx ON articles" in _executed(strategy)[1]

    @pytest.mark.asyncio
    async def test_second_create_is_a_no_op(self, pg_engine, settings):
        """Creating the same index twice issues CREATE INDEX exactly once."""
        strategy = _make_strategy(pg_engine, settings)
        strategy._fetch = AsyncMock(side_effect=[[], [(1,)]])

        await strategy.create_index("articles", ["title", "body"])
        await strategy.create_index("articles", ["title", "body"])

        creates = [sql for sql in _executed(strategy) if sql.startswith("CREATE INDEX")]
        assert len(creates) == 1

    @pytest.mark.asyncio
    async def test_quotes_unsafe_identifiers(self, pg_engine, settings):
        strategy = _make_strategy(pg_engine, settings)

        await strategy.create_index('Weird"Table', ["title"])

        assert 'ON "Weird""Table"' in _executed(strategy)[1]

    @pytest.mark.asyncio
    async def test_empty_columns_raise_invalid_argument(self, pg_engine, settings):
        strategy = _make_strategy(pg_engine, settings)

        with pytest.raises(InvalidArgument):
            await strategy.create_index("articles", [])

        strategy._execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_rejected_ddl_raises_schema_error(self, pg_engine, settings):
        strategy = _make_strategy(pg_engine, settings)
        error = DBAPIError("CREATE INDEX", {}, Exception("functions in index expression must be marked IMMUTABLE"))
        strategy._execute = AsyncMock(side_effect=[None, error])

        with pytest.raises(SchemaError, match="IMMUTABLE"):
            await strategy.create_index("articles", ["published_at"])


# ---------------------------------------------------------------------------
# 3. Index existence and drop
# ---------------------------------------------------------------------------


class TestIndexLifecycle:
    @pytest.mark.asyncio
    async def test_index_exists_queries_pg_indexes(self, pg_engine, settings):
        strategy = _make_strategy(pg_engine, settings, existing=True)

        assert await strategy.index_exists("articles") is True

        sql, params = strategy._fetch.await_args.args
        assert "pg_indexes" in sql
        assert "current_schema()" in sql
        assert params == {"table": "articles", "index": "articles_search_trgm_idx"}

    @pytest.mark.asyncio
    async def test_index_exists_false_when_catalog_empty(self, pg_engine, settings):
        strategy = _make_strategy(pg_engine, settings)
        assert await strategy.index_exists("articles") is False

    @pytest.mark.asyncio
    async def test_drop_uses_if_exists(self, pg_engine, settings):
        strategy = _make_strategy(pg_engine, settings)

        await strategy.drop_index("articles")

        assert _executed(strategy) == ["DROP INDEX IF EXISTS articles_search_trgm_idx"]

    @pytest.mark.asyncio
    async def test_drop_missing_index_does_not_raise(self, pg_engine, settings):
        strategy = _make_strategy(pg_engine, settings)

        await strategy.drop_index("articles", "never_created_idx")
        await strategy.drop_index("articles", "never_created_idx")

    @pytest.mark.asyncio
    async def test_execute_runs_inside_engine_transaction(self, pg_engine, settings):
        """The real _execute path opens engine.begin() and executes on that connection."""
        strategy = TrigramStrategy(pg_engine, settings=settings)

        await strategy.drop_index("articles")

        pg_engine.begin.assert_called_once()
        pg_engine.mock_conn.execute.assert_awaited_once()
        statement = pg_engine.mock_conn.execute.await_args.args[0]
        assert str(statement) == "DROP INDEX IF EXISTS articles_search_trgm_idx"


# ---------------------------------------------------------------------------
# 4. Query rewriting
# ---------------------------------------------------------------------------


class TestApplySearch:
    @pytest.mark.asyncio
    async def test_predicate_ors_prefix_and_similarity(self, pg_engine, pg_dialect, settings, articles):
        strategy = _make_strategy(pg_engine, settings)
        query = QueryBuilder(articles)

        await strategy.apply_search(query, ["title", "body"], "database engines", 0.2)

        sql = compile_sql(query, pg_dialect)
        where = sql.split("WHERE", 1)[1].split("ORDER BY", 1)[0]
        assert "ILIKE" in where
        assert " OR " in where
        assert "similarity(" in where
        params = compile_params(query, pg_dialect)
        assert "database engines%" in params
        assert "database engines" in params
        assert 0.2 in params

    @pytest.mark.asyncio
    async def test_orders_by_similarity_descending(self, pg_engine, pg_dialect, settings, articles):
        strategy = _make_strategy(pg_engine, settings)
        query = QueryBuilder(articles)

        await strategy.apply_search(query, ["title", "body"], "database")

        assert len(query.ordering) == 1
        ordering = str(query.ordering[0].compile(dialect=pg_dialect))
        assert ordering.startswith("similarity(")
        assert ordering.endswith("DESC")

    @pytest.mark.asyncio
    async def test_returns_the_same_builder(self, pg_engine, settings, articles):
        strategy = _make_strategy(pg_engine, settings)
        query = QueryBuilder(articles)

        assert await strategy.apply_search(query, ["title"], "database") is query

    @pytest.mark.asyncio
    async def test_injects_default_projection_before_score(self, pg_engine, settings, articles):
        strategy = _make_strategy(pg_engine, settings)
        query = QueryBuilder(articles)

        await strategy.apply_search(query, ["title", "body"], "database")

        projection = query.projection()
        assert [col.name for col in projection[:-1]] == ["id", "title", "body", "visibility"]
        assert projection[-1].name == RELEVANCE_SCORE

    @pytest.mark.asyncio
    async def test_preserves_custom_projection(self, pg_engine, pg_dialect, settings, articles):
        strategy = _make_strategy(pg_engine, settings)
        query = QueryBuilder(articles, articles.c.id, articles.c.title)

        await strategy.apply_search(query, ["title", "body"], "database")

        projection = query.projection()
        assert projection[:2] == [articles.c.id, articles.c.title]
        assert len(projection) == 3
        assert "AS relevance_score" in compile_sql(query, pg_dialect)

    @pytest.mark.asyncio
    async def test_threshold_defaults_from_settings(self, pg_engine, pg_dialect, articles):
        from dialect_search.config import Settings

        strategy = _make_strategy(pg_engine, Settings(FTS_SIMILARITY_THRESHOLD=0.35))
        query = QueryBuilder(articles)

        await strategy.apply_search(query, ["title"], "database")

        assert 0.35 in compile_params(query, pg_dialect)

    @pytest.mark.asyncio
    async def test_zero_threshold_lets_exact_value_match(self, pg_engine, pg_dialect, settings, articles):
        """similarity(x, x) = 1 > 0.0, and the prefix branch also covers the full value."""
        strategy = _make_strategy(pg_engine, settings)
        query = QueryBuilder(articles)

        await strategy.apply_search(query, ["title"], "Database Engines", 0.0)

        params = compile_params(query, pg_dialect)
        assert 0.0 in params
        assert "Database Engines%" in params

    @pytest.mark.asyncio
    async def test_out_of_domain_threshold_is_passed_through(self, pg_engine, pg_dialect, settings, articles):
        """A threshold above 1.0 leaves only the prefix branch able to match; it does not raise."""
        strategy = _make_strategy(pg_engine, settings)
        query = QueryBuilder(articles)

        await strategy.apply_search(query, ["title"], "database", 1.01)

        sql = compile_sql(query, pg_dialect)
        assert "ILIKE" in sql
        assert 1.01 in compile_params(query, pg_dialect)

    @pytest.mark.asyncio
    async def test_like_wildcards_in_term_are_escaped(self, pg_engine, pg_dialect, settings, articles):
        strategy = _make_strategy(pg_engine, settings)
        query = QueryBuilder(articles)

        await strategy.apply_search(query, ["title"], "50%_off!")

        assert "50!%!_off!!%" in compile_params(query, pg_dialect)
        assert "ESCAPE '!'" in compile_sql(query, pg_dialect)

    @pytest.mark.asyncio
    async def test_term_is_sanitized(self, pg_engine, pg_dialect, settings, articles):
        strategy = _make_strategy(pg_engine, settings)
        query = QueryBuilder(articles)

        await strategy.apply_search(query, ["title"], "  data\x00base\t\tengines  ")

        assert "database engines" in compile_params(query, pg_dialect)

    @pytest.mark.asyncio
    async def test_empty_term_matches_nothing(self, pg_engine, pg_dialect, settings, articles):
        strategy = _make_strategy(pg_engine, settings)
        query = QueryBuilder(articles)

        await strategy.apply_search(query, ["title"], " \n\x07 ")

        sql = compile_sql(query, pg_dialect)
        assert "similarity" not in sql
        assert "WHERE false" in sql

    @pytest.mark.asyncio
    async def test_unknown_column_raises_invalid_argument(self, pg_engine, settings, articles):
        strategy = _make_strategy(pg_engine, settings)

        with pytest.raises(InvalidArgument, match="no column 'summary'"):
            await strategy.apply_search(QueryBuilder(articles), ["summary"], "database")

    @pytest.mark.asyncio
    async def test_search_never_touches_the_database(self, pg_engine, settings, articles):
        strategy = _make_strategy(pg_engine, settings)

        await strategy.apply_search(QueryBuilder(articles), ["title"], "database")

        strategy._fetch.assert_not_awaited()
        strategy._execute.assert_not_awaited()


# ---------------------------------------------------------------------------
# 5. Dialect guard
# ---------------------------------------------------------------------------


class TestDialectGuard:
    @pytest.mark.asyncio
    async def test_create_on_mysql_engine_raises_wrong_driver(self, mysql_engine, settings):
        strategy = _make_strategy(mysql_engine, settings)

        with pytest.raises(WrongDriver):
            await strategy.create_index("articles", ["title"])

        strategy._execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_drop_on_mysql_engine_raises_wrong_driver(self, mysql_engine, settings):
        with pytest.raises(WrongDriver):
            await _make_strategy(mysql_engine, settings).drop_index("articles")

    @pytest.mark.asyncio
    async def test_query_bound_to_mysql_raises_wrong_driver(self, pg_engine, mysql_engine, settings, articles):
        strategy = _make_strategy(pg_engine, settings)
        query = QueryBuilder(articles, bind=mysql_engine)

        with pytest.raises(WrongDriver, match="mysql"):
            await strategy.apply_search(query, ["title"], "database")


# ---------------------------------------------------------------------------
# 6. End-to-end scenario
# ---------------------------------------------------------------------------


class TestArticlesScenario:
    @pytest.mark.asyncio
    async def test_create_index_then_search(self, pg_engine, pg_dialect, settings, articles):
        strategy = _make_strategy(pg_engine, settings)

        await strategy.create_index("articles", ["title", "body"])
        query = await strategy.apply_search(
            QueryBuilder(articles, bind=pg_engine), ["title", "body"], "database engines", 0.2
        )

        assert any("articles_search_trgm_idx" in sql for sql in _executed(strategy))
        sql = compile_sql(query, pg_dialect)
        assert "ILIKE" in sql and " OR " in sql and "similarity(" in sql
        assert "AS relevance_score" in sql
        assert sql.rstrip().endswith("DESC")
        assert 0.2 in compile_params(query, pg_dialect)


def test_repr_names_connection(pg_engine, settings):
    strategy = TrigramStrategy(pg_engine, connection_name="primary", settings=settings)
    assert repr(strategy) == "<TrigramStrategy primary (postgresql)>"


def test_mock_engine_is_not_called_on_construction(settings):
    engine = MagicMock()
    TrigramStrategy(engine, settings=settings)
    engine.begin.assert_not_called()
