"""Error taxonomy for dialect-abstracted search.

Configuration and schema errors always propagate to the caller. Nothing in
this package retries on its own.
"""

from __future__ import annotations

from collections.abc import Sequence


class SearchError(Exception):
    """Base class for all search errors."""


class UnsupportedEngine(SearchError):
    """Raised when a connection's engine has no search strategy."""

    def __init__(self, engine_kind: str, connection_name: str) -> None:
        self.engine_kind = engine_kind
        self.connection_name = connection_name
        super().__init__(
            f"Database engine '{engine_kind}' on connection '{connection_name}' is not supported. "
            "Supported engines: postgresql (trigram), mysql/mariadb (token_index)."
        )


class DriverMismatch(SearchError):
    """Raised when an explicit FTS_DRIVER override contradicts the connection's engine."""

    def __init__(self, override: str, engine_kind: str, connection_name: str) -> None:
        self.override = override
        self.engine_kind = engine_kind
        self.connection_name = connection_name
        super().__init__(
            f"FTS_DRIVER is set to '{override}' but connection '{connection_name}' "
            f"uses engine '{engine_kind}'. Set FTS_DRIVER=auto or point the connection "
            "at a matching database."
        )


class WrongDriver(SearchError):
    """Raised when a strategy is invoked against a connection of the wrong engine kind."""

    def __init__(self, strategy: str, engine_kind: str) -> None:
        self.strategy = strategy
        self.engine_kind = engine_kind
        super().__init__(f"The {strategy} strategy cannot be used with a '{engine_kind}' connection.")


class InvalidArgument(SearchError, ValueError):
    """Raised for invalid caller input such as an empty column list."""


class SchemaError(SearchError):
    """Raised when index DDL is rejected or the target table does not exist."""


class MissingIndex(SearchError):
    """Raised when a token-index search finds no FULLTEXT index for its columns.

    Attributes:
        table: Table that was searched.
        index_name: Name of the index that was expected.
        columns: Column set the search needed an index for.
        remediation: How to create the missing index.
    """

    def __init__(self, table: str, index_name: str, columns: Sequence[str]) -> None:
        self.table = table
        self.index_name = index_name
        self.columns = tuple(columns)
        column_list = ", ".join(self.columns)
        self.remediation = (
            f"Create it with `await strategy.create_index({table!r}, {list(self.columns)!r})` "
            f"or `CREATE FULLTEXT INDEX {index_name} ON {table} ({column_list})`."
        )
        super().__init__(
            f"No FULLTEXT index on '{table}' covers columns ({column_list}); "
            f"expected '{index_name}'. {self.remediation}"
        )
