"""Driver contract shared by every database backend."""

from abc import ABC, abstractmethod
from typing import ClassVar, Optional

from db_explorer.core.connection import DatabaseConnection
from db_explorer.core.executor import QueryExecutor
from db_explorer.core.guard import READ_ONLY_KEYWORDS
from db_explorer.models.config import DatabaseConfig, Dialect
from db_explorer.models.query import QueryResult
from db_explorer.models.table import (
    DatabaseInfo,
    RelationshipEdge,
    TableDescription,
    TableKind,
    TableStats,
    TableSummary,
)

# Bounds for sample()
DEFAULT_SAMPLE_ROWS = 10
MAX_SAMPLE_ROWS = 50


def quote_identifier(name: str) -> str:
    """Double-quote an identifier, escaping embedded quotes."""
    return '"' + name.replace('"', '""') + '"'


class DatabaseDriver(ABC):
    """Uniform read-only view of one database.

    A driver owns exactly one connection (SQLite) or pool (PostgreSQL),
    created by ``initialize()`` and released by ``close()``. Nothing is cached
    between calls: every operation reads the live catalog.
    """

    dialect: ClassVar[Dialect]

    # Leading keywords accepted by query(), and those that take an appended LIMIT
    allowed_keywords: ClassVar[frozenset[str]] = READ_ONLY_KEYWORDS
    rewritable_keywords: ClassVar[frozenset[str]] = READ_ONLY_KEYWORDS

    def __init__(self, config: DatabaseConfig):
        """
        Initialize driver.

        Args:
            config: Database configuration; its dialect must match the driver
        """
        if config.dialect is not self.dialect:
            raise ValueError(
                f"{type(self).__name__} cannot serve a {config.dialect.value} database"
            )
        self.config = config
        self.connection = DatabaseConnection(config)
        self.executor = QueryExecutor(
            self.connection, self.allowed_keywords, self.rewritable_keywords
        )

    async def initialize(self) -> None:
        """
        Open the connection or pool.

        Raises:
            DatabaseConnectionError: If the database cannot be opened or reached
        """
        await self.connection.initialize()

    @property
    @abstractmethod
    def label(self) -> str:
        """Human-readable connection label without credentials."""
        ...

    @abstractmethod
    async def list_tables(self) -> list[TableSummary]:
        """
        List tables and views, tables first, each group ordered by name.

        Returns:
            Table and view names with their kind
        """
        ...

    @abstractmethod
    async def describe_table(self, table: str) -> TableDescription:
        """
        Describe columns, indexes and foreign keys of a table or view.

        Args:
            table: Table name

        Returns:
            Table description read from the live catalog

        Raises:
            IntrospectionError: If the table does not exist or a catalog call fails
        """
        ...

    @abstractmethod
    async def get_schema(self) -> str:
        """
        Return definition text for every object in the database.

        Returns:
            Schema as SQL text
        """
        ...

    @abstractmethod
    async def get_stats(self) -> list[TableStats]:
        """
        Row and column counts for every base table, ordered by table name.

        Whether row counts are exact depends on the backend; see
        ``TableStats.row_count_exact``.
        """
        ...

    @abstractmethod
    async def get_relationships(self) -> list[RelationshipEdge]:
        """
        Every foreign key edge in the database.

        The result equals the union of ``describe_table(t).foreign_keys`` over
        all tables ``t``.
        """
        ...

    async def query(self, sql: str, limit: Optional[int] = None) -> QueryResult:
        """
        Run a read-only statement.

        Args:
            sql: SELECT, WITH or EXPLAIN statement (plus PRAGMA on SQLite)
            limit: Maximum rows to return (default and maximum 500)

        Returns:
            Query result; ``truncated`` is set when the row cap cut rows off

        Raises:
            UnsupportedStatementError: If the statement is not read-only
            QueryExecutionError: If the engine rejects the statement
        """
        return await self.executor.execute_query(sql, limit=limit)

    async def sample(self, table: str, rows: int = DEFAULT_SAMPLE_ROWS) -> QueryResult:
        """
        Preview the first rows of a table, in whatever order the engine returns them.

        Args:
            table: Table name
            rows: Number of rows (1 to 50)

        Returns:
            Sample rows
        """
        count = max(1, min(rows, MAX_SAMPLE_ROWS))
        return await self.query(
            f"SELECT * FROM {self.qualified_name(table)} LIMIT {count}", limit=count
        )

    def qualified_name(self, table: str) -> str:
        """Quoted table reference usable in a FROM clause."""
        return quote_identifier(table)

    async def describe(self) -> DatabaseInfo:
        """Summarize the connected database."""
        tables = await self.list_tables()
        return DatabaseInfo(
            dialect=self.dialect.value,
            label=self.label,
            table_count=sum(1 for t in tables if t.kind is TableKind.TABLE),
            view_count=sum(1 for t in tables if t.kind is TableKind.VIEW),
        )

    async def close(self) -> None:
        """Release the connection or pool. Later calls on the driver fail."""
        await self.connection.dispose()

    @property
    def is_closed(self) -> bool:
        """Check if the driver has been closed."""
        return self.connection.is_closed

    async def __aenter__(self) -> "DatabaseDriver":
        """Async context manager entry."""
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.label}>"
