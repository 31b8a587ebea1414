"""
db_explorer - Read-only exploration of SQLite and PostgreSQL databases

Lists tables, describes columns, indexes and foreign keys, reports schema text
and statistics, and runs bounded read-only queries. Available as a Python
library and as an MCP server.
"""

__version__ = "1.0.0"

from .drivers import DatabaseDriver, PostgresDriver, SQLiteDriver, create_driver
from .errors import (
    DatabaseConnectionError,
    DatabaseExplorerError,
    DriverClosedError,
    IntrospectionError,
    QueryExecutionError,
    UnsupportedStatementError,
)
from .models.config import DatabaseConfig, Dialect
from .models.query import QueryResult
from .models.table import (
    ColumnInfo,
    DatabaseInfo,
    ForeignKeyInfo,
    IndexInfo,
    RelationshipEdge,
    TableDescription,
    TableKind,
    TableStats,
    TableSummary,
)

__all__ = [
    "create_driver",
    "DatabaseDriver",
    "SQLiteDriver",
    "PostgresDriver",
    "DatabaseConfig",
    "Dialect",
    "DatabaseInfo",
    "TableKind",
    "TableSummary",
    "TableDescription",
    "ColumnInfo",
    "IndexInfo",
    "ForeignKeyInfo",
    "RelationshipEdge",
    "TableStats",
    "QueryResult",
    "DatabaseExplorerError",
    "DatabaseConnectionError",
    "DriverClosedError",
    "UnsupportedStatementError",
    "QueryExecutionError",
    "IntrospectionError",
]
