"""Pydantic models for database metadata and results."""

from .config import DatabaseConfig, Dialect
from .query import QueryResult
from .table import (
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
]
