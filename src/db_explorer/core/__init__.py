"""Core database operations layer."""

from .connection import DatabaseConnection
from .executor import QueryExecutor
from .guard import HARD_ROW_CEILING, READ_ONLY_KEYWORDS, prepare_query

__all__ = [
    "DatabaseConnection",
    "QueryExecutor",
    "HARD_ROW_CEILING",
    "READ_ONLY_KEYWORDS",
    "prepare_query",
]
