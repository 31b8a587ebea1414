"""Exception hierarchy for database exploration.

Every failure in this package is surfaced to the caller as one of these types.
None of them is retried internally.
"""

from typing import Optional


class DatabaseExplorerError(Exception):
    """Base class for all db-explorer errors."""


class DatabaseConnectionError(DatabaseExplorerError, ConnectionError):
    """The database could not be opened or reached.

    Raised while a driver is being created (missing file, unreachable host,
    authentication failure). The driver never comes into existence.
    """


class DriverClosedError(DatabaseExplorerError):
    """An operation was attempted on a driver that has already been closed."""


class UnsupportedStatementError(DatabaseExplorerError, ValueError):
    """A statement was rejected by the read-only guard before execution."""

    def __init__(self, message: str, keyword: Optional[str] = None):
        super().__init__(message)
        self.keyword = keyword


class QueryExecutionError(DatabaseExplorerError):
    """The engine failed to execute a permitted statement.

    The message is the engine's own error text, unmodified.
    """

    def __init__(self, message: str, query: str, orig: Optional[BaseException] = None):
        super().__init__(message)
        self.query = query
        self.orig = orig


class IntrospectionError(DatabaseExplorerError):
    """A catalog lookup failed or referred to an object that does not exist."""

    def __init__(self, message: str, table: Optional[str] = None):
        super().__init__(message)
        self.table = table
