"""Safe query execution with validation."""

import logging
import time
from typing import Any, Mapping, Optional, Sequence

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection

from db_explorer.core.connection import DatabaseConnection
from db_explorer.core.guard import (
    READ_ONLY_KEYWORDS,
    PreparedQuery,
    apply_cap,
    prepare_query,
)
from db_explorer.errors import IntrospectionError, QueryExecutionError
from db_explorer.models.query import QueryResult
from db_explorer.utils import convert_rows_to_json_safe

logger = logging.getLogger(__name__)


def engine_message(error: SQLAlchemyError) -> str:
    """The engine's own error text, without SQLAlchemy's decoration."""
    if isinstance(error, DBAPIError) and error.orig is not None:
        return str(error.orig)
    return str(error)


class QueryExecutor:
    """Runs guarded user statements and catalog statements on one connection."""

    def __init__(
        self,
        connection: DatabaseConnection,
        allowed_keywords: frozenset[str] = READ_ONLY_KEYWORDS,
        rewritable_keywords: frozenset[str] = READ_ONLY_KEYWORDS,
    ):
        """
        Initialize query executor.

        Args:
            connection: Database connection manager
            allowed_keywords: Leading keywords the backend accepts
            rewritable_keywords: Leading keywords that accept an appended LIMIT
        """
        self.connection = connection
        self.allowed_keywords = allowed_keywords
        self.rewritable_keywords = rewritable_keywords

    async def execute_query(self, query: str, limit: Optional[int] = None) -> QueryResult:
        """
        Execute a read-only statement with a bounded row count.

        The statement is validated before any connection is touched. It runs
        verbatim (apart from an appended LIMIT); no bind-parameter parsing is
        applied to the caller's text.

        Args:
            query: SQL statement
            limit: Maximum rows to return (capped at 500)

        Returns:
            Query result with rows and metadata

        Raises:
            UnsupportedStatementError: If the statement is not read-only
            QueryExecutionError: If the engine rejects the statement
        """
        prepared = prepare_query(
            query, limit, self.allowed_keywords, self.rewritable_keywords
        )

        start_time = time.time()
        async with self.connection.get_connection() as conn:
            logger.debug("Executing: %s", prepared.sql.replace("\n", " "))
            try:
                result = await conn.exec_driver_sql(prepared.sql)
                if result.returns_rows:
                    columns = list(result.keys())
                    fetched = (
                        result.fetchall()
                        if prepared.rewritten
                        else result.fetchmany(prepared.cap + 1)
                    )
                else:
                    columns, fetched = [], []
            except DBAPIError as e:
                raise QueryExecutionError(
                    engine_message(e), query=prepared.sql, orig=e
                ) from e
        execution_time = (time.time() - start_time) * 1000  # Convert to ms

        return self._build_result(prepared, columns, fetched, execution_time)

    def _build_result(
        self,
        prepared: PreparedQuery,
        columns: list[str],
        fetched: Sequence[Any],
        execution_time: float,
    ) -> QueryResult:
        kept, truncated = apply_cap(fetched, prepared)
        rows = convert_rows_to_json_safe([dict(zip(columns, row)) for row in kept])

        return QueryResult(
            query=prepared.sql,
            columns=columns,
            rows=rows,
            row_count=len(rows),
            truncated=truncated,
            execution_time_ms=execution_time,
            warning=f"Results truncated to {prepared.cap} rows" if truncated else None,
        )

    async def fetch_catalog(
        self,
        conn: AsyncConnection,
        statement: str,
        params: Optional[Mapping[str, Any]] = None,
        table: Optional[str] = None,
    ) -> list[dict[str, Any]]:
        """
        Run a catalog statement and return its rows as dictionaries.

        Catalog statements are written by the drivers, never by callers, so
        they bypass the guard. Bound parameters go through ``text()``; PRAGMA
        statements carry their already-quoted identifier inline.

        Raises:
            IntrospectionError: If the catalog statement fails
        """
        try:
            if params is None:
                result = await conn.exec_driver_sql(statement)
            else:
                result = await conn.execute(text(statement), dict(params))
            return [dict(row) for row in result.mappings().all()]
        except DBAPIError as e:
            raise IntrospectionError(engine_message(e), table=table) from e
