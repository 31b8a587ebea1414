"""Database connection management with SQLAlchemy."""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

from sqlalchemy import URL, text
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine
from sqlalchemy.pool import AsyncAdaptedQueuePool

from db_explorer.errors import DatabaseConnectionError, DriverClosedError
from db_explorer.models.config import DatabaseConfig, Dialect

logger = logging.getLogger(__name__)

# Cheapest statement that proves the engine is usable. For SQLite it has to
# read the file header, otherwise a non-database file would pass.
_PING_QUERIES = {
    Dialect.SQLITE: "SELECT count(*) FROM sqlite_master",
    Dialect.POSTGRESQL: "SELECT 1",
}


class DatabaseConnection:
    """Owns one SQLAlchemy async engine and its pool.

    SQLite gets a read-only file URI and a pool of exactly one connection, so
    concurrent callers queue for it. PostgreSQL gets a small bounded pool whose
    sessions default to read-only transactions. A caller that waits longer than
    ``pool_timeout`` for a free connection gets ``DatabaseConnectionError``.
    """

    def __init__(self, config: DatabaseConfig):
        """
        Initialize database connection.

        Args:
            config: Database configuration with connection URL and pool settings
        """
        self.config = config
        self.engine: Optional[AsyncEngine] = None
        self._dialect = config.dialect
        self._closed = False

    async def initialize(self) -> None:
        """
        Create the engine and verify that the database answers.

        Raises:
            DatabaseConnectionError: If the database cannot be opened or reached
            DriverClosedError: If the connection was already disposed
        """
        if self._closed:
            raise DriverClosedError("Connection has been closed")
        if self.engine is not None:
            return  # Already initialized

        if self._dialect is Dialect.SQLITE:
            self.engine = self._create_sqlite_engine()
        else:
            self.engine = self._create_postgres_engine()

        try:
            async with self.engine.connect() as conn:
                await conn.execute(text(_PING_QUERIES[self._dialect]))
        except Exception as e:
            await self.engine.dispose()
            self.engine = None
            raise DatabaseConnectionError(
                f"Failed to connect to {self.config.safe_url}: {e}"
            ) from e

        logger.info("Connected to %s", self.config.safe_url)

    def _create_sqlite_engine(self) -> AsyncEngine:
        path = self.config.database_path
        if path is None or not path.is_file():
            raise DatabaseConnectionError(f"SQLite file not found: {path}")

        # mode=ro makes the engine itself refuse writes on this file. as_uri()
        # percent-encodes the path, so "#", "?" and "%" name the same file.
        url = URL.create(
            "sqlite+aiosqlite",
            database=path.as_uri(),
            query={"mode": "ro", "uri": "true"},
        )
        return create_async_engine(
            url,
            poolclass=AsyncAdaptedQueuePool,
            pool_size=1,
            max_overflow=0,
            pool_timeout=self.config.pool_timeout,
            echo=self.config.echo_sql,
        )

    def _create_postgres_engine(self) -> AsyncEngine:
        url_obj = self.config.sa_url
        connect_args: dict[str, Any] = {}

        # asyncpg expects 'ssl' in connect_args, not sslmode in the URL
        if "sslmode" in url_obj.query:
            sslmode = url_obj.query["sslmode"]
            if sslmode in ["require", "prefer", "allow", "verify-ca", "verify-full"]:
                connect_args["ssl"] = sslmode
            elif sslmode == "disable":
                connect_args["ssl"] = False
            url_obj = url_obj.difference_update_query(["sslmode"])
        elif "ssl" in url_obj.query:
            ssl_value = url_obj.query["ssl"]
            if ssl_value in ["require", "true", "1"]:
                connect_args["ssl"] = "require"
            elif ssl_value in ["false", "0", "disable"]:
                connect_args["ssl"] = False
            url_obj = url_obj.difference_update_query(["ssl"])

        server_settings = {"default_transaction_read_only": "on"}
        if self.config.statement_timeout:
            server_settings["statement_timeout"] = str(
                self.config.statement_timeout * 1000
            )
        connect_args["server_settings"] = server_settings

        return create_async_engine(
            url_obj,
            pool_size=self.config.pool_size,
            max_overflow=self.config.max_overflow,
            pool_timeout=self.config.pool_timeout,
            pool_pre_ping=True,  # Verify connections before using
            echo=self.config.echo_sql,
            connect_args=connect_args,
        )

    async def dispose(self) -> None:
        """Dispose of the connection pool. Safe to call more than once."""
        self._closed = True
        if self.engine is not None:
            await self.engine.dispose()
            self.engine = None
            logger.info("Disposed connection to %s", self.config.safe_url)

    @asynccontextmanager
    async def get_connection(self) -> AsyncGenerator[AsyncConnection, None]:
        """
        Check a connection out of the pool for the duration of one call.

        Yields:
            AsyncConnection for executing statements

        Raises:
            DriverClosedError: If the connection was disposed
            DatabaseConnectionError: If the pool stays exhausted for pool_timeout
            RuntimeError: If engine not initialized
        """
        if self._closed:
            raise DriverClosedError("Connection has been closed")
        if self.engine is None:
            raise RuntimeError(
                "DatabaseConnection not initialized. Call initialize() first."
            )

        conn = self.engine.connect()
        try:
            await conn.start()
        except PoolTimeoutError as e:
            raise DatabaseConnectionError(
                f"No connection to {self.config.safe_url} became free within "
                f"{self.config.pool_timeout}s"
            ) from e

        try:
            yield conn
        finally:
            await conn.close()

    @property
    def dialect(self) -> Dialect:
        """Get database dialect."""
        return self._dialect

    @property
    def is_initialized(self) -> bool:
        """Check if engine is initialized."""
        return self.engine is not None

    @property
    def is_closed(self) -> bool:
        """Check if the connection has been disposed."""
        return self._closed

    async def __aenter__(self) -> "DatabaseConnection":
        """Async context manager entry."""
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.dispose()
