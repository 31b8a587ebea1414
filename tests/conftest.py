"""Pytest configuration and shared fixtures for database tests"""

import os
import sqlite3
import sys
import uuid
from pathlib import Path
from typing import AsyncGenerator, Optional

import pytest
from dotenv import load_dotenv
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from db_explorer.drivers import DatabaseDriver, create_driver
from db_explorer.models.config import normalize_url

# Load environment variables
load_dotenv()

# Fix for Windows: asyncpg requires SelectorEventLoop on Windows
if sys.platform == "win32":
    import asyncio

    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())  # type: ignore[attr-defined]


# ==================== SQLite Fixtures ====================

# Stored verbatim by SQLite, so get_schema must return exactly this text
SQLITE_DDL = [
    "CREATE TABLE users (id INTEGER PRIMARY KEY, email TEXT UNIQUE, name TEXT NOT NULL)",
    """CREATE TABLE orders (
    id INTEGER PRIMARY KEY,
    user_id INTEGER NOT NULL REFERENCES users(id),  -- owner
    status TEXT DEFAULT 'new',
    total REAL
)""",
    "CREATE INDEX idx_orders_status_user ON orders (status, user_id)",
    "CREATE TABLE regions (country TEXT, code TEXT, label, PRIMARY KEY (country, code))",
    """CREATE TABLE stores (
    id INTEGER PRIMARY KEY,
    region_country TEXT,
    region_code TEXT,
    FOREIGN KEY (region_country, region_code) REFERENCES regions
)""",
    "CREATE VIEW named_users AS SELECT id, name FROM users WHERE name <> ''",
]


def build_sqlite_database(path: Path) -> Path:
    """Create the sample database with the stdlib driver."""
    conn = sqlite3.connect(path)
    try:
        for statement in SQLITE_DDL:
            conn.execute(statement)
        conn.executemany(
            "INSERT INTO users (id, email, name) VALUES (?, ?, ?)",
            [
                (1, "ada@example.com", "Ada"),
                (2, "grace@example.com", "Grace"),
                (3, None, "Linus"),
            ],
        )
        conn.executemany(
            "INSERT INTO orders (user_id, status, total) VALUES (?, ?, ?)",
            [(1, "paid", 12.5), (1, "new", 3.0), (2, "paid", 99.99)],
        )
        conn.execute("INSERT INTO regions VALUES ('NZ', 'AKL', 'Auckland')")
        conn.execute("INSERT INTO stores (region_country, region_code) VALUES ('NZ', 'AKL')")
        conn.commit()
    finally:
        conn.close()
    return path


@pytest.fixture
def sqlite_ddl() -> list[str]:
    """CREATE statements of the sample database, in creation order"""
    return list(SQLITE_DDL)


@pytest.fixture
def sqlite_path(tmp_path: Path) -> Path:
    """Path of a freshly built sample SQLite database"""
    return build_sqlite_database(tmp_path / "sample.db")


@pytest.fixture
def large_sqlite_path(tmp_path: Path) -> Path:
    """SQLite database with a single 1000-row table"""
    path = tmp_path / "large.db"
    conn = sqlite3.connect(path)
    try:
        conn.execute("CREATE TABLE t (id INTEGER PRIMARY KEY, value TEXT)")
        conn.executemany(
            "INSERT INTO t (id, value) VALUES (?, ?)",
            [(i, f"row-{i}") for i in range(1, 1001)],
        )
        conn.commit()
    finally:
        conn.close()
    return path


@pytest.fixture
async def sqlite_driver(sqlite_path: Path) -> AsyncGenerator[DatabaseDriver, None]:
    """SQLite driver over the sample database with proper cleanup"""
    driver = await create_driver(str(sqlite_path))
    try:
        yield driver
    finally:
        await driver.close()


# ==================== PostgreSQL Fixtures ====================


@pytest.fixture(scope="session")
def pg_database_url() -> Optional[str]:
    """PostgreSQL test database URL from environment"""
    return os.getenv("PG_TEST_DATABASE_URL")


@pytest.fixture
async def pg_admin_engine(
    pg_database_url: Optional[str],
) -> AsyncGenerator[AsyncEngine, None]:
    """Writable engine used to build and drop test schemas"""
    if not pg_database_url:
        pytest.skip("PG_TEST_DATABASE_URL not set in environment")
    engine = create_async_engine(normalize_url(pg_database_url))
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
async def pg_schema(pg_admin_engine: AsyncEngine) -> AsyncGenerator[str, None]:
    """Private schema with composite keys, an index, and a view"""
    schema = f"dbx_test_{uuid.uuid4().hex[:12]}"
    statements = [
        f"CREATE SCHEMA {schema}",
        f"""CREATE TABLE {schema}.regions (
            country TEXT,
            code TEXT,
            name TEXT NOT NULL,
            PRIMARY KEY (country, code)
        )""",
        f"""CREATE TABLE {schema}.stores (
            id SERIAL PRIMARY KEY,
            region_country TEXT,
            region_code TEXT,
            opened DATE DEFAULT CURRENT_DATE,
            tags TEXT[],
            FOREIGN KEY (region_country, region_code)
                REFERENCES {schema}.regions (country, code)
        )""",
        f"CREATE INDEX stores_code_country_idx ON {schema}.stores (region_code, region_country)",
        f"""CREATE VIEW {schema}.store_regions AS
            SELECT s.id, r.name FROM {schema}.stores s
            JOIN {schema}.regions r
              ON r.country = s.region_country AND r.code = s.region_code""",
        f"INSERT INTO {schema}.regions VALUES ('NZ', 'AKL', 'Auckland'), "
        f"('NZ', 'WLG', 'Wellington'), ('AU', 'SYD', 'Sydney')",
        f"INSERT INTO {schema}.stores (region_country, region_code) "
        f"VALUES ('NZ', 'AKL'), ('AU', 'SYD')",
    ]
    async with pg_admin_engine.begin() as conn:
        for statement in statements:
            await conn.exec_driver_sql(statement)
    try:
        yield schema
    finally:
        async with pg_admin_engine.begin() as conn:
            await conn.exec_driver_sql(f"DROP SCHEMA {schema} CASCADE")


@pytest.fixture
async def pg_driver(
    pg_database_url: Optional[str], pg_schema: str
) -> AsyncGenerator[DatabaseDriver, None]:
    """PostgreSQL driver bound to the private test schema"""
    assert pg_database_url is not None
    driver = await create_driver(pg_database_url, schema_name=pg_schema)
    try:
        yield driver
    finally:
        await driver.close()


# ==================== Pytest Configuration ====================


def pytest_configure(config):
    """Register custom markers"""
    config.addinivalue_line("markers", "sqlite: SQLite-specific tests")
    config.addinivalue_line("markers", "postgresql: PostgreSQL-specific tests")
    config.addinivalue_line(
        "markers", "integration: Integration tests requiring a database server"
    )
