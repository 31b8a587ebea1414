"""SQLite driver.

Catalog data comes from ``sqlite_master`` and the ``PRAGMA`` introspection
statements. Every PRAGMA row shape is parsed into a small record at the point
it is read, so the rest of the driver never handles raw catalog rows.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncConnection

from db_explorer.core.guard import READ_ONLY_KEYWORDS
from db_explorer.drivers.base import DatabaseDriver, quote_identifier
from db_explorer.errors import IntrospectionError
from db_explorer.models.config import Dialect
from db_explorer.models.table import (
    ColumnInfo,
    ForeignKeyInfo,
    IndexInfo,
    RelationshipEdge,
    TableDescription,
    TableKind,
    TableStats,
    TableSummary,
)

logger = logging.getLogger(__name__)

# Name reported for index keys that are expressions rather than columns
EXPRESSION_COLUMN = "<expression>"

# Type reported for columns declared without one
UNTYPED_COLUMN = "ANY"

_USER_OBJECTS = "name NOT LIKE 'sqlite\\_%' ESCAPE '\\'"


@dataclass(frozen=True)
class _ColumnRow:
    """One row of ``PRAGMA table_info``."""

    cid: int
    name: str
    type: str
    notnull: bool
    default: Optional[str]
    pk: int

    @classmethod
    def parse(cls, row: dict[str, Any]) -> "_ColumnRow":
        return cls(
            cid=int(row["cid"]),
            name=row["name"],
            type=row["type"] or "",
            notnull=bool(row["notnull"]),
            default=None if row["dflt_value"] is None else str(row["dflt_value"]),
            pk=int(row["pk"]),
        )

    def to_column(self) -> ColumnInfo:
        return ColumnInfo(
            name=self.name,
            data_type=self.type or UNTYPED_COLUMN,
            # Primary key columns report NOT NULL whatever notnull says
            nullable=not self.notnull and self.pk == 0,
            default=self.default,
            primary_key=self.pk > 0,
        )


@dataclass(frozen=True)
class _IndexRow:
    """One row of ``PRAGMA index_list``."""

    name: str
    unique: bool
    origin: str

    @classmethod
    def parse(cls, row: dict[str, Any]) -> "_IndexRow":
        return cls(
            name=row["name"],
            unique=bool(row["unique"]),
            origin=row.get("origin") or "c",
        )


@dataclass(frozen=True)
class _IndexColumnRow:
    """One row of ``PRAGMA index_info``."""

    seqno: int
    name: Optional[str]

    @classmethod
    def parse(cls, row: dict[str, Any]) -> "_IndexColumnRow":
        return cls(seqno=int(row["seqno"]), name=row["name"])


@dataclass(frozen=True)
class _ForeignKeyRow:
    """One row of ``PRAGMA foreign_key_list``."""

    id: int
    seq: int
    table: str
    from_column: str
    to_column: Optional[str]

    @classmethod
    def parse(cls, row: dict[str, Any]) -> "_ForeignKeyRow":
        return cls(
            id=int(row["id"]),
            seq=int(row["seq"]),
            table=row["table"],
            from_column=row["from"],
            to_column=row["to"],
        )


class SQLiteDriver(DatabaseDriver):
    """Driver for a single SQLite database file, opened read-only."""

    dialect = Dialect.SQLITE

    # PRAGMA reads are allowed, but never get a LIMIT appended
    allowed_keywords = READ_ONLY_KEYWORDS | {"pragma"}
    rewritable_keywords = READ_ONLY_KEYWORDS

    @property
    def label(self) -> str:
        path = self.config.database_path
        return f"SQLite: {path.name if path else self.config.safe_url}"

    async def list_tables(self) -> list[TableSummary]:
        async with self.connection.get_connection() as conn:
            rows = await self._list_objects(conn)
        return [TableSummary(name=row["name"], kind=row["type"]) for row in rows]

    async def _list_objects(self, conn: AsyncConnection) -> list[dict[str, Any]]:
        return await self.executor.fetch_catalog(
            conn,
            f"""
            SELECT name, type FROM sqlite_master
            WHERE type IN ('table', 'view') AND {_USER_OBJECTS}
            ORDER BY type, name
            """,
        )

    async def _base_tables(self, conn: AsyncConnection) -> list[str]:
        return [
            row["name"]
            for row in await self._list_objects(conn)
            if row["type"] == TableKind.TABLE.value
        ]

    async def describe_table(self, table: str) -> TableDescription:
        async with self.connection.get_connection() as conn:
            columns = await self._table_info(conn, table)
            if not columns:
                raise IntrospectionError(f"Table not found: {table}", table=table)

            return TableDescription(
                name=table,
                columns=[col.to_column() for col in columns],
                indexes=await self._indexes(conn, table),
                foreign_keys=await self._foreign_keys(conn, table),
            )

    async def _table_info(self, conn: AsyncConnection, table: str) -> list[_ColumnRow]:
        rows = await self.executor.fetch_catalog(
            conn, f"PRAGMA table_info({quote_identifier(table)})", table=table
        )
        return sorted((_ColumnRow.parse(row) for row in rows), key=lambda c: c.cid)

    async def _indexes(self, conn: AsyncConnection, table: str) -> list[IndexInfo]:
        index_rows = await self.executor.fetch_catalog(
            conn, f"PRAGMA index_list({quote_identifier(table)})", table=table
        )

        indexes = []
        parsed = sorted(
            (_IndexRow.parse(row) for row in index_rows), key=lambda i: i.name
        )
        for index in parsed:
            key_rows = await self.executor.fetch_catalog(
                conn, f"PRAGMA index_info({quote_identifier(index.name)})", table=table
            )
            keys = sorted(
                (_IndexColumnRow.parse(row) for row in key_rows), key=lambda k: k.seqno
            )
            indexes.append(
                IndexInfo(
                    name=index.name,
                    columns=[key.name or EXPRESSION_COLUMN for key in keys],
                    unique=index.unique,
                    primary=index.origin == "pk",
                )
            )
        return indexes

    async def _foreign_keys(
        self, conn: AsyncConnection, table: str
    ) -> list[ForeignKeyInfo]:
        """
        Foreign keys of one table, one entry per column pair.

        Shared by describe_table and get_relationships so both report the same
        edges. A key declared without parent columns references the parent's
        primary key, matched by position.
        """
        rows = await self.executor.fetch_catalog(
            conn, f"PRAGMA foreign_key_list({quote_identifier(table)})", table=table
        )
        parent_keys: dict[str, list[str]] = {}

        foreign_keys = []
        parsed = sorted(
            (_ForeignKeyRow.parse(row) for row in rows), key=lambda f: (f.id, f.seq)
        )
        for fk in parsed:
            to_column = fk.to_column
            if to_column is None:
                if fk.table not in parent_keys:
                    parent_keys[fk.table] = await self._primary_key(conn, fk.table)
                pk_columns = parent_keys[fk.table]
                # Without a declared primary key the parent is keyed by rowid
                to_column = pk_columns[fk.seq] if fk.seq < len(pk_columns) else "rowid"

            foreign_keys.append(
                ForeignKeyInfo(
                    column=fk.from_column,
                    referenced_table=fk.table,
                    referenced_column=to_column,
                )
            )
        return foreign_keys

    async def _primary_key(self, conn: AsyncConnection, table: str) -> list[str]:
        columns = [col for col in await self._table_info(conn, table) if col.pk > 0]
        return [col.name for col in sorted(columns, key=lambda c: c.pk)]

    async def get_schema(self) -> str:
        """Stored CREATE statements, exactly as the database file holds them."""
        async with self.connection.get_connection() as conn:
            rows = await self.executor.fetch_catalog(
                conn,
                f"""
                SELECT sql FROM sqlite_master
                WHERE sql IS NOT NULL AND {_USER_OBJECTS}
                ORDER BY type DESC, name
                """,
            )
        return "\n\n".join(f"{row['sql']};" for row in rows)

    async def get_stats(self) -> list[TableStats]:
        """Exact row counts via COUNT(*); this scans every table."""
        stats = []
        async with self.connection.get_connection() as conn:
            for table in await self._base_tables(conn):
                counted = await self.executor.fetch_catalog(
                    conn,
                    f"SELECT COUNT(*) AS row_count FROM {quote_identifier(table)}",
                    table=table,
                )
                columns = await self._table_info(conn, table)
                stats.append(
                    TableStats(
                        table_name=table,
                        row_count=counted[0]["row_count"],
                        column_count=len(columns),
                        row_count_exact=True,
                    )
                )
        logger.debug("Collected stats for %d tables", len(stats))
        return stats

    async def get_relationships(self) -> list[RelationshipEdge]:
        edges = []
        async with self.connection.get_connection() as conn:
            for table in await self._base_tables(conn):
                for fk in await self._foreign_keys(conn, table):
                    edges.append(RelationshipEdge.from_foreign_key(table, fk))
        return edges
