"""PostgreSQL driver.

Introspects one schema (``DatabaseConfig.schema_name``) through
``information_schema`` and, where the standard views fall short (index key
order, row estimates), ``pg_catalog``. All catalog statements bind the schema
and table names as parameters.
"""

import logging
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncConnection

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

_TABLES_QUERY = """
    SELECT table_name AS name,
           CASE table_type WHEN 'VIEW' THEN 'view' ELSE 'table' END AS kind
    FROM information_schema.tables
    WHERE table_schema = :schema
      AND table_type IN ('BASE TABLE', 'VIEW')
    ORDER BY table_type, table_name
"""

# Arrays and enums report their element/type name instead of a generic label
_COLUMNS_QUERY = """
    SELECT c.column_name AS name,
           CASE WHEN c.data_type IN ('ARRAY', 'USER-DEFINED')
                THEN c.udt_name ELSE c.data_type END AS data_type,
           c.is_nullable = 'YES' AS nullable,
           c.column_default AS column_default,
           pk.column_name IS NOT NULL AS primary_key
    FROM information_schema.columns c
    LEFT JOIN (
        SELECT kcu.column_name
        FROM information_schema.table_constraints tc
        JOIN information_schema.key_column_usage kcu
          ON kcu.constraint_schema = tc.constraint_schema
         AND kcu.constraint_name = tc.constraint_name
         AND kcu.table_name = tc.table_name
        WHERE tc.constraint_type = 'PRIMARY KEY'
          AND tc.table_schema = :schema
          AND tc.table_name = :table
    ) pk ON pk.column_name = c.column_name
    WHERE c.table_schema = :schema
      AND c.table_name = :table
    ORDER BY c.ordinal_position
"""

# Key columns only (INCLUDE columns sit past indnkeyatts), in key order
_INDEXES_QUERY = """
    SELECT i.relname AS name,
           array_agg(COALESCE(a.attname::text, '<expression>') ORDER BY k.ord)
               AS columns,
           ix.indisunique AS is_unique,
           ix.indisprimary AS is_primary
    FROM pg_index ix
    JOIN pg_class t ON t.oid = ix.indrelid
    JOIN pg_class i ON i.oid = ix.indexrelid
    JOIN pg_namespace ns ON ns.oid = t.relnamespace
    CROSS JOIN LATERAL unnest(ix.indkey) WITH ORDINALITY AS k(attnum, ord)
    LEFT JOIN pg_attribute a
      ON a.attrelid = t.oid AND a.attnum = k.attnum AND k.attnum <> 0
    WHERE ns.nspname = :schema
      AND t.relname = :table
      AND k.ord <= ix.indnkeyatts
    GROUP BY i.relname, ix.indisunique, ix.indisprimary
    ORDER BY i.relname
"""

# Each referencing column is paired with the referenced column at the same
# position of the unique constraint, so composite keys keep their order.
_FOREIGN_KEYS_QUERY = """
    SELECT kcu.table_name AS from_table,
           kcu.column_name AS from_column,
           ref.table_name AS to_table,
           ref.column_name AS to_column
    FROM information_schema.referential_constraints rc
    JOIN information_schema.key_column_usage kcu
      ON kcu.constraint_schema = rc.constraint_schema
     AND kcu.constraint_name = rc.constraint_name
    JOIN information_schema.key_column_usage ref
      ON ref.constraint_schema = rc.unique_constraint_schema
     AND ref.constraint_name = rc.unique_constraint_name
     AND ref.ordinal_position = kcu.position_in_unique_constraint
    WHERE kcu.table_schema = :schema
      {table_filter}
    ORDER BY kcu.table_name, kcu.constraint_name, kcu.ordinal_position
"""

_VIEWS_QUERY = """
    SELECT table_name AS name, view_definition
    FROM information_schema.views
    WHERE table_schema = :schema
    ORDER BY table_name
"""

# reltuples is -1 for tables that were never analyzed
_STATS_QUERY = """
    SELECT t.table_name,
           GREATEST(c.reltuples, 0)::bigint AS row_count,
           (SELECT count(*)
              FROM information_schema.columns col
             WHERE col.table_schema = t.table_schema
               AND col.table_name = t.table_name)::int AS column_count
    FROM information_schema.tables t
    JOIN pg_namespace n ON n.nspname = t.table_schema
    JOIN pg_class c ON c.relnamespace = n.oid AND c.relname = t.table_name
    WHERE t.table_schema = :schema
      AND t.table_type = 'BASE TABLE'
    ORDER BY t.table_name
"""


def render_create_table(description: TableDescription) -> str:
    """
    Synthesize a CREATE TABLE statement from a table description.

    PostgreSQL keeps no DDL text, so the statement is rebuilt from the catalog.
    It is meant to be read, not replayed: constraints other than primary and
    foreign keys are omitted.
    """
    lines = []
    for col in description.columns:
        line = f"  {col.name} {col.data_type}"
        if col.primary_key:
            line += " PRIMARY KEY"
        if not col.nullable:
            line += " NOT NULL"
        if col.default is not None:
            line += f" DEFAULT {col.default}"
        lines.append(line)

    for fk in description.foreign_keys:
        lines.append(
            f"  FOREIGN KEY ({fk.column}) "
            f"REFERENCES {fk.referenced_table}({fk.referenced_column})"
        )

    body = ",\n".join(lines)
    return f"CREATE TABLE {description.name} (\n{body}\n);"


class PostgresDriver(DatabaseDriver):
    """Driver for one schema of a PostgreSQL database."""

    dialect = Dialect.POSTGRESQL

    @property
    def schema(self) -> str:
        """Schema being introspected."""
        return self.config.schema_name

    @property
    def label(self) -> str:
        url = self.config.sa_url
        return f"PostgreSQL: {url.database}@{url.host}"

    def qualified_name(self, table: str) -> str:
        return f"{quote_identifier(self.schema)}.{quote_identifier(table)}"

    async def list_tables(self) -> list[TableSummary]:
        async with self.connection.get_connection() as conn:
            rows = await self._fetch(conn, _TABLES_QUERY)
        return [TableSummary(name=row["name"], kind=row["kind"]) for row in rows]

    async def describe_table(self, table: str) -> TableDescription:
        async with self.connection.get_connection() as conn:
            return await self._describe(conn, table)

    async def _describe(self, conn: AsyncConnection, table: str) -> TableDescription:
        column_rows = await self._fetch(conn, _COLUMNS_QUERY, table=table)
        if not column_rows:
            raise IntrospectionError(
                f"Table not found: {self.schema}.{table}", table=table
            )

        index_rows = await self._fetch(conn, _INDEXES_QUERY, table=table)

        return TableDescription(
            name=table,
            columns=[
                ColumnInfo(
                    name=row["name"],
                    data_type=row["data_type"],
                    nullable=row["nullable"],
                    default=row["column_default"],
                    primary_key=row["primary_key"],
                )
                for row in column_rows
            ],
            indexes=[
                IndexInfo(
                    name=row["name"],
                    columns=list(row["columns"]),
                    unique=row["is_unique"],
                    primary=row["is_primary"],
                )
                for row in index_rows
            ],
            foreign_keys=[
                ForeignKeyInfo(
                    column=edge.from_column,
                    referenced_table=edge.to_table,
                    referenced_column=edge.to_column,
                )
                for edge in await self._foreign_key_edges(conn, table)
            ],
        )

    async def _foreign_key_edges(
        self, conn: AsyncConnection, table: Optional[str] = None
    ) -> list[RelationshipEdge]:
        """Foreign key edges of the schema, or of one table when given."""
        if table is None:
            statement = _FOREIGN_KEYS_QUERY.format(table_filter="")
        else:
            statement = _FOREIGN_KEYS_QUERY.format(
                table_filter="AND kcu.table_name = :table"
            )
        rows = await self._fetch(conn, statement, table=table)
        return [RelationshipEdge(**row) for row in rows]

    async def get_schema(self) -> str:
        """
        CREATE TABLE text for every base table, then CREATE VIEW for every view.

        Table statements are synthesized from the catalog; view bodies come
        from ``information_schema.views`` and are missing for views the
        current role does not own.
        """
        parts = []
        async with self.connection.get_connection() as conn:
            for summary in await self._fetch(conn, _TABLES_QUERY):
                if summary["kind"] != TableKind.TABLE.value:
                    continue
                description = await self._describe(conn, summary["name"])
                parts.append(render_create_table(description))

            for view in await self._fetch(conn, _VIEWS_QUERY):
                definition = view["view_definition"]
                if definition is None:
                    logger.debug("View definition of %s is not visible", view["name"])
                    continue
                body = definition.strip().rstrip(";").rstrip()
                parts.append(f"CREATE VIEW {view['name']} AS\n{body};")

        return "\n\n".join(parts)

    async def get_stats(self) -> list[TableStats]:
        """Planner row estimates from ``pg_class.reltuples``; never exact."""
        async with self.connection.get_connection() as conn:
            rows = await self._fetch(conn, _STATS_QUERY)
        return [
            TableStats(
                table_name=row["table_name"],
                row_count=row["row_count"],
                column_count=row["column_count"],
                row_count_exact=False,
            )
            for row in rows
        ]

    async def get_relationships(self) -> list[RelationshipEdge]:
        async with self.connection.get_connection() as conn:
            return await self._foreign_key_edges(conn)

    async def _fetch(
        self, conn: AsyncConnection, statement: str, table: Optional[str] = None
    ) -> list[dict[str, Any]]:
        params: dict[str, Any] = {"schema": self.schema}
        if table is not None:
            params["table"] = table
        return await self.executor.fetch_catalog(conn, statement, params, table=table)
