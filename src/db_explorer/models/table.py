"""Table, column, index, foreign-key and statistics models.

These shapes are the same for every backend. Each driver translates its own
catalog rows into them at the introspection boundary.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class TableKind(str, Enum):
    """Kind of relation returned by table listing."""

    TABLE = "table"
    VIEW = "view"


class TableSummary(BaseModel):
    """A table or view name as returned by ``list_tables``."""

    name: str = Field(..., description="Table or view name")
    kind: TableKind = Field(..., description="Relation kind (table or view)")


class ColumnInfo(BaseModel):
    """Information about a table column."""

    name: str = Field(..., description="Column name")
    data_type: str = Field(..., description="Declared or catalog data type")
    nullable: bool = Field(..., description="Whether column allows NULL")
    default: Optional[str] = Field(None, description="Default value expression")
    primary_key: bool = Field(
        default=False, description="Whether column is part of primary key"
    )


class IndexInfo(BaseModel):
    """Information about a table index."""

    name: str = Field(..., description="Index name")
    columns: list[str] = Field(
        ..., description="Indexed column names in index key order"
    )
    unique: bool = Field(default=False, description="Whether index enforces uniqueness")
    primary: bool = Field(
        default=False, description="Whether this is the primary key index"
    )


class ForeignKeyInfo(BaseModel):
    """A single-column foreign key edge from the described table.

    Composite foreign keys appear as one entry per column pair.
    """

    column: str = Field(..., description="Referencing column")
    referenced_table: str = Field(..., description="Referenced table")
    referenced_column: str = Field(..., description="Referenced column")


class RelationshipEdge(BaseModel):
    """A foreign key edge between two tables."""

    from_table: str = Field(..., description="Referencing table")
    from_column: str = Field(..., description="Referencing column")
    to_table: str = Field(..., description="Referenced table")
    to_column: str = Field(..., description="Referenced column")

    @classmethod
    def from_foreign_key(cls, table: str, fk: ForeignKeyInfo) -> "RelationshipEdge":
        """Build an edge from a table's foreign key entry."""
        return cls(
            from_table=table,
            from_column=fk.column,
            to_table=fk.referenced_table,
            to_column=fk.referenced_column,
        )


class TableDescription(BaseModel):
    """Columns, indexes and foreign keys of one table or view."""

    name: str = Field(..., description="Table name")
    columns: list[ColumnInfo] = Field(
        default_factory=list, description="Columns in ordinal order"
    )
    indexes: list[IndexInfo] = Field(
        default_factory=list, description="Index information"
    )
    foreign_keys: list[ForeignKeyInfo] = Field(
        default_factory=list, description="Foreign key edges"
    )

    @property
    def primary_key_columns(self) -> list[str]:
        """Get primary key column names."""
        return [col.name for col in self.columns if col.primary_key]

    @property
    def column_count(self) -> int:
        """Get number of columns."""
        return len(self.columns)

    def get_column(self, name: str) -> Optional[ColumnInfo]:
        """Get column by name."""
        for col in self.columns:
            if col.name == name:
                return col
        return None

    def get_index(self, name: str) -> Optional[IndexInfo]:
        """Get index by name."""
        for idx in self.indexes:
            if idx.name == name:
                return idx
        return None


class TableStats(BaseModel):
    """Row and column counts for one table.

    ``row_count`` is exact on SQLite (``COUNT(*)``) and a planner estimate on
    PostgreSQL (``pg_class.reltuples``). ``row_count_exact`` says which one
    you got; do not compare counts across backends as if they were the same.
    """

    table_name: str = Field(..., description="Table name")
    row_count: int = Field(..., ge=0, description="Row count (exact or estimated)")
    column_count: int = Field(..., ge=0, description="Number of columns")
    row_count_exact: bool = Field(
        ..., description="True if row_count is an exact count, False if estimated"
    )


class DatabaseInfo(BaseModel):
    """Summary of the connected database."""

    dialect: str = Field(..., description="Database dialect (sqlite, postgresql)")
    label: str = Field(..., description="Human-readable connection label")
    table_count: int = Field(..., description="Number of tables")
    view_count: int = Field(..., description="Number of views")
