"""Query result model."""

import csv
import io
from typing import Any, Optional

from pydantic import BaseModel, Field

# Cell width cap for text rendering
MAX_CELL_WIDTH = 40


def _cell(value: Any) -> str:
    return "NULL" if value is None else str(value)


class QueryResult(BaseModel):
    """Result of a read-only query."""

    query: str = Field(..., description="SQL text sent to the engine")
    columns: list[str] = Field(..., description="Column names in order")
    rows: list[dict[str, Any]] = Field(..., description="Result rows as dictionaries")
    row_count: int = Field(..., description="Number of rows returned")
    truncated: bool = Field(
        default=False,
        description="Whether the row cap cut off rows the statement would have returned",
    )
    execution_time_ms: Optional[float] = Field(
        None, description="Execution time in milliseconds"
    )
    warning: Optional[str] = Field(None, description="Warning message if applicable")

    @property
    def is_empty(self) -> bool:
        """Check if result set is empty."""
        return self.row_count == 0

    @property
    def column_count(self) -> int:
        """Get number of columns."""
        return len(self.columns)

    def get_column_values(self, column: str) -> list[Any]:
        """Extract all values for a specific column."""
        return [row.get(column) for row in self.rows]

    def to_table_string(self) -> str:
        """Format result as a fixed-width text table."""
        if self.is_empty:
            return "(no rows)"

        widths = {col: len(col) for col in self.columns}
        for row in self.rows:
            for col in self.columns:
                width = min(len(_cell(row.get(col))), MAX_CELL_WIDTH)
                widths[col] = max(widths[col], width)

        lines = [
            " | ".join(col.ljust(widths[col]) for col in self.columns),
            "-+-".join("-" * widths[col] for col in self.columns),
        ]
        for row in self.rows:
            cells = []
            for col in self.columns:
                value = _cell(row.get(col))
                if len(value) > MAX_CELL_WIDTH:
                    value = value[: MAX_CELL_WIDTH - 3] + "..."
                cells.append(value.ljust(widths[col]))
            lines.append(" | ".join(cells))

        if self.truncated:
            lines.append(f"\n(truncated: showing the first {self.row_count} rows)")
        lines.append(f"\n{self.row_count} row(s)")
        return "\n".join(lines)

    def to_csv(self) -> str:
        """Render columns and rows as CSV text (NULL becomes an empty field)."""
        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow(self.columns)
        for row in self.rows:
            writer.writerow(
                ["" if row.get(col) is None else row.get(col) for col in self.columns]
            )
        return buffer.getvalue()

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "query": "SELECT id, email FROM users LIMIT 500",
                    "columns": ["id", "email"],
                    "rows": [{"id": 1, "email": "ada@example.com"}],
                    "row_count": 1,
                    "truncated": False,
                    "execution_time_ms": 0.8,
                    "warning": None,
                }
            ]
        }
    }
