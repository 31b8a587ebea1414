"""Database Explorer MCP Server

A Model Context Protocol (MCP) server providing read-only exploration of a
SQLite file or a PostgreSQL schema.
"""

import asyncio
import logging
import os
from pathlib import Path
from typing import Any, Optional

from mcp.server import Server
from mcp.types import TextContent, Tool

from db_explorer.drivers import DatabaseDriver, create_driver
from db_explorer.models.config import DatabaseConfig
from db_explorer.utils import dumps

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Response size limits (in characters) for MCP tool responses
MAX_RESPONSE_DATABASE_INFO = 2000  # Basic database metadata
MAX_RESPONSE_GET_RELATIONSHIPS = 3000  # Foreign key edges
MAX_RESPONSE_GET_STATS = 3000  # Row and column counts
MAX_RESPONSE_EXPORT_CSV = 1000  # Export summary
MAX_RESPONSE_SAMPLE_DATA = 5000  # Table data preview
MAX_RESPONSE_LIST_TABLES = 5000  # Table listings
MAX_RESPONSE_DESCRIBE_TABLE = 8000  # Detailed table structure
MAX_RESPONSE_GET_SCHEMA = 10000  # DDL text
MAX_RESPONSE_EXECUTE_QUERY = 10000  # Query results (up to 500 rows)


def truncate_json_response(data: str, max_length: int) -> str:
    """
    Truncate JSON response to a maximum length.

    Args:
        data: JSON string to truncate
        max_length: Maximum length in characters

    Returns:
        Truncated JSON string with truncation notice if needed
    """
    if len(data) <= max_length:
        return data

    truncation_msg = (
        f"\n\n... [Response truncated: {len(data)} chars -> {max_length} chars "
        "to preserve context window]"
    )
    available_length = max_length - len(truncation_msg)

    if available_length < 100:
        return dumps(
            {
                "error": "Response too large",
                "original_size": len(data),
                "limit": max_length,
                "message": (
                    "Response exceeds size limit. "
                    "Please use a narrower query or a smaller limit."
                ),
            }
        )

    truncated = data[:available_length]

    # Cut at a line end when one is close to the limit
    last_newline = truncated.rfind("\n")
    if last_newline > available_length * 0.8:
        truncated = truncated[:last_newline]

    return truncated + truncation_msg


def _text(payload: Any, max_length: int) -> list[TextContent]:
    response = payload if isinstance(payload, str) else dumps(payload)
    return [
        TextContent(type="text", text=truncate_json_response(response, max_length))
    ]


class DatabaseExplorerServer:
    """MCP server exposing one database driver as tools."""

    def __init__(self, config: DatabaseConfig):
        """
        Initialize database explorer server.

        Args:
            config: Database configuration
        """
        self.config = config
        self.driver: Optional[DatabaseDriver] = None
        self.server = Server("db-explorer")

    async def initialize(self) -> None:
        """Open the database."""
        self.driver = await create_driver(self.config)
        logger.info(f"Initialized MCP server for {self.driver.label}")

    def _create_get_database_info_tool(self) -> Tool:
        """Create get_database_info tool."""
        return Tool(
            name="get_database_info",
            description="Get the database dialect, a connection label, and table/view counts",
            inputSchema={
                "type": "object",
                "properties": {},
                "required": [],
            },
        )

    def _create_list_tables_tool(self) -> Tool:
        """Create list_tables tool."""
        return Tool(
            name="list_tables",
            description="List all tables and views",
            inputSchema={
                "type": "object",
                "properties": {},
                "required": [],
            },
        )

    def _create_describe_table_tool(self) -> Tool:
        """Create describe_table tool."""
        return Tool(
            name="describe_table",
            description="Get columns, indexes, and foreign keys of a table",
            inputSchema={
                "type": "object",
                "properties": {
                    "table": {"type": "string", "description": "Table name"},
                },
                "required": ["table"],
            },
        )

    def _create_execute_query_tool(self) -> Tool:
        """Create execute_query tool."""
        return Tool(
            name="execute_query",
            description=(
                "Execute a read-only SQL query (SELECT, WITH, EXPLAIN; PRAGMA on SQLite). "
                "At most 500 rows are returned."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "query": {
                        "type": "string",
                        "description": "SQL query to execute",
                    },
                    "limit": {
                        "type": "integer",
                        "description": "Maximum number of rows to return (default and maximum: 500)",
                        "minimum": 1,
                        "maximum": 500,
                    },
                    "format": {
                        "type": "string",
                        "enum": ["json", "table"],
                        "description": "Result format (default: json)",
                        "default": "json",
                    },
                },
                "required": ["query"],
            },
        )

    def _create_sample_data_tool(self) -> Tool:
        """Create sample_data tool."""
        return Tool(
            name="sample_data",
            description="Preview the first rows of a table",
            inputSchema={
                "type": "object",
                "properties": {
                    "table": {"type": "string", "description": "Table name"},
                    "limit": {
                        "type": "integer",
                        "description": "Number of rows to sample (default: 10, maximum: 50)",
                        "default": 10,
                    },
                },
                "required": ["table"],
            },
        )

    def _create_get_schema_tool(self) -> Tool:
        """Create get_schema tool."""
        return Tool(
            name="get_schema",
            description=(
                "Get CREATE statements for the whole database. SQLite returns the "
                "stored text; PostgreSQL statements are rebuilt from the catalog."
            ),
            inputSchema={
                "type": "object",
                "properties": {},
                "required": [],
            },
        )

    def _create_get_stats_tool(self) -> Tool:
        """Create get_stats tool."""
        return Tool(
            name="get_stats",
            description=(
                "Get row and column counts for every table. SQLite counts are exact; "
                "PostgreSQL row counts are planner estimates and may lag the true count."
            ),
            inputSchema={
                "type": "object",
                "properties": {},
                "required": [],
            },
        )

    def _create_get_relationships_tool(self) -> Tool:
        """Create get_relationships tool."""
        return Tool(
            name="get_relationships",
            description="Get all foreign key relationships in the database",
            inputSchema={
                "type": "object",
                "properties": {},
                "required": [],
            },
        )

    def _create_export_csv_tool(self) -> Tool:
        """Create export_csv tool."""
        return Tool(
            name="export_csv",
            description="Run a read-only query and write the result (at most 500 rows) to a CSV file",
            inputSchema={
                "type": "object",
                "properties": {
                    "query": {
                        "type": "string",
                        "description": "SQL query to export",
                    },
                    "path": {
                        "type": "string",
                        "description": "Destination file path",
                    },
                    "limit": {
                        "type": "integer",
                        "description": "Maximum number of rows to export (default and maximum: 500)",
                        "minimum": 1,
                        "maximum": 500,
                    },
                },
                "required": ["query", "path"],
            },
        )

    def list_tools(self) -> list[Tool]:
        """All tools served by this server."""
        return [
            self._create_get_database_info_tool(),
            self._create_list_tables_tool(),
            self._create_describe_table_tool(),
            self._create_execute_query_tool(),
            self._create_sample_data_tool(),
            self._create_get_schema_tool(),
            self._create_get_stats_tool(),
            self._create_get_relationships_tool(),
            self._create_export_csv_tool(),
        ]

    # Tool handlers
    async def handle_get_database_info(
        self, arguments: dict[str, Any]
    ) -> list[TextContent]:
        """Handle get_database_info request."""
        assert self.driver is not None

        info = await self.driver.describe()
        return _text(info.model_dump(mode="json"), MAX_RESPONSE_DATABASE_INFO)

    async def handle_list_tables(self, arguments: dict[str, Any]) -> list[TextContent]:
        """Handle list_tables request."""
        assert self.driver is not None

        tables = await self.driver.list_tables()
        tables_data = [t.model_dump(mode="json") for t in tables]
        return _text(tables_data, MAX_RESPONSE_LIST_TABLES)

    async def handle_describe_table(
        self, arguments: dict[str, Any]
    ) -> list[TextContent]:
        """Handle describe_table request."""
        assert self.driver is not None

        description = await self.driver.describe_table(arguments["table"])
        return _text(description.model_dump(mode="json"), MAX_RESPONSE_DESCRIBE_TABLE)

    async def handle_execute_query(
        self, arguments: dict[str, Any]
    ) -> list[TextContent]:
        """Handle execute_query request."""
        assert self.driver is not None

        query = arguments["query"]
        limit = arguments.get("limit")
        output_format = arguments.get("format", "json")

        result = await self.driver.query(query, limit=limit)

        if output_format == "table":
            return _text(result.to_table_string(), MAX_RESPONSE_EXECUTE_QUERY)
        return _text(result.model_dump(mode="json"), MAX_RESPONSE_EXECUTE_QUERY)

    async def handle_sample_data(self, arguments: dict[str, Any]) -> list[TextContent]:
        """Handle sample_data request."""
        assert self.driver is not None

        table = arguments["table"]
        limit = arguments.get("limit", 10)

        result = await self.driver.sample(table, limit)
        return _text(result.model_dump(mode="json"), MAX_RESPONSE_SAMPLE_DATA)

    async def handle_get_schema(self, arguments: dict[str, Any]) -> list[TextContent]:
        """Handle get_schema request."""
        assert self.driver is not None

        schema = await self.driver.get_schema()
        return _text(schema or "(empty database)", MAX_RESPONSE_GET_SCHEMA)

    async def handle_get_stats(self, arguments: dict[str, Any]) -> list[TextContent]:
        """Handle get_stats request."""
        assert self.driver is not None

        stats = await self.driver.get_stats()
        stats_data = [s.model_dump(mode="json") for s in stats]
        return _text(stats_data, MAX_RESPONSE_GET_STATS)

    async def handle_get_relationships(
        self, arguments: dict[str, Any]
    ) -> list[TextContent]:
        """Handle get_relationships request."""
        assert self.driver is not None

        relationships = await self.driver.get_relationships()
        relationships_data = [r.model_dump(mode="json") for r in relationships]
        return _text(relationships_data, MAX_RESPONSE_GET_RELATIONSHIPS)

    async def handle_export_csv(self, arguments: dict[str, Any]) -> list[TextContent]:
        """Handle export_csv request."""
        assert self.driver is not None

        query = arguments["query"]
        limit = arguments.get("limit")

        result = await self.driver.query(query, limit=limit)

        path = Path(arguments["path"]).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(result.to_csv(), encoding="utf-8")
        logger.info(f"Exported {result.row_count} rows to {path}")

        summary = {
            "path": str(path.resolve()),
            "row_count": result.row_count,
            "truncated": result.truncated,
        }
        return _text(summary, MAX_RESPONSE_EXPORT_CSV)

    async def call_tool(
        self, name: str, arguments: dict[str, Any]
    ) -> list[TextContent]:
        """Dispatch a tool call to its handler."""
        handlers = {
            "get_database_info": self.handle_get_database_info,
            "list_tables": self.handle_list_tables,
            "describe_table": self.handle_describe_table,
            "execute_query": self.handle_execute_query,
            "sample_data": self.handle_sample_data,
            "get_schema": self.handle_get_schema,
            "get_stats": self.handle_get_stats,
            "get_relationships": self.handle_get_relationships,
            "export_csv": self.handle_export_csv,
        }

        handler = handlers.get(name)
        if handler is None:
            raise ValueError(f"Unknown tool: {name}")

        return await handler(arguments or {})

    async def cleanup(self) -> None:
        """Cleanup resources."""
        if self.driver is not None:
            await self.driver.close()
        logger.info("Database explorer server cleaned up")


async def main() -> None:
    """Main entry point for the MCP server."""
    config = DatabaseConfig.from_env()

    mcp_server = DatabaseExplorerServer(config)

    try:
        await mcp_server.initialize()

        @mcp_server.server.list_tools()
        async def list_tools() -> list[Tool]:
            """List available tools."""
            return mcp_server.list_tools()

        @mcp_server.server.call_tool()
        async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
            """Handle tool calls."""
            return await mcp_server.call_tool(name, arguments)

        # Run the server
        from mcp.server.stdio import stdio_server

        async with stdio_server() as (read_stream, write_stream):
            await mcp_server.server.run(
                read_stream,
                write_stream,
                mcp_server.server.create_initialization_options(),
            )

    finally:
        await mcp_server.cleanup()


def cli_entry() -> None:
    """
    Synchronous entry point for console script.

    This function is called by the 'db-explorer' console script.
    It sets up the event loop and runs the async main() function.
    """
    # Windows-specific event loop policy
    if os.name == "nt":
        asyncio.set_event_loop_policy(asyncio.WindowsProactorEventLoopPolicy())  # type: ignore[attr-defined]

    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Server stopped by user")
    except Exception as e:
        logger.error(f"Server error: {e}", exc_info=True)
        raise


if __name__ == "__main__":
    cli_entry()
