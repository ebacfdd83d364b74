"""MCP tools and resources exposed to every session.

Tools: query, schema. Resources: one JSON column listing per table.
Execution-layer failures are raised as ``ToolError`` with a prefixed message
so the server can report them to the calling model as ``isError`` results.
"""

from __future__ import annotations

import json
import logging
from typing import Any
from urllib.parse import unquote

from mcp import types

from pgportal.db.executor import ExecutionWrapper
from pgportal.db.targets import RoutingContext
from pgportal.errors import (
    EmptyStatement,
    GatewayError,
    NotFoundError,
    PermissionDenied,
    ToolError,
)

logger = logging.getLogger(__name__)

SCHEMA_PATH = "schema"


def _string_argument(value: Any, name: str) -> str:
    if not isinstance(value, str):
        raise ToolError(f"{name} parameter must be a string")
    return value


def _optional_string_argument(value: Any, name: str) -> str | None:
    if value is None:
        return None
    return _string_argument(value, name)


def _as_json(value: Any) -> str:
    return json.dumps(value, indent=2, default=str)


def _text(text: str) -> list[types.TextContent]:
    return [types.TextContent(type="text", text=text)]


def tool_definitions(context: RoutingContext) -> list[types.Tool]:
    """Tool list for a session; the query description reflects its grant."""
    if context.grant.is_read_only:
        query_description = "Run a read-only SQL query"
    else:
        query_description = f"Run SQL queries with permissions: {context.grant.describe()}"

    return [
        types.Tool(
            name="query",
            description=query_description,
            inputSchema={
                "type": "object",
                "properties": {
                    "sql": {"type": "string", "description": "SQL query to execute"},
                },
                "required": ["sql"],
            },
        ),
        types.Tool(
            name="schema",
            description="Get database schema information including all tables and their columns",
            inputSchema={
                "type": "object",
                "properties": {
                    "table_name": {
                        "type": "string",
                        "description": "Optional: Get schema for a specific table only",
                    },
                },
                "required": [],
            },
        ),
    ]


class GatewayTools:
    """Tool and resource handlers, parameterized by an explicit routing context."""

    def __init__(self, executor: ExecutionWrapper) -> None:
        self._executor = executor

    async def call_tool(
        self, name: str, arguments: dict[str, Any], context: RoutingContext
    ) -> list[types.TextContent]:
        """Run a tool call.

        Raises:
            ToolError: For any failure that belongs in an ``isError`` result.
        """
        if name == "query":
            return await self.query(_string_argument(arguments.get("sql"), "sql"), context)
        if name == "schema":
            table_name = _optional_string_argument(arguments.get("table_name"), "table_name")
            return await self.schema(table_name, context)
        raise ToolError(f"Unknown tool: {name}")

    async def query(self, sql: str, context: RoutingContext) -> list[types.TextContent]:
        try:
            rows = await self._executor.execute(context, sql)
        except (PermissionDenied, EmptyStatement) as exc:
            logger.info("Rejected statement on %s: %s", context.target, exc)
            raise ToolError(f"Permission Error: {exc}") from exc
        except GatewayError as exc:
            raise ToolError(f"SQL Error: {exc}") from exc
        return _text(_as_json(rows))

    async def schema(self, table_name: str | None, context: RoutingContext) -> list[types.TextContent]:
        try:
            info = await self._executor.describe_schema(context, table_name)
        except NotFoundError as exc:
            raise ToolError(str(exc)) from exc
        except GatewayError as exc:
            raise ToolError(f"Schema Error: {exc}") from exc
        return _text(_as_json(info))

    async def list_resources(self, context: RoutingContext) -> list[types.Resource]:
        base = context.target.display_url
        return [
            types.Resource(
                uri=f"{base}{table}/{SCHEMA_PATH}",  # type: ignore[arg-type]
                mimeType="application/json",
                name=f'"{table}" database schema',
            )
            for table in await self._executor.list_tables(context)
        ]

    async def read_resource(self, uri: str, context: RoutingContext) -> str:
        """Return the column listing addressed by ``<base>/<table>/schema``."""
        segments = str(uri).rstrip("/").split("/")
        if len(segments) < 2 or segments[-1] != SCHEMA_PATH:
            raise ToolError("Invalid resource URI")
        columns = await self._executor.table_columns(context, unquote(segments[-2]))
        return _as_json(columns)
