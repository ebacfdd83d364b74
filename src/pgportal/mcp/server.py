"""Per-session MCP servers.

Every session gets its own low-level ``Server`` whose handlers close over
that session's routing context. Concurrent sessions therefore never share a
mutable "current database": the context travels with the request.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from typing import Any
from urllib.parse import parse_qs, unquote

from mcp import types
from mcp.server.lowlevel import Server
from mcp.server.lowlevel.helper_types import ReadResourceContents
from pydantic import AnyUrl

from pgportal import __version__
from pgportal.db.targets import RoutingContext, TargetIdentity
from pgportal.errors import GatewayError, ToolError
from pgportal.mcp.tools import GatewayTools, tool_definitions

logger = logging.getLogger(__name__)

SERVER_NAME = "pgportal"


def extract_in_band_target(meta: Any) -> str | None:
    """Find a database URL carried in a request's ``_meta``.

    Looks at ``connectionParams.db`` (URL-encoded) first, then at a string
    ``progressToken`` in query-string form (``db=...``).
    """
    if meta is None:
        return None

    params = getattr(meta, "connectionParams", None)
    db = params.get("db") if isinstance(params, dict) else getattr(params, "db", None)
    if isinstance(db, str) and db:
        return unquote(db)

    token = getattr(meta, "progressToken", None)
    if isinstance(token, str) and token:
        values = parse_qs(token).get("db")
        if values:
            return values[0]
    return None


def build_session_server(
    context: RoutingContext,
    tools: GatewayTools,
    *,
    allow_in_band_target: bool = True,
) -> Server[Any, Any]:
    """Create an MCP server bound to one session's routing context."""
    server: Server[Any, Any] = Server(SERVER_NAME, version=__version__)

    def effective_context() -> RoutingContext:
        if not allow_in_band_target:
            return context
        try:
            meta = server.request_context.meta
        except LookupError:
            return context
        raw = extract_in_band_target(meta)
        if raw is None:
            return context
        override = context.with_target(TargetIdentity.parse(raw))
        logger.debug("In-band target override: %s", override.target)
        return override

    @server.list_tools()  # type: ignore[no-untyped-call,untyped-decorator]
    async def list_tools() -> list[types.Tool]:
        return tool_definitions(context)

    @server.call_tool()  # type: ignore[untyped-decorator]
    async def call_tool(name: str, arguments: dict[str, Any] | None) -> Sequence[types.TextContent]:
        try:
            return await tools.call_tool(name, arguments or {}, effective_context())
        except ToolError:
            raise
        except GatewayError as exc:
            # e.g. an unparseable in-band target
            raise ToolError(str(exc)) from exc

    @server.list_resources()  # type: ignore[no-untyped-call,untyped-decorator]
    async def list_resources() -> list[types.Resource]:
        return await tools.list_resources(effective_context())

    @server.read_resource()  # type: ignore[no-untyped-call,untyped-decorator]
    async def read_resource(uri: AnyUrl) -> Iterable[ReadResourceContents]:
        text = await tools.read_resource(str(uri), effective_context())
        return [ReadResourceContents(content=text, mime_type="application/json")]

    return server
