"""MCP surface: per-session servers plus the query/schema tools."""

from pgportal.mcp.server import build_session_server, extract_in_band_target
from pgportal.mcp.tools import GatewayTools, tool_definitions

__all__ = ["GatewayTools", "build_session_server", "extract_in_band_target", "tool_definitions"]
