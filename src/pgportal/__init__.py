"""pgportal: a multi-session MCP gateway for PostgreSQL."""

__version__ = "0.1.0"
