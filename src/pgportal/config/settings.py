from __future__ import annotations

import os
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from pgportal.errors import RoutingError


class PoolConfig(BaseModel):
    min_size: int = Field(default=0, ge=0)
    max_size: int = Field(default=10, ge=1)
    max_pools: int = Field(default=8, ge=1)
    idle_seconds: float = Field(default=300.0, gt=0)
    close_timeout_seconds: float = Field(default=10.0, gt=0)
    command_timeout: float | None = Field(default=None, gt=0)


class HttpConfig(BaseModel):
    host: str = "0.0.0.0"
    port: int = Field(default=3000, ge=1, le=65535)
    sse_path: str = "/sse"
    message_path: str = "/message"
    health_path: str = "/health"
    cors_allow_origin: str = "*"
    ping_seconds: float = Field(default=15.0, gt=0)


class Settings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    http_mode: bool = False
    secret: str | None = None
    database_url: str | None = None
    # Positional CLI argument; lowest precedence.
    cli_database_url: str | None = None
    schema_name: str = "public"
    allow_session_fallback: bool = True
    allow_in_band_target: bool = True
    pool: PoolConfig = Field(default_factory=PoolConfig)
    http: HttpConfig = Field(default_factory=HttpConfig)

    def __init__(self, **data: Any) -> None:
        super().__init__(**data)
        # Manually override from environment variables
        if os.environ.get("MCP_SECRET"):
            self.secret = os.environ["MCP_SECRET"]
        if os.environ.get("DATABASE_URL"):
            self.database_url = os.environ["DATABASE_URL"]
        if os.environ.get("PORT"):
            self.http.port = int(os.environ["PORT"])
        if os.environ.get("MCP_HTTP_MODE", "").lower() == "true":
            self.http_mode = True

    @property
    def secret_configured(self) -> bool:
        return bool(self.secret)


def resolve_database_url(settings: Settings, explicit: str | None = None) -> str:
    """Pick the database URL: explicit parameter, then environment/config, then CLI.

    Raises:
        RoutingError: If no source provides a URL.
    """
    for candidate in (explicit, settings.database_url, settings.cli_database_url):
        if candidate:
            return candidate
    raise RoutingError(
        "Database URL must be provided via 'db' query parameter, "
        "DATABASE_URL environment variable, or CLI argument"
    )
