"""Shared request helpers: gateway state, authentication, routing extraction."""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from typing import cast

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.datastructures import QueryParams

from pgportal.config.settings import Settings, resolve_database_url
from pgportal.db.router import ConnectionRouter
from pgportal.db.targets import RoutingContext, TargetIdentity
from pgportal.errors import AuthError, ConfigError, GatewayError
from pgportal.mcp.tools import GatewayTools
from pgportal.policy.permissions import Grant
from pgportal.sessions.registry import SessionRegistry


@dataclass
class Gateway:
    settings: Settings
    registry: SessionRegistry
    router: ConnectionRouter
    tools: GatewayTools


def get_gateway(request: Request) -> Gateway:
    return cast(Gateway, request.app.state.gateway)


def error_response(exc: GatewayError) -> JSONResponse:
    return JSONResponse({"error": exc.message}, status_code=exc.status_code)


def check_secret(settings: Settings, query: QueryParams) -> None:
    """Validate the ``secret`` query parameter.

    Raises:
        ConfigError: If no secret is configured on the server.
        AuthError: If the provided secret is missing or wrong.
    """
    if not settings.secret:
        raise ConfigError("MCP_SECRET environment variable is required for HTTP mode")
    provided = query.get("secret")
    if provided is None or not secrets.compare_digest(
        provided.encode("utf-8"), settings.secret.encode("utf-8")
    ):
        raise AuthError("Invalid or missing secret")


def extract_routing(settings: Settings, query: QueryParams) -> RoutingContext:
    """Build the routing context from ``db`` and ``permissions`` parameters.

    Raises:
        RoutingError: If no database URL resolves or it is malformed.
        GrantError: If the permission list is invalid.
    """
    target = TargetIdentity.parse(resolve_database_url(settings, query.get("db")))
    grant = Grant.parse(query.get("permissions"))
    return RoutingContext(target=target, grant=grant)


def require_secret(request: Request) -> None:
    """FastAPI dependency form of ``check_secret``."""
    check_secret(get_gateway(request).settings, request.query_params)
