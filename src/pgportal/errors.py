"""Error taxonomy for the gateway.

HTTP-layer errors carry a status code and are rendered as ``{"error": ...}``.
Tool-layer errors are reported to the calling model as ``isError`` results.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pgportal.policy.permissions import Grant, Permission


class GatewayError(Exception):
    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConfigError(GatewayError):
    status_code = 500


class AuthError(GatewayError):
    status_code = 401


class RoutingError(GatewayError):
    status_code = 400


class GrantError(GatewayError):
    status_code = 400


class SessionNotFound(GatewayError):
    status_code = 404


class ToolError(GatewayError):
    """Failure reported inside a tool result rather than over HTTP."""


class PermissionDenied(ToolError):
    def __init__(self, category: Permission, grant: Grant) -> None:
        super().__init__(
            f"{category.value.upper()} operations not permitted. "
            f"Current permissions: {grant.describe()}"
        )
        self.category = category
        self.grant = grant


class EmptyStatement(ToolError):
    def __init__(self) -> None:
        super().__init__("Empty query not allowed")


class SqlExecutionError(ToolError):
    pass


class NotFoundError(ToolError):
    pass
