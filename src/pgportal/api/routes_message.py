from __future__ import annotations

import logging

import anyio
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from mcp import types
from mcp.shared.message import SessionMessage
from pydantic import ValidationError

from pgportal.api.deps import Gateway, get_gateway
from pgportal.errors import RoutingError, SessionNotFound
from pgportal.sessions.registry import Session

logger = logging.getLogger(__name__)


def _route_session(gateway: Gateway, session_id: str | None) -> Session:
    if session_id:
        return gateway.registry.resolve(session_id)
    if not gateway.settings.allow_session_fallback:
        raise RoutingError("sessionId query parameter is required")
    session = gateway.registry.first_available()
    if session is None:
        raise SessionNotFound("No active MCP session found")
    return session


def create_message_router(message_path: str) -> APIRouter:
    router = APIRouter()

    @router.post(message_path)
    async def post_message(request: Request) -> Response:
        """Deliver one client JSON-RPC message to its session's server loop.

        Not authenticated: the session id issued over the authenticated
        stream is the capability.
        """
        gateway = get_gateway(request)
        session = _route_session(gateway, request.query_params.get("sessionId"))
        await gateway.router.install(session.routing_context)

        body = await request.body()
        try:
            message = types.JSONRPCMessage.model_validate_json(body)
        except ValidationError as exc:
            logger.debug("Unparseable message for session %s: %s", session.id, exc)
            return JSONResponse({"error": "Could not parse message"}, status_code=400)

        channel = session.channel
        if channel is None:
            raise SessionNotFound("Invalid session ID")
        try:
            await channel.deliver(SessionMessage(message))
        except anyio.ClosedResourceError as exc:
            raise SessionNotFound("Invalid session ID") from exc

        return PlainTextResponse("Accepted", status_code=202)

    return router
