from __future__ import annotations

import logging

import anyio
from fastapi import Request
from fastapi.responses import StreamingResponse
from starlette.types import Receive, Scope, Send

from pgportal.api.deps import check_secret, error_response, extract_routing, get_gateway
from pgportal.errors import GatewayError
from pgportal.mcp.server import build_session_server
from pgportal.sessions.channel import SessionChannel

logger = logging.getLogger(__name__)


class StreamEndpoint:
    """Raw ASGI endpoint for ``GET /sse``.

    Mounted as an ASGI app rather than a FastAPI handler: the SSE response is
    sent directly over ``send`` while the session's MCP server runs, so there
    is no handler return value to render afterwards.
    """

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        request = Request(scope, receive)
        gateway = get_gateway(request)
        settings = gateway.settings

        try:
            check_secret(settings, request.query_params)
            context = extract_routing(settings, request.query_params)
            await gateway.router.install(context)
        except GatewayError as exc:
            logger.info("Stream rejected (%d): %s", exc.status_code, exc.message)
            await error_response(exc)(scope, receive, send)
            return

        channel = SessionChannel()
        session_id = gateway.registry.open(context.target, context.grant, channel)
        endpoint = f"{settings.http.message_path}?sessionId={session_id}"
        server = build_session_server(
            context,
            gateway.tools,
            allow_in_band_target=settings.allow_in_band_target,
        )
        read_stream, write_stream = channel.server_streams

        try:
            async with anyio.create_task_group() as tg:

                async def stream_events() -> None:
                    response = StreamingResponse(
                        channel.sse_events(endpoint, ping_seconds=settings.http.ping_seconds),
                        media_type="text/event-stream",
                        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
                    )
                    try:
                        await response(scope, receive, send)
                    finally:
                        # client went away
                        tg.cancel_scope.cancel()

                tg.start_soon(stream_events)
                await server.run(read_stream, write_stream, server.create_initialization_options())
                tg.cancel_scope.cancel()
        finally:
            gateway.registry.close(session_id)
            channel.close()
