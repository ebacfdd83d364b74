"""Push channel joining one MCP server loop to one SSE response.

Inbound JSON-RPC messages posted by the client are delivered to the server's
read stream; everything the server writes is encoded as SSE ``message``
events for the open stream.
"""

from __future__ import annotations

from collections.abc import AsyncIterator

import anyio
from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream
from mcp.shared.message import SessionMessage


def encode_sse(*, event: str, data: str) -> bytes:
    return f"event: {event}\ndata: {data}\n\n".encode()


class SessionChannel:
    def __init__(self, *, buffer_size: int = 16) -> None:
        self._inbound_send: MemoryObjectSendStream[SessionMessage | Exception]
        self._inbound_recv: MemoryObjectReceiveStream[SessionMessage | Exception]
        self._outbound_send: MemoryObjectSendStream[SessionMessage]
        self._outbound_recv: MemoryObjectReceiveStream[SessionMessage]
        self._inbound_send, self._inbound_recv = anyio.create_memory_object_stream(buffer_size)
        self._outbound_send, self._outbound_recv = anyio.create_memory_object_stream(buffer_size)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def server_streams(
        self,
    ) -> tuple[MemoryObjectReceiveStream[SessionMessage | Exception], MemoryObjectSendStream[SessionMessage]]:
        """(read, write) stream pair for ``mcp.server.lowlevel.Server.run``."""
        return self._inbound_recv, self._outbound_send

    async def deliver(self, message: SessionMessage) -> None:
        """Hand a client message to the server loop.

        Raises:
            anyio.ClosedResourceError: If the channel has been closed.
        """
        if self._closed:
            raise anyio.ClosedResourceError
        await self._inbound_send.send(message)

    async def sse_events(self, endpoint: str, *, ping_seconds: float) -> AsyncIterator[bytes]:
        """Yield SSE frames: the endpoint announcement, then server messages.

        Emits a ``: ping`` comment whenever nothing was sent for ``ping_seconds``.
        Ends when the server side closes its write stream.
        """
        yield encode_sse(event="endpoint", data=endpoint)

        while True:
            message: SessionMessage | None = None
            with anyio.move_on_after(ping_seconds):
                try:
                    message = await self._outbound_recv.receive()
                except (anyio.EndOfStream, anyio.ClosedResourceError):
                    return
            if message is None:
                yield b": ping\n\n"
                continue
            payload = message.message.model_dump_json(by_alias=True, exclude_none=True)
            yield encode_sse(event="message", data=payload)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        for stream in (
            self._inbound_send,
            self._inbound_recv,
            self._outbound_send,
            self._outbound_recv,
        ):
            stream.close()
