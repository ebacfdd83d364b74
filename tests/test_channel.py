"""Tests for the SSE push channel."""

from __future__ import annotations

import json

import anyio
import pytest
from mcp import types
from mcp.shared.message import SessionMessage

from pgportal.sessions.channel import SessionChannel, encode_sse


def _ping_request(request_id: int = 1) -> SessionMessage:
    return SessionMessage(
        types.JSONRPCMessage(types.JSONRPCRequest(jsonrpc="2.0", id=request_id, method="ping"))
    )


def test_encode_sse() -> None:
    assert encode_sse(event="endpoint", data="/message?sessionId=abc") == (
        b"event: endpoint\ndata: /message?sessionId=abc\n\n"
    )


@pytest.mark.asyncio
async def test_endpoint_event_comes_first_then_messages() -> None:
    channel = SessionChannel()
    _, write_stream = channel.server_streams
    events = channel.sse_events("/message?sessionId=abc", ping_seconds=5)

    assert await anext(events) == b"event: endpoint\ndata: /message?sessionId=abc\n\n"

    await write_stream.send(_ping_request(7))
    frame = (await anext(events)).decode()
    assert frame.startswith("event: message\ndata: ")
    payload = json.loads(frame.removeprefix("event: message\ndata: ").strip())
    assert payload == {"jsonrpc": "2.0", "id": 7, "method": "ping"}

    channel.close()
    with pytest.raises(StopAsyncIteration):
        await anext(events)


@pytest.mark.asyncio
async def test_idle_stream_emits_ping_comment() -> None:
    channel = SessionChannel()
    events = channel.sse_events("/message", ping_seconds=0.01)
    await anext(events)

    assert await anext(events) == b": ping\n\n"
    channel.close()


@pytest.mark.asyncio
async def test_stream_ends_when_server_closes_write_side() -> None:
    channel = SessionChannel()
    _, write_stream = channel.server_streams
    events = channel.sse_events("/message", ping_seconds=5)
    await anext(events)

    await write_stream.aclose()

    with pytest.raises(StopAsyncIteration):
        await anext(events)


@pytest.mark.asyncio
async def test_deliver_reaches_server_read_stream() -> None:
    channel = SessionChannel()
    read_stream, _ = channel.server_streams

    await channel.deliver(_ping_request(3))

    received = await read_stream.receive()
    assert isinstance(received, SessionMessage)
    assert received.message.root.id == 3  # type: ignore[union-attr]


@pytest.mark.asyncio
async def test_deliver_after_close_fails() -> None:
    channel = SessionChannel()
    channel.close()
    channel.close()

    assert channel.closed
    with pytest.raises(anyio.ClosedResourceError):
        await channel.deliver(_ping_request())
