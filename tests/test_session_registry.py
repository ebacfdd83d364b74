"""Tests for the session registry."""

from __future__ import annotations

import gc

import pytest

from pgportal.db.targets import TargetIdentity
from pgportal.errors import SessionNotFound
from pgportal.policy.permissions import Grant
from pgportal.sessions.channel import SessionChannel
from pgportal.sessions.registry import SessionRegistry

TARGET_A = TargetIdentity.parse("postgres://h/a")
TARGET_B = TargetIdentity.parse("postgres://h/b")


def test_open_and_resolve_binds_target_and_grant() -> None:
    registry = SessionRegistry()
    channel = SessionChannel()
    grant = Grant.parse("read,dml")

    session_id = registry.open(TARGET_A, grant, channel)
    session = registry.resolve(session_id)

    assert session.target == TARGET_A
    assert session.grant == grant
    assert session.channel is channel
    assert session.routing_context.grant == grant
    assert session_id in registry
    assert len(registry) == 1


def test_session_ids_are_unique() -> None:
    registry = SessionRegistry()
    channels = [SessionChannel() for _ in range(50)]
    ids = {registry.open(TARGET_A, Grant.read_only(), c) for c in channels}
    assert len(ids) == 50


def test_sessions_keep_their_own_bindings() -> None:
    registry = SessionRegistry()
    ch1, ch2 = SessionChannel(), SessionChannel()
    s1 = registry.open(TARGET_A, Grant.read_only(), ch1)
    s2 = registry.open(TARGET_B, Grant.parse("read,ddl"), ch2)

    assert registry.resolve(s1).target == TARGET_A
    assert registry.resolve(s1).grant.is_read_only
    assert registry.resolve(s2).target == TARGET_B
    assert registry.resolve(s2).grant.describe() == "read, ddl"


def test_resolve_unknown_id() -> None:
    registry = SessionRegistry()
    with pytest.raises(SessionNotFound, match="Invalid session ID") as exc_info:
        registry.resolve("missing")
    assert exc_info.value.status_code == 404


def test_close_is_idempotent() -> None:
    registry = SessionRegistry()
    session_id = registry.open(TARGET_A, Grant.read_only(), SessionChannel())

    registry.close(session_id)
    registry.close(session_id)
    registry.close("never-existed")

    assert session_id not in registry
    with pytest.raises(SessionNotFound):
        registry.resolve(session_id)


def test_closed_channel_makes_session_unresolvable() -> None:
    registry = SessionRegistry()
    channel = SessionChannel()
    session_id = registry.open(TARGET_A, Grant.read_only(), channel)

    channel.close()

    with pytest.raises(SessionNotFound):
        registry.resolve(session_id)


def test_registry_does_not_keep_channel_alive() -> None:
    registry = SessionRegistry()
    channel = SessionChannel()
    session_id = registry.open(TARGET_A, Grant.read_only(), channel)

    del channel
    gc.collect()

    with pytest.raises(SessionNotFound):
        registry.resolve(session_id)


def test_first_available_picks_oldest_live_session() -> None:
    registry = SessionRegistry()
    assert registry.first_available() is None

    ch1, ch2 = SessionChannel(), SessionChannel()
    s1 = registry.open(TARGET_A, Grant.read_only(), ch1)
    s2 = registry.open(TARGET_B, Grant.read_only(), ch2)

    first = registry.first_available()
    assert first is not None and first.id == s1

    ch1.close()
    first = registry.first_available()
    assert first is not None and first.id == s2
