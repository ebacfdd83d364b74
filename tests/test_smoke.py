from __future__ import annotations

from fakes import FakePoolFactory
from fastapi.testclient import TestClient

from pgportal.app import create_app
from pgportal.config.settings import Settings
from pgportal.db.router import ConnectionRouter
from pgportal.db.targets import TargetIdentity
from pgportal.policy.permissions import Grant
from pgportal.sessions.channel import SessionChannel
from pgportal.sessions.registry import SessionRegistry


def test_smoke_lifespan_drains_pools() -> None:
    factory = FakePoolFactory()
    registry = SessionRegistry()
    app = create_app(
        settings=Settings(secret="s3cret"),
        router=ConnectionRouter(pool_factory=factory),
        registry=registry,
    )
    channel = SessionChannel()
    session_id = registry.open(
        TargetIdentity.parse("postgres://h/app"), Grant.read_only(), channel
    )

    with TestClient(app) as client:
        assert client.get("/health").json()["hasDatabase"] is False

        ping = {"jsonrpc": "2.0", "id": 1, "method": "ping"}
        assert client.post(f"/message?sessionId={session_id}", json=ping).status_code == 202
        assert client.get("/health").json()["hasDatabase"] is True

    assert len(factory.pools) == 1
    assert factory.pools[0].closed
