"""Registry of open streaming sessions.

Each session is bound, for its whole life, to one target database and one
permission grant. The registry only holds a weak reference to the session's
push channel: the transport owns the channel, and a collected or closed
channel makes the session unresolvable.
"""

from __future__ import annotations

import logging
import threading
import weakref
from dataclasses import dataclass, field
from datetime import UTC, datetime
from uuid import uuid4

from pgportal.db.targets import RoutingContext, TargetIdentity
from pgportal.errors import SessionNotFound
from pgportal.policy.permissions import Grant
from pgportal.sessions.channel import SessionChannel

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Session:
    id: str
    target: TargetIdentity
    grant: Grant
    created_at: datetime
    _channel_ref: weakref.ReferenceType[SessionChannel] = field(repr=False, compare=False)

    @property
    def channel(self) -> SessionChannel | None:
        channel = self._channel_ref()
        if channel is None or channel.closed:
            return None
        return channel

    @property
    def routing_context(self) -> RoutingContext:
        return RoutingContext(target=self.target, grant=self.grant)


class SessionRegistry:
    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}
        self._lock = threading.Lock()

    def open(self, target: TargetIdentity, grant: Grant, channel: SessionChannel) -> str:
        """Register a new session and return its id. Does not touch any pool."""
        session_id = uuid4().hex
        session = Session(
            id=session_id,
            target=target,
            grant=grant,
            created_at=datetime.now(UTC),
            _channel_ref=weakref.ref(channel),
        )
        with self._lock:
            self._sessions[session_id] = session
            count = len(self._sessions)
        logger.info(
            "Session %s opened for %s with permissions [%s] (%d open)",
            session_id,
            target,
            grant.describe(),
            count,
        )
        return session_id

    def resolve(self, session_id: str) -> Session:
        """Look up a session.

        Raises:
            SessionNotFound: If the id is unknown or its channel is gone.
        """
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None or session.channel is None:
            raise SessionNotFound("Invalid session ID")
        return session

    def close(self, session_id: str) -> None:
        """Remove a session. Closing an unknown or already closed id is a no-op."""
        with self._lock:
            removed = self._sessions.pop(session_id, None)
            count = len(self._sessions)
        if removed is not None:
            logger.info("Session %s closed (%d open)", session_id, count)

    def first_available(self) -> Session | None:
        """Oldest session with a live channel, for clients that omit the id.

        Best effort only: with several sessions open the choice is arbitrary
        from the caller's point of view.
        """
        with self._lock:
            candidates = [s for s in self._sessions.values() if s.channel is not None]
        if not candidates:
            return None
        if len(candidates) > 1:
            logger.warning(
                "No session id supplied with %d sessions open; falling back to %s",
                len(candidates),
                candidates[0].id,
            )
        return candidates[0]

    def count(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __len__(self) -> int:
        return self.count()

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._sessions
