"""Session registry for the SSE transport.

The registry is the only state shared between connections. It maps a session
id to the Session owning one push channel and one protocol server instance.
Mutations are serialized with a lock; lookups read the dict directly.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

import anyio

from docserver.transport.instance import ProtocolServerInstance
from docserver.types import DuplicateSession

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class Session:
    """One logical bidirectional connection.

    Attributes:
        id: Opaque token correlating the push channel with control messages.
        instance: Protocol server bound to this session only.
        created_at: Wall-clock creation time, for observability.
        last_activity: anyio clock reading of the last message in either direction.
        closed: Set once teardown has finished.
    """

    id: str
    instance: ProtocolServerInstance
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    last_activity: float = field(default_factory=anyio.current_time)
    closed: anyio.Event = field(default_factory=anyio.Event)
    _cancel_scope: anyio.CancelScope | None = field(default=None, init=False, repr=False)
    _cancel_requested: bool = field(default=False, init=False, repr=False)
    _closing: bool = field(default=False, init=False, repr=False)

    def touch(self) -> None:
        self.last_activity = anyio.current_time()

    def bind_scope(self, scope: anyio.CancelScope) -> None:
        """Attach the cancel scope running this session's push channel."""
        self._cancel_scope = scope
        if self._cancel_requested:
            scope.cancel()

    def cancel(self) -> None:
        """Ask the push channel to close. Safe to call at any time, any number of times."""
        self._cancel_requested = True
        if self._cancel_scope is not None:
            self._cancel_scope.cancel()

    def begin_close(self) -> bool:
        """Claim teardown. Returns False if teardown was already claimed."""
        if self._closing:
            return False
        self._closing = True
        return True


class SessionRegistry:
    """Maps session ids to open sessions."""

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}
        self._lock = anyio.Lock()

    async def put(self, session: Session) -> None:
        """Register a session.

        Raises:
            DuplicateSession: If the id is already registered
        """
        async with self._lock:
            if session.id in self._sessions:
                raise DuplicateSession(f"Session {session.id} is already registered", sessionId=session.id)
            self._sessions[session.id] = session

    def get(self, session_id: str) -> Session | None:
        return self._sessions.get(session_id)

    async def remove(self, session_id: str) -> Session | None:
        """Unregister a session. Returns the removed session, or None if absent."""
        async with self._lock:
            return self._sessions.pop(session_id, None)

    def count(self) -> int:
        return len(self._sessions)

    def snapshot(self) -> list[Session]:
        """Point-in-time copy of the registered sessions."""
        return list(self._sessions.values())

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)
