"""
Realtime Channel Registry.

Tracks live client sessions and their room memberships, and routes pushed
messages to the sessions joined to a room.  A registry is a plain object
created by the application factory and handed to whoever needs it (the
Socket.IO namespace and the mutation services); tests build as many
isolated registries as they like.

Session lifecycle::

    CONNECTING -> AUTHENTICATED -> JOINED(rooms) -> DISCONNECTED

``DISCONNECTED`` is terminal: a reconnecting client opens a new session.

Rooms are not modelled on their own; they are the keys of a
``room_id -> set[session_id]`` mapping.  Empty sets are dropped lazily by
``prune``.

Membership changes and broadcasts are serialised by one re-entrant lock, so
a broadcast sees a stable member snapshot and every session receives the
messages of a room in ``broadcast`` call order.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from ..errors import AuthError, NotFoundError
from .rooms import parse_room

logger = logging.getLogger(__name__)

Deliver = Callable[[str, Any], None]


class Message(Protocol):
    """Anything the registry can push: a Socket.IO event name and payload."""

    @property
    def name(self) -> str: ...

    @property
    def payload(self) -> Any: ...


class SessionState(str, Enum):
    CONNECTING = "connecting"
    AUTHENTICATED = "authenticated"
    JOINED = "joined"
    DISCONNECTED = "disconnected"


@dataclass
class Session:
    """
    One live client connection.

    Attributes:
        session_id: Transport-level identifier (the Socket.IO ``sid``).
        deliver: Callable pushing ``(event_name, payload)`` to this client.
        user_id: Authenticated user, ``None`` until the handshake completes.
        rooms: Rooms currently joined.
        state: Position in the session lifecycle.
    """

    session_id: str
    deliver: Deliver = field(repr=False)
    user_id: int | None = None
    rooms: set[str] = field(default_factory=set)
    state: SessionState = SessionState.CONNECTING


class ChannelRegistry:
    """In-memory session and room membership table."""

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}
        self._rooms: dict[str, set[str]] = {}
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def open_session(self, session_id: str, deliver: Deliver) -> Session:
        """Register a new connection in the ``CONNECTING`` state."""
        with self._lock:
            if session_id in self._sessions:
                raise ValueError(f"Session {session_id} is already registered")
            session = Session(session_id=session_id, deliver=deliver)
            self._sessions[session_id] = session
            logger.info("Session %s connecting", session_id)
            return session

    def authenticate(self, session_id: str, user_id: int) -> Session:
        """
        Complete the handshake for a ``CONNECTING`` session.

        Raises:
            NotFoundError: If the session is unknown or already gone.
            AuthError: If the session has already been authenticated.
        """
        with self._lock:
            session = self._require(session_id)
            if session.state is not SessionState.CONNECTING:
                raise AuthError("Session is already authenticated")
            session.user_id = user_id
            session.state = SessionState.AUTHENTICATED
            logger.info("Session %s authenticated as user %s", session_id, user_id)
            return session

    def disconnect(self, session_id: str) -> Session | None:
        """
        Tear a session down and remove it from every room.

        Cleanup completes before the call returns, so no later broadcast can
        reach the session.  Unknown sessions are ignored.

        Returns:
            The removed session (with the rooms it was in), or ``None``.
        """
        with self._lock:
            session = self._sessions.pop(session_id, None)
            if session is None:
                return None
            for room_id in session.rooms:
                members = self._rooms.get(room_id)
                if members is not None:
                    members.discard(session_id)
            session.state = SessionState.DISCONNECTED
            logger.info(
                "Session %s disconnected (user %s, rooms %s)",
                session_id,
                session.user_id,
                sorted(session.rooms),
            )
            return session

    # ------------------------------------------------------------------
    # Membership
    # ------------------------------------------------------------------

    def join(self, session_id: str, room_id: str) -> bool:
        """
        Add a session to a room.

        Only the room identifier's shape is checked here; whether the user
        may join is decided by the caller.

        Returns:
            ``True`` if the session newly joined, ``False`` if it was
            already a member.

        Raises:
            ValidationError: If ``room_id`` is malformed.
            NotFoundError: If the session is unknown.
            AuthError: If the session has not authenticated yet.
        """
        parse_room(room_id)
        with self._lock:
            session = self._require_authenticated(session_id)
            if room_id in session.rooms:
                return False
            session.rooms.add(room_id)
            self._rooms.setdefault(room_id, set()).add(session_id)
            session.state = SessionState.JOINED
            logger.info("Session %s joined %s", session_id, room_id)
            return True

    def leave(self, session_id: str, room_id: str) -> bool:
        """Remove a session from a room; ``False`` when it was not a member."""
        with self._lock:
            session = self._require_authenticated(session_id)
            if room_id not in session.rooms:
                return False
            session.rooms.discard(room_id)
            members = self._rooms.get(room_id)
            if members is not None:
                members.discard(session_id)
            if not session.rooms:
                session.state = SessionState.AUTHENTICATED
            logger.info("Session %s left %s", session_id, room_id)
            return True

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    def broadcast(
        self,
        room_id: str,
        event: Message,
        exclude_session_id: str | None = None,
    ) -> int:
        """
        Push ``event`` to every session joined to ``room_id``.

        A failing delivery is logged and skipped; the remaining sessions
        still receive the event.

        Args:
            room_id: Target room.
            event: Message to deliver.
            exclude_session_id: Session to skip, typically the originator
                of the mutation.

        Returns:
            Number of sessions the event was delivered to.
        """
        delivered = 0
        with self._lock:
            targets = [
                self._sessions[session_id]
                for session_id in sorted(self._rooms.get(room_id, ()))
                if session_id != exclude_session_id and session_id in self._sessions
            ]
            payload = event.payload
            for session in targets:
                try:
                    session.deliver(event.name, payload)
                except Exception:
                    logger.exception(
                        "Delivery of %s to session %s failed", event.name, session.session_id
                    )
                    continue
                delivered += 1
        logger.debug("Broadcast %s to %s: %d session(s)", event.name, room_id, delivered)
        return delivered

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def session(self, session_id: str) -> Session | None:
        with self._lock:
            return self._sessions.get(session_id)

    def members(self, room_id: str) -> frozenset[str]:
        with self._lock:
            return frozenset(self._rooms.get(room_id, ()))

    def rooms(self) -> frozenset[str]:
        """Rooms with at least one member."""
        with self._lock:
            return frozenset(room for room, members in self._rooms.items() if members)

    def session_count(self) -> int:
        with self._lock:
            return len(self._sessions)

    def prune(self) -> int:
        """Drop empty room entries; returns how many were removed."""
        with self._lock:
            empty = [room for room, members in self._rooms.items() if not members]
            for room in empty:
                del self._rooms[room]
            return len(empty)

    def _require(self, session_id: str) -> Session:
        session = self._sessions.get(session_id)
        if session is None:
            raise NotFoundError("Session not found")
        return session

    def _require_authenticated(self, session_id: str) -> Session:
        session = self._require(session_id)
        if session.user_id is None:
            raise AuthError("Session is not authenticated")
        return session
