"""
Socket.IO bridge between client connections and the ChannelRegistry.

The namespace authenticates each connection at handshake time, opens a
registry session for it, and translates the client messages
``join-user-room``, ``join-team-room`` and ``leave-team-room`` into
registry membership changes.  Whether a user may enter a team room is
decided here by asking ``TeamService``; the registry itself only checks the
room identifier's shape.

Outgoing messages are pushed by the registry through a per-session
``deliver`` callable that emits to that session's ``sid``.
"""

from __future__ import annotations

import logging
from typing import Any

import socketio
from flask import Flask
from socketio.exceptions import ConnectionRefusedError as HandshakeRefused

from .. import db
from ..auth import authenticate_token, bearer_token
from ..errors import AppError, AuthError
from ..services.teams import TeamService
from . import REGISTRY_EXTENSION
from .events import PresenceEvent
from .registry import ChannelRegistry
from .rooms import RoomKind, parse_room, team_room, user_room

logger = logging.getLogger(__name__)


def _token_from(auth: Any, environ: dict) -> str | None:
    """Read the bearer credential from the handshake payload or headers."""
    if isinstance(auth, dict):
        token = auth.get("token")
        if isinstance(token, str) and token.strip():
            return bearer_token(token) or token.strip()
    return bearer_token(environ.get("HTTP_AUTHORIZATION"))


def _ack_error(error: AppError) -> dict[str, Any]:
    return error.to_dict()


class TodoNamespace(socketio.Namespace):
    """
    Default namespace serving realtime todo updates.

    Event names on the wire are hyphenated (``join-user-room``); they are
    dispatched to ``on_join_user_room`` style handlers.  Each handler's
    return value is sent back as the Socket.IO acknowledgement.
    """

    def __init__(self, app: Flask, namespace: str = "/") -> None:
        super().__init__(namespace)
        self.app = app

    @property
    def registry(self) -> ChannelRegistry:
        return self.app.extensions[REGISTRY_EXTENSION]

    def trigger_event(self, event: str, *args):
        return super().trigger_event(event.replace("-", "_"), *args)

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    def on_connect(self, sid: str, environ: dict, auth: Any = None) -> None:
        token = _token_from(auth, environ)
        with self.app.app_context():
            try:
                payload = authenticate_token(token)
            except AuthError as exc:
                logger.warning("Refusing realtime connection %s: %s", sid, exc.message)
                raise HandshakeRefused(exc.message) from exc

        self.registry.open_session(sid, self._deliverer(sid))
        self.registry.authenticate(sid, payload["user_id"])

    def on_disconnect(self, sid: str, reason: Any = None) -> None:
        session = self.registry.disconnect(sid)
        if session is None or session.user_id is None:
            return
        for room_id in sorted(session.rooms):
            kind, _ = parse_room(room_id)
            if kind is RoomKind.TEAM:
                self.registry.broadcast(room_id, PresenceEvent.left(room_id, session.user_id))

    # ------------------------------------------------------------------
    # Client messages
    # ------------------------------------------------------------------

    def on_join_user_room(self, sid: str, user_id: Any = None) -> dict[str, Any]:
        try:
            session = self._session(sid)
            room_id = user_room(user_id)
            if room_id != user_room(session.user_id):
                raise AuthError("Cannot join another user's room")
            self.registry.join(sid, room_id)
        except AppError as exc:
            logger.warning("join-user-room rejected for %s: %s", sid, exc.message)
            return _ack_error(exc)
        return {"success": True, "room": room_id}

    def on_join_team_room(self, sid: str, team_id: Any = None) -> dict[str, Any]:
        try:
            session = self._session(sid)
            room_id = team_room(team_id)
            _, numeric_id = parse_room(room_id)
            with self.app.app_context():
                allowed = TeamService(db.session).is_member(session.user_id, numeric_id)
            if not allowed:
                raise AuthError("Not a member of this team")
            if self.registry.join(sid, room_id):
                self.registry.broadcast(
                    room_id,
                    PresenceEvent.joined(room_id, session.user_id),
                    exclude_session_id=sid,
                )
        except AppError as exc:
            logger.warning("join-team-room rejected for %s: %s", sid, exc.message)
            return _ack_error(exc)
        return {"success": True, "room": room_id}

    def on_leave_team_room(self, sid: str, team_id: Any = None) -> dict[str, Any]:
        try:
            session = self._session(sid)
            room_id = team_room(team_id)
            if self.registry.leave(sid, room_id):
                self.registry.broadcast(room_id, PresenceEvent.left(room_id, session.user_id))
        except AppError as exc:
            return _ack_error(exc)
        return {"success": True, "room": room_id}

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _session(self, sid: str):
        session = self.registry.session(sid)
        if session is None or session.user_id is None:
            raise AuthError("Session is not authenticated")
        return session

    def _deliverer(self, sid: str):
        def deliver(event_name: str, payload: Any) -> None:
            self.emit(event_name, payload, to=sid)

        return deliver


def create_socket_server(app: Flask) -> socketio.Server:
    """
    Build the Socket.IO server for ``app``.

    The server runs in threading mode next to the Flask WSGI app; wrap both
    with ``socketio.WSGIApp(server, app)``.
    """
    server = socketio.Server(
        async_mode="threading",
        cors_allowed_origins=app.config.get("SOCKETIO_CORS_ORIGINS") or [],
        logger=False,
        engineio_logger=False,
    )
    server.register_namespace(TodoNamespace(app))
    return server
