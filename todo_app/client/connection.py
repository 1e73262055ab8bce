"""
Realtime connection manager for the Python client.

Owns one ``socketio.AsyncClient`` at a time and drives it through an
explicit state machine::

    IDLE -> CONNECTING -> CONNECTED -> RECONNECTING -> CONNECTED
                                              \\-> DEGRADED (retries exhausted)
    any -> CLOSED (disconnect() or refused credential)

python-socketio's own reconnection is disabled: every attempt builds a
fresh client, authenticates at handshake and rejoins the user room.  After a
successful reconnect the ``on_reconnected`` hook runs so the owner can do a
full REST refresh, since missed events are never redelivered.
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
from enum import Enum
from typing import Any, Awaitable, Callable

import socketio
from socketio import exceptions as socketio_errors

from ..errors import AuthError, RealtimeConnectionError
from ..realtime.events import JOIN_USER_ROOM, SERVER_EVENT_NAMES

logger = logging.getLogger(__name__)

Hook = Callable[..., Any]


class ConnectionState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    DEGRADED = "degraded"
    CLOSED = "closed"


_ACTIVE_STATES = frozenset(
    {ConnectionState.CONNECTING, ConnectionState.CONNECTED, ConnectionState.RECONNECTING}
)


async def _call_hook(hook: Hook | None, *args: Any) -> None:
    if hook is None:
        return
    result = hook(*args)
    if inspect.isawaitable(result):
        await result


class ConnectionManager:
    """
    Keeps one authenticated realtime session alive.

    Args:
        url: Socket.IO server URL.
        token_provider: Returns the current bearer credential.
        user_id_provider: Returns the user whose room to join.
        on_message: Called synchronously with ``(event_name, payload)`` for
            every server event, in arrival order.
        on_reconnected: Awaited after a successful reconnect.
        on_degraded: Called once the retry budget is exhausted.
        on_auth_error: Called with the ``AuthError`` when the server refuses
            the credential; no further attempts are made.
        on_state_change: Called with each new ``ConnectionState``.
        handshake_timeout: Seconds to wait for the handshake.
        base_delay / max_delay / max_attempts: Reconnect policy.
        client_factory: Builds the Socket.IO client (tests pass a fake).
        sleep: Awaitable sleep used between attempts.
    """

    def __init__(
        self,
        url: str,
        *,
        token_provider: Callable[[], str | None],
        user_id_provider: Callable[[], int | None],
        on_message: Callable[[str, Any], None],
        on_reconnected: Hook | None = None,
        on_degraded: Hook | None = None,
        on_auth_error: Hook | None = None,
        on_state_change: Hook | None = None,
        handshake_timeout: float = 10.0,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        max_attempts: int = 5,
        client_factory: Callable[[], Any] | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.url = url
        self.handshake_timeout = handshake_timeout
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.max_attempts = max_attempts
        self.state = ConnectionState.IDLE
        self.attempt = 0

        self._token_provider = token_provider
        self._user_id_provider = user_id_provider
        self._on_message = on_message
        self._on_reconnected = on_reconnected
        self._on_degraded = on_degraded
        self._on_auth_error = on_auth_error
        self._on_state_change = on_state_change
        self._client_factory = client_factory or (
            lambda: socketio.AsyncClient(reconnection=False)
        )
        self._sleep = sleep
        self._client: Any = None
        self._reconnect_task: asyncio.Task | None = None
        self._closing = False

    @property
    def session_id(self) -> str | None:
        """Server-side session id of the live connection, if any."""
        if self._client is None or self.state is not ConnectionState.CONNECTED:
            return None
        return self._client.get_sid()

    def backoff_delay(self, attempt: int) -> float:
        """Delay before reconnect ``attempt`` (1-based): base * 2^(n-1), capped."""
        return min(self.base_delay * 2 ** (attempt - 1), self.max_delay)

    def _set_state(self, state: ConnectionState) -> None:
        if state is self.state:
            return
        logger.info("Realtime connection %s -> %s", self.state.value, state.value)
        self.state = state
        if self._on_state_change is not None:
            self._on_state_change(state)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """
        Open the realtime session.

        A transport failure does not raise: the manager moves to
        RECONNECTING and retries in the background.

        Raises:
            AuthError: If no credential is available or the server refuses it.
        """
        if self.state in _ACTIVE_STATES:
            return
        self._closing = False
        self.attempt = 0
        self._set_state(ConnectionState.CONNECTING)
        try:
            await self._open()
        except AuthError:
            self._set_state(ConnectionState.CLOSED)
            raise
        except RealtimeConnectionError as exc:
            logger.warning("Realtime connection failed: %s", exc.message)
            self._start_reconnect()

    async def disconnect(self) -> None:
        """Close the session and stop any reconnect loop."""
        self._closing = True
        task, self._reconnect_task = self._reconnect_task, None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        client, self._client = self._client, None
        if client is not None:
            await client.disconnect()
        self._set_state(ConnectionState.CLOSED)

    async def wait_reconnected(self) -> None:
        """Wait for a running reconnect loop to finish (used by tests)."""
        task = self._reconnect_task
        if task is not None:
            await task

    # ------------------------------------------------------------------
    # Session setup
    # ------------------------------------------------------------------

    async def _open(self) -> None:
        token = self._token_provider()
        if not token:
            raise AuthError("No credential available for the realtime connection")

        client = self._client_factory()
        refusal: list[Any] = []
        self._register_handlers(client, refusal)
        try:
            await client.connect(
                self.url,
                auth={"token": token},
                transports=["websocket", "polling"],
                wait_timeout=self.handshake_timeout,
            )
        except socketio_errors.ConnectionError as exc:
            if refusal:
                raise AuthError(_refusal_message(refusal[0])) from exc
            raise RealtimeConnectionError(str(exc) or None) from exc

        try:
            await self._join_user_room(client)
        except RealtimeConnectionError:
            await client.disconnect()
            raise
        self._client = client
        self._set_state(ConnectionState.CONNECTED)
        self.attempt = 0

    def _register_handlers(self, client: Any, refusal: list[Any]) -> None:
        async def on_connect_error(data: Any = None) -> None:
            refusal.append(data)

        async def on_disconnect(*_: Any) -> None:
            if client is self._client and not self._closing:
                logger.warning("Realtime connection lost")
                self._client = None
                self._start_reconnect()

        client.on("connect_error", on_connect_error)
        client.on("disconnect", on_disconnect)
        for name in SERVER_EVENT_NAMES:
            client.on(name, self._dispatcher(name))

    def _dispatcher(self, name: str):
        def dispatch(payload: Any = None) -> None:
            self._on_message(name, payload)

        return dispatch

    async def _join_user_room(self, client: Any) -> None:
        """
        Join the user room of the current credential.

        Raises:
            RealtimeConnectionError: If the join times out or is rejected.
        """
        user_id = self._user_id_provider()
        try:
            ack = await client.call(JOIN_USER_ROOM, user_id, timeout=self.handshake_timeout)
        except socketio_errors.TimeoutError as exc:
            raise RealtimeConnectionError(
                f"No acknowledgement joining room of user {user_id}"
            ) from exc
        if not (isinstance(ack, dict) and ack.get("success")):
            raise RealtimeConnectionError(f"Joining room of user {user_id} was rejected: {ack}")

    # ------------------------------------------------------------------
    # Reconnect loop
    # ------------------------------------------------------------------

    def _start_reconnect(self) -> None:
        if self._reconnect_task is not None and not self._reconnect_task.done():
            return
        self._set_state(ConnectionState.RECONNECTING)
        self._reconnect_task = asyncio.ensure_future(self._reconnect())

    async def _reconnect(self) -> None:
        while not self._closing:
            if self.attempt >= self.max_attempts:
                logger.error(
                    "Realtime sync degraded after %d reconnect attempts", self.attempt
                )
                self._set_state(ConnectionState.DEGRADED)
                await _call_hook(self._on_degraded)
                return

            self.attempt += 1
            delay = self.backoff_delay(self.attempt)
            logger.info(
                "Reconnecting in %.1fs (attempt %d/%d)", delay, self.attempt, self.max_attempts
            )
            await self._sleep(delay)
            if self._closing:
                return

            try:
                await self._open()
            except AuthError as exc:
                logger.warning("Realtime credential refused: %s", exc.message)
                self._set_state(ConnectionState.CLOSED)
                await _call_hook(self._on_auth_error, exc)
                return
            except RealtimeConnectionError as exc:
                logger.warning("Reconnect attempt %d failed: %s", self.attempt, exc.message)
                continue

            await _call_hook(self._on_reconnected)
            return


def _refusal_message(data: Any) -> str:
    if isinstance(data, dict) and data.get("message"):
        return str(data["message"])
    if isinstance(data, str) and data:
        return data
    return "Realtime connection refused"
