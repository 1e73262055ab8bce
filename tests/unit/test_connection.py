"""
Unit tests for the client ConnectionManager state machine.

The Socket.IO client is replaced by a scripted fake so the tests can drop
the connection, fail handshakes and refuse credentials on demand.  Sleeping
between attempts is recorded instead of waited for.
"""

from __future__ import annotations

import asyncio
from typing import Any

import pytest
from socketio import exceptions as socketio_errors

from todo_app.client.connection import ConnectionManager, ConnectionState
from todo_app.errors import AuthError

pytestmark = pytest.mark.unit


class FakeSocketClient:
    """Scripted stand-in for ``socketio.AsyncClient``."""

    def __init__(self, outcome: str = "ok", sid: str = "sid-1") -> None:
        self.outcome = outcome
        self.sid = sid
        self.handlers: dict[str, Any] = {}
        self.calls: list[tuple[str, Any]] = []
        self.connect_kwargs: dict[str, Any] = {}
        self.disconnected = False

    def on(self, name, handler):
        self.handlers[name] = handler

    async def connect(self, url, **kwargs):
        self.connect_kwargs = {"url": url, **kwargs}
        if self.outcome == "refuse":
            await self.handlers["connect_error"]({"message": "Invalid or expired token"})
            raise socketio_errors.ConnectionError("One or more namespaces failed to connect")
        if self.outcome == "fail":
            raise socketio_errors.ConnectionError("Connection refused by the server")

    async def call(self, event, data=None, timeout=None):
        self.calls.append((event, data))
        if self.outcome == "join-timeout":
            raise socketio_errors.TimeoutError()
        if self.outcome == "join-rejected":
            return {"success": False, "error": "Cannot join another user's room"}
        return {"success": True, "room": f"user-{data}"}

    async def disconnect(self):
        self.disconnected = True

    def get_sid(self, namespace=None):
        return self.sid

    async def drop(self):
        """Simulate the server closing the transport."""
        await self.handlers["disconnect"]("transport close")

    def fire(self, name, payload):
        self.handlers[name](payload)


class Harness:
    """Builds a ConnectionManager wired to recording hooks."""

    def __init__(self, outcomes: list[str], **overrides) -> None:
        self.outcomes = list(outcomes)
        self.clients: list[FakeSocketClient] = []
        self.delays: list[float] = []
        self.messages: list[tuple[str, Any]] = []
        self.states: list[ConnectionState] = []
        self.reconnected = 0
        self.degraded = 0
        self.auth_errors: list[AuthError] = []
        self.token: str | None = "token-42"
        options = {
            "base_delay": 1.0,
            "max_delay": 30.0,
            "max_attempts": 5,
        }
        options.update(overrides)
        self.manager = ConnectionManager(
            "http://realtime.test",
            token_provider=lambda: self.token,
            user_id_provider=lambda: 42,
            on_message=lambda name, payload: self.messages.append((name, payload)),
            on_reconnected=self._on_reconnected,
            on_degraded=self._on_degraded,
            on_auth_error=self.auth_errors.append,
            on_state_change=self.states.append,
            client_factory=self._factory,
            sleep=self._sleep,
            **options,
        )

    def _factory(self) -> FakeSocketClient:
        outcome = self.outcomes.pop(0) if self.outcomes else "ok"
        client = FakeSocketClient(outcome, sid=f"sid-{len(self.clients) + 1}")
        self.clients.append(client)
        return client

    async def _sleep(self, delay: float) -> None:
        self.delays.append(delay)

    async def _on_reconnected(self) -> None:
        self.reconnected += 1

    def _on_degraded(self) -> None:
        self.degraded += 1


class TestBackoff:
    def test_backoff_doubles_and_caps(self):
        manager = Harness([]).manager

        assert [manager.backoff_delay(n) for n in range(1, 8)] == [1, 2, 4, 8, 16, 30, 30]

    def test_backoff_respects_custom_base(self):
        manager = Harness([], base_delay=0.5, max_delay=3.0).manager

        assert [manager.backoff_delay(n) for n in range(1, 5)] == [0.5, 1.0, 2.0, 3.0]


class TestConnect:
    @pytest.mark.asyncio
    async def test_connect_authenticates_and_joins_user_room(self):
        # Arrange
        harness = Harness(["ok"])

        # Act
        await harness.manager.connect()

        # Assert
        client = harness.clients[0]
        assert harness.manager.state is ConnectionState.CONNECTED
        assert client.connect_kwargs["auth"] == {"token": "token-42"}
        assert client.calls == [("join-user-room", 42)]
        assert harness.manager.session_id == "sid-1"
        assert harness.states == [ConnectionState.CONNECTING, ConnectionState.CONNECTED]

    @pytest.mark.asyncio
    async def test_server_events_dispatched_in_arrival_order(self):
        harness = Harness(["ok"])
        await harness.manager.connect()
        client = harness.clients[0]

        client.fire("todo-created", {"id": "a"})
        client.fire("todo-updated", {"id": "a", "title": "x"})
        client.fire("todo-deleted", "a")

        assert [name for name, _ in harness.messages] == [
            "todo-created",
            "todo-updated",
            "todo-deleted",
        ]

    @pytest.mark.asyncio
    async def test_refused_credential_raises_and_closes(self):
        harness = Harness(["refuse"])

        with pytest.raises(AuthError, match="Invalid or expired token"):
            await harness.manager.connect()

        assert harness.manager.state is ConnectionState.CLOSED
        assert harness.delays == []

    @pytest.mark.asyncio
    async def test_missing_credential_raises(self):
        harness = Harness([])
        harness.token = None

        with pytest.raises(AuthError):
            await harness.manager.connect()

        assert harness.clients == []

    @pytest.mark.asyncio
    async def test_initial_transport_failure_retries_in_background(self):
        harness = Harness(["fail", "ok"])

        await harness.manager.connect()
        await harness.manager.wait_reconnected()

        assert harness.delays == [1.0]
        assert harness.manager.state is ConnectionState.CONNECTED
        assert harness.reconnected == 1

    @pytest.mark.asyncio
    async def test_rejected_room_join_counts_as_failed_attempt(self):
        # Arrange
        harness = Harness(["join-rejected", "ok"])

        # Act
        await harness.manager.connect()
        await harness.manager.wait_reconnected()

        # Assert
        assert harness.clients[0].disconnected is True
        assert harness.states == [
            ConnectionState.CONNECTING,
            ConnectionState.RECONNECTING,
            ConnectionState.CONNECTED,
        ]
        assert harness.delays == [1.0]
        assert harness.manager.state is ConnectionState.CONNECTED
        assert harness.manager.session_id == "sid-2"
        assert harness.reconnected == 1

    @pytest.mark.asyncio
    async def test_unacknowledged_room_joins_exhaust_budget(self):
        harness = Harness(["join-timeout"] * 4, max_attempts=3)

        await harness.manager.connect()
        await harness.manager.wait_reconnected()

        assert harness.delays == [1.0, 2.0, 4.0]
        assert harness.manager.state is ConnectionState.DEGRADED
        assert harness.degraded == 1
        assert all(client.disconnected for client in harness.clients)


class TestReconnect:
    @pytest.mark.asyncio
    async def test_reconnect_backs_off_then_refreshes(self):
        """
        Connection lost, two failed attempts, third succeeds: delays are
        1s, 2s, 4s, the fresh session rejoins the user room and the
        refresh hook runs once.
        """
        # Arrange
        harness = Harness(["ok", "fail", "fail", "ok"])
        await harness.manager.connect()

        # Act
        await harness.clients[0].drop()
        await harness.manager.wait_reconnected()

        # Assert
        assert harness.delays == [1.0, 2.0, 4.0]
        assert harness.manager.state is ConnectionState.CONNECTED
        assert harness.reconnected == 1
        assert harness.clients[-1].calls == [("join-user-room", 42)]
        assert harness.manager.session_id == "sid-4"
        assert harness.manager.attempt == 0

    @pytest.mark.asyncio
    async def test_retry_budget_exhausted_marks_degraded(self):
        harness = Harness(["ok", "fail", "fail", "fail"], max_attempts=3)
        await harness.manager.connect()

        await harness.clients[0].drop()
        await harness.manager.wait_reconnected()

        assert harness.delays == [1.0, 2.0, 4.0]
        assert harness.manager.state is ConnectionState.DEGRADED
        assert harness.degraded == 1
        assert harness.reconnected == 0

    @pytest.mark.asyncio
    async def test_refused_credential_during_reconnect_stops_retrying(self):
        harness = Harness(["ok", "refuse"])
        await harness.manager.connect()

        await harness.clients[0].drop()
        await harness.manager.wait_reconnected()

        assert harness.manager.state is ConnectionState.CLOSED
        assert len(harness.auth_errors) == 1
        assert harness.delays == [1.0]

    @pytest.mark.asyncio
    async def test_disconnect_cancels_pending_reconnect(self):
        harness = Harness(["ok"])
        blocker = asyncio.Event()

        async def never_wake(delay):
            harness.delays.append(delay)
            await blocker.wait()

        harness.manager._sleep = never_wake
        await harness.manager.connect()
        await harness.clients[0].drop()
        await asyncio.sleep(0)

        await harness.manager.disconnect()

        assert harness.manager.state is ConnectionState.CLOSED
        assert harness.delays == [1.0]
        assert len(harness.clients) == 1

    @pytest.mark.asyncio
    async def test_client_disconnect_does_not_trigger_reconnect(self):
        harness = Harness(["ok"])
        await harness.manager.connect()
        client = harness.clients[0]

        await harness.manager.disconnect()
        await client.drop()

        assert client.disconnected is True
        assert harness.manager.state is ConnectionState.CLOSED
        assert harness.delays == []
