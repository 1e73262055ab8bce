"""
Root state container for the Python client.

``TodoStore`` wires together the REST client, the reconciling cache and the
realtime connection manager.  Todo mutations are optimistic: the cache shows
the change immediately, the REST call settles it, and a failure rolls the
cache back and re-raises to the caller.  Any ``AuthError`` (from REST or the
realtime handshake) forces a logout.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable

from config import ClientConfig

from ..errors import AppError, AuthError
from ..realtime.events import USER_JOINED, USER_LEFT
from .api import TodoApiClient
from .cache import PendingMutation, TodoCache
from .connection import ConnectionManager, ConnectionState

logger = logging.getLogger(__name__)


class TodoStore:
    """
    Client-side application state.

    Args:
        config: Client settings; read from the environment when omitted.
        api: Pre-built REST client (tests inject one over a mock transport).
        connection_factory: Called with the keyword arguments for
            ``ConnectionManager`` and returns the manager to use.
        on_logout: Called with the reason after a logout.
        on_presence: Called with ``(event_name, user_id)`` for team presence.
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        *,
        api: TodoApiClient | None = None,
        connection_factory: Callable[..., ConnectionManager] = ConnectionManager,
        on_logout: Callable[[str], Any] | None = None,
        on_presence: Callable[[str, Any], Any] | None = None,
    ) -> None:
        self.config = config or ClientConfig.from_env()
        self.api = api or TodoApiClient(self.config.api_url, timeout=self.config.request_timeout)
        self.cache = TodoCache()
        self.user_id: int | None = None
        self.token: str | None = None
        self.realtime_degraded = False
        self._on_logout = on_logout
        self._on_presence = on_presence
        self.connection = connection_factory(
            self.config.socket_url,
            token_provider=lambda: self.token,
            user_id_provider=lambda: self.user_id,
            on_message=self._handle_message,
            on_reconnected=self._handle_reconnected,
            on_degraded=self._handle_degraded,
            on_auth_error=self._handle_auth_error,
            on_state_change=self._handle_state_change,
            handshake_timeout=self.config.handshake_timeout,
            base_delay=self.config.reconnect_base_delay,
            max_delay=self.config.reconnect_max_delay,
            max_attempts=self.config.reconnect_max_attempts,
        )

    @property
    def authenticated(self) -> bool:
        return self.token is not None

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    async def login(self, user_id: int, token: str, *, realtime: bool = True) -> None:
        """Adopt a credential, load the todo list and open the realtime session."""
        self.user_id = user_id
        self.token = token
        self.api.token = token
        self.realtime_degraded = False
        if realtime:
            try:
                await self.connection.connect()
            except AuthError:
                await self.logout("auth")
                raise
        # Snapshot after the user room is joined.
        await self.refresh()

    async def logout(self, reason: str = "user") -> None:
        """Drop the credential, close the connection and clear cached state."""
        if self.token is None and self.connection.state is ConnectionState.CLOSED:
            return
        logger.info("Logging out user %s (%s)", self.user_id, reason)
        self.token = None
        self.api.token = None
        self.api.socket_id = None
        await self.connection.disconnect()
        self.cache.clear()
        self.user_id = None
        if self._on_logout is not None:
            self._on_logout(reason)

    async def refresh(self) -> None:
        """Replace cached state with the server's full todo list."""
        todos = await self._call(self.api.fetch_all_todos())
        self.cache.replace_all(todos)

    async def close(self) -> None:
        await self.connection.disconnect()
        await self.api.aclose()

    # ------------------------------------------------------------------
    # Optimistic todo mutations
    # ------------------------------------------------------------------

    async def create_todo(self, fields: dict[str, Any]) -> dict[str, Any]:
        mutation = self.cache.begin_create(fields)
        todo = await self._settle(mutation, self.api.create_todo(fields))
        self.cache.confirm(mutation, todo)
        return todo

    async def update_todo(self, todo_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        mutation = self.cache.begin_update(todo_id, fields)
        todo = await self._settle(mutation, self.api.update_todo(todo_id, fields))
        self.cache.confirm(mutation, todo)
        return todo

    async def delete_todo(self, todo_id: str) -> None:
        mutation = self.cache.begin_delete(todo_id)
        await self._settle(mutation, self.api.delete_todo(todo_id))
        self.cache.confirm(mutation)

    # ------------------------------------------------------------------
    # Subtasks and comments (applied from the server's answer)
    # ------------------------------------------------------------------

    async def add_subtask(self, todo_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        data = await self._call(self.api.create_subtask(todo_id, fields))
        self.cache.refresh_entity(data["todo"])
        return data["subtask"]

    async def update_subtask(self, subtask_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        data = await self._call(self.api.update_subtask(subtask_id, fields))
        self.cache.refresh_entity(data["todo"])
        return data["subtask"]

    async def delete_subtask(self, subtask_id: str) -> None:
        data = await self._call(self.api.delete_subtask(subtask_id))
        self.cache.refresh_entity(data["todo"])

    async def add_comment(self, todo_id: str, content: str) -> dict[str, Any]:
        data = await self._call(self.api.add_comment(todo_id, content))
        self.cache.refresh_entity(data["todo"])
        return data["comment"]

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _call(self, awaitable):
        try:
            return await awaitable
        except AuthError:
            await self.logout("auth")
            raise

    async def _settle(self, mutation: PendingMutation, awaitable):
        try:
            return await self._call(awaitable)
        except (AppError, asyncio.CancelledError):
            self.cache.rollback(mutation)
            raise

    def _handle_message(self, name: str, payload: Any) -> None:
        if name in (USER_JOINED, USER_LEFT):
            if self._on_presence is not None:
                self._on_presence(name, payload)
            return
        self.cache.apply_message(name, payload)

    async def _handle_reconnected(self) -> None:
        try:
            await self.refresh()
        except AuthError:
            return
        except AppError as exc:
            logger.warning("Refresh after reconnect failed: %s", exc.message)

    def _handle_degraded(self) -> None:
        logger.warning("Realtime sync degraded; REST remains available")
        self.realtime_degraded = True

    async def _handle_auth_error(self, error: AuthError) -> None:
        await self.logout("auth")

    def _handle_state_change(self, state: ConnectionState) -> None:
        if state is ConnectionState.CONNECTED:
            self.api.socket_id = self.connection.session_id
            self.realtime_degraded = False
        else:
            self.api.socket_id = None
