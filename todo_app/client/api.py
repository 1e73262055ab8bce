"""
Async REST client for the Todo Sync API.

Wraps ``httpx.AsyncClient``: adds the bearer token and, when the caller has
a live realtime session, the ``X-Socket-Id`` header so the server does not
echo the resulting change event back to this client.  Success envelopes are
unwrapped to their ``data``; failure envelopes are raised as the matching
``AppError`` subclass.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from ..errors import ApiConnectionError, error_from_response

logger = logging.getLogger(__name__)

ORIGIN_HEADER = "X-Socket-Id"
FETCH_ALL_PAGE_SIZE = 100


class TodoApiClient:
    """
    Thin async wrapper around the REST endpoints.

    Args:
        base_url: API root including the ``/api`` prefix.
        token: Bearer credential; may be set later through ``token``.
        timeout: Per-request timeout in seconds.
        transport: Optional httpx transport (used by tests).
    """

    def __init__(
        self,
        base_url: str,
        *,
        token: str | None = None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.token = token
        self.socket_id: str | None = None
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            transport=transport,
            headers={"Accept": "application/json"},
        )

    async def __aenter__(self) -> TodoApiClient:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    def _headers(self) -> dict[str, str]:
        headers: dict[str, str] = {}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        if self.socket_id:
            headers[ORIGIN_HEADER] = self.socket_id
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        try:
            response = await self._client.request(
                method, path, json=json, params=params, headers=self._headers()
            )
        except httpx.TimeoutException as exc:
            logger.warning("%s %s timed out", method, path)
            raise ApiConnectionError("Request timed out") from exc
        except httpx.HTTPError as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            raise ApiConnectionError() from exc

        try:
            body = response.json()
        except ValueError:
            body = None

        if response.is_success and isinstance(body, dict) and body.get("success"):
            return body.get("data")
        raise error_from_response(response.status_code, body)

    # ------------------------------------------------------------------
    # Todos
    # ------------------------------------------------------------------

    async def list_todos(self, **params: Any) -> dict[str, Any]:
        """One page of todos: ``{"todos": [...], "pagination": {...}}``."""
        query = {key: value for key, value in params.items() if value is not None}
        return await self._request("GET", "/todos", params=query)

    async def fetch_all_todos(self) -> list[dict[str, Any]]:
        """Walk every page and return the complete visible todo list."""
        todos: list[dict[str, Any]] = []
        page = 1
        while True:
            data = await self.list_todos(page=page, limit=FETCH_ALL_PAGE_SIZE)
            todos.extend(data["todos"])
            if page >= data["pagination"]["pages"]:
                return todos
            page += 1

    async def get_todo(self, todo_id: str) -> dict[str, Any]:
        return (await self._request("GET", f"/todos/{todo_id}"))["todo"]

    async def create_todo(self, fields: dict[str, Any]) -> dict[str, Any]:
        return (await self._request("POST", "/todos", json=fields))["todo"]

    async def update_todo(self, todo_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        return (await self._request("PUT", f"/todos/{todo_id}", json=fields))["todo"]

    async def delete_todo(self, todo_id: str) -> None:
        await self._request("DELETE", f"/todos/{todo_id}")

    # ------------------------------------------------------------------
    # Subtasks and comments
    # ------------------------------------------------------------------

    async def create_subtask(self, todo_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        """Returns ``{"subtask": ..., "todo": ...}``."""
        return await self._request("POST", f"/todos/{todo_id}/subtasks", json=fields)

    async def update_subtask(self, subtask_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        return await self._request("PUT", f"/todos/subtasks/{subtask_id}", json=fields)

    async def delete_subtask(self, subtask_id: str) -> dict[str, Any]:
        return await self._request("DELETE", f"/todos/subtasks/{subtask_id}")

    async def add_comment(self, todo_id: str, content: str) -> dict[str, Any]:
        """Returns ``{"comment": ..., "todo": ...}``."""
        return await self._request(
            "POST", f"/todos/{todo_id}/comments", json={"content": content}
        )

    async def update_comment(self, comment_id: str, content: str) -> dict[str, Any]:
        return await self._request(
            "PUT", f"/todos/comments/{comment_id}", json={"content": content}
        )

    async def delete_comment(self, comment_id: str) -> dict[str, Any]:
        return await self._request("DELETE", f"/todos/comments/{comment_id}")

    # ------------------------------------------------------------------
    # Categories, teams, stats
    # ------------------------------------------------------------------

    async def list_categories(self) -> list[dict[str, Any]]:
        return (await self._request("GET", "/categories"))["categories"]

    async def create_category(self, fields: dict[str, Any]) -> dict[str, Any]:
        return (await self._request("POST", "/categories", json=fields))["category"]

    async def list_teams(self) -> list[dict[str, Any]]:
        return (await self._request("GET", "/teams"))["teams"]

    async def user_stats(self) -> dict[str, Any]:
        return await self._request("GET", "/users/stats")
