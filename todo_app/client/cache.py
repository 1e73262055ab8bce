"""
Client-side todo cache and reconciler.

Key Concepts:
    - **Confirmed state** is what the server last told us, either through a
      full refresh (``replace_all``) or through pushed change events
      (``apply_event``).  Events are applied in arrival order: ``created``
      inserts at the head unless the id is already known, ``updated``
      replaces the entity wholesale, ``deleted`` removes it (unknown ids are
      ignored).
    - **Pending overlays** are optimistic local mutations waiting for the
      server's answer.  They are layered over confirmed state whenever a
      view is read, so an in-flight edit shadows a concurrent pushed event
      until it is confirmed or rolled back.  Rolling back drops the overlay,
      which restores the last confirmed state including any events that
      arrived in the meantime.
    - **Derived views** (status counts, subtask totals, filters) are
      computed from the materialized list on demand.

Nothing here awaits; every method runs to completion on the event loop.
"""

from __future__ import annotations

import copy
import itertools
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Iterable, Mapping

from ..realtime.events import (
    COMMENT_ADDED,
    CHANGE_EVENT_NAMES,
    ChangeEvent,
    EntityKind,
    EventKind,
)

logger = logging.getLogger(__name__)

LOCAL_ID_PREFIX = "local-"

_STATUSES = ("TODO", "IN_PROGRESS", "COMPLETED", "CANCELLED")


class MutationKind(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


@dataclass
class PendingMutation:
    """
    One optimistic mutation awaiting the server's answer.

    ``todo_id`` is a temporary ``local-<n>`` id for creates.
    """

    mutation_id: int
    kind: MutationKind
    todo_id: str
    fields: dict[str, Any] = field(default_factory=dict)


def _provisional_todo(todo_id: str, fields: Mapping[str, Any]) -> dict[str, Any]:
    todo = {
        "id": todo_id,
        "title": fields.get("title", ""),
        "description": fields.get("description"),
        "status": fields.get("status") or "TODO",
        "priority": fields.get("priority") or "MEDIUM",
        "due_date": fields.get("due_date"),
        "team_id": fields.get("team_id"),
        "categories": [],
        "subtasks": [],
        "comments": [],
        "completed_subtasks": 0,
        "total_subtasks": 0,
    }
    return todo


def _overlay(todo: dict[str, Any], fields: Mapping[str, Any]) -> dict[str, Any]:
    merged = dict(todo)
    merged.update({key: value for key, value in fields.items() if key != "category_ids"})
    return merged


class TodoCache:
    """Local todo list kept consistent with server pushes and local edits."""

    def __init__(self) -> None:
        self._order: list[str] = []
        self._entities: dict[str, dict[str, Any]] = {}
        self._pending: dict[int, PendingMutation] = {}
        self._ids = itertools.count(1)
        self._listeners: list[Callable[[], None]] = []

    # ------------------------------------------------------------------
    # Change notification
    # ------------------------------------------------------------------

    def subscribe(self, listener: Callable[[], None]) -> Callable[[], None]:
        """Call ``listener`` after every change; returns an unsubscribe hook."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _changed(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception:
                logger.exception("Cache listener failed")

    # ------------------------------------------------------------------
    # Confirmed state
    # ------------------------------------------------------------------

    def replace_all(self, todos: Iterable[Mapping[str, Any]]) -> None:
        """Replace confirmed state with a full server snapshot.

        Pending overlays survive; they still wait for their own answers.
        """
        self._order = []
        self._entities = {}
        for todo in todos:
            todo_id = str(todo["id"])
            if todo_id not in self._entities:
                self._order.append(todo_id)
            self._entities[todo_id] = copy.deepcopy(dict(todo))
        self._changed()

    def clear(self) -> None:
        self._order = []
        self._entities = {}
        self._pending = {}
        self._changed()

    def apply_message(self, name: str, payload: Any) -> bool:
        """Apply a raw Socket.IO change message; other names are ignored."""
        if name not in CHANGE_EVENT_NAMES:
            return False
        try:
            event = ChangeEvent.from_message(name, payload)
        except ValueError as exc:
            logger.warning("Dropping malformed %s message: %s", name, exc)
            return False
        return self.apply_event(event)

    def apply_event(self, event: ChangeEvent) -> bool:
        """
        Merge one pushed change event into confirmed state.

        Returns:
            True when confirmed state changed.
        """
        if event.entity is EntityKind.COMMENT:
            changed = self._add_comment(event.payload)
        elif event.kind is EventKind.CREATED:
            changed = self._insert(event.payload)
        elif event.kind is EventKind.UPDATED:
            changed = self._replace(event.payload)
        else:
            changed = self._remove(event.entity_id)
        if changed:
            self._changed()
        return changed

    def _insert(self, todo: dict[str, Any]) -> bool:
        todo_id = str(todo["id"])
        if todo_id in self._entities:
            return False
        self._entities[todo_id] = todo
        self._order.insert(0, todo_id)
        return True

    def _replace(self, todo: dict[str, Any]) -> bool:
        todo_id = str(todo["id"])
        if todo_id not in self._entities:
            logger.debug("Ignoring update for unknown todo %s", todo_id)
            return False
        self._entities[todo_id] = todo
        return True

    def _remove(self, todo_id: str) -> bool:
        if self._entities.pop(todo_id, None) is None:
            return False
        self._order.remove(todo_id)
        return True

    def _add_comment(self, comment: dict[str, Any]) -> bool:
        todo_id = str(comment.get("todo_id"))
        todo = self._entities.get(todo_id)
        if todo is None:
            return False
        comments = list(todo.get("comments") or [])
        if any(existing.get("id") == comment.get("id") for existing in comments):
            return False
        self._entities[todo_id] = {**todo, "comments": [comment, *comments]}
        return True

    def refresh_entity(self, todo: Mapping[str, Any]) -> bool:
        """
        Store a canonical todo returned by a REST call for an existing entity.

        A todo deleted while the call was in flight stays deleted.
        """
        changed = self._replace(copy.deepcopy(dict(todo)))
        if changed:
            self._changed()
        return changed

    def _store_created(self, todo: Mapping[str, Any]) -> None:
        todo = copy.deepcopy(dict(todo))
        if not self._insert(todo):
            self._entities[str(todo["id"])] = todo

    # ------------------------------------------------------------------
    # Optimistic mutations
    # ------------------------------------------------------------------

    def begin_create(self, fields: Mapping[str, Any]) -> PendingMutation:
        mutation_id = next(self._ids)
        mutation = PendingMutation(
            mutation_id, MutationKind.CREATE, f"{LOCAL_ID_PREFIX}{mutation_id}", dict(fields)
        )
        return self._begin(mutation)

    def begin_update(self, todo_id: str, fields: Mapping[str, Any]) -> PendingMutation:
        return self._begin(
            PendingMutation(next(self._ids), MutationKind.UPDATE, todo_id, dict(fields))
        )

    def begin_delete(self, todo_id: str) -> PendingMutation:
        return self._begin(PendingMutation(next(self._ids), MutationKind.DELETE, todo_id))

    def _begin(self, mutation: PendingMutation) -> PendingMutation:
        self._pending[mutation.mutation_id] = mutation
        self._changed()
        return mutation

    def confirm(
        self, mutation: PendingMutation, todo: Mapping[str, Any] | None = None
    ) -> None:
        """
        Settle ``mutation`` with the server's answer.

        ``todo`` is the canonical entity returned for creates and updates;
        it becomes confirmed state.  A confirmed delete removes the entity.
        """
        self._pending.pop(mutation.mutation_id, None)
        if mutation.kind is MutationKind.DELETE:
            self._remove(mutation.todo_id)
            self._changed()
        elif todo is None:
            self._changed()
        elif mutation.kind is MutationKind.CREATE:
            self._store_created(todo)
            self._changed()
        elif not self.refresh_entity(todo):
            self._changed()

    def rollback(self, mutation: PendingMutation) -> None:
        """Drop ``mutation``; the view falls back to confirmed state."""
        if self._pending.pop(mutation.mutation_id, None) is not None:
            logger.info("Rolled back optimistic %s of %s", mutation.kind.value, mutation.todo_id)
            self._changed()

    def is_pending(self, todo_id: str) -> bool:
        return any(mutation.todo_id == todo_id for mutation in self._pending.values())

    @property
    def pending(self) -> list[PendingMutation]:
        return list(self._pending.values())

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def todos(self) -> list[dict[str, Any]]:
        """Materialized list: confirmed state with pending overlays applied."""
        order = list(self._order)
        view = {todo_id: self._entities[todo_id] for todo_id in order}
        for mutation in self._pending.values():
            if mutation.kind is MutationKind.CREATE:
                order.insert(0, mutation.todo_id)
                view[mutation.todo_id] = _provisional_todo(mutation.todo_id, mutation.fields)
            elif mutation.kind is MutationKind.UPDATE:
                if mutation.todo_id in view:
                    view[mutation.todo_id] = _overlay(view[mutation.todo_id], mutation.fields)
            elif view.pop(mutation.todo_id, None) is not None:
                order.remove(mutation.todo_id)
        return [copy.deepcopy(view[todo_id]) for todo_id in order]

    def get(self, todo_id: str) -> dict[str, Any] | None:
        for todo in self.todos():
            if todo["id"] == todo_id:
                return todo
        return None

    def __len__(self) -> int:
        return len(self.todos())

    def __contains__(self, todo_id: object) -> bool:
        return any(todo["id"] == todo_id for todo in self.todos())

    def status_counts(self) -> dict[str, int]:
        counts = dict.fromkeys(_STATUSES, 0)
        for todo in self.todos():
            counts[todo["status"]] = counts.get(todo["status"], 0) + 1
        return counts

    def subtask_totals(self) -> tuple[int, int]:
        """(completed, total) subtasks across the visible list."""
        completed = total = 0
        for todo in self.todos():
            completed += todo.get("completed_subtasks", 0)
            total += todo.get("total_subtasks", 0)
        return completed, total

    def filtered(
        self,
        *,
        status: str | None = None,
        priority: str | None = None,
        category: str | None = None,
        search: str | None = None,
    ) -> list[dict[str, Any]]:
        """Same filter semantics as the REST listing, applied locally."""
        needle = search.lower() if search else None
        category_needle = category.lower() if category else None
        result = []
        for todo in self.todos():
            if status and todo["status"] != status:
                continue
            if priority and todo["priority"] != priority:
                continue
            if category_needle and not any(
                category_needle in item["name"].lower() for item in todo.get("categories", [])
            ):
                continue
            if needle and not (
                needle in (todo.get("title") or "").lower()
                or needle in (todo.get("description") or "").lower()
            ):
                continue
            result.append(todo)
        return result
