"""
Messages pushed from the server to connected clients.

``ChangeEvent`` describes one state transition of a todo or comment and is
what the mutation layer emits after a commit.  ``PresenceEvent`` announces
users entering or leaving a team room.  Both are immutable value objects
exposing the Socket.IO event ``name`` and the wire ``payload``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping


class EventKind(str, Enum):
    """Kind of state transition a ChangeEvent describes."""

    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"


class EntityKind(str, Enum):
    """Kind of entity a ChangeEvent carries."""

    TODO = "todo"
    COMMENT = "comment"


# Socket.IO event names for server -> client messages.
TODO_CREATED = "todo-created"
TODO_UPDATED = "todo-updated"
TODO_DELETED = "todo-deleted"
COMMENT_ADDED = "comment-added"
USER_JOINED = "user-joined"
USER_LEFT = "user-left"

# Socket.IO event names for client -> server messages.
JOIN_USER_ROOM = "join-user-room"
JOIN_TEAM_ROOM = "join-team-room"
LEAVE_TEAM_ROOM = "leave-team-room"

_EVENT_NAMES: dict[tuple[EntityKind, EventKind], str] = {
    (EntityKind.TODO, EventKind.CREATED): TODO_CREATED,
    (EntityKind.TODO, EventKind.UPDATED): TODO_UPDATED,
    (EntityKind.TODO, EventKind.DELETED): TODO_DELETED,
    (EntityKind.COMMENT, EventKind.CREATED): COMMENT_ADDED,
}

_CHANGE_KINDS = {name: kinds for kinds, name in _EVENT_NAMES.items()}

CHANGE_EVENT_NAMES = frozenset(_CHANGE_KINDS)
SERVER_EVENT_NAMES = CHANGE_EVENT_NAMES | {USER_JOINED, USER_LEFT}


def _freeze(value: Any) -> Any:
    if isinstance(value, Mapping):
        return MappingProxyType({key: _freeze(item) for key, item in value.items()})
    if isinstance(value, list):
        return tuple(_freeze(item) for item in value)
    return value


def _thaw(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {key: _thaw(item) for key, item in value.items()}
    if isinstance(value, tuple):
        return [_thaw(item) for item in value]
    return value


@dataclass(frozen=True)
class ChangeEvent:
    """
    Immutable description of one entity state transition.

    Attributes:
        kind: created, updated or deleted.
        entity: todo or comment.
        room: Room the event is addressed to.
        entity_id: Identifier of the affected entity.
        data: Full entity payload for created/updated events; ``None`` for
            deleted events, which carry only ``entity_id``.
    """

    kind: EventKind
    entity: EntityKind
    room: str
    entity_id: str
    data: Mapping[str, Any] | None = field(default=None, compare=False)

    def __post_init__(self) -> None:
        if (self.entity, self.kind) not in _EVENT_NAMES:
            raise ValueError(f"Unsupported change event: {self.entity.value} {self.kind.value}")
        if self.kind is EventKind.DELETED:
            if self.data is not None:
                raise ValueError("Deleted events carry only the entity identifier")
        elif self.data is None:
            raise ValueError(f"{self.kind.value} events require an entity payload")
        else:
            object.__setattr__(self, "data", _freeze(self.data))

    @classmethod
    def created(cls, entity: EntityKind, room: str, data: Mapping[str, Any]) -> ChangeEvent:
        return cls(EventKind.CREATED, entity, room, str(data["id"]), data)

    @classmethod
    def updated(cls, entity: EntityKind, room: str, data: Mapping[str, Any]) -> ChangeEvent:
        return cls(EventKind.UPDATED, entity, room, str(data["id"]), data)

    @classmethod
    def deleted(cls, entity: EntityKind, room: str, entity_id: str) -> ChangeEvent:
        return cls(EventKind.DELETED, entity, room, str(entity_id))

    @classmethod
    def from_message(cls, name: str, payload: Any, room: str = "") -> ChangeEvent:
        """
        Rebuild a ChangeEvent from a received Socket.IO message.

        Raises:
            ValueError: If ``name`` is not a change event or the payload
                does not fit it.
        """
        try:
            entity, kind = _CHANGE_KINDS[name]
        except KeyError:
            raise ValueError(f"Not a change event: {name!r}") from None
        if kind is EventKind.DELETED:
            if isinstance(payload, Mapping):
                payload = payload.get("id")
            if payload is None:
                raise ValueError(f"{name} message without an identifier")
            return cls.deleted(entity, room, payload)
        if not isinstance(payload, Mapping) or "id" not in payload:
            raise ValueError(f"{name} message without an entity payload")
        return cls(kind, entity, room, str(payload["id"]), payload)

    @property
    def name(self) -> str:
        """Socket.IO event name this event is delivered under."""
        return _EVENT_NAMES[(self.entity, self.kind)]

    @property
    def payload(self) -> Any:
        """Wire payload: a fresh dict copy of the entity, or the bare id."""
        if self.data is None:
            return self.entity_id
        return _thaw(self.data)


@dataclass(frozen=True)
class PresenceEvent:
    """A user joined or left a team room."""

    name: str
    room: str
    user_id: int

    @classmethod
    def joined(cls, room: str, user_id: int) -> PresenceEvent:
        return cls(USER_JOINED, room, user_id)

    @classmethod
    def left(cls, room: str, user_id: int) -> PresenceEvent:
        return cls(USER_LEFT, room, user_id)

    @property
    def payload(self) -> int:
        return self.user_id
