"""
Unit tests for ChangeEvent and PresenceEvent value objects.
"""

from __future__ import annotations

import dataclasses

import pytest

from todo_app.realtime.events import (
    COMMENT_ADDED,
    TODO_CREATED,
    TODO_DELETED,
    TODO_UPDATED,
    USER_JOINED,
    ChangeEvent,
    EntityKind,
    EventKind,
    PresenceEvent,
)

pytestmark = pytest.mark.unit


TODO = {"id": "t-1", "title": "Buy milk", "subtasks": [{"id": "s-1", "completed": False}]}


class TestChangeEvent:
    """Construction rules and wire representation."""

    def test_created_event_name_and_payload(self):
        event = ChangeEvent.created(EntityKind.TODO, "user-42", TODO)

        assert event.name == TODO_CREATED
        assert event.entity_id == "t-1"
        assert event.payload == TODO

    def test_deleted_event_carries_bare_id(self):
        event = ChangeEvent.deleted(EntityKind.TODO, "user-42", "t-1")

        assert event.name == TODO_DELETED
        assert event.payload == "t-1"
        assert event.data is None

    def test_comment_created_is_comment_added(self):
        event = ChangeEvent.created(EntityKind.COMMENT, "team-3", {"id": "c-1", "todo_id": "t-1"})

        assert event.name == COMMENT_ADDED

    def test_event_is_immutable(self):
        event = ChangeEvent.updated(EntityKind.TODO, "user-42", TODO)

        with pytest.raises(dataclasses.FrozenInstanceError):
            event.room = "user-7"
        with pytest.raises(TypeError):
            event.data["title"] = "changed"

    def test_payload_is_a_fresh_copy(self):
        """Test that mutating one delivered payload cannot affect another."""
        source = {"id": "t-1", "subtasks": [{"id": "s-1"}]}
        event = ChangeEvent.updated(EntityKind.TODO, "user-42", source)

        first = event.payload
        first["subtasks"].append({"id": "s-2"})
        source["subtasks"].append({"id": "s-3"})

        assert event.payload == {"id": "t-1", "subtasks": [{"id": "s-1"}]}

    def test_deleted_event_rejects_payload(self):
        with pytest.raises(ValueError):
            ChangeEvent(EventKind.DELETED, EntityKind.TODO, "user-42", "t-1", TODO)

    def test_updated_event_requires_payload(self):
        with pytest.raises(ValueError):
            ChangeEvent(EventKind.UPDATED, EntityKind.TODO, "user-42", "t-1")

    @pytest.mark.parametrize("kind", [EventKind.UPDATED, EventKind.DELETED])
    def test_comment_events_other_than_created_are_rejected(self, kind):
        data = None if kind is EventKind.DELETED else {"id": "c-1"}
        with pytest.raises(ValueError):
            ChangeEvent(kind, EntityKind.COMMENT, "user-42", "c-1", data)


class TestFromMessage:
    """Rebuilding events from received Socket.IO messages."""

    def test_updated_message(self):
        event = ChangeEvent.from_message(TODO_UPDATED, TODO)

        assert event.kind is EventKind.UPDATED
        assert event.entity is EntityKind.TODO
        assert event.entity_id == "t-1"

    @pytest.mark.parametrize("payload", ["t-1", {"id": "t-1"}])
    def test_deleted_message_accepts_id_or_object(self, payload):
        event = ChangeEvent.from_message(TODO_DELETED, payload)

        assert event.kind is EventKind.DELETED
        assert event.entity_id == "t-1"

    @pytest.mark.parametrize(
        "name, payload",
        [
            (USER_JOINED, 42),
            ("todo-archived", TODO),
            (TODO_CREATED, {"title": "no id"}),
            (TODO_CREATED, "t-1"),
            (TODO_DELETED, None),
        ],
    )
    def test_invalid_messages_raise(self, name, payload):
        with pytest.raises(ValueError):
            ChangeEvent.from_message(name, payload)


def test_presence_event_payload_is_user_id():
    event = PresenceEvent.joined("team-3", 42)

    assert event.name == USER_JOINED
    assert event.payload == 42
    assert PresenceEvent.left("team-3", 42).name == "user-left"
