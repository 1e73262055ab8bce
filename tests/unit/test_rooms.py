"""
Unit tests for room identifier helpers.
"""

import pytest

from todo_app.errors import ValidationError
from todo_app.realtime.rooms import RoomKind, parse_room, team_room, user_room

pytestmark = pytest.mark.unit


def test_room_builders():
    assert user_room(42) == "user-42"
    assert user_room("42") == "user-42"
    assert team_room(3) == "team-3"


@pytest.mark.parametrize(
    "room_id, expected",
    [("user-42", (RoomKind.USER, 42)), ("team-3", (RoomKind.TEAM, 3))],
)
def test_parse_room(room_id, expected):
    assert parse_room(room_id) == expected


@pytest.mark.parametrize(
    "room_id",
    ["user-0", "user-", "team-abc", "group-1", "user-01", "USER-1", " user-1", None, 42],
)
def test_parse_room_rejects_malformed(room_id):
    with pytest.raises(ValidationError) as exc_info:
        parse_room(room_id)

    assert exc_info.value.status_code == 400
    assert exc_info.value.details[0]["field"] == "room"


@pytest.mark.parametrize("value", [0, -1, True, "abc", None, 1.5])
def test_user_room_rejects_bad_ids(value):
    with pytest.raises(ValidationError):
        user_room(value)
