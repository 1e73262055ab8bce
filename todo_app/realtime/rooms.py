"""Room identifier helpers (``user-<id>`` and ``team-<id>``)."""

from __future__ import annotations

import re
from enum import Enum

from ..errors import ValidationError, field_error

_ROOM_PATTERN = re.compile(r"^(user|team)-([1-9][0-9]*)$")


class RoomKind(str, Enum):
    USER = "user"
    TEAM = "team"


def user_room(user_id: int | str) -> str:
    return f"{RoomKind.USER.value}-{_positive_id(user_id, 'user_id')}"


def team_room(team_id: int | str) -> str:
    return f"{RoomKind.TEAM.value}-{_positive_id(team_id, 'team_id')}"


def parse_room(room_id: str) -> tuple[RoomKind, int]:
    """
    Split a room identifier into its kind and numeric id.

    Raises:
        ValidationError: If the identifier is not ``user-<n>`` or
            ``team-<n>`` with a positive integer ``n``.
    """
    match = _ROOM_PATTERN.match(room_id) if isinstance(room_id, str) else None
    if match is None:
        raise ValidationError(
            "Invalid room identifier",
            [field_error("room", f"Malformed room identifier: {room_id!r}")],
        )
    return RoomKind(match.group(1)), int(match.group(2))


def _positive_id(value: int | str, field: str) -> int:
    number = 0
    # bool is an int subclass; reject it explicitly.
    if isinstance(value, int) and not isinstance(value, bool):
        number = value
    elif isinstance(value, str) and value.strip().isdigit():
        number = int(value)
    if number <= 0:
        raise ValidationError(
            "Invalid room identifier",
            [field_error(field, f"Must be a positive integer, got {value!r}")],
        )
    return number
