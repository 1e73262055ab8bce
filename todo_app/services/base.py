"""Shared persistence and publishing helpers for the service layer."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING, Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session as DbSession

from ..errors import UnexpectedError
from ..realtime.events import ChangeEvent
from ..realtime.registry import Message
from ..realtime.rooms import team_room, user_room

if TYPE_CHECKING:
    from ..models import Todo

logger = logging.getLogger(__name__)


class Publisher(Protocol):
    def broadcast(
        self, room_id: str, event: Message, exclude_session_id: str | None = None
    ) -> int: ...


def commit(session: DbSession) -> None:
    """
    Commit the current transaction or roll it back entirely.

    Raises:
        UnexpectedError: If the database rejects the commit.  The original
            exception is logged, never exposed to the client.
    """
    try:
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        logger.exception("Database commit failed")
        raise UnexpectedError() from exc


def todo_rooms(todo: Todo) -> list[str]:
    """Rooms that hear about ``todo``: its owner and, if set, its team."""
    rooms = [user_room(todo.user_id)]
    if todo.team_id is not None:
        rooms.append(team_room(todo.team_id))
    return rooms


def publish(
    publisher: Publisher | None,
    events: Iterable[ChangeEvent],
    origin_session_id: str | None,
) -> None:
    if publisher is None:
        return
    for event in events:
        publisher.broadcast(event.room, event, exclude_session_id=origin_session_id)
