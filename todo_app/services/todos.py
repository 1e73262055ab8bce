"""
Mutation API for todos and their subtasks and comments.

Every mutating method applies one logical change inside a single database
transaction, commits it, and only then publishes the resulting
``ChangeEvent`` (one per target room) through the injected publisher.  A
failed commit publishes nothing.

Room routing:
    * a todo's events go to ``user-<owner>`` and, when the todo has a team,
      to ``team-<team>``;
    * moving a todo between teams sends ``todo-deleted`` to the old team
      room and ``todo-created`` to the new one;
    * subtask changes and comment edits/removals publish ``todo-updated``
      with the refreshed parent todo;
    * a new comment publishes ``comment-added``.

Ownership is always checked through ``Todo.user_id``; an entity owned by
someone else is reported exactly like a missing one.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session as DbSession

from ..errors import NotFoundError, field_error
from ..models import Category, Comment, Subtask, Todo, TodoPriority, TodoStatus, to_utc_iso
from ..realtime.events import ChangeEvent, EntityKind
from ..realtime.rooms import team_room, user_room
from .base import Publisher, commit, publish, todo_rooms
from .categories import CategoryService
from .teams import TeamService
from .validation import clean_comment_fields, clean_subtask_fields, clean_todo_fields

logger = logging.getLogger(__name__)

RECENT_TODOS_LIMIT = 5


class TodoService:
    """
    Todo, subtask and comment mutations plus the read side the client uses
    for full refreshes.

    Args:
        session: SQLAlchemy session used for every read and write.
        publisher: Receives change events after each commit; ``None``
            disables realtime publishing.
        title_max_length: Upper bound for todo and subtask titles.
    """

    def __init__(
        self,
        session: DbSession,
        publisher: Publisher | None = None,
        *,
        title_max_length: int = 200,
    ) -> None:
        self.session = session
        self.publisher = publisher
        self.title_max_length = title_max_length
        self.categories = CategoryService(session, publisher)
        self.teams = TeamService(session)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_todos(
        self,
        user_id: int,
        *,
        page: int = 1,
        limit: int = 10,
        status: str | None = None,
        priority: str | None = None,
        category: str | None = None,
        search: str | None = None,
    ) -> tuple[list[Todo], int]:
        """
        Return one page of the todos visible to ``user_id``, newest first.

        Visible means owned by the user or shared with one of the user's
        teams.

        Returns:
            ``(todos, total)`` where ``total`` counts all matches.
        """
        stmt = self._visible_query(user_id)
        if status:
            stmt = stmt.where(Todo.status == status)
        if priority:
            stmt = stmt.where(Todo.priority == priority)
        if search:
            pattern = f"%{search}%"
            stmt = stmt.where(or_(Todo.title.ilike(pattern), Todo.description.ilike(pattern)))
        if category:
            stmt = stmt.where(Todo.categories.any(Category.name.ilike(f"%{category}%")))

        total = self.session.scalar(select(func.count()).select_from(stmt.subquery())) or 0
        todos = self.session.scalars(
            stmt.order_by(Todo.created_at.desc(), Todo.id)
            .offset((page - 1) * limit)
            .limit(limit)
        ).all()
        return list(todos), total

    def get_todo(self, user_id: int, todo_id: str) -> Todo:
        todo = self.session.scalar(self._visible_query(user_id).where(Todo.id == todo_id))
        if todo is None:
            raise NotFoundError("Todo not found")
        return todo

    def user_stats(self, user_id: int) -> dict[str, Any]:
        """Summarise the user's own todos by status and category."""
        status_counts = dict(
            self.session.execute(
                select(Todo.status, func.count(Todo.id))
                .where(Todo.user_id == user_id)
                .group_by(Todo.status)
            ).all()
        )
        total = sum(status_counts.values())
        completed = status_counts.get(TodoStatus.COMPLETED.value, 0)
        recent = self.session.scalars(
            select(Todo)
            .where(Todo.user_id == user_id)
            .order_by(Todo.updated_at.desc())
            .limit(RECENT_TODOS_LIMIT)
        ).all()
        return {
            "todo_stats": {status.lower(): count for status, count in status_counts.items()},
            "category_stats": [
                {
                    "id": category.id,
                    "name": category.name,
                    "color": category.color,
                    "todo_count": len(category.todos),
                }
                for category in self.categories.list_categories(user_id)
            ],
            "recent_todos": [
                {
                    "id": todo.id,
                    "title": todo.title,
                    "status": todo.status,
                    "updated_at": to_utc_iso(todo.updated_at),
                }
                for todo in recent
            ],
            "completion_rate": round(completed / total * 100, 2) if total else 0,
            "total_todos": total,
            "completed_todos": completed,
        }

    # ------------------------------------------------------------------
    # Todo mutations
    # ------------------------------------------------------------------

    def create_todo(
        self, owner_id: int, data: Any, *, origin_session_id: str | None = None
    ) -> dict[str, Any]:
        """
        Create a todo for ``owner_id``.

        Priority defaults to ``MEDIUM`` and status to ``TODO``.

        Raises:
            ValidationError: Empty or over-long title, or other bad fields.
            NotFoundError: A category or team the owner cannot use.
        """
        fields = clean_todo_fields(data, creating=True, max_title_length=self.title_max_length)
        categories = self.categories.owned_categories(owner_id, fields.pop("category_ids", []))
        self._check_team(owner_id, fields.get("team_id"))

        todo = Todo(
            user_id=owner_id,
            title=fields["title"],
            description=fields.get("description"),
            status=fields.get("status", TodoStatus.TODO.value),
            priority=fields.get("priority", TodoPriority.MEDIUM.value),
            due_date=fields.get("due_date"),
            team_id=fields.get("team_id"),
            categories=categories,
        )
        self.session.add(todo)
        commit(self.session)

        entity = todo.to_dict()
        logger.info("User %s created todo %s", owner_id, todo.id)
        self._publish(
            (ChangeEvent.created(EntityKind.TODO, room, entity) for room in todo_rooms(todo)),
            origin_session_id,
        )
        return entity

    def update_todo(
        self,
        owner_id: int,
        todo_id: str,
        data: Any,
        *,
        origin_session_id: str | None = None,
    ) -> dict[str, Any]:
        """
        Apply a partial update; fields absent from ``data`` stay unchanged.

        ``category_ids`` replaces the whole category list in the same
        transaction as the other fields.

        Raises:
            NotFoundError: Todo missing or not owned, or an unusable
                category or team.
            ValidationError: Invalid field values.
        """
        todo = self._owned_todo(owner_id, todo_id)
        fields = clean_todo_fields(data, creating=False, max_title_length=self.title_max_length)

        categories = None
        if "category_ids" in fields:
            categories = self.categories.owned_categories(owner_id, fields.pop("category_ids"))
        if "team_id" in fields:
            self._check_team(owner_id, fields["team_id"])

        previous_team_id = todo.team_id
        if categories is not None:
            todo.categories = categories
        for key, value in fields.items():
            setattr(todo, key, value)
        commit(self.session)

        entity = todo.to_dict()
        logger.info("User %s updated todo %s", owner_id, todo.id)

        events = [ChangeEvent.updated(EntityKind.TODO, user_room(todo.user_id), entity)]
        if todo.team_id == previous_team_id:
            if todo.team_id is not None:
                events.append(
                    ChangeEvent.updated(EntityKind.TODO, team_room(todo.team_id), entity)
                )
        else:
            if previous_team_id is not None:
                events.append(
                    ChangeEvent.deleted(EntityKind.TODO, team_room(previous_team_id), todo.id)
                )
            if todo.team_id is not None:
                events.append(
                    ChangeEvent.created(EntityKind.TODO, team_room(todo.team_id), entity)
                )
        self._publish(events, origin_session_id)
        return entity

    def delete_todo(
        self, owner_id: int, todo_id: str, *, origin_session_id: str | None = None
    ) -> None:
        """Delete a todo together with its subtasks, comments and category links."""
        todo = self._owned_todo(owner_id, todo_id)
        rooms = todo_rooms(todo)
        self.session.delete(todo)
        commit(self.session)

        logger.info("User %s deleted todo %s", owner_id, todo_id)
        self._publish(
            (ChangeEvent.deleted(EntityKind.TODO, room, todo_id) for room in rooms),
            origin_session_id,
        )

    # ------------------------------------------------------------------
    # Subtask mutations
    # ------------------------------------------------------------------

    def create_subtask(
        self,
        owner_id: int,
        todo_id: str,
        data: Any,
        *,
        origin_session_id: str | None = None,
    ) -> tuple[dict[str, Any], dict[str, Any]]:
        """
        Append a subtask to an owned todo.

        Returns:
            ``(subtask, todo)`` serialised after the commit.
        """
        todo = self._owned_todo(owner_id, todo_id)
        fields = clean_subtask_fields(data, creating=True, max_title_length=self.title_max_length)
        if "order" not in fields:
            fields["order"] = max((subtask.order for subtask in todo.subtasks), default=-1) + 1
        subtask = Subtask(**fields)
        todo.subtasks.append(subtask)
        commit(self.session)
        return subtask.to_dict(), self._publish_todo_updated(todo, origin_session_id)

    def update_subtask(
        self,
        owner_id: int,
        subtask_id: str,
        data: Any,
        *,
        origin_session_id: str | None = None,
    ) -> tuple[dict[str, Any], dict[str, Any]]:
        subtask = self._owned_child(Subtask, owner_id, subtask_id, "Subtask not found")
        fields = clean_subtask_fields(
            data, creating=False, max_title_length=self.title_max_length
        )
        for key, value in fields.items():
            setattr(subtask, key, value)
        commit(self.session)
        return subtask.to_dict(), self._publish_todo_updated(subtask.todo, origin_session_id)

    def delete_subtask(
        self, owner_id: int, subtask_id: str, *, origin_session_id: str | None = None
    ) -> dict[str, Any]:
        subtask = self._owned_child(Subtask, owner_id, subtask_id, "Subtask not found")
        todo = subtask.todo
        todo.subtasks.remove(subtask)
        commit(self.session)
        return self._publish_todo_updated(todo, origin_session_id)

    # ------------------------------------------------------------------
    # Comment mutations
    # ------------------------------------------------------------------

    def add_comment(
        self,
        owner_id: int,
        todo_id: str,
        data: Any,
        *,
        author_name: str,
        origin_session_id: str | None = None,
    ) -> tuple[dict[str, Any], dict[str, Any]]:
        """
        Add a comment to an owned todo and publish ``comment-added``.

        Returns:
            ``(comment, todo)`` serialised after the commit.
        """
        todo = self._owned_todo(owner_id, todo_id)
        fields = clean_comment_fields(data)
        comment = Comment(user_id=owner_id, author_name=author_name, **fields)
        todo.comments.append(comment)
        commit(self.session)

        entity = comment.to_dict()
        self._publish(
            (
                ChangeEvent.created(EntityKind.COMMENT, room, entity)
                for room in todo_rooms(todo)
            ),
            origin_session_id,
        )
        return entity, todo.to_dict()

    def update_comment(
        self,
        owner_id: int,
        comment_id: str,
        data: Any,
        *,
        origin_session_id: str | None = None,
    ) -> tuple[dict[str, Any], dict[str, Any]]:
        comment = self._owned_child(Comment, owner_id, comment_id, "Comment not found")
        fields = clean_comment_fields(data)
        comment.content = fields["content"]
        commit(self.session)
        return comment.to_dict(), self._publish_todo_updated(comment.todo, origin_session_id)

    def delete_comment(
        self, owner_id: int, comment_id: str, *, origin_session_id: str | None = None
    ) -> dict[str, Any]:
        comment = self._owned_child(Comment, owner_id, comment_id, "Comment not found")
        todo = comment.todo
        todo.comments.remove(comment)
        commit(self.session)
        return self._publish_todo_updated(todo, origin_session_id)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _visible_query(self, user_id: int):
        team_ids = self.teams.team_ids_for(user_id)
        condition = Todo.user_id == user_id
        if team_ids:
            condition = or_(condition, Todo.team_id.in_(team_ids))
        return select(Todo).where(condition)

    def _owned_todo(self, owner_id: int, todo_id: str) -> Todo:
        todo = self.session.scalar(
            select(Todo).where(Todo.id == todo_id, Todo.user_id == owner_id)
        )
        if todo is None:
            raise NotFoundError("Todo not found")
        return todo

    def _owned_child(self, model, owner_id: int, child_id: str, message: str):
        child = self.session.scalar(
            select(model).join(Todo).where(model.id == child_id, Todo.user_id == owner_id)
        )
        if child is None:
            raise NotFoundError(message)
        return child

    def _check_team(self, owner_id: int, team_id: int | None) -> None:
        if team_id is not None and not self.teams.is_member(owner_id, team_id):
            raise NotFoundError(
                "Team not found", [field_error("team_id", "Team not found")]
            )

    def _publish_todo_updated(self, todo: Todo, origin_session_id: str | None) -> dict[str, Any]:
        entity = todo.to_dict()
        self._publish(
            (ChangeEvent.updated(EntityKind.TODO, room, entity) for room in todo_rooms(todo)),
            origin_session_id,
        )
        return entity

    def _publish(self, events: Iterable[ChangeEvent], origin_session_id: str | None) -> None:
        publish(self.publisher, events, origin_session_id)
