"""
Database Models for the Todo Sync application.

Defines the SQLAlchemy ORM models for todos and their subordinate entities
(subtasks, comments, category links), plus categories and teams.  Every
todo is owned by exactly one user via ``user_id``; subtasks and comments are
reached only through their parent todo, so ownership checks always go
through ``Todo.user_id``.

Identifiers are generated UUID strings so that a client can key its local
cache by them before and after a round-trip.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from . import db

DEFAULT_CATEGORY_COLOR = "#3B82F6"


def _generate_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_utc_iso(value: datetime | None) -> str | None:
    """
    Convert a datetime to a UTC ISO-8601 string.

    SQLite does not store timezone information, so values read back from
    the database may be naive even though they were created in UTC.  Naive
    datetimes are assumed UTC; aware ones are converted.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    else:
        value = value.astimezone(timezone.utc)
    return value.isoformat()


class TodoStatus(str, Enum):
    """Lifecycle statuses of a todo."""

    TODO = "TODO"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class TodoPriority(str, Enum):
    """Priority levels of a todo."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"


todo_categories = db.Table(
    "todo_categories",
    db.Column(
        "todo_id",
        db.String(36),
        db.ForeignKey("todos.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    db.Column(
        "category_id",
        db.String(36),
        db.ForeignKey("categories.id", ondelete="CASCADE"),
        primary_key=True,
    ),
)


class Category(db.Model):
    """
    A user-defined label that todos can be filed under.

    Attributes:
        id: Generated identifier.
        user_id: Owning user.
        name: Display name, unique per user.
        color: ``#RRGGBB`` colour used by the UI.
    """

    __tablename__ = "categories"
    __table_args__ = (db.UniqueConstraint("user_id", "name", name="uq_category_user_name"),)

    id: str = db.Column(db.String(36), primary_key=True, default=_generate_id)
    user_id: int = db.Column(db.Integer, nullable=False, index=True)
    name: str = db.Column(db.String(50), nullable=False)
    color: str = db.Column(db.String(7), nullable=False, default=DEFAULT_CATEGORY_COLOR)
    created_at: datetime = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: datetime = db.Column(
        db.DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    todos = db.relationship("Todo", secondary=todo_categories, back_populates="categories")

    def to_dict(self, *, include_count: bool = False) -> dict[str, Any]:
        data = {
            "id": self.id,
            "user_id": self.user_id,
            "name": self.name,
            "color": self.color,
            "created_at": to_utc_iso(self.created_at),
            "updated_at": to_utc_iso(self.updated_at),
        }
        if include_count:
            data["todo_count"] = len(self.todos)
        return data

    def __repr__(self) -> str:
        return f"<Category {self.id}: {self.name}>"


class Team(db.Model):
    """A group of users sharing a ``team-<id>`` broadcast room."""

    __tablename__ = "teams"

    id: int = db.Column(db.Integer, primary_key=True)
    name: str = db.Column(db.String(100), nullable=False)
    description: str | None = db.Column(db.Text, nullable=True)
    owner_id: int = db.Column(db.Integer, nullable=False, index=True)
    created_at: datetime = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    members = db.relationship(
        "TeamMember", back_populates="team", cascade="all, delete-orphan"
    )

    def to_dict(self, *, user_id: int | None = None) -> dict[str, Any]:
        data = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "owner_id": self.owner_id,
            "member_count": len(self.members),
            "created_at": to_utc_iso(self.created_at),
        }
        if user_id is not None:
            membership = next((m for m in self.members if m.user_id == user_id), None)
            data["role"] = membership.role if membership else None
            data["joined_at"] = to_utc_iso(membership.joined_at) if membership else None
        return data


class TeamMember(db.Model):
    """Membership of one user in one team."""

    __tablename__ = "team_members"
    __table_args__ = (db.UniqueConstraint("team_id", "user_id", name="uq_team_member"),)

    id: int = db.Column(db.Integer, primary_key=True)
    team_id: int = db.Column(
        db.Integer, db.ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: int = db.Column(db.Integer, nullable=False, index=True)
    role: str = db.Column(db.String(20), nullable=False, default="MEMBER")
    joined_at: datetime = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    team = db.relationship("Team", back_populates="members")


class Todo(db.Model):
    """
    Todo owned by a single user, optionally shared with a team.

    Attributes:
        id: Generated identifier.
        user_id: Owning user; every mutation is scoped by it.
        team_id: Optional team whose room also receives change events.
        title: Short summary (bounded by ``TODO_TITLE_MAX_LENGTH``).
        description: Optional longer text.
        status: See ``TodoStatus``; defaults to ``TODO``.
        priority: See ``TodoPriority``; defaults to ``MEDIUM``.
        due_date: Optional timezone-aware deadline.
        categories: Linked categories, all owned by ``user_id``.
        subtasks: Ordered checklist items, deleted with the todo.
        comments: Comments, deleted with the todo.
    """

    __tablename__ = "todos"

    id: str = db.Column(db.String(36), primary_key=True, default=_generate_id)
    # Every query in the mutation layer filters by this value so users can
    # never reach another user's todos.
    user_id: int = db.Column(db.Integer, nullable=False, index=True)
    team_id: int | None = db.Column(
        db.Integer, db.ForeignKey("teams.id", ondelete="SET NULL"), nullable=True, index=True
    )
    title: str = db.Column(db.String(200), nullable=False)
    description: str | None = db.Column(db.Text, nullable=True)
    status: str = db.Column(db.String(20), nullable=False, default=TodoStatus.TODO.value)
    priority: str = db.Column(db.String(20), nullable=False, default=TodoPriority.MEDIUM.value)
    due_date: datetime | None = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at: datetime = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: datetime = db.Column(
        db.DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    categories = db.relationship(
        "Category", secondary=todo_categories, back_populates="todos", order_by="Category.name"
    )
    subtasks = db.relationship(
        "Subtask",
        back_populates="todo",
        cascade="all, delete-orphan",
        order_by="Subtask.order",
    )
    comments = db.relationship(
        "Comment",
        back_populates="todo",
        cascade="all, delete-orphan",
        order_by="Comment.created_at.desc()",
    )

    def to_dict(self) -> dict[str, Any]:
        """
        Serialise the full entity graph sent to clients.

        Includes nested categories, subtasks and comments, plus the derived
        ``completed_subtasks`` / ``total_subtasks`` counts.
        """
        subtasks = [subtask.to_dict() for subtask in self.subtasks]
        return {
            "id": self.id,
            "user_id": self.user_id,
            "team_id": self.team_id,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "priority": self.priority,
            "due_date": to_utc_iso(self.due_date),
            "created_at": to_utc_iso(self.created_at),
            "updated_at": to_utc_iso(self.updated_at),
            "categories": [category.to_dict() for category in self.categories],
            "subtasks": subtasks,
            "comments": [comment.to_dict() for comment in self.comments],
            "completed_subtasks": sum(1 for subtask in subtasks if subtask["completed"]),
            "total_subtasks": len(subtasks),
        }

    def __repr__(self) -> str:
        return f"<Todo {self.id}: {self.title}>"


class Subtask(db.Model):
    """Checklist item belonging to a todo."""

    __tablename__ = "subtasks"

    id: str = db.Column(db.String(36), primary_key=True, default=_generate_id)
    todo_id: str = db.Column(
        db.String(36), db.ForeignKey("todos.id", ondelete="CASCADE"), nullable=False, index=True
    )
    title: str = db.Column(db.String(200), nullable=False)
    completed: bool = db.Column(db.Boolean, nullable=False, default=False)
    order: int = db.Column(db.Integer, nullable=False, default=0)
    created_at: datetime = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: datetime = db.Column(
        db.DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    todo = db.relationship("Todo", back_populates="subtasks")

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "todo_id": self.todo_id,
            "title": self.title,
            "completed": self.completed,
            "order": self.order,
            "created_at": to_utc_iso(self.created_at),
            "updated_at": to_utc_iso(self.updated_at),
        }


class Comment(db.Model):
    """Comment left on a todo by its owner."""

    __tablename__ = "comments"

    id: str = db.Column(db.String(36), primary_key=True, default=_generate_id)
    todo_id: str = db.Column(
        db.String(36), db.ForeignKey("todos.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: int = db.Column(db.Integer, nullable=False)
    author_name: str = db.Column(db.String(100), nullable=False)
    content: str = db.Column(db.Text, nullable=False)
    created_at: datetime = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: datetime = db.Column(
        db.DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    todo = db.relationship("Todo", back_populates="comments")

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "todo_id": self.todo_id,
            "user_id": self.user_id,
            "content": self.content,
            "user": {"id": self.user_id, "name": self.author_name},
            "created_at": to_utc_iso(self.created_at),
            "updated_at": to_utc_iso(self.updated_at),
        }
