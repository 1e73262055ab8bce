"""
Category CRUD, scoped to the owning user.

Todos embed the name and colour of each linked category, so renaming,
recolouring or deleting a category publishes ``todo-updated`` for every
linked todo once the change is committed.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session as DbSession

from ..errors import NotFoundError, ValidationError, field_error
from ..models import Category, Todo
from ..realtime.events import ChangeEvent, EntityKind
from .base import Publisher, commit, publish, todo_rooms
from .validation import clean_category_fields

logger = logging.getLogger(__name__)


class CategoryService:
    """Categories are private to their owner."""

    def __init__(self, session: DbSession, publisher: Publisher | None = None) -> None:
        self.session = session
        self.publisher = publisher

    def list_categories(self, user_id: int) -> list[Category]:
        stmt = select(Category).where(Category.user_id == user_id).order_by(Category.name)
        return list(self.session.scalars(stmt))

    def get_category(self, user_id: int, category_id: str) -> Category:
        category = self.session.scalar(
            select(Category).where(Category.id == category_id, Category.user_id == user_id)
        )
        if category is None:
            raise NotFoundError("Category not found")
        return category

    def owned_categories(self, user_id: int, category_ids: list[str]) -> list[Category]:
        """
        Resolve category ids that must all belong to ``user_id``.

        Raises:
            NotFoundError: If any id is unknown or owned by someone else.
        """
        if not category_ids:
            return []
        found = {
            category.id: category
            for category in self.session.scalars(
                select(Category).where(
                    Category.id.in_(category_ids), Category.user_id == user_id
                )
            )
        }
        missing = [category_id for category_id in category_ids if category_id not in found]
        if missing:
            raise NotFoundError("Category not found")
        return [found[category_id] for category_id in category_ids]

    def create_category(self, user_id: int, data: Any) -> Category:
        fields = clean_category_fields(data, creating=True)
        self._ensure_unique_name(user_id, fields["name"])
        category = Category(user_id=user_id, **fields)
        self.session.add(category)
        commit(self.session)
        logger.info("User %s created category %s", user_id, category.id)
        return category

    def update_category(
        self,
        user_id: int,
        category_id: str,
        data: Any,
        *,
        origin_session_id: str | None = None,
    ) -> Category:
        category = self.get_category(user_id, category_id)
        fields = clean_category_fields(data, creating=False)
        if "name" in fields and fields["name"].lower() != category.name.lower():
            self._ensure_unique_name(user_id, fields["name"])
        for key, value in fields.items():
            setattr(category, key, value)
        commit(self.session)
        if fields:
            self._publish_linked(list(category.todos), origin_session_id)
        return category

    def delete_category(
        self, user_id: int, category_id: str, *, origin_session_id: str | None = None
    ) -> None:
        """Delete a category; linked todos stay and lose the link."""
        category = self.get_category(user_id, category_id)
        linked = list(category.todos)
        self.session.delete(category)
        commit(self.session)
        logger.info("User %s deleted category %s", user_id, category_id)
        self._publish_linked(linked, origin_session_id)

    def _ensure_unique_name(self, user_id: int, name: str) -> None:
        existing = self.session.scalar(
            select(Category.id).where(
                Category.user_id == user_id, func.lower(Category.name) == name.lower()
            )
        )
        if existing is not None:
            raise ValidationError(
                "Category with this name already exists",
                [field_error("name", "Category with this name already exists")],
            )

    def _publish_linked(self, todos: list[Todo], origin_session_id: str | None) -> None:
        events = []
        for todo in todos:
            entity = todo.to_dict()
            events.extend(
                ChangeEvent.updated(EntityKind.TODO, room, entity) for room in todo_rooms(todo)
            )
        if events:
            logger.debug("Category change republishes %d todo(s)", len(todos))
        publish(self.publisher, events, origin_session_id)
