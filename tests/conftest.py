"""
Shared pytest fixtures for the Todo Sync test suite.

Provides the Flask application, test client, database session, RS256
tokens, a fresh ChannelRegistry per test, and data factories for todos,
categories and teams.  Realtime sessions are simulated by opening registry
sessions whose delivery callable is a ``RecordingSink``.

Key Concepts Demonstrated:
- Session-scoped app vs function-scoped client / db_session for isolation
- Factory fixtures built on Faker for flexible test data
- Registry injection: each test gets its own in-memory registry
"""

from __future__ import annotations

import os
from typing import Any

import pytest
from faker import Faker

from shared.test_helpers import TEST_PUBLIC_KEY, RecordingSink, auth_headers, create_test_token

# Set testing environment before importing the app
os.environ["FLASK_ENV"] = "testing"
os.environ["TEST_JWT_PUBLIC_KEY"] = TEST_PUBLIC_KEY

from todo_app import create_app, db
from todo_app.models import Category, Team, TeamMember, Todo, TodoPriority, TodoStatus
from todo_app.realtime import REGISTRY_EXTENSION, ChannelRegistry
from todo_app.realtime.rooms import user_room

fake = Faker()

USER_ID = 42
OTHER_USER_ID = 7


# -----------------------------------------------------------------------------
# Application Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture(scope="session")
def app():
    """
    Create the application once for the whole test session.

    Yields:
        Flask application configured for testing.
    """
    application = create_app("testing")
    yield application


@pytest.fixture
def registry(app) -> ChannelRegistry:
    """Install a fresh ChannelRegistry on the app for one test."""
    fresh = ChannelRegistry()
    app.extensions[REGISTRY_EXTENSION] = fresh
    return fresh


@pytest.fixture(scope="function")
def client(app, registry):
    """Provide a Flask test client for a single test."""
    with app.test_client() as test_client:
        yield test_client


@pytest.fixture(scope="function")
def db_session(app):
    """
    Provide a clean database for each test function.

    Creates all tables before the test and drops them afterwards so no
    rows leak between tests.
    """
    with app.app_context():
        db.create_all()
        yield db
        db.session.rollback()
        db.drop_all()


# -----------------------------------------------------------------------------
# Auth Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def user_token() -> str:
    """Valid token for user 42."""
    return create_test_token(user_id=USER_ID)


@pytest.fixture
def other_user_token() -> str:
    """Valid token for user 7, used for ownership isolation tests."""
    return create_test_token(user_id=OTHER_USER_ID)


@pytest.fixture
def api_headers(user_token) -> dict[str, str]:
    return auth_headers(user_token)


@pytest.fixture
def other_user_headers(other_user_token) -> dict[str, str]:
    return auth_headers(other_user_token)


# -----------------------------------------------------------------------------
# Test Data Factory Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def category_factory(db_session):
    """Factory creating Category rows; returns the category id."""

    def _create_category(
        *, user_id: int = USER_ID, name: str | None = None, color: str = "#10B981"
    ) -> str:
        category = Category(user_id=user_id, name=name or fake.unique.word()[:50], color=color)
        db_session.session.add(category)
        db_session.session.commit()
        return category.id

    return _create_category


@pytest.fixture
def team_factory(db_session):
    """Factory creating a Team owned by ``owner_id`` with extra members; returns its id."""

    def _create_team(*, owner_id: int = USER_ID, member_ids: tuple[int, ...] = ()) -> int:
        team = Team(name=fake.company()[:100], owner_id=owner_id)
        team.members.append(TeamMember(user_id=owner_id, role="OWNER"))
        for member_id in member_ids:
            team.members.append(TeamMember(user_id=member_id))
        db_session.session.add(team)
        db_session.session.commit()
        return team.id

    return _create_team


@pytest.fixture
def todo_factory(db_session):
    """
    Factory fixture creating Todo rows directly through the ORM.

    Returns:
        Function creating a todo and returning its serialised dict.

    Example:
        def test_something(todo_factory):
            todo = todo_factory(title="My Todo")
            assert todo["status"] == "TODO"
    """

    def _create_todo(
        *,
        user_id: int = USER_ID,
        title: str | None = None,
        description: str | None = None,
        status: str = TodoStatus.TODO.value,
        priority: str = TodoPriority.MEDIUM.value,
        team_id: int | None = None,
        category_ids: list[str] | None = None,
    ) -> dict[str, Any]:
        todo = Todo(
            user_id=user_id,
            title=title or fake.sentence(nb_words=4)[:200],
            description=description if description is not None else fake.paragraph(),
            status=status,
            priority=priority,
            team_id=team_id,
        )
        if category_ids:
            todo.categories = [db_session.session.get(Category, cid) for cid in category_ids]
        db_session.session.add(todo)
        db_session.session.commit()
        return todo.to_dict()

    return _create_todo


@pytest.fixture
def valid_todo_data() -> dict[str, Any]:
    return {
        "title": "Write quarterly report",
        "description": "Collect numbers from finance first",
        "priority": TodoPriority.HIGH.value,
        "due_date": "2030-01-15T09:00:00Z",
    }


# -----------------------------------------------------------------------------
# Realtime Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def open_session(registry):
    """
    Factory opening an authenticated registry session joined to ``rooms``.

    Returns:
        Function ``(session_id, user_id, *rooms) -> RecordingSink``.  When
        no rooms are given the session joins its own user room.
    """

    def _open(session_id: str, user_id: int = USER_ID, *rooms: str) -> RecordingSink:
        sink = RecordingSink()
        registry.open_session(session_id, sink)
        registry.authenticate(session_id, user_id)
        for room in rooms or (user_room(user_id),):
            registry.join(session_id, room)
        return sink

    return _open
