"""
REST API Endpoints for the Todo Sync application.

Thin HTTP layer over the service classes: every handler authenticates the
caller, hands the decoded JSON body to a service, and wraps the result in
the success envelope ``{"success": true, "data": {...}}``.  Failures are
raised as ``AppError`` subclasses and rendered by the application error
handlers.

A client that also holds a realtime connection sends its Socket.IO session
id in the ``X-Socket-Id`` header; the mutation's change event then skips
that session, since the client already applied the change locally.

Endpoints:
    GET    /api/health
    GET    /api/todos                       - List (pagination + filters)
    GET    /api/todos/<id>
    POST   /api/todos
    PUT    /api/todos/<id>                  - Partial update
    DELETE /api/todos/<id>
    POST   /api/todos/<id>/subtasks
    PUT    /api/todos/subtasks/<id>
    DELETE /api/todos/subtasks/<id>
    POST   /api/todos/<id>/comments
    PUT    /api/todos/comments/<id>
    DELETE /api/todos/comments/<id>
    GET    /api/categories
    GET    /api/categories/<id>
    POST   /api/categories
    PUT    /api/categories/<id>
    DELETE /api/categories/<id>
    GET    /api/teams
    POST   /api/teams
    POST   /api/teams/<id>/members
    GET    /api/users/stats
"""

from __future__ import annotations

import logging
import math
import os
from datetime import datetime, timezone

from flask import Blueprint, Response, current_app, g, jsonify, request

from .. import db
from ..auth import require_auth
from ..errors import ValidationError, field_error
from ..realtime import current_registry
from ..services import CategoryService, TeamService, TodoService
from . import success

logger = logging.getLogger(__name__)

api_bp = Blueprint("api", __name__)

ORIGIN_HEADER = "X-Socket-Id"


# =====================================================================
# Helper Functions
# =====================================================================


def _todo_service() -> TodoService:
    return TodoService(
        db.session,
        current_registry(),
        title_max_length=current_app.config["TODO_TITLE_MAX_LENGTH"],
    )


def _origin() -> str | None:
    """Realtime session id of the calling client, if it sent one."""
    value = request.headers.get(ORIGIN_HEADER, "").strip()
    return value or None


def _json_body():
    """Decode the request body; malformed or missing JSON becomes ``None``."""
    return request.get_json(silent=True)


def _int_arg(name: str, default: int, *, minimum: int, maximum: int | None = None) -> int:
    raw = request.args.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        value = minimum - 1
    if value < minimum or (maximum is not None and value > maximum):
        bound = f"between {minimum} and {maximum}" if maximum is not None else f">= {minimum}"
        raise ValidationError(
            "Validation failed", [field_error(name, f"'{name}' must be an integer {bound}")]
        )
    return value


# =====================================================================
# Health
# =====================================================================


def health_check() -> tuple[Response, int]:
    """Public liveness probe."""
    return (
        jsonify(
            {
                "status": "healthy",
                "service": "todo-sync",
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "environment": os.getenv("ENVIRONMENT", "unknown"),
                "realtime_sessions": current_registry().session_count(),
            }
        ),
        200,
    )


api_bp.add_url_rule("/health", "health_check", health_check, methods=["GET"])


# =====================================================================
# Todos
# =====================================================================


@api_bp.route("/todos", methods=["GET"])
@require_auth
def list_todos() -> tuple[Response, int]:
    """List the caller's visible todos with pagination and filters."""
    page = _int_arg("page", 1, minimum=1)
    limit = _int_arg(
        "limit",
        current_app.config["TODOS_PAGE_SIZE"],
        minimum=1,
        maximum=current_app.config["TODOS_MAX_PAGE_SIZE"],
    )
    logger.info("GET /api/todos - user_id=%s page=%s limit=%s", g.user_id, page, limit)

    todos, total = _todo_service().list_todos(
        g.user_id,
        page=page,
        limit=limit,
        status=request.args.get("status") or None,
        priority=request.args.get("priority") or None,
        category=request.args.get("category") or None,
        search=request.args.get("search") or None,
    )
    return success(
        {
            "todos": [todo.to_dict() for todo in todos],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "pages": math.ceil(total / limit),
            },
        }
    )


@api_bp.route("/todos/<todo_id>", methods=["GET"])
@require_auth
def get_todo(todo_id: str) -> tuple[Response, int]:
    todo = _todo_service().get_todo(g.user_id, todo_id)
    return success({"todo": todo.to_dict()})


@api_bp.route("/todos", methods=["POST"])
@require_auth
def create_todo() -> tuple[Response, int]:
    todo = _todo_service().create_todo(g.user_id, _json_body(), origin_session_id=_origin())
    return success({"todo": todo}, 201, "Todo created successfully")


@api_bp.route("/todos/<todo_id>", methods=["PUT"])
@require_auth
def update_todo(todo_id: str) -> tuple[Response, int]:
    todo = _todo_service().update_todo(
        g.user_id, todo_id, _json_body(), origin_session_id=_origin()
    )
    return success({"todo": todo}, message="Todo updated successfully")


@api_bp.route("/todos/<todo_id>", methods=["DELETE"])
@require_auth
def delete_todo(todo_id: str) -> tuple[Response, int]:
    _todo_service().delete_todo(g.user_id, todo_id, origin_session_id=_origin())
    return success({"id": todo_id}, message="Todo deleted successfully")


# =====================================================================
# Subtasks
# =====================================================================


@api_bp.route("/todos/<todo_id>/subtasks", methods=["POST"])
@require_auth
def create_subtask(todo_id: str) -> tuple[Response, int]:
    subtask, todo = _todo_service().create_subtask(
        g.user_id, todo_id, _json_body(), origin_session_id=_origin()
    )
    return success({"subtask": subtask, "todo": todo}, 201, "Subtask created successfully")


@api_bp.route("/todos/subtasks/<subtask_id>", methods=["PUT"])
@require_auth
def update_subtask(subtask_id: str) -> tuple[Response, int]:
    subtask, todo = _todo_service().update_subtask(
        g.user_id, subtask_id, _json_body(), origin_session_id=_origin()
    )
    return success({"subtask": subtask, "todo": todo}, message="Subtask updated successfully")


@api_bp.route("/todos/subtasks/<subtask_id>", methods=["DELETE"])
@require_auth
def delete_subtask(subtask_id: str) -> tuple[Response, int]:
    todo = _todo_service().delete_subtask(g.user_id, subtask_id, origin_session_id=_origin())
    return success({"todo": todo}, message="Subtask deleted successfully")


# =====================================================================
# Comments
# =====================================================================


@api_bp.route("/todos/<todo_id>/comments", methods=["POST"])
@require_auth
def add_comment(todo_id: str) -> tuple[Response, int]:
    comment, todo = _todo_service().add_comment(
        g.user_id,
        todo_id,
        _json_body(),
        author_name=g.username,
        origin_session_id=_origin(),
    )
    return success({"comment": comment, "todo": todo}, 201, "Comment added successfully")


@api_bp.route("/todos/comments/<comment_id>", methods=["PUT"])
@require_auth
def update_comment(comment_id: str) -> tuple[Response, int]:
    comment, todo = _todo_service().update_comment(
        g.user_id, comment_id, _json_body(), origin_session_id=_origin()
    )
    return success({"comment": comment, "todo": todo}, message="Comment updated successfully")


@api_bp.route("/todos/comments/<comment_id>", methods=["DELETE"])
@require_auth
def delete_comment(comment_id: str) -> tuple[Response, int]:
    todo = _todo_service().delete_comment(g.user_id, comment_id, origin_session_id=_origin())
    return success({"todo": todo}, message="Comment deleted successfully")


# =====================================================================
# Categories
# =====================================================================


@api_bp.route("/categories", methods=["GET"])
@require_auth
def list_categories() -> tuple[Response, int]:
    categories = CategoryService(db.session).list_categories(g.user_id)
    return success(
        {"categories": [category.to_dict(include_count=True) for category in categories]}
    )


@api_bp.route("/categories/<category_id>", methods=["GET"])
@require_auth
def get_category(category_id: str) -> tuple[Response, int]:
    category = CategoryService(db.session).get_category(g.user_id, category_id)
    return success({"category": category.to_dict(include_count=True)})


@api_bp.route("/categories", methods=["POST"])
@require_auth
def create_category() -> tuple[Response, int]:
    category = CategoryService(db.session).create_category(g.user_id, _json_body())
    return success({"category": category.to_dict()}, 201, "Category created successfully")


@api_bp.route("/categories/<category_id>", methods=["PUT"])
@require_auth
def update_category(category_id: str) -> tuple[Response, int]:
    category = CategoryService(db.session, current_registry()).update_category(
        g.user_id, category_id, _json_body(), origin_session_id=_origin()
    )
    return success({"category": category.to_dict()}, message="Category updated successfully")


@api_bp.route("/categories/<category_id>", methods=["DELETE"])
@require_auth
def delete_category(category_id: str) -> tuple[Response, int]:
    CategoryService(db.session, current_registry()).delete_category(
        g.user_id, category_id, origin_session_id=_origin()
    )
    return success({"id": category_id}, message="Category deleted successfully")


# =====================================================================
# Teams and users
# =====================================================================


@api_bp.route("/teams", methods=["GET"])
@require_auth
def list_teams() -> tuple[Response, int]:
    teams = TeamService(db.session).list_teams(g.user_id)
    return success({"teams": [team.to_dict(user_id=g.user_id) for team in teams]})


@api_bp.route("/teams", methods=["POST"])
@require_auth
def create_team() -> tuple[Response, int]:
    team = TeamService(db.session).create_team(g.user_id, _json_body())
    return success({"team": team.to_dict(user_id=g.user_id)}, 201, "Team created successfully")


@api_bp.route("/teams/<int:team_id>/members", methods=["POST"])
@require_auth
def add_team_member(team_id: int) -> tuple[Response, int]:
    team = TeamService(db.session).add_member(g.user_id, team_id, _json_body())
    return success({"team": team.to_dict(user_id=g.user_id)}, message="Member added")


@api_bp.route("/users/stats", methods=["GET"])
@require_auth
def user_stats() -> tuple[Response, int]:
    return success(_todo_service().user_stats(g.user_id))
