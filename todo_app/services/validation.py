"""
Input validation helpers for the mutation services.

Each ``clean_*`` function takes a decoded JSON body, checks every known field
and returns only the whitelisted, normalised values.  All field problems are
collected and reported together in one ``ValidationError``.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any

from ..errors import ValidationError, field_error
from ..models import TodoPriority, TodoStatus

COLOR_PATTERN = re.compile(r"^#[0-9A-Fa-f]{6}$")
CATEGORY_NAME_MAX_LENGTH = 50
TEAM_NAME_MAX_LENGTH = 100
COMMENT_MAX_LENGTH = 5000

_VALID_STATUSES = [status.value for status in TodoStatus]
_VALID_PRIORITIES = [priority.value for priority in TodoPriority]


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes; convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_due_date(date_string: str | None) -> datetime | None:
    """
    Parse an optional ISO-8601 date string into a UTC datetime.

    Raises:
        ValueError: If the string is not ISO-8601.
    """
    if not date_string:
        return None
    parsed = datetime.fromisoformat(date_string.replace("Z", "+00:00"))
    return ensure_utc(parsed)


def require_body(data: Any) -> dict[str, Any]:
    """Reject request bodies that are not JSON objects."""
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def _clean_title(
    data: dict[str, Any],
    errors: list[dict[str, str]],
    cleaned: dict[str, Any],
    *,
    required: bool,
    max_length: int,
    field: str = "title",
) -> None:
    if field not in data:
        if required:
            errors.append(field_error(field, f"'{field}' is required"))
        return
    value = data[field]
    if not isinstance(value, str) or not value.strip():
        errors.append(field_error(field, f"'{field}' must be a non-empty string"))
    elif len(value.strip()) > max_length:
        errors.append(field_error(field, f"'{field}' must be {max_length} characters or less"))
    else:
        cleaned[field] = value.strip()


def clean_todo_fields(
    data: Any,
    *,
    creating: bool,
    max_title_length: int,
) -> dict[str, Any]:
    """
    Validate a todo create/update body.

    Args:
        data: Decoded JSON body.
        creating: When ``True`` the title is required.
        max_title_length: Upper bound for the title.

    Returns:
        The cleaned fields present in ``data``.

    Raises:
        ValidationError: With one detail entry per invalid field.
    """
    data = require_body(data)
    errors: list[dict[str, str]] = []
    cleaned: dict[str, Any] = {}

    _clean_title(data, errors, cleaned, required=creating, max_length=max_title_length)

    if "description" in data:
        value = data["description"]
        if value is not None and not isinstance(value, str):
            errors.append(field_error("description", "'description' must be a string"))
        else:
            cleaned["description"] = value

    if "status" in data:
        if data["status"] not in _VALID_STATUSES:
            errors.append(
                field_error("status", f"Invalid status. Must be one of: {_VALID_STATUSES}")
            )
        else:
            cleaned["status"] = data["status"]

    if "priority" in data and data["priority"] is not None:
        if data["priority"] not in _VALID_PRIORITIES:
            errors.append(
                field_error("priority", f"Invalid priority. Must be one of: {_VALID_PRIORITIES}")
            )
        else:
            cleaned["priority"] = data["priority"]

    if "due_date" in data:
        try:
            cleaned["due_date"] = parse_due_date(data["due_date"])
        except (ValueError, AttributeError, TypeError):
            errors.append(
                field_error(
                    "due_date", "Invalid due_date format. Use ISO format (YYYY-MM-DDTHH:MM:SS)"
                )
            )

    if "category_ids" in data:
        value = data["category_ids"]
        if value is None:
            cleaned["category_ids"] = []
        elif not isinstance(value, list) or not all(isinstance(item, str) for item in value):
            errors.append(
                field_error("category_ids", "'category_ids' must be a list of identifiers")
            )
        else:
            # Keep first-seen order, drop duplicates.
            cleaned["category_ids"] = list(dict.fromkeys(value))

    if "team_id" in data:
        value = data["team_id"]
        if value is not None and (
            not isinstance(value, int) or isinstance(value, bool) or value <= 0
        ):
            errors.append(field_error("team_id", "'team_id' must be a positive integer"))
        else:
            cleaned["team_id"] = value

    if errors:
        raise ValidationError("Validation failed", errors)
    return cleaned


def clean_subtask_fields(
    data: Any,
    *,
    creating: bool,
    max_title_length: int,
) -> dict[str, Any]:
    """Validate a subtask create/update body (``title``, ``completed``, ``order``)."""
    data = require_body(data)
    errors: list[dict[str, str]] = []
    cleaned: dict[str, Any] = {}

    _clean_title(data, errors, cleaned, required=creating, max_length=max_title_length)

    if "completed" in data:
        if not isinstance(data["completed"], bool):
            errors.append(field_error("completed", "'completed' must be a boolean"))
        else:
            cleaned["completed"] = data["completed"]

    if "order" in data:
        value = data["order"]
        if not isinstance(value, int) or isinstance(value, bool) or value < 0:
            errors.append(field_error("order", "'order' must be a non-negative integer"))
        else:
            cleaned["order"] = value

    if errors:
        raise ValidationError("Validation failed", errors)
    return cleaned


def clean_comment_fields(data: Any) -> dict[str, Any]:
    """Validate a comment body; ``content`` is always required."""
    data = require_body(data)
    content = data.get("content")
    if not isinstance(content, str) or not content.strip():
        raise ValidationError(
            "Validation failed", [field_error("content", "Comment content is required")]
        )
    if len(content) > COMMENT_MAX_LENGTH:
        raise ValidationError(
            "Validation failed",
            [field_error("content", f"'content' must be {COMMENT_MAX_LENGTH} characters or less")],
        )
    return {"content": content.strip()}


def clean_category_fields(data: Any, *, creating: bool) -> dict[str, Any]:
    """Validate a category body (``name`` 1-50 characters, ``#RRGGBB`` ``color``)."""
    data = require_body(data)
    errors: list[dict[str, str]] = []
    cleaned: dict[str, Any] = {}

    _clean_title(
        data,
        errors,
        cleaned,
        required=creating,
        max_length=CATEGORY_NAME_MAX_LENGTH,
        field="name",
    )

    if "color" in data and data["color"] is not None:
        value = data["color"]
        if not isinstance(value, str) or not COLOR_PATTERN.match(value):
            errors.append(field_error("color", "'color' must be a hex colour like #3B82F6"))
        else:
            cleaned["color"] = value.upper()

    if errors:
        raise ValidationError("Validation failed", errors)
    return cleaned


def clean_team_fields(data: Any) -> dict[str, Any]:
    """Validate a team create body (``name`` required, optional ``description``)."""
    data = require_body(data)
    errors: list[dict[str, str]] = []
    cleaned: dict[str, Any] = {}

    _clean_title(
        data, errors, cleaned, required=True, max_length=TEAM_NAME_MAX_LENGTH, field="name"
    )
    if "description" in data:
        value = data["description"]
        if value is not None and not isinstance(value, str):
            errors.append(field_error("description", "'description' must be a string"))
        else:
            cleaned["description"] = value

    if errors:
        raise ValidationError("Validation failed", errors)
    return cleaned
