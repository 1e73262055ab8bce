"""
Error taxonomy shared by the server and the Python client.

Every failure the application reports is an ``AppError`` subclass carrying
the HTTP status it maps to, a human-readable message, and optional
per-field details.  The REST layer renders them into the failure envelope
``{"success": false, "error": ..., "details": [...]}``; the client maps the
envelope back into the same classes.
"""

from __future__ import annotations

from typing import Any


def field_error(field: str, message: str) -> dict[str, str]:
    """Build one per-field validation detail entry."""
    return {"field": field, "message": message}


class AppError(Exception):
    """
    Base class for all application errors.

    Attributes:
        status_code: HTTP status the error is reported with.
        message: Client-safe description of the failure.
        details: Optional list of per-field detail dictionaries.
    """

    status_code: int = 500
    default_message: str = "Internal server error"

    def __init__(
        self,
        message: str | None = None,
        details: list[dict[str, Any]] | None = None,
    ) -> None:
        self.message = message or self.default_message
        self.details = details or []
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Render the failure envelope body."""
        body: dict[str, Any] = {"success": False, "error": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(AppError):
    """Malformed or missing input fields."""

    status_code = 400
    default_message = "Validation failed"


class AuthError(AppError):
    """Missing, invalid or expired credential."""

    status_code = 401
    default_message = "Authentication required"


class NotFoundError(AppError):
    """Entity missing, or not owned by the caller."""

    status_code = 404
    default_message = "Resource not found"


class UnexpectedError(AppError):
    """Anything else; the message never carries internal detail."""

    status_code = 500
    default_message = "Internal server error"


class ApiConnectionError(AppError):
    """The REST request could not complete (transport failure or timeout)."""

    status_code = 503
    default_message = "API unreachable"


class RealtimeConnectionError(AppError):
    """The realtime transport failed; retried with backoff by the client."""

    status_code = 503
    default_message = "Realtime connection failed"


_ERRORS_BY_STATUS: dict[int, type[AppError]] = {
    400: ValidationError,
    401: AuthError,
    404: NotFoundError,
}


def error_from_response(status_code: int, body: Any) -> AppError:
    """
    Rebuild an ``AppError`` from a failure response.

    Args:
        status_code: HTTP status of the response.
        body: Decoded JSON body, or anything else when decoding failed.

    Returns:
        The error instance matching the status code; unknown statuses map
        to ``UnexpectedError``.
    """
    error_cls = _ERRORS_BY_STATUS.get(status_code, UnexpectedError)
    if isinstance(body, dict):
        return error_cls(body.get("error"), body.get("details"))
    return error_cls()
