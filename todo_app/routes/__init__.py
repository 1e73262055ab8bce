"""
Routes package for the Todo Sync application.

Contains the ``api`` blueprint (JSON REST endpoints) and the application
level error handlers that turn every failure into the JSON envelope
``{"success": false, "error": ..., "details"?: [...]}``.
"""

from __future__ import annotations

import logging
from typing import Any

from flask import Flask, Response, jsonify
from werkzeug.exceptions import HTTPException

from ..errors import AppError, UnexpectedError

logger = logging.getLogger(__name__)


def success(data: Any, status: int = 200, message: str | None = None) -> tuple[Response, int]:
    """Wrap ``data`` in the success envelope."""
    body: dict[str, Any] = {"success": True, "data": data}
    if message:
        body["message"] = message
    return jsonify(body), status


def register_error_handlers(app: Flask) -> None:
    """Attach JSON error handlers for application and HTTP errors."""

    @app.errorhandler(AppError)
    def handle_app_error(error: AppError) -> tuple[Response, int]:
        if isinstance(error, UnexpectedError):
            logger.error("Unexpected error: %s", error.message)
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(error: HTTPException) -> tuple[Response, int]:
        status = error.code or 500
        messages = {
            400: "Bad request",
            404: "Resource not found",
            405: "Method not allowed",
        }
        return (
            jsonify({"success": False, "error": messages.get(status, error.name)}),
            status,
        )

    @app.errorhandler(Exception)
    def handle_unexpected(error: Exception) -> tuple[Response, int]:
        logger.exception("Internal server error: %s", error)
        return jsonify(UnexpectedError().to_dict()), 500
