"""
JWT Verification Helpers.

Tokens are issued elsewhere; this application only verifies them with the
issuer's RS256 public key.  ``require_auth`` protects REST endpoints and
``authenticate_token`` backs the realtime handshake.
"""

from __future__ import annotations

from collections.abc import Callable
from functools import wraps
from typing import Any

import jwt
from flask import Response, current_app, g, request

from .errors import AuthError

DEFAULT_ALLOWED_ALGORITHMS = ["RS256"]
REQUIRED_TOKEN_CLAIMS = ["user_id", "username", "iat", "exp"]


def verify_token(
    token: str,
    public_key: str,
    algorithms: list[str] | None = None,
    leeway: int | None = None,
) -> dict[str, Any] | None:
    """
    Decode and validate a JWT, returning the payload on success.

    Performs signature, ``exp`` and ``iat`` checks and requires all of
    ``REQUIRED_TOKEN_CLAIMS``.  ``user_id`` must be a positive integer and
    ``username`` a non-empty string.

    Args:
        token: The encoded JWT string to verify.
        public_key: RSA public key in PEM format.
        algorithms: Acceptable signing algorithms.  Defaults to
            ``["RS256"]`` to prevent algorithm-confusion attacks.
        leeway: Clock skew tolerance in seconds; read from
            ``JWT_CLOCK_SKEW_SECONDS`` when omitted.

    Returns:
        The decoded payload, or ``None`` if verification fails.
    """
    if leeway is None:
        leeway = int(current_app.config.get("JWT_CLOCK_SKEW_SECONDS", 30))
    try:
        decoded = jwt.decode(
            token,
            public_key,
            algorithms=algorithms or DEFAULT_ALLOWED_ALGORITHMS,
            options={"require": REQUIRED_TOKEN_CLAIMS},
            leeway=leeway,
        )
    except jwt.InvalidTokenError:
        return None

    user_id = decoded.get("user_id")
    username = decoded.get("username")

    if not isinstance(user_id, int) or isinstance(user_id, bool) or user_id <= 0:
        return None
    if not isinstance(username, str) or not username.strip():
        return None
    return decoded


def bearer_token(header_value: str | None) -> str | None:
    """Extract the token from an ``Authorization: Bearer <token>`` value."""
    if not header_value or not header_value.startswith("Bearer "):
        return None
    token = header_value[7:].strip()
    return token or None


def authenticate_token(token: str | None) -> dict[str, Any]:
    """
    Verify a credential token against the configured public key.

    Must be called inside an application context.

    Raises:
        AuthError: If the token is missing, invalid or expired.
    """
    if not token:
        raise AuthError("Missing or invalid Authorization header")
    payload = verify_token(
        token,
        current_app.config["JWT_PUBLIC_KEY"],
        algorithms=DEFAULT_ALLOWED_ALGORITHMS,
    )
    if payload is None:
        raise AuthError("Invalid or expired token")
    return payload


def require_auth(view_func: Callable[..., tuple[Response, int] | Response]):
    """
    Decorator enforcing Bearer-token authentication on API endpoints.

    On success stores ``g.user_id`` and ``g.username`` for the handler.  On
    failure raises ``AuthError``, which the application error handler turns
    into a 401 envelope.
    """

    @wraps(view_func)
    def wrapper(*args, **kwargs):
        payload = authenticate_token(bearer_token(request.headers.get("Authorization")))
        g.user_id = payload["user_id"]
        g.username = payload["username"]
        return view_func(*args, **kwargs)

    return wrapper
