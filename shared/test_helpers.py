"""Test helpers shared by the server and client test suites."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import jwt
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa


DEFAULT_TEST_USER_ID = 42
DEFAULT_TEST_USERNAME = "user_42"


def _generate_rsa_key_pair() -> tuple[str, str]:
    """Generate an in-memory RSA private/public key pair as PEM strings."""
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("utf-8")
    public_pem = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode("utf-8")
    return private_pem, public_pem


# Stable for one Python process: generated once on import, reused everywhere in tests.
TEST_PRIVATE_KEY, TEST_PUBLIC_KEY = _generate_rsa_key_pair()


def generate_throwaway_key_pair() -> tuple[str, str]:
    """Generate a fresh RSA key pair for negative-path tests."""
    return _generate_rsa_key_pair()


def create_test_token(
    user_id: int = DEFAULT_TEST_USER_ID,
    username: str | None = None,
    private_key: str = TEST_PRIVATE_KEY,
    expired: bool = False,
) -> str:
    """Create a signed RS256 token carrying the claims the service requires."""
    now = datetime.now(timezone.utc)
    expiry_time = now - timedelta(hours=1) if expired else now + timedelta(hours=1)

    payload: dict[str, Any] = {
        "user_id": int(user_id),
        "username": username or f"user_{user_id}",
        "iat": int(now.timestamp()),
        "exp": int(expiry_time.timestamp()),
    }
    return jwt.encode(payload, private_key, algorithm="RS256")


def auth_headers(token: str, socket_id: str | None = None) -> dict[str, str]:
    """Build JSON API headers with bearer auth and, optionally, the realtime session id."""
    headers = {
        "Authorization": f"Bearer {token}",
        "Content-Type": "application/json",
        "Accept": "application/json",
    }
    if socket_id:
        headers["X-Socket-Id"] = socket_id
    return headers


class RecordingSink:
    """
    Stand-in for a realtime connection: records every ``(name, payload)``
    the registry delivers to it.
    """

    def __init__(self) -> None:
        self.messages: list[tuple[str, Any]] = []

    def __call__(self, name: str, payload: Any) -> None:
        self.messages.append((name, payload))

    @property
    def names(self) -> list[str]:
        return [name for name, _ in self.messages]

    def payloads(self, name: str) -> list[Any]:
        return [payload for event_name, payload in self.messages if event_name == name]


class BrokenSink:
    """Delivery target whose transport always fails."""

    def __init__(self) -> None:
        self.calls = 0

    def __call__(self, name: str, payload: Any) -> None:
        self.calls += 1
        raise ConnectionResetError("socket closed")
