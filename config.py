"""
Configuration Classes for the Todo Sync application.

Centralises all environment-dependent settings (database URIs, JWT keys,
realtime transport options) into a hierarchy of configuration classes. The
base ``Config`` class defines development defaults, while subclasses
override only what differs per environment.

``ClientConfig`` carries the settings used by the Python client side
(REST base URL, Socket.IO URL, timeouts and the reconnect policy).
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent


def _load_key(raw_env_var: str, path_env_var: str) -> str:
    """Load a PEM key from direct env content or from a path env variable."""
    raw_key = os.environ.get(raw_env_var, "").strip()
    if raw_key:
        return raw_key

    key_path = os.environ.get(path_env_var, "").strip()
    if key_path:
        try:
            return Path(key_path).read_text(encoding="utf-8")
        except OSError as exc:
            raise RuntimeError(
                f"Unable to read JWT key file at '{key_path}' from {path_env_var}."
            ) from exc

    raise RuntimeError(
        f"Missing JWT key configuration: set {raw_env_var} or {path_env_var}."
    )


def _has_key_source(raw_env_var: str, path_env_var: str) -> bool:
    """Return True when at least one key source variable is configured."""
    return bool(
        os.environ.get(raw_env_var, "").strip()
        or os.environ.get(path_env_var, "").strip()
    )


def load_public_key(*, testing: bool) -> str:
    """Resolve the JWT public key for the selected environment."""
    if testing and _has_key_source("TEST_JWT_PUBLIC_KEY", "TEST_JWT_PUBLIC_KEY_PATH"):
        return _load_key("TEST_JWT_PUBLIC_KEY", "TEST_JWT_PUBLIC_KEY_PATH")
    return _load_key("JWT_PUBLIC_KEY", "JWT_PUBLIC_KEY_PATH")


class Config:
    """
    Base configuration with development-safe defaults.

    Attributes:
        SECRET_KEY: Flask session signing key.
        SQLALCHEMY_TRACK_MODIFICATIONS: Disabled to save memory.
        SQLALCHEMY_DATABASE_URI: Database connection string (default: local
            SQLite file).
        JWT_CLOCK_SKEW_SECONDS: Allowed clock drift (in seconds) when
            validating JWT ``exp`` / ``iat`` claims.
        TODO_TITLE_MAX_LENGTH: Upper bound for todo and subtask titles.
        TODOS_PAGE_SIZE: Default page size for the todo listing.
        TODOS_MAX_PAGE_SIZE: Largest page size a client may request.
        SOCKETIO_CORS_ORIGINS: Origins allowed to open a realtime connection.
    """

    SECRET_KEY: str = os.environ.get(
        "SECRET_KEY", "todo-sync-dev-secret-change-in-production"
    )
    SQLALCHEMY_TRACK_MODIFICATIONS: bool = False
    SQLALCHEMY_DATABASE_URI: str = os.environ.get(
        "DATABASE_URL",
        f"sqlite:///{BASE_DIR / 'instance' / 'todos.db'}",
    )

    # Tolerate minor clock differences with the token issuer.
    JWT_CLOCK_SKEW_SECONDS: int = int(os.environ.get("JWT_CLOCK_SKEW_SECONDS", "30"))

    TODO_TITLE_MAX_LENGTH: int = int(os.environ.get("TODO_TITLE_MAX_LENGTH", "200"))
    TODOS_PAGE_SIZE: int = int(os.environ.get("TODOS_PAGE_SIZE", "10"))
    TODOS_MAX_PAGE_SIZE: int = int(os.environ.get("TODOS_MAX_PAGE_SIZE", "100"))

    SOCKETIO_CORS_ORIGINS: list[str] = [
        origin.strip()
        for origin in os.environ.get(
            "SOCKETIO_CORS_ORIGINS", "http://localhost:3000"
        ).split(",")
        if origin.strip()
    ]


class DevelopmentConfig(Config):
    """Development environment configuration."""

    DEBUG: bool = True
    TESTING: bool = False


class TestingConfig(Config):
    """
    Testing environment configuration.

    Uses an in-memory SQLite database shared across threads so tests never
    touch development data.
    """

    DEBUG: bool = True
    TESTING: bool = True
    SQLALCHEMY_DATABASE_URI: str = os.environ.get(
        "TEST_DATABASE_URL",
        "sqlite:///:memory:",
    )
    SQLALCHEMY_ENGINE_OPTIONS: dict = {
        "connect_args": {"check_same_thread": False},
    }


class ProductionConfig(Config):
    """
    Production environment configuration.

    All secrets and URIs should be supplied through environment variables.
    """

    DEBUG: bool = False
    TESTING: bool = False


config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}


def get_config(env: str | None = None) -> type[Config]:
    """
    Look up and return the configuration class for the given environment.

    Args:
        env: Environment name (``"development"``, ``"testing"``,
            ``"production"``).  When ``None``, falls back to the
            ``FLASK_ENV`` environment variable, defaulting to
            ``"development"``.

    Returns:
        The configuration class (not an instance) for the environment.
    """
    if env is None:
        env = os.environ.get("FLASK_ENV", "development")
    return config.get(env, config["default"])


@dataclass(frozen=True)
class ClientConfig:
    """
    Settings for the Python client (REST + realtime connection).

    Attributes:
        api_url: Base URL of the REST API, including the ``/api`` prefix.
        socket_url: URL of the Socket.IO endpoint.
        request_timeout: Seconds before a REST request is abandoned.
        handshake_timeout: Seconds to wait for the realtime handshake.
        reconnect_base_delay: First reconnect delay; doubles per attempt.
        reconnect_max_delay: Ceiling for a single reconnect delay.
        reconnect_max_attempts: Attempts before realtime sync is degraded.
    """

    api_url: str = "http://localhost:5000/api"
    socket_url: str = "http://localhost:5000"
    request_timeout: float = 10.0
    handshake_timeout: float = 10.0
    reconnect_base_delay: float = 1.0
    reconnect_max_delay: float = 30.0
    reconnect_max_attempts: int = 5

    @classmethod
    def from_env(cls) -> ClientConfig:
        """Build a client configuration from environment variables."""
        return cls(
            api_url=os.environ.get("TODO_API_URL", cls.api_url),
            socket_url=os.environ.get("TODO_SOCKET_URL", cls.socket_url),
            request_timeout=float(
                os.environ.get("REQUEST_TIMEOUT_SECONDS", cls.request_timeout)
            ),
            handshake_timeout=float(
                os.environ.get("HANDSHAKE_TIMEOUT_SECONDS", cls.handshake_timeout)
            ),
            reconnect_base_delay=float(
                os.environ.get("RECONNECT_BASE_DELAY_SECONDS", cls.reconnect_base_delay)
            ),
            reconnect_max_delay=float(
                os.environ.get("RECONNECT_MAX_DELAY_SECONDS", cls.reconnect_max_delay)
            ),
            reconnect_max_attempts=int(
                os.environ.get("RECONNECT_MAX_ATTEMPTS", cls.reconnect_max_attempts)
            ),
        )
