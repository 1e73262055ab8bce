"""
Python client for the Todo Sync service.

``TodoStore`` is the entry point; it owns a ``TodoApiClient`` (REST), a
``TodoCache`` (local reconciled state) and a ``ConnectionManager``
(realtime session with reconnect backoff).
"""

from .api import TodoApiClient
from .cache import MutationKind, PendingMutation, TodoCache
from .connection import ConnectionManager, ConnectionState
from .store import TodoStore

__all__ = [
    "ConnectionManager",
    "ConnectionState",
    "MutationKind",
    "PendingMutation",
    "TodoApiClient",
    "TodoCache",
    "TodoStore",
]
