"""Realtime state propagation: events, rooms, the channel registry and the Socket.IO bridge."""

from flask import current_app

from .events import ChangeEvent, EntityKind, EventKind, PresenceEvent
from .registry import ChannelRegistry, Session, SessionState

REGISTRY_EXTENSION = "channel_registry"


def current_registry() -> ChannelRegistry:
    """Return the registry owned by the running application."""
    return current_app.extensions[REGISTRY_EXTENSION]


__all__ = [
    "REGISTRY_EXTENSION",
    "ChangeEvent",
    "ChannelRegistry",
    "EntityKind",
    "EventKind",
    "PresenceEvent",
    "Session",
    "SessionState",
    "current_registry",
]
