from __future__ import annotations

from .base import EventQuery, EventStore, UpstreamUnavailableError
from .memory import InMemoryEventStore
from .mongo import MongoEventStore

__all__ = [
    "EventQuery",
    "EventStore",
    "InMemoryEventStore",
    "MongoEventStore",
    "UpstreamUnavailableError",
]
