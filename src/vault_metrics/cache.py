"""Short-lived in-process response cache."""

from __future__ import annotations

import time
from typing import Callable, Generic, Hashable, TypeVar

V = TypeVar("V")


class TTLCache(Generic[V]):
    """Map whose entries expire ``ttl`` seconds after being written.

    Entries are never invalidated early; a key is only written again once
    its previous value has expired. Expired entries of every key are dropped
    on each write.
    """

    def __init__(self, ttl: float, clock: Callable[[], float] = time.monotonic):
        self._ttl = ttl
        self._clock = clock
        self._entries: dict[Hashable, tuple[float, V]] = {}

    def get(self, key: Hashable) -> V | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        return value

    def set(self, key: Hashable, value: V) -> V:
        """Store ``value`` unless a live entry exists; return the cached value."""
        current = self.get(key)
        if current is not None:
            return current
        self._prune()
        if self._ttl > 0:
            self._entries[key] = (self._clock() + self._ttl, value)
        return value

    def _prune(self) -> None:
        now = self._clock()
        expired = [k for k, (expires_at, _) in self._entries.items() if now >= expires_at]
        for k in expired:
            del self._entries[k]

    def __contains__(self, key: Hashable) -> bool:
        return self.get(key) is not None

    def __len__(self) -> int:
        now = self._clock()
        return sum(1 for expires_at, _ in self._entries.values() if now < expires_at)

    def clear(self) -> None:
        self._entries.clear()
