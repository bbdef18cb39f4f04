from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, replace

from ..constants import EventType
from ..domain import RawEvent


class UpstreamUnavailableError(Exception):
    """Raised when the event store cannot answer a query.

    The core never retries; callers decide whether to.
    """

    def __init__(self, message: str, retry_recommended: bool = True):
        super().__init__(message)
        self.retry_recommended = retry_recommended


@dataclass(frozen=True)
class EventQuery:
    """Filter and ordering for one event store lookup.

    ``transaction_hash`` matches events whose ``transactionHash`` equals the
    hash or whose ``id`` starts with it.
    """

    types: tuple[EventType, ...] = ()
    transaction_hash: str | None = None
    controller: str | None = None
    since: int | None = None
    require_timestamp: bool = True
    newest_first: bool = True
    limit: int | None = None


class EventStore(ABC):
    """Read-only access to the per-vault event collections."""

    @abstractmethod
    async def find(self, vault_id: str, query: EventQuery) -> list[RawEvent]:
        """Return the events of ``vault_id`` matching ``query``."""
        ...

    async def find_one(self, vault_id: str, query: EventQuery) -> RawEvent | None:
        events = await self.find(vault_id, replace(query, limit=1))
        return events[0] if events else None

    async def close(self) -> None:
        """Release connections held by the store."""
        return None
