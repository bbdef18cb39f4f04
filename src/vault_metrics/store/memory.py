"""In-process event store over raw indexer documents."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Iterable, Mapping

from ..domain import RawEvent
from .base import EventQuery, EventStore


def _matches(event: RawEvent, query: EventQuery) -> bool:
    if query.types and event.type not in {t.value for t in query.types}:
        return False
    if query.require_timestamp and event.block_timestamp is None:
        return False
    if query.since is not None and (
        event.block_timestamp is None or event.block_timestamp < query.since
    ):
        return False
    if query.controller is not None and event.controller != query.controller.lower():
        return False
    if query.transaction_hash is not None:
        return event.transaction_hash == query.transaction_hash or event.id.startswith(
            query.transaction_hash
        )
    return True


class InMemoryEventStore(EventStore):
    """Event store holding documents in memory, keyed by vault id.

    Mirrors the filtering and ordering of :class:`MongoEventStore`; events
    without a timestamp sort as oldest.
    """

    def __init__(self, documents: Mapping[str, Iterable[Mapping[str, Any]]] | None = None):
        self._events: dict[str, list[RawEvent]] = {}
        for vault_id, docs in (documents or {}).items():
            self.add(vault_id, docs)

    @classmethod
    def from_json(cls, path: Path) -> InMemoryEventStore:
        """Load ``{"<vault id>": [<document>, ...]}`` from a JSON export."""
        with path.open() as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"Expected an object keyed by vault id in {path}")
        return cls(data)

    def add(self, vault_id: str, documents: Iterable[Mapping[str, Any]]) -> None:
        self._events.setdefault(vault_id, []).extend(
            RawEvent.from_document(doc) for doc in documents
        )

    async def find(self, vault_id: str, query: EventQuery) -> list[RawEvent]:
        matched = [e for e in self._events.get(vault_id, []) if _matches(e, query)]
        matched.sort(
            key=lambda e: (e.block_timestamp if e.block_timestamp is not None else -1, e.id),
            reverse=query.newest_first,
        )
        if query.limit is not None:
            matched = matched[: query.limit]
        return matched
