"""MongoDB-backed event store.

The indexer writes one database per vault id, each holding a ``subgraph``
collection of event documents. This store only ever reads from it.
"""

from __future__ import annotations

import asyncio
import re
from typing import Any

from pymongo import ASCENDING, DESCENDING, AsyncMongoClient
from pymongo.errors import PyMongoError

from ..domain import RawEvent
from ..logger import get_logger
from ..settings import MetricsSettings
from .base import EventQuery, EventStore, UpstreamUnavailableError

logger = get_logger(__name__)


def build_filter(query: EventQuery) -> dict[str, Any]:
    """Translate an :class:`EventQuery` into a MongoDB filter document."""
    mongo_filter: dict[str, Any] = {}

    if len(query.types) == 1:
        mongo_filter["type"] = query.types[0].value
    elif query.types:
        mongo_filter["type"] = {"$in": [t.value for t in query.types]}

    if query.require_timestamp or query.since is not None:
        timestamp_filter: dict[str, Any] = {}
        if query.require_timestamp:
            timestamp_filter.update({"$exists": True, "$ne": None})
        if query.since is not None:
            timestamp_filter["$gte"] = query.since
        mongo_filter["blockTimestamp"] = timestamp_filter

    if query.controller is not None:
        mongo_filter["controller"] = query.controller.lower()

    if query.transaction_hash is not None:
        mongo_filter["$or"] = [
            {"transactionHash": query.transaction_hash},
            {"id": {"$regex": f"^{re.escape(query.transaction_hash)}"}},
        ]

    return mongo_filter


def build_sort(query: EventQuery) -> list[tuple[str, int]]:
    direction = DESCENDING if query.newest_first else ASCENDING
    return [("blockTimestamp", direction), ("id", direction)]


class MongoEventStore(EventStore):
    """Event store reading the indexer's per-vault MongoDB databases."""

    def __init__(
        self,
        client: Any,
        *,
        collection_name: str = "subgraph",
        timeout_seconds: float = 10.0,
    ):
        self._client = client
        self._collection_name = collection_name
        self._timeout_seconds = timeout_seconds

    @classmethod
    def from_settings(cls, settings: MetricsSettings) -> MongoEventStore:
        client: AsyncMongoClient = AsyncMongoClient(
            settings.mongo_uri_required,
            serverSelectionTimeoutMS=int(settings.query_timeout_seconds * 1000),
        )
        return cls(
            client,
            collection_name=settings.mongo_collection,
            timeout_seconds=settings.query_timeout_seconds,
        )

    async def find(self, vault_id: str, query: EventQuery) -> list[RawEvent]:
        collection = self._client[vault_id][self._collection_name]
        mongo_filter = build_filter(query)

        cursor = collection.find(mongo_filter).sort(build_sort(query))
        if query.limit is not None:
            cursor = cursor.limit(query.limit)

        try:
            async with asyncio.timeout(self._timeout_seconds):
                documents = await cursor.to_list(None)
        except TimeoutError as exc:
            logger.error(
                "Event query timed out after %.1fs — vault=%s filter=%s",
                self._timeout_seconds,
                vault_id,
                mongo_filter,
            )
            raise UpstreamUnavailableError(
                f"Event store query timed out after {self._timeout_seconds}s (vault={vault_id})"
            ) from exc
        except PyMongoError as exc:
            logger.error("Event query failed — vault=%s error=%s", vault_id, exc)
            raise UpstreamUnavailableError(
                f"Event store unavailable (vault={vault_id}): {exc}"
            ) from exc

        logger.debug(
            "Event query — vault=%s filter=%s found=%d",
            vault_id,
            mongo_filter,
            len(documents),
        )
        return [RawEvent.from_document(doc) for doc in documents]

    async def close(self) -> None:
        await self._client.close()
