"""Total value locked series from settlement and update events."""

from __future__ import annotations

import time
from typing import Iterable, Sequence

from ..constants import MAX_TIMESTAMP, SECONDS_PER_YEAR, SUPPORTED_DECIMALS, EventType
from ..domain import RawEvent, TimeFilter, TvlPoint
from ..logger import get_logger
from ..store import EventQuery, EventStore
from ..units import format_units
from ..vaults import UnsupportedDecimalsError, VaultConfig

logger = get_logger(__name__)

# Highest priority first: settlements reflect the state after the transaction,
# bare updates are provisional.
TVL_PRIORITY: tuple[EventType, ...] = (
    EventType.SETTLE_REDEEM,
    EventType.SETTLE_DEPOSIT,
    EventType.TOTAL_ASSETS_UPDATED,
)
_RANK = {event_type.value: len(TVL_PRIORITY) - i for i, event_type in enumerate(TVL_PRIORITY)}


def is_valid_timestamp(timestamp: int | None, now: int) -> bool:
    """Positive, below the 32-bit ceiling and at most a year ahead of ``now``."""
    return (
        timestamp is not None
        and 0 < timestamp < MAX_TIMESTAMP
        and timestamp < now + SECONDS_PER_YEAR
    )


def _winning_events(events: Iterable[RawEvent], now: int) -> dict[int, RawEvent]:
    winners: dict[int, RawEvent] = {}
    for event in events:
        if event.type not in _RANK or not event.total_assets:
            continue
        if not is_valid_timestamp(event.block_timestamp, now):
            logger.warning(
                "Skipping %s event %s with invalid timestamp %s",
                event.type,
                event.id,
                event.block_timestamp,
            )
            continue
        assert event.block_timestamp is not None
        current = winners.get(event.block_timestamp)
        # Same-priority ties go to the larger id so input order never matters.
        if current is None or (_RANK[event.type], event.id) > (
            _RANK[current.type],
            current.id,
        ):
            winners[event.block_timestamp] = event
    return winners


def aggregate_tvl(
    events: Iterable[RawEvent],
    decimals: int,
    *,
    time_filter: TimeFilter = TimeFilter.ALL,
    now: int | None = None,
) -> list[TvlPoint]:
    """One TVL point per distinct block timestamp, oldest first.

    Args:
        events: Events of any type; only TVL-bearing types are considered
        decimals: Native decimals of the vault's underlying token
        time_filter: Window relative to ``now``
        now: Current unix time, defaults to the wall clock

    Returns:
        Points whose ``total_assets`` is the exact decimal rendering of the
        highest-priority event at each timestamp
    """
    now = int(time.time()) if now is None else now
    start = time_filter.start_timestamp(now)

    points: list[TvlPoint] = []
    for timestamp, event in sorted(_winning_events(events, now).items()):
        if timestamp < start:
            continue
        try:
            total_assets = format_units(event.total_assets or "0", decimals)
        except ValueError:
            logger.warning(
                "Skipping %s event %s with malformed totalAssets %r",
                event.type,
                event.id,
                event.total_assets,
            )
            continue
        points.append(
            TvlPoint(
                block_timestamp=timestamp,
                total_assets=total_assets,
                event_type=event.type,
            )
        )
    return points


def latest_tvl(points: Sequence[TvlPoint]) -> TvlPoint | None:
    return max(points, key=lambda p: p.block_timestamp, default=None)


class TvlAggregator:
    """Read TVL-bearing events from the store and aggregate them."""

    def __init__(self, store: EventStore):
        self._store = store

    async def aggregate(
        self,
        vault: VaultConfig,
        *,
        time_filter: TimeFilter = TimeFilter.ALL,
        now: int | None = None,
        limit: int | None = None,
    ) -> list[TvlPoint]:
        """TVL series of ``vault``, oldest first.

        Raises:
            UnsupportedDecimalsError: If the vault is neither 6 nor 18 decimals
            UpstreamUnavailableError: If the event store fails
        """
        decimals = vault.underlying_token_decimals
        if decimals not in SUPPORTED_DECIMALS:
            raise UnsupportedDecimalsError(vault.id, decimals)

        now = int(time.time()) if now is None else now
        start = time_filter.start_timestamp(now)
        events = await self._store.find(
            vault.id,
            EventQuery(
                types=TVL_PRIORITY,
                since=start or None,
                limit=limit,
            ),
        )
        logger.debug("Found %d TVL events for vault %s", len(events), vault.id)
        return aggregate_tvl(events, decimals, time_filter=time_filter, now=now)

    async def latest(
        self, vault: VaultConfig, *, now: int | None = None, limit: int | None = None
    ) -> TvlPoint | None:
        return latest_tvl(await self.aggregate(vault, now=now, limit=limit))
