"""Price-per-share reconstruction from settlement events.

Every ``totalAssetsUpdated`` event is correlated with the other events of its
transaction. The first resolver in ``DEFAULT_RESOLVERS`` that recognises one
of those related events yields the PPS, scaled to 18 decimals whatever the
underlying token's decimals are.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from decimal import ROUND_FLOOR, Decimal, InvalidOperation, localcontext
from typing import Callable, Optional, Sequence

from ..constants import SUPPORTED_DECIMALS, TX_HASH_PATTERN, WAD, EventType
from ..domain import PpsPoint, RawEvent
from ..logger import get_logger
from ..store import EventQuery, EventStore
from ..units import scale_to_18
from ..vaults import UnsupportedDecimalsError, VaultConfig

logger = get_logger(__name__)


@dataclass(frozen=True)
class ResolvedPps:
    pps_raw: int
    source: str
    fallback: bool = False


PpsResolver = Callable[[Sequence[RawEvent], int], Optional[ResolvedPps]]


def resolve_transaction_hash(event: RawEvent) -> str | None:
    """Transaction hash of ``event``: the explicit field, else the ``id`` prefix."""
    if event.transaction_hash:
        return event.transaction_hash
    match = TX_HASH_PATTERN.match(event.id)
    return match.group(1) if match else None


def _first_of_type(events: Sequence[RawEvent], event_type: EventType) -> RawEvent | None:
    return next((e for e in events if e.type == event_type.value), None)


def settlement_pps(total_assets: str, total_supply: str, decimals: int) -> int:
    """``totalAssets * 10**(18 - decimals) * 1e18 // totalSupply`` in integers."""
    normalized_assets = scale_to_18(int(total_assets), decimals)
    return normalized_assets * WAD // int(total_supply)


def high_water_mark_pps(new_high_water_mark: str, decimals: int) -> int:
    """``floor(newHighWaterMark / 10**decimals * 1e18)``."""
    try:
        return int(new_high_water_mark) * WAD // 10**decimals
    except ValueError:
        pass
    with localcontext() as ctx:
        ctx.prec = 80
        value = Decimal(new_high_water_mark) * WAD / Decimal(10) ** decimals
        return int(value.to_integral_value(rounding=ROUND_FLOOR))


def settlement_resolver(event_type: EventType) -> PpsResolver:
    """Resolver using the ``totalAssets/totalSupply`` ratio of a settlement event."""

    def _resolve(related: Sequence[RawEvent], decimals: int) -> ResolvedPps | None:
        event = _first_of_type(related, event_type)
        if event is None or not event.total_assets or not event.total_supply:
            return None
        try:
            pps = settlement_pps(event.total_assets, event.total_supply, decimals)
        except (ArithmeticError, ValueError) as exc:
            logger.warning(
                "PPS ratio failed for %s %s (totalAssets=%s totalSupply=%s): %s — using 1.0",
                event_type.value,
                event.id,
                event.total_assets,
                event.total_supply,
                exc,
            )
            return ResolvedPps(WAD, event_type.value, fallback=True)
        return ResolvedPps(pps, event_type.value)

    return _resolve


def resolve_from_high_water_mark(
    related: Sequence[RawEvent], decimals: int
) -> ResolvedPps | None:
    event = _first_of_type(related, EventType.HIGH_WATER_MARK_UPDATED)
    if event is None or not event.new_high_water_mark:
        return None
    try:
        pps = high_water_mark_pps(event.new_high_water_mark, decimals)
    except (ArithmeticError, InvalidOperation, ValueError) as exc:
        logger.warning(
            "High water mark %r unusable for %s: %s — using 1.0",
            event.new_high_water_mark,
            event.id,
            exc,
        )
        return ResolvedPps(WAD, EventType.HIGH_WATER_MARK_UPDATED.value, fallback=True)
    return ResolvedPps(pps, EventType.HIGH_WATER_MARK_UPDATED.value)


# Evaluated in order; the first match wins.
DEFAULT_RESOLVERS: tuple[PpsResolver, ...] = (
    settlement_resolver(EventType.SETTLE_DEPOSIT),
    settlement_resolver(EventType.SETTLE_REDEEM),
    resolve_from_high_water_mark,
)


def resolve_pps(
    related: Sequence[RawEvent],
    decimals: int,
    resolvers: Sequence[PpsResolver] = DEFAULT_RESOLVERS,
) -> ResolvedPps | None:
    """Run ``resolvers`` in order over the events of one transaction.

    Returns ``None`` when only informational events are present.
    """
    for resolver in resolvers:
        resolved = resolver(related, decimals)
        if resolved is not None:
            return resolved
    return None


class PpsReconstructor:
    """Build a PPS time series for a vault from its event store records."""

    def __init__(
        self,
        store: EventStore,
        *,
        resolvers: Sequence[PpsResolver] = DEFAULT_RESOLVERS,
        max_concurrency: int = 8,
    ):
        self._store = store
        self._resolvers = tuple(resolvers)
        self._max_concurrency = max(1, max_concurrency)

    async def reconstruct(
        self,
        vault: VaultConfig,
        *,
        limit: int | None = None,
        since: int | None = None,
    ) -> list[PpsPoint]:
        """Return PPS points sorted oldest first.

        Args:
            vault: Vault whose events are read
            limit: Only consider the ``limit`` most recent ``totalAssetsUpdated`` events
            since: Only consider events at or after this block timestamp

        Raises:
            UnsupportedDecimalsError: If the vault is neither 6 nor 18 decimals
            UpstreamUnavailableError: If the event store fails
        """
        decimals = vault.underlying_token_decimals
        if decimals not in SUPPORTED_DECIMALS:
            raise UnsupportedDecimalsError(vault.id, decimals)

        events = await self._store.find(
            vault.id,
            EventQuery(
                types=(EventType.TOTAL_ASSETS_UPDATED,),
                since=since,
                limit=limit,
            ),
        )
        logger.debug(
            "Found %d totalAssetsUpdated events for vault %s", len(events), vault.id
        )

        semaphore = asyncio.Semaphore(self._max_concurrency)

        async def _bounded(event: RawEvent) -> PpsPoint | None:
            async with semaphore:
                return await self._point_for(vault.id, event, decimals)

        results = await asyncio.gather(
            *(_bounded(event) for event in events), return_exceptions=True
        )

        # Raised only once every lookup has settled.
        points: list[PpsPoint] = []
        for result in results:
            match result:
                case PpsPoint() as point:
                    points.append(point)
                case BaseException() as e:
                    raise e

        # Completion order of the correlated lookups is irrelevant after this sort.
        points.sort(key=lambda p: (p.block_timestamp, p.transaction_hash))
        return points

    async def _point_for(
        self, vault_id: str, event: RawEvent, decimals: int
    ) -> PpsPoint | None:
        if event.block_timestamp is None:
            return None

        transaction_hash = resolve_transaction_hash(event)
        if transaction_hash is None:
            logger.debug("No transaction hash for event %s, skipping", event.id)
            return None

        related = await self._store.find(
            vault_id,
            EventQuery(
                transaction_hash=transaction_hash,
                require_timestamp=False,
                newest_first=False,
            ),
        )
        resolved = resolve_pps(related, decimals, self._resolvers)
        if resolved is None:
            logger.debug(
                "Transaction %s has no settlement or high water mark event, skipping",
                transaction_hash,
            )
            return None

        return PpsPoint(
            block_timestamp=event.block_timestamp,
            transaction_hash=transaction_hash,
            pps_raw=resolved.pps_raw,
            source=resolved.source,
            fallback=resolved.fallback,
        )
