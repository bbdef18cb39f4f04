"""Query operations over a vault's event history."""

from __future__ import annotations

import asyncio
import time
from typing import Callable

from .cache import TTLCache
from .constants import EventType
from .domain import (
    AprResult,
    LastRequest,
    PpsPoint,
    Settlement,
    TimeFilter,
    TvlPoint,
    VaultMetrics,
)
from .logger import get_logger
from .processors import (
    PpsReconstructor,
    TvlAggregator,
    calculate_net_apr,
    calculate_period_apr,
    latest_tvl,
)
from .settings import MetricsSettings
from .state import AppState
from .store import EventQuery, EventStore, MongoEventStore
from .vaults import VaultRegistry

logger = get_logger(__name__)


class NoDataError(LookupError):
    """Raised when a vault has no event to derive the requested point from."""

    def __init__(self, vault_id: str, what: str):
        super().__init__(f"No {what} data found for vault {vault_id}")
        self.vault_id = vault_id
        self.what = what


class VaultMetricsService:
    """Entry point for PPS, APR, TVL and per-user lookups of one deployment.

    Every call recomputes its result from the event store, except
    :meth:`get_last_request` which is cached per ``(vault, user)``.
    """

    def __init__(
        self,
        store: EventStore,
        registry: VaultRegistry,
        settings: MetricsSettings,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.registry = registry
        self.settings = settings
        self._clock = clock
        self.pps_reconstructor = PpsReconstructor(
            store, max_concurrency=settings.max_concurrent_queries
        )
        self.tvl_aggregator = TvlAggregator(store)
        self._last_requests: TTLCache[LastRequest] = TTLCache(
            settings.cache_ttl_seconds
        )
        self.bulk_cache: TTLCache[dict[str, VaultMetrics]] = TTLCache(
            settings.bulk_cache_ttl_seconds
        )

    @classmethod
    def from_state(
        cls, state: AppState, store: EventStore | None = None
    ) -> VaultMetricsService:
        """Build a service on the configured vaults, opening MongoDB unless ``store`` is given."""
        if store is None:
            store = MongoEventStore.from_settings(state.settings)
        return cls(store, VaultRegistry.from_configs(state.settings.vaults), state.settings)

    def now(self) -> int:
        return int(self._clock())

    async def close(self) -> None:
        await self.store.close()

    # --- price per share ---

    async def get_pps_series(
        self,
        vault_id: str,
        since_timestamp: int | None = None,
        *,
        time_filter: TimeFilter = TimeFilter.ALL,
        limit: int | None = None,
    ) -> list[PpsPoint]:
        """PPS series of a vault, oldest first.

        ``since_timestamp`` and ``time_filter`` both bound the series from
        below; the later bound applies.
        """
        vault = self.registry.require_supported_decimals(vault_id)
        since = max(since_timestamp or 0, time_filter.start_timestamp(self.now()))
        return await self.pps_reconstructor.reconstruct(vault, limit=limit, since=since or None)

    async def get_latest_pps(self, vault_id: str) -> PpsPoint:
        series = await self.get_pps_series(vault_id)
        if not series:
            raise NoDataError(vault_id, "PPS")
        return series[-1]

    # --- APR ---

    async def get_net_apr(self, vault_id: str) -> AprResult:
        vault = self.registry.require_active(vault_id)
        points = await self.pps_reconstructor.reconstruct(vault)
        logger.debug("Net APR for %s over %d PPS points", vault_id, len(points))
        return calculate_net_apr(points)

    async def get_period_apr(self, vault_id: str, days: int) -> AprResult:
        """7-day or 30-day APR.

        The 30-day figure reads only the most recent ``recent_events_limit``
        events; the 7-day interpolation reads the full history so that its
        bracket is never cut short.

        Raises:
            ValueError: If ``days`` is neither 7 nor 30
        """
        vault = self.registry.require_active(vault_id)
        limit = self.settings.recent_events_limit if days == 30 else None
        points = await self.pps_reconstructor.reconstruct(vault, limit=limit)
        logger.debug("%d-day APR for %s over %d PPS points", days, vault_id, len(points))
        return calculate_period_apr(points, days)

    # --- TVL ---

    async def get_tvl_series(
        self, vault_id: str, time_filter: TimeFilter = TimeFilter.ALL
    ) -> list[TvlPoint]:
        vault = self.registry.require_supported_decimals(vault_id)
        return await self.tvl_aggregator.aggregate(vault, time_filter=time_filter, now=self.now())

    async def get_latest_tvl(self, vault_id: str) -> TvlPoint:
        point = latest_tvl(await self.get_tvl_series(vault_id))
        if point is None:
            raise NoDataError(vault_id, "TVL")
        return point

    # --- operations ---

    async def get_settlements(
        self, vault_id: str, time_filter: TimeFilter = TimeFilter.ALL
    ) -> list[Settlement]:
        """Settlement events of a vault, newest first."""
        self.registry.get_vault_config(vault_id)
        since = time_filter.start_timestamp(self.now())
        events = await self.store.find(
            vault_id,
            EventQuery(
                types=(EventType.SETTLE_DEPOSIT, EventType.SETTLE_REDEEM),
                since=since or None,
            ),
        )
        return [
            Settlement(
                block_timestamp=event.block_timestamp,
                pps=event.pps or "0",
                total_assets=event.total_assets or "0",
                total_supply=event.total_supply or "0",
                sequence=event.sequence or 0,
            )
            for event in events
            if event.block_timestamp is not None
        ]

    async def get_last_request(self, vault_id: str, user_address: str) -> LastRequest:
        """Latest deposit and redeem request ids where ``user_address`` is the controller."""
        if not user_address:
            raise ValueError("user_address is required")
        self.registry.get_vault_config(vault_id)
        controller = user_address.lower()

        key = (vault_id, controller)
        cached = self._last_requests.get(key)
        if cached is not None:
            logger.debug("Last request cache hit for %s/%s", vault_id, controller)
            return cached

        deposit, redeem = await asyncio.gather(
            *(
                self.store.find_one(
                    vault_id,
                    EventQuery(
                        types=(event_type,),
                        controller=controller,
                        require_timestamp=False,
                    ),
                )
                for event_type in (EventType.DEPOSIT_REQUEST, EventType.REDEEM_REQUEST)
            ),
            return_exceptions=True,
        )
        for found in (deposit, redeem):
            if isinstance(found, BaseException):
                raise found
        result = LastRequest(
            last_deposit_request_id=deposit.request_id if deposit else None,
            last_redeem_request_id=redeem.request_id if redeem else None,
        )
        return self._last_requests.set(key, result)
