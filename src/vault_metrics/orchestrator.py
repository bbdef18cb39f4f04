from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Iterable

from .domain import VaultMetrics
from .logger import get_logger
from .processors import (
    calculate_interpolated_apr,
    calculate_net_apr,
    calculate_reference_apr,
)
from .vaults import VaultConfig, VaultNotFoundError

if TYPE_CHECKING:
    from .service import VaultMetricsService

logger = get_logger(__name__)


def _process_vault_results(
    vaults: list[VaultConfig],
    results: list[BaseException | VaultMetrics],
) -> dict[str, VaultMetrics]:
    """Map asyncio.gather results to vault ids.

    A failed vault gets an empty :class:`VaultMetrics` so that the rest of
    the batch is still reported.

    Args:
        vaults: Vaults in the order their tasks were gathered
        results: Results from asyncio.gather (may contain exceptions)
    """
    metrics: dict[str, VaultMetrics] = {}
    for vault, result in zip(vaults, results):
        match result:
            case VaultMetrics() as vault_metrics:
                logger.debug("Metrics collected for vault %s", vault.id)
                metrics[vault.id] = vault_metrics
            case Exception() as e:
                logger.warning("Metrics failed for vault '%s': %s", vault.id, e)
                metrics[vault.id] = VaultMetrics()
            case BaseException() as e:
                raise e
    return metrics


async def collect_vault_metrics(
    service: VaultMetricsService, vault: VaultConfig
) -> VaultMetrics:
    """Latest TVL and the three APR figures of one vault.

    APRs are computed over the most recent ``recent_events_limit`` PPS
    points and left as ``None`` when fewer than two points exist.
    """
    settings = service.settings
    tvl, points = await asyncio.gather(
        service.tvl_aggregator.latest(
            vault, now=service.now(), limit=settings.bulk_tvl_events_limit
        ),
        service.pps_reconstructor.reconstruct(
            vault, limit=settings.recent_events_limit
        ),
        return_exceptions=True,
    )
    for result in (tvl, points):
        if isinstance(result, BaseException):
            raise result

    metrics = VaultMetrics(tvl=tvl)
    if len(points) >= 2:
        metrics.net_apr = calculate_net_apr(points).apr
        metrics.thirty_day_apr = calculate_reference_apr(points, 30).apr
        metrics.seven_day_apr = calculate_interpolated_apr(points, 7).apr
    return metrics


async def get_bulk_metrics(
    service: VaultMetricsService, vault_ids: Iterable[str]
) -> dict[str, VaultMetrics]:
    """Headline metrics of several vaults, computed concurrently.

    Unknown and inactive ids are dropped. The answer is cached by the sorted
    id list for ``bulk_cache_ttl_seconds``.

    Raises:
        VaultNotFoundError: If none of ``vault_ids`` is a known active vault
    """
    requested = sorted(set(vault_ids))
    cache_key = ",".join(requested)
    cached = service.bulk_cache.get(cache_key)
    if cached is not None:
        logger.debug("Bulk metrics cache hit for %s", cache_key)
        return cached

    vaults = [
        vault
        for vault in (
            service.registry.get_vault_config(vault_id)
            for vault_id in requested
            if vault_id in service.registry
        )
        if vault.is_active
    ]
    if not vaults:
        raise VaultNotFoundError(cache_key or "<none>")

    logger.info("Collecting bulk metrics for %d vaults", len(vaults))
    results = await asyncio.gather(
        *(collect_vault_metrics(service, vault) for vault in vaults),
        return_exceptions=True,
    )
    metrics = _process_vault_results(vaults, list(results))
    return service.bulk_cache.set(cache_key, metrics)
