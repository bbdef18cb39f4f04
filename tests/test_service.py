from __future__ import annotations

import pytest

from vault_metrics.domain import TimeFilter
from vault_metrics.service import NoDataError, VaultMetricsService
from vault_metrics.settings import MetricsSettings
from vault_metrics.state import AppState
from vault_metrics.store import EventStore, InMemoryEventStore, UpstreamUnavailableError
from vault_metrics.vaults import (
    UnsupportedDecimalsError,
    VaultInactiveError,
    VaultNotFoundError,
)

NOW = 1_700_000_000
DAY = 86_400


class CountingStore(InMemoryEventStore):
    def __init__(self, documents=None):
        super().__init__(documents)
        self.calls = 0

    async def find(self, vault_id, query):
        self.calls += 1
        return await super().find(vault_id, query)


class FailingStore(EventStore):
    async def find(self, vault_id, query):
        raise UpstreamUnavailableError("connection refused")


@pytest.fixture
def year_series():
    return [(NOW - 365 * DAY, 1.0), (NOW - 40 * DAY, 1.05), (NOW - 10 * DAY, 1.09), (NOW, 1.10)]


@pytest.fixture
def make_service(registry):
    def _make(store, **overrides):
        settings = MetricsSettings(**overrides)
        return VaultMetricsService(store, registry, settings, clock=lambda: NOW)

    return _make


@pytest.mark.asyncio
async def test_pps_series_and_latest(make_service, usdc_vault, pps_documents, year_series):
    service = make_service(InMemoryEventStore({usdc_vault.id: pps_documents(year_series)}))

    series = await service.get_pps_series(usdc_vault.id)
    assert [p.pps_formatted for p in series] == [1.0, 1.05, 1.09, 1.1]

    latest = await service.get_latest_pps(usdc_vault.id)
    assert latest.block_timestamp == NOW


@pytest.mark.asyncio
async def test_pps_series_since_and_time_filter(make_service, usdc_vault, pps_documents, year_series):
    service = make_service(InMemoryEventStore({usdc_vault.id: pps_documents(year_series)}))

    since = await service.get_pps_series(usdc_vault.id, NOW - 20 * DAY)
    assert [p.block_timestamp for p in since] == [NOW - 10 * DAY, NOW]

    month = await service.get_pps_series(usdc_vault.id, time_filter=TimeFilter.ONE_MONTH)
    assert len(month) == 2

    quarter = await service.get_pps_series(usdc_vault.id, time_filter=TimeFilter.THREE_MONTHS)
    assert len(quarter) == 3


@pytest.mark.asyncio
async def test_latest_pps_without_events_is_not_found(make_service, usdc_vault):
    with pytest.raises(NoDataError):
        await make_service(InMemoryEventStore()).get_latest_pps(usdc_vault.id)


@pytest.mark.asyncio
async def test_net_apr_uses_full_history(make_service, usdc_vault, pps_documents, year_series):
    service = make_service(
        InMemoryEventStore({usdc_vault.id: pps_documents(year_series)}),
        recent_events_limit=2,
    )

    result = await service.get_net_apr(usdc_vault.id)

    assert result.start_event.block_timestamp == NOW - 365 * DAY
    assert result.apr == 10.0


@pytest.mark.asyncio
async def test_period_apr_uses_recent_window(make_service, usdc_vault, pps_documents, year_series):
    service = make_service(
        InMemoryEventStore({usdc_vault.id: pps_documents(year_series)}),
        recent_events_limit=2,
    )

    result = await service.get_period_apr(usdc_vault.id, 30)

    # Only the two newest points are visible, so the oldest of them is the reference
    assert result.start_event.block_timestamp == NOW - 10 * DAY
    assert result.end_event.block_timestamp == NOW


@pytest.mark.asyncio
async def test_seven_day_apr_reads_full_history(make_service, usdc_vault, pps_documents):
    # Dense recent updates would push the bracketing point out of a 2-event window
    series = [(NOW - 9 * DAY, 1.0), (NOW - 2 * DAY, 1.01), (NOW - DAY, 1.015), (NOW, 1.02)]
    service = make_service(
        InMemoryEventStore({usdc_vault.id: pps_documents(series)}),
        recent_events_limit=2,
    )

    result = await service.get_period_apr(usdc_vault.id, 7)

    assert result.interpolation.before.block_timestamp == NOW - 9 * DAY
    assert result.interpolation.after.block_timestamp == NOW - 2 * DAY
    assert result.interpolation.target_timestamp == NOW - 7 * DAY


@pytest.mark.asyncio
async def test_single_point_gives_zero_apr(make_service, usdc_vault, pps_documents):
    service = make_service(InMemoryEventStore({usdc_vault.id: pps_documents([(NOW, 1.0)])}))

    assert (await service.get_net_apr(usdc_vault.id)).apr == 0
    assert (await service.get_period_apr(usdc_vault.id, 7)).apr == 0
    assert (await service.get_period_apr(usdc_vault.id, 30)).apr == 0


@pytest.mark.asyncio
async def test_apr_refuses_inactive_vault_but_pps_does_not(make_service, retired_vault, pps_documents, year_series):
    service = make_service(InMemoryEventStore({retired_vault.id: pps_documents(year_series)}))

    with pytest.raises(VaultInactiveError):
        await service.get_net_apr(retired_vault.id)
    with pytest.raises(VaultInactiveError):
        await service.get_period_apr(retired_vault.id, 7)
    assert len(await service.get_pps_series(retired_vault.id)) == 4


@pytest.mark.asyncio
async def test_unsupported_decimals_refused_without_querying(make_service, btc_vault):
    store = CountingStore()
    service = make_service(store)

    with pytest.raises(UnsupportedDecimalsError):
        await service.get_pps_series(btc_vault.id)
    with pytest.raises(UnsupportedDecimalsError):
        await service.get_tvl_series(btc_vault.id)
    assert store.calls == 0


@pytest.mark.asyncio
async def test_unknown_vault(make_service):
    service = make_service(InMemoryEventStore())

    with pytest.raises(VaultNotFoundError):
        await service.get_net_apr("nope")
    with pytest.raises(VaultNotFoundError):
        await service.get_latest_tvl("nope")
    with pytest.raises(VaultNotFoundError):
        await service.get_settlements("nope")


@pytest.mark.asyncio
async def test_tvl_series_and_latest(make_service, usdc_vault):
    store = InMemoryEventStore(
        {
            usdc_vault.id: [
                {"id": "a", "type": "totalAssetsUpdated", "blockTimestamp": NOW - 40 * DAY, "totalAssets": "1000000"},
                {"id": "b", "type": "settleDeposit", "blockTimestamp": NOW - 2 * DAY, "totalAssets": "2500000"},
                {"id": "c", "type": "totalAssetsUpdated", "blockTimestamp": NOW - 2 * DAY, "totalAssets": "2400000"},
            ]
        }
    )
    service = make_service(store)

    series = await service.get_tvl_series(usdc_vault.id)
    assert [p.total_assets for p in series] == ["1.000000", "2.500000"]

    week = await service.get_tvl_series(usdc_vault.id, TimeFilter.ONE_WEEK)
    assert [p.block_timestamp for p in week] == [NOW - 2 * DAY]

    latest = await service.get_latest_tvl(usdc_vault.id)
    assert latest.total_assets == "2.500000"


@pytest.mark.asyncio
async def test_latest_tvl_without_events_is_not_found(make_service, usdc_vault):
    with pytest.raises(NoDataError, match="TVL"):
        await make_service(InMemoryEventStore()).get_latest_tvl(usdc_vault.id)


@pytest.mark.asyncio
async def test_settlements_newest_first_with_defaults(make_service, usdc_vault):
    store = InMemoryEventStore(
        {
            usdc_vault.id: [
                {"id": "a", "type": "settleDeposit", "blockTimestamp": NOW - 200, "pps": "1000000", "totalAssets": "5", "totalSupply": "5", "sequence": 1},
                {"id": "b", "type": "settleRedeem", "blockTimestamp": NOW - 100},
                {"id": "c", "type": "totalAssetsUpdated", "blockTimestamp": NOW - 50, "totalAssets": "5"},
            ]
        }
    )

    settlements = await make_service(store).get_settlements(usdc_vault.id)

    assert [s.block_timestamp for s in settlements] == [NOW - 100, NOW - 200]
    assert settlements[0].pps == "0"
    assert settlements[0].total_supply == "0"
    assert settlements[0].sequence == 0
    assert settlements[1].pps == "1000000"
    assert settlements[1].sequence == 1


@pytest.mark.asyncio
async def test_last_request_is_cached_per_user(make_service, usdc_vault):
    store = CountingStore(
        {
            usdc_vault.id: [
                {"id": "d1", "type": "depositRequest", "controller": "0xuser", "requestId": "3", "blockTimestamp": 10},
                {"id": "d2", "type": "depositRequest", "controller": "0xuser", "requestId": "5", "blockTimestamp": 20},
                {"id": "r1", "type": "redeemRequest", "controller": "0xother", "requestId": "9", "blockTimestamp": 30},
            ]
        }
    )
    service = make_service(store)

    first = await service.get_last_request(usdc_vault.id, "0xUSER")
    assert first.last_deposit_request_id == "5"
    assert first.last_redeem_request_id is None
    calls = store.calls

    again = await service.get_last_request(usdc_vault.id, "0xUSER")
    assert again == first
    assert store.calls == calls

    other = await service.get_last_request(usdc_vault.id, "0xother")
    assert other.last_redeem_request_id == "9"
    assert store.calls > calls


@pytest.mark.asyncio
async def test_last_request_cache_ignores_address_case(make_service, usdc_vault):
    store = CountingStore(
        {
            usdc_vault.id: [
                {"id": "d1", "type": "depositRequest", "controller": "0xuser", "requestId": "3", "blockTimestamp": 10},
            ]
        }
    )
    service = make_service(store)

    first = await service.get_last_request(usdc_vault.id, "0xUSER")
    calls = store.calls
    second = await service.get_last_request(usdc_vault.id, "0xuser")

    assert second == first
    assert store.calls == calls
    assert len(service._last_requests) == 1


@pytest.mark.asyncio
async def test_last_request_requires_user(make_service, usdc_vault):
    with pytest.raises(ValueError, match="user_address"):
        await make_service(InMemoryEventStore()).get_last_request(usdc_vault.id, "")


@pytest.mark.asyncio
async def test_upstream_failure_propagates(make_service, usdc_vault):
    service = make_service(FailingStore())

    with pytest.raises(UpstreamUnavailableError):
        await service.get_net_apr(usdc_vault.id)
    with pytest.raises(UpstreamUnavailableError):
        await service.get_tvl_series(usdc_vault.id)


def test_from_state_uses_given_store_and_configured_vaults(usdc_vault):
    settings = MetricsSettings(vaults=[usdc_vault])
    state = AppState(settings=settings, logger=None)
    store = InMemoryEventStore()

    service = VaultMetricsService.from_state(state, store=store)

    assert service.store is store
    assert usdc_vault.id in service.registry
    assert "detrade-core-usdc" not in service.registry
