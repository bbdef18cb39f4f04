from __future__ import annotations

import random

import pytest

from vault_metrics.domain import RawEvent, TimeFilter
from vault_metrics.processors.tvl import (
    TvlAggregator,
    aggregate_tvl,
    is_valid_timestamp,
    latest_tvl,
)
from vault_metrics.store import InMemoryEventStore
from vault_metrics.vaults import UnsupportedDecimalsError

NOW = 1_700_000_000
DAY = 86_400


def _event(id_: str, type_: str, timestamp: int | None, total_assets: str | None) -> RawEvent:
    return RawEvent(id=id_, type=type_, block_timestamp=timestamp, total_assets=total_assets)


def test_timestamp_validity():
    assert is_valid_timestamp(NOW, NOW)
    assert not is_valid_timestamp(None, NOW)
    assert not is_valid_timestamp(0, NOW)
    assert not is_valid_timestamp(-5, NOW)
    assert not is_valid_timestamp(2**31 - 1, NOW)
    assert not is_valid_timestamp(NOW + 366 * DAY, NOW)
    assert is_valid_timestamp(NOW + 364 * DAY, NOW)


def test_settle_deposit_beats_total_assets_update_at_same_timestamp():
    events = [
        _event("a", "totalAssetsUpdated", NOW - 10, "1000000"),
        _event("b", "settleDeposit", NOW - 10, "2000000"),
    ]

    points = aggregate_tvl(events, 6, now=NOW)

    assert len(points) == 1
    assert points[0].total_assets == "2.000000"
    assert points[0].event_type == "settleDeposit"


def test_settle_redeem_beats_settle_deposit():
    events = [
        _event("b", "settleDeposit", NOW - 10, "2000000"),
        _event("c", "settleRedeem", NOW - 10, "3000000"),
        _event("a", "totalAssetsUpdated", NOW - 10, "1000000"),
    ]

    assert aggregate_tvl(events, 6, now=NOW)[0].event_type == "settleRedeem"


def test_one_point_per_timestamp_sorted_ascending():
    events = [
        _event("1", "totalAssetsUpdated", NOW - 30, "1"),
        _event("2", "totalAssetsUpdated", NOW - 10, "3"),
        _event("3", "settleDeposit", NOW - 20, "2"),
        _event("4", "totalAssetsUpdated", NOW - 20, "9"),
    ]

    points = aggregate_tvl(events, 6, now=NOW)

    timestamps = [p.block_timestamp for p in points]
    assert timestamps == [NOW - 30, NOW - 20, NOW - 10]
    assert len(set(timestamps)) == len(timestamps)
    assert points[1].total_assets == "0.000002"


def test_output_is_independent_of_input_order():
    events = [
        _event(f"id-{i}", kind, NOW - (i % 4) * 100, str(1000 + i))
        for i, kind in enumerate(["totalAssetsUpdated", "settleDeposit", "settleRedeem"] * 4)
    ]
    expected = aggregate_tvl(events, 18, now=NOW)

    rng = random.Random(7)
    for _ in range(5):
        shuffled = events[:]
        rng.shuffle(shuffled)
        assert aggregate_tvl(shuffled, 18, now=NOW) == expected


def test_invalid_and_incomplete_events_are_dropped():
    events = [
        _event("future", "settleDeposit", NOW + 2 * 365 * DAY, "5"),
        _event("zero", "settleDeposit", 0, "5"),
        _event("none", "settleDeposit", None, "5"),
        _event("empty", "settleDeposit", NOW - 1, None),
        _event("bad", "settleDeposit", NOW - 2, "1.5"),
        _event("other", "depositRequest", NOW - 3, "5"),
        _event("ok", "totalAssetsUpdated", NOW - 4, "7"),
    ]

    points = aggregate_tvl(events, 6, now=NOW)

    assert [p.block_timestamp for p in points] == [NOW - 4]


def test_eighteen_decimal_amounts_are_exact():
    raw = "123456789123456789123456789"
    points = aggregate_tvl([_event("a", "settleRedeem", NOW, raw)], 18, now=NOW)

    assert points[0].total_assets == "123456789.123456789123456789"


@pytest.mark.parametrize(
    "time_filter, expected",
    [
        (TimeFilter.ALL, 4),
        (TimeFilter.THREE_MONTHS, 3),
        (TimeFilter.ONE_MONTH, 2),
        (TimeFilter.ONE_WEEK, 1),
    ],
)
def test_time_filter(time_filter, expected):
    events = [
        _event(str(days), "totalAssetsUpdated", NOW - days * DAY, "1")
        for days in (200, 60, 20, 3)
    ]

    assert len(aggregate_tvl(events, 6, time_filter=time_filter, now=NOW)) == expected


def test_latest_tvl():
    events = [
        _event("1", "totalAssetsUpdated", NOW - 30, "1"),
        _event("2", "settleDeposit", NOW - 10, "3"),
    ]

    assert latest_tvl(aggregate_tvl(events, 6, now=NOW)).block_timestamp == NOW - 10
    assert latest_tvl([]) is None


@pytest.mark.asyncio
async def test_aggregator_reads_store(usdc_vault):
    store = InMemoryEventStore(
        {
            usdc_vault.id: [
                {"id": "a", "type": "totalAssetsUpdated", "blockTimestamp": NOW - 100, "totalAssets": "1000000"},
                {"id": "b", "type": "settleDeposit", "blockTimestamp": NOW - 100, "totalAssets": "1500000"},
                {"id": "c", "type": "settleRedeem", "blockTimestamp": NOW - 50, "totalAssets": "1200000"},
                {"id": "d", "type": "highWaterMarkUpdated", "blockTimestamp": NOW - 40, "totalAssets": "9"},
            ]
        }
    )
    aggregator = TvlAggregator(store)

    points = await aggregator.aggregate(usdc_vault, now=NOW)
    assert [(p.block_timestamp, p.total_assets) for p in points] == [
        (NOW - 100, "1.500000"),
        (NOW - 50, "1.200000"),
    ]

    latest = await aggregator.latest(usdc_vault, now=NOW)
    assert latest.total_assets == "1.200000"


@pytest.mark.asyncio
async def test_aggregator_rejects_unsupported_decimals(btc_vault):
    with pytest.raises(UnsupportedDecimalsError):
        await TvlAggregator(InMemoryEventStore()).aggregate(btc_vault, now=NOW)
