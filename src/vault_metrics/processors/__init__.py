from __future__ import annotations

from .apr import (
    calculate_interpolated_apr,
    calculate_net_apr,
    calculate_period_apr,
    calculate_reference_apr,
)
from .pps import PpsReconstructor, resolve_pps, resolve_transaction_hash
from .tvl import TvlAggregator, aggregate_tvl, is_valid_timestamp, latest_tvl

__all__ = [
    "calculate_interpolated_apr",
    "calculate_net_apr",
    "calculate_period_apr",
    "calculate_reference_apr",
    "PpsReconstructor",
    "resolve_pps",
    "resolve_transaction_hash",
    "TvlAggregator",
    "aggregate_tvl",
    "is_valid_timestamp",
    "latest_tvl",
]
