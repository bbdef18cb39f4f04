"""Annualized yield figures from a PPS series.

PPS values are rounded half up to 6 decimals before use and the returned
percentages to 2 decimals, only at the final step. A series with fewer than
two points gives :meth:`AprResult.neutral` rather than an error.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, localcontext
from typing import Callable, Sequence

from ..constants import (
    APR_DECIMALS,
    PPS_DECIMALS,
    SECONDS_PER_DAY,
    SECONDS_PER_YEAR,
)
from ..domain import AprResult, Interpolation, PpsPoint
from ..logger import get_logger

logger = get_logger(__name__)

DURATION_DECIMALS = 8


def _ordered(points: Sequence[PpsPoint]) -> list[PpsPoint]:
    return sorted(points, key=lambda p: (p.block_timestamp, p.transaction_hash))


def _fixed(value: float, places: int) -> float:
    """Round half away from zero, judged on the float's exact binary value.

    ``round`` would send ties to the even digit instead.
    """
    with localcontext() as ctx:
        ctx.prec = 60
        return float(Decimal(value).quantize(Decimal(1).scaleb(-places), ROUND_HALF_UP))


def _pps(point: PpsPoint) -> float:
    return _fixed(point.pps_formatted, PPS_DECIMALS)


def calculate_net_apr(points: Sequence[PpsPoint]) -> AprResult:
    """Lifetime APR between the oldest and newest points.

    Over a year or more the return is annualized geometrically,
    ``(1 + r) ** (1 / years) - 1``; under a year it is extrapolated
    linearly, ``r / years``.
    """
    if len(points) < 2:
        return AprResult.neutral()

    ordered = _ordered(points)
    oldest, newest = ordered[0], ordered[-1]
    oldest_pps = _pps(oldest)
    newest_pps = _pps(newest)
    if oldest_pps <= 0:
        logger.warning(
            "Oldest PPS is %s at %d; net APR not computable",
            oldest_pps,
            oldest.block_timestamp,
        )
        return AprResult.neutral()

    total_return = _fixed((newest_pps - oldest_pps) / oldest_pps, PPS_DECIMALS)
    duration_seconds = newest.block_timestamp - oldest.block_timestamp
    duration_in_years = _fixed(duration_seconds / SECONDS_PER_YEAR, DURATION_DECIMALS)

    if duration_in_years <= 0:
        apr = 0.0
    elif duration_in_years >= 1:
        growth = 1 + total_return
        apr = (growth ** (1 / duration_in_years) - 1) if growth > 0 else -1.0
    else:
        apr = total_return / duration_in_years

    return AprResult(
        apr=_fixed(apr * 100, APR_DECIMALS),
        start_event=oldest,
        end_event=newest,
        total_return=_fixed(total_return * 100, PPS_DECIMALS),
        duration_in_years=duration_in_years,
        start_pps=oldest_pps,
        end_pps=newest_pps,
    )


def calculate_reference_apr(points: Sequence[PpsPoint], days: int = 30) -> AprResult:
    """APR against the newest point at least ``days`` older than the latest one.

    Falls back to the oldest point for series shorter than ``days``. The
    spacing used for annualization is floored at one day.
    """
    if len(points) < 2:
        return AprResult.neutral()

    newest_first = _ordered(points)[::-1]
    latest = newest_first[0]
    target = latest.block_timestamp - days * SECONDS_PER_DAY
    reference = next(
        (p for p in newest_first if p.block_timestamp <= target), newest_first[-1]
    )

    latest_pps = _pps(latest)
    reference_pps = _pps(reference)
    if reference_pps <= 0:
        return AprResult.neutral()

    period_return = _fixed((latest_pps - reference_pps) / reference_pps, PPS_DECIMALS)
    elapsed_seconds = latest.block_timestamp - reference.block_timestamp
    adjusted_days = max(elapsed_seconds / SECONDS_PER_DAY, 1)
    apr = period_return * (365 / adjusted_days)

    return AprResult(
        apr=_fixed(apr * 100, APR_DECIMALS),
        start_event=reference,
        end_event=latest,
        total_return=_fixed(period_return * 100, PPS_DECIMALS),
        duration_in_years=_fixed(elapsed_seconds / SECONDS_PER_YEAR, DURATION_DECIMALS),
        start_pps=reference_pps,
        end_pps=latest_pps,
    )


def _bracket(ordered: list[PpsPoint], target: int) -> tuple[PpsPoint, PpsPoint]:
    """Nearest point before ``target`` and nearest point at or after it.

    When no point precedes ``target`` the two oldest points are used, which
    extrapolates the first segment backwards.
    """
    before = None
    for point in ordered:
        if point.block_timestamp < target:
            before = point
        else:
            after = point
            break
    else:  # pragma: no cover - the latest point is always at or after target
        raise ValueError("target lies after the latest point")

    if before is None:
        return ordered[0], ordered[1]
    return before, after


def calculate_interpolated_apr(points: Sequence[PpsPoint], days: int = 7) -> AprResult:
    """APR against the PPS linearly interpolated exactly ``days`` before the latest point.

    Annualization uses the exact ``days`` duration, not the spacing of the
    points the estimate was interpolated from.
    """
    if len(points) < 2:
        return AprResult.neutral()

    ordered = _ordered(points)
    latest = ordered[-1]
    target = latest.block_timestamp - days * SECONDS_PER_DAY
    before, after = _bracket(ordered, target)

    time_range = after.block_timestamp - before.block_timestamp
    factor = (target - before.block_timestamp) / time_range if time_range else 0.0
    before_pps = _pps(before)
    after_pps = _pps(after)
    interpolated_pps = _fixed(
        before_pps + (after_pps - before_pps) * factor, PPS_DECIMALS
    )
    if interpolated_pps <= 0:
        logger.warning(
            "Interpolated PPS at %d is %s; %d-day APR not computable",
            target,
            interpolated_pps,
            days,
        )
        return AprResult.neutral()

    latest_pps = _pps(latest)
    period_return = _fixed(
        (latest_pps - interpolated_pps) / interpolated_pps, PPS_DECIMALS
    )
    apr = period_return * (365 / days)

    return AprResult(
        apr=_fixed(apr * 100, APR_DECIMALS),
        start_event=before,
        end_event=latest,
        total_return=_fixed(period_return * 100, PPS_DECIMALS),
        duration_in_years=_fixed(
            days * SECONDS_PER_DAY / SECONDS_PER_YEAR, DURATION_DECIMALS
        ),
        start_pps=interpolated_pps,
        end_pps=latest_pps,
        interpolation=Interpolation(
            target_timestamp=target,
            before=before,
            after=after,
            factor=factor,
            pps=interpolated_pps,
        ),
    )


PERIOD_CALCULATORS: dict[int, Callable[[Sequence[PpsPoint]], AprResult]] = {
    7: lambda points: calculate_interpolated_apr(points, 7),
    30: lambda points: calculate_reference_apr(points, 30),
}


def calculate_period_apr(points: Sequence[PpsPoint], days: int) -> AprResult:
    """7-day (interpolated) or 30-day (reference point) APR."""
    calculator = PERIOD_CALCULATORS.get(days)
    if calculator is None:
        supported = ", ".join(str(d) for d in sorted(PERIOD_CALCULATORS))
        raise ValueError(f"Unsupported APR period {days}; expected one of {supported}")
    return calculator(points)
