"""Domain models for vault metrics."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Mapping

from ..constants import SECONDS_PER_DAY
from ..units import wad_to_float


class TimeFilter(str, Enum):
    ALL = "all"
    THREE_MONTHS = "3m"
    ONE_MONTH = "1m"
    ONE_WEEK = "1w"

    @property
    def days(self) -> int | None:
        return {
            TimeFilter.THREE_MONTHS: 90,
            TimeFilter.ONE_MONTH: 30,
            TimeFilter.ONE_WEEK: 7,
        }.get(self)

    def start_timestamp(self, now: int) -> int:
        """Oldest block timestamp kept by this filter, relative to ``now``."""
        if self.days is None:
            return 0
        return now - self.days * SECONDS_PER_DAY


def _parse_timestamp(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _as_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value)
    return text or None


@dataclass(frozen=True)
class RawEvent:
    """One indexer record from the event store.

    Numeric on-chain quantities are kept as the decimal strings the indexer
    wrote so that no precision is lost before integer arithmetic.
    """

    id: str
    type: str
    block_timestamp: int | None
    total_assets: str | None = None
    total_supply: str | None = None
    new_high_water_mark: str | None = None
    transaction_hash: str | None = None
    controller: str | None = None
    request_id: str | None = None
    pps: str | None = None
    sequence: int | None = None

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> RawEvent:
        """Build an event from a raw ``subgraph`` document."""
        return cls(
            id=str(doc.get("id") or ""),
            type=str(doc.get("type") or ""),
            block_timestamp=_parse_timestamp(doc.get("blockTimestamp")),
            total_assets=_as_text(doc.get("totalAssets")),
            total_supply=_as_text(doc.get("totalSupply")),
            new_high_water_mark=_as_text(doc.get("newHighWaterMark")),
            transaction_hash=_as_text(doc.get("transactionHash")),
            controller=_as_text(doc.get("controller")),
            request_id=_as_text(doc.get("requestId")),
            pps=_as_text(doc.get("pps")),
            sequence=_parse_timestamp(doc.get("sequence")),
        )


@dataclass(frozen=True)
class PpsPoint:
    """Price per share at one ``totalAssetsUpdated`` event, 18-decimal fixed point."""

    block_timestamp: int
    transaction_hash: str
    pps_raw: int
    source: str
    fallback: bool = False

    @property
    def pps_formatted(self) -> float:
        return wad_to_float(self.pps_raw)

    def to_dict(self) -> dict[str, object]:
        data = asdict(self)
        data["pps_raw"] = str(self.pps_raw)
        data["pps_formatted"] = self.pps_formatted
        return data


@dataclass(frozen=True)
class TvlPoint:
    """Total assets at one block timestamp, rendered in the token's units."""

    block_timestamp: int
    total_assets: str
    event_type: str

    def to_dict(self) -> dict[str, object]:
        return asdict(self)


@dataclass(frozen=True)
class Interpolation:
    """PPS estimated at ``target_timestamp`` from two bracketing points."""

    target_timestamp: int
    before: PpsPoint
    after: PpsPoint
    factor: float
    pps: float


@dataclass(frozen=True)
class AprResult:
    """Annualized yield between two points of a PPS series.

    ``apr`` and ``total_return`` are percentages. A result built from fewer
    than two points has every figure at zero and no events.
    """

    apr: float
    start_event: PpsPoint | None
    end_event: PpsPoint | None
    total_return: float
    duration_in_years: float
    start_pps: float = 0.0
    end_pps: float = 0.0
    interpolation: Interpolation | None = None

    @classmethod
    def neutral(cls) -> AprResult:
        return cls(
            apr=0.0,
            start_event=None,
            end_event=None,
            total_return=0.0,
            duration_in_years=0.0,
        )

    @property
    def is_neutral(self) -> bool:
        return self.start_event is None or self.end_event is None

    def to_dict(self) -> dict[str, object]:
        data: dict[str, object] = {
            "apr": self.apr,
            "total_return": self.total_return,
            "duration_in_years": self.duration_in_years,
            "start_pps": self.start_pps,
            "end_pps": self.end_pps,
            "start_event": self.start_event.to_dict() if self.start_event else None,
            "end_event": self.end_event.to_dict() if self.end_event else None,
        }
        if self.interpolation is not None:
            data["interpolation"] = {
                "target_timestamp": self.interpolation.target_timestamp,
                "factor": self.interpolation.factor,
                "pps": self.interpolation.pps,
                "before": self.interpolation.before.to_dict(),
                "after": self.interpolation.after.to_dict(),
            }
        return data


@dataclass(frozen=True)
class Settlement:
    block_timestamp: int
    pps: str = "0"
    total_assets: str = "0"
    total_supply: str = "0"
    sequence: int = 0

    def to_dict(self) -> dict[str, object]:
        return asdict(self)


@dataclass(frozen=True)
class LastRequest:
    """Most recent async deposit/redeem request ids of one controller."""

    last_deposit_request_id: str | None
    last_redeem_request_id: str | None

    def to_dict(self) -> dict[str, object]:
        return asdict(self)


@dataclass
class VaultMetrics:
    """Headline figures of one vault in a bulk request; ``None`` when unavailable."""

    tvl: TvlPoint | None = None
    net_apr: float | None = None
    thirty_day_apr: float | None = None
    seven_day_apr: float | None = None

    def to_dict(self) -> dict[str, object]:
        return {
            "tvl": self.tvl.to_dict() if self.tvl else None,
            "net_apr": self.net_apr,
            "thirty_day_apr": self.thirty_day_apr,
            "seven_day_apr": self.seven_day_apr,
        }


__all__ = [
    "AprResult",
    "Interpolation",
    "LastRequest",
    "PpsPoint",
    "RawEvent",
    "Settlement",
    "TimeFilter",
    "TvlPoint",
    "VaultMetrics",
]
