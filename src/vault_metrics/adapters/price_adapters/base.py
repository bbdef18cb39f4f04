from __future__ import annotations

import math
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass

from ...settings import MetricsSettings
from ...vaults import VaultConfig


class PriceSourceError(Exception):
    """Raised when a price source cannot quote a token."""


class RateLimitError(PriceSourceError):
    """Raised when a price source answers HTTP 429."""


@dataclass(frozen=True)
class PriceQuote:
    """USD price of one underlying token."""

    token: str
    price_usd: float
    source: str

    def to_dict(self) -> dict[str, object]:
        return asdict(self)


class BasePriceAdapter(ABC):
    """Abstract base class for price adapters."""

    def __init__(self, config: MetricsSettings):
        """Initialize the adapter with configuration."""
        self.config = config

    @property
    @abstractmethod
    def adapter_name(self) -> str:
        """Return the name of this adapter."""
        ...

    @abstractmethod
    async def fetch_price(self, vault: VaultConfig) -> PriceQuote:
        """Fetch the USD price of the vault's underlying token."""
        ...

    def validate_price(self, token: str, price: object) -> float:
        """Return ``price`` as a float, rejecting missing or non-positive values."""
        if isinstance(price, bool) or not isinstance(price, (int, float)):
            raise PriceSourceError(
                f"{self.adapter_name} returned no usable price for {token}: {price!r}"
            )
        value = float(price)
        if not math.isfinite(value) or value <= 0:
            raise PriceSourceError(
                f"{self.adapter_name} returned a non-positive price for {token}: {value}"
            )
        return value
