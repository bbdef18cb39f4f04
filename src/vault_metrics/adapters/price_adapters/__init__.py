from __future__ import annotations

from .base import BasePriceAdapter, PriceQuote, PriceSourceError, RateLimitError
from .coingecko import CoinGeckoAdapter
from .coinmarketcap import CoinMarketCapAdapter

# Tried in order; the first source that answers wins.
PRICE_ADAPTERS = [
    CoinGeckoAdapter,
    CoinMarketCapAdapter,
]

__all__ = [
    "PRICE_ADAPTERS",
    "BasePriceAdapter",
    "CoinGeckoAdapter",
    "CoinMarketCapAdapter",
    "PriceQuote",
    "PriceSourceError",
    "RateLimitError",
]
