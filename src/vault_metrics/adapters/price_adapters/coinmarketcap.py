from __future__ import annotations

import asyncio
import logging
from typing import Any

import backoff
import requests

from ...settings import MetricsSettings
from ...vaults import VaultConfig
from .base import BasePriceAdapter, PriceQuote, PriceSourceError, RateLimitError
from .coingecko import RETRYABLE_STATUS

logger = logging.getLogger(__name__)


def select_main_token(entries: list[dict[str, Any]]) -> dict[str, Any] | None:
    """Pick the quote for the canonical token among same-symbol matches.

    The entry with CoinMarketCap id 1 wins, else the first entry carrying a
    USD price.
    """
    main = next((e for e in entries if e.get("id") == 1), None)
    if main is not None:
        return main
    return next(
        (
            e
            for e in entries
            if ((e.get("quote") or {}).get("USD") or {}).get("price") is not None
        ),
        None,
    )


class CoinMarketCapAdapter(BasePriceAdapter):
    """USD prices from CoinMarketCap's price-conversion endpoint, keyed by symbol."""

    def __init__(self, config: MetricsSettings):
        super().__init__(config)
        self.api_base_url = config.coinmarketcap_api_url.rstrip("/")
        self.timeout = config.price_request_timeout
        self.api_key = (
            config.coinmarketcap_api_key.get_secret_value()
            if config.coinmarketcap_api_key
            else None
        )

    @property
    def adapter_name(self) -> str:
        return "coinmarketcap"

    @backoff.on_exception(
        backoff.expo,
        (requests.exceptions.RequestException, requests.exceptions.HTTPError),
        max_tries=5,
        giveup=lambda e: (
            isinstance(e, requests.exceptions.HTTPError)
            and e.response is not None
            and e.response.status_code not in RETRYABLE_STATUS
        ),
        jitter=backoff.full_jitter,
    )
    async def fetch_conversion(self, symbol: str) -> list[dict[str, Any]]:
        if not self.api_key:
            raise PriceSourceError("CoinMarketCap API key not configured")

        url = f"{self.api_base_url}/v2/tools/price-conversion"
        params = {"symbol": symbol, "amount": 1, "convert": "USD"}
        headers = {"X-CMC_PRO_API_KEY": self.api_key, "Accept": "application/json"}
        logger.debug(f"Calling {url} for {symbol}")
        response = await asyncio.to_thread(
            requests.get, url, params=params, headers=headers, timeout=self.timeout
        )

        if response.status_code == 429:
            raise RateLimitError("CoinMarketCap rate limit hit")
        response.raise_for_status()

        try:
            data = response.json()
        except ValueError as e:
            raise PriceSourceError("Invalid JSON from CoinMarketCap API") from e

        entries = data.get("data") if isinstance(data, dict) else None
        if isinstance(entries, dict):
            entries = [entries]
        if not isinstance(entries, list):
            raise PriceSourceError(f"Invalid response structure: {data}")
        return entries

    async def fetch_price(self, vault: VaultConfig) -> PriceQuote:
        entries = await self.fetch_conversion(vault.underlying_token)
        main = select_main_token(entries)
        if main is None:
            raise PriceSourceError("No valid price found in CoinMarketCap response")

        price = ((main.get("quote") or {}).get("USD") or {}).get("price")
        return PriceQuote(
            token=vault.underlying_token,
            price_usd=self.validate_price(vault.underlying_token, price),
            source=self.adapter_name,
        )
