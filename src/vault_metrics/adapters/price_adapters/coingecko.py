from __future__ import annotations

import asyncio
import logging

import backoff
import requests

from ...settings import MetricsSettings
from ...vaults import VaultConfig
from .base import BasePriceAdapter, PriceQuote, PriceSourceError, RateLimitError

logger = logging.getLogger(__name__)

RETRYABLE_STATUS = {500, 502, 503, 504}


class CoinGeckoAdapter(BasePriceAdapter):
    """USD prices from the CoinGecko ``simple/price`` endpoint, keyed by coingecko id."""

    def __init__(self, config: MetricsSettings):
        super().__init__(config)
        self.api_base_url = config.coingecko_api_url.rstrip("/")
        self.timeout = config.price_request_timeout

    @property
    def adapter_name(self) -> str:
        return "coingecko"

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
    async def fetch_simple_price(self, coingecko_id: str) -> dict:
        url = f"{self.api_base_url}/simple/price"
        params = {"ids": coingecko_id, "vs_currencies": "usd"}
        logger.debug(f"Calling {url} for {coingecko_id}")
        response = await asyncio.to_thread(
            requests.get, url, params=params, timeout=self.timeout
        )
        logger.debug("CoinGecko response status: %s", response.status_code)

        # Rate limiting is not retried here; the caller falls back to another source.
        if response.status_code == 429:
            raise RateLimitError("CoinGecko rate limit hit")
        response.raise_for_status()

        try:
            data = response.json()
        except ValueError as e:
            raise PriceSourceError("Invalid JSON from CoinGecko API") from e
        if not isinstance(data, dict):
            raise PriceSourceError(f"Invalid response structure: {data}")
        return data

    async def fetch_price(self, vault: VaultConfig) -> PriceQuote:
        if not vault.coingecko_id:
            raise PriceSourceError(f"Vault {vault.id} has no coingecko id")

        data = await self.fetch_simple_price(vault.coingecko_id)
        entry = data.get(vault.coingecko_id)
        if not isinstance(entry, dict):
            raise PriceSourceError(f"No price data found for {vault.coingecko_id}")

        price = self.validate_price(vault.underlying_token, entry.get("usd"))
        return PriceQuote(
            token=vault.underlying_token, price_usd=price, source=self.adapter_name
        )
