from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest

from vault_metrics.adapters.price_adapters import (
    BasePriceAdapter,
    PriceQuote,
    PriceSourceError,
    RateLimitError,
)
from vault_metrics.pricing import PriceOracle, PriceUnavailableError, RateLimiter, fetch_token_price
from vault_metrics.vaults import VaultNotFoundError


class StubAdapter(BasePriceAdapter):
    def __init__(self, config, name: str, outcome):
        super().__init__(config)
        self._name = name
        self.outcome = outcome
        self.calls = 0

    @property
    def adapter_name(self) -> str:
        return self._name

    async def fetch_price(self, vault):
        self.calls += 1
        if isinstance(self.outcome, Exception):
            raise self.outcome
        return PriceQuote(token=vault.underlying_token, price_usd=self.outcome, source=self._name)


@pytest.mark.asyncio
async def test_first_source_wins(settings, registry):
    primary = StubAdapter(settings, "coingecko", 1.0)
    fallback = StubAdapter(settings, "coinmarketcap", 2.0)

    quote = await PriceOracle(settings, registry, [primary, fallback]).get_price("usdc")

    assert quote.source == "coingecko"
    assert fallback.calls == 0


@pytest.mark.asyncio
async def test_rate_limited_source_falls_back(settings, registry):
    primary = StubAdapter(settings, "coingecko", RateLimitError("429"))
    fallback = StubAdapter(settings, "coinmarketcap", 0.999)

    quote = await PriceOracle(settings, registry, [primary, fallback]).get_price("USDC")

    assert quote.price_usd == 0.999
    assert quote.source == "coinmarketcap"


@pytest.mark.asyncio
async def test_any_failure_falls_back(settings, registry):
    primary = StubAdapter(settings, "coingecko", PriceSourceError("bad payload"))
    fallback = StubAdapter(settings, "coinmarketcap", 3000.0)

    quote = await PriceOracle(settings, registry, [primary, fallback]).get_price("weth")

    assert quote.token == "WETH"
    assert quote.source == "coinmarketcap"


@pytest.mark.asyncio
async def test_all_sources_failing(settings, registry):
    oracle = PriceOracle(
        settings,
        registry,
        [
            StubAdapter(settings, "coingecko", RateLimitError("429")),
            StubAdapter(settings, "coinmarketcap", PriceSourceError("no key")),
        ],
    )

    with pytest.raises(PriceUnavailableError) as exc_info:
        await oracle.get_price("USDC")
    assert set(exc_info.value.errors) == {"coingecko", "coinmarketcap"}


@pytest.mark.asyncio
async def test_prices_are_cached_per_token(settings, registry):
    primary = StubAdapter(settings, "coingecko", 1.0)
    oracle = PriceOracle(settings, registry, [primary])

    await oracle.get_price("USDC")
    await oracle.get_price("usdc")

    assert primary.calls == 1


@pytest.mark.asyncio
async def test_unknown_token(settings, registry):
    with pytest.raises(VaultNotFoundError):
        await PriceOracle(settings, registry, []).get_price("DOGE")


@pytest.mark.asyncio
@patch("vault_metrics.pricing.asyncio.sleep", new_callable=AsyncMock)
async def test_rate_limiter_waits_for_remaining_interval(mock_sleep):
    now = [100.0]
    limiter = RateLimiter(1.0, clock=lambda: now[0])

    await limiter.wait()
    mock_sleep.assert_not_called()

    now[0] = 100.25
    await limiter.wait()
    mock_sleep.assert_awaited_once()
    assert mock_sleep.await_args.args[0] == pytest.approx(0.75)


@pytest.mark.asyncio
async def test_fetch_token_price_uses_configured_adapters(settings):
    with patch(
        "vault_metrics.adapters.price_adapters.coingecko.CoinGeckoAdapter.fetch_price",
        new_callable=AsyncMock,
        return_value=PriceQuote(token="USDC", price_usd=1.0, source="coingecko"),
    ):
        quote = await fetch_token_price(settings, "USDC")

    assert quote.price_usd == 1.0
