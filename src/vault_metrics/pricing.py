"""Token USD prices with caching and source fallback."""

from __future__ import annotations

import asyncio
import time
from typing import Callable, Sequence

from .adapters import PRICE_ADAPTERS
from .adapters.price_adapters import BasePriceAdapter, PriceQuote, RateLimitError
from .cache import TTLCache
from .logger import get_logger
from .settings import MetricsSettings
from .vaults import VaultNotFoundError, VaultRegistry

logger = get_logger(__name__)


class PriceUnavailableError(Exception):
    """Raised when every price source failed for a token."""

    def __init__(self, token: str, errors: dict[str, Exception]):
        details = "; ".join(f"{name}: {exc}" for name, exc in errors.items())
        super().__init__(f"All price sources failed for {token} ({details})")
        self.token = token
        self.errors = errors


class RateLimiter:
    """Enforce a minimum delay between consecutive outbound requests."""

    def __init__(self, min_interval: float, clock: Callable[[], float] = time.monotonic):
        self._min_interval = min_interval
        self._clock = clock
        self._lock = asyncio.Lock()
        self._last_request: float | None = None

    async def wait(self) -> None:
        async with self._lock:
            if self._last_request is not None:
                remaining = self._min_interval - (self._clock() - self._last_request)
                if remaining > 0:
                    await asyncio.sleep(remaining)
            self._last_request = self._clock()


class PriceOracle:
    """Quote a vault's underlying token in USD, trying each adapter in turn."""

    def __init__(
        self,
        settings: MetricsSettings,
        registry: VaultRegistry,
        adapters: Sequence[BasePriceAdapter] | None = None,
    ):
        self.settings = settings
        self.registry = registry
        self.adapters = (
            list(adapters)
            if adapters is not None
            else [AdapterClass(settings) for AdapterClass in PRICE_ADAPTERS]
        )
        self._cache: TTLCache[PriceQuote] = TTLCache(settings.price_cache_seconds)
        self._rate_limiter = RateLimiter(settings.price_rate_limit_delay)

    async def get_price(self, token: str) -> PriceQuote:
        """USD price of ``token`` (underlying token symbol, case-insensitive).

        Raises:
            VaultNotFoundError: If no configured vault uses ``token``
            PriceUnavailableError: If every price source failed
        """
        vault = self.registry.find_by_token(token)
        if vault is None:
            raise VaultNotFoundError(token)

        cache_key = vault.underlying_token.lower()
        cached = self._cache.get(cache_key)
        if cached is not None:
            logger.debug("Using cached price for %s", vault.underlying_token)
            return cached

        errors: dict[str, Exception] = {}
        for adapter in self.adapters:
            await self._rate_limiter.wait()
            try:
                quote = await adapter.fetch_price(vault)
            except RateLimitError as e:
                logger.warning("%s rate limited, trying next source", adapter.adapter_name)
                errors[adapter.adapter_name] = e
                continue
            except Exception as e:
                logger.warning(
                    "%s failed for %s: %s", adapter.adapter_name, vault.underlying_token, e
                )
                errors[adapter.adapter_name] = e
                continue

            logger.info(
                "Price for %s: %s USD (%s)",
                quote.token,
                quote.price_usd,
                quote.source,
            )
            return self._cache.set(cache_key, quote)

        raise PriceUnavailableError(vault.underlying_token, errors)


async def fetch_token_price(settings: MetricsSettings, token: str) -> PriceQuote:
    """One-shot price lookup on the configured vaults."""
    oracle = PriceOracle(settings, VaultRegistry.from_configs(settings.vaults))
    return await oracle.get_price(token)
