from __future__ import annotations

import os

import pytest

from vault_metrics.settings import MetricsSettings
from vault_metrics.vaults import VaultConfig, VaultRegistry


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Keep the developer's env, .env and config files out of every test."""
    for key in list(os.environ):
        if key.startswith("VAULT_METRICS_"):
            monkeypatch.delenv(key)
    monkeypatch.setenv("VAULT_METRICS_CONFIG", str(tmp_path / "absent.toml"))
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def settings():
    return MetricsSettings(price_rate_limit_delay=0)


@pytest.fixture
def usdc_vault():
    return VaultConfig(
        id="test-usdc",
        name="Test USDC",
        ticker="tUSDC",
        underlying_token="USDC",
        underlying_token_decimals=6,
        coingecko_id="usd-coin",
    )


@pytest.fixture
def eth_vault():
    return VaultConfig(
        id="test-eth",
        name="Test ETH",
        ticker="tETH",
        underlying_token="WETH",
        underlying_token_decimals=18,
        coingecko_id="ethereum",
    )


@pytest.fixture
def btc_vault():
    return VaultConfig(
        id="test-btc",
        name="Test cbBTC",
        underlying_token="cbBTC",
        underlying_token_decimals=8,
        coingecko_id="coinbase-wrapped-btc",
    )


@pytest.fixture
def retired_vault():
    return VaultConfig(
        id="retired-usdc",
        underlying_token="USDC",
        underlying_token_decimals=6,
        is_active=False,
    )


@pytest.fixture
def registry(usdc_vault, eth_vault, btc_vault, retired_vault):
    return VaultRegistry([usdc_vault, eth_vault, btc_vault, retired_vault])


@pytest.fixture
def tx_hash():
    def _tx_hash(n: int) -> str:
        return "0x" + f"{n:064x}"

    return _tx_hash


@pytest.fixture
def settlement_documents(tx_hash):
    """Event documents of one settlement transaction.

    A ``totalAssetsUpdated`` record plus the companion event in the same
    transaction, with the hash either explicit or only as the ``id`` prefix.
    """

    def _build(
        n: int,
        timestamp: int,
        total_assets: str,
        total_supply: str | None = None,
        companion: str = "settleDeposit",
        explicit_hash: bool = True,
    ) -> list[dict]:
        tx = tx_hash(n)
        update = {
            "id": f"{tx}-1",
            "type": "totalAssetsUpdated",
            "blockTimestamp": timestamp,
            "totalAssets": total_assets,
        }
        if companion == "highWaterMarkUpdated":
            other = {
                "id": f"{tx}-2",
                "type": companion,
                "blockTimestamp": timestamp,
                "newHighWaterMark": total_supply,
            }
        else:
            other = {
                "id": f"{tx}-2",
                "type": companion,
                "blockTimestamp": timestamp,
                "totalAssets": total_assets,
                "totalSupply": total_supply,
            }
        if explicit_hash:
            update["transactionHash"] = tx
            other["transactionHash"] = tx
        return [update, other]

    return _build


@pytest.fixture
def pps_documents(settlement_documents):
    """Documents producing a USDC (6 decimals) PPS point per ``(timestamp, pps)`` pair.

    Total supply is fixed at 1000 shares so that ``pps`` maps to total assets
    exactly.
    """

    def _build(series: list[tuple[int, float]]) -> list[dict]:
        documents: list[dict] = []
        for n, (timestamp, pps) in enumerate(series, start=1):
            total_assets = str(round(pps * 1_000_000) * 1000)
            documents += settlement_documents(
                n, timestamp, total_assets, str(1000 * 10**18)
            )
        return documents

    return _build
