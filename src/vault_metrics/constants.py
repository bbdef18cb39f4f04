"""Event types, fixed-point scales and the default vault registry."""

import re
from enum import Enum
from typing import Any


class EventType(str, Enum):
    """Event kinds written to the ``subgraph`` collection by the indexer."""

    TOTAL_ASSETS_UPDATED = "totalAssetsUpdated"
    SETTLE_DEPOSIT = "settleDeposit"
    SETTLE_REDEEM = "settleRedeem"
    HIGH_WATER_MARK_UPDATED = "highWaterMarkUpdated"
    DEPOSIT_REQUEST = "depositRequest"
    REDEEM_REQUEST = "redeemRequest"


WAD = 10**18
SUPPORTED_DECIMALS = frozenset({6, 18})

SECONDS_PER_DAY = 24 * 60 * 60
SECONDS_PER_YEAR = 365 * SECONDS_PER_DAY

# Timestamps at or above this are treated as indexer corruption
MAX_TIMESTAMP = 2**31 - 1

# Subgraph ids are "<tx hash><log index suffix>"
TX_HASH_PATTERN = re.compile(r"^(0x[a-f0-9]{64})")

PPS_DECIMALS = 6
APR_DECIMALS = 2

DEFAULT_MONGO_COLLECTION = "subgraph"
DEFAULT_COINGECKO_API_URL = "https://api.coingecko.com/api/v3"
DEFAULT_COINMARKETCAP_API_URL = "https://pro-api.coinmarketcap.com"

BASE_CHAIN_ID = 8453

DEFAULT_VAULTS: list[dict[str, Any]] = [
    {
        "id": "detrade-core-usdc",
        "name": "DeTrade Core USDC",
        "ticker": "dtUSDC",
        "underlying_token": "USDC",
        "underlying_token_decimals": 6,
        "underlying_token_address": "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913",
        "network": "Base",
        "chain_id": BASE_CHAIN_ID,
        "coingecko_id": "usd-coin",
        "vault_contract": "0x8092cA384D44260ea4feaf7457B629B8DC6f88F0",
        "is_active": True,
    },
    {
        "id": "detrade-core-eth",
        "name": "DeTrade Core ETH",
        "ticker": "dtETH",
        "underlying_token": "WETH",
        "underlying_token_decimals": 18,
        "underlying_token_address": "0x4200000000000000000000000000000000000006",
        "network": "Base",
        "chain_id": BASE_CHAIN_ID,
        "coingecko_id": "ethereum",
        "vault_contract": "0x9b97BFDfE44D1B113ECD4BF2f243ed36acA34523",
        "is_active": True,
    },
    {
        "id": "detrade-core-eurc",
        "name": "DeTrade Core EURC",
        "ticker": "dtEURC",
        "underlying_token": "EURC",
        "underlying_token_decimals": 6,
        "underlying_token_address": "0x60a3e35cc302bfa44cb288bc5a4f316fdb1adb42",
        "network": "Base",
        "chain_id": BASE_CHAIN_ID,
        "coingecko_id": "euro-coin",
        "vault_contract": "0xd4401d8bea82e4e6c40bb26ae3a04d2fb7ca4550",
        "is_active": True,
    },
    {
        "id": "detrade-core-cbbtc",
        "name": "DeTrade Core cbBTC",
        "ticker": "DTCBBTC",
        "underlying_token": "cbBTC",
        "underlying_token_decimals": 8,
        "underlying_token_address": None,
        "network": "Base",
        "chain_id": BASE_CHAIN_ID,
        "coingecko_id": "coinbase-wrapped-btc",
        "vault_contract": "0x1234567890123456789012345678901234567890",
        "is_active": False,
    },
    {
        "id": "dev-detrade-core-usdc",
        "name": "dev DeTrade Core USDC",
        "ticker": "dev-dtUSDC",
        "underlying_token": "USDC",
        "underlying_token_decimals": 6,
        "underlying_token_address": "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913",
        "network": "Base",
        "chain_id": BASE_CHAIN_ID,
        "coingecko_id": "usd-coin",
        "vault_contract": "0xBC29B6c682c447Ddc3143B3D8ba781163FC8A6f2",
        "is_active": True,
    },
]
