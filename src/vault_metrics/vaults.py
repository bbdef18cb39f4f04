"""Vault reference data and lookup."""

from __future__ import annotations

from typing import Iterable

from pydantic import BaseModel, ConfigDict

from .constants import DEFAULT_VAULTS, SUPPORTED_DECIMALS


class VaultNotFoundError(LookupError):
    """Raised for a vault id the registry does not know."""

    def __init__(self, vault_id: str):
        super().__init__(f"Vault not found: {vault_id}")
        self.vault_id = vault_id


class VaultInactiveError(ValueError):
    """Raised when yield figures are requested for a vault that is not active."""

    def __init__(self, vault_id: str):
        super().__init__(f"Vault is not active: {vault_id}")
        self.vault_id = vault_id


class UnsupportedDecimalsError(ValueError):
    """Raised when a vault's underlying token is neither 6 nor 18 decimals."""

    def __init__(self, vault_id: str, decimals: int):
        supported = ", ".join(str(d) for d in sorted(SUPPORTED_DECIMALS))
        super().__init__(
            f"PPS/TVL calculation is only supported for vaults with {supported} decimals "
            f"(vault {vault_id} has {decimals})"
        )
        self.vault_id = vault_id
        self.decimals = decimals


class VaultConfig(BaseModel):
    """Static description of one vault."""

    id: str
    name: str = ""
    ticker: str = ""
    underlying_token: str = ""
    underlying_token_decimals: int
    underlying_token_address: str | None = None
    network: str = ""
    chain_id: int | None = None
    coingecko_id: str | None = None
    vault_contract: str | None = None
    is_active: bool = True

    model_config = ConfigDict(extra="ignore", frozen=True)


class VaultRegistry:
    """Read-only lookup over the configured vaults."""

    def __init__(self, vaults: Iterable[VaultConfig]):
        self._vaults = {vault.id: vault for vault in vaults}

    @classmethod
    def default(cls) -> VaultRegistry:
        return cls(VaultConfig.model_validate(raw) for raw in DEFAULT_VAULTS)

    @classmethod
    def from_configs(cls, vaults: list[VaultConfig]) -> VaultRegistry:
        """Use the configured vaults, falling back to the built-in list when empty."""
        return cls(vaults) if vaults else cls.default()

    def __contains__(self, vault_id: object) -> bool:
        return vault_id in self._vaults

    def all(self) -> list[VaultConfig]:
        return list(self._vaults.values())

    def get_vault_config(self, vault_id: str) -> VaultConfig:
        vault = self._vaults.get(vault_id)
        if vault is None:
            raise VaultNotFoundError(vault_id)
        return vault

    def require_supported_decimals(self, vault_id: str) -> VaultConfig:
        """Get a vault whose decimals allow PPS/TVL normalization."""
        vault = self.get_vault_config(vault_id)
        if vault.underlying_token_decimals not in SUPPORTED_DECIMALS:
            raise UnsupportedDecimalsError(vault_id, vault.underlying_token_decimals)
        return vault

    def require_active(self, vault_id: str) -> VaultConfig:
        vault = self.require_supported_decimals(vault_id)
        if not vault.is_active:
            raise VaultInactiveError(vault_id)
        return vault

    def find_by_token(self, symbol: str) -> VaultConfig | None:
        """First vault whose underlying token matches ``symbol`` (case-insensitive)."""
        wanted = symbol.lower()
        return next(
            (v for v in self._vaults.values() if v.underlying_token.lower() == wanted),
            None,
        )
