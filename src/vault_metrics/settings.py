"""Settings module with unified configuration precedence: CLI > ENV > CONFIG FILE."""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from pydantic import Field, SecretStr, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from .constants import (
    DEFAULT_COINGECKO_API_URL,
    DEFAULT_COINMARKETCAP_API_URL,
    DEFAULT_MONGO_COLLECTION,
)
from .vaults import VaultConfig

load_dotenv()

SECRET_FIELDS = {"mongo_uri", "coinmarketcap_api_key"}
LOG_LEVELS = ("TRACE", "DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class TomlConfigSource(PydanticBaseSettingsSource):
    """Lowest-precedence source reading a TOML file (top-level or ``[vault_metrics]``)."""

    def __init__(self, settings_cls: type[BaseSettings], path: Path | None):
        super().__init__(settings_cls)
        self._path = path

    def get_field_value(self, field: Any, field_name: str) -> tuple[Any, str, bool]:
        return None, "", False

    def _resolve_path(self) -> Path | None:
        if self._path:
            return self._path if self._path.exists() else None

        local_config = Path("vault-metrics.toml")
        user_config = Path.home() / ".config" / "vault-metrics" / "config.toml"
        if local_config.exists():
            return local_config
        if user_config.exists():
            return user_config
        return None

    def __call__(self) -> dict[str, Any]:
        path = self._resolve_path()
        if path is None:
            return {}

        with path.open("rb") as f:
            data = tomllib.load(f)
        body = data.get("vault_metrics", data)
        if not isinstance(body, dict):
            return {}

        for key in SECRET_FIELDS:
            if key in body:
                raise ValueError(
                    f"Security violation: '{key}' found in TOML config file. "
                    f"Secrets must only be provided via environment variables or CLI flags."
                )

        return body


class MetricsSettings(BaseSettings):
    """Single source of truth for configuration. Values may come from:
    - CLI (init kwargs)
    - ENV / .env (prefixed with VAULT_METRICS_)
    - Config file (TOML), lowest precedence

    Do not read os.environ or files elsewhere in the codebase.
    """

    # --- event store ---
    mongo_uri: SecretStr | None = None
    mongo_collection: str = DEFAULT_MONGO_COLLECTION
    query_timeout_seconds: float = Field(default=10.0, gt=0)

    # --- query windows ---
    recent_events_limit: int = Field(default=50, gt=0)
    bulk_tvl_events_limit: int = Field(default=5, gt=0)
    max_concurrent_queries: int = Field(default=8, gt=0)

    # --- caching ---
    cache_ttl_seconds: float = Field(default=30.0, ge=0)
    bulk_cache_ttl_seconds: float = Field(default=180.0, ge=0)

    # --- price oracle ---
    coingecko_api_url: str = DEFAULT_COINGECKO_API_URL
    coinmarketcap_api_url: str = DEFAULT_COINMARKETCAP_API_URL
    coinmarketcap_api_key: SecretStr | None = None
    price_cache_seconds: float = Field(default=60.0, ge=0)
    price_rate_limit_delay: float = Field(default=1.0, ge=0)
    price_request_timeout: float = Field(default=10.0, gt=0)

    # --- logging ---
    log_level: str = "INFO"

    # --- vault registry (config file only; empty means built-in defaults) ---
    vaults: list[VaultConfig] = Field(default_factory=list)

    model_config = SettingsConfigDict(
        env_prefix="VAULT_METRICS_",
        env_file=".env",
        extra="ignore",  # ignore unknown keys in env/config file
    )

    @field_validator("mongo_uri", "coinmarketcap_api_key", mode="before")
    @classmethod
    def wrap_secrets(cls, v: Any) -> SecretStr | None:
        """Wrap string secrets in SecretStr."""
        if v is None or isinstance(v, SecretStr):
            return v
        return SecretStr(v)

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(LOG_LEVELS)}")
        return level

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Custom config-file source with explicit precedence: CLI > ENV > FILE."""
        env_cfg = os.environ.get("VAULT_METRICS_CONFIG")
        cfg_path = Path(env_cfg) if env_cfg else None

        return (
            init_settings,  # CLI (highest)
            env_settings,  # ENV
            dotenv_settings,  # .env
            TomlConfigSource(settings_cls, cfg_path),  # CONFIG (lowest)
            file_secret_settings,  # optional secrets dir
        )

    def as_safe_dict(self) -> dict[str, Any]:
        """Return the config as a dict with secrets redacted."""
        data = self.model_dump(mode="json")
        for key in SECRET_FIELDS:
            if getattr(self, key):
                data[key] = "***redacted***"
        return data

    @property
    def mongo_uri_required(self) -> str:
        """Get the MongoDB URI, raising ValueError if not set."""
        if self.mongo_uri is None:
            raise ValueError("mongo_uri must be configured")
        return self.mongo_uri.get_secret_value()
