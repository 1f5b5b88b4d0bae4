"""Configuration management service with Pydantic Settings.

This module provides centralized configuration management for the
Sport.fun market snapshot builder, loading and validating environment
variables at startup.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_ENV_FILE = ".env"
_ENV_FILE_ENCODING = "utf-8"

ALCHEMY_BASE_MAINNET_URL = "https://base-mainnet.g.alchemy.com/v2/"
DEFAULT_ATHLETE_METADATA_TEMPLATE = "https://api.sport.fun/athletes/{id}/metadata.json"
DEFAULT_NFL_FUN_PLAYERS_DATA_URL = "https://nfl-fun.vercel.app/data/players/players.json"


class RpcSettings(BaseSettings):
    """Base chain JSON-RPC settings."""

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    base_rpc_url: str | None = Field(
        default=None,
        alias="BASE_RPC_URL",
        description="Base RPC endpoint (used directly when it points at Alchemy)",
    )
    alchemy_api_key: SecretStr | None = Field(
        default=None,
        alias="ALCHEMY_API_KEY",
        description="Alchemy API key for Base mainnet",
    )
    max_retries: int = Field(
        default=4,
        alias="RPC_MAX_RETRIES",
        ge=0,
        le=10,
        description="Retry attempts for retryable RPC failures",
    )
    retry_base_seconds: float = Field(
        default=0.3,
        alias="RPC_RETRY_BASE_SECONDS",
        ge=0.0,
        le=10.0,
        description="Base delay for exponential backoff",
    )
    retry_max_delay_seconds: float = Field(
        default=5.0,
        alias="RPC_RETRY_MAX_DELAY_SECONDS",
        ge=0.0,
        le=60.0,
        description="Upper bound for a single backoff delay",
    )
    request_timeout_seconds: float = Field(
        default=30.0,
        alias="RPC_REQUEST_TIMEOUT_SECONDS",
        ge=1.0,
        le=300.0,
        description="Per-request HTTP timeout",
    )

    @field_validator("base_rpc_url")
    @classmethod
    def validate_url(cls, v: str | None) -> str | None:
        """Validate RPC URL format."""
        if v is None:
            return v
        if not v.startswith(("http://", "https://")):
            raise ValueError("BASE_RPC_URL must be an HTTP(S) endpoint")
        return v

    def resolve_url(self) -> str:
        """Return the Alchemy endpoint used for log and asset-transfer queries."""
        if self.base_rpc_url and "alchemy.com" in self.base_rpc_url:
            return self.base_rpc_url
        if self.alchemy_api_key is None:
            raise ValueError("ALCHEMY_API_KEY is not set and BASE_RPC_URL is not an Alchemy endpoint")
        return f"{ALCHEMY_BASE_MAINNET_URL}{self.alchemy_api_key.get_secret_value()}"


class RedisSettings(BaseSettings):
    """Redis connection settings (optional shared cache tier)."""

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    url: str | None = Field(
        default=None,
        alias="REDIS_URL",
        description="Redis connection string; memory-only cache when unset",
    )

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str | None) -> str | None:
        """Validate Redis URL format."""
        if v is None:
            return v
        if not v.startswith(("redis://", "rediss://")):
            raise ValueError("REDIS_URL must start with redis:// or rediss://")
        return v


class MarketSettings(BaseSettings):
    """Snapshot aggregation settings."""

    model_config = SettingsConfigDict(env_prefix="MARKET_", extra="ignore")

    cache_dir: Path = Field(
        default=Path(".cache/sportfun/market"),
        alias="MARKET_CACHE_DIR",
        description="Directory for token universe and last-good snapshot files",
    )
    snapshot_ttl_seconds: int = Field(
        default=120,
        alias="MARKET_SNAPSHOT_TTL_SECONDS",
        ge=1,
        le=3600,
        description="In-process snapshot cache TTL",
    )
    snapshot_stale_seconds: int = Field(
        default=24 * 3600,
        alias="MARKET_SNAPSHOT_STALE_SECONDS",
        ge=60,
        le=30 * 24 * 3600,
        description="Max age of the persisted last-good snapshot",
    )
    token_universe_ttl_seconds: int = Field(
        default=6 * 3600,
        alias="MARKET_TOKEN_UNIVERSE_TTL_SECONDS",
        ge=60,
        le=7 * 24 * 3600,
        description="Age under which the disk token universe is reused as-is",
    )
    token_universe_days: int = Field(
        default=180,
        alias="MARKET_TOKEN_UNIVERSE_DAYS",
        ge=1,
        le=3650,
        description="Lookback for token universe scans",
    )
    log_chunk_blocks: int = Field(
        default=2500,
        alias="MARKET_LOG_CHUNK_BLOCKS",
        ge=1,
        le=500_000,
        description="Starting block chunk size for eth_getLogs",
    )
    log_min_chunk_blocks: int = Field(
        default=200,
        alias="MARKET_LOG_MIN_CHUNK_BLOCKS",
        ge=1,
        le=500_000,
        description="Chunk size at or below which a failing chunk propagates",
    )
    price_batch_size: int = Field(
        default=200,
        alias="MARKET_PRICE_BATCH_SIZE",
        ge=1,
        le=5000,
        description="Token ids per getPrices eth_call",
    )
    concurrency: int = Field(
        default=6,
        alias="MARKET_CONCURRENCY",
        ge=1,
        le=64,
        description="Worker pool size for block timestamp and metadata lookups",
    )
    max_transfer_pages: int = Field(
        default=20,
        alias="MARKET_MAX_TRANSFER_PAGES",
        ge=1,
        le=1000,
        description="Page cap for asset-transfer enumeration",
    )
    block_at_ttl_seconds: int = Field(
        default=3600,
        alias="MARKET_BLOCK_AT_TTL_SECONDS",
        ge=1,
        le=86_400,
        description="TTL for timestamp -> block lookups",
    )


class MetadataSettings(BaseSettings):
    """ERC-1155 metadata resolution settings."""

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    template: str = Field(
        default=DEFAULT_ATHLETE_METADATA_TEMPLATE,
        alias="SPORTFUN_ATHLETE_METADATA_TEMPLATE",
        description="Athlete metadata URL template ({id} is the decimal token id)",
    )
    default_template: str = Field(
        default=DEFAULT_ATHLETE_METADATA_TEMPLATE,
        alias="SPORTFUN_ATHLETE_METADATA_DEFAULT_TEMPLATE",
        description="Template tried after the configured one",
    )
    cache_path: Path = Field(
        default=Path(".cache/sportfun/erc1155-metadata.json"),
        alias="SPORTFUN_METADATA_CACHE_PATH",
        description="JSON file backing the per-token metadata cache",
    )
    cache_ttl_seconds: int = Field(
        default=24 * 3600,
        alias="SPORTFUN_METADATA_CACHE_TTL_SECONDS",
        ge=60,
        le=90 * 24 * 3600,
        description="Age under which cached metadata skips the network",
    )
    http_timeout_seconds: float = Field(
        default=10.0,
        alias="SPORTFUN_METADATA_HTTP_TIMEOUT_SECONDS",
        ge=0.5,
        le=120.0,
        description="Timeout for metadata HTTP fetches",
    )
    ipfs_gateway: str = Field(
        default="https://ipfs.io/ipfs/",
        alias="SPORTFUN_IPFS_GATEWAY",
    )
    arweave_gateway: str = Field(
        default="https://arweave.net/",
        alias="SPORTFUN_ARWEAVE_GATEWAY",
    )

    @field_validator("template", "default_template", "ipfs_gateway", "arweave_gateway")
    @classmethod
    def validate_http(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("metadata templates and gateways must be HTTP(S) URLs")
        return v


class FallbackFeedSettings(BaseSettings):
    """External NFL player feed used when on-chain metadata is insufficient."""

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    url: str = Field(
        default=DEFAULT_NFL_FUN_PLAYERS_DATA_URL,
        alias="NFL_FUN_PLAYERS_DATA_URL",
        description="Players JSON feed",
    )
    snapshot_path: Path = Field(
        default=Path(".cache/sportfun/market/nfl-fallback-players.json"),
        alias="NFL_FALLBACK_SNAPSHOT_PATH",
        description="Last successful feed download",
    )
    bundled_snapshot_path: Path | None = Field(
        default=None,
        alias="NFL_FALLBACK_BUNDLED_SNAPSHOT_PATH",
        description="Read-only snapshot shipped with the deployment",
    )
    cache_ttl_seconds: int = Field(
        default=6 * 3600,
        alias="NFL_FALLBACK_CACHE_TTL_SECONDS",
        ge=60,
        le=7 * 24 * 3600,
    )
    stale_max_age_seconds: int = Field(
        default=14 * 24 * 3600,
        alias="NFL_FALLBACK_STALE_MAX_AGE_SECONDS",
        ge=60,
        le=365 * 24 * 3600,
    )

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("NFL_FUN_PLAYERS_DATA_URL must be an HTTP(S) URL")
        return v


class Settings(BaseSettings):
    """Main application settings.

    Loads configuration from environment variables with support for
    .env files via python-dotenv.

    Example:
        ```python
        from sportfun_market.config import get_settings

        settings = get_settings()
        print(settings.market.cache_dir)
        print(settings.log_level)
        ```
    """

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE,
        env_file_encoding=_ENV_FILE_ENCODING,
        extra="ignore",
    )

    # NOTE: Each nested BaseSettings must be given the same env_file, otherwise it
    # will only read from the process environment (and ignore `.env`).
    rpc: RpcSettings = Field(
        default_factory=lambda: RpcSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    redis: RedisSettings = Field(
        default_factory=lambda: RedisSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    market: MarketSettings = Field(
        default_factory=lambda: MarketSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    metadata: MetadataSettings = Field(
        default_factory=lambda: MetadataSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    fallback_feed: FallbackFeedSettings = Field(
        default_factory=lambda: FallbackFeedSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )

    name_overrides_path: Path | None = Field(
        default=None,
        alias="NAME_OVERRIDES_PATH",
        description="JSON object of manual token name overrides",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        alias="LOG_LEVEL",
        description="Logging level",
    )

    def get_logging_level(self) -> int:
        """Get the numeric logging level."""
        level: int = getattr(logging, self.log_level)
        return level

    def redacted_summary(self) -> dict[str, str | dict[str, str]]:
        """Get a summary of settings with secrets redacted.

        Returns:
            Dictionary of settings with sensitive values masked.
        """
        return {
            "rpc": {
                "base_rpc_url": self._redact_rpc_url(self.rpc.base_rpc_url) if self.rpc.base_rpc_url else "(not set)",
                "alchemy_api_key": "(set)" if self.rpc.alchemy_api_key else "(not set)",
                "max_retries": str(self.rpc.max_retries),
            },
            "redis_url": self._redact_url(self.redis.url) if self.redis.url else "(not set)",
            "market": {
                "cache_dir": str(self.market.cache_dir),
                "snapshot_ttl_seconds": str(self.market.snapshot_ttl_seconds),
                "token_universe_days": str(self.market.token_universe_days),
                "log_chunk_blocks": str(self.market.log_chunk_blocks),
            },
            "metadata": {
                "template": self.metadata.template,
                "cache_path": str(self.metadata.cache_path),
            },
            "fallback_feed_url": self.fallback_feed.url,
            "log_level": self.log_level,
        }

    @staticmethod
    def _redact_rpc_url(url: str) -> str:
        """Mask a provider key embedded in the URL path (e.g. Alchemy /v2/<key>)."""
        marker = "/v2/"
        if marker in url:
            return url[: url.index(marker) + len(marker)] + "***"
        return url

    @staticmethod
    def _redact_url(url: str) -> str:
        """Redact password from URL if present."""
        if "@" in url and "://" in url:
            protocol_end = url.index("://") + 3
            at_pos = url.index("@")
            creds_part = url[protocol_end:at_pos]
            if ":" in creds_part:
                username = creds_part.split(":")[0]
                return f"{url[:protocol_end]}{username}:***@{url[at_pos + 1 :]}"
        return url


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get the application settings singleton.

    Returns:
        The Settings instance.

    Raises:
        ValidationError: If environment variables have invalid values.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache.

    Useful for testing when you need to reload settings with
    different environment variables.
    """
    get_settings.cache_clear()
