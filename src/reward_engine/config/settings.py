"""Application settings loaded from environment variables and config files.

Configuration is loaded from (highest priority first):
1. Environment variables (prefix: ``REWARDENGINE_``, nested via ``__``)
2. YAML config file (``REWARDENGINE_CONFIG_PATH`` env var)
3. Defaults defined here
"""

from __future__ import annotations

import enum
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Self
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

SECONDS_PER_DAY = 86_400

# ---------------------------------------------------------------------------
# Enums for validated choices
# ---------------------------------------------------------------------------


class DatabaseEngine(enum.StrEnum):
    """Supported database engines."""

    SQLITE = "sqlite"
    POSTGRESQL = "postgresql"


class CacheEngine(enum.StrEnum):
    """Supported cache backends."""

    MEMORY = "memory"
    REDIS = "redis"


class Commitment(enum.StrEnum):
    """Ledger commitment level used for reads and confirmations."""

    PROCESSED = "processed"
    CONFIRMED = "confirmed"
    FINALIZED = "finalized"


class Coordinator(enum.StrEnum):
    """Backend used for the single-scheduler lease."""

    MEMORY = "memory"
    REDIS = "redis"


# ---------------------------------------------------------------------------
# Sub-config models
# ---------------------------------------------------------------------------


class ServerConfig(BaseSettings):
    """HTTP server settings."""

    model_config = SettingsConfigDict(
        env_prefix="REWARDENGINE_SERVER__",
        case_sensitive=False,
    )

    host: str = "0.0.0.0"  # noqa: S104
    port: int = 3010
    cors_origins: list[str] = Field(
        default_factory=lambda: ["*"],
        description="Origins allowed to read the query API from a browser",
    )


class DatabaseConfig(BaseSettings):
    """Database settings."""

    model_config = SettingsConfigDict(
        env_prefix="REWARDENGINE_DB__",
        case_sensitive=False,
    )

    engine: DatabaseEngine = Field(
        default=DatabaseEngine.SQLITE,
        description="Database backend: sqlite or postgresql",
    )
    dsn: str = Field(
        default="sqlite+aiosqlite:///./reward_engine.db",
        description="Async database connection string",
    )
    max_idle_connections: int = 5
    max_open_connections: int = 10
    debug_sql: bool = False


class CacheConfig(BaseSettings):
    """Cache settings."""

    model_config = SettingsConfigDict(
        env_prefix="REWARDENGINE_CACHE__",
        case_sensitive=False,
    )

    engine: CacheEngine = Field(
        default=CacheEngine.MEMORY,
        description="Cache backend: memory or redis",
    )
    url: str = "redis://localhost:6379/0"
    max_connections: int = 10
    ttl_seconds: int = 300


class LedgerConfig(BaseSettings):
    """Ledger RPC endpoint and the accounts the engine operates on."""

    model_config = SettingsConfigDict(
        env_prefix="REWARDENGINE_LEDGER__",
        case_sensitive=False,
    )

    rpc_url: str = "https://api.mainnet-beta.solana.com"
    commitment: Commitment = Commitment.CONFIRMED
    confirm_timeout: float = Field(default=60.0, gt=0)
    poll_interval: float = Field(default=1.0, gt=0)
    request_timeout: float = 30.0

    token_mint: str = ""
    token_program_id: str = Field(
        default="",
        description="Program owning the transfer-fee token accounts",
    )
    native_mint: str = "So11111111111111111111111111111111111111112"
    operational_wallet: str = ""
    operational_token_account: str = ""
    native_output_account: str = Field(
        default="",
        description="Wrapped-native account the swap pays into; proceeds are measured here",
    )
    treasury_wallet: str = ""
    transaction_factory: str = Field(
        default="",
        description="Import path 'module:callable' returning the signing TransactionFactory",
    )


class PoolConfig(BaseSettings):
    """Liquidity pool and trade API settings."""

    model_config = SettingsConfigDict(
        env_prefix="REWARDENGINE_POOL__",
        case_sensitive=False,
    )

    api_url: str = "https://api-v3.raydium.io"
    swap_host: str = "https://transaction-v1.raydium.io"
    pool_id: str = ""
    slippage_bps: int = Field(default=200, ge=0, le=10_000)
    max_price_impact_bps: int = Field(default=500, ge=0, le=10_000)
    min_liquidity_ratio: int = Field(default=2, ge=1)
    tx_version: str = "V0"
    keys_cache_ttl: int = 3600


class DistributionConfig(BaseSettings):
    """Cycle timing, harvest threshold and split parameters."""

    model_config = SettingsConfigDict(
        env_prefix="REWARDENGINE_DISTRIBUTION__",
        case_sensitive=False,
    )

    cycle_seconds: int = Field(default=300, gt=0)
    epoch_timezone: str = "UTC"
    tick_seconds: float = Field(default=60.0, gt=0)
    min_harvest_threshold: int = Field(default=20_000, ge=0)
    harvest_batch_size: int = Field(default=20, ge=1)
    holders_share_bps: int = Field(default=7_500, ge=0, le=10_000)
    max_payout_retries: int = Field(default=3, ge=1)
    payout_retry_delay: float = Field(default=2.0, ge=0)
    min_payout: int = Field(
        default=100_000,
        ge=0,
        description="Smallest native amount worth a transfer; smaller allocations are retained",
    )
    min_holder_balance: int = 0
    blacklist: list[str] = Field(default_factory=list)
    retention_epochs: int = Field(default=30, ge=1)

    @field_validator("cycle_seconds")
    @classmethod
    def _divides_day(cls, value: int) -> int:
        if SECONDS_PER_DAY % value != 0:
            msg = f"cycle_seconds must divide {SECONDS_PER_DAY}, got {value}"
            raise ValueError(msg)
        return value

    @field_validator("epoch_timezone")
    @classmethod
    def _known_timezone(cls, value: str) -> str:
        """Accept only zones with one UTC offset all year, so every epoch is 24 hours."""
        try:
            zone = ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            msg = f"unknown timezone: {value}"
            raise ValueError(msg) from exc
        year = datetime.now(UTC).year
        offsets = {
            datetime(y, month, 15, tzinfo=zone).utcoffset()
            for y in (year, year + 1)
            for month in (1, 7)
        }
        if len(offsets) > 1:
            msg = f"timezone {value} observes daylight saving time; use a fixed-offset zone"
            raise ValueError(msg)
        return value

    @property
    def tz(self) -> ZoneInfo:
        """The epoch reference timezone."""
        return ZoneInfo(self.epoch_timezone)


class SettlementConfig(BaseSettings):
    """Retrying of payouts left outstanding by a cycle."""

    model_config = SettingsConfigDict(
        env_prefix="REWARDENGINE_SETTLEMENT__",
        case_sensitive=False,
    )

    enabled: bool = True
    period: float = 900.0
    max_attempts: int = Field(default=6, ge=1)


class ClusterConfig(BaseSettings):
    """Scheduler lease coordination."""

    model_config = SettingsConfigDict(
        env_prefix="REWARDENGINE_CLUSTER__",
        case_sensitive=False,
    )

    coordinator: Coordinator = Coordinator.MEMORY
    redis_url: str = "redis://localhost:6379/2"
    prefix: str = "reward_engine_"
    lock_ttl: int = 600


class MetricsConfig(BaseSettings):
    """Prometheus metrics settings."""

    model_config = SettingsConfigDict(
        env_prefix="REWARDENGINE_METRICS__",
        case_sensitive=False,
    )

    enabled: bool = True


class TaskConfig(BaseSettings):
    """Background task settings."""

    model_config = SettingsConfigDict(
        env_prefix="REWARDENGINE_TASK__",
        case_sensitive=False,
    )

    enabled: bool = True


class NotificationsConfig(BaseSettings):
    """Distribution change watcher settings."""

    model_config = SettingsConfigDict(
        env_prefix="REWARDENGINE_NOTIFICATIONS__",
        case_sensitive=False,
    )

    enabled: bool = True
    consumer_id: str = "default"
    poll_seconds: float = 30.0


# ---------------------------------------------------------------------------
# Top-level config
# ---------------------------------------------------------------------------


def _load_yaml(path: str | Path) -> dict[str, Any]:
    """Load a YAML configuration file and return its contents as a dict.

    Returns an empty dict if the file doesn't exist or is empty.
    """
    p = Path(path)
    if not p.exists():
        return {}
    text = p.read_text(encoding="utf-8")
    data = yaml.safe_load(text)
    return data if isinstance(data, dict) else {}


class AppConfig(BaseSettings):
    """Top-level application configuration.

    Loads settings from environment variables (``REWARDENGINE_`` prefix),
    an optional YAML file, and built-in defaults.
    """

    model_config = SettingsConfigDict(
        env_prefix="REWARDENGINE_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    debug: bool = False
    version: str = "0.1.0"
    config_path: str = ""

    server: ServerConfig = Field(default_factory=ServerConfig)
    db: DatabaseConfig = Field(default_factory=DatabaseConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    ledger: LedgerConfig = Field(default_factory=LedgerConfig)
    pool: PoolConfig = Field(default_factory=PoolConfig)
    distribution: DistributionConfig = Field(default_factory=DistributionConfig)
    settlement: SettlementConfig = Field(default_factory=SettlementConfig)
    cluster: ClusterConfig = Field(default_factory=ClusterConfig)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)
    task: TaskConfig = Field(default_factory=TaskConfig)
    notifications: NotificationsConfig = Field(default_factory=NotificationsConfig)

    @model_validator(mode="before")
    @classmethod
    def _merge_yaml(cls, values: dict[str, Any]) -> dict[str, Any]:
        """Merge YAML config file contents under the env var overrides."""
        config_path = values.get("config_path", "")
        if not config_path:
            return values
        yaml_data = _load_yaml(config_path)
        # YAML values serve as defaults; env vars (already in *values*) win.
        for key, val in yaml_data.items():
            if key not in values or values[key] is None:
                values[key] = val
            elif isinstance(val, dict) and isinstance(values.get(key), dict):
                values[key] = {**val, **values[key]}
        return values

    @classmethod
    def from_yaml(cls, path: str | Path) -> Self:
        """Construct ``AppConfig`` loading defaults from a YAML file.

        Environment variables still override YAML values.
        """
        return cls(config_path=str(path))
