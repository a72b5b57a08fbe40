"""
Runtime configuration schema.

Frozen dataclasses produced by the loader.  Defaults here mirror
``defaults/replenishment.yaml`` so a partially specified overlay is always
complete after loading.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class StorageConfig:
    database_url: str = "sqlite:///replenishment.db"
    pool_size: int = 10
    max_overflow: int = 10
    pool_timeout_seconds: int = 30
    statement_timeout_ms: int = 15000
    echo: bool = False


@dataclass(frozen=True)
class ConcurrencyConfig:
    """Bounded retry of lost compare-and-swap races."""

    max_conflict_retries: int = 3
    retry_backoff_seconds: float = 0.05


@dataclass(frozen=True)
class InventoryConfig:
    default_low_stock_threshold: int = 5


@dataclass(frozen=True)
class StatsConfig:
    recent_transfer_window_days: int = 30


@dataclass(frozen=True)
class ListingConfig:
    default_limit: int = 50


@dataclass(frozen=True)
class NotificationConfig:
    dispatch_batch_size: int = 50
    max_backoff_seconds: int = 600


@dataclass(frozen=True)
class ReplenishmentConfig:
    """The complete, validated runtime configuration."""

    storage: StorageConfig = field(default_factory=StorageConfig)
    concurrency: ConcurrencyConfig = field(default_factory=ConcurrencyConfig)
    inventory: InventoryConfig = field(default_factory=InventoryConfig)
    stats: StatsConfig = field(default_factory=StatsConfig)
    listing: ListingConfig = field(default_factory=ListingConfig)
    notifications: NotificationConfig = field(default_factory=NotificationConfig)
    checksum: str = ""
    sources: tuple[str, ...] = ()
