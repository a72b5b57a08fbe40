"""
Bridges from ReplenishmentConfig to kernel inputs.

These live in replenishment_config (the producer) because the kernel must
NEVER import replenishment_config.  Each function translates config
values into the plain constructor arguments the kernel takes.
"""

from __future__ import annotations

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from replenishment_config.schema import ReplenishmentConfig, StorageConfig
from replenishment_kernel.db.engine import build_engine
from replenishment_kernel.domain.clock import Clock
from replenishment_kernel.services.replenishment_service import ReplenishmentService


def build_engine_from_config(storage: StorageConfig) -> Engine:
    """Engine with the configured pool and timeouts."""
    return build_engine(
        storage.database_url,
        echo=storage.echo,
        pool_size=storage.pool_size,
        max_overflow=storage.max_overflow,
        pool_timeout=storage.pool_timeout_seconds,
        statement_timeout_ms=storage.statement_timeout_ms,
    )


def service_kwargs_from_config(config: ReplenishmentConfig) -> dict:
    """ReplenishmentService keyword arguments for ``config``."""
    return {
        "max_conflict_retries": config.concurrency.max_conflict_retries,
        "retry_backoff_seconds": config.concurrency.retry_backoff_seconds,
        "default_list_limit": config.listing.default_limit,
        "default_low_stock_threshold": config.inventory.default_low_stock_threshold,
        "recent_transfer_window_days": config.stats.recent_transfer_window_days,
        "dispatch_batch_size": config.notifications.dispatch_batch_size,
        "max_backoff_seconds": config.notifications.max_backoff_seconds,
    }


def build_replenishment_service(
    config: ReplenishmentConfig,
    session_factory: sessionmaker[Session] | None = None,
    clock: Clock | None = None,
) -> ReplenishmentService:
    """
    Wire a ReplenishmentService from configuration.

    Without ``session_factory`` a new engine is built from
    ``config.storage``; the caller owns creating the tables.
    """
    if session_factory is None:
        engine = build_engine_from_config(config.storage)
        session_factory = sessionmaker(bind=engine, expire_on_commit=False)
    return ReplenishmentService(
        session_factory,
        clock=clock,
        **service_kwargs_from_config(config),
    )
