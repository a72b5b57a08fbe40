"""
Pytest fixtures for the replenishment kernel test suite.

Provides:
- A fresh SQLite database per test (a temp file, so threads can share it)
- A flush-only ``session`` for service / selector tests
- A ``replenishment_service`` façade bound to the same database
- Deterministic clock, service factories and request builders

Environment Variables:
- DATABASE_URL: run against another database (e.g. PostgreSQL) instead of
  the per-test SQLite file.  Tables are dropped and recreated per test.

SQLite transactions begin IMMEDIATE, so a test must not keep ``session``
inside a transaction while the façade (or another thread) writes: tests use
one or the other.
"""

import json
import logging
import os
from io import StringIO
from typing import Generator

import pytest
from sqlalchemy.orm import Session, sessionmaker

from replenishment_kernel.db.engine import build_engine, create_tables, drop_tables
from replenishment_kernel.db.immutability import register_immutability_listeners
from replenishment_kernel.domain.clock import DeterministicClock
from replenishment_kernel.domain.dtos import ItemSpec
from replenishment_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from replenishment_kernel.selectors.inventory_selector import InventorySelector
from replenishment_kernel.selectors.request_selector import RequestSelector
from replenishment_kernel.selectors.stats_selector import StatsSelector
from replenishment_kernel.services.fulfillment_tracker import FulfillmentTracker
from replenishment_kernel.services.inventory_ledger import InventoryLedger
from replenishment_kernel.services.notification_outbox import NotificationOutbox
from replenishment_kernel.services.replenishment_service import ReplenishmentService
from replenishment_kernel.services.request_repository import RequestRepository
from replenishment_kernel.services.status_transition_service import StatusTransitionService

CLIENT_ID = "client-a"
OTHER_CLIENT_ID = "client-b"
SHOP_ID = "shop-1"
DC_ID = "DC-MAIN"
ACTOR = "user-1"


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture replenishment_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, replenishment_service):
            replenishment_service.create_request(...)
            logs = captured_logs()
            assert any(r["message"] == "request_created" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    handler.setLevel(logging.DEBUG)
    kernel_logger = logging.getLogger("replenishment_kernel")
    kernel_logger.addHandler(handler)

    def _get_records() -> list[dict]:
        return [
            json.loads(line)
            for line in stream.getvalue().splitlines()
            if line.strip()
        ]

    yield _get_records
    kernel_logger.removeHandler(handler)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def engine(tmp_path):
    """Engine on a fresh database, tables created."""
    register_immutability_listeners()
    url = os.environ.get("DATABASE_URL") or f"sqlite:///{tmp_path / 'replenishment.db'}"
    eng = build_engine(url, pool_timeout=10)
    if os.environ.get("DATABASE_URL"):
        drop_tables(eng)
    create_tables(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def session(session_factory) -> Generator[Session, None, None]:
    """
    A session for flush-only services.

    Tests call ``session.commit()`` themselves where they need committed
    state; anything left uncommitted is rolled back at teardown.
    """
    sess = session_factory()
    yield sess
    try:
        sess.rollback()
    finally:
        sess.close()


# Clock fixtures


@pytest.fixture
def deterministic_clock():
    """Provide a deterministic clock for testing."""
    return DeterministicClock()


# Service fixtures


@pytest.fixture
def repository(session, deterministic_clock) -> RequestRepository:
    return RequestRepository(session, deterministic_clock)


@pytest.fixture
def ledger(session, deterministic_clock) -> InventoryLedger:
    return InventoryLedger(session, deterministic_clock, default_low_stock_threshold=5)


@pytest.fixture
def transition_service(session, deterministic_clock, ledger) -> StatusTransitionService:
    return StatusTransitionService(session, deterministic_clock, ledger=ledger)


@pytest.fixture
def fulfillment_tracker(session, deterministic_clock) -> FulfillmentTracker:
    return FulfillmentTracker(session, deterministic_clock)


@pytest.fixture
def outbox(session, deterministic_clock) -> NotificationOutbox:
    return NotificationOutbox(session, deterministic_clock)


@pytest.fixture
def request_selector(session) -> RequestSelector:
    return RequestSelector(session)


@pytest.fixture
def inventory_selector(session) -> InventorySelector:
    return InventorySelector(session)


@pytest.fixture
def stats_selector(session, deterministic_clock) -> StatsSelector:
    return StatsSelector(session, deterministic_clock)


@pytest.fixture
def replenishment_service(session_factory, deterministic_clock) -> ReplenishmentService:
    """Façade with no retry backoff so conflict tests run fast."""
    return ReplenishmentService(
        session_factory,
        clock=deterministic_clock,
        max_conflict_retries=3,
        retry_backoff_seconds=0,
        default_low_stock_threshold=5,
    )


# =============================================================================
# Builders
# =============================================================================


def items(*specs: tuple[str, str, int]) -> list[ItemSpec]:
    """items(("SKU-1", "M", 4), ...) -> list[ItemSpec]"""
    return [ItemSpec(product_id=p, size=s, quantity_requested=q) for p, s, q in specs]


@pytest.fixture
def make_request(repository, deterministic_clock):
    """Create a request through the repository; advances the clock 1s per call."""

    def _make(
        *specs: tuple[str, str, int],
        client_id: str = CLIENT_ID,
        shop_id: str = SHOP_ID,
        dc_id: str = DC_ID,
    ):
        deterministic_clock.tick()
        return repository.create_request(
            client_id,
            shop_id=shop_id,
            dc_id=dc_id,
            requested_by=ACTOR,
            items=items(*(specs or (("SKU-1", "M", 4),))),
        )

    return _make
