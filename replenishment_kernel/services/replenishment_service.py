"""
ReplenishmentService -- transactional façade over the kernel services.

Responsibility:
    The one public entry point for callers.  Every operation runs in its
    own ``session_scope`` transaction: the kernel services below only
    flush, this façade commits or rolls back.  Lost compare-and-swap
    races are retried against fresh state; database failures surface as
    StorageFailureError.

Architecture position:
    Kernel > Services -- outermost layer of the kernel.  Takes plain
    parameters; ``replenishment_config.bridges`` builds it from runtime
    configuration (the kernel never imports the config package).

Invariants enforced:
    - One operation, one transaction: a failure anywhere rolls back every
      write of the operation (status, log, inventory, activity, intent).
    - ConcurrencyConflictError is retried at most ``max_conflict_retries``
      times, each retry re-reading and re-validating the request.  A retry
      that finds the transition no longer allowed raises
      InvalidTransitionError against the fresh status.
    - No error is swallowed.

Failure modes:
    - Any ReplenishmentError raised by the kernel services, unchanged.
    - StorageFailureError: the database raised a DBAPIError (timeouts,
      lost connections, lock waits); the original error is chained.
    - ConcurrencyConflictError: retry budget exhausted.

Usage:
    service = ReplenishmentService(session_factory)
    request = service.create_request(
        "client-1", shop_id="shop-7", dc_id="DC-MAIN", requested_by="u-1",
        items=[{"product_id": "SKU-1", "size": "M", "quantity_requested": 4}],
    )
    service.advance_status("client-1", request.id, "processing")
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable, Mapping
from datetime import date
from typing import Any, TypeVar
from uuid import UUID

from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session, sessionmaker

from replenishment_kernel.db.engine import session_scope
from replenishment_kernel.domain.clock import Clock, SystemClock
from replenishment_kernel.domain.dtos import (
    DcStats,
    DistributionCenterInfo,
    InventoryRecordInfo,
    InventorySummary,
    ItemSpec,
    RequestInfo,
    ShopInventoryInfo,
    TransitionResult,
)
from replenishment_kernel.domain.notifications import NotificationIntent
from replenishment_kernel.domain.status import RequestStatus
from replenishment_kernel.exceptions import ConcurrencyConflictError, StorageFailureError
from replenishment_kernel.logging_config import LogContext, get_logger
from replenishment_kernel.selectors.inventory_selector import InventorySelector
from replenishment_kernel.selectors.request_selector import (
    RequestListing,
    RequestSelector,
    check_limit,
    parse_status_filter,
)
from replenishment_kernel.selectors.stats_selector import StatsSelector
from replenishment_kernel.services.fulfillment_tracker import FulfillmentTracker
from replenishment_kernel.services.inventory_ledger import InventoryLedger
from replenishment_kernel.services.notification_outbox import (
    DEFAULT_MAX_BACKOFF_SECONDS,
    DeliverFn,
    DispatchReport,
    NotificationDispatcher,
    NotificationOutbox,
)
from replenishment_kernel.services.request_repository import RequestRepository, materialize_items
from replenishment_kernel.services.status_transition_service import StatusTransitionService

logger = get_logger("services.replenishment")

T = TypeVar("T")

# Sentinel: list_requests() without an explicit limit uses the configured default.
_DEFAULT_LIMIT: Any = object()


class ReplenishmentService:
    """
    Transaction and retry boundary for every replenishment operation.

    Contract:
        Thread-safe as long as the session factory is: each call opens
        its own session.  Returned values are frozen DTOs, safe to use
        after the transaction closed.

    Non-goals:
        - Does NOT cache stats; every dc_stats() call recomputes.
        - Does NOT deliver notifications itself; dispatch_notifications()
          hands intents to the caller's delivery callable.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
        max_conflict_retries: int = 3,
        retry_backoff_seconds: float = 0.05,
        default_list_limit: int = 50,
        default_low_stock_threshold: int = 0,
        recent_transfer_window_days: int = 30,
        dispatch_batch_size: int = 50,
        max_backoff_seconds: int = DEFAULT_MAX_BACKOFF_SECONDS,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._max_conflict_retries = max_conflict_retries
        self._retry_backoff = retry_backoff_seconds
        self._default_list_limit = default_list_limit
        self._default_low_stock_threshold = default_low_stock_threshold
        self._recent_window_days = recent_transfer_window_days
        self._dispatch_batch_size = dispatch_batch_size
        self._max_backoff_seconds = max_backoff_seconds

    # =========================================================================
    # Transaction plumbing
    # =========================================================================

    def _ledger(self, session: Session) -> InventoryLedger:
        return InventoryLedger(
            session,
            self._clock,
            default_low_stock_threshold=self._default_low_stock_threshold,
        )

    def _run(self, operation: str, work: Callable[[Session], T]) -> T:
        """Run ``work`` in one transaction; translate database errors."""
        try:
            with session_scope(self._session_factory) as session:
                return work(session)
        except DBAPIError as exc:
            logger.error(
                "storage_failure",
                extra={"operation": operation, "error": str(exc.orig or exc)},
            )
            raise StorageFailureError(operation, str(exc.orig or exc)) from exc

    def _run_with_retry(self, operation: str, work: Callable[[Session], T]) -> T:
        """Like _run(), but re-runs ``work`` in a fresh transaction after a lost race."""
        attempt = 0
        while True:
            try:
                return self._run(operation, work)
            except ConcurrencyConflictError as exc:
                if attempt >= self._max_conflict_retries:
                    logger.error(
                        "concurrency_retries_exhausted",
                        extra={
                            "operation": operation,
                            "request_id": exc.request_id,
                            "attempts": attempt + 1,
                        },
                    )
                    raise
                attempt += 1
                logger.warning(
                    "concurrency_conflict_retry",
                    extra={
                        "operation": operation,
                        "request_id": exc.request_id,
                        "attempt": attempt,
                        "max_retries": self._max_conflict_retries,
                    },
                )
                if self._retry_backoff:
                    time.sleep(self._retry_backoff * attempt)

    # =========================================================================
    # Requests
    # =========================================================================

    def create_request(
        self,
        client_id: str,
        shop_id: str,
        dc_id: str,
        requested_by: str | None,
        items: Iterable[ItemSpec | Mapping[str, Any]],
        notes: str | None = None,
        expected_delivery: date | None = None,
    ) -> RequestInfo:
        """Create a request in status ``requested`` with its items."""
        items = materialize_items(items)
        with LogContext.bind(client_id=client_id, actor_id=requested_by, dc_id=dc_id):
            return self._run(
                "create_request",
                lambda session: RequestRepository(session, self._clock).create_request(
                    client_id,
                    shop_id=shop_id,
                    dc_id=dc_id,
                    requested_by=requested_by,
                    items=items,
                    notes=notes,
                    expected_delivery=expected_delivery,
                ),
            )

    def advance_status(
        self,
        client_id: str,
        request_id: UUID | str,
        next_status: RequestStatus | str,
        changed_by: str | None = None,
        notes: str | None = None,
        fulfillment: Mapping[UUID | str, int] | None = None,
    ) -> TransitionResult:
        """
        Move a request to ``next_status`` and apply its side effects.

        Raises:
            RequestNotFoundError, InvalidTransitionError,
            InvalidFulfillmentError, ItemNotFoundError,
            ConcurrencyConflictError (retries exhausted), StorageFailureError.
        """

        def work(session: Session) -> TransitionResult:
            service = StatusTransitionService(session, self._clock, ledger=self._ledger(session))
            return service.advance_status(
                client_id,
                request_id,
                next_status,
                changed_by=changed_by,
                notes=notes,
                fulfillment=fulfillment,
            )

        with LogContext.bind(client_id=client_id, request_id=request_id, actor_id=changed_by):
            return self._run_with_retry("advance_status", work)

    def record_fulfillment(
        self,
        client_id: str,
        request_id: UUID | str,
        item_fulfillments: Mapping[UUID | str, int],
    ) -> RequestInfo:
        """Set quantity_fulfilled per item (last write wins)."""
        with LogContext.bind(client_id=client_id, request_id=request_id):
            return self._run_with_retry(
                "record_fulfillment",
                lambda session: FulfillmentTracker(session, self._clock).record_fulfillment(
                    client_id, request_id, item_fulfillments
                ),
            )

    def get_request(self, client_id: str, request_id: UUID | str) -> RequestInfo:
        with LogContext.bind(client_id=client_id, request_id=request_id):
            return self._run(
                "get_request",
                lambda session: RequestSelector(session).get_request(client_id, request_id),
            )

    def list_requests(
        self,
        client_id: str,
        shop_id: str | None = None,
        dc_id: str | None = None,
        status: RequestStatus | str | None = None,
        active_only: bool = False,
        limit: int | None = _DEFAULT_LIMIT,
    ) -> RequestListing:
        """
        Requests of one client, most recent first.

        Without ``limit`` the configured default applies; ``limit=None``
        lists everything.  The listing is lazy and re-iterable: each pass
        reads the current committed state, one short transaction per page.
        """
        if limit is _DEFAULT_LIMIT:
            limit = self._default_list_limit
        return RequestListing(
            client_id,
            lambda: session_scope(self._session_factory),
            shop_id=shop_id,
            dc_id=dc_id,
            status=parse_status_filter(status),
            active_only=active_only,
            limit=check_limit(limit),
        )

    # =========================================================================
    # Stats and inventory
    # =========================================================================

    def dc_stats(self, client_id: str, dc_id: str | None = None) -> DcStats:
        """DC statistics recomputed from committed state."""
        with LogContext.bind(client_id=client_id, dc_id=dc_id):
            return self._run(
                "dc_stats",
                lambda session: StatsSelector(
                    session, self._clock, recent_window_days=self._recent_window_days
                ).dc_stats(client_id, dc_id),
            )

    def set_stock(
        self,
        client_id: str,
        dc_id: str,
        product_id: str,
        size: str | None,
        quantity: int,
        low_stock_threshold: int | None = None,
    ) -> InventoryRecordInfo:
        """Record an absolute stock count for one DC product/size."""
        with LogContext.bind(client_id=client_id, dc_id=dc_id):
            return self._run(
                "set_stock",
                lambda session: self._ledger(session).set_stock(
                    client_id, dc_id, product_id, size, quantity, low_stock_threshold
                ),
            )

    def adjust_stock(
        self,
        client_id: str,
        dc_id: str,
        product_id: str,
        size: str | None,
        delta: int,
        create_missing: bool = False,
    ) -> int:
        """Atomically add ``delta`` to a DC record; returns the new quantity."""
        with LogContext.bind(client_id=client_id, dc_id=dc_id):
            return self._run(
                "adjust_stock",
                lambda session: self._ledger(session).adjust(
                    client_id, dc_id, product_id, size, delta, create_missing=create_missing
                ),
            )

    def clear_stock_alert(
        self, client_id: str, dc_id: str, product_id: str, size: str | None = ""
    ) -> InventoryRecordInfo:
        with LogContext.bind(client_id=client_id, dc_id=dc_id):
            return self._run(
                "clear_stock_alert",
                lambda session: self._ledger(session).clear_stock_alert(
                    client_id, dc_id, product_id, size
                ),
            )

    def get_inventory_record(
        self, client_id: str, dc_id: str, product_id: str, size: str | None = ""
    ) -> InventoryRecordInfo:
        return self._run(
            "get_inventory_record",
            lambda session: InventorySelector(session).get_record(
                client_id, dc_id, product_id, size
            ),
        )

    def list_inventory(
        self,
        client_id: str,
        dc_id: str | None = None,
        low_stock_only: bool = False,
    ) -> list[InventoryRecordInfo]:
        return self._run(
            "list_inventory",
            lambda session: InventorySelector(session).list_records(
                client_id, dc_id=dc_id, low_stock_only=low_stock_only
            ),
        )

    def inventory_summary(self, client_id: str, dc_id: str | None = None) -> InventorySummary:
        return self._run(
            "inventory_summary",
            lambda session: InventorySelector(session).summary(client_id, dc_id),
        )

    def list_shop_inventory(self, client_id: str, shop_id: str) -> list[ShopInventoryInfo]:
        return self._run(
            "list_shop_inventory",
            lambda session: InventorySelector(session).list_shop_records(client_id, shop_id),
        )

    def register_distribution_center(
        self, client_id: str, code: str, name: str, is_active: bool = True
    ) -> DistributionCenterInfo:
        with LogContext.bind(client_id=client_id, dc_id=code):
            return self._run(
                "register_distribution_center",
                lambda session: self._ledger(session).register_distribution_center(
                    client_id, code, name, is_active=is_active
                ),
            )

    def list_distribution_centers(
        self, client_id: str, active_only: bool = True
    ) -> list[DistributionCenterInfo]:
        return self._run(
            "list_distribution_centers",
            lambda session: InventorySelector(session).list_distribution_centers(
                client_id, active_only=active_only
            ),
        )

    # =========================================================================
    # Notifications
    # =========================================================================

    def pending_notifications(
        self, client_id: str | None = None, limit: int | None = None
    ) -> list[NotificationIntent]:
        """Undelivered intents that are due, oldest first."""
        return self._run(
            "pending_notifications",
            lambda session: NotificationOutbox(session, self._clock).pending(
                client_id, limit or self._dispatch_batch_size
            ),
        )

    def dispatch_notifications(
        self, deliver: DeliverFn, client_id: str | None = None
    ) -> DispatchReport:
        """
        Hand one batch of due intents to ``deliver``.

        Outcomes (delivered, or failed with the next attempt scheduled)
        commit together at the end of the batch.
        """
        return self._run(
            "dispatch_notifications",
            lambda session: NotificationDispatcher(
                session,
                self._clock,
                batch_size=self._dispatch_batch_size,
                max_backoff_seconds=self._max_backoff_seconds,
            ).dispatch_pending(deliver, client_id=client_id),
        )
