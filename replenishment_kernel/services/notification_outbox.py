"""
Notification outbox -- transactional notification intents and their dispatch.

Responsibility:
    NotificationOutbox writes intents (``request.created``,
    ``request.status_changed``, ``inventory.stock_alert``) as outbox rows in
    the same transaction as the change they describe.  NotificationDispatcher
    hands pending rows to a caller-supplied delivery callable and records
    the outcome.

Architecture position:
    Kernel > Services -- imperative shell.  The kernel never talks to a
    transport; delivery (messaging, push) is the callable's business.

Invariants enforced:
    - An intent row exists if and only if its state change committed.
    - Failed deliveries are retried with exponential backoff, capped at
      ``max_backoff_seconds`` (10 minutes by default).
    - A delivered row is never handed out again.

Failure modes:
    - Exceptions raised by the delivery callable are recorded on the row
      (last_error, attempt_count, available_at) and logged; they do not
      abort the rest of the batch.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

from sqlalchemy import Select, select
from sqlalchemy.orm import Session

from replenishment_kernel.domain.clock import Clock
from replenishment_kernel.domain.dtos import RequestInfo, StockAlert
from replenishment_kernel.domain.notifications import (
    NotificationIntent,
    NotificationType,
    build_status_message,
)
from replenishment_kernel.domain.status import RequestStatus
from replenishment_kernel.logging_config import get_logger
from replenishment_kernel.models.notification import NotificationIntentRecord
from replenishment_kernel.services.base import BaseService

logger = get_logger("services.notification_outbox")

DEFAULT_MAX_BACKOFF_SECONDS = 600

DeliverFn = Callable[[NotificationIntent], Any]


def next_attempt_delay(attempt_count: int, max_backoff_seconds: int = DEFAULT_MAX_BACKOFF_SECONDS) -> int:
    """Seconds to wait before retry number ``attempt_count`` (1-based)."""
    return min(max_backoff_seconds, 2 ** min(attempt_count, 16))


class NotificationOutbox(BaseService[NotificationIntentRecord]):
    """Writes intent rows; flush-only."""

    def publish(
        self,
        client_id: str,
        notification_type: NotificationType,
        payload: dict[str, Any],
        request_id: UUID | None = None,
        from_status: RequestStatus | None = None,
        to_status: RequestStatus | None = None,
    ) -> NotificationIntentRecord:
        now = self._clock.now()
        body = {
            "type": notification_type.value,
            "clientId": client_id,
            "requestId": str(request_id) if request_id else None,
            "fromStatus": from_status.value if from_status else None,
            "toStatus": to_status.value if to_status else None,
            "timestamp": now.isoformat(),
        }
        body.update(payload)

        record = NotificationIntentRecord(
            client_id=client_id,
            topic=notification_type.value,
            request_id=request_id,
            from_status=from_status.value if from_status else None,
            to_status=to_status.value if to_status else None,
            payload=body,
            created_at=now,
            available_at=now,
        )
        self.session.add(record)
        self.session.flush()

        logger.info(
            "notification_intent_emitted",
            extra={
                "intent_id": str(record.id),
                "topic": record.topic,
                "request_id": str(request_id) if request_id else None,
            },
        )
        return record

    def request_created(self, request: RequestInfo) -> NotificationIntentRecord:
        return self.publish(
            request.client_id,
            NotificationType.REQUEST_CREATED,
            {
                "shopId": request.shop_id,
                "dcId": request.dc_id,
                "totalItems": request.total_items,
                "message": build_status_message(request.id, RequestStatus.REQUESTED),
            },
            request_id=request.id,
            to_status=RequestStatus.REQUESTED,
        )

    def status_changed(
        self,
        request: RequestInfo,
        from_status: RequestStatus,
        extra: dict[str, Any] | None = None,
    ) -> NotificationIntentRecord:
        payload = {
            "shopId": request.shop_id,
            "dcId": request.dc_id,
            "message": build_status_message(request.id, request.status),
        }
        if extra:
            payload.update(extra)
        return self.publish(
            request.client_id,
            NotificationType.REQUEST_STATUS_CHANGED,
            payload,
            request_id=request.id,
            from_status=from_status,
            to_status=request.status,
        )

    def stock_alert(
        self,
        client_id: str,
        alert: StockAlert,
        request_id: UUID | None = None,
    ) -> NotificationIntentRecord:
        sku = " ".join(part for part in (alert.product_id, alert.size) if part)
        return self.publish(
            client_id,
            NotificationType.INVENTORY_STOCK_ALERT,
            {
                "dcId": alert.dc_id,
                "productId": alert.product_id,
                "size": alert.size,
                "quantity": alert.quantity,
                "lowStockThreshold": alert.low_stock_threshold,
                "message": f"Stock alert: {sku} at {alert.dc_id} is {alert.quantity}",
            },
            request_id=request_id,
        )

    def pending(self, client_id: str | None = None, limit: int = 50) -> list[NotificationIntent]:
        """Undelivered intents due now, oldest first."""
        return [r.to_dto() for r in self.due_records(client_id, limit)]

    def due_records(
        self, client_id: str | None, limit: int, lock: bool = False
    ) -> list[NotificationIntentRecord]:
        return list(self.session.execute(self.due_statement(client_id, limit, lock)).scalars())

    def due_statement(self, client_id: str | None, limit: int, lock: bool = False) -> Select:
        """
        Undelivered rows due now, oldest first.

        With ``lock`` the rows are claimed FOR UPDATE SKIP LOCKED, so a
        concurrent dispatcher on PostgreSQL skips them instead of delivering
        them twice.  SQLite ignores the clause; its writers are serialized.
        """
        stmt = (
            select(NotificationIntentRecord)
            .where(NotificationIntentRecord.delivered.is_(False))
            .where(NotificationIntentRecord.available_at <= self._clock.now())
        )
        if client_id is not None:
            stmt = stmt.where(NotificationIntentRecord.client_id == client_id)
        stmt = stmt.order_by(
            NotificationIntentRecord.created_at.asc(), NotificationIntentRecord.id.asc()
        ).limit(limit)
        if lock:
            stmt = stmt.with_for_update(skip_locked=True)
        return stmt

    def mark_delivered(self, record: NotificationIntentRecord) -> None:
        record.delivered = True
        record.delivered_at = self._clock.now()
        record.last_error = None
        self.session.flush()

    def mark_failed(
        self,
        record: NotificationIntentRecord,
        error: str,
        max_backoff_seconds: int = DEFAULT_MAX_BACKOFF_SECONDS,
    ) -> datetime:
        record.attempt_count = (record.attempt_count or 0) + 1
        record.last_error = error[:1000]
        record.available_at = self._clock.now() + timedelta(
            seconds=next_attempt_delay(record.attempt_count, max_backoff_seconds)
        )
        self.session.flush()
        return record.available_at


@dataclass(frozen=True)
class DispatchReport:
    attempted: int = 0
    delivered: int = 0
    failed: int = 0


class NotificationDispatcher:
    """
    Hands pending intents to a delivery callable.

    The callable receives a NotificationIntent; returning normally marks the
    intent delivered, raising schedules a retry.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        batch_size: int = 50,
        max_backoff_seconds: int = DEFAULT_MAX_BACKOFF_SECONDS,
    ):
        self._outbox = NotificationOutbox(session, clock)
        self._batch_size = batch_size
        self._max_backoff = max_backoff_seconds

    def dispatch_pending(self, deliver: DeliverFn, client_id: str | None = None) -> DispatchReport:
        records: Iterable[NotificationIntentRecord] = self._outbox.due_records(
            client_id, self._batch_size, lock=True
        )
        delivered = failed = attempted = 0

        for record in records:
            attempted += 1
            try:
                deliver(record.to_dto())
            except Exception as exc:
                failed += 1
                retry_at = self._outbox.mark_failed(record, str(exc) or type(exc).__name__, self._max_backoff)
                logger.warning(
                    "notification_delivery_failed",
                    extra={
                        "intent_id": str(record.id),
                        "topic": record.topic,
                        "attempt_count": record.attempt_count,
                        "retry_at": retry_at.isoformat(),
                        "error": str(exc),
                    },
                )
                continue
            delivered += 1
            self._outbox.mark_delivered(record)

        if attempted:
            logger.info(
                "notifications_dispatched",
                extra={"attempted": attempted, "delivered": delivered, "failed": failed},
            )
        return DispatchReport(attempted=attempted, delivered=delivered, failed=failed)
