"""
StatusTransitionService -- advances a request through its lifecycle.

Responsibility:
    Validates a requested status change, swaps the status with a guarded
    UPDATE, applies the side effects of the target status (DC stock
    decrement, fulfillment reconciliation, shop credit), appends the status
    log entry and activity entry, and emits the ``request.status_changed``
    intent.

Architecture position:
    Kernel > Services -- imperative shell.
    Called by ReplenishmentService, which owns the transaction.

Invariants enforced:
    - Only transitions in ALLOWED_TRANSITIONS are applied; a denied
      transition writes nothing.
    - The status compare-and-swap runs BEFORE any side effect.  Of two
      racing writers exactly one passes it; the other writes nothing.
    - Inventory decrement, status write, log append, activity entry and
      intent land in one transaction or not at all.
    - Shipments never block on stock: negative DC records are flagged and
      reported, the transition proceeds.
    - Flush-only: never commits or rolls back the session.

Failure modes:
    - RequestNotFoundError: unknown id or foreign client.
    - InvalidTransitionError: transition denied by the status machine.
    - InvalidFulfillmentError / ItemNotFoundError: bad fulfillment map on
      receipt, or a map passed with a non-receipt transition.
    - ConcurrencyConflictError: lost the compare-and-swap.
"""

from __future__ import annotations

from collections.abc import Mapping
from uuid import UUID

from sqlalchemy.orm import Session

from replenishment_kernel.domain.clock import Clock
from replenishment_kernel.domain.dtos import StockAlert, TransitionResult
from replenishment_kernel.domain.status import (
    RequestStatus,
    SideEffect,
    decide_transition,
)
from replenishment_kernel.exceptions import InvalidFulfillmentError, InvalidTransitionError
from replenishment_kernel.logging_config import get_logger
from replenishment_kernel.models.request import ReplenishmentRequest
from replenishment_kernel.services.activity_log import ActivityLogService
from replenishment_kernel.services.base import BaseService
from replenishment_kernel.services.fulfillment_tracker import FulfillmentTracker
from replenishment_kernel.services.inventory_ledger import InventoryLedger
from replenishment_kernel.services.notification_outbox import NotificationOutbox
from replenishment_kernel.services.request_repository import RequestRepository

logger = get_logger("services.status_transition")


class StatusTransitionService(BaseService[ReplenishmentRequest]):
    """
    Applies one status change to one request.

    Contract:
        advance_status() returns a TransitionResult holding the updated
        RequestInfo, the stock alerts raised by the shipment and the id of
        the emitted intent.

    Non-goals:
        - Does NOT retry on ConcurrencyConflictError (ReplenishmentService
          does, against fresh state).
        - Does NOT return a receipt shortfall to the DC.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        ledger: InventoryLedger | None = None,
    ):
        super().__init__(session, clock)
        self._repository = RequestRepository(session, self._clock)
        self._ledger = ledger or InventoryLedger(session, self._clock)
        self._fulfillment = FulfillmentTracker(session, self._clock, self._repository)
        self._activity = ActivityLogService(session, self._clock)
        self._outbox = NotificationOutbox(session, self._clock)

    def advance_status(
        self,
        client_id: str,
        request_id: UUID | str,
        next_status: RequestStatus | str,
        changed_by: str | None = None,
        notes: str | None = None,
        fulfillment: Mapping[UUID | str, int] | None = None,
    ) -> TransitionResult:
        request = self._repository.load(client_id, request_id, for_update=True)
        current = request.current_status

        decision = decide_transition(current, next_status)
        if not decision.allowed:
            logger.warning(
                "transition_rejected",
                extra={
                    "request_id": str(request.id),
                    "from_status": decision.current,
                    "to_status": decision.requested,
                    "reason": decision.reason,
                },
            )
            raise InvalidTransitionError(decision.current, decision.requested, decision.reason)

        target = RequestStatus(decision.requested)
        effects = decision.side_effects

        validated = None
        if fulfillment is not None:
            if SideEffect.RECONCILE_FULFILLMENT not in effects:
                raise InvalidFulfillmentError(
                    str(request.id),
                    f"a fulfillment map is only accepted when moving to "
                    f"'{RequestStatus.RECEIVED.value}'",
                )
            validated = self._fulfillment.validate(request, fulfillment)

        # Everything above is read-only.  The swap below is the commit point.
        now = self._clock.now()
        values = {
            "status": target.value,
            "version": ReplenishmentRequest.version + 1,
            "updated_at": now,
        }
        if SideEffect.STAMP_RECEIVED_AT in effects:
            values["received_at"] = now
        self._repository.compare_and_set(request, current, **values)

        alerts: list[StockAlert] = []
        extra: dict = {}

        if SideEffect.DECREMENT_DC_STOCK in effects:
            for item in request.items:
                alert = self._ledger.ship(
                    client_id,
                    request.dc_id,
                    item.product_id,
                    item.size,
                    item.quantity_requested,
                )
                if alert is not None:
                    alerts.append(alert)
            for alert in alerts:
                if alert.negative:
                    self._outbox.stock_alert(client_id, alert, request_id=request.id)
            if alerts:
                extra["stockAlerts"] = len(alerts)

        if SideEffect.RECONCILE_FULFILLMENT in effects:
            final = self._fulfillment.reconcile(request, validated)
            shortfall = sum(
                item.quantity_requested - final[item.id] for item in request.items
            )
            extra["totalFulfilled"] = sum(final.values())
            extra["shortfall"] = shortfall
            if shortfall:
                logger.info(
                    "receipt_shortfall",
                    extra={"request_id": str(request.id), "shortfall": shortfall},
                )

        if SideEffect.CREDIT_SHOP_STOCK in effects:
            for item in request.items:
                if item.quantity_fulfilled > 0:
                    self._ledger.credit_shop(
                        client_id,
                        request.shop_id,
                        item.product_id,
                        item.size,
                        item.quantity_fulfilled,
                    )

        self._repository.append_status_log(request, current, target, changed_by, notes)
        self._activity.record(
            client_id,
            f"replenishment.{target.value}",
            request.id,
            actor_id=changed_by,
            shop_id=request.shop_id,
            details={"fromStatus": current.value, "toStatus": target.value, "notes": notes},
        )

        info = request.to_dto()
        intent = self._outbox.status_changed(info, current, extra=extra)

        logger.info(
            "status_advanced",
            extra={
                "request_id": str(request.id),
                "from_status": current.value,
                "to_status": target.value,
                "version": info.version,
                "stock_alerts": len(alerts),
            },
        )
        return TransitionResult(
            request=info,
            from_status=current,
            to_status=target,
            stock_alerts=tuple(alerts),
            intent_id=intent.id,
        )
