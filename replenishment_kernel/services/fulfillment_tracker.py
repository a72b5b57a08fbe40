"""
FulfillmentTracker -- per-item fulfilled quantities.

Responsibility:
    Records how many units of each item the DC actually fulfilled, either
    ahead of shipment (record_fulfillment) or when the shop confirms receipt
    (reconcile, called by StatusTransitionService).

Architecture position:
    Kernel > Services -- imperative shell.

Invariants enforced:
    - 0 <= quantity_fulfilled <= quantity_requested for every item.
    - A whole fulfillment map is validated before any item is written, so
      a bad entry leaves every item unchanged.
    - Terminal requests are closed for record_fulfillment().
    - Setting the same value twice is a no-op (last write wins).
    - Flush-only: never commits or rolls back the session.

Failure modes:
    - InvalidFulfillmentError: negative, non-integer or over-requested
      quantity, or a terminal request.
    - ItemNotFoundError: item id that is not part of the request.
    - ConcurrencyConflictError: the request changed status while the map
      was being recorded.
"""

from __future__ import annotations

from collections.abc import Mapping
from uuid import UUID

from sqlalchemy.orm import Session

from replenishment_kernel.domain.clock import Clock
from replenishment_kernel.domain.dtos import RequestInfo
from replenishment_kernel.exceptions import InvalidFulfillmentError, ItemNotFoundError
from replenishment_kernel.logging_config import get_logger
from replenishment_kernel.models.request import ReplenishmentItem, ReplenishmentRequest
from replenishment_kernel.services.base import BaseService
from replenishment_kernel.services.request_repository import RequestRepository

logger = get_logger("services.fulfillment_tracker")


class FulfillmentTracker(BaseService[ReplenishmentItem]):
    """Validates and applies fulfillment maps ``{item_id: quantity}``."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        repository: RequestRepository | None = None,
    ):
        super().__init__(session, clock)
        self._repository = repository or RequestRepository(session, self._clock)

    def validate(
        self,
        request: ReplenishmentRequest,
        item_fulfillments: Mapping[UUID | str, int],
    ) -> dict[UUID, int]:
        """
        Check a fulfillment map against the request's items.

        Returns:
            The map keyed by parsed item UUID.
        """
        if not isinstance(item_fulfillments, Mapping):
            raise InvalidFulfillmentError(
                str(request.id), f"expected a mapping of item id to quantity, got {type(item_fulfillments).__name__}"
            )

        items = {item.id: item for item in request.items}
        validated: dict[UUID, int] = {}

        for raw_id, qty in item_fulfillments.items():
            try:
                item_id = raw_id if isinstance(raw_id, UUID) else UUID(str(raw_id))
            except ValueError:
                raise ItemNotFoundError(str(request.id), str(raw_id)) from None
            item = items.get(item_id)
            if item is None:
                raise ItemNotFoundError(str(request.id), str(item_id))

            if isinstance(qty, bool) or not isinstance(qty, int):
                raise InvalidFulfillmentError(
                    str(request.id), "quantity must be an integer", item_id=item_id, quantity=qty
                )
            if qty < 0:
                raise InvalidFulfillmentError(
                    str(request.id), "quantity must be >= 0", item_id=item_id, quantity=qty
                )
            if qty > item.quantity_requested:
                raise InvalidFulfillmentError(
                    str(request.id),
                    f"quantity {qty} exceeds requested {item.quantity_requested}",
                    item_id=item_id,
                    quantity=qty,
                    quantity_requested=item.quantity_requested,
                )
            validated[item_id] = qty

        return validated

    def record_fulfillment(
        self,
        client_id: str,
        request_id: UUID | str,
        item_fulfillments: Mapping[UUID | str, int],
    ) -> RequestInfo:
        """
        Set quantity_fulfilled for the given items of a non-terminal request.

        Raises:
            RequestNotFoundError, ItemNotFoundError, InvalidFulfillmentError,
            ConcurrencyConflictError.
        """
        request = self._repository.load(client_id, request_id, for_update=True)
        status = request.current_status
        if status.is_terminal:
            raise InvalidFulfillmentError(str(request.id), f"request is {status.value}")

        validated = self.validate(request, item_fulfillments)

        # Guard on status so a concurrent receipt or cancellation wins cleanly
        self._repository.compare_and_set(request, status, updated_at=self._clock.now())

        changed = self._apply(request, validated)

        logger.info(
            "fulfillment_recorded",
            extra={
                "request_id": str(request.id),
                "items": len(validated),
                "changed": changed,
            },
        )
        return request.to_dto()

    def reconcile(
        self,
        request: ReplenishmentRequest,
        validated: Mapping[UUID, int] | None,
    ) -> dict[UUID, int]:
        """
        Settle every item's fulfilled quantity on receipt.

        Items in ``validated`` take the given value.  Other items keep an
        already-recorded non-zero quantity, otherwise default to the full
        requested quantity.

        Returns:
            Final fulfilled quantity per item id.
        """
        final: dict[UUID, int] = {}
        for item in request.items:
            if validated is not None and item.id in validated:
                final[item.id] = validated[item.id]
            elif item.quantity_fulfilled:
                final[item.id] = item.quantity_fulfilled
            else:
                final[item.id] = item.quantity_requested
        self._apply(request, final)
        return final

    def _apply(self, request: ReplenishmentRequest, quantities: Mapping[UUID, int]) -> int:
        changed = 0
        for item in request.items:
            if item.id in quantities and item.quantity_fulfilled != quantities[item.id]:
                item.quantity_fulfilled = quantities[item.id]
                changed += 1
        if changed:
            self.session.flush()
        return changed
