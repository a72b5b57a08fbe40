"""
RequestRepository -- creation and scoped loading of replenishment requests.

Responsibility:
    Validates and persists new requests (request row, item lines, initial
    status log entry, activity entry, ``request.created`` intent) and
    provides client-scoped loading of request rows for the other writing
    services.  Read-only listing lives in selectors/request_selector.py.

Architecture position:
    Kernel > Services -- imperative shell.

Invariants enforced:
    - A request has at least one item; every item has a non-empty
      product_id and a positive integer quantity_requested.
    - total_items is the sum of quantity_requested, computed once.
    - The first status log entry is (None -> requested), seq 1.
    - A request is only visible to the client that owns it; a foreign id
      is indistinguishable from a missing one.
    - Flush-only: never commits or rolls back the session.

Failure modes:
    - InvalidRequestError: malformed creation input (nothing is written).
    - RequestNotFoundError: unknown id or id owned by another client.
    - ConcurrencyConflictError: compare_and_set() lost to another writer.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import date
from typing import Any
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from replenishment_kernel.domain.clock import Clock
from replenishment_kernel.domain.dtos import ItemSpec, RequestInfo
from replenishment_kernel.domain.status import RequestStatus
from replenishment_kernel.exceptions import (
    ConcurrencyConflictError,
    InvalidRequestError,
    RequestNotFoundError,
)
from replenishment_kernel.logging_config import get_logger
from replenishment_kernel.models.request import (
    ReplenishmentItem,
    ReplenishmentRequest,
    StatusLogEntry,
)
from replenishment_kernel.services.activity_log import ActivityLogService
from replenishment_kernel.services.base import BaseService
from replenishment_kernel.services.notification_outbox import NotificationOutbox

logger = get_logger("services.request_repository")

CREATED_NOTE = "Request created"


def _require_text(value: Any, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidRequestError("must be a non-empty string", field=field)
    return value


def materialize_items(items: Any) -> list[ItemSpec | Mapping[str, Any]]:
    """Copy ``items`` into a list so it survives a retried transaction."""
    if items is None or isinstance(items, (str, bytes, Mapping)):
        raise InvalidRequestError("must be a list of items", field="items")
    try:
        return list(items)
    except TypeError:
        raise InvalidRequestError("must be a list of items", field="items") from None


def _coerce_item(raw: ItemSpec | Mapping[str, Any], index: int) -> ItemSpec:
    if isinstance(raw, ItemSpec):
        spec = raw
    elif isinstance(raw, Mapping):
        spec = ItemSpec.from_mapping(raw)
    else:
        raise InvalidRequestError(
            f"must be an item spec or mapping, got {type(raw).__name__}", field=f"items[{index}]"
        )

    if not isinstance(spec.product_id, str) or not spec.product_id.strip():
        raise InvalidRequestError("product_id must be a non-empty string", field=f"items[{index}]")

    qty = spec.quantity_requested
    if isinstance(qty, bool) or not isinstance(qty, int):
        raise InvalidRequestError(
            f"quantity_requested must be an integer, got {qty!r}", field=f"items[{index}]"
        )
    if qty <= 0:
        raise InvalidRequestError(
            f"quantity_requested must be > 0, got {qty}", field=f"items[{index}]"
        )

    size = spec.size
    if size is None:
        size = ""
    elif not isinstance(size, str):
        raise InvalidRequestError(f"size must be a string, got {size!r}", field=f"items[{index}]")

    return ItemSpec(product_id=spec.product_id, size=size, quantity_requested=qty)


class RequestRepository(BaseService[ReplenishmentRequest]):
    """
    Writes new requests and loads existing ones within a client scope.

    Contract:
        create_request() returns a RequestInfo snapshot with items and the
        initial log entry.  load() returns the ORM row for use by other
        services in the same transaction; it is never handed to callers.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session, clock)
        self._activity = ActivityLogService(session, self._clock)
        self._outbox = NotificationOutbox(session, self._clock)

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
        """
        Create a request in status ``requested``.

        Raises:
            InvalidRequestError: empty items, empty ids, or a bad quantity.
        """
        _require_text(client_id, "client_id")
        _require_text(shop_id, "shop_id")
        _require_text(dc_id, "dc_id")
        specs = [_coerce_item(raw, i) for i, raw in enumerate(materialize_items(items))]
        if not specs:
            raise InvalidRequestError("at least one item is required", field="items")
        if expected_delivery is not None and not isinstance(expected_delivery, date):
            raise InvalidRequestError(
                f"must be a date, got {expected_delivery!r}", field="expected_delivery"
            )

        now = self._clock.now()
        request = ReplenishmentRequest(
            client_id=client_id,
            shop_id=shop_id,
            dc_id=dc_id,
            requested_by=requested_by,
            status=RequestStatus.REQUESTED.value,
            notes=notes,
            expected_delivery=expected_delivery,
            total_items=sum(s.quantity_requested for s in specs),
            version=1,
            created_at=now,
            updated_at=now,
        )
        request.items = [
            ReplenishmentItem(
                line_no=line_no,
                product_id=spec.product_id,
                size=spec.size,
                quantity_requested=spec.quantity_requested,
                quantity_fulfilled=0,
            )
            for line_no, spec in enumerate(specs, start=1)
        ]
        request.status_log = [
            StatusLogEntry(
                seq=1,
                from_status=None,
                to_status=RequestStatus.REQUESTED.value,
                changed_by=requested_by,
                notes=CREATED_NOTE,
                created_at=now,
            )
        ]
        self.session.add(request)
        self.session.flush()

        info = request.to_dto()
        self._activity.record(
            client_id,
            "replenishment.created",
            request.id,
            actor_id=requested_by,
            shop_id=shop_id,
            details={"dcId": dc_id, "totalItems": info.total_items, "itemCount": len(specs)},
        )
        self._outbox.request_created(info)

        logger.info(
            "request_created",
            extra={
                "request_id": str(request.id),
                "shop_id": shop_id,
                "dc_id": dc_id,
                "item_count": len(specs),
                "total_items": info.total_items,
            },
        )
        return info

    def load(
        self,
        client_id: str,
        request_id: UUID | str,
        for_update: bool = False,
    ) -> ReplenishmentRequest:
        """
        Load a request row (with items and log) within the client scope.

        ``for_update`` takes a row lock on PostgreSQL; fresh column values are
        always read so a retried operation never sees a stale identity-map
        copy.

        Raises:
            RequestNotFoundError: unknown id, malformed id, or foreign client.
        """
        rid = _parse_id(request_id)
        stmt = select(ReplenishmentRequest).where(
            ReplenishmentRequest.id == rid,
            ReplenishmentRequest.client_id == client_id,
        )
        if for_update:
            stmt = stmt.with_for_update()
        request = self.session.execute(
            stmt.execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if request is None:
            raise RequestNotFoundError(str(request_id))
        return request

    def compare_and_set(
        self,
        request: ReplenishmentRequest,
        expected_status: RequestStatus,
        **values: Any,
    ) -> None:
        """
        Guarded UPDATE of the request row.

        Applies ``values`` only if the row still has ``expected_status``, then
        reloads ``request`` from the database.

        Raises:
            ConcurrencyConflictError: another writer changed the status first.
        """
        result = self.session.execute(
            update(ReplenishmentRequest)
            .where(
                ReplenishmentRequest.id == request.id,
                ReplenishmentRequest.client_id == request.client_id,
                ReplenishmentRequest.status == expected_status.value,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.info(
                "status_compare_and_set_lost",
                extra={
                    "request_id": str(request.id),
                    "expected_status": expected_status.value,
                },
            )
            raise ConcurrencyConflictError(str(request.id), expected_status.value)
        self.session.refresh(request)

    def append_status_log(
        self,
        request: ReplenishmentRequest,
        from_status: RequestStatus,
        to_status: RequestStatus,
        changed_by: str | None,
        notes: str | None,
    ) -> StatusLogEntry:
        """
        Append the next log entry for ``request``.

        Must run after the status compare-and-swap in the same transaction;
        the CAS serializes writers so max(seq) + 1 is race-free.
        """
        last_seq = self.session.execute(
            select(func.max(StatusLogEntry.seq)).where(StatusLogEntry.request_id == request.id)
        ).scalar_one()
        entry = StatusLogEntry(
            seq=(last_seq or 0) + 1,
            from_status=from_status.value,
            to_status=to_status.value,
            changed_by=changed_by,
            notes=notes,
            created_at=self._clock.now(),
        )
        request.status_log.append(entry)
        self.session.flush()
        return entry


def _parse_id(request_id: UUID | str) -> UUID:
    if isinstance(request_id, UUID):
        return request_id
    try:
        return UUID(str(request_id))
    except ValueError:
        raise RequestNotFoundError(str(request_id)) from None
