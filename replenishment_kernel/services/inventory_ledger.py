"""
InventoryLedger -- per-DC stock levels and per-shop stock credits.

Responsibility:
    Owns every write to ``dc_inventory``, ``shop_inventory`` and
    ``distribution_centers``: relative adjustments (shipments), absolute
    sets (stock counts), stock-alert flags, shop credits on receipt and
    DC registration.

Architecture position:
    Kernel > Services -- imperative shell.
    Called by StatusTransitionService for the in_transit / received side
    effects and by ReplenishmentService for stock maintenance.

Invariants enforced:
    - Adjustments are a single ``UPDATE ... SET quantity = quantity + :delta``;
      there is no read-modify-write in Python, so concurrent adjustments
      of the same record never lose an update.
    - Shipments never block on insufficient stock.  A record driven below
      zero gets ``stock_alert = True`` and a StockAlert is reported.
    - The stock alert is only cleared by an explicit set (stock count) or
      by clear_stock_alert().
    - Flush-only: never commits or rolls back the session.

Failure modes:
    - InventoryRecordNotFoundError: adjust() on a missing record without
      create_missing.
    - InvalidRequestError: set_stock() with a negative or non-integer
      quantity or threshold.
"""

from __future__ import annotations

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from replenishment_kernel.domain.clock import Clock
from replenishment_kernel.domain.dtos import (
    DistributionCenterInfo,
    InventoryRecordInfo,
    ShopInventoryInfo,
    StockAlert,
)
from replenishment_kernel.domain.inventory import is_low_stock
from replenishment_kernel.exceptions import InvalidRequestError, InventoryRecordNotFoundError
from replenishment_kernel.logging_config import get_logger
from replenishment_kernel.models.inventory import (
    DistributionCenter,
    InventoryRecord,
    ShopInventoryRecord,
)
from replenishment_kernel.services.base import BaseService

logger = get_logger("services.inventory_ledger")


def _require_count(value: object, field: str) -> int:
    # bool is an int subclass; a stock count of True is a caller bug
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidRequestError(f"must be an integer, got {value!r}", field=field)
    if value < 0:
        raise InvalidRequestError(f"must be >= 0, got {value}", field=field)
    return value


class InventoryLedger(BaseService[InventoryRecord]):
    """
    Service for DC and shop stock levels.

    Contract:
        Keys are (client_id, dc_id, product_id, size) for DC records and
        (client_id, shop_id, product_id, size) for shop records.  ``size``
        of None is stored as the empty string.

    Non-goals:
        - Does NOT reject shipments for insufficient stock.
        - Does NOT return shortfalls to the DC on receipt.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        default_low_stock_threshold: int = 0,
    ):
        super().__init__(session, clock)
        self._default_threshold = default_low_stock_threshold

    # =========================================================================
    # DC records
    # =========================================================================

    def _dc_key(self, client_id: str, dc_id: str, product_id: str, size: str | None):
        return (
            InventoryRecord.client_id == client_id,
            InventoryRecord.dc_id == dc_id,
            InventoryRecord.product_id == product_id,
            InventoryRecord.size == (size or ""),
        )

    def _load_locked(
        self, client_id: str, dc_id: str, product_id: str, size: str | None
    ) -> InventoryRecord | None:
        return self.session.execute(
            select(InventoryRecord)
            .where(*self._dc_key(client_id, dc_id, product_id, size))
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _insert_dc_record(
        self,
        client_id: str,
        dc_id: str,
        product_id: str,
        size: str | None,
        quantity: int,
        low_stock_threshold: int,
    ) -> InventoryRecord | None:
        """
        Insert a new DC record inside a savepoint.

        Returns None when a concurrent writer created the same key first;
        the caller then retries its UPDATE against that row.
        """
        now = self._clock.now()
        savepoint = self.session.begin_nested()
        try:
            record = InventoryRecord(
                client_id=client_id,
                dc_id=dc_id,
                product_id=product_id,
                size=size or "",
                quantity=quantity,
                low_stock_threshold=low_stock_threshold,
                stock_alert=quantity < 0,
                stock_alert_at=now if quantity < 0 else None,
                created_at=now,
                updated_at=now,
            )
            self.session.add(record)
            self.session.flush()
            savepoint.commit()
            return record
        except IntegrityError:
            savepoint.rollback()
            logger.info(
                "inventory_insert_race_lost",
                extra={"dc_id": dc_id, "product_id": product_id, "size": size or ""},
            )
            return None

    def _apply_delta(
        self,
        client_id: str,
        dc_id: str,
        product_id: str,
        size: str | None,
        delta: int,
        create_missing: bool,
    ) -> InventoryRecord:
        result = self.session.execute(
            update(InventoryRecord)
            .where(*self._dc_key(client_id, dc_id, product_id, size))
            .values(
                quantity=InventoryRecord.quantity + delta,
                updated_at=self._clock.now(),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            if not create_missing:
                raise InventoryRecordNotFoundError(dc_id, product_id, size or "")
            record = self._insert_dc_record(
                client_id, dc_id, product_id, size, delta, self._default_threshold
            )
            if record is not None:
                logger.info(
                    "inventory_record_created",
                    extra={
                        "dc_id": dc_id,
                        "product_id": product_id,
                        "size": size or "",
                        "quantity": delta,
                    },
                )
                return record
            return self._apply_delta(client_id, dc_id, product_id, size, delta, False)

        record = self._load_locked(client_id, dc_id, product_id, size)
        assert record is not None, "row updated but not readable in the same transaction"
        return record

    def adjust(
        self,
        client_id: str,
        dc_id: str,
        product_id: str,
        size: str | None,
        delta: int,
        create_missing: bool = False,
    ) -> int:
        """
        Atomically add ``delta`` (may be negative) to a DC record.

        Returns:
            The quantity after the adjustment.

        Raises:
            InventoryRecordNotFoundError: record missing and not create_missing.
        """
        if isinstance(delta, bool) or not isinstance(delta, int):
            raise InvalidRequestError(f"must be an integer, got {delta!r}", field="delta")

        record = self._apply_delta(client_id, dc_id, product_id, size, delta, create_missing)
        self._flag_if_negative(record)

        logger.info(
            "inventory_adjusted",
            extra={
                "dc_id": dc_id,
                "product_id": product_id,
                "size": record.size,
                "delta": delta,
                "quantity": record.quantity,
            },
        )
        return record.quantity

    def ship(
        self,
        client_id: str,
        dc_id: str,
        product_id: str,
        size: str | None,
        quantity: int,
    ) -> StockAlert | None:
        """
        Decrement DC stock for a shipment leaving the DC.

        Missing records are created at ``-quantity``.  Never blocks.

        Returns:
            A StockAlert when the record ends at or below its threshold,
            else None.
        """
        record = self._apply_delta(client_id, dc_id, product_id, size, -quantity, True)
        self._flag_if_negative(record)

        if not is_low_stock(record):
            return None

        alert = StockAlert(
            dc_id=record.dc_id,
            product_id=record.product_id,
            size=record.size,
            quantity=record.quantity,
            low_stock_threshold=record.low_stock_threshold,
        )
        if alert.negative:
            logger.warning(
                "stock_alert_raised",
                extra={
                    "dc_id": dc_id,
                    "product_id": product_id,
                    "size": record.size,
                    "quantity": record.quantity,
                    "shipped": quantity,
                },
            )
        else:
            logger.info(
                "low_stock_reached",
                extra={
                    "dc_id": dc_id,
                    "product_id": product_id,
                    "size": record.size,
                    "quantity": record.quantity,
                    "low_stock_threshold": record.low_stock_threshold,
                },
            )
        return alert

    def _flag_if_negative(self, record: InventoryRecord) -> None:
        if record.quantity < 0 and not record.stock_alert:
            record.stock_alert = True
            record.stock_alert_at = self._clock.now()
            self.session.flush()

    def set_stock(
        self,
        client_id: str,
        dc_id: str,
        product_id: str,
        size: str | None,
        quantity: int,
        low_stock_threshold: int | None = None,
    ) -> InventoryRecordInfo:
        """
        Set the absolute on-hand quantity from a stock count (upsert).

        A non-negative count clears the stock alert.  The threshold is only
        changed when given; new records default to the configured threshold.
        """
        _require_count(quantity, "quantity")
        if low_stock_threshold is not None:
            _require_count(low_stock_threshold, "low_stock_threshold")
        if not product_id:
            raise InvalidRequestError("must not be empty", field="product_id")

        values = {
            "quantity": quantity,
            "stock_alert": False,
            "stock_alert_at": None,
            "updated_at": self._clock.now(),
        }
        if low_stock_threshold is not None:
            values["low_stock_threshold"] = low_stock_threshold

        result = self.session.execute(
            update(InventoryRecord)
            .where(*self._dc_key(client_id, dc_id, product_id, size))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            threshold = (
                low_stock_threshold
                if low_stock_threshold is not None
                else self._default_threshold
            )
            record = self._insert_dc_record(
                client_id, dc_id, product_id, size, quantity, threshold
            )
            if record is None:
                return self.set_stock(
                    client_id, dc_id, product_id, size, quantity, low_stock_threshold
                )
        else:
            record = self._load_locked(client_id, dc_id, product_id, size)

        logger.info(
            "stock_set",
            extra={
                "dc_id": dc_id,
                "product_id": product_id,
                "size": record.size,
                "quantity": record.quantity,
                "low_stock_threshold": record.low_stock_threshold,
            },
        )
        return record.to_dto()

    def clear_stock_alert(
        self,
        client_id: str,
        dc_id: str,
        product_id: str,
        size: str | None,
    ) -> InventoryRecordInfo:
        """Acknowledge a stock alert without changing the quantity."""
        record = self._load_locked(client_id, dc_id, product_id, size)
        if record is None:
            raise InventoryRecordNotFoundError(dc_id, product_id, size or "")
        if record.stock_alert:
            record.stock_alert = False
            record.stock_alert_at = None
            record.updated_at = self._clock.now()
            self.session.flush()
            logger.info(
                "stock_alert_cleared",
                extra={"dc_id": dc_id, "product_id": product_id, "size": record.size},
            )
        return record.to_dto()

    # =========================================================================
    # Shop records
    # =========================================================================

    def credit_shop(
        self,
        client_id: str,
        shop_id: str,
        product_id: str,
        size: str | None,
        quantity: int,
    ) -> ShopInventoryInfo:
        """Add received stock to a shop's on-hand quantity (upsert)."""
        key = (
            ShopInventoryRecord.client_id == client_id,
            ShopInventoryRecord.shop_id == shop_id,
            ShopInventoryRecord.product_id == product_id,
            ShopInventoryRecord.size == (size or ""),
        )
        now = self._clock.now()
        result = self.session.execute(
            update(ShopInventoryRecord)
            .where(*key)
            .values(quantity=ShopInventoryRecord.quantity + quantity, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            savepoint = self.session.begin_nested()
            try:
                record = ShopInventoryRecord(
                    client_id=client_id,
                    shop_id=shop_id,
                    product_id=product_id,
                    size=size or "",
                    quantity=quantity,
                    created_at=now,
                    updated_at=now,
                )
                self.session.add(record)
                self.session.flush()
                savepoint.commit()
                return record.to_dto()
            except IntegrityError:
                savepoint.rollback()
                return self.credit_shop(client_id, shop_id, product_id, size, quantity)

        record = self.session.execute(
            select(ShopInventoryRecord)
            .where(*key)
            .execution_options(populate_existing=True)
        ).scalar_one()
        return record.to_dto()

    # =========================================================================
    # Distribution centers
    # =========================================================================

    def register_distribution_center(
        self,
        client_id: str,
        code: str,
        name: str,
        is_active: bool = True,
    ) -> DistributionCenterInfo:
        """
        Register a DC, or update the name and active flag of an existing one.

        ``code`` is the value requests and inventory records carry as dc_id.
        """
        if not isinstance(code, str) or not code.strip():
            raise InvalidRequestError("must be a non-empty string", field="code")
        if not isinstance(name, str) or not name.strip():
            raise InvalidRequestError("must be a non-empty string", field="name")

        now = self._clock.now()
        dc = self.session.execute(
            select(DistributionCenter)
            .where(
                DistributionCenter.client_id == client_id,
                DistributionCenter.code == code,
            )
            .with_for_update()
        ).scalar_one_or_none()

        if dc is None:
            dc = DistributionCenter(
                client_id=client_id,
                code=code,
                name=name.strip(),
                is_active=is_active,
                created_at=now,
                updated_at=now,
            )
            self.session.add(dc)
            action = "distribution_center_registered"
        else:
            dc.name = name.strip()
            dc.is_active = is_active
            dc.updated_at = now
            action = "distribution_center_updated"
        self.session.flush()

        logger.info(action, extra={"dc_id": code, "is_active": is_active})
        return dc.to_dto()
