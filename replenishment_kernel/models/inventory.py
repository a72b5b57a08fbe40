"""
Module: replenishment_kernel.models.inventory
Responsibility: ORM persistence for distribution centers, DC stock levels and
    shop stock levels.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ only.

Invariants enforced:
    - At most one InventoryRecord per (client_id, dc_id, product_id, size).
    - At most one ShopInventoryRecord per (client_id, shop_id, product_id, size).
    - quantity may go negative; stock_alert is set whenever it does and is
      only cleared by an explicit stock count (InventoryLedger.set_stock).

Failure modes:
    - IntegrityError on a duplicate key, raised to the ledger which then
      re-reads the row written by the concurrent winner.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from replenishment_kernel.db.base import TenantScoped, TrackedBase, UTCDateTime
from replenishment_kernel.domain.dtos import (
    DistributionCenterInfo,
    InventoryRecordInfo,
    ShopInventoryInfo,
)


class DistributionCenter(TenantScoped, TrackedBase):
    """A warehouse that ships stock to shops."""

    __tablename__ = "distribution_centers"

    __table_args__ = (
        UniqueConstraint("client_id", "code", name="uq_dc_client_code"),
    )

    code: Mapped[str] = mapped_column(String(64), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def to_dto(self) -> DistributionCenterInfo:
        return DistributionCenterInfo(
            id=self.id,
            client_id=self.client_id,
            code=self.code,
            name=self.name,
            is_active=self.is_active,
        )


class InventoryRecord(TenantScoped, TrackedBase):
    """
    On-hand quantity of one product/size at one distribution center.

    Guarantees:
        - quantity is only changed by atomic ``quantity = quantity + delta``
          updates or by an explicit set from a stock count.
    """

    __tablename__ = "dc_inventory"

    __table_args__ = (
        UniqueConstraint(
            "client_id", "dc_id", "product_id", "size",
            name="uq_dc_inventory_key",
        ),
        Index("idx_dc_inventory_client_dc", "client_id", "dc_id"),
        Index("idx_dc_inventory_updated", "updated_at"),
    )

    dc_id: Mapped[str] = mapped_column(String(64), nullable=False)
    product_id: Mapped[str] = mapped_column(String(64), nullable=False)
    size: Mapped[str] = mapped_column(String(32), nullable=False, default="")
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    low_stock_threshold: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    stock_alert: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    stock_alert_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    def to_dto(self) -> InventoryRecordInfo:
        return InventoryRecordInfo(
            id=self.id,
            client_id=self.client_id,
            dc_id=self.dc_id,
            product_id=self.product_id,
            size=self.size,
            quantity=self.quantity,
            low_stock_threshold=self.low_stock_threshold,
            stock_alert=self.stock_alert,
            updated_at=self.updated_at,
        )


class ShopInventoryRecord(TenantScoped, TrackedBase):
    """On-hand quantity of one product/size at a shop, credited on receipt."""

    __tablename__ = "shop_inventory"

    __table_args__ = (
        UniqueConstraint(
            "client_id", "shop_id", "product_id", "size",
            name="uq_shop_inventory_key",
        ),
    )

    shop_id: Mapped[str] = mapped_column(String(64), nullable=False)
    product_id: Mapped[str] = mapped_column(String(64), nullable=False)
    size: Mapped[str] = mapped_column(String(32), nullable=False, default="")
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def to_dto(self) -> ShopInventoryInfo:
        return ShopInventoryInfo(
            id=self.id,
            client_id=self.client_id,
            shop_id=self.shop_id,
            product_id=self.product_id,
            size=self.size,
            quantity=self.quantity,
        )
