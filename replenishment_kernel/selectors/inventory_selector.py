"""
Module: replenishment_kernel.selectors.inventory_selector
Responsibility: Read-only views of DC inventory, shop inventory and
    registered distribution centers.
Architecture position: Kernel > Selectors.

Low stock is derived (quantity <= low_stock_threshold), never stored.
"""

from __future__ import annotations

from sqlalchemy import case, func, select

from replenishment_kernel.domain.dtos import (
    DistributionCenterInfo,
    InventoryRecordInfo,
    InventorySummary,
    ShopInventoryInfo,
)
from replenishment_kernel.exceptions import InventoryRecordNotFoundError
from replenishment_kernel.models.inventory import (
    DistributionCenter,
    InventoryRecord,
    ShopInventoryRecord,
)
from replenishment_kernel.selectors.base import BaseSelector


class InventorySelector(BaseSelector[InventoryRecord]):
    """Inventory reads within one client scope."""

    def get_record(
        self, client_id: str, dc_id: str, product_id: str, size: str | None = ""
    ) -> InventoryRecordInfo:
        record = self.session.execute(
            select(InventoryRecord).where(
                InventoryRecord.client_id == client_id,
                InventoryRecord.dc_id == dc_id,
                InventoryRecord.product_id == product_id,
                InventoryRecord.size == (size or ""),
            )
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if record is None:
            raise InventoryRecordNotFoundError(dc_id, product_id, size or "")
        return record.to_dto()

    def list_records(
        self,
        client_id: str,
        dc_id: str | None = None,
        low_stock_only: bool = False,
    ) -> list[InventoryRecordInfo]:
        """DC inventory records, most recently updated first."""
        stmt = select(InventoryRecord).where(InventoryRecord.client_id == client_id)
        if dc_id is not None:
            stmt = stmt.where(InventoryRecord.dc_id == dc_id)
        if low_stock_only:
            stmt = stmt.where(InventoryRecord.quantity <= InventoryRecord.low_stock_threshold)
        stmt = stmt.order_by(
            InventoryRecord.updated_at.desc(),
            InventoryRecord.product_id,
            InventoryRecord.size,
        )
        return [
            r.to_dto()
            for r in self.session.execute(
                stmt.execution_options(populate_existing=True)
            ).scalars()
        ]

    def summary(self, client_id: str, dc_id: str | None = None) -> InventorySummary:
        conditions = [InventoryRecord.client_id == client_id]
        if dc_id is not None:
            conditions.append(InventoryRecord.dc_id == dc_id)

        total_skus, total_units, low_stock_count = self.session.execute(
            select(
                func.count(InventoryRecord.id),
                func.coalesce(func.sum(InventoryRecord.quantity), 0),
                func.coalesce(
                    func.sum(
                        case(
                            (InventoryRecord.quantity <= InventoryRecord.low_stock_threshold, 1),
                            else_=0,
                        )
                    ),
                    0,
                ),
            ).where(*conditions)
        ).one()
        return InventorySummary(
            total_skus=int(total_skus),
            total_units=int(total_units),
            low_stock_count=int(low_stock_count),
        )

    def list_shop_records(self, client_id: str, shop_id: str) -> list[ShopInventoryInfo]:
        stmt = (
            select(ShopInventoryRecord)
            .where(
                ShopInventoryRecord.client_id == client_id,
                ShopInventoryRecord.shop_id == shop_id,
            )
            .order_by(ShopInventoryRecord.product_id, ShopInventoryRecord.size)
        )
        return [
            r.to_dto()
            for r in self.session.execute(
                stmt.execution_options(populate_existing=True)
            ).scalars()
        ]

    def list_distribution_centers(
        self, client_id: str, active_only: bool = True
    ) -> list[DistributionCenterInfo]:
        """Registered DCs ordered by name."""
        stmt = select(DistributionCenter).where(DistributionCenter.client_id == client_id)
        if active_only:
            stmt = stmt.where(DistributionCenter.is_active.is_(True))
        stmt = stmt.order_by(DistributionCenter.name, DistributionCenter.code)
        return [r.to_dto() for r in self.session.execute(stmt).scalars()]
