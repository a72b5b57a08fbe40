"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Immutable structures that cross the service boundary: creation input
    (ItemSpec), request/item/log snapshots, inventory snapshots, stock
    alerts, transition results and DC statistics.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  ORM models convert
    themselves into these via ``to_dto()``; services and selectors never
    hand ORM entities to callers.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any
from uuid import UUID

from replenishment_kernel.domain.inventory import is_low_stock
from replenishment_kernel.domain.status import RequestStatus

# =============================================================================
# Input
# =============================================================================


@dataclass(frozen=True)
class ItemSpec:
    """One requested product/size line, as submitted by a shop."""

    product_id: str
    size: str
    quantity_requested: int

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> ItemSpec:
        """Accept snake_case or camelCase keys from the outer layer.

        Values are passed through unchanged; RequestRepository validates them.
        """
        return cls(
            product_id=data.get("product_id", data.get("productId")),
            size=data.get("size", ""),
            quantity_requested=data.get(
                "quantity_requested", data.get("quantityRequested")
            ),
        )


# =============================================================================
# Request snapshots
# =============================================================================


@dataclass(frozen=True)
class ItemInfo:
    id: UUID
    request_id: UUID
    product_id: str
    size: str
    quantity_requested: int
    quantity_fulfilled: int

    @property
    def shortfall(self) -> int:
        return self.quantity_requested - self.quantity_fulfilled


@dataclass(frozen=True)
class StatusLogEntryInfo:
    """One immutable entry of a request's status log."""

    id: UUID
    request_id: UUID
    seq: int
    from_status: RequestStatus | None
    to_status: RequestStatus
    changed_by: str | None
    notes: str | None
    created_at: datetime


@dataclass(frozen=True)
class RequestInfo:
    """
    Snapshot of a replenishment request.

    ``items`` is always populated.  ``status_log`` is populated on single
    fetches and left empty on listings.
    """

    id: UUID
    client_id: str
    shop_id: str
    dc_id: str
    requested_by: str | None
    status: RequestStatus
    notes: str | None
    expected_delivery: date | None
    received_at: datetime | None
    total_items: int
    version: int
    created_at: datetime
    updated_at: datetime
    items: tuple[ItemInfo, ...] = ()
    status_log: tuple[StatusLogEntryInfo, ...] = ()

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def is_active(self) -> bool:
        return self.status.is_active

    def item(self, item_id: UUID) -> ItemInfo:
        for it in self.items:
            if it.id == item_id:
                return it
        raise KeyError(item_id)


# =============================================================================
# Inventory
# =============================================================================


@dataclass(frozen=True)
class InventoryRecordInfo:
    id: UUID
    client_id: str
    dc_id: str
    product_id: str
    size: str
    quantity: int
    low_stock_threshold: int
    stock_alert: bool
    updated_at: datetime

    @property
    def is_low_stock(self) -> bool:
        return is_low_stock(self)


@dataclass(frozen=True)
class ShopInventoryInfo:
    id: UUID
    client_id: str
    shop_id: str
    product_id: str
    size: str
    quantity: int


@dataclass(frozen=True)
class InventorySummary:
    total_skus: int = 0
    total_units: int = 0
    low_stock_count: int = 0


@dataclass(frozen=True)
class StockAlert:
    """Raised when a shipment leaves a DC record at or below its threshold."""

    dc_id: str
    product_id: str
    size: str
    quantity: int
    low_stock_threshold: int

    @property
    def negative(self) -> bool:
        return self.quantity < 0


@dataclass(frozen=True)
class DistributionCenterInfo:
    id: UUID
    client_id: str
    code: str
    name: str
    is_active: bool


# =============================================================================
# Results
# =============================================================================


@dataclass(frozen=True)
class TransitionResult:
    """Returned by StatusTransitionService.advance_status()."""

    request: RequestInfo
    from_status: RequestStatus
    to_status: RequestStatus
    stock_alerts: tuple[StockAlert, ...] = ()
    intent_id: UUID | None = None


@dataclass(frozen=True)
class ShopRollup:
    shop_id: str
    total_requests: int
    pending_requests: int
    pending_items: int


@dataclass(frozen=True)
class DcStats:
    """Read-only rollup over requests and DC inventory for one client scope."""

    client_id: str
    dc_id: str | None
    total_skus: int
    total_units: int
    low_stock_count: int
    active_requests: int
    total_requests: int
    unique_shops_requesting: int
    total_items_requested: int
    recent_transfers: int
    status_breakdown: Mapping[str, int] = field(default_factory=dict)
    shops: tuple[ShopRollup, ...] = ()
    dc: DistributionCenterInfo | None = None

    def to_dict(self) -> dict[str, Any]:
        """Wire shape expected by dashboard consumers."""
        return {
            "dc": (
                {"id": str(self.dc.id), "code": self.dc.code, "name": self.dc.name}
                if self.dc
                else None
            ),
            "stats": {
                "totalSKUs": self.total_skus,
                "totalUnits": self.total_units,
                "lowStockCount": self.low_stock_count,
                "activeRequests": self.active_requests,
                "totalRequests": self.total_requests,
                "uniqueShopsRequesting": self.unique_shops_requesting,
                "totalItemsRequested": self.total_items_requested,
                "recentTransfers": self.recent_transfers,
                "statusBreakdown": dict(self.status_breakdown),
            },
            "shopsWithRequests": [
                {
                    "shopId": s.shop_id,
                    "totalRequests": s.total_requests,
                    "pendingRequests": s.pending_requests,
                    "pendingItems": s.pending_items,
                }
                for s in self.shops
            ],
        }
