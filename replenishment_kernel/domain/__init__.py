"""
Pure domain layer.

Data transfer objects, the request status machine and inventory predicates,
with NO dependencies on the ORM, the database, the clock or I/O.
"""

from replenishment_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from replenishment_kernel.domain.dtos import (
    DcStats,
    DistributionCenterInfo,
    InventoryRecordInfo,
    InventorySummary,
    ItemInfo,
    ItemSpec,
    RequestInfo,
    ShopInventoryInfo,
    ShopRollup,
    StatusLogEntryInfo,
    StockAlert,
    TransitionResult,
)
from replenishment_kernel.domain.inventory import is_low_stock, is_negative_stock
from replenishment_kernel.domain.notifications import (
    NotificationIntent,
    NotificationType,
    build_status_message,
)
from replenishment_kernel.domain.status import (
    ACTIVE_STATUSES,
    ALLOWED_TRANSITIONS,
    TERMINAL_STATUSES,
    RequestStatus,
    SideEffect,
    TransitionDecision,
    allowed_next,
    decide_transition,
    validate_transition,
)

__all__ = [
    "ACTIVE_STATUSES",
    "ALLOWED_TRANSITIONS",
    "TERMINAL_STATUSES",
    "Clock",
    "DcStats",
    "DeterministicClock",
    "DistributionCenterInfo",
    "InventoryRecordInfo",
    "InventorySummary",
    "ItemInfo",
    "ItemSpec",
    "NotificationIntent",
    "NotificationType",
    "RequestInfo",
    "RequestStatus",
    "ShopInventoryInfo",
    "ShopRollup",
    "SideEffect",
    "StatusLogEntryInfo",
    "StockAlert",
    "SystemClock",
    "TransitionDecision",
    "TransitionResult",
    "allowed_next",
    "build_status_message",
    "decide_transition",
    "is_low_stock",
    "is_negative_stock",
    "validate_transition",
]
