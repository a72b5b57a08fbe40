"""
ORM models for the replenishment kernel.

Importing this package registers every table on Base.metadata and installs
the append-only listeners from db/immutability.py.
"""

from replenishment_kernel.db.immutability import register_immutability_listeners
from replenishment_kernel.models.activity import ActivityLogEntry
from replenishment_kernel.models.inventory import (
    DistributionCenter,
    InventoryRecord,
    ShopInventoryRecord,
)
from replenishment_kernel.models.notification import NotificationIntentRecord
from replenishment_kernel.models.request import (
    ReplenishmentItem,
    ReplenishmentRequest,
    StatusLogEntry,
)

register_immutability_listeners()

__all__ = [
    "ActivityLogEntry",
    "DistributionCenter",
    "InventoryRecord",
    "NotificationIntentRecord",
    "ReplenishmentItem",
    "ReplenishmentRequest",
    "ShopInventoryRecord",
    "StatusLogEntry",
]
