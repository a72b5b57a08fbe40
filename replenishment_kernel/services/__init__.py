"""Services for the replenishment kernel (write side)."""

from replenishment_kernel.services.activity_log import ActivityLogService
from replenishment_kernel.services.fulfillment_tracker import FulfillmentTracker
from replenishment_kernel.services.inventory_ledger import InventoryLedger
from replenishment_kernel.services.notification_outbox import (
    DispatchReport,
    NotificationDispatcher,
    NotificationOutbox,
)
from replenishment_kernel.services.replenishment_service import ReplenishmentService
from replenishment_kernel.services.request_repository import RequestRepository
from replenishment_kernel.services.status_transition_service import StatusTransitionService

__all__ = [
    "ActivityLogService",
    "DispatchReport",
    "FulfillmentTracker",
    "InventoryLedger",
    "NotificationDispatcher",
    "NotificationOutbox",
    "ReplenishmentService",
    "RequestRepository",
    "StatusTransitionService",
]
