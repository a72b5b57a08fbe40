"""
Notification intents -- plain data events for an external delivery mechanism.

The kernel never talks to a transport.  It records *what* should be said
(an intent) inside the same transaction as the state change; a separate
dispatcher hands pending intents to whatever delivers them (message, push,
print).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from replenishment_kernel.domain.status import RequestStatus


class NotificationType(str, Enum):
    REQUEST_CREATED = "request.created"
    REQUEST_STATUS_CHANGED = "request.status_changed"
    INVENTORY_STOCK_ALERT = "inventory.stock_alert"


_STATUS_LINES: dict[RequestStatus, str] = {
    RequestStatus.REQUESTED: "Replenishment request submitted",
    RequestStatus.PROCESSING: "Replenishment request is being processed",
    RequestStatus.IN_TRANSIT: "Replenishment is on its way to the shop",
    RequestStatus.RECEIVED: "Replenishment received",
    RequestStatus.CANCELLED: "Replenishment request cancelled",
}


def build_status_message(request_id: UUID | str, status: RequestStatus, shop_name: str = "") -> str:
    """Human-readable status line for a request, keyed by its short id."""
    short_id = str(request_id)[:8]
    lines = [f"Replenishment #{short_id}", _STATUS_LINES.get(status, status.value)]
    if shop_name:
        lines.append(f"Shop: {shop_name}")
    return "\n".join(lines)


@dataclass(frozen=True)
class NotificationIntent:
    """
    One intent as handed to a delivery callable.

    ``payload`` carries the wire shape
    ``{type, requestId, fromStatus, toStatus, timestamp, ...}``.
    """

    id: UUID
    type: NotificationType
    client_id: str
    request_id: UUID | None
    from_status: RequestStatus | None
    to_status: RequestStatus | None
    timestamp: datetime
    attempt_count: int = 0
    payload: dict[str, Any] = field(default_factory=dict)
