"""
ActivityLogService -- append-only actor activity trail.

Records ``replenishment.created`` and ``replenishment.<status>`` actions
against a request, inside the caller's transaction.  Rows are protected
from UPDATE/DELETE by db/immutability.py.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

from replenishment_kernel.logging_config import get_logger
from replenishment_kernel.models.activity import ActivityLogEntry
from replenishment_kernel.services.base import BaseService

logger = get_logger("services.activity_log")

ENTITY_REPLENISHMENT = "replenishment_request"


class ActivityLogService(BaseService[ActivityLogEntry]):
    """Writes ActivityLogEntry rows; flush-only."""

    def record(
        self,
        client_id: str,
        action: str,
        entity_id: UUID,
        actor_id: str | None = None,
        shop_id: str | None = None,
        details: dict[str, Any] | None = None,
        entity_type: str = ENTITY_REPLENISHMENT,
    ) -> ActivityLogEntry:
        entry = ActivityLogEntry(
            client_id=client_id,
            actor_id=actor_id,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            shop_id=shop_id,
            details=details or None,
            created_at=self._clock.now(),
        )
        self.session.add(entry)
        self.session.flush()

        logger.debug(
            "activity_recorded",
            extra={"action": action, "entity_id": str(entity_id)},
        )
        return entry
