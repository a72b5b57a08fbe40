"""
Module: replenishment_kernel.models.notification
Responsibility: Transactional outbox for notification intents.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ only.

Rows are inserted in the same transaction as the state change they
describe, so an intent exists if and only if that change committed.
NotificationDispatcher hands undelivered rows whose available_at has passed
to an external delivery callable.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, Boolean, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from replenishment_kernel.db.base import Base, TenantScoped, UTCDateTime, UUIDString
from replenishment_kernel.domain.notifications import NotificationIntent, NotificationType
from replenishment_kernel.domain.status import RequestStatus


class NotificationIntentRecord(TenantScoped, Base):
    """Outbox row for one notification intent."""

    __tablename__ = "notification_outbox"

    __table_args__ = (
        Index("idx_outbox_delivery", "delivered", "available_at"),
        Index("idx_outbox_topic_created", "topic", "created_at"),
    )

    topic: Mapped[str] = mapped_column(String(64), nullable=False)
    request_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True, index=True)
    from_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    to_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    # Delivery state
    available_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    attempt_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    delivered: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    delivered_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    def to_dto(self) -> NotificationIntent:
        return NotificationIntent(
            id=self.id,
            type=NotificationType(self.topic),
            client_id=self.client_id,
            request_id=self.request_id,
            from_status=RequestStatus(self.from_status) if self.from_status else None,
            to_status=RequestStatus(self.to_status) if self.to_status else None,
            timestamp=self.created_at,
            attempt_count=self.attempt_count,
            payload=dict(self.payload or {}),
        )
