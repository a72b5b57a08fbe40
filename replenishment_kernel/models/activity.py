"""
Module: replenishment_kernel.models.activity
Responsibility: Append-only activity trail of who did what to which
    replenishment request.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Rows are never updated or deleted (db/immutability.py listeners).
    - action is ``replenishment.created`` or ``replenishment.<status>``.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from replenishment_kernel.db.base import Base, TenantScoped, UTCDateTime, UUIDString


class ActivityLogEntry(TenantScoped, Base):
    """One actor action on one entity."""

    __tablename__ = "activity_log"

    __table_args__ = (
        Index("idx_activity_entity", "entity_type", "entity_id"),
        Index("idx_activity_client_created", "client_id", "created_at"),
    )

    actor_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    action: Mapped[str] = mapped_column(String(100), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    shop_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    details: Mapped[dict[str, Any] | None] = mapped_column("metadata", JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    def __repr__(self) -> str:
        return f"<ActivityLogEntry {self.action} {self.entity_type}:{self.entity_id}>"
