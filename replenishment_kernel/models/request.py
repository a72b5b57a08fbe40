"""
Module: replenishment_kernel.models.request
Responsibility: ORM persistence for replenishment requests, their item lines
    and their append-only status log.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ only.

Invariants enforced:
    - Every item line belongs to exactly one request (FK, cascade on delete).
    - total_items equals the sum of quantity_requested over the items; it is
      written once at creation and never recomputed.
    - Status log entries are ordered by (request_id, seq); seq is unique per
      request and starts at 1 with the creation entry.
    - version increases by one on every successful status change; it is the
      compare-and-swap token alongside status.

Failure modes:
    - IntegrityError on a duplicate (request_id, seq) pair, which can only
      happen when two writers bypass the status compare-and-swap.
    - ImmutabilityViolationError (raised by db/immutability.py listeners) on
      UPDATE or DELETE of a StatusLogEntry, or on any ORM change to a
      request already in a terminal status.
"""

from __future__ import annotations

from datetime import date, datetime
from uuid import UUID

from sqlalchemy import CheckConstraint, Date, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from replenishment_kernel.db.base import Base, TenantScoped, TrackedBase, UTCDateTime, UUIDString
from replenishment_kernel.domain.dtos import ItemInfo, RequestInfo, StatusLogEntryInfo
from replenishment_kernel.domain.status import RequestStatus


class ReplenishmentRequest(TenantScoped, TrackedBase):
    """
    A shop's request for stock from a distribution center.

    Contract:
        status only changes through StatusTransitionService, which issues a
        guarded UPDATE ... WHERE status = <expected>.  Direct attribute
        assignment of status on a loaded instance is not a supported path.
    """

    __tablename__ = "replenishment_requests"

    __table_args__ = (
        Index("idx_replenishment_client_created", "client_id", "created_at"),
        Index("idx_replenishment_client_status", "client_id", "status"),
        Index("idx_replenishment_client_dc", "client_id", "dc_id"),
        CheckConstraint("total_items > 0", name="ck_replenishment_total_items_positive"),
    )

    shop_id: Mapped[str] = mapped_column(String(64), nullable=False)
    dc_id: Mapped[str] = mapped_column(String(64), nullable=False)
    requested_by: Mapped[str | None] = mapped_column(String(100), nullable=True)

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=RequestStatus.REQUESTED.value,
    )

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    expected_delivery: Mapped[date | None] = mapped_column(Date, nullable=True)
    received_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    total_items: Mapped[int] = mapped_column(Integer, nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    items: Mapped[list[ReplenishmentItem]] = relationship(
        back_populates="request",
        cascade="all, delete-orphan",
        order_by="ReplenishmentItem.line_no",
        lazy="selectin",
    )

    status_log: Mapped[list[StatusLogEntry]] = relationship(
        back_populates="request",
        cascade="all",
        order_by="StatusLogEntry.seq",
        lazy="selectin",
    )

    @property
    def current_status(self) -> RequestStatus:
        return RequestStatus(self.status)

    @property
    def is_terminal(self) -> bool:
        return self.current_status.is_terminal

    def to_dto(self, include_log: bool = True) -> RequestInfo:
        return RequestInfo(
            id=self.id,
            client_id=self.client_id,
            shop_id=self.shop_id,
            dc_id=self.dc_id,
            requested_by=self.requested_by,
            status=RequestStatus(self.status),
            notes=self.notes,
            expected_delivery=self.expected_delivery,
            received_at=self.received_at,
            total_items=self.total_items,
            version=self.version,
            created_at=self.created_at,
            updated_at=self.updated_at,
            items=tuple(item.to_dto() for item in self.items),
            status_log=(
                tuple(entry.to_dto() for entry in self.status_log) if include_log else ()
            ),
        )

    def __repr__(self) -> str:
        return f"<ReplenishmentRequest {self.id} shop={self.shop_id} dc={self.dc_id} status={self.status}>"


class ReplenishmentItem(Base):
    """One product/size line of a request."""

    __tablename__ = "replenishment_items"

    __table_args__ = (
        UniqueConstraint("request_id", "line_no", name="uq_replenishment_item_line"),
        Index("idx_replenishment_item_product", "product_id", "size"),
        CheckConstraint("quantity_requested > 0", name="ck_item_requested_positive"),
        CheckConstraint(
            "quantity_fulfilled >= 0 AND quantity_fulfilled <= quantity_requested",
            name="ck_item_fulfilled_bounds",
        ),
    )

    request_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("replenishment_requests.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    line_no: Mapped[int] = mapped_column(Integer, nullable=False)
    product_id: Mapped[str] = mapped_column(String(64), nullable=False)
    size: Mapped[str] = mapped_column(String(32), nullable=False, default="")
    quantity_requested: Mapped[int] = mapped_column(Integer, nullable=False)
    quantity_fulfilled: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    request: Mapped[ReplenishmentRequest] = relationship(back_populates="items")

    def to_dto(self) -> ItemInfo:
        return ItemInfo(
            id=self.id,
            request_id=self.request_id,
            product_id=self.product_id,
            size=self.size,
            quantity_requested=self.quantity_requested,
            quantity_fulfilled=self.quantity_fulfilled,
        )


class StatusLogEntry(Base):
    """
    Append-only record of one status change (or of creation).

    from_status is NULL only on the creation entry.
    """

    __tablename__ = "replenishment_status_log"

    __table_args__ = (
        UniqueConstraint("request_id", "seq", name="uq_status_log_request_seq"),
    )

    request_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("replenishment_requests.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    seq: Mapped[int] = mapped_column(Integer, nullable=False)
    from_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    to_status: Mapped[str] = mapped_column(String(20), nullable=False)
    changed_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    request: Mapped[ReplenishmentRequest] = relationship(back_populates="status_log")

    def to_dto(self) -> StatusLogEntryInfo:
        return StatusLogEntryInfo(
            id=self.id,
            request_id=self.request_id,
            seq=self.seq,
            from_status=RequestStatus(self.from_status) if self.from_status else None,
            to_status=RequestStatus(self.to_status),
            changed_by=self.changed_by,
            notes=self.notes,
            created_at=self.created_at,
        )
