"""
Module: replenishment_kernel.selectors.stats_selector
Responsibility: Read-only DC statistics derived from requests, items and DC
    inventory at query time.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - No stored aggregates: every figure is recomputed per call from the
      committed rows, so there is no cache to invalidate.
    - "Active" means status not in {received, cancelled}.
    - recent_transfers counts received requests whose received_at lies in
      the trailing window ending at ``now``.

Metrics:
    total_skus               distinct (product_id, size) inventory records
    total_units              sum of inventory quantity
    low_stock_count          records with quantity <= low_stock_threshold
    active_requests          requests not received or cancelled
    total_requests           all requests
    unique_shops_requesting  distinct shop_id among active requests
    total_items_requested    sum of quantity_requested over active requests
    recent_transfers         received within the trailing window
    status_breakdown         histogram of status over all requests
    shops                    per-shop rollup, most pending first
"""

from __future__ import annotations

from datetime import datetime, timedelta

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from replenishment_kernel.domain.clock import Clock, SystemClock
from replenishment_kernel.domain.dtos import DcStats, ShopRollup
from replenishment_kernel.domain.status import TERMINAL_STATUSES, RequestStatus
from replenishment_kernel.models.inventory import DistributionCenter, InventoryRecord
from replenishment_kernel.models.request import ReplenishmentItem, ReplenishmentRequest
from replenishment_kernel.selectors.base import BaseSelector

DEFAULT_RECENT_WINDOW_DAYS = 30

_TERMINAL_VALUES = [s.value for s in TERMINAL_STATUSES]


class StatsSelector(BaseSelector[ReplenishmentRequest]):
    """
    Aggregates for one client, optionally narrowed to one DC.

    Non-goals:
        - Does NOT cache.  Callers that need a cache own its invalidation.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        recent_window_days: int = DEFAULT_RECENT_WINDOW_DAYS,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._recent_window = timedelta(days=recent_window_days)

    def dc_stats(
        self,
        client_id: str,
        dc_id: str | None = None,
        now: datetime | None = None,
    ) -> DcStats:
        now = now or self._clock.now()
        R = ReplenishmentRequest
        Inv = InventoryRecord

        def scoped_requests(stmt):
            stmt = stmt.where(R.client_id == client_id)
            return stmt.where(R.dc_id == dc_id) if dc_id is not None else stmt

        def scoped_inventory(stmt):
            stmt = stmt.where(Inv.client_id == client_id)
            return stmt.where(Inv.dc_id == dc_id) if dc_id is not None else stmt

        active = R.status.not_in(_TERMINAL_VALUES)

        # Inventory
        sku_subq = scoped_inventory(select(Inv.product_id, Inv.size).distinct()).subquery()
        total_skus = self.session.execute(
            select(func.count()).select_from(sku_subq)
        ).scalar_one()
        total_units = self.session.execute(
            scoped_inventory(select(func.coalesce(func.sum(Inv.quantity), 0)))
        ).scalar_one()
        low_stock_count = self.session.execute(
            scoped_inventory(select(func.count(Inv.id)).where(Inv.quantity <= Inv.low_stock_threshold))
        ).scalar_one()

        # Requests
        status_breakdown = {
            status: count
            for status, count in self.session.execute(
                scoped_requests(select(R.status, func.count(R.id)).group_by(R.status))
            ).all()
        }
        total_requests = sum(status_breakdown.values())
        active_requests = sum(
            count for status, count in status_breakdown.items() if status not in _TERMINAL_VALUES
        )
        unique_shops = self.session.execute(
            scoped_requests(select(func.count(func.distinct(R.shop_id))).where(active))
        ).scalar_one()
        total_items_requested = self.session.execute(
            scoped_requests(
                select(func.coalesce(func.sum(ReplenishmentItem.quantity_requested), 0))
                .select_from(R)
                .join(ReplenishmentItem, ReplenishmentItem.request_id == R.id)
                .where(active)
            )
        ).scalar_one()
        recent_transfers = self.session.execute(
            scoped_requests(
                select(func.count(R.id)).where(
                    R.status == RequestStatus.RECEIVED.value,
                    R.received_at.is_not(None),
                    R.received_at >= now - self._recent_window,
                    R.received_at <= now,
                )
            )
        ).scalar_one()

        dc = None
        if dc_id is not None:
            row = self.session.execute(
                select(DistributionCenter).where(
                    DistributionCenter.client_id == client_id,
                    DistributionCenter.code == dc_id,
                )
            ).scalar_one_or_none()
            dc = row.to_dto() if row is not None else None

        return DcStats(
            client_id=client_id,
            dc_id=dc_id,
            total_skus=int(total_skus),
            total_units=int(total_units),
            low_stock_count=int(low_stock_count),
            active_requests=active_requests,
            total_requests=total_requests,
            unique_shops_requesting=int(unique_shops),
            total_items_requested=int(total_items_requested),
            recent_transfers=int(recent_transfers),
            status_breakdown=status_breakdown,
            shops=self._shop_rollup(scoped_requests, active),
            dc=dc,
        )

    def _shop_rollup(self, scoped_requests, active) -> tuple[ShopRollup, ...]:
        R = ReplenishmentRequest

        totals = dict(
            self.session.execute(
                scoped_requests(select(R.shop_id, func.count(R.id)).group_by(R.shop_id))
            ).all()
        )
        pending = dict(
            self.session.execute(
                scoped_requests(
                    select(R.shop_id, func.count(R.id)).where(active).group_by(R.shop_id)
                )
            ).all()
        )
        pending_items = dict(
            self.session.execute(
                scoped_requests(
                    select(R.shop_id, func.sum(ReplenishmentItem.quantity_requested))
                    .select_from(R)
                    .join(ReplenishmentItem, ReplenishmentItem.request_id == R.id)
                    .where(active)
                    .group_by(R.shop_id)
                )
            ).all()
        )

        rollup = [
            ShopRollup(
                shop_id=shop_id,
                total_requests=int(total),
                pending_requests=int(pending.get(shop_id, 0)),
                pending_items=int(pending_items.get(shop_id) or 0),
            )
            for shop_id, total in totals.items()
        ]
        rollup.sort(key=lambda s: (-s.pending_requests, s.shop_id))
        return tuple(rollup)
