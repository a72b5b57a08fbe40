"""
Cross-client access attempts.

Every read and write is scoped by client_id; another client's request is
indistinguishable from one that does not exist.
"""

import pytest

from replenishment_kernel.exceptions import (
    InventoryRecordNotFoundError,
    RequestNotFoundError,
)
from tests.conftest import CLIENT_ID, OTHER_CLIENT_ID


@pytest.fixture
def victim(replenishment_service, deterministic_clock):
    svc = replenishment_service
    svc.set_stock(CLIENT_ID, "DC-1", "SKU-1", "M", 10)
    svc.register_distribution_center(CLIENT_ID, "DC-1", "Victim DC")
    return svc.create_request(
        CLIENT_ID,
        shop_id="shop-1",
        dc_id="DC-1",
        requested_by="owner",
        items=[{"product_id": "SKU-1", "size": "M", "quantity_requested": 2}],
    )


class TestRequests:
    def test_cannot_read(self, replenishment_service, victim):
        with pytest.raises(RequestNotFoundError) as exc_info:
            replenishment_service.get_request(OTHER_CLIENT_ID, victim.id)
        assert exc_info.value.request_id == str(victim.id)

    def test_cannot_advance(self, replenishment_service, victim):
        with pytest.raises(RequestNotFoundError):
            replenishment_service.advance_status(OTHER_CLIENT_ID, victim.id, "cancelled")
        assert replenishment_service.get_request(CLIENT_ID, victim.id).status.value == "requested"

    def test_cannot_record_fulfillment(self, replenishment_service, victim):
        with pytest.raises(RequestNotFoundError):
            replenishment_service.record_fulfillment(
                OTHER_CLIENT_ID, victim.id, {victim.items[0].id: 1}
            )

    def test_not_listed(self, replenishment_service, victim):
        assert list(replenishment_service.list_requests(OTHER_CLIENT_ID, limit=None)) == []
        assert [r.id for r in replenishment_service.list_requests(CLIENT_ID)] == [victim.id]


class TestInventoryAndStats:
    def test_cannot_touch_stock(self, replenishment_service, victim):
        with pytest.raises(InventoryRecordNotFoundError):
            replenishment_service.adjust_stock(OTHER_CLIENT_ID, "DC-1", "SKU-1", "M", -5)
        with pytest.raises(InventoryRecordNotFoundError):
            replenishment_service.get_inventory_record(OTHER_CLIENT_ID, "DC-1", "SKU-1", "M")
        assert replenishment_service.get_inventory_record(CLIENT_ID, "DC-1", "SKU-1", "M").quantity == 10

    def test_same_dc_code_is_separate_per_client(self, replenishment_service, victim):
        replenishment_service.set_stock(OTHER_CLIENT_ID, "DC-1", "SKU-1", "M", 99)
        assert replenishment_service.get_inventory_record(CLIENT_ID, "DC-1", "SKU-1", "M").quantity == 10
        assert replenishment_service.inventory_summary(OTHER_CLIENT_ID).total_units == 99

    def test_stats_do_not_leak(self, replenishment_service, victim):
        stats = replenishment_service.dc_stats(OTHER_CLIENT_ID, "DC-1")
        assert stats.total_requests == 0
        assert stats.total_units == 0
        assert stats.dc is None

    def test_notifications_scoped(self, replenishment_service, victim):
        assert replenishment_service.pending_notifications(OTHER_CLIENT_ID) == []
        assert replenishment_service.dispatch_notifications(
            lambda intent: None, client_id=OTHER_CLIENT_ID
        ).attempted == 0
        assert len(replenishment_service.pending_notifications(CLIENT_ID)) == 1

    def test_dcs_scoped(self, replenishment_service, victim):
        assert replenishment_service.list_distribution_centers(OTHER_CLIENT_ID) == []
