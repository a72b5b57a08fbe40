"""Pure inventory predicates and notification message rendering."""

from dataclasses import dataclass
from uuid import uuid4

import pytest

from replenishment_kernel.domain.dtos import ItemSpec, StockAlert
from replenishment_kernel.domain.inventory import is_low_stock, is_negative_stock
from replenishment_kernel.domain.notifications import build_status_message
from replenishment_kernel.domain.status import RequestStatus


@dataclass
class Level:
    quantity: int
    low_stock_threshold: int


class TestLowStock:
    @pytest.mark.parametrize(
        "quantity,threshold,expected",
        [
            (5, 5, True),   # boundary: equal is low
            (6, 5, False),
            (4, 5, True),
            (0, 0, True),
            (1, 0, False),
            (-3, 0, True),
        ],
    )
    def test_boundary(self, quantity, threshold, expected):
        assert is_low_stock(Level(quantity, threshold)) is expected

    def test_negative(self):
        assert is_negative_stock(Level(-1, 0))
        assert not is_negative_stock(Level(0, 0))

    def test_stock_alert_negative_flag(self):
        alert = StockAlert(dc_id="DC", product_id="P", size="M", quantity=-2, low_stock_threshold=5)
        assert alert.negative
        low = StockAlert(dc_id="DC", product_id="P", size="M", quantity=3, low_stock_threshold=5)
        assert not low.negative


class TestItemSpec:
    def test_from_mapping_defaults_size(self):
        spec = ItemSpec.from_mapping({"product_id": "SKU-1", "quantity_requested": 2})
        assert spec.size == ""
        assert spec.quantity_requested == 2


class TestStatusMessage:
    def test_uses_short_id(self):
        rid = uuid4()
        message = build_status_message(rid, RequestStatus.IN_TRANSIT)
        assert message.splitlines()[0] == f"Replenishment #{str(rid)[:8]}"
        assert "on its way" in message

    def test_shop_line_optional(self):
        message = build_status_message(uuid4(), RequestStatus.RECEIVED, shop_name="Shop 7")
        assert message.splitlines()[-1] == "Shop: Shop 7"
