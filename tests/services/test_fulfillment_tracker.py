"""FulfillmentTracker: the 0 <= fulfilled <= requested ceiling and last-write-wins."""

from uuid import uuid4

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from replenishment_kernel.exceptions import (
    InvalidFulfillmentError,
    ItemNotFoundError,
    RequestNotFoundError,
)
from tests.conftest import CLIENT_ID, OTHER_CLIENT_ID


class TestRecordFulfillment:
    def test_sets_quantities(self, fulfillment_tracker, make_request):
        info = make_request(("SKU-1", "M", 4), ("SKU-2", "L", 6))
        first, second = info.items

        result = fulfillment_tracker.record_fulfillment(
            CLIENT_ID, info.id, {first.id: 4, str(second.id): 2}
        )
        assert [i.quantity_fulfilled for i in result.items] == [4, 2]
        assert [i.shortfall for i in result.items] == [0, 4]

    def test_last_write_wins(self, fulfillment_tracker, make_request):
        info = make_request(("SKU-1", "M", 4))
        item_id = info.items[0].id
        fulfillment_tracker.record_fulfillment(CLIENT_ID, info.id, {item_id: 1})
        result = fulfillment_tracker.record_fulfillment(CLIENT_ID, info.id, {item_id: 3})
        assert result.items[0].quantity_fulfilled == 3

    def test_idempotent(self, fulfillment_tracker, make_request):
        info = make_request(("SKU-1", "M", 4))
        item_id = info.items[0].id
        once = fulfillment_tracker.record_fulfillment(CLIENT_ID, info.id, {item_id: 2})
        twice = fulfillment_tracker.record_fulfillment(CLIENT_ID, info.id, {item_id: 2})
        assert once.items == twice.items

    def test_status_unchanged(self, fulfillment_tracker, make_request):
        info = make_request()
        result = fulfillment_tracker.record_fulfillment(CLIENT_ID, info.id, {info.items[0].id: 1})
        assert result.status == info.status
        assert result.version == info.version

    @pytest.mark.parametrize("quantity", [5, -1, 2.0, "3", True, None])
    def test_invalid_quantities_rejected(self, fulfillment_tracker, make_request, quantity):
        info = make_request(("SKU-1", "M", 4))
        with pytest.raises(InvalidFulfillmentError) as exc_info:
            fulfillment_tracker.record_fulfillment(CLIENT_ID, info.id, {info.items[0].id: quantity})
        assert exc_info.value.item_id == str(info.items[0].id)

    def test_ceiling_error_reports_requested(self, fulfillment_tracker, make_request):
        info = make_request(("SKU-1", "M", 4))
        with pytest.raises(InvalidFulfillmentError) as exc_info:
            fulfillment_tracker.record_fulfillment(CLIENT_ID, info.id, {info.items[0].id: 5})
        assert exc_info.value.quantity_requested == 4

    def test_rejected_map_applies_nothing(self, fulfillment_tracker, make_request, request_selector):
        info = make_request(("SKU-1", "M", 4), ("SKU-2", "M", 1))
        first, second = info.items
        with pytest.raises(InvalidFulfillmentError):
            fulfillment_tracker.record_fulfillment(CLIENT_ID, info.id, {first.id: 2, second.id: 9})
        fresh = request_selector.get_request(CLIENT_ID, info.id)
        assert [i.quantity_fulfilled for i in fresh.items] == [0, 0]

    def test_item_of_other_request(self, fulfillment_tracker, make_request):
        info = make_request()
        other = make_request()
        with pytest.raises(ItemNotFoundError):
            fulfillment_tracker.record_fulfillment(CLIENT_ID, info.id, {other.items[0].id: 1})

    @pytest.mark.parametrize("item_id", [uuid4(), "garbage"])
    def test_unknown_item(self, fulfillment_tracker, make_request, item_id):
        info = make_request()
        with pytest.raises(ItemNotFoundError):
            fulfillment_tracker.record_fulfillment(CLIENT_ID, info.id, {item_id: 1})

    def test_not_a_mapping(self, fulfillment_tracker, make_request):
        info = make_request()
        with pytest.raises(InvalidFulfillmentError):
            fulfillment_tracker.record_fulfillment(CLIENT_ID, info.id, [(info.items[0].id, 1)])

    def test_terminal_request_rejected(self, fulfillment_tracker, transition_service, make_request):
        info = make_request()
        transition_service.advance_status(CLIENT_ID, info.id, "cancelled")
        with pytest.raises(InvalidFulfillmentError) as exc_info:
            fulfillment_tracker.record_fulfillment(CLIENT_ID, info.id, {info.items[0].id: 1})
        assert "cancelled" in exc_info.value.reason

    def test_foreign_client(self, fulfillment_tracker, make_request):
        info = make_request()
        with pytest.raises(RequestNotFoundError):
            fulfillment_tracker.record_fulfillment(OTHER_CLIENT_ID, info.id, {info.items[0].id: 1})


class TestCeilingProperty:
    @settings(
        max_examples=30,
        deadline=None,
        suppress_health_check=[HealthCheck.function_scoped_fixture],
    )
    @given(
        requested=st.integers(min_value=1, max_value=50),
        writes=st.lists(st.integers(min_value=-5, max_value=60), min_size=1, max_size=6),
    )
    def test_fulfilled_always_within_bounds(self, fulfillment_tracker, make_request, requested, writes):
        info = make_request(("SKU-H", "M", requested))
        item_id = info.items[0].id
        expected = 0

        for qty in writes:
            if 0 <= qty <= requested:
                result = fulfillment_tracker.record_fulfillment(CLIENT_ID, info.id, {item_id: qty})
                expected = qty
            else:
                with pytest.raises(InvalidFulfillmentError):
                    fulfillment_tracker.record_fulfillment(CLIENT_ID, info.id, {item_id: qty})
                continue
            assert 0 <= result.items[0].quantity_fulfilled <= requested
            assert result.items[0].quantity_fulfilled == expected
