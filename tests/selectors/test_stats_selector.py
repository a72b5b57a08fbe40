"""StatsSelector: DC statistics recomputed from committed rows."""

from datetime import timedelta

from tests.conftest import CLIENT_ID, OTHER_CLIENT_ID


def _walk(transition_service, request_id, *statuses, **kwargs):
    for status in statuses:
        transition_service.advance_status(CLIENT_ID, request_id, status, **kwargs)


class TestDcStats:
    def test_empty(self, stats_selector):
        stats = stats_selector.dc_stats(CLIENT_ID, "DC-1")
        assert stats.total_requests == 0
        assert stats.total_units == 0
        assert stats.status_breakdown == {}
        assert stats.shops == ()
        assert stats.dc is None

    def test_all_metrics(self, ledger, stats_selector, transition_service, make_request):
        ledger.set_stock(CLIENT_ID, "DC-1", "SKU-1", "M", 100, low_stock_threshold=5)
        ledger.set_stock(CLIENT_ID, "DC-1", "SKU-1", "L", 3, low_stock_threshold=5)
        ledger.set_stock(CLIENT_ID, "DC-1", "SKU-2", "", 10, low_stock_threshold=5)
        ledger.set_stock(CLIENT_ID, "DC-2", "SKU-9", "", 1)

        make_request(("SKU-1", "M", 4), ("SKU-2", "", 2), shop_id="S1", dc_id="DC-1")
        b = make_request(("SKU-1", "M", 6), shop_id="S2", dc_id="DC-1")
        c = make_request(("SKU-1", "M", 1), shop_id="S1", dc_id="DC-1")
        d = make_request(("SKU-2", "", 5), shop_id="S3", dc_id="DC-1")
        make_request(shop_id="S9", dc_id="DC-2")

        _walk(transition_service, b.id, "processing")
        _walk(transition_service, c.id, "processing", "in_transit", "received")
        _walk(transition_service, d.id, "cancelled")

        stats = stats_selector.dc_stats(CLIENT_ID, "DC-1")

        # c shipped 1 x SKU-1/M from DC-1
        assert stats.total_skus == 3
        assert stats.total_units == 99 + 3 + 10
        assert stats.low_stock_count == 1
        assert stats.total_requests == 4
        assert stats.active_requests == 2
        assert stats.unique_shops_requesting == 2
        assert stats.total_items_requested == 4 + 2 + 6
        assert stats.recent_transfers == 1
        assert stats.status_breakdown == {
            "requested": 1,
            "processing": 1,
            "received": 1,
            "cancelled": 1,
        }
        assert [(s.shop_id, s.total_requests, s.pending_requests, s.pending_items) for s in stats.shops] == [
            ("S1", 2, 1, 6),
            ("S2", 1, 1, 6),
            ("S3", 1, 0, 0),
        ]

    def test_client_wide_without_dc(self, stats_selector, make_request):
        make_request(dc_id="DC-1")
        make_request(dc_id="DC-2")
        make_request(client_id=OTHER_CLIENT_ID, dc_id="DC-1")
        stats = stats_selector.dc_stats(CLIENT_ID)
        assert stats.dc_id is None
        assert stats.total_requests == 2

    def test_recent_window_boundary(self, stats_selector, transition_service, make_request, deterministic_clock):
        info = make_request(dc_id="DC-1")
        _walk(transition_service, info.id, "processing", "in_transit", "received")
        received_at = deterministic_clock.now()

        assert stats_selector.dc_stats(CLIENT_ID, "DC-1", now=received_at + timedelta(days=30)).recent_transfers == 1
        assert (
            stats_selector.dc_stats(
                CLIENT_ID, "DC-1", now=received_at + timedelta(days=30, seconds=1)
            ).recent_transfers
            == 0
        )

    def test_cancelled_never_counts_as_transfer(self, stats_selector, transition_service, make_request):
        info = make_request(dc_id="DC-1")
        _walk(transition_service, info.id, "processing", "cancelled")
        assert stats_selector.dc_stats(CLIENT_ID, "DC-1").recent_transfers == 0

    def test_reflects_changes_immediately(self, stats_selector, transition_service, make_request):
        info = make_request(dc_id="DC-1")
        assert stats_selector.dc_stats(CLIENT_ID, "DC-1").active_requests == 1
        _walk(transition_service, info.id, "cancelled")
        assert stats_selector.dc_stats(CLIENT_ID, "DC-1").active_requests == 0

    def test_negative_stock_summed_as_is(self, ledger, stats_selector):
        ledger.set_stock(CLIENT_ID, "DC-1", "SKU-1", "M", 2)
        ledger.ship(CLIENT_ID, "DC-1", "SKU-1", "M", 5)
        ledger.set_stock(CLIENT_ID, "DC-1", "SKU-2", "M", 10)
        assert stats_selector.dc_stats(CLIENT_ID, "DC-1").total_units == 7

    def test_includes_registered_dc(self, ledger, stats_selector):
        ledger.register_distribution_center(CLIENT_ID, "DC-1", "North")
        assert stats_selector.dc_stats(CLIENT_ID, "DC-1").dc.name == "North"
        assert stats_selector.dc_stats(OTHER_CLIENT_ID, "DC-1").dc is None
