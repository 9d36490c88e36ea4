"""Application tests for rider earnings and the top-rider ranking."""

from datetime import UTC, datetime, timedelta

from protean import current_domain

from ordering.assignment.earnings import compute_top_rider, reset_stats_cache, rider_earnings, top_rider
from ordering.order.order import Order


def _deliver(place_order, dispatch, rider_id, fee=500.0):
    order_id = place_order(payment_method="cash_on_delivery")["order_id"]
    dispatch(order_id, rider_id, complete=True, fee=fee)
    return order_id


class TestRiderEarnings:
    def test_sums_completed_assignments_per_rider(self, place_order, register_rider, dispatch):
        jean = register_rider()
        eric = register_rider(full_name="Eric", phone="250788555111")
        _deliver(place_order, dispatch, jean, fee=500.0)
        _deliver(place_order, dispatch, jean, fee=200.0)
        _deliver(place_order, dispatch, eric, fee=0.0)

        earnings = rider_earnings()

        assert [e["rider_id"] for e in earnings] == [jean, eric]
        assert earnings[0]["deliveries"] == 2
        assert earnings[0]["earnings"] == 2700.0
        assert earnings[0]["rider_name"] == "Jean Habimana"
        assert earnings[1]["earnings"] == 1000.0

    def test_pending_and_reassigned_assignments_earn_nothing(self, place_order, register_rider, dispatch):
        jean = register_rider()
        order_id = place_order(payment_method="cash_on_delivery")["order_id"]
        dispatch(order_id, jean)
        dispatch(order_id, jean)
        assert rider_earnings() == []

    def test_window_excludes_older_deliveries(self, place_order, register_rider, dispatch):
        jean = register_rider()
        _deliver(place_order, dispatch, jean)

        later = datetime.now(UTC) + timedelta(days=8)
        assert rider_earnings(window_days=7, now=later) == []
        assert rider_earnings(window_days=30, now=later)[0]["deliveries"] == 1

    def test_single_rider_without_deliveries(self, register_rider):
        jean = register_rider()
        assert rider_earnings(rider_id=jean) == [
            {"rider_id": jean, "deliveries": 0, "earnings": 0.0, "rider_name": "Jean Habimana", "window_days": 7}
        ]


class TestTopRider:
    def test_most_delivered_orders_wins(self, place_order, register_rider, dispatch):
        jean = register_rider()
        eric = register_rider(full_name="Eric", phone="250788555111")
        _deliver(place_order, dispatch, eric)
        _deliver(place_order, dispatch, jean)
        _deliver(place_order, dispatch, jean)

        top = compute_top_rider()
        assert top == {"rider_id": jean, "rider_name": "Jean Habimana", "deliveries": 2}

    def test_no_deliveries(self):
        assert compute_top_rider() is None

    def test_only_orders_still_delivered_count(self, place_order, register_rider, dispatch):
        jean = register_rider()
        eric = register_rider(full_name="Eric", phone="250788555111")
        _deliver(place_order, dispatch, jean)
        refunded = _deliver(place_order, dispatch, jean)
        _deliver(place_order, dispatch, eric)

        # Mark one of Jean's orders refunded so it no longer counts as delivered
        order_repo = current_domain.repository_for(Order)
        order = order_repo.get(refunded)
        order.request_refund(reason="Wrong items")
        order.approve_refund()
        order_repo.add(order)

        top = compute_top_rider()
        assert top["deliveries"] == 1

    def test_cached_ranking_is_served_until_reset(self, place_order, register_rider, dispatch):
        jean = register_rider()
        assert top_rider() is None

        _deliver(place_order, dispatch, jean)
        assert top_rider() is None

        reset_stats_cache()
        assert top_rider()["rider_id"] == jean
