"""Application tests for payment transaction counts and windowed stats."""

from datetime import UTC, datetime, timedelta

from protean import current_domain

from ordering.payment.payment import Payment
from ordering.payment.reconciliation import ReconcilePayment, RecordClientTimeout
from ordering.payment.stats import percent_change, transaction_counts, transaction_stats


def _settle(payment_id, status):
    command = ReconcilePayment(payment_id=payment_id, source="poll", external_status=status)
    current_domain.process(command, asynchronous=False)


def _payments(place_order):
    """Two completed, one failed and one pending attempt. Returns the pending payment id."""
    for status in ("completed", "completed", "failed"):
        _settle(place_order()["payment_id"], status)
    return place_order()["payment_id"]


class TestTransactionCounts:
    def test_counts_per_status(self, place_order):
        pending_id = _payments(place_order)
        current_domain.process(RecordClientTimeout(payment_id=pending_id), asynchronous=False)
        place_order(payment_method="cash_on_delivery")

        assert transaction_counts() == {
            "all": 4,
            "pending": 1,
            "completed": 2,
            "failed": 1,
            "cancelled": 0,
            "client_timeout": 1,
        }

    def test_empty_store(self):
        counts = transaction_counts()
        assert counts["all"] == 0
        assert counts["completed"] == 0


class TestTransactionStats:
    def test_current_window_totals(self, place_order):
        _payments(place_order)

        stats = transaction_stats()

        assert stats["total_revenue"] == 12000.0
        assert stats["completed_transactions"] == 2
        assert stats["failed_transactions"] == 1
        assert stats["pending_transactions"] == 1
        # Nothing in the week before, so every non-zero figure grew by 100%
        assert stats["revenue_change"] == 100.0
        assert stats["pending_change"] == 100.0

    def test_last_week_becomes_the_comparison_window(self, place_order):
        _payments(place_order)

        stats = transaction_stats(now=datetime.now(UTC) + timedelta(days=8))

        assert stats["total_revenue"] == 0.0
        assert stats["completed_transactions"] == 0
        assert stats["revenue_change"] == -100.0
        assert stats["failed_change"] == -100.0

    def test_attempts_older_than_two_windows_are_ignored(self, place_order):
        _payments(place_order)
        stats = transaction_stats(now=datetime.now(UTC) + timedelta(days=15))
        assert stats["revenue_change"] == 0.0
        assert len(current_domain.repository_for(Payment)._dao.query.all().items) == 4


class TestPercentChange:
    def test_growth_from_zero(self):
        assert percent_change(5, 0) == 100.0
        assert percent_change(0, 0) == 0.0

    def test_relative_change(self):
        assert percent_change(150.0, 100.0) == 50.0
        assert percent_change(1, 3) == -66.67
