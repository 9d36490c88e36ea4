"""Payment transaction statistics for the admin dashboard.

Derived reads over stored payment attempts, like rider earnings: counts per
status, and revenue and outcome totals for the trailing window compared with
the window before it.
"""

from datetime import UTC, datetime, timedelta

from protean.utils.globals import current_domain

from ordering.payment.payment import Payment, PaymentStatus

STATS_WINDOW_DAYS = 7


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=UTC)


def _all_payments() -> list[Payment]:
    return current_domain.repository_for(Payment)._dao.query.all().items


def percent_change(current: float, previous: float) -> float:
    """Change from the previous window in percent. 100 when growing from nothing."""
    if previous == 0:
        return 100.0 if current > 0 else 0.0
    return round((current - previous) / previous * 100, 2)


def transaction_counts() -> dict:
    """Number of payment attempts per status, plus attempts the client gave up on."""
    counts = {"all": 0, **{status.value: 0 for status in PaymentStatus}, "client_timeout": 0}
    for payment in _all_payments():
        counts["all"] += 1
        counts[payment.status] += 1
        if payment.client_timeout:
            counts["client_timeout"] += 1
    return counts


def _window_totals(payments: list[Payment]) -> dict:
    totals = {"revenue": 0.0, "completed": 0, "failed": 0, "pending": 0}
    for payment in payments:
        if payment.status == PaymentStatus.COMPLETED.value:
            totals["revenue"] = round(totals["revenue"] + payment.amount, 2)
            totals["completed"] += 1
        elif payment.status == PaymentStatus.FAILED.value:
            totals["failed"] += 1
        elif payment.status == PaymentStatus.PENDING.value:
            totals["pending"] += 1
    return totals


def transaction_stats(window_days: int = STATS_WINDOW_DAYS, now: datetime | None = None) -> dict:
    """Totals for attempts created in the trailing window, with change against the window before."""
    now = now or datetime.now(UTC)
    current_start = now - timedelta(days=window_days)
    previous_start = current_start - timedelta(days=window_days)

    current, previous = [], []
    for payment in _all_payments():
        if payment.created_at is None:
            continue
        created_at = _as_utc(payment.created_at)
        if created_at >= current_start:
            current.append(payment)
        elif created_at >= previous_start:
            previous.append(payment)

    this_window, last_window = _window_totals(current), _window_totals(previous)
    return {
        "window_days": window_days,
        "total_revenue": this_window["revenue"],
        "completed_transactions": this_window["completed"],
        "failed_transactions": this_window["failed"],
        "pending_transactions": this_window["pending"],
        "revenue_change": percent_change(this_window["revenue"], last_window["revenue"]),
        "completed_change": percent_change(this_window["completed"], last_window["completed"]),
        "failed_change": percent_change(this_window["failed"], last_window["failed"]),
        "pending_change": percent_change(this_window["pending"], last_window["pending"]),
    }
