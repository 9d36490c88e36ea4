"""Rider earnings and top-performer ranking.

Both are derived reads over completed assignments; nothing keeps a running
total. Earnings use the amount snapshotted on each assignment at completion.
"""

import os
from datetime import UTC, datetime, timedelta

from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from ordering.assignment.assignment import OrderAssignment
from ordering.order.order import Order, OrderStatus
from ordering.rider.rider import Rider
from ordering.utils.cache import TTLCache

EARNINGS_WINDOW_DAYS = 7

_stats_cache = TTLCache(ttl=float(os.environ.get("RIDER_STATS_CACHE_TTL", "15")))


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=UTC)


def _completed_since(cutoff: datetime | None) -> list[OrderAssignment]:
    completed = current_domain.repository_for(OrderAssignment).completed()
    if cutoff is None:
        return completed
    return [a for a in completed if a.completed_at and _as_utc(a.completed_at) >= cutoff]


def _earning(assignment: OrderAssignment) -> float:
    if assignment.earned_amount is not None:
        return assignment.earned_amount
    return max(0.0, (assignment.fee or 0.0) + (assignment.delivery_fee or 0.0))


def _rider_name(rider_id: str) -> str | None:
    try:
        return current_domain.repository_for(Rider).get(rider_id).full_name
    except ObjectNotFoundError:
        return None


def rider_earnings(
    window_days: int = EARNINGS_WINDOW_DAYS,
    rider_id: str | None = None,
    now: datetime | None = None,
) -> list[dict]:
    """Sum each rider's earnings over completed assignments in the trailing window."""
    cutoff = (now or datetime.now(UTC)) - timedelta(days=window_days)

    totals: dict[str, dict] = {}
    for assignment in _completed_since(cutoff):
        key = str(assignment.rider_id)
        if rider_id and key != str(rider_id):
            continue
        entry = totals.setdefault(key, {"rider_id": key, "deliveries": 0, "earnings": 0.0})
        entry["deliveries"] += 1
        entry["earnings"] = round(entry["earnings"] + _earning(assignment), 2)

    if rider_id and str(rider_id) not in totals:
        totals[str(rider_id)] = {"rider_id": str(rider_id), "deliveries": 0, "earnings": 0.0}

    for entry in totals.values():
        entry["rider_name"] = _rider_name(entry["rider_id"])
        entry["window_days"] = window_days
    return sorted(totals.values(), key=lambda e: e["earnings"], reverse=True)


def compute_top_rider(window_days: int | None = None, now: datetime | None = None) -> dict | None:
    """Rider with the most completed assignments whose order was delivered.

    Ties keep whichever rider reached the winning count first in store
    iteration order. That order is not guaranteed stable across providers.
    """
    cutoff = None
    if window_days is not None:
        cutoff = (now or datetime.now(UTC)) - timedelta(days=window_days)

    order_repo = current_domain.repository_for(Order)
    counts: dict[str, int] = {}
    for assignment in _completed_since(cutoff):
        try:
            order = order_repo.get(str(assignment.order_id))
        except ObjectNotFoundError:
            continue
        if order.status != OrderStatus.DELIVERED.value:
            continue
        counts[str(assignment.rider_id)] = counts.get(str(assignment.rider_id), 0) + 1

    best_id, best_count = None, 0
    for rider_id, count in counts.items():
        if count > best_count:
            best_id, best_count = rider_id, count

    if best_id is None:
        return None
    return {"rider_id": best_id, "rider_name": _rider_name(best_id), "deliveries": best_count}


def top_rider(window_days: int | None = None) -> dict | None:
    """Cached :func:`compute_top_rider`; answers may be up to the cache TTL old."""
    return _stats_cache.get_or_compute(("top_rider", window_days), lambda: compute_top_rider(window_days))


def reset_stats_cache() -> None:
    _stats_cache.invalidate()
