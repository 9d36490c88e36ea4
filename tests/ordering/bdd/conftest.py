"""Shared BDD fixtures and step definitions for the ordering domain.

Scenarios run against the application layer: commands are processed
synchronously and state is read back from the repositories.
"""

import pytest
from protean import current_domain
from pytest_bdd import given, parsers, then

from ordering.errors import OrderingError
from ordering.order.order import Order
from ordering.payment.payment import Payment


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------
@pytest.fixture()
def error():
    """Container for captured ordering errors."""
    return {"exc": None}


@pytest.fixture()
def capture(error):
    """Run an action and keep any ordering error for a later Then step."""

    def _capture(action):
        try:
            return action()
        except OrderingError as exc:
            error["exc"] = exc
            return None

    return _capture


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given("an online order awaiting payment", target_fixture="ctx")
def online_order(place_order):
    result = place_order()
    payment = current_domain.repository_for(Payment).get(result["payment_id"])
    return {
        "order_id": result["order_id"],
        "payment_id": result["payment_id"],
        "tid": payment.kpay_transaction_id,
    }


@given("a cash-on-delivery order ready for dispatch", target_fixture="ctx")
def dispatchable_order(place_order):
    result = place_order(payment_method="cash_on_delivery")
    return {"order_id": result["order_id"], "riders": {}, "assignments": {}}


@given(parsers.cfparse('rider "{name}" is on duty'))
def rider_on_duty(ctx, register_rider, name):
    ctx["riders"][name] = register_rider(full_name=name, phone=f"2507885{len(ctx['riders']):05d}")


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse('the order status is "{status}"'))
def order_status_is(ctx, status):
    order = current_domain.repository_for(Order).get(ctx["order_id"])
    assert order.status == status


@then(parsers.cfparse('the payment status is "{status}"'))
def payment_status_is(ctx, status):
    payment = current_domain.repository_for(Payment).get(ctx["payment_id"])
    assert payment.status == status


@then(parsers.cfparse('the action fails with code "{code}"'))
def action_fails_with_code(error, code):
    assert error["exc"] is not None, "Expected an ordering error but none was raised"
    assert error["exc"].code == code


@then("no error is raised")
def no_error(error):
    assert error["exc"] is None
