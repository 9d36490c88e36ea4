"""BDD tests for item and order refunds."""

from protean import current_domain
from pytest_bdd import given, parsers, scenarios, then, when

from ordering.order.order import Order
from ordering.order.refunds import CancelItemRefund, RequestItemRefund, RespondToItemRefund
from ordering.payment.reconciliation import ProcessPaymentWebhook

scenarios("features/refunds.feature")


def _order(ctx) -> Order:
    return current_domain.repository_for(Order).get(ctx["order_id"])


def _item_ids(ctx) -> list[str]:
    return [str(i.id) for i in sorted(_order(ctx).items, key=lambda i: i.product_id)]


def _process(capture, command):
    return capture(lambda: current_domain.process(command, asynchronous=False))


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given("a delivered order", target_fixture="ctx")
def delivered(delivered_order):
    return {"order_id": delivered_order}


@given("the order has been paid")
def order_paid(ctx):
    current_domain.process(
        ProcessPaymentWebhook(transaction_ref=ctx["tid"], external_status="completed"),
        asynchronous=False,
    )


# ---------------------------------------------------------------------------
# When steps
# ---------------------------------------------------------------------------
@when("the customer asks to refund the first item")
def request_first_item(ctx, capture):
    _process(capture, RequestItemRefund(order_id=ctx["order_id"], item_id=_item_ids(ctx)[0], reason="Bruised"))


@when("the customer asks to refund every item")
def request_every_item(ctx, capture):
    for item_id in _item_ids(ctx):
        _process(capture, RequestItemRefund(order_id=ctx["order_id"], item_id=item_id, reason="Wrong order"))


@when("staff approve the refund for the first item")
def approve_first_item(ctx, capture):
    _process(capture, RespondToItemRefund(order_id=ctx["order_id"], item_id=_item_ids(ctx)[0], approve=True))


@when("staff approve every item refund")
def approve_every_item(ctx, capture):
    for item_id in _item_ids(ctx):
        _process(capture, RespondToItemRefund(order_id=ctx["order_id"], item_id=item_id, approve=True))


@when("staff reject the refund for the first item")
def reject_first_item(ctx, capture):
    command = RespondToItemRefund(
        order_id=ctx["order_id"],
        item_id=_item_ids(ctx)[0],
        approve=False,
        reason="Item looks fine in the delivery photo",
    )
    _process(capture, command)


@when("the customer cancels the refund for the first item")
def cancel_first_item(ctx, capture):
    _process(capture, CancelItemRefund(order_id=ctx["order_id"], item_id=_item_ids(ctx)[0]))


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse('the first item refund is "{status}" for {amount:g}'))
def first_item_refund(ctx, status, amount):
    item = next(i for i in _order(ctx).items if str(i.id) == _item_ids(ctx)[0])
    assert item.refund_status == status
    assert item.refund_amount == amount


@then(parsers.cfparse("the order refund amount is {amount:g}"))
def order_refund_amount(ctx, amount):
    assert _order(ctx).refund_amount == amount
