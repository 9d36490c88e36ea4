"""Refund workflow: item and order refund commands and handler.

Refund decisions only move refund fields, the refunded amount and, when a
refund covers the whole order, the order status. Order totals are never
recomputed.
"""

import structlog
from protean import handle
from protean.fields import Boolean, Identifier, String
from protean.utils.globals import current_domain

from ordering.domain import ordering
from ordering.order.order import Order
from ordering.order.status import withdraw_dispatch

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Item refunds
# ---------------------------------------------------------------------------
@ordering.command(part_of="Order")
class RequestItemRefund:
    order_id = Identifier(required=True)
    item_id = Identifier(required=True)
    reason = String(required=True, max_length=1000)
    admin_initiated = Boolean(default=False)


@ordering.command(part_of="Order")
class RespondToItemRefund:
    order_id = Identifier(required=True)
    item_id = Identifier(required=True)
    approve = Boolean(required=True)
    reason = String(max_length=1000)


@ordering.command(part_of="Order")
class CancelItemRefund:
    order_id = Identifier(required=True)
    item_id = Identifier(required=True)


# ---------------------------------------------------------------------------
# Order refunds
# ---------------------------------------------------------------------------
@ordering.command(part_of="Order")
class RequestOrderRefund:
    order_id = Identifier(required=True)
    reason = String(required=True, max_length=1000)


@ordering.command(part_of="Order")
class RespondToOrderRefund:
    order_id = Identifier(required=True)
    approve = Boolean(required=True)
    reason = String(max_length=1000)


@ordering.command(part_of="Order")
class CancelOrderRefund:
    order_id = Identifier(required=True)


@ordering.command_handler(part_of=Order)
class RefundHandler:
    @handle(RequestItemRefund)
    def request_item_refund(self, command) -> dict:
        repo = current_domain.repository_for(Order)
        order = repo.get_order(command.order_id)
        order.request_item_refund(
            command.item_id,
            reason=command.reason,
            admin_initiated=bool(command.admin_initiated),
        )
        repo.add(order)
        logger.info("Item refund requested", order_id=str(order.id), item_id=command.item_id)
        return order.to_dict()

    @handle(RespondToItemRefund)
    def respond_to_item_refund(self, command) -> dict:
        repo = current_domain.repository_for(Order)
        order = repo.get_order(command.order_id)
        if command.approve:
            amount = order.approve_item_refund(command.item_id)
            logger.info("Item refund approved", order_id=str(order.id), item_id=command.item_id, amount=amount)
        else:
            order.reject_item_refund(command.item_id, reason=command.reason)
            logger.info("Item refund rejected", order_id=str(order.id), item_id=command.item_id)
        repo.add(order)
        withdraw_dispatch(order)
        return order.to_dict()

    @handle(CancelItemRefund)
    def cancel_item_refund(self, command) -> dict:
        repo = current_domain.repository_for(Order)
        order = repo.get_order(command.order_id)
        order.cancel_item_refund(command.item_id)
        repo.add(order)
        return order.to_dict()

    @handle(RequestOrderRefund)
    def request_order_refund(self, command) -> dict:
        repo = current_domain.repository_for(Order)
        order = repo.get_order(command.order_id)
        order.request_refund(reason=command.reason)
        repo.add(order)
        logger.info("Order refund requested", order_id=str(order.id))
        return order.to_dict()

    @handle(RespondToOrderRefund)
    def respond_to_order_refund(self, command) -> dict:
        repo = current_domain.repository_for(Order)
        order = repo.get_order(command.order_id)
        if command.approve:
            amount = order.approve_refund()
            logger.info("Order refund approved", order_id=str(order.id), amount=amount)
        else:
            order.reject_refund(reason=command.reason)
            logger.info("Order refund rejected", order_id=str(order.id))
        repo.add(order)
        withdraw_dispatch(order)
        return order.to_dict()

    @handle(CancelOrderRefund)
    def cancel_order_refund(self, command) -> dict:
        repo = current_domain.repository_for(Order)
        order = repo.get_order(command.order_id)
        order.cancel_refund()
        repo.add(order)
        return order.to_dict()
