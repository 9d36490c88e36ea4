"""Repository for the Order aggregate."""

from protean.exceptions import ObjectNotFoundError

from ordering.domain import ordering
from ordering.errors import order_not_found
from ordering.order.order import Order


@ordering.repository(part_of=Order)
class OrderRepository:
    def get_order(self, order_id: str) -> Order:
        """Fetch an order or raise ORDER_NOT_FOUND."""
        try:
            return self.get(order_id)
        except ObjectNotFoundError as exc:
            raise order_not_found(order_id) from exc
