import json

import pytest
from protean.integrations.pytest import DomainFixture


@pytest.fixture(scope="session")
def ordering_bed():
    from ordering.domain import ordering

    bed = DomainFixture(ordering)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(ordering_bed):
    with ordering_bed.domain_context():
        yield


@pytest.fixture()
def gateway():
    """The active FakeGateway. The root conftest resets it after every test."""
    from ordering.gateway import get_gateway

    return get_gateway()


@pytest.fixture()
def notifier():
    """The active FakeNotifier. The root conftest resets it after every test."""
    from ordering.notifier import get_notifier

    return get_notifier()


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------
# Subtotal 5000, transport fee 1000, total 6000
DEFAULT_ITEMS = [
    {
        "product_id": "prod-001",
        "product_name": "Avocado (1kg)",
        "product_sku": "AVO-1KG",
        "price": 1500.0,
        "quantity": 2,
    },
    {
        "product_id": "prod-002",
        "product_name": "Passion Juice",
        "product_sku": "PJ-500",
        "price": 2000.0,
        "quantity": 1,
    },
]


@pytest.fixture()
def order_command():
    """Factory for PlaceOrder commands with a valid default cart."""
    from ordering.order.checkout import PlaceOrder

    def _build(payment_method="mobile_money", items=None, tax=1000.0, **overrides):
        fields = {
            "customer_name": "Aline Uwase",
            "customer_email": "aline@example.com",
            "customer_phone": "250788000111",
            "delivery_address": "KG 11 Ave, Kigali",
            "items": json.dumps(DEFAULT_ITEMS if items is None else items),
            "tax": tax,
            "payment_method": payment_method,
        }
        fields.update(overrides)
        return PlaceOrder(**fields)

    return _build


@pytest.fixture()
def place_order(order_command):
    """Run a full checkout and return its result dict."""
    from ordering.order.checkout import checkout

    def _place(payment_method="mobile_money", **overrides):
        return checkout(order_command(payment_method=payment_method, **overrides))

    return _place


@pytest.fixture()
def register_rider():
    from ordering.rider.rider import RegisterRider
    from protean import current_domain

    def _register(full_name="Jean Habimana", phone="250788555000"):
        return current_domain.process(RegisterRider(full_name=full_name, phone=phone), asynchronous=False)

    return _register


@pytest.fixture()
def dispatch():
    """Assign an order to a rider, optionally accepting and completing the delivery."""
    from ordering.assignment.dispatch import CompleteAssignment, CreateAssignment, RespondToAssignment
    from protean import current_domain

    def _dispatch(order_id, rider_id, accept=False, complete=False, fee=500.0):
        assignment = current_domain.process(
            CreateAssignment(order_id=order_id, rider_id=rider_id, fee=fee),
            asynchronous=False,
        )
        assignment_id = str(assignment["id"])
        if accept or complete:
            current_domain.process(
                RespondToAssignment(assignment_id=assignment_id, status="accepted"),
                asynchronous=False,
            )
        if complete:
            current_domain.process(CompleteAssignment(assignment_id=assignment_id), asynchronous=False)
        return assignment_id

    return _dispatch


@pytest.fixture()
def delivered_order(place_order, register_rider, dispatch):
    """A cash-on-delivery order carried through to delivery. Returns the order id."""
    result = place_order(payment_method="cash_on_delivery")
    dispatch(result["order_id"], register_rider(), complete=True)
    return result["order_id"]
