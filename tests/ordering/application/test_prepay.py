"""Application tests for the prepay flow: pay first, then place or link the order."""

import pytest
from protean import current_domain

from ordering.errors import ConflictError, InvalidTransitionError, NotFoundError, ValidationFailedError
from ordering.order.order import Order
from ordering.payment.payment import Payment
from ordering.payment.prepay import OpenPrepayment, finalize_payment, link_payment, open_prepayment
from ordering.payment.reconciliation import ProcessPaymentWebhook


def _payment(payment_id) -> Payment:
    return current_domain.repository_for(Payment).get(payment_id)


def _order(order_id) -> Order:
    return current_domain.repository_for(Order).get(order_id)


def _webhook(payment, status):
    command = ProcessPaymentWebhook(transaction_ref=payment.kpay_transaction_id, external_status=status)
    return current_domain.process(command, asynchronous=False)


@pytest.fixture()
def prepayment():
    """A pending prepayment for the default cart total (6000). Returns the Payment."""
    result = open_prepayment(
        OpenPrepayment(amount=6000.0, phone="250788000111", customer_name="Aline Uwase")
    )
    return _payment(result["payment"]["id"])


class TestOpenPrepayment:
    def test_collection_starts_without_an_order(self, prepayment, gateway):
        assert prepayment.status == "pending"
        assert prepayment.order_id is None
        assert prepayment.reference.startswith("PRE-")
        assert prepayment.kpay_transaction_id.startswith("fake_tid_")
        call = gateway.calls[0]
        assert call["reference"] == prepayment.reference
        assert call["phone"] == "250788000111"

    def test_completion_touches_no_order(self, prepayment):
        assert _webhook(prepayment, "completed") == "completed"
        payment = _payment(prepayment.id)
        assert payment.status == "completed"
        assert payment.order_id is None
        assert current_domain.repository_for(Order)._dao.query.all().items == []


class TestFinalizePayment:
    def test_completed_by_webhook(self, prepayment, gateway):
        _webhook(prepayment, "completed")
        result = finalize_payment(reference=prepayment.reference)
        assert result["status"] == "completed"
        assert result["can_create_order"] is True
        assert not [c for c in gateway.calls if c["method"] == "check_status"]

    def test_polls_gateway_when_no_webhook_arrived(self, prepayment, gateway):
        gateway.configure(status="completed")
        result = finalize_payment(transaction_id=prepayment.kpay_transaction_id)
        assert result["status"] == "completed"
        assert result["can_create_order"] is True
        assert _payment(prepayment.id).status == "completed"

    def test_still_pending_is_a_conflict(self, prepayment):
        with pytest.raises(ConflictError) as exc:
            finalize_payment(reference=prepayment.reference)
        assert exc.value.code == "PAYMENT_NOT_COMPLETED"

    def test_failed_payment_is_a_conflict(self, prepayment):
        _webhook(prepayment, "failed")
        with pytest.raises(ConflictError) as exc:
            finalize_payment(reference=prepayment.reference)
        assert exc.value.code == "PAYMENT_NOT_COMPLETED"

    def test_unreachable_gateway_returns_last_known_state(self, prepayment, gateway):
        gateway.configure(reachable=False)
        result = finalize_payment(reference=prepayment.reference)
        assert result["status"] == "pending"
        assert result["can_create_order"] is False
        assert "last known status" in result["message"]

    def test_requires_a_lookup_key(self):
        with pytest.raises(ValidationFailedError):
            finalize_payment()

    def test_unknown_reference(self):
        with pytest.raises(NotFoundError) as exc:
            finalize_payment(reference="PRE-NOPE")
        assert exc.value.code == "PAYMENT_NOT_FOUND"


class TestCheckoutWithPrepayment:
    def test_completed_prepayment_pays_new_order(self, prepayment, place_order, gateway):
        _webhook(prepayment, "completed")
        calls_before = len(gateway.calls)

        result = place_order(prepayment_reference=prepayment.reference)

        assert result["status"] == "processing"
        assert result["payment_id"] == str(prepayment.id)
        assert result["payment_status"] == "completed"
        assert len(gateway.calls) == calls_before
        assert _order(result["order_id"]).is_paid is True
        assert str(_payment(prepayment.id).order_id) == result["order_id"]

    def test_pending_prepayment_is_refused(self, prepayment, place_order):
        with pytest.raises(ConflictError) as exc:
            place_order(prepayment_reference=prepayment.reference)
        assert exc.value.code == "PAYMENT_NOT_COMPLETED"
        assert current_domain.repository_for(Order)._dao.query.all().items == []

    def test_prepayment_pays_only_one_order(self, prepayment, place_order):
        _webhook(prepayment, "completed")
        place_order(prepayment_reference=prepayment.reference)
        with pytest.raises(ConflictError) as exc:
            place_order(prepayment_reference=prepayment.reference)
        assert exc.value.code == "PAYMENT_ALREADY_LINKED"

    def test_cash_on_delivery_cannot_use_prepayment(self, prepayment, place_order):
        with pytest.raises(ValidationFailedError):
            place_order(payment_method="cash_on_delivery", prepayment_reference=prepayment.reference)


class TestLinkPayment:
    @pytest.fixture()
    def unpaid_order(self, place_order, gateway):
        gateway.configure(should_accept=False)
        order_id = place_order()["order_id"]
        gateway.configure()
        return order_id

    def test_completed_prepayment_marks_order_paid(self, prepayment, unpaid_order):
        _webhook(prepayment, "completed")
        result = link_payment(unpaid_order, reference=prepayment.reference)
        assert result == {
            "order_id": unpaid_order,
            "payment_id": str(prepayment.id),
            "status": "completed",
            "is_paid": True,
        }
        assert _order(unpaid_order).status == "processing"

    def test_link_polls_a_pending_payment_first(self, prepayment, unpaid_order, gateway):
        gateway.configure(status="completed")
        result = link_payment(unpaid_order, payment_id=str(prepayment.id))
        assert result["status"] == "completed"
        assert result["is_paid"] is True

    def test_pending_link_is_settled_by_later_webhook(self, prepayment, unpaid_order):
        result = link_payment(unpaid_order, reference=prepayment.reference)
        assert result["status"] == "pending"
        assert result["is_paid"] is False

        _webhook(prepayment, "completed")
        assert _order(unpaid_order).is_paid is True
        assert _order(unpaid_order).status == "processing"

    def test_unreachable_gateway_does_not_block_linking(self, prepayment, unpaid_order, gateway):
        gateway.configure(reachable=False)
        result = link_payment(unpaid_order, reference=prepayment.reference)
        assert result["status"] == "pending"
        assert str(_payment(prepayment.id).order_id) == unpaid_order

    def test_relinking_to_same_order_is_a_no_op(self, prepayment, unpaid_order):
        _webhook(prepayment, "completed")
        link_payment(unpaid_order, reference=prepayment.reference)
        again = link_payment(unpaid_order, reference=prepayment.reference)
        assert again["is_paid"] is True

    def test_payment_linked_elsewhere_is_a_conflict(self, prepayment, unpaid_order, place_order):
        link_payment(unpaid_order, reference=prepayment.reference)
        other = place_order(payment_method="cash_on_delivery")["order_id"]
        with pytest.raises(ConflictError) as exc:
            link_payment(other, reference=prepayment.reference)
        assert exc.value.code == "PAYMENT_ALREADY_LINKED"

    def test_cancelled_order_cannot_take_payment(self, prepayment, unpaid_order):
        from ordering.order.status import CancelOrder

        current_domain.process(CancelOrder(order_id=unpaid_order), asynchronous=False)
        with pytest.raises(InvalidTransitionError):
            link_payment(unpaid_order, reference=prepayment.reference)
        assert _payment(prepayment.id).order_id is None
