"""Application tests for client timeouts and payment retries."""

import pytest
from protean import current_domain

from ordering.errors import ConflictError, InvalidTransitionError
from ordering.order.order import Order
from ordering.payment.initiation import RetryPayment, start_collection
from ordering.payment.payment import Payment
from ordering.payment.reconciliation import ProcessPaymentWebhook
from ordering.payment.status_check import report_client_timeout


def _payment(payment_id) -> Payment:
    return current_domain.repository_for(Payment).get(payment_id)


def _complete_by_webhook(payment_id):
    payment = _payment(payment_id)
    current_domain.process(
        ProcessPaymentWebhook(transaction_ref=payment.kpay_transaction_id, external_status="completed"),
        asynchronous=False,
    )


def _retry(order_id):
    return current_domain.process(RetryPayment(order_id=order_id, phone="250788000222"), asynchronous=False)


class TestClientTimeout:
    def test_timeout_flags_payment_and_returns_current_state(self, place_order):
        result = place_order()
        response = report_client_timeout(result["payment_id"], reason="Gave up after 5 minutes")

        assert response["status"] == "pending"
        assert response["payment"]["client_timeout"] is True
        assert response["payment"]["client_timeout_reason"] == "Gave up after 5 minutes"

    def test_timeout_polls_for_a_final_answer(self, place_order, gateway):
        result = place_order()
        gateway.configure(status="failed", failure_reason="Customer rejected prompt")

        response = report_client_timeout(result["payment_id"])

        assert response["status"] == "failed"
        assert response["payment"]["failure_reason"] == "Customer rejected prompt"

    def test_timeout_tolerates_unreachable_gateway(self, place_order, gateway):
        result = place_order()
        gateway.configure(reachable=False)
        response = report_client_timeout(result["payment_id"])
        assert response["status"] == "pending"
        assert response["payment"]["client_timeout"] is True

    def test_late_webhook_still_settles_timed_out_payment(self, place_order):
        result = place_order()
        report_client_timeout(result["payment_id"])

        _complete_by_webhook(result["payment_id"])

        payment = _payment(result["payment_id"])
        assert payment.status == "completed"
        assert payment.client_timeout is True
        assert current_domain.repository_for(Order).get(result["order_id"]).status == "processing"


class TestRetryPayment:
    def test_retry_after_failure_opens_second_attempt(self, place_order, gateway):
        gateway.configure(should_accept=False)
        result = place_order()
        gateway.configure(should_accept=True)

        payment_id = _retry(result["order_id"])
        collection = start_collection(payment_id)

        assert collection["status"] == "pending"
        assert collection["payment"]["reference"] == f"ORD-{result['order_number']}-2"
        assert collection["payment"]["amount"] == 6000.0

    def test_retry_blocked_while_attempt_in_progress(self, place_order):
        result = place_order()
        with pytest.raises(ConflictError) as exc:
            _retry(result["order_id"])
        assert exc.value.code == "PAYMENT_IN_PROGRESS"

    def test_retry_allowed_after_client_timeout(self, place_order):
        result = place_order()
        report_client_timeout(result["payment_id"])
        assert _retry(result["order_id"])

    def test_paid_order_cannot_be_retried(self, place_order):
        result = place_order()
        _complete_by_webhook(result["payment_id"])
        with pytest.raises(ConflictError) as exc:
            _retry(result["order_id"])
        assert exc.value.code == "ALREADY_PAID"

    def test_cash_on_delivery_order_cannot_be_retried(self, place_order):
        result = place_order(payment_method="cash_on_delivery")
        with pytest.raises(InvalidTransitionError) as exc:
            _retry(result["order_id"])
        assert exc.value.code == "INVALID_ORDER_STATE"
