"""KPay mobile-money gateway adapter.

KPay exposes a single JSON endpoint: ``action=pay`` starts a collection and
``action=checkstatus`` reports progress. Both use HTTP basic auth. Final
outcomes are also pushed to the webhook configured as ``returl``.
"""

import hashlib
import hmac

import requests
import structlog
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ordering.gateway.port import (
    FAILED,
    PENDING,
    GatewayUnavailable,
    InitiationResult,
    PaymentGateway,
    StatusResult,
    normalize_status,
)

logger = structlog.get_logger(__name__)

# Provider bank ids per payment method
BANK_CODES = {
    "mtn_momo": ("momo", "63510"),
    "airtel_money": ("momo", "63514"),
    "visa_card": ("cc", "000"),
    "mastercard": ("cc", "000"),
    "spenn": ("spenn", "63502"),
}


class KPayGateway(PaymentGateway):
    def __init__(
        self,
        base_url: str,
        username: str,
        password: str,
        retailer_id: str,
        webhook_url: str = "",
        webhook_secret: str = "",
        timeout: float = 15.0,
        max_retries: int = 2,
    ) -> None:
        self.base_url = base_url
        self.retailer_id = retailer_id
        self.webhook_url = webhook_url
        self.webhook_secret = webhook_secret
        self.timeout = timeout

        self.session = requests.Session()
        self.session.auth = (username, password)
        retry = Retry(
            total=max_retries,
            backoff_factor=0.5,
            status_forcelist=(502, 503, 504),
            allowed_methods=frozenset({"POST"}),
        )
        self.session.mount("https://", HTTPAdapter(max_retries=retry))
        self.session.mount("http://", HTTPAdapter(max_retries=retry))

    def _post(self, body: dict) -> dict:
        try:
            response = self.session.post(self.base_url, json=body, timeout=self.timeout)
            response.raise_for_status()
            return response.json()
        except (requests.RequestException, ValueError) as exc:
            logger.error("KPay request failed", action=body.get("action"), error=str(exc))
            raise GatewayUnavailable(f"KPay request failed: {exc}") from exc

    def initiate_payment(
        self,
        reference: str,
        amount: float,
        currency: str,
        phone: str,
        payment_method: str,
        customer_name: str,
        customer_email: str | None,
    ) -> InitiationResult:
        pmethod, bank_id = BANK_CODES.get(payment_method, BANK_CODES["mtn_momo"])
        reply = self._post(
            {
                "action": "pay",
                "msisdn": phone,
                "email": customer_email or "",
                "details": f"Order {reference}",
                "refid": reference,
                "amount": amount,
                "currency": currency,
                "cname": customer_name,
                "cnumber": phone,
                "pmethod": pmethod,
                "retailerid": self.retailer_id,
                "returl": self.webhook_url,
                "redirecturl": self.webhook_url,
                "bankid": bank_id,
            }
        )
        logger.info(
            "KPay payment initiated",
            reference=reference,
            tid=reply.get("tid"),
            retcode=reply.get("retcode"),
            success=reply.get("success"),
        )

        accepted = str(reply.get("success")) == "1" and str(reply.get("retcode", "0")) == "0"
        if not accepted:
            return InitiationResult(
                accepted=False,
                transaction_id=reply.get("tid") or None,
                status=FAILED,
                description=reply.get("reply") or reply.get("statusdesc"),
            )

        status = normalize_status(reply.get("statusid"), reply.get("statusdesc")) or PENDING
        return InitiationResult(
            accepted=True,
            transaction_id=reply.get("tid") or None,
            status=status,
            description=reply.get("statusdesc"),
            redirect_url=reply.get("url"),
        )

    def check_status(self, transaction_id: str | None, reference: str | None) -> StatusResult:
        if not transaction_id and not reference:
            raise ValueError("Either transaction id or reference is required")

        body = {"action": "checkstatus"}
        if transaction_id:
            body["tid"] = transaction_id
        if reference:
            body["refid"] = reference
        reply = self._post(body)

        status = normalize_status(reply.get("statusid"), reply.get("statusdesc")) or PENDING
        return StatusResult(
            status=status,
            transaction_id=reply.get("tid") or transaction_id,
            description=reply.get("statusdesc"),
            raw=reply,
        )

    def verify_webhook_signature(self, payload: str, signature: str) -> bool:
        # Without a shared secret the webhook is only protected by network policy
        if not self.webhook_secret:
            return True
        expected = hmac.new(self.webhook_secret.encode(), payload.encode(), hashlib.sha256).hexdigest()
        return hmac.compare_digest(expected, signature)
