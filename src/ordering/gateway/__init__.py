"""Payment gateway factory.

Provides get_gateway() / set_gateway() to swap implementations. The adapter is
chosen with the PAYMENT_GATEWAY environment variable:
- ``fake`` (default) for development and testing
- ``kpay`` for the KPay mobile-money provider
"""

import os

from ordering.gateway.port import PaymentGateway

_current_gateway: PaymentGateway | None = None


def _build_gateway() -> PaymentGateway:
    adapter = os.environ.get("PAYMENT_GATEWAY", "fake")
    if adapter == "fake":
        from ordering.gateway.fake_adapter import FakeGateway

        return FakeGateway()
    if adapter == "kpay":
        from ordering.gateway.kpay_adapter import KPayGateway

        return KPayGateway(
            base_url=os.environ["KPAY_BASE_URL"],
            username=os.environ.get("KPAY_USERNAME", ""),
            password=os.environ.get("KPAY_PASSWORD", ""),
            retailer_id=os.environ.get("KPAY_RETAILER_ID", ""),
            webhook_url=os.environ.get("KPAY_WEBHOOK_URL", ""),
            webhook_secret=os.environ.get("KPAY_WEBHOOK_SECRET", ""),
            timeout=float(os.environ.get("KPAY_TIMEOUT_SECONDS", "15")),
            max_retries=int(os.environ.get("KPAY_MAX_RETRIES", "2")),
        )
    raise ValueError(f"Unknown payment gateway: {adapter}")


def get_gateway() -> PaymentGateway:
    """Return the current payment gateway, building it on first use."""
    global _current_gateway
    if _current_gateway is None:
        _current_gateway = _build_gateway()
    return _current_gateway


def set_gateway(gateway: PaymentGateway) -> None:
    """Override the active payment gateway (useful for tests)."""
    global _current_gateway
    _current_gateway = gateway


def reset_gateway() -> None:
    """Reset to the configured default gateway."""
    global _current_gateway
    _current_gateway = None
