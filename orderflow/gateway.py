from decimal import Decimal

import stripe

from orderflow.config import load_settings
from orderflow.lifecycle import IntentStatus

settings = load_settings()
stripe.api_key = settings.stripe_secret_key


def to_minor_units(amount: Decimal) -> int:
    return int((Decimal(amount) * 100).quantize(Decimal("1")))


def create_checkout(amount: Decimal, currency: str, description: str, idempotency_key: str,
                    customer_email: str | None = None, metadata: dict | None = None):
    """Open a hosted checkout page; the returned session carries ``id`` and ``url``."""
    base = settings.public_base_url
    return stripe.checkout.Session.create(
        mode="payment",
        line_items=[{
            "price_data": {
                "currency": currency,
                "unit_amount": to_minor_units(amount),
                "product_data": {"name": description},
            },
            "quantity": 1,
        }],
        success_url=f"{base}/payment/status?txn_id={{CHECKOUT_SESSION_ID}}",
        cancel_url=f"{base}/payment/status?txn_id={{CHECKOUT_SESSION_ID}}&status=cancelled",
        customer_email=customer_email,
        client_reference_id=idempotency_key,
        metadata=metadata or {},
        idempotency_key=idempotency_key,
    )


def retrieve_checkout(session_id: str):
    return stripe.checkout.Session.retrieve(session_id)


def checkout_status(session) -> IntentStatus:
    """Map a Checkout Session (or its webhook ``data.object``) to an intent status."""
    status = session.get("status")
    if status == "expired":
        return IntentStatus.FAILURE
    if status == "complete":
        if session.get("payment_status") in ("paid", "no_payment_required"):
            return IntentStatus.SUCCESS
        # delayed methods settle later through async_payment_* events
        return IntentStatus.PENDING
    if status == "open":
        return IntentStatus.SCANNING
    return IntentStatus.UNKNOWN
