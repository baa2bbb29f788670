"""
Order creation from a customer's cart.

No order exists when the customer pays: the cart travels with the payment as
its reference, and the order service creates the order only once the
gateway reports success. ``submit_order`` therefore ends by handing the
browsing context to the gateway's checkout page; whoever learns the outcome
later (the payment-status view, the live board, a push) is not this object.
"""

import inspect
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, Sequence

from pydantic import ValidationError as SchemaError

from orderflow.errors import GatewayError, ValidationError
from orderflow.lifecycle import PaymentType
from orderflow.log import get_logger
from orderflow.payments_client import PaymentGatewayClient
from orderflow.schemas import CENT, Customer, OrderLine, OrderPayload, PendingOrderReference, VendorIdentity

logger = get_logger("orchestrator")


@dataclass(frozen=True)
class SubmittedOrder:
    payment_url: str
    gateway_txn_id: str
    total: Decimal


class OrderCreationOrchestrator:
    def __init__(self, payments: PaymentGatewayClient, redirect: Callable[[str], Any]):
        self.payments = payments
        self.redirect = redirect

    def build_payload(self, cart: Sequence[OrderLine], customer: Customer, vendor: VendorIdentity) -> OrderPayload:
        if not cart:
            raise ValidationError("cart is empty", user_message="Your cart is empty")
        if not customer.name.strip() or not customer.phone.strip():
            raise ValidationError("customer name and phone are required",
                                  user_message="Please enter name and phone")

        total = sum((line.subtotal for line in cart), Decimal("0")).quantize(CENT)
        try:
            return OrderPayload(
                vendor_id=vendor.id,
                vendor_phone=vendor.phone,
                customer_name=customer.name.strip(),
                customer_phone=customer.phone.strip(),
                table_no=customer.table_no.strip(),
                items=list(cart),
                total=total,
                customer_push_token=customer.push_token,
            )
        except SchemaError as exc:
            raise ValidationError(str(exc)) from exc

    async def submit_order(self, cart: Sequence[OrderLine], customer: Customer, vendor: VendorIdentity) -> SubmittedOrder:
        payload = self.build_payload(cart, customer, vendor)

        try:
            initiated = await self.payments.initiate(
                PaymentType.ORDER,
                PendingOrderReference(order=payload),
                payload.total,
                customer,
            )
        except GatewayError as exc:
            raise GatewayError(str(exc), user_message="Payment could not be started") from exc

        logger.info("redirecting_to_payment", txn_id=initiated.gateway_txn_id, vendor_id=vendor.id,
                    total=str(payload.total))
        result = self.redirect(initiated.payment_url)
        if inspect.isawaitable(result):
            await result

        return SubmittedOrder(payment_url=initiated.payment_url, gateway_txn_id=initiated.gateway_txn_id,
                              total=payload.total)
