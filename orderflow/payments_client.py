"""
Dashboard-side payment gateway client.

Settlement happens on the gateway at its own pace, so callers either check
once with :meth:`PaymentGatewayClient.verify` or wait with
:meth:`PaymentGatewayClient.poll_until_settled`. A poll that runs out of
attempts is *not* a failure: the result is flagged ``timed_out`` and the
caller is expected to check again later.
"""

import asyncio
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Optional

from pydantic import ValidationError as SchemaError

from orderflow.api_client import ApiClient
from orderflow.errors import ApiError, GatewayError
from orderflow.lifecycle import PaymentType
from orderflow.log import get_logger
from orderflow.schemas import (
    CENT,
    Customer,
    EntityReference,
    InitiatePaymentResponse,
    PaymentReference,
    PaymentSnapshot,
    PendingOrderReference,
)

logger = get_logger("gateway_client")

STATUS_LABELS = {
    "success": "Payment Successful",
    "failure": "Payment Failed",
    "pending": "Payment Pending",
    "scanning": "Waiting for Payment",
    "created": "Payment Initiated",
}


def payment_status_label(status) -> str:
    return STATUS_LABELS.get(getattr(status, "value", status), "Unknown Status")


@dataclass(frozen=True)
class InitiatedPayment:
    payment_url: str
    gateway_txn_id: str


@dataclass(frozen=True)
class PollResult:
    snapshot: PaymentSnapshot
    attempts: int
    timed_out: bool

    @property
    def status(self):
        return self.snapshot.status


class PaymentGatewayClient:
    def __init__(self, api: ApiClient, sleep: Callable = asyncio.sleep):
        self.api = api
        self._sleep = sleep

    async def initiate(self, payment_type, reference: PaymentReference, amount, customer: Customer) -> InitiatedPayment:
        payment_type = PaymentType(payment_type)
        body = {
            "payment_type": payment_type.value,
            "amount": str(Decimal(amount).quantize(CENT)),
            "customer_name": customer.name,
            "customer_mobile": customer.phone,
            "customer_email": customer.email,
        }
        if isinstance(reference, PendingOrderReference):
            body["order"] = reference.order.model_dump(mode="json")
        else:
            body["reference_id"] = reference.reference_id

        try:
            data = await self.api.post("/payment/initiate", json=body)
            initiated = InitiatePaymentResponse.model_validate(data)
        except ApiError as exc:
            logger.warning("initiate_failed", payment_type=payment_type.value, error=str(exc))
            raise GatewayError(str(exc), user_message="Payment could not be started") from exc
        except SchemaError as exc:
            raise GatewayError("Unexpected response from payment service") from exc

        logger.info("payment_initiated", payment_type=payment_type.value, txn_id=initiated.gateway_txn_id)
        return InitiatedPayment(payment_url=initiated.payment_url, gateway_txn_id=initiated.gateway_txn_id)

    async def initiate_dues(self, vendor_id: int, amount, vendor: Customer) -> InitiatedPayment:
        return await self.initiate(PaymentType.DUES, EntityReference(reference_id=vendor_id), amount, vendor)

    async def initiate_subscription(self, user_id: int, amount, user: Customer) -> InitiatedPayment:
        return await self.initiate(PaymentType.SUBSCRIPTION, EntityReference(reference_id=user_id), amount, user)

    async def initiate_qr_stand(self, qr_stand_order_id: int, amount, vendor: Customer) -> InitiatedPayment:
        return await self.initiate(PaymentType.QR_STAND, EntityReference(reference_id=qr_stand_order_id), amount, vendor)

    async def verify(self, gateway_txn_id: str) -> PaymentSnapshot:
        try:
            data = await self.api.get(f"/payment/verify/{gateway_txn_id}")
            return PaymentSnapshot.model_validate(data)
        except ApiError as exc:
            raise GatewayError(str(exc), user_message="Payment status could not be verified") from exc
        except SchemaError as exc:
            raise GatewayError("Unexpected response from payment service") from exc

    async def poll_until_settled(self, gateway_txn_id: str, max_attempts: int = 30, interval: float = 2.0,
                                 on_update: Optional[Callable[[PaymentSnapshot], None]] = None) -> PollResult:
        """
        Verify repeatedly until the payment succeeds or fails.

        ``on_update`` sees every snapshot. Cancelling the awaiting task stops
        the loop at its next suspension point.
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        snapshot = None
        for attempt in range(1, max_attempts + 1):
            snapshot = await self.verify(gateway_txn_id)
            if on_update is not None:
                on_update(snapshot)
            if snapshot.is_terminal:
                return PollResult(snapshot=snapshot, attempts=attempt, timed_out=False)
            if attempt < max_attempts:
                await self._sleep(interval)

        logger.info("poll_timed_out", txn_id=gateway_txn_id, attempts=max_attempts, last_status=snapshot.status.value)
        return PollResult(snapshot=snapshot, attempts=max_attempts, timed_out=True)
