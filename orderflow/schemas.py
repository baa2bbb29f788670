from datetime import datetime
from decimal import Decimal
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator

from orderflow.lifecycle import IntentStatus, OrderStatus, PaymentType

CENT = Decimal("0.01")


class OrderLine(BaseModel):
    product_id: int
    variant_id: Optional[int] = None
    product_name: str = ""
    unit_price: Decimal = Field(ge=0)
    quantity: int = Field(ge=1)

    @computed_field
    @property
    def subtotal(self) -> Decimal:
        return (self.unit_price * self.quantity).quantize(CENT)


class Customer(BaseModel):
    name: str
    phone: str
    email: Optional[str] = None
    table_no: str = ""
    push_token: Optional[str] = None


class VendorIdentity(BaseModel):
    id: int
    phone: str = ""


class OrderPayload(BaseModel):
    """The cart as it travels with a payment before any order exists."""

    vendor_id: int
    vendor_phone: str = ""
    customer_name: str
    customer_phone: str
    table_no: str = ""
    items: list[OrderLine] = Field(min_length=1)
    total: Decimal
    customer_push_token: Optional[str] = None

    @model_validator(mode="after")
    def total_matches_items(self):
        expected = sum((item.subtotal for item in self.items), Decimal("0")).quantize(CENT)
        if self.total.quantize(CENT) != expected:
            raise ValueError(f"total {self.total} does not match items ({expected})")
        return self


# A payment refers either to something that already exists, or carries the
# order it will create once it settles.
class EntityReference(BaseModel):
    reference_id: int


class PendingOrderReference(BaseModel):
    order: OrderPayload


PaymentReference = Union[EntityReference, PendingOrderReference]


class InitiatePaymentRequest(BaseModel):
    payment_type: PaymentType
    reference_id: Optional[int] = None
    order: Optional[OrderPayload] = None
    amount: Decimal = Field(gt=0)
    customer_name: str
    customer_mobile: str
    customer_email: Optional[str] = None

    @model_validator(mode="after")
    def one_reference(self):
        if self.payment_type is PaymentType.ORDER:
            if self.order is None or self.reference_id is not None:
                raise ValueError("order payments carry the order payload, not a reference_id")
            if self.order.total.quantize(CENT) != self.amount.quantize(CENT):
                raise ValueError("amount does not match order total")
        elif self.reference_id is None or self.order is not None:
            raise ValueError(f"{self.payment_type.value} payments require a reference_id")
        return self

    @property
    def reference(self) -> PaymentReference:
        if self.order is not None:
            return PendingOrderReference(order=self.order)
        return EntityReference(reference_id=self.reference_id)


class InitiatePaymentResponse(BaseModel):
    payment_url: str
    gateway_txn_id: str
    message: str = "Payment initiated"


class TransactionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    payment_type: PaymentType
    amount: Decimal
    currency: str
    status: IntentStatus
    order_id: Optional[int] = None
    created_at: Optional[datetime] = None


class PaymentSnapshot(BaseModel):
    status: IntentStatus
    transaction: Optional[TransactionOut] = None
    message: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in (IntentStatus.SUCCESS, IntentStatus.FAILURE)


class OrderItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    product_id: int
    variant_id: Optional[int] = None
    product_name: str = ""
    unit_price: Decimal
    quantity: int
    subtotal: Decimal


class OrderOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    vendor_id: int
    customer_name: str
    customer_phone: str
    table_no: str = ""
    status: OrderStatus
    payment_status: str
    total_amount: Decimal
    reject_reason: Optional[str] = None
    items: list[OrderItemOut] = []
    created_at: datetime
    updated_at: Optional[datetime] = None


class OrderListResponse(BaseModel):
    data: list[OrderOut]
    count: int
    page: int
    page_size: int


class PushTokenRequest(BaseModel):
    token: str = Field(min_length=1)
