from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship

from orderflow.database import Base


def utcnow():
    return datetime.now(timezone.utc)


class PaymentIntent(Base):
    __tablename__ = "payment_intents"

    id = Column(String, primary_key=True)              # gateway txn id (Checkout Session id)
    payment_type = Column(String, nullable=False)      # order | dues | subscription | qr_stand
    reference_id = Column(Integer, nullable=True)      # absent for not-yet-created orders
    order_payload = Column(Text, nullable=True)        # serialized cart, order intents only
    amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String, nullable=False)
    status = Column(String, nullable=False, default="created")
    payment_url = Column(String)
    customer_name = Column(String)
    customer_mobile = Column(String)
    customer_email = Column(String, nullable=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    vendor_id = Column(Integer, index=True, nullable=False)
    customer_name = Column(String, nullable=False)
    customer_phone = Column(String, nullable=False)
    table_no = Column(String, default="")
    status = Column(String, index=True, nullable=False, default="pending")
    payment_status = Column(String, nullable=False, default="pending")   # pending | paid | failed
    total_amount = Column(Numeric(10, 2), nullable=False)
    reject_reason = Column(Text, nullable=True)
    customer_push_token = Column(String, nullable=True)
    # one order per settled intent; a second insert fails on this constraint
    payment_intent_id = Column(String, unique=True, index=True, nullable=False)
    created_at = Column(DateTime, default=utcnow, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    items = relationship("OrderItem", back_populates="order", lazy="selectin", order_by="OrderItem.id")


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    product_id = Column(Integer, nullable=False)
    variant_id = Column(Integer, nullable=True)
    product_name = Column(String, default="")
    unit_price = Column(Numeric(10, 2), nullable=False)
    quantity = Column(Integer, nullable=False)
    subtotal = Column(Numeric(10, 2), nullable=False)

    order = relationship("Order", back_populates="items")


class PushToken(Base):
    __tablename__ = "push_tokens"

    id = Column(Integer, primary_key=True, autoincrement=True)
    vendor_id = Column(Integer, index=True, nullable=False)
    token = Column(String, unique=True, nullable=False)
    created_at = Column(DateTime, default=utcnow)
