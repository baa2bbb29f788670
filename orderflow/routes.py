from datetime import date
from typing import Optional
from uuid import uuid4

import stripe
from fastapi import APIRouter, Depends, Form, HTTPException, Query, Request
from starlette.concurrency import run_in_threadpool

from orderflow import store
from orderflow.auth import verify_token
from orderflow.config import load_settings
from orderflow.database import SessionLocal
from orderflow.errors import TransitionError
from orderflow.gateway import checkout_status, create_checkout, retrieve_checkout
from orderflow.lifecycle import TERMINAL_INTENT, IntentStatus, OrderStatus, PaymentType
from orderflow.log import get_logger
from orderflow.models import PaymentIntent
from orderflow.push import PushNotifier
from orderflow.schemas import (
    InitiatePaymentRequest,
    InitiatePaymentResponse,
    OrderListResponse,
    OrderOut,
    PaymentSnapshot,
    PushTokenRequest,
    TransactionOut,
)

router = APIRouter()
logger = get_logger("routes")

DESCRIPTIONS = {
    PaymentType.ORDER: "Menu order",
    PaymentType.DUES: "Vendor dues",
    PaymentType.SUBSCRIPTION: "Subscription",
    PaymentType.QR_STAND: "QR stand order",
}


def get_notifier(request: Request) -> PushNotifier:
    return request.app.state.notifier


async def settle_and_notify(db, intent: PaymentIntent, reported, notifier: PushNotifier):
    order, created = store.settle_intent(db, intent, reported)
    if created:
        await notifier.notify_new_order(order, store.vendor_tokens(db, order.vendor_id))
    return order


@router.post("/payment/initiate", response_model=InitiatePaymentResponse)
def initiate_payment(request: InitiatePaymentRequest):
    currency = load_settings().gateway_currency
    txn_ref = uuid4().hex
    metadata = {"payment_type": request.payment_type.value, "txn_ref": txn_ref}
    if request.reference_id is not None:
        metadata["reference_id"] = str(request.reference_id)

    try:
        session = create_checkout(
            request.amount,
            currency,
            DESCRIPTIONS[request.payment_type],
            idempotency_key=txn_ref,
            customer_email=request.customer_email,
            metadata=metadata,
        )
    except stripe.StripeError as exc:
        logger.error("initiate_failed", payment_type=request.payment_type.value, error=str(exc))
        raise HTTPException(status_code=502, detail="Payment could not be started")

    with SessionLocal() as db:
        intent = store.create_intent(db, request, session, currency)
        return InitiatePaymentResponse(payment_url=intent.payment_url, gateway_txn_id=intent.id)


@router.get("/payment/verify/{txn_id}", response_model=PaymentSnapshot)
async def verify_payment(txn_id: str, notifier: PushNotifier = Depends(get_notifier)):
    with SessionLocal() as db:
        intent = db.get(PaymentIntent, txn_id)
        if intent is None:
            raise HTTPException(status_code=404, detail="Transaction not found")

        reported = IntentStatus(intent.status)
        if reported not in TERMINAL_INTENT:
            try:
                reported = checkout_status(await run_in_threadpool(retrieve_checkout, txn_id))
            except stripe.StripeError as exc:
                logger.error("verify_failed", txn_id=txn_id, error=str(exc))
                raise HTTPException(status_code=502, detail="Payment status could not be verified")

        # same path as the webhook, so a verify racing the callback converges on one order
        await settle_and_notify(db, intent, reported, notifier)
        db.refresh(intent)
        return PaymentSnapshot(status=intent.status, transaction=TransactionOut.model_validate(intent))


@router.get("/payment/status/order/{order_id}")
def order_payment_status(order_id: int, vendor_id: int = Depends(verify_token)):
    with SessionLocal() as db:
        if store.get_order(db, vendor_id, order_id) is None:
            raise HTTPException(status_code=404, detail="Order not found")
        intent = store.intent_for_order(db, order_id)
        if intent is None:
            return {"has_payment": False, "payment": None}
        return {"has_payment": True, "payment": TransactionOut.model_validate(intent)}


@router.get("/orders/", response_model=OrderListResponse)
def list_orders(
    status: Optional[OrderStatus] = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    vendor_id: int = Depends(verify_token),
):
    with SessionLocal() as db:
        rows, count = store.list_orders(db, vendor_id, status, page, page_size, start_date, end_date)
        return OrderListResponse(
            data=[OrderOut.model_validate(row) for row in rows],
            count=count,
            page=page,
            page_size=page_size,
        )


@router.get("/orders/{order_id}", response_model=OrderOut)
def get_order(order_id: int, vendor_id: int = Depends(verify_token)):
    with SessionLocal() as db:
        order = store.get_order(db, vendor_id, order_id)
        if order is None:
            raise HTTPException(status_code=404, detail="Order not found")
        return OrderOut.model_validate(order)


@router.post("/orders/{order_id}/edit", response_model=OrderOut)
async def edit_order(
    order_id: int,
    status: str = Form(...),
    reject_reason: Optional[str] = Form(None),
    vendor_id: int = Depends(verify_token),
    notifier: PushNotifier = Depends(get_notifier),
):
    with SessionLocal() as db:
        try:
            order = store.lock_order(db, vendor_id, order_id)
            if order is None:
                raise HTTPException(status_code=404, detail="Order not found")
            changed = store.apply_transition(db, order, status, reject_reason)
        except TransitionError as exc:
            db.rollback()
            logger.info("transition_refused", order_id=order_id, target=status, reason=str(exc))
            raise HTTPException(status_code=400, detail=exc.user_message)

        if changed:
            await notifier.notify_status_change(order)
        return OrderOut.model_validate(order)


@router.post("/auth/user/fcm-token/")
def save_push_token(request: PushTokenRequest, vendor_id: int = Depends(verify_token)):
    with SessionLocal() as db:
        row = store.register_push_token(db, vendor_id, request.token)
        return {"message": "Token saved", "token_id": row.id}
