from datetime import date, datetime, time, timedelta

from sqlalchemy.exc import IntegrityError

from orderflow.errors import TransitionError
from orderflow.lifecycle import IntentStatus, OrderStatus, PaymentStatus, PaymentType, advance_intent, check_transition
from orderflow.log import get_logger
from orderflow.models import Order, OrderItem, PaymentIntent, PushToken
from orderflow.schemas import InitiatePaymentRequest, OrderPayload

logger = get_logger("store")


def create_intent(db, request: InitiatePaymentRequest, session, currency: str) -> PaymentIntent:
    intent = PaymentIntent(
        id=session.id,
        payment_type=request.payment_type.value,
        reference_id=request.reference_id,
        order_payload=request.order.model_dump_json() if request.order else None,
        amount=request.amount,
        currency=currency,
        status=IntentStatus.CREATED.value,
        payment_url=session.url,
        customer_name=request.customer_name,
        customer_mobile=request.customer_mobile,
        customer_email=request.customer_email,
    )
    db.add(intent)
    db.commit()
    logger.info("intent_created", txn_id=intent.id, payment_type=intent.payment_type, amount=str(intent.amount))
    return intent


def settle_intent(db, intent: PaymentIntent, reported) -> tuple:
    """
    Record what the gateway reported for ``intent`` and, for a successful
    order payment, make sure its order exists.

    Returns ``(order, created)``; ``order`` is ``None`` unless the intent is a
    successful order payment.
    """
    new_status = advance_intent(intent.status, reported)
    if new_status.value != intent.status:
        logger.info("intent_advanced", txn_id=intent.id, old=intent.status, new=new_status.value)
        intent.status = new_status.value
        db.commit()

    if new_status is IntentStatus.SUCCESS and intent.payment_type == PaymentType.ORDER.value:
        return materialize_order(db, intent)
    return None, False


def materialize_order(db, intent: PaymentIntent) -> tuple:
    if intent.status != IntentStatus.SUCCESS.value:
        raise ValueError(f"intent {intent.id} is {intent.status}, orders need a successful payment")

    existing = db.query(Order).filter_by(payment_intent_id=intent.id).first()
    if existing:
        logger.info("duplicate_settlement", txn_id=intent.id, order_id=existing.id)
        return existing, False

    payload = OrderPayload.model_validate_json(intent.order_payload)
    order = Order(
        vendor_id=payload.vendor_id,
        customer_name=payload.customer_name,
        customer_phone=payload.customer_phone,
        table_no=payload.table_no,
        status=OrderStatus.PENDING.value,
        payment_status=PaymentStatus.PAID.value,
        total_amount=payload.total,
        customer_push_token=payload.customer_push_token,
        payment_intent_id=intent.id,
        items=[
            OrderItem(
                product_id=line.product_id,
                variant_id=line.variant_id,
                product_name=line.product_name,
                unit_price=line.unit_price,
                quantity=line.quantity,
                subtotal=line.subtotal,
            )
            for line in payload.items
        ],
    )
    db.add(order)
    try:
        db.flush()
        intent.order_id = order.id
        db.commit()
    except IntegrityError:
        # a concurrent delivery won the insert
        db.rollback()
        existing = db.query(Order).filter_by(payment_intent_id=intent.id).one()
        return existing, False

    logger.info("order_materialized", order_id=order.id, txn_id=intent.id, total=str(order.total_amount))
    return order, True


def get_order(db, vendor_id: int, order_id: int):
    return db.query(Order).filter_by(id=order_id, vendor_id=vendor_id).first()


def list_orders(db, vendor_id: int, status=None, page: int = 1, page_size: int = 20,
                start_date: date | None = None, end_date: date | None = None) -> tuple:
    query = db.query(Order).filter(
        Order.vendor_id == vendor_id,
        Order.payment_status == PaymentStatus.PAID.value,
    )
    if status:
        query = query.filter(Order.status == OrderStatus(status).value)
    if start_date:
        query = query.filter(Order.created_at >= datetime.combine(start_date, time.min))
    if end_date:
        query = query.filter(Order.created_at < datetime.combine(end_date + timedelta(days=1), time.min))

    count = query.count()
    rows = (
        query.order_by(Order.created_at.asc(), Order.id.asc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )
    return rows, count


def apply_transition(db, order: Order, status, reject_reason: str | None = None) -> bool:
    """Move ``order`` to ``status``. Returns ``False`` when it was already there."""
    if not check_transition(order.status, status, reject_reason):
        return False

    old = order.status
    order.status = OrderStatus(status).value
    if order.status == OrderStatus.REJECTED.value:
        order.reject_reason = reject_reason.strip()
    db.commit()
    logger.info("order_transitioned", order_id=order.id, old=old, new=order.status)
    return True


def lock_order(db, vendor_id: int, order_id: int):
    order = (
        db.query(Order)
        .filter_by(id=order_id, vendor_id=vendor_id)
        .with_for_update()
        .first()
    )
    if order is not None and order.payment_status != PaymentStatus.PAID.value:
        raise TransitionError(f"Order {order_id} has not been paid")
    return order


def register_push_token(db, vendor_id: int, token: str) -> PushToken:
    row = db.query(PushToken).filter_by(token=token).first()
    if row is None:
        row = PushToken(vendor_id=vendor_id, token=token)
        db.add(row)
    else:
        # the device now belongs to whoever signed in last
        row.vendor_id = vendor_id
    db.commit()
    return row


def vendor_tokens(db, vendor_id: int) -> list:
    return [row.token for row in db.query(PushToken).filter_by(vendor_id=vendor_id).all()]


def intent_for_order(db, order_id: int):
    return (
        db.query(PaymentIntent)
        .filter_by(order_id=order_id)
        .order_by(PaymentIntent.created_at.desc())
        .first()
    )
