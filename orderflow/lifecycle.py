from enum import Enum

from orderflow.errors import TransitionError


class OrderStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    RUNNING = "running"
    READY = "ready"
    COMPLETED = "completed"
    REJECTED = "rejected"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"


class IntentStatus(str, Enum):
    CREATED = "created"
    SCANNING = "scanning"
    PENDING = "pending"
    SUCCESS = "success"
    FAILURE = "failure"
    UNKNOWN = "unknown"


class PaymentType(str, Enum):
    ORDER = "order"
    DUES = "dues"
    SUBSCRIPTION = "subscription"
    QR_STAND = "qr_stand"


TRANSITIONS = {
    OrderStatus.PENDING: (OrderStatus.ACCEPTED, OrderStatus.REJECTED),
    OrderStatus.ACCEPTED: (OrderStatus.RUNNING, OrderStatus.REJECTED),
    OrderStatus.RUNNING: (OrderStatus.READY,),
    OrderStatus.READY: (OrderStatus.COMPLETED,),
    OrderStatus.COMPLETED: (),
    OrderStatus.REJECTED: (),
}

# buckets shown on the live board, in display order
LIVE_BUCKETS = (OrderStatus.PENDING, OrderStatus.ACCEPTED, OrderStatus.RUNNING)

TERMINAL_INTENT = frozenset({IntentStatus.SUCCESS, IntentStatus.FAILURE})

_INTENT_RANK = {
    IntentStatus.CREATED: 0,
    IntentStatus.SCANNING: 1,
    IntentStatus.PENDING: 2,
    IntentStatus.SUCCESS: 3,
    IntentStatus.FAILURE: 3,
}


def legal_transitions(status) -> tuple:
    return TRANSITIONS[OrderStatus(status)]


def is_terminal(status) -> bool:
    return not TRANSITIONS[OrderStatus(status)]


def check_transition(current, target, reject_reason: str | None = None) -> bool:
    """
    Validate moving an order from ``current`` to ``target``.

    Returns ``False`` when the order is already in ``target`` (a repeated
    delivery of the same command), ``True`` when the transition must be
    applied. Raises ``TransitionError`` for anything else.
    """
    try:
        current = OrderStatus(current)
        target = OrderStatus(target)
    except ValueError as exc:
        raise TransitionError(str(exc), user_message="Unknown order status") from exc

    if target is OrderStatus.REJECTED and not (reject_reason or "").strip():
        raise TransitionError(
            "A rejection reason is required",
            user_message="Please provide a reason for rejecting this order",
        )

    if current is target:
        return False

    if target not in TRANSITIONS[current]:
        raise TransitionError(
            f"Cannot move order from {current.value} to {target.value}",
            user_message=f"Order is already {current.value}",
        )
    return True


def advance_intent(current, reported) -> IntentStatus:
    """Return the status an intent should hold after the gateway reported ``reported``."""
    current = IntentStatus(current)
    reported = IntentStatus(reported)
    if current in TERMINAL_INTENT or reported is IntentStatus.UNKNOWN:
        return current
    if _INTENT_RANK[reported] > _INTENT_RANK[current]:
        return reported
    return current
