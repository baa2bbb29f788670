class OrderflowError(Exception):
    """Base error; ``user_message`` is the short text shown to a person."""

    user_message = "Something went wrong"

    def __init__(self, message: str | None = None, user_message: str | None = None):
        super().__init__(message or self.user_message)
        if user_message is not None:
            self.user_message = user_message


class ValidationError(OrderflowError):
    """Rejected locally before any network call. Never retried."""

    user_message = "Please check the order details"


class GatewayError(OrderflowError):
    """Payment initiation or verification failed; no order exists."""

    user_message = "Payment could not be completed"


class TransitionError(OrderflowError):
    user_message = "Order could not be updated"


class NotificationDecodeError(OrderflowError):
    user_message = "Notification could not be read"


class ApiError(OrderflowError):
    """HTTP-level failure talking to the order service."""

    user_message = "Request failed"

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message, user_message=message)
        self.status_code = status_code


class AccessDenied(OrderflowError):
    user_message = "You cannot manage orders yet"

    def __init__(self, decision):
        super().__init__(decision.reason or self.user_message)
        self.decision = decision
