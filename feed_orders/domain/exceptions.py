class FeedOrderError(Exception):
    """Base class for every business rule violation raised by the feed order engine."""

    code = "feed_order_error"


class ValidationError(FeedOrderError):
    """Raised when preview or order parameters are malformed or out of range."""

    code = "validation_error"

    def __init__(self, field, message):
        self.field = field
        self.message = message
        super().__init__(f"{field}: {message}")


class NotFoundError(FeedOrderError):
    """Raised when no feed order exists for the requested id."""

    code = "not_found"

    def __init__(self, order_id):
        self.order_id = order_id
        super().__init__(f"Feed order {order_id} not found")


class InvalidTransitionError(FeedOrderError):
    """Raised when a lifecycle action is not permitted from the order's current status."""

    code = "invalid_transition"

    def __init__(self, order_id, current, target, reason=None):
        self.order_id = order_id
        self.current = current
        self.target = target
        self.reason = reason
        message = f"Feed order {order_id}: cannot move from {current} to {target}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class InvalidPaymentAmountError(FeedOrderError):
    """Raised when a payment is non-positive or exceeds the outstanding balance."""

    code = "invalid_payment_amount"

    def __init__(self, order_id, amount, amount_due, reason):
        self.order_id = order_id
        self.amount = amount
        self.amount_due = amount_due
        self.reason = reason
        super().__init__(
            f"Feed order {order_id}: payment {amount} rejected, {reason} (amount due {amount_due})"
        )


class ConcurrencyConflictError(FeedOrderError):
    """Raised when a guarded write finds the order changed underneath it."""

    code = "concurrency_conflict"

    def __init__(self, order_id, expected_version=None):
        self.order_id = order_id
        self.expected_version = expected_version
        message = f"Feed order {order_id} was modified concurrently"
        if expected_version is not None:
            message = f"{message} (expected version {expected_version})"
        super().__init__(message)


class IdempotencyReplay(Exception):
    """Raised when a payment with an already used idempotency_key is submitted again."""

    def __init__(self, order_id, idempotency_key):
        self.order_id = order_id
        self.idempotency_key = idempotency_key
        super().__init__(
            f"Idempotency replay detected for order {order_id}, key: {idempotency_key}"
        )
