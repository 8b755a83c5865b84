"""
Allowed status transitions for feed orders.

DRAFT -> ORDERED -> DELIVERED -> ACTIVE -> COMPLETED, with CANCELLED
reachable from every non-terminal status. No database writes happen here.
"""

from feed_orders.domain.choices import OrderStatus
from feed_orders.domain.exceptions import InvalidTransitionError
from feed_orders.domain.notification import format_supplier_phone

TERMINAL_STATES = frozenset({
    OrderStatus.COMPLETED,
    OrderStatus.CANCELLED,
})

ALLOWED_TRANSITIONS = {
    OrderStatus.DRAFT: frozenset({OrderStatus.ORDERED, OrderStatus.CANCELLED}),
    OrderStatus.ORDERED: frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED}),
    OrderStatus.DELIVERED: frozenset({OrderStatus.ACTIVE, OrderStatus.CANCELLED}),
    OrderStatus.ACTIVE: frozenset({OrderStatus.COMPLETED, OrderStatus.CANCELLED}),
    OrderStatus.COMPLETED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}


def can_transition(from_status, to_status):
    if from_status in TERMINAL_STATES:
        return False
    return to_status in ALLOWED_TRANSITIONS.get(from_status, frozenset())


def validate_transition(order, target_status):
    """Raises InvalidTransitionError unless ``order.status`` may move to ``target_status``."""
    if not can_transition(order.status, target_status):
        raise InvalidTransitionError(order.pk, order.status, target_status)


def require_supplier_phone(order, default_country_code):
    """
    Guard for DRAFT -> ORDERED: the supplier has to be reachable.

    Uses the same normalisation as the dispatch link, so an order that passes
    here always yields a link afterwards.
    """
    if not format_supplier_phone(order.supplier_phone, default_country_code):
        raise InvalidTransitionError(
            order.pk, order.status, OrderStatus.ORDERED,
            reason="supplier phone number is required",
        )
