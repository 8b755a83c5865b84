"""
Balance derivation and payment acceptance rules for the feed order ledger.

Every mutating operation derives ``amount_due`` and ``payment_status`` through
``derive_balance`` so the balance invariants live in one place.
"""

from dataclasses import dataclass
from decimal import Decimal

from feed_orders.domain.calculator import TWO_PLACES, to_decimal
from feed_orders.domain.choices import PaymentMethod, PaymentStatus
from feed_orders.domain.exceptions import InvalidPaymentAmountError, ValidationError


@dataclass(frozen=True)
class Balance:
    amount_paid: Decimal
    amount_due: Decimal
    payment_status: str


def derive_payment_status(amount_paid, total_cost):
    if amount_paid == 0:
        return PaymentStatus.PENDING
    if amount_paid >= total_cost:
        return PaymentStatus.PAID
    return PaymentStatus.PARTIAL_PAID


def derive_balance(total_cost, amount_paid):
    return Balance(
        amount_paid=amount_paid,
        amount_due=total_cost - amount_paid,
        payment_status=derive_payment_status(amount_paid, total_cost),
    )


def validate_method(method):
    if method not in PaymentMethod.values:
        raise ValidationError(
            "method", f"must be one of {', '.join(PaymentMethod.values)}."
        )
    return PaymentMethod(method)


def validate_payment_amount(order_id, amount, amount_due):
    """Returns the amount as a Decimal, or raises InvalidPaymentAmountError. Never clamps."""
    try:
        amount = to_decimal(amount, "amount")
    except ValidationError:
        raise InvalidPaymentAmountError(order_id, amount, amount_due, "amount must be a number")

    if amount <= 0:
        raise InvalidPaymentAmountError(order_id, amount, amount_due, "amount must be greater than 0")
    if amount != amount.quantize(TWO_PLACES):
        raise InvalidPaymentAmountError(
            order_id, amount, amount_due, "amount has more than two decimal places"
        )
    if amount > amount_due:
        raise InvalidPaymentAmountError(order_id, amount, amount_due, "amount exceeds amount due")
    return amount


def apply_payment(total_cost, amount_paid, amount):
    """Balance after adding ``amount`` to what has already been paid."""
    return derive_balance(total_cost, amount_paid + amount)
