"""
Application Use Cases — Feed Orders

Every operation that changes a feed order follows the same discipline:

- Atomicity: the full operation executes inside a transaction.atomic() block.
- Row-level locking: select_for_update() re-reads the order so preconditions
  are checked against the latest persisted state, not a cached copy.
- Version guard: the write is an UPDATE filtered on the version that was
  read, with an F() increment. Zero rows updated means another writer got
  there first and ConcurrencyConflictError is raised.
- Lock conflicts: when the database itself refuses a lock (SQLite "database
  is locked", PostgreSQL lock or serialization failures) the losing writer
  gets ConcurrencyConflictError as well, never a raw OperationalError.
- Derived fields: amount_due and payment_status always come from
  domain.ledger.derive_balance, never from the client.

Preview calculation is read-only and performs no writes.
"""

import logging
from decimal import Decimal
from functools import partial, wraps

from django.conf import settings
from django.db import IntegrityError, OperationalError, connection, transaction
from django.db.models import F
from django.utils import timezone

from feed_orders.domain import ledger, lifecycle
from feed_orders.domain.calculator import calculate_requirement, to_decimal
from feed_orders.domain.choices import OrderStatus, PaymentMethod
from feed_orders.domain.exceptions import (
    ConcurrencyConflictError,
    IdempotencyReplay,
    InvalidPaymentAmountError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from feed_orders.domain.notification import build_dispatch, format_supplier_phone
from feed_orders.models import FeedItem, FeedOrder, FeedOrderLineItem, Payment

logger = logging.getLogger(__name__)


def _catalog_for(line_items):
    ids = set()
    for item in line_items:
        feed_item_id = item.get("feed_item_id") if isinstance(item, dict) else getattr(item, "feed_item_id", None)
        if isinstance(feed_item_id, int) and not isinstance(feed_item_id, bool):
            ids.add(feed_item_id)
    return {pk: feed_item.to_snapshot() for pk, feed_item in FeedItem.objects.in_bulk(ids).items()}


def _get_order(order_id, lock=False):
    queryset = FeedOrder.objects.all()
    if lock:
        queryset = queryset.select_for_update()
    try:
        return queryset.get(pk=order_id)
    except (FeedOrder.DoesNotExist, ValueError):
        raise NotFoundError(order_id)


# lock_not_available, serialization_failure, deadlock_detected
POSTGRES_LOCK_SQLSTATES = frozenset({"55P03", "40001", "40P01"})


def _is_lock_conflict(exc):
    if connection.vendor == "sqlite":
        return "locked" in str(exc).lower()
    cause = exc.__cause__
    sqlstate = getattr(cause, "sqlstate", None) or getattr(cause, "pgcode", None)
    return sqlstate in POSTGRES_LOCK_SQLSTATES


def translate_lock_conflicts(func):
    """
    Reports a lock refused by the database as ConcurrencyConflictError.

    The wrapped use case must take the order id as its first argument. The
    transaction has already been rolled back when the error is raised, so
    the caller can retry with fresh state.
    """
    @wraps(func)
    def wrapper(order_id, *args, **kwargs):
        try:
            return func(order_id, *args, **kwargs)
        except OperationalError as exc:
            if not _is_lock_conflict(exc):
                raise
            logger.warning(
                "Lock conflict: order=%s operation=%s error=%s",
                order_id, func.__name__, exc,
            )
            raise ConcurrencyConflictError(order_id) from exc
    return wrapper


def _clean_supplier_phone(supplier_phone):
    supplier_phone = (supplier_phone or "").strip()
    if supplier_phone and not format_supplier_phone(
        supplier_phone, settings.FEED_ORDERS["DEFAULT_COUNTRY_CODE"]
    ):
        raise ValidationError("supplier_phone", "must contain a phone number.")
    return supplier_phone


def apply_order_changes(order, **changes):
    """
    Writes ``changes`` only if the order still has the version it was read at.

    On success the instance is refreshed from the database and returned.
    """
    expected_version = order.version
    updated = (
        FeedOrder.objects
        .filter(pk=order.pk, version=expected_version)
        .update(version=F("version") + 1, updated_at=timezone.now(), **changes)
    )
    if not updated:
        logger.warning(
            "Concurrent modification: order=%s expected_version=%s",
            order.pk, expected_version,
        )
        raise ConcurrencyConflictError(order.pk, expected_version)

    order.refresh_from_db()
    return order


def preview_requirement(start_date, end_date, number_of_animals, line_items):
    """Computes the feed requirement for a period without persisting anything."""
    return calculate_requirement(
        start_date, end_date, number_of_animals, line_items,
        catalog=_catalog_for(line_items or []),
    )


def create_order(start_date, end_date, number_of_animals, line_items, supplier_phone=None, notes=None):
    """
    Persists a DRAFT order with totals frozen from a fresh calculation.

    The order and all its line items are created in one transaction; a
    failure leaves nothing behind.
    """
    supplier_phone = _clean_supplier_phone(supplier_phone)

    with transaction.atomic():
        preview = calculate_requirement(
            start_date, end_date, number_of_animals, line_items,
            catalog=_catalog_for(line_items or []),
        )
        balance = ledger.derive_balance(preview.total_cost, Decimal("0.00"))

        order = FeedOrder.objects.create(
            start_date=preview.start_date,
            end_date=preview.end_date,
            number_of_animals=preview.number_of_animals,
            number_of_days=preview.number_of_days,
            total_quantity_required=preview.total_quantity_required,
            bags_required=preview.total_bags,
            total_cost=preview.total_cost,
            status=OrderStatus.DRAFT,
            supplier_phone=supplier_phone,
            notes=notes or "",
            amount_paid=balance.amount_paid,
            amount_due=balance.amount_due,
            payment_status=balance.payment_status,
        )
        FeedOrderLineItem.objects.bulk_create([
            FeedOrderLineItem(
                order=order,
                position=position,
                feed_item_id=item.feed_item_id,
                quantity_per_time=item.quantity_per_time,
                number_of_times_per_day=item.number_of_times_per_day,
                item_name=item.item_name,
                quantity_per_bag=item.quantity_per_bag,
                price_per_bag=item.price_per_bag,
                quantity_required=item.quantity_required,
                bags_required=item.bags_required,
                cost_required=item.cost_required,
            )
            for position, item in enumerate(preview.items, start=1)
        ])

    logger.info(
        "Feed order created: order=%s days=%s bags=%s total_cost=%s",
        order.pk, order.number_of_days, order.bags_required, order.total_cost,
    )
    return order


def list_orders(status=None):
    queryset = FeedOrder.objects.prefetch_related("line_items", "payments")
    if status:
        if status not in OrderStatus.values:
            raise ValidationError("status", f"must be one of {', '.join(OrderStatus.values)}.")
        queryset = queryset.filter(status=status)
    return queryset


def get_order(order_id):
    return _get_order(order_id)


@translate_lock_conflicts
def update_draft_order(order_id, supplier_phone=None, notes=None):
    """Edits supplier contact and notes. Only DRAFT orders can be edited; totals never change."""
    if supplier_phone is not None:
        supplier_phone = _clean_supplier_phone(supplier_phone)

    with transaction.atomic():
        order = _get_order(order_id, lock=True)
        if order.status != OrderStatus.DRAFT:
            raise InvalidTransitionError(
                order.pk, order.status, order.status,
                reason="only DRAFT orders can be edited",
            )

        changes = {}
        if supplier_phone is not None:
            changes["supplier_phone"] = supplier_phone
        if notes is not None:
            changes["notes"] = notes
        if not changes:
            return order
        return apply_order_changes(order, **changes)


@translate_lock_conflicts
def _transition(order_id, target_status, guard=None, **effects):
    with transaction.atomic():
        order = _get_order(order_id, lock=True)
        try:
            lifecycle.validate_transition(order, target_status)
            if guard is not None:
                guard(order)
        except InvalidTransitionError:
            logger.warning(
                "Rejected transition: order=%s status=%s target=%s",
                order.pk, order.status, target_status,
            )
            raise

        previous_status = order.status
        apply_order_changes(order, status=target_status, **effects)

    logger.info(
        "Feed order transition: order=%s %s -> %s",
        order.pk, previous_status, target_status,
    )
    return order


def dispatch_order(order_id):
    """DRAFT -> ORDERED. Requires a supplier phone number."""
    return _transition(
        order_id, OrderStatus.ORDERED,
        guard=partial(
            lifecycle.require_supplier_phone,
            default_country_code=settings.FEED_ORDERS["DEFAULT_COUNTRY_CODE"],
        ),
        dispatched_at=timezone.now(),
    )


def confirm_delivery(order_id, actual_quantity_received=None, notes=None):
    """ORDERED -> DELIVERED. The received quantity defaults to the ordered total."""
    effects = {"delivered_at": timezone.now()}
    if actual_quantity_received is not None:
        received = to_decimal(actual_quantity_received, "actual_quantity_received")
        if received < 0:
            raise ValidationError("actual_quantity_received", "must not be negative.")
        effects["actual_quantity_received"] = received
    else:
        effects["actual_quantity_received"] = F("total_quantity_required")
    if notes:
        effects["notes"] = notes
    return _transition(order_id, OrderStatus.DELIVERED, **effects)


def start_feeding(order_id):
    """DELIVERED -> ACTIVE."""
    return _transition(order_id, OrderStatus.ACTIVE, feeding_started_at=timezone.now())


def complete_order(order_id):
    """ACTIVE -> COMPLETED. Completion is always an explicit action."""
    return _transition(order_id, OrderStatus.COMPLETED, completed_at=timezone.now())


def cancel_order(order_id):
    """Any non-terminal status -> CANCELLED. Recorded payments are kept."""
    return _transition(order_id, OrderStatus.CANCELLED, cancelled_at=timezone.now())


@translate_lock_conflicts
def record_payment(order_id, amount, method=PaymentMethod.CASH, notes="", idempotency_key=None):
    """
    Appends a payment to the order's ledger and updates the derived balance.

    Guarantees:
    - Atomicity via transaction.atomic()
    - Row-level locking via select_for_update() so amount_due is read fresh
    - Overpayment is rejected, never clamped
    - Idempotency via a per-order unique idempotency_key
    """
    method = ledger.validate_method(method)

    with transaction.atomic():
        order = _get_order(order_id, lock=True)

        if idempotency_key and order.payments.filter(idempotency_key=idempotency_key).exists():
            logger.info(
                "Idempotency replay: key=%s order=%s",
                idempotency_key, order.pk,
            )
            raise IdempotencyReplay(order.pk, idempotency_key)

        try:
            amount = ledger.validate_payment_amount(order.pk, amount, order.amount_due)
        except InvalidPaymentAmountError as exc:
            logger.warning(
                "Rejected payment: order=%s amount=%s amount_due=%s reason=%s",
                order.pk, exc.amount, order.amount_due, exc.reason,
            )
            raise

        balance = ledger.apply_payment(order.total_cost, order.amount_paid, amount)
        now = timezone.now()

        try:
            with transaction.atomic():
                Payment.objects.create(
                    order=order,
                    sequence=order.payments.count() + 1,
                    amount=amount,
                    method=method,
                    notes=notes or "",
                    idempotency_key=idempotency_key or None,
                )
        except IntegrityError:
            if not idempotency_key:
                raise ConcurrencyConflictError(order.pk, order.version)
            # Unique constraint on (order, idempotency_key) backstops the check above
            logger.info(
                "Idempotency replay: key=%s order=%s",
                idempotency_key, order.pk,
            )
            raise IdempotencyReplay(order.pk, idempotency_key)

        apply_order_changes(
            order,
            amount_paid=balance.amount_paid,
            amount_due=balance.amount_due,
            payment_status=balance.payment_status,
            last_payment_at=now,
        )

    logger.info(
        "Payment recorded: order=%s amount=%s amount_paid=%s amount_due=%s status=%s",
        order.pk, amount, order.amount_paid, order.amount_due, order.payment_status,
    )
    return order


def get_payment_history(order_id):
    order = _get_order(order_id)
    return {
        "order_id": order.pk,
        "total_cost": order.total_cost,
        "amount_paid": order.amount_paid,
        "amount_due": order.amount_due,
        "payment_status": order.payment_status,
        "last_payment_at": order.last_payment_at,
        "payments": list(order.payments.all()),
    }


def build_order_dispatch(order):
    """Message text and WhatsApp link for the supplier, from the order's frozen figures."""
    config = settings.FEED_ORDERS
    return build_dispatch(
        order,
        list(order.line_items.all()),
        currency_label=config["CURRENCY_LABEL"],
        default_country_code=config["DEFAULT_COUNTRY_CODE"],
        base_url=config["WHATSAPP_BASE_URL"],
    )
