"""
Persistence Models — Feed Orders (Django ORM)

This module defines the persistence layer for feed orders: the read-only feed
item catalog consumed by the requirement calculator, the order aggregate with
its frozen line-item breakdown, and the append-only payment ledger.

Key decisions:

- Totals and the per-item breakdown are written once, at creation. Line items
  keep a snapshot of the catalog values used, so later catalog edits never
  change an existing order.
- Derived balance fields (amount_due, payment_status) are stored for querying
  but are only ever written by the application layer through
  ``domain.ledger.derive_balance``. There are no save hooks.
- ``version`` is bumped by every guarded write and lets the application layer
  detect a competing update.
- The payment ledger is ordered by ``sequence`` and payments cannot be
  updated once saved.
"""

from decimal import Decimal

from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.db.models import F, Q

from feed_orders.domain.calculator import FeedItemSnapshot
from feed_orders.domain.choices import OrderStatus, PaymentMethod, PaymentStatus

ZERO = Decimal("0.00")


class FeedItem(models.Model):
    """
    A purchasable feed sold in fixed-size bags.

    Catalog maintenance is handled elsewhere; the feed order engine only reads
    these rows.
    """

    name = models.CharField(max_length=120, unique=True)
    quantity_per_bag = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0.01"))],
    )
    price_per_bag = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(ZERO)],
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return f"{self.name} ({self.quantity_per_bag}kg @ {self.price_per_bag})"

    def to_snapshot(self):
        return FeedItemSnapshot(
            id=self.id,
            name=self.name,
            quantity_per_bag=self.quantity_per_bag,
            price_per_bag=self.price_per_bag,
        )


class FeedOrder(models.Model):
    """Aggregate root: requirement totals, fulfilment status and payment balance."""

    start_date = models.DateField()
    end_date = models.DateField()
    number_of_animals = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    number_of_days = models.PositiveIntegerField()

    total_quantity_required = models.DecimalField(max_digits=14, decimal_places=2)
    bags_required = models.PositiveIntegerField()
    total_cost = models.DecimalField(max_digits=14, decimal_places=2)

    status = models.CharField(
        max_length=20,
        choices=OrderStatus.choices,
        default=OrderStatus.DRAFT,
        db_index=True,
    )
    supplier_phone = models.CharField(max_length=32, blank=True, default="")
    notes = models.TextField(blank=True, default="")

    amount_paid = models.DecimalField(max_digits=14, decimal_places=2, default=ZERO)
    amount_due = models.DecimalField(max_digits=14, decimal_places=2, default=ZERO)
    payment_status = models.CharField(
        max_length=20,
        choices=PaymentStatus.choices,
        default=PaymentStatus.PENDING,
    )
    last_payment_at = models.DateTimeField(null=True, blank=True)

    dispatched_at = models.DateTimeField(null=True, blank=True)
    delivered_at = models.DateTimeField(null=True, blank=True)
    actual_quantity_received = models.DecimalField(
        max_digits=14, decimal_places=2, null=True, blank=True
    )
    feeding_started_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)

    version = models.PositiveIntegerField(default=0)

    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        constraints = [
            models.CheckConstraint(
                condition=Q(end_date__gt=F("start_date")),
                name="feed_order_end_after_start",
            ),
            models.CheckConstraint(
                condition=Q(amount_paid__gte=0) & Q(amount_paid__lte=F("total_cost")),
                name="feed_order_amount_paid_within_total",
            ),
        ]

    def __str__(self):
        return f"Feed order {self.id} - {self.status} ({self.start_date} to {self.end_date})"


class FeedOrderLineItem(models.Model):
    """One feed item of an order, with the requirement computed when the order was created."""

    order = models.ForeignKey(
        FeedOrder,
        on_delete=models.CASCADE,
        related_name="line_items",
    )
    position = models.PositiveSmallIntegerField()

    # PROTECT keeps catalog rows referenced by an order from disappearing.
    feed_item = models.ForeignKey(
        FeedItem,
        on_delete=models.PROTECT,
        related_name="order_lines",
    )
    quantity_per_time = models.DecimalField(max_digits=10, decimal_places=3)
    number_of_times_per_day = models.PositiveSmallIntegerField(
        validators=[MinValueValidator(1), MaxValueValidator(10)]
    )

    item_name = models.CharField(max_length=120)
    quantity_per_bag = models.DecimalField(max_digits=10, decimal_places=2)
    price_per_bag = models.DecimalField(max_digits=12, decimal_places=2)
    quantity_required = models.DecimalField(max_digits=14, decimal_places=2)
    bags_required = models.PositiveIntegerField()
    cost_required = models.DecimalField(max_digits=14, decimal_places=2)

    class Meta:
        ordering = ["position"]
        constraints = [
            models.UniqueConstraint(
                fields=["order", "position"],
                name="feed_order_line_item_position_unique",
            ),
        ]

    def __str__(self):
        return f"{self.item_name}: {self.bags_required} bags"


class Payment(models.Model):
    """
    A single payment against a feed order.

    Payments are appended in ``sequence`` order and never edited. The
    optional idempotency_key is unique per order so a retried request cannot
    record the same payment twice.
    """

    order = models.ForeignKey(
        FeedOrder,
        on_delete=models.CASCADE,
        related_name="payments",
    )
    sequence = models.PositiveIntegerField()
    amount = models.DecimalField(
        max_digits=14,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0.01"))],
    )
    method = models.CharField(
        max_length=20,
        choices=PaymentMethod.choices,
        default=PaymentMethod.CASH,
    )
    notes = models.TextField(blank=True, default="")
    idempotency_key = models.CharField(max_length=100, null=True, blank=True)
    paid_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["sequence"]
        constraints = [
            models.UniqueConstraint(
                fields=["order", "sequence"],
                name="feed_order_payment_sequence_unique",
            ),
            models.UniqueConstraint(
                fields=["order", "idempotency_key"],
                name="feed_order_payment_idempotency_key_unique",
            ),
        ]

    def __str__(self):
        return f"Payment {self.sequence} on order {self.order_id} - {self.amount}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError("Payments are append-only and cannot be modified.")
        super().save(*args, **kwargs)
