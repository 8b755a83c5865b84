import random
import threading
import time
from datetime import date
from decimal import Decimal
from unittest import skipUnless

from django.db import OperationalError, connection, transaction
from django.test import TestCase, TransactionTestCase

from feed_orders.application import use_cases
from feed_orders.domain.choices import OrderStatus, PaymentMethod, PaymentStatus
from feed_orders.domain.exceptions import (
    ConcurrencyConflictError,
    IdempotencyReplay,
    InvalidPaymentAmountError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from feed_orders.models import FeedItem, FeedOrder, Payment


class FeedOrderTestMixin:

    def setUp(self):
        self.feed_item = FeedItem.objects.create(
            name="Maize bran",
            quantity_per_bag=Decimal("50"),
            price_per_bag=Decimal("2000"),
        )

    def order_params(self, **overrides):
        params = {
            "start_date": date(2024, 1, 1),
            "end_date": date(2024, 1, 10),
            "number_of_animals": 50,
            "line_items": [
                {
                    "feed_item_id": self.feed_item.id,
                    "quantity_per_time": Decimal("2"),
                    "number_of_times_per_day": 2,
                },
            ],
        }
        params.update(overrides)
        return params

    def create_order(self, **overrides):
        return use_cases.create_order(**self.order_params(**overrides))


class CreateOrderTest(FeedOrderTestMixin, TestCase):

    def test_preview_does_not_persist(self):
        preview = use_cases.preview_requirement(**self.order_params())

        self.assertEqual(preview.total_cost, Decimal("80000.00"))
        self.assertEqual(FeedOrder.objects.count(), 0)

    def test_new_order_is_draft_and_unpaid(self):
        order = self.create_order(supplier_phone=" 03001234567 ", notes="Deliver to shed 2")

        self.assertEqual(order.status, OrderStatus.DRAFT)
        self.assertEqual(order.number_of_days, 10)
        self.assertEqual(order.total_quantity_required, Decimal("2000.00"))
        self.assertEqual(order.bags_required, 40)
        self.assertEqual(order.total_cost, Decimal("80000.00"))
        self.assertEqual(order.amount_paid, Decimal("0"))
        self.assertEqual(order.amount_due, Decimal("80000.00"))
        self.assertEqual(order.payment_status, PaymentStatus.PENDING)
        self.assertEqual(order.supplier_phone, "03001234567")
        self.assertEqual(order.version, 0)

        line = order.line_items.get()
        self.assertEqual(line.position, 1)
        self.assertEqual(line.item_name, "Maize bran")
        self.assertEqual(line.bags_required, 40)
        self.assertEqual(line.cost_required, Decimal("80000.00"))

    def test_phone_without_digits_rejected(self):
        with self.assertRaises(ValidationError) as ctx:
            self.create_order(supplier_phone="call supplier")

        self.assertEqual(ctx.exception.field, "supplier_phone")
        self.assertEqual(FeedOrder.objects.count(), 0)

    def test_line_item_keeps_three_decimal_quantity(self):
        params = self.order_params()
        params["line_items"][0]["quantity_per_time"] = Decimal("0.125")
        params["line_items"][0]["number_of_times_per_day"] = 1

        order = use_cases.create_order(**params)

        line = order.line_items.get()
        self.assertEqual(line.quantity_per_time, Decimal("0.125"))
        self.assertEqual(line.quantity_required, Decimal("62.50"))
        self.assertEqual(order.total_quantity_required, Decimal("62.50"))
        self.assertEqual(order.bags_required, 2)

    def test_unknown_feed_item_creates_nothing(self):
        params = self.order_params()
        params["line_items"].append(
            {"feed_item_id": self.feed_item.id + 100, "quantity_per_time": Decimal("1"), "number_of_times_per_day": 1}
        )

        with self.assertRaises(ValidationError) as ctx:
            use_cases.create_order(**params)

        self.assertEqual(ctx.exception.field, "line_items[1].feed_item_id")
        self.assertEqual(FeedOrder.objects.count(), 0)

    def test_catalog_changes_do_not_touch_existing_orders(self):
        order = self.create_order()

        FeedItem.objects.filter(pk=self.feed_item.pk).update(price_per_bag=Decimal("2500"), quantity_per_bag=Decimal("40"))
        order.refresh_from_db()

        self.assertEqual(order.total_cost, Decimal("80000.00"))
        self.assertEqual(order.bags_required, 40)
        self.assertEqual(order.line_items.get().price_per_bag, Decimal("2000.00"))
        self.assertEqual(use_cases.preview_requirement(**self.order_params()).total_cost, Decimal("125000.00"))

    def test_list_orders_filters_by_status(self):
        draft = self.create_order()
        cancelled = self.create_order()
        use_cases.cancel_order(cancelled.id)

        self.assertEqual([o.id for o in use_cases.list_orders(status="DRAFT")], [draft.id])
        self.assertEqual({o.id for o in use_cases.list_orders()}, {draft.id, cancelled.id})

        with self.assertRaises(ValidationError):
            list(use_cases.list_orders(status="SHIPPED"))

    def test_unknown_order(self):
        with self.assertRaises(NotFoundError):
            use_cases.get_order(424242)
        with self.assertRaises(NotFoundError):
            use_cases.record_payment(424242, Decimal("10"), PaymentMethod.CASH)


class PaymentLedgerTest(FeedOrderTestMixin, TestCase):

    def setUp(self):
        super().setUp()
        self.order = self.create_order()

    def test_partial_then_full_payment(self):
        order = use_cases.record_payment(self.order.id, Decimal("30000"), PaymentMethod.CASH)
        self.assertEqual(order.amount_paid, Decimal("30000.00"))
        self.assertEqual(order.amount_due, Decimal("50000.00"))
        self.assertEqual(order.payment_status, PaymentStatus.PARTIAL_PAID)
        self.assertIsNotNone(order.last_payment_at)

        order = use_cases.record_payment(self.order.id, Decimal("50000"), PaymentMethod.BANK_TRANSFER, "Final")
        self.assertEqual(order.amount_paid, Decimal("80000.00"))
        self.assertEqual(order.amount_due, Decimal("0.00"))
        self.assertEqual(order.payment_status, PaymentStatus.PAID)

        with self.assertRaises(InvalidPaymentAmountError):
            use_cases.record_payment(self.order.id, Decimal("1"), PaymentMethod.CASH)

        history = use_cases.get_payment_history(self.order.id)
        self.assertEqual([p.sequence for p in history["payments"]], [1, 2])
        self.assertEqual([p.amount for p in history["payments"]], [Decimal("30000.00"), Decimal("50000.00")])
        self.assertEqual(history["payments"][1].method, PaymentMethod.BANK_TRANSFER)
        self.assertEqual(history["payment_status"], PaymentStatus.PAID)

    def test_overpayment_leaves_order_unchanged(self):
        use_cases.record_payment(self.order.id, Decimal("30000"), PaymentMethod.CASH)

        with self.assertRaises(InvalidPaymentAmountError):
            use_cases.record_payment(self.order.id, Decimal("50000.01"), PaymentMethod.CASH)

        self.order.refresh_from_db()
        self.assertEqual(self.order.amount_paid, Decimal("30000.00"))
        self.assertEqual(self.order.amount_due, Decimal("50000.00"))
        self.assertEqual(self.order.payments.count(), 1)
        self.assertEqual(self.order.version, 1)

    def test_non_positive_amount_rejected(self):
        with self.assertRaises(InvalidPaymentAmountError):
            use_cases.record_payment(self.order.id, Decimal("0"), PaymentMethod.CASH)
        self.assertEqual(Payment.objects.count(), 0)

    def test_amount_paid_never_decreases(self):
        previous = Decimal("0")
        for amount in ["5000", "-100", "20000", "60000", "55000"]:
            try:
                use_cases.record_payment(self.order.id, Decimal(amount), PaymentMethod.CASH)
            except InvalidPaymentAmountError:
                pass
            self.order.refresh_from_db()

            self.assertGreaterEqual(self.order.amount_paid, previous)
            self.assertTrue(0 <= self.order.amount_paid <= self.order.total_cost)
            self.assertEqual(self.order.amount_due, self.order.total_cost - self.order.amount_paid)
            previous = self.order.amount_paid

        self.assertEqual(previous, Decimal("80000.00"))
        self.assertEqual(self.order.payment_status, PaymentStatus.PAID)

    def test_cancelled_order_still_accepts_payment(self):
        use_cases.record_payment(self.order.id, Decimal("10000"), PaymentMethod.CASH)
        use_cases.cancel_order(self.order.id)

        order = use_cases.record_payment(self.order.id, Decimal("5000"), PaymentMethod.CHEQUE)

        self.assertEqual(order.status, OrderStatus.CANCELLED)
        self.assertEqual(order.amount_paid, Decimal("15000.00"))
        self.assertEqual(order.payments.count(), 2)

    def test_repeated_idempotency_key_records_once(self):
        use_cases.record_payment(self.order.id, Decimal("30000"), PaymentMethod.CASH, idempotency_key="pay-1")

        with self.assertRaises(IdempotencyReplay):
            use_cases.record_payment(self.order.id, Decimal("30000"), PaymentMethod.CASH, idempotency_key="pay-1")

        self.order.refresh_from_db()
        self.assertEqual(self.order.amount_paid, Decimal("30000.00"))
        self.assertEqual(self.order.payments.count(), 1)

    def test_unknown_method_rejected(self):
        with self.assertRaises(ValidationError):
            use_cases.record_payment(self.order.id, Decimal("100"), "BARTER")

    def test_payments_cannot_be_edited(self):
        use_cases.record_payment(self.order.id, Decimal("100"), PaymentMethod.CASH)
        payment = self.order.payments.get()
        payment.amount = Decimal("1")

        with self.assertRaises(ValueError):
            payment.save()


class OrderLifecycleTest(FeedOrderTestMixin, TestCase):

    def test_full_lifecycle(self):
        order = self.create_order(supplier_phone="03001234567")

        order = use_cases.dispatch_order(order.id)
        self.assertEqual(order.status, OrderStatus.ORDERED)
        self.assertIsNotNone(order.dispatched_at)

        order = use_cases.confirm_delivery(order.id)
        self.assertEqual(order.status, OrderStatus.DELIVERED)
        self.assertEqual(order.actual_quantity_received, Decimal("2000.00"))
        self.assertIsNotNone(order.delivered_at)

        order = use_cases.start_feeding(order.id)
        self.assertEqual(order.status, OrderStatus.ACTIVE)
        self.assertIsNotNone(order.feeding_started_at)

        order = use_cases.complete_order(order.id)
        self.assertEqual(order.status, OrderStatus.COMPLETED)
        self.assertIsNotNone(order.completed_at)
        self.assertEqual(order.version, 4)
        self.assertEqual(order.total_cost, Decimal("80000.00"))

        with self.assertRaises(InvalidTransitionError):
            use_cases.cancel_order(order.id)

    def test_confirm_delivery_on_draft_rejected(self):
        order = self.create_order()

        with self.assertRaises(InvalidTransitionError):
            use_cases.confirm_delivery(order.id)

        order.refresh_from_db()
        self.assertEqual(order.status, OrderStatus.DRAFT)
        self.assertIsNone(order.delivered_at)

    def test_dispatch_without_phone_changes_nothing(self):
        order = self.create_order()

        with self.assertRaises(InvalidTransitionError):
            use_cases.dispatch_order(order.id)

        order.refresh_from_db()
        self.assertEqual(order.status, OrderStatus.DRAFT)
        self.assertIsNone(order.dispatched_at)
        self.assertEqual(order.version, 0)

    def test_dispatch_with_undialable_phone_changes_nothing(self):
        order = self.create_order()
        FeedOrder.objects.filter(pk=order.pk).update(supplier_phone="call supplier")

        with self.assertRaises(InvalidTransitionError):
            use_cases.dispatch_order(order.id)

        order.refresh_from_db()
        self.assertEqual(order.status, OrderStatus.DRAFT)
        self.assertIsNone(order.dispatched_at)
        self.assertEqual(order.version, 0)

    def test_delivery_records_received_quantity_and_notes(self):
        order = self.create_order(supplier_phone="03001234567", notes="original")
        use_cases.dispatch_order(order.id)

        order = use_cases.confirm_delivery(order.id, actual_quantity_received=Decimal("1950.5"), notes="Two bags torn")

        self.assertEqual(order.actual_quantity_received, Decimal("1950.50"))
        self.assertEqual(order.notes, "Two bags torn")

    def test_start_feeding_requires_delivery(self):
        order = self.create_order(supplier_phone="03001234567")
        use_cases.dispatch_order(order.id)

        with self.assertRaises(InvalidTransitionError):
            use_cases.start_feeding(order.id)

    def test_complete_requires_active(self):
        order = self.create_order()
        with self.assertRaises(InvalidTransitionError):
            use_cases.complete_order(order.id)

    def test_cancel_keeps_payments(self):
        order = self.create_order(supplier_phone="03001234567")
        use_cases.record_payment(order.id, Decimal("20000"), PaymentMethod.CASH)
        use_cases.dispatch_order(order.id)

        order = use_cases.cancel_order(order.id)

        self.assertEqual(order.status, OrderStatus.CANCELLED)
        self.assertIsNotNone(order.cancelled_at)
        self.assertEqual(order.amount_paid, Decimal("20000.00"))
        self.assertEqual(order.payment_status, PaymentStatus.PARTIAL_PAID)
        self.assertEqual(order.payments.count(), 1)

    def test_update_draft_order(self):
        order = self.create_order()

        order = use_cases.update_draft_order(order.id, supplier_phone="03001234567")
        self.assertEqual(order.supplier_phone, "03001234567")
        self.assertEqual(order.total_cost, Decimal("80000.00"))

        use_cases.dispatch_order(order.id)
        with self.assertRaises(InvalidTransitionError):
            use_cases.update_draft_order(order.id, notes="too late")

    def test_update_draft_order_rejects_phone_without_digits(self):
        order = self.create_order(supplier_phone="03001234567")

        with self.assertRaises(ValidationError) as ctx:
            use_cases.update_draft_order(order.id, supplier_phone="n/a")

        self.assertEqual(ctx.exception.field, "supplier_phone")
        order.refresh_from_db()
        self.assertEqual(order.supplier_phone, "03001234567")
        self.assertEqual(order.version, 0)

    def test_stale_write_is_rejected(self):
        order = self.create_order()
        stale = FeedOrder.objects.get(pk=order.pk)

        use_cases.update_draft_order(order.id, notes="first writer")

        with self.assertRaises(ConcurrencyConflictError) as ctx:
            use_cases.apply_order_changes(stale, notes="second writer")

        self.assertEqual(ctx.exception.expected_version, 0)
        order.refresh_from_db()
        self.assertEqual(order.notes, "first writer")
        self.assertEqual(order.version, 1)

    def test_dispatch_message_uses_frozen_figures(self):
        order = self.create_order(supplier_phone="03001234567")

        dispatch = use_cases.build_order_dispatch(order)

        self.assertEqual(dispatch.phone, "923001234567")
        self.assertIn("• Maize bran: 2000.00kg (40 bags) - PKR 80000.00", dispatch.message)
        self.assertTrue(dispatch.link.startswith("https://wa.me/923001234567?text="))


class LockConflictTest(FeedOrderTestMixin, TestCase):

    @skipUnless(connection.vendor == "sqlite", "matches SQLite lock messages")
    def test_locked_database_reported_as_conflict(self):
        order = self.create_order()

        @use_cases.translate_lock_conflicts
        def write(order_id):
            raise OperationalError("database is locked")

        with self.assertRaises(ConcurrencyConflictError) as ctx:
            write(order.id)

        self.assertEqual(ctx.exception.order_id, order.id)
        self.assertIsNone(ctx.exception.expected_version)

    def test_other_storage_errors_propagate(self):
        @use_cases.translate_lock_conflicts
        def write(order_id):
            raise OperationalError("disk I/O error")

        with self.assertRaises(OperationalError):
            write(1)


class ConcurrentWriterTest(FeedOrderTestMixin, TransactionTestCase):
    """
    Writers on separate threads, each with its own database connection.

    TransactionTestCase is required: the rows have to be committed for the
    other connections to see them.
    """

    writers = 8
    attempts = 50

    def setUp(self):
        super().setUp()
        self.order = self.create_order()

    def pay_with_retries(self, barrier, outcomes):
        conflicts = 0
        try:
            barrier.wait()
            for _ in range(self.attempts):
                try:
                    use_cases.record_payment(self.order.id, Decimal("100"), PaymentMethod.CASH)
                except ConcurrencyConflictError:
                    conflicts += 1
                    time.sleep(random.uniform(0, 0.02))
                else:
                    outcomes.append(("ok", conflicts))
                    return
            outcomes.append(("gave up", conflicts))
        except Exception as exc:
            outcomes.append((type(exc).__name__, conflicts))
        finally:
            connection.close()

    def test_racing_payments_keep_ledger_consistent(self):
        barrier = threading.Barrier(self.writers)
        outcomes = []
        threads = [
            threading.Thread(target=self.pay_with_retries, args=(barrier, outcomes))
            for _ in range(self.writers)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual([result for result, _ in outcomes], ["ok"] * self.writers)

        self.order.refresh_from_db()
        payments = list(self.order.payments.all())
        self.assertEqual([p.sequence for p in payments], list(range(1, self.writers + 1)))
        self.assertEqual(self.order.amount_paid, Decimal("100") * self.writers)
        self.assertEqual(self.order.amount_paid, sum(p.amount for p in payments))
        self.assertEqual(self.order.amount_due, self.order.total_cost - self.order.amount_paid)
        self.assertEqual(self.order.version, self.writers)

    @skipUnless(connection.vendor == "sqlite", "relies on SQLite refusing the lock instead of waiting")
    def test_payment_blocked_by_open_write_is_a_conflict(self):
        locked = threading.Event()
        release = threading.Event()

        def hold_write_lock():
            try:
                with transaction.atomic():
                    FeedOrder.objects.filter(pk=self.order.pk).update(notes="held")
                    locked.set()
                    release.wait(timeout=30)
            finally:
                connection.close()

        holder = threading.Thread(target=hold_write_lock)
        holder.start()
        try:
            self.assertTrue(locked.wait(timeout=10))
            with self.assertRaises(ConcurrencyConflictError):
                use_cases.record_payment(self.order.id, Decimal("100"), PaymentMethod.CASH)
        finally:
            release.set()
            holder.join()

        self.order.refresh_from_db()
        self.assertEqual(self.order.amount_paid, Decimal("0.00"))
        self.assertEqual(self.order.payments.count(), 0)
        self.assertEqual(self.order.notes, "held")

        order = use_cases.record_payment(self.order.id, Decimal("100"), PaymentMethod.CASH)
        self.assertEqual(order.amount_paid, Decimal("100.00"))
