"""
Request/response serializers for the feed order endpoints.

Input serializers only coerce types (dates, decimals, integers). Range checks
and business rules belong to the domain layer so they hold for every caller,
not just HTTP.
"""

from rest_framework import serializers

from feed_orders.domain.choices import PaymentMethod
from feed_orders.models import FeedOrder, FeedOrderLineItem, Payment


class LineItemInputSerializer(serializers.Serializer):
    feed_item_id = serializers.IntegerField()
    quantity_per_time = serializers.DecimalField(max_digits=10, decimal_places=3)
    number_of_times_per_day = serializers.IntegerField()


class RequirementInputSerializer(serializers.Serializer):
    start_date = serializers.DateField()
    end_date = serializers.DateField()
    number_of_animals = serializers.IntegerField()
    line_items = LineItemInputSerializer(many=True)


class OrderCreateSerializer(RequirementInputSerializer):
    supplier_phone = serializers.CharField(max_length=32, required=False, allow_blank=True)
    notes = serializers.CharField(required=False, allow_blank=True)


class DraftUpdateSerializer(serializers.Serializer):
    supplier_phone = serializers.CharField(max_length=32, required=False, allow_blank=True)
    notes = serializers.CharField(required=False, allow_blank=True)


class DeliveryInputSerializer(serializers.Serializer):
    actual_quantity_received = serializers.DecimalField(
        max_digits=14, decimal_places=2, required=False, allow_null=True
    )
    notes = serializers.CharField(required=False, allow_blank=True)


class PaymentInputSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=14, decimal_places=2)
    method = serializers.ChoiceField(choices=PaymentMethod.choices, default=PaymentMethod.CASH)
    notes = serializers.CharField(required=False, allow_blank=True, default="")
    idempotency_key = serializers.CharField(max_length=100, required=False, allow_blank=True)


class ItemRequirementSerializer(serializers.Serializer):
    feed_item_id = serializers.IntegerField()
    item_name = serializers.CharField()
    quantity_per_time = serializers.DecimalField(max_digits=10, decimal_places=3)
    number_of_times_per_day = serializers.IntegerField()
    quantity_per_bag = serializers.DecimalField(max_digits=10, decimal_places=2)
    price_per_bag = serializers.DecimalField(max_digits=12, decimal_places=2)
    quantity_required = serializers.DecimalField(max_digits=14, decimal_places=2)
    bags_required = serializers.IntegerField()
    cost_required = serializers.DecimalField(max_digits=14, decimal_places=2)


class RequirementPreviewSerializer(serializers.Serializer):
    start_date = serializers.DateField()
    end_date = serializers.DateField()
    number_of_animals = serializers.IntegerField()
    number_of_days = serializers.IntegerField()
    items = ItemRequirementSerializer(many=True)
    total_quantity_required = serializers.DecimalField(max_digits=14, decimal_places=2)
    total_bags = serializers.IntegerField()
    total_cost = serializers.DecimalField(max_digits=14, decimal_places=2)


class FeedOrderLineItemSerializer(serializers.ModelSerializer):
    class Meta:
        model = FeedOrderLineItem
        fields = [
            "position",
            "feed_item",
            "item_name",
            "quantity_per_time",
            "number_of_times_per_day",
            "quantity_per_bag",
            "price_per_bag",
            "quantity_required",
            "bags_required",
            "cost_required",
        ]


class PaymentSerializer(serializers.ModelSerializer):
    class Meta:
        model = Payment
        fields = ["sequence", "amount", "method", "notes", "paid_at"]


class FeedOrderSerializer(serializers.ModelSerializer):
    line_items = FeedOrderLineItemSerializer(many=True, read_only=True)
    payment_history = PaymentSerializer(source="payments", many=True, read_only=True)

    class Meta:
        model = FeedOrder
        fields = [
            "id",
            "start_date",
            "end_date",
            "number_of_animals",
            "number_of_days",
            "line_items",
            "total_quantity_required",
            "bags_required",
            "total_cost",
            "status",
            "supplier_phone",
            "notes",
            "amount_paid",
            "amount_due",
            "payment_status",
            "payment_history",
            "last_payment_at",
            "dispatched_at",
            "delivered_at",
            "actual_quantity_received",
            "feeding_started_at",
            "completed_at",
            "cancelled_at",
            "version",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class PaymentHistorySerializer(serializers.Serializer):
    order_id = serializers.IntegerField()
    total_cost = serializers.DecimalField(max_digits=14, decimal_places=2)
    amount_paid = serializers.DecimalField(max_digits=14, decimal_places=2)
    amount_due = serializers.DecimalField(max_digits=14, decimal_places=2)
    payment_status = serializers.CharField()
    last_payment_at = serializers.DateTimeField(allow_null=True)
    payments = PaymentSerializer(many=True)


class DispatchSerializer(serializers.Serializer):
    message = serializers.CharField()
    phone = serializers.CharField()
    link = serializers.CharField()
