# Generated manually for the initial feed order schema
from decimal import Decimal

import django.core.validators
import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='FeedItem',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=120, unique=True)),
                ('quantity_per_bag', models.DecimalField(decimal_places=2, max_digits=10, validators=[django.core.validators.MinValueValidator(Decimal('0.01'))])),
                ('unit', models.CharField(default='kg', max_length=10)),
                ('price_per_bag', models.DecimalField(decimal_places=2, max_digits=12, validators=[django.core.validators.MinValueValidator(Decimal('0.00'))])),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'ordering': ['name'],
            },
        ),
        migrations.CreateModel(
            name='FeedOrder',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('start_date', models.DateField()),
                ('end_date', models.DateField()),
                ('number_of_animals', models.PositiveIntegerField(validators=[django.core.validators.MinValueValidator(1)])),
                ('number_of_days', models.PositiveIntegerField()),
                ('total_quantity_required', models.DecimalField(decimal_places=2, max_digits=14)),
                ('bags_required', models.PositiveIntegerField()),
                ('total_cost', models.DecimalField(decimal_places=2, max_digits=14)),
                ('status', models.CharField(choices=[('DRAFT', 'Draft'), ('ORDERED', 'Ordered'), ('DELIVERED', 'Delivered'), ('ACTIVE', 'Active'), ('COMPLETED', 'Completed'), ('CANCELLED', 'Cancelled')], db_index=True, default='DRAFT', max_length=20)),
                ('supplier_phone', models.CharField(blank=True, default='', max_length=32)),
                ('notes', models.TextField(blank=True, default='')),
                ('amount_paid', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=14)),
                ('amount_due', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=14)),
                ('payment_status', models.CharField(choices=[('PENDING', 'Pending'), ('PARTIAL_PAID', 'Partially paid'), ('PAID', 'Paid')], default='PENDING', max_length=20)),
                ('last_payment_at', models.DateTimeField(blank=True, null=True)),
                ('dispatched_at', models.DateTimeField(blank=True, null=True)),
                ('delivered_at', models.DateTimeField(blank=True, null=True)),
                ('actual_quantity_received', models.DecimalField(blank=True, decimal_places=2, max_digits=14, null=True)),
                ('feeding_started_at', models.DateTimeField(blank=True, null=True)),
                ('completed_at', models.DateTimeField(blank=True, null=True)),
                ('cancelled_at', models.DateTimeField(blank=True, null=True)),
                ('version', models.PositiveIntegerField(default=0)),
                ('created_at', models.DateTimeField(auto_now_add=True, db_index=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'ordering': ['-created_at', '-id'],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('end_date__gt', models.F('start_date'))), name='feed_order_end_after_start'),
                    models.CheckConstraint(condition=models.Q(('amount_paid__gte', 0), ('amount_paid__lte', models.F('total_cost'))), name='feed_order_amount_paid_within_total'),
                ],
            },
        ),
        migrations.CreateModel(
            name='FeedOrderLineItem',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('position', models.PositiveSmallIntegerField()),
                ('quantity_per_time', models.DecimalField(decimal_places=2, max_digits=10)),
                ('number_of_times_per_day', models.PositiveSmallIntegerField(validators=[django.core.validators.MinValueValidator(1), django.core.validators.MaxValueValidator(10)])),
                ('item_name', models.CharField(max_length=120)),
                ('quantity_per_bag', models.DecimalField(decimal_places=2, max_digits=10)),
                ('price_per_bag', models.DecimalField(decimal_places=2, max_digits=12)),
                ('quantity_required', models.DecimalField(decimal_places=2, max_digits=14)),
                ('bags_required', models.PositiveIntegerField()),
                ('cost_required', models.DecimalField(decimal_places=2, max_digits=14)),
                ('feed_item', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='order_lines', to='feed_orders.feeditem')),
                ('order', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='line_items', to='feed_orders.feedorder')),
            ],
            options={
                'ordering': ['position'],
                'constraints': [
                    models.UniqueConstraint(fields=('order', 'position'), name='feed_order_line_item_position_unique'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Payment',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('sequence', models.PositiveIntegerField()),
                ('amount', models.DecimalField(decimal_places=2, max_digits=14, validators=[django.core.validators.MinValueValidator(Decimal('0.01'))])),
                ('method', models.CharField(choices=[('CASH', 'Cash'), ('BANK_TRANSFER', 'Bank transfer'), ('CHEQUE', 'Cheque'), ('ONLINE', 'Online'), ('CREDIT', 'Credit')], default='CASH', max_length=20)),
                ('notes', models.TextField(blank=True, default='')),
                ('idempotency_key', models.CharField(blank=True, max_length=100, null=True)),
                ('paid_at', models.DateTimeField(auto_now_add=True)),
                ('order', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='payments', to='feed_orders.feedorder')),
            ],
            options={
                'ordering': ['sequence'],
                'constraints': [
                    models.UniqueConstraint(fields=('order', 'sequence'), name='feed_order_payment_sequence_unique'),
                    models.UniqueConstraint(fields=('order', 'idempotency_key'), name='feed_order_payment_idempotency_key_unique'),
                ],
            },
        ),
    ]
