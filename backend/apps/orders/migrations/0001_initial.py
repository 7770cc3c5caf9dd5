import uuid
from decimal import Decimal

import django.core.validators
import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('accounts', '0001_initial'),
        ('carriers', '0001_initial'),
        ('inventory', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Order',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('customer_name', models.CharField(max_length=200)),
                ('customer_phone', models.CharField(blank=True, max_length=40)),
                ('customer_address', models.TextField(blank=True)),
                ('delivery_latitude', models.DecimalField(blank=True, decimal_places=6, max_digits=9, null=True)),
                ('delivery_longitude', models.DecimalField(blank=True, decimal_places=6, max_digits=9, null=True)),
                ('external_order_id', models.CharField(blank=True, db_index=True, help_text='Order id on the linked commerce platform', max_length=64)),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('confirmed', 'Confirmed'), ('in_preparation', 'In Preparation'), ('ready_to_ship', 'Ready to Ship'), ('shipped', 'Shipped'), ('in_transit', 'In Transit'), ('delivered', 'Delivered'), ('returned', 'Returned'), ('cancelled', 'Cancelled'), ('rejected', 'Rejected'), ('incident', 'Incident')], db_index=True, default='pending', max_length=20)),
                ('version', models.PositiveIntegerField(default=1)),
                ('payment_method', models.CharField(choices=[('cash', 'Cash'), ('cod', 'Cash on Delivery'), ('transfer', 'Bank Transfer'), ('card', 'Card'), ('qr', 'QR Payment'), ('online', 'Online Checkout')], default='cod', max_length=20)),
                ('total_price', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=12, validators=[django.core.validators.MinValueValidator(Decimal('0.00'))])),
                ('cod_amount', models.DecimalField(decimal_places=2, default=Decimal('0.00'), help_text='Amount the courier must collect', max_digits=12)),
                ('total_discounts', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=12)),
                ('amount_collected', models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ('has_amount_discrepancy', models.BooleanField(default=False)),
                ('prepaid_method', models.CharField(blank=True, max_length=20)),
                ('prepaid_at', models.DateTimeField(blank=True, null=True)),
                ('is_pickup', models.BooleanField(default=False)),
                ('confirmation_method', models.CharField(blank=True, max_length=20)),
                ('delivery_token', models.CharField(blank=True, max_length=64, null=True, unique=True)),
                ('qr_code_url', models.TextField(blank=True, help_text='PNG data URL encoding the delivery link', null=True)),
                ('delivery_status', models.CharField(choices=[('pending', 'Awaiting Outcome'), ('confirmed', 'Delivered'), ('failed', 'Failed')], default='pending', max_length=20)),
                ('delivery_failure_reason', models.TextField(blank=True)),
                ('courier_notes', models.TextField(blank=True)),
                ('delivery_rating', models.PositiveSmallIntegerField(blank=True, null=True, validators=[django.core.validators.MinValueValidator(1), django.core.validators.MaxValueValidator(5)])),
                ('delivery_rating_comment', models.TextField(blank=True)),
                ('rated_at', models.DateTimeField(blank=True, null=True)),
                ('has_active_incident', models.BooleanField(db_index=True, default=False)),
                ('printed', models.BooleanField(default=False)),
                ('printed_at', models.DateTimeField(blank=True, null=True)),
                ('internal_notes', models.TextField(blank=True)),
                ('deleted_at', models.DateTimeField(blank=True, db_index=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True, db_index=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('confirmed_at', models.DateTimeField(blank=True, null=True)),
                ('shipped_at', models.DateTimeField(blank=True, null=True)),
                ('delivered_at', models.DateTimeField(blank=True, null=True)),
                ('cancelled_at', models.DateTimeField(blank=True, null=True)),
                ('carrier', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='orders', to='carriers.carrier')),
                ('confirmed_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='confirmed_orders', to=settings.AUTH_USER_MODEL)),
                ('deleted_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='deleted_orders', to=settings.AUTH_USER_MODEL)),
                ('store', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='orders', to='accounts.store')),
            ],
            options={
                'verbose_name': 'Order',
                'verbose_name_plural': 'Orders',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['store', 'status', '-created_at'], name='orders_store_status_idx'),
                    models.Index(fields=['store', 'deleted_at'], name='orders_store_deleted_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='OrderLineItem',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('product_name', models.CharField(max_length=200)),
                ('quantity', models.PositiveIntegerField(validators=[django.core.validators.MinValueValidator(1)])),
                ('unit_price', models.DecimalField(decimal_places=2, max_digits=12)),
                ('position', models.PositiveIntegerField(default=0)),
                ('is_upsell', models.BooleanField(default=False)),
                ('stock_deducted', models.BooleanField(default=False)),
                ('stock_deducted_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('order', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='line_items', to='orders.order')),
                ('product', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='order_lines', to='inventory.product')),
                ('variant', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='order_lines', to='inventory.productvariant')),
            ],
            options={
                'ordering': ['position', 'created_at'],
            },
        ),
        migrations.CreateModel(
            name='OrderStatusHistory',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('previous_status', models.CharField(blank=True, max_length=20)),
                ('new_status', models.CharField(max_length=20)),
                ('changed_by_label', models.CharField(blank=True, max_length=40)),
                ('source', models.CharField(choices=[('dashboard', 'Dashboard'), ('confirmation', 'Confirmation'), ('delivery_app', 'Courier Delivery Page'), ('incident', 'Incident Resolution'), ('system', 'System')], default='dashboard', max_length=20)),
                ('notes', models.TextField(blank=True)),
                ('created_at', models.DateTimeField(auto_now_add=True, db_index=True)),
                ('changed_by', models.ForeignKey(blank=True, help_text='Operator who triggered the change (null for couriers and customers)', null=True, on_delete=django.db.models.deletion.SET_NULL, to=settings.AUTH_USER_MODEL)),
                ('order', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='status_history', to='orders.order')),
                ('store', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='order_status_history', to='accounts.store')),
            ],
            options={
                'verbose_name': 'Order Status History',
                'verbose_name_plural': 'Order Status History',
                'ordering': ['-created_at'],
                'indexes': [models.Index(fields=['order', '-created_at'], name='orders_history_order_idx')],
            },
        ),
        migrations.CreateModel(
            name='DeliveryAttempt',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('attempt_number', models.PositiveIntegerField()),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('delivered', 'Delivered'), ('failed', 'Failed')], default='pending', max_length=20)),
                ('payment_method', models.CharField(blank=True, max_length=20)),
                ('failed_reason', models.TextField(blank=True)),
                ('notes', models.TextField(blank=True)),
                ('actual_date', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('carrier', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='delivery_attempts', to='carriers.carrier')),
                ('order', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='delivery_attempts', to='orders.order')),
            ],
            options={
                'ordering': ['order', 'attempt_number'],
                'constraints': [models.UniqueConstraint(fields=('order', 'attempt_number'), name='unique_delivery_attempt_number')],
            },
        ),
        migrations.CreateModel(
            name='DeliveryIncident',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('status', models.CharField(choices=[('active', 'Active'), ('resolved', 'Resolved'), ('expired', 'Expired')], db_index=True, default='active', max_length=20)),
                ('description', models.TextField(blank=True)),
                ('current_retry_count', models.PositiveIntegerField(default=0)),
                ('max_retry_attempts', models.PositiveIntegerField(default=3)),
                ('resolution_type', models.CharField(blank=True, choices=[('delivered', 'Delivered'), ('cancelled', 'Cancelled'), ('customer_rejected', 'Customer Rejected'), ('other', 'Other')], max_length=20)),
                ('resolution_notes', models.TextField(blank=True)),
                ('resolved_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True, db_index=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('delivery_attempt', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='incidents', to='orders.deliveryattempt')),
                ('order', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='incidents', to='orders.order')),
                ('resolved_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='resolved_incidents', to=settings.AUTH_USER_MODEL)),
                ('store', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='delivery_incidents', to='accounts.store')),
            ],
            options={
                'ordering': ['-created_at'],
                'indexes': [models.Index(fields=['store', 'status'], name='orders_incident_store_idx')],
            },
        ),
        migrations.CreateModel(
            name='IncidentRetryAttempt',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('retry_number', models.PositiveIntegerField()),
                ('status', models.CharField(choices=[('scheduled', 'Scheduled'), ('delivered', 'Delivered'), ('failed', 'Failed'), ('cancelled', 'Cancelled')], default='scheduled', max_length=20)),
                ('scheduled_date', models.DateField(blank=True, null=True)),
                ('payment_method', models.CharField(blank=True, max_length=20)),
                ('courier_notes', models.TextField(blank=True)),
                ('completed_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('incident', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='retries', to='orders.deliveryincident')),
                ('scheduled_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='scheduled_retries', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ['incident', 'retry_number'],
                'constraints': [models.UniqueConstraint(fields=('incident', 'retry_number'), name='unique_incident_retry_number')],
            },
        ),
    ]
