"""
Orders models - COD order lifecycle, status history, courier delivery and incidents.
Every status-changing write goes through apps.orders.services.
"""
import uuid
from decimal import Decimal
from django.db import models
from django.core.validators import MinValueValidator, MaxValueValidator
from apps.accounts.models import Store, User


class PaymentMethod(models.TextChoices):
    """Closed set of payment methods; cash and cod are collected by the courier."""
    CASH = 'cash', 'Cash'
    COD = 'cod', 'Cash on Delivery'
    TRANSFER = 'transfer', 'Bank Transfer'
    CARD = 'card', 'Card'
    QR = 'qr', 'QR Payment'
    ONLINE = 'online', 'Online Checkout'

    @classmethod
    def collected_on_delivery(cls):
        return {cls.CASH, cls.COD}

    @classmethod
    def normalize(cls, value):
        """
        Map free-text labels coming from couriers and storefronts onto the enum.

        Returns:
            PaymentMethod member, or None when the label is unknown
        """
        if value is None:
            return None
        label = str(value).strip().lower()
        label = PAYMENT_METHOD_ALIASES.get(label, label)
        try:
            return cls(label)
        except ValueError:
            return None


PAYMENT_METHOD_ALIASES = {
    'efectivo': 'cash',
    'contra entrega': 'cod',
    'contra_entrega': 'cod',
    'transferencia': 'transfer',
    'tarjeta': 'card',
}


class Order(models.Model):
    """
    Aggregate root of the COD pipeline.
    Status, version and stock flags are only written by the lifecycle services.
    """

    class Status(models.TextChoices):
        PENDING = 'pending', 'Pending'
        CONFIRMED = 'confirmed', 'Confirmed'
        IN_PREPARATION = 'in_preparation', 'In Preparation'
        READY_TO_SHIP = 'ready_to_ship', 'Ready to Ship'
        SHIPPED = 'shipped', 'Shipped'
        IN_TRANSIT = 'in_transit', 'In Transit'
        DELIVERED = 'delivered', 'Delivered'
        RETURNED = 'returned', 'Returned'
        CANCELLED = 'cancelled', 'Cancelled'
        REJECTED = 'rejected', 'Rejected'
        INCIDENT = 'incident', 'Incident'

    class DeliveryStatus(models.TextChoices):
        PENDING = 'pending', 'Awaiting Outcome'
        CONFIRMED = 'confirmed', 'Delivered'
        FAILED = 'failed', 'Failed'

    # Statuses in which the courier still has something to do
    AWAITING_COURIER_STATUSES = frozenset({
        Status.CONFIRMED,
        Status.IN_PREPARATION,
        Status.READY_TO_SHIP,
        Status.SHIPPED,
        Status.IN_TRANSIT,
        Status.INCIDENT,
    })

    # Goods have left the shelf; stock is committed
    STOCK_COMMITTED_STATUSES = frozenset({
        Status.READY_TO_SHIP,
        Status.SHIPPED,
        Status.IN_TRANSIT,
        Status.DELIVERED,
    })

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    # Relations
    store = models.ForeignKey(Store, on_delete=models.CASCADE, related_name='orders')
    carrier = models.ForeignKey(
        'carriers.Carrier',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='orders'
    )

    # Customer
    customer_name = models.CharField(max_length=200)
    customer_phone = models.CharField(max_length=40, blank=True)
    customer_address = models.TextField(blank=True)
    delivery_latitude = models.DecimalField(max_digits=9, decimal_places=6, null=True, blank=True)
    delivery_longitude = models.DecimalField(max_digits=9, decimal_places=6, null=True, blank=True)
    external_order_id = models.CharField(
        max_length=64,
        blank=True,
        db_index=True,
        help_text="Order id on the linked commerce platform"
    )

    # Lifecycle
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.PENDING,
        db_index=True
    )
    version = models.PositiveIntegerField(default=1)

    # Money
    payment_method = models.CharField(
        max_length=20,
        choices=PaymentMethod.choices,
        default=PaymentMethod.COD
    )
    total_price = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0.00'))]
    )
    cod_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal('0.00'),
        help_text="Amount the courier must collect"
    )
    total_discounts = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    amount_collected = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    has_amount_discrepancy = models.BooleanField(default=False)
    prepaid_method = models.CharField(max_length=20, blank=True)
    prepaid_at = models.DateTimeField(null=True, blank=True)

    # Confirmation
    is_pickup = models.BooleanField(default=False)
    confirmed_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='confirmed_orders'
    )
    confirmation_method = models.CharField(max_length=20, blank=True)

    # Courier delivery
    delivery_token = models.CharField(max_length=64, unique=True, null=True, blank=True)
    qr_code_url = models.TextField(null=True, blank=True, help_text="PNG data URL encoding the delivery link")
    delivery_status = models.CharField(
        max_length=20,
        choices=DeliveryStatus.choices,
        default=DeliveryStatus.PENDING
    )
    delivery_failure_reason = models.TextField(blank=True)
    courier_notes = models.TextField(blank=True)
    delivery_rating = models.PositiveSmallIntegerField(
        null=True,
        blank=True,
        validators=[MinValueValidator(1), MaxValueValidator(5)]
    )
    delivery_rating_comment = models.TextField(blank=True)
    rated_at = models.DateTimeField(null=True, blank=True)
    has_active_incident = models.BooleanField(default=False, db_index=True)

    # Warehouse
    printed = models.BooleanField(default=False)
    printed_at = models.DateTimeField(null=True, blank=True)
    internal_notes = models.TextField(blank=True)

    # Soft delete
    deleted_at = models.DateTimeField(null=True, blank=True, db_index=True)
    deleted_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='deleted_orders'
    )

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)
    confirmed_at = models.DateTimeField(null=True, blank=True)
    shipped_at = models.DateTimeField(null=True, blank=True)
    delivered_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ['-created_at']
        verbose_name = 'Order'
        verbose_name_plural = 'Orders'
        indexes = [
            models.Index(fields=['store', 'status', '-created_at'], name='orders_store_status_idx'),
            models.Index(fields=['store', 'deleted_at'], name='orders_store_deleted_idx'),
        ]

    def __str__(self):
        return f"Order {self.id} - {self.status}"

    @property
    def is_cod(self):
        return self.payment_method in PaymentMethod.collected_on_delivery()

    @property
    def delivery_url(self):
        from django.conf import settings
        if not self.delivery_token:
            return None
        return f"{settings.DELIVERY_BASE_URL}/{self.delivery_token}"

    def recalculate_total(self):
        """Sum of line items; discounts are applied by the caller."""
        return sum(
            (item.unit_price * item.quantity for item in self.line_items.all()),
            Decimal('0.00')
        )


class OrderLineItem(models.Model):
    """
    One product line. `stock_deducted` makes the stock commit exactly-once.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name='line_items')
    product = models.ForeignKey(
        'inventory.Product',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='order_lines'
    )
    variant = models.ForeignKey(
        'inventory.ProductVariant',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='order_lines'
    )
    product_name = models.CharField(max_length=200)
    quantity = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    unit_price = models.DecimalField(max_digits=12, decimal_places=2)
    position = models.PositiveIntegerField(default=0)
    is_upsell = models.BooleanField(default=False)
    stock_deducted = models.BooleanField(default=False)
    stock_deducted_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['position', 'created_at']

    def __str__(self):
        return f"{self.quantity} x {self.product_name}"

    @property
    def line_total(self):
        return self.unit_price * self.quantity


class OrderStatusHistory(models.Model):
    """
    Append-only audit trail of status changes.
    Rows are never updated once written.
    """

    class Source(models.TextChoices):
        DASHBOARD = 'dashboard', 'Dashboard'
        CONFIRMATION = 'confirmation', 'Confirmation'
        DELIVERY_APP = 'delivery_app', 'Courier Delivery Page'
        INCIDENT = 'incident', 'Incident Resolution'
        SYSTEM = 'system', 'System'

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name='status_history')
    store = models.ForeignKey(Store, on_delete=models.CASCADE, related_name='order_status_history')
    previous_status = models.CharField(max_length=20, blank=True)
    new_status = models.CharField(max_length=20)
    changed_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        help_text="Operator who triggered the change (null for couriers and customers)"
    )
    changed_by_label = models.CharField(max_length=40, blank=True)
    source = models.CharField(max_length=20, choices=Source.choices, default=Source.DASHBOARD)
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        ordering = ['-created_at']
        verbose_name = 'Order Status History'
        verbose_name_plural = 'Order Status History'
        indexes = [
            models.Index(fields=['order', '-created_at'], name='orders_history_order_idx'),
        ]

    def __str__(self):
        return f"{self.order_id}: {self.previous_status or '-'} -> {self.new_status}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError("Status history entries are immutable")
        super().save(*args, **kwargs)


class DeliveryAttempt(models.Model):
    """A courier's attempt to hand over the parcel."""

    class Status(models.TextChoices):
        PENDING = 'pending', 'Pending'
        DELIVERED = 'delivered', 'Delivered'
        FAILED = 'failed', 'Failed'

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name='delivery_attempts')
    carrier = models.ForeignKey(
        'carriers.Carrier',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='delivery_attempts'
    )
    attempt_number = models.PositiveIntegerField()
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING)
    payment_method = models.CharField(max_length=20, blank=True)
    failed_reason = models.TextField(blank=True)
    notes = models.TextField(blank=True)
    actual_date = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['order', 'attempt_number']
        constraints = [
            models.UniqueConstraint(fields=['order', 'attempt_number'], name='unique_delivery_attempt_number'),
        ]

    def __str__(self):
        return f"Attempt {self.attempt_number} for {self.order_id} - {self.status}"


class DeliveryIncident(models.Model):
    """
    Opened when a courier reports a failed delivery.
    While active, the ordinary courier confirm/fail endpoints are closed.
    """

    class Status(models.TextChoices):
        ACTIVE = 'active', 'Active'
        RESOLVED = 'resolved', 'Resolved'
        EXPIRED = 'expired', 'Expired'

    class Resolution(models.TextChoices):
        DELIVERED = 'delivered', 'Delivered'
        CANCELLED = 'cancelled', 'Cancelled'
        CUSTOMER_REJECTED = 'customer_rejected', 'Customer Rejected'
        OTHER = 'other', 'Other'

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name='incidents')
    store = models.ForeignKey(Store, on_delete=models.CASCADE, related_name='delivery_incidents')
    delivery_attempt = models.ForeignKey(
        DeliveryAttempt,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='incidents'
    )
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.ACTIVE, db_index=True)
    description = models.TextField(blank=True)
    current_retry_count = models.PositiveIntegerField(default=0)
    max_retry_attempts = models.PositiveIntegerField(default=3)
    resolution_type = models.CharField(max_length=20, choices=Resolution.choices, blank=True)
    resolution_notes = models.TextField(blank=True)
    resolved_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='resolved_incidents'
    )
    resolved_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['store', 'status'], name='orders_incident_store_idx'),
        ]

    def __str__(self):
        return f"Incident {self.id} for {self.order_id} - {self.status}"

    @property
    def retries_left(self):
        return max(0, self.max_retry_attempts - self.current_retry_count)


class IncidentRetryAttempt(models.Model):
    """A retry scheduled by an operator and completed by the courier."""

    class Status(models.TextChoices):
        SCHEDULED = 'scheduled', 'Scheduled'
        DELIVERED = 'delivered', 'Delivered'
        FAILED = 'failed', 'Failed'
        CANCELLED = 'cancelled', 'Cancelled'

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    incident = models.ForeignKey(DeliveryIncident, on_delete=models.CASCADE, related_name='retries')
    retry_number = models.PositiveIntegerField()
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.SCHEDULED)
    scheduled_date = models.DateField(null=True, blank=True)
    scheduled_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='scheduled_retries'
    )
    payment_method = models.CharField(max_length=20, blank=True)
    courier_notes = models.TextField(blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['incident', 'retry_number']
        constraints = [
            models.UniqueConstraint(fields=['incident', 'retry_number'], name='unique_incident_retry_number'),
        ]

    def __str__(self):
        return f"Retry {self.retry_number} of {self.incident_id} - {self.status}"
