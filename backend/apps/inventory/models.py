"""
Inventory models - Products, Variants, Stock Movements.
"""
import uuid
from decimal import Decimal
from django.db import models
from django.core.validators import MinValueValidator
from apps.accounts.models import Store


class Product(models.Model):
    """
    A sellable product. Stock lives here unless the order line names a variant.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    store = models.ForeignKey(Store, on_delete=models.CASCADE, related_name='products')
    name = models.CharField(max_length=200)
    sku = models.CharField(max_length=80, blank=True, db_index=True)
    price = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0.00'))]
    )
    stock = models.IntegerField(default=0)
    is_active = models.BooleanField(default=True, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['name']
        indexes = [
            models.Index(fields=['store', 'is_active'], name='inventory_prod_store_idx'),
        ]

    def __str__(self):
        return self.name


class ProductVariant(models.Model):
    """
    A variant (size, color...) of a product with its own stock counter.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    product = models.ForeignKey(Product, on_delete=models.CASCADE, related_name='variants')
    title = models.CharField(max_length=120)
    sku = models.CharField(max_length=80, blank=True)
    price = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    stock = models.IntegerField(default=0)
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ['product', 'title']

    def __str__(self):
        return f"{self.product.name} - {self.title}"


class InventoryMovement(models.Model):
    """
    Append-only ledger of stock changes caused by order status changes.
    """
    ORDER_READY = 'order_ready'
    ORDER_CANCELLED = 'order_cancelled'
    ORDER_DELETED = 'order_deleted'

    MOVEMENT_TYPE_CHOICES = [
        (ORDER_READY, 'Order Ready To Ship'),
        (ORDER_CANCELLED, 'Order Cancelled / Reverted'),
        (ORDER_DELETED, 'Order Deleted'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    store = models.ForeignKey(Store, on_delete=models.CASCADE, related_name='inventory_movements')
    product = models.ForeignKey(Product, on_delete=models.CASCADE, related_name='movements')
    variant = models.ForeignKey(
        ProductVariant,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='movements'
    )
    # Plain id so the ledger survives an order hard delete
    order_id = models.UUIDField(null=True, blank=True, db_index=True)
    movement_type = models.CharField(max_length=20, choices=MOVEMENT_TYPE_CHOICES)
    quantity = models.IntegerField(help_text="Signed change applied to stock")
    stock_before = models.IntegerField()
    stock_after = models.IntegerField()
    notes = models.CharField(max_length=255, blank=True)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['product', 'created_at'], name='inventory_mov_prod_idx'),
        ]

    def __str__(self):
        return f"{self.movement_type} {self.quantity:+d} {self.product.name}"
