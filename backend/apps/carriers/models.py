"""
Carrier (courier company) models.
"""
import uuid
from django.db import models
from apps.accounts.models import Store


class Carrier(models.Model):
    """
    A courier company a store hands orders to.
    Orders confirmed without a carrier are pickup orders.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    store = models.ForeignKey(Store, on_delete=models.CASCADE, related_name='carriers')
    name = models.CharField(max_length=120)
    phone = models.CharField(max_length=40, blank=True)
    is_active = models.BooleanField(default=True, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['name']
        indexes = [
            models.Index(fields=['store', 'is_active'], name='carriers_store_active_idx'),
        ]

    def __str__(self):
        return self.name
