"""
Commerce platform integration models.
"""
import uuid
from django.db import models
from apps.accounts.models import Store
from common.services.encryption import get_encryption_service


class CommercePlatformIntegration(models.Model):
    """
    A store's link to an external commerce platform (Shopify).
    The access token is stored Fernet-encrypted.
    """

    class Platform(models.TextChoices):
        SHOPIFY = 'shopify', 'Shopify'

    class Status(models.TextChoices):
        ACTIVE = 'active', 'Active'
        DISCONNECTED = 'disconnected', 'Disconnected'

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    store = models.ForeignKey(Store, on_delete=models.CASCADE, related_name='integrations')
    platform = models.CharField(max_length=20, choices=Platform.choices, default=Platform.SHOPIFY)
    shop_domain = models.CharField(max_length=255)
    access_token_encrypted = models.TextField(blank=True)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.ACTIVE, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = 'Commerce Platform Integration'
        verbose_name_plural = 'Commerce Platform Integrations'
        constraints = [
            models.UniqueConstraint(fields=['store', 'platform'], name='unique_store_platform_integration'),
        ]

    def __str__(self):
        return f"{self.get_platform_display()} ({self.shop_domain}) - {self.status}"

    def set_access_token(self, raw_token):
        self.access_token_encrypted = get_encryption_service().encrypt_secret(raw_token)

    def get_access_token(self):
        return get_encryption_service().decrypt_secret(self.access_token_encrypted)
