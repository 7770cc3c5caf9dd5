import uuid
from django.db import models
from django.contrib.auth.models import AbstractBaseUser, PermissionsMixin
from django.utils import timezone
from .managers import UserManager


# ============================
# Store (tenant)
# ============================

class Store(models.Model):
    """
    A merchant store. Orders, carriers and products all belong to one store.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=120)
    currency = models.CharField(max_length=3, default='PYG')
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return self.name


# ============================
# User Model
# ============================

class User(AbstractBaseUser, PermissionsMixin):
    """
    Dashboard operator with email-based authentication.
    The role decides which lifecycle overrides the user may perform.
    """

    class Role(models.TextChoices):
        OWNER = "OWNER", "Owner"
        ADMIN = "ADMIN", "Admin"
        LOGISTICS = "LOGISTICS", "Logistics"
        CONFIRMER = "CONFIRMER", "Confirmer"
        ACCOUNTANT = "ACCOUNTANT", "Accountant"

    # Highest privilege first
    PRIVILEGE_ORDER = [
        Role.OWNER,
        Role.ADMIN,
        Role.LOGISTICS,
        Role.CONFIRMER,
        Role.ACCOUNTANT,
    ]

    # Core fields
    email = models.EmailField(unique=True, db_index=True)
    role = models.CharField(max_length=20, choices=Role.choices, default=Role.CONFIRMER, db_index=True)
    store = models.ForeignKey(
        Store,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='members'
    )

    # Account status
    is_active = models.BooleanField(default=True)
    is_staff = models.BooleanField(default=False)

    # Timestamps
    date_joined = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    USERNAME_FIELD = "email"
    REQUIRED_FIELDS = []

    objects = UserManager()

    class Meta:
        indexes = [
            models.Index(fields=['email'], name='accounts_user_email_idx'),
            models.Index(fields=['store', 'role'], name='accounts_user_store_role_idx'),
        ]

    def __str__(self):
        return self.email

    @property
    def privilege_rank(self):
        """0 is the highest privilege."""
        try:
            return self.PRIVILEGE_ORDER.index(self.role)
        except ValueError:
            return len(self.PRIVILEGE_ORDER)

    @property
    def can_force_transitions(self):
        """Only the two highest roles may bypass the transition table."""
        return self.privilege_rank < 2

    @property
    def can_hard_delete(self):
        return self.role == self.Role.OWNER
