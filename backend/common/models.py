"""
Security and audit logging models for order lifecycle overrides and public delivery access.
"""
from django.db import models
from django.conf import settings


class SecurityEventLog(models.Model):
    """Log security-relevant events for monitoring"""

    class EventType(models.TextChoices):
        FORCE_NOT_ALLOWED = 'FORCE_NOT_ALLOWED', 'Force Transition Denied'
        INVALID_DELIVERY_TOKEN = 'INVALID_DELIVERY_TOKEN', 'Invalid Delivery Token'
        CROSS_STORE_ACCESS = 'CROSS_STORE_ACCESS', 'Cross-Store Access Attempt'
        RATE_LIMIT_EXCEEDED = 'RATE_LIMIT_EXCEEDED', 'Rate Limit Exceeded'

    class Severity(models.TextChoices):
        LOW = 'LOW', 'Low'
        MEDIUM = 'MEDIUM', 'Medium'
        HIGH = 'HIGH', 'High'
        CRITICAL = 'CRITICAL', 'Critical'

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        related_name='security_events',
        null=True,
        blank=True,
        help_text="User involved (null for anonymous couriers)"
    )
    event_type = models.CharField(
        max_length=30,
        choices=EventType.choices,
        db_index=True
    )
    severity = models.CharField(
        max_length=10,
        choices=Severity.choices,
        default=Severity.MEDIUM,
        db_index=True
    )
    details = models.JSONField(default=dict)
    ip_address = models.GenericIPAddressField(
        null=True,
        blank=True
    )
    user_agent = models.TextField(
        null=True,
        blank=True
    )
    timestamp = models.DateTimeField(
        auto_now_add=True,
        db_index=True
    )

    class Meta:
        db_table = 'security_event_log'
        verbose_name = 'Security Event Log'
        verbose_name_plural = 'Security Event Logs'
        indexes = [
            models.Index(fields=['event_type', 'severity'], name='security_ev_type_sev_idx'),
            models.Index(fields=['ip_address', 'timestamp'], name='security_ev_ip_ts_idx'),
        ]
        ordering = ['-timestamp']

    def __str__(self):
        user_str = self.user.email if self.user else "Anonymous"
        return f"[{self.severity}] {self.get_event_type_display()} - {user_str} @ {self.timestamp}"


class OperatorActionLog(models.Model):
    """Log privileged operator actions on orders"""

    class Action(models.TextChoices):
        FORCE_TRANSITION = 'FORCE_TRANSITION', 'Forced Status Transition'
        HARD_DELETE_ORDER = 'HARD_DELETE_ORDER', 'Hard Delete Order'
        SOFT_DELETE_ORDER = 'SOFT_DELETE_ORDER', 'Soft Delete Order'

    operator = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='operator_actions',
    )
    action = models.CharField(
        max_length=30,
        choices=Action.choices,
        db_index=True
    )
    order_reference = models.CharField(
        max_length=64,
        help_text="Order id (kept as text so hard deletes stay traceable)"
    )
    details = models.JSONField(default=dict)
    ip_address = models.GenericIPAddressField(
        null=True,
        blank=True
    )
    timestamp = models.DateTimeField(
        auto_now_add=True,
        db_index=True
    )

    class Meta:
        db_table = 'operator_action_log'
        verbose_name = 'Operator Action Log'
        verbose_name_plural = 'Operator Action Logs'
        indexes = [
            models.Index(fields=['operator', 'timestamp'], name='operator_ac_op_ts_idx'),
            models.Index(fields=['order_reference'], name='operator_ac_order_idx'),
        ]
        ordering = ['-timestamp']

    def __str__(self):
        return f"{self.operator.email} {self.get_action_display()} {self.order_reference} @ {self.timestamp}"
