"""
Admin panel configuration for security logging models.
"""
from django.contrib import admin
from django.utils.html import format_html
from common.models import SecurityEventLog, OperatorActionLog


@admin.register(SecurityEventLog)
class SecurityEventLogAdmin(admin.ModelAdmin):
    """Admin for security events"""

    list_display = ['severity_badge', 'event_display', 'user_email', 'ip_address', 'timestamp']
    list_filter = ['event_type', 'severity', 'timestamp']
    search_fields = ['user__email', 'ip_address']
    readonly_fields = ['user', 'event_type', 'severity', 'details', 'ip_address',
                       'user_agent', 'timestamp']
    date_hierarchy = 'timestamp'

    fieldsets = (
        ('Event Information', {
            'fields': ('user', 'event_type', 'severity')
        }),
        ('Details', {
            'fields': ('details',)
        }),
        ('Request Information', {
            'fields': ('ip_address', 'user_agent'),
            'classes': ('collapse',)
        }),
        ('Timestamp', {
            'fields': ('timestamp',)
        }),
    )

    def severity_badge(self, obj):
        colors = {
            'LOW': '#28A745',
            'MEDIUM': '#FFC107',
            'HIGH': '#FF6B6B',
            'CRITICAL': '#DC3545'
        }
        color = colors.get(obj.severity, '#6C757D')
        return format_html(
            '<span style="background-color: {}; color: white; padding: 3px 8px; border-radius: 3px; font-weight: bold;">{}</span>',
            color,
            obj.severity
        )
    severity_badge.short_description = 'Severity'
    severity_badge.admin_order_field = 'severity'

    def event_display(self, obj):
        return obj.get_event_type_display()
    event_display.short_description = 'Event'
    event_display.admin_order_field = 'event_type'

    def user_email(self, obj):
        return obj.user.email if obj.user else 'Anonymous'
    user_email.short_description = 'User'
    user_email.admin_order_field = 'user__email'

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return request.user.is_superuser


@admin.register(OperatorActionLog)
class OperatorActionLogAdmin(admin.ModelAdmin):
    """Admin for privileged operator actions"""

    list_display = ['operator_email', 'action', 'order_reference', 'ip_address', 'timestamp']
    list_filter = ['action', 'timestamp']
    search_fields = ['operator__email', 'order_reference']
    readonly_fields = ['operator', 'action', 'order_reference', 'details', 'ip_address', 'timestamp']
    date_hierarchy = 'timestamp'

    def operator_email(self, obj):
        return obj.operator.email
    operator_email.short_description = 'Operator'
    operator_email.admin_order_field = 'operator__email'

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return request.user.is_superuser
