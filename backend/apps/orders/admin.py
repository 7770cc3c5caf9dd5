"""
Order admin configuration.
Status history is read-only; lifecycle changes go through the API services.
"""
from django.contrib import admin
from apps.orders.models import (
    Order, OrderLineItem, OrderStatusHistory, DeliveryAttempt,
    DeliveryIncident, IncidentRetryAttempt,
)


class OrderLineItemInline(admin.TabularInline):
    model = OrderLineItem
    extra = 0
    readonly_fields = ['product', 'variant', 'product_name', 'quantity', 'unit_price',
                       'is_upsell', 'stock_deducted', 'stock_deducted_at']
    can_delete = False


class OrderStatusHistoryInline(admin.TabularInline):
    model = OrderStatusHistory
    extra = 0
    readonly_fields = ['previous_status', 'new_status', 'changed_by', 'changed_by_label',
                       'source', 'notes', 'created_at']
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False


class DeliveryAttemptInline(admin.TabularInline):
    model = DeliveryAttempt
    extra = 0
    readonly_fields = ['attempt_number', 'carrier', 'status', 'payment_method',
                       'failed_reason', 'notes', 'actual_date']
    can_delete = False


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ['id', 'store', 'customer_name', 'status', 'payment_method',
                    'total_price', 'has_active_incident', 'created_at']
    list_filter = ['status', 'payment_method', 'has_active_incident', 'store', 'created_at']
    search_fields = ['id', 'customer_name', 'customer_phone', 'external_order_id']
    readonly_fields = [
        'id', 'status', 'version', 'delivery_token', 'qr_code_url', 'delivery_status',
        'delivery_rating', 'rated_at', 'has_active_incident', 'confirmed_by',
        'deleted_at', 'deleted_by', 'created_at', 'updated_at', 'confirmed_at',
        'shipped_at', 'delivered_at', 'cancelled_at'
    ]
    inlines = [OrderLineItemInline, DeliveryAttemptInline, OrderStatusHistoryInline]

    def has_add_permission(self, request):
        return False


@admin.register(OrderStatusHistory)
class OrderStatusHistoryAdmin(admin.ModelAdmin):
    list_display = ['order', 'previous_status', 'new_status', 'source', 'changed_by', 'created_at']
    list_filter = ['source', 'new_status', 'created_at']
    search_fields = ['order__id', 'changed_by__email']
    readonly_fields = ['order', 'store', 'previous_status', 'new_status', 'changed_by',
                       'changed_by_label', 'source', 'notes', 'created_at']

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


class IncidentRetryInline(admin.TabularInline):
    model = IncidentRetryAttempt
    extra = 0
    readonly_fields = ['retry_number', 'status', 'scheduled_date', 'scheduled_by',
                       'payment_method', 'courier_notes', 'completed_at']
    can_delete = False


@admin.register(DeliveryIncident)
class DeliveryIncidentAdmin(admin.ModelAdmin):
    list_display = ['id', 'order', 'store', 'status', 'current_retry_count', 'resolution_type', 'created_at']
    list_filter = ['status', 'resolution_type']
    search_fields = ['order__id']
    readonly_fields = ['order', 'store', 'delivery_attempt', 'status', 'current_retry_count',
                       'resolution_type', 'resolved_by', 'resolved_at', 'created_at']
    inlines = [IncidentRetryInline]

    def has_add_permission(self, request):
        return False
