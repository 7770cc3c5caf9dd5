"""
Order serializers.
Handles API input/output for the order lifecycle, courier delivery and incidents.
"""
from rest_framework import serializers
from apps.orders.models import (
    Order, OrderLineItem, OrderStatusHistory, PaymentMethod,
    DeliveryIncident, IncidentRetryAttempt,
)


class PaymentMethodField(serializers.CharField):
    """Accepts the enum values plus the storefront/courier aliases."""

    def to_internal_value(self, data):
        value = super().to_internal_value(data)
        method = PaymentMethod.normalize(value)
        if method is None:
            raise serializers.ValidationError(f'"{value}" is not a valid payment method.')
        return method.value


# ==================== Output ====================

class OrderLineItemSerializer(serializers.ModelSerializer):
    line_total = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)

    class Meta:
        model = OrderLineItem
        fields = [
            'id', 'product', 'variant', 'product_name', 'quantity',
            'unit_price', 'line_total', 'is_upsell', 'stock_deducted'
        ]
        read_only_fields = fields


class OrderStatusHistorySerializer(serializers.ModelSerializer):
    """Serializer for the status audit trail."""
    changed_by_email = serializers.EmailField(source='changed_by.email', read_only=True, default=None)

    class Meta:
        model = OrderStatusHistory
        fields = [
            'id', 'previous_status', 'new_status', 'changed_by_email',
            'changed_by_label', 'source', 'notes', 'created_at'
        ]
        read_only_fields = fields


class OrderListSerializer(serializers.ModelSerializer):
    """Serializer for order list view."""
    carrier_name = serializers.CharField(source='carrier.name', read_only=True, default=None)

    class Meta:
        model = Order
        fields = [
            'id', 'customer_name', 'customer_phone', 'carrier_name', 'status',
            'payment_method', 'total_price', 'cod_amount', 'is_pickup',
            'has_active_incident', 'printed', 'version', 'created_at'
        ]
        read_only_fields = fields


class OrderDetailSerializer(serializers.ModelSerializer):
    """Serializer for detailed order view."""
    carrier_name = serializers.CharField(source='carrier.name', read_only=True, default=None)
    line_items = OrderLineItemSerializer(many=True, read_only=True)
    delivery_url = serializers.CharField(read_only=True)

    class Meta:
        model = Order
        fields = [
            'id', 'external_order_id', 'customer_name', 'customer_phone',
            'customer_address', 'delivery_latitude', 'delivery_longitude',
            'carrier', 'carrier_name', 'is_pickup', 'status', 'version',
            'payment_method', 'total_price', 'cod_amount', 'total_discounts',
            'amount_collected', 'has_amount_discrepancy', 'prepaid_method', 'prepaid_at',
            'confirmation_method', 'delivery_token', 'delivery_url', 'qr_code_url',
            'delivery_status', 'delivery_failure_reason', 'courier_notes',
            'delivery_rating', 'delivery_rating_comment', 'rated_at',
            'has_active_incident', 'printed', 'printed_at', 'internal_notes',
            'deleted_at', 'created_at', 'updated_at', 'confirmed_at',
            'shipped_at', 'delivered_at', 'cancelled_at', 'line_items'
        ]
        read_only_fields = fields


class IncidentRetrySerializer(serializers.ModelSerializer):

    class Meta:
        model = IncidentRetryAttempt
        fields = [
            'id', 'retry_number', 'status', 'scheduled_date',
            'payment_method', 'courier_notes', 'completed_at', 'created_at'
        ]
        read_only_fields = fields


class DeliveryIncidentSerializer(serializers.ModelSerializer):
    order_status = serializers.CharField(source='order.status', read_only=True)
    customer_name = serializers.CharField(source='order.customer_name', read_only=True)
    retries = IncidentRetrySerializer(many=True, read_only=True)

    class Meta:
        model = DeliveryIncident
        fields = [
            'id', 'order', 'order_status', 'customer_name', 'status', 'description',
            'current_retry_count', 'max_retry_attempts', 'retries_left',
            'resolution_type', 'resolution_notes', 'resolved_at', 'created_at', 'retries'
        ]
        read_only_fields = fields


# ==================== Dashboard input ====================

class StatusChangeSerializer(serializers.Serializer):
    """Serializer for operator status changes."""
    to_status = serializers.CharField(max_length=20)
    force = serializers.BooleanField(default=False)
    notes = serializers.CharField(max_length=1000, required=False, allow_blank=True, default='')


class UpsellSerializer(serializers.Serializer):
    product_id = serializers.UUIDField()
    variant_id = serializers.UUIDField(required=False, allow_null=True)
    quantity = serializers.IntegerField(required=False, default=1, min_value=1)


class ConfirmOrderSerializer(serializers.Serializer):
    """Serializer for the confirmation step."""
    carrier_id = serializers.UUIDField(required=False, allow_null=True)
    address = serializers.CharField(max_length=1000, required=False, allow_blank=True, allow_null=True)
    latitude = serializers.DecimalField(max_digits=9, decimal_places=6, required=False, allow_null=True)
    longitude = serializers.DecimalField(max_digits=9, decimal_places=6, required=False, allow_null=True)
    upsell = UpsellSerializer(required=False, allow_null=True)
    discount = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, allow_null=True)
    mark_as_prepaid = serializers.BooleanField(default=False)
    prepaid_method = PaymentMethodField(required=False, allow_null=True)

    def validate_discount(self, value):
        if value is not None and value < 0:
            raise serializers.ValidationError("Discount cannot be negative")
        return value

    def validate(self, data):
        latitude = data.get('latitude')
        longitude = data.get('longitude')
        if (latitude is None) != (longitude is None):
            raise serializers.ValidationError("latitude and longitude must be sent together")
        return data


class LineItemInputSerializer(serializers.Serializer):
    product_id = serializers.UUIDField(required=False, allow_null=True)
    variant_id = serializers.UUIDField(required=False, allow_null=True)
    product_name = serializers.CharField(max_length=200, required=False, allow_blank=True)
    quantity = serializers.IntegerField(min_value=1, max_value=1000)
    unit_price = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0)

    def validate(self, data):
        if not data.get('product_id') and not data.get('product_name'):
            raise serializers.ValidationError("Either product_id or product_name is required")
        return data


class OrderEditSerializer(serializers.Serializer):
    """
    Serializer for order edits.
    Sending `version` turns the edit into a conditional write.
    """
    version = serializers.IntegerField(required=False, min_value=1)
    customer_name = serializers.CharField(max_length=200, required=False)
    customer_phone = serializers.CharField(max_length=40, required=False, allow_blank=True)
    customer_address = serializers.CharField(required=False, allow_blank=True)
    delivery_latitude = serializers.DecimalField(max_digits=9, decimal_places=6, required=False, allow_null=True)
    delivery_longitude = serializers.DecimalField(max_digits=9, decimal_places=6, required=False, allow_null=True)
    internal_notes = serializers.CharField(required=False, allow_blank=True)
    carrier_id = serializers.UUIDField(required=False, allow_null=True)
    payment_method = PaymentMethodField(required=False)
    line_items = LineItemInputSerializer(many=True, required=False, allow_empty=False)


# ==================== Courier / customer input ====================

class DeliveryConfirmSerializer(serializers.Serializer):
    payment_method = PaymentMethodField()
    has_amount_discrepancy = serializers.BooleanField(default=False)
    amount_collected = serializers.DecimalField(
        max_digits=12, decimal_places=2, min_value=0, required=False, allow_null=True
    )
    notes = serializers.CharField(max_length=1000, required=False, allow_blank=True, default='')

    def validate(self, data):
        if data['has_amount_discrepancy'] and data.get('amount_collected') is None:
            raise serializers.ValidationError("amount_collected is required when reporting a discrepancy")
        return data


class DeliveryFailSerializer(serializers.Serializer):
    delivery_failure_reason = serializers.CharField(max_length=500)
    failure_notes = serializers.CharField(max_length=1000, required=False, allow_blank=True, default='')


class RateDeliverySerializer(serializers.Serializer):
    rating = serializers.IntegerField(min_value=1, max_value=5)
    comment = serializers.CharField(max_length=1000, required=False, allow_blank=True, default='')


class CancelDeliverySerializer(serializers.Serializer):
    notes = serializers.CharField(max_length=1000, required=False, allow_blank=True, default='')


class RetryCompleteSerializer(serializers.Serializer):
    """Courier outcome for a scheduled retry."""
    outcome = serializers.ChoiceField(choices=[
        IncidentRetryAttempt.Status.DELIVERED,
        IncidentRetryAttempt.Status.FAILED,
    ])
    payment_method = PaymentMethodField(required=False, allow_null=True)
    has_amount_discrepancy = serializers.BooleanField(default=False)
    amount_collected = serializers.DecimalField(
        max_digits=12, decimal_places=2, min_value=0, required=False, allow_null=True
    )
    notes = serializers.CharField(max_length=1000, required=False, allow_blank=True, default='')

    def validate(self, data):
        if data['outcome'] == IncidentRetryAttempt.Status.DELIVERED and not data.get('payment_method'):
            raise serializers.ValidationError("payment_method is required for a delivered retry")
        return data


# ==================== Incident input ====================

class ScheduleRetrySerializer(serializers.Serializer):
    scheduled_date = serializers.DateField(required=False, allow_null=True)
    notes = serializers.CharField(max_length=1000, required=False, allow_blank=True, default='')


class ResolveIncidentSerializer(serializers.Serializer):
    resolution_type = serializers.ChoiceField(choices=DeliveryIncident.Resolution.choices)
    notes = serializers.CharField(max_length=1000, required=False, allow_blank=True, default='')
    payment_method = PaymentMethodField(required=False, allow_null=True)

    def validate(self, data):
        if data['resolution_type'] == DeliveryIncident.Resolution.DELIVERED and not data.get('payment_method'):
            raise serializers.ValidationError("payment_method is required to resolve as delivered")
        return data
