"""
Courier delivery service (public, token-authenticated surface).
The delivery token is the only credential checked here; lookups are always
by token, except rating and cancel which the customer reaches by order id.
"""
import logging
from decimal import Decimal
from django.db import transaction
from django.db.models import Max
from django.utils import timezone
from apps.orders.models import (
    Order, OrderStatusHistory, DeliveryAttempt, PaymentMethod,
)
from apps.orders.exceptions import (
    ActiveIncident, AlreadyRated, DeliveryNotConfirmed, DeliveryNotFailed,
    DeliveryTokenNotFound, InvalidStatus,
)
from apps.orders.services.state_machine import OrderStateMachine
from apps.orders.services.delivery_token_service import DeliveryTokenService

logger = logging.getLogger('orders')

ZERO = Decimal('0.00')
COURIER = 'courier'
CUSTOMER = 'customer'


def reconcile_payment(order, payment_method, has_discrepancy=False, amount_collected=None):
    """
    Record what the courier collected.

    Cash/COD: the expected COD amount unless a discrepancy with an explicit
    amount is reported. Prepaid methods: nothing collected, whatever the input.

    Returns:
        payment_info dict {is_cod, amount_collected, has_discrepancy}
    """
    method = PaymentMethod.normalize(payment_method)
    is_cod = method in PaymentMethod.collected_on_delivery()

    if is_cod:
        if has_discrepancy and amount_collected is not None:
            order.amount_collected = Decimal(amount_collected)
            order.has_amount_discrepancy = True
        else:
            order.amount_collected = order.cod_amount or order.total_price or ZERO
            order.has_amount_discrepancy = False
    else:
        order.amount_collected = ZERO
        order.has_amount_discrepancy = False
        order.prepaid_method = method or ''
        if order.prepaid_at is None:
            order.prepaid_at = timezone.now()

    if method is not None:
        order.payment_method = method

    return {
        'is_cod': is_cod,
        'amount_collected': order.amount_collected,
        'has_discrepancy': order.has_amount_discrepancy,
    }


def record_attempt(order, status, payment_method='', failed_reason='', notes=''):
    """Append the next numbered delivery attempt for the order."""
    last = order.delivery_attempts.aggregate(last=Max('attempt_number'))['last'] or 0
    return DeliveryAttempt.objects.create(
        order=order,
        carrier_id=order.carrier_id,
        attempt_number=last + 1,
        status=status,
        payment_method=payment_method or '',
        failed_reason=failed_reason or '',
        notes=notes or '',
        actual_date=timezone.now(),
    )


class CourierDeliveryService:
    """Courier and customer actions on the public delivery page."""

    @staticmethod
    def get_by_token(token, lock=False) -> Order:
        """
        Unknown tokens are logged by the public views, outside the
        transaction that would otherwise roll the security event back.

        Raises:
            DeliveryTokenNotFound: Unknown, invalidated or deleted-order token
        """
        queryset = Order.objects.select_related('store', 'carrier')
        if lock:
            queryset = Order.objects.select_for_update()
        order = queryset.filter(delivery_token=token, deleted_at__isnull=True).first() if token else None
        if order is None:
            raise DeliveryTokenNotFound()
        return order

    @classmethod
    def delivery_view(cls, token) -> dict:
        """What the courier (or customer) sees when opening the delivery link."""
        order = cls.get_by_token(token)
        store = order.store
        base = {
            'id': str(order.id),
            'store_name': store.name,
            'currency': store.currency,
            'carrier_name': order.carrier.name if order.carrier else None,
        }

        if order.delivery_status == Order.DeliveryStatus.CONFIRMED or order.status == Order.Status.DELIVERED:
            return {
                'already_delivered': True,
                'delivered_at': order.delivered_at,
                'already_rated': order.delivery_rating is not None,
                'rating': order.delivery_rating,
                'data': base,
            }

        if order.delivery_status == Order.DeliveryStatus.FAILED and order.status != Order.Status.INCIDENT:
            return {
                'delivery_failed': True,
                'failure_reason': order.delivery_failure_reason,
                'data': base,
            }

        is_prepaid = not order.is_cod or bool(order.prepaid_method)
        base.update({
            'customer_name': order.customer_name,
            'customer_phone': order.customer_phone,
            'customer_address': order.customer_address,
            'latitude': order.delivery_latitude,
            'longitude': order.delivery_longitude,
            'total_price': order.total_price,
            # Prepaid orders: the courier must only collect the add-on, if any
            'cod_amount': order.cod_amount if not is_prepaid or order.cod_amount > 0 else ZERO,
            'payment_method': order.payment_method,
            'is_prepaid': is_prepaid,
            'status': order.status,
            'delivery_status': order.delivery_status,
            'has_active_incident': order.has_active_incident,
            'line_items': [
                {'product_name': item.product_name, 'quantity': item.quantity}
                for item in order.line_items.all()
            ],
        })
        return {'already_delivered': False, 'delivery_failed': False, 'data': base}

    @staticmethod
    def _ensure_open(order):
        if order.has_active_incident:
            raise ActiveIncident()
        if order.delivery_status == Order.DeliveryStatus.CONFIRMED:
            raise InvalidStatus('This order was already delivered.')

    @classmethod
    @transaction.atomic
    def confirm_delivery(cls, token, payment_method, has_discrepancy=False,
                         amount_collected=None, notes=''):
        """
        Courier reports a successful delivery.

        Returns:
            (order, payment_info)

        Raises:
            DeliveryTokenNotFound, ActiveIncident, InvalidStatus, TransitionNotAllowed
        """
        order = cls.get_by_token(token, lock=True)
        cls._ensure_open(order)
        previous_status = order.status

        payment_info = reconcile_payment(order, payment_method, has_discrepancy, amount_collected)
        order.delivery_status = Order.DeliveryStatus.CONFIRMED
        if notes:
            order.courier_notes = notes

        record_attempt(order, DeliveryAttempt.Status.DELIVERED, payment_method=order.payment_method, notes=notes)

        history_notes = f"Delivery confirmed by courier - payment: {order.payment_method}"
        if payment_info['has_discrepancy']:
            history_notes += f" - collected {order.amount_collected} (expected {order.cod_amount or order.total_price})"
        elif not payment_info['is_cod']:
            history_notes += " - prepaid, no cash collected"

        order = OrderStateMachine.apply(
            order,
            Order.Status.DELIVERED,
            actor_label=COURIER,
            source=OrderStatusHistory.Source.DELIVERY_APP,
            notes=history_notes,
        )
        logger.info(f"Order {order.id} delivered ({previous_status} -> delivered), collected {order.amount_collected}")
        return order, payment_info

    @classmethod
    @transaction.atomic
    def fail_delivery(cls, token, reason, notes=''):
        """
        Courier reports a failed delivery. The order goes to `incident` for
        human triage and an incident is opened; it is never auto-cancelled.
        """
        from apps.orders.services.incident_service import IncidentService

        order = cls.get_by_token(token, lock=True)
        cls._ensure_open(order)

        order.delivery_status = Order.DeliveryStatus.FAILED
        order.delivery_failure_reason = reason
        if notes:
            order.courier_notes = notes

        attempt = record_attempt(order, DeliveryAttempt.Status.FAILED, failed_reason=reason, notes=notes)

        order = OrderStateMachine.apply(
            order,
            Order.Status.INCIDENT,
            actor_label=COURIER,
            source=OrderStatusHistory.Source.DELIVERY_APP,
            notes=f"Delivery failed: {reason}",
        )
        IncidentService.open(order, attempt, description=reason)
        return order

    @staticmethod
    @transaction.atomic
    def rate_delivery(order_id, rating, comment=''):
        """
        Customer rates a confirmed delivery. Rating closes the delivery page.

        Raises:
            OrderNotFound, DeliveryNotConfirmed, AlreadyRated
        """
        order = OrderStateMachine.lock_order(order_id)

        if order.delivery_status != Order.DeliveryStatus.CONFIRMED:
            raise DeliveryNotConfirmed()
        if order.delivery_rating is not None:
            raise AlreadyRated()

        order.delivery_rating = rating
        order.delivery_rating_comment = comment or ''
        order.rated_at = timezone.now()
        DeliveryTokenService.invalidate(order)
        order.version += 1
        order.save()

        logger.info(f"Order {order.id} rated {rating}/5; delivery token invalidated")
        return order

    @classmethod
    @transaction.atomic
    def cancel_after_failure(cls, order_id, notes=''):
        """
        Customer or courier cancels an order whose delivery failed.

        Raises:
            OrderNotFound, DeliveryNotFailed
        """
        from apps.orders.services.incident_service import IncidentService

        order = OrderStateMachine.lock_order(order_id)

        if order.delivery_status != Order.DeliveryStatus.FAILED:
            raise DeliveryNotFailed()

        IncidentService.close_for_order(order, resolution_notes='Cancelled after failed delivery')

        order = OrderStateMachine.apply(
            order,
            Order.Status.CANCELLED,
            actor_label=CUSTOMER,
            source=OrderStatusHistory.Source.DELIVERY_APP,
            notes=notes or 'Order cancelled after failed delivery',
        )
        return order
