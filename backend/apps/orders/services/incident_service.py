"""
Delivery incident service.
A failed delivery opens an incident; operators schedule retries, the courier
completes them through the delivery link, and operators may resolve by hand.
"""
import logging
from django.conf import settings
from django.db import transaction
from django.utils import timezone
from apps.orders.models import (
    Order, OrderStatusHistory, DeliveryAttempt, DeliveryIncident, IncidentRetryAttempt,
)
from apps.orders.exceptions import (
    IncidentClosed, IncidentNotFound, InvalidStatus,
)
from apps.orders.services.state_machine import OrderStateMachine
from apps.orders.services.courier_delivery_service import (
    CourierDeliveryService, reconcile_payment, record_attempt, COURIER,
)

logger = logging.getLogger('orders')

OPEN_STATUSES = (DeliveryIncident.Status.ACTIVE, DeliveryIncident.Status.EXPIRED)


class IncidentService:

    @staticmethod
    def open(order, attempt=None, description=''):
        """Open an incident for a locked order and close the ordinary courier endpoints."""
        incident = DeliveryIncident.objects.create(
            order=order,
            store_id=order.store_id,
            delivery_attempt=attempt,
            description=description or '',
            max_retry_attempts=settings.INCIDENT_MAX_RETRY_ATTEMPTS,
        )
        order.has_active_incident = True
        order.save(update_fields=['has_active_incident', 'updated_at'])
        logger.info(f"Incident {incident.id} opened for order {order.id}")
        return incident

    @staticmethod
    def lock_incident(incident_id, store) -> DeliveryIncident:
        incident = (
            DeliveryIncident.objects.select_for_update()
            .filter(id=incident_id, store=store)
            .first()
        )
        if incident is None:
            raise IncidentNotFound()
        return incident

    @staticmethod
    def close_for_order(order, resolution_type=DeliveryIncident.Resolution.CANCELLED,
                        resolution_notes='', resolved_by=None):
        """Resolve any open incident of a locked order and cancel its pending retries."""
        now = timezone.now()
        incidents = DeliveryIncident.objects.select_for_update().filter(order=order, status__in=OPEN_STATUSES)
        for incident in incidents:
            incident.retries.filter(status=IncidentRetryAttempt.Status.SCHEDULED).update(
                status=IncidentRetryAttempt.Status.CANCELLED
            )
            incident.status = DeliveryIncident.Status.RESOLVED
            incident.resolution_type = resolution_type
            incident.resolution_notes = resolution_notes or ''
            incident.resolved_by = resolved_by
            incident.resolved_at = now
            incident.save()
        if order.has_active_incident:
            order.has_active_incident = False
            order.save(update_fields=['has_active_incident', 'updated_at'])

    @classmethod
    @transaction.atomic
    def schedule_retry(cls, incident_id, store, user, scheduled_date=None, notes=''):
        """
        Operator schedules the next delivery retry.

        Raises:
            IncidentNotFound, IncidentClosed, InvalidStatus
        """
        incident = cls.lock_incident(incident_id, store)
        if incident.status != DeliveryIncident.Status.ACTIVE:
            raise IncidentClosed()
        if incident.current_retry_count >= incident.max_retry_attempts:
            raise IncidentClosed('No retries left for this incident.')
        if incident.retries.filter(status=IncidentRetryAttempt.Status.SCHEDULED).exists():
            raise InvalidStatus('A retry is already scheduled for this incident.')

        retry = IncidentRetryAttempt.objects.create(
            incident=incident,
            retry_number=incident.retries.count() + 1,
            scheduled_date=scheduled_date,
            scheduled_by=user,
            courier_notes=notes or '',
        )
        logger.info(f"Retry {retry.retry_number} scheduled for incident {incident.id}")
        return retry

    @classmethod
    @transaction.atomic
    def complete_retry(cls, token, outcome, payment_method=None, has_discrepancy=False,
                       amount_collected=None, notes=''):
        """
        Courier completes the scheduled retry through the delivery link.

        Args:
            outcome: 'delivered' or 'failed'

        Returns:
            (order, incident, payment_info or None)

        Raises:
            DeliveryTokenNotFound, IncidentNotFound, InvalidStatus
        """
        order = CourierDeliveryService.get_by_token(token, lock=True)
        incident = (
            DeliveryIncident.objects.select_for_update()
            .filter(order=order, status=DeliveryIncident.Status.ACTIVE)
            .first()
        )
        if incident is None:
            raise IncidentNotFound('This order has no active incident.')

        retry = incident.retries.filter(status=IncidentRetryAttempt.Status.SCHEDULED).order_by('retry_number').first()
        if retry is None:
            raise InvalidStatus('No retry is scheduled for this incident.')

        now = timezone.now()
        retry.courier_notes = notes or retry.courier_notes
        retry.completed_at = now
        payment_info = None

        if outcome == IncidentRetryAttempt.Status.DELIVERED:
            payment_info = reconcile_payment(order, payment_method, has_discrepancy, amount_collected)
            retry.status = IncidentRetryAttempt.Status.DELIVERED
            retry.payment_method = order.payment_method
            retry.save()

            incident.status = DeliveryIncident.Status.RESOLVED
            incident.resolution_type = DeliveryIncident.Resolution.DELIVERED
            incident.resolved_at = now
            incident.save()

            order.has_active_incident = False
            order.delivery_status = Order.DeliveryStatus.CONFIRMED
            order.delivery_failure_reason = ''
            record_attempt(order, DeliveryAttempt.Status.DELIVERED, payment_method=order.payment_method, notes=notes)
            order = OrderStateMachine.apply(
                order,
                Order.Status.DELIVERED,
                actor_label=COURIER,
                source=OrderStatusHistory.Source.INCIDENT,
                notes=f"Delivered on retry {retry.retry_number}",
            )
        else:
            retry.status = IncidentRetryAttempt.Status.FAILED
            retry.save()

            incident.current_retry_count += 1
            if incident.current_retry_count >= incident.max_retry_attempts:
                # Out of retries: an operator has to resolve it by hand
                incident.status = DeliveryIncident.Status.EXPIRED
            incident.save()

            record_attempt(order, DeliveryAttempt.Status.FAILED, failed_reason=notes, notes=notes)
            order.version += 1
            order.save()

        logger.info(f"Retry {retry.retry_number} of incident {incident.id}: {retry.status}")
        return order, incident, payment_info

    @classmethod
    @transaction.atomic
    def resolve(cls, incident_id, store, user, resolution_type, notes='', payment_method=None):
        """
        Operator closes an incident by hand.

        delivered -> order delivered (payment reconciled)
        cancelled -> order cancelled (stock restored)
        customer_rejected -> order rejected (stock restored)
        other -> order stays where it is

        Raises:
            IncidentNotFound, IncidentClosed, InvalidStatus, TransitionNotAllowed
        """
        incident = cls.lock_incident(incident_id, store)
        if incident.status not in OPEN_STATUSES:
            raise IncidentClosed()

        order = OrderStateMachine.lock_order(incident.order_id, store=store)
        resolution = DeliveryIncident.Resolution(resolution_type)

        if resolution == DeliveryIncident.Resolution.DELIVERED and not payment_method:
            raise InvalidStatus('A payment method is required to resolve as delivered.')

        cls.close_for_order(order, resolution_type=resolution, resolution_notes=notes, resolved_by=user)

        targets = {
            DeliveryIncident.Resolution.DELIVERED: Order.Status.DELIVERED,
            DeliveryIncident.Resolution.CANCELLED: Order.Status.CANCELLED,
            DeliveryIncident.Resolution.CUSTOMER_REJECTED: Order.Status.REJECTED,
        }
        history_notes = f"Incident resolved: {resolution.label}" + (f" - {notes}" if notes else '')

        if resolution == DeliveryIncident.Resolution.DELIVERED:
            reconcile_payment(order, payment_method)
            order.delivery_status = Order.DeliveryStatus.CONFIRMED
            order.delivery_failure_reason = ''

        target = targets.get(resolution)
        if target is not None:
            order = OrderStateMachine.apply(
                order,
                target,
                actor=user,
                source=OrderStatusHistory.Source.INCIDENT,
                notes=history_notes,
                sync_reason='customer' if resolution == DeliveryIncident.Resolution.CANCELLED else None,
            )
        else:
            order.version += 1
            order.save()

        logger.info(f"Incident {incident.id} resolved as {resolution.value} by {user.email}")
        incident.refresh_from_db()
        return incident, order
