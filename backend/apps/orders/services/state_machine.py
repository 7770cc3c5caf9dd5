"""
Order state machine service.
Handles ALL status changes: rule table, stock guard, timestamps, delivery
token and version bump, then schedules history and external sync.
"""
import logging
from typing import Optional
from django.db import transaction
from django.utils import timezone
from apps.orders.models import Order, OrderStatusHistory, DeliveryIncident
from apps.orders.exceptions import (
    InvalidStatus, TransitionNotAllowed, ForceNotAllowed, OrderNotFound,
)
from apps.orders.services import transition_rules
from apps.orders.services.delivery_token_service import DeliveryTokenService
from apps.orders.services.history import StatusHistoryRecorder
from apps.orders.services.background import on_commit_in_background
from apps.inventory.models import InventoryMovement
from apps.inventory.services.stock_guard import StockGuard
from apps.integrations.services.external_sync import ExternalSyncAdapter
from apps.accounts.models import User
from common.models import OperatorActionLog
from common.services.logging_service import LoggingService

logger = logging.getLogger('orders')

S = Order.Status

# Status -> timestamp stamped the first time the status is entered
STATUS_TIMESTAMPS = {
    S.CONFIRMED: 'confirmed_at',
    S.SHIPPED: 'shipped_at',
    S.IN_TRANSIT: 'shipped_at',
    S.DELIVERED: 'delivered_at',
    S.CANCELLED: 'cancelled_at',
    S.REJECTED: 'cancelled_at',
}

REACTIVATABLE_STATUSES = frozenset({S.CANCELLED, S.REJECTED})

# Entering any of these returns whatever stock is still committed
STOCK_RELEASING_STATUSES = frozenset({
    S.PENDING, S.CONFIRMED, S.IN_PREPARATION, S.CANCELLED, S.REJECTED,
})

# Leaving `incident` from the dashboard closes the open incident
INCIDENT_EXIT_RESOLUTIONS = {
    S.DELIVERED: DeliveryIncident.Resolution.DELIVERED,
    S.CANCELLED: DeliveryIncident.Resolution.CANCELLED,
    S.RETURNED: DeliveryIncident.Resolution.CANCELLED,
    S.REJECTED: DeliveryIncident.Resolution.CUSTOMER_REJECTED,
}


class OrderStateMachine:
    """
    Order state machine with table-driven transition rules.
    Prevents invalid status changes and race conditions.
    """

    @staticmethod
    def lock_order(order_id, store=None, include_deleted=False) -> Order:
        """
        Fetch an order row with a write lock. Must run inside transaction.atomic.

        Raises:
            OrderNotFound: If the order does not exist in the store
        """
        queryset = Order.objects.select_for_update().filter(id=order_id)
        if store is not None:
            queryset = queryset.filter(store=store)
        if not include_deleted:
            queryset = queryset.filter(deleted_at__isnull=True)
        order = queryset.first()
        if order is None:
            raise OrderNotFound()
        return order

    @classmethod
    def change_status(
        cls,
        order_id,
        store,
        to_status: str,
        user: User,
        force: bool = False,
        notes: str = "",
        request=None
    ) -> Order:
        """
        Operator-driven status change.

        Security:
        - Force is only honored for owners and admins; anyone else gets a 403
          and a security event, never a silent fallback to the unforced path
        - The order row is locked before the rule check

        Args:
            order_id: Order primary key
            store: Store of the acting user (orders of other stores are 404)
            to_status: Requested status value
            user: Acting operator
            force: Bypass the rule table
            notes: Free-text note for the history trail
            request: HTTP request, for security logging

        Returns:
            Updated order

        Raises:
            InvalidStatus, ForceNotAllowed, OrderNotFound,
            TransitionNotAllowed, InsufficientStock
        """
        target = transition_rules.parse_status(to_status)
        if target is None:
            raise InvalidStatus(f'"{to_status}" is not a valid order status.')

        if force and not user.can_force_transitions:
            current = Order.objects.filter(id=order_id, store=store).values_list('status', flat=True).first()
            LoggingService.log_force_denied(user, order_id, current, target.value, request=request)
            raise ForceNotAllowed()

        with transaction.atomic():
            order = cls.lock_order(order_id, store=store)
            order = cls.apply(
                order,
                target,
                actor=user,
                source=OrderStatusHistory.Source.DASHBOARD,
                notes=notes,
                force=force,
                can_force=user.can_force_transitions,
            )

        if force:
            LoggingService.log_operator_action(
                user,
                OperatorActionLog.Action.FORCE_TRANSITION,
                order.id,
                request=request,
                details={'to_status': target.value},
            )
        return order

    @classmethod
    def apply(
        cls,
        order: Order,
        to_status,
        actor: Optional[User] = None,
        actor_label: str = "",
        source=OrderStatusHistory.Source.DASHBOARD,
        notes: str = "",
        force: bool = False,
        can_force: bool = False,
        sync_reason: Optional[str] = None,
    ) -> Order:
        """
        Move a locked order to a new status and persist it.
        Callers may set other fields on `order` beforehand; they are saved together.

        Same-status requests return the order untouched (no version bump).
        """
        from_status = S(order.status)
        target = S(to_status)

        decision = transition_rules.evaluate(from_status, target, can_force=can_force, force_requested=force)
        if from_status == target:
            return order

        if not decision.allowed:
            raise TransitionNotAllowed(
                decision.reason or f'Cannot change status from {from_status.value} to {target.value}.',
                from_status=from_status.value,
                to_status=target.value,
                suggestion=decision.suggestion,
            )

        # Stock: restore before guard so a single change never does both.
        # Restore only touches lines still flagged as deducted.
        if decision.requires_stock_restore or target in STOCK_RELEASING_STATUSES:
            StockGuard.restore(
                order,
                movement_type=InventoryMovement.ORDER_CANCELLED,
                notes=f"{from_status.value} -> {target.value}",
            )
        if transition_rules.is_stock_guarded(from_status, target):
            StockGuard.commit(order, from_status=from_status.value)

        now = timezone.now()
        previous_token = order.delivery_token

        if from_status == S.INCIDENT:
            cls._close_incident(order, target, actor)

        reactivated = from_status in REACTIVATABLE_STATUSES and target not in REACTIVATABLE_STATUSES
        redispatched = from_status == S.INCIDENT and target in Order.AWAITING_COURIER_STATUSES
        if reactivated or redispatched:
            # Undo of a cancellation or failed delivery: reopen the delivery window
            order.delivery_status = Order.DeliveryStatus.PENDING
            order.delivery_failure_reason = ''
            order.cancelled_at = None

        order.status = target
        field = STATUS_TIMESTAMPS.get(target)
        if field and getattr(order, field) is None:
            setattr(order, field, now)

        DeliveryTokenService.sync_with_status(order, previous_token=previous_token)

        order.version += 1
        order.save()

        logger.info(
            f"Order {order.id}: {from_status.value} -> {target.value}"
            f"{' (forced)' if decision.forced else ''} v{order.version}"
        )

        StatusHistoryRecorder.record_on_commit(
            order,
            from_status.value,
            target.value,
            changed_by=actor,
            changed_by_label=actor_label,
            source=source,
            notes=notes,
        )
        cls._schedule_external_sync(order, from_status.value, target.value, sync_reason)
        return order

    @staticmethod
    def _close_incident(order, target, actor=None):
        from apps.orders.services.incident_service import IncidentService

        IncidentService.close_for_order(
            order,
            resolution_type=INCIDENT_EXIT_RESOLUTIONS.get(target, DeliveryIncident.Resolution.OTHER),
            resolution_notes=f"Auto-resolved: order status changed from incident to {target.value}",
            resolved_by=actor,
        )

    @staticmethod
    def _schedule_external_sync(order, previous_status, new_status, reason=None):
        if not order.external_order_id:
            return

        on_commit_in_background(
            lambda: ExternalSyncAdapter.on_status_changed(order, previous_status, new_status, reason=reason),
            label=f"sync-{order.id}",
        )
