"""
Order service - reads, free-form edits and deletion.
Status never changes here; see OrderStateMachine.
"""
import logging
from decimal import Decimal
from typing import Optional
from django.db import transaction
from django.utils import timezone
from apps.orders.models import Order, OrderLineItem, PaymentMethod
from apps.orders.exceptions import (
    AlreadyDeleted, CarrierNotFound, InvalidStatus, OrderNotFound,
    ProductNotFound, VersionConflict,
)
from apps.orders.services.state_machine import OrderStateMachine
from apps.carriers.models import Carrier
from apps.inventory.models import InventoryMovement, Product, ProductVariant
from apps.inventory.services.stock_guard import StockGuard
from apps.accounts.models import User
from common.models import OperatorActionLog
from common.services.logging_service import LoggingService

logger = logging.getLogger('orders')

ZERO = Decimal('0.00')

# Plain field edits accepted by update_order
EDITABLE_FIELDS = (
    'customer_name',
    'customer_phone',
    'customer_address',
    'delivery_latitude',
    'delivery_longitude',
    'internal_notes',
)

# Changes that make an already printed shipping label wrong
LABEL_FIELDS = frozenset({
    'customer_name',
    'customer_phone',
    'customer_address',
    'carrier_id',
    'payment_method',
    'line_items',
})


class OrderService:
    """
    Main service for order edits.
    Every successful write bumps `version`.
    """

    @staticmethod
    def get_order(order_id, store, include_deleted=False) -> Order:
        queryset = Order.objects.filter(id=order_id, store=store)
        if not include_deleted:
            queryset = queryset.filter(deleted_at__isnull=True)
        order = queryset.select_related('carrier').prefetch_related('line_items').first()
        if order is None:
            raise OrderNotFound()
        return order

    @staticmethod
    def list_orders(store, status: Optional[str] = None, include_deleted=False):
        queryset = Order.objects.filter(store=store).select_related('carrier').prefetch_related('line_items')
        if not include_deleted:
            queryset = queryset.filter(deleted_at__isnull=True)
        if status:
            queryset = queryset.filter(status=status)
        return queryset

    # ==================== Edits ====================

    @classmethod
    @transaction.atomic
    def update_order(cls, order_id, store, user: User, changes: dict) -> Order:
        """
        Unconditional edit (last writer wins).
        Callers that care about concurrent edits use update_order_if_version.
        """
        order = OrderStateMachine.lock_order(order_id, store=store)
        return cls._apply_edit(order, store, user, changes)

    @classmethod
    @transaction.atomic
    def update_order_if_version(cls, order_id, store, user: User, changes: dict, expected_version: int) -> Order:
        """
        Edit conditioned on the stored version.

        Raises:
            VersionConflict: If the order changed since the caller read it;
                nothing is written
        """
        order = OrderStateMachine.lock_order(order_id, store=store)
        if order.version != expected_version:
            logger.info(
                f"Version conflict on order {order.id}: stored v{order.version}, caller v{expected_version}"
            )
            raise VersionConflict(current_version=order.version, your_version=expected_version)
        return cls._apply_edit(order, store, user, changes)

    @classmethod
    def _apply_edit(cls, order, store, user, changes):
        changed = set()

        for field in EDITABLE_FIELDS:
            if field in changes and getattr(order, field) != changes[field]:
                setattr(order, field, changes[field])
                changed.add(field)

        if 'carrier_id' in changes:
            carrier_id = changes['carrier_id']
            if carrier_id and not Carrier.objects.filter(id=carrier_id, store=store, is_active=True).exists():
                raise CarrierNotFound()
            if order.carrier_id != carrier_id:
                order.carrier_id = carrier_id
                order.is_pickup = carrier_id is None
                changed.add('carrier_id')

        if 'payment_method' in changes:
            method = PaymentMethod(changes['payment_method'])
            if order.payment_method != method:
                order.payment_method = method
                changed.add('payment_method')
                if order.is_cod:
                    order.cod_amount = order.total_price

        if 'line_items' in changes:
            cls._replace_line_items(order, store, changes['line_items'])
            changed.add('line_items')

        if not changed:
            return order

        if changed & LABEL_FIELDS and order.printed:
            order.printed = False
            order.printed_at = None
            logger.info(f"Order {order.id}: printed label invalidated by edit ({sorted(changed & LABEL_FIELDS)})")

        order.version += 1
        order.save()
        logger.info(f"Order {order.id} edited by {user.email}: {sorted(changed)} v{order.version}")
        return order

    @staticmethod
    def _replace_line_items(order, store, items):
        """
        Replace all line items and recompute totals.

        Raises:
            InvalidStatus: If stock is already committed for this order
            ProductNotFound: If a referenced product is not in the store
        """
        if order.line_items.filter(stock_deducted=True).exists():
            raise InvalidStatus('Line items cannot be edited while stock is committed for this order.')

        new_lines = []
        for position, item in enumerate(items):
            product = None
            variant = None
            if item.get('product_id'):
                product = Product.objects.filter(id=item['product_id'], store=store).first()
                if product is None:
                    raise ProductNotFound(f"Product {item['product_id']} not found.")
            if item.get('variant_id'):
                variant = ProductVariant.objects.filter(id=item['variant_id'], product=product).first()
                if variant is None:
                    raise ProductNotFound(f"Variant {item['variant_id']} not found.")

            name = item.get('product_name') or (str(variant) if variant else (product.name if product else ''))
            new_lines.append(OrderLineItem(
                order=order,
                product=product,
                variant=variant,
                product_name=name,
                quantity=item['quantity'],
                unit_price=item['unit_price'],
                position=position,
            ))

        order.line_items.all().delete()
        OrderLineItem.objects.bulk_create(new_lines)

        subtotal = order.recalculate_total()
        order.total_price = max(ZERO, subtotal - order.total_discounts)
        if order.is_cod:
            order.cod_amount = order.total_price

    # ==================== Deletion ====================

    @staticmethod
    @transaction.atomic
    def delete_order(order_id, store, user: User, request=None) -> bool:
        """
        Owners permanently delete; everyone else soft-deletes.

        Security:
        - Hard delete restores committed stock before the cascade removes
          line items, history, attempts, incidents and the delivery token
        - Both paths are written to the operator action log

        Returns:
            True if the order was hard-deleted

        Raises:
            OrderNotFound, AlreadyDeleted
        """
        if user.can_hard_delete:
            order = OrderStateMachine.lock_order(order_id, store=store, include_deleted=True)
            StockGuard.restore(order, movement_type=InventoryMovement.ORDER_DELETED, notes='Order deleted')
            snapshot = {'status': order.status, 'total_price': str(order.total_price)}
            order_pk = order.id
            order.delete()
            LoggingService.log_operator_action(
                user, OperatorActionLog.Action.HARD_DELETE_ORDER, order_pk, request=request, details=snapshot
            )
            logger.warning(f"Order {order_pk} hard-deleted by {user.email}")
            return True

        order = OrderStateMachine.lock_order(order_id, store=store, include_deleted=True)
        if order.deleted_at is not None:
            raise AlreadyDeleted()

        order.deleted_at = timezone.now()
        order.deleted_by = user
        order.version += 1
        order.save()
        LoggingService.log_operator_action(
            user, OperatorActionLog.Action.SOFT_DELETE_ORDER, order.id, request=request
        )
        logger.info(f"Order {order.id} soft-deleted by {user.email}")
        return False
