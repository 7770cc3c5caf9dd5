"""
Order confirmation coordinator.
Turns a pending order into a confirmed, carrier-assigned, final-priced order
in one transaction: carrier, upsell, discount, token and version together.
"""
import logging
from decimal import Decimal
from typing import Optional
from django.db import transaction, DatabaseError
from django.utils import timezone
from apps.orders.models import Order, OrderLineItem, OrderStatusHistory, PaymentMethod
from apps.orders.exceptions import (
    OrderError, InvalidStatus, CarrierNotFound, ProductNotFound, ConfirmationFailed,
)
from apps.orders.services.state_machine import OrderStateMachine
from apps.carriers.models import Carrier
from apps.inventory.models import Product, ProductVariant
from apps.accounts.models import User

logger = logging.getLogger('orders')

ZERO = Decimal('0.00')


class ConfirmationService:
    """
    Single entry point for confirming orders.
    Two concurrent confirmations of the same order cannot both succeed.
    """

    @classmethod
    def confirm(
        cls,
        order_id,
        store,
        user: User,
        carrier_id=None,
        address: Optional[str] = None,
        latitude=None,
        longitude=None,
        upsell: Optional[dict] = None,
        discount: Optional[Decimal] = None,
        mark_as_prepaid: bool = False,
        prepaid_method: Optional[str] = None,
    ):
        """
        Confirm a pending order.

        Security:
        - Re-checks `pending` under a row lock
        - Carrier and upsell product must belong to the user's store

        Args:
            order_id: Order primary key
            store: Acting user's store
            user: Confirming operator
            carrier_id: Carrier to assign; None makes it a pickup order
            address, latitude, longitude: Optional delivery override
            upsell: {'product_id', 'quantity', 'variant_id'?}
            discount: Amount off the total, floored at zero
            mark_as_prepaid: Customer already paid the base order
            prepaid_method: How the customer paid (defaults to transfer)

        Returns:
            (order, summary) where summary describes the applied upsell/discount

        Raises:
            OrderNotFound, InvalidStatus, CarrierNotFound, ProductNotFound,
            ConfirmationFailed
        """
        try:
            with transaction.atomic():
                return cls._confirm_locked(
                    order_id, store, user, carrier_id, address, latitude, longitude,
                    upsell, discount, mark_as_prepaid, prepaid_method,
                )
        except OrderError:
            raise
        except DatabaseError as e:
            logger.exception(f"Confirmation of order {order_id} failed")
            raise ConfirmationFailed() from e

    @classmethod
    def _confirm_locked(cls, order_id, store, user, carrier_id, address, latitude, longitude,
                        upsell, discount, mark_as_prepaid, prepaid_method):
        order = OrderStateMachine.lock_order(order_id, store=store)

        if order.status != Order.Status.PENDING:
            raise InvalidStatus(
                f'Order was already processed (status: {order.status}).',
                details={'current_status': order.status},
            )

        # Carrier
        carrier = None
        if carrier_id:
            carrier = Carrier.objects.filter(id=carrier_id, store=store, is_active=True).first()
            if carrier is None:
                raise CarrierNotFound()

        summary = {
            'upsell_applied': False,
            'upsell_total': ZERO,
            'discount_applied': ZERO,
            'is_pickup': carrier is None,
        }

        # Prepaid: the customer owes nothing for the base order
        if mark_as_prepaid:
            method = PaymentMethod.normalize(prepaid_method) or PaymentMethod.TRANSFER
            if method in PaymentMethod.collected_on_delivery():
                method = PaymentMethod.TRANSFER
            order.payment_method = method
            order.prepaid_method = method
            order.prepaid_at = timezone.now()
            order.cod_amount = ZERO

        # Upsell
        if upsell and upsell.get('product_id'):
            upsell_total = cls._apply_upsell(order, store, upsell)
            order.total_price = order.total_price + upsell_total
            if order.is_cod:
                order.cod_amount = order.total_price
            else:
                # Prepaid: courier collects only the add-on
                order.cod_amount = order.cod_amount + upsell_total
            summary['upsell_applied'] = True
            summary['upsell_total'] = upsell_total

        # Discount
        if discount and discount > 0:
            effective = min(Decimal(discount), order.total_price)
            order.total_price = max(ZERO, order.total_price - effective)
            if order.is_cod:
                order.cod_amount = order.total_price
            elif summary['upsell_applied']:
                order.cod_amount = max(ZERO, order.cod_amount - effective)
            order.total_discounts = order.total_discounts + effective
            summary['discount_applied'] = effective

        # Assignment and address override
        order.carrier = carrier
        order.is_pickup = carrier is None
        if address:
            order.customer_address = address
        if latitude is not None and longitude is not None:
            order.delivery_latitude = latitude
            order.delivery_longitude = longitude

        order.confirmed_by = user
        order.confirmation_method = 'dashboard'

        # Always a fresh credential on confirmation
        if order.delivery_token:
            order.delivery_token = None

        order = OrderStateMachine.apply(
            order,
            Order.Status.CONFIRMED,
            actor=user,
            source=OrderStatusHistory.Source.CONFIRMATION,
            notes=cls._history_note(summary),
        )

        logger.info(
            f"Order {order.id} confirmed by {user.email} "
            f"(carrier={carrier.id if carrier else 'pickup'}, total={order.total_price})"
        )
        summary['total_price'] = order.total_price
        summary['cod_amount'] = order.cod_amount
        return order, summary

    @staticmethod
    def _apply_upsell(order, store, upsell):
        """
        Add the upsell product to the order (or bump its existing line).

        Returns:
            Amount added to the total

        Raises:
            ProductNotFound: Unknown product, or one without a sellable price
        """
        product = Product.objects.filter(id=upsell['product_id'], store=store, is_active=True).first()
        if product is None:
            raise ProductNotFound()

        variant = None
        if upsell.get('variant_id'):
            variant = ProductVariant.objects.filter(id=upsell['variant_id'], product=product, is_active=True).first()
            if variant is None:
                raise ProductNotFound('Upsell variant not found.')

        unit_price = variant.price if variant is not None and variant.price is not None else product.price
        if not unit_price or unit_price <= 0:
            raise ProductNotFound('Upsell product has no price.')

        quantity = upsell.get('quantity', 1)

        existing = order.line_items.filter(product=product, variant=variant).first()
        if existing is not None:
            existing.quantity += quantity
            existing.save(update_fields=['quantity'])
        else:
            last_position = order.line_items.count()
            OrderLineItem.objects.create(
                order=order,
                product=product,
                variant=variant,
                product_name=str(variant) if variant else product.name,
                quantity=quantity,
                unit_price=unit_price,
                position=last_position,
                is_upsell=True,
            )

        return unit_price * quantity

    @staticmethod
    def _history_note(summary):
        parts = ['Confirmed from dashboard']
        if summary['is_pickup']:
            parts.append('store pickup')
        if summary['upsell_applied']:
            parts.append(f"upsell +{summary['upsell_total']}")
        if summary['discount_applied']:
            parts.append(f"discount -{summary['discount_applied']}")
        return ', '.join(parts)
