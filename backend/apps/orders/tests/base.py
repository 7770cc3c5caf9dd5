"""
Base test classes and fixtures for order lifecycle tests.
"""
from decimal import Decimal
from django.test import TestCase
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient
from apps.accounts.models import Store
from apps.carriers.models import Carrier
from apps.inventory.models import Product, ProductVariant
from apps.orders.models import Order, OrderLineItem, PaymentMethod
from apps.orders.services.delivery_token_service import DeliveryTokenService

User = get_user_model()


class OrderTestCase(TestCase):
    """Base test case with a store, one user per role and a few products."""

    def setUp(self):
        """Set up test fixtures."""
        self.client = APIClient()

        self.store = Store.objects.create(name='Tienda Test')
        self.other_store = Store.objects.create(name='Other Store')

        self.owner = self.create_user('owner@example.com', User.Role.OWNER)
        self.admin = self.create_user('admin@example.com', User.Role.ADMIN)
        self.logistics = self.create_user('logistics@example.com', User.Role.LOGISTICS)
        self.confirmer = self.create_user('confirmer@example.com', User.Role.CONFIRMER)

        self.carrier = Carrier.objects.create(store=self.store, name='Moto Express', phone='+595981000000')

        self.product = Product.objects.create(
            store=self.store,
            name='Camiseta',
            sku='CAM-01',
            price=Decimal('50.00'),
            stock=10
        )
        self.upsell_product = Product.objects.create(
            store=self.store,
            name='Gorra',
            sku='GOR-01',
            price=Decimal('10.00'),
            stock=10
        )

    def create_user(self, email, role, store=None):
        return User.objects.create_user(
            email=email,
            password='TestPass123!',
            role=role,
            store=store or self.store
        )

    def authenticate(self, user=None):
        """Authenticate a user for API requests."""
        self.client.force_authenticate(user=user or self.owner)

    def create_variant(self, product=None, title='XL', stock=5, price=None):
        return ProductVariant.objects.create(
            product=product or self.product,
            title=title,
            stock=stock,
            price=price
        )

    def create_order(self, status=Order.Status.PENDING, lines=None, store=None,
                     payment_method=PaymentMethod.COD, with_token=None, **fields):
        """
        Create an order with line items.

        Args:
            lines: list of (product, quantity[, variant]); defaults to one Camiseta
            with_token: issue a delivery token (defaults to True for statuses awaiting a courier)
        """
        if lines is None:
            lines = [(self.product, 1)]

        total = sum((line[0].price * line[1] for line in lines), Decimal('0.00'))
        is_cod = payment_method in PaymentMethod.collected_on_delivery()
        fields.setdefault('total_price', total)
        fields.setdefault('cod_amount', total if is_cod else Decimal('0.00'))
        order = Order.objects.create(
            store=store or self.store,
            customer_name='Juan Perez',
            customer_phone='+595981111111',
            customer_address='Av. Mcal. Lopez 123',
            status=status,
            payment_method=payment_method,
            **fields
        )

        for position, line in enumerate(lines):
            product, quantity = line[0], line[1]
            variant = line[2] if len(line) > 2 else None
            OrderLineItem.objects.create(
                order=order,
                product=product,
                variant=variant,
                product_name=product.name,
                quantity=quantity,
                unit_price=product.price,
                position=position
            )

        if with_token is None:
            with_token = status in Order.AWAITING_COURIER_STATUSES or status == Order.Status.DELIVERED
        if with_token:
            order.delivery_token = DeliveryTokenService.generate_token()
            order.save(update_fields=['delivery_token'])

        return order

    def order_url(self, order, suffix=''):
        return f'/api/orders/{order.id}/{suffix}'

    def delivery_url(self, token, suffix=''):
        return f'/api/orders/delivery/{token}/{suffix}'
