"""
Tests for the confirmation step: carrier assignment, upsell, discount,
prepaid and token issuance in one transaction.
"""
from decimal import Decimal
from unittest import mock
from django.db import DatabaseError
from rest_framework import status
from apps.carriers.models import Carrier
from apps.inventory.models import Product
from apps.orders.models import Order, OrderStatusHistory
from apps.orders.tests.base import OrderTestCase


class ConfirmOrderAPITests(OrderTestCase):
    """POST /api/orders/<id>/confirm/"""

    def setUp(self):
        super().setUp()
        self.authenticate(self.confirmer)
        self.order = self.create_order()

    def confirm(self, order=None, **data):
        return self.client.post(self.order_url(order or self.order, 'confirm/'), data, format='json')

    def test_confirm_with_upsell_and_discount(self):
        with self.captureOnCommitCallbacks(execute=True):
            response = self.confirm(
                carrier_id=str(self.carrier.id),
                upsell={'product_id': str(self.upsell_product.id), 'quantity': 1},
                discount='5.00'
            )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        summary = response.data['summary']
        self.assertTrue(summary['upsell_applied'])
        self.assertEqual(summary['upsell_total'], Decimal('10.00'))
        self.assertEqual(summary['discount_applied'], Decimal('5.00'))
        self.assertEqual(summary['total_price'], Decimal('55.00'))
        self.assertFalse(summary['is_pickup'])

        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.Status.CONFIRMED)
        self.assertEqual(self.order.total_price, Decimal('55.00'))
        self.assertEqual(self.order.cod_amount, Decimal('55.00'))
        self.assertEqual(self.order.total_discounts, Decimal('5.00'))
        self.assertEqual(self.order.carrier, self.carrier)
        self.assertEqual(self.order.confirmed_by, self.confirmer)
        self.assertIsNotNone(self.order.confirmed_at)
        self.assertEqual(self.order.version, 2)

        self.assertIsNotNone(self.order.delivery_token)
        self.assertTrue(self.order.qr_code_url.startswith('data:image/png;base64,'))

        upsell_line = self.order.line_items.get(is_upsell=True)
        self.assertEqual(upsell_line.product, self.upsell_product)
        self.assertEqual(upsell_line.unit_price, Decimal('10.00'))

        entry = OrderStatusHistory.objects.get(order=self.order)
        self.assertEqual(entry.source, OrderStatusHistory.Source.CONFIRMATION)
        self.assertIn('upsell', entry.notes)

    def test_second_confirmation_fails(self):
        """Sequential replay. Concurrent confirms are serialized by the row lock taken in confirm()."""
        first = self.confirm(carrier_id=str(self.carrier.id))
        second = self.confirm(carrier_id=str(self.carrier.id))

        self.assertEqual(first.status_code, status.HTTP_200_OK)
        self.assertEqual(second.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(second.data['error'], 'invalid_status')
        self.assertEqual(second.data['details']['current_status'], 'confirmed')

        self.order.refresh_from_db()
        self.assertEqual(self.order.version, 2)

    def test_carrier_of_other_store_not_found(self):
        foreign = Carrier.objects.create(store=self.other_store, name='Foreign Express')

        response = self.confirm(carrier_id=str(foreign.id))

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['error'], 'carrier_not_found')
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.Status.PENDING)
        self.assertIsNone(self.order.delivery_token)

    def test_inactive_carrier_not_found(self):
        self.carrier.is_active = False
        self.carrier.save()

        response = self.confirm(carrier_id=str(self.carrier.id))

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_unknown_upsell_product_rolls_back(self):
        foreign = Product.objects.create(store=self.other_store, name='Foreign', price=Decimal('9.00'))

        response = self.confirm(
            carrier_id=str(self.carrier.id),
            upsell={'product_id': str(foreign.id)},
            discount='5.00'
        )

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['error'], 'product_not_found')
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.Status.PENDING)
        self.assertEqual(self.order.total_price, Decimal('50.00'))
        self.assertEqual(self.order.line_items.count(), 1)

    def test_upsell_without_price_rejected(self):
        self.upsell_product.price = Decimal('0.00')
        self.upsell_product.save()

        response = self.confirm(upsell={'product_id': str(self.upsell_product.id)})

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_upsell_quantity_must_be_positive(self):
        response = self.confirm(
            carrier_id=str(self.carrier.id),
            upsell={'product_id': str(self.upsell_product.id), 'quantity': 0}
        )

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.Status.PENDING)
        self.assertEqual(self.order.version, 1)
        self.assertFalse(self.order.line_items.filter(is_upsell=True).exists())

    def test_upsell_of_existing_product_bumps_line(self):
        response = self.confirm(
            carrier_id=str(self.carrier.id),
            upsell={'product_id': str(self.product.id), 'quantity': 2}
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(self.order.line_items.count(), 1)
        self.assertEqual(self.order.line_items.get().quantity, 3)
        self.order.refresh_from_db()
        self.assertEqual(self.order.total_price, Decimal('150.00'))

    def test_variant_price_used_for_upsell(self):
        variant = self.create_variant(product=self.upsell_product, title='Roja', price=Decimal('12.00'))

        response = self.confirm(
            carrier_id=str(self.carrier.id),
            upsell={'product_id': str(self.upsell_product.id), 'variant_id': str(variant.id)}
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['summary']['upsell_total'], Decimal('12.00'))
        line = self.order.line_items.get(is_upsell=True)
        self.assertEqual(line.product_name, 'Gorra - Roja')

    def test_discount_capped_at_total(self):
        response = self.confirm(carrier_id=str(self.carrier.id), discount='80.00')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['summary']['discount_applied'], Decimal('50.00'))
        self.order.refresh_from_db()
        self.assertEqual(self.order.total_price, Decimal('0.00'))
        self.assertEqual(self.order.cod_amount, Decimal('0.00'))

    def test_negative_discount_rejected(self):
        response = self.confirm(carrier_id=str(self.carrier.id), discount='-5.00')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('discount', response.data)

    def test_no_carrier_means_pickup(self):
        response = self.confirm()

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['summary']['is_pickup'])
        self.order.refresh_from_db()
        self.assertTrue(self.order.is_pickup)
        self.assertIsNone(self.order.carrier)

    def test_prepaid_courier_collects_only_upsell(self):
        response = self.confirm(
            carrier_id=str(self.carrier.id),
            mark_as_prepaid=True,
            prepaid_method='transferencia',
            upsell={'product_id': str(self.upsell_product.id)}
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_method, 'transfer')
        self.assertEqual(self.order.prepaid_method, 'transfer')
        self.assertIsNotNone(self.order.prepaid_at)
        self.assertEqual(self.order.total_price, Decimal('60.00'))
        self.assertEqual(self.order.cod_amount, Decimal('10.00'))

    def test_address_override(self):
        response = self.confirm(
            carrier_id=str(self.carrier.id),
            address='Calle Palma 456',
            latitude='-25.282200',
            longitude='-57.635100'
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.order.refresh_from_db()
        self.assertEqual(self.order.customer_address, 'Calle Palma 456')
        self.assertEqual(self.order.delivery_latitude, Decimal('-25.282200'))

    def test_half_coordinates_rejected(self):
        response = self.confirm(carrier_id=str(self.carrier.id), latitude='-25.282200')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_order_of_other_store_not_found(self):
        foreign = self.create_order(store=self.other_store)

        response = self.confirm(order=foreign)

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    @mock.patch(
        'apps.orders.services.confirmation_service.OrderStateMachine.apply',
        side_effect=DatabaseError('connection lost')
    )
    def test_database_failure_rolls_back(self, apply):
        response = self.confirm(
            carrier_id=str(self.carrier.id),
            upsell={'product_id': str(self.upsell_product.id)}
        )

        self.assertEqual(response.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertEqual(response.data['error'], 'generic_failure')
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.Status.PENDING)
        self.assertEqual(self.order.line_items.count(), 1)
