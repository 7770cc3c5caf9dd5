"""
Tests for the stock guard: shortage reports and exactly-once commit/restore.
"""
from decimal import Decimal
from apps.inventory.models import Product, InventoryMovement
from apps.inventory.services.stock_guard import StockGuard
from apps.orders.exceptions import InsufficientStock
from apps.orders.models import Order, OrderLineItem
from apps.orders.tests.base import OrderTestCase


class StockGuardCheckTests(OrderTestCase):

    def test_no_shortage(self):
        order = self.create_order(lines=[(self.product, 3)])
        self.assertEqual(StockGuard.check(order), [])

    def test_shortage_report(self):
        order = self.create_order(lines=[(self.product, 12)])

        shortages = StockGuard.check(order)

        self.assertEqual(shortages, [{
            'item': 'Camiseta',
            'required': 12,
            'available': 10,
            'shortage': 2,
        }])

    def test_negative_stock_counts_as_zero(self):
        Product.objects.filter(id=self.product.id).update(stock=-3)
        order = self.create_order(lines=[(self.product, 1)])

        shortages = StockGuard.check(order)

        self.assertEqual(shortages[0]['available'], 0)
        self.assertEqual(shortages[0]['shortage'], 1)

    def test_variant_label_and_stock(self):
        variant = self.create_variant(title='XL', stock=1)
        order = self.create_order(lines=[(self.product, 2, variant)])

        shortages = StockGuard.check(order)

        self.assertEqual(shortages[0]['item'], 'Camiseta - XL')
        self.assertEqual(shortages[0]['available'], 1)

    def test_free_text_lines_ignored(self):
        order = self.create_order(lines=[(self.product, 1)])
        OrderLineItem.objects.create(
            order=order,
            product_name='Envio',
            quantity=5,
            unit_price=Decimal('15.00'),
            position=1
        )

        self.assertEqual(StockGuard.check(order), [])

    def test_committed_lines_not_checked_again(self):
        order = self.create_order(lines=[(self.product, 10)])
        StockGuard.commit(order, from_status='confirmed')

        self.assertEqual(StockGuard.check(order), [])


class StockGuardMovementTests(OrderTestCase):

    def test_commit_then_restore(self):
        order = self.create_order(status=Order.Status.READY_TO_SHIP, lines=[(self.product, 3)])

        StockGuard.commit(order, from_status='confirmed')
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, 7)

        movement = InventoryMovement.objects.get(order_id=order.id)
        self.assertEqual(movement.quantity, -3)
        self.assertEqual(movement.stock_before, 10)
        self.assertEqual(movement.stock_after, 7)

        restored = StockGuard.restore(order, notes='cancelled')
        self.assertEqual(restored, 3)
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, 10)

    def test_commit_twice_deducts_once(self):
        order = self.create_order(lines=[(self.product, 2)])

        StockGuard.commit(order)
        StockGuard.commit(order)

        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, 8)
        self.assertEqual(InventoryMovement.objects.filter(order_id=order.id).count(), 1)

    def test_restore_without_commit_is_noop(self):
        order = self.create_order(lines=[(self.product, 2)])

        self.assertEqual(StockGuard.restore(order), 0)
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, 10)

    def test_shortage_aborts_every_line(self):
        order = self.create_order(lines=[(self.product, 2), (self.upsell_product, 11)])

        with self.assertRaises(InsufficientStock) as ctx:
            StockGuard.commit(order)

        self.assertEqual(ctx.exception.shortages[0]['item'], 'Gorra')
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, 10)
        self.assertFalse(order.line_items.filter(stock_deducted=True).exists())
