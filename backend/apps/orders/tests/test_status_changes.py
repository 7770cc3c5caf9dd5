"""
Tests for operator status changes: rule table, stock guard, force,
history, delivery token and external sync.
"""
from unittest import mock
from rest_framework import status
from apps.inventory.models import InventoryMovement
from apps.inventory.services.stock_guard import StockGuard
from apps.orders.models import Order, OrderStatusHistory, DeliveryIncident, IncidentRetryAttempt
from apps.orders.services.courier_delivery_service import CourierDeliveryService
from apps.orders.services.incident_service import IncidentService
from apps.orders.services.state_machine import OrderStateMachine
from apps.orders.tests.base import OrderTestCase
from common.models import SecurityEventLog, OperatorActionLog


class StatusChangeAPITests(OrderTestCase):
    """PATCH /api/orders/<id>/status/"""

    def change(self, order, to_status, **extra):
        return self.client.patch(
            self.order_url(order, 'status/'),
            {'to_status': to_status, **extra},
            format='json'
        )

    def test_requires_authentication(self):
        order = self.create_order(status=Order.Status.CONFIRMED)
        response = self.change(order, 'in_preparation')
        self.assertIn(response.status_code, [status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN])

    def test_forward_transition(self):
        self.authenticate(self.logistics)
        order = self.create_order(status=Order.Status.CONFIRMED)

        response = self.change(order, 'in_preparation')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'in_preparation')
        self.assertEqual(response.data['version'], 2)

    def test_same_status_is_noop(self):
        self.authenticate(self.logistics)
        order = self.create_order(status=Order.Status.SHIPPED)

        response = self.change(order, 'shipped')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        order.refresh_from_db()
        self.assertEqual(order.version, 1)
        self.assertFalse(OrderStatusHistory.objects.filter(order=order).exists())

    def test_unknown_status(self):
        self.authenticate()
        order = self.create_order()

        response = self.change(order, 'teleported')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error'], 'invalid_status')

    def test_delivered_to_pending_rejected_with_suggestion(self):
        self.authenticate(self.logistics)
        order = self.create_order(status=Order.Status.DELIVERED)

        response = self.change(order, 'pending')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error'], 'transition_not_allowed')
        self.assertIn('returned', response.data['details']['suggestion'])
        order.refresh_from_db()
        self.assertEqual(order.status, Order.Status.DELIVERED)
        self.assertEqual(order.version, 1)

    def test_order_of_other_store_is_404(self):
        self.authenticate()
        order = self.create_order(store=self.other_store)

        response = self.change(order, 'confirmed')

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['error'], 'order_not_found')

    def test_soft_deleted_order_is_404(self):
        self.authenticate()
        order = self.create_order()
        Order.objects.filter(id=order.id).update(deleted_at=order.created_at)

        response = self.change(order, 'confirmed')

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)


class StockGuardTransitionTests(OrderTestCase):

    def test_ready_to_ship_deducts_stock_once(self):
        self.authenticate(self.logistics)
        order = self.create_order(status=Order.Status.IN_PREPARATION, lines=[(self.product, 2)])

        response = self.client.patch(self.order_url(order, 'status/'), {'to_status': 'ready_to_ship'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, 8)
        self.assertTrue(order.line_items.get().stock_deducted)

        movement = InventoryMovement.objects.get(order_id=order.id)
        self.assertEqual(movement.movement_type, InventoryMovement.ORDER_READY)
        self.assertEqual(movement.quantity, -2)
        self.assertEqual(movement.stock_before, 10)
        self.assertEqual(movement.stock_after, 8)

        # Forward inside the committed window: no second decrement
        self.client.patch(self.order_url(order, 'status/'), {'to_status': 'shipped'}, format='json')
        self.client.patch(self.order_url(order, 'status/'), {'to_status': 'ready_to_ship'}, format='json')
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, 8)
        self.assertEqual(InventoryMovement.objects.filter(order_id=order.id).count(), 1)

    def test_insufficient_stock_blocks_dispatch(self):
        self.authenticate(self.logistics)
        self.product.stock = 1
        self.product.save()
        order = self.create_order(status=Order.Status.CONFIRMED, lines=[(self.product, 2)])

        response = self.client.patch(self.order_url(order, 'status/'), {'to_status': 'ready_to_ship'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error'], 'insufficient_stock')
        shortage = response.data['details'][0]
        self.assertEqual(shortage['item'], 'Camiseta')
        self.assertEqual(shortage['required'], 2)
        self.assertEqual(shortage['available'], 1)
        self.assertEqual(shortage['shortage'], 1)

        order.refresh_from_db()
        self.product.refresh_from_db()
        self.assertEqual(order.status, Order.Status.CONFIRMED)
        self.assertEqual(order.version, 1)
        self.assertEqual(self.product.stock, 1)

    def test_no_partial_decrement_when_one_line_is_short(self):
        self.authenticate(self.logistics)
        self.upsell_product.stock = 0
        self.upsell_product.save()
        order = self.create_order(
            status=Order.Status.CONFIRMED,
            lines=[(self.product, 1), (self.upsell_product, 1)]
        )

        response = self.client.patch(self.order_url(order, 'status/'), {'to_status': 'ready_to_ship'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(len(response.data['details']), 1)
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, 10)
        self.assertFalse(order.line_items.filter(stock_deducted=True).exists())

    def test_lines_of_same_product_are_summed(self):
        self.product.stock = 3
        self.product.save()
        order = self.create_order(status=Order.Status.CONFIRMED, lines=[(self.product, 2), (self.product, 2)])

        shortages = StockGuard.check(order)

        self.assertEqual(shortages, [{'item': 'Camiseta', 'required': 4, 'available': 3, 'shortage': 1}])

    def test_variant_stock_takes_precedence(self):
        self.authenticate(self.logistics)
        variant = self.create_variant(stock=1)
        order = self.create_order(status=Order.Status.CONFIRMED, lines=[(self.product, 1, variant)])

        response = self.client.patch(self.order_url(order, 'status/'), {'to_status': 'ready_to_ship'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        variant.refresh_from_db()
        self.product.refresh_from_db()
        self.assertEqual(variant.stock, 0)
        self.assertEqual(self.product.stock, 10)

    def test_cancel_after_dispatch_restores_stock(self):
        self.authenticate(self.logistics)
        order = self.create_order(status=Order.Status.CONFIRMED, lines=[(self.product, 3)])

        self.client.patch(self.order_url(order, 'status/'), {'to_status': 'ready_to_ship'}, format='json')
        response = self.client.patch(self.order_url(order, 'status/'), {'to_status': 'cancelled'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, 10)
        self.assertFalse(order.line_items.get().stock_deducted)

        restore = InventoryMovement.objects.get(order_id=order.id, movement_type=InventoryMovement.ORDER_CANCELLED)
        self.assertEqual(restore.quantity, 3)

        # Cancelling again from cancelled is a no-op; a second restore would overshoot
        StockGuard.restore(order)
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, 10)

    def test_reactivated_order_commits_stock_again(self):
        self.authenticate(self.logistics)
        order = self.create_order(status=Order.Status.CONFIRMED, lines=[(self.product, 2)])

        for target in ('ready_to_ship', 'cancelled', 'ready_to_ship'):
            response = self.client.patch(self.order_url(order, 'status/'), {'to_status': target}, format='json')
            self.assertEqual(response.status_code, status.HTTP_200_OK)

        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, 8)
        order.refresh_from_db()
        self.assertIsNone(order.cancelled_at)


class ForceTransitionTests(OrderTestCase):

    def setUp(self):
        super().setUp()
        self.order = self.create_order(status=Order.Status.DELIVERED, lines=[(self.product, 2)])
        StockGuard.commit(self.order, from_status='shipped')
        self.product.refresh_from_db()

    def test_force_denied_for_logistics(self):
        self.authenticate(self.logistics)

        response = self.client.patch(
            self.order_url(self.order, 'status/'),
            {'to_status': 'pending', 'force': True},
            format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.data['error'], 'force_not_allowed')
        event = SecurityEventLog.objects.get(event_type=SecurityEventLog.EventType.FORCE_NOT_ALLOWED)
        self.assertEqual(event.user, self.logistics)
        self.assertEqual(event.details['to_status'], 'pending')
        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.Status.DELIVERED)

    def test_force_by_admin_bypasses_table_and_restores_stock(self):
        self.authenticate(self.admin)
        self.assertEqual(self.product.stock, 8)

        response = self.client.patch(
            self.order_url(self.order, 'status/'),
            {'to_status': 'pending', 'force': True, 'notes': 'Wrong order marked delivered'},
            format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'pending')
        self.assertIsNone(response.data['delivery_token'])
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, 10)
        self.assertTrue(
            OperatorActionLog.objects.filter(
                operator=self.admin,
                action=OperatorActionLog.Action.FORCE_TRANSITION,
                order_reference=str(self.order.id)
            ).exists()
        )


class TokenAndTimestampTests(OrderTestCase):

    def test_token_survives_forward_moves_and_clears_on_cancel(self):
        order = self.create_order(status=Order.Status.CONFIRMED)
        token = order.delivery_token

        with self.captureOnCommitCallbacks(execute=True):
            order = OrderStateMachine.change_status(order.id, self.store, 'in_preparation', self.logistics)
        self.assertEqual(order.delivery_token, token)

        with self.captureOnCommitCallbacks(execute=True):
            order = OrderStateMachine.change_status(order.id, self.store, 'cancelled', self.logistics)
        self.assertIsNone(order.delivery_token)
        self.assertIsNone(order.qr_code_url)
        self.assertIsNotNone(order.cancelled_at)

    def test_reentering_delivery_window_issues_fresh_token(self):
        order = self.create_order(status=Order.Status.CONFIRMED)
        old_token = order.delivery_token

        OrderStateMachine.change_status(order.id, self.store, 'pending', self.logistics)
        with self.captureOnCommitCallbacks(execute=True):
            order = OrderStateMachine.change_status(order.id, self.store, 'confirmed', self.logistics)

        self.assertIsNotNone(order.delivery_token)
        self.assertNotEqual(order.delivery_token, old_token)
        order.refresh_from_db()
        self.assertTrue(order.qr_code_url.startswith('data:image/png;base64,'))

    def test_shipped_at_is_stamped_once(self):
        order = self.create_order(status=Order.Status.READY_TO_SHIP)
        order = OrderStateMachine.change_status(order.id, self.store, 'shipped', self.logistics)
        shipped_at = order.shipped_at
        self.assertIsNotNone(shipped_at)

        order = OrderStateMachine.change_status(order.id, self.store, 'in_transit', self.logistics)
        self.assertEqual(order.shipped_at, shipped_at)


class HistoryAndSyncTests(OrderTestCase):

    def test_history_written_after_commit(self):
        order = self.create_order(status=Order.Status.CONFIRMED)

        with self.captureOnCommitCallbacks(execute=True) as callbacks:
            OrderStateMachine.change_status(order.id, self.store, 'in_preparation', self.logistics, notes='Packing')

        self.assertTrue(callbacks)
        entry = OrderStatusHistory.objects.get(order=order)
        self.assertEqual(entry.previous_status, 'confirmed')
        self.assertEqual(entry.new_status, 'in_preparation')
        self.assertEqual(entry.changed_by, self.logistics)
        self.assertEqual(entry.source, OrderStatusHistory.Source.DASHBOARD)
        self.assertEqual(entry.notes, 'Packing')

    def test_history_entries_are_immutable(self):
        order = self.create_order(status=Order.Status.CONFIRMED)
        with self.captureOnCommitCallbacks(execute=True):
            OrderStateMachine.change_status(order.id, self.store, 'in_preparation', self.logistics)

        entry = OrderStatusHistory.objects.get(order=order)
        entry.notes = 'rewritten'
        with self.assertRaises(ValueError):
            entry.save()

    def test_history_failure_does_not_undo_transition(self):
        order = self.create_order(status=Order.Status.CONFIRMED)

        with mock.patch.object(OrderStatusHistory.objects, 'create', side_effect=RuntimeError('db down')):
            with self.captureOnCommitCallbacks(execute=True):
                OrderStateMachine.change_status(order.id, self.store, 'in_preparation', self.logistics)

        order.refresh_from_db()
        self.assertEqual(order.status, Order.Status.IN_PREPARATION)

    def test_history_endpoint(self):
        self.authenticate(self.confirmer)
        order = self.create_order(status=Order.Status.CONFIRMED)
        with self.captureOnCommitCallbacks(execute=True):
            OrderStateMachine.change_status(order.id, self.store, 'in_preparation', self.logistics)

        response = self.client.get(self.order_url(order, 'history/'))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 1)
        self.assertEqual(response.data[0]['changed_by_email'], 'logistics@example.com')

    @mock.patch('apps.orders.services.state_machine.ExternalSyncAdapter.on_status_changed')
    def test_external_sync_scheduled_for_linked_orders(self, on_status_changed):
        order = self.create_order(status=Order.Status.CONFIRMED, external_order_id='5012345678')

        with self.captureOnCommitCallbacks(execute=True):
            OrderStateMachine.change_status(order.id, self.store, 'cancelled', self.logistics)

        on_status_changed.assert_called_once()
        args = on_status_changed.call_args[0]
        self.assertEqual(args[1:], ('confirmed', 'cancelled'))

    @mock.patch('apps.orders.services.state_machine.ExternalSyncAdapter.on_status_changed')
    def test_external_sync_skipped_for_local_orders(self, on_status_changed):
        order = self.create_order(status=Order.Status.CONFIRMED)

        with self.captureOnCommitCallbacks(execute=True):
            OrderStateMachine.change_status(order.id, self.store, 'cancelled', self.logistics)

        on_status_changed.assert_not_called()

    @mock.patch(
        'apps.orders.services.state_machine.ExternalSyncAdapter.on_status_changed',
        side_effect=RuntimeError('boom')
    )
    def test_external_sync_failure_is_swallowed(self, on_status_changed):
        order = self.create_order(status=Order.Status.CONFIRMED, external_order_id='5012345678')

        with self.captureOnCommitCallbacks(execute=True):
            OrderStateMachine.change_status(order.id, self.store, 'cancelled', self.logistics)

        order.refresh_from_db()
        self.assertEqual(order.status, Order.Status.CANCELLED)


class StockReleaseAfterDispatchTests(OrderTestCase):
    """Stock committed before dispatch always comes back once the order is dropped."""

    def setUp(self):
        super().setUp()
        self.authenticate(self.logistics)
        self.order = self.create_order(status=Order.Status.CONFIRMED, lines=[(self.product, 2)], carrier=self.carrier)

    def move(self, *targets):
        for target in targets:
            response = self.client.patch(self.order_url(self.order, 'status/'), {'to_status': target}, format='json')
            self.assertEqual(response.status_code, status.HTTP_200_OK, target)

    def test_failed_delivery_reset_to_pending_then_cancelled(self):
        self.move('ready_to_ship', 'shipped')
        self.order.refresh_from_db()
        CourierDeliveryService.fail_delivery(self.order.delivery_token, 'Customer not home')

        self.move('pending')
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, 10)

        self.move('cancelled')
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, 10)
        self.assertFalse(self.order.line_items.filter(stock_deducted=True).exists())

    def test_returned_then_cancelled(self):
        self.move('ready_to_ship', 'shipped', 'returned')
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, 8)

        self.move('cancelled')

        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, 10)
        self.assertEqual(
            InventoryMovement.objects.filter(order_id=self.order.id, movement_type=InventoryMovement.ORDER_CANCELLED).count(),
            1
        )


class IncidentExitTests(OrderTestCase):
    """Leaving `incident` from the dashboard closes the open incident."""

    def setUp(self):
        super().setUp()
        self.authenticate(self.logistics)
        self.order = self.create_order(status=Order.Status.IN_TRANSIT, carrier=self.carrier)
        self.token = self.order.delivery_token
        CourierDeliveryService.fail_delivery(self.token, 'Wrong address')
        self.incident = DeliveryIncident.objects.get(order=self.order)

    def test_redispatch_reopens_courier_endpoints(self):
        IncidentService.schedule_retry(self.incident.id, self.store, self.logistics)

        response = self.client.patch(self.order_url(self.order, 'status/'), {'to_status': 'shipped'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.order.refresh_from_db()
        self.assertFalse(self.order.has_active_incident)
        self.assertEqual(self.order.delivery_status, Order.DeliveryStatus.PENDING)

        self.incident.refresh_from_db()
        self.assertEqual(self.incident.status, DeliveryIncident.Status.RESOLVED)
        self.assertEqual(self.incident.resolution_type, DeliveryIncident.Resolution.OTHER)
        self.assertEqual(self.incident.resolved_by, self.logistics)
        self.assertEqual(self.incident.retries.get().status, IncidentRetryAttempt.Status.CANCELLED)

        lookup = self.client.get(self.delivery_url(self.token))
        self.assertFalse(lookup.data.get('delivery_failed', False))

        confirm = self.client.post(self.delivery_url(self.token, 'confirm/'), {'payment_method': 'cash'}, format='json')
        self.assertEqual(confirm.status_code, status.HTTP_200_OK)

    def test_cancel_from_incident_resolves_as_cancelled(self):
        self.client.patch(self.order_url(self.order, 'status/'), {'to_status': 'cancelled'}, format='json')

        self.incident.refresh_from_db()
        self.assertEqual(self.incident.resolution_type, DeliveryIncident.Resolution.CANCELLED)

        response = self.client.post(f'/api/orders/incidents/{self.incident.id}/resolve/', {'resolution_type': 'cancelled'}, format='json')
        self.assertEqual(response.data['error'], 'incident_closed')
