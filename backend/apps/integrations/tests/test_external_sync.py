"""
Tests for the Shopify client and the best-effort external sync adapter.
"""
from unittest import mock
import requests
from django.test import TestCase
from apps.accounts.models import Store
from apps.integrations.models import CommercePlatformIntegration
from apps.integrations.services.external_sync import ExternalSyncAdapter
from apps.integrations.services.shopify_client import ShopifyClient, ShopifyError
from apps.orders.models import Order


def graphql_response(payload, status_code=200):
    response = mock.Mock(status_code=status_code)
    response.json.return_value = payload
    response.raise_for_status.return_value = None
    return response


class ShopifyClientTests(TestCase):

    def setUp(self):
        self.client = ShopifyClient('demo.myshopify.com', 'shpat_test', timeout=5)

    def test_order_gid(self):
        self.assertEqual(ShopifyClient.order_gid(123), 'gid://shopify/Order/123')
        self.assertEqual(ShopifyClient.order_gid('gid://shopify/Order/9'), 'gid://shopify/Order/9')

    @mock.patch('apps.integrations.services.shopify_client.requests.post')
    def test_cancel_order(self, post):
        post.return_value = graphql_response({
            'data': {'orderCancel': {'orderCancelUserErrors': [], 'job': {'id': 'gid://shopify/Job/1', 'done': False}}}
        })

        job = self.client.cancel_order('555', reason='rejected')

        self.assertEqual(job['id'], 'gid://shopify/Job/1')
        variables = post.call_args.kwargs['json']['variables']
        self.assertEqual(variables['orderId'], 'gid://shopify/Order/555')
        self.assertEqual(variables['reason'], 'DECLINED')
        self.assertFalse(variables['restock'])
        self.assertEqual(post.call_args.kwargs['headers']['X-Shopify-Access-Token'], 'shpat_test')

    @mock.patch('apps.integrations.services.shopify_client.requests.post')
    def test_user_errors_raise(self, post):
        post.return_value = graphql_response({
            'data': {'orderCancel': {'orderCancelUserErrors': [{'field': 'orderId', 'message': 'Order already cancelled'}]}}
        })

        with self.assertRaisesMessage(ShopifyError, 'Order already cancelled'):
            self.client.cancel_order('555')

    @mock.patch('apps.integrations.services.shopify_client.requests.post')
    def test_graphql_errors_raise(self, post):
        post.return_value = graphql_response({'errors': [{'message': 'Throttled'}]})

        with self.assertRaises(ShopifyError):
            self.client.query('{ shop { name } }')

    @mock.patch('apps.integrations.services.shopify_client.requests.post')
    def test_transport_errors_raise(self, post):
        post.side_effect = requests.ConnectionError('unreachable')

        with self.assertRaises(ShopifyError):
            self.client.query('{ shop { name } }')


class ExternalSyncAdapterTests(TestCase):

    def setUp(self):
        self.store = Store.objects.create(name='Tienda Sync')
        self.integration = CommercePlatformIntegration(store=self.store, shop_domain='demo.myshopify.com')
        self.integration.set_access_token('shpat_secret')
        self.integration.save()
        self.order = Order.objects.create(
            store=self.store,
            customer_name='Ana',
            customer_phone='+595981000001',
            status=Order.Status.CANCELLED,
            external_order_id='1001'
        )

    def test_access_token_encrypted_at_rest(self):
        self.integration.refresh_from_db()
        self.assertNotIn('shpat_secret', self.integration.access_token_encrypted)
        self.assertEqual(self.integration.get_access_token(), 'shpat_secret')

    @mock.patch.object(ShopifyClient, 'cancel_order', return_value={'id': 'job'})
    def test_notifies_platform(self, cancel_order):
        self.assertTrue(ExternalSyncAdapter.notify_cancellation(self.order))
        cancel_order.assert_called_once_with('1001', reason='cancelled')

    @mock.patch.object(ShopifyClient, 'cancel_order')
    def test_skipped_without_external_id(self, cancel_order):
        self.order.external_order_id = None

        self.assertFalse(ExternalSyncAdapter.notify_cancellation(self.order))
        cancel_order.assert_not_called()

    @mock.patch.object(ShopifyClient, 'cancel_order')
    def test_skipped_without_active_integration(self, cancel_order):
        self.integration.status = CommercePlatformIntegration.Status.DISCONNECTED
        self.integration.save()

        self.assertFalse(ExternalSyncAdapter.notify_cancellation(self.order))
        cancel_order.assert_not_called()

    @mock.patch.object(ShopifyClient, 'cancel_order', side_effect=ShopifyError('boom'))
    def test_platform_failure_swallowed(self, cancel_order):
        self.assertFalse(ExternalSyncAdapter.notify_cancellation(self.order))

    @mock.patch.object(ExternalSyncAdapter, 'notify_cancellation', return_value=True)
    def test_only_exit_statuses_sync(self, notify):
        self.assertFalse(ExternalSyncAdapter.on_status_changed(self.order, 'confirmed', 'in_preparation'))
        self.assertFalse(ExternalSyncAdapter.on_status_changed(self.order, 'cancelled', 'cancelled'))
        self.assertTrue(ExternalSyncAdapter.on_status_changed(self.order, 'pending', 'cancelled'))
        notify.assert_called_once()
