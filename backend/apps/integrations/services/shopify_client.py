"""
Minimal Shopify Admin GraphQL client.
Only the calls the order lifecycle needs: cancelling an order.
"""
import logging
import requests
from django.conf import settings

logger = logging.getLogger('integrations')


class ShopifyError(Exception):
    """Raised when Shopify rejects a call or cannot be reached."""


CANCEL_ORDER_MUTATION = """
mutation orderCancel($orderId: ID!, $notifyCustomer: Boolean, $reason: OrderCancelReason!, $refund: Boolean!, $restock: Boolean!) {
  orderCancel(orderId: $orderId, notifyCustomer: $notifyCustomer, reason: $reason, refund: $refund, restock: $restock) {
    orderCancelUserErrors {
      field
      message
    }
    job {
      id
      done
    }
  }
}
"""

# Local status -> Shopify OrderCancelReason
CANCEL_REASONS = {
    'cancelled': 'CUSTOMER',
    'rejected': 'DECLINED',
    'returned': 'OTHER',
    'inventory': 'INVENTORY',
    'fraud': 'FRAUD',
}


class ShopifyClient:
    """GraphQL client bound to one integration."""

    def __init__(self, shop_domain, access_token, timeout=None):
        self.endpoint = (
            f"https://{shop_domain}/admin/api/{settings.SHOPIFY_API_VERSION}/graphql.json"
        )
        self.access_token = access_token
        self.timeout = timeout or settings.EXTERNAL_SYNC_TIMEOUT_SECONDS

    @classmethod
    def for_integration(cls, integration):
        return cls(integration.shop_domain, integration.get_access_token())

    def query(self, query, variables=None):
        """
        Run a GraphQL document.

        Raises:
            ShopifyError: On transport errors, non-2xx responses or GraphQL errors
        """
        try:
            response = requests.post(
                self.endpoint,
                json={'query': query, 'variables': variables or {}},
                headers={
                    'X-Shopify-Access-Token': self.access_token,
                    'Content-Type': 'application/json',
                },
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.RequestException as e:
            raise ShopifyError(f"Shopify request failed: {e}") from e

        payload = response.json()
        if payload.get('errors'):
            raise ShopifyError(f"GraphQL errors: {payload['errors']}")
        return payload.get('data') or {}

    @staticmethod
    def order_gid(order_id):
        order_id = str(order_id)
        if order_id.startswith('gid://'):
            return order_id
        return f"gid://shopify/Order/{order_id}"

    def cancel_order(self, order_id, reason=None, notify_customer=False, refund=False):
        """
        Cancel an order on Shopify. Stock is not restocked remotely; the local
        inventory ledger is authoritative.

        Returns:
            The cancellation job dict
        """
        variables = {
            'orderId': self.order_gid(order_id),
            'notifyCustomer': notify_customer,
            'reason': CANCEL_REASONS.get((reason or '').lower(), 'OTHER'),
            'refund': refund,
            'restock': False,
        }
        data = self.query(CANCEL_ORDER_MUTATION, variables)
        result = data.get('orderCancel') or {}

        errors = result.get('orderCancelUserErrors') or []
        if errors:
            raise ShopifyError(
                "Order cancellation failed: " + ', '.join(e.get('message', '') for e in errors)
            )

        logger.info(f"Shopify order {order_id} cancelled ({variables['reason']})")
        return result.get('job')
