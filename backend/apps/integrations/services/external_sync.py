"""
External sync adapter.
Best-effort notification of the linked commerce platform when an order leaves
the pipeline. Failures are logged and never propagate to the caller.
"""
import logging
from apps.integrations.models import CommercePlatformIntegration
from apps.integrations.services.shopify_client import ShopifyClient, ShopifyError

logger = logging.getLogger('integrations')

# Local statuses that cancel the order on the platform
SYNCED_STATUSES = frozenset({'cancelled', 'rejected', 'returned'})


class ExternalSyncAdapter:
    """Bridge between local status changes and the store's commerce platform."""

    client_class = ShopifyClient

    @staticmethod
    def get_active_integration(store_id):
        return CommercePlatformIntegration.objects.filter(
            store_id=store_id,
            status=CommercePlatformIntegration.Status.ACTIVE,
        ).first()

    @classmethod
    def has_active_integration(cls, store_id) -> bool:
        return cls.get_active_integration(store_id) is not None

    @classmethod
    def notify_cancellation(cls, order, reason=None) -> bool:
        """
        Cancel the order on the platform it came from.

        Returns:
            True when the platform accepted the cancellation, False when
            skipped or failed. Never raises.
        """
        if not order.external_order_id:
            return False

        integration = cls.get_active_integration(order.store_id)
        if integration is None:
            logger.debug(f"No active integration for store {order.store_id}; skipping sync")
            return False

        try:
            client = cls.client_class.for_integration(integration)
            client.cancel_order(order.external_order_id, reason=reason or order.status)
        except ShopifyError as e:
            # Local transition stands; the platform can be reconciled by hand
            logger.warning(f"External cancellation failed for order {order.id}: {e}")
            return False
        except Exception:
            logger.exception(f"Unexpected error syncing cancellation for order {order.id}")
            return False

        return True

    @classmethod
    def on_status_changed(cls, order, previous_status, new_status, reason=None):
        if new_status in SYNCED_STATUSES and previous_status != new_status:
            return cls.notify_cancellation(order, reason=reason)
        return False
