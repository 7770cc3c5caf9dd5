"""
Status history recorder.
History rows are written after the transaction commits; a failed write is
logged and never undoes the status change.
"""
import logging
from django.db import transaction
from apps.orders.models import OrderStatusHistory

logger = logging.getLogger('orders')


class StatusHistoryRecorder:

    @staticmethod
    def record(order_id, store_id, previous_status, new_status, changed_by=None,
               changed_by_label='', source=OrderStatusHistory.Source.DASHBOARD, notes=''):
        try:
            return OrderStatusHistory.objects.create(
                order_id=order_id,
                store_id=store_id,
                previous_status=previous_status or '',
                new_status=new_status,
                changed_by=changed_by,
                changed_by_label=changed_by_label or (changed_by.email if changed_by else ''),
                source=source,
                notes=notes or '',
            )
        except Exception:
            logger.exception(f"Failed to record status history for order {order_id}")
            return None

    @classmethod
    def record_on_commit(cls, order, previous_status, new_status, **kwargs):
        """Schedule the history write for after the surrounding transaction commits."""
        order_id, store_id = order.id, order.store_id
        transaction.on_commit(
            lambda: cls.record(order_id, store_id, previous_status, new_status, **kwargs)
        )
