"""
Management command to invalidate stale delivery tokens.
Delivered orders keep their token so the customer can rate the delivery; once
the retention window passes without a rating, the link is closed.

Usage:
    python manage.py cleanup_delivery_tokens --dry-run  # Preview
    python manage.py cleanup_delivery_tokens             # Execute
"""
import logging
from datetime import timedelta
from django.conf import settings
from django.core.management.base import BaseCommand
from django.db.models import F
from django.utils import timezone
from apps.orders.models import Order

logger = logging.getLogger('orders')


class Command(BaseCommand):
    help = 'Invalidate delivery tokens of delivered orders that were never rated'

    def add_arguments(self, parser):
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Preview without changing anything',
        )
        parser.add_argument(
            '--hours',
            type=int,
            default=settings.DELIVERY_TOKEN_RETENTION_HOURS,
            help=f'Age in hours after delivery (default: {settings.DELIVERY_TOKEN_RETENTION_HOURS})',
        )

    def handle(self, *args, **options):
        dry_run = options['dry_run']
        hours = options['hours']

        cutoff = timezone.now() - timedelta(hours=hours)

        stale = Order.objects.filter(
            status=Order.Status.DELIVERED,
            delivery_token__isnull=False,
            delivery_rating__isnull=True,
            delivered_at__lt=cutoff,
        )

        count = stale.count()

        if dry_run:
            self.stdout.write(
                self.style.WARNING(
                    f'DRY RUN: Would invalidate {count} delivery tokens older than {hours} hours'
                )
            )
            for order in stale[:10]:
                self.stdout.write(f'  - {order.id} (delivered {order.delivered_at})')
            if count > 10:
                self.stdout.write(f'  ... and {count - 10} more')
            return

        # Re-check the filter in the UPDATE so a rating landing meanwhile wins
        updated = stale.update(
            delivery_token=None,
            qr_code_url=None,
            version=F('version') + 1,
            updated_at=timezone.now(),
        )
        logger.info(f"Invalidated {updated} stale delivery tokens (older than {hours}h)")

        self.stdout.write(
            self.style.SUCCESS(f'Successfully invalidated {updated} delivery tokens')
        )
