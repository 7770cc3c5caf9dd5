"""
Stock guard service.
Blocks dispatch when line items cannot be fulfilled, and commits or restores
stock exactly once per order line.
"""
import logging
from collections import OrderedDict
from django.db import transaction
from django.utils import timezone
from apps.inventory.models import Product, ProductVariant, InventoryMovement
from apps.orders.exceptions import InsufficientStock

logger = logging.getLogger('orders')


class StockGuard:
    """
    Stock checks and movements for order lines.
    Variant stock takes precedence over product stock.
    """

    @staticmethod
    def _stock_key(line):
        if line.variant_id:
            return ('variant', line.variant_id)
        if line.product_id:
            return ('product', line.product_id)
        return None

    @classmethod
    def _group_lines(cls, lines):
        """Group lines by the stock row they draw from, keeping line order."""
        groups = OrderedDict()
        for line in lines:
            key = cls._stock_key(line)
            if key is None:
                continue  # Free-text line with no inventory behind it
            groups.setdefault(key, []).append(line)
        return groups

    @staticmethod
    def _load_stock_rows(keys, lock=False):
        """
        Fetch the Product/ProductVariant rows behind the given keys.
        Rows are locked in primary-key order when lock=True.
        """
        product_ids = sorted(str(k[1]) for k in keys if k[0] == 'product')
        variant_ids = sorted(str(k[1]) for k in keys if k[0] == 'variant')

        products = Product.objects.filter(id__in=product_ids).order_by('id')
        variants = ProductVariant.objects.select_related('product').filter(id__in=variant_ids).order_by('id')
        if lock:
            products = products.select_for_update()
            variants = variants.select_for_update(of=('self',))

        rows = {}
        for product in products:
            rows[('product', product.id)] = product
        for variant in variants:
            rows[('variant', variant.id)] = variant
        return rows

    @staticmethod
    def _label(row, lines):
        if isinstance(row, ProductVariant):
            return f"{row.product.name} - {row.title}"
        if row is not None:
            return row.name
        return lines[0].product_name

    @classmethod
    def _shortages(cls, groups, rows):
        shortages = []
        for key, lines in groups.items():
            row = rows.get(key)
            if row is None:
                continue  # Product deleted since the order was taken
            required = sum(line.quantity for line in lines)
            available = max(row.stock, 0)
            if available < required:
                shortages.append({
                    'item': cls._label(row, lines),
                    'required': required,
                    'available': available,
                    'shortage': required - available,
                })
        return shortages

    @classmethod
    def check(cls, order):
        """
        Report shortages for the order's lines that have not been committed yet.

        Returns:
            List of {item, required, available, shortage}; empty when dispatchable
        """
        pending_lines = [line for line in order.line_items.all() if not line.stock_deducted]
        groups = cls._group_lines(pending_lines)
        rows = cls._load_stock_rows(groups.keys())
        return cls._shortages(groups, rows)

    @classmethod
    @transaction.atomic
    def commit(cls, order, from_status=None):
        """
        Decrement stock for every uncommitted line of the order.

        Security:
        - Stock rows are locked (select_for_update) before the re-check
        - All-or-nothing: any shortage aborts before a single decrement

        Raises:
            InsufficientStock: If any line cannot be fulfilled
        """
        pending_lines = list(
            order.line_items.select_for_update().filter(stock_deducted=False)
        )
        groups = cls._group_lines(pending_lines)
        rows = cls._load_stock_rows(groups.keys(), lock=True)

        shortages = cls._shortages(groups, rows)
        if shortages:
            logger.info(f"Stock guard blocked order {order.id}: {shortages}")
            raise InsufficientStock(shortages)

        now = timezone.now()
        for key, lines in groups.items():
            row = rows.get(key)
            if row is None:
                continue
            for line in lines:
                cls._apply(
                    order, row, -line.quantity, InventoryMovement.ORDER_READY,
                    notes=f"{from_status or '-'} -> ready_to_ship"
                )
                line.stock_deducted = True
                line.stock_deducted_at = now
                line.save(update_fields=['stock_deducted', 'stock_deducted_at'])

        logger.info(f"Stock committed for order {order.id}")

    @classmethod
    @transaction.atomic
    def restore(cls, order, movement_type=InventoryMovement.ORDER_CANCELLED, notes=''):
        """
        Return stock for every committed line of the order.
        Lines never committed are left alone, so calling twice is harmless.
        """
        committed_lines = list(
            order.line_items.select_for_update().filter(stock_deducted=True)
        )
        if not committed_lines:
            return 0

        groups = cls._group_lines(committed_lines)
        rows = cls._load_stock_rows(groups.keys(), lock=True)

        restored = 0
        for line in committed_lines:
            row = rows.get(cls._stock_key(line))
            if row is not None:
                cls._apply(order, row, line.quantity, movement_type, notes=notes)
                restored += line.quantity
            line.stock_deducted = False
            line.stock_deducted_at = None
            line.save(update_fields=['stock_deducted', 'stock_deducted_at'])

        logger.info(f"Stock restored for order {order.id} ({restored} units)")
        return restored

    @staticmethod
    def _apply(order, row, delta, movement_type, notes=''):
        """Apply a signed stock change to a locked row and record it in the ledger."""
        stock_before = row.stock
        row.stock = stock_before + delta
        row.save(update_fields=['stock'])

        if isinstance(row, ProductVariant):
            product, variant = row.product, row
        else:
            product, variant = row, None

        InventoryMovement.objects.create(
            store_id=order.store_id,
            product=product,
            variant=variant,
            order_id=order.id,
            movement_type=movement_type,
            quantity=delta,
            stock_before=stock_before,
            stock_after=row.stock,
            notes=notes[:255],
        )
