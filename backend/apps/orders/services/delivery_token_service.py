"""
Delivery credential manager.
Issues, regenerates and invalidates the single-use token that authorizes the
public courier page, and renders the QR artifact that encodes its URL.
"""
import base64
import io
import logging
import secrets
import qrcode
from qrcode.constants import ERROR_CORRECT_M
from django.conf import settings
from apps.orders.models import Order
from apps.orders.services.background import on_commit_in_background

logger = logging.getLogger('orders')


class DeliveryTokenService:
    """
    Token lifecycle rules:
    - entering an awaiting-courier status without a token issues one
    - rating, cancel-after-failure and leaving the delivery window clear it
    - delivered orders keep the token until rated or cleaned up
    """

    # Statuses in which a token must not exist
    TOKENLESS_STATUSES = frozenset({
        Order.Status.PENDING,
        Order.Status.RETURNED,
        Order.Status.CANCELLED,
        Order.Status.REJECTED,
    })

    @staticmethod
    def generate_token(previous=None) -> str:
        """Unguessable URL-safe token, unique across orders and never equal to `previous`."""
        while True:
            token = secrets.token_urlsafe(settings.DELIVERY_TOKEN_BYTES)
            if token != previous and not Order.objects.filter(delivery_token=token).exists():
                return token

    @staticmethod
    def build_delivery_url(token) -> str:
        return f"{settings.DELIVERY_BASE_URL}/{token}"

    @classmethod
    def render_qr_data_url(cls, token) -> str:
        """PNG data URL of a QR code that encodes only the delivery URL."""
        qr = qrcode.QRCode(error_correction=ERROR_CORRECT_M, box_size=8, border=2)
        qr.add_data(cls.build_delivery_url(token))
        qr.make(fit=True)
        image = qr.make_image(fill_color='black', back_color='white')

        buffer = io.BytesIO()
        image.save(buffer, format='PNG')
        encoded = base64.b64encode(buffer.getvalue()).decode('ascii')
        return f"data:image/png;base64,{encoded}"

    @classmethod
    def issue(cls, order, previous=None):
        """
        Attach a fresh token to an (unsaved, locked) order instance.
        The QR artifact is rendered after commit.
        """
        order.delivery_token = cls.generate_token(previous=previous or order.delivery_token)
        order.qr_code_url = None
        cls.attach_qr_on_commit(order)
        return order.delivery_token

    @staticmethod
    def invalidate(order):
        order.delivery_token = None
        order.qr_code_url = None

    @classmethod
    def sync_with_status(cls, order, previous_token=None):
        """
        Bring the token in line with the order's (new) status.

        Args:
            order: Locked order whose status was just changed, not yet saved
            previous_token: Token held before this change, never reused

        Returns:
            True if a new token was issued
        """
        if order.status in cls.TOKENLESS_STATUSES:
            if order.delivery_token:
                cls.invalidate(order)
            return False

        if order.delivery_rating is not None:
            # Rated deliveries never get their page back
            return False

        if order.status in Order.AWAITING_COURIER_STATUSES and not order.delivery_token:
            cls.issue(order, previous=previous_token)
            return True
        return False

    @classmethod
    def attach_qr_on_commit(cls, order):
        order_id, token = order.id, order.delivery_token
        on_commit_in_background(lambda: cls.attach_qr(order_id, token), label=f"qr-{order_id}")

    @classmethod
    def attach_qr(cls, order_id, token):
        """
        Render and store the QR artifact. Only written while the token is still
        current, so a late render cannot resurrect an invalidated token's QR.
        """
        if not token:
            return False
        try:
            data_url = cls.render_qr_data_url(token)
            updated = Order.objects.filter(id=order_id, delivery_token=token).update(qr_code_url=data_url)
            return bool(updated)
        except Exception:
            logger.exception(f"QR generation failed for order {order_id}")
            return False
