"""
Order lifecycle errors.
Each error carries a stable code, an HTTP status and optional structured details.
"""
from rest_framework import status


class OrderError(Exception):
    """Base class for lifecycle errors surfaced to API callers."""
    code = 'generic_failure'
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = 'The operation could not be completed.'

    def __init__(self, message=None, details=None):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def as_response_data(self):
        data = {'error': self.code, 'message': self.message}
        if self.details is not None:
            data['details'] = self.details
        return data


# ==================== Validation / business rules (400) ====================

class InvalidStatus(OrderError):
    code = 'invalid_status'
    default_message = 'The order is not in a status that allows this operation.'


class TransitionNotAllowed(OrderError):
    code = 'transition_not_allowed'
    default_message = 'This status change is not allowed.'

    def __init__(self, message=None, from_status=None, to_status=None, suggestion=''):
        super().__init__(message, details={
            'from': from_status,
            'to': to_status,
            'suggestion': suggestion,
        })
        self.suggestion = suggestion


class InsufficientStock(OrderError):
    code = 'insufficient_stock'
    default_message = 'Not enough stock to dispatch this order.'

    def __init__(self, shortages):
        lines = [
            f"{s['item']}: requires {s['required']}, available {s['available']} (short {s['shortage']})"
            for s in shortages
        ]
        super().__init__(
            'Not enough stock to dispatch this order: ' + '; '.join(lines),
            details=shortages
        )
        self.shortages = shortages


class ActiveIncident(OrderError):
    code = 'active_incident'
    default_message = 'This order has an active incident. Use the incident retry flow instead.'


class DeliveryNotConfirmed(OrderError):
    code = 'delivery_not_confirmed'
    default_message = 'Only delivered orders can be rated.'


class AlreadyRated(OrderError):
    code = 'already_rated'
    default_message = 'This delivery was already rated.'


class DeliveryNotFailed(OrderError):
    code = 'delivery_not_failed'
    default_message = 'Only orders with a failed delivery can be cancelled here.'


class IncidentClosed(OrderError):
    code = 'incident_closed'
    default_message = 'This incident is no longer active.'


class AlreadyDeleted(OrderError):
    code = 'already_deleted'
    default_message = 'This order was already deleted.'


# ==================== Authorization (403) ====================

class ForceNotAllowed(OrderError):
    code = 'force_not_allowed'
    status_code = status.HTTP_403_FORBIDDEN
    default_message = 'Only store owners and administrators can force status changes.'


# ==================== Not found (404) ====================

class OrderNotFound(OrderError):
    code = 'order_not_found'
    status_code = status.HTTP_404_NOT_FOUND
    default_message = 'Order not found.'


class CarrierNotFound(OrderError):
    code = 'carrier_not_found'
    status_code = status.HTTP_404_NOT_FOUND
    default_message = 'Carrier not found or inactive.'


class ProductNotFound(OrderError):
    code = 'product_not_found'
    status_code = status.HTTP_404_NOT_FOUND
    default_message = 'Upsell product not found.'


class DeliveryTokenNotFound(OrderError):
    code = 'delivery_token_not_found'
    status_code = status.HTTP_404_NOT_FOUND
    default_message = 'Delivery link is invalid or expired.'


class IncidentNotFound(OrderError):
    code = 'incident_not_found'
    status_code = status.HTTP_404_NOT_FOUND
    default_message = 'Incident not found.'


# ==================== Conflict (409) ====================

class VersionConflict(OrderError):
    code = 'version_conflict'
    status_code = status.HTTP_409_CONFLICT
    default_message = 'The order was modified by someone else. Reload it and try again.'

    def __init__(self, current_version, your_version):
        super().__init__(details={
            'current_version': current_version,
            'your_version': your_version,
        })
        self.current_version = current_version
        self.your_version = your_version


# ==================== Internal (500) ====================

class ConfirmationFailed(OrderError):
    code = 'generic_failure'
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = 'The order could not be confirmed.'
