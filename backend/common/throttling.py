"""
Custom throttle classes for rate limiting public endpoints.
SECURITY: The delivery page is reachable without authentication, keyed only by token.
"""
from rest_framework.throttling import AnonRateThrottle


class DeliveryThrottle(AnonRateThrottle):
    """
    Throttle for the public courier delivery endpoints.
    Limits each client IP so delivery tokens cannot be brute-forced.
    """
    scope = 'delivery'
