"""
Security logging service for lifecycle overrides and public delivery access.
"""
from common.models import SecurityEventLog, OperatorActionLog
import logging

logger = logging.getLogger('security')


class LoggingService:
    """
    Centralized logging service for all security-related events.
    """

    @staticmethod
    def get_client_ip(request):
        """Extract client IP from request"""
        x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
        if x_forwarded_for:
            ip = x_forwarded_for.split(',')[0].strip()
        else:
            ip = request.META.get('REMOTE_ADDR')
        return ip

    @staticmethod
    def get_user_agent(request):
        """Extract user agent from request"""
        return request.META.get('HTTP_USER_AGENT', '')

    # ==================== Operator Action Logging ====================

    @staticmethod
    def log_operator_action(operator, action, order_reference, request=None, details=None):
        """
        Log privileged operator actions (forced transitions, deletes).

        Args:
            operator: User performing the action
            action: OperatorActionLog.Action choice
            order_reference: Order id as text
            request: HTTP request object (optional)
            details: Additional details dict (optional)
        """
        try:
            log = OperatorActionLog.objects.create(
                operator=operator,
                action=action,
                order_reference=str(order_reference),
                details=details or {},
                ip_address=LoggingService.get_client_ip(request) if request else None
            )

            logger.warning(f"[OPERATOR ACTION] {operator.email} {action} order={order_reference}")

            return log
        except Exception as e:
            logger.error(f"Failed to create operator action log: {str(e)}")
            return None

    # ==================== Security Event Logging ====================

    @staticmethod
    def log_security_event(event_type, details, request=None, ip_address=None,
                           user=None, severity=SecurityEventLog.Severity.MEDIUM):
        """
        Log security events for monitoring.

        Args:
            event_type: SecurityEventLog.EventType choice
            details: Details dict about the event
            request: HTTP request object (optional)
            ip_address: IP address (optional, extracted from request if not provided)
            user: User involved (optional)
            severity: Severity level (default: MEDIUM)
        """
        try:
            if request:
                ip_address = ip_address or LoggingService.get_client_ip(request)
                user_agent = LoggingService.get_user_agent(request)
            else:
                user_agent = None

            log = SecurityEventLog.objects.create(
                user=user,
                event_type=event_type,
                severity=severity,
                details=details,
                ip_address=ip_address,
                user_agent=user_agent
            )

            log_level = {
                SecurityEventLog.Severity.LOW: logger.info,
                SecurityEventLog.Severity.MEDIUM: logger.warning,
                SecurityEventLog.Severity.HIGH: logger.error,
                SecurityEventLog.Severity.CRITICAL: logger.critical,
            }.get(severity, logger.warning)

            user_str = user.email if user else "Anonymous"
            log_level(f"[SECURITY {severity}] {event_type} - {user_str} from {ip_address}")

            return log
        except Exception as e:
            logger.error(f"Failed to create security event log: {str(e)}")
            return None

    @staticmethod
    def log_force_denied(user, order_id, from_status, to_status, request=None):
        """Log when a non-privileged operator asks to bypass the transition table"""
        return LoggingService.log_security_event(
            event_type=SecurityEventLog.EventType.FORCE_NOT_ALLOWED,
            details={
                'order_id': str(order_id),
                'from_status': from_status,
                'to_status': to_status,
                'role': user.role,
            },
            request=request,
            user=user,
            severity=SecurityEventLog.Severity.HIGH
        )

    @staticmethod
    def log_invalid_delivery_token(token, request):
        """Log lookups of unknown delivery tokens (possible enumeration)"""
        return LoggingService.log_security_event(
            event_type=SecurityEventLog.EventType.INVALID_DELIVERY_TOKEN,
            details={'token_prefix': (token or '')[:6]},
            request=request,
            severity=SecurityEventLog.Severity.LOW
        )
