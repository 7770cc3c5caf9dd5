"""
Status transition rule table.
Pure logic: no database access. The table is checked for completeness at import time.
"""
from typing import NamedTuple, Optional
from apps.orders.models import Order
from apps.orders.exceptions import ForceNotAllowed


S = Order.Status


class TransitionRule(NamedTuple):
    allowed: bool
    requires_stock_restore: bool = False
    message: str = ''
    suggestion: str = ''


class TransitionDecision(NamedTuple):
    allowed: bool
    reason: str
    requires_stock_restore: bool
    suggestion: str = ''
    forced: bool = False


ALLOW = TransitionRule(True)
RESTORE = TransitionRule(True, requires_stock_restore=True)

USE_RETURNED = 'If the customer sent the goods back, use "returned".'


def _deny_from_delivered(target_label, suggestion=USE_RETURNED, restores_stock=False):
    # restores_stock only matters when an owner forces the move
    return TransitionRule(
        False,
        requires_stock_restore=restores_stock,
        message=f'A delivered order cannot go back to {target_label}.',
        suggestion=suggestion,
    )


# Every (from, to) pair with from != to. Same-status is handled before lookup.
TRANSITIONS = {
    S.PENDING: {
        S.CONFIRMED: ALLOW,
        S.IN_PREPARATION: ALLOW,
        S.READY_TO_SHIP: ALLOW,
        S.SHIPPED: ALLOW,
        S.IN_TRANSIT: ALLOW,
        S.DELIVERED: ALLOW,
        S.RETURNED: ALLOW,
        S.CANCELLED: ALLOW,
        S.REJECTED: ALLOW,
        S.INCIDENT: ALLOW,
    },
    S.CONFIRMED: {
        S.PENDING: ALLOW,
        S.IN_PREPARATION: ALLOW,
        S.READY_TO_SHIP: ALLOW,
        S.SHIPPED: ALLOW,
        S.IN_TRANSIT: ALLOW,
        S.DELIVERED: ALLOW,
        S.RETURNED: ALLOW,
        S.CANCELLED: ALLOW,
        S.REJECTED: ALLOW,
        S.INCIDENT: ALLOW,
    },
    S.IN_PREPARATION: {
        S.PENDING: ALLOW,
        S.CONFIRMED: ALLOW,
        S.READY_TO_SHIP: ALLOW,
        S.SHIPPED: ALLOW,
        S.IN_TRANSIT: ALLOW,
        S.DELIVERED: ALLOW,
        S.RETURNED: ALLOW,
        S.CANCELLED: ALLOW,
        S.REJECTED: ALLOW,
        S.INCIDENT: ALLOW,
    },
    S.READY_TO_SHIP: {
        S.PENDING: RESTORE,
        S.CONFIRMED: RESTORE,
        S.IN_PREPARATION: RESTORE,
        S.SHIPPED: ALLOW,
        S.IN_TRANSIT: ALLOW,
        S.DELIVERED: ALLOW,
        S.RETURNED: RESTORE,
        S.CANCELLED: RESTORE,
        S.REJECTED: RESTORE,
        S.INCIDENT: ALLOW,
    },
    S.SHIPPED: {
        S.PENDING: RESTORE,
        S.CONFIRMED: RESTORE,
        S.IN_PREPARATION: RESTORE,
        S.READY_TO_SHIP: ALLOW,
        S.IN_TRANSIT: ALLOW,
        S.DELIVERED: ALLOW,
        S.RETURNED: ALLOW,
        S.CANCELLED: RESTORE,
        S.REJECTED: RESTORE,
        S.INCIDENT: ALLOW,
    },
    S.IN_TRANSIT: {
        S.PENDING: RESTORE,
        S.CONFIRMED: RESTORE,
        S.IN_PREPARATION: RESTORE,
        S.READY_TO_SHIP: ALLOW,
        S.SHIPPED: ALLOW,
        S.DELIVERED: ALLOW,
        S.RETURNED: ALLOW,
        S.CANCELLED: RESTORE,
        S.REJECTED: RESTORE,
        S.INCIDENT: ALLOW,
    },
    S.DELIVERED: {
        S.PENDING: _deny_from_delivered('pending', restores_stock=True),
        S.CONFIRMED: _deny_from_delivered('confirmed', restores_stock=True),
        S.IN_PREPARATION: _deny_from_delivered('in preparation', restores_stock=True),
        S.READY_TO_SHIP: _deny_from_delivered('ready to ship'),
        S.SHIPPED: _deny_from_delivered('shipped'),
        S.IN_TRANSIT: _deny_from_delivered('in transit'),
        S.RETURNED: ALLOW,
        S.CANCELLED: _deny_from_delivered(
            'cancelled',
            'Delivered orders cannot be cancelled. Use "returned" if the customer sent the goods back.',
            restores_stock=True,
        ),
        S.REJECTED: _deny_from_delivered('rejected', restores_stock=True),
        S.INCIDENT: ALLOW,
    },
    # Reactivation: a mistaken cancellation or rejection can be undone
    S.CANCELLED: {
        S.PENDING: ALLOW,
        S.CONFIRMED: ALLOW,
        S.IN_PREPARATION: ALLOW,
        S.READY_TO_SHIP: ALLOW,
        S.SHIPPED: ALLOW,
        S.IN_TRANSIT: ALLOW,
        S.DELIVERED: ALLOW,
        S.RETURNED: ALLOW,
        S.REJECTED: ALLOW,
        S.INCIDENT: ALLOW,
    },
    S.REJECTED: {
        S.PENDING: ALLOW,
        S.CONFIRMED: ALLOW,
        S.IN_PREPARATION: ALLOW,
        S.READY_TO_SHIP: ALLOW,
        S.SHIPPED: ALLOW,
        S.IN_TRANSIT: ALLOW,
        S.DELIVERED: ALLOW,
        S.RETURNED: ALLOW,
        S.CANCELLED: ALLOW,
        S.INCIDENT: ALLOW,
    },
    S.RETURNED: {
        S.PENDING: ALLOW,
        S.CONFIRMED: ALLOW,
        S.IN_PREPARATION: ALLOW,
        S.READY_TO_SHIP: ALLOW,
        S.SHIPPED: ALLOW,
        S.IN_TRANSIT: ALLOW,
        S.DELIVERED: ALLOW,
        S.CANCELLED: ALLOW,
        S.REJECTED: ALLOW,
        S.INCIDENT: ALLOW,
    },
    # Loose recovery state: an incident may be resolved into almost anything.
    # incident -> delivered does not re-run the stock guard.
    S.INCIDENT: {
        S.PENDING: ALLOW,
        S.CONFIRMED: ALLOW,
        S.IN_PREPARATION: ALLOW,
        S.READY_TO_SHIP: ALLOW,
        S.SHIPPED: ALLOW,
        S.IN_TRANSIT: ALLOW,
        S.DELIVERED: ALLOW,
        S.RETURNED: ALLOW,
        S.CANCELLED: RESTORE,
        S.REJECTED: RESTORE,
    },
}


def _check_table_is_total(table):
    """Fail fast if any (from, to) pair lacks an explicit decision."""
    statuses = set(S)
    missing = []
    for from_status in statuses:
        row = table.get(from_status)
        if row is None:
            missing.append((from_status.value, '*'))
            continue
        for to_status in statuses - {from_status}:
            if to_status not in row:
                missing.append((from_status.value, to_status.value))
        if from_status in row:
            missing.append((from_status.value, 'self-entry not allowed'))
    if missing:
        raise ImportError(f"Incomplete status transition table: {sorted(missing)}")


_check_table_is_total(TRANSITIONS)


def parse_status(value) -> Optional[Order.Status]:
    """Return the Status member for a raw value, or None when unknown."""
    try:
        return S(value)
    except ValueError:
        return None


def evaluate(from_status, to_status, can_force: bool = False, force_requested: bool = False) -> TransitionDecision:
    """
    Decide whether an order may move from one status to another.

    Args:
        from_status: Current status (value or Status member)
        to_status: Requested status (value or Status member)
        can_force: Whether the actor holds a force-capable role
        force_requested: Whether the caller asked to bypass the table

    Returns:
        TransitionDecision

    Raises:
        ValueError: If either status is not a defined status
        ForceNotAllowed: If force is requested without the privilege
    """
    source = parse_status(from_status)
    target = parse_status(to_status)
    if source is None or target is None:
        raise ValueError(f"Unknown status: {from_status if source is None else to_status}")

    if source == target:
        return TransitionDecision(True, 'The order is already in this status.', False)

    rule = TRANSITIONS[source][target]

    if force_requested:
        if not can_force:
            raise ForceNotAllowed()
        return TransitionDecision(True, 'Forced transition.', rule.requires_stock_restore, forced=True)

    return TransitionDecision(
        rule.allowed,
        rule.message,
        rule.requires_stock_restore,
        suggestion=rule.suggestion,
    )


def is_stock_guarded(from_status, to_status) -> bool:
    """The stock guard only runs when entering ready_to_ship from a non-committed status."""
    return (
        to_status == S.READY_TO_SHIP
        and from_status not in Order.STOCK_COMMITTED_STATUSES
    )
