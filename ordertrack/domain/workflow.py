"""
Order workflow vocabulary: statuses, legal transitions, ledger event types,
user roles and the computed delay fields.

DELAYED is never a stored status. It is derived from ``promised_date``,
``status`` and the evaluation instant by :func:`compute_delay`.
"""

from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, FrozenSet, Tuple


class OrderStatus(str, Enum):
    NEW = "NEW"
    IN_PROGRESS = "IN_PROGRESS"
    READY = "READY"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


TERMINAL_STATUSES: FrozenSet[OrderStatus] = frozenset(
    {OrderStatus.DELIVERED, OrderStatus.CANCELLED}
)

# Legal next states per current state. Work can move back from READY to
# IN_PROGRESS (reprints), terminal states have no way out.
STATUS_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.NEW: frozenset({
        OrderStatus.IN_PROGRESS, OrderStatus.READY,
        OrderStatus.DELIVERED, OrderStatus.CANCELLED,
    }),
    OrderStatus.IN_PROGRESS: frozenset({
        OrderStatus.NEW, OrderStatus.READY,
        OrderStatus.DELIVERED, OrderStatus.CANCELLED,
    }),
    OrderStatus.READY: frozenset({
        OrderStatus.IN_PROGRESS, OrderStatus.DELIVERED, OrderStatus.CANCELLED,
    }),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}


def is_terminal(status: OrderStatus) -> bool:
    return OrderStatus(status) in TERMINAL_STATUSES


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return OrderStatus(target) in STATUS_TRANSITIONS[OrderStatus(current)]


class LedgerEventType(str, Enum):
    ORDER_CREATED = "ORDER_CREATED"
    ORDER_UPDATED = "ORDER_UPDATED"
    STATUS_CHANGED = "STATUS_CHANGED"
    VENDOR_CHANGED = "VENDOR_CHANGED"
    DELIVERED_MARKED = "DELIVERED_MARKED"
    CANCELLED_MARKED = "CANCELLED_MARKED"
    SOFT_DELETED = "SOFT_DELETED"
    RESTORED = "RESTORED"


class Role(str, Enum):
    OWNER = "OWNER"
    EMPLOYEE = "EMPLOYEE"


ONE_DAY = timedelta(days=1)


def compute_delay(
    promised_date: datetime, status: OrderStatus, now: datetime
) -> Tuple[bool, int]:
    """Return ``(is_delayed, days_delayed)`` for an order at instant ``now``.

    Delivered and cancelled orders are never delayed. ``days_delayed`` counts
    whole days past the promise, so an order one hour late is delayed by 0 days.
    """
    if is_terminal(status) or now <= promised_date:
        return False, 0
    return True, max(0, (now - promised_date) // ONE_DAY)
