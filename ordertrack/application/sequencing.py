from datetime import datetime
from sqlalchemy.orm import Session

from ordertrack.infrastructure.repositories import OrderRepository
from .errors import SequenceExhaustedError

MAX_SEQUENCE = 9999


def month_key(moment: datetime) -> str:
    """YYMM prefix for ``moment``, e.g. ``2602`` for February 2026."""
    return moment.strftime("%y%m")


def next_order_number(db: Session, current_month_key: str) -> str:
    """Next order number in format YYMM-NNNN for the given month.

    Must run inside the transaction that inserts the order; the unique
    constraint on ``order_number`` catches concurrent allocations.
    """
    latest = OrderRepository(db).latest_order_number(current_month_key)
    next_seq = 1
    if latest:
        # "2602-0042" -> 42
        next_seq = int(latest.split("-", 1)[1]) + 1
    if next_seq > MAX_SEQUENCE:
        raise SequenceExhaustedError(
            f"Order numbers for month {current_month_key} are exhausted "
            f"({MAX_SEQUENCE} orders already allocated)"
        )
    return f"{current_month_key}-{next_seq:04d}"
