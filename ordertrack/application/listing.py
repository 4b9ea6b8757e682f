"""
Control-tower ordering and cursor pagination for the order list.

Delay is computed, not stored, so the composite ordering is applied in
Python after a coarse database ordering:

1. delayed orders first, most days late first
2. soonest ``promised_date``
3. most recently ``updated_at``
4. ``id``, so the key is total and pages never overlap

The cursor carries the last returned key plus the ``as_of`` instant the
delay was evaluated at, so every page of one listing sees the same clock.
"""

import base64
import binascii
import json
from datetime import datetime, timedelta
from typing import List, Optional, Sequence, Tuple

from ordertrack.domain.models import Order
from ordertrack.domain.workflow import compute_delay
from .errors import ValidationError

SortKey = Tuple[int, int, int, int, str]

EPOCH = datetime(1970, 1, 1)
MICROSECOND = timedelta(microseconds=1)


def _micros(moment: datetime) -> int:
    return (moment - EPOCH) // MICROSECOND


def sort_key(order: Order, now: datetime) -> SortKey:
    is_delayed, days_delayed = compute_delay(order.promised_date, order.status, now)
    return (
        0 if is_delayed else 1,
        -days_delayed,
        _micros(order.promised_date),
        -_micros(order.updated_at),
        order.id,
    )


def encode_cursor(key: SortKey, as_of: datetime) -> str:
    raw = json.dumps({"k": list(key), "t": as_of.isoformat()}, separators=(",", ":"))
    return base64.urlsafe_b64encode(raw.encode("utf-8")).decode("ascii").rstrip("=")


def decode_cursor(cursor: str) -> Tuple[SortKey, datetime]:
    try:
        padded = cursor + "=" * (-len(cursor) % 4)
        data = json.loads(base64.urlsafe_b64decode(padded.encode("ascii")))
        key = data["k"]
        as_of = datetime.fromisoformat(data["t"])
        if as_of.tzinfo is not None:
            # Issued cursors always carry naive UTC
            raise ValueError("cursor instant carries an offset")
        if (
            len(key) != 5
            or not all(isinstance(part, int) and not isinstance(part, bool) for part in key[:4])
            or not isinstance(key[4], str)
        ):
            raise ValueError("bad sort key")
    except (binascii.Error, UnicodeError, ValueError, KeyError, TypeError) as exc:
        raise ValidationError("Malformed pagination cursor") from exc
    return tuple(key), as_of


def paginate(
    orders: Sequence[Order],
    now: datetime,
    after: Optional[SortKey],
    page_size: int,
) -> Tuple[List[Order], Optional[SortKey]]:
    """Sort ``orders`` and return the page after ``after`` plus the next key."""
    keyed = sorted(((sort_key(order, now), order) for order in orders), key=lambda pair: pair[0])
    if after is not None:
        keyed = [pair for pair in keyed if pair[0] > after]
    page = keyed[:page_size]
    next_key = page[-1][0] if len(keyed) > page_size else None
    return [order for _, order in page], next_key
