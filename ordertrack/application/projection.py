"""
Projection updater and replay.

The ``orders`` row is a cache of the ledger: folding an order's ledger
entries with :func:`replay` yields exactly :func:`snapshot` of the row.
:func:`apply` is only ever called by the order service next to a ledger
write, inside the same transaction.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterable, Mapping

from ordertrack.domain.models import Order, OrderLedgerEntry
from ordertrack.domain.workflow import LedgerEventType

# Closed set of order fields that ledger diffs may mention.
ORDER_FIELDS = (
    "id",
    "order_number",
    "customer_id",
    "product_type_id",
    "title",
    "description",
    "quantity",
    "status",
    "process_stage",
    "current_vendor_id",
    "received_date",
    "promised_date",
    "internal_due_date",
    "delivered_at",
    "notes",
    "is_deleted",
    "is_test",
)

TIMESTAMP_FIELDS = ("created_at", "updated_at")


def to_json_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def snapshot(order: Order) -> Dict[str, Any]:
    """JSON-normal view of the projection row, the form used in diffs."""
    data = {name: to_json_value(getattr(order, name)) for name in ORDER_FIELDS}
    for name in TIMESTAMP_FIELDS:
        data[name] = to_json_value(getattr(order, name))
    return data


def apply(order: Order, patch: Mapping[str, Any], now: datetime) -> Order:
    unknown = set(patch) - set(ORDER_FIELDS)
    if unknown:
        raise ValueError(f"Unknown order fields in patch: {sorted(unknown)}")
    for name, value in patch.items():
        setattr(order, name, value)
    order.updated_at = now
    return order


def replay(entries: Iterable[OrderLedgerEntry]) -> Dict[str, Any]:
    """Fold ledger entries (already in timeline order) into a snapshot.

    Entries flagged ``is_deleted`` are skipped.
    """
    state: Dict[str, Any] = dict.fromkeys(ORDER_FIELDS)
    state.update(dict.fromkeys(TIMESTAMP_FIELDS))
    for entry in entries:
        if entry.is_deleted:
            continue
        for name, change in (entry.payload or {}).get("changes", {}).items():
            state[name] = change["to"]
        occurred = to_json_value(entry.occurred_at)
        if LedgerEventType(entry.event_type) == LedgerEventType.ORDER_CREATED:
            state["created_at"] = occurred
        state["updated_at"] = occurred
    return state


def drift(order: Order, entries: Iterable[OrderLedgerEntry]) -> Dict[str, Dict[str, Any]]:
    """Fields where the stored row disagrees with the replayed ledger."""
    stored = snapshot(order)
    replayed = replay(entries)
    return {
        name: {"projection": stored[name], "ledger": replayed.get(name)}
        for name in stored
        if stored[name] != replayed.get(name)
    }
