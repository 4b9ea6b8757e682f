"""
Ledger writer: one immutable entry per order mutation.

Payloads are diffs restricted to fields that changed::

    {"changes": {"status": {"from": "NEW", "to": "IN_PROGRESS"}}, "reason": "..."}

Any failure here propagates; the caller's transaction must roll back.
"""

from datetime import datetime
from typing import Any, Dict, Mapping, Optional

from sqlalchemy.orm import Session

from ordertrack.domain.ids import EntityKind, generate_id
from ordertrack.domain.models import OrderLedgerEntry, utcnow
from ordertrack.domain.workflow import LedgerEventType
from ordertrack.infrastructure.repositories import LedgerRepository
from .projection import ORDER_FIELDS

SUMMARY_VALUE_MAX = 60


def compute_changes(
    before: Optional[Mapping[str, Any]], after: Mapping[str, Any]
) -> Dict[str, Dict[str, Any]]:
    """Field-level diff over the known order fields.

    With no ``before`` (creation) every field is reported, from ``None``.
    """
    if before is None:
        return {name: {"from": None, "to": after.get(name)} for name in ORDER_FIELDS}
    return {
        name: {"from": before.get(name), "to": after.get(name)}
        for name in ORDER_FIELDS
        if before.get(name) != after.get(name)
    }


def _fmt(value: Any) -> str:
    if value is None or value == "":
        return "(none)"
    text = str(value)
    if len(text) > SUMMARY_VALUE_MAX:
        text = text[: SUMMARY_VALUE_MAX - 3] + "..."
    return text


def build_summary(
    event_type: LedgerEventType,
    changes: Mapping[str, Mapping[str, Any]],
    reason: Optional[str] = None,
) -> str:
    event_type = LedgerEventType(event_type)
    if event_type == LedgerEventType.ORDER_CREATED:
        return f"created order {_fmt(changes.get('order_number', {}).get('to'))}"
    if event_type == LedgerEventType.DELIVERED_MARKED:
        return "marked as delivered"
    if event_type == LedgerEventType.CANCELLED_MARKED:
        return f"cancelled order: {reason}" if reason else "cancelled order"
    if event_type == LedgerEventType.SOFT_DELETED:
        return "deleted order"
    if event_type == LedgerEventType.RESTORED:
        return "restored order"
    if event_type == LedgerEventType.VENDOR_CHANGED:
        change = changes["current_vendor_id"]
        if change["to"] is None:
            return f"removed vendor {_fmt(change['from'])}"
        return f"changed vendor from {_fmt(change['from'])} to {_fmt(change['to'])}"
    return "; ".join(
        f"changed {name} from {_fmt(change['from'])} to {_fmt(change['to'])}"
        for name, change in changes.items()
    )


class LedgerWriter:
    def __init__(self, db: Session):
        self.db = db
        self.repo = LedgerRepository(db)

    def write(
        self,
        order_id: str,
        actor_user_id: str,
        event_type: LedgerEventType,
        before: Optional[Mapping[str, Any]],
        after: Mapping[str, Any],
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
        is_test: bool = False,
    ) -> OrderLedgerEntry:
        if not actor_user_id:
            raise ValueError("Ledger entries require an actor")
        changes = compute_changes(before, after)
        if not changes:
            raise ValueError(f"Refusing to write {event_type} with an empty diff")

        payload: Dict[str, Any] = {"changes": changes}
        if reason:
            payload["reason"] = reason

        entry = OrderLedgerEntry(
            id=generate_id(EntityKind.LEDGER_ENTRY),
            order_id=order_id,
            actor_user_id=actor_user_id,
            event_type=LedgerEventType(event_type),
            occurred_at=now or utcnow(),
            version=self.repo.next_version(order_id),
            summary=build_summary(event_type, changes, reason),
            payload=payload,
            is_test=is_test,
        )
        return self.repo.append(entry)
