"""
Storage access for orders and their ledger.

The ledger repository is insert-only: it has ``append`` and read methods and
nothing else. Updates and deletes are additionally refused by the ORM mapper
events and by database triggers (see ``ordertrack.domain.models``).
"""

from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ordertrack.domain.models import Order, OrderLedgerEntry


class OrderRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, order_id: str) -> Optional[Order]:
        return self.db.get(Order, order_id, populate_existing=True)

    def get_for_update(self, order_id: str) -> Optional[Order]:
        """Load the row locked for the rest of the transaction.

        ``populate_existing`` refreshes an instance already sitting in the
        identity map so diffs are computed from the locked read.
        """
        stmt = (
            select(Order)
            .where(Order.id == order_id)
            .with_for_update(of=Order)
            .execution_options(populate_existing=True)
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def add(self, order: Order) -> Order:
        self.db.add(order)
        self.db.flush()
        return order

    def latest_order_number(self, prefix: str) -> Optional[str]:
        # Soft-deleted orders keep their numbers, so they are included
        stmt = (
            select(Order.order_number)
            .where(Order.order_number.like(f"{prefix}-%"))
            .order_by(Order.order_number.desc())
            .limit(1)
        )
        return self.db.execute(stmt).scalar_one_or_none()


class LedgerRepository:
    def __init__(self, db: Session):
        self.db = db

    def next_version(self, order_id: str) -> int:
        stmt = select(func.max(OrderLedgerEntry.version)).where(
            OrderLedgerEntry.order_id == order_id
        )
        return (self.db.execute(stmt).scalar() or 0) + 1

    def append(self, entry: OrderLedgerEntry) -> OrderLedgerEntry:
        self.db.add(entry)
        self.db.flush()
        return entry

    def list_for_order(self, order_id: str, include_deleted: bool = False) -> List[OrderLedgerEntry]:
        stmt = select(OrderLedgerEntry).where(OrderLedgerEntry.order_id == order_id)
        if not include_deleted:
            stmt = stmt.where(OrderLedgerEntry.is_deleted.is_(False))
        stmt = stmt.order_by(OrderLedgerEntry.occurred_at.asc(), OrderLedgerEntry.version.asc())
        return list(self.db.execute(stmt).scalars())
