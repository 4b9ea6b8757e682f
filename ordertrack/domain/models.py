from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy import (
    DDL, JSON, Boolean, DateTime, Enum, ForeignKey, Index, Integer, String, Text,
    UniqueConstraint, event,
)
from datetime import datetime, timezone
from typing import Optional

from .workflow import LedgerEventType, OrderStatus, Role


def utcnow() -> datetime:
    """Naive UTC timestamp; every stored datetime is naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    pass


class LedgerImmutableError(RuntimeError):
    """Raised when code tries to flush a change to an existing ledger row."""


class Customer(Base):
    __tablename__ = "customers"
    id: Mapped[str] = mapped_column(String(20), primary_key=True)
    name: Mapped[str] = mapped_column(String(200))
    phone: Mapped[str] = mapped_column(String(50), default="")
    notes: Mapped[str] = mapped_column(Text, default="")
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False)
    is_test: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class Vendor(Base):
    __tablename__ = "vendors"
    id: Mapped[str] = mapped_column(String(20), primary_key=True)
    name: Mapped[str] = mapped_column(String(200))
    # e.g. "lamination", "die cutting"
    service_type: Mapped[str] = mapped_column(String(100), default="")
    phone: Mapped[str] = mapped_column(String(50), default="")
    notes: Mapped[str] = mapped_column(Text, default="")
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False)
    is_test: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class ProductType(Base):
    __tablename__ = "product_types"
    id: Mapped[str] = mapped_column(String(40), primary_key=True)
    name: Mapped[str] = mapped_column(String(200))
    properties: Mapped[dict] = mapped_column(JSON, default=dict)
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False)
    is_test: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class User(Base):
    __tablename__ = "users"
    id: Mapped[str] = mapped_column(String(20), primary_key=True)
    name: Mapped[str] = mapped_column(String(200))
    role: Mapped[Role] = mapped_column(
        Enum(Role, native_enum=False, create_constraint=True, length=20, name="user_role"),
        default=Role.EMPLOYEE,
    )
    phone: Mapped[str] = mapped_column(String(50), unique=True)
    password_hash: Mapped[str] = mapped_column(String(255))
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    # Tokens issued before this instant are rejected
    token_revoked_before: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False)
    is_test: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    last_login_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)


class Order(Base):
    """Current-state projection of one job. Only the order service writes it."""

    __tablename__ = "orders"
    id: Mapped[str] = mapped_column(String(20), primary_key=True)
    order_number: Mapped[str] = mapped_column(String(9), unique=True)
    customer_id: Mapped[str] = mapped_column(ForeignKey("customers.id"))
    product_type_id: Mapped[str] = mapped_column(ForeignKey("product_types.id"))
    title: Mapped[str] = mapped_column(String(300))
    description: Mapped[str] = mapped_column(Text, default="")
    quantity: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    status: Mapped[OrderStatus] = mapped_column(
        Enum(OrderStatus, native_enum=False, create_constraint=True, length=20, name="order_status"),
        default=OrderStatus.NEW,
    )
    process_stage: Mapped[str] = mapped_column(String(200), default="")
    current_vendor_id: Mapped[Optional[str]] = mapped_column(ForeignKey("vendors.id"), nullable=True)
    received_date: Mapped[datetime] = mapped_column(DateTime)
    promised_date: Mapped[datetime] = mapped_column(DateTime)
    internal_due_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    delivered_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    notes: Mapped[str] = mapped_column(Text, default="")
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False)
    is_test: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    __table_args__ = (
        Index("idx_orders_status", "status"),
        Index("idx_orders_promised_date", "promised_date"),
        Index("idx_orders_current_vendor_id", "current_vendor_id"),
        Index("idx_orders_product_type_id", "product_type_id"),
        Index("idx_orders_customer_id", "customer_id"),
        Index("idx_orders_updated_at", "updated_at"),
    )


class OrderLedgerEntry(Base):
    """Append-only audit record. One row per order-mutating service call."""

    __tablename__ = "order_ledger_entries"
    id: Mapped[str] = mapped_column(String(20), primary_key=True)
    order_id: Mapped[str] = mapped_column(ForeignKey("orders.id"))
    actor_user_id: Mapped[str] = mapped_column(ForeignKey("users.id"))
    event_type: Mapped[LedgerEventType] = mapped_column(
        Enum(LedgerEventType, native_enum=False, create_constraint=True, length=30,
             name="ledger_event_type"),
    )
    occurred_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    # Per-order insertion sequence, breaks occurred_at ties
    version: Mapped[int] = mapped_column(Integer)
    summary: Mapped[str] = mapped_column(Text, default="")
    payload: Mapped[dict] = mapped_column(JSON, default=dict)
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False)
    is_test: Mapped[bool] = mapped_column(Boolean, default=False)

    __table_args__ = (
        UniqueConstraint("order_id", "version", name="uq_ledger_order_version"),
        Index("idx_ledger_order_occurred", "order_id", "occurred_at"),
    )


@event.listens_for(OrderLedgerEntry, "before_update")
def _refuse_ledger_update(mapper, connection, target):
    raise LedgerImmutableError(f"ledger entry {target.id} is immutable: updates not allowed")


@event.listens_for(OrderLedgerEntry, "before_delete")
def _refuse_ledger_delete(mapper, connection, target):
    raise LedgerImmutableError(f"ledger entry {target.id} is immutable: deletes not allowed")


# Database-level guard, so raw SQL cannot rewrite history either. The same
# statements are issued by the ledger migration.
SQLITE_LEDGER_TRIGGERS = (
    """
    CREATE TRIGGER ledger_no_update
    BEFORE UPDATE ON order_ledger_entries
    BEGIN
      SELECT RAISE(ABORT, 'order_ledger_entries rows are immutable: updates not allowed');
    END
    """,
    """
    CREATE TRIGGER ledger_no_delete
    BEFORE DELETE ON order_ledger_entries
    BEGIN
      SELECT RAISE(ABORT, 'order_ledger_entries rows are immutable: deletes not allowed');
    END
    """,
)

POSTGRES_LEDGER_TRIGGERS = (
    """
    CREATE OR REPLACE FUNCTION order_ledger_entries_immutable() RETURNS trigger AS $$
    BEGIN
      RAISE EXCEPTION 'order_ledger_entries rows are immutable: updates and deletes not allowed';
    END;
    $$ LANGUAGE plpgsql
    """,
    """
    CREATE TRIGGER ledger_no_update_or_delete
    BEFORE UPDATE OR DELETE ON order_ledger_entries
    FOR EACH ROW EXECUTE FUNCTION order_ledger_entries_immutable()
    """,
)

for _statement in SQLITE_LEDGER_TRIGGERS:
    event.listen(
        OrderLedgerEntry.__table__, "after_create",
        DDL(_statement).execute_if(dialect="sqlite"),
    )
for _statement in POSTGRES_LEDGER_TRIGGERS:
    event.listen(
        OrderLedgerEntry.__table__, "after_create",
        DDL(_statement).execute_if(dialect="postgresql"),
    )
