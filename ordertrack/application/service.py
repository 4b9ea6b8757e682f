"""
Order service: the only writer of orders and their ledger.

Every mutation has the same shape: authorize, load the current row inside
the transaction, validate, then write one ledger entry and the projection
change together. Calls that would change nothing write nothing.
"""

from contextlib import contextmanager
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from shared.core import get_logger
from ordertrack.core_settings import Settings, get_settings
from ordertrack.domain.ids import EntityKind, generate_id
from ordertrack.domain.models import Customer, Order, ProductType, Vendor, utcnow
from ordertrack.domain.workflow import (
    TERMINAL_STATUSES, LedgerEventType, OrderStatus, can_transition, compute_delay, is_terminal,
)
from ordertrack.infrastructure.repositories import LedgerRepository, OrderRepository
from .access import Action, Actor, authorize
from .errors import ConflictError, NotFoundError, ServiceError, ValidationError
from .ledger import LedgerWriter
from .listing import decode_cursor, encode_cursor, paginate
from .projection import ORDER_FIELDS, TIMESTAMP_FIELDS, apply, drift, snapshot, to_json_value
from .schemas import (
    LedgerEntryRead, OrderCreate, OrderFilters, OrderPage, OrderRead, OrderUpdate, ProjectionCheck,
)
from .sequencing import month_key, next_order_number

logger = get_logger(__name__)

# Fields an update may not set to null
REQUIRED_UPDATE_FIELDS = (
    "customer_id", "product_type_id", "title", "description",
    "process_stage", "received_date", "promised_date", "notes",
)

# (event type, patch, reason) or None when nothing would change
Mutation = Optional[Tuple[LedgerEventType, Dict[str, Any], Optional[str]]]


def _is_order_number_conflict(exc: IntegrityError) -> bool:
    return "order_number" in str(exc.orig)


class OrderService:
    def __init__(
        self,
        db: Session,
        clock: Callable[[], datetime] = utcnow,
        settings: Optional[Settings] = None,
    ):
        self.db = db
        self.clock = clock
        self.settings = settings or get_settings()
        self.orders = OrderRepository(db)
        self.ledger = LedgerWriter(db)

    # ------------------------------------------------------------------
    # transaction plumbing

    @contextmanager
    def _transaction(self):
        try:
            yield
            self.db.commit()
        except (ServiceError, IntegrityError):
            self.db.rollback()
            raise
        except Exception:
            self.db.rollback()
            logger.error("Order transaction rolled back", exc_info=True)
            raise

    def _load_for_update(self, order_id: str, include_deleted: bool = False) -> Order:
        order = self.orders.get_for_update(order_id)
        if order is None or (order.is_deleted and not include_deleted):
            raise NotFoundError(f"Order {order_id} not found")
        return order

    def _mutate(
        self,
        order_id: str,
        actor: Actor,
        action: Action,
        build: Callable[[Order, datetime], Mutation],
        include_deleted: bool = False,
    ) -> OrderRead:
        authorize(actor, action)
        try:
            with self._transaction():
                order = self._load_for_update(order_id, include_deleted)
                now = self.clock()
                mutation = build(order, now)
                entry = None
                if mutation is not None:
                    event_type, patch, reason = mutation
                    effective = {
                        name: value for name, value in patch.items()
                        if to_json_value(getattr(order, name)) != to_json_value(value)
                    }
                    if effective:
                        before = snapshot(order)
                        apply(order, effective, now)
                        entry = self.ledger.write(
                            order.id, actor.user_id, event_type, before, snapshot(order),
                            reason=reason, now=now, is_test=order.is_test,
                        )
                        self.db.flush()
        except IntegrityError as exc:
            logger.warning(
                f"Concurrent write rejected for order {order_id}",
                extra={'extra_fields': {'order_id': order_id, 'action': action.value}},
            )
            raise ConflictError("Order was modified concurrently; reload and retry") from exc

        if entry is not None:
            logger.info(
                f"Order {order.order_number}: {entry.summary}",
                extra={'extra_fields': {
                    'order_id': order.id,
                    'event_type': entry.event_type.value,
                    'actor_user_id': actor.user_id,
                    'ledger_entry_id': entry.id,
                }},
            )
        return self._read(order, now)

    # ------------------------------------------------------------------
    # validation helpers

    def _require_customer(self, customer_id: str) -> Customer:
        customer = self.db.get(Customer, customer_id)
        if customer is None or customer.is_deleted:
            raise ValidationError(f"Customer {customer_id} does not exist")
        return customer

    def _require_product_type(self, product_type_id: str) -> ProductType:
        product_type = self.db.get(ProductType, product_type_id)
        if product_type is None or product_type.is_deleted or not product_type.active:
            raise ValidationError(f"Product type {product_type_id} does not exist or is inactive")
        return product_type

    def _require_vendor(self, vendor_id: str) -> Vendor:
        vendor = self.db.get(Vendor, vendor_id)
        if vendor is None or vendor.is_deleted or not vendor.active:
            raise ValidationError(f"Vendor {vendor_id} does not exist or is inactive")
        return vendor

    @staticmethod
    def _require_open(order: Order, what: str) -> None:
        if is_terminal(order.status):
            raise ConflictError(
                f"Order {order.order_number} is {OrderStatus(order.status).value}; cannot {what}"
            )

    # ------------------------------------------------------------------
    # commands

    def create_order(self, data: OrderCreate, actor: Actor) -> OrderRead:
        authorize(actor, Action.ORDER_CREATE)
        attempts = self.settings.ORDER_NUMBER_MAX_ATTEMPTS
        for attempt in range(1, attempts + 1):
            try:
                with self._transaction():
                    self._require_customer(data.customer_id)
                    self._require_product_type(data.product_type_id)
                    now = self.clock()
                    order = Order(
                        id=generate_id(EntityKind.ORDER),
                        order_number=next_order_number(self.db, month_key(now)),
                        customer_id=data.customer_id,
                        product_type_id=data.product_type_id,
                        title=data.title,
                        description=data.description,
                        quantity=data.quantity,
                        status=OrderStatus.NEW,
                        process_stage=data.process_stage,
                        current_vendor_id=None,
                        received_date=data.received_date or now,
                        promised_date=data.promised_date,
                        internal_due_date=data.internal_due_date,
                        delivered_at=None,
                        notes=data.notes,
                        is_deleted=False,
                        is_test=data.is_test,
                        created_at=now,
                        updated_at=now,
                    )
                    self.orders.add(order)
                    entry = self.ledger.write(
                        order.id, actor.user_id, LedgerEventType.ORDER_CREATED,
                        None, snapshot(order), now=now, is_test=data.is_test,
                    )
            except IntegrityError as exc:
                if not _is_order_number_conflict(exc):
                    logger.error("Order insert failed", exc_info=True)
                    raise
                logger.warning(
                    f"Order number collision, retrying ({attempt}/{attempts})",
                    extra={'extra_fields': {'attempt': attempt}},
                )
                continue

            logger.info(
                f"Order {order.order_number} created",
                extra={'extra_fields': {
                    'order_id': order.id,
                    'order_number': order.order_number,
                    'actor_user_id': actor.user_id,
                    'ledger_entry_id': entry.id,
                }},
            )
            return self._read(order, now)

        raise ConflictError(f"Could not allocate a unique order number after {attempts} attempts")

    def update_order(self, order_id: str, patch: OrderUpdate, actor: Actor) -> OrderRead:
        changes = patch.model_dump(exclude_unset=True)
        cleared = sorted(name for name in REQUIRED_UPDATE_FIELDS if name in changes and changes[name] is None)
        if cleared:
            raise ValidationError(f"Fields cannot be cleared: {', '.join(cleared)}")

        def build(order: Order, now: datetime) -> Mutation:
            if "customer_id" in changes and changes["customer_id"] != order.customer_id:
                self._require_customer(changes["customer_id"])
            if "product_type_id" in changes and changes["product_type_id"] != order.product_type_id:
                self._require_product_type(changes["product_type_id"])
            return LedgerEventType.ORDER_UPDATED, changes, None

        return self._mutate(order_id, actor, Action.ORDER_UPDATE, build)

    def change_status(self, order_id: str, new_status: str, actor: Actor) -> OrderRead:
        try:
            target = OrderStatus(new_status)
        except ValueError:
            allowed = ", ".join(status.value for status in OrderStatus)
            raise ValidationError(f"Invalid status {new_status!r}. Must be one of: {allowed}") from None

        def build(order: Order, now: datetime) -> Mutation:
            current = OrderStatus(order.status)
            self._require_open(order, "change status")
            if target == current:
                return None
            if not can_transition(current, target):
                raise ConflictError(f"Cannot move order from {current.value} to {target.value}")
            patch: Dict[str, Any] = {"status": target}
            if target == OrderStatus.DELIVERED:
                patch["delivered_at"] = now
            return LedgerEventType.STATUS_CHANGED, patch, None

        return self._mutate(order_id, actor, Action.ORDER_CHANGE_STATUS, build)

    def assign_vendor(self, order_id: str, vendor_id: Optional[str], actor: Actor) -> OrderRead:
        def build(order: Order, now: datetime) -> Mutation:
            self._require_open(order, "change vendor")
            if vendor_id is not None:
                self._require_vendor(vendor_id)
            if order.current_vendor_id == vendor_id:
                return None
            return LedgerEventType.VENDOR_CHANGED, {"current_vendor_id": vendor_id}, None

        return self._mutate(order_id, actor, Action.ORDER_ASSIGN_VENDOR, build)

    def mark_delivered(self, order_id: str, actor: Actor) -> OrderRead:
        def build(order: Order, now: datetime) -> Mutation:
            self._require_open(order, "mark delivered")
            patch = {"status": OrderStatus.DELIVERED, "delivered_at": now}
            return LedgerEventType.DELIVERED_MARKED, patch, None

        return self._mutate(order_id, actor, Action.ORDER_MARK_DELIVERED, build)

    def cancel_order(self, order_id: str, reason: Optional[str], actor: Actor) -> OrderRead:
        reason = (reason or "").strip() or None

        def build(order: Order, now: datetime) -> Mutation:
            self._require_open(order, "cancel")
            return LedgerEventType.CANCELLED_MARKED, {"status": OrderStatus.CANCELLED}, reason

        return self._mutate(order_id, actor, Action.ORDER_CANCEL, build)

    def soft_delete_order(self, order_id: str, actor: Actor) -> OrderRead:
        def build(order: Order, now: datetime) -> Mutation:
            if order.is_deleted:
                raise NotFoundError(f"Order {order_id} not found")
            return LedgerEventType.SOFT_DELETED, {"is_deleted": True}, None

        return self._mutate(order_id, actor, Action.ORDER_SOFT_DELETE, build, include_deleted=True)

    def restore_order(self, order_id: str, actor: Actor) -> OrderRead:
        def build(order: Order, now: datetime) -> Mutation:
            if not order.is_deleted:
                raise ConflictError(f"Order {order.order_number} is not deleted")
            return LedgerEventType.RESTORED, {"is_deleted": False}, None

        return self._mutate(order_id, actor, Action.ORDER_RESTORE, build, include_deleted=True)

    # ------------------------------------------------------------------
    # queries

    def _read(self, order: Order, now: Optional[datetime] = None, customer_name: Optional[str] = None) -> OrderRead:
        now = now or self.clock()
        if customer_name is None:
            customer = self.db.get(Customer, order.customer_id)
            customer_name = customer.name if customer else None
        is_delayed, days_delayed = compute_delay(order.promised_date, order.status, now)
        data = {name: getattr(order, name) for name in ORDER_FIELDS + TIMESTAMP_FIELDS}
        return OrderRead(
            **data,
            customer_name=customer_name,
            is_delayed=is_delayed,
            days_delayed=days_delayed,
        )

    def get_order(self, order_id: str) -> OrderRead:
        order = self.orders.get(order_id)
        if order is None or order.is_deleted:
            raise NotFoundError(f"Order {order_id} not found")
        return self._read(order)

    def get_ledger(self, order_id: str) -> List[LedgerEntryRead]:
        """Audit timeline, oldest first. Available for deleted orders too."""
        if self.orders.get(order_id) is None:
            raise NotFoundError(f"Order {order_id} not found")
        entries = LedgerRepository(self.db).list_for_order(order_id)
        return [LedgerEntryRead.model_validate(entry) for entry in entries]

    def verify_projection(self, order_id: str) -> ProjectionCheck:
        order = self.orders.get(order_id)
        if order is None:
            raise NotFoundError(f"Order {order_id} not found")
        differences = drift(order, LedgerRepository(self.db).list_for_order(order_id))
        if differences:
            logger.warning(
                f"Projection drift detected for order {order.order_number}",
                extra={'extra_fields': {'order_id': order.id, 'fields': sorted(differences)}},
            )
        return ProjectionCheck(order_id=order.id, consistent=not differences, drift=differences)

    def _page_size(self, page_size: Optional[int]) -> int:
        if page_size is None:
            return self.settings.ORDERS_DEFAULT_PAGE_SIZE
        ceiling = self.settings.ORDERS_MAX_PAGE_SIZE
        if page_size < 1 or page_size > ceiling:
            raise ValidationError(f"page_size must be between 1 and {ceiling}")
        return page_size

    def list_orders(
        self,
        filters: Optional[OrderFilters] = None,
        search: Optional[str] = None,
        cursor: Optional[str] = None,
        page_size: Optional[int] = None,
    ) -> OrderPage:
        filters = filters or OrderFilters()
        page_size = self._page_size(page_size)
        after = None
        as_of = self.clock()
        if cursor:
            after, as_of = decode_cursor(cursor)

        stmt = (
            select(Order, Customer.name)
            .join(Customer, Order.customer_id == Customer.id)
            .where(Order.is_deleted.is_(False))
        )
        if filters.status:
            stmt = stmt.where(Order.status.in_(filters.status))
        if filters.vendor_id:
            stmt = stmt.where(Order.current_vendor_id == filters.vendor_id)
        if filters.product_type_id:
            stmt = stmt.where(Order.product_type_id == filters.product_type_id)
        if filters.customer_id:
            stmt = stmt.where(Order.customer_id == filters.customer_id)
        if filters.delayed_only:
            stmt = stmt.where(Order.promised_date < as_of, Order.status.notin_(tuple(TERMINAL_STATUSES)))
        if filters.promised_from:
            stmt = stmt.where(Order.promised_date >= filters.promised_from)
        if filters.promised_to:
            stmt = stmt.where(Order.promised_date <= filters.promised_to)
        term = (search or "").strip()
        if term:
            stmt = stmt.where(or_(
                Customer.name.icontains(term, autoescape=True),
                Order.order_number.icontains(term, autoescape=True),
                Order.title.icontains(term, autoescape=True),
            ))
        stmt = stmt.order_by(Order.promised_date.asc(), Order.id.asc())

        rows = self.db.execute(stmt).all()
        names = {order.id: name for order, name in rows}
        page, next_key = paginate([order for order, _ in rows], as_of, after, page_size)
        return OrderPage(
            items=[self._read(order, as_of, names[order.id]) for order in page],
            next_cursor=encode_cursor(next_key, as_of) if next_key else None,
            page_size=page_size,
            as_of=as_of,
        )

    def count_by_status(self) -> Dict[str, int]:
        """Live order counts per status, plus the computed ``DELAYED`` count."""
        now = self.clock()
        counts = {status.value: 0 for status in OrderStatus}
        rows = self.db.execute(
            select(Order.status, func.count())
            .where(Order.is_deleted.is_(False))
            .group_by(Order.status)
        ).all()
        for status, count in rows:
            counts[OrderStatus(status).value] = count
        counts["DELAYED"] = self.db.execute(
            select(func.count())
            .select_from(Order)
            .where(
                Order.is_deleted.is_(False),
                Order.promised_date < now,
                Order.status.notin_(tuple(TERMINAL_STATUSES)),
            )
        ).scalar_one()
        return counts
