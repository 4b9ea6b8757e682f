from datetime import timedelta

import pytest

from ordertrack.application.errors import (
    ConflictError, ForbiddenError, NotFoundError, UnauthorizedError, ValidationError,
)
from ordertrack.application.projection import replay, snapshot
from ordertrack.application.schemas import OrderCreate, OrderUpdate
from ordertrack.domain.models import Order, OrderLedgerEntry
from ordertrack.domain.workflow import LedgerEventType, OrderStatus
from ordertrack.infrastructure.repositories import LedgerRepository


def ledger_for(db, order_id):
    return LedgerRepository(db).list_for_order(order_id)


def test_create_writes_one_entry_with_full_snapshot(db, make_order, clock):
    order = make_order(description="Matte finish")

    assert order.status == OrderStatus.NEW
    assert order.customer_name == "Acme Foods"
    assert order.received_date == clock.now
    entries = ledger_for(db, order.id)
    assert len(entries) == 1
    entry = entries[0]
    assert entry.event_type == LedgerEventType.ORDER_CREATED
    assert entry.actor_user_id == "U-emp00001"
    assert entry.version == 1
    assert entry.summary == f"created order {order.order_number}"
    assert entry.payload["changes"]["status"] == {"from": None, "to": "NEW"}
    assert entry.payload["changes"]["current_vendor_id"] == {"from": None, "to": None}


def test_create_rejects_unknown_customer(service, employee, clock):
    with pytest.raises(ValidationError):
        service.create_order(
            OrderCreate(
                customer_id="C-missing0",
                product_type_id="PT-cartons",
                title="Boxes",
                promised_date=clock.now,
            ),
            employee,
        )


def test_create_requires_actor(service, clock):
    data = OrderCreate(customer_id="C-acme0001", product_type_id="PT-cartons",
                       title="Boxes", promised_date=clock.now)
    with pytest.raises(UnauthorizedError):
        service.create_order(data, None)


def test_each_mutation_writes_exactly_one_entry(db, service, make_order, employee, clock):
    order = make_order()
    clock.advance(minutes=5)
    service.change_status(order.id, "IN_PROGRESS", employee)
    clock.advance(minutes=5)
    service.assign_vendor(order.id, "V-lamin001", employee)
    clock.advance(minutes=5)
    service.update_order(order.id, OrderUpdate(title="Cereal boxes v2", quantity=6000), employee)

    entries = ledger_for(db, order.id)
    assert [e.event_type for e in entries] == [
        LedgerEventType.ORDER_CREATED,
        LedgerEventType.STATUS_CHANGED,
        LedgerEventType.VENDOR_CHANGED,
        LedgerEventType.ORDER_UPDATED,
    ]
    assert [e.version for e in entries] == [1, 2, 3, 4]
    assert entries[2].summary == "changed vendor from (none) to V-lamin001"
    assert set(entries[3].payload["changes"]) == {"title", "quantity"}


def test_no_op_writes_nothing(db, service, make_order, employee, clock):
    order = make_order()
    clock.advance(hours=1)
    result = service.update_order(order.id, OrderUpdate(title=order.title), employee)
    service.change_status(order.id, "NEW", employee)
    service.assign_vendor(order.id, None, employee)

    assert len(ledger_for(db, order.id)) == 1
    assert result.updated_at == order.updated_at


def test_update_cannot_clear_required_fields(service, make_order, employee):
    order = make_order()
    with pytest.raises(ValidationError):
        service.update_order(order.id, OrderUpdate(promised_date=None), employee)


def test_mark_delivered_stamps_delivered_at(db, service, make_order, employee, clock):
    order = make_order()
    clock.advance(days=2)
    delivered = service.mark_delivered(order.id, employee)

    assert delivered.status == OrderStatus.DELIVERED
    assert delivered.delivered_at == clock.now
    entry = ledger_for(db, order.id)[-1]
    assert entry.event_type == LedgerEventType.DELIVERED_MARKED
    assert entry.summary == "marked as delivered"


def test_terminal_orders_are_locked(service, make_order, employee):
    order = make_order()
    service.cancel_order(order.id, "customer withdrew", employee)

    with pytest.raises(ConflictError):
        service.change_status(order.id, "IN_PROGRESS", employee)
    with pytest.raises(ConflictError):
        service.mark_delivered(order.id, employee)
    with pytest.raises(ConflictError):
        service.assign_vendor(order.id, "V-lamin001", employee)
    with pytest.raises(ConflictError):
        service.cancel_order(order.id, None, employee)


def test_ready_cannot_go_back_to_new(service, make_order, employee):
    order = make_order()
    service.change_status(order.id, "READY", employee)
    with pytest.raises(ConflictError):
        service.change_status(order.id, "NEW", employee)


def test_invalid_status_is_validation_error(service, make_order, employee):
    order = make_order()
    with pytest.raises(ValidationError):
        service.change_status(order.id, "SHIPPED", employee)


def test_cancel_reason_is_recorded(db, service, make_order, employee):
    order = make_order()
    service.cancel_order(order.id, "  customer withdrew ", employee)
    entry = ledger_for(db, order.id)[-1]
    assert entry.payload["reason"] == "customer withdrew"
    assert entry.summary == "cancelled order: customer withdrew"


def test_inactive_vendor_is_rejected(db, service, make_order, employee, seed):
    seed["vendor"].active = False
    db.commit()
    order = make_order()
    with pytest.raises(ValidationError):
        service.assign_vendor(order.id, "V-lamin001", employee)


def test_delay_is_computed_at_read_time(service, make_order, clock):
    order = make_order(promised_in_days=1)
    assert service.get_order(order.id).is_delayed is False

    clock.advance(days=3, hours=2)
    late = service.get_order(order.id)
    assert late.is_delayed is True
    assert late.days_delayed == 2


def test_delivered_orders_are_never_delayed(service, make_order, employee, clock):
    order = make_order(promised_in_days=1)
    clock.advance(days=5)
    service.mark_delivered(order.id, employee)
    read = service.get_order(order.id)
    assert read.is_delayed is False
    assert read.days_delayed == 0


def test_replay_matches_projection(db, service, make_order, employee, owner, clock):
    order = make_order()
    clock.advance(minutes=1)
    service.change_status(order.id, "IN_PROGRESS", employee)
    clock.advance(minutes=1)
    service.assign_vendor(order.id, "V-lamin001", employee)
    clock.advance(minutes=1)
    service.assign_vendor(order.id, None, employee)
    clock.advance(minutes=1)
    service.update_order(order.id, OrderUpdate(notes="rush"), employee)
    clock.advance(minutes=1)
    service.soft_delete_order(order.id, owner)
    clock.advance(minutes=1)
    service.restore_order(order.id, owner)
    clock.advance(minutes=1)
    service.mark_delivered(order.id, employee)

    row = db.get(Order, order.id)
    assert replay(ledger_for(db, order.id)) == snapshot(row)
    assert service.verify_projection(order.id).consistent is True


def test_verify_projection_reports_drift(db, service, make_order):
    order = make_order()
    row = db.get(Order, order.id)
    row.title = "edited behind the service's back"
    db.commit()

    check = service.verify_projection(order.id)
    assert check.consistent is False
    assert check.drift["title"]["ledger"] == "Cereal boxes"


def test_failed_ledger_write_leaves_projection_untouched(db, service, make_order, employee, monkeypatch):
    order = make_order()

    def broken_write(*args, **kwargs):
        raise RuntimeError("disk full")

    monkeypatch.setattr(service.ledger, "write", broken_write)
    with pytest.raises(RuntimeError):
        service.change_status(order.id, "IN_PROGRESS", employee)

    db.expire_all()
    assert db.get(Order, order.id).status == OrderStatus.NEW
    assert db.query(OrderLedgerEntry).filter_by(order_id=order.id).count() == 1


def test_employee_cannot_soft_delete(db, service, make_order, employee):
    order = make_order()
    with pytest.raises(ForbiddenError):
        service.soft_delete_order(order.id, employee)
    assert len(ledger_for(db, order.id)) == 1


def test_soft_delete_and_restore(db, service, make_order, owner):
    order = make_order()
    service.soft_delete_order(order.id, owner)

    with pytest.raises(NotFoundError):
        service.get_order(order.id)
    with pytest.raises(NotFoundError):
        service.soft_delete_order(order.id, owner)
    assert len(service.get_ledger(order.id)) == 2

    restored = service.restore_order(order.id, owner)
    assert restored.is_deleted is False
    with pytest.raises(ConflictError):
        service.restore_order(order.id, owner)
    assert [e.event_type for e in service.get_ledger(order.id)][-2:] == [
        LedgerEventType.SOFT_DELETED, LedgerEventType.RESTORED,
    ]


def test_deleted_orders_reject_other_mutations(service, make_order, owner, employee):
    order = make_order()
    service.soft_delete_order(order.id, owner)
    with pytest.raises(NotFoundError):
        service.change_status(order.id, "READY", employee)


def test_unknown_order_is_not_found(service, employee):
    with pytest.raises(NotFoundError):
        service.change_status("O-missing0", "READY", employee)
    with pytest.raises(NotFoundError):
        service.get_ledger("O-missing0")


def test_ledger_entry_payload_is_typed(service, make_order, employee):
    order = make_order()
    service.change_status(order.id, "IN_PROGRESS", employee)
    entry = service.get_ledger(order.id)[-1]
    assert entry.payload.changes["status"].from_ == "NEW"
    assert entry.payload.changes["status"].to == "IN_PROGRESS"


def test_count_by_status(service, make_order, employee, clock):
    late = make_order(promised_in_days=-3)
    make_order(promised_in_days=3)
    done = make_order(promised_in_days=-1)
    service.mark_delivered(done.id, employee)
    service.change_status(late.id, "IN_PROGRESS", employee)

    counts = service.count_by_status()
    assert counts["NEW"] == 1
    assert counts["IN_PROGRESS"] == 1
    assert counts["DELIVERED"] == 1
    assert counts["DELAYED"] == 1


def test_clock_is_used_for_received_date(make_order, clock):
    order = make_order(received_date=clock.now - timedelta(days=2))
    assert order.received_date == clock.now - timedelta(days=2)


def test_mark_delivered_twice_is_conflict_without_new_entries(db, service, make_order, employee):
    order = make_order()
    service.mark_delivered(order.id, employee)
    with pytest.raises(ConflictError):
        service.mark_delivered(order.id, employee)
    assert len(ledger_for(db, order.id)) == 2
