import pytest
from sqlalchemy import text
from sqlalchemy.exc import DBAPIError

from ordertrack.application.ledger import LedgerWriter, build_summary, compute_changes
from ordertrack.domain.models import LedgerImmutableError, OrderLedgerEntry
from ordertrack.domain.workflow import LedgerEventType


def test_raw_update_is_refused_by_trigger(db, make_order):
    order = make_order()
    with pytest.raises(DBAPIError, match="immutable"):
        db.execute(
            text("UPDATE order_ledger_entries SET summary = 'rewritten' WHERE order_id = :id"),
            {"id": order.id},
        )
    db.rollback()


def test_raw_delete_is_refused_by_trigger(db, make_order):
    order = make_order()
    with pytest.raises(DBAPIError, match="immutable"):
        db.execute(text("DELETE FROM order_ledger_entries WHERE order_id = :id"), {"id": order.id})
    db.rollback()
    assert db.query(OrderLedgerEntry).filter_by(order_id=order.id).count() == 1


def test_orm_update_is_refused(db, make_order):
    order = make_order()
    entry = db.query(OrderLedgerEntry).filter_by(order_id=order.id).one()
    entry.summary = "rewritten"
    with pytest.raises(LedgerImmutableError):
        db.flush()
    db.rollback()


def test_orm_delete_is_refused(db, make_order):
    order = make_order()
    entry = db.query(OrderLedgerEntry).filter_by(order_id=order.id).one()
    db.delete(entry)
    with pytest.raises(LedgerImmutableError):
        db.flush()
    db.rollback()


def test_writer_refuses_empty_diff(db, seed):
    snapshot = {"status": "NEW", "title": "Boxes"}
    with pytest.raises(ValueError):
        LedgerWriter(db).write("O-00000000", "U-owner001", LedgerEventType.ORDER_UPDATED, snapshot, snapshot)


def test_writer_refuses_missing_actor(db, seed):
    with pytest.raises(ValueError):
        LedgerWriter(db).write("O-00000000", "", LedgerEventType.ORDER_UPDATED, {"title": "a"}, {"title": "b"})


def test_compute_changes_only_reports_changed_fields():
    before = {"status": "NEW", "title": "Boxes", "notes": ""}
    after = {"status": "IN_PROGRESS", "title": "Boxes", "notes": ""}
    assert compute_changes(before, after) == {"status": {"from": "NEW", "to": "IN_PROGRESS"}}


def test_summaries():
    assert build_summary(
        LedgerEventType.ORDER_CREATED, {"order_number": {"from": None, "to": "2602-0001"}}
    ) == "created order 2602-0001"
    assert build_summary(LedgerEventType.CANCELLED_MARKED, {}, "customer withdrew") == (
        "cancelled order: customer withdrew"
    )
    assert build_summary(
        LedgerEventType.VENDOR_CHANGED, {"current_vendor_id": {"from": "V-1", "to": None}}
    ) == "removed vendor V-1"
    assert build_summary(
        LedgerEventType.STATUS_CHANGED, {"status": {"from": "NEW", "to": "READY"}}
    ) == "changed status from NEW to READY"
