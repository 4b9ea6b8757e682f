from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ordertrack.infrastructure.db import get_db
from ordertrack.application.access import Actor
from ordertrack.application.service import OrderService
from ordertrack.application.schemas import (
    CancelRequest, OrderCreate, OrderFilters, OrderUpdate, StatusChange, VendorAssignment,
)
from ordertrack.domain.workflow import OrderStatus
from .deps import current_actor
from .envelope import ok

router = APIRouter(prefix="/api/orders", tags=["orders"])


@router.get("")
def list_orders(
    status: Optional[List[OrderStatus]] = Query(default=None),
    vendor_id: Optional[str] = None,
    product_type_id: Optional[str] = None,
    customer_id: Optional[str] = None,
    delayed_only: bool = False,
    promised_from: Optional[datetime] = None,
    promised_to: Optional[datetime] = None,
    search: Optional[str] = None,
    cursor: Optional[str] = None,
    page_size: Optional[int] = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(current_actor),
):
    """Control-tower listing: delayed first, worst delay first, then nearest promise."""
    filters = OrderFilters(
        status=status,
        vendor_id=vendor_id,
        product_type_id=product_type_id,
        customer_id=customer_id,
        delayed_only=delayed_only,
        promised_from=promised_from,
        promised_to=promised_to,
    )
    page = OrderService(db).list_orders(filters, search=search, cursor=cursor, page_size=page_size)
    return ok(page)


@router.get("/summary")
def order_summary(db: Session = Depends(get_db), actor: Actor = Depends(current_actor)):
    return ok(OrderService(db).count_by_status())


@router.post("", status_code=201)
def create_order(payload: OrderCreate, db: Session = Depends(get_db), actor: Actor = Depends(current_actor)):
    return ok(OrderService(db).create_order(payload, actor))


@router.get("/{order_id}")
def get_order(order_id: str, db: Session = Depends(get_db), actor: Actor = Depends(current_actor)):
    return ok(OrderService(db).get_order(order_id))


@router.patch("/{order_id}")
def update_order(
    order_id: str,
    payload: OrderUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(current_actor),
):
    return ok(OrderService(db).update_order(order_id, payload, actor))


@router.post("/{order_id}/status")
def change_status(
    order_id: str,
    payload: StatusChange,
    db: Session = Depends(get_db),
    actor: Actor = Depends(current_actor),
):
    return ok(OrderService(db).change_status(order_id, payload.status, actor))


@router.post("/{order_id}/vendor")
def assign_vendor(
    order_id: str,
    payload: VendorAssignment,
    db: Session = Depends(get_db),
    actor: Actor = Depends(current_actor),
):
    return ok(OrderService(db).assign_vendor(order_id, payload.vendor_id, actor))


@router.post("/{order_id}/deliver")
def mark_delivered(order_id: str, db: Session = Depends(get_db), actor: Actor = Depends(current_actor)):
    return ok(OrderService(db).mark_delivered(order_id, actor))


@router.post("/{order_id}/cancel")
def cancel_order(
    order_id: str,
    payload: Optional[CancelRequest] = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(current_actor),
):
    reason = payload.reason if payload else None
    return ok(OrderService(db).cancel_order(order_id, reason, actor))


@router.delete("/{order_id}")
def soft_delete_order(order_id: str, db: Session = Depends(get_db), actor: Actor = Depends(current_actor)):
    return ok(OrderService(db).soft_delete_order(order_id, actor))


@router.post("/{order_id}/restore")
def restore_order(order_id: str, db: Session = Depends(get_db), actor: Actor = Depends(current_actor)):
    return ok(OrderService(db).restore_order(order_id, actor))


@router.get("/{order_id}/ledger")
def get_ledger(order_id: str, db: Session = Depends(get_db), actor: Actor = Depends(current_actor)):
    return ok(OrderService(db).get_ledger(order_id))


@router.get("/{order_id}/verify")
def verify_projection(order_id: str, db: Session = Depends(get_db), actor: Actor = Depends(current_actor)):
    return ok(OrderService(db).verify_projection(order_id))
