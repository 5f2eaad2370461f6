from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from .. import lifecycle, models, payments, schemas
from ..deps import get_current_user, get_db, require_permission
from ..models import OrderStatus
from ..utils import pagination

router = APIRouter(prefix="/api/orders", tags=["orders"])


@router.post("", response_model=schemas.OrderRead, status_code=201)
async def create_order(
    payload: schemas.OrderCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return lifecycle.create_order(db, user, payload)


@router.get("/myorders", response_model=schemas.OrderPage)
async def my_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    rows, total = lifecycle.list_user_orders(db, user.id, page, limit)
    return {"data": rows, "pagination": pagination(page, limit, total)}


@router.get("", response_model=schemas.OrderPage)
async def list_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[OrderStatus] = None,
    is_paid: Optional[bool] = None,
    db: Session = Depends(get_db),
    _: models.User = Depends(require_permission("orders", "manage")),
):
    rows, total = lifecycle.list_orders(db, page, limit, status=status, is_paid=is_paid)
    return {"data": rows, "pagination": pagination(page, limit, total)}


@router.get("/{order_id}", response_model=schemas.OrderRead)
async def get_order(order_id: int, db: Session = Depends(get_db), user: models.User = Depends(get_current_user)):
    return lifecycle.get_order(db, order_id, viewer=user)


@router.get("/{order_id}/history", response_model=List[schemas.OrderEventRead])
async def order_history(order_id: int, db: Session = Depends(get_db), user: models.User = Depends(get_current_user)):
    order = lifecycle.get_order(db, order_id, viewer=user)
    return lifecycle.order_history(db, order)


@router.put("/{order_id}/pay", response_model=schemas.OrderRead)
async def pay_order(
    order_id: int,
    payload: schemas.PaymentResultIn,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return payments.confirm_payment(db, order_id, payload, user)


@router.put("/{order_id}/status", response_model=schemas.OrderRead)
async def update_status(
    order_id: int,
    payload: schemas.StatusUpdate,
    db: Session = Depends(get_db),
    actor: models.User = Depends(require_permission("orders", "manage")),
):
    return lifecycle.update_status(db, order_id, payload, actor)


@router.put("/{order_id}/deliver", response_model=schemas.OrderRead)
async def deliver_order(
    order_id: int,
    payload: Optional[schemas.DeliverRequest] = None,
    db: Session = Depends(get_db),
    actor: models.User = Depends(require_permission("orders", "manage")),
):
    tracking = payload.tracking_number if payload else None
    return lifecycle.mark_delivered(db, order_id, actor, tracking_number=tracking)


@router.put("/{order_id}/cancel", response_model=schemas.OrderRead)
async def cancel_order(order_id: int, db: Session = Depends(get_db), user: models.User = Depends(get_current_user)):
    return lifecycle.cancel_order(db, order_id, user)
