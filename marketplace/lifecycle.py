"""
Order lifecycle.

Orders are priced server-side, reserve stock on creation and move through a
fixed transition table. Every status change goes through ``transition`` so
guards, stock restoration, refunds, settlement and the audit trail are
applied in one place and committed together.
"""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from . import config, models, roles, schemas, settlement
from .errors import Forbidden, InvalidTransition, NotFound, ValidationFailed
from .gateway import get_gateway
from .log import get_logger
from .models import IntentStatus, OrderStatus, PaymentMethod
from .utils import percent_of, round_amount, sanitize_input, to_cents

logger = get_logger(__name__)

TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.PROCESSING, OrderStatus.CANCELLED},
    OrderStatus.PROCESSING: {OrderStatus.SHIPPED, OrderStatus.CANCELLED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED},
    OrderStatus.DELIVERED: set(),
    OrderStatus.CANCELLED: set(),
}

def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return target in TRANSITIONS[current]


def manages_orders(db: Session, user: models.User) -> bool:
    return roles.has_permission(db, user, "orders", "manage")


# -------------------- Pricing --------------------

def price_order(items_price: Decimal) -> Tuple[Decimal, Decimal, Decimal, Decimal]:
    """Return ``(items, shipping, tax, total)`` for a cart subtotal."""
    settings = config.get_settings()
    items_price = round_amount(items_price)
    shipping = Decimal("0.00") if items_price > settings.free_shipping_threshold else round_amount(settings.shipping_price)
    tax = percent_of(items_price, settings.tax_rate)
    return items_price, shipping, tax, round_amount(items_price + shipping + tax)


# -------------------- Creation / queries --------------------

def create_order(db: Session, user: models.User, data: schemas.OrderCreate) -> models.Order:
    # merge duplicate lines so the stock check sees the full quantity
    wanted = {}
    for line in data.order_items:
        wanted[line.product] = wanted.get(line.product, 0) + line.quantity

    # check every line before touching stock
    lines = []
    for product_id, quantity in wanted.items():
        product = db.get(models.Product, product_id)
        if not product or not product.is_active:
            raise NotFound(f"Product {product_id} not found")
        if product.count_in_stock < quantity:
            raise ValidationFailed(
                f"Insufficient stock for {product.name}. "
                f"Available: {product.count_in_stock}, Requested: {quantity}"
            )
        lines.append((product, quantity))

    items = []
    subtotal = Decimal("0")
    for product, quantity in lines:
        product.count_in_stock -= quantity
        price = round_amount(product.price)
        subtotal += price * quantity
        items.append(
            models.OrderItem(
                product_id=product.id,
                seller_id=product.seller_id,
                name=product.name,
                quantity=quantity,
                price=price,
            )
        )

    items_price, shipping, tax, total = price_order(subtotal)
    order = models.Order(
        user_id=user.id,
        items=items,
        shipping_address=data.shipping_address.model_dump(),
        payment_method=data.payment_method.value,
        items_price=items_price,
        shipping_price=shipping,
        tax_price=tax,
        total_price=total,
        status=OrderStatus.PENDING.value,
        notes=sanitize_input(data.notes) or None,
    )
    order.events.append(models.OrderEvent(from_status=None, to_status=OrderStatus.PENDING.value, actor_id=user.id))
    db.add(order)
    db.commit()
    db.refresh(order)
    logger.info("order_created", order_id=order.id, order_number=order.order_number, user_id=user.id, total=str(total))
    return order


def get_order(db: Session, order_id: int, viewer: Optional[models.User] = None) -> models.Order:
    order = db.get(models.Order, order_id)
    if not order:
        raise NotFound("Order not found")
    if viewer is not None and order.user_id != viewer.id and not manages_orders(db, viewer):
        raise Forbidden("Not authorized to view this order")
    return order


def _page(query, page: int, limit: int):
    total = query.order_by(None).count()
    rows = (
        query.order_by(models.Order.created_at.desc(), models.Order.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return rows, total


def list_user_orders(db: Session, user_id: int, page: int = 1, limit: int = 10) -> Tuple[List[models.Order], int]:
    return _page(db.query(models.Order).filter(models.Order.user_id == user_id), page, limit)


def list_orders(
    db: Session,
    page: int = 1,
    limit: int = 10,
    status: Optional[OrderStatus] = None,
    is_paid: Optional[bool] = None,
) -> Tuple[List[models.Order], int]:
    query = db.query(models.Order)
    if status is not None:
        query = query.filter(models.Order.status == status.value)
    if is_paid is not None:
        query = query.filter(models.Order.is_paid.is_(is_paid))
    return _page(query, page, limit)


def list_seller_orders(db: Session, seller_id: int, page: int = 1, limit: int = 20) -> Tuple[List[models.Order], int]:
    sold = db.query(models.OrderItem.order_id).filter(models.OrderItem.seller_id == seller_id)
    return _page(db.query(models.Order).filter(models.Order.id.in_(sold)), page, limit)


def order_history(db: Session, order: models.Order) -> List[models.OrderEvent]:
    return list(order.events)


def status_distribution(db: Session) -> dict:
    counts = dict(db.query(models.Order.status, func.count(models.Order.id)).group_by(models.Order.status).all())
    return {s.value: counts.get(s.value, 0) for s in OrderStatus}


# -------------------- State machine --------------------

def _restock(db: Session, order: models.Order):
    for item in order.items:
        product = db.get(models.Product, item.product_id)
        if product is not None:
            product.count_in_stock += item.quantity


def _refund(db: Session, order: models.Order):
    """Compensate a captured payment when a paid order is cancelled."""
    result = dict(order.payment_result or {})
    payment_id = result.get("id")
    if payment_id:
        get_gateway().refund(payment_id, to_cents(order.total_price))
    db.query(models.PaymentIntent).filter(
        models.PaymentIntent.order_id == order.id,
        models.PaymentIntent.status == IntentStatus.SUCCEEDED.value,
    ).update({models.PaymentIntent.status: IntentStatus.REFUNDED.value}, synchronize_session=False)
    result["status"] = "refunded"
    result["update_time"] = datetime.utcnow().isoformat()
    order.payment_result = result
    logger.info("order_refunded", order_id=order.id, payment_id=payment_id, amount=str(order.total_price))


def _void_intents(db: Session, order: models.Order):
    voided = (
        db.query(models.PaymentIntent)
        .filter(
            models.PaymentIntent.order_id == order.id,
            models.PaymentIntent.status == IntentStatus.REQUIRES_CONFIRMATION.value,
        )
        .update({models.PaymentIntent.status: IntentStatus.CANCELLED.value}, synchronize_session=False)
    )
    if voided:
        logger.info("payment_intents_cancelled", order_id=order.id, count=voided)


def _check_guards(order: models.Order, target: OrderStatus):
    cash = order.payment_method == PaymentMethod.CASH_ON_DELIVERY.value
    if target in (OrderStatus.PROCESSING, OrderStatus.SHIPPED) and not order.is_paid and not cash:
        raise ValidationFailed(f"Order must be paid before it can be {target.value}")


def transition(
    db: Session,
    order: models.Order,
    target: OrderStatus,
    actor: Optional[models.User],
    tracking_number: Optional[str] = None,
    note: Optional[str] = None,
) -> models.Order:
    """Move ``order`` to ``target`` applying guards and side effects.

    Re-applying the current status only updates the tracking number. The
    note is kept on the audit event; the customer's order notes are left alone.
    """
    current = OrderStatus(order.status)
    if target != current:
        if not can_transition(current, target):
            raise InvalidTransition(current.value, target.value)
        _check_guards(order, target)

    if tracking_number:
        order.tracking_number = sanitize_input(tracking_number)

    if target == current:
        db.commit()
        db.refresh(order)
        return order

    now = datetime.utcnow()
    if target == OrderStatus.DELIVERED:
        order.is_delivered = True
        order.delivered_at = now
        if not order.is_paid:
            # cash on delivery: collected by the courier
            order.is_paid = True
            order.paid_at = now
            order.payment_result = {"id": None, "status": "COMPLETED", "update_time": now.isoformat(), "email_address": None}
    elif target == OrderStatus.CANCELLED:
        _restock(db, order)
        if order.is_paid:
            _refund(db, order)
        else:
            _void_intents(db, order)

    order.status = target.value
    order.events.append(
        models.OrderEvent(
            from_status=current.value,
            to_status=target.value,
            actor_id=actor.id if actor else None,
            note=sanitize_input(note) or None,
        )
    )

    if target == OrderStatus.DELIVERED:
        settlement.settle_order(db, order)

    db.commit()
    db.refresh(order)
    logger.info(
        "order_status_changed",
        order_id=order.id,
        order_number=order.order_number,
        from_status=current.value,
        to_status=target.value,
        actor_id=actor.id if actor else None,
        tracking_number=order.tracking_number,
    )
    return order


def update_status(db: Session, order_id: int, data: schemas.StatusUpdate, actor: models.User) -> models.Order:
    order = get_order(db, order_id)
    return transition(db, order, data.status, actor, tracking_number=data.tracking_number, note=data.notes)


def mark_delivered(db: Session, order_id: int, actor: models.User, tracking_number: Optional[str] = None) -> models.Order:
    order = get_order(db, order_id)
    return transition(db, order, OrderStatus.DELIVERED, actor, tracking_number=tracking_number)


def cancel_order(db: Session, order_id: int, actor: models.User) -> models.Order:
    order = get_order(db, order_id, viewer=actor)
    if not manages_orders(db, actor) and order.status != OrderStatus.PENDING.value:
        raise Forbidden("Only pending orders can be cancelled by the customer")
    return transition(db, order, OrderStatus.CANCELLED, actor)
