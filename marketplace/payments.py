"""
Payment intents and payment capture.

``create_payment_intent`` prices the intent from the stored order total and
is idempotent per ``(order, Idempotency-Key)``. ``confirm_payment`` records
the provider result on the order; replaying the same payment id is a no-op,
a different id against a paid order is a conflict.
"""
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import config, lifecycle, models, schemas
from .errors import Conflict, Forbidden, ValidationFailed
from .gateway import GatewayError, get_gateway
from .log import get_logger
from .models import IntentStatus, OrderStatus, PaymentMethod
from .utils import to_cents

logger = get_logger(__name__)

SUCCESS_STATUSES = {"succeeded", "completed"}


def _owned_order(db: Session, order_id: int, actor: models.User) -> models.Order:
    order = lifecycle.get_order(db, order_id)
    if order.user_id != actor.id and not lifecycle.manages_orders(db, actor):
        raise Forbidden("Not authorized to update this order")
    return order


def _find_intent(db: Session, order_id: int, idempotency_key: str) -> Optional[models.PaymentIntent]:
    return (
        db.query(models.PaymentIntent)
        .filter(
            models.PaymentIntent.order_id == order_id,
            models.PaymentIntent.idempotency_key == idempotency_key,
        )
        .first()
    )


def create_payment_intent(
    db: Session,
    data: schemas.PaymentIntentCreate,
    actor: models.User,
    idempotency_key: Optional[str] = None,
) -> models.PaymentIntent:
    order = _owned_order(db, data.order_id, actor)

    if idempotency_key:
        existing = _find_intent(db, order.id, idempotency_key)
        if existing:
            logger.info("payment_intent_replayed", order_id=order.id, intent_id=existing.id)
            return existing

    if order.is_paid or order.status != OrderStatus.PENDING.value:
        raise Conflict("Order is not awaiting payment")
    if order.payment_method == PaymentMethod.CASH_ON_DELIVERY.value:
        raise ValidationFailed("Cash on Delivery orders are paid on delivery")

    amount_cents = to_cents(order.total_price)
    if data.amount is not None and data.amount != amount_cents:
        raise ValidationFailed(f"Amount {data.amount} does not match order total {amount_cents}")

    currency = config.get_settings().currency
    try:
        remote = get_gateway().create_intent(
            amount_cents,
            currency,
            metadata={"order_id": order.id, "order_number": order.order_number},
        )
    except GatewayError as e:
        logger.warning("payment_intent_failed", order_id=order.id, error=str(e))
        raise ValidationFailed(f"Payment failed: {e}") from e

    intent = models.PaymentIntent(
        id=remote["id"],
        order_id=order.id,
        amount_cents=amount_cents,
        currency=currency,
        status=IntentStatus.REQUIRES_CONFIRMATION.value,
        client_secret=remote["client_secret"],
        idempotency_key=idempotency_key,
    )
    db.add(intent)
    try:
        db.commit()
    except IntegrityError:
        # concurrent request with the same key won the insert
        db.rollback()
        existing = _find_intent(db, order.id, idempotency_key) if idempotency_key else None
        if existing is None:
            raise
        return existing
    db.refresh(intent)
    logger.info("payment_intent_created", order_id=order.id, intent_id=intent.id, amount_cents=amount_cents)
    return intent


def confirm_payment(
    db: Session,
    order_id: int,
    data: schemas.PaymentResultIn,
    actor: models.User,
) -> models.Order:
    order = _owned_order(db, order_id, actor)

    if order.is_paid:
        if (order.payment_result or {}).get("id") == data.id:
            return order
        raise Conflict("Order is already paid")
    if order.status == OrderStatus.CANCELLED.value:
        raise Conflict("Cannot pay a cancelled order")
    if data.status.lower() not in SUCCESS_STATUSES:
        raise ValidationFailed(f"Payment not completed: {data.status}")

    intent = db.get(models.PaymentIntent, data.id)
    if intent is not None:
        if intent.order_id != order.id:
            raise ValidationFailed("Payment does not belong to this order")
        intent.status = IntentStatus.SUCCEEDED.value

    now = datetime.utcnow()
    order.is_paid = True
    order.paid_at = now
    order.payment_result = {
        "id": data.id,
        "status": data.status,
        "update_time": data.update_time or now.isoformat(),
        "email_address": data.payer.email_address if data.payer else None,
    }
    logger.info("payment_confirmed", order_id=order.id, payment_id=data.id, amount=str(order.total_price))

    if order.status == OrderStatus.PENDING.value:
        return lifecycle.transition(db, order, OrderStatus.PROCESSING, actor, note="payment captured")
    db.commit()
    db.refresh(order)
    return order
