"""
Seller commission accounting.

A delivered, paid order is settled once: for every seller with items on the
order a ledger entry records the gross, the platform fee taken at the
seller's commission rate, and the net owed to the seller. Balances and
withdrawals are computed from the ledger, never from order totals.
"""
from collections import defaultdict
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from . import config, models, schemas
from .errors import Conflict, NotFound, ValidationFailed
from .log import get_logger
from .models import OrderStatus, WithdrawalStatus
from .utils import percent_of, round_amount

logger = get_logger(__name__)

ZERO = Decimal("0.00")

WITHDRAWAL_TRANSITIONS = {
    WithdrawalStatus.PENDING: {WithdrawalStatus.PROCESSING, WithdrawalStatus.REJECTED},
    WithdrawalStatus.PROCESSING: {WithdrawalStatus.COMPLETED, WithdrawalStatus.REJECTED},
    WithdrawalStatus.COMPLETED: set(),
    WithdrawalStatus.REJECTED: set(),
}


def commission_rate_for(db: Session, seller_id: int) -> Decimal:
    store = db.query(models.Store).filter(models.Store.owner_id == seller_id).first()
    if store is not None and store.commission_rate is not None:
        return Decimal(store.commission_rate)
    return config.get_settings().commission_rate


def split_commission(gross: Decimal, rate: Decimal) -> tuple[Decimal, Decimal]:
    """Return ``(platform_fee, net)`` for a seller's gross at ``rate`` percent."""
    gross = round_amount(gross)
    fee = percent_of(gross, rate)
    return fee, gross - fee


def settle_order(db: Session, order: models.Order) -> List[models.LedgerEntry]:
    """Write ledger entries for ``order``. Safe to call more than once.

    The caller owns the transaction; nothing is committed here.
    """
    if order.status != OrderStatus.DELIVERED.value or not order.is_paid:
        raise ValidationFailed("Only paid, delivered orders can be settled")

    existing = db.query(models.LedgerEntry).filter(models.LedgerEntry.order_id == order.id).count()
    if existing:
        return []

    gross_by_seller: Dict[int, Decimal] = defaultdict(lambda: ZERO)
    items_by_seller: Dict[int, int] = defaultdict(int)
    for item in order.items:
        gross_by_seller[item.seller_id] += Decimal(item.price) * item.quantity
        items_by_seller[item.seller_id] += item.quantity

    entries = []
    for seller_id, gross in gross_by_seller.items():
        rate = commission_rate_for(db, seller_id)
        fee, net = split_commission(gross, rate)
        entry = models.LedgerEntry(
            seller_id=seller_id,
            order_id=order.id,
            gross_amount=round_amount(gross),
            commission_rate=rate,
            platform_fee=fee,
            net_amount=net,
            items_count=items_by_seller[seller_id],
        )
        db.add(entry)
        entries.append(entry)

    logger.info(
        "order_settled",
        order_id=order.id,
        sellers=len(entries),
        platform_fee=str(sum((e.platform_fee for e in entries), ZERO)),
    )
    return entries


def _sum(db: Session, column, *filters) -> Decimal:
    value = db.query(func.coalesce(func.sum(column), 0)).filter(*filters).scalar()
    return round_amount(value or 0)


def available_balance(db: Session, seller_id: int) -> Decimal:
    settled = _sum(db, models.LedgerEntry.net_amount, models.LedgerEntry.seller_id == seller_id)
    withdrawn = _sum(
        db,
        models.Withdrawal.amount,
        models.Withdrawal.seller_id == seller_id,
        models.Withdrawal.status != WithdrawalStatus.REJECTED.value,
    )
    return settled - withdrawn


def seller_earnings(
    db: Session,
    seller_id: int,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> schemas.Earnings:
    filters = [models.LedgerEntry.seller_id == seller_id]
    if start:
        filters.append(models.LedgerEntry.created_at >= start)
    if end:
        filters.append(models.LedgerEntry.created_at <= end)

    gross = _sum(db, models.LedgerEntry.gross_amount, *filters)
    fee = _sum(db, models.LedgerEntry.platform_fee, *filters)
    net = _sum(db, models.LedgerEntry.net_amount, *filters)
    orders, items = db.query(
        func.count(models.LedgerEntry.id), func.coalesce(func.sum(models.LedgerEntry.items_count), 0)
    ).filter(*filters).one()

    return schemas.Earnings(
        total_revenue=gross,
        platform_commission=commission_rate_for(db, seller_id),
        platform_fee=fee,
        net_earnings=net,
        total_orders=orders,
        total_items=items,
        available_balance=available_balance(db, seller_id),
    )


def platform_fees_collected(db: Session) -> Decimal:
    return _sum(db, models.LedgerEntry.platform_fee)


def request_withdrawal(db: Session, seller_id: int, data: schemas.WithdrawalCreate) -> models.Withdrawal:
    if not db.query(models.Store).filter(models.Store.owner_id == seller_id).first():
        raise NotFound("Store not found")

    amount = round_amount(data.amount)
    minimum = config.get_settings().min_withdrawal
    if amount < minimum:
        raise ValidationFailed(f"Minimum withdrawal amount is {minimum}")
    if amount > available_balance(db, seller_id):
        raise ValidationFailed("Insufficient balance for withdrawal")

    withdrawal = models.Withdrawal(
        seller_id=seller_id,
        amount=amount,
        bank_details=data.bank_details.model_dump(),
    )
    db.add(withdrawal)
    db.commit()
    db.refresh(withdrawal)
    logger.info("withdrawal_requested", withdrawal_id=withdrawal.id, seller_id=seller_id, amount=str(amount))
    return withdrawal


def list_withdrawals(db: Session, seller_id: Optional[int] = None, status: Optional[str] = None) -> List[models.Withdrawal]:
    q = db.query(models.Withdrawal)
    if seller_id is not None:
        q = q.filter(models.Withdrawal.seller_id == seller_id)
    if status:
        q = q.filter(models.Withdrawal.status == status)
    return q.order_by(models.Withdrawal.requested_at.desc(), models.Withdrawal.id.desc()).all()


def update_withdrawal_status(
    db: Session, withdrawal_id: int, data: schemas.WithdrawalStatusUpdate
) -> models.Withdrawal:
    withdrawal = db.get(models.Withdrawal, withdrawal_id)
    if not withdrawal:
        raise NotFound("Withdrawal not found")

    current = WithdrawalStatus(withdrawal.status)
    target = data.status
    if target == current:
        return withdrawal
    if target not in WITHDRAWAL_TRANSITIONS[current]:
        raise Conflict(f"Cannot move withdrawal from {current.value} to {target.value}")

    now = datetime.utcnow()
    if target == WithdrawalStatus.PROCESSING:
        withdrawal.processed_at = now
    elif target == WithdrawalStatus.COMPLETED:
        if not data.transaction_id:
            raise ValidationFailed("transaction_id is required to complete a withdrawal")
        withdrawal.transaction_id = data.transaction_id
        withdrawal.completed_at = now
    elif target == WithdrawalStatus.REJECTED:
        if not data.rejection_reason:
            raise ValidationFailed("rejection_reason is required to reject a withdrawal")
        withdrawal.rejection_reason = data.rejection_reason

    withdrawal.status = target.value
    db.commit()
    db.refresh(withdrawal)
    logger.info("withdrawal_status_changed", withdrawal_id=withdrawal.id, from_status=current.value, to_status=target.value)
    return withdrawal
