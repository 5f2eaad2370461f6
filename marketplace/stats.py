from collections import defaultdict
from datetime import datetime, timedelta
from decimal import Decimal
from typing import List

from sqlalchemy import func
from sqlalchemy.orm import Session

from . import crud, lifecycle, models, schemas, settlement
from .models import OrderStatus
from .utils import round_amount


def _collected():
    # paid and not refunded by a later cancellation
    return (models.Order.is_paid.is_(True), models.Order.status != OrderStatus.CANCELLED.value)


def platform_stats(db: Session) -> dict:
    """Headline numbers for the admin dashboard."""
    total_users = db.query(func.count(models.User.id)).scalar()
    total_orders = db.query(func.count(models.Order.id)).scalar()
    total_products = db.query(func.count(models.Product.id)).scalar()
    total_stores = db.query(func.count(models.Store.id)).scalar()
    paid_orders = db.query(func.count(models.Order.id)).filter(*_collected()).scalar()
    revenue = round_amount(
        db.query(func.coalesce(func.sum(models.Order.total_price), 0)).filter(*_collected()).scalar() or 0
    )

    return {
        "total_users": total_users,
        "total_orders": total_orders,
        "total_products": total_products,
        "total_stores": total_stores,
        "total_revenue": revenue,
        "paid_orders": paid_orders,
        "conversion_rate": round_amount(Decimal(paid_orders) * 100 / total_orders) if total_orders else Decimal("0.00"),
        "average_order_value": round_amount(revenue / paid_orders) if paid_orders else Decimal("0.00"),
        "platform_fees": settlement.platform_fees_collected(db),
    }


def order_status_distribution(db: Session) -> dict:
    return lifecycle.status_distribution(db)


def payment_metrics(db: Session) -> schemas.PaymentMetrics:
    """Order counts by payment outcome.

    A cancelled order that was never paid counts as failed; one that was paid
    has been refunded.
    """
    cancelled = models.Order.status == OrderStatus.CANCELLED.value

    def count(*filters) -> int:
        return db.query(func.count(models.Order.id)).filter(*filters).scalar()

    return schemas.PaymentMetrics(
        total_payments_made=count(models.Order.is_paid.is_(True)),
        pending_payments=count(models.Order.is_paid.is_(False), ~cancelled),
        failed_payments=count(models.Order.is_paid.is_(False), cancelled),
        refunded_payments=count(models.Order.is_paid.is_(True), cancelled),
    )


def revenue_trends(db: Session, days: int = 30) -> List[schemas.RevenuePoint]:
    """Daily collected revenue over the last ``days`` days, oldest first."""
    since = datetime.utcnow() - timedelta(days=days)
    rows = (
        db.query(models.Order.paid_at, models.Order.total_price)
        .filter(*_collected(), models.Order.paid_at >= since)
        .all()
    )
    revenue = defaultdict(Decimal)
    orders = defaultdict(int)
    for paid_at, total in rows:
        day = paid_at.date().isoformat()
        revenue[day] += Decimal(total)
        orders[day] += 1
    return [
        schemas.RevenuePoint(date=day, revenue=round_amount(revenue[day]), orders=orders[day])
        for day in sorted(revenue)
    ]


def top_sellers(db: Session, limit: int = 10) -> List[schemas.TopSeller]:
    """Sellers ranked by settled net earnings."""
    net = func.sum(models.LedgerEntry.net_amount)
    rows = (
        db.query(
            models.LedgerEntry.seller_id,
            models.Store.name,
            models.Store.slug,
            func.count(models.LedgerEntry.id),
            func.sum(models.LedgerEntry.gross_amount),
            net,
        )
        .outerjoin(models.Store, models.Store.owner_id == models.LedgerEntry.seller_id)
        .group_by(models.LedgerEntry.seller_id, models.Store.name, models.Store.slug)
        .order_by(net.desc(), models.LedgerEntry.seller_id)
        .limit(limit)
        .all()
    )
    return [
        schemas.TopSeller(
            seller_id=seller_id,
            store_name=name,
            store_slug=slug,
            total_orders=orders,
            gross_sales=round_amount(gross or 0),
            net_earnings=round_amount(earned or 0),
        )
        for seller_id, name, slug, orders, gross, earned in rows
    ]


def _top_products(db: Session, seller_id: int, limit: int) -> List[schemas.TopProduct]:
    rows = (
        db.query(models.OrderItem)
        .join(models.Order)
        .filter(models.OrderItem.seller_id == seller_id, models.Order.status != OrderStatus.CANCELLED.value)
        .all()
    )
    sold = {}
    for item in rows:
        entry = sold.setdefault(item.product_id, {"name": item.name, "units": 0, "revenue": Decimal("0")})
        entry["units"] += item.quantity
        entry["revenue"] += Decimal(item.price) * item.quantity
    ranked = sorted(sold.items(), key=lambda kv: (-kv[1]["units"], kv[0]))[:limit]
    return [
        schemas.TopProduct(
            product_id=product_id,
            name=entry["name"],
            units_sold=entry["units"],
            revenue=round_amount(entry["revenue"]),
        )
        for product_id, entry in ranked
    ]


def seller_dashboard(db: Session, seller_id: int) -> schemas.SellerDashboard:
    store = crud.get_store_for_owner(db, seller_id)
    recent, _ = lifecycle.list_seller_orders(db, seller_id, page=1, limit=5)
    total_products = (
        db.query(func.count(models.Product.id)).filter(models.Product.seller_id == seller_id).scalar()
    )
    return schemas.SellerDashboard(
        store=schemas.StoreRead.model_validate(store),
        earnings=settlement.seller_earnings(db, seller_id),
        recent_orders=[schemas.OrderRead.model_validate(o) for o in recent],
        top_products=_top_products(db, seller_id, limit=5),
        total_products=total_products,
    )
