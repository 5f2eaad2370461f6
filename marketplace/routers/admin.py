from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from .. import crud, models, schemas, settlement, stats
from ..deps import get_db, require_permission
from ..models import WithdrawalStatus

router = APIRouter(prefix="/api/admin", tags=["admin"])


@router.get("/dashboard")
async def dashboard(db: Session = Depends(get_db), _: models.User = Depends(require_permission("dashboard", "manage"))):
    return stats.platform_stats(db)


@router.get("/order-status")
async def order_status(db: Session = Depends(get_db), _: models.User = Depends(require_permission("dashboard", "manage"))):
    return stats.order_status_distribution(db)


@router.get("/payments", response_model=schemas.PaymentMetrics)
async def payment_metrics(db: Session = Depends(get_db), _: models.User = Depends(require_permission("dashboard", "manage"))):
    return stats.payment_metrics(db)


@router.get("/revenue-trends", response_model=List[schemas.RevenuePoint])
async def revenue_trends(
    days: int = Query(30, ge=1, le=365),
    db: Session = Depends(get_db),
    _: models.User = Depends(require_permission("dashboard", "manage")),
):
    return stats.revenue_trends(db, days)


@router.get("/top-sellers", response_model=List[schemas.TopSeller])
async def top_sellers(
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    _: models.User = Depends(require_permission("dashboard", "manage")),
):
    return stats.top_sellers(db, limit)


@router.get("/verifications", response_model=List[schemas.StoreRead])
async def pending_verifications(
    db: Session = Depends(get_db), _: models.User = Depends(require_permission("sellers", "manage"))
):
    return crud.list_pending_verifications(db)


@router.put("/stores/{store_id}/verify", response_model=schemas.StoreRead)
async def verify_store(
    store_id: int, db: Session = Depends(get_db), _: models.User = Depends(require_permission("sellers", "manage"))
):
    return crud.verify_store(db, store_id)


@router.get("/withdrawals", response_model=List[schemas.WithdrawalRead])
async def list_withdrawals(
    status: Optional[WithdrawalStatus] = None,
    db: Session = Depends(get_db),
    _: models.User = Depends(require_permission("payments", "manage")),
):
    return settlement.list_withdrawals(db, status=status.value if status else None)


@router.put("/withdrawals/{withdrawal_id}/status", response_model=schemas.WithdrawalRead)
async def update_withdrawal(
    withdrawal_id: int,
    payload: schemas.WithdrawalStatusUpdate,
    db: Session = Depends(get_db),
    _: models.User = Depends(require_permission("payments", "manage")),
):
    return settlement.update_withdrawal_status(db, withdrawal_id, payload)
