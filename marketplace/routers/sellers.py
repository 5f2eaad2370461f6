from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from .. import crud, lifecycle, models, schemas, settlement, stats
from ..deps import get_current_user, get_db, require_roles
from ..utils import pagination

router = APIRouter(prefix="/api/sellers", tags=["sellers"])

seller_only = require_roles("seller", "admin")


@router.post("/register", response_model=schemas.StoreRead, status_code=201)
async def register_seller(
    payload: schemas.StoreCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return crud.register_seller(db, user, payload)


@router.get("/dashboard", response_model=schemas.SellerDashboard)
async def my_dashboard(db: Session = Depends(get_db), user: models.User = Depends(seller_only)):
    return stats.seller_dashboard(db, user.id)


@router.get("/store", response_model=schemas.StoreRead)
async def my_store(db: Session = Depends(get_db), user: models.User = Depends(seller_only)):
    return crud.get_store_for_owner(db, user.id)


@router.put("/store", response_model=schemas.StoreRead)
async def update_my_store(
    payload: schemas.StoreUpdate,
    db: Session = Depends(get_db),
    user: models.User = Depends(seller_only),
):
    return crud.update_store(db, user.id, payload)


@router.get("/store/{slug}")
async def public_store(slug: str, db: Session = Depends(get_db)):
    store = crud.get_public_store(db, slug)
    products = crud.list_products(db, seller_id=store.owner_id)[:20]
    return {
        "store": schemas.StoreRead.model_validate(store),
        "products": [schemas.ProductRead.model_validate(p) for p in products],
    }


@router.get("/orders", response_model=schemas.OrderPage)
async def my_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    user: models.User = Depends(seller_only),
):
    rows, total = lifecycle.list_seller_orders(db, user.id, page, limit)
    return {"data": rows, "pagination": pagination(page, limit, total)}


@router.get("/earnings", response_model=schemas.Earnings)
async def my_earnings(
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    db: Session = Depends(get_db),
    user: models.User = Depends(seller_only),
):
    return settlement.seller_earnings(db, user.id, start_date, end_date)


@router.post("/withdrawals", response_model=schemas.WithdrawalRead, status_code=201)
async def request_withdrawal(
    payload: schemas.WithdrawalCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(seller_only),
):
    return settlement.request_withdrawal(db, user.id, payload)


@router.get("/withdrawals", response_model=List[schemas.WithdrawalRead])
async def my_withdrawals(db: Session = Depends(get_db), user: models.User = Depends(seller_only)):
    return settlement.list_withdrawals(db, seller_id=user.id)
