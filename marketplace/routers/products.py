from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from .. import crud, models, schemas
from ..deps import get_db, require_permission

router = APIRouter(prefix="/api/products", tags=["products"])


@router.get("", response_model=List[schemas.ProductRead])
async def list_products(
    category: Optional[str] = None,
    seller_id: Optional[int] = None,
    q: str = Query("", max_length=100),
    db: Session = Depends(get_db),
):
    return crud.list_products(db, category=category, seller_id=seller_id, q=q or None)


@router.get("/{product_id}", response_model=schemas.ProductRead)
async def get_product(product_id: int, db: Session = Depends(get_db)):
    return crud.get_product(db, product_id)


@router.post("", response_model=schemas.ProductRead, status_code=201)
async def create_product(
    payload: schemas.ProductCreate,
    db: Session = Depends(get_db),
    seller: models.User = Depends(require_permission("products", "create")),
):
    return crud.create_product(db, seller, payload)


@router.put("/{product_id}", response_model=schemas.ProductRead)
async def update_product(
    product_id: int,
    payload: schemas.ProductUpdate,
    db: Session = Depends(get_db),
    actor: models.User = Depends(require_permission("products", "edit")),
):
    return crud.update_product(db, product_id, actor, payload)
