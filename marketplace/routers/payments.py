from typing import Optional

from fastapi import APIRouter, Depends, Header
from sqlalchemy.orm import Session

from .. import models, payments, schemas
from ..deps import get_current_user, get_db

router = APIRouter(prefix="/api/payments", tags=["payments"])


@router.post("/create-payment-intent", response_model=schemas.PaymentIntentRead, status_code=201)
async def create_payment_intent(
    payload: schemas.PaymentIntentCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
    idempotency_key: Optional[str] = Header(default=None, max_length=255),
):
    return payments.create_payment_intent(db, payload, user, idempotency_key=idempotency_key)
