from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from .. import crud, models, schemas
from ..auth import create_access_token
from ..deps import get_current_user, get_db

router = APIRouter(prefix="/api/auth", tags=["auth"])


def _token_response(user: models.User) -> schemas.TokenResponse:
    return schemas.TokenResponse(
        access_token=create_access_token(user.id, user.role),
        user=schemas.UserRead.model_validate(user),
    )


@router.post("/register", response_model=schemas.TokenResponse, status_code=201)
async def register(payload: schemas.UserRegister, db: Session = Depends(get_db)):
    # self-registration always yields a customer account
    user = crud.create_user(db, schemas.UserCreate(**payload.model_dump(), role="user"))
    return _token_response(user)


@router.post("/login", response_model=schemas.TokenResponse)
async def login(payload: schemas.LoginRequest, db: Session = Depends(get_db)):
    user = crud.authenticate(db, payload.email, payload.password)
    return _token_response(user)


@router.get("/me", response_model=schemas.UserRead)
async def me(user: models.User = Depends(get_current_user)):
    return user
