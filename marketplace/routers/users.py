from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from .. import crud, models, roles, schemas
from ..deps import get_current_user, get_db, require_permission

router = APIRouter(prefix="/api/users", tags=["users"])


@router.get("", response_model=List[schemas.UserRead])
async def list_users(
    role: Optional[str] = None,
    db: Session = Depends(get_db),
    _: models.User = Depends(require_permission("users", "view")),
):
    return crud.list_users(db, role=role)


@router.get("/{user_id}", response_model=schemas.UserRead)
async def get_user(user_id: int, db: Session = Depends(get_db), acting: models.User = Depends(get_current_user)):
    if acting.id != user_id and not roles.has_permission(db, acting, "users", "view"):
        raise HTTPException(status_code=403, detail="forbidden")
    return crud.get_user(db, user_id)


@router.put("/{user_id}", response_model=schemas.UserRead)
async def update_user(
    user_id: int,
    payload: schemas.UserUpdate,
    db: Session = Depends(get_db),
    acting: models.User = Depends(get_current_user),
):
    # account owners may edit their profile; role and status need users:manage
    if not roles.has_permission(db, acting, "users", "manage"):
        if acting.id != user_id:
            raise HTTPException(status_code=403, detail="forbidden")
        if payload.role is not None or payload.is_active is not None:
            raise HTTPException(status_code=403, detail="forbidden: users:manage required to change role or status")
    return crud.update_user(db, user_id, payload)


@router.delete("/{user_id}")
async def delete_user(
    user_id: int,
    db: Session = Depends(get_db),
    _: models.User = Depends(require_permission("users", "delete")),
):
    if not crud.delete_user(db, user_id):
        raise HTTPException(status_code=404, detail="user not found")
    return {"deleted": user_id}
