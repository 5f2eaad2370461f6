from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from .. import crud, models, roles, schemas
from ..deps import get_db, require_permission

# All role routes require settings management
router = APIRouter(prefix="/api/admin/roles", tags=["roles"])
admin = require_permission("settings", "manage")


@router.get("/resources/all", response_model=List[str])
async def all_resources(_: models.User = Depends(admin)):
    return roles.get_all_resources()


@router.get("/resources/{resource}", response_model=List[str])
async def resource_actions(resource: str, _: models.User = Depends(admin)):
    return roles.get_available_permissions(resource)


@router.put("/assign/{user_id}", response_model=schemas.UserRead)
async def assign_role(
    user_id: int,
    payload: schemas.RoleAssign,
    db: Session = Depends(get_db),
    _: models.User = Depends(admin),
):
    return roles.assign_role(db, user_id, payload.role_id)


@router.get("/users/{user_id}/permissions", response_model=List[schemas.Permission])
async def user_permissions(user_id: int, db: Session = Depends(get_db), _: models.User = Depends(admin)):
    return roles.get_user_permissions(db, crud.get_user(db, user_id))


@router.get("", response_model=List[schemas.RoleRead])
async def list_roles(db: Session = Depends(get_db), _: models.User = Depends(admin)):
    return roles.list_roles(db)


@router.post("", response_model=schemas.RoleRead, status_code=201)
async def create_role(payload: schemas.RoleCreate, db: Session = Depends(get_db), acting: models.User = Depends(admin)):
    return roles.create_role(db, payload, created_by=acting.id)


@router.get("/{role_id}", response_model=schemas.RoleRead)
async def get_role(role_id: int, db: Session = Depends(get_db), _: models.User = Depends(admin)):
    return roles.get_role(db, role_id)


@router.put("/{role_id}", response_model=schemas.RoleRead)
async def update_role(
    role_id: int,
    payload: schemas.RoleUpdate,
    db: Session = Depends(get_db),
    _: models.User = Depends(admin),
):
    return roles.update_role(db, role_id, payload)


@router.delete("/{role_id}")
async def delete_role(role_id: int, db: Session = Depends(get_db), _: models.User = Depends(admin)):
    roles.delete_role(db, role_id)
    return {"deleted": role_id}


@router.post("/{role_id}/permissions", response_model=schemas.RoleRead, status_code=201)
async def add_permission(
    role_id: int,
    payload: schemas.Permission,
    db: Session = Depends(get_db),
    _: models.User = Depends(admin),
):
    return roles.add_permission(db, role_id, payload)


@router.delete("/{role_id}/permissions/{resource}", response_model=schemas.RoleRead)
async def remove_permission(
    role_id: int,
    resource: str,
    db: Session = Depends(get_db),
    _: models.User = Depends(admin),
):
    return roles.remove_permission(db, role_id, resource)
