"""Role-based access control.

Roles carry a list of ``{"resource", "actions"}`` grants. Users reference a
role by name (``users.role``); the three system roles are seeded on startup
and cannot be edited or deleted.
"""
from typing import List

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import models, schemas
from .errors import Conflict, Forbidden, NotFound, ValidationFailed
from .log import get_logger
from .utils import sanitize_input

logger = get_logger(__name__)

RESOURCE_ACTIONS = {
    "orders": ["view", "create", "edit", "delete", "manage"],
    "products": ["view", "create", "edit", "delete", "manage"],
    "users": ["view", "create", "edit", "delete", "manage"],
    "sellers": ["view", "create", "edit", "delete", "manage"],
    "payments": ["view", "create", "edit", "delete", "manage"],
    "reports": ["view", "create", "edit", "delete"],
    "settings": ["view", "edit", "manage"],
    "dashboard": ["view", "manage"],
}

SYSTEM_ROLES = [
    {
        "name": "admin",
        "description": "Full platform access",
        "is_default": False,
        "permissions": [{"resource": r, "actions": list(a)} for r, a in RESOURCE_ACTIONS.items()],
    },
    {
        "name": "seller",
        "description": "Seller store management",
        "is_default": False,
        "permissions": [
            {"resource": "orders", "actions": ["edit", "view"]},
            {"resource": "products", "actions": ["create", "delete", "edit", "view"]},
            {"resource": "reports", "actions": ["view"]},
            {"resource": "dashboard", "actions": ["view"]},
        ],
    },
    {
        "name": "user",
        "description": "Regular customer",
        "is_default": True,
        "permissions": [
            {"resource": "orders", "actions": ["view"]},
            {"resource": "products", "actions": ["view"]},
        ],
    },
]


def get_all_resources() -> List[str]:
    return list(RESOURCE_ACTIONS)


def get_available_permissions(resource: str) -> List[str]:
    return RESOURCE_ACTIONS.get(resource, [])


def initialize_system_roles(db: Session) -> int:
    """Create any missing system role. Returns how many were created."""
    created = 0
    for definition in SYSTEM_ROLES:
        if db.query(models.Role).filter(models.Role.name == definition["name"]).first():
            continue
        db.add(models.Role(is_system=True, **definition))
        created += 1
    if created:
        db.commit()
        logger.info("system_roles_initialized", created=created)
    return created


def role_exists(db: Session, name: str) -> bool:
    return db.query(models.Role).filter(models.Role.name == name).first() is not None


def list_roles(db: Session) -> List[models.Role]:
    return db.query(models.Role).order_by(models.Role.id).all()


def get_role(db: Session, role_id: int) -> models.Role:
    role = db.get(models.Role, role_id)
    if not role:
        raise NotFound("Role not found")
    return role


def _dump_permissions(permissions) -> list:
    return [p.model_dump() if hasattr(p, "model_dump") else dict(p) for p in permissions]


def create_role(db: Session, data: schemas.RoleCreate, created_by: int | None) -> models.Role:
    if role_exists(db, data.name):
        raise Conflict("Role with this name already exists")
    role = models.Role(
        name=data.name.strip(),
        description=sanitize_input(data.description),
        permissions=_dump_permissions(data.permissions),
        is_system=False,
        created_by=created_by,
    )
    db.add(role)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise Conflict("Role with this name already exists") from e
    db.refresh(role)
    logger.info("role_created", role=role.name, created_by=created_by)
    return role


def update_role(db: Session, role_id: int, data: schemas.RoleUpdate) -> models.Role:
    role = get_role(db, role_id)
    if role.is_system:
        raise Forbidden("Cannot modify system roles")

    if data.name is not None and data.name != role.name:
        if role_exists(db, data.name):
            raise Conflict("Role with this name already exists")
        # keep users attached to the renamed role
        db.query(models.User).filter(models.User.role == role.name).update(
            {models.User.role: data.name}, synchronize_session=False
        )
        role.name = data.name
    if data.description is not None:
        role.description = sanitize_input(data.description)
    if data.permissions is not None:
        role.permissions = _dump_permissions(data.permissions)
    db.commit()
    db.refresh(role)
    return role


def delete_role(db: Session, role_id: int) -> None:
    role = get_role(db, role_id)
    if role.is_system:
        raise Forbidden("Cannot delete system roles")
    in_use = db.query(func.count(models.User.id)).filter(models.User.role == role.name).scalar()
    if in_use:
        raise Conflict(f"Cannot delete role. It is assigned to {in_use} user(s)")
    db.delete(role)
    db.commit()
    logger.info("role_deleted", role=role.name)


def add_permission(db: Session, role_id: int, permission: schemas.Permission) -> models.Role:
    role = get_role(db, role_id)
    if role.is_system:
        raise Forbidden("Cannot modify system roles")
    wanted = sorted(permission.actions)
    for p in role.permissions:
        if p["resource"] == permission.resource and sorted(p["actions"]) == wanted:
            raise Conflict("This permission already exists for this role")
    # JSON column: assign a new list so the change is tracked
    role.permissions = list(role.permissions) + [permission.model_dump()]
    db.commit()
    db.refresh(role)
    return role


def remove_permission(db: Session, role_id: int, resource: str) -> models.Role:
    role = get_role(db, role_id)
    if role.is_system:
        raise Forbidden("Cannot modify system roles")
    role.permissions = [p for p in role.permissions if p["resource"] != resource]
    db.commit()
    db.refresh(role)
    return role


def assign_role(db: Session, user_id: int, role_id: int) -> models.User:
    user = db.get(models.User, user_id)
    if not user:
        raise NotFound("User not found")
    role = get_role(db, role_id)
    user.role = role.name
    db.commit()
    db.refresh(user)
    logger.info("role_assigned", user_id=user.id, role=role.name)
    return user


def get_user_permissions(db: Session, user: models.User) -> list:
    role = db.query(models.Role).filter(models.Role.name == user.role).first()
    return list(role.permissions) if role else []


def has_permission(db: Session, user: models.User, resource: str, action: str) -> bool:
    for p in get_user_permissions(db, user):
        if p["resource"] == resource and (action in p["actions"] or "manage" in p["actions"]):
            return True
    return False


def validate_role_name(db: Session, name: str) -> str:
    if not role_exists(db, name):
        raise ValidationFailed(f"unknown role '{name}'")
    return name
