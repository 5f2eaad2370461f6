"""FastAPI dependencies shared by the routers."""
import jwt
import structlog
from fastapi import Depends, Request
from sqlalchemy.orm import Session

from . import models, roles
from .auth import decode_access_token
from .db import get_db
from .errors import Forbidden, Unauthorized

__all__ = ["get_db", "get_current_user", "require_roles", "require_permission"]


def _bearer_token(request: Request) -> str | None:
    auth = request.headers.get("authorization")
    if auth and auth.lower().startswith("bearer "):
        return auth.split(None, 1)[1].strip()
    return None


def get_current_user(request: Request, db: Session = Depends(get_db)) -> models.User:
    token = _bearer_token(request)
    if not token:
        raise Unauthorized("Not authorized to access this route - No token provided")
    try:
        payload = decode_access_token(token)
        user_id = int(payload.get("sub"))
    except (jwt.PyJWTError, TypeError, ValueError):
        raise Unauthorized("Not authorized to access this route - Invalid token")

    user = db.get(models.User, user_id)
    if not user:
        raise Unauthorized("Not authorized to access this route - User not found")
    if not user.is_active:
        raise Unauthorized("Account is deactivated")
    structlog.contextvars.bind_contextvars(user_id=user.id)
    return user


def require_roles(*allowed: str):
    def checker(user: models.User = Depends(get_current_user)) -> models.User:
        if user.role not in allowed:
            raise Forbidden(f"User role '{user.role}' is not authorized to access this route")
        return user

    return checker


def require_permission(resource: str, action: str):
    """Allow the caller when their role grants ``action`` (or ``manage``) on ``resource``."""

    def checker(user: models.User = Depends(get_current_user), db: Session = Depends(get_db)) -> models.User:
        if not roles.has_permission(db, user, resource, action):
            raise Forbidden(f"Missing permission {resource}:{action}")
        return user

    return checker
