from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import models, roles, schemas
from .auth import hash_password, verify_password
from .errors import Conflict, Forbidden, NotFound, Unauthorized, ValidationFailed
from .log import get_logger
from .utils import round_amount, sanitize_input, slugify

logger = get_logger(__name__)


# -------------------- Users --------------------

def get_user_by_email(db: Session, email: str) -> Optional[models.User]:
    return db.query(models.User).filter(models.User.email == email.strip().lower()).first()


def create_user(db: Session, user: schemas.UserCreate) -> models.User:
    if get_user_by_email(db, user.email):
        raise ValidationFailed("User with this email already exists")
    role = roles.validate_role_name(db, user.role or "user")
    db_user = models.User(
        name=sanitize_input(user.name),
        email=user.email,
        role=role,
        password_hash=hash_password(user.password),
    )
    db.add(db_user)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise ValidationFailed("User with this email already exists") from e
    db.refresh(db_user)
    logger.info("user_created", user_id=db_user.id, role=db_user.role)
    return db_user


def authenticate(db: Session, email: str, password: str) -> models.User:
    user = get_user_by_email(db, email)
    if not user or not verify_password(password, user.password_hash):
        raise Unauthorized("Invalid credentials")
    if not user.is_active:
        raise Unauthorized("Account is deactivated")
    return user


def list_users(db: Session, role: Optional[str] = None) -> List[models.User]:
    q = db.query(models.User)
    if role:
        q = q.filter(models.User.role == role)
    return q.order_by(models.User.id).all()


def get_user(db: Session, user_id: int) -> models.User:
    user = db.get(models.User, user_id)
    if not user:
        raise NotFound("user not found")
    return user


def update_user(db: Session, user_id: int, data: schemas.UserUpdate) -> models.User:
    user = get_user(db, user_id)
    if data.name is not None:
        user.name = sanitize_input(data.name)
    if data.email is not None and data.email != user.email:
        if get_user_by_email(db, data.email):
            raise Conflict("email already in use")
        user.email = data.email
    if data.role is not None:
        user.role = roles.validate_role_name(db, data.role)
    if data.is_active is not None:
        user.is_active = data.is_active
    db.commit()
    db.refresh(user)
    return user


def delete_user(db: Session, user_id: int) -> bool:
    """Delete a user with no order history. Returns False if missing.

    Orders, and the ledger entries settled from them, outlive the account, so
    buyers and sellers with history are deactivated instead.
    """
    user = db.get(models.User, user_id)
    if not user:
        return False
    placed = db.query(func.count(models.Order.id)).filter(models.Order.user_id == user_id).scalar()
    if placed:
        raise Conflict("Cannot delete a user with orders; deactivate the account instead")
    sold = db.query(func.count(models.OrderItem.id)).filter(models.OrderItem.seller_id == user_id).scalar()
    if sold:
        raise Conflict("Cannot delete a seller with order history; deactivate the account instead")
    db.delete(user)
    db.commit()
    logger.info("user_deleted", user_id=user_id)
    return True


# -------------------- Stores --------------------

def get_store_for_owner(db: Session, owner_id: int) -> models.Store:
    store = db.query(models.Store).filter(models.Store.owner_id == owner_id).first()
    if not store:
        raise NotFound("Store not found")
    return store


def _unique_slug(db: Session, name: str) -> str:
    base = slugify(name)
    slug, n = base, 1
    while db.query(models.Store).filter(models.Store.slug == slug).first():
        n += 1
        slug = f"{base}-{n}"
    return slug


def register_seller(db: Session, user: models.User, data: schemas.StoreCreate) -> models.Store:
    """Open a store for ``user`` and give them the seller role."""
    if db.query(models.Store).filter(models.Store.owner_id == user.id).first():
        raise ValidationFailed("You already have a store")
    store = models.Store(
        owner_id=user.id,
        name=sanitize_input(data.name),
        slug=_unique_slug(db, data.name),
        description=sanitize_input(data.description),
        email=data.email,
        phone=data.phone.strip(),
    )
    db.add(store)
    if user.role == "user":
        user.role = "seller"
    db.commit()
    db.refresh(store)
    logger.info("seller_registered", user_id=user.id, store_id=store.id, slug=store.slug)
    return store


def update_store(db: Session, owner_id: int, data: schemas.StoreUpdate) -> models.Store:
    store = get_store_for_owner(db, owner_id)
    if data.name is not None:
        store.name = sanitize_input(data.name)
    if data.description is not None:
        store.description = sanitize_input(data.description)
    if data.email is not None:
        store.email = schemas.clean_email(data.email)
    if data.phone is not None:
        store.phone = data.phone.strip()
    db.commit()
    db.refresh(store)
    return store


def get_public_store(db: Session, slug: str) -> models.Store:
    store = (
        db.query(models.Store)
        .filter(models.Store.slug == slug, models.Store.is_active.is_(True))
        .first()
    )
    if not store:
        raise NotFound("Store not found")
    return store


def verify_store(db: Session, store_id: int) -> models.Store:
    store = db.get(models.Store, store_id)
    if not store:
        raise NotFound("Store not found")
    store.is_verified = True
    db.commit()
    db.refresh(store)
    logger.info("store_verified", store_id=store.id)
    return store


def list_pending_verifications(db: Session) -> List[models.Store]:
    return db.query(models.Store).filter(models.Store.is_verified.is_(False)).order_by(models.Store.id).all()


# -------------------- Products --------------------

def create_product(db: Session, seller: models.User, data: schemas.ProductCreate) -> models.Product:
    store = db.query(models.Store).filter(models.Store.owner_id == seller.id).first()
    if not store or not store.is_active:
        raise Forbidden("An active store is required to list products")
    product = models.Product(
        seller_id=seller.id,
        name=sanitize_input(data.name),
        description=sanitize_input(data.description),
        category=sanitize_input(data.category) or "general",
        price=round_amount(data.price),
        count_in_stock=data.count_in_stock,
    )
    db.add(product)
    db.commit()
    db.refresh(product)
    return product


def get_product(db: Session, product_id: int) -> models.Product:
    product = db.get(models.Product, product_id)
    if not product:
        raise NotFound(f"Product {product_id} not found")
    return product


def list_products(
    db: Session,
    category: Optional[str] = None,
    seller_id: Optional[int] = None,
    q: Optional[str] = None,
) -> List[models.Product]:
    query = db.query(models.Product).filter(models.Product.is_active.is_(True))
    if category:
        query = query.filter(models.Product.category == category)
    if seller_id:
        query = query.filter(models.Product.seller_id == seller_id)
    if q:
        # parameterized LIKE; user input never reaches the SQL text
        query = query.filter(models.Product.name.like(f"%{sanitize_input(q)}%"))
    return query.order_by(models.Product.id).all()


def update_product(db: Session, product_id: int, actor: models.User, data: schemas.ProductUpdate) -> models.Product:
    product = get_product(db, product_id)
    if product.seller_id != actor.id and not roles.has_permission(db, actor, "products", "manage"):
        raise Forbidden("Not authorized to edit this product")
    changes = data.model_dump(exclude_unset=True)
    for field in ("name", "description", "category"):
        if changes.get(field) is not None:
            setattr(product, field, sanitize_input(changes[field]))
    if changes.get("price") is not None:
        product.price = round_amount(changes["price"])
    if changes.get("count_in_stock") is not None:
        product.count_in_stock = changes["count_in_stock"]
    if changes.get("is_active") is not None:
        product.is_active = changes["is_active"]
    db.commit()
    db.refresh(product)
    return product


# -------------------- Saved filters / reports --------------------

def save_filter(db: Session, admin_id: int, data: schemas.SavedFilterCreate) -> models.SavedFilter:
    if data.is_default:
        _clear_default_filters(db, admin_id, data.type)
    saved = models.SavedFilter(
        admin_id=admin_id,
        name=sanitize_input(data.name),
        type=data.type,
        filter_config=data.filter_config,
        is_default=data.is_default,
    )
    db.add(saved)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise Conflict("A filter with this name already exists") from e
    db.refresh(saved)
    return saved


def list_filters(db: Session, admin_id: int, type_: Optional[str] = None) -> List[models.SavedFilter]:
    q = db.query(models.SavedFilter).filter(models.SavedFilter.admin_id == admin_id)
    if type_:
        q = q.filter(models.SavedFilter.type == type_)
    return q.order_by(models.SavedFilter.id).all()


def _get_filter(db: Session, admin_id: int, filter_id: int) -> models.SavedFilter:
    saved = (
        db.query(models.SavedFilter)
        .filter(models.SavedFilter.id == filter_id, models.SavedFilter.admin_id == admin_id)
        .first()
    )
    if not saved:
        raise NotFound("Saved filter not found")
    return saved


def update_filter(db: Session, admin_id: int, filter_id: int, data: schemas.SavedFilterUpdate) -> models.SavedFilter:
    saved = _get_filter(db, admin_id, filter_id)
    if data.name is not None:
        saved.name = sanitize_input(data.name)
    if data.filter_config is not None:
        saved.filter_config = data.filter_config
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise Conflict("A filter with this name already exists") from e
    db.refresh(saved)
    return saved


def delete_filter(db: Session, admin_id: int, filter_id: int) -> None:
    saved = _get_filter(db, admin_id, filter_id)
    db.delete(saved)
    db.commit()


def _clear_default_filters(db: Session, admin_id: int, type_: str):
    db.query(models.SavedFilter).filter(
        models.SavedFilter.admin_id == admin_id, models.SavedFilter.type == type_
    ).update({models.SavedFilter.is_default: False}, synchronize_session=False)


def set_default_filter(db: Session, admin_id: int, filter_id: int) -> models.SavedFilter:
    saved = _get_filter(db, admin_id, filter_id)
    _clear_default_filters(db, admin_id, saved.type)
    saved.is_default = True
    db.commit()
    db.refresh(saved)
    return saved


def save_report(db: Session, admin_id: int, data: schemas.ReportConfigIn) -> models.ReportConfig:
    """Save a report config; an existing report with the same name is replaced."""
    name = sanitize_input(data.name)
    report = (
        db.query(models.ReportConfig)
        .filter(models.ReportConfig.admin_id == admin_id, models.ReportConfig.name == name)
        .first()
    )
    if report:
        report.config = data.config
    else:
        report = models.ReportConfig(admin_id=admin_id, name=name, config=data.config)
        db.add(report)
    db.commit()
    db.refresh(report)
    return report


def list_reports(db: Session, admin_id: int) -> List[models.ReportConfig]:
    return (
        db.query(models.ReportConfig)
        .filter(models.ReportConfig.admin_id == admin_id)
        .order_by(models.ReportConfig.id)
        .all()
    )


def delete_report(db: Session, admin_id: int, name: str) -> None:
    deleted = (
        db.query(models.ReportConfig)
        .filter(models.ReportConfig.admin_id == admin_id, models.ReportConfig.name == name)
        .delete(synchronize_session=False)
    )
    if not deleted:
        raise NotFound("Report not found")
    db.commit()
