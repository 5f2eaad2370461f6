import os
import tempfile
from decimal import Decimal
from typing import Generator

# The app lifespan creates tables on the configured engine; keep it off the working copy.
os.environ.setdefault("DATABASE_URL", "sqlite:///" + os.path.join(tempfile.mkdtemp(), "lifespan.db"))

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from marketplace import crud, gateway, lifecycle, roles, schemas
from marketplace.auth import create_access_token
from marketplace.db import Base
from marketplace.deps import get_db
from marketplace.main import app
from marketplace.models import PaymentMethod

ADDRESS = {"address": "1 Main St", "city": "Springfield", "postal_code": "12345", "country": "US"}


@pytest.fixture(scope="function")
def db_session() -> Generator:
    # Use in-memory SQLite with a single connection
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )

    @event.listens_for(engine, "connect")
    def _fk_on(dbapi_connection, connection_record):
        dbapi_connection.execute("PRAGMA foreign_keys=ON")

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)
    Base.metadata.create_all(bind=engine)

    db = TestingSessionLocal()
    roles.initialize_system_roles(db)
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(scope="function")
def client(db_session):
    # Override dependency to use the same session
    def override_get_db():
        try:
            yield db_session
        finally:
            pass
    app.dependency_overrides[get_db] = override_get_db
    from fastapi.testclient import TestClient
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def mock_gateway():
    fresh = gateway.MockPaymentGateway()
    previous = gateway.set_gateway(fresh)
    yield fresh
    gateway.set_gateway(previous)


@pytest.fixture
def make_user(db_session):
    def _make(name="Alice", email=None, role="user", password="secret123"):
        email = email or f"{name.lower()}@example.com"
        return crud.create_user(
            db_session, schemas.UserCreate(name=name, email=email, password=password, role=role)
        )
    return _make


@pytest.fixture
def auth_headers():
    def _headers(user):
        return {"Authorization": f"Bearer {create_access_token(user.id, user.role)}"}
    return _headers


@pytest.fixture
def admin(make_user):
    return make_user("Admin", role="admin")


@pytest.fixture
def customer(make_user):
    return make_user("Carol")


@pytest.fixture
def seller(db_session, make_user):
    user = make_user("Sam")
    crud.register_seller(
        db_session, user, schemas.StoreCreate(name="Sam Shop", email="shop@example.com", phone="555-0100")
    )
    return user


@pytest.fixture
def product(db_session, seller):
    return crud.create_product(
        db_session, seller, schemas.ProductCreate(name="Widget", price=Decimal("40.00"), count_in_stock=10)
    )


@pytest.fixture
def place_order(db_session, customer, product):
    def _place(quantity=1, method=PaymentMethod.STRIPE, user=None, items=None):
        data = schemas.OrderCreate(
            order_items=items or [{"product": product.id, "quantity": quantity}],
            shipping_address=ADDRESS,
            payment_method=method,
        )
        return lifecycle.create_order(db_session, user or customer, data)
    return _place
