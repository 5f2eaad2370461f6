from fastapi.testclient import TestClient

from marketplace import roles, schemas
from marketplace.auth import create_access_token


def _register(client, name="Pat", email="pat@example.com", password="secret123"):
    return client.post("/api/auth/register", json={"name": name, "email": email, "password": password})


def test_health(client: TestClient):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}
    assert r.headers["X-Request-ID"]


def test_register_always_creates_customer(client):
    r = client.post(
        "/api/auth/register",
        json={"name": "Pat", "email": " Pat@Example.com ", "password": "secret123", "role": "admin"},
    )
    assert r.status_code == 201
    body = r.json()
    assert body["token_type"] == "bearer"
    assert body["user"]["role"] == "user"
    assert body["user"]["email"] == "pat@example.com"

    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {body['access_token']}"})
    assert me.status_code == 200
    assert me.json()["id"] == body["user"]["id"]


def test_register_duplicate_email(client):
    assert _register(client).status_code == 201
    r = _register(client)
    assert r.status_code == 400
    assert r.json() == {"error": "User with this email already exists"}


def test_register_validation_envelope(client):
    r = client.post("/api/auth/register", json={"name": "Pat", "email": "not-an-email", "password": "x"})
    assert r.status_code == 400
    body = r.json()
    assert body["error"] == "Validation failed"
    fields = {d["field"] for d in body["details"]}
    assert {"email", "password"} <= fields


def test_login(client):
    _register(client)
    bad = client.post("/api/auth/login", json={"email": "pat@example.com", "password": "wrong"})
    assert bad.status_code == 401
    assert bad.json() == {"error": "Invalid credentials"}

    ok = client.post("/api/auth/login", json={"email": "PAT@example.com", "password": "secret123"})
    assert ok.status_code == 200
    assert "access_token" in ok.json()


def test_token_required(client, customer):
    r = client.get("/api/auth/me")
    assert r.status_code == 401
    assert r.json()["error"].endswith("No token provided")

    r = client.get("/api/auth/me", headers={"Authorization": "Bearer garbage"})
    assert r.status_code == 401

    expired = create_access_token(customer.id, customer.role, expires_delta=-10)
    r = client.get("/api/auth/me", headers={"Authorization": f"Bearer {expired}"})
    assert r.status_code == 401


def test_deactivated_account_rejected(client, db_session, customer, auth_headers):
    customer.is_active = False
    db_session.commit()
    r = client.get("/api/auth/me", headers=auth_headers(customer))
    assert r.status_code == 401
    assert r.json() == {"error": "Account is deactivated"}


def test_user_detail_is_owner_or_admin(client, customer, make_user, admin, auth_headers):
    other = make_user("Other")
    assert client.get(f"/api/users/{customer.id}", headers=auth_headers(customer)).status_code == 200
    r = client.get(f"/api/users/{customer.id}", headers=auth_headers(other))
    assert r.status_code == 403
    assert r.json() == {"error": "forbidden"}
    assert client.get(f"/api/users/{customer.id}", headers=auth_headers(admin)).status_code == 200
    assert client.get("/api/users/999", headers=auth_headers(admin)).status_code == 404


def test_role_change_requires_admin(client, customer, admin, auth_headers):
    r = client.put(f"/api/users/{customer.id}", json={"role": "admin"}, headers=auth_headers(customer))
    assert r.status_code == 403

    r = client.put(f"/api/users/{customer.id}", json={"name": "<b>Caro</b>"}, headers=auth_headers(customer))
    assert r.status_code == 200
    assert r.json()["name"] == "Caro"

    r = client.put(f"/api/users/{customer.id}", json={"role": "seller"}, headers=auth_headers(admin))
    assert r.json()["role"] == "seller"

    r = client.put(f"/api/users/{customer.id}", json={"role": "wizard"}, headers=auth_headers(admin))
    assert r.status_code == 400


def test_list_and_delete_users(client, customer, admin, auth_headers):
    assert client.get("/api/users", headers=auth_headers(customer)).status_code == 403
    r = client.get("/api/users?role=user", headers=auth_headers(admin))
    assert [u["id"] for u in r.json()] == [customer.id]

    r = client.delete(f"/api/users/{customer.id}", headers=auth_headers(admin))
    assert r.json() == {"deleted": customer.id}
    r = client.delete(f"/api/users/{customer.id}", headers=auth_headers(admin))
    assert r.status_code == 404
    assert r.json() == {"error": "user not found"}


def test_seller_with_sales_cannot_be_deleted(client, place_order, seller, admin, auth_headers):
    place_order()
    r = client.delete(f"/api/users/{seller.id}", headers=auth_headers(admin))
    assert r.status_code == 409


def test_customer_with_orders_cannot_be_deleted(client, place_order, customer, admin, auth_headers):
    place_order()
    r = client.delete(f"/api/users/{customer.id}", headers=auth_headers(admin))
    assert r.status_code == 409
    assert r.json() == {"error": "Cannot delete a user with orders; deactivate the account instead"}
    assert client.get(f"/api/users/{customer.id}", headers=auth_headers(admin)).status_code == 200


def test_user_access_follows_permissions(client, db_session, customer, make_user, auth_headers):
    roles.create_role(
        db_session,
        schemas.RoleCreate(name="support", description="Help desk", permissions=[{"resource": "users", "actions": ["view"]}]),
        created_by=None,
    )
    agent = make_user("Sue", role="support")
    assert client.get(f"/api/users/{customer.id}", headers=auth_headers(agent)).status_code == 200
    r = client.put(f"/api/users/{customer.id}", json={"name": "Caz"}, headers=auth_headers(agent))
    assert r.status_code == 403


def test_seller_onboarding_and_products(client, customer, auth_headers):
    headers = auth_headers(customer)
    r = client.post("/api/products", json={"name": "Lamp", "price": "19.99"}, headers=headers)
    assert r.status_code == 403

    r = client.post(
        "/api/sellers/register",
        json={"name": "Carol Crafts", "email": "crafts@example.com", "phone": "555-0123"},
        headers=headers,
    )
    assert r.status_code == 201
    store = r.json()
    assert store["slug"] == "carol-crafts"
    assert store["is_verified"] is False

    again = client.post(
        "/api/sellers/register",
        json={"name": "Carol Crafts", "email": "crafts@example.com", "phone": "555-0123"},
        headers=headers,
    )
    assert again.status_code == 400

    r = client.post(
        "/api/products",
        json={"name": "Lamp", "price": "19.99", "count_in_stock": 4, "category": "home"},
        headers=headers,
    )
    assert r.status_code == 201
    product_id = r.json()["id"]

    r = client.get("/api/sellers/store/carol-crafts")
    assert r.status_code == 200
    assert [p["id"] for p in r.json()["products"]] == [product_id]

    r = client.put("/api/sellers/store", json={"description": "Handmade"}, headers=headers)
    assert r.json()["description"] == "Handmade"


def test_product_catalog(client, product, make_user, auth_headers):
    r = client.get("/api/products?q=Widg")
    assert [p["id"] for p in r.json()] == [product.id]
    assert client.get("/api/products?category=toys").json() == []
    assert client.get(f"/api/products/{product.id}").json()["price"] == "40.00"
    assert client.get("/api/products/999").status_code == 404


def test_only_owner_edits_product(client, db_session, product, seller, make_user, auth_headers):
    from marketplace import crud, schemas

    rival = make_user("Rita")
    crud.register_seller(db_session, rival, schemas.StoreCreate(name="Rita Shop", email="r@example.com", phone="555-0111"))
    r = client.put(f"/api/products/{product.id}", json={"price": "1.00"}, headers=auth_headers(rival))
    assert r.status_code == 403

    r = client.put(f"/api/products/{product.id}", json={"price": "45.5", "is_active": False}, headers=auth_headers(seller))
    assert r.status_code == 200
    assert r.json()["price"] == "45.50"
    assert client.get("/api/products").json() == []


def test_store_verification(client, seller, admin, auth_headers):
    r = client.get("/api/admin/verifications", headers=auth_headers(admin))
    store_id = r.json()[0]["id"]
    assert client.put(f"/api/admin/stores/{store_id}/verify", headers=auth_headers(seller)).status_code == 403
    r = client.put(f"/api/admin/stores/{store_id}/verify", headers=auth_headers(admin))
    assert r.json()["is_verified"] is True
    assert client.get("/api/admin/verifications", headers=auth_headers(admin)).json() == []
