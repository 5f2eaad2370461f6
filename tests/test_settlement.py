from decimal import Decimal

import pytest

from marketplace import config, crud, lifecycle, models, schemas, settlement
from marketplace.errors import Conflict, NotFound, ValidationFailed
from marketplace.models import OrderStatus, PaymentMethod

BANK = {"account_name": "Sam", "account_number": "12345678", "bank_name": "First Bank"}


@pytest.fixture
def deliver(db_session, admin):
    def _deliver(order):
        for status in (OrderStatus.PROCESSING, OrderStatus.SHIPPED, OrderStatus.DELIVERED):
            lifecycle.transition(db_session, order, status, admin)
        return order
    return _deliver


def test_split_commission_default_rate():
    assert settlement.split_commission(Decimal("120"), Decimal("15")) == (Decimal("18.00"), Decimal("102.00"))
    assert settlement.split_commission(Decimal("33.33"), Decimal("15")) == (Decimal("5.00"), Decimal("28.33"))


def test_delivery_writes_one_ledger_entry(db_session, place_order, deliver, seller):
    order = deliver(place_order(quantity=3, method=PaymentMethod.CASH_ON_DELIVERY))
    entry = db_session.query(models.LedgerEntry).filter_by(order_id=order.id).one()
    assert entry.seller_id == seller.id
    assert entry.gross_amount == Decimal("120.00")
    assert entry.platform_fee == Decimal("18.00")
    assert entry.net_amount == Decimal("102.00")
    assert entry.items_count == 3

    # settling again adds nothing
    assert settlement.settle_order(db_session, order) == []
    assert db_session.query(models.LedgerEntry).count() == 1


def test_store_commission_overrides_default(db_session, place_order, deliver, seller):
    store = crud.get_store_for_owner(db_session, seller.id)
    store.commission_rate = Decimal("10")
    db_session.commit()
    order = deliver(place_order(quantity=3, method=PaymentMethod.CASH_ON_DELIVERY))
    entry = db_session.query(models.LedgerEntry).filter_by(order_id=order.id).one()
    assert entry.platform_fee == Decimal("12.00")
    assert entry.net_amount == Decimal("108.00")


def test_default_rate_follows_config(db_session, seller):
    previous = config.override(commission_rate=Decimal("20"))
    try:
        assert settlement.commission_rate_for(db_session, seller.id) == Decimal("20")
    finally:
        config.restore(previous)


def test_each_seller_settled_separately(db_session, make_user, place_order, deliver, product, seller):
    other = make_user("Olga")
    crud.register_seller(db_session, other, schemas.StoreCreate(name="Olga Goods", email="o@example.com", phone="555-0199"))
    mug = crud.create_product(db_session, other, schemas.ProductCreate(name="Mug", price=Decimal("10"), count_in_stock=5))

    order = deliver(
        place_order(
            method=PaymentMethod.CASH_ON_DELIVERY,
            items=[{"product": product.id, "quantity": 1}, {"product": mug.id, "quantity": 2}],
        )
    )
    entries = {e.seller_id: e for e in db_session.query(models.LedgerEntry).filter_by(order_id=order.id)}
    assert entries[seller.id].gross_amount == Decimal("40.00")
    assert entries[other.id].gross_amount == Decimal("20.00")
    assert entries[other.id].net_amount == Decimal("17.00")


def test_undelivered_order_not_settled(db_session, place_order):
    with pytest.raises(ValidationFailed):
        settlement.settle_order(db_session, place_order())


def test_earnings_summary(db_session, place_order, deliver, seller):
    deliver(place_order(quantity=3, method=PaymentMethod.CASH_ON_DELIVERY))
    earnings = settlement.seller_earnings(db_session, seller.id)
    assert earnings.total_revenue == Decimal("120.00")
    assert earnings.platform_fee == Decimal("18.00")
    assert earnings.net_earnings == Decimal("102.00")
    assert earnings.total_orders == 1
    assert earnings.total_items == 3
    assert earnings.available_balance == Decimal("102.00")


def test_withdrawal_rules(db_session, place_order, deliver, seller):
    deliver(place_order(quantity=3, method=PaymentMethod.CASH_ON_DELIVERY))

    with pytest.raises(ValidationFailed, match="Minimum withdrawal"):
        settlement.request_withdrawal(db_session, seller.id, schemas.WithdrawalCreate(amount=Decimal("50"), bank_details=BANK))
    with pytest.raises(ValidationFailed, match="Insufficient balance"):
        settlement.request_withdrawal(db_session, seller.id, schemas.WithdrawalCreate(amount=Decimal("150"), bank_details=BANK))

    w = settlement.request_withdrawal(db_session, seller.id, schemas.WithdrawalCreate(amount=Decimal("100"), bank_details=BANK))
    assert w.status == "pending"
    assert settlement.available_balance(db_session, seller.id) == Decimal("2.00")


def test_withdrawal_without_store(db_session, customer):
    with pytest.raises(NotFound):
        settlement.request_withdrawal(db_session, customer.id, schemas.WithdrawalCreate(amount=Decimal("100"), bank_details=BANK))


def test_withdrawal_status_flow(db_session, place_order, deliver, seller):
    deliver(place_order(quantity=3, method=PaymentMethod.CASH_ON_DELIVERY))
    w = settlement.request_withdrawal(db_session, seller.id, schemas.WithdrawalCreate(amount=Decimal("100"), bank_details=BANK))

    with pytest.raises(Conflict):
        settlement.update_withdrawal_status(db_session, w.id, schemas.WithdrawalStatusUpdate(status="completed", transaction_id="tx"))

    settlement.update_withdrawal_status(db_session, w.id, schemas.WithdrawalStatusUpdate(status="processing"))
    assert w.processed_at is not None
    with pytest.raises(ValidationFailed):
        settlement.update_withdrawal_status(db_session, w.id, schemas.WithdrawalStatusUpdate(status="completed"))

    settlement.update_withdrawal_status(db_session, w.id, schemas.WithdrawalStatusUpdate(status="completed", transaction_id="tx-1"))
    assert w.status == "completed"
    assert w.transaction_id == "tx-1"


def test_rejected_withdrawal_returns_balance(db_session, place_order, deliver, seller):
    deliver(place_order(quantity=3, method=PaymentMethod.CASH_ON_DELIVERY))
    w = settlement.request_withdrawal(db_session, seller.id, schemas.WithdrawalCreate(amount=Decimal("100"), bank_details=BANK))
    with pytest.raises(ValidationFailed):
        settlement.update_withdrawal_status(db_session, w.id, schemas.WithdrawalStatusUpdate(status="rejected"))
    settlement.update_withdrawal_status(
        db_session, w.id, schemas.WithdrawalStatusUpdate(status="rejected", rejection_reason="bad account")
    )
    assert settlement.available_balance(db_session, seller.id) == Decimal("102.00")


def test_seller_endpoints(client, db_session, place_order, deliver, seller, customer, admin, auth_headers):
    deliver(place_order(quantity=3, method=PaymentMethod.CASH_ON_DELIVERY))

    r = client.get("/api/sellers/earnings", headers=auth_headers(seller))
    assert r.status_code == 200
    assert Decimal(r.json()["net_earnings"]) == Decimal("102.00")

    r = client.get("/api/sellers/orders", headers=auth_headers(seller))
    assert r.json()["pagination"]["total"] == 1

    r = client.post("/api/sellers/withdrawals", json={"amount": "100", "bank_details": BANK}, headers=auth_headers(seller))
    assert r.status_code == 201
    wid = r.json()["id"]

    assert client.get("/api/sellers/earnings", headers=auth_headers(customer)).status_code == 403

    r = client.put(f"/api/admin/withdrawals/{wid}/status", json={"status": "processing"}, headers=auth_headers(seller))
    assert r.status_code == 403
    r = client.put(f"/api/admin/withdrawals/{wid}/status", json={"status": "processing"}, headers=auth_headers(admin))
    assert r.status_code == 200
    assert r.json()["status"] == "processing"

    r = client.get("/api/admin/withdrawals?status=processing", headers=auth_headers(admin))
    assert [w["id"] for w in r.json()] == [wid]


def test_buyer_with_orders_cannot_be_deleted(db_session, place_order, deliver, seller, customer):
    deliver(place_order(quantity=3, method=PaymentMethod.CASH_ON_DELIVERY))
    settlement.request_withdrawal(db_session, seller.id, schemas.WithdrawalCreate(amount=Decimal("100"), bank_details=BANK))

    with pytest.raises(Conflict, match="deactivate the account"):
        crud.delete_user(db_session, customer.id)
    assert db_session.query(models.LedgerEntry).count() == 1
    assert settlement.available_balance(db_session, seller.id) == Decimal("2.00")


def test_seller_dashboard(client, place_order, deliver, product, seller, customer, auth_headers):
    deliver(place_order(quantity=3, method=PaymentMethod.CASH_ON_DELIVERY))
    place_order()

    r = client.get("/api/sellers/dashboard", headers=auth_headers(seller))
    assert r.status_code == 200
    body = r.json()
    assert body["store"]["name"] == "Sam Shop"
    assert body["earnings"]["net_earnings"] == "102.00"
    assert len(body["recent_orders"]) == 2
    assert body["top_products"] == [{"product_id": product.id, "name": "Widget", "units_sold": 4, "revenue": "160.00"}]
    assert body["total_products"] == 1
    assert client.get("/api/sellers/dashboard", headers=auth_headers(customer)).status_code == 403
