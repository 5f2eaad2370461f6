from datetime import datetime, timedelta
from decimal import Decimal

from marketplace import lifecycle, payments, schemas, stats
from marketplace.models import OrderStatus, PaymentMethod

BASE = "/api/admin/customization"


def test_saved_filters(client, admin, auth_headers):
    headers = auth_headers(admin)
    r = client.post(
        f"{BASE}/filters",
        json={"name": "Unpaid", "type": "orders", "filter_config": {"is_paid": False}, "is_default": True},
        headers=headers,
    )
    assert r.status_code == 201
    first = r.json()

    r = client.post(f"{BASE}/filters", json={"name": "Unpaid", "type": "orders", "filter_config": {}}, headers=headers)
    assert r.status_code == 409

    second = client.post(
        f"{BASE}/filters", json={"name": "Shipped", "type": "orders", "filter_config": {"status": "shipped"}}, headers=headers
    ).json()
    r = client.put(f"{BASE}/filters/{second['id']}/default", headers=headers)
    assert r.json()["is_default"] is True

    filters = {f["id"]: f for f in client.get(f"{BASE}/filters?type=orders", headers=headers).json()}
    assert filters[first["id"]]["is_default"] is False

    r = client.put(f"{BASE}/filters/{first['id']}", json={"name": "Awaiting payment"}, headers=headers)
    assert r.json()["name"] == "Awaiting payment"

    assert client.delete(f"{BASE}/filters/{first['id']}", headers=headers).json() == {"deleted": first["id"]}
    assert client.delete(f"{BASE}/filters/{first['id']}", headers=headers).status_code == 404


def test_filter_type_validated(client, admin, auth_headers):
    r = client.post(
        f"{BASE}/filters", json={"name": "X", "type": "planets", "filter_config": {}}, headers=auth_headers(admin)
    )
    assert r.status_code == 400


def test_filters_are_per_admin(client, admin, make_user, auth_headers):
    other = make_user("Root", role="admin")
    saved = client.post(
        f"{BASE}/filters", json={"name": "Mine", "type": "users", "filter_config": {}}, headers=auth_headers(admin)
    ).json()
    assert client.get(f"{BASE}/filters", headers=auth_headers(other)).json() == []
    r = client.delete(f"{BASE}/filters/{saved['id']}", headers=auth_headers(other))
    assert r.status_code == 404


def test_report_configs_upsert_by_name(client, admin, seller, auth_headers):
    headers = auth_headers(admin)
    client.post(f"{BASE}/reports", json={"name": "Weekly", "config": {"range": "7d"}}, headers=headers)
    r = client.post(f"{BASE}/reports", json={"name": "Weekly", "config": {"range": "14d"}}, headers=headers)
    assert r.status_code == 201
    reports = client.get(f"{BASE}/reports", headers=headers).json()
    assert len(reports) == 1
    assert reports[0]["config"] == {"range": "14d"}

    assert client.delete(f"{BASE}/reports/Weekly", headers=headers).json() == {"deleted": "Weekly"}
    assert client.delete(f"{BASE}/reports/Weekly", headers=headers).status_code == 404
    assert client.get(f"{BASE}/reports", headers=auth_headers(seller)).status_code == 403


def test_platform_stats(db_session, place_order, customer, admin):
    delivered = place_order(quantity=3, method=PaymentMethod.CASH_ON_DELIVERY)
    for status in (OrderStatus.PROCESSING, OrderStatus.SHIPPED, OrderStatus.DELIVERED):
        lifecycle.transition(db_session, delivered, status, admin)
    place_order()

    result = stats.platform_stats(db_session)
    assert result["total_orders"] == 2
    assert result["paid_orders"] == 1
    assert result["total_revenue"] == Decimal("138.00")
    assert result["conversion_rate"] == Decimal("50.00")
    assert result["average_order_value"] == Decimal("138.00")
    assert result["platform_fees"] == Decimal("18.00")
    assert result["total_stores"] == 1


def test_dashboard_endpoints(client, place_order, admin, seller, auth_headers):
    place_order()
    assert client.get("/api/admin/dashboard", headers=auth_headers(seller)).status_code == 403
    r = client.get("/api/admin/dashboard", headers=auth_headers(admin))
    assert r.status_code == 200
    assert r.json()["total_orders"] == 1
    r = client.get("/api/admin/order-status", headers=auth_headers(admin))
    assert r.json()["pending"] == 1


def _pay(db_session, order, customer, payment_id):
    payments.confirm_payment(db_session, order.id, schemas.PaymentResultIn(id=payment_id, status="COMPLETED"), customer)


def test_refunded_orders_are_not_revenue(db_session, place_order, customer, admin):
    order = place_order(quantity=2)
    _pay(db_session, order, customer, "pay_1")
    lifecycle.cancel_order(db_session, order.id, admin)

    result = stats.platform_stats(db_session)
    assert result["paid_orders"] == 0
    assert result["total_revenue"] == Decimal("0.00")
    assert result["conversion_rate"] == Decimal("0.00")


def test_payment_metrics(db_session, place_order, customer, admin):
    _pay(db_session, place_order(), customer, "pay_1")
    refunded = place_order()
    _pay(db_session, refunded, customer, "pay_2")
    lifecycle.cancel_order(db_session, refunded.id, admin)
    lifecycle.cancel_order(db_session, place_order().id, customer)
    place_order()

    metrics = stats.payment_metrics(db_session)
    assert metrics.total_payments_made == 2
    assert metrics.pending_payments == 1
    assert metrics.failed_payments == 1
    assert metrics.refunded_payments == 1


def test_revenue_trends_and_top_sellers(db_session, place_order, admin, seller):
    def deliver(order):
        for status in (OrderStatus.PROCESSING, OrderStatus.SHIPPED, OrderStatus.DELIVERED):
            lifecycle.transition(db_session, order, status, admin)
        return order

    recent = deliver(place_order(quantity=3, method=PaymentMethod.CASH_ON_DELIVERY))
    old = deliver(place_order(method=PaymentMethod.CASH_ON_DELIVERY))
    old.paid_at = datetime.utcnow() - timedelta(days=40)
    db_session.commit()

    trends = stats.revenue_trends(db_session)
    assert [(p.date, p.revenue, p.orders) for p in trends] == [
        (recent.paid_at.date().isoformat(), Decimal("138.00"), 1)
    ]
    assert len(stats.revenue_trends(db_session, days=60)) == 2

    (top,) = stats.top_sellers(db_session)
    assert top.seller_id == seller.id
    assert top.store_name == "Sam Shop"
    assert top.total_orders == 2
    assert top.gross_sales == Decimal("160.00")
    assert top.net_earnings == Decimal("136.00")


def test_report_endpoints(client, place_order, admin, seller, auth_headers):
    place_order()
    for path in ("/api/admin/payments", "/api/admin/revenue-trends?days=7", "/api/admin/top-sellers"):
        assert client.get(path, headers=auth_headers(seller)).status_code == 403
        assert client.get(path, headers=auth_headers(admin)).status_code == 200
    r = client.get("/api/admin/payments", headers=auth_headers(admin))
    assert r.json()["pending_payments"] == 1
