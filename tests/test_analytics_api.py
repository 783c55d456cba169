from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient

from services.order_service.main import app, get_now
from services.order_service.models import Order, OrderItem
from shared.database import get_db
from tests.conftest import ADMIN_HEADERS

NOW = datetime(2026, 5, 15, 12, 0)


def add_order(db, created_at, total, user_id="u1", payment_status="paid", status="delivered", product_id="p-boots"):
    order = Order(
        user_id=user_id,
        status=status,
        payment_status=payment_status,
        total_amount=total,
        shipping_address="1 Rustaveli Ave",
        shipping_city="Tbilisi",
        created_at=created_at,
    )
    order.items.append(
        OrderItem(
            product_id=product_id,
            product_name=product_id,
            quantity=1,
            unit_price=total,
            total_price=total,
        )
    )
    db.add(order)
    db.commit()
    return order


@pytest.fixture
def client(db, catalog):
    def override_db():
        yield db

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_now] = lambda: NOW
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def orders(db):
    add_order(db, NOW - timedelta(hours=2), 250.0)
    add_order(db, NOW - timedelta(days=3), 80.0, product_id="p-knife")
    add_order(db, NOW - timedelta(days=20), 160.0, product_id="p-knife")
    add_order(db, NOW - timedelta(days=1), 30.0, payment_status="pending", status="pending", product_id="p-gloves")
    add_order(db, NOW - timedelta(days=90), 45.0, user_id="u2", product_id="p-gloves")


def test_admin_endpoints_require_admin(client):
    for path in ("/analytics/sales", "/analytics/realtime", "/analytics/top-products", "/analytics/export"):
        assert client.get(path).status_code == 403


def test_sales_summary_counts_paid_orders_only(client, orders):
    body = client.get("/analytics/sales", params={"days": 30}, headers=ADMIN_HEADERS).json()

    assert body == {"total_revenue": 490.0, "total_orders": 3, "average_order_value": 163.33, "days": 30}


def test_realtime_windows(client, orders):
    body = client.get("/analytics/realtime", headers=ADMIN_HEADERS).json()

    assert body["today_orders"] == 1
    assert body["today_revenue"] == 250.0
    assert body["weekly_revenue"] == 330.0
    assert body["monthly_orders"] == 3


def test_top_products(client, orders):
    products = client.get("/analytics/top-products", params={"limit": 2}, headers=ADMIN_HEADERS).json()["products"]

    assert [product["product_id"] for product in products] == ["p-knife", "p-gloves"]
    assert products[0]["quantity"] == 2
    assert products[0]["revenue"] == 240.0


def test_export_csv(client, orders):
    response = client.get("/analytics/export", params={"days": 7}, headers=ADMIN_HEADERS)

    assert response.headers["content-type"].startswith("text/csv")
    assert "sales-analytics-7days.csv" in response.headers["content-disposition"]
    lines = response.text.strip().split("\n")
    assert lines[0] == "order_id,date,total_amount,status,payment_status,items_count"
    assert len(lines) == 3


def test_shopper_dashboard(client, orders):
    body = client.get("/analytics/users/u1", params={"period": "3months"}).json()

    assert body["total_orders"] == 4
    assert body["completed_orders"] == 3
    assert body["pending_orders"] == 1
    assert len(body["monthly_trends"]) == 3


def test_shopper_dashboard_rejects_unknown_period(client):
    assert client.get("/analytics/users/u1", params={"period": "week"}).status_code == 400
