from datetime import datetime

import pytest

from analytics.aggregations import (
    ALL_TIME_START,
    monthly_trends,
    orders_to_csv,
    period_start,
    revenue_windows,
    sales_summary,
    spending_trend,
    top_categories,
    top_products,
    user_analytics,
)

NOW = datetime(2026, 5, 15, 12, 0)


def order(order_id, created_at, total, status="delivered", items=None):
    return {
        "id": order_id,
        "user_id": "u1",
        "status": status,
        "payment_status": "paid",
        "total_amount": total,
        "created_at": created_at,
        "items": items or [],
    }


def item(product_id, quantity, unit_price, category_en=None, category_ka=None):
    return {
        "product_id": product_id,
        "product_name": product_id.title(),
        "quantity": quantity,
        "unit_price": unit_price,
        "total_price": quantity * unit_price,
        "category_en": category_en,
        "category_ka": category_ka,
    }


@pytest.fixture
def orders():
    return [
        order("o1", datetime(2026, 5, 15, 9, 0), 100.0, items=[item("boots", 1, 100.0, "Boots", "ფეხსაცმელი")]),
        order("o2", datetime(2026, 5, 10), 50.0, status="pending", items=[item("knife", 2, 25.0, "Knives", "დანები")]),
        order("o3", datetime(2026, 4, 20), 30.0, status="cancelled", items=[item("knife", 1, 30.0, "Knives", "დანები")]),
        order("o4", datetime(2026, 3, 1), 999.0, items=[item("vest", 1, 999.0, "Vests", "ჟილეტები")]),
    ]


def test_sales_summary():
    summary = sales_summary([order("a", NOW, 100.0), order("b", NOW, 50.5)])

    assert summary == {"total_revenue": 150.5, "total_orders": 2, "average_order_value": 75.25}
    assert sales_summary([])["average_order_value"] == 0.0


def test_revenue_windows(orders):
    windows = revenue_windows(orders, NOW)

    assert (windows["today_orders"], windows["today_revenue"]) == (1, 100.0)
    assert (windows["weekly_orders"], windows["weekly_revenue"]) == (2, 150.0)
    assert (windows["monthly_orders"], windows["monthly_revenue"]) == (3, 180.0)


def test_top_products_groups_by_product():
    items = [item("a", 2, 10.0), item("b", 3, 3.0), item("a", 1, 10.0)]

    ranked = top_products(items)

    assert [(entry["product_id"], entry["quantity"], entry["revenue"]) for entry in ranked] == [
        ("a", 3, 30.0),
        ("b", 3, 9.0),
    ]
    assert len(top_products(items, limit=1)) == 1


def test_period_start():
    assert period_start("3months", datetime(2026, 5, 31)) == datetime(2026, 2, 28)
    assert period_start("1year", NOW) == datetime(2025, 5, 15, 12, 0)
    assert period_start("all", NOW) == ALL_TIME_START
    assert period_start("bogus", NOW) == datetime(2025, 11, 15, 12, 0)


def test_monthly_trends_in_georgian(orders):
    trends = monthly_trends(orders, NOW, 3, locale="ka")

    assert [(t["month"], t["year"], t["spending"], t["orders"]) for t in trends] == [
        ("მარტი", 2026, 999.0, 1),
        ("აპრილი", 2026, 30.0, 1),
        ("მაისი", 2026, 150.0, 2),
    ]


def test_monthly_trends_cross_year_boundary():
    trends = monthly_trends([], datetime(2026, 1, 10), 2)

    assert [(t["month"], t["year"]) for t in trends] == [("December", 2025), ("January", 2026)]


def test_top_categories(orders):
    categories = top_categories(orders, limit=2)

    assert [(c["name_en"], c["count"], c["spending"]) for c in categories] == [
        ("Vests", 1, 999.0),
        ("Boots", 1, 100.0),
    ]


def test_spending_trend(orders):
    assert spending_trend(orders, NOW) == -97.0
    assert spending_trend(orders, datetime(2026, 4, 10)) == 0.0


def test_user_analytics(orders):
    old = order("o0", datetime(2025, 1, 1), 500.0)

    stats = user_analytics(orders + [old], NOW, member_since=datetime(2026, 1, 15, 12, 0), period="6months")

    assert stats["total_orders"] == 4
    assert stats["completed_orders"] == 2
    assert stats["pending_orders"] == 1
    assert stats["cancelled_orders"] == 1
    assert stats["total_spent"] == 1179.0
    assert stats["average_order_value"] == 294.75
    assert stats["monthly_spending"] == 150.0
    assert stats["yearly_spending"] == 1179.0
    assert stats["order_frequency"] == 1.0
    assert stats["last_order_date"] == datetime(2026, 5, 15, 9, 0)
    assert len(stats["monthly_trends"]) == 6
    assert stats["recent_activity"][0]["title"] == "Order Placed"
    assert stats["recent_activity"][3]["description"] == "999.00 ₾"


def test_user_analytics_without_orders():
    stats = user_analytics([], NOW, locale="ka")

    assert stats["total_orders"] == 0
    assert stats["average_order_value"] == 0.0
    assert stats["last_order_date"] is None
    assert stats["recent_activity"] == []


def test_orders_to_csv(orders):
    lines = orders_to_csv(orders[:1]).splitlines()

    assert lines == [
        "order_id,date,total_amount,status,payment_status,items_count",
        "o1,2026-05-15,100.00,delivered,paid,1",
    ]
