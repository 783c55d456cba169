"""
Sales and shopper analytics over fetched order rows.

Every function here is pure: rows come from OrderRepository.order_rows /
item_rows, and "now" is passed in. Timestamps are naive UTC, as stored.

Order row:
    {"id", "user_id", "status", "payment_status", "total_amount",
     "created_at": datetime, "items": [{"product_id", "product_name",
     "quantity", "unit_price", "total_price", "category_en", "category_ka"}]}
"""

import csv
import io
from collections import OrderedDict
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Tuple

EN_MONTHS = [
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
]
KA_MONTHS = [
    "იანვარი", "თებერვალი", "მარტი", "აპრილი", "მაისი", "ივნისი",
    "ივლისი", "აგვისტო", "სექტემბერი", "ოქტომბერი", "ნოემბერი", "დეკემბერი",
]

PERIOD_MONTHS = {"3months": 3, "6months": 6, "1year": 12, "all": 12}
DEFAULT_PERIOD = "6months"
ALL_TIME_START = datetime(2020, 1, 1)
COMPLETED_STATUS = "delivered"

CSV_COLUMNS = ["order_id", "date", "total_amount", "status", "payment_status", "items_count"]

Row = Dict[str, Any]


def _amount(order: Row) -> float:
    return float(order.get("total_amount") or 0)


def _revenue(orders: Iterable[Row]) -> float:
    return round(sum(_amount(order) for order in orders), 2)


def _shift_month(year: int, month: int, delta: int) -> Tuple[int, int]:
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


def _month_start(now: datetime, months_back: int = 0) -> datetime:
    year, month = _shift_month(now.year, now.month, -months_back)
    return datetime(year, month, 1)


def month_name(month: int, locale: str = "en") -> str:
    names = KA_MONTHS if locale == "ka" else EN_MONTHS
    return names[month - 1]


def sales_summary(orders: List[Row]) -> Dict[str, float]:
    total_revenue = _revenue(orders)
    total_orders = len(orders)
    return {
        "total_revenue": total_revenue,
        "total_orders": total_orders,
        "average_order_value": round(total_revenue / total_orders, 2) if total_orders else 0.0,
    }


def revenue_windows(orders: List[Row], now: datetime) -> Dict[str, float]:
    """Today (since midnight), last 7 days and last 30 days."""
    windows = {
        "today": now.replace(hour=0, minute=0, second=0, microsecond=0),
        "weekly": now - timedelta(days=7),
        "monthly": now - timedelta(days=30),
    }
    result = {}
    for name, start in windows.items():
        in_window = [order for order in orders if order["created_at"] >= start]
        result[f"{name}_orders"] = len(in_window)
        result[f"{name}_revenue"] = _revenue(in_window)
    return result


def top_products(items: List[Row], limit: int = 10) -> List[Row]:
    """Best sellers by units sold, revenue breaking ties."""
    products: Dict[str, Row] = {}
    for item in items:
        entry = products.setdefault(
            item["product_id"],
            {"product_id": item["product_id"], "product_name": item.get("product_name"), "quantity": 0, "revenue": 0.0},
        )
        entry["quantity"] += int(item.get("quantity") or 0)
        entry["revenue"] += float(item.get("total_price") or 0)

    ranked = sorted(products.values(), key=lambda entry: (-entry["quantity"], -entry["revenue"]))
    for entry in ranked:
        entry["revenue"] = round(entry["revenue"], 2)
    return ranked[:limit]


def period_start(period: str, now: datetime) -> datetime:
    """Start of a reporting period. Unknown periods fall back to six months."""
    if period == "all":
        return ALL_TIME_START
    months = PERIOD_MONTHS.get(period, PERIOD_MONTHS[DEFAULT_PERIOD])
    year, month = _shift_month(now.year, now.month, -months)
    day = now.day
    while True:
        try:
            return now.replace(year=year, month=month, day=day)
        except ValueError:
            # e.g. 31 May minus three months
            day -= 1


def monthly_trends(orders: List[Row], now: datetime, months: int, locale: str = "en") -> List[Row]:
    """Spending and order counts for the last `months` calendar months, oldest first."""
    trends = []
    for months_back in range(months - 1, -1, -1):
        start = _month_start(now, months_back)
        end = _month_start(now, months_back - 1)
        in_month = [order for order in orders if start <= order["created_at"] < end]
        trends.append(
            {
                "month": month_name(start.month, locale),
                "year": start.year,
                "spending": _revenue(in_month),
                "orders": len(in_month),
            }
        )
    return trends


def top_categories(orders: List[Row], limit: int = 5) -> List[Row]:
    stats: "OrderedDict[str, Row]" = OrderedDict()
    for order in orders:
        for item in order.get("items", []):
            name_en = item.get("category_en")
            if not name_en:
                continue
            entry = stats.setdefault(
                name_en, {"name_en": name_en, "name_ka": item.get("category_ka") or "", "count": 0, "spending": 0.0}
            )
            quantity = int(item.get("quantity") or 0)
            entry["count"] += quantity
            entry["spending"] += float(item.get("unit_price") or 0) * quantity

    ranked = sorted(stats.values(), key=lambda entry: -entry["spending"])[:limit]
    for entry in ranked:
        entry["spending"] = round(entry["spending"], 2)
    return ranked


def spending_trend(orders: List[Row], now: datetime) -> float:
    """Percent change of last calendar month's spending against the month before it."""
    last_start, this_start = _month_start(now, 1), _month_start(now, 0)
    previous_start = _month_start(now, 2)
    last = _revenue(o for o in orders if last_start <= o["created_at"] < this_start)
    previous = _revenue(o for o in orders if previous_start <= o["created_at"] < last_start)
    if previous <= 0:
        return 0.0
    return round((last - previous) / previous * 100, 2)


def user_analytics(
    orders: List[Row],
    now: datetime,
    member_since: Optional[datetime] = None,
    period: str = DEFAULT_PERIOD,
    locale: str = "en",
) -> Row:
    """Shopper dashboard figures for one user's orders within a period."""
    start = period_start(period, now)
    in_period = sorted(
        (order for order in orders if start <= order["created_at"] <= now),
        key=lambda order: order["created_at"],
        reverse=True,
    )

    total_orders = len(in_period)
    total_spent = _revenue(in_period)

    order_frequency = 0.0
    if member_since is not None:
        months_since_join = (now - member_since).total_seconds() / timedelta(days=30).total_seconds()
        if months_since_join > 0:
            order_frequency = round(total_orders / months_since_join, 2)

    title = "შეკვეთა განთავსდა" if locale == "ka" else "Order Placed"
    recent_activity = [
        {
            "id": f"order-{order['id']}",
            "type": "order",
            "title": title,
            "description": f"{_amount(order):,.2f} ₾",
            "date": order["created_at"],
            "status": order["status"],
        }
        for order in in_period[:5]
    ]

    return {
        "total_orders": total_orders,
        "completed_orders": sum(1 for order in in_period if order["status"] == COMPLETED_STATUS),
        "pending_orders": sum(1 for order in in_period if order["status"] == "pending"),
        "cancelled_orders": sum(1 for order in in_period if order["status"] == "cancelled"),
        "total_spent": total_spent,
        "average_order_value": round(total_spent / total_orders, 2) if total_orders else 0.0,
        "monthly_spending": _revenue(o for o in in_period if o["created_at"] >= _month_start(now)),
        "yearly_spending": _revenue(o for o in in_period if o["created_at"] >= datetime(now.year, 1, 1)),
        "spending_trend": spending_trend(in_period, now),
        "order_frequency": order_frequency,
        "last_order_date": in_period[0]["created_at"] if in_period else None,
        "member_since": member_since,
        "top_categories": top_categories(in_period),
        "monthly_trends": monthly_trends(in_period, now, PERIOD_MONTHS.get(period, 6), locale),
        "recent_activity": recent_activity,
    }


def orders_to_csv(orders: List[Row]) -> str:
    """Admin sales export."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_COLUMNS)
    for order in orders:
        writer.writerow(
            [
                order["id"],
                order["created_at"].strftime("%Y-%m-%d"),
                f"{_amount(order):.2f}",
                order["status"],
                order["payment_status"],
                len(order.get("items", [])),
            ]
        )
    return buffer.getvalue()
