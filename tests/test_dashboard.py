from datetime import datetime, timezone

import pytest

import dashboard
import database

NOW = datetime(2026, 10, 19, 15, 30, tzinfo=timezone.utc)


def at(*args):
    return datetime(*args, tzinfo=timezone.utc)


@pytest.fixture
def add_order(mongo):
    counter = iter(range(1, 1000))

    def _add(created_at, total, status="pending", quantity=1):
        mongo[database.ORDERS].insert_one({
            "order_id": f"ORD-TEST-{next(counter):06d}",
            "customer": {"name": "Rahim", "phone": "01711000000", "address": "Dhanmondi", "city": "Dhaka"},
            "books": [{"book_id": "64b7f0c2a1b2c3d4e5f60718", "title": "Book", "quantity": quantity,
                       "price": total / quantity}],
            "total_amount": total,
            "order_status": status,
            "payment_method": "cod",
            "payment_status": "pending",
            "created_at": created_at,
            "updated_at": created_at,
        })
    return _add


@pytest.fixture
def history(add_order, make_book):
    add_order(at(2026, 10, 19, 10), 1000, quantity=2)
    add_order(at(2026, 10, 3, 9), 500, status="processing")
    add_order(at(2026, 9, 20, 12), 700, status="delivered")
    add_order(at(2025, 12, 5, 8), 300, status="cancelled", quantity=3)
    make_book(stock=5)
    make_book(stock=50)


def test_dashboard_stats(history):
    stats = dashboard.dashboard_stats(now=NOW)

    assert stats == {
        "total_orders": 4,
        "total_revenue": 2500,
        "todays_orders": 1,
        "todays_revenue": 1000,
        "monthly_orders": 2,
        "monthly_revenue": 1500,
        "total_books": 2,
        "total_books_sold": 7,
        "low_stock_books": 1,
        "pending_orders": 1,
    }


def test_monthly_sales(history):
    buckets = dashboard.sales_analytics("monthly", now=NOW)

    assert buckets == [
        {"year": 2025, "month": 12, "total_amount": 300, "count": 1},
        {"year": 2026, "month": 9, "total_amount": 700, "count": 1},
        {"year": 2026, "month": 10, "total_amount": 1500, "count": 2},
    ]


def test_daily_sales_cover_last_thirty_days(history, add_order):
    add_order(at(2026, 9, 19, 23), 999)

    buckets = dashboard.sales_analytics("daily", now=NOW)

    assert [(b["month"], b["day"], b["count"]) for b in buckets] == [(9, 20, 1), (10, 3, 1), (10, 19, 1)]


def test_weekly_sales_use_iso_weeks(history):
    buckets = dashboard.sales_analytics("weekly", now=NOW)

    expected = [at(2026, 9, 20).isocalendar()[1], at(2026, 10, 3).isocalendar()[1], NOW.isocalendar()[1]]
    assert [b["week"] for b in buckets] == expected
    assert all(b["year"] == 2026 for b in buckets)


def test_unknown_period_is_rejected(client, admin_headers):
    res = client.get("/admin/analytics/sales", params={"period": "hourly"}, headers=admin_headers)
    assert res.status_code == 400


def test_status_distribution_is_zero_filled(client, history, admin_headers):
    res = client.get("/admin/analytics/order-status", headers=admin_headers)

    assert res.status_code == 200
    assert res.json() == [
        {"status": "pending", "count": 1, "totalAmount": 1000},
        {"status": "processing", "count": 1, "totalAmount": 500},
        {"status": "shipped", "count": 0, "totalAmount": 0},
        {"status": "delivered", "count": 1, "totalAmount": 700},
        {"status": "cancelled", "count": 1, "totalAmount": 300},
    ]


def test_stats_endpoint_counts_new_orders(client, make_book, order_payload, admin_headers):
    book_id = make_book(price=500, stock=20)
    client.post("/orders", json=order_payload((book_id, 2)))

    stats = client.get("/admin/dashboard/stats", headers=admin_headers).json()

    assert stats["totalOrders"] == 1
    assert stats["todaysRevenue"] == 1000
    assert stats["totalBooksSold"] == 2
    assert stats["pendingOrders"] == 1


def test_recent_orders_newest_first(client, history, admin_headers):
    res = client.get("/admin/dashboard/recent-orders", params={"limit": 2}, headers=admin_headers)

    assert res.status_code == 200
    assert [o["totalAmount"] for o in res.json()] == [1000, 500]


def test_dashboard_requires_token(client):
    assert client.get("/admin/dashboard/stats").status_code == 401
