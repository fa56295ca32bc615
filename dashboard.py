"""
Admin dashboard aggregations

Read-only figures over the order and book collections, computed with Mongo
aggregation pipelines. Day and month boundaries are taken in UTC at query
time.
"""

from datetime import datetime, timedelta, timezone
from typing import List, Optional

from pymongo import DESCENDING

import config
from database import BOOKS, ORDERS, collection, get_documents, serialize, utcnow
from errors import ValidationError
from schemas import OrderStatus

SALES_PERIODS = ("daily", "weekly", "monthly")

# Group keys per period; weekly buckets follow ISO weeks
SALES_GROUPS = {
    "daily": {
        "year": {"$year": "$created_at"},
        "month": {"$month": "$created_at"},
        "day": {"$dayOfMonth": "$created_at"},
    },
    "weekly": {
        "year": {"$isoWeekYear": "$created_at"},
        "week": {"$isoWeek": "$created_at"},
    },
    "monthly": {
        "year": {"$year": "$created_at"},
        "month": {"$month": "$created_at"},
    },
}


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _query_time(value: datetime) -> datetime:
    # BSON dates are UTC; a naive UTC value compares the same on every driver
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _since(moment: datetime) -> dict:
    return {"$match": {"created_at": {"$gte": _query_time(moment)}}}


def _order_totals(*stages) -> tuple:
    """(count, revenue) over the orders passing `stages`"""
    pipeline = list(stages) + [
        {"$group": {"_id": None, "count": {"$sum": 1}, "revenue": {"$sum": "$total_amount"}}},
    ]
    rows = list(collection(ORDERS).aggregate(pipeline))
    if not rows:
        return 0, 0.0
    return rows[0]["count"], round(float(rows[0]["revenue"]), 2)


def _books_sold() -> int:
    pipeline = [
        {"$unwind": "$books"},
        {"$group": {"_id": None, "sold": {"$sum": "$books.quantity"}}},
    ]
    rows = list(collection(ORDERS).aggregate(pipeline))
    return int(rows[0]["sold"]) if rows else 0


def start_of_day(now: datetime) -> datetime:
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def dashboard_stats(now: Optional[datetime] = None) -> dict:
    now = _as_utc(now) or utcnow()
    today = start_of_day(now)
    month = today.replace(day=1)

    total_orders, total_revenue = _order_totals()
    todays_orders, todays_revenue = _order_totals(_since(today))
    monthly_orders, monthly_revenue = _order_totals(_since(month))

    books = collection(BOOKS)
    return {
        "total_orders": total_orders,
        "total_revenue": total_revenue,
        "todays_orders": todays_orders,
        "todays_revenue": todays_revenue,
        "monthly_orders": monthly_orders,
        "monthly_revenue": monthly_revenue,
        "total_books": books.count_documents({}),
        "total_books_sold": _books_sold(),
        "low_stock_books": books.count_documents({"stock": {"$lt": config.LOW_STOCK_THRESHOLD}}),
        "pending_orders": collection(ORDERS).count_documents({"order_status": OrderStatus.pending.value}),
    }


def _window_start(period: str, now: datetime) -> datetime:
    today = start_of_day(now)
    if period == "daily":
        return today - timedelta(days=29)
    if period == "weekly":
        monday = today - timedelta(days=today.weekday())
        return monday - timedelta(weeks=11)
    year, month = now.year, now.month - 11
    if month <= 0:
        month += 12
        year -= 1
    return datetime(year, month, 1, tzinfo=timezone.utc)


def sales_analytics(period: str = "monthly", now: Optional[datetime] = None) -> List[dict]:
    """Order count and revenue per day (30 days), ISO week (12) or month (12)"""
    if period not in SALES_PERIODS:
        raise ValidationError(f"period must be one of {', '.join(SALES_PERIODS)}")
    now = _as_utc(now) or utcnow()
    group_by = SALES_GROUPS[period]

    pipeline = [
        _since(_window_start(period, now)),
        {"$group": {"_id": group_by, "total_amount": {"$sum": "$total_amount"}, "count": {"$sum": 1}}},
    ]
    result = []
    for row in collection(ORDERS).aggregate(pipeline):
        bucket = {key: row["_id"][key] for key in group_by}
        bucket["total_amount"] = round(float(row["total_amount"]), 2)
        bucket["count"] = row["count"]
        result.append(bucket)
    result.sort(key=lambda b: tuple(b[key] for key in group_by))
    return result


def order_status_distribution() -> List[dict]:
    pipeline = [
        {"$group": {"_id": "$order_status", "count": {"$sum": 1}, "total_amount": {"$sum": "$total_amount"}}},
    ]
    counts = {s.value: {"status": s.value, "count": 0, "total_amount": 0.0} for s in OrderStatus}
    for row in collection(ORDERS).aggregate(pipeline):
        if row["_id"] in counts:
            counts[row["_id"]]["count"] = row["count"]
            counts[row["_id"]]["total_amount"] = round(float(row["total_amount"]), 2)
    return list(counts.values())


def recent_orders(limit: int = 10) -> List[dict]:
    docs = get_documents(ORDERS, sort=[("created_at", DESCENDING)], limit=limit)
    return [serialize(d) for d in docs]
