from __future__ import annotations

import calendar
from datetime import datetime, timedelta
from typing import Any

from app.regdesk.modules.customers.models import CUSTOMER_STATUSES, Customer
from app.regdesk.modules.customers.service import status_counts

RECENT_LIMIT = 10
HISTOGRAM_DAYS = 30


def _one_month_before(dt: datetime) -> datetime:
    year, month = (dt.year, dt.month - 1) if dt.month > 1 else (dt.year - 1, 12)
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return dt.replace(year=year, month=month, day=day)


def _created_since(s, since: datetime) -> int:
    return s.query(Customer).filter(Customer.created_at >= since).count()


def approval_rate(approved: int, total: int) -> float:
    """Percentage, one decimal. 0.0 when there are no customers."""
    if total <= 0:
        return 0.0
    return round(approved / total * 100, 1)


def registrations_by_date(s, *, since: datetime) -> dict[str, dict[str, int]]:
    """
    {YYYY-MM-DD: {pending, approved, rejected, total}} for rows created at or
    after `since`, bucketed by created_at's calendar date, ascending.
    """
    rows = (
        s.query(Customer.created_at, Customer.status)
        .filter(Customer.created_at >= since)
        .order_by(Customer.created_at.asc())
        .all()
    )
    buckets: dict[str, dict[str, int]] = {}
    for created_at, status in rows:
        day = created_at.date().isoformat()
        b = buckets.setdefault(day, {**{st: 0 for st in CUSTOMER_STATUSES}, "total": 0})
        if status in b:
            b[status] += 1
        b["total"] += 1
    return buckets


def compute_dashboard(s, *, now: datetime | None = None) -> dict[str, Any]:
    """
    On-demand aggregates for /app/dashboard. All windows are in naive UTC:
    - today: since midnight
    - this week: since now - 7 days
    - this month: since the same instant one calendar month ago
    """
    now = now or datetime.utcnow()
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)

    counts = status_counts(s)
    statistics = {
        "total": counts["total"],
        "pending": counts["pending"],
        "approved": counts["approved"],
        "rejected": counts["rejected"],
        "today": _created_since(s, midnight),
        "thisWeek": _created_since(s, now - timedelta(days=7)),
        "thisMonth": _created_since(s, _one_month_before(now)),
    }
    statistics["approvalRate"] = approval_rate(statistics["approved"], statistics["total"])

    recent = (
        s.query(Customer)
        .order_by(Customer.created_at.desc(), Customer.id.asc())
        .limit(RECENT_LIMIT)
        .all()
    )
    return {
        "statistics": statistics,
        "recent_customers": recent,
        "registrations_by_date": registrations_by_date(s, since=now - timedelta(days=HISTOGRAM_DAYS)),
    }
