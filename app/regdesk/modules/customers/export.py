from __future__ import annotations

import csv
import io
from datetime import date, datetime
from typing import Any

CSV_BOM = "\ufeff"

# (header, wire key)
CSV_COLUMNS = [
    ("First Name", "firstName"),
    ("Last Name", "lastName"),
    ("Email", "email"),
    ("Phone", "phone"),
    ("Company", "company"),
    ("Address", "address"),
    ("City", "city"),
    ("State", "state"),
    ("Country", "country"),
    ("Zip Code", "zipCode"),
    ("Status", "status"),
    ("Orders Count", "orderCount"),
    ("Total Spent", "totalSpent"),
    ("Currency", "currencyCode"),
    ("Shopify Customer ID", "shopifyCustomerId"),
    ("Notes", "notes"),
    ("Created At", "createdAt"),
    ("Approved At", "approvedAt"),
    ("Rejected At", "rejectedAt"),
]


def _cell(row: dict[str, Any], key: str) -> Any:
    value = row.get(key)
    if key in ("orderCount", "totalSpent"):
        return value or 0
    if key == "currencyCode":
        return value or "USD"
    return "" if value is None else value


def customers_to_csv(rows: list[dict[str, Any]]) -> str:
    """
    Enriched customer dicts -> CSV text (header row first, no BOM).
    csv.writer quotes any field holding a comma, quote or newline and doubles quotes.
    """
    out = io.StringIO()
    w = csv.writer(out, lineterminator="\n")
    w.writerow([header for header, _ in CSV_COLUMNS])
    for row in rows:
        w.writerow([_cell(row, key) for _, key in CSV_COLUMNS])
    return out.getvalue()


def export_filename(status: str | None, *, selected: bool, today: date | None = None) -> str:
    stamp = (today or datetime.utcnow().date()).isoformat()
    if selected:
        return f"customers-selected-{stamp}.csv"
    return f"customers-{status if status and status != 'all' else 'all'}-{stamp}.csv"
