from __future__ import annotations

from datetime import datetime


def isoformat_utc(value: datetime | None) -> str | None:
    """Naive-UTC datetime -> `2026-01-16T09:30:00.000Z` (None passes through)."""
    if value is None:
        return None
    return value.isoformat(timespec="milliseconds") + "Z"


def parse_positive_int(raw: str | None, default: int) -> int:
    """Query-string integer; anything unparsable or < 1 falls back to `default`."""
    try:
        value = int((raw or "").strip())
    except ValueError:
        return default
    return value if value >= 1 else default
