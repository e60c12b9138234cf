"""UTC time helpers (timezone-aware calculation, naive storage)."""
from __future__ import annotations

from datetime import datetime, timezone, date


def utc_now() -> datetime:
    """Return a UTC timestamp without tzinfo for naive DB columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def utc_today() -> date:
    """Return today's date in UTC (naive)."""
    return utc_now().date()


def isoformat_or_none(value):
    """Serialize a date/datetime column, passing None through."""
    return value.isoformat() if value else None
