"""
Domain time utilities (pure).

Centralized timestamp validation and business-calendar helpers.

All stored timestamps are UTC. Calendar dates (order date, sale ID date,
first-contact date, pickup date) are taken in the business timezone so that
"today" matches what the marketers see on their phones.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

BUSINESS_TIMEZONE_NAME = "Asia/Kuala_Lumpur"
BUSINESS_TZ = ZoneInfo(BUSINESS_TIMEZONE_NAME)


def require_utc_timestamp(name: str, value: datetime) -> None:
    """
    Enforces that timestamps are UTC.

    Invariants:
    - Timestamps must be timezone-aware.
    - Timestamps must have UTC offset 0.
    """

    if value.tzinfo is None or value.utcoffset() is None:
        raise ValueError(f"{name} must be timezone-aware (UTC)")
    if value.utcoffset() != timedelta(0):
        raise ValueError(f"{name} must be a UTC timestamp (offset 0)")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def business_date(moment: datetime) -> date:
    """Calendar date of a UTC moment in the business timezone."""

    require_utc_timestamp("moment", moment)
    return moment.astimezone(BUSINESS_TZ).date()


def parse_utc_datetime(value: object) -> datetime:
    """
    Parse a Supabase timestamp into a timezone-aware UTC datetime.

    Supabase commonly returns ISO-8601 strings, sometimes with a trailing 'Z'.
    Naive values are interpreted as UTC.
    """

    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str):
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    else:
        raise TypeError(f"Unsupported timestamp type: {type(value)!r}")

    if dt.tzinfo is None or dt.utcoffset() is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_date(value: object) -> date | None:
    """Parse a `YYYY-MM-DD` column (or a full timestamp) into a date."""

    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return date.fromisoformat(value[:10])
    raise TypeError(f"Unsupported date type: {type(value)!r}")
