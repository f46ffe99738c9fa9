"""Calendar-day utilities for check-ins and runs.

Days are bucketed in the user's own IANA timezone, never in UTC.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from esko.exceptions import InvalidTimezone


def resolve_timezone(name: str) -> ZoneInfo:
    """Look up an IANA zone, raising InvalidTimezone for unknown names."""
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise InvalidTimezone(name) from exc


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def calendar_date(dt: datetime | None = None, tz_name: str = "UTC") -> date:
    """Get the calendar date of dt as seen in tz_name."""
    if dt is None:
        dt = utc_now()
    return dt.astimezone(resolve_timezone(tz_name)).date()


def previous_day(d: date) -> date:
    """Get the calendar day before d."""
    return d - timedelta(days=1)


def lookback_start(today: date, days: int) -> date:
    """Get the first date included in a lookback window ending at today."""
    return today - timedelta(days=days)
