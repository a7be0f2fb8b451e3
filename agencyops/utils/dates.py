"""Date helpers for deadline math.

Stored datetimes are UTC. SQLite (tests) hands them back naive, PostgreSQL
hands them back aware, so every comparison goes through utc() first.
"""

from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo


def utc(dt: datetime | None) -> datetime | None:
    """Make a naive datetime UTC-aware (no-op if already aware)."""
    if dt is None:
        return None
    return dt.replace(tzinfo=timezone.utc) if dt.tzinfo is None else dt


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def start_of_day(now: datetime, tz_name: str) -> datetime:
    """Midnight of now's calendar day in tz_name, returned as UTC."""
    tz = ZoneInfo(tz_name)
    local = utc(now).astimezone(tz)
    midnight = local.replace(hour=0, minute=0, second=0, microsecond=0)
    return midnight.astimezone(timezone.utc)


def days_between(start: datetime | None, end: datetime) -> int:
    """Whole days elapsed from start to end (floor), 0 when start is missing."""
    if start is None:
        return 0
    return (utc(end) - utc(start)) // timedelta(days=1)
