# FILE: ascready/utils/timezone.py
from __future__ import annotations

from datetime import date, datetime, time, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

UTC = timezone.utc


def utcnow() -> datetime:
    """
    Returns a *naive* datetime representing UTC now.
    All DateTime columns are naive UTC.
    """
    return datetime.now(UTC).replace(tzinfo=None)


def to_db_utc_naive(dt: datetime | None) -> datetime | None:
    """Store UTC as naive datetime in DB."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(UTC).replace(tzinfo=None)


def facility_zone(tz_name: str | None) -> ZoneInfo:
    try:
        return ZoneInfo(tz_name or "UTC")
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo("UTC")


def facility_today(tz_name: str | None, now: datetime | None = None) -> date:
    now = now or utcnow()
    return now.replace(tzinfo=UTC).astimezone(facility_zone(tz_name)).date()


def start_of_day_utc(d: date, tz_name: str | None = None) -> datetime:
    """Midnight of 'd' in the facility zone, as naive UTC."""
    local = datetime.combine(d, time.min, tzinfo=facility_zone(tz_name))
    return local.astimezone(UTC).replace(tzinfo=None)
