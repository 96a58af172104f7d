"""
Timezone-aware datetime helpers.
- Store and compute in UTC in DB.
- Business days (session date, presets, sweep cutoff) are computed in the configured business timezone.
"""
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

UTC = timezone.utc


def now_utc() -> datetime:
    """Current time in UTC (timezone-aware). Use for check_in_time, check_out_time, created_at, etc."""
    return datetime.now(UTC)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """If dt is naive, treat as UTC and return timezone-aware UTC. If already aware, convert to UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    else:
        dt = dt.astimezone(UTC)
    return dt


def to_business_tz(dt: Optional[datetime], tz_name: str) -> Optional[datetime]:
    """Convert to the business timezone. Naive datetimes are treated as UTC before converting."""
    if dt is None:
        return None
    return ensure_utc(dt).astimezone(ZoneInfo(tz_name))


def business_date(dt: datetime, tz_name: str) -> date:
    """Calendar day of dt in the business timezone."""
    return to_business_tz(dt, tz_name).date()


def at_local_time(day: date, wall_time: time, tz_name: str) -> datetime:
    """UTC instant of wall_time on day in the business timezone (DST-aware via zoneinfo)."""
    local = datetime.combine(day, wall_time, tzinfo=ZoneInfo(tz_name))
    return local.astimezone(UTC)


def iso_local(dt: Optional[datetime], tz_name: str) -> Optional[str]:
    """Serialize as ISO-8601 in the business timezone with its offset. Never returns Z."""
    if dt is None:
        return None
    return to_business_tz(dt, tz_name).isoformat()


def week_start(day: date) -> date:
    """Sunday on or before day."""
    return day - timedelta(days=(day.weekday() + 1) % 7)


def month_end(year: int, month: int) -> date:
    """Last calendar day of the month."""
    if month == 12:
        return date(year, 12, 31)
    return date(year, month + 1, 1) - timedelta(days=1)
