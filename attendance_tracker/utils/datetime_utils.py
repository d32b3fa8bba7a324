"""
Timezone-aware datetime helpers.
- Timers and the ledger work in UTC.
- work_date and shift comparisons use the configured local timezone (settings.TZ).
"""
from datetime import date, datetime, time, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from attendance_tracker.core.config import settings

UTC = timezone.utc


def local_tz() -> ZoneInfo:
    """Timezone used for work dates (settings.TZ, default Asia/Kolkata)."""
    return ZoneInfo(settings.TZ)


def now_utc() -> datetime:
    """Current time in UTC (timezone-aware). Default clock for session timers."""
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


def to_local(dt: Optional[datetime]) -> Optional[datetime]:
    """Convert to the local timezone. Naive datetimes are treated as UTC before converting."""
    if dt is None:
        return None
    return ensure_utc(dt).astimezone(local_tz())


def iso_local(dt: Optional[datetime]) -> Optional[str]:
    """Serialize as ISO-8601 with the local UTC offset. Used for API response datetimes."""
    if dt is None:
        return None
    return to_local(dt).isoformat()


def get_work_date(utc_now: Optional[datetime] = None) -> date:
    """Return work_date (local calendar date) for the given UTC time (default now)."""
    now = utc_now or now_utc()
    return to_local(now).date()


def parse_hhmm(value: str) -> time:
    """Parse an HH:MM string (already validated by Settings) into a time."""
    hour, minute = value.split(":")
    return time(int(hour), int(minute))


def truncate_to_second(dt: datetime) -> datetime:
    """Drop sub-second precision so differences between timestamps are whole seconds."""
    return dt.replace(microsecond=0)
