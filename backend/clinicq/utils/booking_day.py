"""
Booking day helpers.

A booking day is the canonical "YYYY-MM-DD" string of a moment in the
clinic's local timezone. It is the only key used to scope "today's" queue.
"""

from datetime import datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from ..config import get_settings

settings = get_settings()


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def clinic_zone(tz_name: Optional[str] = None) -> ZoneInfo:
    return ZoneInfo(tz_name or settings.CLINIC_TIMEZONE)


def get_booking_day(moment: Optional[datetime] = None, tz_name: Optional[str] = None) -> str:
    """
    Booking day of ``moment`` (defaults to now) in the clinic timezone.

    Naive datetimes are treated as UTC.
    """
    moment = moment or utcnow()
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(clinic_zone(tz_name)).strftime("%Y-%m-%d")


def end_of_booking_day(booking_day: str, tz_name: Optional[str] = None) -> datetime:
    """Last instant of ``booking_day`` in the clinic timezone, as UTC."""
    day = datetime.strptime(booking_day, "%Y-%m-%d").date()
    start_of_next = datetime.combine(day + timedelta(days=1), time.min, tzinfo=clinic_zone(tz_name))
    return (start_of_next - timedelta(microseconds=1)).astimezone(timezone.utc)


def booking_day_range(start: str, end: str):
    """Inclusive list of booking days between two "YYYY-MM-DD" strings."""
    first = datetime.strptime(start, "%Y-%m-%d").date()
    last = datetime.strptime(end, "%Y-%m-%d").date()
    if last < first:
        return []
    return [(first + timedelta(days=i)).isoformat() for i in range((last - first).days + 1)]
