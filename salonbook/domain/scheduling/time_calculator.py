"""Time parsing and calculations

Appointment times are wall-clock times in the provider's timezone and never cross
midnight, so interval arithmetic is done in minutes since midnight.
"""

from datetime import date, datetime, time, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ...errors import ValidationError

MINUTES_PER_DAY = 24 * 60


def time_to_minutes(value: time) -> int:
    return value.hour * 60 + value.minute


def minutes_to_time(minutes: int) -> time:
    """Convert minutes since midnight back to a time; 24:00 and beyond is rejected"""
    if minutes < 0 or minutes >= MINUTES_PER_DAY:
        raise ValidationError("Appointments cannot cross midnight")
    return time(minutes // 60, minutes % 60)


def parse_time(value: str) -> time:
    """Parse "HH:MM" or "HH:MM:SS" (database format) into a time"""
    parts = value.strip().split(":") if isinstance(value, str) else []
    if len(parts) not in (2, 3) or not all(p.isdigit() for p in parts):
        raise ValidationError(f"Invalid time '{value}', expected HH:MM")
    try:
        return time(*(int(p) for p in parts))
    except ValueError as e:
        raise ValidationError(f"Invalid time '{value}', expected HH:MM") from e


def format_time(value: time) -> str:
    return value.strftime("%H:%M")


def get_zone(tz_name: str) -> ZoneInfo:
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValidationError(f"Unknown timezone '{tz_name}'") from e


def local_datetime(day: date, value: time, tz_name: str) -> datetime:
    """Attach the provider timezone to a wall-clock date/time"""
    return datetime.combine(day, value, tzinfo=get_zone(tz_name))


def local_now(now: datetime, tz_name: str) -> datetime:
    """Express an aware instant in the provider timezone"""
    if now.tzinfo is None:
        raise ValueError("now must be timezone-aware")
    return now.astimezone(get_zone(tz_name))


def utc_now() -> datetime:
    """Default clock; services take a clock callable so tests can pin the current instant"""
    return datetime.now(timezone.utc)
