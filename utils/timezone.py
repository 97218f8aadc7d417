"""UTC-everywhere time handling. Clinic-local time only at display boundaries."""

from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

DEFAULT_CLINIC_TIMEZONE = "America/Mexico_City"


def now_utc() -> datetime:
    """Current time in UTC. Use this instead of datetime.now()."""
    return datetime.now(timezone.utc)


def to_utc(dt: datetime) -> datetime:
    """
    Convert an aware datetime to UTC.

    Raises ValueError if datetime is naive (no timezone).
    """
    if dt.tzinfo is None:
        raise ValueError(
            "Cannot convert naive datetime to UTC. Datetime must be timezone-aware."
        )
    return dt.astimezone(timezone.utc)


def get_zone(tz_name: str) -> ZoneInfo:
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValueError(f"Unknown timezone: {tz_name}")


def to_local(dt: datetime, tz_name: str = DEFAULT_CLINIC_TIMEZONE) -> datetime:
    """
    Convert UTC datetime to the clinic's timezone for display.

    Raises:
        ValueError: If datetime is naive or timezone name is invalid
    """
    if dt.tzinfo is None:
        raise ValueError(
            "Cannot convert naive datetime. Datetime must be timezone-aware."
        )
    return dt.astimezone(get_zone(tz_name))


def parse_iso(iso_string: str) -> datetime:
    """
    Parse ISO 8601 datetime string to UTC datetime.

    Raises ValueError if string has no timezone info.
    """
    dt = datetime.fromisoformat(iso_string)
    if dt.tzinfo is None:
        raise ValueError(
            "Cannot parse naive datetime string. "
            "Include timezone offset (e.g., 'Z' or '+00:00')."
        )
    return to_utc(dt)


def local_day_bounds(day: date, tz_name: str = DEFAULT_CLINIC_TIMEZONE) -> tuple[datetime, datetime]:
    """
    UTC start and end of a calendar day as observed in the clinic.

    Returns a half-open range [start, end).
    """
    zone = get_zone(tz_name)
    start = datetime.combine(day, time.min, tzinfo=zone)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=zone)
    return to_utc(start), to_utc(end)


def format_local(dt: datetime, tz_name: str = DEFAULT_CLINIC_TIMEZONE) -> str:
    """Short clinic-local rendering, e.g. '2024-03-05 10:30'."""
    return to_local(dt, tz_name).strftime("%Y-%m-%d %H:%M")
