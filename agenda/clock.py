import datetime as dt
from collections.abc import Callable
from zoneinfo import ZoneInfo

from loguru import logger

Clock = Callable[[], dt.datetime]
"""Returns the current clinic-local time as a naive datetime."""


def resolve_timezone(name: str) -> dt.tzinfo:
    """Resolve a timezone name, falling back to UTC if invalid."""
    try:
        return ZoneInfo(name)
    except Exception:
        logger.warning("Invalid clinic timezone '{}'; defaulting to UTC", name)
        return dt.timezone.utc


def clinic_clock(timezone: str) -> Clock:
    """Build a clock that reads wall-clock time in the clinic's timezone.

    Appointment dates and times are stored timezone-naive, so the clock drops
    ``tzinfo`` after converting.
    """
    tz = resolve_timezone(timezone)

    def now() -> dt.datetime:
        return dt.datetime.now(tz).replace(tzinfo=None, microsecond=0)

    return now


def start_of_week(day: dt.date) -> dt.date:
    """Return the Sunday on or before ``day``."""
    return day - dt.timedelta(days=(day.weekday() + 1) % 7)
