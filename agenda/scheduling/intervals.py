"""Wall-clock time arithmetic for appointment intervals.

Times are ``HH:MM`` strings with no date component. Intervals are half-open,
``[start, end)``, so back-to-back appointments do not overlap.
"""

import datetime as dt
import re

from agenda.domain.exceptions import InvalidTimeFormatError

_MINUTES_PER_DAY = 24 * 60
_HHMM = re.compile(r"^(\d{1,2}):(\d{2})$")

TimeLike = str | dt.time


def parse_time(value: TimeLike) -> dt.time:
    """Parse ``"09:30"`` (or pass through a ``dt.time``) truncated to the minute."""
    if isinstance(value, dt.time):
        return value.replace(second=0, microsecond=0, tzinfo=None)
    if not isinstance(value, str):
        raise InvalidTimeFormatError(value)

    match = _HHMM.match(value.strip())
    if not match:
        raise InvalidTimeFormatError(value)

    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        raise InvalidTimeFormatError(value)
    return dt.time(hour, minute)


def format_time(value: dt.time) -> str:
    return value.strftime("%H:%M")


def normalize_time(value: TimeLike) -> str:
    """Return ``value`` as a zero-padded ``HH:MM`` string, e.g. ``"9:05"`` → ``"09:05"``."""
    return format_time(parse_time(value))


def to_minutes(value: TimeLike) -> int:
    parsed = parse_time(value)
    return parsed.hour * 60 + parsed.minute


def from_minutes(minutes: int) -> str:
    minutes %= _MINUTES_PER_DAY
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def compute_end_time(start_time: TimeLike, duration_minutes: int) -> str:
    """Add ``duration_minutes`` to ``start_time``, wrapping within a single day.

    ``compute_end_time("09:45", 30)`` → ``"10:15"``;
    ``compute_end_time("23:30", 60)`` → ``"00:30"``.
    """
    if duration_minutes < 0:
        raise InvalidTimeFormatError(f"{start_time} + {duration_minutes} minutes")
    return from_minutes(to_minutes(start_time) + duration_minutes)


def is_forward(start_time: TimeLike, end_time: TimeLike) -> bool:
    """True when ``end_time`` is strictly after ``start_time`` on the same day."""
    return to_minutes(start_time) < to_minutes(end_time)


def intervals_overlap(
    start_a: TimeLike, end_a: TimeLike, start_b: TimeLike, end_b: TimeLike
) -> bool:
    """Half-open overlap test: ``[09:00, 09:30)`` and ``[09:30, 10:00)`` do not overlap."""
    return to_minutes(start_a) < to_minutes(end_b) and to_minutes(end_a) > to_minutes(start_b)


def interval_within(
    start: TimeLike, end: TimeLike, window_start: TimeLike, window_end: TimeLike
) -> bool:
    """True when ``[start, end]`` lies fully inside ``[window_start, window_end]``."""
    return to_minutes(start) >= to_minutes(window_start) and to_minutes(end) <= to_minutes(
        window_end
    )
