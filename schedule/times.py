"""
Service-day time and date handling.

A TimeOfDay is a plain int: seconds since the start of the service day.  It is
NOT bounded to 24h — GTFS writes trips that run past midnight but belong to the
previous service day as e.g. "25:10:00" (= 90600).  All parsing and formatting
of these values goes through this module.

Service dates are datetime.date objects.  The feed keys dates as YYYYMMDD
strings, which order correctly as plain strings.
"""

import re
from datetime import date, datetime

from schedule.errors import InvalidInputError

TimeOfDay = int

SECONDS_PER_DAY = 86_400

_HMS_RE = re.compile(r"^(\d+):([0-5]\d):([0-5]\d)$")

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


def parse_time_of_day(hms: str) -> TimeOfDay:
    """
    Convert H:MM:SS / HH:MM:SS (HH may exceed 23) to seconds since service-day start.

    Raises:
        InvalidInputError: If the text is not a valid GTFS time.
    """
    match = _HMS_RE.match(hms.strip()) if isinstance(hms, str) else None
    if match is None:
        raise InvalidInputError(f"Invalid time {hms!r}: expected HH:MM:SS.")
    hours, minutes, seconds = (int(g) for g in match.groups())
    return hours * 3600 + minutes * 60 + seconds


def format_time_of_day(seconds: TimeOfDay) -> str:
    """Inverse of parse_time_of_day; hours are not wrapped at 24."""
    if seconds < 0:
        raise InvalidInputError(f"Time of day cannot be negative: {seconds}.")
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def parse_service_date(value: str | date) -> date:
    """
    Accept YYYY-MM-DD or YYYYMMDD text (or an existing date).

    Raises:
        InvalidInputError: If the text is not a real calendar date.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = value.strip() if isinstance(value, str) else ""
    for fmt in ("%Y-%m-%d", "%Y%m%d"):
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    raise InvalidInputError(f"Invalid date {value!r}: expected YYYY-MM-DD.")


def service_date_key(service_date: date) -> str:
    """Feed representation of a date (YYYYMMDD)."""
    return service_date.strftime("%Y%m%d")


def weekday_name(service_date: date) -> str:
    """Lower-case weekday name, matching the calendar.txt column names."""
    return WEEKDAYS[service_date.weekday()]


def check_window(window_start: TimeOfDay, window_end: TimeOfDay) -> None:
    """Raise InvalidInputError unless window_end > window_start."""
    if window_start < 0 or window_end <= window_start:
        raise InvalidInputError(
            f"End time {format_time_of_day(max(window_end, 0))} must be after "
            f"start time {format_time_of_day(max(window_start, 0))}."
        )


def window_hours(window_start: TimeOfDay, window_end: TimeOfDay) -> float:
    """Length of a [start, end) window in hours."""
    check_window(window_start, window_end)
    return (window_end - window_start) / 3600
