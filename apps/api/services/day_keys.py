"""
Day Keys

Every per-day map in the tracker is keyed by an ISO calendar day string
("YYYY-MM-DD"). Whenever a day key has to become an instant (shift windows,
gap arithmetic) it is anchored at 12:00 UTC, so that no server or client
timezone offset can push it onto the neighbouring day.
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Iterator, List, Optional, Tuple
import re

ANCHOR_TIME = time(12, 0, tzinfo=timezone.utc)

_ISO_DAY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def is_iso_day(value) -> bool:
    """True when value is a well-formed, real calendar day string."""
    if not isinstance(value, str) or not _ISO_DAY_RE.match(value):
        return False
    try:
        date.fromisoformat(value)
    except ValueError:
        return False
    return True


def parse_day(value) -> Optional[str]:
    """
    Coerce a date, datetime or day string into a canonical day key.

    Returns None for anything that is not a real calendar day.
    """
    if isinstance(value, datetime):
        return to_iso_day(value)
    if isinstance(value, date):
        return value.isoformat()
    if is_iso_day(value):
        return value
    return None


def from_iso_day(day: str) -> datetime:
    """Day key -> aware datetime at the 12:00 UTC anchor."""
    return datetime.combine(date.fromisoformat(day), ANCHOR_TIME)


def to_iso_day(instant: datetime) -> str:
    """Datetime -> day key, read in UTC (naive values are taken as UTC)."""
    if instant.tzinfo is not None:
        instant = instant.astimezone(timezone.utc)
    return instant.date().isoformat()


def add_days(day: str, days: int) -> str:
    return (date.fromisoformat(day) + timedelta(days=days)).isoformat()


def diff_days(a: str, b: str) -> int:
    """Whole days from b to a (a - b)."""
    return (date.fromisoformat(a) - date.fromisoformat(b)).days


def iter_days(start: str, end: str) -> Iterator[str]:
    """Inclusive ascending day keys; empty when start > end."""
    current = date.fromisoformat(start)
    last = date.fromisoformat(end)
    while current <= last:
        yield current.isoformat()
        current += timedelta(days=1)


def days_inclusive(start: str, end: str) -> List[str]:
    return list(iter_days(start, end))


def start_of_week_monday(day: str) -> str:
    d = date.fromisoformat(day)
    return (d - timedelta(days=d.weekday())).isoformat()


def end_of_week_sunday(day: str) -> str:
    return add_days(start_of_week_monday(day), 6)


def month_bounds(day: str) -> Tuple[str, str]:
    """First and last day of the month containing day."""
    d = date.fromisoformat(day)
    first = d.replace(day=1)
    if first.month == 12:
        next_first = first.replace(year=first.year + 1, month=1)
    else:
        next_first = first.replace(month=first.month + 1)
    return first.isoformat(), (next_first - timedelta(days=1)).isoformat()
