"""
Shift Schedule

Ward shift codes and the work windows they stand for. The vitals replay
reads these to derive circadian inputs: consecutive nights, monthly night
load, the rest gap between two shifts (quick returns) and shift length.

Work windows (local ward time, anchored to the day key):
    D    07:00-15:00
    M    11:00-19:00
    E    15:00-23:00
    N    23:00-07:00 (+1 day)
    OFF  no work
    VAC  no work (leave)
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Mapping, Optional

from services.day_keys import add_days, from_iso_day


class Shift(str, Enum):
    DAY = "D"
    EVENING = "E"
    NIGHT = "N"
    MIDDLE = "M"
    OFF = "OFF"
    VACATION = "VAC"


DEFAULT_SHIFT = Shift.OFF

# (start hour, end hour, end day offset)
SHIFT_WINDOWS = {
    Shift.DAY: (7, 15, 0),
    Shift.MIDDLE: (11, 19, 0),
    Shift.EVENING: (15, 23, 0),
    Shift.NIGHT: (23, 7, 1),
}

NIGHT_WINDOW_DAYS = 30


@dataclass(frozen=True)
class ShiftWindow:
    start: datetime
    end: datetime

    @property
    def hours(self) -> float:
        return (self.end - self.start).total_seconds() / 3600


def parse_shift(value) -> Shift:
    """Coerce a raw schedule value to a Shift; unknown or missing means OFF."""
    if isinstance(value, Shift):
        return value
    if isinstance(value, str):
        try:
            return Shift(value.strip().upper())
        except ValueError:
            return DEFAULT_SHIFT
    return DEFAULT_SHIFT


def is_night(shift) -> bool:
    return parse_shift(shift) == Shift.NIGHT


def shift_window(day: str, shift: Shift) -> Optional[ShiftWindow]:
    """Work window of a shift on a given day, or None for OFF/VAC."""
    hours = SHIFT_WINDOWS.get(shift)
    if hours is None:
        return None
    start_hour, end_hour, end_offset = hours
    # Midnight of the day, derived from the noon anchor
    midnight = from_iso_day(day) - timedelta(hours=12)
    return ShiftWindow(
        start=midnight + timedelta(hours=start_hour),
        end=midnight + timedelta(days=end_offset, hours=end_hour),
    )


def shift_length_hours(day: str, shift: Shift) -> float:
    window = shift_window(day, shift)
    return window.hours if window else 0.0


def hours_between_shifts(prev_day: str, prev_shift: Shift, day: str, shift: Shift) -> Optional[float]:
    """
    Rest hours between the end of the previous shift and the start of this one.

    None when either day has no work window (nothing to return from or to).
    """
    prev = shift_window(prev_day, prev_shift)
    cur = shift_window(day, shift)
    if prev is None or cur is None:
        return None
    return (cur.start - prev.end).total_seconds() / 3600


def count_nights_in_window(
    schedule: Mapping[str, Shift],
    day: str,
    window_days: int = NIGHT_WINDOW_DAYS,
) -> int:
    """Night shifts in the trailing window ending at (and including) day."""
    count = 0
    for offset in range(window_days):
        key = add_days(day, -offset)
        if is_night(schedule.get(key)):
            count += 1
    return count
