"""
Menstrual Cycle

Conservative cycle-phase prediction for display and for the recovery
engine's menstrual impact term, plus the settings auto-adjuster that learns
cycle and period length from logged flow.

Phase rules within a cycle (day index 0 = first day of the last period):
    period      index < period_length
    pms         last pms_days of the cycle
    ovulation   index == cycle_length - 14 (kept within [6, cycle_length - 8])
    follicular  before ovulation
    luteal      after ovulation, before PMS
Days before the last period start, or with tracking disabled, are "none".
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Mapping, Optional

from services.day_keys import add_days, diff_days
from services.tracker_state import BioInputs, MenstrualSettings, clamp_int

CYCLE_LENGTH_RANGE = (20, 45)
PERIOD_LENGTH_RANGE = (2, 10)
PMS_DAYS_RANGE = (2, 10)

# Weight kept on the current setting when blending in an observation
LEARNING_KEEP = 0.7
MAX_PERIOD_SCAN_DAYS = 15


class MenstrualPhase(str, Enum):
    PERIOD = "period"
    PMS = "pms"
    OVULATION = "ovulation"
    FOLLICULAR = "follicular"
    LUTEAL = "luteal"
    NONE = "none"


PHASE_LABELS = {
    MenstrualPhase.PERIOD: "Period",
    MenstrualPhase.PMS: "Pre-period days",
    MenstrualPhase.OVULATION: "Steady condition",
    MenstrualPhase.FOLLICULAR: "Steady condition",
    MenstrualPhase.LUTEAL: "Variable condition",
    MenstrualPhase.NONE: "Cycle",
}


@dataclass(frozen=True)
class MenstrualContext:
    day: str
    enabled: bool
    phase: MenstrualPhase
    day_index_in_cycle: int        # 0 .. cycle_length - 1
    day_in_cycle: Optional[int]    # 1 .. cycle_length, None when not tracked
    label: str
    cycle_length: int
    period_length: int


def cycle_phase(day_index: int, cycle_length: int, period_length: int, pms_days: int) -> MenstrualPhase:
    """Phase of a zero-based index within one cycle."""
    ovulation_day = clamp_int(cycle_length - 14, 6, cycle_length - 8)
    pms_start = max(0, cycle_length - pms_days)

    if day_index <= period_length - 1:
        return MenstrualPhase.PERIOD
    if day_index >= pms_start:
        return MenstrualPhase.PMS
    if day_index == ovulation_day:
        return MenstrualPhase.OVULATION
    if day_index < ovulation_day:
        return MenstrualPhase.FOLLICULAR
    return MenstrualPhase.LUTEAL


def menstrual_context_for_day(day: str, settings: Optional[MenstrualSettings]) -> MenstrualContext:
    """Predicted cycle context for a day; phase NONE when not tracked."""
    settings = settings or MenstrualSettings()
    cycle_length = clamp_int(settings.cycle_length, *CYCLE_LENGTH_RANGE)
    period_length = clamp_int(settings.period_length, *PERIOD_LENGTH_RANGE)
    pms_days = clamp_int(settings.pms_days, *PMS_DAYS_RANGE)

    untracked = MenstrualContext(
        day=day,
        enabled=bool(settings.enabled and settings.last_period_start),
        phase=MenstrualPhase.NONE,
        day_index_in_cycle=0,
        day_in_cycle=None,
        label=PHASE_LABELS[MenstrualPhase.NONE],
        cycle_length=cycle_length,
        period_length=period_length,
    )
    if not settings.enabled or not settings.last_period_start:
        return untracked

    delta = diff_days(day, settings.last_period_start)
    if delta < 0:
        return untracked

    index = delta % cycle_length
    phase = cycle_phase(index, cycle_length, period_length, pms_days)
    return MenstrualContext(
        day=day,
        enabled=True,
        phase=phase,
        day_index_in_cycle=index,
        day_in_cycle=index + 1,
        label=PHASE_LABELS[phase],
        cycle_length=cycle_length,
        period_length=period_length,
    )


def _flow(bio: Optional[BioInputs]) -> int:
    if bio is None:
        return 0
    return clamp_int(bio.menstrual_flow or 0, 0, 3)


def _has_period_signal(bio: Optional[BioInputs]) -> bool:
    return _flow(bio) > 0 or (bio is not None and bio.menstrual_status == "period")


def _blend(current: int, observed: int, bounds) -> int:
    return clamp_int(round(current * LEARNING_KEEP + observed * (1 - LEARNING_KEEP)), *bounds)


def auto_adjust_menstrual_settings(
    settings: MenstrualSettings,
    day: str,
    bio: Optional[BioInputs],
    prev_bio: Optional[BioInputs] = None,
    bio_map: Optional[Mapping[str, BioInputs]] = None,
) -> Optional[MenstrualSettings]:
    """
    Learn cycle settings from today's log.

    - Any period signal turns tracking on.
    - A period start (signal today, none yesterday) blends the observed cycle
      length into the setting and moves the last period start to today.
    - A period end blends the observed bleeding length (counted back through
      bio_map) into the period length.
    - A PMS log raises PMS days to at least 4.

    Returns the updated settings, or None when nothing changed.
    """
    if bio is None:
        return None

    today = _has_period_signal(bio)
    yesterday = _has_period_signal(prev_bio)

    updated = replace(
        settings,
        cycle_length=clamp_int(settings.cycle_length, *CYCLE_LENGTH_RANGE),
        period_length=clamp_int(settings.period_length, *PERIOD_LENGTH_RANGE),
    )

    if today and not updated.enabled:
        updated = replace(updated, enabled=True)

    if today and not yesterday:
        last = updated.last_period_start
        if last:
            observed = diff_days(day, last)
            low, high = CYCLE_LENGTH_RANGE
            if low <= observed <= high:
                updated = replace(updated, cycle_length=_blend(updated.cycle_length, observed, CYCLE_LENGTH_RANGE))
        updated = replace(updated, last_period_start=day)

    if yesterday and not today and bio_map is not None:
        length = 0
        cursor = add_days(day, -1)
        while length < MAX_PERIOD_SCAN_DAYS and _has_period_signal(bio_map.get(cursor)):
            length += 1
            cursor = add_days(cursor, -1)
        low, high = PERIOD_LENGTH_RANGE
        if low <= length <= high:
            updated = replace(updated, period_length=_blend(updated.period_length, length, PERIOD_LENGTH_RANGE))

    if bio.menstrual_status == "pms":
        current = clamp_int(updated.pms_days, *PMS_DAYS_RANGE)
        updated = replace(updated, pms_days=clamp_int(max(current, 4), *PMS_DAYS_RANGE))

    return updated if updated != settings else None
