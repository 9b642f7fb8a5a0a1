"""
Vitals Insights

Period summaries over a list of daily vitals: how each shift type treats the
user, which days were best and worst, which drivers drained them most, and
how much of the model is actually fed by the user's own logs
("personalization accuracy").

All functions are pure and accept the records produced by
services.daily_vitals in any order.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from services.daily_vitals import DailyVital
from services.day_keys import add_days, days_inclusive, end_of_week_sunday, month_bounds
from services.factor_attribution import FACTOR_KEYS, FACTOR_LABELS
from services.shift_schedule import Shift
from services.tracker_state import TrackerState, clamp

# Fallback weights when the period has no attributable drain at all
DEFAULT_PERSONALIZATION_WEIGHTS = {
    "shift": 0.25,
    "sleep": 0.2,
    "stress": 0.15,
    "activity": 0.1,
    "caffeine": 0.1,
    "menstrual": 0.1,
    "mood": 0.1,
}

# Missing-input suggestions below this weighted gap are not worth showing
MISSING_SCORE_FLOOR = 0.02
MAX_MISSING_SUGGESTIONS = 2

GRADE_THRESHOLDS = ((90, "S"), (80, "A"), (70, "B"), (60, "C"))


@dataclass(frozen=True)
class ShiftStat:
    shift: Shift
    days: int
    avg_body: float
    avg_mental: float


@dataclass(frozen=True)
class FactorShare:
    key: str
    label: str
    share: float


@dataclass
class PersonalizationAccuracy:
    percent: int                                   # 0-100
    weights: Dict[str, float] = field(default_factory=dict)
    coverage: Dict[str, float] = field(default_factory=dict)
    missing_top: List[FactorShare] = field(default_factory=list)


# =============================================================================
# PERIOD RANGES
# =============================================================================

def last_completed_week_range(today: str) -> Tuple[str, str]:
    """Monday..Sunday of the most recent week that has fully ended by today."""
    end = end_of_week_sunday(today)
    if end > today:
        end = add_days(end, -7)
    return add_days(end, -6), end


def month_range(day: str) -> Tuple[str, str]:
    return month_bounds(day)


# =============================================================================
# AGGREGATES
# =============================================================================

def average(values: Iterable[float]) -> float:
    values = list(values)
    if not values:
        return 0.0
    return sum(values) / len(values)


def grade_from_score(score: float) -> str:
    for threshold, grade in GRADE_THRESHOLDS:
        if score >= threshold:
            return grade
    return "D"


def shift_counts(vitals: Iterable[DailyVital]) -> Dict[Shift, int]:
    counts = {shift: 0 for shift in Shift}
    for vital in vitals:
        counts[vital.shift] += 1
    return counts


def compute_shift_stats(vitals: Sequence[DailyVital]) -> List[ShiftStat]:
    """Average batteries per shift type, highest mental average first."""
    rows = []
    for shift in Shift:
        matching = [v for v in vitals if v.shift == shift]
        rows.append(ShiftStat(
            shift=shift,
            days=len(matching),
            avg_body=average(v.body.value for v in matching),
            avg_mental=average(v.mental.ema for v in matching),
        ))
    rows.sort(key=lambda r: r.avg_mental, reverse=True)
    return rows


def best_shift(stats: Sequence[ShiftStat]) -> Optional[ShiftStat]:
    worked = [s for s in stats if s.days > 0]
    if not worked:
        return None
    return max(worked, key=lambda s: s.avg_mental)


def worst_shift(stats: Sequence[ShiftStat]) -> Optional[ShiftStat]:
    worked = [s for s in stats if s.days > 0]
    if not worked:
        return None
    return min(worked, key=lambda s: s.avg_mental)


def best_and_worst_day(vitals: Sequence[DailyVital]) -> Tuple[Optional[DailyVital], Optional[DailyVital]]:
    """Days with the highest and lowest body + mental total; earliest wins ties."""
    if not vitals:
        return None, None

    def total(v: DailyVital) -> float:
        return v.body.value + v.mental.ema

    return max(vitals, key=total), min(vitals, key=total)


def aggregate_factors(vitals: Iterable[DailyVital]) -> Dict[str, float]:
    """Per-day factor shares summed over the period, renormalized to 1."""
    totals = {key: 0.0 for key in FACTOR_KEYS}
    for vital in vitals:
        if vital.factors is None:
            continue
        for key, value in vital.factors.as_dict().items():
            totals[key] += value
    grand_total = sum(totals.values())
    if grand_total <= 0:
        return totals
    return {key: value / grand_total for key, value in totals.items()}


def top_factors(vitals: Iterable[DailyVital], top_n: int = 3) -> List[FactorShare]:
    shares = aggregate_factors(vitals)
    rows = [FactorShare(key=k, label=FACTOR_LABELS[k], share=shares[k]) for k in FACTOR_KEYS]
    rows.sort(key=lambda r: r.share, reverse=True)
    return rows[:max(0, top_n)]


# =============================================================================
# PERSONALIZATION ACCURACY
# =============================================================================

def compute_personalization_accuracy(
    state: TrackerState,
    start: str,
    end: str,
    vitals: Sequence[DailyVital],
) -> PersonalizationAccuracy:
    """
    How much of the model's output rests on the user's own logs.

    Each driver's coverage (share of days in the period with that input
    logged) is weighted by how much the driver actually drained the user
    over the period. Menstrual coverage counts as complete while cycle
    tracking is configured.
    """
    days = days_inclusive(start, end) if start <= end else []
    day_count = max(1, len(days))

    aggregated = aggregate_factors(vitals)
    if sum(aggregated.values()) > 0:
        weights = aggregated
    else:
        weights = dict(DEFAULT_PERSONALIZATION_WEIGHTS)

    menstrual = state.settings.menstrual
    tracking_cycle = bool(menstrual.enabled and menstrual.last_period_start)

    hits = {key: 0 for key in FACTOR_KEYS}
    for day in days:
        bio = state.bio.get(day)
        if day in state.schedule:
            hits["shift"] += 1
        if day in state.emotions:
            hits["mood"] += 1
        if bio is None:
            continue
        if bio.sleep_hours is not None:
            hits["sleep"] += 1
        if bio.stress is not None:
            hits["stress"] += 1
        if bio.activity is not None:
            hits["activity"] += 1
        if bio.caffeine_mg is not None:
            hits["caffeine"] += 1
        if bio.symptom_severity is not None:
            hits["menstrual"] += 1

    coverage = {key: clamp(hits[key] / day_count, 0.0, 1.0) for key in FACTOR_KEYS}
    if tracking_cycle:
        coverage["menstrual"] = 1.0

    score = sum(weights[k] * coverage[k] for k in FACTOR_KEYS)

    gaps = sorted(
        ((weights[k] * (1 - coverage[k]), k) for k in FACTOR_KEYS),
        key=lambda pair: pair[0],
        reverse=True,
    )
    missing = [
        FactorShare(key=k, label=FACTOR_LABELS[k], share=gap)
        for gap, k in gaps
        if gap > MISSING_SCORE_FLOOR
    ][:MAX_MISSING_SUGGESTIONS]

    return PersonalizationAccuracy(
        percent=round(clamp(score, 0.0, 1.0) * 100),
        weights=weights,
        coverage=coverage,
        missing_top=missing,
    )
