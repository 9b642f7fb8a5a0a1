"""
Daily Vitals

Replays the recovery engine over a day window and assembles one immutable
record per day: body and mental battery with tones, burnout level, factor
breakdown, menstrual context and an engine snapshot.

Why a replay:
    Today's batteries depend on hidden state (sleep debt, night streak,
    yesterday's batteries) accumulated over every earlier day. There is no
    stored checkpoint, so each query replays from the first day that has any
    schedule, bio or mood entry, and only then slices out the requested
    window. Retroactive edits therefore ripple forward on the next query.

Days before the first recorded entry have no history to carry: each one, and
the first recorded day itself, is stepped from the default state. That keeps
any in-window day independent of how far back the caller's window starts.

Entry points:
    compute_vitals(state, start, end)     typed, used by the API
    compute_vitals_range(...)             tolerant adapter for older call shapes
"""

from dataclasses import dataclass, fields
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple
import logging

from services.day_keys import add_days, iter_days, parse_day
from services.factor_attribution import FACTOR_LABELS, DepletionFactors, attribute_factors
from services.menstrual_cycle import MenstrualContext, menstrual_context_for_day
from services.recovery_engine import (
    MAX_NIGHT_STREAK,
    DailyEngineInputs,
    EngineDiagnostics,
    EngineProfile,
    EngineState,
    default_engine_state,
    step_recovery_engine,
)
from services.risk_classification import BurnoutAssessment, RiskTone, classify_burnout, tone_from_score
from services.shift_schedule import (
    DEFAULT_SHIFT,
    Shift,
    count_nights_in_window,
    hours_between_shifts,
    shift_length_hours,
)
from services.tracker_state import (
    BioInputs,
    EmotionEntry,
    TrackerState,
    clamp,
    default_bio,
)

logger = logging.getLogger(__name__)


# =============================================================================
# RECORDS
# =============================================================================

@dataclass(frozen=True)
class BodyVital:
    value: float         # 0-100
    change: float        # vs previous day, 1 decimal
    tone: RiskTone


@dataclass(frozen=True)
class MentalVital:
    raw: float           # 0-100
    ema: float           # 0-100 (the engine already smooths; equal to raw)
    change: float
    tone: RiskTone


@dataclass(frozen=True)
class EngineSnapshot:
    sleep_debt_hours: float   # 0-20
    night_streak: int         # 0-5
    diagnostics: EngineDiagnostics


@dataclass(frozen=True)
class DailyVital:
    day: str
    shift: Shift
    inputs: BioInputs                 # normalized snapshot the engine saw
    menstrual: MenstrualContext
    body: BodyVital
    mental: MentalVital
    burnout: BurnoutAssessment
    note: Optional[str] = None
    emotion: Optional[EmotionEntry] = None
    factors: Optional[DepletionFactors] = None
    engine: Optional[EngineSnapshot] = None
    insight: Optional[str] = None


@dataclass(frozen=True)
class VitalsRangeRequest:
    state: Any      # TrackerState or raw payload dict
    start: Any      # day key or date
    end: Any


# =============================================================================
# NORMALIZATION
# =============================================================================

def normalize_bio(bio: Optional[BioInputs]) -> BioInputs:
    """Fill every missing field with its neutral default."""
    base = default_bio()
    if bio is None:
        return base

    def pick(name):
        value = getattr(bio, name)
        return getattr(base, name) if value is None else value

    return BioInputs(**{f.name: pick(f.name) for f in fields(BioInputs)})


def build_engine_inputs(
    state: TrackerState,
    day: str,
    shift: Shift,
    bio: BioInputs,
    emotion: Optional[EmotionEntry],
    menstrual: MenstrualContext,
    engine_state: EngineState,
) -> DailyEngineInputs:
    """Derive the stepper's inputs for one day. bio must already be normalized."""
    prev_day = add_days(day, -1)
    prev_shift = state.schedule.get(prev_day, DEFAULT_SHIFT)

    if shift == Shift.NIGHT:
        night_streak = min(MAX_NIGHT_STREAK, engine_state.night_streak + 1)
    else:
        night_streak = 0

    return DailyEngineInputs(
        day=day,
        shift=shift,
        sleep_hours=clamp(bio.sleep_hours, 0.0, 14.0),
        nap_hours=clamp(bio.nap_hours, 0.0, 4.0),
        sleep_quality=bio.sleep_quality,
        sleep_timing=bio.sleep_timing,
        caffeine_mg=clamp(bio.caffeine_mg, 0.0, 1200.0),
        caffeine_last_at=bio.caffeine_last_at,
        stress_level=clamp(bio.stress + 1, 1.0, 4.0),
        activity_level=clamp(bio.activity + 1, 1.0, 4.0),
        mood_level=clamp(emotion.mood if emotion else 3, 1.0, 5.0),
        fatigue_level=bio.fatigue_level,
        symptom_severity=clamp(bio.symptom_severity, 0.0, 3.0),
        cycle_phase=menstrual.phase,
        menstrual_status=bio.menstrual_status,
        menstrual_flow=bio.menstrual_flow,
        night_streak=night_streak,
        nights_in_30=count_nights_in_window(state.schedule, day),
        quick_return_hours=hours_between_shifts(prev_day, prev_shift, day, shift),
        shift_length_hours=shift_length_hours(day, shift),
        overtime_hours=clamp(bio.shift_overtime_hours, 0.0, 24.0),
    )


def day_insight(factors: DepletionFactors, burnout: BurnoutAssessment) -> Optional[str]:
    key = factors.dominant()
    if key is None:
        return None
    share = round(getattr(factors, key) * 100)
    return f"{FACTOR_LABELS[key]} drove {share}% of today's drain. {burnout.reason}"


def _round_change(value: float) -> float:
    return round(value, 1)


# =============================================================================
# REPLAY
# =============================================================================

def _replay_day(
    state: TrackerState,
    day: str,
    engine_state: EngineState,
    profile: EngineProfile,
    include_diagnostics: bool,
) -> Tuple[DailyVital, EngineState]:
    shift = state.schedule.get(day, DEFAULT_SHIFT)
    emotion = state.emotions.get(day)
    bio = normalize_bio(state.bio.get(day))
    menstrual = menstrual_context_for_day(day, state.settings.menstrual)

    inputs = build_engine_inputs(state, day, shift, bio, emotion, menstrual, engine_state)
    result = step_recovery_engine(engine_state, inputs, profile)
    next_state = result.next_state
    diagnostics = result.diagnostics

    body_value = next_state.body_battery
    mental_value = next_state.mental_battery
    factors = attribute_factors(diagnostics)
    burnout = classify_burnout(body_value, mental_value, shift)

    vital = DailyVital(
        day=day,
        shift=shift,
        note=state.notes.get(day),
        emotion=emotion,
        inputs=bio,
        menstrual=menstrual,
        body=BodyVital(
            value=body_value,
            change=_round_change(body_value - engine_state.body_battery),
            tone=tone_from_score(body_value),
        ),
        mental=MentalVital(
            raw=mental_value,
            ema=mental_value,
            change=_round_change(mental_value - engine_state.mental_battery),
            tone=tone_from_score(mental_value),
        ),
        burnout=burnout,
        factors=factors,
        engine=EngineSnapshot(
            sleep_debt_hours=next_state.sleep_debt_hours,
            night_streak=next_state.night_streak,
            diagnostics=diagnostics,
        ) if include_diagnostics else None,
        insight=day_insight(factors, burnout),
    )
    return vital, next_state


def compute_vitals(
    state: TrackerState,
    start: str,
    end: str,
    include_diagnostics: bool = True,
) -> List[DailyVital]:
    """
    Daily vitals for every day in [start, end], ascending.

    Replays from the earliest recorded day (or start, if that is earlier)
    so hidden state is reconstructed, then returns only the requested days.
    """
    if start > end:
        return []

    history_start = state.earliest_recorded_day()
    replay_start = min(start, history_start) if history_start else start
    profile = EngineProfile(
        chronotype=state.settings.profile.chronotype,
        caffeine_sensitivity=state.settings.profile.caffeine_sensitivity,
    )

    logger.debug(
        f"Vitals replay {replay_start}..{end} for window {start}..{end} "
        f"(history starts {history_start})"
    )

    engine_state = default_engine_state()
    window: List[DailyVital] = []
    for day in iter_days(replay_start, end):
        if history_start is None or day <= history_start:
            engine_state = default_engine_state()
        vital, engine_state = _replay_day(state, day, engine_state, profile, include_diagnostics)
        if day >= start:
            window.append(vital)

    return window


# =============================================================================
# CALL-SHAPE ADAPTER
# =============================================================================

def _first(mapping: Mapping, *keys):
    for key in keys:
        if mapping.get(key) is not None:
            return mapping[key]
    return None


def _parse_range_call(args: tuple, kwargs: dict) -> Optional[Tuple[Any, Any, Any]]:
    """Map every supported call shape to (state, start, end), or None."""
    if len(args) == 1 and isinstance(args[0], VitalsRangeRequest):
        req = args[0]
        return req.state, req.start, req.end

    # compute_vitals_range({"state": ..., "start": ..., "end": ...})
    if len(args) == 1 and isinstance(args[0], Mapping) and not kwargs:
        obj = args[0]
        state = _first(obj, "state", "store")
        start = _first(obj, "start", "from")
        end = _first(obj, "end", "to")
        if state is not None and start is not None and end is not None:
            return state, start, end
        return None

    # compute_vitals_range(state, start, end)
    if len(args) >= 3:
        return args[0], args[1], args[2]

    # compute_vitals_range(state, {"from": ..., "to": ...})
    if len(args) == 2 and isinstance(args[1], Mapping):
        window = args[1]
        return args[0], _first(window, "start", "from", "min"), _first(window, "end", "to", "max")

    # compute_vitals_range(state=..., start=..., end=...) and mixes of the two
    if kwargs:
        state = args[0] if args else _first(kwargs, "state", "store")
        start = _first(kwargs, "start", "from")
        end = _first(kwargs, "end", "to")
        if state is not None:
            return state, start, end

    return None


def compute_vitals_range(*args, include_diagnostics: bool = True, **kwargs) -> List[DailyVital]:
    """
    Compatibility entry point accepting every historical call shape.

    Malformed calls return an empty list instead of raising so that callers
    degrade to "no data".
    """
    parsed = _parse_range_call(args, kwargs)
    if parsed is None:
        logger.warning(
            f"compute_vitals_range: unrecognized call shape "
            f"(args={len(args)}, kwargs={sorted(kwargs)})"
        )
        return []

    raw_state, raw_start, raw_end = parsed
    state = TrackerState.from_payload(raw_state)
    start = parse_day(raw_start)
    end = parse_day(raw_end)
    if state is None or start is None or end is None:
        logger.warning(
            f"compute_vitals_range: unusable arguments "
            f"(state={type(raw_state).__name__}, start={raw_start!r}, end={raw_end!r})"
        )
        return []

    return compute_vitals(state, start, end, include_diagnostics=include_diagnostics)


def vital_map_by_day(vitals: Iterable[DailyVital]) -> Dict[str, DailyVital]:
    """Re-index records by day key for calendar and alerting lookups."""
    return {v.day: v for v in vitals if v is not None and v.day}
