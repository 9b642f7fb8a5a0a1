"""
Shift-Work Recovery Engine

One-day state transition for the body and mental batteries:

    (hidden state at day start, normalized day inputs, profile)
        -> (hidden state at day end, diagnostics)

Hidden state carried between days:
    - body battery (BB) and mental battery (MB), 0-100
    - accumulated sleep debt, 0-20 hours
    - consecutive night-shift streak, 0-5

Each day the batteries move a fixed fraction of the way toward a daily
target. Targets start at 100 and are lowered by:
    - Sleep Recovery Index (SRI): hours, quality and circadian timing of
      sleep, suppressed by caffeine still in the system at bedtime
    - normalized sleep debt
    - Circadian Strain Index (CSI): night work scaled by the night streak,
      monthly night load, quick returns (<11h rest) and 12h+ days,
      adjusted for chronotype
    - Stress Load Factor (SLF): reported stress and fatigue
    - activity load
    - Menstrual Impact Factor (MIF): period/PMS days, symptoms, nights
    - Mood: low mood rating

The step is total. Inputs are clamped into their domains here as well as at
the normalization boundary, and nothing in this module raises.
"""

from dataclasses import dataclass
from typing import Optional
import math

from services.menstrual_cycle import MenstrualPhase
from services.shift_schedule import Shift
from services.tracker_state import clamp, finite_or_none

# =============================================================================
# CONSTANTS
# =============================================================================

DEFAULT_BATTERY = 70.0
MAX_SLEEP_DEBT_HOURS = 20.0
MAX_NIGHT_STREAK = 5

# Fraction of yesterday's battery kept; the rest moves toward today's target
BATTERY_INERTIA = 0.65

# Sleep
REFERENCE_SLEEP_HOURS = 8.0
NAP_CREDIT = 0.6
DEFAULT_SLEEP_QUALITY_NORM = 0.8
BASE_SLEEP_NEED_HOURS = 7.0
SLEEP_NEED_PREMIUM = {
    Shift.NIGHT: 0.5,
    Shift.EVENING: 0.25,
    Shift.MIDDLE: 0.15,
}
DEBT_CARRYOVER = 0.85
DEBT_REPAY_RATE = 0.35
DEBT_NORM_HOURS = 10.0

CIRCADIAN_SLEEP_FACTOR = {
    "night": 1.0,
    "mixed": 0.9,
    "day": 0.8,
}

# Caffeine
CAFFEINE_HALF_LIFE_HOURS = 5.0
# Hours from last intake to sleep when the intake time is not logged
FALLBACK_CAFFEINE_GAP_HOURS = {
    Shift.DAY: 6.0,
    Shift.EVENING: 4.0,
    Shift.NIGHT: 2.0,
    Shift.MIDDLE: 5.0,
}
DEFAULT_CAFFEINE_GAP_HOURS = 5.0
CAFFEINE_SLEEP_SATURATION_MG = 200.0
CAFFEINE_INFLUENCE_PER_100MG = 0.5
MIN_CAFFEINE_INFLUENCE = 0.4

# Circadian strain
QUICK_RETURN_HOURS = 11.0
LONG_DAY_HOURS = 12.0

# Menstrual
MIN_MENSTRUAL_IMPACT = 0.6

# Penalty weights on the 0-100 scale
PENALTY_SCALE = {
    "debt": 15.0,
    "circadian": 20.0,
    "stress": 15.0,
    "mood": 5.0,
    "activity": 5.0,
}
BODY_WEIGHTS = {
    "sleep": 0.6, "debt": 0.6, "circadian": 0.6,
    "activity": 1.2, "menstrual": 0.8,
}
MENTAL_WEIGHTS = {
    "sleep": 0.5, "debt": 0.5, "circadian": 0.7,
    "stress": 1.0, "mood": 1.5, "menstrual": 0.5,
}


# =============================================================================
# DATA CLASSES
# =============================================================================

@dataclass(frozen=True)
class EngineProfile:
    chronotype: float = 0.5            # 0 = morning type, 1 = evening type
    caffeine_sensitivity: float = 1.0  # multiplier on caffeine half-life


@dataclass(frozen=True)
class EngineState:
    """Hidden state threaded through a replay. Never persisted."""
    body_battery: float = DEFAULT_BATTERY
    mental_battery: float = DEFAULT_BATTERY
    sleep_debt_hours: float = 0.0
    night_streak: int = 0
    prev_shift: Shift = Shift.OFF


def default_engine_state() -> EngineState:
    return EngineState()


@dataclass(frozen=True)
class DailyEngineInputs:
    """One day of inputs, already normalized by the caller."""
    day: str
    shift: Shift
    sleep_hours: float = 7.0                # 0-14
    nap_hours: float = 0.0                  # 0-4
    sleep_quality: Optional[int] = None     # 1-5
    sleep_timing: Optional[str] = "auto"    # auto | night | day | mixed
    caffeine_mg: float = 0.0                # 0-1200
    caffeine_last_at: Optional[str] = None  # HH:MM
    stress_level: float = 2.0               # 1-4
    activity_level: float = 2.0             # 1-4
    mood_level: float = 3.0                 # 1-5
    fatigue_level: Optional[float] = None   # 0-10
    symptom_severity: float = 0.0           # 0-3
    cycle_phase: MenstrualPhase = MenstrualPhase.NONE
    menstrual_status: Optional[str] = None
    menstrual_flow: Optional[int] = None
    night_streak: Optional[int] = None      # candidate streak; derived from state when None
    nights_in_30: int = 0
    quick_return_hours: Optional[float] = None
    shift_length_hours: float = 0.0
    overtime_hours: float = 0.0


@dataclass(frozen=True)
class EngineDiagnostics:
    """Per-day diagnostics. Ratios are 0-1 unless noted."""
    # normalized inputs
    stress_normalized: float
    activity_normalized: float
    bad_mood_normalized: float
    fatigue_normalized: float
    symptom_normalized: float
    sleep_normalized: float
    effective_sleep_hours: float       # 0-14

    # core indices
    sleep_recovery_index: float
    circadian_strain: float
    stress_load: float
    menstrual_impact: float
    caffeine_influence: float
    mood_factor: float

    # intermediates
    sleep_debt_next: float             # 0-20 hours
    debt_normalized: float
    caffeine_sleep_residual: float
    caffeine_sleep_disruption: float
    effective_cycle_phase: MenstrualPhase
    menstrual_physical: float
    menstrual_mood: float
    sleep_suppression: float
    body_depletion: float
    mental_depletion: float
    body_recovery: float
    mental_recovery: float
    body_saturation: float
    mental_saturation: float

    # raw battery deltas, -100..100
    body_delta: float
    mental_delta: float


@dataclass(frozen=True)
class EngineStepResult:
    next_state: EngineState
    diagnostics: EngineDiagnostics


# =============================================================================
# HELPERS
# =============================================================================

def _round1(value: float) -> float:
    return math.floor(value * 10 + 0.5) / 10


def _saturation(battery: float) -> float:
    """How far a battery is from full on a log curve (0 = full, 1 = empty)."""
    num = math.log(1 + (100 - battery) / 25)
    denom = math.log(1 + 100 / 25)
    return clamp(num / denom, 0.0, 1.0)


def _resolve_sleep_timing(timing: Optional[str], shift: Shift) -> str:
    if isinstance(timing, str) and timing in CIRCADIAN_SLEEP_FACTOR:
        return timing
    return "day" if shift == Shift.NIGHT else "night"


def _default_sleep_start_hour(shift: Shift, timing: str) -> float:
    if timing == "day":
        return 9.0  # sleeping after a night shift
    if timing == "mixed":
        return 1.0
    if shift == Shift.EVENING:
        return 1.0
    if shift == Shift.MIDDLE:
        return 0.0
    return 23.0


def _parse_clock(raw: Optional[str]) -> Optional[float]:
    """'HH:MM' -> fractional hour, None if missing or malformed."""
    if not isinstance(raw, str) or ":" not in raw:
        return None
    hours, _, minutes = raw.partition(":")
    try:
        hh, mm = int(hours), int(minutes)
    except ValueError:
        return None
    if not (0 <= hh <= 23 and 0 <= mm <= 59):
        return None
    return hh + mm / 60


def caffeine_at_sleep(
    caffeine_mg: float,
    caffeine_last_at: Optional[str],
    shift: Shift,
    timing: str,
    caffeine_sensitivity: float,
) -> float:
    """Milligrams of caffeine still circulating when sleep starts."""
    half_life = CAFFEINE_HALF_LIFE_HOURS * clamp(caffeine_sensitivity, 0.5, 1.5)
    last_hour = _parse_clock(caffeine_last_at)
    if last_hour is not None:
        gap = _default_sleep_start_hour(shift, timing) - last_hour
        if gap < 0:
            gap += 24
    else:
        gap = FALLBACK_CAFFEINE_GAP_HOURS.get(shift, DEFAULT_CAFFEINE_GAP_HOURS)
    return max(0.0, caffeine_mg * 0.5 ** (gap / half_life))


def update_sleep_debt(shift: Shift, effective_sleep: float, debt_prev: float):
    """
    Carry debt forward against the shift's sleep need.

    Shortfall adds hour for hour; surplus sleep repays at a reduced rate.
    Returns (next debt hours, normalized debt).
    """
    need = BASE_SLEEP_NEED_HOURS + SLEEP_NEED_PREMIUM.get(shift, 0.0)
    deficit = need - effective_sleep
    debt_next = clamp(
        debt_prev * DEBT_CARRYOVER + max(0.0, deficit) - DEBT_REPAY_RATE * max(0.0, -deficit),
        0.0,
        MAX_SLEEP_DEBT_HOURS,
    )
    return debt_next, clamp(debt_next / DEBT_NORM_HOURS, 0.0, 1.0)


def circadian_strain_index(
    shift: Shift,
    night_streak: int,
    nights_in_30: int,
    quick_return_hours: Optional[float],
    shift_length_hours: float,
    overtime_hours: float,
    chronotype: float,
) -> float:
    quick_penalty = 0.2 if quick_return_hours is not None and quick_return_hours < QUICK_RETURN_HOURS else 0.0
    if nights_in_30 > 15:
        monthly_penalty = 0.2
    elif nights_in_30 > 8:
        monthly_penalty = 0.1
    else:
        monthly_penalty = 0.0
    long_penalty = 0.1 if shift_length_hours + overtime_hours >= LONG_DAY_HOURS else 0.0

    if shift == Shift.NIGHT:
        consecutive = 1 + 0.2 * max(0, night_streak - 1)
        schedule = 1 + quick_penalty + monthly_penalty + long_penalty
        strain = 0.5 * consecutive * schedule
    else:
        strain = quick_penalty * 0.5 + long_penalty * 0.4

    # Morning types take nights harder than evening types
    chrono_adjust = 1.1 - 0.2 * clamp(chronotype, 0.0, 1.0)
    return clamp(strain * chrono_adjust, 0.0, 1.0)


def menstrual_impact_factor(
    phase: MenstrualPhase,
    symptom_normalized: float,
    shift: Shift,
) -> float:
    """1.0 = no impact; floor at MIN_MENSTRUAL_IMPACT."""
    affected = phase in (MenstrualPhase.PERIOD, MenstrualPhase.PMS)
    factor = 0.8 if affected else 1.0
    factor -= 0.15 * symptom_normalized
    if affected and shift == Shift.NIGHT:
        factor -= 0.05
    return clamp(factor, MIN_MENSTRUAL_IMPACT, 1.0)


# =============================================================================
# STEP
# =============================================================================

def step_recovery_engine(
    state: EngineState,
    inputs: DailyEngineInputs,
    profile: EngineProfile,
) -> EngineStepResult:
    """Advance the hidden state by one day."""
    chronotype = clamp(profile.chronotype, 0.0, 1.0)
    caffeine_sensitivity = clamp(profile.caffeine_sensitivity, 0.5, 1.5)
    shift = inputs.shift if isinstance(inputs.shift, Shift) else Shift.OFF

    sleep_hours = clamp(inputs.sleep_hours, 0.0, 14.0)
    nap_hours = clamp(inputs.nap_hours, 0.0, 4.0)
    caffeine_mg = clamp(inputs.caffeine_mg, 0.0, 1200.0)
    stress_level = clamp(inputs.stress_level, 1.0, 4.0)
    activity_level = clamp(inputs.activity_level, 1.0, 4.0)
    mood_level = clamp(inputs.mood_level, 1.0, 5.0)
    fatigue_level = clamp(inputs.fatigue_level or 0.0, 0.0, 10.0)
    symptom_severity = clamp(inputs.symptom_severity, 0.0, 3.0)
    timing = _resolve_sleep_timing(inputs.sleep_timing, shift)

    if inputs.night_streak is not None:
        night_streak = int(clamp(inputs.night_streak, 0, MAX_NIGHT_STREAK))
    elif shift == Shift.NIGHT:
        night_streak = min(MAX_NIGHT_STREAK, state.night_streak + 1)
    else:
        night_streak = 0

    # Normalize
    stress_n = (stress_level - 1) / 3
    activity_n = (activity_level - 1) / 3
    mood_bad_n = (5 - mood_level) / 4
    fatigue_n = fatigue_level / 10
    symptom_n = symptom_severity / 3

    # Sleep recovery, suppressed by caffeine at bedtime
    total_sleep = clamp(sleep_hours + NAP_CREDIT * nap_hours, 0.0, 14.0)
    hours_norm = clamp(total_sleep / REFERENCE_SLEEP_HOURS, 0.0, 1.2)
    quality = finite_or_none(inputs.sleep_quality)
    if quality is None:
        quality_norm = DEFAULT_SLEEP_QUALITY_NORM
    else:
        quality_norm = clamp(quality / 5, 0.4, 1.0)

    caffeine_left = caffeine_at_sleep(
        caffeine_mg, inputs.caffeine_last_at, shift, timing, caffeine_sensitivity
    )
    caffeine_sleep = clamp(caffeine_left / CAFFEINE_SLEEP_SATURATION_MG, 0.0, 1.0)
    cif = clamp(1 - CAFFEINE_INFLUENCE_PER_100MG * (caffeine_left / 100), MIN_CAFFEINE_INFLUENCE, 1.0)
    csd = clamp(1 - cif, 0.0, 1.0)

    sri = clamp(hours_norm * quality_norm * CIRCADIAN_SLEEP_FACTOR[timing], 0.0, 1.0) * cif
    sri = clamp(sri, 0.0, 1.0)
    effective_sleep = clamp(sri * REFERENCE_SLEEP_HOURS, 0.0, 14.0)

    debt_next, debt_n = update_sleep_debt(shift, effective_sleep, clamp(state.sleep_debt_hours, 0.0, MAX_SLEEP_DEBT_HOURS))

    csi = circadian_strain_index(
        shift=shift,
        night_streak=night_streak,
        nights_in_30=int(clamp(inputs.nights_in_30, 0, 31)),
        quick_return_hours=inputs.quick_return_hours,
        shift_length_hours=clamp(inputs.shift_length_hours, 0.0, 24.0),
        overtime_hours=clamp(inputs.overtime_hours or 0.0, 0.0, 24.0),
        chronotype=chronotype,
    )

    slf = clamp(0.7 * stress_n + 0.3 * fatigue_n, 0.0, 1.0)
    mf = clamp(1 - 0.1 * mood_bad_n, 0.85, 1.0)

    # Logged bleeding or PMS overrides the predicted phase
    if (inputs.menstrual_flow or 0) > 0 or inputs.menstrual_status == "period":
        phase = MenstrualPhase.PERIOD
    elif inputs.menstrual_status == "pms":
        phase = MenstrualPhase.PMS
    else:
        phase = inputs.cycle_phase if isinstance(inputs.cycle_phase, MenstrualPhase) else MenstrualPhase.NONE
    mif = menstrual_impact_factor(phase, symptom_n, shift)
    menstrual_load = clamp(1 - mif, 0.0, 1 - MIN_MENSTRUAL_IMPACT)

    # Penalties, 0-100 scale
    penalties = {
        "sleep": (1 - sri) * 100,
        "debt": debt_n * PENALTY_SCALE["debt"],
        "circadian": csi * PENALTY_SCALE["circadian"],
        "stress": slf * PENALTY_SCALE["stress"],
        "menstrual": menstrual_load * 100,
        "mood": mood_bad_n * PENALTY_SCALE["mood"],
        "activity": activity_n * PENALTY_SCALE["activity"],
    }
    body_penalty = sum(penalties[k] * w for k, w in BODY_WEIGHTS.items())
    mental_penalty = sum(penalties[k] * w for k, w in MENTAL_WEIGHTS.items())

    body_target = clamp(100 - body_penalty, 0.0, 100.0)
    mental_target = clamp(100 - mental_penalty, 0.0, 100.0)

    prev_bb = clamp(state.body_battery, 0.0, 100.0)
    prev_mb = clamp(state.mental_battery, 0.0, 100.0)
    bb = clamp(_round1(prev_bb * BATTERY_INERTIA + body_target * (1 - BATTERY_INERTIA)), 0.0, 100.0)
    mb = clamp(_round1(prev_mb * BATTERY_INERTIA + mental_target * (1 - BATTERY_INERTIA)), 0.0, 100.0)

    next_state = EngineState(
        body_battery=bb,
        mental_battery=mb,
        sleep_debt_hours=debt_next,
        night_streak=night_streak,
        prev_shift=shift,
    )

    diagnostics = EngineDiagnostics(
        stress_normalized=stress_n,
        activity_normalized=activity_n,
        bad_mood_normalized=mood_bad_n,
        fatigue_normalized=fatigue_n,
        symptom_normalized=symptom_n,
        sleep_normalized=sri,
        effective_sleep_hours=effective_sleep,
        sleep_recovery_index=sri,
        circadian_strain=csi,
        stress_load=slf,
        menstrual_impact=mif,
        caffeine_influence=cif,
        mood_factor=mf,
        sleep_debt_next=debt_next,
        debt_normalized=debt_n,
        caffeine_sleep_residual=caffeine_sleep,
        caffeine_sleep_disruption=csd,
        effective_cycle_phase=phase,
        menstrual_physical=menstrual_load * 0.6,
        menstrual_mood=menstrual_load * 0.4,
        sleep_suppression=clamp(0.35 * csd + 0.25 * slf + 0.20 * csi + 0.20 * debt_n, 0.0, 0.9),
        body_depletion=clamp(body_penalty / 100, 0.0, 1.0),
        mental_depletion=clamp(mental_penalty / 100, 0.0, 1.0),
        body_recovery=body_target / 100,
        mental_recovery=mental_target / 100,
        body_saturation=_saturation(prev_bb),
        mental_saturation=_saturation(prev_mb),
        body_delta=bb - prev_bb,
        mental_delta=mb - prev_mb,
    )

    return EngineStepResult(next_state=next_state, diagnostics=diagnostics)
