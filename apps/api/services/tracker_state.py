"""
Tracker State

Typed view of the user's source-of-truth payload: the schedule, notes,
mood entries, biometric entries and settings, all keyed by day. The vitals
replay only ever reads this; persistence belongs to the caller.

Payloads arrive from clients in camelCase (sleepHours, lastPeriodStart) and
from older builds with a few renamed keys (startISO, store). from_payload()
accepts all of them and drops entries that are not keyed by a real day.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple
import math

from services.day_keys import is_iso_day, parse_day
from services.shift_schedule import Shift, parse_shift

SLEEP_TIMINGS = ("auto", "night", "day", "mixed")
MENSTRUAL_STATUSES = ("none", "pms", "period")

DEFAULT_CHRONOTYPE = 0.5
DEFAULT_CAFFEINE_SENSITIVITY = 1.0


def finite_or_none(value) -> Optional[float]:
    """Float value if it is a finite number (bools excluded), else None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def clamp(value, low: float, high: float) -> float:
    """Clamp to [low, high]; non-finite values collapse to low."""
    number = finite_or_none(value)
    if number is None:
        number = low
    return max(low, min(high, number))


def clamp_int(value, low: int, high: int) -> int:
    number = finite_or_none(value)
    if number is None:
        return low
    return int(max(low, min(high, math.floor(number))))


def _pick(raw: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in raw and raw[key] is not None:
            return raw[key]
    return None


@dataclass(frozen=True)
class BioInputs:
    """One day's biometric log. Every field is optional."""
    sleep_hours: Optional[float] = None
    nap_hours: Optional[float] = None
    sleep_quality: Optional[int] = None        # 1-5
    sleep_timing: Optional[str] = None         # auto | night | day | mixed
    stress: Optional[int] = None               # 0-3
    activity: Optional[int] = None             # 0-3
    caffeine_mg: Optional[float] = None
    caffeine_last_at: Optional[str] = None     # HH:MM
    fatigue_level: Optional[float] = None      # 0-10
    symptom_severity: Optional[int] = None     # 0-3
    menstrual_status: Optional[str] = None     # none | pms | period
    menstrual_flow: Optional[int] = None       # 0-3
    shift_overtime_hours: Optional[float] = None

    @classmethod
    def from_payload(cls, raw: Any) -> Optional["BioInputs"]:
        if isinstance(raw, BioInputs):
            return raw
        if not isinstance(raw, Mapping):
            return None

        def as_int(*keys):
            number = finite_or_none(_pick(raw, *keys))
            return None if number is None else int(round(number))

        timing = _pick(raw, "sleepTiming", "sleep_timing")
        status = _pick(raw, "menstrualStatus", "menstrual_status")
        last_at = _pick(raw, "caffeineLastAt", "caffeine_last_at")
        return cls(
            sleep_hours=finite_or_none(_pick(raw, "sleepHours", "sleep_hours")),
            nap_hours=finite_or_none(_pick(raw, "napHours", "nap_hours")),
            sleep_quality=as_int("sleepQuality", "sleep_quality"),
            sleep_timing=timing if timing in SLEEP_TIMINGS else None,
            stress=as_int("stress"),
            activity=as_int("activity"),
            caffeine_mg=finite_or_none(_pick(raw, "caffeineMg", "caffeine_mg")),
            caffeine_last_at=last_at if isinstance(last_at, str) else None,
            fatigue_level=finite_or_none(_pick(raw, "fatigueLevel", "fatigue_level")),
            symptom_severity=as_int("symptomSeverity", "symptom_severity"),
            menstrual_status=status if status in MENSTRUAL_STATUSES else None,
            menstrual_flow=as_int("menstrualFlow", "menstrual_flow"),
            shift_overtime_hours=finite_or_none(
                _pick(raw, "shiftOvertimeHours", "shift_overtime_hours")
            ),
        )


def default_bio() -> BioInputs:
    """Neutral day: 7h sleep, light stress and activity, no caffeine."""
    return BioInputs(
        sleep_hours=7.0,
        nap_hours=0.0,
        sleep_timing="auto",
        stress=1,
        activity=1,
        caffeine_mg=0.0,
        symptom_severity=0,
        menstrual_status="none",
        menstrual_flow=0,
        shift_overtime_hours=0.0,
    )


@dataclass(frozen=True)
class EmotionEntry:
    mood: int = 3  # 1-5
    tags: Tuple[str, ...] = ()
    note: Optional[str] = None

    @classmethod
    def from_payload(cls, raw: Any) -> Optional["EmotionEntry"]:
        if isinstance(raw, EmotionEntry):
            return raw
        if not isinstance(raw, Mapping):
            return None
        tags = raw.get("tags") or []
        return cls(
            mood=clamp_int(raw.get("mood", 3), 1, 5),
            tags=tuple(t for t in tags if isinstance(t, str)),
            note=raw.get("note") if isinstance(raw.get("note"), str) else None,
        )


@dataclass
class MenstrualSettings:
    enabled: bool = False
    last_period_start: Optional[str] = None
    cycle_length: int = 28     # 20-45
    period_length: int = 5     # 2-10
    pms_days: int = 4          # 2-10

    @classmethod
    def from_payload(cls, raw: Any) -> "MenstrualSettings":
        if isinstance(raw, MenstrualSettings):
            return raw
        if not isinstance(raw, Mapping):
            return cls()
        # startISO is the pre-rename key for the last period start
        last = parse_day(_pick(raw, "lastPeriodStart", "last_period_start", "startISO"))
        return cls(
            enabled=bool(raw.get("enabled", False)),
            last_period_start=last,
            cycle_length=clamp_int(_pick(raw, "cycleLength", "cycle_length") or 28, 20, 45),
            period_length=clamp_int(_pick(raw, "periodLength", "period_length") or 5, 2, 10),
            pms_days=clamp_int(_pick(raw, "pmsDays", "pms_days") or 4, 2, 10),
        )


@dataclass
class ProfileSettings:
    chronotype: float = DEFAULT_CHRONOTYPE                       # 0 morning .. 1 evening
    caffeine_sensitivity: float = DEFAULT_CAFFEINE_SENSITIVITY   # half-life multiplier

    @classmethod
    def from_payload(cls, raw: Any) -> "ProfileSettings":
        if isinstance(raw, ProfileSettings):
            return raw
        if not isinstance(raw, Mapping):
            return cls()
        chronotype = finite_or_none(raw.get("chronotype"))
        sensitivity = finite_or_none(_pick(raw, "caffeineSensitivity", "caffeine_sensitivity"))
        return cls(
            chronotype=clamp(DEFAULT_CHRONOTYPE if chronotype is None else chronotype, 0.0, 1.0),
            caffeine_sensitivity=clamp(
                DEFAULT_CAFFEINE_SENSITIVITY if sensitivity is None else sensitivity, 0.5, 1.5
            ),
        )


@dataclass
class TrackerSettings:
    menstrual: MenstrualSettings = field(default_factory=MenstrualSettings)
    profile: ProfileSettings = field(default_factory=ProfileSettings)

    @classmethod
    def from_payload(cls, raw: Any) -> "TrackerSettings":
        if isinstance(raw, TrackerSettings):
            return raw
        if not isinstance(raw, Mapping):
            return cls()
        return cls(
            menstrual=MenstrualSettings.from_payload(raw.get("menstrual")),
            profile=ProfileSettings.from_payload(raw.get("profile")),
        )


@dataclass
class TrackerState:
    schedule: Dict[str, Shift] = field(default_factory=dict)
    notes: Dict[str, str] = field(default_factory=dict)
    emotions: Dict[str, EmotionEntry] = field(default_factory=dict)
    bio: Dict[str, BioInputs] = field(default_factory=dict)
    settings: TrackerSettings = field(default_factory=TrackerSettings)

    @classmethod
    def from_payload(cls, raw: Any) -> Optional["TrackerState"]:
        """Build from a raw payload dict; None when raw is not a mapping."""
        if isinstance(raw, TrackerState):
            return raw
        if not isinstance(raw, Mapping):
            return None

        def day_map(key, convert):
            entries = raw.get(key) or {}
            if not isinstance(entries, Mapping):
                return {}
            out = {}
            for day, value in entries.items():
                if not is_iso_day(day) or value is None:
                    continue
                converted = convert(value)
                if converted is not None:
                    out[day] = converted
            return out

        return cls(
            schedule=day_map("schedule", parse_shift),
            notes=day_map("notes", lambda v: v if isinstance(v, str) else None),
            emotions=day_map("emotions", EmotionEntry.from_payload),
            bio=day_map("bio", BioInputs.from_payload),
            settings=TrackerSettings.from_payload(raw.get("settings")),
        )

    def earliest_recorded_day(self) -> Optional[str]:
        """First day carrying any schedule, bio or mood entry."""
        days = list(self.schedule) + list(self.bio) + list(self.emotions)
        return min(days) if days else None
