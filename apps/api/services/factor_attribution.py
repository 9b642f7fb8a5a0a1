"""
Factor Attribution

Turns one day's engine diagnostics into a "what drained you today"
breakdown across seven drivers. Raw impacts are bounded per driver and
then normalized so the breakdown sums to 1 (or is all zero when nothing
drained the day).
"""

from dataclasses import asdict, dataclass
from typing import Dict

from services.recovery_engine import EngineDiagnostics
from services.tracker_state import clamp

FACTOR_KEYS = ("sleep", "stress", "activity", "shift", "caffeine", "menstrual", "mood")

FACTOR_LABELS = {
    "sleep": "Short sleep",
    "stress": "Work stress",
    "activity": "Physical load",
    "shift": "Shift rhythm",
    "caffeine": "Lingering caffeine",
    "menstrual": "PMS / period",
    "mood": "Low mood",
}


@dataclass(frozen=True)
class DepletionFactors:
    sleep: float = 0.0
    stress: float = 0.0
    activity: float = 0.0
    shift: float = 0.0
    caffeine: float = 0.0
    menstrual: float = 0.0
    mood: float = 0.0

    def as_dict(self) -> Dict[str, float]:
        return asdict(self)

    @property
    def total(self) -> float:
        return sum(self.as_dict().values())

    def dominant(self):
        """Key of the largest factor, or None when all are zero."""
        values = self.as_dict()
        key = max(FACTOR_KEYS, key=lambda k: values[k])
        return key if values[key] > 0 else None


def raw_impacts(diagnostics: EngineDiagnostics) -> Dict[str, float]:
    d = diagnostics
    return {
        # Sleep counts both last night's shortfall and carried debt
        "sleep": clamp((1 - d.sleep_recovery_index) + d.debt_normalized, 0.0, 2.0),
        "stress": clamp(d.stress_load, 0.0, 1.0),
        "activity": clamp(d.activity_normalized, 0.0, 1.0),
        "shift": clamp(d.circadian_strain, 0.0, 1.0),
        "caffeine": clamp(1 - d.caffeine_influence, 0.0, 1.0),
        "menstrual": clamp(1 - d.menstrual_impact, 0.0, 1.0),
        "mood": clamp(d.bad_mood_normalized + (1 - d.mood_factor), 0.0, 1.0),
    }


def attribute_factors(diagnostics: EngineDiagnostics) -> DepletionFactors:
    impacts = raw_impacts(diagnostics)
    total = sum(impacts.values())
    if total <= 0:
        return DepletionFactors()
    return DepletionFactors(**{k: impacts[k] / total for k in FACTOR_KEYS})
