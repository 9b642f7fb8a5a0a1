"""
Risk Classification

Fixed thresholds applied to the daily battery scores:

    Tone (per score):   red < 40 <= orange < 60 <= green
    Burnout (per day):  danger  if body < 20 or mental < 25
                        warning if body < 35 or mental < 40
                        ok      otherwise

Night shifts get their own wording because the advice differs: on a night
the priority is error avoidance, on other days it is getting rest in.
"""

from dataclasses import dataclass
from enum import Enum

from services.shift_schedule import is_night


class RiskTone(str, Enum):
    GREEN = "green"
    ORANGE = "orange"
    RED = "red"


class BurnoutLevel(str, Enum):
    OK = "ok"
    WARNING = "warning"
    DANGER = "danger"


TONE_RED_BELOW = 40.0
TONE_ORANGE_BELOW = 60.0

DANGER_BODY_BELOW = 20.0
DANGER_MENTAL_BELOW = 25.0
WARNING_BODY_BELOW = 35.0
WARNING_MENTAL_BELOW = 40.0

BURNOUT_REASONS = {
    (BurnoutLevel.DANGER, True): "Night shift on very low recovery. Double-check meds and hand-offs.",
    (BurnoutLevel.DANGER, False): "Recovery is badly depleted. Treat today as survival mode.",
    (BurnoutLevel.WARNING, True): "Night work and sleep loss are weighing on you. Stick to routine tasks.",
    (BurnoutLevel.WARNING, False): "Fatigue is building up. Protect your breaks today.",
    (BurnoutLevel.OK, True): "Stable condition. Keep your night-shift breaks on schedule.",
    (BurnoutLevel.OK, False): "Stable condition.",
}


@dataclass(frozen=True)
class BurnoutAssessment:
    level: BurnoutLevel
    reason: str


def tone_from_score(score: float) -> RiskTone:
    if score < TONE_RED_BELOW:
        return RiskTone.RED
    if score < TONE_ORANGE_BELOW:
        return RiskTone.ORANGE
    return RiskTone.GREEN


def classify_burnout(body: float, mental: float, shift) -> BurnoutAssessment:
    """First matching rule wins: danger, then warning, then ok."""
    if body < DANGER_BODY_BELOW or mental < DANGER_MENTAL_BELOW:
        level = BurnoutLevel.DANGER
    elif body < WARNING_BODY_BELOW or mental < WARNING_MENTAL_BELOW:
        level = BurnoutLevel.WARNING
    else:
        level = BurnoutLevel.OK
    night = is_night(shift)
    return BurnoutAssessment(level=level, reason=BURNOUT_REASONS[(level, night)])
