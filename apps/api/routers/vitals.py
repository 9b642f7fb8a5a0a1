"""
Vitals API Endpoints

Stateless: the client sends its tracker state (schedule, notes, mood, bio
logs, settings) with each request, the server replays the recovery engine
and returns daily body/mental vitals. Nothing is stored.

Payload keys follow the client's camelCase for tracker state; everything the
server adds is snake_case.
"""

from dataclasses import asdict
from enum import Enum
from typing import Any, Dict, Optional
import logging

from fastapi import APIRouter
from pydantic import BaseModel, Field

from core.config import settings
from core.exceptions import ValidationError
from services.daily_vitals import DailyVital, compute_vitals
from services.day_keys import days_inclusive, diff_days, parse_day
from services.menstrual_cycle import auto_adjust_menstrual_settings
from services.recovery_engine import EngineDiagnostics
from services.tracker_state import BioInputs, MenstrualSettings, TrackerState
from services.vitals_insights import (
    aggregate_factors,
    average,
    best_and_worst_day,
    best_shift,
    compute_personalization_accuracy,
    compute_shift_stats,
    grade_from_score,
    shift_counts,
    top_factors,
    worst_shift,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/vitals", tags=["Vitals"])

# Short diagnostic names used by older clients
LEGACY_DIAGNOSTIC_ALIASES = {
    "circadian_strain": ("CSI", "CMF"),
    "sleep_recovery_index": ("SRI", "SRS"),
    "caffeine_sleep_disruption": ("CSD",),
    "caffeine_influence": ("CIF",),
    "stress_load": ("SLF",),
    "menstrual_impact": ("MIF",),
    "mood_factor": ("MF",),
    "caffeine_sleep_residual": ("caf_sleep",),
    "debt_normalized": ("debt_n",),
    "effective_sleep_hours": ("sleep_eff",),
}


# =============================================================================
# REQUEST MODELS
# =============================================================================

class VitalsRangeBody(BaseModel):
    """Request for daily vitals over an inclusive day window."""
    state: Dict[str, Any] = Field(default_factory=dict)
    start: str
    end: str
    include_diagnostics: Optional[bool] = None
    legacy_aliases: Optional[bool] = None


class VitalsInsightsBody(BaseModel):
    """Request for a period summary (weekly or monthly views)."""
    state: Dict[str, Any] = Field(default_factory=dict)
    start: str
    end: str
    top_n: int = Field(default=3, ge=1, le=7)


class MenstrualAdjustBody(BaseModel):
    """Request to learn cycle settings from one day's log."""
    settings: Dict[str, Any] = Field(default_factory=dict)
    day: str
    bio: Optional[Dict[str, Any]] = None
    prev_bio: Optional[Dict[str, Any]] = None
    bio_map: Optional[Dict[str, Dict[str, Any]]] = None


# =============================================================================
# SERIALIZATION
# =============================================================================

def _plain(value):
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return value


def diagnostics_to_dict(diagnostics: EngineDiagnostics, legacy_aliases: bool = False) -> Dict[str, Any]:
    """Canonical diagnostics, optionally with the old short names added."""
    payload = _plain(asdict(diagnostics))
    if legacy_aliases:
        for name, aliases in LEGACY_DIAGNOSTIC_ALIASES.items():
            for alias in aliases:
                payload[alias] = payload[name]
    return payload


def vital_to_dict(vital: DailyVital, legacy_aliases: bool = False) -> Dict[str, Any]:
    payload = {
        "day": vital.day,
        "shift": vital.shift.value,
        "note": vital.note,
        "emotion": _plain(asdict(vital.emotion)) if vital.emotion else None,
        "inputs": _plain(asdict(vital.inputs)),
        "menstrual": {
            "enabled": vital.menstrual.enabled,
            "phase": vital.menstrual.phase.value,
            "day_in_cycle": vital.menstrual.day_in_cycle,
            "label": vital.menstrual.label,
        },
        "body": _plain(asdict(vital.body)),
        "mental": _plain(asdict(vital.mental)),
        "burnout": _plain(asdict(vital.burnout)),
        "factors": vital.factors.as_dict() if vital.factors else None,
        "insight": vital.insight,
        "engine": None,
    }
    if vital.engine is not None:
        payload["engine"] = {
            "sleep_debt_hours": vital.engine.sleep_debt_hours,
            "night_streak": vital.engine.night_streak,
            "diagnostics": diagnostics_to_dict(vital.engine.diagnostics, legacy_aliases),
        }
    return payload


def _settings_to_dict(value: MenstrualSettings) -> Dict[str, Any]:
    return {
        "enabled": value.enabled,
        "lastPeriodStart": value.last_period_start,
        "cycleLength": value.cycle_length,
        "periodLength": value.period_length,
        "pmsDays": value.pms_days,
    }


# =============================================================================
# VALIDATION
# =============================================================================

def _require_day(value: str, field: str) -> str:
    day = parse_day(value)
    if day is None:
        raise ValidationError(f"{field} must be a calendar day (YYYY-MM-DD), got {value!r}", field=field)
    return day


def _resolve_window(start: str, end: str):
    start_day = _require_day(start, "start")
    end_day = _require_day(end, "end")
    if start_day <= end_day and diff_days(end_day, start_day) + 1 > settings.VITALS_MAX_RANGE_DAYS:
        raise ValidationError(
            f"Range too long: at most {settings.VITALS_MAX_RANGE_DAYS} days per request",
            field="range",
        )
    return start_day, end_day


def _tracker_state(raw: Dict[str, Any]) -> TrackerState:
    # A dict always parses; malformed entries are dropped, not rejected
    return TrackerState.from_payload(raw) or TrackerState()


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.post("/range")
def get_vitals_range(body: VitalsRangeBody):
    """
    Daily vitals for every day in [start, end], ascending.

    History before start is replayed from the state so hidden carry-over
    (sleep debt, night streak, yesterday's batteries) is reconstructed.
    An inverted window returns an empty list.
    """
    start, end = _resolve_window(body.start, body.end)
    state = _tracker_state(body.state)

    include = settings.VITALS_INCLUDE_DIAGNOSTICS if body.include_diagnostics is None else body.include_diagnostics
    legacy = settings.VITALS_LEGACY_DIAGNOSTIC_ALIASES if body.legacy_aliases is None else body.legacy_aliases

    vitals = compute_vitals(state, start, end, include_diagnostics=include)
    logger.info(
        f"Vitals range {start}..{end}: {len(vitals)} days",
        extra={"extra_fields": {"start": start, "end": end, "days": len(vitals)}},
    )

    return {
        "start": start,
        "end": end,
        "days": len(vitals),
        "vitals": [vital_to_dict(v, legacy) for v in vitals],
    }


@router.post("/insights")
def get_vitals_insights(body: VitalsInsightsBody):
    """
    Period summary for the insights screens.

    Averages, grade, per-shift breakdown, best and worst day, what drained
    the user most, and how much of the result rests on their own logs.
    """
    start, end = _resolve_window(body.start, body.end)
    state = _tracker_state(body.state)

    vitals = compute_vitals(state, start, end, include_diagnostics=False)
    avg_body = average(v.body.value for v in vitals)
    avg_mental = average(v.mental.ema for v in vitals)
    stats = compute_shift_stats(vitals)
    best_day, worst_day = best_and_worst_day(vitals)
    accuracy = compute_personalization_accuracy(state, start, end, vitals)

    def stat_dict(stat):
        return _plain(asdict(stat)) if stat else None

    def day_summary(vital):
        if vital is None:
            return None
        return {
            "day": vital.day,
            "shift": vital.shift.value,
            "body": vital.body.value,
            "mental": vital.mental.ema,
        }

    return {
        "start": start,
        "end": end,
        "days": len(days_inclusive(start, end)) if start <= end else 0,
        "avg_body": round(avg_body, 1),
        "avg_mental": round(avg_mental, 1),
        "grade": grade_from_score((avg_body + avg_mental) / 2) if vitals else None,
        "shift_counts": {shift.value: count for shift, count in shift_counts(vitals).items()},
        "shift_stats": [stat_dict(s) for s in stats],
        "best_shift": stat_dict(best_shift(stats)),
        "worst_shift": stat_dict(worst_shift(stats)),
        "best_day": day_summary(best_day),
        "worst_day": day_summary(worst_day),
        "factors": aggregate_factors(vitals),
        "top_factors": [asdict(f) for f in top_factors(vitals, body.top_n)],
        "personalization": {
            "percent": accuracy.percent,
            "weights": accuracy.weights,
            "coverage": accuracy.coverage,
            "missing_top": [asdict(f) for f in accuracy.missing_top],
        },
    }


@router.post("/menstrual/adjust")
def adjust_menstrual_settings(body: MenstrualAdjustBody):
    """
    Learn cycle settings from one day's bio log.

    Returns the updated settings and whether anything changed. The client
    owns persistence.
    """
    day = _require_day(body.day, "day")
    current = MenstrualSettings.from_payload(body.settings)
    bio_map = None
    if body.bio_map is not None:
        bio_map = {}
        for key, raw in body.bio_map.items():
            parsed = BioInputs.from_payload(raw)
            if parse_day(key) and parsed is not None:
                bio_map[key] = parsed

    updated = auto_adjust_menstrual_settings(
        current,
        day,
        BioInputs.from_payload(body.bio),
        prev_bio=BioInputs.from_payload(body.prev_bio),
        bio_map=bio_map,
    )
    if updated is not None:
        logger.info(f"Menstrual settings adjusted on {day}")

    return {
        "changed": updated is not None,
        "settings": _settings_to_dict(updated or current),
    }
