"""
Tests for the daily vitals replay (services.daily_vitals)

Covers window shape, replay carry-over, the look-back equivalence,
night-streak bounds, factor normalization, the documented scenarios
(night run, recovery day, empty history) and the legacy call-shape adapter.
"""

import logging

import pytest

from services.daily_vitals import (
    DailyVital,
    VitalsRangeRequest,
    build_engine_inputs,
    compute_vitals,
    compute_vitals_range,
    normalize_bio,
    vital_map_by_day,
)
from services.day_keys import add_days, diff_days
from services.menstrual_cycle import MenstrualPhase, menstrual_context_for_day
from services.recovery_engine import (
    DEFAULT_BATTERY,
    EngineProfile,
    default_engine_state,
    step_recovery_engine,
)
from services.risk_classification import BurnoutLevel, RiskTone
from services.shift_schedule import Shift
from services.tracker_state import BioInputs, TrackerState
from tests.vitals_helpers import build_payload, consecutive_days

TONE_RANK = {RiskTone.GREEN: 0, RiskTone.ORANGE: 1, RiskTone.RED: 2}


def state_from(payload) -> TrackerState:
    return TrackerState.from_payload(payload)


class TestWindowShape:
    """Output covers exactly the requested days, ascending."""

    def test_length_matches_inclusive_window(self, mixed_rota_payload):
        state = state_from(mixed_rota_payload)
        vitals = compute_vitals(state, "2024-05-01", "2024-05-14")
        assert len(vitals) == 14
        assert [v.day for v in vitals] == consecutive_days("2024-05-01", 14)

    def test_window_extending_past_history(self, mixed_rota_payload):
        state = state_from(mixed_rota_payload)
        vitals = compute_vitals(state, "2024-04-20", "2024-05-30")
        assert len(vitals) == diff_days("2024-05-30", "2024-04-20") + 1

    def test_single_day_window(self, mixed_rota_payload):
        state = state_from(mixed_rota_payload)
        vitals = compute_vitals(state, "2024-05-09", "2024-05-09")
        assert len(vitals) == 1
        assert vitals[0].day == "2024-05-09"
        assert vitals[0].shift == Shift.MIDDLE

    def test_inverted_window_is_empty(self, mixed_rota_payload):
        state = state_from(mixed_rota_payload)
        assert compute_vitals(state, "2024-05-10", "2024-05-01") == []

    def test_batteries_stay_in_bounds(self, mixed_rota_payload):
        state = state_from(mixed_rota_payload)
        for vital in compute_vitals(state, "2024-04-25", "2024-05-20"):
            assert 0 <= vital.body.value <= 100
            assert 0 <= vital.mental.raw <= 100
            assert 0 <= vital.mental.ema <= 100
            assert 0 <= vital.engine.sleep_debt_hours <= 20

    def test_days_without_entries_use_defaults(self, mixed_rota_payload):
        state = state_from(mixed_rota_payload)
        vital = vital_map_by_day(compute_vitals(state, "2024-05-01", "2024-05-14"))["2024-05-02"]
        assert vital.inputs == normalize_bio(None)
        assert vital.emotion is None
        assert vital.note is None


class TestReplay:
    """Hidden state carries across days and is rebuilt on every call."""

    def test_idempotent(self, mixed_rota_payload):
        first = compute_vitals(state_from(mixed_rota_payload), "2024-05-01", "2024-05-14")
        second = compute_vitals(state_from(mixed_rota_payload), "2024-05-01", "2024-05-14")
        assert first == second

    @pytest.mark.parametrize("earlier_start", ["2024-05-01", "2024-04-15", "2023-12-31"])
    def test_lookback_matches_wider_window(self, mixed_rota_payload, earlier_start):
        """Automatic replay equals asking for a wider window and slicing."""
        state = state_from(mixed_rota_payload)
        narrow = compute_vitals(state, "2024-05-08", "2024-05-14")
        wide = compute_vitals(state, earlier_start, "2024-05-14")
        assert wide[-len(narrow):] == narrow

    def test_lookback_before_history(self, mixed_rota_payload):
        state = state_from(mixed_rota_payload)
        narrow = compute_vitals(state, "2024-04-25", "2024-04-28")
        wide = compute_vitals(state, "2024-04-01", "2024-04-28")
        assert wide[-len(narrow):] == narrow

    def test_first_recorded_day_starts_from_default(self):
        """A window opening one day before history matches one opening on it."""
        state = state_from(build_payload(schedule={"2024-05-01": "D", "2024-05-02": "N"}))
        on_history = compute_vitals(state, "2024-05-01", "2024-05-02")
        day_before = compute_vitals(state, "2024-04-30", "2024-05-02")
        assert day_before[1:] == on_history
        assert day_before[1].engine.sleep_debt_hours == on_history[0].engine.sleep_debt_hours
        assert day_before[2].engine.sleep_debt_hours == on_history[1].engine.sleep_debt_hours
        assert on_history[0].body.change == round(on_history[0].body.value - DEFAULT_BATTERY, 1)

    def test_pre_history_days_start_from_default(self, mixed_rota_payload):
        state = state_from(mixed_rota_payload)
        pre_history = compute_vitals(state, "2024-04-20", "2024-04-30")
        values = {(v.body.value, v.mental.raw) for v in pre_history}
        assert len(values) == 1

    def test_window_inside_history_sees_earlier_days(self, three_hard_nights_payload):
        """The third night is still worse when only it is requested."""
        state = state_from(three_hard_nights_payload)
        full = compute_vitals(state, "2024-03-04", "2024-03-06")
        only_last = compute_vitals(state, "2024-03-06", "2024-03-06")
        assert only_last == full[-1:]
        assert only_last[0].engine.night_streak == 3

    def test_retroactive_edit_ripples_forward(self, three_hard_nights_payload):
        edited = dict(three_hard_nights_payload)
        edited["bio"] = dict(three_hard_nights_payload["bio"])
        edited["bio"]["2024-03-04"] = {"sleepHours": 9, "caffeineMg": 0}

        before = compute_vitals(state_from(three_hard_nights_payload), "2024-03-06", "2024-03-06")[0]
        after = compute_vitals(state_from(edited), "2024-03-06", "2024-03-06")[0]
        assert after.body.value > before.body.value
        assert after.engine.sleep_debt_hours < before.engine.sleep_debt_hours

    def test_change_is_one_decimal_delta(self, mixed_rota_payload):
        vitals = compute_vitals(state_from(mixed_rota_payload), "2024-05-01", "2024-05-14")
        for prev, cur in zip(vitals, vitals[1:]):
            assert cur.body.change == round(cur.body.value - prev.body.value, 1)
            assert cur.mental.change == round(cur.mental.raw - prev.mental.raw, 1)


class TestNightStreak:
    """Consecutive-night counter bounds."""

    def test_never_exceeds_five(self):
        days = consecutive_days("2024-01-01", 8)
        state = state_from(build_payload(schedule={d: "N" for d in days}))
        streaks = [v.engine.night_streak for v in compute_vitals(state, days[0], days[-1])]
        assert streaks == [1, 2, 3, 4, 5, 5, 5, 5]

    def test_zero_on_non_night_days(self, mixed_rota_payload):
        vitals = compute_vitals(state_from(mixed_rota_payload), "2024-05-01", "2024-05-14")
        prev_streak = 0
        for vital in vitals:
            if vital.shift == Shift.NIGHT:
                assert vital.engine.night_streak == min(5, prev_streak + 1)
            else:
                assert vital.engine.night_streak == 0
            prev_streak = vital.engine.night_streak


class TestFactorsAndBurnout:
    """Per-day factor breakdown and burnout rule."""

    def test_factors_sum_to_one(self, mixed_rota_payload):
        for vital in compute_vitals(state_from(mixed_rota_payload), "2024-05-01", "2024-05-14"):
            if vital.factors.total > 0:
                assert vital.factors.total == pytest.approx(1.0, abs=1e-9)

    def test_danger_whenever_batteries_low(self):
        days = consecutive_days("2024-02-01", 10)
        payload = build_payload(
            schedule={d: "N" for d in days},
            bio={d: {"sleepHours": 1, "caffeineMg": 600, "stress": 3, "activity": 3} for d in days},
            emotions={d: {"mood": 1} for d in days},
        )
        vitals = compute_vitals(state_from(payload), days[0], days[-1])
        low = [v for v in vitals if v.body.value < 20 or v.mental.raw < 25]
        assert low, "ten brutal nights should reach the danger zone"
        for vital in low:
            assert vital.burnout.level == BurnoutLevel.DANGER

    def test_insight_names_dominant_factor(self, three_hard_nights_payload):
        vital = compute_vitals(state_from(three_hard_nights_payload), "2024-03-04", "2024-03-04")[0]
        assert vital.factors.dominant() == "sleep"
        assert vital.insight.startswith("Short sleep")

    def test_mood_entry_feeds_mental_battery(self):
        low = build_payload(schedule={"2024-06-01": "D"}, emotions={"2024-06-01": {"mood": 1}})
        high = build_payload(schedule={"2024-06-01": "D"}, emotions={"2024-06-01": {"mood": 5}})
        low_v = compute_vitals(state_from(low), "2024-06-01", "2024-06-01")[0]
        high_v = compute_vitals(state_from(high), "2024-06-01", "2024-06-01")[0]
        assert low_v.mental.raw < high_v.mental.raw
        assert low_v.body.value == high_v.body.value

    def test_logged_flow_overrides_predicted_phase(self):
        payload = build_payload(bio={"2024-06-01": {"menstrualFlow": 2}})
        vital = compute_vitals(state_from(payload), "2024-06-01", "2024-06-01")[0]
        assert vital.menstrual.phase == MenstrualPhase.NONE
        assert vital.engine.diagnostics.effective_cycle_phase == MenstrualPhase.PERIOD
        assert vital.factors.menstrual > 0


class TestScenarios:
    """End-to-end behaviour the product promises."""

    def test_three_hard_nights(self, three_hard_nights_payload):
        vitals = compute_vitals(state_from(three_hard_nights_payload), "2024-03-04", "2024-03-06")

        assert [v.engine.night_streak for v in vitals] == [1, 2, 3]

        debts = [v.engine.sleep_debt_hours for v in vitals]
        assert debts == sorted(debts)

        assert vitals[0].body.value > vitals[1].body.value > vitals[2].body.value
        assert TONE_RANK[vitals[2].body.tone] > TONE_RANK[vitals[0].body.tone]
        assert vitals[0].body.tone == RiskTone.ORANGE
        assert vitals[2].body.tone == RiskTone.RED

    def test_recovery_day_after_night_run(self):
        nights = consecutive_days("2024-03-01", 5)
        off_day = add_days(nights[-1], 1)
        payload = build_payload(
            schedule={**{d: "N" for d in nights}, off_day: "OFF"},
            bio={off_day: {"sleepHours": 9}},
        )
        vitals = compute_vitals(state_from(payload), nights[0], off_day)

        assert vitals[-2].engine.night_streak == 5
        assert vitals[-1].engine.night_streak == 0
        assert vitals[-1].mental.change >= 0

    def test_single_day_without_history(self, empty_state):
        vitals = compute_vitals(empty_state, "2024-07-01", "2024-07-01")
        assert len(vitals) == 1
        vital = vitals[0]

        start = default_engine_state()
        inputs = build_engine_inputs(
            empty_state, "2024-07-01", Shift.OFF, normalize_bio(None), None,
            menstrual_context_for_day("2024-07-01", None), start,
        )
        expected = step_recovery_engine(start, inputs, EngineProfile())

        assert vital.shift == Shift.OFF
        assert vital.body.value == expected.next_state.body_battery
        assert vital.mental.raw == expected.next_state.mental_battery
        assert vital.body.change == round(vital.body.value - DEFAULT_BATTERY, 1)
        assert vital.engine.night_streak == 0


class TestDiagnosticsToggle:

    def test_engine_snapshot_can_be_omitted(self, mixed_rota_payload):
        vitals = compute_vitals(state_from(mixed_rota_payload), "2024-05-01", "2024-05-03", include_diagnostics=False)
        assert all(v.engine is None for v in vitals)
        assert all(v.factors is not None for v in vitals)

    def test_omitting_snapshot_does_not_change_values(self, mixed_rota_payload):
        state = state_from(mixed_rota_payload)
        with_diag = compute_vitals(state, "2024-05-01", "2024-05-14")
        without = compute_vitals(state, "2024-05-01", "2024-05-14", include_diagnostics=False)
        assert [v.body for v in with_diag] == [v.body for v in without]
        assert [v.mental for v in with_diag] == [v.mental for v in without]


class TestNormalizeBio:

    def test_none_gives_neutral_day(self):
        bio = normalize_bio(None)
        assert bio.sleep_hours == 7.0
        assert bio.stress == 1
        assert bio.caffeine_mg == 0.0
        assert bio.menstrual_status == "none"

    def test_keeps_logged_values(self):
        bio = normalize_bio(BioInputs(sleep_hours=4.5, stress=3))
        assert bio.sleep_hours == 4.5
        assert bio.stress == 3
        assert bio.activity == 1
        assert bio.sleep_quality is None


class TestCallShapeAdapter:
    """compute_vitals_range accepts every historical call shape."""

    @pytest.fixture
    def expected(self, mixed_rota_payload):
        return compute_vitals(state_from(mixed_rota_payload), "2024-05-03", "2024-05-09")

    def test_request_object(self, mixed_rota_payload, expected):
        request = VitalsRangeRequest(state=mixed_rota_payload, start="2024-05-03", end="2024-05-09")
        assert compute_vitals_range(request) == expected

    def test_mapping_with_current_keys(self, mixed_rota_payload, expected):
        call = {"state": mixed_rota_payload, "start": "2024-05-03", "end": "2024-05-09"}
        assert compute_vitals_range(call) == expected

    def test_mapping_with_legacy_keys(self, mixed_rota_payload, expected):
        call = {"store": mixed_rota_payload, "from": "2024-05-03", "to": "2024-05-09"}
        assert compute_vitals_range(call) == expected

    def test_positional(self, mixed_rota_payload, expected):
        assert compute_vitals_range(mixed_rota_payload, "2024-05-03", "2024-05-09") == expected

    def test_positional_typed_state(self, mixed_rota_payload, expected):
        state = state_from(mixed_rota_payload)
        assert compute_vitals_range(state, "2024-05-03", "2024-05-09") == expected

    @pytest.mark.parametrize("window", [
        {"start": "2024-05-03", "end": "2024-05-09"},
        {"from": "2024-05-03", "to": "2024-05-09"},
        {"min": "2024-05-03", "max": "2024-05-09"},
    ])
    def test_state_plus_window(self, mixed_rota_payload, expected, window):
        assert compute_vitals_range(mixed_rota_payload, window) == expected

    def test_keywords(self, mixed_rota_payload, expected):
        assert compute_vitals_range(state=mixed_rota_payload, start="2024-05-03", end="2024-05-09") == expected

    def test_state_positional_dates_keyword(self, mixed_rota_payload, expected):
        assert compute_vitals_range(mixed_rota_payload, start="2024-05-03", end="2024-05-09") == expected

    def test_date_objects(self, mixed_rota_payload, expected):
        from datetime import date
        assert compute_vitals_range(mixed_rota_payload, date(2024, 5, 3), date(2024, 5, 9)) == expected

    @pytest.mark.parametrize("args,kwargs", [
        ((), {}),
        ((42,), {}),
        (({"state": {}},), {}),
        (("not-a-state", "2024-05-03", "2024-05-09"), {}),
        (({}, "2024-13-01", "2024-05-09"), {}),
        (({}, "2024-05-03", None), {}),
        (({}, "yesterday"), {}),
    ])
    def test_malformed_calls_return_empty(self, caplog, args, kwargs):
        with caplog.at_level(logging.WARNING, logger="services.daily_vitals"):
            assert compute_vitals_range(*args, **kwargs) == []
        assert "compute_vitals_range" in caplog.text

    def test_inverted_window_is_empty_without_warning(self, caplog):
        with caplog.at_level(logging.WARNING, logger="services.daily_vitals"):
            assert compute_vitals_range({}, "2024-05-09", "2024-05-03") == []
        assert caplog.text == ""


class TestVitalMapByDay:

    def test_indexes_by_day(self, mixed_rota_payload):
        vitals = compute_vitals(state_from(mixed_rota_payload), "2024-05-01", "2024-05-03")
        by_day = vital_map_by_day(vitals)
        assert list(by_day) == ["2024-05-01", "2024-05-02", "2024-05-03"]
        assert isinstance(by_day["2024-05-02"], DailyVital)

    def test_empty(self):
        assert vital_map_by_day([]) == {}
