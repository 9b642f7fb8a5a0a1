"""
Pytest configuration and fixtures

The engine is pure and the API is stateless, so fixtures are plain
tracker-state payloads built in memory. Nothing touches disk or network.
"""
import pytest
import sys
import os

# Add the parent directory to the path so we can import from services
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from services.tracker_state import TrackerState
from tests.vitals_helpers import build_payload, consecutive_days


@pytest.fixture
def empty_state():
    return TrackerState()


@pytest.fixture
def three_hard_nights_payload():
    """Three nights in a row on 3h sleep and 400mg caffeine."""
    days = consecutive_days("2024-03-04", 3)
    return build_payload(
        schedule={d: "N" for d in days},
        bio={d: {"sleepHours": 3, "caffeineMg": 400} for d in days},
    )


@pytest.fixture
def mixed_rota_payload():
    """Two weeks of a typical rotating ward schedule with sparse logs."""
    rota = ["D", "D", "E", "E", "N", "N", "OFF", "OFF", "M", "D", "E", "N", "N", "N"]
    days = consecutive_days("2024-05-01", len(rota))
    bio = {
        days[0]: {"sleepHours": 7.5, "stress": 1, "activity": 2},
        days[4]: {"sleepHours": 5, "caffeineMg": 250, "caffeineLastAt": "03:00"},
        days[5]: {"sleepHours": 4.5, "sleepTiming": "day", "stress": 3},
        days[7]: {"sleepHours": 10, "napHours": 1, "sleepQuality": 5},
        days[12]: {"sleepHours": 4, "fatigueLevel": 8, "shiftOvertimeHours": 3},
    }
    emotions = {
        days[2]: {"mood": 2, "tags": ["#busy"]},
        days[7]: {"mood": 5},
        days[13]: {"mood": 1},
    }
    return build_payload(
        schedule=dict(zip(days, rota)),
        bio=bio,
        emotions=emotions,
        notes={days[3]: "handover ran late"},
    )
