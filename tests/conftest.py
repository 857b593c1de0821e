"""Shared fixtures for the training load tests."""

import pytest
from datetime import date, datetime, timedelta

from training_load.analysis.types import Activity, AthleteSettings, Sport, SportSettings, Streams


def build_activity(
    activity_id="a1",
    day=date(2024, 1, 1),
    sport=Sport.RUN,
    duration_min=60.0,
    hr_avg=0.0,
    speed_avg=0.0,
    watts_avg=0.0,
    streams=None,
    tss=None,
    name="",
    distance_m=0.0,
):
    return Activity(
        id=activity_id,
        name=name or f"Activity {activity_id}",
        start=datetime.combine(day, datetime.min.time()) + timedelta(hours=7),
        sport=sport,
        duration_min=duration_min,
        hr_avg=hr_avg,
        speed_avg=speed_avg,
        watts_avg=watts_avg,
        distance_m=distance_m,
        streams=streams,
        tss=tss,
    )


def build_streams(seconds, heartrate=None, speed=None, power=None):
    """1 Hz streams from 0 to ``seconds`` inclusive; scalars are repeated."""
    n = seconds + 1

    def expand(values):
        if values is None:
            return None
        if isinstance(values, (int, float)):
            return tuple(float(values) for _ in range(n))
        return tuple(float(v) for v in values)

    return Streams(
        time=tuple(float(t) for t in range(n)),
        heartrate=expand(heartrate),
        speed=expand(speed),
        power=expand(power),
    )


def daily_activities(loads, start=date(2024, 1, 1)):
    """One activity per day carrying the given TSS."""
    return [
        build_activity(f"d{i}", start + timedelta(days=i), tss=load)
        for i, load in enumerate(loads)
    ]


@pytest.fixture
def make_activity():
    return build_activity


@pytest.fixture
def make_streams():
    return build_streams


@pytest.fixture
def settings():
    return AthleteSettings(
        run=SportSettings(lthr=170, max_hr=200),
        bike=SportSettings(lthr=160, max_hr=190),
        weight_kg=70,
        resting_hr=50,
    )
