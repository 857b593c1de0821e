"""Tests for the Banister load model and weekly statistics."""

import pytest
import numpy as np
from datetime import date, timedelta

from training_load.analysis.model import (
    BanisterModel,
    FormStatus,
    LoadSeriesCache,
    LoadStatistics,
    TrainingPhase,
    classify_form,
    classify_phase,
    classify_plan_week,
    compute_load_series,
    forecast,
    generate_weekly_plan,
    project_load,
    ramp_rate,
    series_to_frame,
    training_alerts,
    weekly_statistics,
)
from training_load.analysis.types import DailyLoadPoint

from conftest import build_activity, daily_activities

START = date(2024, 1, 1)


def make_stats(**overrides):
    values = dict(
        day=START,
        ctl=50.0,
        atl=50.0,
        tsb=0.0,
        ramp_rate=2.0,
        avg_tss_7d=50.0,
        weekly_tss=350.0,
        stddev=10.0,
        monotony=1.5,
        strain=525.0,
        acwr=1.0,
        past_ctl=45.0,
        phase=TrainingPhase.BUILDING,
        form=FormStatus.MAINTENANCE,
    )
    values.update(overrides)
    return LoadStatistics(**values)


class TestBanisterModel:
    """Test the CTL/ATL recursion."""

    def setup_method(self):
        self.model = BanisterModel(chronic_window=42, acute_window=7)

    def test_impulse_response_single_workout(self):
        training_loads = np.array([0, 100, 0, 0, 0, 0, 0])
        fitness, fatigue, form = self.model.impulse_response(training_loads)

        assert fitness[0] == 0
        assert fitness[1] == pytest.approx(100 / 42)
        assert fatigue[1] == pytest.approx(100 / 7)
        assert fatigue[1] > fitness[1]

        assert fitness[2] < fitness[1]
        assert fatigue[6] < fatigue[2]

        assert form[1] < 0
        assert form[6] > form[1]

    def test_first_day_seeds_both_loads(self):
        fitness, fatigue, form = self.model.impulse_response([120, 0])
        assert fitness[0] == 120
        assert fatigue[0] == 120
        assert form[0] == 0

    def test_impulse_response_periodized_training(self):
        loads = []
        for _ in range(3):
            loads.extend([60, 70, 80, 70, 60, 100, 40])  # build
            loads.extend([70, 80, 90, 80, 70, 110, 40])  # build
            loads.extend([40, 50, 40, 50, 30, 60, 20])   # recovery

        _, _, form = self.model.impulse_response(np.array(loads))

        assert form[20] > form[13]
        assert form[41] > form[34]

    def test_different_decay_rates(self):
        fast_model = BanisterModel(chronic_window=21, acute_window=3)
        slow_model = BanisterModel(chronic_window=60, acute_window=14)

        training_loads = np.array([100, 0, 0, 0, 0])
        fast_fitness, fast_fatigue, _ = fast_model.impulse_response(training_loads)
        slow_fitness, slow_fatigue, _ = slow_model.impulse_response(training_loads)

        assert fast_fatigue[4] < slow_fatigue[4]
        assert fast_fitness[4] < slow_fitness[4]

    def test_invalid_time_constants_use_defaults(self, caplog):
        model = BanisterModel(chronic_window=0, acute_window=-3)
        assert model.chronic_window == 42
        assert model.acute_window == 7
        assert "Invalid chronic time constant" in caplog.text


class TestLoadSeries:
    """Test the daily load series."""

    def test_empty_history(self):
        assert compute_load_series([]) == []

    def test_constant_load_converges(self):
        loads = [0] + [80] * 364
        series = compute_load_series(daily_activities(loads), today=START + timedelta(days=364))

        assert series[-1].ctl == pytest.approx(80, rel=1e-3)
        assert series[-1].atl == pytest.approx(80, rel=1e-3)
        assert series[-1].tsb == pytest.approx(0, abs=0.05)

    def test_tsb_is_exact_difference(self):
        loads = [30, 0, 120, 45, 0, 0, 200, 10, 75]
        series = compute_load_series(daily_activities(loads), today=START + timedelta(days=20))
        for point in series:
            assert point.tsb == point.ctl - point.atl

    def test_no_date_gaps_through_today(self):
        activities = [
            build_activity("a", START, tss=50),
            build_activity("b", START + timedelta(days=10), tss=70),
            build_activity("c", START + timedelta(days=20), tss=90),
        ]
        series = compute_load_series(activities, today=START + timedelta(days=30))

        assert len(series) == 31
        assert series[0].day == START
        assert series[-1].day == START + timedelta(days=30)
        for previous, current in zip(series, series[1:]):
            assert current.day - previous.day == timedelta(days=1)
        assert series[5].daily_tss == 0

    def test_activity_after_today_extends_series(self):
        activities = [build_activity("a", START, tss=50), build_activity("b", START + timedelta(days=40), tss=60)]
        series = compute_load_series(activities, today=START + timedelta(days=30))
        assert series[-1].day == START + timedelta(days=40)
        assert series[-1].daily_tss == 60

    def test_same_day_totals_are_summed(self):
        activities = [build_activity("a", START, tss=40), build_activity("b", START, tss=60)]
        series = compute_load_series(activities, today=START)
        assert len(series) == 1
        assert series[0].ctl == 100
        assert series[0].atl == 100

    def test_input_order_does_not_matter(self):
        activities = daily_activities([10, 50, 0, 90, 30])
        today = START + timedelta(days=6)
        assert compute_load_series(list(reversed(activities)), today=today) == compute_load_series(activities, today=today)

    def test_rounded_presentation(self):
        series = compute_load_series(daily_activities([100, 0]), today=START + timedelta(days=1))
        row = series[1].rounded()
        assert row["ctl"] == round(100 - 100 / 42, 1)
        assert row["daily_tss"] == 0
        assert row["is_projection"] is False


class TestLoadSeriesCache:
    """Test incremental updates of the load series."""

    def setup_method(self):
        self.loads = [50, 60, 0, 80, 40, 0, 120, 30, 0, 70, 90, 0, 50, 60, 20, 0, 100, 40, 0, 65]
        self.activities = daily_activities(self.loads)

    def test_extension_matches_full_recompute(self):
        cache = LoadSeriesCache()
        cache.series(self.activities[:10], today=START + timedelta(days=9), settings_version="v1")
        extended = cache.series(self.activities, today=START + timedelta(days=19), settings_version="v1")

        assert extended == compute_load_series(self.activities, today=START + timedelta(days=19))
        assert cache.full_recomputes == 1
        assert cache.extensions == 1

    def test_changed_history_forces_recompute(self):
        cache = LoadSeriesCache()
        today = START + timedelta(days=19)
        cache.series(self.activities, today=today, settings_version="v1")

        changed = list(self.activities)
        changed[3] = changed[3].with_tss(10)
        series = cache.series(changed, today=today, settings_version="v1")

        assert series == compute_load_series(changed, today=today)
        assert cache.full_recomputes == 2

    def test_settings_version_change_forces_recompute(self):
        cache = LoadSeriesCache()
        today = START + timedelta(days=19)
        cache.series(self.activities, today=today, settings_version="v1")
        cache.series(self.activities, today=today, settings_version="v2")
        assert cache.full_recomputes == 2
        assert cache.extensions == 0


class TestClassification:
    """Test ramp rate, phase and form classification."""

    def test_ramp_rate_over_seven_days(self):
        series = compute_load_series(daily_activities([50] * 5 + [100] * 10), today=START + timedelta(days=14))
        assert ramp_rate(series, START + timedelta(days=14)) == series[14].ctl - series[7].ctl

    def test_ramp_rate_short_history_uses_zero_reference(self):
        series = compute_load_series(daily_activities([60, 60, 60]), today=START + timedelta(days=2))
        assert ramp_rate(series, START + timedelta(days=2)) == series[-1].ctl

    def test_classify_phase(self):
        assert classify_phase(7) == TrainingPhase.OVERREACHING
        assert classify_phase(6) == TrainingPhase.PRODUCTIVE
        assert classify_phase(4) == TrainingPhase.PRODUCTIVE
        assert classify_phase(3) == TrainingPhase.BUILDING
        assert classify_phase(0) == TrainingPhase.BUILDING
        assert classify_phase(-0.5) == TrainingPhase.TAPERING

    def test_classify_form(self):
        assert classify_form(-31) == FormStatus.OVERLOAD
        assert classify_form(-30) == FormStatus.PRODUCTIVE
        assert classify_form(-10) == FormStatus.MAINTENANCE
        assert classify_form(5) == FormStatus.MAINTENANCE
        assert classify_form(6) == FormStatus.PEAK
        assert classify_form(25) == FormStatus.PEAK
        assert classify_form(26) == FormStatus.DETRAINING


class TestWeeklyStatistics:
    """Test monotony, strain and ACWR."""

    def test_empty_series(self):
        assert weekly_statistics([], START) is None

    def test_identical_loads_use_sentinel(self):
        series = compute_load_series(daily_activities([50] * 7), today=START + timedelta(days=6))
        stats = weekly_statistics(series, START + timedelta(days=6))

        assert stats.stddev == 0
        assert stats.monotony == 4.0
        assert stats.strain == 7 * 50 * 4.0
        assert stats.acwr == pytest.approx(1.0)

    def test_custom_sentinel(self):
        series = compute_load_series(daily_activities([50] * 7), today=START + timedelta(days=6))
        stats = weekly_statistics(series, START + timedelta(days=6), sentinel=2.0)
        assert stats.monotony == 2.0
        assert stats.strain == 700

    def test_rest_week(self):
        series = compute_load_series(daily_activities([100]), today=START + timedelta(days=20))
        stats = weekly_statistics(series, START + timedelta(days=20))
        assert stats.monotony == 0
        assert stats.strain == 0
        assert stats.acwr == 0

    def test_varied_week(self):
        loads = [0, 100, 50, 0, 80, 120, 40]
        series = compute_load_series(daily_activities(loads), today=START + timedelta(days=6))
        stats = weekly_statistics(series, START + timedelta(days=6))

        mean = np.mean(loads)
        std = np.std(loads)
        assert stats.avg_tss_7d == pytest.approx(mean)
        assert stats.monotony == pytest.approx(mean / std)
        assert stats.strain == pytest.approx(sum(loads) * mean / std)

    def test_past_ctl_thirty_days_back(self):
        series = compute_load_series(daily_activities(list(range(40))), today=START + timedelta(days=39))
        stats = weekly_statistics(series, START + timedelta(days=39))
        assert stats.past_ctl == series[9].ctl

    def test_past_ctl_falls_back_to_first_point(self):
        series = compute_load_series(daily_activities([30, 40, 50]), today=START + timedelta(days=2))
        stats = weekly_statistics(series, START + timedelta(days=2))
        assert stats.past_ctl == series[0].ctl


class TestAlertsAndProjection:
    """Test coaching alerts, projections and forecasts."""

    def test_acwr_alerts(self):
        assert training_alerts(make_stats(acwr=1.6))[0].level == "critical"
        assert training_alerts(make_stats(acwr=1.4))[0].level == "warning"
        assert training_alerts(make_stats()) == []

    def test_monotony_alert_needs_load(self):
        assert [a.level for a in training_alerts(make_stats(monotony=2.5, avg_tss_7d=40))] == ["info"]
        assert training_alerts(make_stats(monotony=2.5, avg_tss_7d=20)) == []

    def test_form_alerts(self):
        assert [a.level for a in training_alerts(make_stats(tsb=-35))] == ["critical"]
        assert [a.level for a in training_alerts(make_stats(tsb=30, ctl=50))] == ["good"]
        assert training_alerts(make_stats(tsb=30, ctl=30)) == []

    def test_ramp_alert(self):
        alerts = training_alerts(make_stats(ramp_rate=7))
        assert [a.title for a in alerts] == ["Steep ramp"]

    def test_project_load(self):
        last = DailyLoadPoint(day=START, ctl=50.0, atl=50.0, tsb=0.0, daily_tss=50.0)
        projection = project_load(last, [350, 350])

        assert len(projection) == 14
        assert all(point.is_projection for point in projection)
        assert projection[0].day == START + timedelta(days=1)
        assert projection[-1].day == START + timedelta(days=14)
        assert projection[-1].ctl == pytest.approx(50)
        assert projection[-1].tsb == pytest.approx(0)

    def test_project_load_taper_raises_form(self):
        last = DailyLoadPoint(day=START, ctl=60.0, atl=80.0, tsb=-20.0, daily_tss=90.0)
        projection = project_load(last, [150])
        assert projection[-1].tsb > 0
        assert projection[-1].ctl < 60

    def test_forecast_trend(self):
        rising = forecast(make_stats(ctl=30.0, atl=60.0, tsb=-30.0, avg_tss_7d=60.0))
        assert rising["trend"] == "up"
        assert rising["next_level"] == 40
        assert 0 < rising["next_level_days"] <= 28

        steady = forecast(make_stats())
        assert steady["trend"] == "stable"
        assert steady["next_level"] is None

        falling = forecast(make_stats(ctl=60.0, atl=20.0, tsb=40.0, avg_tss_7d=10.0))
        assert falling["trend"] == "down"

    def test_series_to_frame(self):
        series = compute_load_series(daily_activities([40, 60, 80]), today=START + timedelta(days=2))
        df = series_to_frame(series)
        assert list(df.columns) == ["ctl", "atl", "tsb", "daily_tss", "is_projection"]
        assert len(df) == 3
        assert df["daily_tss"].tolist() == [40, 60, 80]


class TestWeeklyPlan:
    """Test the periodised weekly plan."""

    def test_three_builds_then_recovery(self):
        plan = generate_weekly_plan(300, 500, weeks=12, start_day=START)
        assert plan == [322, 344, 367, 257, 389, 411, 434, 304, 456, 478, 501, 350]

    def test_target_reached_after_three_quarters(self):
        plan = generate_weekly_plan(300, 500, weeks=12, start_day=START)
        assert plan[10] == pytest.approx(500, abs=1)
        assert max(plan) == plan[10]

    def test_a_race_week_is_tapered(self):
        race = START + timedelta(days=9)
        plan = generate_weekly_plan(300, 500, weeks=12, start_day=START, a_races=[race])
        assert plan[1] == 138
        assert plan[0] == 322
        assert plan[2:] == [367, 257, 389, 411, 434, 304, 456, 478, 501, 350]

    def test_races_outside_the_plan_are_ignored(self):
        races = [START - timedelta(days=1), START + timedelta(days=7 * 12)]
        plan = generate_weekly_plan(300, 500, weeks=12, start_day=START, a_races=races)
        assert plan == generate_weekly_plan(300, 500, weeks=12, start_day=START)

    def test_no_weeks(self):
        assert generate_weekly_plan(300, 500, weeks=0, start_day=START) == []

    def test_week_labels(self):
        assert classify_plan_week(322, None) == "start"
        assert classify_plan_week(257, 367) == "recovery"
        assert classify_plan_week(389, 257) == "build"
        assert classify_plan_week(150, 150) == "taper"
        assert classify_plan_week(300, 300) == "base"
