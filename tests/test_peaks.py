"""Tests for mean-maximal peak curves."""

import pytest
import numpy as np
from datetime import date, timedelta

from training_load.analysis.peaks import (
    LOOKBACK_90D,
    WINDOWS,
    PeakCurveAnalyzer,
    compute_peak_curves,
    format_interval,
    format_pace,
    peak_by_time,
    speed_to_pace,
)
from training_load.analysis.types import Metric, Sport

from conftest import build_activity, build_streams

TODAY = date(2024, 6, 30)


def two_pointer_peak(values, time, window_s, coverage=0.95):
    """Straightforward sliding window used as a reference."""
    best = 0.0
    start = 0
    total = 0.0
    count = 0
    for end in range(len(time)):
        total += values[end]
        count += 1
        while time[end] - time[start] > window_s:
            total -= values[start]
            count -= 1
            start += 1
        if time[end] - time[start] >= window_s * coverage:
            best = max(best, total / count)
    return best


class TestPeakByTime:
    """Test the sliding-window average."""

    def test_constant_signal_every_window(self):
        time = np.arange(7300, dtype=float)
        values = np.full(7300, 152.0)
        for window in WINDOWS:
            assert peak_by_time(values, time, window) == pytest.approx(152.0)

    def test_window_spans_inclusive_samples(self):
        """A 5 s window at 1 Hz averages 6 samples."""
        values = np.array([100.0] * 10 + [200.0] * 5 + [100.0] * 10)
        time = np.arange(len(values), dtype=float)
        assert peak_by_time(values, time, 5) == pytest.approx(1100 / 6)

    def test_coverage_rule(self):
        values = np.full(291, 140.0)
        assert peak_by_time(values, np.arange(291, dtype=float), 300) == pytest.approx(140.0)

        values = np.full(281, 140.0)
        assert peak_by_time(values, np.arange(281, dtype=float), 300) == 0.0

    def test_matches_reference_on_irregular_sampling(self):
        rng = np.random.default_rng(42)
        time = np.cumsum(rng.integers(1, 4, size=2000)).astype(float)
        values = rng.uniform(90, 190, size=2000)
        for window in (1, 5, 30, 300, 1200):
            assert peak_by_time(values, time, window) == pytest.approx(two_pointer_peak(values, time, window))

    def test_empty(self):
        assert peak_by_time(np.array([]), np.array([]), 60) == 0.0


class TestPeakCurves:
    """Test curve assembly across activities."""

    def setup_method(self):
        self.easy_run = build_activity(
            "run-easy", TODAY - timedelta(days=10), Sport.RUN,
            streams=build_streams(3600, heartrate=140, speed=3.0), name="Easy run",
        )
        self.hard_run = build_activity(
            "run-hard", TODAY - timedelta(days=5), Sport.RUN,
            streams=build_streams(600, heartrate=175, speed=4.5), name="Intervals",
        )
        self.ride = build_activity(
            "ride", TODAY - timedelta(days=3), Sport.BIKE,
            streams=build_streams(7200, heartrate=150, speed=8.0), name="Long ride",
        )

    def test_sorted_by_metric_then_window(self):
        records = compute_peak_curves([self.easy_run, self.hard_run], "run", today=TODAY)
        keys = [(r.metric, r.window_s) for r in records]
        hr_windows = [w for m, w in keys if m == Metric.HEART_RATE]
        assert keys[: len(hr_windows)] == [(Metric.HEART_RATE, w) for w in hr_windows]
        assert hr_windows == sorted(hr_windows)

    def test_windows_without_data_are_omitted(self):
        records = compute_peak_curves([self.hard_run], "run", today=TODAY)
        windows = {r.window_s for r in records if r.metric == Metric.HEART_RATE}
        assert windows == {1, 5, 15, 30, 60, 180, 300, 600}

    def test_best_value_keeps_provenance(self):
        records = compute_peak_curves([self.easy_run, self.hard_run], "run", today=TODAY)
        by_key = {(r.metric, r.window_s): r for r in records}

        short = by_key[(Metric.HEART_RATE, 60)]
        assert short.value == pytest.approx(175)
        assert short.activity_id == "run-hard"
        assert short.activity_name == "Intervals"
        assert short.activity_date == TODAY - timedelta(days=5)

        long = by_key[(Metric.HEART_RATE, 3600)]
        assert long.value == pytest.approx(140)
        assert long.activity_id == "run-easy"

    def test_scopes(self):
        activities = [self.easy_run, self.hard_run, self.ride]
        run_ids = {r.activity_id for r in compute_peak_curves(activities, "run", today=TODAY)}
        bike_ids = {r.activity_id for r in compute_peak_curves(activities, Sport.BIKE, today=TODAY)}
        all_records = compute_peak_curves(activities, "all", today=TODAY)

        assert run_ids == {"run-easy", "run-hard"}
        assert bike_ids == {"ride"}
        speed_60 = next(r for r in all_records if r.metric == Metric.SPEED and r.window_s == 60)
        assert speed_60.activity_id == "ride"
        assert all(r.scope == "all" for r in all_records)

    def test_lookback_excludes_old_activities(self):
        old = build_activity(
            "old", TODAY - timedelta(days=200), Sport.RUN,
            streams=build_streams(600, heartrate=190),
        )
        records = compute_peak_curves([old, self.easy_run], "run", LOOKBACK_90D, today=TODAY)
        assert {r.activity_id for r in records} == {"run-easy"}

    def test_degenerate_streams_are_skipped(self):
        heartrate = [150.0] * 601
        heartrate[10] = float("nan")
        broken = build_activity("broken", TODAY, Sport.RUN, streams=build_streams(600, heartrate=heartrate))
        assert compute_peak_curves([broken], "all", today=TODAY) == []

    def test_unknown_scope(self):
        with pytest.raises(ValueError):
            compute_peak_curves([self.easy_run], "swim", today=TODAY)

    def test_cache_per_activity_and_settings_version(self):
        analyzer = PeakCurveAnalyzer()
        activities = [self.easy_run, self.hard_run]

        first = analyzer.compute(activities, "run", today=TODAY, settings_version="v1")
        second = analyzer.compute(activities, "all", today=TODAY, settings_version="v1")
        assert analyzer.cache_misses == 2
        assert [r.value for r in first] == [r.value for r in second]

        analyzer.compute(activities, "run", today=TODAY, settings_version="v2")
        assert analyzer.cache_misses == 4

    def test_streams_attached_later_are_used(self):
        analyzer = PeakCurveAnalyzer()
        bare = build_activity("late", TODAY - timedelta(days=1), Sport.RUN, hr_avg=150, name="Late streams")
        assert analyzer.compute([bare], "all", today=TODAY, settings_version="v1") == []

        attached = bare.with_streams(build_streams(3600, heartrate=150, speed=3.0))
        cached = analyzer.compute([attached], "all", today=TODAY, settings_version="v1")

        assert cached == compute_peak_curves([attached], "all", today=TODAY)
        assert {r.activity_id for r in cached} == {"late"}
        assert analyzer.cache_misses == 2

    def test_equal_streams_hit_the_cache(self):
        analyzer = PeakCurveAnalyzer()
        analyzer.compute([self.easy_run], "run", today=TODAY, settings_version="v1")
        reloaded = self.easy_run.with_streams(build_streams(3600, heartrate=140, speed=3.0))
        analyzer.compute([reloaded], "run", today=TODAY, settings_version="v1")
        assert analyzer.cache_misses == 1


class TestPace:
    """Test pace conversion and formatting."""

    def test_speed_to_pace(self):
        assert speed_to_pace(5.0) == pytest.approx(3.3333, rel=1e-4)
        assert speed_to_pace(0.05) == 20
        assert speed_to_pace(0) == 20
        assert speed_to_pace(0.5) == 20

    def test_format_pace(self):
        assert format_pace(4.5) == "4:30"
        assert format_pace(speed_to_pace(5.0)) == "3:20"
        assert format_pace(20) == ">20:00"

    def test_format_interval(self):
        assert format_interval(15) == "15s"
        assert format_interval(600) == "10m"
        assert format_interval(7200) == "2h"
