"""Tests for the end-to-end analysis pipeline."""

import pytest
from datetime import date, timedelta

from training_load.analysis import run_pipeline
from training_load.analysis.model import LoadSeriesCache
from training_load.analysis.peaks import PeakCurveAnalyzer
from training_load.analysis.types import AthleteSettings, Sport, SportSettings, WellnessSample

from conftest import build_activity, build_streams

TODAY = date(2024, 3, 31)


def history():
    activities = []
    for i in range(60):
        day = TODAY - timedelta(days=59 - i)
        if i % 7 == 2:
            continue
        if i % 3 == 0:
            activities.append(build_activity(
                f"ride-{i}", day, Sport.BIKE, duration_min=90, hr_avg=140, speed_avg=8.0, watts_avg=190,
            ))
        else:
            streams = build_streams(1800, heartrate=150 + i % 10, speed=3.2) if i % 4 == 0 else None
            activities.append(build_activity(
                f"run-{i}", day, Sport.RUN, duration_min=45, hr_avg=155, speed_avg=3.1, streams=streams,
            ))
    return activities


class TestRunPipeline:
    """Test the pipeline composition."""

    def setup_method(self):
        self.activities = history()
        self.settings = AthleteSettings(
            run=SportSettings(lthr=172, max_hr=195),
            bike=SportSettings(lthr=160, max_hr=185),
        )

    def test_repeated_runs_are_identical(self):
        first = run_pipeline(self.activities, self.settings, today=TODAY)
        second = run_pipeline(list(reversed(self.activities)), self.settings, today=TODAY)
        assert first == second

    def test_caches_do_not_change_results(self):
        cache = LoadSeriesCache()
        analyzer = PeakCurveAnalyzer()
        cached = run_pipeline(self.activities, self.settings, today=TODAY, load_cache=cache, peak_analyzer=analyzer)
        again = run_pipeline(self.activities, self.settings, today=TODAY, load_cache=cache, peak_analyzer=analyzer)
        plain = run_pipeline(self.activities, self.settings, today=TODAY)
        assert cached == plain
        assert again == plain

    def test_streams_attached_between_runs(self):
        analyzer = PeakCurveAnalyzer()
        cache = LoadSeriesCache()
        bare = build_activity("solo", TODAY, Sport.RUN, duration_min=60, hr_avg=150, speed_avg=3.0)
        run_pipeline([bare], self.settings, today=TODAY, load_cache=cache, peak_analyzer=analyzer)

        attached = bare.with_streams(build_streams(3600, heartrate=150, speed=3.0))
        cached = run_pipeline([attached], self.settings, today=TODAY, load_cache=cache, peak_analyzer=analyzer)
        fresh = run_pipeline([attached], self.settings, today=TODAY)

        assert cached.peaks["all"]
        assert cached == fresh

    def test_outputs(self):
        result = run_pipeline(self.activities, self.settings, today=TODAY)

        assert all(activity.tss is not None for activity in result.activities)
        assert result.load_series[-1].day == TODAY
        assert result.statistics.day == TODAY
        assert len(result.readiness) == len(result.load_series)
        assert set(result.peaks) == {"all", "bike", "run"}
        assert result.peaks["run"]
        assert result.peaks["bike"] == []
        assert result.vo2max[Sport.RUN] is not None
        assert result.vo2max[Sport.BIKE] is not None
        assert result.vo2max[Sport.BIKE].is_estimated is False

    def test_simulated_wellness_when_missing(self):
        result = run_pipeline(self.activities, self.settings, today=TODAY)
        assert result.wellness_simulated is True
        assert all(sample.is_simulated for sample in result.readiness)

    def test_measured_wellness(self):
        wellness = [WellnessSample(day=TODAY - timedelta(days=i), hrv=60.0, sleep_hours=8.0) for i in range(30)]
        result = run_pipeline(self.activities, self.settings, wellness, today=TODAY)
        assert result.wellness_simulated is False
        assert not any(sample.is_simulated for sample in result.readiness)

    def test_settings_change_recomputes_everything(self):
        before = run_pipeline(self.activities, self.settings, today=TODAY)
        changed = AthleteSettings(
            run=SportSettings(lthr=150, max_hr=195),
            bike=self.settings.bike,
        )
        after = run_pipeline(self.activities, changed, today=TODAY)

        assert after.settings_version != before.settings_version
        assert after.load_series[-1].ctl > before.load_series[-1].ctl

    def test_empty_history(self):
        result = run_pipeline([], AthleteSettings(), today=TODAY)
        assert result.load_series == []
        assert result.statistics is None
        assert result.alerts == []
        assert result.readiness == []
