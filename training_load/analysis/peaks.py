"""Mean-maximal curves of heart rate and speed over fixed time windows."""

import logging
import numpy as np
from datetime import date, timedelta
from typing import Dict, List, Optional, Sequence, Tuple, Union

from ..config import config
from .types import Activity, Metric, PeakRecord, Sport, Streams
from .validation import usable_streams

logger = logging.getLogger(__name__)

WINDOWS = (1, 5, 15, 30, 60, 180, 300, 600, 1200, 2400, 3600, 7200)  # seconds

# Lookback in days; None means the whole history
LOOKBACK_90D = 90
LOOKBACK_1Y = 365
LOOKBACK_ALL = None

SCOPES = ("all", Sport.BIKE.value, Sport.RUN.value)

STREAM_FOR_METRIC = {
    Metric.HEART_RATE: "heartrate",
    Metric.SPEED: "speed",
}


def peak_by_time(values: np.ndarray, time: np.ndarray, window_s: float, coverage: float = None) -> float:
    """Best sample-average of ``values`` over any span of at most ``window_s`` seconds.

    For every end sample the window starts at the earliest sample no more than
    ``window_s`` seconds before it. The average is a candidate only when that
    span covers at least ``coverage`` of the window, so short recordings
    produce no value for long windows.

    Args:
        values: Metric samples aligned with ``time``
        time: Non-decreasing elapsed seconds
        window_s: Window length in seconds
        coverage: Minimum fraction of the window the span must cover

    Returns:
        The best average, or 0.0 when no span qualifies
    """
    coverage = config.PEAK_WINDOW_COVERAGE if coverage is None else coverage
    if len(values) == 0 or len(time) == 0:
        return 0.0

    starts = np.searchsorted(time, time - window_s, side="left")
    ends = np.arange(len(time))
    eligible = (time - time[starts]) >= window_s * coverage
    if not np.any(eligible):
        return 0.0

    cumulative = np.concatenate(([0.0], np.cumsum(values, dtype=float)))
    starts = starts[eligible]
    ends = ends[eligible]
    averages = (cumulative[ends + 1] - cumulative[starts]) / (ends - starts + 1)
    return max(0.0, float(np.max(averages)))


def speed_to_pace(speed: float) -> float:
    """Convert m/s to min/km, capped at the pace ceiling."""
    ceiling = config.PACE_CEILING_MIN_KM
    if not speed or speed <= config.MIN_PACE_SPEED:
        return ceiling
    pace = 1000 / 60 / speed
    return min(pace, ceiling)


def format_pace(pace: float) -> str:
    """Render a pace in min/km as ``m:ss``; the ceiling renders as ``>20:00``."""
    ceiling = config.PACE_CEILING_MIN_KM
    if pace >= ceiling:
        return f">{int(ceiling)}:00"
    minutes = int(pace)
    seconds = int(round((pace - minutes) * 60))
    if seconds == 60:
        minutes, seconds = minutes + 1, 0
    return f"{minutes}:{seconds:02d}"


def format_interval(window_s: int) -> str:
    """Human-readable window label, e.g. ``5s``, ``10m``, ``2h``."""
    if window_s < 60:
        return f"{window_s}s"
    if window_s < 3600:
        return f"{window_s // 60}m"
    return f"{window_s // 3600}h"


def _scope_value(scope: Union[str, Sport]) -> str:
    value = scope.value if isinstance(scope, Sport) else str(scope).lower()
    if value not in SCOPES:
        raise ValueError(f"Unknown peak scope '{scope}', expected one of {SCOPES}")
    return value


class PeakCurveAnalyzer:
    """Mean-maximal curves with a per-activity cache.

    One entry per activity, valid for one settings version and one set of
    streams. Streams attached after ingestion replace the entry. A new
    settings version drops every cached entry.
    """

    def __init__(self, windows: Sequence[int] = WINDOWS, coverage: float = None):
        self.windows = tuple(windows)
        self.coverage = config.PEAK_WINDOW_COVERAGE if coverage is None else coverage
        # activity id -> (settings version, streams, peaks)
        self._cache: Dict[str, Tuple[str, Optional[Streams], Dict[Metric, Dict[int, float]]]] = {}
        self._version: Optional[str] = None
        self.cache_misses = 0

    def clear(self) -> None:
        self._cache.clear()

    def activity_peaks(self, activity: Activity, settings_version: str = "") -> Dict[Metric, Dict[int, float]]:
        """Peak value per metric and window for one activity (0.0 where no span qualifies)."""
        entry = self._cache.get(activity.id)
        if entry is not None and entry[0] == settings_version and entry[1] == activity.streams:
            return entry[2]

        if settings_version != self._version:
            self._cache.clear()
            self._version = settings_version

        self.cache_misses += 1
        peaks: Dict[Metric, Dict[int, float]] = {}
        for metric, stream_key in STREAM_FOR_METRIC.items():
            arrays = usable_streams(activity, (stream_key,))
            if arrays is None:
                continue
            time, values = arrays
            peaks[metric] = {
                window: peak_by_time(values, time, window, self.coverage)
                for window in self.windows
            }

        self._cache[activity.id] = (settings_version, activity.streams, peaks)
        return peaks

    def compute(
        self,
        activities: Sequence[Activity],
        scope: Union[str, Sport] = "all",
        lookback: Optional[int] = LOOKBACK_ALL,
        today: Optional[date] = None,
        settings_version: str = "",
    ) -> List[PeakRecord]:
        """Best value per metric and window across the activities in scope.

        Args:
            activities: Activities with or without streams
            scope: "all", "bike" or "run"
            lookback: Days back from ``today`` to include, or None for all
            today: Reference day for the lookback
            settings_version: Cache key component (``AthleteSettings.fingerprint()``)

        Returns:
            Records sorted by metric then window; windows without data omitted
        """
        scope_value = _scope_value(scope)
        today = today or date.today()
        cutoff = today - timedelta(days=lookback) if lookback is not None else None

        best: Dict[Tuple[Metric, int], PeakRecord] = {}
        for activity in sorted(activities, key=lambda a: (a.start, a.id)):
            if cutoff is not None and activity.day < cutoff:
                continue
            if scope_value != "all" and activity.sport.value != scope_value:
                continue

            for metric, by_window in self.activity_peaks(activity, settings_version).items():
                for window, value in by_window.items():
                    current = best.get((metric, window))
                    if value > 0 and (current is None or value > current.value):
                        best[(metric, window)] = PeakRecord(
                            scope=scope_value,
                            metric=metric,
                            window_s=window,
                            value=value,
                            activity_id=activity.id,
                            activity_name=activity.name,
                            activity_date=activity.day,
                        )

        metric_order = {metric: index for index, metric in enumerate(Metric)}
        return sorted(best.values(), key=lambda r: (metric_order[r.metric], r.window_s))


def compute_peak_curves(
    activities: Sequence[Activity],
    scope: Union[str, Sport] = "all",
    lookback: Optional[int] = LOOKBACK_ALL,
    today: Optional[date] = None,
) -> List[PeakRecord]:
    """Compute mean-maximal curves without keeping a cache."""
    return PeakCurveAnalyzer().compute(activities, scope, lookback, today)
