"""Per-activity training stress score (TSS) from heart rate."""

import logging
import numpy as np
from typing import Dict, List, Sequence

from ..config import config
from .types import Activity, AthleteSettings
from .validation import sanitize_sport_settings, usable_streams

logger = logging.getLogger(__name__)

# Hourly stress rate by fraction of LTHR. A ratio maps to the first bucket
# whose threshold it is strictly below; above the last threshold the final
# rate applies.
STREAM_RATIO_THRESHOLDS = np.array([0.81, 0.90, 0.94, 1.00, 1.03, 1.06])
STREAM_TSS_PER_HOUR = np.array([20, 50, 70, 90, 105, 120, 140], dtype=float)

# Coarser table for a single average heart rate. The 1.00 boundary is
# inclusive: an hour exactly at threshold scores 85.
AVERAGE_TSS_TABLE = (
    (0.81, 20),
    (0.90, 50),
    (0.94, 70),
)
AVERAGE_AT_THRESHOLD_TSS = 85
AVERAGE_ABOVE_THRESHOLD_TSS = 100


def stream_tss_per_hour(ratios: np.ndarray) -> np.ndarray:
    """Vectorized hourly stress rate for an array of HR/LTHR ratios."""
    return STREAM_TSS_PER_HOUR[np.searchsorted(STREAM_RATIO_THRESHOLDS, ratios, side="right")]


def average_tss_per_hour(ratio: float) -> float:
    """Hourly stress rate for one average HR/LTHR ratio."""
    for threshold, rate in AVERAGE_TSS_TABLE:
        if ratio < threshold:
            return rate
    if ratio <= 1.0:
        return AVERAGE_AT_THRESHOLD_TSS
    return AVERAGE_ABOVE_THRESHOLD_TSS


def compute_tss(activity: Activity, settings: AthleteSettings) -> int:
    """Calculate the training stress score of one activity.

    Uses the full heart-rate stream when time and heart-rate samples are
    usable, otherwise the average heart rate, otherwise a flat light-activity
    rate.

    Args:
        activity: The workout to score
        settings: Athlete settings; the activity's sport picks the LTHR

    Returns:
        Non-negative integer TSS
    """
    if not activity.duration_min or activity.duration_min <= 0:
        return 0

    sport_settings = sanitize_sport_settings(settings.for_sport(activity.sport), activity.sport)
    lthr = sport_settings.lthr

    arrays = usable_streams(activity, ("heartrate",))
    if arrays is not None:
        time, heartrate = arrays
        dt = np.diff(time)
        rates = stream_tss_per_hour(heartrate[1:] / lthr)
        return max(0, int(round(float(np.sum(rates * dt)) / 3600)))

    duration_hours = activity.duration_min / 60
    hr = activity.hr_avg or 0
    if hr <= config.MIN_PLAUSIBLE_HR:
        return int(round(duration_hours * config.LIGHT_ACTIVITY_TSS_PER_HOUR))

    return int(round(duration_hours * average_tss_per_hour(hr / lthr)))


def annotate_tss(activities: Sequence[Activity], settings: AthleteSettings) -> List[Activity]:
    """Return copies of the activities with ``tss`` recomputed from the current settings."""
    return [activity.with_tss(compute_tss(activity, settings)) for activity in activities]


def zone_distribution(activities: Sequence[Activity], settings: AthleteSettings) -> Dict[str, object]:
    """Calculate time spent in the athlete's five heart-rate zones.

    Samples above the top zone's ceiling count toward zone 5; samples below
    every zone or in a gap between zones are ignored.

    Returns:
        ``{"seconds": [z1..z5], "polarization": {"low": %, "threshold": %, "high": %}}``
    """
    seconds = np.zeros(5)

    for activity in activities:
        arrays = usable_streams(activity, ("heartrate",))
        if arrays is None:
            continue
        time, heartrate = arrays
        zones = settings.for_sport(activity.sport).zones
        if len(zones) != 5:
            logger.warning(f"Expected 5 HR zones for {activity.sport.value}, got {len(zones)}")
            continue

        dt = np.diff(time)
        hr = heartrate[1:]
        for index, (low, high) in enumerate(zones):
            seconds[index] += np.sum(dt[(hr >= low) & (hr <= high)])
        seconds[4] += np.sum(dt[hr > zones[4][1]])

    total = float(np.sum(seconds))
    if total > 0:
        polarization = {
            "low": round(float(seconds[0] + seconds[1]) / total * 100),
            "threshold": round(float(seconds[2] + seconds[3]) / total * 100),
            "high": round(float(seconds[4]) / total * 100),
        }
    else:
        polarization = {}

    return {"seconds": [float(s) for s in seconds], "polarization": polarization}
