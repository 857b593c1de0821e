"""VO2max estimation and aerobic efficiency metrics."""

import logging
import numpy as np
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional, Sequence

from ..config import config
from .types import Activity, AthleteSettings, Sport
from .validation import sanitize_positive, sanitize_sport_settings, usable_streams

logger = logging.getLogger(__name__)

# Qualification thresholds for a session to say anything about VO2max
RUN_MIN_HR = 120
RUN_MIN_SPEED = 2.5  # m/s
BIKE_MIN_HR = 110
BIKE_MIN_WATTS = 50
MIN_MAX_HR = 140
MIN_HR_FRACTION = 0.65
MAX_HR_FRACTION = 1.0

# Uth-Sorensen style fallback limits
FALLBACK_MIN_RESTING_HR = 30
FALLBACK_MIN_MAX_HR = 120

MIN_DECOUPLING_SECONDS = 1200

# Race prediction
RACE_MIN_DURATION_MIN = 20
RACE_MIN_SESSIONS = 3
RACE_TOP_FRACTION = 0.2
RACE_DAY_FACTOR = 0.96
FATIGUED_TSB = -20
FATIGUED_FACTOR = 1.02
DEFAULT_RACE_DISTANCE = {
    Sport.RUN: 21097.0,  # half marathon
    Sport.BIKE: 90000.0,
}


@dataclass
class Vo2MaxEstimate:
    """VO2max estimate with provenance."""
    sport: Sport
    value: float  # ml/kg/min
    method: str  # "speed", "power" or "heart_rate_ratio"
    is_estimated: bool = False
    activity_id: Optional[str] = None
    activity_date: Optional[date] = None


def _run_vo2(activity: Activity, max_hr: float) -> Optional[float]:
    if activity.hr_avg <= RUN_MIN_HR or activity.speed_avg <= RUN_MIN_SPEED or max_hr <= MIN_MAX_HR:
        return None
    fraction = activity.hr_avg / max_hr
    if not MIN_HR_FRACTION <= fraction <= MAX_HR_FRACTION:
        return None
    speed_at_max = activity.speed_avg / fraction
    return speed_at_max * 60 * 0.2 + 3.5


def _bike_vo2(activity: Activity, max_hr: float, weight_kg: float) -> Optional[float]:
    if not _has_power(activity) or activity.hr_avg <= BIKE_MIN_HR or max_hr <= MIN_MAX_HR:
        return None
    fraction = activity.hr_avg / max_hr
    if not MIN_HR_FRACTION <= fraction <= MAX_HR_FRACTION:
        return None
    power_at_max = activity.watts_avg / fraction
    return 10.8 * power_at_max / weight_kg + 7


def _has_power(activity: Activity) -> bool:
    return activity.sport == Sport.BIKE and (activity.watts_avg or 0) > BIKE_MIN_WATTS


def estimate_vo2max_detail(
    activities: Sequence[Activity],
    settings: AthleteSettings,
    sport: Sport,
    today: Optional[date] = None,
) -> Optional[Vo2MaxEstimate]:
    """Estimate VO2max for running or cycling from recent sessions.

    Only activities within the lookback window count. The best qualifying
    session wins. Cycling without any power data in the whole history falls
    back to a max/resting heart-rate ratio, flagged as estimated.

    Args:
        activities: Activity history
        settings: Athlete settings (max HR per sport, weight, resting HR)
        sport: Sport.RUN or Sport.BIKE
        today: Reference day for the lookback

    Returns:
        The estimate, or None when nothing qualifies
    """
    if sport not in (Sport.RUN, Sport.BIKE):
        return None

    today = today or date.today()
    cutoff = today - timedelta(days=config.VO2MAX_LOOKBACK_DAYS)
    sport_settings = sanitize_sport_settings(settings.for_sport(sport), sport)
    weight_kg = sanitize_positive(settings.weight_kg, config.DEFAULT_WEIGHT_KG, "weight")

    best: Optional[Vo2MaxEstimate] = None
    for activity in activities:
        if activity.sport != sport or activity.day < cutoff or activity.day > today:
            continue

        if sport == Sport.RUN:
            value, method = _run_vo2(activity, sport_settings.max_hr), "speed"
        else:
            value, method = _bike_vo2(activity, sport_settings.max_hr, weight_kg), "power"

        if value is not None and (best is None or value > best.value):
            best = Vo2MaxEstimate(
                sport=sport,
                value=value,
                method=method,
                activity_id=activity.id,
                activity_date=activity.day,
            )

    if best is not None or sport != Sport.BIKE:
        return best

    if any(_has_power(activity) for activity in activities):
        return None

    resting_hr = settings.resting_hr or 0
    if resting_hr > FALLBACK_MIN_RESTING_HR and sport_settings.max_hr > FALLBACK_MIN_MAX_HR:
        logger.debug("No power data in history, estimating cycling VO2max from heart rate ratio")
        return Vo2MaxEstimate(
            sport=sport,
            value=15.3 * (sport_settings.max_hr / resting_hr) * 0.95,
            method="heart_rate_ratio",
            is_estimated=True,
        )

    return None


def estimate_vo2max(
    activities: Sequence[Activity],
    settings: AthleteSettings,
    sport: Sport,
    today: Optional[date] = None,
) -> Optional[float]:
    """Estimated VO2max in ml/kg/min, or None (never 0) when nothing qualifies."""
    estimate = estimate_vo2max_detail(activities, settings, sport, today)
    return estimate.value if estimate is not None else None


def aerobic_decoupling(activity: Activity) -> Optional[float]:
    """Calculate aerobic decoupling (Pw:HR or Pa:HR) in percent.

    Splits the session at half its elapsed time and compares output per beat
    between the halves. Positive values mean output per beat dropped in the
    second half; under 5% usually indicates good aerobic endurance.

    Returns:
        Decoupling percentage, or None without usable streams
    """
    output_key = "power" if activity.streams is not None and activity.streams.power is not None else "speed"
    arrays = usable_streams(activity, ("heartrate", output_key))
    if arrays is None:
        return None

    time, heartrate, output = arrays
    if time[-1] - time[0] < MIN_DECOUPLING_SECONDS:
        return None

    midpoint = time[0] + (time[-1] - time[0]) / 2
    first = time < midpoint
    second = ~first
    if not np.any(first) or not np.any(second):
        return None

    first_hr = float(np.mean(heartrate[first]))
    second_hr = float(np.mean(heartrate[second]))
    if first_hr <= 0 or second_hr <= 0:
        return None

    first_ratio = float(np.mean(output[first])) / first_hr
    second_ratio = float(np.mean(output[second])) / second_hr
    if first_ratio <= 0:
        return None

    return (first_ratio - second_ratio) / first_ratio * 100


def efficiency_factor(activity: Activity) -> Optional[float]:
    """Efficiency factor: average power per beat, or metres per minute per beat without power."""
    if not activity.hr_avg or activity.hr_avg <= 0:
        return None
    if activity.watts_avg and activity.watts_avg > 0:
        return activity.watts_avg / activity.hr_avg
    if activity.speed_avg and activity.speed_avg > 0:
        return activity.speed_avg * 60 / activity.hr_avg
    return None


@dataclass
class RacePrediction:
    """Predicted finish time for a target distance."""
    sport: Sport
    distance_m: float
    time_min: float
    exponent: float
    sessions_used: int

    @property
    def pace_min_km(self) -> float:
        return self.time_min / (self.distance_m / 1000)

    @property
    def speed_kmh(self) -> float:
        return (self.distance_m / 1000) / (self.time_min / 60)


def riegel_exponent(ctl: float) -> float:
    """Fatigue exponent for the Riegel formula; fitter athletes hold pace better."""
    if ctl > 80:
        return 1.05
    if ctl > 50:
        return 1.06
    return 1.075


def predict_race_time(
    activities: Sequence[Activity],
    sport: Sport,
    ctl: float,
    tsb: float,
    distance_m: Optional[float] = None,
) -> Optional[RacePrediction]:
    """Predict a race time from the athlete's fastest sessions.

    Uses sessions of the sport longer than 20 minutes. The base speed is the
    mean of the fastest 20% of them (at least 3). The base time is scaled up
    by the Riegel formula when the race is longer than those sessions. The
    exponent depends on CTL. A race-day factor of 0.96 applies, plus a 2%
    penalty when TSB is below -20.

    Args:
        activities: Activity history
        sport: RUN or BIKE
        ctl: Current fitness
        tsb: Current form
        distance_m: Race distance (half marathon for running, 90 km for cycling by default)

    Returns:
        RacePrediction, or None with fewer than 3 qualifying sessions
    """
    if sport not in DEFAULT_RACE_DISTANCE:
        return None

    sessions = [
        activity for activity in sorted(activities, key=lambda a: (a.start, a.id))
        if activity.sport == sport
        and activity.duration_min > RACE_MIN_DURATION_MIN
        and activity.distance_m > 0
    ]
    if len(sessions) < RACE_MIN_SESSIONS:
        logger.debug(f"Only {len(sessions)} {sport.value} sessions qualify for a race prediction")
        return None

    fastest = sorted(sessions, key=lambda a: a.distance_m / a.duration_min, reverse=True)
    best = fastest[:max(RACE_MIN_SESSIONS, int(len(fastest) * RACE_TOP_FRACTION))]
    speed = float(np.mean([a.distance_m / a.duration_min for a in best]))  # m/min
    trained_distance = float(np.mean([a.distance_m for a in best]))

    target = distance_m if distance_m and distance_m > 0 else DEFAULT_RACE_DISTANCE[sport]
    exponent = riegel_exponent(ctl)
    ratio = target / trained_distance if target > trained_distance else 1.0

    time_min = target / speed * ratio ** (exponent - 1) * RACE_DAY_FACTOR
    if tsb < FATIGUED_TSB:
        time_min *= FATIGUED_FACTOR

    return RacePrediction(
        sport=sport,
        distance_m=target,
        time_min=time_min,
        exponent=exponent,
        sessions_used=len(best),
    )
