"""Banister impulse-response load model: CTL, ATL, TSB and weekly load statistics."""

import logging
import numpy as np
import pandas as pd
from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

from ..config import config
from .types import Activity, DailyLoadPoint
from .validation import sanitize_time_constant

logger = logging.getLogger(__name__)

# Standard deviations below this count as zero variability
STD_EPSILON = 1e-9

# Periodised plan shape
PLAN_WEEKS = 12
PLAN_BUILD_FRACTION = 0.75
PLAN_RECOVERY_FACTOR = 0.7
PLAN_TAPER_FACTOR = 0.4


class TrainingPhase(Enum):
    """Training phase from the weekly CTL ramp rate."""

    BUILDING = "building"
    PRODUCTIVE = "productive"
    OVERREACHING = "overreaching"
    TAPERING = "tapering"


class FormStatus(Enum):
    """Form classification from TSB."""

    OVERLOAD = "overload"  # TSB < -30
    PRODUCTIVE = "productive"  # -30 <= TSB < -10
    MAINTENANCE = "maintenance"
    PEAK = "peak"  # 5 < TSB <= 25
    DETRAINING = "detraining"  # TSB > 25


@dataclass
class LoadStatistics:
    """Current load state plus Foster weekly statistics."""
    day: date
    ctl: float
    atl: float
    tsb: float
    ramp_rate: float
    avg_tss_7d: float
    weekly_tss: float
    stddev: float
    monotony: float
    strain: float
    acwr: float
    past_ctl: float
    phase: TrainingPhase
    form: FormStatus


@dataclass
class TrainingAlert:
    """Warning derived from the load statistics."""
    level: str  # critical, warning, info, good
    title: str
    message: str


class BanisterModel:
    """Banister fitness-fatigue model in its exponentially weighted form.

    CTL and ATL are seeded with the first day's load and then updated once per
    day:

        ctl += (load - ctl) / chronic_window
        atl += (load - atl) / acute_window

    The recursion is stateful, so loads must be supplied in strict day order
    with rest days as zeros. Nothing is rounded inside it.
    """

    def __init__(self, chronic_window: float = None, acute_window: float = None):
        """Initialize the model.

        Args:
            chronic_window: CTL time constant in days - typically 42
            acute_window: ATL time constant in days - typically 7
        """
        self.chronic_window = sanitize_time_constant(
            chronic_window if chronic_window is not None else config.CHRONIC_WINDOW,
            config.CHRONIC_WINDOW if config.CHRONIC_WINDOW > 0 else 42.0,
            "chronic",
        )
        self.acute_window = sanitize_time_constant(
            acute_window if acute_window is not None else config.ACUTE_WINDOW,
            config.ACUTE_WINDOW if config.ACUTE_WINDOW > 0 else 7.0,
            "acute",
        )

    def step(self, ctl: float, atl: float, load: float) -> Tuple[float, float]:
        """Advance CTL and ATL by one day."""
        ctl = ctl + (load - ctl) / self.chronic_window
        atl = atl + (load - atl) / self.acute_window
        return ctl, atl

    def impulse_response(self, daily_loads: Sequence[float]) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Calculate CTL, ATL and TSB for a gap-free daily load sequence.

        Args:
            daily_loads: One training load per consecutive day

        Returns:
            Tuple of (ctl, atl, tsb) arrays
        """
        n_days = len(daily_loads)
        ctl = np.zeros(n_days)
        atl = np.zeros(n_days)
        if n_days == 0:
            return ctl, atl, ctl - atl

        ctl[0] = atl[0] = float(daily_loads[0])
        for i in range(1, n_days):
            ctl[i], atl[i] = self.step(float(ctl[i - 1]), float(atl[i - 1]), float(daily_loads[i]))

        return ctl, atl, ctl - atl

    def walk(
        self,
        totals: Dict[date, float],
        start: date,
        end: date,
        previous: Optional[DailyLoadPoint] = None,
    ) -> List[DailyLoadPoint]:
        """Produce one point per day from ``start`` to ``end`` inclusive.

        Without ``previous`` the first day seeds CTL and ATL; with it the
        recursion continues from that point.
        """
        points = []
        if start > end:
            return points

        for timestamp in pd.date_range(start=start, end=end, freq="D"):
            day = timestamp.date()
            load = float(totals.get(day, 0.0))
            if previous is None:
                ctl = atl = load
            else:
                ctl, atl = self.step(previous.ctl, previous.atl, load)
            previous = DailyLoadPoint(day=day, ctl=ctl, atl=atl, tsb=ctl - atl, daily_tss=load)
            points.append(previous)

        return points

    def project(self, start_point: DailyLoadPoint, daily_loads: Sequence[float]) -> List[DailyLoadPoint]:
        """Simulate future days from ``start_point`` with the given daily loads."""
        points = []
        ctl, atl = start_point.ctl, start_point.atl
        for offset, load in enumerate(daily_loads, start=1):
            ctl, atl = self.step(ctl, atl, float(load))
            points.append(DailyLoadPoint(
                day=start_point.day + timedelta(days=offset),
                ctl=ctl,
                atl=atl,
                tsb=ctl - atl,
                daily_tss=float(load),
                is_projection=True,
            ))
        return points


def daily_totals(activities: Sequence[Activity]) -> Dict[date, float]:
    """Sum TSS per calendar day; activities without TSS count as zero."""
    totals: Dict[date, float] = {}
    for activity in activities:
        totals[activity.day] = totals.get(activity.day, 0.0) + float(activity.tss or 0)
    return totals


def _history_bounds(totals: Dict[date, float], today: Optional[date]) -> Tuple[date, date]:
    today = today or date.today()
    start = min(totals)
    return start, max(today, max(totals))


def compute_load_series(
    activities: Sequence[Activity],
    chronic_window: float = None,
    acute_window: float = None,
    today: Optional[date] = None,
) -> List[DailyLoadPoint]:
    """Build the gap-free daily CTL/ATL/TSB series.

    Covers every day from the first activity through ``today`` (or through the
    last activity, if it is dated later).

    Args:
        activities: Activities already annotated with ``tss``, in any order
        chronic_window: CTL time constant in days (default 42)
        acute_window: ATL time constant in days (default 7)
        today: Last day of the series (defaults to the current date)

    Returns:
        One DailyLoadPoint per day in ascending order
    """
    if not activities:
        return []

    model = BanisterModel(chronic_window, acute_window)
    totals = daily_totals(activities)
    start, end = _history_bounds(totals, today)
    return model.walk(totals, start, end)


class LoadSeriesCache:
    """Incremental load series keyed by the last processed day.

    When the only difference from the previous call is new days at the end,
    the recursion continues from the cached last point. Any change to earlier
    daily totals, the time constants or the settings version forces a full
    recompute. Both paths produce identical floats.
    """

    def __init__(self, chronic_window: float = None, acute_window: float = None):
        self.model = BanisterModel(chronic_window, acute_window)
        self._settings_version: Optional[str] = None
        self._totals: Dict[date, float] = {}
        self._points: List[DailyLoadPoint] = []
        self.full_recomputes = 0
        self.extensions = 0

    @property
    def last_processed(self) -> Optional[date]:
        return self._points[-1].day if self._points else None

    def invalidate(self) -> None:
        self._settings_version = None
        self._totals = {}
        self._points = []

    def series(
        self,
        activities: Sequence[Activity],
        today: Optional[date] = None,
        settings_version: str = "",
    ) -> List[DailyLoadPoint]:
        """Return the load series, extending the cached one where possible."""
        if not activities:
            self.invalidate()
            return []

        totals = daily_totals(activities)
        start, end = _history_bounds(totals, today)

        if self._can_extend(totals, start, end, settings_version):
            last = self._points[-1]
            new_points = self.model.walk(totals, last.day + timedelta(days=1), end, previous=last)
            if new_points:
                self.extensions += 1
            self._points = self._points + new_points
        else:
            self._points = self.model.walk(totals, start, end)
            self.full_recomputes += 1

        self._totals = totals
        self._settings_version = settings_version
        return list(self._points)

    def _can_extend(self, totals: Dict[date, float], start: date, end: date, settings_version: str) -> bool:
        if not self._points or settings_version != self._settings_version:
            return False
        if self._points[0].day != start or end < self.last_processed:
            return False
        last = self.last_processed
        changed = {
            day for day in set(totals) | set(self._totals)
            if day <= last and totals.get(day, 0.0) != self._totals.get(day, 0.0)
        }
        return not changed


def _point_on_or_before(series: Sequence[DailyLoadPoint], day: date) -> Optional[int]:
    index = None
    for i, point in enumerate(series):
        if point.is_projection or point.day > day:
            break
        index = i
    return index


def ramp_rate(series: Sequence[DailyLoadPoint], today: Optional[date] = None) -> float:
    """CTL change over the last 7 days; the reference CTL is 0 before history starts."""
    today = today or date.today()
    index = _point_on_or_before(series, today)
    if index is None:
        return 0.0
    previous_ctl = series[index - 7].ctl if index >= 7 else 0.0
    return series[index].ctl - previous_ctl


def classify_phase(ramp: float) -> TrainingPhase:
    """Classify the training phase from the weekly ramp rate."""
    if ramp > config.RAMP_RATE_RISK:
        return TrainingPhase.OVERREACHING
    if ramp > config.RAMP_RATE_PRODUCTIVE:
        return TrainingPhase.PRODUCTIVE
    if ramp >= 0:
        return TrainingPhase.BUILDING
    return TrainingPhase.TAPERING


def classify_form(tsb: float) -> FormStatus:
    """Classify form from training stress balance."""
    if tsb < -30:
        return FormStatus.OVERLOAD
    if tsb < -10:
        return FormStatus.PRODUCTIVE
    if tsb > 25:
        return FormStatus.DETRAINING
    if tsb > 5:
        return FormStatus.PEAK
    return FormStatus.MAINTENANCE


def monotony_and_strain(daily_loads: Sequence[float], sentinel: float = None) -> Tuple[float, float, float]:
    """Foster monotony and strain over a week of daily loads.

    Monotony is mean / population stddev. With zero variability it is 0 for an
    all-rest week and ``sentinel`` otherwise.

    Returns:
        Tuple of (stddev, monotony, strain)
    """
    sentinel = config.MONOTONY_SENTINEL if sentinel is None else sentinel
    if len(daily_loads) == 0:
        return 0.0, 0.0, 0.0

    loads = np.asarray(daily_loads, dtype=float)
    mean_load = float(np.mean(loads))
    std_load = float(np.std(loads))

    if std_load <= STD_EPSILON:
        std_load = 0.0
        monotony = sentinel if mean_load > 0 else 0.0
    else:
        monotony = mean_load / std_load

    return std_load, monotony, float(np.sum(loads)) * monotony


def acute_chronic_ratio(acute_loads: Sequence[float], chronic_loads: Sequence[float]) -> float:
    """Acute:chronic workload ratio, mean(last 7 days) / mean(last 28 days); 0 without chronic load."""
    if len(chronic_loads) == 0:
        return 0.0
    chronic_avg = float(np.mean(chronic_loads))
    if chronic_avg <= 0:
        return 0.0
    acute_avg = float(np.mean(acute_loads)) if len(acute_loads) else 0.0
    return acute_avg / chronic_avg


def weekly_statistics(
    series: Sequence[DailyLoadPoint],
    today: Optional[date] = None,
    sentinel: float = None,
) -> Optional[LoadStatistics]:
    """Summarize the load series as of ``today``.

    Returns:
        LoadStatistics, or None for an empty history
    """
    today = today or date.today()
    index = _point_on_or_before(series, today)
    if index is None:
        return None

    history = [point.daily_tss for point in series[:index + 1]]
    last7 = history[-7:]
    last28 = history[-28:]
    current = series[index]

    stddev, monotony, strain = monotony_and_strain(last7, sentinel)
    ramp = ramp_rate(series, current.day)
    past_ctl = series[index - 30].ctl if index >= 30 else series[0].ctl

    return LoadStatistics(
        day=current.day,
        ctl=current.ctl,
        atl=current.atl,
        tsb=current.tsb,
        ramp_rate=ramp,
        avg_tss_7d=float(np.mean(last7)),
        weekly_tss=float(np.sum(last7)),
        stddev=stddev,
        monotony=monotony,
        strain=strain,
        acwr=acute_chronic_ratio(last7, last28),
        past_ctl=past_ctl,
        phase=classify_phase(ramp),
        form=classify_form(current.tsb),
    )


def training_alerts(stats: LoadStatistics) -> List[TrainingAlert]:
    """Translate load statistics into coaching alerts."""
    alerts = []

    if stats.acwr > config.ACWR_CRITICAL:
        alerts.append(TrainingAlert(
            "critical", "Injury risk",
            f"Acute load is {stats.acwr:.2f}x chronic load. Back off now."
        ))
    elif stats.acwr > config.ACWR_WARNING:
        alerts.append(TrainingAlert(
            "warning", "Risk zone",
            f"Load is rising quickly (ACWR {stats.acwr:.2f}). Watch for niggles."
        ))

    if stats.ramp_rate > config.RAMP_RATE_RISK:
        alerts.append(TrainingAlert(
            "warning", "Steep ramp",
            f"CTL rose {stats.ramp_rate:.1f} in 7 days. Reduce volume today."
        ))

    if stats.monotony > 2.2 and stats.avg_tss_7d > 30:
        alerts.append(TrainingAlert(
            "info", "Monotonous training",
            "Sessions are very similar. Vary intensity to keep adapting."
        ))

    if stats.tsb < -30:
        alerts.append(TrainingAlert(
            "critical", "Deep fatigue",
            f"TSB is {stats.tsb:.0f}. Rest."
        ))
    elif stats.tsb > 25 and stats.ctl > 40:
        alerts.append(TrainingAlert(
            "good", "Peak form",
            "Very fresh. Good day for a test or a race."
        ))

    return alerts


def project_load(
    last_point: DailyLoadPoint,
    weekly_plan: Sequence[float],
    chronic_window: float = None,
    acute_window: float = None,
) -> List[DailyLoadPoint]:
    """Project CTL/ATL forward from a planned weekly TSS per week.

    Each week's load is spread evenly over its 7 days.
    """
    model = BanisterModel(chronic_window, acute_window)
    daily = [weekly / 7 for weekly in weekly_plan for _ in range(7)]
    return model.project(last_point, daily)


def _round_half_up(value: float) -> int:
    return int(np.floor(value + 0.5))


def generate_weekly_plan(
    start_weekly_tss: float,
    target_weekly_tss: float,
    weeks: int = PLAN_WEEKS,
    start_day: Optional[date] = None,
    a_races: Sequence[date] = (),
) -> List[int]:
    """Periodised weekly TSS plan in 4-week blocks.

    Three build weeks climb linearly so the target is reached after three
    quarters of the plan, then a recovery week drops to 70% of the last
    build week. The next block resumes from that last build week. Any week
    holding an A race is cut to 40% as a taper.

    Args:
        start_weekly_tss: Current weekly load (7 x the 7-day average TSS)
        target_weekly_tss: Weekly load to build towards
        weeks: Plan length
        start_day: First day of week 1 (defaults to today)
        a_races: Dates of priority A races

    Returns:
        Planned TSS per week
    """
    if weeks <= 0:
        return []
    start_day = start_day or date.today()
    increment = (target_weekly_tss - start_weekly_tss) / (weeks * PLAN_BUILD_FRACTION)

    plan: List[int] = []
    current = float(start_weekly_tss)
    for index in range(weeks):
        cycle_week = (index + 1) % 4
        if cycle_week == 0:
            current *= PLAN_RECOVERY_FACTOR
        elif index > 0 and cycle_week == 1:
            current = plan[index - 2] + increment
        else:
            current += increment

        week_start = start_day + timedelta(days=7 * index)
        week_end = week_start + timedelta(days=6)
        if any(week_start <= race <= week_end for race in a_races):
            plan.append(_round_half_up(current * PLAN_TAPER_FACTOR))
        else:
            plan.append(_round_half_up(current))

    logger.debug(f"Generated {weeks}-week plan from {start_weekly_tss:.0f} to {target_weekly_tss:.0f} TSS")
    return plan


def classify_plan_week(weekly_tss: float, previous_tss: Optional[float]) -> str:
    """Label a planned week relative to the week before it."""
    if previous_tss is None:
        return "start"
    if weekly_tss < previous_tss * 0.8:
        return "recovery"
    if weekly_tss > previous_tss * 1.05:
        return "build"
    if weekly_tss < 200:
        return "taper"
    return "base"


def forecast(
    stats: LoadStatistics,
    days: int = 28,
    chronic_window: float = None,
    acute_window: float = None,
) -> Dict[str, object]:
    """Project CTL ``days`` ahead at the current 7-day average load.

    Returns:
        Dictionary with projected CTL, trend ("up", "down", "stable") and, when
        rising, the next multiple of 10 and the days needed to reach it
    """
    model = BanisterModel(chronic_window, acute_window)
    start = DailyLoadPoint(day=stats.day, ctl=stats.ctl, atl=stats.atl, tsb=stats.tsb, daily_tss=0.0)
    projection = model.project(start, [stats.avg_tss_7d] * days)
    projected_ctl = projection[-1].ctl if projection else stats.ctl

    if projected_ctl > stats.ctl + 1:
        trend = "up"
    elif projected_ctl < stats.ctl - 1:
        trend = "down"
    else:
        trend = "stable"

    result = {
        "days": days,
        "ctl": projected_ctl,
        "trend": trend,
        "next_level": None,
        "next_level_days": None,
    }

    if trend == "up":
        next_level = (int(stats.ctl // 10) + 1) * 10
        for offset, point in enumerate(projection, start=1):
            if point.ctl >= next_level:
                result["next_level"] = next_level
                result["next_level_days"] = offset
                break

    return result


def series_to_frame(series: Sequence[DailyLoadPoint]) -> pd.DataFrame:
    """Convert a load series to a DataFrame indexed by day."""
    df = pd.DataFrame(
        [
            {
                "date": pd.Timestamp(point.day),
                "ctl": point.ctl,
                "atl": point.atl,
                "tsb": point.tsb,
                "daily_tss": point.daily_tss,
                "is_projection": point.is_projection,
            }
            for point in series
        ],
        columns=["date", "ctl", "atl", "tsb", "daily_tss", "is_projection"],
    )
    return df.set_index("date")
