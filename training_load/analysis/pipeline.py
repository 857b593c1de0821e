"""Explicit analysis pipeline over activities, settings and wellness."""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional, Sequence

from ..config import config
from .model import LoadSeriesCache, LoadStatistics, TrainingAlert, compute_load_series, training_alerts, weekly_statistics
from .peaks import LOOKBACK_ALL, SCOPES, PeakCurveAnalyzer
from .performance import Vo2MaxEstimate, estimate_vo2max_detail
from .readiness import compute_readiness, simulate_wellness
from .stress import annotate_tss
from .types import Activity, AthleteSettings, DailyLoadPoint, PeakRecord, ReadinessSample, Sport, WellnessSample

logger = logging.getLogger(__name__)


@dataclass
class PipelineResult:
    """Everything derived from one activity history and settings version."""
    settings_version: str
    activities: List[Activity]
    load_series: List[DailyLoadPoint]
    statistics: Optional[LoadStatistics]
    alerts: List[TrainingAlert]
    peaks: Dict[str, List[PeakRecord]]
    vo2max: Dict[Sport, Optional[Vo2MaxEstimate]]
    readiness: List[ReadinessSample]
    wellness_simulated: bool = False
    wellness: List[WellnessSample] = field(default_factory=list)


def run_pipeline(
    activities: Sequence[Activity],
    settings: AthleteSettings,
    wellness: Optional[Sequence[WellnessSample]] = None,
    today: Optional[date] = None,
    peak_lookback: Optional[int] = LOOKBACK_ALL,
    load_cache: Optional[LoadSeriesCache] = None,
    peak_analyzer: Optional[PeakCurveAnalyzer] = None,
) -> PipelineResult:
    """Annotate TSS, build the load series and derive every downstream metric.

    The result depends only on the arguments: the same inputs always produce
    the same output. The optional cache and analyzer only avoid repeated work.

    Args:
        activities: Activity history in any order
        settings: Athlete settings used by every component
        wellness: Measured wellness samples; simulated from load when empty
        today: Reference day (defaults to the current date)
        peak_lookback: Days of history for the peak curves, None for all
        load_cache: Optional incremental load series cache
        peak_analyzer: Optional analyzer holding the per-activity peak cache

    Returns:
        PipelineResult
    """
    today = today or date.today()
    version = settings.fingerprint()

    annotated = annotate_tss(sorted(activities, key=lambda a: (a.start, a.id)), settings)

    if load_cache is not None:
        load_series = load_cache.series(annotated, today=today, settings_version=version)
    else:
        chronic, acute = config.get_time_constants()
        load_series = compute_load_series(annotated, chronic, acute, today=today)

    statistics = weekly_statistics(load_series, today)
    alerts = training_alerts(statistics) if statistics is not None else []

    analyzer = peak_analyzer or PeakCurveAnalyzer()
    peaks = {
        scope: analyzer.compute(annotated, scope, peak_lookback, today, settings_version=version)
        for scope in SCOPES
    }

    vo2max = {
        sport: estimate_vo2max_detail(annotated, settings, sport, today)
        for sport in (Sport.RUN, Sport.BIKE)
    }

    simulated = not wellness
    if simulated:
        logger.info("No wellness data available, using simulated wellness")
        wellness_samples = simulate_wellness(load_series, settings)
    else:
        wellness_samples = list(wellness)

    readiness = compute_readiness(load_series, wellness_samples)

    return PipelineResult(
        settings_version=version,
        activities=annotated,
        load_series=load_series,
        statistics=statistics,
        alerts=alerts,
        peaks=peaks,
        vo2max=vo2max,
        readiness=readiness,
        wellness_simulated=simulated,
        wellness=wellness_samples,
    )
