"""
Daily readiness score from training load and recovery signals.

Starts every day at 100 and subtracts independent penalties for the previous
day's load, short sleep, HRV below the personal baseline and resting heart
rate above it. Baselines are rolling means over the preceding 90 days with
the day itself excluded.

This is a linear scoring heuristic. It has no clinical validity.
"""

import logging
import numpy as np
import pandas as pd
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

from ..config import config
from .types import AthleteSettings, DailyLoadPoint, ReadinessSample, WellnessSample

logger = logging.getLogger(__name__)

WELLNESS_COLUMNS = ("hrv", "sleep_hours", "resting_hr")


class ReadinessLevel(Enum):
    """Training readiness classification"""
    EXCELLENT = "excellent"     # 85-100: Ready for high-intensity training
    GOOD = "good"              # 70-84: Ready for moderate-high training
    MODERATE = "moderate"      # 55-69: Light-moderate training only
    POOR = "poor"              # 40-54: Recovery/easy training only
    CRITICAL = "critical"      # 0-39: Rest required

    @classmethod
    def from_score(cls, score: float) -> "ReadinessLevel":
        if score >= 85:
            return cls.EXCELLENT
        if score >= 70:
            return cls.GOOD
        if score >= 55:
            return cls.MODERATE
        if score >= 40:
            return cls.POOR
        return cls.CRITICAL


def tier_penalty(value: Optional[float], tiers: Sequence[Tuple[float, float]], below: bool = False) -> float:
    """Points for the first (most severe) tier the value crosses.

    Args:
        value: Observed value, None when missing
        tiers: (threshold, points) pairs from most to least severe
        below: Penalize values under the threshold instead of over it
    """
    if value is None or (isinstance(value, float) and np.isnan(value)):
        return 0.0
    for threshold, points in tiers:
        if (value < threshold) if below else (value > threshold):
            return float(points)
    return 0.0


def wellness_frame(wellness: Sequence[WellnessSample]) -> pd.DataFrame:
    """Daily wellness DataFrame; zero or negative readings become NaN."""
    if not wellness:
        return pd.DataFrame(columns=list(WELLNESS_COLUMNS) + ["is_simulated"], dtype=float)

    df = pd.DataFrame([
        {
            "date": pd.Timestamp(sample.day),
            "hrv": sample.hrv,
            "sleep_hours": sample.sleep_hours,
            "resting_hr": sample.resting_hr,
            "is_simulated": sample.is_simulated,
        }
        for sample in wellness
    ])
    # The last sample for a day replaces earlier ones whole
    df = df.drop_duplicates("date", keep="last").set_index("date").sort_index()
    for column in WELLNESS_COLUMNS:
        values = pd.to_numeric(df[column], errors="coerce").astype(float)
        df[column] = values.where(values > 0)
    return df


def rolling_baselines(df: pd.DataFrame, days: int = None) -> pd.DataFrame:
    """HRV and resting HR baselines over the previous ``days`` days, excluding the day itself."""
    days = days or config.READINESS_BASELINE_DAYS
    if df.empty:
        return pd.DataFrame(columns=["hrv_baseline", "rhr_baseline"], dtype=float)

    full_range = pd.date_range(df.index.min(), df.index.max(), freq="D")
    daily = df.reindex(full_range)
    window = f"{days}D"
    return pd.DataFrame({
        "hrv_baseline": daily["hrv"].astype(float).rolling(window, closed="left").mean(),
        "rhr_baseline": daily["resting_hr"].astype(float).rolling(window, closed="left").mean(),
    }, index=full_range)


def _optional(value) -> Optional[float]:
    if value is None or pd.isna(value):
        return None
    return float(value)


def compute_readiness(
    load_series: Sequence[DailyLoadPoint],
    wellness: Sequence[WellnessSample],
) -> List[ReadinessSample]:
    """Calculate one readiness sample per day of the load series.

    Args:
        load_series: Daily load points (projections are ignored)
        wellness: Measured or simulated wellness samples, in any order

    Returns:
        Readiness samples in day order, scores clamped to [0, 100]
    """
    history = [point for point in load_series if not point.is_projection]
    if not history:
        return []

    wellness_df = wellness_frame(wellness)
    baselines = rolling_baselines(wellness_df)

    load_tiers = config.get_readiness_tiers("load")
    sleep_tiers = config.get_readiness_tiers("sleep")
    hrv_tiers = config.get_readiness_tiers("hrv")
    rhr_tiers = config.get_readiness_tiers("rhr")

    samples = []
    previous_tss = 0.0
    for point in history:
        timestamp = pd.Timestamp(point.day)
        row = wellness_df.loc[timestamp] if timestamp in wellness_df.index else None
        hrv = _optional(row["hrv"]) if row is not None else None
        sleep = _optional(row["sleep_hours"]) if row is not None else None
        rhr = _optional(row["resting_hr"]) if row is not None else None
        is_simulated = bool(row["is_simulated"]) if row is not None else False

        hrv_baseline = rhr_baseline = None
        if timestamp in baselines.index:
            hrv_baseline = _optional(baselines.at[timestamp, "hrv_baseline"])
            rhr_baseline = _optional(baselines.at[timestamp, "rhr_baseline"])

        penalties: Dict[str, float] = {
            "load": tier_penalty(previous_tss, load_tiers),
            "sleep": tier_penalty(sleep, sleep_tiers, below=True),
            "hrv": 0.0,
            "resting_hr": 0.0,
        }

        hrv_in_band = None
        if hrv is not None and hrv_baseline:
            drop = (hrv_baseline - hrv) / hrv_baseline
            penalties["hrv"] = tier_penalty(drop, hrv_tiers)
            hrv_in_band = abs(hrv - hrv_baseline) <= config.HRV_NORMAL_BAND * hrv_baseline

        if rhr is not None and rhr_baseline:
            penalties["resting_hr"] = tier_penalty(rhr - rhr_baseline, rhr_tiers)

        score = min(100.0, max(0.0, 100.0 - sum(penalties.values())))
        samples.append(ReadinessSample(
            day=point.day,
            score=score,
            level=ReadinessLevel.from_score(score).value,
            hrv_baseline=hrv_baseline,
            rhr_baseline=rhr_baseline,
            hrv_in_band=hrv_in_band,
            penalties=penalties,
            has_wellness=any(v is not None for v in (hrv, sleep, rhr)),
            is_simulated=is_simulated,
        ))
        previous_tss = point.daily_tss

    return samples


def simulate_wellness(
    load_series: Sequence[DailyLoadPoint],
    settings: AthleteSettings,
    base_hrv: float = 65.0,
) -> List[WellnessSample]:
    """Derive plausible wellness signals from the load series.

    A deterministic stand-in for hosts without a wellness provider: HRV tracks
    form (TSB), sleep shortens after big days and resting HR rises while
    fatigue exceeds fitness. Every sample is flagged ``is_simulated``.
    """
    resting_hr = settings.resting_hr if settings.resting_hr and settings.resting_hr > 0 else config.DEFAULT_RESTING_HR
    logger.debug(f"Simulating wellness for {len(load_series)} days")

    samples = []
    for point in load_series:
        if point.is_projection:
            continue
        hrv_factor = min(1.2, max(0.6, 1 + 0.005 * point.tsb))
        sleep = min(9.0, max(5.0, 7.5 - 0.004 * point.daily_tss))
        rhr = resting_hr + max(0.0, point.atl - point.ctl) * 0.15
        samples.append(WellnessSample(
            day=point.day,
            hrv=round(base_hrv * hrv_factor, 1),
            sleep_hours=round(sleep, 1),
            resting_hr=round(rhr, 1),
            is_simulated=True,
        ))
    return samples
