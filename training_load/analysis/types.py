"""Domain types shared by the analysis components."""

import hashlib
import json
from dataclasses import dataclass, field, replace, asdict
from datetime import date, datetime
from enum import Enum
from typing import Dict, List, Optional, Tuple

from ..config import config


class Sport(Enum):
    """Sport classes used for settings lookup and peak-curve scopes."""

    RUN = "run"
    BIKE = "bike"
    SWIM = "swim"
    STRENGTH = "strength"
    WALK = "walk"
    OTHER = "other"

    @classmethod
    def from_provider(cls, activity_type: Optional[str]) -> "Sport":
        """Map a provider activity type (e.g. Strava's ``TrailRun``) to a sport class."""
        if not activity_type:
            return cls.OTHER
        return SPORT_MAPPING.get(activity_type.strip().lower(), cls.OTHER)


SPORT_MAPPING = {
    # Running
    "run": Sport.RUN,
    "trailrun": Sport.RUN,
    "virtualrun": Sport.RUN,
    # Cycling
    "ride": Sport.BIKE,
    "bike": Sport.BIKE,
    "virtualride": Sport.BIKE,
    "mountainbikeride": Sport.BIKE,
    "gravelride": Sport.BIKE,
    "ebikeride": Sport.BIKE,
    "emountainbikeride": Sport.BIKE,
    "handcycle": Sport.BIKE,
    "velomobile": Sport.BIKE,
    # Swimming
    "swim": Sport.SWIM,
    "openswim": Sport.SWIM,
    # Strength
    "strength": Sport.STRENGTH,
    "weighttraining": Sport.STRENGTH,
    "workout": Sport.STRENGTH,
    "crossfit": Sport.STRENGTH,
    # Walking
    "walk": Sport.WALK,
    "hike": Sport.WALK,
}


class Metric(Enum):
    """Stream metrics with mean-maximal curves."""

    HEART_RATE = "hr"
    SPEED = "speed"


STREAM_KEYS = ("time", "heartrate", "speed", "altitude", "cadence", "power")

# Strava stream names that differ from ours
PROVIDER_STREAM_ALIASES = {
    "velocity_smooth": "speed",
    "watts": "power",
}


@dataclass(frozen=True)
class Streams:
    """Index-aligned 1 Hz sample arrays for one activity.

    Every present array must have the length of ``time``; ``time`` holds
    elapsed seconds and never decreases. Nothing here enforces that, see
    ``validation.validate_streams``.
    """

    time: Optional[Tuple[float, ...]] = None
    heartrate: Optional[Tuple[float, ...]] = None
    speed: Optional[Tuple[float, ...]] = None
    altitude: Optional[Tuple[float, ...]] = None
    cadence: Optional[Tuple[float, ...]] = None
    power: Optional[Tuple[float, ...]] = None

    @classmethod
    def from_strava(cls, payload: Optional[Dict]) -> Optional["Streams"]:
        """Build streams from a provider payload.

        Accepts Strava's ``key_by_type`` shape (``{"time": {"data": [...]}}``)
        as well as plain ``{"time": [...]}`` mappings.
        """
        if not payload:
            return None

        arrays = {}
        for key, value in payload.items():
            name = PROVIDER_STREAM_ALIASES.get(key, key)
            if name not in STREAM_KEYS:
                continue
            data = value.get("data") if isinstance(value, dict) else value
            if data is None:
                continue
            arrays[name] = tuple(float(v) if v is not None else float("nan") for v in data)

        if not arrays:
            return None
        return cls(**arrays)

    def to_dict(self) -> Dict[str, List[float]]:
        """Serialize present arrays to plain lists."""
        return {
            key: list(getattr(self, key))
            for key in STREAM_KEYS
            if getattr(self, key) is not None
        }

    def __len__(self) -> int:
        return len(self.time) if self.time is not None else 0


@dataclass(frozen=True)
class Activity:
    """One completed workout."""

    id: str
    start: datetime
    sport: Sport
    duration_min: float
    name: str = ""
    hr_avg: float = 0.0  # 0 = absent
    speed_avg: float = 0.0  # m/s
    watts_avg: float = 0.0
    distance_m: float = 0.0
    elevation_gain_m: float = 0.0
    streams: Optional[Streams] = None
    tss: Optional[int] = None  # derived, never ground truth

    @property
    def day(self) -> date:
        """Calendar day used for load modelling."""
        return self.start.date() if isinstance(self.start, datetime) else self.start

    def with_streams(self, streams: Optional[Streams]) -> "Activity":
        return replace(self, streams=streams)

    def with_tss(self, tss: int) -> "Activity":
        return replace(self, tss=tss)


@dataclass(frozen=True)
class SportSettings:
    """Heart-rate anchors for one sport."""

    lthr: float
    max_hr: float
    zones: Tuple[Tuple[float, float], ...] = config.DEFAULT_HR_ZONES


@dataclass(frozen=True)
class AthleteSettings:
    """Athlete profile passed explicitly into every component.

    Cycling reads ``bike``; every other sport reads ``run``.
    """

    run: SportSettings = field(
        default_factory=lambda: SportSettings(config.DEFAULT_RUN_LTHR, config.DEFAULT_RUN_MAX_HR)
    )
    bike: SportSettings = field(
        default_factory=lambda: SportSettings(config.DEFAULT_BIKE_LTHR, config.DEFAULT_BIKE_MAX_HR)
    )
    weight_kg: float = config.DEFAULT_WEIGHT_KG
    resting_hr: float = config.DEFAULT_RESTING_HR

    def for_sport(self, sport: Sport) -> SportSettings:
        return self.bike if sport == Sport.BIKE else self.run

    def fingerprint(self) -> str:
        """Stable settings version; any change yields a new value."""
        payload = json.dumps(asdict(self), sort_keys=True, default=str)
        return hashlib.sha1(payload.encode("utf-8")).hexdigest()[:16]


@dataclass(frozen=True)
class DailyLoadPoint:
    """CTL/ATL/TSB for one calendar day."""

    day: date
    ctl: float
    atl: float
    tsb: float
    daily_tss: float
    is_projection: bool = False

    def rounded(self) -> Dict:
        """Presentation form; never feed this back into the recursion."""
        return {
            "date": self.day.isoformat(),
            "ctl": round(self.ctl, 1),
            "atl": round(self.atl, 1),
            "tsb": round(self.tsb, 1),
            "daily_tss": int(round(self.daily_tss)),
            "is_projection": self.is_projection,
        }


@dataclass(frozen=True)
class PeakRecord:
    """Best rolling average of a metric for one window and scope."""

    scope: str  # "all" or a Sport value
    metric: Metric
    window_s: int
    value: float
    activity_id: str
    activity_name: str
    activity_date: date


@dataclass(frozen=True)
class WellnessSample:
    """Daily recovery signals, measured or simulated."""

    day: date
    hrv: Optional[float] = None  # ms
    sleep_hours: Optional[float] = None
    resting_hr: Optional[float] = None
    is_simulated: bool = False


@dataclass(frozen=True)
class ReadinessSample:
    """Daily readiness score with the penalties that produced it."""

    day: date
    score: float
    level: str
    hrv_baseline: Optional[float]
    rhr_baseline: Optional[float]
    hrv_in_band: Optional[bool]
    penalties: Dict[str, float]
    has_wellness: bool
    is_simulated: bool = False
