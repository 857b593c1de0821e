"""Sanity checks for streams and athlete settings.

Malformed input never raises here. Degenerate streams are reported so the
window-based components can skip the activity, and invalid settings are
replaced by sport defaults with a warning.
"""

import logging
import numpy as np
from dataclasses import dataclass
from typing import Iterable, Optional, Tuple

from ..config import config
from .types import Activity, Sport, SportSettings, Streams

logger = logging.getLogger(__name__)


@dataclass
class ValidationResult:
    """Result of a stream validation check."""
    is_valid: bool
    reason: Optional[str] = None


def validate_streams(streams: Optional[Streams], required: Iterable[str] = ("time",)) -> ValidationResult:
    """Check that the required arrays exist and every present array is aligned with ``time``."""
    if streams is None:
        return ValidationResult(False, "no streams")

    for key in required:
        if getattr(streams, key) is None:
            return ValidationResult(False, f"missing '{key}' stream")

    if streams.time is None:
        return ValidationResult(False, "missing 'time' stream")

    n = len(streams.time)
    if n < 2:
        return ValidationResult(False, f"stream too short ({n} samples)")

    for key in ("heartrate", "speed", "altitude", "cadence", "power"):
        values = getattr(streams, key)
        if values is not None and len(values) != n:
            return ValidationResult(False, f"'{key}' has {len(values)} samples, time has {n}")

    time = np.asarray(streams.time, dtype=float)
    if not np.all(np.isfinite(time)):
        return ValidationResult(False, "non-finite time values")
    if np.any(np.diff(time) < 0):
        return ValidationResult(False, "time is not monotonic")

    for key in required:
        values = np.asarray(getattr(streams, key), dtype=float)
        if not np.all(np.isfinite(values)):
            return ValidationResult(False, f"non-finite '{key}' values")

    return ValidationResult(True)


def usable_streams(activity: Activity, required: Iterable[str]) -> Optional[Tuple[np.ndarray, ...]]:
    """Return the required arrays as numpy arrays, or None if the activity must be skipped."""
    required = tuple(required)
    result = validate_streams(activity.streams, ("time",) + required)
    if not result.is_valid:
        if activity.streams is not None:
            logger.debug(f"Skipping streams of activity {activity.id}: {result.reason}")
        return None

    time = np.asarray(activity.streams.time, dtype=float)
    return (time,) + tuple(np.asarray(getattr(activity.streams, key), dtype=float) for key in required)


def sanitize_sport_settings(settings: SportSettings, sport: Sport) -> SportSettings:
    """Replace non-positive LTHR or max HR with the sport defaults."""
    lthr = settings.lthr
    max_hr = settings.max_hr

    if not lthr or lthr <= 0:
        lthr = default_lthr(sport)
        logger.warning(f"Invalid LTHR {settings.lthr!r} for {sport.value}, using default {lthr:.0f}")

    if not max_hr or max_hr <= 0:
        max_hr = default_max_hr(sport)
        logger.warning(f"Invalid max HR {settings.max_hr!r} for {sport.value}, using default {max_hr:.0f}")

    if lthr == settings.lthr and max_hr == settings.max_hr:
        return settings
    return SportSettings(lthr=lthr, max_hr=max_hr, zones=settings.zones)


def sanitize_time_constant(value: float, default: float, name: str) -> float:
    """Replace a non-positive time constant with its default."""
    if value is None or value <= 0:
        logger.warning(f"Invalid {name} time constant {value!r}, using default {default:g}")
        return default
    return value


def sanitize_positive(value: Optional[float], default: float, name: str) -> float:
    """Replace a missing or non-positive athlete value with its default."""
    if value is None or value <= 0:
        logger.warning(f"Invalid {name} {value!r}, using default {default:g}")
        return default
    return value


def default_lthr(sport: Sport) -> float:
    """Fallback lactate threshold heart rate for a sport."""
    return config.DEFAULT_BIKE_LTHR if sport == Sport.BIKE else config.DEFAULT_RUN_LTHR


def default_max_hr(sport: Sport) -> float:
    """Fallback maximum heart rate for a sport."""
    return config.DEFAULT_BIKE_MAX_HR if sport == Sport.BIKE else config.DEFAULT_RUN_MAX_HR
