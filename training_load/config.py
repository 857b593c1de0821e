"""Configuration management for the training load engine."""

import os
from dotenv import load_dotenv

load_dotenv()


class Config:
    """Application configuration."""

    # Strava API (activity/stream provider)
    STRAVA_API_BASE_URL: str = os.getenv("STRAVA_API_BASE_URL", "https://www.strava.com/api/v3")
    STRAVA_ACCESS_TOKEN: str = os.getenv("STRAVA_ACCESS_TOKEN", "")
    STREAM_FETCH_DELAY: float = float(os.getenv("STREAM_FETCH_DELAY", "0.1"))  # seconds between requests
    HTTP_TIMEOUT: float = float(os.getenv("HTTP_TIMEOUT", "30"))

    # Database
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./training_load.db")

    # Load model time constants
    CHRONIC_WINDOW: float = float(os.getenv("CHRONIC_WINDOW", "42"))  # days
    ACUTE_WINDOW: float = float(os.getenv("ACUTE_WINDOW", "7"))  # days

    # Athlete defaults, used when the profile is empty or invalid
    DEFAULT_RUN_LTHR: float = float(os.getenv("DEFAULT_RUN_LTHR", "178"))
    DEFAULT_BIKE_LTHR: float = float(os.getenv("DEFAULT_BIKE_LTHR", "168"))
    DEFAULT_RUN_MAX_HR: float = float(os.getenv("DEFAULT_RUN_MAX_HR", "200"))
    DEFAULT_BIKE_MAX_HR: float = float(os.getenv("DEFAULT_BIKE_MAX_HR", "190"))
    DEFAULT_RESTING_HR: float = float(os.getenv("DEFAULT_RESTING_HR", "50"))
    DEFAULT_WEIGHT_KG: float = float(os.getenv("DEFAULT_WEIGHT_KG", "70"))
    DEFAULT_HR_ZONES = (
        (0, 135),
        (136, 150),
        (151, 165),
        (166, 178),
        (179, 200),
    )

    # Stress score: TSS per hour when no usable heart rate exists
    LIGHT_ACTIVITY_TSS_PER_HOUR: float = float(os.getenv("LIGHT_ACTIVITY_TSS_PER_HOUR", "30"))
    MIN_PLAUSIBLE_HR: float = float(os.getenv("MIN_PLAUSIBLE_HR", "40"))

    # Heuristic constants with no physiological derivation
    PEAK_WINDOW_COVERAGE: float = float(os.getenv("PEAK_WINDOW_COVERAGE", "0.95"))
    MONOTONY_SENTINEL: float = float(os.getenv("MONOTONY_SENTINEL", "4.0"))
    PACE_CEILING_MIN_KM: float = float(os.getenv("PACE_CEILING_MIN_KM", "20"))
    MIN_PACE_SPEED: float = float(os.getenv("MIN_PACE_SPEED", "0.1"))  # m/s

    # Training phase / risk thresholds
    RAMP_RATE_RISK: float = float(os.getenv("RAMP_RATE_RISK", "6"))
    RAMP_RATE_PRODUCTIVE: float = float(os.getenv("RAMP_RATE_PRODUCTIVE", "3"))
    ACWR_WARNING: float = float(os.getenv("ACWR_WARNING", "1.3"))
    ACWR_CRITICAL: float = float(os.getenv("ACWR_CRITICAL", "1.5"))

    # Performance estimation
    VO2MAX_LOOKBACK_DAYS: int = int(os.getenv("VO2MAX_LOOKBACK_DAYS", "45"))

    # Readiness
    READINESS_BASELINE_DAYS: int = int(os.getenv("READINESS_BASELINE_DAYS", "90"))
    HRV_NORMAL_BAND: float = float(os.getenv("HRV_NORMAL_BAND", "0.10"))

    # Penalty tiers as (threshold, points), checked from the most severe down
    READINESS_LOAD_TIERS = ((250, 30), (150, 20), (80, 10))  # prior-day TSS above
    READINESS_SLEEP_TIERS = ((5, 30), (6, 20), (7, 10))  # hours below
    READINESS_HRV_TIERS = ((0.25, 30), (0.15, 20), (0.10, 10))  # fractional drop above
    READINESS_RHR_TIERS = ((10, 20), (5, 10), (3, 5))  # bpm above baseline

    # Application
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    @classmethod
    def validate(cls) -> bool:
        """Validate configuration required for provider access."""
        if not cls.STRAVA_ACCESS_TOKEN:
            raise ValueError("Missing Strava access token. Please set STRAVA_ACCESS_TOKEN")
        return True

    @classmethod
    def get_time_constants(cls) -> tuple:
        """Return (chronic, acute) load model time constants in days."""
        return cls.CHRONIC_WINDOW, cls.ACUTE_WINDOW

    @classmethod
    def get_readiness_tiers(cls, name: str) -> tuple:
        """Get penalty tiers for a readiness signal ('load', 'sleep', 'hrv' or 'rhr')."""
        return getattr(cls, f"READINESS_{name.upper()}_TIERS", ())


config = Config()
