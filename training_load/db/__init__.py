"""Database module for the training load engine."""

from .database import Database, get_db, close_db
from .models import Activity, AthleteProfile, Metric, WellnessRecord
from .repository import ActivityRepository, MetricRepository, SettingsRepository, WellnessRepository

__all__ = [
    "Database",
    "get_db",
    "close_db",
    "Activity",
    "AthleteProfile",
    "Metric",
    "WellnessRecord",
    "ActivityRepository",
    "MetricRepository",
    "SettingsRepository",
    "WellnessRepository",
]
