"""Activity and stream provider over the Strava API."""

from .backfill import BackfillReport, StreamBackfill
from .client import StravaClient, activity_from_strava

__all__ = ["BackfillReport", "StreamBackfill", "StravaClient", "activity_from_strava"]
