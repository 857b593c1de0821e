"""Strava API client implementation."""

import logging
from datetime import datetime, timedelta, timezone
from typing import List, Dict, Any, Optional, Tuple
import requests

from ..config import config
from ..analysis.types import Activity, Sport, Streams
from ..db.repository import ActivityRepository

logger = logging.getLogger(__name__)

STREAM_KEYS = ("time", "heartrate", "velocity_smooth", "altitude", "cadence", "watts")


def _parse_start(data: Dict[str, Any]) -> datetime:
    raw = data.get("start_date_local") or data["start_date"]
    start = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    # Local wall-clock time decides the calendar day
    return start.replace(tzinfo=None)


def activity_from_strava(data: Dict[str, Any]) -> Tuple[Activity, str]:
    """Build an Activity from a Strava summary activity.

    Returns:
        Tuple of (activity, provider type string)
    """
    provider_type = data.get("sport_type") or data.get("type") or ""
    moving_time = data.get("moving_time") or data.get("elapsed_time") or 0
    activity = Activity(
        id=str(data["id"]),
        name=data.get("name") or "",
        start=_parse_start(data),
        sport=Sport.from_provider(provider_type),
        duration_min=moving_time / 60,
        hr_avg=data.get("average_heartrate") or 0.0,
        speed_avg=data.get("average_speed") or 0.0,
        watts_avg=data.get("average_watts") or 0.0,
        distance_m=data.get("distance") or 0.0,
        elevation_gain_m=data.get("total_elevation_gain") or 0.0,
    )
    return activity, provider_type


class StravaClient:
    """Client for interacting with Strava API."""

    def __init__(self, access_token: Optional[str] = None, base_url: Optional[str] = None):
        self.base_url = base_url or config.STRAVA_API_BASE_URL
        self.access_token = access_token or config.STRAVA_ACCESS_TOKEN
        self.timeout = config.HTTP_TIMEOUT

    def _get_headers(self) -> Dict[str, str]:
        """Get authorization headers."""
        if not self.access_token:
            raise ValueError("No access token available. Set STRAVA_ACCESS_TOKEN")
        return {"Authorization": f"Bearer {self.access_token}"}

    def get_activities(
        self,
        page: int = 1,
        per_page: int = 100,
        after: Optional[datetime] = None,
    ) -> List[Dict[str, Any]]:
        """Get one page of athlete activities."""
        params = {
            "page": page,
            "per_page": per_page
        }
        if after:
            params["after"] = int(after.timestamp())

        response = requests.get(
            f"{self.base_url}/athlete/activities",
            headers=self._get_headers(),
            params=params,
            timeout=self.timeout,
        )
        response.raise_for_status()
        return response.json()

    def get_activity_streams(self, activity_id: str) -> Optional[Streams]:
        """Get the 1 Hz streams of an activity; None when the activity has none."""
        response = requests.get(
            f"{self.base_url}/activities/{activity_id}/streams",
            headers=self._get_headers(),
            params={"keys": ",".join(STREAM_KEYS), "key_by_type": "true"},
            timeout=self.timeout,
        )
        if response.status_code == 404:
            logger.debug(f"No streams for activity {activity_id}")
            return None
        response.raise_for_status()
        return Streams.from_strava(response.json())

    def sync_activities(self, repository: ActivityRepository, days_back: int = 30, per_page: int = 100) -> Tuple[int, int]:
        """Sync activity summaries into the local database.

        Returns:
            Tuple of (activities fetched, new activities)
        """
        after_date = datetime.now(timezone.utc) - timedelta(days=days_back)
        logger.info(f"Fetching activities from the last {days_back} days")

        activities = []
        page = 1
        while True:
            batch = self.get_activities(page=page, per_page=per_page, after=after_date)
            if not batch:
                break
            activities.extend(batch)
            page += 1
            if len(batch) < per_page:
                break

        new_count = 0
        for data in activities:
            activity, provider_type = activity_from_strava(data)
            if repository.upsert_activity(activity, provider_type):
                new_count += 1

        logger.info(f"Synced {len(activities)} activities ({new_count} new)")
        return len(activities), new_count
