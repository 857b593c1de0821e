"""Conversion between ORM rows and analysis types.

Every method opens its own session and returns plain domain objects, so
nothing handed to the analysis layer is bound to a session.
"""

import json
import logging
from datetime import date, datetime
from typing import Dict, List, Optional, Sequence

from ..analysis.types import (
    Activity,
    AthleteSettings,
    DailyLoadPoint,
    ReadinessSample,
    Sport,
    SportSettings,
    Streams,
    WellnessSample,
)
from ..config import config
from .database import Database, get_db
from . import models

logger = logging.getLogger(__name__)


def _zones_to_json(zones) -> str:
    return json.dumps([list(zone) for zone in zones])


def _zones_from_json(raw: Optional[str]):
    if not raw:
        return config.DEFAULT_HR_ZONES
    return tuple(tuple(zone) for zone in json.loads(raw))


def _streams_from_json(raw: Optional[str]) -> Optional[Streams]:
    if not raw:
        return None
    try:
        return Streams.from_strava(json.loads(raw))
    except (ValueError, TypeError) as e:
        logger.warning(f"Ignoring unreadable stored streams: {e}")
        return None


def _to_domain(row: models.Activity, with_streams: bool = True) -> Activity:
    return Activity(
        id=row.external_id,
        name=row.name or "",
        start=row.start_date,
        sport=Sport.from_provider(row.type),
        duration_min=row.duration_min or 0.0,
        hr_avg=row.average_heartrate or 0.0,
        speed_avg=row.average_speed or 0.0,
        watts_avg=row.average_watts or 0.0,
        distance_m=row.distance or 0.0,
        elevation_gain_m=row.total_elevation_gain or 0.0,
        streams=_streams_from_json(row.streams) if with_streams else None,
    )


class ActivityRepository:
    """Activity and stream storage."""

    def __init__(self, db: Optional[Database] = None):
        self.db = db or get_db()

    def upsert_activity(self, activity: Activity, provider_type: Optional[str] = None) -> bool:
        """Insert or update an activity by external id.

        Returns:
            True if a new row was created
        """
        with self.db.get_session() as session:
            row = session.query(models.Activity).filter_by(external_id=activity.id).first()
            created = row is None
            if created:
                row = models.Activity(external_id=activity.id)
                session.add(row)

            row.name = activity.name
            row.type = provider_type or activity.sport.value
            row.start_date = activity.start if isinstance(activity.start, datetime) else datetime.combine(activity.start, datetime.min.time())
            row.duration_min = activity.duration_min
            row.distance = activity.distance_m
            row.total_elevation_gain = activity.elevation_gain_m
            row.average_heartrate = activity.hr_avg or None
            row.average_speed = activity.speed_avg or None
            row.average_watts = activity.watts_avg or None
            if activity.streams is not None:
                row.streams = json.dumps(activity.streams.to_dict())

        return created

    def list_activities(self, since: Optional[date] = None, with_streams: bool = True) -> List[Activity]:
        """All stored activities in start order."""
        with self.db.get_session() as session:
            query = session.query(models.Activity)
            if since is not None:
                query = query.filter(models.Activity.start_date >= datetime.combine(since, datetime.min.time()))
            rows = query.order_by(models.Activity.start_date, models.Activity.external_id).all()
            return [_to_domain(row, with_streams) for row in rows]

    def ids_without_streams(self) -> List[str]:
        """External ids of activities that have no stored streams, newest first."""
        with self.db.get_session() as session:
            rows = (
                session.query(models.Activity.external_id)
                .filter(models.Activity.streams.is_(None))
                .order_by(models.Activity.start_date.desc())
                .all()
            )
            return [row[0] for row in rows]

    def attach_streams(self, external_id: str, streams: Streams) -> bool:
        """Store streams for an activity; False when the activity is unknown."""
        with self.db.get_session() as session:
            row = session.query(models.Activity).filter_by(external_id=external_id).first()
            if row is None:
                logger.warning(f"Cannot attach streams, activity {external_id} not found")
                return False
            row.streams = json.dumps(streams.to_dict())
            return True

    def save_tss(self, activities: Sequence[Activity]) -> None:
        """Persist the derived TSS of annotated activities."""
        by_id = {activity.id: activity.tss for activity in activities if activity.tss is not None}
        if not by_id:
            return
        with self.db.get_session() as session:
            rows = session.query(models.Activity).filter(models.Activity.external_id.in_(list(by_id))).all()
            for row in rows:
                row.training_load = by_id[row.external_id]


class SettingsRepository:
    """Athlete settings store backed by the ``athlete_profiles`` table."""

    def __init__(self, db: Optional[Database] = None, user_id: str = "default"):
        self.db = db or get_db()
        self.user_id = user_id

    def load(self) -> AthleteSettings:
        """Stored settings, or the defaults when no profile exists."""
        with self.db.get_session() as session:
            row = session.query(models.AthleteProfile).filter_by(user_id=self.user_id).first()
            if row is None:
                return AthleteSettings()
            return AthleteSettings(
                run=SportSettings(row.run_lthr, row.run_max_hr, _zones_from_json(row.run_zones)),
                bike=SportSettings(row.bike_lthr, row.bike_max_hr, _zones_from_json(row.bike_zones)),
                weight_kg=row.weight_kg,
                resting_hr=row.resting_hr,
            )

    def save(self, settings: AthleteSettings) -> None:
        with self.db.get_session() as session:
            row = session.query(models.AthleteProfile).filter_by(user_id=self.user_id).first()
            if row is None:
                row = models.AthleteProfile(user_id=self.user_id)
                session.add(row)
            row.run_lthr = settings.run.lthr
            row.run_max_hr = settings.run.max_hr
            row.run_zones = _zones_to_json(settings.run.zones)
            row.bike_lthr = settings.bike.lthr
            row.bike_max_hr = settings.bike.max_hr
            row.bike_zones = _zones_to_json(settings.bike.zones)
            row.weight_kg = settings.weight_kg
            row.resting_hr = settings.resting_hr
        logger.info(f"Saved athlete settings (version {settings.fingerprint()})")


class WellnessRepository:
    """Daily wellness provider."""

    def __init__(self, db: Optional[Database] = None, user_id: str = "default"):
        self.db = db or get_db()
        self.user_id = user_id

    def list_samples(self, since: Optional[date] = None) -> List[WellnessSample]:
        with self.db.get_session() as session:
            query = session.query(models.WellnessRecord).filter_by(user_id=self.user_id)
            if since is not None:
                query = query.filter(models.WellnessRecord.date >= since)
            return [
                WellnessSample(
                    day=row.date,
                    hrv=row.hrv,
                    sleep_hours=row.sleep_hours,
                    resting_hr=row.resting_hr,
                    is_simulated=bool(row.is_simulated),
                )
                for row in query.order_by(models.WellnessRecord.date).all()
            ]

    def save_sample(self, sample: WellnessSample) -> None:
        """Insert or replace the sample for its day."""
        with self.db.get_session() as session:
            row = session.query(models.WellnessRecord).filter_by(user_id=self.user_id, date=sample.day).first()
            if row is None:
                row = models.WellnessRecord(user_id=self.user_id, date=sample.day)
                session.add(row)
            row.hrv = sample.hrv
            row.sleep_hours = sample.sleep_hours
            row.resting_hr = sample.resting_hr
            row.is_simulated = sample.is_simulated


class MetricRepository:
    """Daily load metrics snapshot."""

    def __init__(self, db: Optional[Database] = None):
        self.db = db or get_db()

    def save_series(
        self,
        series: Sequence[DailyLoadPoint],
        readiness: Sequence[ReadinessSample] = (),
        settings_version: str = "",
    ) -> int:
        """Replace stored metrics with the given history.

        Returns:
            Number of rows written
        """
        scores: Dict[date, float] = {sample.day: sample.score for sample in readiness}
        history = [point for point in series if not point.is_projection]
        with self.db.get_session() as session:
            session.query(models.Metric).delete()
            for point in history:
                session.add(models.Metric(
                    date=point.day,
                    fitness=point.ctl,
                    fatigue=point.atl,
                    form=point.tsb,
                    daily_load=point.daily_tss,
                    readiness=scores.get(point.day),
                    settings_version=settings_version,
                ))
        return len(history)

    def stored_version(self) -> Optional[str]:
        """Settings version the stored metrics were computed with."""
        with self.db.get_session() as session:
            row = session.query(models.Metric.settings_version).order_by(models.Metric.date.desc()).first()
            return row[0] if row is not None else None

    def latest(self) -> Optional[Dict]:
        with self.db.get_session() as session:
            row = session.query(models.Metric).order_by(models.Metric.date.desc()).first()
            if row is None:
                return None
            return {
                "date": row.date,
                "fitness": row.fitness,
                "fatigue": row.fatigue,
                "form": row.form,
                "daily_load": row.daily_load,
                "readiness": row.readiness,
            }
