"""Database models for activities, athlete profiles, wellness and daily metrics."""

from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, Float, Date, DateTime, Boolean, Text
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Activity(Base):
    """Completed workout with optional 1 Hz streams."""

    __tablename__ = "activities"

    id = Column(Integer, primary_key=True)
    external_id = Column(String(50), unique=True, nullable=False)  # provider id
    name = Column(String(255))
    type = Column(String(50))  # provider type: Run, Ride, TrailRun, etc.
    start_date = Column(DateTime, nullable=False)
    duration_min = Column(Float, default=0.0)
    distance = Column(Float)  # meters
    total_elevation_gain = Column(Float)  # meters
    average_heartrate = Column(Float)  # bpm
    average_speed = Column(Float)  # m/s
    average_watts = Column(Float)  # watts
    streams = Column(Text)  # JSON {"time": [...], "heartrate": [...], ...}
    training_load = Column(Float)  # last computed TSS, derived
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<Activity(external_id={self.external_id}, name={self.name}, date={self.start_date})>"


class AthleteProfile(Base):
    """Athlete settings: heart-rate anchors and zones per sport, weight, resting HR."""

    __tablename__ = "athlete_profiles"

    id = Column(Integer, primary_key=True)
    user_id = Column(String(50), unique=True, default="default")
    run_lthr = Column(Float, nullable=False)
    run_max_hr = Column(Float, nullable=False)
    run_zones = Column(Text)  # JSON [[low, high], ...]
    bike_lthr = Column(Float, nullable=False)
    bike_max_hr = Column(Float, nullable=False)
    bike_zones = Column(Text)
    weight_kg = Column(Float, nullable=False)
    resting_hr = Column(Float, nullable=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<AthleteProfile(user_id={self.user_id}, run_lthr={self.run_lthr}, bike_lthr={self.bike_lthr})>"


class WellnessRecord(Base):
    """Daily HRV, sleep and resting heart rate."""

    __tablename__ = "wellness"

    id = Column(Integer, primary_key=True)
    user_id = Column(String(50), default="default")
    date = Column(Date, nullable=False)
    hrv = Column(Float)  # ms
    sleep_hours = Column(Float)
    resting_hr = Column(Float)  # bpm
    is_simulated = Column(Boolean, default=False)
    created_at = Column(DateTime, default=utcnow)

    def __repr__(self):
        return f"<WellnessRecord(date={self.date}, hrv={self.hrv}, sleep={self.sleep_hours})>"


class Metric(Base):
    """Daily calculated load metrics."""

    __tablename__ = "metrics"

    id = Column(Integer, primary_key=True)
    date = Column(Date, unique=True, nullable=False)
    fitness = Column(Float, nullable=False)  # CTL (Chronic Training Load)
    fatigue = Column(Float, nullable=False)  # ATL (Acute Training Load)
    form = Column(Float, nullable=False)  # TSB (Training Stress Balance)
    daily_load = Column(Float, default=0.0)  # Daily training stress
    readiness = Column(Float)
    settings_version = Column(String(32))
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<Metric(date={self.date}, fitness={self.fitness:.1f}, fatigue={self.fatigue:.1f}, form={self.form:.1f})>"
