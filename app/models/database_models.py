"""SQLAlchemy ORM models for per-user Garmin data and generated workouts."""
from datetime import date, datetime, timezone
from sqlalchemy import BigInteger, Integer, Date, DateTime, Float, String, Boolean, Text, ForeignKey, JSON, Index, LargeBinary, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class User(Base):
    """Account owning every other row; holds the only secret at rest."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)

    garmin_connected: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    # nonce(12) || tag(16) || ciphertext, see CredentialVault
    encrypted_credential: Mapped[bytes | None] = mapped_column(LargeBinary, nullable=True)
    last_sync_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    activities: Mapped[list["Activity"]] = relationship(
        "Activity", cascade="all, delete-orphan", passive_deletes=True
    )
    health_readings: Mapped[list["DailyHealthReading"]] = relationship(
        "DailyHealthReading", cascade="all, delete-orphan", passive_deletes=True
    )
    running_fitness: Mapped["RunningFitnessProfile | None"] = relationship(
        "RunningFitnessProfile", cascade="all, delete-orphan", passive_deletes=True, uselist=False
    )
    workouts: Mapped[list["Workout"]] = relationship(
        "Workout", cascade="all, delete-orphan", passive_deletes=True
    )


class Activity(Base):
    """One running activity from Garmin, rewritten in place on every sync."""

    __tablename__ = "activities"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    garmin_activity_id: Mapped[int | None] = mapped_column(BigInteger, unique=True, nullable=True)

    activity_date: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    activity_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    activity_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    activity_description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Duration & Distance
    distance_meters: Mapped[float | None] = mapped_column(Float, nullable=True)
    duration_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)
    average_pace_seconds_per_km: Mapped[int | None] = mapped_column(Integer, nullable=True)
    split_summaries_json: Mapped[list | None] = mapped_column(JSON, nullable=True)

    # Heart rate
    average_hr_bpm: Mapped[int | None] = mapped_column(Integer, nullable=True)
    max_hr_bpm: Mapped[int | None] = mapped_column(Integer, nullable=True)
    hr_time_in_zone1: Mapped[int | None] = mapped_column(Integer, nullable=True)
    hr_time_in_zone2: Mapped[int | None] = mapped_column(Integer, nullable=True)
    hr_time_in_zone3: Mapped[int | None] = mapped_column(Integer, nullable=True)
    hr_time_in_zone4: Mapped[int | None] = mapped_column(Integer, nullable=True)
    hr_time_in_zone5: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Training load metrics
    aerobic_training_effect: Mapped[float | None] = mapped_column(Float, nullable=True)
    anaerobic_training_effect: Mapped[float | None] = mapped_column(Float, nullable=True)
    training_effect_label: Mapped[str | None] = mapped_column(String(100), nullable=True)

    elevation_gain: Mapped[float | None] = mapped_column(Float, nullable=True)  # meters
    elevation_loss: Mapped[float | None] = mapped_column(Float, nullable=True)  # meters
    location_name: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("idx_activities_user_date", "user_id", "activity_date"),
    )


class DailyHealthReading(Base):
    """Sleep, HRV and resting heart rate merged into one row per user per day."""

    __tablename__ = "daily_health_readings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    reading_date: Mapped[date] = mapped_column(Date, nullable=False)

    # Sleep metrics
    sleep_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    total_sleep_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)
    sleep_stress: Mapped[int | None] = mapped_column(Integer, nullable=True)
    sleep_score_garmin_feedback: Mapped[str | None] = mapped_column(Text, nullable=True)

    # HRV
    avg_overnight_hrv: Mapped[float | None] = mapped_column(Float, nullable=True)
    hrv_status: Mapped[str | None] = mapped_column(String(50), nullable=True)
    hrv_7day_avg: Mapped[float | None] = mapped_column(Float, nullable=True)

    # Heart metrics
    resting_hr: Mapped[int | None] = mapped_column(Integer, nullable=True)
    resting_hr_7day_avg: Mapped[int | None] = mapped_column(Integer, nullable=True)

    body_battery_start: Mapped[int | None] = mapped_column(Integer, nullable=True)
    body_battery_end: Mapped[int | None] = mapped_column(Integer, nullable=True)

    data_synced_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "reading_date", name="uq_daily_health_user_date"),
        Index("idx_daily_health_user_date", "user_id", "reading_date"),
    )


class RunningFitnessProfile(Base):
    """Race predictions, derived pace zones and recent volume. One row per user."""

    __tablename__ = "user_running_fitness"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    vo2_max: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Race predictions (seconds)
    predicted_5k_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)
    predicted_10k_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)
    predicted_half_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)
    predicted_marathon_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)
    race_predictions_last_update: Mapped[date | None] = mapped_column(Date, nullable=True)

    # Pace zones (seconds per km)
    easy_pace_low: Mapped[int | None] = mapped_column(Integer, nullable=True)
    easy_pace_high: Mapped[int | None] = mapped_column(Integer, nullable=True)
    tempo_pace: Mapped[int | None] = mapped_column(Integer, nullable=True)
    threshold_pace: Mapped[int | None] = mapped_column(Integer, nullable=True)
    interval_pace: Mapped[int | None] = mapped_column(Integer, nullable=True)
    repetition_pace: Mapped[int | None] = mapped_column(Integer, nullable=True)
    long_run_pace: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Volume (best effort)
    weekly_volume_avg_km: Mapped[float | None] = mapped_column(Float, nullable=True)
    longest_run_km: Mapped[float | None] = mapped_column(Float, nullable=True)
    running_distance_avg_km: Mapped[float | None] = mapped_column(Float, nullable=True)

    last_updated: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    data_source: Mapped[str] = mapped_column(String(50), default="garmin", nullable=False)


class Workout(Base):
    """AI-generated structured workout. generated -> uploaded | rejected."""

    __tablename__ = "workouts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    workout_type: Mapped[str] = mapped_column(String(50), nullable=False)  # easy, tempo, interval, long-run, recovery
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    ai_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    workout_json: Mapped[dict] = mapped_column(JSON, nullable=False)
    total_distance_km: Mapped[float | None] = mapped_column(Float, nullable=True)
    estimated_duration_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    user_prompt: Mapped[str | None] = mapped_column(Text, nullable=True)

    status: Mapped[str] = mapped_column(String(20), default="generated", nullable=False)
    scheduled_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    garmin_workout_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
