"""Pydantic models describing API payloads and sync results."""
from datetime import date, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


WorkoutType = Literal["easy", "tempo", "interval", "long-run", "recovery"]
WORKOUT_TYPES: tuple[str, ...] = ("easy", "tempo", "interval", "long-run", "recovery")


# Sync results
class SyncCountResult(BaseModel):
    """Outcome of an activity or daily health sync."""

    success: bool
    count: int = 0
    message: str


class SyncFitnessResult(BaseModel):
    """Outcome of a running fitness sync."""

    success: bool
    synced: bool = False
    message: str


class UploadResult(BaseModel):
    """Outcome of pushing a workout to Garmin."""

    success: bool
    message: str
    workout_id: int | None = None


class SyncReport(BaseModel):
    """Combined result of the three syncs run for one request."""

    activities: SyncCountResult
    health: SyncCountResult
    fitness: SyncFitnessResult

    @property
    def success(self) -> bool:
        return self.activities.success and self.health.success and self.fitness.success


# Request payloads
class GarminConnectRequest(BaseModel):
    """Credentials submitted from the connect form."""

    email: str = Field(min_length=1)
    password: str = Field(min_length=1)

    @field_validator("email")
    @classmethod
    def strip_email(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("email must not be empty")
        return value


class SyncRequest(BaseModel):
    """Optional date range for a sync; both ends are YYYY-MM-DD."""

    model_config = ConfigDict(populate_by_name=True)

    start_date: str | None = Field(default=None, alias="startDate")
    end_date: str | None = Field(default=None, alias="endDate")


class WorkoutRequest(BaseModel):
    """Workout generation request as posted by the workout form."""

    model_config = ConfigDict(populate_by_name=True)

    workout_type: WorkoutType = Field(alias="workoutType")
    distance_km: float | None = Field(default=None, alias="distanceKm", gt=0)
    user_prompt: str | None = Field(default=None, alias="userPrompt")

    @field_validator("distance_km")
    @classmethod
    def round_distance(cls, value: float | None) -> float | None:
        if value is None:
            return None
        return round(value, 2)

    @field_validator("user_prompt")
    @classmethod
    def blank_prompt_to_none(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.strip() or None


# Responses
class GeneratedWorkout(BaseModel):
    """Validated Garmin workout plus the model's explanation, if any."""

    workout: dict[str, Any]
    explanation: str | None = None


class DailyHealthResponse(BaseModel):
    """One day of merged health metrics."""

    model_config = ConfigDict(from_attributes=True)

    reading_date: date
    sleep_score: int | None = None
    total_sleep_seconds: int | None = None
    sleep_stress: int | None = None
    sleep_score_garmin_feedback: str | None = None
    avg_overnight_hrv: float | None = None
    hrv_status: str | None = None
    hrv_7day_avg: float | None = None
    resting_hr: int | None = None
    resting_hr_7day_avg: int | None = None
    body_battery_start: int | None = None
    body_battery_end: int | None = None
    data_synced_at: datetime | None = None


class SyncStatusResponse(BaseModel):
    """Per-user connection and last sync state."""

    garmin_connected: bool
    last_sync_at: datetime | None = None
    activity_count: int = 0
    health_days: int = 0
    has_fitness_profile: bool = False
