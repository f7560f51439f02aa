"""Fetch Garmin data for a user and upsert it into local storage."""
from __future__ import annotations

import asyncio
import logging
import re
from datetime import date, timedelta
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from app.exceptions import CoachError, ValidationError
from app.models.database_models import (
    Activity,
    DailyHealthReading,
    RunningFitnessProfile,
    User,
    utcnow,
)
from app.models.schemas import SyncCountResult, SyncFitnessResult, SyncReport, UploadResult
from app.services.field_mapper import (
    ACTIVITY_FIELD_MAP,
    as_dict,
    as_integer,
    as_number,
    has_health_metrics,
    is_running_activity,
    map_activity,
    map_daily_health,
    map_race_predictions,
    map_running_volume,
)
from app.services.garmin_adapter import GarminAdapter, GarminConnector
from app.services.pace_calculator import calculate_training_paces


logger = logging.getLogger(__name__)

DEFAULT_SYNC_DAYS = 30
VOLUME_LOOKBACK_DAYS = 28

_DATE_ONLY = re.compile(r"^\d{4}-\d{2}-\d{2}$")

ACTIVITY_COLUMNS = tuple(ACTIVITY_FIELD_MAP.values()) + ("activity_type", "activity_description")
HEALTH_COLUMNS = (
    "sleep_score",
    "total_sleep_seconds",
    "sleep_stress",
    "sleep_score_garmin_feedback",
    "avg_overnight_hrv",
    "hrv_status",
    "hrv_7day_avg",
    "resting_hr",
    "resting_hr_7day_avg",
    "body_battery_start",
    "body_battery_end",
)
PREDICTION_COLUMNS = (
    "predicted_5k_seconds",
    "predicted_10k_seconds",
    "predicted_half_seconds",
    "predicted_marathon_seconds",
)
VOLUME_COLUMNS = ("weekly_volume_avg_km", "longest_run_km", "running_distance_avg_km")


class SyncContext:
    """One logged-in adapter shared by the syncs of a single request."""

    def __init__(self, user_id: int, adapter: GarminAdapter) -> None:
        self.user_id = user_id
        self.adapter = adapter


def parse_date(value: str) -> date:
    if not isinstance(value, str) or not _DATE_ONLY.match(value):
        raise ValidationError("Invalid date format. Use YYYY-MM-DD.")
    try:
        return date.fromisoformat(value)
    except ValueError as err:
        raise ValidationError("Invalid date format. Use YYYY-MM-DD.") from err


def resolve_date_range(
    start_date: str | None, end_date: str | None, today: date | None = None
) -> tuple[date, date]:
    """Validate a requested range, defaulting to the trailing 30 days ending today."""

    today = today or date.today()
    start = parse_date(start_date) if start_date and start_date.strip() else today - timedelta(days=DEFAULT_SYNC_DAYS)
    end = parse_date(end_date) if end_date and end_date.strip() else today
    if start > end:
        raise ValidationError("startDate must be before or equal to endDate.")
    return start, end


def calculate_average_pace(
    raw: Any, distance_meters: float | None, duration_seconds: int | None
) -> int | None:
    """Seconds per km from ``averageSpeed`` (m/s), else from distance and duration."""

    source = as_dict(raw) or {}
    speed = as_number(source.get("averageSpeed"))
    if speed is not None and speed > 0:
        return round(1000 / speed)

    if not distance_meters or not duration_seconds or distance_meters <= 0 or duration_seconds <= 0:
        return None
    return round(duration_seconds / (distance_meters / 1000))


class SyncService:
    """
    User-triggered Garmin sync.

    Every operation opens short-lived sessions from ``session_factory`` and
    never holds one across an await, so the three syncs can run concurrently
    on one event loop.

    Usage:
        service = SyncService(connector, SessionLocal)
        start, end = resolve_date_range("2026-02-01", "2026-02-03")
        report = await service.sync_all(user_id, start, end)
    """

    def __init__(self, connector: GarminConnector, session_factory: sessionmaker) -> None:
        self._connector = connector
        self._session_factory = session_factory

    async def create_sync_context(self, user_id: int) -> SyncContext:
        """Log in once for a whole sync request. Raises a classified CoachError."""

        with self._session_factory() as db:
            payload = self._connector.load_payload(db, user_id)
        adapter = await asyncio.to_thread(self._connector.open_adapter, payload)
        logger.info("Opened Garmin sync context for user %s", user_id)
        return SyncContext(user_id, adapter)

    async def _resolve_adapter(self, user_id: int, context: SyncContext | None) -> GarminAdapter:
        if context is not None:
            return context.adapter
        return (await self.create_sync_context(user_id)).adapter

    async def sync_user_activities(
        self, user_id: int, start: date, end: date, context: SyncContext | None = None
    ) -> SyncCountResult:
        try:
            adapter = await self._resolve_adapter(user_id, context)
            raw_activities = await adapter.get_activities(start, end)
            with self._session_factory() as db:
                synced = self._upsert_activities(db, user_id, raw_activities)
                db.commit()
        except CoachError as err:
            logger.warning("Activity sync failed for user %s: %s", user_id, err.message)
            return SyncCountResult(success=False, count=0, message=err.message)
        except Exception:
            logger.exception("Activity sync failed for user %s", user_id)
            return SyncCountResult(success=False, count=0, message="Activity sync failed.")

        logger.info("Synced %d activities for user %s (%s..%s)", synced, user_id, start, end)
        return SyncCountResult(success=True, count=synced, message=f"Synced {synced} activities.")

    def _upsert_activities(self, db: Session, user_id: int, raw_activities: list[Any]) -> int:
        synced = 0
        for raw in raw_activities:
            mapped = map_activity(raw)
            if not is_running_activity(raw, mapped.get("activity_type")):
                continue
            garmin_id = mapped.get("garmin_activity_id")
            if not garmin_id:
                continue

            mapped["average_pace_seconds_per_km"] = calculate_average_pace(
                raw, mapped.get("distance_meters"), mapped.get("duration_seconds")
            )

            activity = db.scalar(select(Activity).where(Activity.garmin_activity_id == garmin_id))
            if activity is None:
                activity = Activity(user_id=user_id, garmin_activity_id=garmin_id)
                db.add(activity)
            elif activity.user_id != user_id:
                logger.warning("Garmin activity %s belongs to another user; skipping", garmin_id)
                continue

            for column in ACTIVITY_COLUMNS + ("average_pace_seconds_per_km",):
                if column == "garmin_activity_id":
                    continue
                setattr(activity, column, mapped.get(column))
            if "split_summaries_json" in mapped:
                activity.split_summaries_json = mapped["split_summaries_json"]

            db.flush()
            synced += 1
        return synced

    async def sync_daily_health(
        self, user_id: int, start: date, end: date, context: SyncContext | None = None
    ) -> SyncCountResult:
        """
        Walk every day in ``[start, end]`` and upsert merged health readings.

        Days that already have a reading are skipped except ``end``, which is
        always fetched again since today's data is still arriving. Days with no
        metrics at all produce no row.
        """
        if start > end:
            return SyncCountResult(
                success=False, count=0, message="startDate must be before or equal to endDate."
            )

        synced = 0
        try:
            adapter = await self._resolve_adapter(user_id, context)
            current = start
            while current <= end:
                if current != end and self._has_reading(user_id, current):
                    current += timedelta(days=1)
                    continue

                sleep, hrv, resting_hr = await asyncio.gather(
                    adapter.get_sleep_data(current),
                    adapter.get_hrv_data(current),
                    adapter.get_resting_heart_rate(current),
                )
                mapped = map_daily_health(current, sleep, hrv, resting_hr)
                if has_health_metrics(mapped):
                    self._upsert_health_reading(user_id, mapped)
                    synced += 1
                else:
                    logger.debug("No health metrics for user %s on %s", user_id, current)
                current += timedelta(days=1)
        except CoachError as err:
            logger.warning("Health sync failed for user %s: %s", user_id, err.message)
            return SyncCountResult(success=False, count=0, message=err.message)
        except Exception:
            logger.exception("Health sync failed for user %s", user_id)
            return SyncCountResult(success=False, count=0, message="Health sync failed.")

        logger.info("Synced health data for %d day(s) for user %s", synced, user_id)
        return SyncCountResult(success=True, count=synced, message=f"Synced health data for {synced} day(s).")

    def _has_reading(self, user_id: int, reading_date: date) -> bool:
        with self._session_factory() as db:
            return db.scalar(
                select(DailyHealthReading.id).where(
                    DailyHealthReading.user_id == user_id,
                    DailyHealthReading.reading_date == reading_date,
                )
            ) is not None

    def _upsert_health_reading(self, user_id: int, mapped: dict[str, Any]) -> None:
        with self._session_factory() as db:
            reading = db.scalar(
                select(DailyHealthReading).where(
                    DailyHealthReading.user_id == user_id,
                    DailyHealthReading.reading_date == mapped["reading_date"],
                )
            )
            if reading is None:
                reading = DailyHealthReading(user_id=user_id, reading_date=mapped["reading_date"])
                db.add(reading)
            for column in HEALTH_COLUMNS:
                setattr(reading, column, mapped.get(column))
            reading.data_synced_at = utcnow()
            db.commit()

    async def sync_running_fitness(
        self, user_id: int, context: SyncContext | None = None
    ) -> SyncFitnessResult:
        try:
            adapter = await self._resolve_adapter(user_id, context)
            raw = await adapter.get_race_predictions()
            predictions = as_dict(raw[0]) if isinstance(raw, list) and raw else as_dict(raw)
            if predictions is None:
                return SyncFitnessResult(
                    success=False, synced=False, message="No race prediction data returned by Garmin."
                )

            mapped = map_race_predictions(predictions)
            predicted_10k = mapped.get("predicted_10k_seconds")
            if not predicted_10k or predicted_10k <= 0:
                return SyncFitnessResult(
                    success=False, synced=False, message="Race predictions are missing 10K time."
                )

            paces = calculate_training_paces(predicted_10k)
            volume = await self._recent_volume(adapter)
            self._upsert_fitness_profile(user_id, mapped, paces, volume)
        except CoachError as err:
            logger.warning("Fitness sync failed for user %s: %s", user_id, err.message)
            return SyncFitnessResult(success=False, synced=False, message=err.message)
        except Exception:
            logger.exception("Fitness sync failed for user %s", user_id)
            return SyncFitnessResult(success=False, synced=False, message="Running fitness sync failed.")

        logger.info("Updated running fitness for user %s (10K=%ss)", user_id, predicted_10k)
        return SyncFitnessResult(success=True, synced=True, message="Running fitness synced successfully.")

    async def _recent_volume(self, adapter: GarminAdapter) -> dict[str, float]:
        today = date.today()
        try:
            activities = await adapter.get_activities(today - timedelta(days=VOLUME_LOOKBACK_DAYS), today)
        except Exception as err:  # volume is optional; predictions still count
            logger.warning("Skipping running volume: %s", err)
            return {}
        return map_running_volume(activities)

    def _upsert_fitness_profile(
        self,
        user_id: int,
        predictions: dict[str, int],
        paces: dict[str, int],
        volume: dict[str, float],
    ) -> None:
        with self._session_factory() as db:
            profile = db.scalar(select(RunningFitnessProfile).where(RunningFitnessProfile.user_id == user_id))
            if profile is None:
                profile = RunningFitnessProfile(user_id=user_id)
                db.add(profile)

            for column in PREDICTION_COLUMNS:
                setattr(profile, column, predictions.get(column))
            for zone, pace in paces.items():
                setattr(profile, zone, pace)
            for column in VOLUME_COLUMNS:
                setattr(profile, column, volume.get(column))

            profile.race_predictions_last_update = date.today()
            profile.last_updated = utcnow()
            profile.data_source = "garmin"
            db.commit()

    async def upload_workout(
        self, user_id: int, workout_json: dict[str, Any], context: SyncContext | None = None
    ) -> UploadResult:
        try:
            adapter = await self._resolve_adapter(user_id, context)
            response = await adapter.upload_workout(workout_json)
        except CoachError as err:
            logger.warning("Workout upload failed for user %s: %s", user_id, err.message)
            return UploadResult(success=False, message=err.message)
        except Exception:
            logger.exception("Workout upload failed for user %s", user_id)
            return UploadResult(success=False, message="Workout upload failed.")

        workout_id = as_integer((as_dict(response) or {}).get("workoutId"))
        logger.info("Uploaded workout for user %s (garmin id %s)", user_id, workout_id)
        return UploadResult(success=True, message="Workout uploaded successfully.", workout_id=workout_id)

    async def sync_all(self, user_id: int, start: date, end: date) -> SyncReport:
        """
        Run the three syncs concurrently over one login.

        ``User.last_sync_at`` is stamped only when every sync succeeds.

        Raises:
            CoachError: the shared Garmin session could not be opened
        """
        context = await self.create_sync_context(user_id)
        activities, health, fitness = await asyncio.gather(
            self.sync_user_activities(user_id, start, end, context),
            self.sync_daily_health(user_id, start, end, context),
            self.sync_running_fitness(user_id, context),
        )
        report = SyncReport(activities=activities, health=health, fitness=fitness)

        if report.success:
            with self._session_factory() as db:
                user = db.get(User, user_id)
                if user is not None:
                    user.last_sync_at = utcnow()
                    db.commit()
        else:
            logger.warning(
                "Garmin sync incomplete for user %s: activities=%s health=%s fitness=%s",
                user_id,
                activities.success,
                health.success,
                fitness.success,
            )
        return report
