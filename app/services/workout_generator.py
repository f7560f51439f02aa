"""AI workout generation: context loading, prompting and response validation."""
from __future__ import annotations

import json
import logging
import math
from datetime import date, datetime
from pathlib import Path
from typing import Any, Callable

import yaml
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.config import Settings
from app.exceptions import FitnessProfileMissingError, WorkoutResponseError, WorkoutStateError
from app.models.database_models import Activity, DailyHealthReading, RunningFitnessProfile, Workout
from app.models.schemas import GeneratedWorkout, WorkoutRequest
from app.services.ai_providers import AIMessage, AIProvider, resolve_ai_provider
from app.services.pace_calculator import PACE_MULTIPLIERS, format_pace


logger = logging.getLogger(__name__)

RECENT_ACTIVITY_LIMIT = 5
RECENT_HEALTH_LIMIT = 3

# status -> statuses it may move to
WORKOUT_TRANSITIONS: dict[str, set[str]] = {
    "generated": {"uploaded", "rejected"},
    "rejected": {"rejected"},
    "uploaded": set(),
}

FITNESS_FIELDS = (
    "predicted_5k_seconds",
    "predicted_10k_seconds",
    "predicted_half_seconds",
    "predicted_marathon_seconds",
    "easy_pace_low",
    "easy_pace_high",
    "tempo_pace",
    "threshold_pace",
    "interval_pace",
    "repetition_pace",
    "weekly_volume_avg_km",
    "longest_run_km",
    "running_distance_avg_km",
    "race_predictions_last_update",
)
ACTIVITY_FIELDS = (
    "activity_date",
    "activity_name",
    "activity_type",
    "distance_meters",
    "duration_seconds",
    "average_pace_seconds_per_km",
    "average_hr_bpm",
    "max_hr_bpm",
)
HEALTH_FIELDS = (
    "reading_date",
    "sleep_score",
    "total_sleep_seconds",
    "sleep_stress",
    "avg_overnight_hrv",
    "hrv_status",
    "hrv_7day_avg",
    "resting_hr",
    "resting_hr_7day_avg",
    "body_battery_start",
    "body_battery_end",
)

CLOSING_INSTRUCTION = (
    "Generate a Garmin-compatible workout JSON based on the user's current fitness level, "
    "recovery status, and recent training history. Output ONLY the JSON, no explanations."
)


def strip_markdown_code_block(raw: str) -> str:
    """Remove a surrounding ``` fence (with optional language tag) if present."""

    trimmed = raw.strip()
    if not trimmed.startswith("```"):
        return trimmed

    first_newline = trimmed.find("\n")
    if first_newline == -1:
        return trimmed

    body = trimmed[first_newline + 1:]
    if body.rstrip().endswith("```"):
        body = body.rstrip()[:-3]
    return body.strip()


def validate_workout_structure(value: Any) -> bool:
    """Minimum shape Garmin Connect accepts for an upload."""

    if not isinstance(value, dict):
        return False
    name = value.get("workoutName")
    if not isinstance(name, str) or not name.strip():
        return False
    if not isinstance(value.get("sportType"), dict):
        return False
    segments = value.get("workoutSegments")
    if not isinstance(segments, list) or not segments:
        return False
    first_segment = segments[0]
    if not isinstance(first_segment, dict):
        return False
    steps = first_segment.get("workoutSteps")
    return isinstance(steps, list) and len(steps) > 0


def parse_workout_response(raw: str) -> GeneratedWorkout:
    """
    Parse model output into a workout and optional explanation.

    Accepts a bare workout object or ``{"workout": ..., "explanation": ...}``,
    either of them optionally wrapped in a markdown code fence.

    Raises:
        WorkoutResponseError: UNPARSEABLE for invalid JSON, MISSING_FIELDS when
            the workout lacks the fields Garmin requires
    """
    try:
        parsed = json.loads(strip_markdown_code_block(raw))
    except (json.JSONDecodeError, TypeError) as err:
        raise WorkoutResponseError(WorkoutResponseError.UNPARSEABLE) from err

    explanation = None
    if isinstance(parsed, dict) and "workout" in parsed:
        candidate = parsed["workout"]
        if isinstance(parsed.get("explanation"), str):
            explanation = parsed["explanation"].strip() or None
    else:
        candidate = parsed

    if not validate_workout_structure(candidate):
        raise WorkoutResponseError(WorkoutResponseError.MISSING_FIELDS)
    return GeneratedWorkout(workout=candidate, explanation=explanation)


def build_user_prompt(workout_type: str, distance_km: float | None = None, user_prompt: str | None = None) -> str:
    """Render the workout request sentence, e.g. ``Create a tempo running workout for 8 km.``"""

    prompt = f"Create a {workout_type} running workout"
    if distance_km is not None and math.isfinite(distance_km) and distance_km > 0:
        prompt += f" for {distance_km:g} km"
    prompt += "."

    note = (user_prompt or "").strip()
    if note:
        prompt = f"{prompt} {note}"
    return prompt


def _json_default(value: Any) -> str:
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _to_json(value: Any) -> str:
    return json.dumps(value, indent=2, default=_json_default)


def build_model_user_message(
    fitness: dict[str, Any],
    activities: list[dict[str, Any]],
    health: list[dict[str, Any]],
    workout_prompt: str,
) -> str:
    activities_text = _to_json(activities) if activities else "No recent activities available."
    health_text = _to_json(health) if health else "No recent health data available."

    return (
        f"## User Fitness Profile\n{_to_json(fitness)}\n\n"
        f"## User's Last 5 Activities\n{activities_text}\n\n"
        f"## User's Health Data (Last 3 Days)\n{health_text}\n\n"
        f"## Workout Request\n{workout_prompt}\n\n"
        f"{CLOSING_INSTRUCTION}"
    )


def transition_workout(workout: Workout, target: str) -> None:
    """Move a workout along generated -> uploaded | rejected."""

    allowed = WORKOUT_TRANSITIONS.get(workout.status, set())
    if target not in allowed:
        if target == "uploaded":
            raise WorkoutStateError("Only generated workouts can be accepted.")
        raise WorkoutStateError(f"Workout cannot move from '{workout.status}' to '{target}'.")
    workout.status = target


def estimated_duration_minutes(workout: dict[str, Any]) -> int | None:
    seconds = workout.get("estimatedDurationInSecs")
    if isinstance(seconds, bool) or not isinstance(seconds, (int, float)) or not math.isfinite(seconds) or seconds <= 0:
        return None
    return max(1, round(seconds / 60))


def estimated_distance_km(workout: dict[str, Any], requested_km: float | None) -> float | None:
    if requested_km is not None:
        return requested_km
    meters = workout.get("estimatedDistanceInMeters")
    if isinstance(meters, bool) or not isinstance(meters, (int, float)) or not math.isfinite(meters) or meters <= 0:
        return None
    return round(meters / 1000, 2)


class WorkoutGenerator:
    """Builds prompts from stored Garmin data and validates what the model returns."""

    def __init__(
        self,
        settings: Settings,
        provider_factory: Callable[[Settings], AIProvider] = resolve_ai_provider,
    ) -> None:
        self.settings = settings
        self._provider_factory = provider_factory
        self.system_prompt = self._load_system_prompt(settings.prompt_config_path)

    @staticmethod
    def _load_system_prompt(path: Path) -> str:
        with Path(path).open("r", encoding="utf-8") as fh:
            config = yaml.safe_load(fh) or {}
        return str(config.get("system_prompt", "")).strip()

    def load_context(self, db: Session, user_id: int) -> dict[str, Any]:
        """Fitness profile, last 5 activities and last 3 health readings, newest first."""

        profile = db.scalar(select(RunningFitnessProfile).where(RunningFitnessProfile.user_id == user_id))
        if profile is None:
            raise FitnessProfileMissingError()

        activities = db.scalars(
            select(Activity)
            .where(Activity.user_id == user_id)
            .order_by(Activity.activity_date.desc(), Activity.id.desc())
            .limit(RECENT_ACTIVITY_LIMIT)
        ).all()
        readings = db.scalars(
            select(DailyHealthReading)
            .where(DailyHealthReading.user_id == user_id)
            .order_by(DailyHealthReading.reading_date.desc(), DailyHealthReading.id.desc())
            .limit(RECENT_HEALTH_LIMIT)
        ).all()

        fitness = {field: getattr(profile, field) for field in FITNESS_FIELDS}
        fitness["pace_zones_min_per_km"] = {
            zone: format_pace(getattr(profile, zone)) for zone in PACE_MULTIPLIERS
        }
        return {
            "fitness": fitness,
            "activities": [{field: getattr(row, field) for field in ACTIVITY_FIELDS} for row in activities],
            "health": [{field: getattr(row, field) for field in HEALTH_FIELDS} for row in readings],
        }

    def build_messages(self, context: dict[str, Any], workout_prompt: str) -> list[AIMessage]:
        return [
            {"role": "system", "content": self.system_prompt},
            {
                "role": "user",
                "content": build_model_user_message(
                    context["fitness"], context["activities"], context["health"], workout_prompt
                ),
            },
        ]

    async def generate(self, db: Session, user_id: int, workout_prompt: str) -> GeneratedWorkout:
        """Load context, call the configured provider, and validate its answer.

        Raises FitnessProfileMissingError before any provider call, then
        ConfigurationError, ProviderError or WorkoutResponseError.
        """

        context = self.load_context(db, user_id)
        provider = self._provider_factory(self.settings)
        logger.info("Generating workout for user %s via %s", user_id, provider.name)

        raw = await provider.generate_completion(self.build_messages(context, workout_prompt))
        return parse_workout_response(raw)

    async def create_workout(self, db: Session, user_id: int, request: WorkoutRequest) -> tuple[Workout, GeneratedWorkout]:
        """Generate and persist a workout in the ``generated`` state."""

        prompt = build_user_prompt(request.workout_type, request.distance_km, request.user_prompt)
        generated = await self.generate(db, user_id, prompt)
        workout_json = generated.workout

        name = workout_json.get("workoutName")
        workout = Workout(
            user_id=user_id,
            workout_type=request.workout_type,
            title=name if isinstance(name, str) and name.strip() else f"{request.workout_type} workout",
            ai_description=generated.explanation,
            workout_json=workout_json,
            total_distance_km=estimated_distance_km(workout_json, request.distance_km),
            estimated_duration_minutes=estimated_duration_minutes(workout_json),
            user_prompt=request.user_prompt,
            status="generated",
        )
        db.add(workout)
        db.flush()
        logger.info("Stored generated workout %s for user %s", workout.id, user_id)
        return workout, generated
