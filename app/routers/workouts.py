"""Workout generation and review endpoints."""
from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import get_current_user_id, get_sync_service, get_workout_generator, read_json_body
from app.exceptions import ValidationError
from app.models.database_models import Workout
from app.models.schemas import WORKOUT_TYPES, WorkoutRequest
from app.services.sync_service import SyncService
from app.services.workout_generator import WorkoutGenerator, transition_workout


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/workout", tags=["workouts"])

_UPLOAD_CLIENT_ERRORS = ("not connected", "invalid", "reconnect")


def _parse_workout_request(body: dict) -> WorkoutRequest:
    if body.get("workoutType") not in WORKOUT_TYPES:
        raise ValidationError(f"Invalid workoutType. Use one of: {', '.join(WORKOUT_TYPES)}.")

    distance = body.get("distanceKm")
    if distance is not None and (isinstance(distance, bool) or not isinstance(distance, (int, float))):
        raise ValidationError("distanceKm must be a positive number when provided.")

    prompt = body.get("userPrompt")
    if prompt is not None and not isinstance(prompt, str):
        raise ValidationError("userPrompt must be a string when provided.")

    try:
        return WorkoutRequest.model_validate(body)
    except PydanticValidationError as err:
        raise ValidationError("distanceKm must be a positive number when provided.") from err


def _get_workout(db: Session, user_id: int, workout_id: str) -> Workout:
    if not workout_id.isdigit() or int(workout_id) <= 0:
        raise ValidationError("Invalid workout id.")
    workout = db.scalar(select(Workout).where(Workout.id == int(workout_id), Workout.user_id == user_id))
    if workout is None:
        raise ValidationError("Workout not found.", status_code=404)
    return workout


@router.post("/generate", status_code=201)
async def generate_workout(
    request: Request,
    user_id: Annotated[int, Depends(get_current_user_id)],
    db: Annotated[Session, Depends(get_db)],
    generator: Annotated[WorkoutGenerator, Depends(get_workout_generator)],
) -> dict:
    """
    Generate a structured workout with the configured AI provider.

    Returns 201 with the stored workout id. Errors: 400 for bad input or a
    missing fitness profile, 503 when the provider is rate limited, 504 on
    provider timeout, 500 otherwise.
    """
    workout_request = _parse_workout_request(await read_json_body(request))

    workout, generated = await generator.create_workout(db, user_id, workout_request)
    db.commit()

    return {
        "success": True,
        "workoutId": workout.id,
        "workout": generated.workout,
        "explanation": generated.explanation,
        "status": workout.status,
    }


@router.post("/{workout_id}/accept")
async def accept_workout(
    workout_id: str,
    user_id: Annotated[int, Depends(get_current_user_id)],
    db: Annotated[Session, Depends(get_db)],
    service: Annotated[SyncService, Depends(get_sync_service)],
):
    """Upload a generated workout to Garmin; it stays ``generated`` if the upload fails."""

    workout = _get_workout(db, user_id, workout_id)
    if workout.status != "generated":
        raise ValidationError("Only generated workouts can be accepted.")

    result = await service.upload_workout(user_id, workout.workout_json)
    if not result.success:
        normalized = result.message.lower()
        status = 400 if any(marker in normalized for marker in _UPLOAD_CLIENT_ERRORS) else 500
        return JSONResponse(status_code=status, content={"success": False, "message": result.message})

    transition_workout(workout, "uploaded")
    workout.garmin_workout_id = result.workout_id
    db.commit()

    response = {
        "success": True,
        "message": "Workout uploaded to Garmin.",
        "workoutId": workout.id,
        "status": workout.status,
    }
    if result.workout_id is not None:
        response["garminWorkoutId"] = result.workout_id
    return response


@router.post("/{workout_id}/reject")
async def reject_workout(
    workout_id: str,
    user_id: Annotated[int, Depends(get_current_user_id)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    workout = _get_workout(db, user_id, workout_id)
    transition_workout(workout, "rejected")
    db.commit()
    return {
        "success": True,
        "message": "Workout rejected.",
        "workoutId": workout.id,
        "status": workout.status,
    }
