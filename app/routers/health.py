"""Router exposing status, sync freshness and daily health metrics."""
from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import get_current_user_id
from app.exceptions import ValidationError
from app.models.database_models import Activity, DailyHealthReading, RunningFitnessProfile, User
from app.models.schemas import DailyHealthResponse, SyncStatusResponse
from app.services.sync_service import parse_date


logger = logging.getLogger(__name__)

STALENESS_THRESHOLD_HOURS = 24

router = APIRouter(prefix="/api", tags=["health"])


@router.get("/health/status")
async def get_status() -> dict[str, str]:
    """Return a minimal status payload."""
    return {"status": "online"}


@router.get("/health/sync-status")
async def get_sync_status(
    user_id: Annotated[int, Depends(get_current_user_id)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    """
    Check how fresh the caller's synced data is.

    Returns:
        dict: {
            "garmin_connected": bool,
            "last_sync_at": ISO timestamp or None,
            "activity_count": int,
            "health_days": int,
            "has_fitness_profile": bool,
            "is_stale": bool,
            "staleness_threshold_hours": int,
        }
    """
    user = db.get(User, user_id)
    if user is None:
        raise ValidationError("User not found.", status_code=404)

    status = SyncStatusResponse(
        garmin_connected=user.garmin_connected,
        last_sync_at=user.last_sync_at,
        activity_count=db.scalar(select(func.count(Activity.id)).where(Activity.user_id == user_id)) or 0,
        health_days=db.scalar(
            select(func.count(DailyHealthReading.id)).where(DailyHealthReading.user_id == user_id)
        ) or 0,
        has_fitness_profile=db.scalar(
            select(RunningFitnessProfile.id).where(RunningFitnessProfile.user_id == user_id)
        ) is not None,
    )

    is_stale = True
    if status.last_sync_at is not None:
        last_sync = status.last_sync_at
        # stored naive, in UTC
        if last_sync.tzinfo is None:
            last_sync = last_sync.replace(tzinfo=timezone.utc)
        threshold = datetime.now(timezone.utc) - timedelta(hours=STALENESS_THRESHOLD_HOURS)
        is_stale = last_sync < threshold

    return {
        **status.model_dump(mode="json"),
        "is_stale": is_stale,
        "staleness_threshold_hours": STALENESS_THRESHOLD_HOURS,
    }


@router.get("/health-metrics")
async def get_health_metrics(
    user_id: Annotated[int, Depends(get_current_user_id)],
    db: Annotated[Session, Depends(get_db)],
    date_query: Annotated[str | None, Query(alias="date")] = None,
) -> dict:
    """Return the stored health reading for one day (default today), or null."""

    day_text = (date_query or "").strip() or date.today().isoformat()
    reading_date = parse_date(day_text)

    reading = db.scalar(
        select(DailyHealthReading).where(
            DailyHealthReading.user_id == user_id,
            DailyHealthReading.reading_date == reading_date,
        )
    )
    return {
        "success": True,
        "date": day_text,
        "reading": DailyHealthResponse.model_validate(reading).model_dump(mode="json") if reading else None,
    }
