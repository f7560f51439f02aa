"""Garmin connection and sync endpoints."""
from __future__ import annotations

import asyncio
import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import get_connector, get_current_user_id, get_sync_service, read_json_body
from app.exceptions import ValidationError
from app.models.database_models import User
from app.models.schemas import GarminConnectRequest, SyncRequest
from app.services.garmin_adapter import GarminConnector
from app.services.sync_service import SyncService, resolve_date_range


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/garmin", tags=["garmin"])


def _get_user(db: Session, user_id: int) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise ValidationError("User not found.", status_code=404)
    return user


@router.post("/connect")
async def connect_garmin(
    request: Request,
    user_id: Annotated[int, Depends(get_current_user_id)],
    db: Annotated[Session, Depends(get_db)],
    connector: Annotated[GarminConnector, Depends(get_connector)],
) -> dict:
    """Log in to Garmin with the submitted credentials and store them encrypted."""

    body = await read_json_body(request)
    try:
        credentials = GarminConnectRequest.model_validate(body)
    except PydanticValidationError as err:
        raise ValidationError("Email and password are required.") from err

    user = _get_user(db, user_id)
    blob = await asyncio.to_thread(connector.connect, credentials.email, credentials.password)

    user.encrypted_credential = blob
    user.garmin_connected = True
    db.commit()
    logger.info("Garmin connected for user %s", user_id)
    return {"success": True, "message": "Garmin connected."}


@router.post("/disconnect")
async def disconnect_garmin(
    user_id: Annotated[int, Depends(get_current_user_id)],
    db: Annotated[Session, Depends(get_db)],
) -> dict:
    user = _get_user(db, user_id)
    user.encrypted_credential = None
    user.garmin_connected = False
    db.commit()
    logger.info("Garmin disconnected for user %s", user_id)
    return {"success": True, "message": "Garmin disconnected."}


@router.post("/sync")
async def sync_garmin(
    request: Request,
    user_id: Annotated[int, Depends(get_current_user_id)],
    service: Annotated[SyncService, Depends(get_sync_service)],
):
    """
    Sync activities, daily health and running fitness for a date range.

    Body (optional): {"startDate": "YYYY-MM-DD", "endDate": "YYYY-MM-DD"};
    defaults to the last 30 days. Any failed sync turns the whole response
    into a 500 that lists each sync's own result.
    """
    body = await read_json_body(request, allow_empty=True)
    payload = SyncRequest.model_validate(
        {
            "startDate": body.get("startDate") if isinstance(body.get("startDate"), str) else None,
            "endDate": body.get("endDate") if isinstance(body.get("endDate"), str) else None,
        }
    )
    start, end = resolve_date_range(payload.start_date, payload.end_date)

    report = await service.sync_all(user_id, start, end)
    if not report.success:
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "message": "Garmin sync failed.",
                "details": report.model_dump(),
            },
        )

    return {
        "success": True,
        "message": "Garmin sync complete.",
        "activitiesSynced": report.activities.count,
        "healthDaysSynced": report.health.count,
        "fitnessSynced": report.fitness.synced,
    }
