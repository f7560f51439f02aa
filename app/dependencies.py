"""FastAPI dependency wiring for services and caller identity."""
from __future__ import annotations

import json
from typing import Annotated, Any

from fastapi import Depends, Header, Request
from sqlalchemy.orm import sessionmaker

from app.config import Settings, get_settings
from app.database import SessionLocal
from app.exceptions import AuthError, ValidationError
from app.services.credential_vault import CredentialVault
from app.services.garmin_adapter import GarminConnector
from app.services.sync_service import SyncService
from app.services.workout_generator import WorkoutGenerator


def get_current_user_id(x_user_id: Annotated[str | None, Header()] = None) -> int:
    """Caller identity as forwarded by the auth layer in ``X-User-Id``."""

    try:
        user_id = int(x_user_id) if x_user_id is not None else 0
    except ValueError:
        user_id = 0
    if user_id <= 0:
        raise AuthError("Unauthorized.")
    return user_id


def get_session_factory() -> sessionmaker:
    return SessionLocal


def get_vault(request: Request) -> CredentialVault:
    return request.app.state.vault


def get_connector(
    vault: Annotated[CredentialVault, Depends(get_vault)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> GarminConnector:
    return GarminConnector(vault, http_timeout=settings.garmin_http_timeout_seconds)


def get_sync_service(
    connector: Annotated[GarminConnector, Depends(get_connector)],
    session_factory: Annotated[sessionmaker, Depends(get_session_factory)],
) -> SyncService:
    return SyncService(connector, session_factory)


def get_workout_generator(request: Request) -> WorkoutGenerator:
    return request.app.state.workout_generator


async def read_json_body(request: Request, *, allow_empty: bool = False) -> dict[str, Any]:
    """Parse a JSON object body; malformed input is a 400, not a 422."""

    raw = await request.body()
    if not raw.strip():
        if allow_empty:
            return {}
        raise ValidationError("Invalid request payload.")
    try:
        body = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as err:
        raise ValidationError("Invalid request payload.") from err
    if not isinstance(body, dict):
        raise ValidationError("Invalid request payload.")
    return body
