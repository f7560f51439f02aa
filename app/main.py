"""FastAPI application entry point."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.config import get_settings
from app.exceptions import CoachError
from app.logging_config import configure_logging
from app.routers import garmin, health, workouts
from app.services.credential_vault import CredentialVault
from app.services.workout_generator import WorkoutGenerator


logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Validate configuration once at startup; a bad ENCRYPTION_KEY stops the process."""

    configure_logging()
    settings = get_settings()
    app.state.vault = CredentialVault(settings.encryption_key)
    app.state.workout_generator = WorkoutGenerator(settings)
    logger.info("Workout coach started (AI provider: %s)", settings.ai_provider)
    yield


app = FastAPI(title="Garmin Workout Coach API", lifespan=lifespan)


@app.exception_handler(CoachError)
async def coach_error_handler(request: Request, exc: CoachError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"success": False, "message": exc.message})


@app.get("/health", tags=["system"])
async def health_check() -> dict[str, str]:
    """Simple health probe for liveness checks."""
    return {"status": "ok"}


# Include routers
app.include_router(health.router)
app.include_router(garmin.router)
app.include_router(workouts.router)
