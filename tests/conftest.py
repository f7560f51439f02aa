"""Pytest configuration for global fixtures and logging setup."""
from __future__ import annotations

import json
import os
from types import SimpleNamespace
from typing import Any, Iterator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENCRYPTION_KEY"] = "0123456789abcdef" * 4
os.environ["AI_PROVIDER"] = "openrouter"
os.environ["OPENROUTER_API_KEY"] = os.environ.get("OPENROUTER_API_KEY") or "test-openrouter-key"
os.environ["ANTHROPIC_API_KEY"] = os.environ.get("ANTHROPIC_API_KEY") or "test-anthropic-key"

from app.logging_config import configure_logging

configure_logging()

from app.config import get_settings
from app.database import Base, build_engine, get_db
from app.dependencies import get_connector, get_session_factory, get_workout_generator
from app.main import app
from app.models import database_models  # noqa: F401
from app.models.database_models import RunningFitnessProfile, User
from app.services.credential_vault import CredentialVault
from app.services.garmin_adapter import GarminConnector
from app.services.workout_generator import WorkoutGenerator


TEST_KEY = os.environ["ENCRYPTION_KEY"]

SAMPLE_WORKOUT = {
    "workoutName": "Tempo 8K",
    "description": "Warm up, 5 km at tempo, cool down",
    "sportType": {"sportTypeId": 1, "sportTypeKey": "running"},
    "estimatedDurationInSecs": 2700,
    "estimatedDistanceInMeters": 8000,
    "workoutSegments": [
        {
            "segmentOrder": 1,
            "sportType": {"sportTypeId": 1, "sportTypeKey": "running"},
            "workoutSteps": [
                {
                    "type": "ExecutableStepDTO",
                    "stepOrder": 1,
                    "stepType": {"stepTypeId": 1, "stepTypeKey": "warmup"},
                    "endCondition": {"conditionTypeId": 3, "conditionTypeKey": "distance"},
                    "endConditionValue": 1500,
                }
            ],
        }
    ],
}


class FakeGarminClient:
    """Stand-in for ``garminconnect.Garmin`` with a canned Connect account."""

    password = "hunter2"
    uploads: list[dict] = []

    def __init__(self, email=None, password=None):
        self.email = email
        self.given_password = password
        self.display_name = "runner"

    def login(self, email=None, password=None):
        if (password or self.given_password) != self.password:
            raise RuntimeError("401 Client Error: Invalid credentials")

    def get_activities_by_date(self, startdate, enddate, activitytype=None):
        return [
            {
                "activityId": 9001,
                "activityName": "Morning Run",
                "startTimeLocal": f"{enddate} 07:00:00",
                "activityType": {"typeKey": "running"},
                "distance": 8000.0,
                "duration": 2400.0,
                "averageSpeed": 3.3333,
            },
            {
                "activityId": 9002,
                "activityName": "Pool Swim",
                "startTimeLocal": f"{enddate} 18:00:00",
                "activityType": {"typeKey": "lap_swimming"},
                "distance": 1500.0,
                "duration": 1800.0,
            },
        ]

    def get_sleep_data(self, cdate):
        return {"dailySleepDTO": {"sleepTimeSeconds": 27000, "sleepScores": {"overall": {"value": 81}}}}

    def get_hrv_data(self, cdate):
        return {"hrvSummary": {"weeklyAvg": 52, "lastNightAvg": 55, "status": "BALANCED"}}

    def get_heart_rates(self, cdate):
        return {"restingHeartRate": 48, "lastSevenDaysAvgRestingHeartRate": 49}

    def get_race_predictions(self):
        return {"time5K": 1150, "time10K": 2400, "timeHalfMarathon": 5350, "timeMarathon": 11200}

    def upload_workout(self, workout_json):
        self.uploads.append(workout_json)
        return {"workoutId": 777001}


class DummyProvider:
    """Records prompts and replies with a canned completion."""

    name = "openrouter"

    def __init__(self, reply: str | None = None, error: Exception | None = None) -> None:
        self.reply = reply if reply is not None else json.dumps(
            {"workout": SAMPLE_WORKOUT, "explanation": "Steady tempo while recovery is good."}
        )
        self.error = error
        self.calls: list[Any] = []

    async def generate_completion(self, messages):
        self.calls.append(messages)
        if self.error is not None:
            raise self.error
        return self.reply


@pytest.fixture()
def session_factory(tmp_path) -> Iterator[sessionmaker]:
    """Fresh SQLite file per test so concurrent short sessions behave like production."""

    engine = build_engine(f"sqlite:///{tmp_path / 'coach.db'}")
    Base.metadata.create_all(engine)
    yield sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    engine.dispose()


@pytest.fixture()
def vault() -> CredentialVault:
    return CredentialVault(TEST_KEY)


@pytest.fixture()
def fake_garmin_module() -> SimpleNamespace:
    FakeGarminClient.uploads = []
    return SimpleNamespace(Garmin=FakeGarminClient)


@pytest.fixture()
def connector(vault: CredentialVault, fake_garmin_module: SimpleNamespace) -> GarminConnector:
    return GarminConnector(vault, client_module=fake_garmin_module)


@pytest.fixture()
def sample_workout() -> dict:
    return json.loads(json.dumps(SAMPLE_WORKOUT))


@pytest.fixture()
def dummy_provider() -> DummyProvider:
    return DummyProvider()


@pytest.fixture()
def user(session_factory: sessionmaker) -> User:
    with session_factory() as db:
        account = User(email="runner@example.com")
        db.add(account)
        db.commit()
        db.refresh(account)
        return account


@pytest.fixture()
def connected_user(session_factory: sessionmaker, connector: GarminConnector, user: User) -> User:
    with session_factory() as db:
        account = db.get(User, user.id)
        account.encrypted_credential = connector.connect("runner@example.com", FakeGarminClient.password)
        account.garmin_connected = True
        db.commit()
        db.refresh(account)
        return account


@pytest.fixture()
def fitness_profile(session_factory: sessionmaker, user: User) -> RunningFitnessProfile:
    with session_factory() as db:
        profile = RunningFitnessProfile(
            user_id=user.id,
            predicted_5k_seconds=1150,
            predicted_10k_seconds=2400,
            easy_pace_low=297,
            easy_pace_high=326,
            tempo_pace=261,
            threshold_pace=247,
            interval_pace=228,
            repetition_pace=213,
        )
        db.add(profile)
        db.commit()
        db.refresh(profile)
        return profile


@pytest.fixture()
def test_client(
    session_factory: sessionmaker,
    connector: GarminConnector,
    dummy_provider: DummyProvider,
) -> Iterator[TestClient]:
    """Provide a FastAPI test client wired to the per-test database and fakes."""

    def override_get_db():
        db = session_factory()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    generator = WorkoutGenerator(get_settings(), provider_factory=lambda settings: dummy_provider)

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_connector] = lambda: connector
    app.dependency_overrides[get_workout_generator] = lambda: generator
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()
