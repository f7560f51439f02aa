"""Tests for the Garmin client adapter, connector and error classification."""
from __future__ import annotations

import json
from datetime import date
from types import SimpleNamespace

import httpx
import pytest

from app.exceptions import (
    AuthError,
    CapabilityError,
    CredentialCorruptedError,
    NetworkError,
    RateLimitError,
    UnknownError,
    ValidationError,
)
from app.models.database_models import User
from app.services import garmin_adapter
from app.services.garmin_adapter import (
    PROVIDER_TAG,
    Capability,
    GarminAdapter,
    GarminConnector,
    GarminHttpFallback,
    classify_garmin_error,
    detect_capabilities,
)


@pytest.mark.parametrize(
    "error, expected",
    [
        (Exception("Authentication failed for user"), AuthError),
        (Exception("HTTP 401"), AuthError),
        (Exception("429 Client Error"), RateLimitError),
        (Exception("Too Many Requests"), RateLimitError),
        (Exception("Failed to establish a new connection"), NetworkError),
        (Exception("boom"), UnknownError),
    ],
)
def test_classify_garmin_error(error, expected):
    classified = classify_garmin_error(error)

    assert isinstance(classified, expected)


def test_classify_uses_response_status_and_hides_auth_details():
    error = Exception("Client Error")
    error.response = SimpleNamespace(status_code=401)

    classified = classify_garmin_error(error)

    assert isinstance(classified, AuthError)
    assert classified.status_code == 401
    assert classified.message == "Invalid Garmin email or password."


def test_classify_passes_typed_errors_through():
    typed = CapabilityError("sleep")

    assert classify_garmin_error(typed) is typed


class MinimalClient:
    def get_sleep_data(self, cdate):
        return {"day": cdate}


@pytest.mark.asyncio
async def test_missing_upload_method_is_capability_error():
    adapter = GarminAdapter(MinimalClient())

    with pytest.raises(CapabilityError) as exc_info:
        await adapter.upload_workout({"workoutName": "Easy"})

    assert "operation unsupported" in exc_info.value.message
    assert exc_info.value.status_code == 501
    assert adapter.capabilities == [Capability.SLEEP]


@pytest.mark.asyncio
async def test_tries_object_argument_shape():
    class ObjectArgsClient:
        def __init__(self):
            self.received = None

        def getActivitiesByDate(self, query):
            self.received = query
            return {"activityList": [{"activityId": 1}]}

    client = ObjectArgsClient()
    activities = await GarminAdapter(client).get_activities(date(2026, 2, 1), date(2026, 2, 3))

    assert activities == [{"activityId": 1}]
    assert client.received == {"startDate": "2026-02-01", "endDate": "2026-02-03", "activityType": "running"}


@pytest.mark.asyncio
async def test_failed_call_is_classified():
    class FlakyClient:
        def get_sleep_data(self, cdate):
            raise RuntimeError("429 Too Many Requests")

    with pytest.raises(RateLimitError):
        await GarminAdapter(FlakyClient()).get_sleep_data(date(2026, 2, 1))


@pytest.mark.asyncio
async def test_stored_capabilities_limit_bound_methods():
    adapter = GarminAdapter(MinimalClient(), capabilities=["hrv", "bogus"])

    assert adapter.capabilities == [Capability.HRV]
    with pytest.raises(CapabilityError):
        await adapter.get_sleep_data(date(2026, 2, 1))


@pytest.mark.asyncio
async def test_paginates_when_no_date_range_method(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(garmin_adapter, "ACTIVITY_PAGE_SIZE", 2)

    class PagedClient:
        def __init__(self):
            self.calls = []
            self.items = [
                {"activityId": day, "startTimeLocal": f"2026-02-{day:02d} 07:00:00"}
                for day in (10, 9, 8, 7, 6, 5)
            ]

        def get_activities(self, start, limit):
            self.calls.append((start, limit))
            return self.items[start:start + limit]

    client = PagedClient()
    activities = await GarminAdapter(client).get_activities(date(2026, 2, 7), date(2026, 2, 9))

    assert [item["activityId"] for item in activities] == [9, 8, 7]
    assert client.calls == [(0, 2), (2, 2), (4, 2)]


@pytest.mark.asyncio
async def test_http_fallback_used_only_when_capability_missing():
    class DummyFallback:
        def __init__(self):
            self.days = []

        async def get_hrv_data(self, day):
            self.days.append(day)
            return {"hrvSummary": {"weeklyAvg": 50}}

    fallback = DummyFallback()
    adapter = GarminAdapter(MinimalClient(), http_fallback=fallback)

    assert await adapter.get_hrv_data(date(2026, 2, 2)) == {"hrvSummary": {"weeklyAvg": 50}}
    assert fallback.days == ["2026-02-02"]


@pytest.mark.asyncio
async def test_http_fallback_fetches_race_predictions(monkeypatch: pytest.MonkeyPatch):
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append((request.url.path, request.headers.get("Authorization")))
        if request.url.path == "/userprofile-service/socialProfile":
            return httpx.Response(200, json={"displayName": "runner-42"})
        return httpx.Response(200, json={"time10K": 2400})

    real_client = httpx.AsyncClient
    monkeypatch.setattr(
        garmin_adapter.httpx,
        "AsyncClient",
        lambda **kwargs: real_client(transport=httpx.MockTransport(handler), **kwargs),
    )

    client = SimpleNamespace(
        garth=SimpleNamespace(domain="garmin.com", oauth2_token=SimpleNamespace(access_token="tok")),
    )
    fallback = GarminHttpFallback(client)

    assert await fallback.get_race_predictions() == {"time10K": 2400}
    assert seen == [
        ("/userprofile-service/socialProfile", "Bearer tok"),
        ("/metrics-service/metrics/racepredictions/latest/runner-42", "Bearer tok"),
    ]


@pytest.mark.asyncio
async def test_http_fallback_without_token_is_capability_error():
    fallback = GarminHttpFallback(SimpleNamespace(garth=SimpleNamespace(domain="garmin.com")))

    with pytest.raises(CapabilityError):
        await fallback.get_hrv_data("2026-02-02")


def test_connect_seals_credentials_and_capabilities(connector: GarminConnector, vault):
    blob = connector.connect("runner@example.com", "hunter2")

    assert b"hunter2" not in blob
    payload = connector.decrypt_payload(blob)
    assert payload["provider"] == PROVIDER_TAG
    assert payload["credentials"] == {"email": "runner@example.com", "password": "hunter2"}
    assert "uploadWorkout" in payload["capabilities"]
    assert "connectedAt" in payload


def test_connect_with_wrong_password_is_auth_error(connector: GarminConnector):
    with pytest.raises(AuthError) as exc_info:
        connector.connect("runner@example.com", "wrong")

    assert exc_info.value.message == "Invalid Garmin email or password."


def test_client_without_login_method_is_capability_error(vault):
    class NoLoginClient:
        def __init__(self, *args):
            self.args = args

    connector = GarminConnector(vault, client_module=SimpleNamespace(Garmin=NoLoginClient))

    with pytest.raises(CapabilityError):
        connector.create_client("runner@example.com", "hunter2")


def test_session_tokens_are_stored_and_resumed(vault):
    class TokenClient:
        logins: list = []

        def __init__(self, email=None, password=None):
            self.garth = SimpleNamespace(dumps=lambda: "saved-garth-tokens")

        def login(self, tokenstore=None):
            TokenClient.logins.append(tokenstore)

    connector = GarminConnector(vault, client_module=SimpleNamespace(Garmin=TokenClient))
    payload = connector.decrypt_payload(connector.connect("runner@example.com", "hunter2"))

    assert payload["sessionData"] == "saved-garth-tokens"

    connector.open_adapter(payload)
    assert TokenClient.logins[-1] == "saved-garth-tokens"


def test_decrypt_payload_rejects_foreign_provider(connector: GarminConnector, vault):
    blob = vault.encrypt_text(json.dumps({"provider": "strava", "credentials": {"email": "a", "password": "b"}}))

    with pytest.raises(CredentialCorruptedError):
        connector.decrypt_payload(blob)


def test_load_payload_requires_connection(connector: GarminConnector, session_factory, user: User):
    with session_factory() as db:
        with pytest.raises(ValidationError) as exc_info:
            connector.load_payload(db, user.id)

    assert exc_info.value.message == "Garmin not connected."


def test_detect_capabilities_on_fake_client(fake_garmin_module):
    capabilities = detect_capabilities(fake_garmin_module.Garmin())

    assert set(capabilities) == set(Capability)


class TokenStore:
    """Mimics the ``client`` attribute garminconnect 0.3 uses in place of ``garth``."""

    domain = "garmin.com"

    def dumps(self):
        return "saved-client-tokens"

    def get_api_headers(self):
        return {"Authorization": "Bearer client-tok", "DI-Backend": "connectapi.garmin.com"}


def test_session_tokens_read_from_client_attribute(vault):
    class ModernClient:
        logins: list = []

        def __init__(self, email=None, password=None):
            self.client = TokenStore()

        def login(self, tokenstore=None):
            ModernClient.logins.append(tokenstore)

    connector = GarminConnector(vault, client_module=SimpleNamespace(Garmin=ModernClient))
    payload = connector.decrypt_payload(connector.connect("runner@example.com", "hunter2"))

    assert payload["sessionData"] == "saved-client-tokens"
    connector.open_adapter(payload)
    assert ModernClient.logins[-1] == "saved-client-tokens"


@pytest.mark.asyncio
async def test_http_fallback_uses_client_attribute_headers(monkeypatch: pytest.MonkeyPatch):
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append((request.url.host, request.url.path, request.headers.get("Authorization")))
        return httpx.Response(200, json={"hrvSummary": {"weeklyAvg": 50}})

    real_client = httpx.AsyncClient
    monkeypatch.setattr(
        garmin_adapter.httpx,
        "AsyncClient",
        lambda **kwargs: real_client(transport=httpx.MockTransport(handler), **kwargs),
    )

    fallback = GarminHttpFallback(SimpleNamespace(client=TokenStore()))

    assert await fallback.get_hrv_data("2026-02-02") == {"hrvSummary": {"weeklyAvg": 50}}
    assert seen == [("connectapi.garmin.com", "/hrv-service/hrv/2026-02-02", "Bearer client-tok")]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status, expected",
    [
        (401, AuthError),
        (403, UnknownError),
        (404, UnknownError),
        (429, RateLimitError),
        (500, NetworkError),
    ],
)
async def test_http_fallback_failures_classified_by_status(monkeypatch: pytest.MonkeyPatch, status, expected):
    real_client = httpx.AsyncClient
    monkeypatch.setattr(
        garmin_adapter.httpx,
        "AsyncClient",
        lambda **kwargs: real_client(
            transport=httpx.MockTransport(lambda request: httpx.Response(status)), **kwargs
        ),
    )
    client = SimpleNamespace(
        garth=SimpleNamespace(domain="garmin.com", oauth2_token=SimpleNamespace(access_token="tok")),
    )
    adapter = GarminAdapter(client, http_fallback=GarminHttpFallback(client))

    with pytest.raises(expected) as exc_info:
        await adapter.get_hrv_data(date(2026, 2, 2))

    assert type(exc_info.value) is expected
    if expected in (UnknownError, NetworkError):
        assert f"HTTP {status}" in exc_info.value.message
