"""Canonical Garmin Connect operations over whatever client surface is installed.

The garminconnect package has renamed methods and changed signatures between
releases, so the client is probed once when a session is opened: constructor,
login method and argument shapes are tried in order, and each canonical
operation is bound to the aliases the client actually exposes. Operations the
client lacks fall back to direct Connect API calls where an endpoint is known.
"""
from __future__ import annotations

import asyncio
import inspect
import json
import logging
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Callable, Iterable, Sequence

import app.compat  # noqa: F401  # must run before garminconnect is imported
import garminconnect
import httpx
from sqlalchemy.orm import Session

from app.exceptions import (
    AuthError,
    CapabilityError,
    CoachError,
    CredentialCorruptedError,
    NetworkError,
    RateLimitError,
    UnknownError,
    ValidationError,
)
from app.models.database_models import User
from app.services.credential_vault import CredentialVault
from app.services.field_mapper import as_dict, extract_activity_day


logger = logging.getLogger(__name__)

PROVIDER_TAG = "garmin-connect"

ACTIVITY_PAGE_SIZE = 100
ACTIVITY_MAX_PAGES = 20


class Capability(str, Enum):
    ACTIVITIES = "activities"
    SLEEP = "sleep"
    HRV = "hrv"
    RESTING_HR = "restingHr"
    RACE_PREDICTIONS = "racePredictions"
    UPLOAD_WORKOUT = "uploadWorkout"


CLIENT_CONSTRUCTORS = ("GarminConnect", "Garmin", "default")
LOGIN_ALIASES = ("login", "authenticate", "connect", "signIn")

ACTIVITIES_BY_DATE_ALIASES = ("getActivitiesByDate", "get_activities_by_date")
ACTIVITIES_PAGED_ALIASES = ("getActivities", "get_activities")
SLEEP_ALIASES = ("getSleepData", "get_sleep_data")
HRV_ALIASES = ("getHrvData", "get_hrv_data")
RESTING_HR_ALIASES = ("getHeartRates", "get_heart_rates", "getRestingHeartRate")
RACE_PREDICTION_ALIASES = ("getRacePredictions", "get_race_predictions")
UPLOAD_WORKOUT_ALIASES = ("uploadWorkout", "upload_workout")

CAPABILITY_ALIASES: dict[Capability, tuple[str, ...]] = {
    Capability.ACTIVITIES: ACTIVITIES_BY_DATE_ALIASES + ACTIVITIES_PAGED_ALIASES,
    Capability.SLEEP: SLEEP_ALIASES,
    Capability.HRV: HRV_ALIASES,
    Capability.RESTING_HR: RESTING_HR_ALIASES,
    Capability.RACE_PREDICTIONS: RACE_PREDICTION_ALIASES,
    Capability.UPLOAD_WORKOUT: UPLOAD_WORKOUT_ALIASES,
}

ACTIVITY_LIST_KEYS = ("activities", "activityList", "items")


def classify_garmin_error(error: BaseException | None) -> CoachError:
    """Map a raw client or transport failure onto the error taxonomy.

    Typed errors pass through untouched. Auth failures never echo the raw
    message back to the caller.
    """

    if isinstance(error, CoachError):
        return error

    message = str(error) if error is not None else "unknown error"
    status = _response_status(error)
    if status is not None:
        return _classify_status(status)

    normalized = message.lower()

    if any(marker in normalized for marker in ("invalid", "authentication", "credential", "401")):
        return AuthError("Invalid Garmin email or password.")
    if "too many" in normalized or "429" in normalized:
        return RateLimitError("Garmin rate limit reached. Please retry later.")
    if "connect" in normalized or "network" in normalized:
        return NetworkError("Could not connect to Garmin right now.")
    return UnknownError(f"Garmin connection failed: {message}")


def _classify_status(status: int) -> CoachError:
    # response status wins over message text
    if status == 401:
        return AuthError("Invalid Garmin email or password.")
    if status == 429:
        return RateLimitError("Garmin rate limit reached. Please retry later.")
    if status >= 500:
        return NetworkError(f"Garmin Connect is unavailable right now (HTTP {status}).")
    return UnknownError(f"Garmin request failed (HTTP {status}).")


def _response_status(error: BaseException | None) -> int | None:
    # garth wraps the requests error; httpx carries the response directly
    for candidate in (error, getattr(error, "error", None)):
        response = getattr(candidate, "response", None)
        status = getattr(response, "status_code", None)
        if isinstance(status, int):
            return status
    return None


def detect_capabilities(client: Any) -> list[Capability]:
    return [
        capability
        for capability, aliases in CAPABILITY_ALIASES.items()
        if any(callable(getattr(client, alias, None)) for alias in aliases)
    ]


def parse_capabilities(values: Iterable[Any]) -> list[Capability]:
    parsed = []
    for value in values:
        try:
            parsed.append(Capability(value))
        except ValueError:
            logger.debug("Ignoring unknown stored Garmin capability %r", value)
    return parsed


def _accepts(method: Callable[..., Any], args: Sequence[Any]) -> bool:
    """True when ``args`` bind to the method's signature (or it cannot be inspected)."""

    try:
        inspect.signature(method).bind(*args)
    except TypeError:
        return False
    except ValueError:
        return True
    return True


def normalize_activity_response(value: Any) -> list[Any]:
    if isinstance(value, list):
        return value
    payload = as_dict(value)
    if payload is None:
        return []
    for key in ACTIVITY_LIST_KEYS:
        candidate = payload.get(key)
        if isinstance(candidate, list):
            return candidate
    return []


def session_client(client: Any) -> Any:
    """The object holding Garmin OAuth tokens: ``garth`` on 0.2 clients, ``client`` on 0.3."""

    for attr in ("garth", "client"):
        candidate = getattr(client, attr, None)
        if candidate is not None and candidate is not client:
            return candidate
    return None


def extract_session_data(client: Any) -> str | None:
    """Serialised OAuth tokens, when the client exposes them."""

    dumps = getattr(session_client(client), "dumps", None)
    if not callable(dumps):
        return None
    try:
        session = dumps()
    except Exception:  # tokens missing after a partial login
        logger.warning("Could not serialise Garmin session tokens", exc_info=True)
        return None
    return session if isinstance(session, str) else None


class GarminHttpFallback:
    """Direct Connect API calls for operations the installed client lacks."""

    def __init__(self, client: Any, timeout: float = 30.0) -> None:
        self._client = client
        self._timeout = timeout
        self._display_name: str | None = None

    def _base_url(self, operation: str) -> str:
        explicit = getattr(self._client, "connectapi_url", None) or getattr(self._client, "base_url", None)
        if isinstance(explicit, str) and explicit:
            return explicit.rstrip("/")
        domain = getattr(session_client(self._client), "domain", None)
        if isinstance(domain, str) and domain:
            return f"https://connectapi.{domain}"
        raise CapabilityError(operation)

    def _headers(self, operation: str) -> dict[str, str]:
        tokens = session_client(self._client)
        headers = {"User-Agent": "GCM-iOS-5.7.2.1"}
        token = getattr(getattr(tokens, "oauth2_token", None), "access_token", None)
        if token:
            headers["Authorization"] = f"Bearer {token}"
            return headers

        get_api_headers = getattr(tokens, "get_api_headers", None)
        if callable(get_api_headers):
            try:
                api_headers = get_api_headers()
            except Exception:  # not logged in yet
                logger.debug("Garmin client has no API headers for %s", operation, exc_info=True)
                api_headers = None
            if isinstance(api_headers, dict) and api_headers.get("Authorization"):
                headers.update({str(key): str(value) for key, value in api_headers.items()})
                return headers
        raise CapabilityError(operation)

    async def _get(self, operation: str, path: str, params: dict[str, str] | None = None) -> Any:
        url = f"{self._base_url(operation)}{path}"
        async with httpx.AsyncClient(timeout=self._timeout) as http:
            response = await http.get(url, headers=self._headers(operation), params=params)
            response.raise_for_status()
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    async def _resolve_display_name(self, operation: str) -> str:
        if self._display_name:
            return self._display_name

        name = getattr(self._client, "display_name", None)
        if not name:
            social = await self._get(operation, "/userprofile-service/socialProfile")
            name = (as_dict(social) or {}).get("displayName")
        if not name:
            raise CapabilityError(operation, "Garmin display name could not be resolved (operation unsupported).")

        self._display_name = str(name)
        return self._display_name

    async def get_race_predictions(self) -> Any:
        operation = Capability.RACE_PREDICTIONS.value
        display_name = await self._resolve_display_name(operation)
        return await self._get(operation, f"/metrics-service/metrics/racepredictions/latest/{display_name}")

    async def get_hrv_data(self, day: str) -> Any:
        return await self._get(Capability.HRV.value, f"/hrv-service/hrv/{day}")

    async def get_resting_heart_rate(self, day: str) -> Any:
        operation = Capability.RESTING_HR.value
        display_name = await self._resolve_display_name(operation)
        return await self._get(
            operation,
            f"/wellness-service/wellness/dailyHeartRate/{display_name}",
            params={"date": day},
        )


class GarminAdapter:
    """Canonical async operations bound once to a logged-in client.

    Usage:
        adapter = connector.open_adapter(payload)
        activities = await adapter.get_activities(start, end)
    """

    def __init__(
        self,
        client: Any,
        capabilities: Iterable[Capability] | None = None,
        http_fallback: GarminHttpFallback | None = None,
    ) -> None:
        self._client = client
        if capabilities is None:
            self.capabilities = detect_capabilities(client)
        else:
            self.capabilities = parse_capabilities(capabilities)
        self._methods = self._bind_methods(client, self.capabilities)
        self._http = http_fallback or GarminHttpFallback(client)

    @staticmethod
    def _bind_methods(client: Any, capabilities: Iterable[Capability]) -> dict[str, Callable[..., Any]]:
        methods: dict[str, Callable[..., Any]] = {}
        for capability in capabilities:
            for alias in CAPABILITY_ALIASES[capability]:
                method = getattr(client, alias, None)
                if callable(method):
                    methods[alias] = method
        return methods

    def invoke(self, operation: str, aliases: Sequence[str], arg_shapes: Sequence[Sequence[Any]]) -> Any:
        """Call the first bound alias that accepts one of ``arg_shapes``.

        Raises CapabilityError when no alias is bound or none accepts any
        shape. A call that starts and fails is retried with the remaining
        shapes and aliases; if all fail, the last failure is raised.
        """

        last_error: Exception | None = None
        for alias in aliases:
            method = self._methods.get(alias)
            if method is None:
                continue
            for args in arg_shapes:
                if not _accepts(method, args):
                    continue
                try:
                    return method(*args)
                except Exception as err:
                    logger.debug("Garmin %s(%d args) failed: %s", alias, len(args), err)
                    last_error = err

        if last_error is not None:
            raise last_error
        raise CapabilityError(operation)

    async def _call(self, operation: str, aliases: Sequence[str], arg_shapes: Sequence[Sequence[Any]]) -> Any:
        try:
            return await asyncio.to_thread(self.invoke, operation, aliases, arg_shapes)
        except CapabilityError:
            raise
        except Exception as err:
            raise classify_garmin_error(err) from err

    async def _with_http_fallback(self, operation: Capability, call, fallback) -> Any:
        try:
            return await call()
        except CapabilityError:
            logger.info("Garmin client lacks %s; using Connect API fallback", operation.value)
        try:
            return await fallback()
        except CoachError:
            raise
        except Exception as err:
            raise classify_garmin_error(err) from err

    async def get_activities(self, start: date, end: date) -> list[Any]:
        start_text, end_text = start.isoformat(), end.isoformat()
        try:
            response = await self._call(
                Capability.ACTIVITIES.value,
                ACTIVITIES_BY_DATE_ALIASES,
                [
                    (start_text, end_text, "running"),
                    (start_text, end_text),
                    ({"startDate": start_text, "endDate": end_text, "activityType": "running"},),
                ],
            )
            return normalize_activity_response(response)
        except CapabilityError:
            logger.debug("No date-range activity method; paging through activities")

        try:
            return await asyncio.to_thread(self._paginate_activities, start, end)
        except CapabilityError:
            raise
        except Exception as err:
            raise classify_garmin_error(err) from err

    def _paginate_activities(self, start: date, end: date) -> list[Any]:
        """Page newest-first until the range is exhausted.

        Assumes pages are ordered newest first; a page whose oldest item
        predates ``start`` ends the walk.
        """

        collected: list[Any] = []
        for page in range(ACTIVITY_MAX_PAGES):
            offset = page * ACTIVITY_PAGE_SIZE
            items = normalize_activity_response(
                self.invoke(
                    Capability.ACTIVITIES.value,
                    ACTIVITIES_PAGED_ALIASES,
                    [(offset, ACTIVITY_PAGE_SIZE), ({"start": offset, "limit": ACTIVITY_PAGE_SIZE},)],
                )
            )
            if not items:
                break

            oldest: date | None = None
            for item in items:
                day = extract_activity_day(item)
                if day is None:
                    continue
                if start <= day <= end:
                    collected.append(item)
                if oldest is None or day < oldest:
                    oldest = day

            if len(items) < ACTIVITY_PAGE_SIZE or (oldest is not None and oldest < start):
                break
        else:
            logger.warning("Stopped paging Garmin activities after %d pages", ACTIVITY_MAX_PAGES)

        return collected

    async def get_sleep_data(self, day: date) -> Any:
        return await self._call(Capability.SLEEP.value, SLEEP_ALIASES, [(day.isoformat(),)])

    async def get_hrv_data(self, day: date) -> Any:
        text = day.isoformat()
        return await self._with_http_fallback(
            Capability.HRV,
            lambda: self._call(Capability.HRV.value, HRV_ALIASES, [(text,)]),
            lambda: self._http.get_hrv_data(text),
        )

    async def get_resting_heart_rate(self, day: date) -> Any:
        text = day.isoformat()
        return await self._with_http_fallback(
            Capability.RESTING_HR,
            lambda: self._call(Capability.RESTING_HR.value, RESTING_HR_ALIASES, [(text,)]),
            lambda: self._http.get_resting_heart_rate(text),
        )

    async def get_race_predictions(self) -> Any:
        return await self._with_http_fallback(
            Capability.RACE_PREDICTIONS,
            lambda: self._call(Capability.RACE_PREDICTIONS.value, RACE_PREDICTION_ALIASES, [(), ({},)]),
            self._http.get_race_predictions,
        )

    async def upload_workout(self, workout_json: dict[str, Any]) -> Any:
        return await self._call(Capability.UPLOAD_WORKOUT.value, UPLOAD_WORKOUT_ALIASES, [(workout_json,)])


class GarminConnector:
    """Opens Garmin sessions and seals the credential payload with the vault."""

    def __init__(self, vault: CredentialVault, client_module: Any = None, http_timeout: float = 30.0) -> None:
        self._vault = vault
        self._module = client_module if client_module is not None else garminconnect
        self._http_timeout = http_timeout

    def _login(self, client: Any, email: str, password: str, session_data: str | None) -> None:
        credential_shapes: list[tuple[Any, ...]] = [
            (email, password),
            ({"email": email, "password": password},),
            (),
        ]
        if session_data:
            # garminconnect resumes garth tokens passed as the tokenstore argument
            credential_shapes.insert(0, (session_data,))

        for alias in LOGIN_ALIASES:
            method = getattr(client, alias, None)
            if not callable(method):
                continue
            last_error: Exception | None = None
            for args in credential_shapes:
                if not _accepts(method, args):
                    continue
                try:
                    method(*args)
                    return
                except Exception as err:
                    last_error = err
            if last_error is not None:
                raise last_error

        raise CapabilityError("login", "No compatible login method found on the Garmin client (operation unsupported).")

    def create_client(self, email: str, password: str, session_data: str | None = None) -> Any:
        """Construct and log in a raw client; the last failure is classified and raised."""

        last_error: Exception | None = None
        for name in CLIENT_CONSTRUCTORS:
            candidate = getattr(self._module, name, None)
            if not callable(candidate):
                continue
            for args in ((), (email, password), ({"email": email, "password": password},)):
                try:
                    client = candidate(*args)
                    self._login(client, email, password, session_data)
                    logger.info("Garmin login succeeded via %s", name)
                    return client
                except Exception as err:
                    last_error = err

        if last_error is None:
            last_error = CapabilityError("login", "No Garmin client constructor is available (operation unsupported).")
        classified = classify_garmin_error(last_error)
        logger.warning("Garmin login failed: %s", classified.kind.value)
        raise classified from last_error

    def connect(self, email: str, password: str) -> bytes:
        """Log in with fresh credentials and return the encrypted payload blob."""

        client = self.create_client(email, password)
        payload = {
            "provider": PROVIDER_TAG,
            "connectedAt": datetime.now(timezone.utc).isoformat(),
            "credentials": {"email": email, "password": password},
            "capabilities": [cap.value for cap in detect_capabilities(client)],
        }
        session_data = extract_session_data(client)
        if session_data is not None:
            payload["sessionData"] = session_data
        return self._vault.encrypt_text(json.dumps(payload))

    def decrypt_payload(self, blob: bytes) -> dict[str, Any]:
        try:
            payload = json.loads(self._vault.decrypt_text(blob))
        except json.JSONDecodeError as err:
            raise CredentialCorruptedError() from err

        if not isinstance(payload, dict) or payload.get("provider") != PROVIDER_TAG:
            raise CredentialCorruptedError()
        credentials = as_dict(payload.get("credentials"))
        if (
            credentials is None
            or not isinstance(credentials.get("email"), str)
            or not isinstance(credentials.get("password"), str)
        ):
            raise CredentialCorruptedError()
        if not isinstance(payload.get("capabilities"), list):
            payload["capabilities"] = []
        return payload

    def open_adapter(self, payload: dict[str, Any]) -> GarminAdapter:
        credentials = payload["credentials"]
        session_data = payload.get("sessionData")
        client = self.create_client(
            credentials["email"],
            credentials["password"],
            session_data if isinstance(session_data, str) else None,
        )
        return GarminAdapter(
            client,
            capabilities=payload.get("capabilities") or None,
            http_fallback=GarminHttpFallback(client, timeout=self._http_timeout),
        )

    def load_payload(self, db: Session, user_id: int) -> dict[str, Any]:
        """Decrypt and validate the user's stored credential payload.

        Raises:
            ValidationError: user missing or Garmin not connected (400)
            CredentialCorruptedError: blob fails decryption or has a bad shape (400)
        """

        user = db.get(User, user_id)
        if user is None or not user.garmin_connected or not user.encrypted_credential:
            raise ValidationError("Garmin not connected.")
        return self.decrypt_payload(user.encrypted_credential)

    def adapter_for_user(self, db: Session, user_id: int) -> GarminAdapter:
        """Blocking login from the stored credential; raises like load_payload or create_client."""

        return self.open_adapter(self.load_payload(db, user_id))
