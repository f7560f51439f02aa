"""Error taxonomy shared by the Garmin integration and the workout pipeline."""
from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    AUTH = "auth"
    RATE_LIMIT = "rate_limit"
    NETWORK = "network"
    CAPABILITY = "capability"
    CONFIGURATION = "configuration"
    VALIDATION = "validation"
    UNKNOWN = "unknown"


class CoachError(Exception):
    """Base class for expected failures that carry a user-safe message."""

    kind: ErrorKind = ErrorKind.UNKNOWN
    status_code: int = 500

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class AuthError(CoachError):
    kind = ErrorKind.AUTH
    status_code = 401


class RateLimitError(CoachError):
    kind = ErrorKind.RATE_LIMIT
    status_code = 500


class NetworkError(CoachError):
    kind = ErrorKind.NETWORK
    status_code = 500


class UnknownError(CoachError):
    kind = ErrorKind.UNKNOWN
    status_code = 500


class CapabilityError(CoachError):
    """The connected Garmin client cannot perform a canonical operation."""

    kind = ErrorKind.CAPABILITY
    status_code = 501

    def __init__(self, operation: str, message: str | None = None) -> None:
        super().__init__(
            message
            or f"Garmin operation '{operation}' is unsupported by the connected client (operation unsupported)."
        )
        self.operation = operation


class ConfigurationError(CoachError):
    """Missing or malformed process configuration. Fatal at startup."""

    kind = ErrorKind.CONFIGURATION
    status_code = 500


class ValidationError(CoachError):
    kind = ErrorKind.VALIDATION
    status_code = 400


class CredentialCorruptedError(ValidationError):
    """Encrypted credential blob failed its format or authentication check."""

    def __init__(self, message: str = "Stored Garmin session is invalid. Please reconnect Garmin.") -> None:
        super().__init__(message)


class FitnessProfileMissingError(ValidationError):
    def __init__(self) -> None:
        super().__init__("No fitness profile found. Please sync Garmin data first.")


class WorkoutStateError(ValidationError):
    pass


class WorkoutResponseError(ValidationError):
    """AI output could not be turned into a Garmin workout."""

    UNPARSEABLE = "unparseable"
    MISSING_FIELDS = "missing_fields"

    status_code = 500

    def __init__(self, reason: str) -> None:
        if reason == self.UNPARSEABLE:
            message = "Failed to parse workout JSON from AI response."
        else:
            message = "Workout is missing required Garmin fields."
        super().__init__(message)
        self.reason = reason


class ProviderError(CoachError):
    """Failure reported by an AI completion provider."""

    def __init__(self, provider: str, message: str) -> None:
        super().__init__(message)
        self.provider = provider


class ProviderAuthError(ProviderError):
    kind = ErrorKind.CONFIGURATION
    status_code = 500


class ProviderRateLimitError(ProviderError):
    kind = ErrorKind.RATE_LIMIT
    status_code = 503


class ProviderTimeoutError(ProviderError):
    kind = ErrorKind.NETWORK
    status_code = 504


class ProviderFailureError(ProviderError):
    kind = ErrorKind.UNKNOWN
    status_code = 500
