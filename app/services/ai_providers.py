"""Chat completion providers used for workout generation."""
from __future__ import annotations

import logging
from typing import Any, Literal, Protocol, Sequence, TypedDict

from anthropic import AsyncAnthropic
from openai import AsyncOpenAI

from app.config import Settings, is_placeholder_key
from app.exceptions import (
    ConfigurationError,
    ProviderAuthError,
    ProviderError,
    ProviderFailureError,
    ProviderRateLimitError,
    ProviderTimeoutError,
)


logger = logging.getLogger(__name__)

OPENROUTER = "openrouter"
ANTHROPIC = "anthropic"

API_KEY_ENV = {
    OPENROUTER: "OPENROUTER_API_KEY",
    ANTHROPIC: "ANTHROPIC_API_KEY",
}

_AUTH_MARKERS = (
    "401",
    "403",
    "unauthorized",
    "forbidden",
    "auth credentials",
    "authentication",
    "invalid api key",
)


class AIMessage(TypedDict):
    role: Literal["system", "user"]
    content: str


class AIProvider(Protocol):
    name: str

    async def generate_completion(self, messages: Sequence[AIMessage]) -> str:
        ...


def _field(source: Any, name: str) -> Any:
    if isinstance(source, dict):
        return source.get(name)
    return getattr(source, name, None)


def parse_provider_error(error: Any) -> tuple[int | None, str | int | None, str]:
    """
    Pull status, code and message out of an SDK error or a raw error payload.

    Checks the error itself, then its nested ``error`` body, then its cause.
    Both SDKs expose ``status_code`` on status errors; raw payloads use
    ``status`` or ``statusCode``.
    """
    nested = _field(error, "error")
    if nested is None:
        body = _field(error, "body")
        nested = _field(body, "error") if isinstance(body, dict) and "error" in body else body
    cause = _field(error, "cause") or getattr(error, "__cause__", None)

    status = None
    for source in (error, nested):
        for attr in ("status", "status_code", "statusCode"):
            value = _field(source, attr)
            if isinstance(value, int) and not isinstance(value, bool):
                status = value
                break
        if status is not None:
            break

    code = None
    for source in (error, nested):
        value = _field(source, "code")
        if isinstance(value, (str, int)) and not isinstance(value, bool):
            code = value
            break

    message = ""
    for source in (error, nested, cause):
        value = _field(source, "message")
        if isinstance(value, str) and value.strip():
            message = value
            break
    if not message and isinstance(cause, BaseException):
        message = str(cause)
    if not message and not isinstance(error, dict):
        message = str(error)

    return status, code, message


def map_provider_error(provider: str, error: Any) -> ProviderError:
    """Normalise any provider failure; the raw provider text is never surfaced."""

    status, _code, message = parse_provider_error(error)
    normalized = message.lower()

    if status in (401, 403) or any(marker in normalized for marker in _AUTH_MARKERS):
        return ProviderAuthError(
            provider,
            f"AI provider authentication failed ({provider}). "
            f"Update {API_KEY_ENV.get(provider, 'the API key')} in .env.",
        )
    if status == 429 or "rate limit" in normalized:
        return ProviderRateLimitError(provider, f"AI provider rate limit reached ({provider}). Please retry soon.")
    if "timeout" in normalized or "timed out" in normalized or "timeout" in type(error).__name__.lower():
        return ProviderTimeoutError(provider, f"AI provider timed out ({provider}). Please retry.")
    return ProviderFailureError(provider, f"AI provider request failed ({provider}).")


def merge_messages(messages: Sequence[AIMessage], role: str) -> str:
    return "\n\n".join(message["content"] for message in messages if message["role"] == role).strip()


class OpenRouterProvider:
    """OpenAI-compatible chat completions through OpenRouter, JSON output forced."""

    name = OPENROUTER

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str,
        timeout: float,
        max_tokens: int = 8192,
        temperature: float = 0.7,
    ) -> None:
        self.client = AsyncOpenAI(api_key=api_key, base_url=base_url, timeout=timeout)
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature

    async def generate_completion(self, messages: Sequence[AIMessage]) -> str:
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                response_format={"type": "json_object"},
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                messages=[{"role": m["role"], "content": m["content"]} for m in messages],
            )
        except Exception as err:
            logger.warning("OpenRouter completion failed: %s", type(err).__name__)
            raise map_provider_error(self.name, err) from err

        content = response.choices[0].message.content if response.choices else None
        if not isinstance(content, str) or not content.strip():
            raise ProviderFailureError(self.name, "AI provider returned an empty response.")
        return content


class AnthropicProvider:
    """Anthropic Messages API; system text is passed separately from the user turn."""

    name = ANTHROPIC

    def __init__(
        self,
        api_key: str,
        model: str,
        timeout: float,
        max_tokens: int = 8192,
        temperature: float = 0.7,
    ) -> None:
        self.client = AsyncAnthropic(api_key=api_key, timeout=timeout)
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature

    async def generate_completion(self, messages: Sequence[AIMessage]) -> str:
        request_payload: dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "messages": [{"role": "user", "content": merge_messages(messages, "user")}],
        }
        system_prompt = merge_messages(messages, "system")
        if system_prompt:
            request_payload["system"] = system_prompt

        try:
            response = await self.client.messages.create(**request_payload)
        except Exception as err:
            logger.warning("Anthropic completion failed: %s", type(err).__name__)
            raise map_provider_error(self.name, err) from err

        content = "\n".join(
            block.text for block in response.content if getattr(block, "type", None) == "text"
        ).strip()
        if not content:
            raise ProviderFailureError(self.name, "AI provider returned an empty response.")
        return content


def resolve_ai_provider(settings: Settings) -> AIProvider:
    """Build the provider named by AI_PROVIDER, or fail naming the missing variable."""

    provider = settings.ai_provider

    if provider == OPENROUTER:
        if is_placeholder_key(settings.openrouter_api_key):
            raise ConfigurationError(
                "AI provider configuration error: OPENROUTER_API_KEY is required when AI_PROVIDER=openrouter."
            )
        return OpenRouterProvider(
            api_key=settings.openrouter_api_key,
            model=settings.openrouter_model,
            base_url=settings.openrouter_api_url,
            timeout=settings.ai_request_timeout_seconds,
            max_tokens=settings.ai_max_tokens,
            temperature=settings.ai_temperature,
        )

    if provider == ANTHROPIC:
        if is_placeholder_key(settings.anthropic_api_key):
            raise ConfigurationError(
                "AI provider configuration error: ANTHROPIC_API_KEY is required when AI_PROVIDER=anthropic."
            )
        return AnthropicProvider(
            api_key=settings.anthropic_api_key,
            model=settings.anthropic_model,
            timeout=settings.ai_request_timeout_seconds,
            max_tokens=settings.ai_max_tokens,
            temperature=settings.ai_temperature,
        )

    raise ConfigurationError(
        f"AI provider configuration error: Unsupported AI_PROVIDER '{provider}'. Use 'openrouter' or 'anthropic'."
    )
