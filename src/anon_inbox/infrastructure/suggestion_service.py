"""
Anon-Inbox Service - Suggestion Service.

Asks an OpenAI-compatible chat-completion API for message prompts that a
visitor can send anonymously. The provider replies with one string of
prompts separated by '||'.

Architecture Layer: Infrastructure
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import httpx
import structlog
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..domain.value_objects import ErrorKind

logger = structlog.get_logger(__name__)

SUGGESTION_SEPARATOR = "||"

DEFAULT_PROMPT = (
    "Create a list of three open-ended and engaging questions formatted as a single string. "
    "Each question should be separated by '||'. These questions are for an anonymous social "
    "messaging platform and should be suitable for a diverse audience. Avoid personal or "
    "sensitive topics, focusing instead on universal themes that encourage friendly interaction."
)


class SuggestionConfig(BaseSettings):
    """
    Suggestion provider configuration.

    Environment Variables:
        SUGGESTION_API_KEY: Provider API key (suggestions disabled when unset)
        SUGGESTION_BASE_URL: API base URL (default: https://api.openai.com/v1)
        SUGGESTION_MODEL: Chat model (default: gpt-3.5-turbo)
        SUGGESTION_TIMEOUT: Request timeout in seconds (default: 15)
        SUGGESTION_PROMPT: User prompt sent to the model
    """

    api_key: str | None = Field(default=None, description="Provider API key")
    base_url: str = Field(default="https://api.openai.com/v1", description="API base URL")
    model: str = Field(default="gpt-3.5-turbo", description="Chat model")
    timeout: float = Field(default=15.0, ge=1.0, le=120.0, description="Request timeout in seconds")
    system_prompt: str = Field(
        default="You are an assistant generating suggestions.",
        description="System message sent to the model",
    )
    prompt: str = Field(default=DEFAULT_PROMPT, description="User prompt sent to the model")

    model_config = SettingsConfigDict(env_prefix="SUGGESTION_", env_file=".env", extra="ignore")

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)


@dataclass
class SuggestionResult:
    """Result of a suggestion request."""
    success: bool = False
    suggestions: list[str] = field(default_factory=list)
    error: str | None = None
    error_kind: ErrorKind | None = None


def split_suggestions(text: str) -> list[str]:
    """Split a provider reply into trimmed, non-empty suggestions."""
    return [part.strip() for part in text.split(SUGGESTION_SEPARATOR) if part.strip()]


class SuggestionService:
    """
    Client for the suggestion provider.

    A transport may be injected for testing (e.g. `httpx.MockTransport`).
    """

    def __init__(
        self,
        config: SuggestionConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config or SuggestionConfig()
        self._transport = transport
        self._stats = {"requests": 0, "failures": 0}

    @property
    def enabled(self) -> bool:
        return self._config.enabled

    async def suggest(self) -> SuggestionResult:
        """
        Fetch a fresh list of suggested messages.

        Returns:
            SuggestionResult with suggestions or the failure kind
        """
        if not self._config.enabled:
            return SuggestionResult(
                error="Suggestions are not configured",
                error_kind=ErrorKind.SERVICE_UNAVAILABLE,
            )

        self._stats["requests"] += 1
        url = f"{self._config.base_url.rstrip('/')}/chat/completions"
        timeout = httpx.Timeout(self._config.timeout)
        payload: dict[str, Any] = {
            "model": self._config.model,
            "messages": [
                {"role": "system", "content": self._config.system_prompt},
                {"role": "user", "content": self._config.prompt},
            ],
        }
        headers = {"Authorization": f"Bearer {self._config.api_key}"}

        try:
            async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
                response = await client.post(url, json=payload, headers=headers)
                response.raise_for_status()
                body = response.json()

            text = body["choices"][0]["message"]["content"] or ""
            suggestions = split_suggestions(text)
            if not suggestions:
                raise ValueError("No suggestions in provider reply")

            logger.info("suggestions_generated", count=len(suggestions), model=self._config.model)
            return SuggestionResult(success=True, suggestions=suggestions)

        except httpx.TimeoutException:
            self._stats["failures"] += 1
            logger.warning("suggestion_provider_timeout", url=url)
            return SuggestionResult(error="Failed to fetch suggestions", error_kind=ErrorKind.INTERNAL_ERROR)
        except httpx.HTTPStatusError as e:
            self._stats["failures"] += 1
            logger.warning("suggestion_provider_http_error", status_code=e.response.status_code)
            return SuggestionResult(error="Failed to fetch suggestions", error_kind=ErrorKind.INTERNAL_ERROR)
        except Exception as e:
            self._stats["failures"] += 1
            logger.error("suggestion_request_failed", error=str(e))
            return SuggestionResult(error="Failed to fetch suggestions", error_kind=ErrorKind.INTERNAL_ERROR)

    def get_statistics(self) -> dict[str, int]:
        """Get client statistics."""
        return self._stats.copy()
