"""Narrative Model Client for MomentSense.

This module is the SOLE INTERFACE to the Gemini API. Every narrative-model
call flows through ``NarrativeClient``; no other module imports google-genai.

The client provides:
- Typed exceptions for predictable error handling
- Structured response models for consistent outputs
- Full respect for configuration (AI mode, API key, deadline)
- Security-first logging (never logs secrets, prompts or responses)

Exactly one attempt is made per call. The synthesis pipeline treats any
failure as a signal to use the local fallback, so retrying here would only
delay the response.

Example:
    >>> from momentsense.ai.client import NarrativeClient, AIClientError
    >>>
    >>> client = NarrativeClient()
    >>> try:
    ...     response = await client.generate_json(prompt, system_instruction=SYSTEM_PROMPT)
    ... except AIClientError:
    ...     draft = generate_fallback_narrative(synthesis_input)

Security Rules:
- NEVER log API keys (ever, in any form)
- NEVER log full prompts (they describe a person's moment)
- NEVER log full responses
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
import time
from typing import Any, Literal

from google import genai
from google.genai import errors, types
from pydantic import BaseModel, Field

from momentsense.config import AppConfig, APIKeyNotFoundError, get_api_key, get_config
from momentsense.utils.logging import RedactingFilter

logger = logging.getLogger(__name__)
logger.addFilter(RedactingFilter())


# =============================================================================
# Exception Hierarchy
# =============================================================================


class AIClientError(Exception):
    """Base exception for all narrative client errors.

    Attributes:
        message: Human-readable error description (safe to log).
        retriable: Whether the operation could succeed if retried later.
        details: Additional error context (may contain sensitive data, don't log).
        original_error: The underlying exception that caused this error.
    """

    def __init__(
        self,
        message: str,
        retriable: bool = False,
        details: dict[str, Any] | None = None,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.retriable = retriable
        self.details = details or {}
        self.original_error = original_error

    def __str__(self) -> str:
        """Return message without exposing sensitive details."""
        return self.message


class AIUnavailableError(AIClientError):
    """Narrative model is not available (disabled or no key).

    Signals to higher layers that they should use the local fallback.

    Attributes:
        reason: Why the model is unavailable.
    """

    def __init__(
        self,
        reason: Literal["disabled", "no_api_key", "offline"],
        message: str | None = None,
    ) -> None:
        self.reason = reason

        default_messages = {
            "disabled": "Narrative model is disabled in configuration",
            "no_api_key": "No Gemini API key configured",
            "offline": "Cannot reach Gemini API",
        }

        msg = message or default_messages.get(reason, f"AI unavailable: {reason}")
        super().__init__(msg, retriable=False)


class AIAuthenticationError(AIClientError):
    """API key is invalid or expired."""

    def __init__(
        self,
        message: str = "API authentication failed. Please check your API key.",
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message, retriable=False, original_error=original_error)


class AIRateLimitError(AIClientError):
    """Rate limit exceeded at the model provider.

    Attributes:
        retry_after_seconds: Suggested wait time before retry (may be None).
    """

    def __init__(
        self,
        message: str = "Rate limit exceeded. Please wait before retrying.",
        retry_after_seconds: float | None = None,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message, retriable=True, original_error=original_error)
        self.retry_after_seconds = retry_after_seconds


class AIQuotaExceededError(AIClientError):
    """Quota or billing limit reached."""

    def __init__(
        self,
        message: str = "API quota exceeded. Check your billing and usage limits.",
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message, retriable=False, original_error=original_error)


class AIServerError(AIClientError):
    """Server-side error (5xx).

    Attributes:
        status_code: HTTP status code if available.
    """

    def __init__(
        self,
        message: str = "AI server error. The service may be temporarily unavailable.",
        status_code: int | None = None,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message, retriable=True, original_error=original_error)
        self.status_code = status_code


class AIBadRequestError(AIClientError):
    """Invalid request (malformed prompt, bad parameters, etc.)."""

    def __init__(
        self,
        message: str = "Invalid request to AI service.",
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message, retriable=False, original_error=original_error)


class AITimeoutError(AIClientError):
    """Request exceeded its deadline.

    Attributes:
        timeout_seconds: The deadline that was exceeded.
    """

    def __init__(
        self,
        timeout_seconds: float,
        message: str | None = None,
        original_error: Exception | None = None,
    ) -> None:
        msg = message or f"Request timed out after {timeout_seconds} seconds"
        super().__init__(msg, retriable=True, original_error=original_error)
        self.timeout_seconds = timeout_seconds


class ModelNotAvailableError(AIClientError):
    """Configured model doesn't exist or isn't available to this key.

    Attributes:
        model_name: The model that was requested.
    """

    def __init__(
        self,
        model_name: str,
        message: str | None = None,
        original_error: Exception | None = None,
    ) -> None:
        msg = message or f"Model '{model_name}' not found. Check model name in configuration."
        super().__init__(msg, retriable=False, original_error=original_error)
        self.model_name = model_name


class ContentBlockedError(AIClientError):
    """Content was blocked by safety filters.

    Attributes:
        blocked_reason: The reason for blocking if available.
    """

    def __init__(
        self,
        message: str = "Content was blocked by safety filters.",
        blocked_reason: str | None = None,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message, retriable=False, original_error=original_error)
        self.blocked_reason = blocked_reason


# =============================================================================
# Response Models
# =============================================================================


class AIResponse(BaseModel):
    """Standardized response from one generation call.

    Attributes:
        text: The generated content.
        model: Name of the model that generated this response.
        total_tokens: Total tokens used, if reported.
        finish_reason: Why generation stopped (e.g., "STOP", "MAX_TOKENS").
        latency_ms: Time taken for generation in milliseconds.
    """

    text: str = Field(..., description="The generated content")
    model: str = Field(..., description="Model that generated this response")
    total_tokens: int | None = Field(None, description="Total tokens used")
    finish_reason: str | None = Field(None, description="Why generation stopped")
    latency_ms: float | None = Field(None, description="Generation time in ms")

    def is_truncated(self) -> bool:
        return self.finish_reason in {"MAX_TOKENS", "RECITATION"}


class StructuredAIResponse(BaseModel):
    """Response when requesting JSON output.

    If JSON parsing fails, parse_success is False and parse_error contains
    the reason.

    Example:
        >>> response = await client.generate_json(prompt)
        >>> if response.parse_success:
        ...     draft = NarrativeDraft.model_validate(response.data)
    """

    data: dict[str, Any] | list[Any] = Field(
        default_factory=dict, description="Parsed JSON content"
    )
    raw_text: str = Field(..., description="Original text before parsing")
    model: str = Field(..., description="Model that generated this response")
    tokens_used: int | None = Field(None, description="Total tokens consumed")
    latency_ms: float | None = Field(None, description="Generation time in ms")
    parse_success: bool = Field(True, description="Whether JSON parsing succeeded")
    parse_error: str | None = Field(None, description="Error if parsing failed")


_FENCED_JSON = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```")
_BARE_JSON = re.compile(r"(\{[\s\S]*\}|\[[\s\S]*\])")


def parse_json_text(text: str) -> tuple[dict[str, Any] | list[Any] | None, str | None]:
    """Parse model output as JSON, tolerating code fences and surrounding prose.

    Returns:
        Tuple of (data, error). Exactly one is None.
    """
    text = text.strip()
    try:
        return json.loads(text), None
    except json.JSONDecodeError as e:
        first_error = e.msg

    for pattern, label in ((_FENCED_JSON, "code block"), (_BARE_JSON, "extracted content")):
        match = pattern.search(text)
        if match:
            try:
                return json.loads(match.group(1)), None
            except json.JSONDecodeError:
                return None, f"JSON parse error in {label}: {first_error}"

    return None, f"JSON parse error: {first_error}"


# =============================================================================
# Client
# =============================================================================


class NarrativeClient:
    """Async Gemini client for moment narratives.

    No API calls are made during initialization. Availability is decided
    once from configuration: the AI mode must be enabled and a Gemini key
    must be configured.

    Example:
        >>> client = NarrativeClient(config)
        >>> client.is_available
        True
        >>> response = await client.generate_json("...", system_instruction="...")
    """

    JSON_INSTRUCTION = (
        "You must respond with valid JSON only. No markdown, no explanations, "
        "no code blocks - just pure JSON that can be parsed directly."
    )

    def __init__(
        self,
        config: AppConfig | None = None,
        api_key: str | None = None,
        client: Any = None,
    ) -> None:
        """Initialize the narrative client.

        Args:
            config: Application configuration. If None, loads from get_config().
            api_key: Override API key. If None, loads from configured sources.
            client: Pre-built ``genai.Client`` (tests inject a fake here).
        """
        self._config = config or get_config()
        self._client: Any = client
        self._logger = logging.getLogger(f"{__name__}.NarrativeClient")
        self._logger.addFilter(RedactingFilter())
        self._unavailable_reason: str | None = None

        if not self._config.ai.is_enabled():
            self._unavailable_reason = "disabled"
            self._logger.info("Narrative model is disabled in configuration")
            return

        if self._client is not None:
            return

        try:
            key = api_key or get_api_key("gemini").get_secret_value()
        except APIKeyNotFoundError:
            self._unavailable_reason = "no_api_key"
            self._logger.warning("No Gemini API key configured; using local narratives")
            return

        self._client = genai.Client(api_key=key)
        self._logger.info(f"Narrative client configured with model: {self.model_name}")

    @property
    def model_name(self) -> str:
        return self._config.ai.narrative_model

    @property
    def is_available(self) -> bool:
        return self._unavailable_reason is None and self._client is not None

    def _ensure_available(self) -> None:
        if self._unavailable_reason is not None:
            raise AIUnavailableError(self._unavailable_reason)  # type: ignore[arg-type]
        if self._client is None:
            raise AIUnavailableError("no_api_key")

    def _get_generation_config(
        self,
        system_instruction: str | None,
        json_output: bool,
        **overrides: Any,
    ) -> types.GenerateContentConfig:
        params: dict[str, Any] = {
            "temperature": self._config.ai.temperature,
            "max_output_tokens": self._config.ai.max_output_tokens,
        }
        params.update(overrides)
        if system_instruction:
            params["system_instruction"] = system_instruction
        if json_output:
            params["response_mime_type"] = "application/json"
        return types.GenerateContentConfig(**params)

    async def generate(
        self,
        prompt: str,
        system_instruction: str | None = None,
        json_output: bool = False,
        **overrides: Any,
    ) -> AIResponse:
        """Generate text from a prompt under the configured deadline.

        Args:
            prompt: The user message.
            system_instruction: Optional system instruction.
            json_output: Ask the model for a JSON response body.
            **overrides: Per-call generation overrides (temperature, etc.).

        Returns:
            AIResponse with the generated text and metadata.

        Raises:
            AIClientError: Any failure, mapped to the typed hierarchy.
        """
        self._ensure_available()

        timeout = self._config.ai.timeout_seconds
        gen_config = self._get_generation_config(system_instruction, json_output, **overrides)
        start_time = time.monotonic()

        try:
            raw_response = await asyncio.wait_for(
                self._client.aio.models.generate_content(
                    model=self.model_name,
                    contents=prompt,
                    config=gen_config,
                ),
                timeout,
            )
        except asyncio.TimeoutError as e:
            self._logger.warning(f"Generation timed out after {timeout}s")
            raise AITimeoutError(timeout, original_error=e) from e
        except Exception as e:
            mapped = self._map_exception(e)
            self._logger.error(f"Generation failed: {type(mapped).__name__}")
            raise mapped from e

        latency_ms = (time.monotonic() - start_time) * 1000

        feedback = getattr(raw_response, "prompt_feedback", None)
        if feedback is not None and getattr(feedback, "block_reason", None):
            raise ContentBlockedError(blocked_reason=str(feedback.block_reason))

        text = raw_response.text or ""

        total_tokens = None
        usage = getattr(raw_response, "usage_metadata", None)
        if usage is not None:
            total_tokens = getattr(usage, "total_token_count", None)

        finish_reason = None
        candidates = getattr(raw_response, "candidates", None)
        if candidates:
            reason = getattr(candidates[0], "finish_reason", None)
            finish_reason = getattr(reason, "name", None) or (str(reason) if reason else None)

        self._logger.info(
            f"Generation successful: {total_tokens or '?'} tokens in {latency_ms:.0f}ms"
        )

        response = AIResponse(
            text=text,
            model=self.model_name,
            total_tokens=total_tokens,
            finish_reason=finish_reason,
            latency_ms=latency_ms,
        )
        if response.is_truncated():
            self._logger.warning(f"Response cut short: finish_reason={finish_reason}")
        return response

    async def generate_json(
        self,
        prompt: str,
        system_instruction: str | None = None,
        **overrides: Any,
    ) -> StructuredAIResponse:
        """Generate and parse as JSON.

        If parsing fails, returns StructuredAIResponse with parse_success=False
        rather than raising.
        """
        if system_instruction:
            full_instruction = f"{system_instruction}\n\n{self.JSON_INSTRUCTION}"
        else:
            full_instruction = self.JSON_INSTRUCTION

        response = await self.generate(
            prompt,
            system_instruction=full_instruction,
            json_output=True,
            **overrides,
        )

        data, parse_error = parse_json_text(response.text)
        if parse_error is not None:
            self._logger.warning(f"Model response was not valid JSON ({len(response.text)} chars)")

        return StructuredAIResponse(
            data=data if data is not None else {},
            raw_text=response.text,
            model=response.model,
            tokens_used=response.total_tokens,
            latency_ms=response.latency_ms,
            parse_success=parse_error is None,
            parse_error=parse_error,
        )

    def _map_exception(self, error: Exception) -> AIClientError:
        """Map SDK exceptions to our exception hierarchy."""
        if isinstance(error, AIClientError):
            return error

        error_str = str(error).lower()

        if isinstance(error, errors.APIError):
            code = error.code
            if code in (401, 403):
                return AIAuthenticationError(original_error=error)
            if code == 429:
                if "quota" in error_str or "billing" in error_str:
                    return AIQuotaExceededError(original_error=error)
                return AIRateLimitError(original_error=error)
            if code == 404:
                return ModelNotAvailableError(self.model_name, original_error=error)
            if code in (408, 504):
                return AITimeoutError(self._config.ai.timeout_seconds, original_error=error)
            if code is not None and code >= 500:
                return AIServerError(status_code=code, original_error=error)
            if code == 400:
                if "blocked" in error_str or "safety" in error_str:
                    return ContentBlockedError(original_error=error)
                return AIBadRequestError(original_error=error)

        # Fallback pattern matching on error message
        if "blocked" in error_str or "safety" in error_str:
            return ContentBlockedError(original_error=error)

        if "401" in error_str or "403" in error_str or "unauthorized" in error_str:
            return AIAuthenticationError(original_error=error)

        if "429" in error_str or "rate" in error_str:
            return AIRateLimitError(original_error=error)

        if "quota" in error_str or "billing" in error_str:
            return AIQuotaExceededError(original_error=error)

        if "timeout" in error_str or "deadline" in error_str:
            return AITimeoutError(self._config.ai.timeout_seconds, original_error=error)

        if "500" in error_str or "502" in error_str or "503" in error_str:
            return AIServerError(original_error=error)

        return AIClientError(
            f"Unexpected error: {type(error).__name__}",
            retriable=False,
            original_error=error,
        )
