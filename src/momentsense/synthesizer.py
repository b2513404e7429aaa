"""Moment Synthesis Orchestrator.

Request-level control flow for turning one captured moment into a
``MomentRecord``:

    ADMITTED -> VALIDATED -> ENRICHING -> SYNTHESIZING -> SCORING
             -> ASSEMBLED -> OUTPUT_VALID | OUTPUT_INVALID

- Admission and input validation failures are terminal and raise.
- Enrichment (venue and weather, concurrently) always completes; failures
  degrade to mock venue data or absent weather.
- The narrative model is called at most once; any failure falls back to the
  local draft and lowers the processing tier to ``local_only``.
- Scoring is pure and cannot fail.
- The assembled record is validated against its own schema. A record that
  fails is never returned: ``OutputValidationError`` is raised instead.

Example:
    >>> synthesizer = MomentSynthesizer.from_config()
    >>> result = await synthesizer.synthesize(payload, identifier="203.0.113.7")
    >>> result.moment.processing.tier
    <ProcessingTier.LOCAL_ONLY: 'local_only'>
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, NoReturn

import httpx
from pydantic import ValidationError

from momentsense.ai.client import AIClientError, NarrativeClient
from momentsense.ai.fallback import generate_fallback_narrative
from momentsense.ai.prompts import (
    SYSTEM_PROMPT,
    SynthesisInput,
    build_synthesis_input,
    build_synthesis_prompt,
    validate_synthesis_output,
)
from momentsense.config import APIKeyManager, AppConfig, get_config
from momentsense.core.atmosphere import atmosphere_quality, build_atmosphere
from momentsense.core.cache import VenueCache
from momentsense.core.excitement import analyze_excitement
from momentsense.core.models import (
    MomentRecord,
    NarrativeDraft,
    ProcessingTier,
    Relationship,
    SynthesisRequest,
    TranscendenceResult,
)
from momentsense.core.privacy import PrivacyViolationError, assert_transcript_absent
from momentsense.core.rate_limit import RateLimiter, RateLimitHeaders
from momentsense.core.scoring import build_factors, describe_factors, score_transcendence
from momentsense.core.sweeper import PeriodicSweeper
from momentsense.enrichment.coordinator import EnrichmentBundle, EnrichmentCoordinator
from momentsense.enrichment.outcome import NARRATIVE_MODEL, Degraded, Ok, Outcome, cloud_calls
from momentsense.enrichment.venue import VenueEnricher, WikipediaClient
from momentsense.enrichment.weather import WeatherFetcher
from momentsense.utils.logging import log_event

logger = logging.getLogger(__name__)

UNKNOWN_VENUE_NAME = "Unknown Location"

# Share of the work done on-device, reported per tier
LOCAL_PERCENTAGE = {
    ProcessingTier.FULL: 65,
    ProcessingTier.LOCAL_ONLY: 95,
}


# =============================================================================
# States and Exceptions
# =============================================================================


class SynthesisState(str, Enum):
    ADMITTED = "admitted"
    VALIDATED = "validated"
    ENRICHING = "enriching"
    SYNTHESIZING = "synthesizing"
    SCORING = "scoring"
    ASSEMBLED = "assembled"
    OUTPUT_VALID = "output_valid"
    OUTPUT_INVALID = "output_invalid"


class MomentSenseError(Exception):
    """Base exception for synthesis failures surfaced to the caller.

    Attributes:
        request_id: Identifier of the failed request.
        rate_limit: Quota state at the time of failure, if the limiter was consulted.
    """

    def __init__(
        self,
        message: str,
        request_id: str | None = None,
        rate_limit: RateLimitHeaders | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.request_id = request_id
        self.rate_limit = rate_limit


class RateLimitExceededError(MomentSenseError):
    """The identifier has used its quota for the current window."""

    def __init__(
        self,
        request_id: str | None = None,
        rate_limit: RateLimitHeaders | None = None,
    ) -> None:
        super().__init__("Rate limit exceeded. Please try again later.", request_id, rate_limit)


class InputValidationError(MomentSenseError):
    """The request payload failed validation.

    Attributes:
        errors: Field errors as ``{"field", "message", "type"}`` dicts. Input
            values are never included.
    """

    def __init__(
        self,
        errors: list[dict[str, str]],
        request_id: str | None = None,
        rate_limit: RateLimitHeaders | None = None,
    ) -> None:
        super().__init__("Invalid request data", request_id, rate_limit)
        self.errors = errors


class OutputValidationError(MomentSenseError):
    """The assembled record failed its own schema. Always fatal."""

    def __init__(
        self,
        errors: list[dict[str, str]],
        request_id: str | None = None,
        rate_limit: RateLimitHeaders | None = None,
    ) -> None:
        super().__init__("Failed to generate a valid moment", request_id, rate_limit)
        self.errors = errors


def field_errors(error: ValidationError) -> list[dict[str, str]]:
    """Flatten a pydantic error without echoing input values."""
    return [
        {
            "field": ".".join(str(part) for part in item["loc"]) or "body",
            "message": item["msg"],
            "type": item["type"],
        }
        for item in error.errors()
    ]


@dataclass(frozen=True)
class SynthesisResult:
    moment: MomentRecord
    rate_limit: RateLimitHeaders
    request_id: str
    state: SynthesisState = SynthesisState.OUTPUT_VALID


# =============================================================================
# Orchestrator
# =============================================================================


class MomentSynthesizer:
    """Runs the synthesis pipeline for one request at a time, many concurrently.

    The rate limiter and venue cache are the only state shared between
    requests; both are injected so tests and servers control their lifetime.
    """

    def __init__(
        self,
        config: AppConfig,
        rate_limiter: RateLimiter,
        venue_cache: VenueCache,
        coordinator: EnrichmentCoordinator,
        narrative_client: NarrativeClient | None = None,
        http: httpx.AsyncClient | None = None,
    ) -> None:
        self.config = config
        self.rate_limiter = rate_limiter
        self.venue_cache = venue_cache
        self.coordinator = coordinator
        self.narrative_client = narrative_client
        self._http = http
        self._logger = logging.getLogger(f"{__name__}.MomentSynthesizer")

    @classmethod
    def from_config(
        cls,
        config: AppConfig | None = None,
        http: httpx.AsyncClient | None = None,
        narrative_client: NarrativeClient | None = None,
    ) -> "MomentSynthesizer":
        """Wire a synthesizer from configuration.

        Args:
            config: Application configuration. If None, loads from get_config().
            http: Shared HTTP client. If None, one is created and owned by the
                synthesizer (closed by ``aclose``).
            narrative_client: Override the narrative client (tests).
        """
        config = config or get_config()
        owned_http = http is None
        http = http or httpx.AsyncClient(follow_redirects=True)

        cache = VenueCache(default_ttl_seconds=config.cache.default_ttl_seconds)
        wikipedia = WikipediaClient(
            http,
            api_url=config.enrichment.wikipedia_api_url,
            search_timeout=config.enrichment.search_timeout_seconds,
            page_timeout=config.enrichment.page_timeout_seconds,
            user_agent=config.enrichment.user_agent,
        )
        weather_key = APIKeyManager("openweather").get_key()
        weather = WeatherFetcher(
            http,
            api_key=weather_key.get_secret_value() if weather_key else None,
            api_url=config.enrichment.openweather_api_url,
            timeout_seconds=config.enrichment.weather_timeout_seconds,
        )
        coordinator = EnrichmentCoordinator(
            VenueEnricher(wikipedia, cache, venue_ttl_seconds=config.cache.venue_ttl_seconds),
            weather,
        )
        rate_limiter = RateLimiter(
            limit=config.rate_limit.max_requests,
            window_seconds=config.rate_limit.window_seconds,
            bypass=config.rate_limit.bypass_enabled,
        )

        return cls(
            config=config,
            rate_limiter=rate_limiter,
            venue_cache=cache,
            coordinator=coordinator,
            narrative_client=narrative_client or NarrativeClient(config),
            http=http if owned_http else None,
        )

    def build_sweepers(self) -> list[PeriodicSweeper]:
        """Background sweeps for the shared stores. Caller starts and stops them."""
        return [
            PeriodicSweeper(
                "venue-cache",
                self.config.cache.sweep_interval_seconds,
                self.venue_cache.sweep,
            ),
            PeriodicSweeper(
                "rate-limit",
                self.config.rate_limit.sweep_interval_seconds,
                self.rate_limiter.sweep,
            ),
        ]

    async def aclose(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    def _transition(self, request_id: str, state: SynthesisState) -> SynthesisState:
        self._logger.debug(f"[{request_id}] -> {state.value}")
        return state

    # -------------------------------------------------------------------------
    # Pipeline
    # -------------------------------------------------------------------------

    async def synthesize(
        self,
        payload: Mapping[str, Any] | SynthesisRequest,
        identifier: str,
        request_id: str | None = None,
    ) -> SynthesisResult:
        """Synthesize one moment.

        Args:
            payload: Raw request body or an already-validated request.
            identifier: Quota identifier for the caller.
            request_id: Correlation id; generated when omitted.

        Returns:
            SynthesisResult with the validated record.

        Raises:
            RateLimitExceededError: The caller is over quota.
            InputValidationError: The payload is malformed.
            OutputValidationError: The assembled record failed its schema.
        """
        request_id = request_id or str(uuid.uuid4())
        start = time.perf_counter()

        if not self.rate_limiter.admit(identifier):
            headers = self.rate_limiter.headers(identifier)
            log_event(self._logger, "synthesis_rate_limited", logging.WARNING, request_id=request_id)
            raise RateLimitExceededError(request_id, headers)
        headers = self.rate_limiter.headers(identifier)
        self._transition(request_id, SynthesisState.ADMITTED)

        request = self._validate(payload, request_id, headers)
        self._transition(request_id, SynthesisState.VALIDATED)

        log_event(
            self._logger,
            "synthesis_request",
            request_id=request_id,
            photo_count=request.photos.count,
            has_audio=request.audio is not None,
            has_venue=request.venue is not None,
            has_coordinates=request.venue is not None and request.venue.coordinates is not None,
            companion_count=len(request.companions),
        )

        self._transition(request_id, SynthesisState.ENRICHING)
        bundle = await self.coordinator.enrich(request.venue, request.context.destination)

        self._transition(request_id, SynthesisState.SYNTHESIZING)
        synthesis_input = build_synthesis_input(request, bundle.venue_data, bundle.weather_data)
        narrative = await self._narrate(request, synthesis_input, request_id)

        self._transition(request_id, SynthesisState.SCORING)
        draft = narrative.unwrap()
        tier = ProcessingTier.FULL if narrative.ok else ProcessingTier.LOCAL_ONLY
        transcendence = self._score(request, synthesis_input, bundle)

        self._transition(request_id, SynthesisState.ASSEMBLED)
        record_data = self._assemble(
            request,
            synthesis_input,
            bundle,
            draft,
            tier,
            transcendence,
            cloud_calls(bundle.venue, bundle.weather, narrative),
            round((time.perf_counter() - start) * 1000),
        )

        moment = self._check_output(record_data, request, request_id, headers)
        self._transition(request_id, SynthesisState.OUTPUT_VALID)

        log_event(
            self._logger,
            "synthesis_success",
            request_id=request_id,
            tier=moment.processing.tier.value,
            cloud_calls=moment.processing.cloud_calls,
            transcendence_score=moment.transcendence_score,
            is_highlight=moment.is_highlight,
            processing_time_ms=moment.processing.processing_time_ms,
        )
        return SynthesisResult(moment=moment, rate_limit=headers, request_id=request_id)

    def _validate(
        self,
        payload: Mapping[str, Any] | SynthesisRequest,
        request_id: str,
        headers: RateLimitHeaders,
    ) -> SynthesisRequest:
        if isinstance(payload, SynthesisRequest):
            return payload
        try:
            return SynthesisRequest.model_validate(payload)
        except ValidationError as e:
            errors = field_errors(e)
            log_event(
                self._logger,
                "synthesis_validation_error",
                logging.WARNING,
                request_id=request_id,
                fields=[error["field"] for error in errors],
            )
            raise InputValidationError(errors, request_id, headers) from e

    async def _narrate(
        self,
        request: SynthesisRequest,
        synthesis_input: SynthesisInput,
        request_id: str,
    ) -> Outcome[NarrativeDraft]:
        """One narrative-model attempt; every failure degrades to the local draft."""
        fallback = generate_fallback_narrative(synthesis_input)

        if not request.preferences.enable_cloud_synthesis:
            return Degraded("cloud_synthesis_disabled", fallback=fallback)

        client = self.narrative_client
        if client is None or not client.is_available:
            return Degraded("narrative_model_unavailable", fallback=fallback)

        prompt = build_synthesis_prompt(synthesis_input)
        transcript = request.audio.transcript if request.audio is not None else None
        try:
            assert_transcript_absent(prompt, transcript)
        except PrivacyViolationError:
            return Degraded("privacy_guard", fallback=fallback)

        try:
            response = await client.generate_json(prompt, system_instruction=SYSTEM_PROMPT)
        except AIClientError as e:
            self._logger.warning(f"[{request_id}] Narrative model failed: {type(e).__name__}")
            return Degraded(type(e).__name__, fallback=fallback)
        except Exception as e:
            self._logger.error(f"[{request_id}] Narrative call raised unexpectedly: {type(e).__name__}")
            return Degraded("unexpected_error", fallback=fallback)

        # The model was invoked from here on, even if its answer is unusable
        if not response.parse_success:
            return Degraded("invalid_json", fallback=fallback, service=NARRATIVE_MODEL)

        draft = validate_synthesis_output(response.data)
        if draft is None:
            return Degraded("schema_invalid", fallback=fallback, service=NARRATIVE_MODEL)

        return Ok(draft, service=NARRATIVE_MODEL)

    def _score(
        self,
        request: SynthesisRequest,
        synthesis_input: SynthesisInput,
        bundle: EnrichmentBundle,
    ) -> TranscendenceResult:
        venue = bundle.venue_data
        weather = bundle.weather_data
        factors = build_factors(
            sentiment_score=request.audio.sentiment_score if request.audio else None,
            atmosphere_quality=atmosphere_quality(synthesis_input.photo),
            is_first_visit=request.context.is_first_visit,
            fame_score=venue.fame_score if venue else None,
            weather_comfort=weather.outdoor_comfort_score if weather else None,
            companion_count=len(request.companions),
            intent_match=request.context.intent_match,
            had_unexpected_moment=request.context.had_unexpected_moment,
        )
        return score_transcendence(factors)

    def _assemble(
        self,
        request: SynthesisRequest,
        synthesis_input: SynthesisInput,
        bundle: EnrichmentBundle,
        draft: NarrativeDraft,
        tier: ProcessingTier,
        transcendence: TranscendenceResult,
        calls: list[str],
        processing_time_ms: int,
    ) -> dict[str, Any]:
        """Build the record as plain data; validation happens separately."""
        venue = bundle.venue_data
        weather = bundle.weather_data
        photo = synthesis_input.photo

        excitement = analyze_excitement(venue)

        hook = excitement.excitement_hook
        if tier == ProcessingTier.FULL and draft.excitement_hook:
            hook = draft.excitement_hook

        if venue is not None:
            category = venue.category
        elif request.venue is not None:
            category = request.venue.category
        else:
            category = None

        companion_experiences = []
        if request.preferences.include_companion_insights:
            relationships = {
                companion.name.lower(): companion.relationship or Relationship.OTHER
                for companion in request.companions
            }
            companion_experiences = [
                {
                    "name": experience.nickname,
                    "relationship": relationships.get(experience.nickname.lower(), Relationship.OTHER),
                    "moment_highlight": experience.reaction,
                    "engagement_level": "moderate",
                }
                for experience in draft.companion_experiences
            ]

        context = synthesis_input.context
        anchors = draft.memory_anchors
        sensory = draft.inferred_sensory

        return {
            "timestamp": request.captured_at,
            "venue_name": request.venue.name if request.venue else UNKNOWN_VENUE_NAME,
            "venue_category": category,
            "detection": request.detection.model_dump(),
            "photos": {
                "count": request.photos.count,
                "refs": [ref.local_id for ref in request.photos.refs],
            },
            "emotion_tags": [draft.primary_emotion, *draft.secondary_emotions],
            "primary_emotion": draft.primary_emotion,
            "emotion_confidence": draft.emotion_confidence,
            "atmosphere": build_atmosphere(photo).model_dump(),
            "transcendence_score": transcendence.score,
            "transcendence_factors": describe_factors(transcendence),
            "transcendence_dominant_factor": transcendence.dominant_factor,
            "is_highlight": transcendence.is_highlight,
            "sensory_details": {
                "visual": anchors.sensory,
                "audio": sensory.sound,
                "scent": sensory.scent,
                "tactile": sensory.tactile,
            },
            "excitement": {
                "fame_score": venue.fame_score if venue else None,
                "fame_signals": [],
                "unique_claims": excitement.unique_facts,
                "historical_significance": venue.historical_significance if venue else None,
                "excitement_hook": hook,
            },
            "memory_anchors": {
                "sensory_anchor": anchors.sensory,
                "emotional_anchor": anchors.emotional,
                "unexpected_anchor": anchors.unexpected,
                "shareable_anchor": anchors.shareable,
                "family_anchor": anchors.companion,
            },
            "narratives": draft.narratives.model_dump(),
            "companion_experiences": companion_experiences,
            "environment": {
                "weather": {
                    "condition": weather.condition,
                    "temperature_c": weather.temperature_c,
                    "comfort_score": weather.outdoor_comfort_score,
                }
                if weather
                else None,
                "timing": {
                    "local_time": context.local_time,
                    "is_golden_hour": context.is_golden_hour,
                    "is_weekend": context.is_weekend,
                },
            },
            "user_reflection": {
                "voice_note_transcript": None,
                "sentiment": request.audio.sentiment_score if request.audio else None,
                "keywords": list(request.audio.sentiment_keywords) if request.audio else [],
            },
            "processing": {
                "tier": tier,
                "local_percentage": LOCAL_PERCENTAGE[tier],
                "cloud_calls": calls,
                "processing_time_ms": processing_time_ms,
            },
        }

    def _check_output(
        self,
        record_data: dict[str, Any],
        request: SynthesisRequest,
        request_id: str,
        headers: RateLimitHeaders,
    ) -> MomentRecord:
        """Validate the assembled record; never let an invalid one out."""
        try:
            moment = MomentRecord.model_validate(record_data)
        except ValidationError as e:
            self._fail_output(request_id, field_errors(e), headers)

        transcript = request.audio.transcript if request.audio is not None else None
        try:
            assert_transcript_absent(moment.model_dump_json(), transcript)
        except PrivacyViolationError:
            self._fail_output(
                request_id,
                [{"field": "moment", "message": "transcript leaked", "type": "privacy"}],
                headers,
            )
        return moment

    def _fail_output(
        self,
        request_id: str,
        errors: list[dict[str, str]],
        headers: RateLimitHeaders,
    ) -> NoReturn:
        self._transition(request_id, SynthesisState.OUTPUT_INVALID)
        log_event(
            self._logger,
            "synthesis_output_invalid",
            logging.ERROR,
            request_id=request_id,
            errors=[error["message"] for error in errors],
        )
        raise OutputValidationError(errors, request_id, headers)
