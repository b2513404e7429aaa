"""Central Pytest Fixtures for MomentSense.

Provides reusable request payloads, enrichment values, a fake for the
external HTTP services, and a wired synthesizer that never touches the
network.

Fixtures included:
- Payloads: sample_payload, minimal_payload, valid_draft_data
- Enrichment: senso_ji_enrichment, clear_weather
- HTTP: fake_services, http_client
- Pipeline: synthesizer, synthesizer_factory, narrative_client_factory
- Isolation: isolated_environment (autouse)
"""

from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from typing import Any, Callable
from unittest.mock import AsyncMock, MagicMock

import httpx
import keyring
import pytest

from momentsense.ai.client import StructuredAIResponse
from momentsense.config import AppConfig, reset_config
from momentsense.core.cache import VenueCache
from momentsense.core.models import (
    VenueCategory,
    VenueEnrichment,
    VenueOrigin,
    WeatherSnapshot,
)
from momentsense.core.rate_limit import RateLimiter
from momentsense.enrichment.coordinator import EnrichmentCoordinator
from momentsense.enrichment.venue import VenueEnricher, WikipediaClient
from momentsense.enrichment.weather import WeatherFetcher
from momentsense.synthesizer import MomentSynthesizer

# =============================================================================
# Environment Isolation
# =============================================================================


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch: pytest.MonkeyPatch):
    """Keep tests away from real keys, the system keyring and cached config."""
    for var in list(os.environ):
        if var.startswith("MOMENTSENSE_"):
            monkeypatch.delenv(var, raising=False)
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    monkeypatch.delenv("OPENWEATHER_API_KEY", raising=False)
    monkeypatch.setattr(keyring, "get_password", lambda service, username: None)
    reset_config()

    yield

    reset_config()
    package_logger = logging.getLogger("momentsense")
    package_logger.handlers = []
    package_logger.propagate = True
    package_logger.setLevel(logging.NOTSET)


# =============================================================================
# Request Payloads
# =============================================================================

CAPTURED_AT = datetime(2024, 3, 16, 17, 30, tzinfo=timezone.utc)


@pytest.fixture
def sample_payload() -> dict[str, Any]:
    """Golden-hour visit to Senso-ji with two companions and a voice note."""
    return {
        "photos": {
            "count": 3,
            "refs": [
                {
                    "local_id": "IMG_0001",
                    "local_analysis": {
                        "scene_type": "temple",
                        "lighting": "golden_hour",
                        "indoor_outdoor": "outdoor",
                        "face_count": 2,
                        "crowd_level": "busy",
                        "energy_level": "calm",
                        "basic_emotion": "happy",
                    },
                },
                {
                    "local_id": "IMG_0002",
                    "local_analysis": {"face_count": 1, "basic_emotion": "surprised"},
                },
                {"local_id": "IMG_0003"},
            ],
        },
        "audio": {
            "duration_seconds": 24,
            "sentiment_score": 0.85,
            "sentiment_keywords": ["dream", "lantern", "together"],
        },
        "venue": {
            "name": "Senso-ji Temple",
            "category": "landmark",
            "coordinates": {"lat": 35.7148, "lon": 139.7967},
        },
        "companions": [
            {"name": "Mia", "relationship": "family", "age_group": "child"},
            {"name": "Jordan", "relationship": "partner", "age_group": "adult"},
        ],
        "captured_at": CAPTURED_AT.isoformat(),
        "context": {"trip_intent": "cultural immersion"},
    }


@pytest.fixture
def minimal_payload() -> dict[str, Any]:
    return {"photos": {"count": 1}, "captured_at": CAPTURED_AT.isoformat()}


@pytest.fixture
def valid_draft_data() -> dict[str, Any]:
    """A narrative model response in the camelCase wire shape."""
    return {
        "primaryEmotion": "awe",
        "secondaryEmotions": ["peace", "gratitude"],
        "emotionConfidence": 0.9,
        "narratives": {
            "short": "Golden light on the Thunder Gate as Mia reached for the lantern.",
            "medium": "We arrived as the sun dropped behind Asakusa and the temple glowed.",
            "full": "We arrived as the sun dropped behind Asakusa. Mia and Jordan walked ahead.",
        },
        "excitementHook": "Tokyo's oldest temple, older than the city itself",
        "memoryAnchors": {
            "sensory": "Incense drifting through golden light",
            "emotional": "Standing together under the lantern",
            "unexpected": None,
            "shareable": "The giant red lantern",
            "companion": "Mia ringing the temple bell",
        },
        "companionExperiences": [
            {"nickname": "mia", "reaction": "Wide-eyed at the lantern", "wouldReturn": True},
            {"nickname": "Grandpa", "reaction": "Told stories of his first visit", "wouldReturn": None},
        ],
        "inferredSensory": {"scent": "incense", "tactile": None, "sound": "temple bells"},
    }


# =============================================================================
# Enrichment Values
# =============================================================================


@pytest.fixture
def senso_ji_enrichment() -> VenueEnrichment:
    return VenueEnrichment(
        verified_name="Sensō-ji",
        category=VenueCategory.LANDMARK,
        description="Buddhist temple in Tokyo",
        founded_year=645,
        historical_significance="Sensō-ji is Tokyo's oldest temple.",
        unique_claims=["Oldest temple in Tokyo", "Known for its Kaminarimon gate"],
        fame_score=0.95,
        wikipedia_url="https://en.wikipedia.org/wiki/Sens%C5%8D-ji",
        origin=VenueOrigin.WIKIPEDIA,
    )


@pytest.fixture
def clear_weather() -> WeatherSnapshot:
    return WeatherSnapshot(
        condition="Clear",
        description="clear sky",
        temperature_c=21.0,
        humidity_percent=45,
        wind_speed_mps=2.0,
        outdoor_comfort_score=0.98,
    )


# =============================================================================
# External Service Fake
# =============================================================================

SENSO_JI_EXTRACT = (
    "Sensō-ji is an ancient Buddhist temple located in Asakusa, Tokyo, Japan. "
    "It is Tokyo's oldest temple, and one of its most significant. "
    "It was founded in 645 and is known for its Kaminarimon gate and the Nakamise shopping street."
)


class FakeServices:
    """Routes Wikipedia and OpenWeather requests to canned responses.

    Attributes:
        search_results: Search hits returned for every query.
        page: Page body returned for every title lookup.
        weather: OpenWeather body, returned with ``weather_status``.
        fail_wikipedia: When True every Wikipedia request returns HTTP 500.
        requests: Every request seen, in order.
    """

    def __init__(self) -> None:
        self.search_results: list[dict[str, Any]] = [{"pageid": 645, "title": "Sensō-ji"}]
        self.page: dict[str, Any] = {
            "pageid": 645,
            "title": "Sensō-ji",
            "extract": SENSO_JI_EXTRACT,
            "description": "Buddhist temple in Tokyo, Japan",
            "categories": [
                {"title": "Category:Buddhist temples in Tokyo"},
                {"title": "Category:National Treasures of Japan"},
                {"title": "Category:Articles with short description"},
            ],
            "fullurl": "https://en.wikipedia.org/wiki/Sens%C5%8D-ji",
        }
        self.weather: dict[str, Any] = {
            "weather": [{"main": "Clear", "description": "clear sky"}],
            "main": {"temp": 21.0, "humidity": 45},
            "wind": {"speed": 2.0},
        }
        self.weather_status = 200
        self.fail_wikipedia = False
        self.requests: list[httpx.Request] = []

    def wikipedia_requests(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.host == "en.wikipedia.org"]

    def weather_requests(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.host == "api.openweathermap.org"]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)

        if request.url.host == "api.openweathermap.org":
            return httpx.Response(self.weather_status, json=self.weather)

        if self.fail_wikipedia:
            return httpx.Response(500, json={"error": "unavailable"})

        if request.url.params.get("list") == "search":
            return httpx.Response(200, json={"query": {"search": self.search_results}})

        return httpx.Response(200, json={"query": {"pages": {"645": self.page}}})


@pytest.fixture
def fake_services() -> FakeServices:
    return FakeServices()


@pytest.fixture
def http_client(fake_services: FakeServices) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(fake_services.handler))


# =============================================================================
# Pipeline
# =============================================================================


def build_synthesizer(
    http: httpx.AsyncClient,
    config: AppConfig | None = None,
    narrative_client: Any = None,
    weather_key: str | None = "test-weather-key",
    limit: int = 30,
) -> MomentSynthesizer:
    """Wire a synthesizer around an injected HTTP client."""
    config = config or AppConfig()
    cache = VenueCache()
    coordinator = EnrichmentCoordinator(
        VenueEnricher(WikipediaClient(http), cache),
        WeatherFetcher(http, api_key=weather_key),
    )
    return MomentSynthesizer(
        config=config,
        rate_limiter=RateLimiter(limit=limit),
        venue_cache=cache,
        coordinator=coordinator,
        narrative_client=narrative_client,
    )


@pytest.fixture
def synthesizer(http_client: httpx.AsyncClient) -> MomentSynthesizer:
    """Synthesizer with no narrative model (local narratives only)."""
    return build_synthesizer(http_client)


def make_narrative_client(
    data: dict[str, Any] | None = None,
    parse_success: bool = True,
    side_effect: Callable[..., Any] | Exception | None = None,
) -> MagicMock:
    """Stand-in for NarrativeClient returning a fixed structured response."""
    client = MagicMock()
    client.is_available = True
    client.generate_json = AsyncMock(
        return_value=StructuredAIResponse(
            data=data or {},
            raw_text="{}" if parse_success else "not json",
            model="gemini-test",
            parse_success=parse_success,
            parse_error=None if parse_success else "JSON parse error: Expecting value",
        ),
        side_effect=side_effect,
    )
    return client


@pytest.fixture
def synthesizer_factory(http_client: httpx.AsyncClient) -> Callable[..., MomentSynthesizer]:
    """Build synthesizers sharing the fake HTTP services."""

    def factory(**kwargs: Any) -> MomentSynthesizer:
        return build_synthesizer(http_client, **kwargs)

    return factory


@pytest.fixture
def narrative_client_factory() -> Callable[..., MagicMock]:
    return make_narrative_client
