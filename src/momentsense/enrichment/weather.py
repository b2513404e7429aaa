"""Weather enrichment from OpenWeather.

Fetches current conditions near a moment and scores how pleasant they were
for being outdoors. Coordinates are coarsened to the 0.1 degree grid before
the request is made.

A missing API key, a timeout, a non-2xx status or an unexpected response
shape all degrade to "no weather"; none of them fail the request.
"""

from __future__ import annotations

import asyncio
import logging

import httpx
from pydantic import BaseModel, Field, ValidationError

from momentsense.core.models import WeatherSnapshot
from momentsense.core.privacy import coarsen_coordinates
from momentsense.enrichment.outcome import OPENWEATHER, Degraded, Ok, Outcome

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.openweathermap.org/data/2.5/weather"

# =============================================================================
# Comfort Scoring
# =============================================================================

COMFORT_WEIGHTS = {
    "temperature": 0.35,
    "humidity": 0.20,
    "wind": 0.15,
    "condition": 0.30,
}

# First matching keyword group wins
CONDITION_SCORES: list[tuple[tuple[str, ...], float]] = [
    (("clear", "sunny"), 1.0),
    (("cloud", "overcast"), 0.8),
    (("mist", "fog"), 0.6),
    (("rain", "drizzle"), 0.3),
    (("snow",), 0.4),
    (("storm", "thunder"), 0.1),
]
DEFAULT_CONDITION_SCORE = 0.7


def temperature_score(temp_c: float) -> float:
    """1.0 between 18 and 24 C, falling off faster on the warm side."""
    if 18 <= temp_c <= 24:
        return 1.0
    if temp_c < 18:
        return max(0.0, 1 - (18 - temp_c) / 20)
    return max(0.0, 1 - (temp_c - 24) / 16)


def humidity_score(humidity: float) -> float:
    if 30 <= humidity <= 60:
        return 1.0
    if humidity < 30:
        return max(0.0, humidity / 30)
    return max(0.0, 1 - (humidity - 60) / 40)


def wind_score(wind_speed: float) -> float:
    return max(0.0, 1 - wind_speed / 15)


def condition_score(condition: str) -> float:
    lowered = condition.lower()
    for keywords, score in CONDITION_SCORES:
        if any(keyword in lowered for keyword in keywords):
            return score
    return DEFAULT_CONDITION_SCORE


def calculate_outdoor_comfort(
    temp_c: float,
    humidity: float,
    wind_speed: float,
    condition: str,
) -> float:
    """Outdoor comfort in [0, 1], rounded to two decimals.

    Example:
        >>> calculate_outdoor_comfort(21, 45, 2, "Clear")
        0.98
    """
    score = (
        COMFORT_WEIGHTS["temperature"] * temperature_score(temp_c)
        + COMFORT_WEIGHTS["humidity"] * humidity_score(humidity)
        + COMFORT_WEIGHTS["wind"] * wind_score(wind_speed)
        + COMFORT_WEIGHTS["condition"] * condition_score(condition)
    )
    return round(max(0.0, min(1.0, score)), 2)


# =============================================================================
# OpenWeather Response
# =============================================================================


class _Condition(BaseModel):
    main: str | None = None
    description: str | None = None


class _Main(BaseModel):
    temp: float
    humidity: float


class _Wind(BaseModel):
    speed: float = 0.0


class OpenWeatherResponse(BaseModel):
    weather: list[_Condition] = Field(..., min_length=1)
    main: _Main
    wind: _Wind = Field(default_factory=_Wind)


def to_snapshot(data: OpenWeatherResponse) -> WeatherSnapshot:
    condition = data.weather[0].main or "Unknown"
    return WeatherSnapshot(
        condition=condition,
        description=data.weather[0].description,
        temperature_c=round(data.main.temp, 1),
        humidity_percent=data.main.humidity,
        wind_speed_mps=data.wind.speed,
        outdoor_comfort_score=calculate_outdoor_comfort(
            data.main.temp, data.main.humidity, data.wind.speed, condition
        ),
    )


# =============================================================================
# Fetcher
# =============================================================================


class WeatherFetcher:
    """Current-conditions lookup. Never raises.

    Example:
        >>> fetcher = WeatherFetcher(http, api_key="...")
        >>> outcome = await fetcher.fetch(35.7148, 139.7967)
        >>> outcome.ok
        True
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        api_key: str | None = None,
        api_url: str = DEFAULT_API_URL,
        timeout_seconds: float = 10.0,
    ) -> None:
        self._http = http
        self._api_key = api_key
        self.api_url = api_url
        self.timeout_seconds = timeout_seconds

    async def fetch(self, lat: float, lon: float) -> Outcome[WeatherSnapshot]:
        if not self._api_key:
            return Degraded("no_api_key")

        coarse_lat, coarse_lon = coarsen_coordinates(lat, lon)

        try:
            response = await asyncio.wait_for(
                self._http.get(
                    self.api_url,
                    params={
                        "lat": coarse_lat,
                        "lon": coarse_lon,
                        "appid": self._api_key,
                        "units": "metric",
                    },
                    timeout=self.timeout_seconds,
                ),
                self.timeout_seconds,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException):
            logger.warning("Weather lookup timed out")
            return Degraded("timeout")
        except httpx.HTTPError as e:
            logger.warning(f"Weather lookup failed: {type(e).__name__}")
            return Degraded("network_error")

        if not response.is_success:
            logger.warning(f"Weather API returned HTTP {response.status_code}")
            return Degraded(f"http_{response.status_code}")

        try:
            parsed = OpenWeatherResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            logger.warning(f"Unexpected weather response shape: {type(e).__name__}")
            return Degraded("invalid_response")

        return Ok(to_snapshot(parsed), service=OPENWEATHER)
