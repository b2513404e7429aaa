"""Concurrent venue and weather enrichment.

Runs the venue lookup and the weather lookup side by side. Each path yields
an ``Ok`` or ``Degraded`` outcome on its own; one path failing never affects
the other, and nothing here raises to the caller.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable

from momentsense.core.models import VenueEnrichment, VenueInput, WeatherSnapshot
from momentsense.enrichment.outcome import Degraded, Outcome, cloud_calls
from momentsense.enrichment.venue import VenueEnricher
from momentsense.enrichment.weather import WeatherFetcher

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EnrichmentBundle:
    """Outcomes of one enrichment fan-out. ``None`` means the path was not attempted."""

    venue: Outcome[VenueEnrichment] | None = None
    weather: Outcome[WeatherSnapshot] | None = None

    @property
    def venue_data(self) -> VenueEnrichment | None:
        return self.venue.unwrap() if self.venue is not None else None

    @property
    def weather_data(self) -> WeatherSnapshot | None:
        return self.weather.unwrap() if self.weather is not None else None

    def cloud_calls(self) -> list[str]:
        return cloud_calls(self.venue, self.weather)


async def _guarded(step: str, awaitable: Awaitable[Outcome]) -> Outcome:
    # Last-resort net: the enrichers handle their own failures
    try:
        return await awaitable
    except Exception as e:
        logger.error(f"{step} enrichment raised unexpectedly: {type(e).__name__}")
        return Degraded("unexpected_error")


class EnrichmentCoordinator:
    """Fan out venue and weather enrichment for one moment.

    Example:
        >>> coordinator = EnrichmentCoordinator(venue_enricher, weather_fetcher)
        >>> bundle = await coordinator.enrich(request.venue)
        >>> bundle.cloud_calls()
        ['wikipedia', 'openweather']
    """

    def __init__(self, venues: VenueEnricher, weather: WeatherFetcher) -> None:
        self.venues = venues
        self.weather = weather

    async def enrich(
        self,
        venue: VenueInput | None,
        destination: str | None = None,
    ) -> EnrichmentBundle:
        if venue is None:
            return EnrichmentBundle()

        venue_task = _guarded("Venue", self.venues.lookup(venue.name, destination))

        if venue.coordinates is None:
            return EnrichmentBundle(venue=await venue_task)

        weather_task = _guarded(
            "Weather",
            self.weather.fetch(venue.coordinates.lat, venue.coordinates.lon),
        )
        venue_outcome, weather_outcome = await asyncio.gather(venue_task, weather_task)
        return EnrichmentBundle(venue=venue_outcome, weather=weather_outcome)
