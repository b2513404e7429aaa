"""External enrichment: venue facts from Wikipedia and current weather."""

from momentsense.enrichment.coordinator import EnrichmentBundle, EnrichmentCoordinator
from momentsense.enrichment.outcome import Degraded, Ok, Outcome, cloud_calls
from momentsense.enrichment.venue import VenueEnricher, WikipediaClient
from momentsense.enrichment.weather import WeatherFetcher

__all__ = [
    "Degraded",
    "EnrichmentBundle",
    "EnrichmentCoordinator",
    "Ok",
    "Outcome",
    "VenueEnricher",
    "WeatherFetcher",
    "WikipediaClient",
    "cloud_calls",
]
