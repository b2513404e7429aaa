"""Deterministic placeholder venue data.

Used whenever the encyclopedia lookup fails. A small table of famous venues
returns curated data; any other name gets synthetic enrichment derived from
a SHA-256 digest of the name, so the same name always yields the same
record.
"""

from __future__ import annotations

import hashlib
from urllib.parse import quote

from momentsense.core.models import VenueCategory, VenueEnrichment, VenueOrigin

MOCK_CATEGORY_ORDER: list[VenueCategory] = [
    VenueCategory.LANDMARK,
    VenueCategory.DINING,
    VenueCategory.SHOPPING,
    VenueCategory.NATURE,
    VenueCategory.EVENT,
    VenueCategory.ACCOMMODATION,
    VenueCategory.TRANSIT,
    VenueCategory.OTHER,
]

FAMOUS_VENUE_MOCKS: dict[str, VenueEnrichment] = {
    "Senso-ji": VenueEnrichment(
        verified_name="Senso-ji",
        category=VenueCategory.LANDMARK,
        description="Ancient Buddhist temple in Asakusa, Tokyo",
        founded_year=628,
        historical_significance=(
            "Senso-ji is Tokyo's oldest temple, founded in 628 CE. According to "
            "legend, two fishermen found a statue of Kannon in the Sumida River."
        ),
        unique_claims=[
            "Oldest temple in Tokyo",
            "Over 30 million visitors annually",
            "Famous Kaminarimon (Thunder Gate) with giant red lantern",
        ],
        fame_score=0.95,
        wikipedia_url="https://en.wikipedia.org/wiki/Sens%C5%8D-ji",
        origin=VenueOrigin.MOCK,
    ),
    "Eiffel Tower": VenueEnrichment(
        verified_name="Eiffel Tower",
        category=VenueCategory.LANDMARK,
        description="Wrought-iron lattice tower on the Champ de Mars in Paris",
        founded_year=1889,
        historical_significance=(
            "The Eiffel Tower was constructed for the 1889 World's Fair and has "
            "become a global cultural icon of France."
        ),
        unique_claims=[
            "Most-visited paid monument in the world",
            "Tallest structure in Paris",
            "Named after engineer Gustave Eiffel",
        ],
        fame_score=0.99,
        wikipedia_url="https://en.wikipedia.org/wiki/Eiffel_Tower",
        origin=VenueOrigin.MOCK,
    ),
    "Fushimi Inari": VenueEnrichment(
        verified_name="Fushimi Inari-taisha",
        category=VenueCategory.LANDMARK,
        description="Head shrine of the kami Inari in Kyoto",
        founded_year=711,
        historical_significance=(
            "Fushimi Inari-taisha is the head shrine of Inari, the god of rice and "
            "prosperity. It is famous for its thousands of vermilion torii gates."
        ),
        unique_claims=[
            "Over 10,000 torii gates",
            "One of Kyoto's most important Shinto shrines",
            "Open 24 hours",
        ],
        fame_score=0.92,
        wikipedia_url="https://en.wikipedia.org/wiki/Fushimi_Inari-taisha",
        origin=VenueOrigin.MOCK,
    ),
}


def stable_hash(name: str) -> int:
    """Process-independent integer hash of a venue name."""
    return int(hashlib.sha256(name.encode("utf-8")).hexdigest()[:12], 16)


def get_mock_venue_enrichment(venue_name: str) -> VenueEnrichment:
    """Synthesize plausible enrichment from the name alone."""
    digest = stable_hash(venue_name)
    category = MOCK_CATEGORY_ORDER[digest % len(MOCK_CATEGORY_ORDER)]

    return VenueEnrichment(
        verified_name=venue_name,
        category=category,
        description=(
            f"{venue_name} is a notable destination known for its unique character "
            "and cultural significance."
        ),
        founded_year=1900 + digest % 125,
        historical_significance=(
            f"{venue_name} has been a beloved spot for generations, offering visitors "
            "an authentic experience."
        ),
        unique_claims=[
            f"One of the most visited {category.value} destinations in the region",
            "Featured in numerous travel guides",
        ],
        fame_score=round(0.5 + (digest % 50) / 100, 2),
        wikipedia_url=f"https://en.wikipedia.org/wiki/{quote(venue_name.replace(' ', '_'))}",
        origin=VenueOrigin.MOCK,
    )


def get_mock_venue_data(venue_name: str) -> VenueEnrichment:
    """Famous-venue table lookup (case-insensitive substring), else synthetic data."""
    lowered = venue_name.lower()
    for key, data in FAMOUS_VENUE_MOCKS.items():
        if key.lower() in lowered:
            return data
    return get_mock_venue_enrichment(venue_name)
