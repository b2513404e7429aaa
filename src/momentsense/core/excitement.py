"""Venue excitement analysis.

Turns venue enrichment into the material that makes a place feel special in
a narrative: a one-line hook, a short list of facts, and the angle a story
about the place should take.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime

from momentsense.core.models import VenueCategory, VenueEnrichment

FAMOUS_THRESHOLD = 0.8
HOOK_AGE_YEARS = 100
FACT_AGE_YEARS = 50
MAX_FACTS = 5
MAX_HOOK_SENTENCE_LENGTH = 100

_SENTENCE_BREAK = re.compile(r"(?<=[.!?])\s+")


@dataclass(frozen=True)
class ExcitementAnalysis:
    fame_score: float = 0.0
    excitement_hook: str | None = None
    unique_facts: list[str] = field(default_factory=list)
    historical_context: str | None = None
    narrative_angle: str | None = None


def _age(venue: VenueEnrichment, current_year: int | None) -> int | None:
    if venue.founded_year is None:
        return None
    return (current_year or datetime.now().year) - venue.founded_year


def generate_excitement_hook(
    venue: VenueEnrichment | None,
    current_year: int | None = None,
) -> str | None:
    """Pick one sentence that makes the venue feel special.

    Preference order: the first unique claim of a famous venue; the age of a
    venue older than a century; the first sentence of its historical
    significance when short; its description.
    """
    if venue is None:
        return None

    if venue.fame_score is not None and venue.fame_score >= FAMOUS_THRESHOLD and venue.unique_claims:
        return venue.unique_claims[0]

    age = _age(venue, current_year)
    if age is not None and age > HOOK_AGE_YEARS:
        return f"{age} years of history await you here"

    if venue.historical_significance:
        first_sentence = _SENTENCE_BREAK.split(venue.historical_significance.strip())[0]
        if len(first_sentence) < MAX_HOOK_SENTENCE_LENGTH:
            return first_sentence

    return venue.description or None


def extract_unique_facts(
    venue: VenueEnrichment | None,
    current_year: int | None = None,
) -> list[str]:
    if venue is None:
        return []

    facts = list(venue.unique_claims)

    age = _age(venue, current_year)
    if age is not None and age > FACT_AGE_YEARS:
        facts.append(f"Established in {venue.founded_year} ({age} years ago)")

    if (
        venue.category == VenueCategory.LANDMARK
        and venue.fame_score is not None
        and venue.fame_score > 0.7
    ):
        facts.append("Widely recognized cultural landmark")

    return facts[:MAX_FACTS]


def suggest_narrative_angle(venue: VenueEnrichment | None) -> str | None:
    """Choose the story angle: significance, historical, sensory, culinary or experiential."""
    if venue is None:
        return None
    if venue.fame_score is not None and venue.fame_score >= FAMOUS_THRESHOLD:
        return "significance"
    if venue.founded_year is not None and venue.founded_year < 1900:
        return "historical"
    if venue.category == VenueCategory.NATURE:
        return "sensory"
    if venue.category == VenueCategory.DINING:
        return "culinary"
    return "experiential"


def analyze_excitement(
    venue: VenueEnrichment | None,
    current_year: int | None = None,
) -> ExcitementAnalysis:
    if venue is None:
        return ExcitementAnalysis()
    return ExcitementAnalysis(
        fame_score=venue.fame_score or 0.0,
        excitement_hook=generate_excitement_hook(venue, current_year),
        unique_facts=extract_unique_facts(venue, current_year),
        historical_context=venue.historical_significance,
        narrative_angle=suggest_narrative_angle(venue),
    )
