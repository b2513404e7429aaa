"""Narrative Synthesis Prompt for MomentSense.

This module is the SINGLE SOURCE of the prompt sent to the narrative model.

Design Principles:
- Metadata only: the model sees photo signals, voice sentiment and keywords,
  venue facts, weather and timing. Never photos, audio or transcript text.
- Structured prompt: one system instruction plus one user message with
  labeled sections and an explicit JSON output shape.
- Strict parsing: a response that does not validate as ``NarrativeDraft``
  is treated as a failed call.

Example:
    >>> synthesis_input = build_synthesis_input(request, venue, weather)
    >>> prompt = build_synthesis_prompt(synthesis_input)
    >>> response = await client.generate_json(prompt, system_instruction=SYSTEM_PROMPT)
    >>> draft = validate_synthesis_output(response.data)
"""

from __future__ import annotations

import logging
import textwrap
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from pydantic import ValidationError

from momentsense.core.atmosphere import PhotoSummary, aggregate_photo_analysis
from momentsense.core.models import (
    NarrativeDraft,
    SynthesisRequest,
    VenueEnrichment,
    WeatherSnapshot,
)

logger = logging.getLogger(__name__)


# =============================================================================
# System Instruction
# =============================================================================

SYSTEM_PROMPT = textwrap.dedent(
    """
    You are a memory synthesis specialist for travel moments. You turn the
    metadata of a single moment into narratives that still feel true when
    they are reread years later: not only what happened, but how it felt.

    PRIVACY CONTEXT:
    - You receive ONLY extracted metadata, never photos, audio or transcripts
    - Photo metadata: scene type, lighting, face count, crowd level, energy
    - Voice metadata: sentiment score, tone, keywords, theme
    - You never see what the person actually said, only the feeling it carried
    - Every inference must rest on the metadata and the venue context

    INFERENCE GUIDELINES:
    Contextually grounded sensory details are welcome:
    - Temple with calm energy: "incense drifting through the morning air"
    - Beach with calm energy: "waves folding onto warm sand"
    - Dining venue: "the clink of chopsticks against bowls"
    - High sentiment with a "dream" keyword: a sense of fulfillment

    Do NOT invent specifics the metadata does not support:
    - Colors, clothing or objects that were not reported
    - A sunset unless the lighting is golden_hour
    - Quotes of anything the person said

    NARRATIVE VOICE:
    - Let the detected tone set the register: excited means vivid, calm means quiet
    - Mention companions by name where it reads naturally
    - Avoid travel cliches ("hidden gem", "breathtaking", "off the beaten path")
    - Be specific rather than generic

    OUTPUT REQUIREMENTS:
    - Return ONLY a JSON object matching the requested structure
    - No markdown code fences and no commentary
    """
).strip()

OUTPUT_SHAPE = textwrap.dedent(
    """
    {
      "primaryEmotion": "string (e.g., awe, joy, peace, excitement, nostalgia, wonder)",
      "secondaryEmotions": ["2-3", "further", "emotions"],
      "emotionConfidence": 0.0-1.0,
      "narratives": {
        "short": "15-25 word poetic summary",
        "medium": "50-80 word narrative with the key moments",
        "full": "150-200 word complete story including every companion"
      },
      "excitementHook": "One sentence that makes this place feel special (or null)",
      "memoryAnchors": {
        "sensory": "A specific sensory detail to remember",
        "emotional": "The emotional peak of the moment",
        "unexpected": "Something surprising (or null)",
        "shareable": "The part most worth sharing (or null)",
        "companion": "A companion-specific memory (or null if solo)"
      },
      "companionExperiences": [
        {
          "nickname": "Name from the companions list",
          "reaction": "How they experienced this moment",
          "wouldReturn": true/false/null
        }
      ],
      "inferredSensory": {
        "scent": "Contextually appropriate scent (or null)",
        "tactile": "Contextually appropriate texture or feeling (or null)",
        "sound": "Contextually appropriate sound (or null)"
      }
    }
    """
).strip()


# =============================================================================
# Synthesis Input
# =============================================================================


@dataclass(frozen=True)
class VoiceAnalysis:
    """Voice-note metadata. The transcript is deliberately not a field."""

    sentiment_score: float | None = None
    detected_tone: str | None = None
    keywords: list[str] = field(default_factory=list)
    theme: str | None = None
    duration_seconds: float | None = None


@dataclass(frozen=True)
class VenueContext:
    name: str
    category: str
    description: str | None = None
    founded_year: int | None = None
    historical_significance: str | None = None
    unique_claims: list[str] = field(default_factory=list)
    fame_score: float | None = None


@dataclass(frozen=True)
class WeatherContext:
    condition: str
    temperature_c: float
    comfort_score: float


@dataclass(frozen=True)
class CompanionContext:
    name: str
    relationship: str = "other"
    age_group: str | None = None


@dataclass(frozen=True)
class TemporalContext:
    local_time: str
    is_golden_hour: bool
    is_weekend: bool
    duration_minutes: float | None = None
    trip_intent: str | None = None


@dataclass(frozen=True)
class SynthesisInput:
    """Everything the narrative step may know about a moment."""

    photo: PhotoSummary
    voice: VoiceAnalysis | None
    venue: VenueContext | None
    weather: WeatherContext | None
    companions: list[CompanionContext]
    context: TemporalContext


# Ordered: first matching keyword set wins
THEME_KEYWORDS: list[tuple[str, frozenset[str]]] = [
    ("fulfillment", frozenset({"dream", "dreamed", "always"})),
    ("discovery", frozenset({"first", "never", "new"})),
    ("nostalgia", frozenset({"remember", "childhood", "back"})),
    ("tranquility", frozenset({"peace", "calm", "quiet"})),
    ("wonder", frozenset({"amazing", "incredible", "wow"})),
    ("connection", frozenset({"together", "family", "friends"})),
]


def infer_theme(keywords: list[str]) -> str | None:
    """Map extracted keywords to an emotional theme, or None.

    Example:
        >>> infer_theme(["Dream", "temple"])
        'fulfillment'
    """
    keyword_set = {keyword.lower() for keyword in keywords}
    for theme, triggers in THEME_KEYWORDS:
        if keyword_set & triggers:
            return theme
    return None


def infer_tone(sentiment_score: float | None) -> str | None:
    if sentiment_score is None:
        return None
    if sentiment_score > 0.7:
        return "excited"
    if sentiment_score > 0.4:
        return "happy"
    if sentiment_score > 0:
        return "content"
    if sentiment_score > -0.3:
        return "neutral"
    return "reflective"


def is_golden_hour(moment: datetime) -> bool:
    return 6 <= moment.hour <= 8 or 17 <= moment.hour <= 19


def is_weekend(moment: datetime) -> bool:
    return moment.weekday() >= 5


def format_local_time(moment: datetime) -> str:
    """Render a capture time as ``h:MM AM/PM``.

    Example:
        >>> format_local_time(datetime(2024, 3, 15, 15, 5))
        '3:05 PM'
    """
    hour = moment.hour % 12 or 12
    suffix = "AM" if moment.hour < 12 else "PM"
    return f"{hour}:{moment.minute:02d} {suffix}"


def build_temporal_context(request: SynthesisRequest) -> TemporalContext:
    captured = request.captured_at
    return TemporalContext(
        local_time=format_local_time(captured),
        is_golden_hour=is_golden_hour(captured),
        is_weekend=is_weekend(captured),
        duration_minutes=request.duration_minutes or None,
        trip_intent=request.context.trip_intent,
    )


def build_synthesis_input(
    request: SynthesisRequest,
    venue: VenueEnrichment | None,
    weather: WeatherSnapshot | None,
) -> SynthesisInput:
    """Reduce a request and its enrichment to prompt-safe metadata.

    The voice-note transcript is never read here.
    """
    voice = None
    if request.audio is not None:
        keywords = list(request.audio.sentiment_keywords)
        voice = VoiceAnalysis(
            sentiment_score=request.audio.sentiment_score,
            detected_tone=infer_tone(request.audio.sentiment_score),
            keywords=keywords,
            theme=infer_theme(keywords),
            duration_seconds=request.audio.duration_seconds,
        )

    venue_context = None
    if venue is not None:
        venue_context = VenueContext(
            name=venue.verified_name,
            category=venue.category.value,
            description=venue.description,
            founded_year=venue.founded_year,
            historical_significance=venue.historical_significance,
            unique_claims=list(venue.unique_claims),
            fame_score=venue.fame_score,
        )

    weather_context = None
    if weather is not None:
        weather_context = WeatherContext(
            condition=weather.condition,
            temperature_c=weather.temperature_c,
            comfort_score=weather.outdoor_comfort_score,
        )

    companions = [
        CompanionContext(
            name=companion.name,
            relationship=companion.relationship.value if companion.relationship else "other",
            age_group=companion.age_group.value if companion.age_group else None,
        )
        for companion in request.companions
    ]

    return SynthesisInput(
        photo=aggregate_photo_analysis(request.photos.refs),
        voice=voice,
        venue=venue_context,
        weather=weather_context,
        companions=companions,
        context=build_temporal_context(request),
    )


# =============================================================================
# Prompt Rendering
# =============================================================================


def _sentiment_label(score: float) -> str:
    if score > 0.5:
        return "(highly positive)"
    if score > 0:
        return "(positive)"
    if score < -0.3:
        return "(negative)"
    return "(neutral)"


def _photo_section(photo: PhotoSummary) -> str:
    emotions = ", ".join(photo.emotions) if photo.emotions else "none detected"
    return "\n".join(
        [
            "## Photo Analysis (metadata only)",
            f"- Scene: {photo.scene or 'not detected'}",
            f"- Lighting: {photo.lighting or 'not detected'}",
            f"- Setting: {photo.indoor_outdoor or 'unknown'}",
            f"- Faces detected: {photo.face_count}",
            f"- Crowd level: {photo.crowd_level or 'not detected'}",
            f"- Energy: {photo.energy_level or 'not detected'}",
            f"- Basic emotions: {emotions}",
        ]
    )


def _voice_section(voice: VoiceAnalysis | None) -> str:
    if voice is None:
        return "## Voice Analysis\nNo voice note provided."

    if voice.sentiment_score is not None:
        sentiment = f"{voice.sentiment_score:.2f} {_sentiment_label(voice.sentiment_score)}"
    else:
        sentiment = "not analyzed"
    keywords = ", ".join(voice.keywords) if voice.keywords else "none extracted"
    duration = f"{voice.duration_seconds:g}s" if voice.duration_seconds else "unknown"

    return "\n".join(
        [
            "## Voice Analysis (metadata only, transcript not transmitted)",
            f"Sentiment: {sentiment}",
            f"Tone: {voice.detected_tone or 'not detected'}",
            f"Keywords: {keywords}",
            f"Theme: {voice.theme or 'not detected'}",
            f"Duration: {duration}",
        ]
    )


def _venue_section(venue: VenueContext | None) -> str:
    if venue is None:
        return "## Venue Context\nNo venue information available."

    lines = ["## Venue Context", f"Name: {venue.name}", f"Category: {venue.category}"]
    if venue.description:
        lines.append(f"Description: {venue.description}")
    if venue.founded_year:
        lines.append(f"Founded: {venue.founded_year}")
    if venue.historical_significance:
        lines.append(f"Significance: {venue.historical_significance}")
    if venue.unique_claims:
        lines.append(f"Notable facts: {'; '.join(venue.unique_claims)}")
    if venue.fame_score is not None:
        lines.append(f"Fame score: {venue.fame_score:.2f}")
    return "\n".join(lines)


def _weather_section(weather: WeatherContext) -> str:
    return "\n".join(
        [
            "## Weather",
            f"Condition: {weather.condition}",
            f"Temperature: {weather.temperature_c:g}°C",
            f"Outdoor comfort: {weather.comfort_score * 100:.0f}%",
        ]
    )


def _companion_section(companions: list[CompanionContext]) -> str:
    lines = ["## Companions"]
    for companion in companions:
        age = f" ({companion.age_group})" if companion.age_group else ""
        lines.append(f"- {companion.name}{age}")
    return "\n".join(lines)


def _context_section(context: TemporalContext) -> str:
    lines = [
        "## Context",
        f"Local time: {context.local_time}",
        f"Golden hour: {'yes' if context.is_golden_hour else 'no'}",
        f"Weekend: {'yes' if context.is_weekend else 'no'}",
    ]
    if context.duration_minutes:
        lines.append(f"Duration: {context.duration_minutes:g} minutes")
    if context.trip_intent:
        lines.append(f"Trip intent: {context.trip_intent}")
    return "\n".join(lines)


def build_synthesis_prompt(synthesis_input: SynthesisInput) -> str:
    """Render the user message for one narrative call."""
    sections = [
        _photo_section(synthesis_input.photo),
        _voice_section(synthesis_input.voice),
        _venue_section(synthesis_input.venue),
    ]
    if synthesis_input.weather is not None:
        sections.append(_weather_section(synthesis_input.weather))
    if synthesis_input.companions:
        sections.append(_companion_section(synthesis_input.companions))
    sections.append(_context_section(synthesis_input.context))
    sections.append(
        "## Required Output\n\n"
        "Generate a JSON object with this structure:\n\n"
        f"{OUTPUT_SHAPE}\n\n"
        "Return ONLY the JSON object, no other text."
    )
    return "\n\n".join(sections)


# =============================================================================
# Response Parsing
# =============================================================================


def validate_synthesis_output(data: Any) -> NarrativeDraft | None:
    """Validate already-parsed JSON as a narrative draft, or None."""
    try:
        return NarrativeDraft.model_validate(data)
    except ValidationError as e:
        logger.warning(f"Narrative response failed validation ({e.error_count()} errors)")
        return None

