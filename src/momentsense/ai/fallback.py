"""Fallback Narrative: Local Drafts When the Narrative Model Is Unavailable.

Produces a complete, schema-valid ``NarrativeDraft`` from the same
metadata the model would have seen. It makes no network calls and never
raises, so a moment can always be synthesized.

The fallback is plain:
- Emotion from the sign and size of the voice sentiment
- Template narratives from venue, companions, weather and theme
- No inferred scents, textures or sounds

Example:
    >>> from momentsense.ai.fallback import generate_fallback_narrative
    >>>
    >>> draft = generate_fallback_narrative(synthesis_input)
    >>> draft.narratives.short
    'A clear day at Senso-ji with Mia.'
"""

from __future__ import annotations

import logging

from momentsense.ai.prompts import SynthesisInput
from momentsense.core.models import (
    DraftAnchors,
    DraftCompanionExperience,
    DraftNarratives,
    InferredSensory,
    NarrativeDraft,
)

logger = logging.getLogger(__name__)

DEFAULT_VENUE_NAME = "this place"
SHORT_NARRATIVE_LIMIT = 100
FALLBACK_CONFIDENCE = 0.5
CLOSING_LINE = "A moment worth remembering."


def infer_fallback_emotion(synthesis_input: SynthesisInput) -> str:
    voice = synthesis_input.voice
    if voice is not None and voice.sentiment_score is not None:
        if voice.sentiment_score > 0.5:
            return "joy"
        if voice.sentiment_score < -0.3:
            return "reflection"
        return "peace"
    if voice is not None and voice.detected_tone:
        return voice.detected_tone
    return "wonder"


def generate_fallback_narrative(synthesis_input: SynthesisInput) -> NarrativeDraft:
    """Build a narrative draft from metadata alone.

    Args:
        synthesis_input: The prompt-safe metadata for the moment.

    Returns:
        A complete NarrativeDraft with confidence 0.5.
    """
    venue = synthesis_input.venue
    venue_name = venue.name if venue is not None else DEFAULT_VENUE_NAME
    names = [companion.name for companion in synthesis_input.companions]
    voice = synthesis_input.voice

    companion_text = f" with {' and '.join(names)}" if names else ""
    theme_text = f"A sense of {voice.theme}." if voice is not None and voice.theme else ""

    if synthesis_input.weather is not None:
        short = f"A {synthesis_input.weather.condition.lower()} day at {venue_name}{companion_text}."
    else:
        short = f"A moment at {venue_name}{companion_text}."

    opening = f"We visited {venue_name}{companion_text}."
    significance = venue.historical_significance if venue is not None else None
    medium = " ".join(part for part in (opening, theme_text, CLOSING_LINE) if part)
    full = " ".join(
        part.strip()
        for part in (opening, theme_text, significance or "", CLOSING_LINE)
        if part and part.strip()
    )

    return NarrativeDraft(
        primary_emotion=infer_fallback_emotion(synthesis_input),
        secondary_emotions=["peace"],
        emotion_confidence=FALLBACK_CONFIDENCE,
        narratives=DraftNarratives(
            short=short[:SHORT_NARRATIVE_LIMIT],
            medium=medium,
            full=full,
        ),
        excitement_hook=venue.unique_claims[0] if venue is not None and venue.unique_claims else None,
        memory_anchors=DraftAnchors(
            sensory=synthesis_input.photo.lighting or "The light",
            emotional="Being here together",
            unexpected=None,
            shareable=None,
            companion=f"{names[0]}'s experience" if names else None,
        ),
        companion_experiences=[
            DraftCompanionExperience(nickname=name, reaction="Enjoyed the visit", would_return=None)
            for name in names
        ],
        inferred_sensory=InferredSensory(),
    )
