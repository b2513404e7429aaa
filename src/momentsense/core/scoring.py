"""Transcendence Scoring Engine.

Reduces eight heterogeneous signals about a moment to one bounded score:

    score = round(sum(weight[f] * value[f] for f in FACTORS), 2)

Weights are fixed and sum to 1.0, every factor is clamped to [0, 1], so the
score is always in [0, 1]. A moment with a score of at least 0.70 is a
highlight. The dominant factor is the one contributing the most
weight x value; ties go to the factor listed first.

Example:
    >>> factors = build_factors(sentiment_score=0.85, atmosphere_quality=0.9,
    ...                         fame_score=0.95, companion_count=2)
    >>> result = score_transcendence(factors)
    >>> result.is_highlight
    True
"""

from __future__ import annotations

import math

from momentsense.core.models import TranscendenceFactors, TranscendenceResult

# =============================================================================
# Constants
# =============================================================================

TRANSCENDENCE_WEIGHTS: dict[str, float] = {
    "emotion_intensity": 0.25,
    "atmosphere_quality": 0.15,
    "novelty_factor": 0.15,
    "fame_score": 0.10,
    "weather_match": 0.10,
    "companion_engagement": 0.10,
    "intent_match": 0.10,
    "surprise_factor": 0.05,
}

HIGHLIGHT_THRESHOLD = 0.70

# (minimum score, tier), highest first
TIER_THRESHOLDS: list[tuple[float, str]] = [
    (0.85, "peak"),
    (0.70, "highlight"),
    (0.50, "memorable"),
    (0.30, "normal"),
]

FACTOR_LABELS: dict[str, str] = {
    "emotion_intensity": "Emotion",
    "atmosphere_quality": "Atmosphere",
    "novelty_factor": "Novelty",
    "fame_score": "Fame",
    "weather_match": "Weather",
    "companion_engagement": "Companions",
    "intent_match": "Intent",
    "surprise_factor": "Surprise",
}

NEUTRAL_FACTOR = 0.5
DEFAULT_FAME = 0.3
FIRST_VISIT_NOVELTY = 0.85
REPEAT_VISIT_NOVELTY = 0.4
NEGATIVE_SENTIMENT_DAMPING = 0.5
COMPANION_BASE = 0.3
COMPANION_STEP = 0.2
COMPANION_CAP = 0.9
UNEXPECTED_SURPRISE = 0.8
EXPECTED_SURPRISE = 0.2


def validate_weights(weights: dict[str, float] = TRANSCENDENCE_WEIGHTS) -> None:
    """Check that weights cover every factor and sum to 1.0.

    Raises:
        ValueError: If the weight table is inconsistent.
    """
    expected = list(TranscendenceFactors.model_fields)
    if list(weights) != expected:
        raise ValueError(f"Weights must cover factors in order: {expected}")
    total = math.fsum(weights.values())
    if abs(total - 1.0) > 1e-9:
        raise ValueError(f"Transcendence weights sum to {total}, expected 1.0")


validate_weights()


# =============================================================================
# Scoring
# =============================================================================


def transcendence_tier(score: float) -> str:
    for threshold, tier in TIER_THRESHOLDS:
        if score >= threshold:
            return tier
    return "forgettable"


def score_transcendence(factors: TranscendenceFactors) -> TranscendenceResult:
    """Compute the weighted transcendence score for a set of factors.

    Args:
        factors: The eight clamped factor values.

    Returns:
        TranscendenceResult with score, highlight flag, dominant factor and tier.
    """
    values = factors.model_dump()

    contributions = {name: TRANSCENDENCE_WEIGHTS[name] * values[name] for name in values}
    raw = math.fsum(contributions.values())
    score = max(0.0, min(1.0, round(raw, 2)))

    dominant = ""
    best = -1.0
    for name, contribution in contributions.items():
        if contribution > best:
            dominant, best = name, contribution

    return TranscendenceResult(
        score=score,
        factors=factors,
        is_highlight=score >= HIGHLIGHT_THRESHOLD,
        dominant_factor=dominant,
        tier=transcendence_tier(score),
    )


def emotion_intensity(sentiment_score: float | None) -> float:
    """Map voice sentiment to intensity; negative feeling counts half."""
    if sentiment_score is None:
        return NEUTRAL_FACTOR
    damping = 1.0 if sentiment_score > 0 else NEGATIVE_SENTIMENT_DAMPING
    return abs(sentiment_score) * damping


def build_factors(
    sentiment_score: float | None = None,
    atmosphere_quality: float | None = None,
    is_first_visit: bool = True,
    fame_score: float | None = None,
    weather_comfort: float | None = None,
    companion_count: int = 0,
    intent_match: float | None = None,
    had_unexpected_moment: bool = False,
) -> TranscendenceFactors:
    """Assemble scoring factors from moment signals.

    Absent pass-through signals default to 0.5 (fame defaults to 0.3). Every
    factor is rounded to two decimals and clamped to [0, 1].
    """

    def or_default(value: float | None, default: float = NEUTRAL_FACTOR) -> float:
        return default if value is None else value

    raw = {
        "emotion_intensity": emotion_intensity(sentiment_score),
        "atmosphere_quality": or_default(atmosphere_quality),
        "novelty_factor": FIRST_VISIT_NOVELTY if is_first_visit else REPEAT_VISIT_NOVELTY,
        "fame_score": or_default(fame_score, DEFAULT_FAME),
        "weather_match": or_default(weather_comfort),
        "companion_engagement": min(COMPANION_CAP, COMPANION_BASE + COMPANION_STEP * companion_count),
        "intent_match": or_default(intent_match),
        "surprise_factor": UNEXPECTED_SURPRISE if had_unexpected_moment else EXPECTED_SURPRISE,
    }
    return TranscendenceFactors(**{name: round(value, 2) for name, value in raw.items()})


def describe_factors(result: TranscendenceResult) -> list[str]:
    """Human-readable explanation lines for a score.

    Example:
        >>> describe_factors(result)
        ['Emotion: 85%', 'Atmosphere: 90%', 'Fame: 95%', 'Dominant: Emotion']
    """
    factors = result.factors
    return [
        f"Emotion: {round(factors.emotion_intensity * 100)}%",
        f"Atmosphere: {round(factors.atmosphere_quality * 100)}%",
        f"Fame: {round(factors.fame_score * 100)}%",
        f"Dominant: {FACTOR_LABELS[result.dominant_factor]}",
    ]
