"""Tests for the transcendence scoring engine."""

from __future__ import annotations

import pytest

from momentsense.core.models import TranscendenceFactors
from momentsense.core.scoring import (
    TRANSCENDENCE_WEIGHTS,
    build_factors,
    describe_factors,
    emotion_intensity,
    score_transcendence,
    transcendence_tier,
    validate_weights,
)

# =============================================================================
# Weights
# =============================================================================


class TestWeights:
    """Tests for the weight table."""

    def test_weights_sum_to_one(self) -> None:
        """The shipped weight table is consistent."""
        validate_weights()
        assert sum(TRANSCENDENCE_WEIGHTS.values()) == pytest.approx(1.0)

    def test_weights_follow_factor_order(self) -> None:
        assert list(TRANSCENDENCE_WEIGHTS) == list(TranscendenceFactors.model_fields)

    def test_inconsistent_weights_rejected(self) -> None:
        broken = dict(TRANSCENDENCE_WEIGHTS, surprise_factor=0.5)
        with pytest.raises(ValueError, match="sum"):
            validate_weights(broken)

    def test_missing_factor_rejected(self) -> None:
        broken = {k: v for k, v in TRANSCENDENCE_WEIGHTS.items() if k != "fame_score"}
        with pytest.raises(ValueError, match="order"):
            validate_weights(broken)


# =============================================================================
# Factor Assembly
# =============================================================================


class TestBuildFactors:
    """Tests for build_factors defaults and transforms."""

    def test_defaults(self) -> None:
        """Absent signals fall back to neutral values."""
        factors = build_factors()

        assert factors.emotion_intensity == 0.5
        assert factors.atmosphere_quality == 0.5
        assert factors.novelty_factor == 0.85
        assert factors.fame_score == 0.3
        assert factors.weather_match == 0.5
        assert factors.companion_engagement == 0.3
        assert factors.intent_match == 0.5
        assert factors.surprise_factor == 0.2

    def test_repeat_visit_lowers_novelty(self) -> None:
        assert build_factors(is_first_visit=False).novelty_factor == 0.4

    def test_unexpected_moment_raises_surprise(self) -> None:
        assert build_factors(had_unexpected_moment=True).surprise_factor == 0.8

    @pytest.mark.parametrize(
        "count,expected",
        [(0, 0.3), (1, 0.5), (2, 0.7), (3, 0.9), (10, 0.9)],
    )
    def test_companion_engagement_is_capped(self, count: int, expected: float) -> None:
        assert build_factors(companion_count=count).companion_engagement == expected

    def test_negative_sentiment_is_damped(self) -> None:
        """Negative feeling counts half as much as positive feeling."""
        assert emotion_intensity(0.8) == pytest.approx(0.8)
        assert emotion_intensity(-0.8) == pytest.approx(0.4)
        assert emotion_intensity(None) == 0.5

    def test_factors_are_clamped(self) -> None:
        factors = TranscendenceFactors(emotion_intensity=1.7, atmosphere_quality=-0.2, fame_score=None)

        assert factors.emotion_intensity == 1.0
        assert factors.atmosphere_quality == 0.0
        assert factors.fame_score == 0.0


# =============================================================================
# Score
# =============================================================================


class TestScoreTranscendence:
    """Tests for the weighted score, highlight flag and dominant factor."""

    def test_famous_golden_hour_moment_is_highlight(self) -> None:
        """A joyful golden-hour visit to a famous landmark scores as a highlight."""
        factors = build_factors(
            sentiment_score=0.85,
            atmosphere_quality=0.9,
            fame_score=0.95,
            companion_count=2,
        )
        result = score_transcendence(factors)

        assert result.score == 0.75
        assert result.is_highlight is True
        assert result.dominant_factor == "emotion_intensity"
        assert result.tier == "highlight"

    def test_score_stays_in_unit_interval(self) -> None:
        all_max = TranscendenceFactors(**{name: 1.0 for name in TRANSCENDENCE_WEIGHTS})
        all_min = TranscendenceFactors()

        assert score_transcendence(all_max).score == 1.0
        assert score_transcendence(all_min).score == 0.0

    @pytest.mark.parametrize("value", [0.0, 0.5, 1.0])
    def test_uniform_factors_score_their_value(self, value: float) -> None:
        """Weights sum to one, so equal factors give that same score."""
        factors = TranscendenceFactors(**{name: value for name in TRANSCENDENCE_WEIGHTS})
        assert score_transcendence(factors).score == value

    def test_ties_go_to_first_factor(self) -> None:
        result = score_transcendence(TranscendenceFactors())
        assert result.dominant_factor == "emotion_intensity"

    def test_dominant_factor_uses_weighted_contribution(self) -> None:
        """Fame 1.0 (weight 0.10) beats emotion 0.3 (contribution 0.075)."""
        factors = TranscendenceFactors(emotion_intensity=0.3, fame_score=1.0)
        assert score_transcendence(factors).dominant_factor == "fame_score"

    def test_highlight_threshold_is_inclusive(self) -> None:
        factors = TranscendenceFactors(
            emotion_intensity=1.0,
            atmosphere_quality=1.0,
            novelty_factor=1.0,
            fame_score=1.0,
            weather_match=0.5,
        )
        result = score_transcendence(factors)

        assert result.score == 0.70
        assert result.is_highlight is True

    @pytest.mark.parametrize(
        "score,tier",
        [(0.9, "peak"), (0.85, "peak"), (0.7, "highlight"), (0.5, "memorable"), (0.3, "normal"), (0.1, "forgettable")],
    )
    def test_tiers(self, score: float, tier: str) -> None:
        assert transcendence_tier(score) == tier


class TestDescribeFactors:
    def test_description_lines(self) -> None:
        factors = build_factors(sentiment_score=0.85, atmosphere_quality=0.9, fame_score=0.95)
        lines = describe_factors(score_transcendence(factors))

        assert lines == ["Emotion: 85%", "Atmosphere: 90%", "Fame: 95%", "Dominant: Emotion"]
