"""MomentSense: travel moment synthesis.

Turns metadata about a captured travel moment (photo signals, voice
sentiment, venue, companions) into a single structured memory record with
narratives, atmosphere and a transcendence score.

Example:
    >>> from momentsense import MomentSynthesizer
    >>> synthesizer = MomentSynthesizer.from_config()
    >>> result = await synthesizer.synthesize(payload, identifier="user-42")
    >>> print(result.moment.narratives.short)
"""

from momentsense.synthesizer import (
    InputValidationError,
    MomentSenseError,
    MomentSynthesizer,
    OutputValidationError,
    RateLimitExceededError,
    SynthesisResult,
)

__version__ = "0.1.0"

__all__ = [
    "InputValidationError",
    "MomentSenseError",
    "MomentSynthesizer",
    "OutputValidationError",
    "RateLimitExceededError",
    "SynthesisResult",
    "__version__",
]
