"""Narrative model integration: client, prompt and local fallback."""

from momentsense.ai.client import (
    AIClientError,
    AIUnavailableError,
    NarrativeClient,
    StructuredAIResponse,
)
from momentsense.ai.fallback import generate_fallback_narrative
from momentsense.ai.prompts import (
    SYSTEM_PROMPT,
    SynthesisInput,
    build_synthesis_input,
    build_synthesis_prompt,
)

__all__ = [
    "AIClientError",
    "AIUnavailableError",
    "NarrativeClient",
    "SYSTEM_PROMPT",
    "StructuredAIResponse",
    "SynthesisInput",
    "build_synthesis_input",
    "build_synthesis_prompt",
    "generate_fallback_narrative",
]
