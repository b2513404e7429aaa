"""Data models for MomentSense.

Every value that crosses a module boundary is one of these pydantic models:

- the inbound ``SynthesisRequest`` (validated once, then frozen),
- enrichment values (``VenueEnrichment``, ``WeatherSnapshot``),
- scoring values (``TranscendenceFactors``, ``TranscendenceResult``),
- the narrative model contract (``NarrativeDraft``, camelCase on the wire),
- the outbound ``MomentRecord``.

The voice-note transcript is accepted on ``AudioMetadata`` but excluded from
every serialization, and ``UserReflection.voice_note_transcript`` can only
ever be None.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


# =============================================================================
# Enums
# =============================================================================


class VenueCategory(str, Enum):
    """Coarse venue classification used across enrichment and scoring."""

    LANDMARK = "landmark"
    DINING = "dining"
    SHOPPING = "shopping"
    NATURE = "nature"
    EVENT = "event"
    ACCOMMODATION = "accommodation"
    TRANSIT = "transit"
    OTHER = "other"


class Relationship(str, Enum):
    FAMILY = "family"
    FRIEND = "friend"
    PARTNER = "partner"
    COLLEAGUE = "colleague"
    OTHER = "other"


class AgeGroup(str, Enum):
    CHILD = "child"
    TEEN = "teen"
    ADULT = "adult"
    SENIOR = "senior"


class DetectionTrigger(str, Enum):
    PHOTOS = "photos"
    DWELL = "dwell"
    CALENDAR = "calendar"
    MANUAL = "manual"


class Lighting(str, Enum):
    GOLDEN_HOUR = "golden_hour"
    BRIGHT = "bright"
    OVERCAST = "overcast"
    NIGHT = "night"
    INDOOR_WARM = "indoor_warm"
    INDOOR_COOL = "indoor_cool"


class Energy(str, Enum):
    TRANQUIL = "tranquil"
    CALM = "calm"
    LIVELY = "lively"
    ENERGETIC = "energetic"
    CHAOTIC = "chaotic"


class CrowdFeel(str, Enum):
    EMPTY = "empty"
    SPARSE = "sparse"
    MODERATE = "moderate"
    BUSY = "busy"
    PACKED = "packed"


class Setting(str, Enum):
    INDOOR = "indoor"
    OUTDOOR = "outdoor"


class ProcessingTier(str, Enum):
    """How a moment was synthesized.

    FULL means the narrative model produced an accepted draft; LOCAL_ONLY
    means the deterministic fallback was used.
    """

    FULL = "full"
    LOCAL_ONLY = "local_only"


class VenueOrigin(str, Enum):
    """Where a venue enrichment value came from."""

    WIKIPEDIA = "wikipedia"
    MOCK = "mock"


_FROZEN = ConfigDict(frozen=True)


# =============================================================================
# Inbound Request
# =============================================================================


class PhotoLocalAnalysis(BaseModel):
    """On-device photo signals. Free-form strings, mapped later."""

    model_config = _FROZEN

    scene_type: str | None = None
    lighting: str | None = None
    indoor_outdoor: str | None = None
    face_count: int = Field(default=0, ge=0)
    crowd_level: str | None = None
    energy_level: str | None = None
    basic_emotion: str | None = None


class PhotoReference(BaseModel):
    model_config = _FROZEN

    local_id: str = Field(..., min_length=1)
    captured_at: datetime | None = None
    location_extracted: bool = False
    local_analysis: PhotoLocalAnalysis | None = None


class PhotoSet(BaseModel):
    model_config = _FROZEN

    count: int = Field(..., ge=1)
    refs: list[PhotoReference] = Field(default_factory=list)


class AudioMetadata(BaseModel):
    """Voice-note metadata.

    ``transcript`` is accepted so clients can send their full on-device
    record, but it is excluded from dumps and repr and is never read by any
    synthesis step.
    """

    model_config = _FROZEN

    duration_seconds: float = Field(..., ge=0, le=300)
    recorded_at: datetime | None = None
    transcript: str | None = Field(default=None, exclude=True, repr=False)
    sentiment_score: float | None = Field(default=None, ge=-1, le=1)
    sentiment_keywords: list[str] = Field(default_factory=list)


class Coordinates(BaseModel):
    model_config = _FROZEN

    lat: float = Field(..., ge=-90, le=90)
    lon: float = Field(..., ge=-180, le=180)


class VenueInput(BaseModel):
    model_config = _FROZEN

    name: str = Field(..., min_length=1)
    category: VenueCategory | None = None
    coordinates: Coordinates | None = None

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("venue name must not be blank")
        return v


class Companion(BaseModel):
    model_config = _FROZEN

    name: str = Field(..., min_length=1)
    relationship: Relationship | None = None
    detected_from_photo: bool = False
    age_group: AgeGroup | None = None


class Detection(BaseModel):
    model_config = _FROZEN

    trigger: DetectionTrigger = DetectionTrigger.MANUAL
    confidence: float = Field(default=1.0, ge=0, le=1)
    signals: list[str] = Field(default_factory=lambda: ["user_initiated"])


class Preferences(BaseModel):
    model_config = _FROZEN

    enable_cloud_synthesis: bool = True
    include_companion_insights: bool = True


class MomentContext(BaseModel):
    """Request-level signals consumed by the transcendence factors."""

    model_config = _FROZEN

    is_first_visit: bool = True
    had_unexpected_moment: bool = False
    intent_match: float | None = Field(default=None, ge=0, le=1)
    trip_intent: str | None = None
    destination: str | None = None


class SynthesisRequest(BaseModel):
    """A captured moment as received at the boundary."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    photos: PhotoSet
    audio: AudioMetadata | None = None
    venue: VenueInput | None = None
    companions: list[Companion] = Field(default_factory=list)
    captured_at: datetime
    duration_minutes: float | None = Field(default=None, ge=0)
    detection: Detection = Field(default_factory=Detection)
    preferences: Preferences = Field(default_factory=Preferences)
    context: MomentContext = Field(default_factory=MomentContext)


# =============================================================================
# Enrichment
# =============================================================================


class VenueEnrichment(BaseModel):
    model_config = _FROZEN

    verified_name: str
    category: VenueCategory = VenueCategory.OTHER
    description: str | None = None
    founded_year: int | None = None
    historical_significance: str | None = None
    unique_claims: list[str] = Field(default_factory=list, max_length=5)
    fame_score: float | None = Field(default=None, ge=0, le=1)
    wikipedia_url: str | None = None
    origin: VenueOrigin = VenueOrigin.WIKIPEDIA


class WeatherSnapshot(BaseModel):
    model_config = _FROZEN

    condition: str
    description: str | None = None
    temperature_c: float
    humidity_percent: float | None = None
    wind_speed_mps: float | None = None
    outdoor_comfort_score: float = Field(..., ge=0, le=1)


# =============================================================================
# Scoring
# =============================================================================


class TranscendenceFactors(BaseModel):
    """The eight scoring inputs, each clamped to [0, 1].

    Field order is significant: it is the tie-break order for the dominant
    factor.
    """

    model_config = _FROZEN

    emotion_intensity: float = 0.0
    atmosphere_quality: float = 0.0
    novelty_factor: float = 0.0
    fame_score: float = 0.0
    weather_match: float = 0.0
    companion_engagement: float = 0.0
    intent_match: float = 0.0
    surprise_factor: float = 0.0

    @field_validator("*", mode="before")
    @classmethod
    def clamp_unit(cls, v: float | None) -> float:
        if v is None:
            return 0.0
        return max(0.0, min(1.0, float(v)))


class TranscendenceResult(BaseModel):
    model_config = _FROZEN

    score: float = Field(..., ge=0, le=1)
    factors: TranscendenceFactors
    is_highlight: bool
    dominant_factor: str
    tier: Literal["peak", "highlight", "memorable", "normal", "forgettable"]


# =============================================================================
# Narrative Model Contract
# =============================================================================

_CAMEL = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class DraftNarratives(BaseModel):
    model_config = _CAMEL

    short: str = Field(..., min_length=1, max_length=280)
    medium: str = Field(..., min_length=1)
    full: str = Field(..., min_length=1)


class DraftAnchors(BaseModel):
    model_config = _CAMEL

    sensory: str = Field(..., min_length=1)
    emotional: str = Field(..., min_length=1)
    unexpected: str | None = None
    shareable: str | None = None
    companion: str | None = None


class DraftCompanionExperience(BaseModel):
    model_config = _CAMEL

    nickname: str = Field(..., min_length=1)
    reaction: str = Field(..., min_length=1)
    would_return: bool | None = None


class InferredSensory(BaseModel):
    model_config = _CAMEL

    scent: str | None = None
    tactile: str | None = None
    sound: str | None = None


class NarrativeDraft(BaseModel):
    """Narrative content for a moment, from the model or the fallback.

    Serialized with camelCase aliases, which is the JSON shape the
    narrative model is asked to return.
    """

    model_config = _CAMEL

    primary_emotion: str = Field(..., min_length=1)
    secondary_emotions: list[str] = Field(default_factory=list)
    emotion_confidence: float = Field(..., ge=0, le=1)
    narratives: DraftNarratives
    excitement_hook: str | None = None
    memory_anchors: DraftAnchors
    companion_experiences: list[DraftCompanionExperience] = Field(default_factory=list)
    inferred_sensory: InferredSensory = Field(default_factory=InferredSensory)


# =============================================================================
# Outbound Moment Record
# =============================================================================


class PhotosInfo(BaseModel):
    model_config = _FROZEN

    count: int = Field(..., ge=1)
    refs: list[str] = Field(default_factory=list)


class AtmosphereInfo(BaseModel):
    model_config = _FROZEN

    lighting: Lighting
    energy: Energy
    setting: Setting
    crowd_feel: CrowdFeel


class SensoryDetails(BaseModel):
    model_config = _FROZEN

    visual: str = Field(..., min_length=1)
    audio: str | None = None
    scent: str | None = None
    tactile: str | None = None


class ExcitementInfo(BaseModel):
    model_config = _FROZEN

    fame_score: float | None = Field(default=None, ge=0, le=1)
    fame_signals: list[str] = Field(default_factory=list)
    unique_claims: list[str] = Field(default_factory=list)
    historical_significance: str | None = None
    excitement_hook: str | None = None


class MemoryAnchors(BaseModel):
    model_config = _FROZEN

    sensory_anchor: str = Field(..., min_length=1)
    emotional_anchor: str = Field(..., min_length=1)
    unexpected_anchor: str | None = None
    shareable_anchor: str | None = None
    family_anchor: str | None = None


class Narratives(BaseModel):
    model_config = _FROZEN

    short: str = Field(..., min_length=1, max_length=280)
    medium: str = Field(..., min_length=1)
    full: str = Field(..., min_length=1)


class CompanionExperience(BaseModel):
    model_config = _FROZEN

    name: str = Field(..., min_length=1)
    relationship: Relationship = Relationship.OTHER
    moment_highlight: str = Field(..., min_length=1)
    engagement_level: Literal["high", "moderate", "low"] = "moderate"
    interests_matched: list[str] = Field(default_factory=list)
    needs_met: list[str] = Field(default_factory=list)
    concerns: list[str] = Field(default_factory=list)


class WeatherInfo(BaseModel):
    model_config = _FROZEN

    condition: str
    temperature_c: float
    comfort_score: float = Field(..., ge=0, le=1)


class Timing(BaseModel):
    model_config = _FROZEN

    local_time: str
    is_golden_hour: bool
    is_weekend: bool


class Environment(BaseModel):
    model_config = _FROZEN

    weather: WeatherInfo | None = None
    timing: Timing


class UserReflection(BaseModel):
    model_config = _FROZEN

    voice_note_transcript: None = None
    sentiment: float | None = Field(default=None, ge=-1, le=1)
    keywords: list[str] = Field(default_factory=list)


class ProcessingInfo(BaseModel):
    model_config = _FROZEN

    tier: ProcessingTier
    local_percentage: int = Field(..., ge=0, le=100)
    cloud_calls: list[str] = Field(default_factory=list)
    processing_time_ms: int = Field(..., ge=0)


class MomentRecord(BaseModel):
    """The synthesized memory for one moment. Built once, never mutated."""

    model_config = _FROZEN

    moment_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime
    venue_name: str = Field(..., min_length=1)
    venue_category: VenueCategory | None = None
    detection: Detection
    photos: PhotosInfo

    emotion_tags: list[str] = Field(default_factory=list)
    primary_emotion: str = Field(..., min_length=1)
    emotion_confidence: float = Field(..., ge=0, le=1)

    atmosphere: AtmosphereInfo

    transcendence_score: float = Field(..., ge=0, le=1)
    transcendence_factors: list[str] = Field(default_factory=list)
    transcendence_dominant_factor: str
    is_highlight: bool

    sensory_details: SensoryDetails
    excitement: ExcitementInfo
    memory_anchors: MemoryAnchors
    narratives: Narratives
    companion_experiences: list[CompanionExperience] = Field(default_factory=list)
    environment: Environment
    user_reflection: UserReflection
    processing: ProcessingInfo

    status: Literal["active", "archived"] = "active"
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
