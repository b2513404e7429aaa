"""Atmosphere mapping from on-device photo signals.

Photo analysis arrives as free-form strings. These tables map them onto
the closed atmosphere enums of the output record. Lookups are
case-insensitive, trim whitespace, and fall back to a default instead of
raising.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

from momentsense.core.models import (
    AtmosphereInfo,
    CrowdFeel,
    Energy,
    Lighting,
    PhotoReference,
    Setting,
)

# =============================================================================
# Mapping Tables
# =============================================================================

LIGHTING_MAP: dict[str, Lighting] = {
    "golden_hour": Lighting.GOLDEN_HOUR,
    "bright": Lighting.BRIGHT,
    "overcast": Lighting.OVERCAST,
    "dim": Lighting.OVERCAST,
    "night": Lighting.NIGHT,
    "indoor_warm": Lighting.INDOOR_WARM,
    "indoor_cool": Lighting.INDOOR_COOL,
    "mixed": Lighting.BRIGHT,
}

ENERGY_MAP: dict[str, Energy] = {
    "serene": Energy.TRANQUIL,
    "tranquil": Energy.TRANQUIL,
    "calm": Energy.CALM,
    "lively": Energy.LIVELY,
    "energetic": Energy.ENERGETIC,
    "intense": Energy.CHAOTIC,
    "chaotic": Energy.CHAOTIC,
}

CROWD_MAP: dict[str, CrowdFeel] = {
    "empty": CrowdFeel.EMPTY,
    "sparse": CrowdFeel.SPARSE,
    "moderate": CrowdFeel.MODERATE,
    "busy": CrowdFeel.BUSY,
    "packed": CrowdFeel.PACKED,
}

SETTING_MAP: dict[str, Setting] = {
    "indoor": Setting.INDOOR,
    "outdoor": Setting.OUTDOOR,
    "mixed": Setting.OUTDOOR,
}


def _normalize(value: str | None) -> str:
    return (value or "").strip().lower()


def map_lighting(value: str | None) -> Lighting:
    return LIGHTING_MAP.get(_normalize(value), Lighting.BRIGHT)


def map_energy(value: str | None) -> Energy:
    return ENERGY_MAP.get(_normalize(value), Energy.CALM)


def map_crowd(value: str | None) -> CrowdFeel:
    return CROWD_MAP.get(_normalize(value), CrowdFeel.MODERATE)


def map_setting(value: str | None) -> Setting:
    return SETTING_MAP.get(_normalize(value), Setting.OUTDOOR)


# =============================================================================
# Photo Aggregation
# =============================================================================


@dataclass(frozen=True)
class PhotoSummary:
    """Aggregate of per-photo local analysis for one moment."""

    scene: str | None = None
    lighting: str | None = None
    indoor_outdoor: str | None = None
    face_count: int = 0
    crowd_level: str | None = None
    energy_level: str | None = None
    emotions: list[str] = field(default_factory=list)


def aggregate_photo_analysis(refs: Sequence[PhotoReference]) -> PhotoSummary:
    """Collapse per-photo analysis into one summary.

    Scene, lighting and setting come from the first photo that reports them;
    crowd and energy come from the first photo; faces are summed; emotions
    are de-duplicated in first-seen order.
    """
    analyses = [ref.local_analysis for ref in refs if ref.local_analysis is not None]
    if not analyses:
        return PhotoSummary()

    def first(attr: str) -> str | None:
        return next((getattr(a, attr) for a in analyses if getattr(a, attr)), None)

    emotions: list[str] = []
    for analysis in analyses:
        if analysis.basic_emotion and analysis.basic_emotion not in emotions:
            emotions.append(analysis.basic_emotion)

    return PhotoSummary(
        scene=first("scene_type"),
        lighting=first("lighting"),
        indoor_outdoor=first("indoor_outdoor"),
        face_count=sum(a.face_count for a in analyses),
        crowd_level=analyses[0].crowd_level,
        energy_level=analyses[0].energy_level,
        emotions=emotions,
    )


def build_atmosphere(summary: PhotoSummary) -> AtmosphereInfo:
    return AtmosphereInfo(
        lighting=map_lighting(summary.lighting),
        energy=map_energy(summary.energy_level),
        setting=map_setting(summary.indoor_outdoor),
        crowd_feel=map_crowd(summary.crowd_level),
    )


def atmosphere_quality(summary: PhotoSummary) -> float:
    """Heuristic atmosphere factor in [0, 1].

    Starts at 0.5; golden-hour light adds 0.3, bright light 0.1, and a
    serene or calm energy 0.1.
    """
    quality = 0.5
    lighting = _normalize(summary.lighting)
    if lighting == "golden_hour":
        quality += 0.3
    elif lighting == "bright":
        quality += 0.1
    if _normalize(summary.energy_level) in ("serene", "calm"):
        quality += 0.1
    return min(1.0, quality)
