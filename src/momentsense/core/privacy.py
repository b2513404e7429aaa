"""Privacy helpers for outbound data.

Two rules apply to everything that leaves the process:

- Coordinates sent to third parties are coarsened to a 0.1 degree grid
  (roughly 11 km), so nearby points share one cell.
- The voice-note transcript never appears in a prompt, log line or
  output record.
"""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)

COORDINATE_PRECISION = 1

# Shorter transcripts are indistinguishable from ordinary keywords
MIN_GUARDED_TRANSCRIPT_LENGTH = 20


class PrivacyViolationError(Exception):
    """Raised when an outbound artifact would leak the voice-note transcript."""

    pass


def coarsen_coordinates(
    lat: float,
    lon: float,
    precision: int = COORDINATE_PRECISION,
) -> tuple[float, float]:
    """Reduce precision of coordinates before they leave the process.

    Args:
        lat: Latitude.
        lon: Longitude.
        precision: Decimal places to keep.

    Returns:
        Tuple of (coarse_lat, coarse_lon).

    Example:
        >>> coarsen_coordinates(35.7148, 139.7967)
        (35.7, 139.8)
    """
    return (round(lat, precision), round(lon, precision))


def same_cell(a: tuple[float, float], b: tuple[float, float]) -> bool:
    """Whether two points coarsen to the same grid cell."""
    return coarsen_coordinates(*a) == coarsen_coordinates(*b)


def assert_transcript_absent(artifact: str, transcript: str | None) -> None:
    """Fail closed if an outbound artifact contains the transcript.

    Args:
        artifact: Text about to leave the process (prompt, serialized record).
        transcript: The request's transcript, if any.

    Raises:
        PrivacyViolationError: If the transcript appears verbatim.
    """
    if not transcript:
        return
    needle = transcript.strip()
    if len(needle) < MIN_GUARDED_TRANSCRIPT_LENGTH:
        return
    if needle.lower() in artifact.lower():
        logger.error("Outbound artifact contained voice-note transcript; blocked")
        raise PrivacyViolationError("Voice-note transcript must not leave the device")
