"""Result variants for steps that may degrade.

Every enrichment step and the narrative call return either ``Ok`` or
``Degraded`` instead of raising. The ``service`` tag on each variant names
the external service whose data reached the record; the processing block's
``cloud_calls`` list is derived from these tags.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, Optional, TypeVar, Union

T = TypeVar("T")

# Service tags reported in the processing block
WIKIPEDIA = "wikipedia"
MOCK_VENUE = "mock_venue"
OPENWEATHER = "openweather"
NARRATIVE_MODEL = "narrative_model"


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T
    service: Optional[str] = None
    cached: bool = False

    @property
    def ok(self) -> bool:
        return True

    def unwrap(self) -> Optional[T]:
        return self.value


@dataclass(frozen=True)
class Degraded(Generic[T]):
    reason: str
    fallback: Optional[T] = None
    service: Optional[str] = None

    @property
    def ok(self) -> bool:
        return False

    def unwrap(self) -> Optional[T]:
        return self.fallback


Outcome = Union[Ok[T], Degraded[T]]


def cloud_calls(*outcomes: Optional[Outcome]) -> list[str]:
    """Service tags of the given outcomes, in order, without duplicates."""
    calls: list[str] = []
    for outcome in outcomes:
        if outcome is not None and outcome.service and outcome.service not in calls:
            calls.append(outcome.service)
    return calls
