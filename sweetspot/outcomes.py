"""
Classified outcomes returned by the engine.

Failures that callers have to explain to a user are returned as values,
not raised.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple

from shapely.geometry.base import BaseGeometry


class OutcomeKind(str, Enum):
    OK = "ok"
    # A traveler has no isochrone (provider failed or returned nothing)
    INSUFFICIENT_DATA = "insufficient_data"
    # Every isochrone is present but they share no area
    NO_OVERLAP = "no_overlap"
    # Budget search ran out of candidates
    INFEASIBLE = "infeasible"
    # Share token malformed or of an unsupported version
    DECODE_REJECTED = "decode_rejected"


MESSAGES = {
    OutcomeKind.INSUFFICIENT_DATA: "Could not get a travel-time area for every location.",
    OutcomeKind.NO_OVERLAP: "No overlapping area found. Try increasing travel time.",
    OutcomeKind.INFEASIBLE: "Could not find a meeting point within the largest travel time.",
    OutcomeKind.DECODE_REJECTED: "Share link is invalid or from an unsupported version.",
}


def describe(kind: OutcomeKind) -> Optional[str]:
    """User-facing message for a failure kind, None for OK"""
    return MESSAGES.get(kind)


@dataclass(frozen=True)
class OverlapOutcome:
    kind: OutcomeKind
    region: Optional[BaseGeometry] = None
    missing: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def ok(self) -> bool:
        return self.kind is OutcomeKind.OK
