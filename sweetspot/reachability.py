"""Reduce per-traveler isochrones to the area every traveler can reach."""
import logging
from typing import Dict, Iterable, List, Optional, Sequence

from .geometry import Region, intersect
from .outcomes import OutcomeKind, OverlapOutcome

logger = logging.getLogger(__name__)


def reduce_regions(regions: Sequence[Region]) -> Optional[Region]:
    """
    Intersection of all regions.

    Empty input gives None and a single region is returned as is. Otherwise
    regions are folded left to right, stopping at the first empty
    intersection. Intersection is associative and commutative, so any
    evaluation order that keeps the early stop gives the same answer.
    """
    if not regions:
        return None
    current = regions[0]
    if len(regions) == 1:
        return current
    for i, region in enumerate(regions[1:], start=1):
        current = intersect(current, region)
        if current is None:
            logger.debug(f"Overlap vanished after {i + 1} of {len(regions)} regions")
            return None
    return current


def compute_overlap(isochrones: Dict[str, Optional[Region]],
                    traveler_ids: Iterable[str]) -> OverlapOutcome:
    """
    Overlap for a set of travelers, classified.

    If any traveler has no isochrone the reducer is not run at all and the
    outcome is INSUFFICIENT_DATA, so a provider failure is never reported as
    "these areas do not overlap". With no travelers there is nothing to
    intersect, which is also INSUFFICIENT_DATA.
    """
    ids: List[str] = list(traveler_ids)
    if not ids:
        return OverlapOutcome(OutcomeKind.INSUFFICIENT_DATA)
    missing = tuple(tid for tid in ids if isochrones.get(tid) is None)
    if missing:
        logger.info(f"Isochrones missing for {len(missing)} of {len(ids)} travelers")
        return OverlapOutcome(OutcomeKind.INSUFFICIENT_DATA, missing=missing)

    region = reduce_regions([isochrones[tid] for tid in ids])
    if region is None:
        return OverlapOutcome(OutcomeKind.NO_OVERLAP)
    return OverlapOutcome(OutcomeKind.OK, region=region)
