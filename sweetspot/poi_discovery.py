"""
Venue discovery spread over the whole overlap region.

A single query at the centroid under-samples long, thin overlaps (typical
with three or more travelers), so the region is covered by a fixed fan of
five query points: the centroid plus one interior point per bounding-box
quadrant.
"""
import asyncio
import logging
from typing import Awaitable, Callable, Iterable, List, Optional, Sequence

import numpy as np
from geopy.distance import geodesic

from . import poi_types
from .geometry import Region, bounding_box, centroid, contains_point
from .models import BBox, Position, Venue

logger = logging.getLogger(__name__)

DEFAULT_MAX_RESULTS = 50
# Fraction of bbox width/height to move inward from each corner
QUADRANT_INSET = 0.25

SearchNearby = Callable[[Position, BBox], Awaitable[List[Venue]]]
CategorySearch = Callable[[str, Position, BBox], Awaitable[List[Venue]]]


def sample_points(center: Position, bbox: BBox) -> List[Position]:
    """
    Five query points: center, SW, SE, NW, NE.
    Quadrant points sit 25% of the bbox size in from their corner; all points
    are clamped to the bbox.
    """
    min_lng, min_lat, max_lng, max_lat = bbox
    dx = (max_lng - min_lng) * QUADRANT_INSET
    dy = (max_lat - min_lat) * QUADRANT_INSET
    points = np.array([
        center,
        (min_lng + dx, min_lat + dy),
        (max_lng - dx, min_lat + dy),
        (min_lng + dx, max_lat - dy),
        (max_lng - dx, max_lat - dy),
    ], dtype=float)
    points[:, 0] = np.clip(points[:, 0], min_lng, max_lng)
    points[:, 1] = np.clip(points[:, 1], min_lat, max_lat)
    return [(float(lng), float(lat)) for lng, lat in points]


def deduplicate(venues: Iterable[Venue]) -> List[Venue]:
    """Drop repeats of the exact (name, lng, lat) triple, keeping first-seen order"""
    seen = set()
    unique = []
    for venue in venues:
        key = venue.identity_key
        if key in seen:
            continue
        seen.add(key)
        unique.append(venue)
    return unique


def filter_in_region(venues: Iterable[Venue], region: Region) -> List[Venue]:
    return [v for v in venues if contains_point(region, v.position)]


async def discover_venues(region: Optional[Region], search_nearby: SearchNearby,
                          max_results: int = DEFAULT_MAX_RESULTS) -> List[Venue]:
    """
    Venues inside ``region``, in discovery order, at most ``max_results``.

    A failing sample point contributes nothing; if every point fails the
    result is simply empty. Results are not ranked; see ``sort_by_distance``.
    """
    if region is None or max_results <= 0:
        return []

    bbox = bounding_box(region)
    points = sample_points(centroid(region), bbox)
    results = await asyncio.gather(
        *(search_nearby(point, bbox) for point in points),
        return_exceptions=True,
    )

    found: List[Venue] = []
    for point, res in zip(points, results):
        if isinstance(res, BaseException):
            logger.warning(f"Nearby search failed at {point}: {res}")
            continue
        found.extend(res or [])

    unique = deduplicate(found)
    inside = filter_in_region(unique, region)
    logger.info(
        f"POI discovery: {len(found)} raw, {len(unique)} unique, {len(inside)} inside region, "
        f"returning {min(len(inside), max_results)}"
    )
    return inside[:max_results]


def search_categories(categories: Sequence[str], search: CategorySearch) -> SearchNearby:
    """
    Per-point search over several POI categories.

    Category ids are resolved through the POI vocabulary (unknown ids are
    skipped); each hit is tagged with the category id it was found under and
    a venue id seen twice at the same point is kept once.
    """
    types = poi_types.resolve(categories)

    async def search_nearby(point: Position, bbox: BBox) -> List[Venue]:
        if not types:
            return []
        results = await asyncio.gather(
            *(search(t.query, point, bbox) for t in types),
            return_exceptions=True,
        )
        seen_ids = set()
        venues: List[Venue] = []
        for poi_type, res in zip(types, results):
            if isinstance(res, BaseException):
                logger.warning(f"Category search '{poi_type.id}' failed at {point}: {res}")
                continue
            for venue in res or []:
                if venue.id in seen_ids:
                    continue
                seen_ids.add(venue.id)
                venues.append(venue.tagged(poi_type.id))
        return venues

    return search_nearby


def sort_by_distance(venues: Iterable[Venue], origin: Position) -> List[Venue]:
    """Rank venues by geodesic distance from ``origin`` (lng, lat)"""
    origin_latlng = (origin[1], origin[0])
    return sorted(venues, key=lambda v: geodesic(origin_latlng, (v.position[1], v.position[0])).meters)
