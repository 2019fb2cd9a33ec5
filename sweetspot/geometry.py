"""
Planar polygon operations on lng/lat regions.

All math runs directly on EPSG:4326 degrees with no projection. At city-scale
travel budgets the distortion is negligible; for continental isochrones areas
and intersections drift, which is why callers can check ``extent_km`` and warn.
"""
import logging
from typing import Dict, List, Optional, Tuple, Union

from geopy.distance import geodesic
from shapely.geometry import MultiPolygon, Point, Polygon, mapping, shape
from shapely.geometry.base import BaseGeometry
from shapely.validation import make_valid

from .models import BBox, Position

logger = logging.getLogger(__name__)

Region = Union[Polygon, MultiPolygon]

# Overlap extents beyond this (bbox diagonal) make the planar approximation visibly wrong
PLANAR_WARNING_KM = 500.0


def _repair(region: BaseGeometry) -> BaseGeometry:
    """Fix self-intersecting rings some providers return"""
    if region.is_valid:
        return region
    logger.debug("Repairing invalid polygon before boolean operation")
    return make_valid(region)


def _polygon_parts(geom: BaseGeometry) -> List[Polygon]:
    if geom.is_empty:
        return []
    if isinstance(geom, Polygon):
        return [geom] if geom.area > 0 else []
    if hasattr(geom, 'geoms'):
        parts: List[Polygon] = []
        for sub in geom.geoms:
            parts.extend(_polygon_parts(sub))
        return parts
    # Points and lines carry no area
    return []


def polygonal(geom: Optional[BaseGeometry]) -> Optional[Region]:
    """Keep only the area-bearing parts of a geometry; None when nothing is left"""
    if geom is None:
        return None
    parts = _polygon_parts(geom)
    if not parts:
        return None
    if len(parts) == 1:
        return parts[0]
    return MultiPolygon(parts)


def intersect(a: Region, b: Region) -> Optional[Region]:
    """
    Polygonal intersection of two regions.
    Returns None when they do not overlap or only touch along a boundary.
    Either input may be a MultiPolygon, and so may the result.
    """
    if a is None or b is None:
        return None
    a = _repair(a)
    b = _repair(b)
    if not a.intersects(b):
        return None
    return polygonal(a.intersection(b))


def bounding_box(region: Region) -> BBox:
    """Axis-aligned (min_lng, min_lat, max_lng, max_lat); may be degenerate"""
    min_lng, min_lat, max_lng, max_lat = region.bounds
    return (min_lng, min_lat, max_lng, max_lat)


def centroid(region: Region) -> Position:
    """Area-weighted centroid; for a MultiPolygon it is taken over all parts"""
    c = region.centroid
    return (c.x, c.y)


def contains_point(region: Region, point: Position) -> bool:
    """Point-in-region test that counts the boundary as inside"""
    return region.covers(Point(point[0], point[1]))


def extent_km(region: Region) -> float:
    """Geodesic length of the bounding box diagonal in kilometres"""
    min_lng, min_lat, max_lng, max_lat = bounding_box(region)
    return geodesic((min_lat, min_lng), (max_lat, max_lng)).km


def to_region(geojson: Dict) -> Region:
    """
    Build a region from a GeoJSON Polygon/MultiPolygon geometry
    (a Feature wrapping one is accepted too).
    """
    if not isinstance(geojson, dict):
        raise ValueError("GeoJSON geometry must be an object")
    if geojson.get('type') == 'Feature':
        geojson = geojson.get('geometry') or {}
    if geojson.get('type') not in ('Polygon', 'MultiPolygon'):
        raise ValueError(f"Expected Polygon or MultiPolygon, got {geojson.get('type')!r}")
    try:
        geom = shape(geojson)
    except (KeyError, TypeError, ValueError, IndexError) as e:
        raise ValueError(f"Invalid GeoJSON geometry: {e}") from e
    region = polygonal(_repair(geom))
    if region is None:
        raise ValueError("GeoJSON geometry has no area")
    return region


def to_geojson(region: Optional[Region]) -> Optional[Dict]:
    """GeoJSON geometry dict with plain lists for coordinates"""
    if region is None:
        return None
    raw = mapping(region)
    return {'type': raw['type'], 'coordinates': _listify(raw['coordinates'])}


def _listify(coords) -> list:
    if isinstance(coords, (list, tuple)) and coords and isinstance(coords[0], (int, float)):
        return [float(c) for c in coords]
    return [_listify(c) for c in coords]


def square(center: Position, side: float) -> Polygon:
    """Axis-aligned square around a point, handy for fixtures and coarse areas"""
    half = side / 2.0
    lng, lat = center
    return Polygon([
        (lng - half, lat - half),
        (lng + half, lat - half),
        (lng + half, lat + half),
        (lng - half, lat + half),
    ])


def describe_region(region: Optional[Region]) -> Tuple[str, int]:
    """(geometry type, part count) for log lines"""
    if region is None:
        return ('None', 0)
    if isinstance(region, MultiPolygon):
        return ('MultiPolygon', len(region.geoms))
    return (region.geom_type, 1)
