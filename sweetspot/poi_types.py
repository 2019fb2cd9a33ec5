from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple


@dataclass(frozen=True)
class POIType:
    id: str
    label: str
    icon: str
    color: str   # hex color for map markers
    query: str   # provider category id used for the nearby search


POI_TYPES: Tuple[POIType, ...] = (
    POIType('coffee', 'Coffee', '☕', '#8B4513', 'coffee'),
    POIType('meal', 'Meal', '🍽️', '#FF6347', 'restaurant'),
    POIType('beer', 'Beer', '🍺', '#FFD700', 'bar'),
    POIType('drink', 'Drink', '🍸', '#9333ea', 'food_and_drink'),
    POIType('dance', 'Dance', '💃', '#FF1493', 'nightlife'),
    POIType('shop', 'Shop', '🛍️', '#4169E1', 'shopping'),
)

DEFAULT_POI_TYPES: Tuple[str, ...] = ('coffee', 'meal', 'beer')

_BY_ID: Dict[str, POIType] = {t.id: t for t in POI_TYPES}


def get_poi_type(type_id: str) -> Optional[POIType]:
    return _BY_ID.get(type_id)


def resolve(type_ids: Iterable[str]) -> List[POIType]:
    """Known POI types for the given ids, in the given order; unknown ids are skipped"""
    seen = set()
    resolved = []
    for type_id in type_ids:
        poi_type = _BY_ID.get(type_id)
        if poi_type is None or type_id in seen:
            continue
        seen.add(type_id)
        resolved.append(poi_type)
    return resolved


def as_dicts() -> List[Dict]:
    return [
        {'id': t.id, 'label': t.label, 'icon': t.icon, 'color': t.color}
        for t in POI_TYPES
    ]
