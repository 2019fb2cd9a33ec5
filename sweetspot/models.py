import random
import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, FrozenSet, Iterator, List, Optional, Tuple


# --- Module-level constants ---
# Travel-time budgets (minutes) the optimizer is allowed to pick from, ascending
BUDGET_CANDIDATES: Tuple[int, ...] = tuple(range(5, 65, 5))
DEFAULT_BUDGET_MINUTES = 30

Position = Tuple[float, float]  # (lng, lat) in degrees, EPSG:4326
BBox = Tuple[float, float, float, float]  # (min_lng, min_lat, max_lng, max_lat)


class TransportMode(str, Enum):
    WALKING = "walking"
    CYCLING = "cycling"
    DRIVING = "driving"

    @classmethod
    def parse(cls, value) -> "TransportMode":
        """Accept an enum member or its string value (case-insensitive)"""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"Unknown transport mode: {value!r}") from None


def random_color() -> str:
    """Random #rrggbb marker color"""
    return "#{:06x}".format(random.randint(0, 0xFFFFFF))


def fallback_address(position: Position) -> str:
    """Coordinate label used when no street address is known"""
    lng, lat = position
    return f"{lng:.4f}, {lat:.4f}"


@dataclass
class Traveler:
    """A person who needs to reach the meeting place.

    Identity is ``id``; position and address change independently
    (a dragged pin moves first and gets its address once reverse geocoding
    answers).
    """
    id: str
    address: str
    position: Position
    color_tag: str
    display_name: Optional[str] = None

    @classmethod
    def create(cls, position: Position, address: Optional[str] = None,
               display_name: Optional[str] = None, color_tag: Optional[str] = None) -> "Traveler":
        position = (float(position[0]), float(position[1]))
        return cls(
            id=str(uuid.uuid4()),
            address=address or fallback_address(position),
            position=position,
            color_tag=color_tag or random_color(),
            display_name=display_name,
        )

    def move_to(self, position: Position) -> None:
        self.position = (float(position[0]), float(position[1]))

    def rename(self, display_name: Optional[str] = None, address: Optional[str] = None) -> None:
        if display_name is not None:
            self.display_name = display_name
        if address is not None:
            self.address = address


class TravelerSet:
    """Ordered collection of travelers with unique ids, owned by the caller"""

    def __init__(self, travelers: Optional[List[Traveler]] = None):
        self._travelers: Dict[str, Traveler] = {}
        for traveler in travelers or []:
            self.add(traveler)

    def add(self, traveler: Traveler) -> Traveler:
        if traveler.id in self._travelers:
            raise ValueError(f"Traveler id already present: {traveler.id}")
        self._travelers[traveler.id] = traveler
        return traveler

    def remove(self, traveler_id: str) -> Traveler:
        try:
            return self._travelers.pop(traveler_id)
        except KeyError:
            raise KeyError(f"Unknown traveler id: {traveler_id}") from None

    def get(self, traveler_id: str) -> Optional[Traveler]:
        return self._travelers.get(traveler_id)

    def clear(self) -> None:
        self._travelers.clear()

    def __iter__(self) -> Iterator[Traveler]:
        return iter(list(self._travelers.values()))

    def __len__(self) -> int:
        return len(self._travelers)

    def __contains__(self, traveler_id) -> bool:
        return traveler_id in self._travelers


@dataclass(frozen=True)
class Venue:
    """A point of interest returned by a nearby search. Never mutated."""
    id: str
    display_name: str
    address: str
    position: Position
    source_category: Optional[str] = None

    @property
    def identity_key(self) -> Tuple[str, float, float]:
        return (self.display_name, self.position[0], self.position[1])

    def tagged(self, category: str) -> "Venue":
        return replace(self, source_category=category)

    def to_dict(self) -> Dict:
        return {
            'id': self.id,
            'name': self.display_name,
            'address': self.address,
            'lng': self.position[0],
            'lat': self.position[1],
            'category': self.source_category,
        }


@dataclass(frozen=True)
class SharedTraveler:
    position: Position
    address: str
    color_tag: str
    display_name: Optional[str] = None

    @classmethod
    def from_traveler(cls, traveler: Traveler) -> "SharedTraveler":
        return cls(
            position=traveler.position,
            address=traveler.address,
            color_tag=traveler.color_tag,
            display_name=traveler.display_name,
        )

    def to_traveler(self) -> Traveler:
        return Traveler.create(
            self.position,
            address=self.address,
            display_name=self.display_name,
            color_tag=self.color_tag,
        )


@dataclass(frozen=True)
class ShareSnapshot:
    """Everything needed to rebuild a scenario from a shared link"""
    version: int
    budget_minutes: int
    transport_mode: TransportMode
    poi_categories: FrozenSet[str] = field(default_factory=frozenset)
    travelers: Tuple[SharedTraveler, ...] = ()
