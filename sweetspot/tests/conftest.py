import pytest

from sweetspot.geometry import square
from sweetspot.models import Traveler, Venue


class FakeIsochroneService:
    """In-memory provider: ``area(position, minutes, mode)`` decides the polygon"""

    name = "fake"

    def __init__(self, area):
        self.area = area
        self.calls = []

    async def get_isochrone_async(self, position, minutes, mode):
        self.calls.append((position, minutes, mode))
        return self.area(position, minutes, mode)


class FakePlacesService:
    def __init__(self, venues_by_category=None, address=None):
        self.venues_by_category = venues_by_category or {}
        self.address = address
        self.searches = []

    async def search_nearby_async(self, category, point, bbox):
        self.searches.append((category, point, bbox))
        return list(self.venues_by_category.get(category, []))

    async def reverse_geocode_async(self, point):
        if self.address is None:
            return None
        return {'display_address': self.address}


def growing_square(side_per_minute=0.001):
    """Isochrone that is a square around the traveler growing with the budget"""
    def area(position, minutes, mode):
        return square(position, side_per_minute * minutes)
    return area


def make_traveler(tid, lng, lat):
    return Traveler(id=tid, address=f"{tid} street", position=(lng, lat), color_tag="#ff00ff")


def venue(vid, name, lng, lat, category=None):
    return Venue(id=vid, display_name=name, address=f"{name} address", position=(lng, lat),
                 source_category=category)


@pytest.fixture
def two_travelers():
    return [make_traveler('a', 0.0, 0.0), make_traveler('b', 0.01, 0.01)]
