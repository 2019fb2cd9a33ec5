import asyncio
import concurrent.futures
import logging
from typing import Dict, List, Optional

import googlemaps
from geopy.distance import geodesic

from .models import BBox, Position, Venue

logger = logging.getLogger(__name__)


# --- Module-level constants ---
PLACES_MIN_RADIUS_M = 100
PLACES_MAX_RADIUS_M = 50000   # Places API hard limit
PLACES_MAX_RESULTS = 20

# Provider category query -> Google Places type
PLACE_TYPES = {
    'coffee': 'cafe',
    'restaurant': 'restaurant',
    'bar': 'bar',
    'food_and_drink': 'restaurant',
    'nightlife': 'night_club',
    'shopping': 'shopping_mall',
}


def search_radius_m(point: Position, bbox: BBox) -> int:
    """Radius (meters) from a query point that reaches the farthest bbox corner"""
    min_lng, min_lat, max_lng, max_lat = bbox
    origin = (point[1], point[0])
    farthest = max(
        geodesic(origin, (lat, lng)).meters
        for lng in (min_lng, max_lng)
        for lat in (min_lat, max_lat)
    )
    return int(min(max(farthest, PLACES_MIN_RADIUS_M), PLACES_MAX_RADIUS_M))


class GoogleMapsService:
    """Service for interacting with Google Maps APIs"""

    def __init__(self, api_key: str):
        if not api_key or api_key == "your_api_key_here":
            raise ValueError("Valid Google Maps API key is required")
        self.client = googlemaps.Client(key=api_key)
        self.executor = concurrent.futures.ThreadPoolExecutor(max_workers=10)

    def cleanup(self):
        """Clean up resources"""
        if hasattr(self, 'executor'):
            self.executor.shutdown(wait=True)

    def geocode_address(self, address: str) -> Optional[Dict]:
        """
        Geocode an address using Google Maps Geocoding API
        Returns formatted address and coordinates
        """
        try:
            result = self.client.geocode(address)
            if result:
                location = result[0]
                return {
                    'formatted_address': location['formatted_address'],
                    'lat': location['geometry']['location']['lat'],
                    'lng': location['geometry']['location']['lng']
                }
            return None
        except Exception as e:
            logger.error(f"Geocoding error: {e}")
            return None

    def reverse_geocode(self, point: Position) -> Optional[Dict]:
        """Street address for a (lng, lat) point as {'display_address': ...}, or None"""
        try:
            result = self.client.reverse_geocode((point[1], point[0]))
            if result:
                return {'display_address': result[0]['formatted_address']}
            return None
        except Exception as e:
            logger.error(f"Reverse geocoding error: {e}")
            return None

    def search_nearby(self, category: str, point: Position, bbox: BBox) -> List[Venue]:
        """
        Places of one category around a point, as Venues.
        The radius is stretched to cover the whole bbox from the point.
        """
        place_type = PLACE_TYPES.get(category, category)
        try:
            places_result = self.client.places_nearby(
                location=(point[1], point[0]),
                radius=search_radius_m(point, bbox),
                type=place_type
            )
        except Exception as e:
            logger.error(f"Places search error ({category}): {e}")
            return []

        venues = []
        for place in places_result.get('results', [])[:PLACES_MAX_RESULTS]:
            try:
                location = place['geometry']['location']
                venues.append(Venue(
                    id=place.get('place_id') or f"{place['name']}@{location['lng']},{location['lat']}",
                    display_name=place['name'],
                    address=place.get('vicinity', ''),
                    position=(location['lng'], location['lat']),
                    source_category=category,
                ))
            except KeyError as e:
                logger.debug(f"Skipping place without {e}")
        return venues

    # Async wrapper methods for parallel execution
    async def geocode_address_async(self, address: str) -> Optional[Dict]:
        """Async wrapper for geocode_address"""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self.executor, self.geocode_address, address)

    async def reverse_geocode_async(self, point: Position) -> Optional[Dict]:
        """Async wrapper for reverse_geocode"""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self.executor, self.reverse_geocode, point)

    async def search_nearby_async(self, category: str, point: Position, bbox: BBox) -> List[Venue]:
        """Async wrapper for search_nearby"""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self.executor, self.search_nearby, category, point, bbox)
