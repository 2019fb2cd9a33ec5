"""Isochrone providers: Mapbox Isochrone API and OpenRouteService."""
import asyncio
import concurrent.futures
import logging
from typing import Dict, Optional

import requests

from .geometry import Region, to_region
from .models import Position, TransportMode

logger = logging.getLogger(__name__)

MAPBOX_ISOCHRONE_URL = "https://api.mapbox.com/isochrone/v1/mapbox/{profile}/{lng},{lat}"
ORS_ISOCHRONE_URL = "https://api.openrouteservice.org/v2/isochrones/{profile}"

ORS_PROFILES = {
    TransportMode.DRIVING: "driving-car",
    TransportMode.WALKING: "foot-walking",
    TransportMode.CYCLING: "cycling-regular",
}


class IsochroneService:
    """Base for providers; subclasses implement the blocking ``get_isochrone``"""

    name = "base"

    def __init__(self, timeout: int = 10, max_workers: int = 10):
        self.timeout = timeout
        self.executor = concurrent.futures.ThreadPoolExecutor(max_workers=max_workers)

    def cleanup(self):
        """Clean up resources"""
        if hasattr(self, 'executor'):
            self.executor.shutdown(wait=True)

    def get_isochrone(self, position: Position, minutes: int,
                      mode: TransportMode = TransportMode.DRIVING) -> Optional[Region]:
        raise NotImplementedError

    async def get_isochrone_async(self, position: Position, minutes: int,
                                  mode: TransportMode = TransportMode.DRIVING) -> Optional[Region]:
        """Async wrapper for get_isochrone"""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self.executor, self.get_isochrone, position, minutes, mode)

    @staticmethod
    def _first_polygon(data: Dict) -> Optional[Region]:
        features = data.get('features') if isinstance(data, dict) else None
        if not features:
            return None
        try:
            return to_region(features[0].get('geometry') or {})
        except ValueError as e:
            logger.warning(f"Provider returned unusable isochrone geometry: {e}")
            return None


class MapboxIsochroneService(IsochroneService):
    name = "mapbox"

    def __init__(self, access_token: str, timeout: int = 10):
        if not access_token:
            raise ValueError("A Mapbox access token is required")
        super().__init__(timeout=timeout)
        self.access_token = access_token

    def get_isochrone(self, position: Position, minutes: int,
                      mode: TransportMode = TransportMode.DRIVING) -> Optional[Region]:
        mode = TransportMode.parse(mode)
        url = MAPBOX_ISOCHRONE_URL.format(profile=mode.value, lng=position[0], lat=position[1])
        params = {
            'contours_minutes': minutes,
            'polygons': 'true',
            'access_token': self.access_token,
        }
        try:
            response = requests.get(url, params=params, timeout=self.timeout)
            response.raise_for_status()
            return self._first_polygon(response.json())
        except (requests.RequestException, ValueError) as e:
            logger.error(f"Mapbox isochrone error ({minutes} min, {mode.value}): {e}")
            return None


class OpenRouteServiceIsochroneService(IsochroneService):
    name = "ors"

    def __init__(self, api_key: str, timeout: int = 10):
        if not api_key:
            raise ValueError("An OpenRouteService API key is required")
        super().__init__(timeout=timeout)
        self.api_key = api_key

    def get_isochrone(self, position: Position, minutes: int,
                      mode: TransportMode = TransportMode.DRIVING) -> Optional[Region]:
        mode = TransportMode.parse(mode)
        url = ORS_ISOCHRONE_URL.format(profile=ORS_PROFILES[mode])
        body = {
            'locations': [[position[0], position[1]]],
            'range': [minutes * 60],  # ORS ranges are in seconds
            'range_type': 'time',
        }
        headers = {
            'Authorization': self.api_key,
            'Content-Type': 'application/json',
        }
        try:
            response = requests.post(url, json=body, headers=headers, timeout=self.timeout)
            if not response.ok:
                logger.error(f"ORS error {response.status_code}: {response.text[:200]}")
                return None
            return self._first_polygon(response.json())
        except (requests.RequestException, ValueError) as e:
            logger.error(f"ORS isochrone error ({minutes} min, {mode.value}): {e}")
            return None


def get_isochrone_service(provider: str, mapbox_token: Optional[str] = None,
                          ors_api_key: Optional[str] = None, timeout: int = 10) -> IsochroneService:
    """Provider by name; anything other than 'ors' means Mapbox"""
    if provider == "ors":
        return OpenRouteServiceIsochroneService(ors_api_key, timeout=timeout)
    return MapboxIsochroneService(mapbox_token, timeout=timeout)
