import asyncio

import pytest
import requests

from sweetspot import isochrone_service, maps_service
from sweetspot.isochrone_service import (
    MapboxIsochroneService, OpenRouteServiceIsochroneService, get_isochrone_service,
)
from sweetspot.maps_service import GoogleMapsService, search_radius_m
from sweetspot.models import TransportMode

SQUARE_FC = {
    'type': 'FeatureCollection',
    'features': [{
        'type': 'Feature',
        'properties': {'contour': 15},
        'geometry': {
            'type': 'Polygon',
            'coordinates': [[[14.4, 50.0], [14.5, 50.0], [14.5, 50.1], [14.4, 50.1], [14.4, 50.0]]],
        },
    }],
}


class FakeResponse:
    def __init__(self, payload, status_code=200):
        self.payload = payload
        self.status_code = status_code
        self.text = str(payload)

    @property
    def ok(self):
        return self.status_code < 400

    def raise_for_status(self):
        if not self.ok:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        return self.payload


def test_mapbox_request_and_parse(monkeypatch):
    seen = {}

    def fake_get(url, params=None, timeout=None):
        seen.update(url=url, params=params, timeout=timeout)
        return FakeResponse(SQUARE_FC)

    monkeypatch.setattr(isochrone_service.requests, 'get', fake_get)
    service = MapboxIsochroneService('pk.test', timeout=3)
    region = service.get_isochrone((14.45, 50.05), 15, TransportMode.CYCLING)
    service.cleanup()

    assert region.area == pytest.approx(0.01)
    assert seen['url'].endswith('/mapbox/cycling/14.45,50.05')
    assert seen['params']['contours_minutes'] == 15
    assert seen['params']['polygons'] == 'true'
    assert seen['timeout'] == 3


def test_mapbox_errors_return_none(monkeypatch):
    def boom(url, params=None, timeout=None):
        raise requests.ConnectionError("offline")

    monkeypatch.setattr(isochrone_service.requests, 'get', boom)
    assert MapboxIsochroneService('pk.test').get_isochrone((0, 0), 10) is None

    monkeypatch.setattr(isochrone_service.requests, 'get',
                        lambda url, params=None, timeout=None: FakeResponse({'features': []}))
    assert MapboxIsochroneService('pk.test').get_isochrone((0, 0), 10) is None


def test_ors_request_uses_seconds_and_profile(monkeypatch):
    seen = {}

    def fake_post(url, json=None, headers=None, timeout=None):
        seen.update(url=url, body=json, headers=headers)
        return FakeResponse(SQUARE_FC)

    monkeypatch.setattr(isochrone_service.requests, 'post', fake_post)
    region = OpenRouteServiceIsochroneService('ors-key').get_isochrone((14.45, 50.05), 20, 'walking')

    assert region is not None
    assert seen['url'].endswith('/isochrones/foot-walking')
    assert seen['body']['range'] == [1200]
    assert seen['body']['locations'] == [[14.45, 50.05]]
    assert seen['headers']['Authorization'] == 'ors-key'


def test_ors_http_error_returns_none(monkeypatch):
    monkeypatch.setattr(isochrone_service.requests, 'post',
                        lambda url, json=None, headers=None, timeout=None: FakeResponse({'error': 'quota'}, 429))
    assert OpenRouteServiceIsochroneService('ors-key').get_isochrone((0, 0), 10) is None


def test_async_wrapper(monkeypatch):
    monkeypatch.setattr(isochrone_service.requests, 'get',
                        lambda url, params=None, timeout=None: FakeResponse(SQUARE_FC))
    service = MapboxIsochroneService('pk.test')
    region = asyncio.run(service.get_isochrone_async((14.45, 50.05), 15, TransportMode.DRIVING))
    service.cleanup()
    assert region is not None


def test_isochrone_factory():
    assert isinstance(get_isochrone_service('ors', ors_api_key='k'), OpenRouteServiceIsochroneService)
    assert isinstance(get_isochrone_service('mapbox', mapbox_token='t'), MapboxIsochroneService)
    with pytest.raises(ValueError):
        get_isochrone_service('mapbox')
    with pytest.raises(ValueError):
        get_isochrone_service('ors')


class FakeGoogleClient:
    def __init__(self, key=None):
        self.key = key
        self.nearby_calls = []

    def geocode(self, address):
        return [{
            'formatted_address': 'Karlův most, 110 00 Praha 1, Czechia',
            'geometry': {'location': {'lat': 50.0865, 'lng': 14.4114}},
        }]

    def reverse_geocode(self, latlng):
        if latlng[0] > 80:
            return []
        return [{'formatted_address': f"near {latlng[0]:.2f},{latlng[1]:.2f}"}]

    def places_nearby(self, location, radius, type):
        self.nearby_calls.append((location, radius, type))
        return {'results': [
            {'name': 'Kavárna', 'vicinity': 'Praha', 'place_id': 'p1',
             'geometry': {'location': {'lat': 50.08, 'lng': 14.42}}},
            {'name': 'No geometry'},
        ]}


@pytest.fixture
def google(monkeypatch):
    monkeypatch.setattr(maps_service.googlemaps, 'Client', FakeGoogleClient)
    service = GoogleMapsService('AIza-test')
    yield service
    service.cleanup()


def test_google_requires_key():
    with pytest.raises(ValueError):
        GoogleMapsService('your_api_key_here')


def test_google_geocode(google):
    assert google.geocode_address('Karlův most') == {
        'formatted_address': 'Karlův most, 110 00 Praha 1, Czechia',
        'lat': 50.0865,
        'lng': 14.4114,
    }


def test_google_reverse_geocode(google):
    assert google.reverse_geocode((14.42, 50.08)) == {'display_address': 'near 50.08,14.42'}
    assert google.reverse_geocode((0.0, 85.0)) is None


def test_google_search_nearby_maps_category(google):
    venues = google.search_nearby('coffee', (14.42, 50.08), (14.40, 50.07, 14.44, 50.09))
    assert [v.display_name for v in venues] == ['Kavárna']
    assert venues[0].position == (14.42, 50.08)
    assert venues[0].id == 'p1'
    location, radius, place_type = google.client.nearby_calls[0]
    assert location == (50.08, 14.42)
    assert place_type == 'cafe'
    assert 1000 < radius < 3000


def test_google_search_nearby_async(google):
    venues = asyncio.run(google.search_nearby_async('bar', (14.42, 50.08), (14.40, 50.07, 14.44, 50.09)))
    assert venues[0].source_category == 'bar'


def test_search_radius_is_clamped():
    assert search_radius_m((0.0, 0.0), (0.0, 0.0, 0.0, 0.0)) == 100
    assert search_radius_m((0.0, 0.0), (-10.0, -10.0, 10.0, 10.0)) == 50000
