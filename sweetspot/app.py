import json
import logging
from time import perf_counter

from flask import Flask, g, jsonify, request
from flask_cors import CORS

from . import config, poi_types, share_codec
from .budget_search import STRATEGIES
from .isochrone_service import get_isochrone_service
from .maps_service import GoogleMapsService
from .models import BUDGET_CANDIDATES, ShareSnapshot, SharedTraveler, Traveler, TransportMode
from .outcomes import OutcomeKind, describe
from .planner import MeetingPlanner

logger = logging.getLogger(__name__)


class BadRequest(ValueError):
    """Request body failed validation; message goes back to the client"""


def build_services():
    """Providers from the environment; each is None when not configured"""
    maps_service = None
    api_key = config.get_google_maps_api_key()
    logger.info(f"Google Maps API key found: {'Yes' if api_key else 'No'}")
    if api_key:
        try:
            maps_service = GoogleMapsService(api_key)
        except ValueError as e:
            logger.error(f"Error initializing Google Maps service: {e}")

    iso_cfg = config.get_isochrone_config()
    planner_cfg = config.get_planner_config()
    try:
        isochrones = get_isochrone_service(
            iso_cfg["provider"],
            mapbox_token=iso_cfg["mapbox_token"],
            ors_api_key=iso_cfg["ors_api_key"],
            timeout=iso_cfg["timeout"],
        )
    except ValueError as e:
        logger.warning(f"Isochrone provider '{iso_cfg['provider']}' not configured: {e}")
        return maps_service, None

    strategy = planner_cfg["strategy"] if planner_cfg["strategy"] in STRATEGIES else "binary"
    planner = MeetingPlanner(
        isochrones,
        places_service=maps_service,
        max_results=planner_cfg["max_results"],
        strategy=strategy,
    )
    logger.info(f"Meeting planner ready (isochrones={isochrones.name}, strategy={strategy})")
    return maps_service, planner


# --- Request parsing ---
def _json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise BadRequest("JSON data is required")
    return data


def _position(value, label: str):
    if isinstance(value, dict):
        value = [value.get('lng'), value.get('lat')]
    if not isinstance(value, (list, tuple)) or len(value) != 2:
        raise BadRequest(f"{label} must be [lng, lat]")
    try:
        lng, lat = float(value[0]), float(value[1])
    except (TypeError, ValueError):
        raise BadRequest(f"{label} must contain numbers") from None
    if not (-180.0 <= lng <= 180.0 and -90.0 <= lat <= 90.0):
        raise BadRequest(f"{label} is out of range")
    return (lng, lat)


def _travelers(data: dict, minimum: int):
    raw = data.get('travelers')
    if not isinstance(raw, list) or len(raw) < minimum:
        raise BadRequest(f"At least {minimum} traveler(s) required")
    travelers = []
    seen = set()
    for i, item in enumerate(raw):
        if not isinstance(item, dict):
            raise BadRequest(f"travelers[{i}] must be an object")
        traveler = Traveler.create(
            _position(item.get('position'), f"travelers[{i}].position"),
            address=item.get('address'),
            display_name=item.get('name'),
            color_tag=item.get('color'),
        )
        if item.get('id'):
            traveler.id = str(item['id'])
        if traveler.id in seen:
            raise BadRequest(f"Duplicate traveler id: {traveler.id}")
        seen.add(traveler.id)
        travelers.append(traveler)
    return travelers


def _mode(data: dict) -> TransportMode:
    try:
        return TransportMode.parse(data.get('mode', TransportMode.DRIVING.value))
    except ValueError as e:
        raise BadRequest(str(e)) from None


def _categories(data: dict, default):
    categories = data.get('categories', list(default))
    if not isinstance(categories, list) or not all(isinstance(c, str) for c in categories):
        raise BadRequest("categories must be a list of strings")
    return categories


def _optional_int(data: dict, key: str, low: int, high: int):
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, int) or isinstance(value, bool) or value < low or value > high:
        raise BadRequest(f"{key} must be an integer between {low} and {high}")
    return value


def _snapshot(data: dict) -> ShareSnapshot:
    travelers = []
    for i, item in enumerate(data.get('travelers') or []):
        if not isinstance(item, dict):
            raise BadRequest(f"travelers[{i}] must be an object")
        if item.get('name') is not None and not isinstance(item['name'], str):
            raise BadRequest(f"travelers[{i}].name must be a string")
        travelers.append(SharedTraveler(
            position=_position(item.get('position'), f"travelers[{i}].position"),
            address=str(item.get('address') or ''),
            color_tag=str(item.get('color') or ''),
            display_name=item.get('name'),
        ))
    budget = data.get('budget_minutes')
    if not isinstance(budget, int) or isinstance(budget, bool) or budget <= 0:
        raise BadRequest("budget_minutes must be a positive integer")
    return ShareSnapshot(
        version=share_codec.SHARE_VERSION,
        budget_minutes=budget,
        transport_mode=_mode(data),
        poi_categories=frozenset(_categories(data, [])),
        travelers=tuple(travelers),
    )


def snapshot_json(snapshot: ShareSnapshot) -> dict:
    return {
        'version': snapshot.version,
        'budget_minutes': snapshot.budget_minutes,
        'mode': snapshot.transport_mode.value,
        'categories': sorted(snapshot.poi_categories),
        'travelers': [
            {
                'position': list(t.position),
                'address': t.address,
                'name': t.display_name,
                'color': t.color_tag,
            }
            for t in snapshot.travelers
        ],
    }


def _outcome_response(result, compute_ms: float):
    body = result.to_dict()
    response = jsonify(body)
    response.headers['X-Compute-Time-ms'] = f"{compute_ms:.1f}"
    if body['success']:
        return response
    # A classified "nothing found", not a server fault
    return response, 422


def create_app(planner=None, maps_service=None) -> Flask:
    app = Flask(__name__)
    CORS(app)  # Enable CORS for all routes
    planner_cfg = config.get_planner_config()

    # Per-request timing: record start time and log duration on completion
    @app.before_request
    def _start_timer():
        g._start_time = perf_counter()

    @app.after_request
    def _log_request_duration(response):
        start = getattr(g, '_start_time', None)
        if start is not None:
            duration_ms = (perf_counter() - start) * 1000.0
            response.headers['X-Process-Time-ms'] = f"{duration_ms:.1f}"
            logger.info(
                "request completed: method=%s path=%s status=%s duration_ms=%.1f remote_addr=%s",
                request.method,
                request.full_path if request.query_string else request.path,
                response.status_code,
                duration_ms,
                request.remote_addr,
            )
        return response

    @app.teardown_request
    def _teardown_request_log(error=None):
        # If an unhandled exception occurred, ensure we still log duration
        if error is not None:
            start = getattr(g, '_start_time', None)
            duration_ms = (perf_counter() - start) * 1000.0 if start is not None else None
            logger.error(
                "request error: method=%s path=%s duration_ms=%s error=%s",
                request.method,
                request.path,
                f"{duration_ms:.1f}" if duration_ms is not None else 'unknown',
                repr(error),
            )

    @app.errorhandler(BadRequest)
    def bad_request(error):
        logger.warning(f"Bad request: {error}")
        return jsonify({'success': False, 'error': str(error)}), 400

    @app.route('/', methods=['GET'])
    def health_check():
        """Health check endpoint"""
        return jsonify({
            'message': 'SweetSpot API is running!',
            'endpoints': {
                'meeting_zone': '/api/meeting-zone',
                'optimize': '/api/optimize',
                'share': '/api/share',
                'geocode': '/api/geocode',
                'reverse_geocode': '/api/reverse-geocode',
                'config': '/api/config',
                'health': '/'
            },
            'status': 'healthy'
        })

    @app.route('/api/config', methods=['GET'])
    def get_config():
        """Frontend configuration: what is available and the choice lists"""
        return jsonify({
            'success': True,
            'data': {
                'isochrones_available': planner is not None,
                'places_available': maps_service is not None,
                'budget_candidates': list(BUDGET_CANDIDATES),
                'default_budget_minutes': planner_cfg['default_budget_minutes'],
                'modes': [m.value for m in TransportMode],
                'poi_types': poi_types.as_dicts(),
                'default_poi_types': list(planner_cfg['default_poi_types']),
                'apiBaseUrl': request.host_url.rstrip('/')
            }
        })

    @app.route('/api/geocode', methods=['POST'])
    def geocode_address():
        """
        Geocode a single address
        Expected JSON: {"address": "Náměstí Republiky 1, Praha"}
        """
        if not maps_service:
            return jsonify({'success': False, 'error': 'Google Maps API key not configured'}), 503
        data = _json_body()
        address = data.get('address')
        if not address:
            raise BadRequest("Address is required")

        result = maps_service.geocode_address(address)
        if result:
            return jsonify({'success': True, 'data': result})
        logger.warning(f"Failed to geocode address: '{address}'")
        return jsonify({'success': False, 'error': 'Could not geocode the provided address'}), 404

    @app.route('/api/reverse-geocode', methods=['POST'])
    def reverse_geocode():
        """
        Traveler record for a dropped pin
        Expected JSON: {"lng": 14.42, "lat": 50.08}
        Falls back to a coordinate label when no address is found.
        """
        data = _json_body()
        position = _position(data, 'point')
        if planner is not None:
            traveler = planner.locate(position)
        else:
            traveler = Traveler.create(position)
        return jsonify({
            'success': True,
            'data': {
                'id': traveler.id,
                'address': traveler.address,
                'position': list(traveler.position),
                'color': traveler.color_tag,
            }
        })

    @app.route('/api/meeting-zone', methods=['POST'])
    def meeting_zone():
        """
        Shared area and venues for a fixed travel time
        Expected JSON: {
            "travelers": [{"id": "a", "position": [14.42, 50.08]}, ...],
            "budget_minutes": 30,
            "mode": "driving",             // optional
            "categories": ["coffee"],      // optional
            "max_results": 50              // optional
        }
        """
        if not planner:
            return jsonify({'success': False, 'error': 'Isochrone provider not configured'}), 503
        data = _json_body()
        logger.info(f"Meeting zone request: {json.dumps(data)[:500]}")
        travelers = _travelers(data, minimum=1)
        budget = data.get('budget_minutes', planner_cfg['default_budget_minutes'])
        if budget not in BUDGET_CANDIDATES:
            raise BadRequest(f"budget_minutes must be one of {list(BUDGET_CANDIDATES)}")

        started = perf_counter()
        result = planner.calculate_meeting_zone(
            travelers,
            budget,
            mode=_mode(data),
            categories=_categories(data, planner_cfg['default_poi_types']),
            max_results=_optional_int(data, 'max_results', 1, 200),
        )
        compute_ms = (perf_counter() - started) * 1000.0
        logger.info(f"Meeting zone {result.status.value} in {compute_ms:.1f} ms")
        return _outcome_response(result, compute_ms)

    @app.route('/api/optimize', methods=['POST'])
    def optimize():
        """
        Smallest travel time with a shared area
        Expected JSON: {"travelers": [...], "mode": "walking", "strategy": "binary" | "linear"}
        """
        if not planner:
            return jsonify({'success': False, 'error': 'Isochrone provider not configured'}), 503
        data = _json_body()
        travelers = _travelers(data, minimum=2)
        strategy = data.get('strategy')
        if strategy is not None and strategy not in STRATEGIES:
            raise BadRequest(f"strategy must be one of {list(STRATEGIES)}")

        started = perf_counter()
        result = planner.find_optimal_meeting_zone(
            travelers,
            mode=_mode(data),
            categories=_categories(data, planner_cfg['default_poi_types']),
            strategy=strategy,
            max_results=_optional_int(data, 'max_results', 1, 200),
        )
        compute_ms = (perf_counter() - started) * 1000.0
        logger.info(
            "Optimization finished: status=%s budget=%s probes=%d compute_ms=%.1f",
            result.status.value, result.budget_minutes, len(result.probes), compute_ms,
        )
        return _outcome_response(result, compute_ms)

    @app.route('/api/share', methods=['POST'])
    def create_share_token():
        """Encode a scenario into a share token"""
        snapshot = _snapshot(_json_body())
        try:
            token = share_codec.encode(snapshot)
        except ValueError as e:
            raise BadRequest(str(e)) from None
        return jsonify({'success': True, 'data': {'token': token}})

    @app.route('/api/share/<token>', methods=['GET'])
    def read_share_token(token):
        """Decode a share token back into a scenario"""
        snapshot = share_codec.decode(token)
        if snapshot is None:
            return jsonify({
                'success': False,
                'status': OutcomeKind.DECODE_REJECTED.value,
                'error': describe(OutcomeKind.DECODE_REJECTED),
            }), 400
        return jsonify({'success': True, 'data': snapshot_json(snapshot)})

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({'error': 'Endpoint not found'}), 404

    @app.errorhandler(500)
    def internal_error(error):
        logger.error(f"Internal server error: {error}", exc_info=True)
        return jsonify({'error': 'Internal server error'}), 500

    return app


def _default_app() -> Flask:
    maps_service, planner = build_services()
    return create_app(planner=planner, maps_service=maps_service)


app = _default_app()
