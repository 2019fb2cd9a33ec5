"""
Share links: a whole scenario packed into one URL-safe token.

Layout (compact JSON, then base64 of its UTF-8 bytes):
    {"v": 1, "t": budget, "m": mode, "p": [categories],
     "l": [{"c": [lng, lat], "a": address, "n": name, "col": color}, ...]}

Decoding fails closed: anything malformed, or of a version other than
SHARE_VERSION, decodes to None instead of a best-effort guess.
"""
import base64
import json
import logging
import math
from typing import Any, Dict, List, Optional

from .models import ShareSnapshot, SharedTraveler, TransportMode

logger = logging.getLogger(__name__)

SHARE_VERSION = 1
SUPPORTED_VERSIONS = frozenset({SHARE_VERSION})


class _Rejected(ValueError):
    pass


def snapshot_to_dict(snapshot: ShareSnapshot) -> Dict[str, Any]:
    locations = []
    for traveler in snapshot.travelers:
        entry = {
            'c': [traveler.position[0], traveler.position[1]],
            'a': traveler.address,
            'col': traveler.color_tag,
        }
        if traveler.display_name is not None:
            entry['n'] = traveler.display_name
        locations.append(entry)
    return {
        'v': snapshot.version,
        't': snapshot.budget_minutes,
        'm': TransportMode.parse(snapshot.transport_mode).value,
        'p': sorted(snapshot.poi_categories),
        'l': locations,
    }


def encode(snapshot: ShareSnapshot) -> str:
    """
    Token for a snapshot: URL-safe base64 without padding.
    Raises ValueError for a snapshot that decode() would reject.
    """
    data = snapshot_to_dict(snapshot)
    try:
        snapshot_from_dict(data)
    except _Rejected as e:
        raise ValueError(f"Snapshot cannot be shared: {e}") from None
    text = json.dumps(data, ensure_ascii=False, separators=(',', ':'))
    # Raw UTF-8 bytes, i.e. what percent-encoding every non-ASCII char expands to
    raw = text.encode('utf-8')
    return base64.urlsafe_b64encode(raw).decode('ascii').rstrip('=')


def decode(token: str) -> Optional[ShareSnapshot]:
    """Snapshot for a token, or None when the token cannot be trusted"""
    try:
        data = json.loads(_token_bytes(token).decode('utf-8'))
        return snapshot_from_dict(data)
    # ValueError covers bad base64, bad UTF-8, bad JSON and shape errors;
    # deeply nested JSON exhausts the recursion limit
    except (ValueError, OverflowError, RecursionError) as e:
        logger.info(f"Rejected share token: {e}")
        return None


def _token_bytes(token: str) -> bytes:
    if not isinstance(token, str) or not token.strip():
        raise _Rejected("empty token")
    # Accept both alphabets so tokens minted with plain btoa() decode too
    text = token.strip().replace('-', '+').replace('_', '/').rstrip('=')
    if len(text) % 4 == 1:
        raise _Rejected("truncated base64")
    text += '=' * (-len(text) % 4)
    try:
        return base64.b64decode(text.encode('ascii'), validate=True)
    except UnicodeEncodeError:
        raise _Rejected("non-ASCII characters in token") from None


def _is_number(value) -> bool:
    # Huge JSON integers are kept as ints; range checks reject them later
    if isinstance(value, float):
        return math.isfinite(value)
    return isinstance(value, int) and not isinstance(value, bool)


def _require(condition: bool, message: str) -> None:
    if not condition:
        raise _Rejected(message)


def _position(value) -> tuple:
    _require(isinstance(value, list) and len(value) == 2, "coordinates must be [lng, lat]")
    lng, lat = value
    _require(_is_number(lng) and _is_number(lat), "coordinates must be numbers")
    _require(-180.0 <= lng <= 180.0 and -90.0 <= lat <= 90.0, "coordinates out of range")
    return (float(lng), float(lat))


def snapshot_from_dict(data: Any) -> ShareSnapshot:
    _require(isinstance(data, dict), "payload must be an object")
    version = data.get('v')
    _require(isinstance(version, int) and not isinstance(version, bool), "missing version")
    _require(version in SUPPORTED_VERSIONS, f"unsupported version {version}")

    budget = data.get('t')
    _require(isinstance(budget, int) and not isinstance(budget, bool) and budget > 0, "bad budget")

    try:
        mode = TransportMode.parse(data.get('m', TransportMode.DRIVING.value))
    except ValueError as e:
        raise _Rejected(str(e)) from None

    categories = data.get('p', [])
    _require(isinstance(categories, list) and all(isinstance(c, str) for c in categories),
             "categories must be a list of strings")

    locations = data.get('l')
    _require(isinstance(locations, list), "locations must be a list")
    travelers: List[SharedTraveler] = []
    for loc in locations:
        _require(isinstance(loc, dict), "location must be an object")
        address = loc.get('a')
        color = loc.get('col')
        name = loc.get('n')
        _require(isinstance(address, str), "address must be a string")
        _require(isinstance(color, str), "color must be a string")
        _require(name is None or isinstance(name, str), "name must be a string")
        travelers.append(SharedTraveler(
            position=_position(loc.get('c')),
            address=address,
            color_tag=color,
            display_name=name,
        ))

    return ShareSnapshot(
        version=version,
        budget_minutes=budget,
        transport_mode=mode,
        poi_categories=frozenset(categories),
        travelers=tuple(travelers),
    )
