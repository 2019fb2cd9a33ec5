import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence

from . import poi_types
from .budget_search import STRATEGY_BINARY, BudgetSearchResult, Probe, fetch_all, search_budget
from .geometry import PLANAR_WARNING_KM, Region, describe_region, extent_km, to_geojson
from .models import BUDGET_CANDIDATES, Position, Traveler, TransportMode, Venue
from .outcomes import OutcomeKind, describe
from .poi_discovery import DEFAULT_MAX_RESULTS, discover_venues, search_categories
from .reachability import compute_overlap

logger = logging.getLogger(__name__)


@dataclass
class MeetingZoneResult:
    status: OutcomeKind
    budget_minutes: Optional[int]
    mode: TransportMode
    region: Optional[Region] = None
    isochrones: Dict[str, Region] = field(default_factory=dict)
    venues: List[Venue] = field(default_factory=list)
    missing: List[str] = field(default_factory=list)
    # Only set by the optimizer
    minimality_confirmed: Optional[bool] = None
    probes: List[Probe] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.status is OutcomeKind.OK

    def to_dict(self) -> Dict:
        data = {
            'budget_minutes': self.budget_minutes,
            'mode': self.mode.value,
            'meeting_area': to_geojson(self.region),
            'isochrones': {tid: to_geojson(iso) for tid, iso in self.isochrones.items()},
            'venues': [v.to_dict() for v in self.venues],
            'missing': list(self.missing),
        }
        if self.minimality_confirmed is not None:
            data['minimality_confirmed'] = self.minimality_confirmed
            data['probes'] = [
                {'budget_minutes': p.budget_minutes, 'status': p.kind.value} for p in self.probes
            ]
        return {
            'success': self.success,
            'status': self.status.value,
            'error': describe(self.status),
            'data': data,
        }


class MeetingPlanner:
    """Wires the isochrone and places providers to the overlap engine"""

    def __init__(self, isochrone_service, places_service=None,
                 max_results: int = DEFAULT_MAX_RESULTS, strategy: str = STRATEGY_BINARY,
                 candidates: Sequence[int] = BUDGET_CANDIDATES):
        self.isochrone_service = isochrone_service
        self.places_service = places_service
        self.max_results = max_results
        self.strategy = strategy
        self.candidates = tuple(candidates)

    # Run the async version on a private loop, one per call
    @staticmethod
    def _run(coro):
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        try:
            return loop.run_until_complete(coro)
        finally:
            loop.close()

    def calculate_meeting_zone(self, travelers: Sequence[Traveler], budget_minutes: int,
                               mode=TransportMode.DRIVING, categories: Iterable[str] = poi_types.DEFAULT_POI_TYPES,
                               max_results: Optional[int] = None) -> MeetingZoneResult:
        return self._run(self.calculate_meeting_zone_async(travelers, budget_minutes, mode, categories, max_results))

    def find_optimal_meeting_zone(self, travelers: Sequence[Traveler], mode=TransportMode.DRIVING,
                                  categories: Iterable[str] = poi_types.DEFAULT_POI_TYPES,
                                  strategy: Optional[str] = None,
                                  max_results: Optional[int] = None) -> MeetingZoneResult:
        return self._run(self.find_optimal_meeting_zone_async(travelers, mode, categories, strategy, max_results))

    def locate(self, position: Position) -> Traveler:
        return self._run(self.locate_async(position))

    async def calculate_meeting_zone_async(self, travelers: Sequence[Traveler], budget_minutes: int,
                                           mode=TransportMode.DRIVING,
                                           categories: Iterable[str] = poi_types.DEFAULT_POI_TYPES,
                                           max_results: Optional[int] = None) -> MeetingZoneResult:
        """
        Overlap and venues for one fixed budget.
        Needs at least one traveler; a single traveler's area is its own overlap.
        """
        if not travelers:
            raise ValueError("Add at least 1 location")
        mode = TransportMode.parse(mode)

        isochrones = await fetch_all(travelers, self.isochrone_service.get_isochrone_async, budget_minutes, mode)
        outcome = compute_overlap(isochrones, [t.id for t in travelers])
        result = MeetingZoneResult(
            status=outcome.kind,
            budget_minutes=budget_minutes,
            mode=mode,
            region=outcome.region,
            isochrones={tid: iso for tid, iso in isochrones.items() if iso is not None},
            missing=list(outcome.missing),
        )
        if outcome.ok:
            result.venues = await self._venues(outcome.region, categories, max_results)
        return result

    async def find_optimal_meeting_zone_async(self, travelers: Sequence[Traveler], mode=TransportMode.DRIVING,
                                              categories: Iterable[str] = poi_types.DEFAULT_POI_TYPES,
                                              strategy: Optional[str] = None,
                                              max_results: Optional[int] = None) -> MeetingZoneResult:
        """Smallest budget with a shared area, then venues inside it"""
        mode = TransportMode.parse(mode)
        search: BudgetSearchResult = await search_budget(
            travelers,
            self.isochrone_service.get_isochrone_async,
            mode=mode,
            candidates=self.candidates,
            strategy=strategy or self.strategy,
        )
        result = MeetingZoneResult(
            status=search.status,
            budget_minutes=search.budget_minutes,
            mode=mode,
            region=search.region,
            isochrones=search.isochrones,
            minimality_confirmed=search.minimality_confirmed,
            probes=list(search.probes),
        )
        if search.ok:
            result.venues = await self._venues(search.region, categories, max_results)
        elif search.all_fetches_failed:
            logger.warning("Optimization never received a full set of isochrones")
        return result

    async def locate_async(self, position: Position) -> Traveler:
        """New traveler for a dropped pin, named by reverse geocoding when possible"""
        address = None
        if self.places_service is not None:
            found = await self.places_service.reverse_geocode_async(position)
            if found:
                address = found.get('display_address')
        return Traveler.create(position, address=address)

    async def _venues(self, region: Region, categories: Iterable[str],
                      max_results: Optional[int]) -> List[Venue]:
        kind, parts = describe_region(region)
        extent = extent_km(region)
        logger.info(f"Meeting area: {kind} with {parts} part(s), {extent:.1f} km across")
        if extent > PLANAR_WARNING_KM:
            logger.warning(
                f"Meeting area spans {extent:.0f} km; planar lng/lat geometry is only approximate at this scale"
            )
        if self.places_service is None:
            return []
        search = search_categories(sorted(set(categories)), self.places_service.search_nearby_async)
        limit = self.max_results if max_results is None else max_results
        return await discover_venues(region, search, max_results=limit)
