"""
Find the smallest shared travel-time budget with a non-empty overlap.

The binary strategy assumes that reachable area only grows with the budget,
so "an overlap exists" is monotonic over the ascending candidates. Road
networks can break that now and then (one-way streets, time-dependent
speeds); the result is then still feasible but possibly not minimal. The
linear strategy scans upward and needs no such assumption.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from .geometry import Region
from .models import BUDGET_CANDIDATES, Position, Traveler, TransportMode
from .outcomes import OutcomeKind, OverlapOutcome
from .reachability import compute_overlap

logger = logging.getLogger(__name__)

STRATEGY_BINARY = "binary"
STRATEGY_LINEAR = "linear"
STRATEGIES = (STRATEGY_BINARY, STRATEGY_LINEAR)

FetchIsochrone = Callable[[Position, int, TransportMode], Awaitable[Optional[Region]]]


@dataclass(frozen=True)
class Probe:
    budget_minutes: int
    kind: OutcomeKind


@dataclass
class BudgetSearchResult:
    status: OutcomeKind
    budget_minutes: Optional[int] = None
    region: Optional[Region] = None
    isochrones: Dict[str, Region] = field(default_factory=dict)
    probes: List[Probe] = field(default_factory=list)
    # False when a smaller budget was only ruled out by a failed fetch
    minimality_confirmed: bool = False

    @property
    def ok(self) -> bool:
        return self.status is OutcomeKind.OK

    @property
    def all_fetches_failed(self) -> bool:
        """True when no probe ever had an isochrone for every traveler"""
        return bool(self.probes) and all(
            p.kind is OutcomeKind.INSUFFICIENT_DATA for p in self.probes
        )


async def fetch_all(travelers: Sequence[Traveler], fetch: FetchIsochrone,
                    budget_minutes: int, mode: TransportMode) -> Dict[str, Optional[Region]]:
    """Fetch every traveler's isochrone concurrently; a raised error counts as None"""
    tasks = [fetch(t.position, budget_minutes, mode) for t in travelers]
    results = await asyncio.gather(*tasks, return_exceptions=True)

    isochrones: Dict[str, Optional[Region]] = {}
    for traveler, res in zip(travelers, results):
        if isinstance(res, BaseException):
            logger.warning(f"Isochrone fetch failed for traveler {traveler.id} at {budget_minutes} min: {res}")
            res = None
        isochrones[traveler.id] = res
    return isochrones


async def _probe(travelers: Sequence[Traveler], fetch: FetchIsochrone,
                 budget_minutes: int, mode: TransportMode) -> Tuple[OverlapOutcome, Dict[str, Optional[Region]]]:
    isochrones = await fetch_all(travelers, fetch, budget_minutes, mode)
    outcome = compute_overlap(isochrones, [t.id for t in travelers])
    logger.info(f"Budget probe {budget_minutes} min ({mode.value}): {outcome.kind.value}")
    return outcome, isochrones


def _check_candidates(candidates: Sequence[int]) -> List[int]:
    values = list(candidates)
    if not values:
        raise ValueError("At least one candidate budget is required")
    if any(later <= earlier for earlier, later in zip(values, values[1:])):
        raise ValueError("Candidate budgets must be strictly ascending")
    return values


async def search_budget(
    travelers: Sequence[Traveler],
    fetch: FetchIsochrone,
    mode: TransportMode = TransportMode.DRIVING,
    candidates: Sequence[int] = BUDGET_CANDIDATES,
    strategy: str = STRATEGY_BINARY,
) -> BudgetSearchResult:
    """
    Smallest candidate budget at which all travelers' isochrones overlap.

    Each probe fetches every traveler's isochrone in parallel and reduces
    them. A failed fetch is treated like "no overlap" when choosing where to
    search next, but is kept apart in ``probes`` so that
    ``minimality_confirmed`` can say whether every smaller budget was ruled
    out by real data.
    """
    if len(travelers) < 2:
        raise ValueError("Need at least 2 travelers to optimize")
    if strategy not in STRATEGIES:
        raise ValueError(f"Unknown search strategy: {strategy!r}")
    budgets = _check_candidates(candidates)
    mode = TransportMode.parse(mode)

    result = BudgetSearchResult(status=OutcomeKind.INFEASIBLE)
    best: Optional[int] = None

    async def run(index: int) -> bool:
        nonlocal best
        outcome, isochrones = await _probe(travelers, fetch, budgets[index], mode)
        result.probes.append(Probe(budgets[index], outcome.kind))
        if outcome.ok:
            best = index
            result.region = outcome.region
            result.isochrones = {tid: iso for tid, iso in isochrones.items() if iso is not None}
        return outcome.ok

    if strategy == STRATEGY_LINEAR:
        for index in range(len(budgets)):
            if await run(index):
                break
    else:
        lo, hi = 0, len(budgets) - 1
        while lo <= hi:
            mid = (lo + hi) // 2
            if await run(mid):
                hi = mid - 1
            else:
                lo = mid + 1

    if best is None:
        logger.info(f"No feasible budget among {budgets[0]}-{budgets[-1]} min after {len(result.probes)} probes")
        return result

    chosen = budgets[best]
    result.status = OutcomeKind.OK
    result.budget_minutes = chosen
    below = [p for p in result.probes if p.budget_minutes < chosen]
    result.minimality_confirmed = not any(p.kind is OutcomeKind.INSUFFICIENT_DATA for p in below)
    logger.info(
        f"Minimal feasible budget: {chosen} min (confirmed={result.minimality_confirmed}, probes={len(result.probes)})"
    )
    return result
