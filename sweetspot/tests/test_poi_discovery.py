import asyncio

import pytest
from shapely.geometry import Polygon

from sweetspot.geometry import contains_point, square
from sweetspot.poi_discovery import (
    deduplicate, discover_venues, sample_points, search_categories, sort_by_distance,
)

from .conftest import venue


def run(coro):
    return asyncio.run(coro)


def test_sample_points_center_and_quadrants():
    points = sample_points((5.0, 5.0), (0.0, 0.0, 10.0, 20.0))
    assert points == [
        (5.0, 5.0),
        (2.5, 5.0),
        (7.5, 5.0),
        (2.5, 15.0),
        (7.5, 15.0),
    ]


def test_sample_points_degenerate_bbox():
    points = sample_points((1.0, 2.0), (1.0, 2.0, 1.0, 2.0))
    assert points == [(1.0, 2.0)] * 5


def test_sample_points_clamped_to_bbox():
    points = sample_points((50.0, -50.0), (0.0, 0.0, 1.0, 1.0))
    assert points[0] == (1.0, 0.0)


def test_deduplicate_on_name_and_exact_position():
    a = venue('1', 'Café Louvre', 14.42, 50.08)
    same = venue('2', 'Café Louvre', 14.42, 50.08)
    moved = venue('3', 'Café Louvre', 14.42000001, 50.08)
    other = venue('4', 'Kavárna', 14.42, 50.08)
    assert deduplicate([a, same, moved, other]) == [a, moved, other]


def test_discovery_filters_to_region_and_dedupes():
    region = square((0, 0), 2)
    inside = venue('in', 'Inside', 0.5, 0.5)
    edge = venue('edge', 'Edge', 1.0, 0.0)
    outside = venue('out', 'Outside', 1.5, 0.0)
    calls = []

    async def search(point, bbox):
        calls.append((point, bbox))
        return [inside, edge, outside]

    result = run(discover_venues(region, search))
    assert result == [inside, edge]
    assert len(calls) == 5
    assert all(bbox == (-1.0, -1.0, 1.0, 1.0) for _, bbox in calls)


def test_discovery_caps_in_discovery_order():
    region = square((0, 0), 2)

    async def search(point, bbox):
        return [venue(f"{point}-{i}", f"V {point} {i}", point[0], point[1]) for i in range(3)]

    result = run(discover_venues(region, search, max_results=4))
    assert len(result) == 4
    # First three come from the centre query, the fourth from the next point
    assert len({v.position for v in result[:3]}) == 1
    assert result[3].position != result[0].position


def test_discovery_survives_failing_points():
    region = square((0, 0), 2)
    good = venue('g', 'Good', 0.1, 0.1)

    async def search(point, bbox):
        if abs(point[0]) > 0.25:
            raise RuntimeError("timeout")
        return [good]

    assert run(discover_venues(region, search)) == [good]


def test_discovery_survives_cancelled_point():
    region = square((0, 0), 2)
    good = venue('g', 'Good', 0.1, 0.1)

    async def search(point, bbox):
        if abs(point[0]) > 0.25:
            raise asyncio.CancelledError()
        return [good]

    assert run(discover_venues(region, search)) == [good]


def test_discovery_all_failures_is_empty():
    async def search(point, bbox):
        raise RuntimeError("down")

    assert run(discover_venues(square((0, 0), 2), search)) == []


def test_discovery_without_region():
    async def search(point, bbox):
        raise AssertionError("should not search")

    assert run(discover_venues(None, search)) == []


def test_discovery_thin_lens_queries_outside_centroid():
    # Long thin diagonal strip: quadrant points reach venues near its ends
    strip = Polygon([(0, 0), (0.2, 0), (10, 9.8), (10, 10), (9.8, 10), (0, 0.2)])
    near_end = venue('end', 'Far end', 9.9, 9.9)

    async def search(point, bbox):
        if point[0] > 5 and point[1] > 5:
            return [near_end]
        return []

    result = run(discover_venues(strip, search))
    assert result == [near_end]
    assert all(contains_point(strip, v.position) for v in result)


def test_search_categories_tags_and_dedupes_ids():
    cafe = venue('x', 'Both', 0.0, 0.0)
    pub = venue('p', 'Pub', 0.1, 0.1)
    by_query = {'coffee': [cafe], 'bar': [cafe, pub]}
    queried = []

    async def search(category, point, bbox):
        queried.append(category)
        return by_query.get(category, [])

    per_point = search_categories(['coffee', 'beer', 'unknown'], search)
    result = run(per_point((0, 0), (0, 0, 1, 1)))
    assert sorted(queried) == ['bar', 'coffee']
    assert [(v.id, v.source_category) for v in result] == [('x', 'coffee'), ('p', 'beer')]


def test_search_categories_nothing_selected():
    async def search(category, point, bbox):
        raise AssertionError("should not search")

    assert run(search_categories([], search)((0, 0), (0, 0, 1, 1))) == []


def test_search_categories_absorbs_category_failure():
    pub = venue('p', 'Pub', 0.1, 0.1)

    async def search(category, point, bbox):
        if category == 'coffee':
            raise RuntimeError("quota")
        return [pub]

    result = run(search_categories(['coffee', 'beer'], search)((0, 0), (0, 0, 1, 1)))
    assert [v.source_category for v in result] == ['beer']


def test_search_categories_absorbs_cancelled_category():
    pub = venue('p', 'Pub', 0.1, 0.1)

    async def search(category, point, bbox):
        if category == 'coffee':
            raise asyncio.CancelledError()
        return [pub]

    result = run(search_categories(['coffee', 'beer'], search)((0, 0), (0, 0, 1, 1)))
    assert [v.source_category for v in result] == ['beer']


def test_sort_by_distance():
    near = venue('n', 'Near', 14.421, 50.081)
    far = venue('f', 'Far', 14.5, 50.1)
    assert sort_by_distance([far, near], (14.42, 50.08)) == [near, far]


@pytest.mark.parametrize("max_results", [0, -1])
def test_non_positive_cap_returns_nothing(max_results):
    async def search(point, bbox):
        return [venue('a', 'A', 0, 0)]

    assert run(discover_venues(square((0, 0), 2), search, max_results=max_results)) == []
