from __future__ import annotations

import itertools
import math

import pytest

from floorplan_core.normalize.units import normalize_detections
from floorplan_core.vector.snap import snap_endpoints
from tests.utils_blueprints import door, jittered_rectangle, wall


def _snap(detections, metadata, context):
    normalized = normalize_detections(detections, metadata, context)
    return snap_endpoints(normalized.detections, context)


def test_rectangle_corners_merge(make_context, metric_metadata) -> None:
    context = make_context()
    snap = _snap(jittered_rectangle(), metric_metadata, context)

    assert [v.id for v in snap.vertices] == ["v0", "v1", "v2", "v3"]
    assert snap.vertices[0].point == pytest.approx((0.0, 0.0))
    assert snap.vertices[1].point == pytest.approx((4.0, 0.0))
    assert snap.vertices[2].point == pytest.approx((4.0, 3.0))
    assert snap.vertices[3].point == pytest.approx((0.0, 3.0))
    assert snap.merges == 4
    assert snap.conflicts == []
    assert snap.vertex_for(0, 0) == snap.vertex_for(3, 1) == "v0"
    assert context.metrics.vertices == 4


def test_pairs_within_tolerance_share_vertex_and_others_do_not(make_context, metric_metadata) -> None:
    detections = [
        wall((0.0, 0.0), (2.0, 0.0)),
        wall((2.015, 0.0), (2.015, 2.0)),
        wall((2.0, 2.05), (0.0, 2.05)),
        wall((5.0, 5.0), (6.0, 5.0)),
    ]
    context = make_context()
    snap = _snap(detections, metric_metadata, context)
    tolerance = context.tolerance

    assert snap.conflicts == []
    for a, b in itertools.combinations(range(len(snap.endpoints)), 2):
        d = math.dist(snap.endpoints[a], snap.endpoints[b])
        same = snap.endpoint_vertex[a] == snap.endpoint_vertex[b]
        if d <= tolerance:
            assert same, (a, b, d)
        else:
            assert not same, (a, b, d)


def test_chain_never_merges_points_farther_than_tolerance(make_context, metric_metadata) -> None:
    # 0.015 steps: neighbours are within tolerance, the ends are not
    detections = [
        wall((0.0, 0.0), (0.0, 1.0)),
        wall((0.015, 0.0), (1.0, 1.0)),
        wall((0.03, 0.0), (2.0, 1.0)),
    ]
    context = make_context()
    snap = _snap(detections, metric_metadata, context)

    first, last = snap.vertex_for(0, 0), snap.vertex_for(2, 0)
    assert first != last
    for vertex in snap.vertices:
        pts = [snap.endpoints[m] for m in vertex.members]
        for a, b in itertools.combinations(pts, 2):
            assert math.dist(a, b) <= context.tolerance
    # the left-out neighbour is reported
    assert len(snap.conflicts) == 1
    assert snap.conflicts[0].distance == pytest.approx(0.015)


def test_closest_pair_merges_first(make_context, metric_metadata) -> None:
    # the middle point is closer to the right point, so the left one is left out
    detections = [
        wall((0.0, 0.0), (0.0, 1.0)),
        wall((0.012, 0.0), (1.0, 1.0)),
        wall((0.022, 0.0), (2.0, 1.0)),
    ]
    snap = _snap(detections, metric_metadata, make_context())
    assert snap.vertex_for(1, 0) == snap.vertex_for(2, 0)
    assert snap.vertex_for(0, 0) != snap.vertex_for(1, 0)


def test_vertex_ids_are_deterministic(make_context, metric_metadata) -> None:
    first = _snap(jittered_rectangle(), metric_metadata, make_context())
    second = _snap(jittered_rectangle(), metric_metadata, make_context())
    assert [(v.id, v.x, v.y) for v in first.vertices] == [(v.id, v.x, v.y) for v in second.vertices]
    assert first.endpoint_vertex == second.endpoint_vertex


def test_non_wall_detections_are_not_snapped(make_context, metric_metadata) -> None:
    snap = _snap([door((0.0, 0.0), (1.0, 0.0))], metric_metadata, make_context())
    assert snap.endpoints == []
    assert snap.vertices == []
