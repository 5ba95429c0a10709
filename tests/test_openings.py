from __future__ import annotations

import pytest

from floorplan_core.normalize.units import normalize_detections
from floorplan_core.reconstruct.openings import opening_span, span_overlap
from floorplan_core.reconstruct.topology import build_topology
from floorplan_core.spatial import OpeningKind
from floorplan_core.vector.snap import snap_endpoints
from tests.utils_blueprints import door, jittered_rectangle, wall, window


def _build(detections, metadata, context):
    normalized = normalize_detections(detections, metadata, context)
    snap = snap_endpoints(normalized.detections, context)
    return build_topology(normalized.detections, snap, context)


def test_door_hosted_on_nearest_wall(make_context, metric_metadata) -> None:
    detections = jittered_rectangle() + [door((1.0, 0.05), (2.0, 0.05))]
    topology = _build(detections, metric_metadata, make_context())

    assert len(topology.openings) == 1
    opening = topology.openings[0]
    assert opening.id == "o0"
    assert opening.kind is OpeningKind.DOOR
    assert opening.wall_id == "w0"
    assert opening.offset == pytest.approx(1.5)
    assert opening.width == pytest.approx(1.0)
    assert opening.sill_height == 0.0


def test_single_point_window_uses_default_width(make_context, metric_metadata, settings) -> None:
    detections = jittered_rectangle() + [window((4.0, 1.5))]
    topology = _build(detections, metric_metadata, make_context())

    opening = topology.openings[0]
    assert opening.wall_id == "w1"
    assert opening.offset == pytest.approx(1.5)
    assert opening.width == pytest.approx(settings.defaults.window_width_m)
    assert opening.sill_height == pytest.approx(settings.defaults.window_sill_m)


def test_marker_far_from_walls_is_unhosted(make_context, metric_metadata) -> None:
    detections = jittered_rectangle() + [door((2.0, 1.4), (2.0, 1.6))]
    context = make_context()
    topology = _build(detections, metric_metadata, context)

    assert topology.openings == []
    assert [o.id for o in topology.unhosted_openings] == ["o0"]
    assert topology.unhosted_openings[0].nearest_distance == pytest.approx(1.5)
    assert context.metrics.unhosted_openings == 1


def test_offset_is_not_clamped(make_context, metric_metadata) -> None:
    detections = [wall((0.0, 0.0), (4.0, 0.0)), window((4.1, 0.0), (4.5, 0.0))]
    topology = _build(detections, metric_metadata, make_context())

    assert topology.openings[0].offset == pytest.approx(4.3)


def test_span_overlap() -> None:
    assert span_overlap((0.0, 1.0), (0.5, 2.0)) == pytest.approx(0.5)
    assert span_overlap((0.0, 1.0), (1.0, 2.0)) == 0.0
    assert span_overlap((0.0, 1.0), (3.0, 4.0)) == 0.0


def test_opening_span_centred_on_offset(make_context, metric_metadata) -> None:
    detections = jittered_rectangle() + [door((1.0, 0.0), (2.0, 0.0))]
    topology = _build(detections, metric_metadata, make_context())
    assert opening_span(topology.openings[0]) == pytest.approx((1.0, 2.0))
