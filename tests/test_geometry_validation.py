from __future__ import annotations

import pytest

from floorplan_core.exceptions import InternalInvariantViolation
from floorplan_core.normalize.units import normalize_detections
from floorplan_core.reconstruct.topology import CandidateRoom, Topology, TopologyEdge, build_topology
from floorplan_core.validate.geometry_validation import (
    Accepted,
    Rejected,
    RejectionReason,
    validate_topology,
)
from floorplan_core.validate.flagger import assemble
from floorplan_core.vector.snap import TopologyVertex, snap_endpoints
from tests.utils_blueprints import ManualClock, door, jittered_rectangle, wall, window


def _build(detections, metadata, context):
    normalized = normalize_detections(detections, metadata, context)
    snap = snap_endpoints(normalized.detections, context)
    return build_topology(normalized.detections, snap, context)


def _vertex(vid: str, x: float, y: float) -> TopologyVertex:
    return TopologyVertex(id=vid, x=x, y=y, members=())


def _edge(eid: str, a: str, b: str) -> TopologyEdge:
    return TopologyEdge(id=eid, start=a, end=b, thickness=0.2, height=2.7, confidence=0.9, sources=(0,))


def test_rectangle_accepted_with_metrics(make_context, metric_metadata) -> None:
    context = make_context()
    result = validate_topology(_build(jittered_rectangle(), metric_metadata, context), context)

    assert all(isinstance(o, Accepted) for o in result.walls.values())
    room = result.rooms["r0"]
    assert isinstance(room, Accepted)
    assert room.metrics["area"] == pytest.approx(12.0)
    assert room.metrics["perimeter"] == pytest.approx(14.0)
    assert room.metrics["centroid"] == pytest.approx((2.0, 1.5))
    assert room.metrics["height"] == pytest.approx(context.settings.defaults.wall_height_m)
    assert room.metrics["confidence"] == pytest.approx(0.95)
    assert not result.has_critical_issues()
    assert context.metrics.accepted == 5


def test_self_crossing_wall_rejected_with_location(make_context, metric_metadata) -> None:
    detections = [wall((0.0, 0.0), (4.0, 4.0), (4.0, 0.0), (0.0, 4.0))]
    context = make_context()
    result = validate_topology(_build(detections, metric_metadata, context), context)

    # the two crossing segments are split at the crossing point
    assert len(result.walls) == 5
    for outcome in result.walls.values():
        assert isinstance(outcome, Rejected)
        assert outcome.reason is RejectionReason.SELF_INTERSECTION
        assert outcome.location == (pytest.approx((2.0, 2.0)),)
    assert [outcome.reason for outcome in result.rooms.values()] == [RejectionReason.BOUNDARY_REJECTED]
    assert result.has_critical_issues()
    assert context.metrics.rejected_by_reason == {"SELF_INTERSECTION": 5, "BOUNDARY_REJECTED": 1}


def test_degenerate_wall_rejected(make_context, metric_metadata) -> None:
    detections = jittered_rectangle() + [wall((10.0, 10.0))]
    context = make_context()
    result = validate_topology(_build(detections, metric_metadata, context), context)

    outcome = result.walls["w4"]
    assert isinstance(outcome, Rejected)
    assert outcome.reason is RejectionReason.DEGENERATE_WALL
    assert outcome.reason.structural
    # the rectangle itself is unaffected
    assert isinstance(result.rooms["r0"], Accepted)


def test_non_positive_dimension_rejects_wall_and_its_room(make_context, metric_metadata) -> None:
    detections = jittered_rectangle()
    detections[1] = wall((4.0075, 0.0), (4.0075, 3.0), height=0.0)
    context = make_context()
    result = validate_topology(_build(detections, metric_metadata, context), context)

    assert result.walls["w1"].reason is RejectionReason.NON_POSITIVE_DIMENSION
    room = result.rooms["r0"]
    assert isinstance(room, Rejected)
    assert room.reason is RejectionReason.BOUNDARY_REJECTED
    assert not room.reason.structural


def test_clockwise_room_has_non_positive_area(make_context) -> None:
    topology = Topology(
        vertices={
            "v0": _vertex("v0", 0.0, 0.0),
            "v1": _vertex("v1", 0.0, 2.0),
            "v2": _vertex("v2", 2.0, 0.0),
        },
        edges=[_edge("w0", "v0", "v1"), _edge("w1", "v1", "v2"), _edge("w2", "v2", "v0")],
        rooms=[CandidateRoom(id="r0", boundary=("v0", "v1", "v2"), edge_ids=("w0", "w1", "w2"))],
    )
    result = validate_topology(topology, make_context())
    assert result.rooms["r0"].reason is RejectionReason.NON_POSITIVE_AREA


def test_room_with_two_distinct_vertices(make_context) -> None:
    topology = Topology(
        vertices={"v0": _vertex("v0", 0.0, 0.0), "v1": _vertex("v1", 1.0, 0.0)},
        edges=[_edge("w0", "v0", "v1")],
        rooms=[CandidateRoom(id="r0", boundary=("v0", "v1", "v0"), edge_ids=("w0", "w0", "w0"))],
    )
    result = validate_topology(topology, make_context())
    assert result.rooms["r0"].reason is RejectionReason.TOO_FEW_VERTICES


def test_self_intersecting_room_boundary(make_context) -> None:
    topology = Topology(
        vertices={
            "v0": _vertex("v0", 0.0, 0.0),
            "v1": _vertex("v1", 2.0, 2.0),
            "v2": _vertex("v2", 2.0, 0.0),
            "v3": _vertex("v3", 0.0, 2.0),
        },
        edges=[
            _edge("w0", "v0", "v1"),
            _edge("w1", "v1", "v2"),
            _edge("w2", "v2", "v3"),
            _edge("w3", "v3", "v0"),
        ],
        rooms=[CandidateRoom(id="r0", boundary=("v0", "v1", "v2", "v3"), edge_ids=("w0", "w1", "w2", "w3"))],
    )
    result = validate_topology(topology, make_context())
    outcome = result.rooms["r0"]
    assert outcome.reason is RejectionReason.SELF_INTERSECTION
    assert outcome.location == (pytest.approx((1.0, 1.0)),)


def test_overlapping_openings_reject_the_later_one(make_context, metric_metadata) -> None:
    detections = jittered_rectangle() + [
        door((1.0, 0.0), (2.0, 0.0)),
        window((1.5, 0.0), (2.5, 0.0)),
        window((3.0, 0.0), (3.5, 0.0)),
    ]
    context = make_context()
    result = validate_topology(_build(detections, metric_metadata, context), context)

    assert isinstance(result.openings["o0"], Accepted)
    rejected = result.openings["o1"]
    assert isinstance(rejected, Rejected)
    assert rejected.reason is RejectionReason.OPENING_OVERLAP
    assert "o0" in rejected.related_ids
    assert isinstance(result.openings["o2"], Accepted)


def test_opening_outside_span_rejected(make_context, metric_metadata) -> None:
    detections = [wall((0.0, 0.0), (4.0, 0.0)), window((4.1, 0.0), (4.5, 0.0))]
    context = make_context()
    result = validate_topology(_build(detections, metric_metadata, context), context)

    outcome = result.openings["o0"]
    assert outcome.reason is RejectionReason.OUTSIDE_SPAN
    assert not outcome.reason.structural


def test_opening_on_rejected_wall(make_context, metric_metadata) -> None:
    detections = [wall((0.0, 0.0), (4.0, 0.0), thickness=0.0), door((1.0, 0.0), (2.0, 0.0))]
    context = make_context()
    result = validate_topology(_build(detections, metric_metadata, context), context)

    assert result.openings["o0"].reason is RejectionReason.HOST_REJECTED


def test_deadline_truncates_validation(make_context, metric_metadata) -> None:
    clock = ManualClock()
    context = make_context(clock=clock, deadline_seconds=1.0)
    topology = _build(jittered_rectangle(), metric_metadata, context)
    clock.advance(5.0)

    result = validate_topology(topology, context)

    assert result.truncated
    assert result.walls == {}
    assert result.rooms == {}


def test_assemble_refuses_room_accepted_without_metrics(make_context, metric_metadata) -> None:
    context = make_context()
    topology = _build(jittered_rectangle(), metric_metadata, context)
    result = validate_topology(topology, context)

    class Inconsistent(type(result)):
        def accepted(self, outcomes):
            return list(outcomes)

    broken = Inconsistent(**vars(result))
    broken.rooms["r0"] = Rejected(RejectionReason.NON_POSITIVE_AREA, "flattened")

    with pytest.raises(InternalInvariantViolation) as excinfo:
        assemble(None, topology, broken, context)
    assert excinfo.value.stage == "flag"
    assert excinfo.value.entity_ids == ("r0",)
