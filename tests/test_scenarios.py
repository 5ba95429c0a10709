"""End-to-end reconstruction scenarios."""

from __future__ import annotations

import pytest

from floorplan_core.ingest.detections import BlueprintMetadata, LengthUnit
from floorplan_core.pipeline.stages import run_pipeline
from floorplan_core.spatial import RoomType, ValidationStatus
from floorplan_core.validate.report import IssueCode, Severity
from tests.utils_blueprints import door, jittered_rectangle, room_hint, wall


def test_jittered_rectangle_is_one_valid_room(settings, metric_metadata) -> None:
    sd = run_pipeline(jittered_rectangle(), metric_metadata, settings)

    assert sd.validation_status is ValidationStatus.VALID
    assert len(sd.rooms) == 1
    assert sd.rooms[0].area == pytest.approx(4.0 * 3.0)
    assert len(sd.walls) == 4
    assert sd.extraction_accuracy == pytest.approx(0.95)
    assert sd.report is None


def test_corner_gap_leaves_boundary_open(settings, metric_metadata) -> None:
    detections = jittered_rectangle()
    detections[2] = wall((3.9925, 3.0), (0.5, 3.0))

    sd = run_pipeline(detections, metric_metadata, settings)

    assert sd.rooms == ()
    assert sd.validation_status is ValidationStatus.NEEDS_REVIEW
    open_ends = [
        issue
        for issue in sd.report.by_code(IssueCode.AMBIGUOUS_REGION)
        if issue.severity is Severity.WARNING and "Open wall endpoint" in issue.message
    ]
    assert len(open_ends) == 2
    cited = sorted(issue.coordinates[0] for issue in open_ends)
    assert cited == [pytest.approx((-0.0075, 3.0)), pytest.approx((0.5, 3.0))]


def test_self_crossing_wall_makes_job_invalid(settings, metric_metadata) -> None:
    detections = [wall((0.0, 0.0), (4.0, 4.0), (4.0, 0.0), (0.0, 4.0))]

    sd = run_pipeline(detections, metric_metadata, settings)

    assert sd.validation_status is ValidationStatus.INVALID
    assert sd.walls == ()
    errors = [i for i in sd.report.by_code(IssueCode.IMPOSSIBLE_GEOMETRY) if i.severity is Severity.ERROR]
    assert errors
    assert all(issue.coordinates == ((2.0, 2.0),) for issue in errors)


def test_missing_scale_defaults_and_proceeds(settings) -> None:
    sd = run_pipeline(jittered_rectangle(), BlueprintMetadata(unit=LengthUnit.METER), settings)

    assert sd.validation_status is ValidationStatus.NEEDS_REVIEW
    warnings = sd.report.by_code(IssueCode.METADATA_INCOMPLETE)
    assert len(warnings) == 1
    assert warnings[0].severity is Severity.WARNING
    assert len(sd.rooms) == 1
    assert sd.rooms[0].area == pytest.approx(12.0)


def test_zero_detections_is_invalid(settings, metric_metadata) -> None:
    sd = run_pipeline([], metric_metadata, settings)

    assert sd is not None
    assert sd.rooms == ()
    assert sd.walls == ()
    assert sd.validation_status is ValidationStatus.INVALID
    assert sd.extraction_accuracy == 0.0


def test_low_confidence_needs_review(settings, metric_metadata) -> None:
    detections = [wall(*d.polyline, confidence=0.6) for d in jittered_rectangle()]

    sd = run_pipeline(detections, metric_metadata, settings)

    assert sd.validation_status is ValidationStatus.NEEDS_REVIEW
    assert sd.extraction_accuracy == pytest.approx(0.6)
    assert len(sd.rooms) == 1
    low = [i for i in sd.report.issues if i.severity is Severity.INFO and "below threshold" in i.message]
    assert {i.entity_ids[0] for i in low} == {"w0", "w1", "w2", "w3", "r0"}


def test_excluded_opening_forces_review(settings, metric_metadata) -> None:
    detections = jittered_rectangle() + [
        door((1.0, 0.0), (2.0, 0.0)),
        door((1.5, 0.0), (2.5, 0.0)),
    ]

    sd = run_pipeline(detections, metric_metadata, settings)

    assert sd.validation_status is ValidationStatus.NEEDS_REVIEW
    assert [o.id for o in sd.openings] == ["o0"]
    assert sd.report.for_entity("o1")


def test_room_hint_labels_room(settings, metric_metadata) -> None:
    detections = jittered_rectangle() + [room_hint((2.0, 1.5), "Kitchen")]

    sd = run_pipeline(detections, metric_metadata, settings)

    assert sd.validation_status is ValidationStatus.VALID
    assert sd.rooms[0].room_type is RoomType.KITCHEN


def test_room_hint_outside_rooms_is_flagged(settings, metric_metadata) -> None:
    detections = jittered_rectangle() + [room_hint((10.0, 10.0), "Bedroom")]

    sd = run_pipeline(detections, metric_metadata, settings)

    assert sd.validation_status is ValidationStatus.NEEDS_REVIEW
    assert sd.rooms[0].room_type is RoomType.UNKNOWN
    hints = [i for i in sd.report.by_code(IssueCode.AMBIGUOUS_REGION) if "Room hint" in i.message]
    assert hints[0].coordinates == ((10.0, 10.0),)


def test_two_rooms_share_partition_wall(settings, metric_metadata) -> None:
    detections = [
        wall((0.0, 0.0), (6.0, 0.0), (6.0, 3.0), (0.0, 3.0), (0.0, 0.0)),
        wall((3.0, 0.0), (3.0, 3.0)),
    ]

    sd = run_pipeline(detections, metric_metadata, settings)

    assert sd.validation_status is ValidationStatus.VALID
    assert [r.area for r in sd.rooms] == [pytest.approx(9.0), pytest.approx(9.0)]
    shared = set(sd.rooms[0].wall_ids) & set(sd.rooms[1].wall_ids)
    assert len(shared) == 1


def test_crossing_partitions_make_four_rooms(settings, metric_metadata) -> None:
    detections = [
        wall((0.0, 0.0), (4.0, 0.0), (4.0, 3.0), (0.0, 3.0), (0.0, 0.0)),
        wall((2.0, 0.0), (2.0, 3.0)),
        wall((0.0, 1.5), (4.0, 1.5)),
    ]

    sd = run_pipeline(detections, metric_metadata, settings)

    assert sd.validation_status is ValidationStatus.VALID
    assert [r.area for r in sd.rooms] == [pytest.approx(3.0)] * 4
    assert len(sd.walls) == 12
    junction = next(v for v in sd.vertices if (v.x, v.y) == pytest.approx((2.0, 1.5)))
    assert all(junction.id in room.boundary for room in sd.rooms)


def test_column_is_subtracted_from_room(settings, metric_metadata) -> None:
    detections = [
        wall((0.0, 0.0), (6.0, 0.0), (6.0, 6.0), (0.0, 6.0), (0.0, 0.0)),
        wall((2.5, 2.5), (3.5, 2.5), (3.5, 3.5), (2.5, 3.5), (2.5, 2.5)),
    ]

    sd = run_pipeline(detections, metric_metadata, settings)

    assert sd.validation_status is ValidationStatus.VALID
    assert [r.area for r in sd.rooms] == [pytest.approx(35.0)]
    room = sd.rooms[0]
    assert room.perimeter == pytest.approx(28.0)
    assert room.centroid == pytest.approx((3.0, 3.0))
    assert len(room.holes) == 1
    assert len(room.wall_ids) == 8


def test_info_only_issues_leave_valid_result_without_report(settings, metric_metadata) -> None:
    detections = jittered_rectangle()
    detections[0] = wall(*detections[0].polyline, confidence=0.85)

    sd = run_pipeline(detections, metric_metadata, settings)

    assert sd.validation_status is ValidationStatus.VALID
    assert sd.extraction_accuracy == pytest.approx(0.925)
    assert sd.report is None
