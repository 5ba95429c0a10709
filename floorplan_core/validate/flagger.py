"""
Ambiguity Flagger

Turns per-entity validation outcomes, topology leftovers and inherited
confidences into a ValidationReport, an aggregate extraction accuracy and a
validation status, and assembles the SpatialData handed downstream.

Status policy:
    INVALID       any ERROR issue (structural rejection, no walls at all)
    NEEDS_REVIEW  any WARNING issue (unclosed boundary, snap conflict,
                  excluded opening, low aggregate confidence, timeout, ...)
    VALID         otherwise
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from shapely.geometry import Point as ShapelyPoint
from shapely.geometry import Polygon

from floorplan_core.exceptions import InternalInvariantViolation
from floorplan_core.geometry.primitives import distance
from floorplan_core.normalize.units import NormalizationResult, NormalizedDetection
from floorplan_core.pipeline.context import JobContext
from floorplan_core.reconstruct.topology import Topology, vertex_number
from floorplan_core.spatial import (
    Opening,
    Room,
    RoomType,
    SpatialData,
    ValidationStatus,
    Vertex,
    Wall,
)
from floorplan_core.validate.geometry_validation import Accepted, GeometryValidationResult
from floorplan_core.validate.report import Issue, IssueCode, Severity, ValidationReport

Point = Tuple[float, float]

STAGE = "flag"


@dataclass
class FlagResult:
    issues: List[Issue] = field(default_factory=list)
    room_types: Dict[str, RoomType] = field(default_factory=dict)

    def add(
        self,
        code: IssueCode,
        severity: Severity,
        message: str,
        entity_ids: Sequence[str] = (),
        coordinates: Sequence[Point] = (),
        stage: str = STAGE,
    ) -> None:
        self.issues.append(
            Issue(
                code=code,
                severity=severity,
                message=message,
                stage=stage,
                entity_ids=tuple(entity_ids),
                coordinates=tuple((float(x), float(y)) for x, y in coordinates),
            )
        )


def classify(report: ValidationReport) -> ValidationStatus:
    if report.has_errors():
        return ValidationStatus.INVALID
    if any(issue.severity is Severity.WARNING for issue in report.issues):
        return ValidationStatus.NEEDS_REVIEW
    return ValidationStatus.VALID


def _hint_point(hint: NormalizedDetection) -> Point:
    xs = [p[0] for p in hint.polyline]
    ys = [p[1] for p in hint.polyline]
    return (sum(xs) / len(xs), sum(ys) / len(ys))


def _flag_rejections(validation: GeometryValidationResult, flags: FlagResult) -> None:
    for kind, entity_id, rejection in validation.rejections():
        structural = rejection.reason.structural
        flags.add(
            IssueCode.IMPOSSIBLE_GEOMETRY,
            Severity.ERROR if structural else Severity.WARNING,
            f"{kind.capitalize()} {entity_id} rejected ({rejection.reason.value}): {rejection.message}",
            entity_ids=(entity_id,) + tuple(rejection.related_ids),
            coordinates=rejection.location,
            stage="validate",
        )


def _flag_topology(topology: Topology, flags: FlagResult) -> None:
    incident: Dict[str, List[str]] = {}
    for edge in topology.edges:
        if edge.degenerate:
            continue
        incident.setdefault(edge.start, []).append(edge.id)
        incident.setdefault(edge.end, []).append(edge.id)

    for vid in topology.open_vertices:
        x, y = topology.point(vid)
        flags.add(
            IssueCode.AMBIGUOUS_REGION,
            Severity.WARNING,
            f"Open wall endpoint {vid} at ({x:.3f}, {y:.3f}) does not close a boundary",
            entity_ids=(vid,) + tuple(incident.get(vid, ())),
            coordinates=((x, y),),
        )

    open_set = set(topology.open_vertices)
    edges = topology.edge_map()
    for eid in topology.unclosed_edges:
        edge = edges[eid]
        if edge.start in open_set or edge.end in open_set:
            continue
        flags.add(
            IssueCode.AMBIGUOUS_REGION,
            Severity.INFO,
            f"Wall {eid} bounds no closed room",
            entity_ids=(eid, edge.start, edge.end),
            coordinates=(topology.point(edge.start), topology.point(edge.end)),
        )

    for conflict in topology.snap_conflicts:
        a, b = conflict.vertex_ids
        flags.add(
            IssueCode.AMBIGUOUS_REGION,
            Severity.WARNING,
            f"Endpoints {conflict.first} and {conflict.second} are {conflict.distance:.4f} m apart "
            f"but were kept on separate vertices {a} and {b}",
            entity_ids=(a, b),
            coordinates=(topology.point(a), topology.point(b)),
        )

    for crossing in topology.crossings:
        first, second = crossing.edge_ids
        flags.add(
            IssueCode.AMBIGUOUS_REGION,
            Severity.WARNING,
            f"Walls {first} and {second} cross without a shared vertex",
            entity_ids=crossing.edge_ids,
            coordinates=(crossing.point,),
        )

    for opening in topology.unhosted_openings:
        where = (
            f"nearest wall {opening.nearest_distance:.3f} m away"
            if opening.nearest_distance is not None
            else "no wall present"
        )
        flags.add(
            IssueCode.AMBIGUOUS_REGION,
            Severity.WARNING,
            f"{opening.kind.value.capitalize()} marker {opening.id} has no host wall ({where})",
            entity_ids=(opening.id,),
            coordinates=(opening.center,),
        )


def _flag_room_hints(
    topology: Topology,
    accepted_rooms: Sequence[str],
    flags: FlagResult,
) -> None:
    rooms = {room.id: room for room in topology.rooms}
    polygons = [
        (
            rid,
            Polygon(
                [topology.point(v) for v in rooms[rid].boundary],
                [[topology.point(v) for v in ring] for ring in rooms[rid].holes],
            ),
        )
        for rid in accepted_rooms
    ]
    for hint in topology.room_hints:
        x, y = _hint_point(hint)
        point = ShapelyPoint(x, y)
        host = next((rid for rid, poly in polygons if poly.covers(point)), None)
        if host is None:
            flags.add(
                IssueCode.AMBIGUOUS_REGION,
                Severity.WARNING,
                f"Room hint {hint.index} ({hint.label or 'unlabelled'}) lies inside no room",
                coordinates=((x, y),),
            )
            continue
        room_type = RoomType.from_label(hint.label)
        current = flags.room_types.get(host)
        if current is None or current is RoomType.UNKNOWN:
            flags.room_types[host] = room_type
        elif room_type is not RoomType.UNKNOWN and room_type is not current:
            flags.add(
                IssueCode.AMBIGUOUS_REGION,
                Severity.INFO,
                f"Room {host} has conflicting labels; keeping {current.value}, ignoring {room_type.value}",
                entity_ids=(host,),
                coordinates=((x, y),),
            )


def _flag_confidence(entities: Sequence[Tuple[str, float]], threshold: float, flags: FlagResult) -> float:
    if not entities:
        return 0.0
    for entity_id, confidence in entities:
        if confidence < threshold:
            flags.add(
                IssueCode.AMBIGUOUS_REGION,
                Severity.INFO,
                f"{entity_id} confidence {confidence:.2f} below threshold {threshold:.2f}",
                entity_ids=(entity_id,),
            )
    accuracy = sum(c for _, c in entities) / len(entities)
    if accuracy < threshold:
        flags.add(
            IssueCode.AMBIGUOUS_REGION,
            Severity.WARNING,
            f"Extraction accuracy {accuracy:.3f} below threshold {threshold:.2f}",
        )
    return accuracy


def assemble(
    normalization: Optional[NormalizationResult],
    topology: Optional[Topology],
    validation: Optional[GeometryValidationResult],
    context: JobContext,
    *,
    timed_out: bool = False,
) -> SpatialData:
    """Build the final SpatialData from whatever stages completed.

    Any of ``normalization``, ``topology`` and ``validation`` may be None when
    the deadline cut the pipeline short; entities never validated are left out.
    """
    log = context.log(STAGE)
    settings = context.settings
    flags = FlagResult()
    if normalization is not None:
        flags.issues.extend(normalization.warnings)

    walls: List[Wall] = []
    rooms: List[Room] = []
    openings: List[Opening] = []
    scored: List[Tuple[str, float]] = []

    if topology is not None and validation is not None:
        _flag_rejections(validation, flags)
        _flag_topology(topology, flags)

        edges = topology.edge_map()
        for wid in validation.accepted(validation.walls):
            edge = edges[wid]
            walls.append(
                Wall(
                    id=edge.id,
                    start=edge.start,
                    end=edge.end,
                    thickness=edge.thickness,
                    height=edge.height,
                    confidence=edge.confidence,
                    length=distance(topology.point(edge.start), topology.point(edge.end)),
                    material=settings.defaults.wall_material,
                )
            )
            scored.append((wid, edge.confidence))

        accepted_rooms = validation.accepted(validation.rooms)
        _flag_room_hints(topology, accepted_rooms, flags)
        candidates = {room.id: room for room in topology.rooms}
        for rid in accepted_rooms:
            outcome = validation.rooms[rid]
            if not isinstance(outcome, Accepted):
                raise InternalInvariantViolation(
                    f"Room {rid} listed as accepted without metrics",
                    job_id=context.job_id,
                    stage=STAGE,
                    entity_ids=[rid],
                )
            metrics = outcome.metrics
            rooms.append(
                Room(
                    id=rid,
                    boundary=candidates[rid].boundary,
                    wall_ids=candidates[rid].edge_ids,
                    area=metrics["area"],
                    perimeter=metrics["perimeter"],
                    centroid=metrics["centroid"],
                    height=metrics["height"],
                    confidence=metrics["confidence"],
                    room_type=flags.room_types.get(rid, RoomType.UNKNOWN),
                    holes=candidates[rid].holes,
                )
            )
            scored.append((rid, metrics["confidence"]))

        candidates_by_id = {o.id: o for o in topology.openings}
        for oid in validation.accepted(validation.openings):
            candidate = candidates_by_id[oid]
            openings.append(
                Opening(
                    id=oid,
                    kind=candidate.kind,
                    wall_id=candidate.wall_id,
                    offset=candidate.offset,
                    width=candidate.width,
                    height=candidate.height,
                    sill_height=candidate.sill_height,
                    confidence=candidate.confidence,
                )
            )
            scored.append((oid, candidate.confidence))

        if not topology.edges and not timed_out:
            flags.add(
                IssueCode.IMPOSSIBLE_GEOMETRY,
                Severity.ERROR,
                "No wall detections to reconstruct",
            )
    elif not timed_out:
        flags.add(
            IssueCode.IMPOSSIBLE_GEOMETRY,
            Severity.ERROR,
            "No wall detections to reconstruct",
        )

    accuracy = _flag_confidence(scored, settings.accuracy_threshold, flags)

    if timed_out or (validation is not None and validation.truncated):
        flags.add(
            IssueCode.PROCESSING_TIMEOUT,
            Severity.WARNING,
            f"Deadline of {context.deadline_seconds:g}s exceeded after {context.elapsed():.3f}s; "
            "result is partial",
            stage="pipeline",
        )

    used = {w.start for w in walls} | {w.end for w in walls}
    vertices: Tuple[Vertex, ...] = ()
    if topology is not None:
        vertices = tuple(
            Vertex(id=vid, x=topology.vertices[vid].x, y=topology.vertices[vid].y)
            for vid in sorted(used, key=vertex_number)
        )

    report = ValidationReport.from_issues(flags.issues)
    status = classify(report)
    log.info(
        "Flagged {} issues; status={} accuracy={:.3f}",
        len(report),
        status.value,
        accuracy,
    )
    return SpatialData(
        vertices=vertices,
        walls=tuple(walls),
        rooms=tuple(rooms),
        openings=tuple(openings),
        extraction_accuracy=accuracy,
        validation_status=status,
        report=report if status is not ValidationStatus.VALID else None,
        metadata={
            "units": "m",
            "scale_factor": normalization.factor if normalization is not None else None,
            "snap_tolerance": context.tolerance,
            "attempt": context.attempt,
        },
    )


__all__ = ["FlagResult", "assemble", "classify"]
