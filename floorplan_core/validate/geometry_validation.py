"""
Geometry Validation for Reconstruction

Checks every candidate wall, room and opening for structural validity and
computes derived metrics. Each entity ends up either Accepted(metrics) or
Rejected(reason, location); nothing here raises for bad input.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Sequence, Tuple, Union

from shapely.geometry import LinearRing, LineString, Polygon

from floorplan_core.geometry.contract import EPS_AREA
from floorplan_core.geometry.primitives import distance, first_self_intersection, signed_area
from floorplan_core.pipeline.context import JobContext
from floorplan_core.reconstruct.openings import group_by_wall, opening_span, span_overlap
from floorplan_core.reconstruct.topology import Topology

Point = Tuple[float, float]


class RejectionReason(str, Enum):
    SELF_INTERSECTION = "SELF_INTERSECTION"
    NON_POSITIVE_AREA = "NON_POSITIVE_AREA"
    TOO_FEW_VERTICES = "TOO_FEW_VERTICES"
    DEGENERATE_WALL = "DEGENERATE_WALL"
    NON_POSITIVE_DIMENSION = "NON_POSITIVE_DIMENSION"
    OUTSIDE_SPAN = "OUTSIDE_SPAN"
    OPENING_OVERLAP = "OPENING_OVERLAP"
    HOST_REJECTED = "HOST_REJECTED"
    BOUNDARY_REJECTED = "BOUNDARY_REJECTED"

    @property
    def structural(self) -> bool:
        """Structural rejections make the whole job INVALID."""
        return self in _STRUCTURAL


_STRUCTURAL = frozenset(
    {
        RejectionReason.SELF_INTERSECTION,
        RejectionReason.NON_POSITIVE_AREA,
        RejectionReason.TOO_FEW_VERTICES,
        RejectionReason.DEGENERATE_WALL,
        RejectionReason.NON_POSITIVE_DIMENSION,
    }
)


@dataclass(frozen=True)
class Accepted:
    metrics: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Rejected:
    reason: RejectionReason
    message: str
    location: Tuple[Point, ...] = ()
    related_ids: Tuple[str, ...] = ()


Outcome = Union[Accepted, Rejected]


@dataclass
class GeometryValidationResult:
    """Per-entity outcomes; entities missing from a mapping were never checked."""

    walls: Dict[str, Outcome] = field(default_factory=dict)
    rooms: Dict[str, Outcome] = field(default_factory=dict)
    openings: Dict[str, Outcome] = field(default_factory=dict)
    truncated: bool = False

    def rejections(self) -> List[Tuple[str, str, Rejected]]:
        """(entity kind, entity id, rejection) in wall/room/opening order."""
        found: List[Tuple[str, str, Rejected]] = []
        for kind, outcomes in (("wall", self.walls), ("room", self.rooms), ("opening", self.openings)):
            for entity_id, outcome in outcomes.items():
                if isinstance(outcome, Rejected):
                    found.append((kind, entity_id, outcome))
        return found

    def accepted(self, outcomes: Mapping[str, Outcome]) -> List[str]:
        return [eid for eid, outcome in outcomes.items() if isinstance(outcome, Accepted)]

    def has_critical_issues(self) -> bool:
        return any(rej.reason.structural for _, _, rej in self.rejections())


def _dedupe_consecutive(chain: Sequence[str]) -> List[str]:
    result: List[str] = []
    for vid in chain:
        if not result or result[-1] != vid:
            result.append(vid)
    return result


def _chain_crossing(chain: Sequence[str], topology: Topology) -> Point | None:
    ids = _dedupe_consecutive(chain)
    if len(ids) < 3:
        return None
    closed = ids[0] == ids[-1] and len(ids) >= 4
    if closed:
        ids = ids[:-1]
    coords = [topology.point(v) for v in ids]
    geom = LinearRing(coords) if closed else LineString(coords)
    if geom.is_simple and len(set(ids)) == len(ids):
        return None
    return first_self_intersection(coords, closed=closed)


def validate_walls(topology: Topology, context: JobContext, result: GeometryValidationResult) -> None:
    crossing_by_source: Dict[int, Point] = {}
    for det_index, chain in topology.wall_chains.items():
        hit = _chain_crossing(chain, topology)
        if hit is not None:
            crossing_by_source[det_index] = hit

    for edge in topology.edges:
        if context.deadline_exceeded():
            result.truncated = True
            return
        a, b = topology.point(edge.start), topology.point(edge.end)
        crossing = next((crossing_by_source[s] for s in edge.sources if s in crossing_by_source), None)
        if edge.degenerate:
            outcome: Outcome = Rejected(
                RejectionReason.DEGENERATE_WALL,
                f"Wall {edge.id} collapses onto vertex {edge.start} after snapping",
                location=(a,),
                related_ids=(edge.start,),
            )
        elif edge.thickness <= 0.0 or edge.height <= 0.0:
            outcome = Rejected(
                RejectionReason.NON_POSITIVE_DIMENSION,
                f"Wall {edge.id} has non-positive thickness/height ({edge.thickness:g}/{edge.height:g})",
                location=(a, b),
                related_ids=(edge.start, edge.end),
            )
        elif crossing is not None:
            outcome = Rejected(
                RejectionReason.SELF_INTERSECTION,
                f"Wall {edge.id} belongs to a polyline that crosses itself at "
                f"({crossing[0]:.3f}, {crossing[1]:.3f})",
                location=(crossing,),
                related_ids=(edge.start, edge.end),
            )
        else:
            outcome = Accepted({"length": distance(a, b), "confidence": edge.confidence})
        result.walls[edge.id] = outcome


def validate_rooms(topology: Topology, context: JobContext, result: GeometryValidationResult) -> None:
    edges = topology.edge_map()
    for room in topology.rooms:
        if context.deadline_exceeded():
            result.truncated = True
            return
        coords = [topology.point(v) for v in room.boundary]
        distinct = len(set(room.boundary))
        bad_walls = [eid for eid in room.edge_ids if isinstance(result.walls.get(eid), Rejected)]

        if distinct < 3:
            outcome: Outcome = Rejected(
                RejectionReason.TOO_FEW_VERTICES,
                f"Room {room.id} has only {distinct} distinct vertices",
                location=tuple(coords),
                related_ids=room.boundary,
            )
            result.rooms[room.id] = outcome
            continue

        crossing = None
        if not LinearRing(coords).is_simple or distinct != len(room.boundary):
            crossing = first_self_intersection(coords, closed=True)
        hole_coords = [[topology.point(v) for v in hole] for hole in room.holes]
        area = signed_area(coords) - sum(abs(signed_area(ring)) for ring in hole_coords)
        if crossing is not None:
            outcome = Rejected(
                RejectionReason.SELF_INTERSECTION,
                f"Room {room.id} boundary intersects itself at ({crossing[0]:.3f}, {crossing[1]:.3f})",
                location=(crossing,),
                related_ids=room.boundary,
            )
        elif area <= EPS_AREA:
            outcome = Rejected(
                RejectionReason.NON_POSITIVE_AREA,
                f"Room {room.id} has non-positive area {area:.6f}",
                location=tuple(coords),
                related_ids=room.boundary,
            )
        elif bad_walls:
            outcome = Rejected(
                RejectionReason.BOUNDARY_REJECTED,
                f"Room {room.id} is bounded by rejected walls {', '.join(bad_walls)}",
                location=tuple(coords),
                related_ids=tuple(bad_walls),
            )
        else:
            poly = Polygon(coords, hole_coords)
            centroid = poly.centroid
            walls = [edges[eid] for eid in room.edge_ids]
            outcome = Accepted(
                {
                    "area": area,
                    "perimeter": float(poly.length),
                    "centroid": (float(centroid.x), float(centroid.y)),
                    "height": max(w.height for w in walls),
                    "confidence": sum(w.confidence for w in walls) / len(walls),
                }
            )
        result.rooms[room.id] = outcome


def validate_openings(topology: Topology, context: JobContext, result: GeometryValidationResult) -> None:
    edges = topology.edge_map()
    overlap_tol = context.settings.opening_overlap_tolerance_m

    for wall_id, group in group_by_wall(topology.openings).items():
        wall = edges[wall_id]
        length = distance(topology.point(wall.start), topology.point(wall.end))
        kept: List[Tuple[str, Tuple[float, float]]] = []
        for opening in sorted(group, key=lambda o: int(o.id[1:])):
            if context.deadline_exceeded():
                result.truncated = True
                return
            span = opening_span(opening)
            if isinstance(result.walls.get(wall_id), Rejected):
                outcome: Outcome = Rejected(
                    RejectionReason.HOST_REJECTED,
                    f"Opening {opening.id} is hosted by rejected wall {wall_id}",
                    location=(opening.center,),
                    related_ids=(wall_id,),
                )
            elif opening.offset < 0.0 or opening.offset > length:
                outcome = Rejected(
                    RejectionReason.OUTSIDE_SPAN,
                    f"Opening {opening.id} offset {opening.offset:.3f} lies outside wall {wall_id} "
                    f"(length {length:.3f})",
                    location=(opening.center,),
                    related_ids=(wall_id,),
                )
            else:
                clash = next(
                    (oid for oid, other in kept if span_overlap(span, other) > overlap_tol),
                    None,
                )
                if clash is not None:
                    outcome = Rejected(
                        RejectionReason.OPENING_OVERLAP,
                        f"Opening {opening.id} overlaps opening {clash} on wall {wall_id}",
                        location=(opening.center,),
                        related_ids=(wall_id, clash),
                    )
                else:
                    kept.append((opening.id, span))
                    outcome = Accepted({"offset": opening.offset, "span": span, "wall_length": length})
            result.openings[opening.id] = outcome


def validate_topology(topology: Topology, context: JobContext) -> GeometryValidationResult:
    """Validate walls, then rooms, then openings; stops early once the deadline passes."""
    log = context.log("validate")
    result = GeometryValidationResult()
    for step in (validate_walls, validate_rooms, validate_openings):
        step(topology, context, result)
        if result.truncated:
            log.warning("Validation truncated by deadline after {:.3f}s", context.elapsed())
            break

    # keep a stable opening order regardless of wall grouping
    result.openings = dict(sorted(result.openings.items(), key=lambda item: int(item[0][1:])))

    metrics = context.metrics
    for _, _, rejection in result.rejections():
        metrics.add_rejection(rejection.reason.value)
    metrics.accepted = sum(
        len(result.accepted(outcomes)) for outcomes in (result.walls, result.rooms, result.openings)
    )
    if result.has_critical_issues():
        log.warning("Geometry validation found {} rejections", metrics.rejected)
    return result


__all__ = [
    "Accepted",
    "GeometryValidationResult",
    "Outcome",
    "Rejected",
    "RejectionReason",
    "validate_topology",
]
