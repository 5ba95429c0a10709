from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from floorplan_core.geometry.contract import EPS_LENGTH
from floorplan_core.geometry.primitives import project_onto_segment
from floorplan_core.ingest.detections import DetectionKind
from floorplan_core.normalize.units import NormalizedDetection
from floorplan_core.pipeline.context import JobContext
from floorplan_core.spatial import OpeningKind

Point = Tuple[float, float]

_KIND_MAP = {
    DetectionKind.DOOR: OpeningKind.DOOR,
    DetectionKind.WINDOW: OpeningKind.WINDOW,
}


@dataclass(frozen=True)
class OpeningCandidate:
    """A door/window marker placed on its host wall.

    ``offset`` is the unclamped distance of the opening centre from the host
    wall's start vertex, so markers beyond the wall end keep an out-of-span
    offset for the validator to reject.
    """

    id: str
    kind: OpeningKind
    wall_id: str
    offset: float
    width: float
    height: float
    sill_height: float
    confidence: float
    source_index: int
    center: Point


@dataclass(frozen=True)
class UnhostedOpening:
    id: str
    kind: OpeningKind
    source_index: int
    center: Point
    nearest_distance: Optional[float]


@dataclass(frozen=True)
class HostSegment:
    wall_id: str
    start: Point
    end: Point


def _marker_center(polyline: Sequence[Point]) -> Point:
    first, last = polyline[0], polyline[-1]
    return ((first[0] + last[0]) / 2.0, (first[1] + last[1]) / 2.0)


def _default_dims(kind: OpeningKind, context: JobContext) -> Tuple[float, float, float]:
    defaults = context.settings.defaults
    if kind is OpeningKind.DOOR:
        return defaults.door_width_m, defaults.door_height_m, 0.0
    return defaults.window_width_m, defaults.window_height_m, defaults.window_sill_m


def _nearest_host(center: Point, hosts: Sequence[HostSegment]) -> Tuple[Optional[HostSegment], Optional[float]]:
    best: Optional[HostSegment] = None
    best_dist: Optional[float] = None
    for host in hosts:
        _, dist = project_onto_segment(center, host.start, host.end)
        if best_dist is None or dist < best_dist - EPS_LENGTH:
            best, best_dist = host, dist
    return best, best_dist


def host_openings(
    detections: Sequence[NormalizedDetection],
    hosts: Sequence[HostSegment],
    context: JobContext,
) -> Tuple[List[OpeningCandidate], List[UnhostedOpening]]:
    """Attach DOOR/WINDOW markers to the nearest wall within the host distance."""
    max_dist = context.settings.opening_host_distance_m
    hosted: List[OpeningCandidate] = []
    unhosted: List[UnhostedOpening] = []
    counter = 0

    for det in detections:
        kind = _KIND_MAP.get(det.kind)
        if kind is None:
            continue
        opening_id = f"o{counter}"
        counter += 1
        center = _marker_center(det.polyline)
        host, dist = _nearest_host(center, hosts)
        if host is None or dist is None or dist > max_dist:
            unhosted.append(
                UnhostedOpening(
                    id=opening_id,
                    kind=kind,
                    source_index=det.index,
                    center=center,
                    nearest_distance=dist,
                )
            )
            continue

        default_width, default_height, sill = _default_dims(kind, context)
        offset, _ = project_onto_segment(center, host.start, host.end)
        width = default_width
        if len(det.polyline) >= 2:
            t_first, _ = project_onto_segment(det.polyline[0], host.start, host.end)
            t_last, _ = project_onto_segment(det.polyline[-1], host.start, host.end)
            span = abs(t_last - t_first)
            if span > EPS_LENGTH:
                width = span
        height = det.height if det.height is not None and det.height > 0.0 else default_height

        hosted.append(
            OpeningCandidate(
                id=opening_id,
                kind=kind,
                wall_id=host.wall_id,
                offset=float(offset),
                width=float(width),
                height=float(height),
                sill_height=float(sill),
                confidence=det.confidence,
                source_index=det.index,
                center=center,
            )
        )

    context.metrics.hosted_openings = len(hosted)
    context.metrics.unhosted_openings = len(unhosted)
    return hosted, unhosted


def opening_span(opening: OpeningCandidate) -> Tuple[float, float]:
    half = opening.width / 2.0
    return opening.offset - half, opening.offset + half


def span_overlap(a: Tuple[float, float], b: Tuple[float, float]) -> float:
    return max(0.0, min(a[1], b[1]) - max(a[0], b[0]))


def group_by_wall(openings: Sequence[OpeningCandidate]) -> Dict[str, List[OpeningCandidate]]:
    grouped: Dict[str, List[OpeningCandidate]] = {}
    for opening in openings:
        grouped.setdefault(opening.wall_id, []).append(opening)
    return grouped

