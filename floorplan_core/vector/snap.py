"""
Tolerance Snapper

Clusters near-coincident wall endpoints into topological vertices. Candidate
pairs come from an STRtree envelope query; pairs are merged closest first
(ties broken by endpoint index) and two clusters only merge when every
cross pair stays within tolerance, so no two endpoints farther apart than the
tolerance ever share a vertex.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Sequence, Tuple

import numpy as np
import shapely
from shapely import STRtree

from floorplan_core.ingest.detections import DetectionKind
from floorplan_core.normalize.units import NormalizedDetection
from floorplan_core.pipeline.context import JobContext

Point = Tuple[float, float]
EndpointKey = Tuple[int, int]  # (detection index, point index)


@dataclass(frozen=True)
class TopologyVertex:
    id: str
    x: float
    y: float
    members: Tuple[int, ...]

    @property
    def point(self) -> Point:
        return (self.x, self.y)


@dataclass(frozen=True)
class SnapConflict:
    """Two endpoints within tolerance kept apart because their clusters would
    otherwise span more than the tolerance."""

    first: int
    second: int
    distance: float
    vertex_ids: Tuple[str, str]


@dataclass
class SnapResult:
    tolerance: float
    endpoints: List[Point] = field(default_factory=list)
    endpoint_keys: List[EndpointKey] = field(default_factory=list)
    endpoint_vertex: List[str] = field(default_factory=list)
    vertices: List[TopologyVertex] = field(default_factory=list)
    conflicts: List[SnapConflict] = field(default_factory=list)
    merges: int = 0
    _by_key: Dict[EndpointKey, str] = field(default_factory=dict, repr=False)

    def vertex_for(self, detection_index: int, point_index: int) -> str:
        return self._by_key[(detection_index, point_index)]

    def vertex_map(self) -> Dict[str, TopologyVertex]:
        return {v.id: v for v in self.vertices}


def collect_endpoints(detections: Sequence[NormalizedDetection]) -> Tuple[List[Point], List[EndpointKey]]:
    points: List[Point] = []
    keys: List[EndpointKey] = []
    for det in detections:
        if det.kind is not DetectionKind.WALL:
            continue
        for pidx, pt in enumerate(det.polyline):
            points.append((float(pt[0]), float(pt[1])))
            keys.append((det.index, pidx))
    return points, keys


def _candidate_pairs(coords: np.ndarray, tolerance: float) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Sorted (i, j, distance) arrays for all i < j with distance <= tolerance."""
    geoms = shapely.points(coords)
    tree = STRtree(geoms)
    boxes = shapely.box(
        coords[:, 0] - tolerance,
        coords[:, 1] - tolerance,
        coords[:, 0] + tolerance,
        coords[:, 1] + tolerance,
    )
    src, dst = tree.query(boxes)
    keep = src < dst
    i = src[keep].astype(np.int64)
    j = dst[keep].astype(np.int64)
    d = np.hypot(coords[i, 0] - coords[j, 0], coords[i, 1] - coords[j, 1])
    within = d <= tolerance
    i, j, d = i[within], j[within], d[within]
    order = np.lexsort((j, i, d))
    return i[order], j[order], d[order]


def snap_endpoints(detections: Sequence[NormalizedDetection], context: JobContext) -> SnapResult:
    tolerance = context.tolerance
    log = context.log("snap")
    points, keys = collect_endpoints(detections)
    result = SnapResult(tolerance=tolerance, endpoints=points, endpoint_keys=keys)
    n = len(points)
    if n == 0:
        return result

    coords = np.asarray(points, dtype=float)
    parent = list(range(n))
    members: Dict[int, List[int]] = {idx: [idx] for idx in range(n)}

    def find(idx: int) -> int:
        root = idx
        while parent[root] != root:
            root = parent[root]
        while parent[idx] != root:
            parent[idx], idx = root, parent[idx]
        return root

    pending: List[Tuple[int, int, float]] = []
    pi, pj, pd = _candidate_pairs(coords, tolerance)
    for a, b, dist in zip(pi.tolist(), pj.tolist(), pd.tolist()):
        ra, rb = find(a), find(b)
        if ra == rb:
            continue
        left = coords[members[ra]]
        right = coords[members[rb]]
        diff = left[:, None, :] - right[None, :, :]
        span = float(np.sqrt((diff ** 2).sum(axis=2)).max())
        if span > tolerance:
            pending.append((a, b, dist))
            continue
        keep, drop = (ra, rb) if ra < rb else (rb, ra)
        parent[drop] = keep
        members[keep].extend(members.pop(drop))
        result.merges += 1

    clusters = sorted((sorted(m) for m in members.values()), key=lambda m: m[0])
    owner: List[str] = [""] * n
    for number, cluster in enumerate(clusters):
        vid = f"v{number}"
        centroid = coords[cluster].mean(axis=0)
        result.vertices.append(
            TopologyVertex(id=vid, x=float(centroid[0]), y=float(centroid[1]), members=tuple(cluster))
        )
        for idx in cluster:
            owner[idx] = vid

    result.endpoint_vertex = owner
    result._by_key = {key: owner[idx] for idx, key in enumerate(keys)}

    for a, b, dist in pending:
        if owner[a] == owner[b]:
            continue
        result.conflicts.append(
            SnapConflict(first=a, second=b, distance=dist, vertex_ids=(owner[a], owner[b]))
        )

    context.metrics.endpoints = n
    context.metrics.vertices = len(result.vertices)
    context.metrics.merges = result.merges
    context.metrics.snap_conflicts = len(result.conflicts)
    log.debug(
        "Snapped {} endpoints into {} vertices ({} merges, {} conflicts, tolerance={})",
        n,
        len(result.vertices),
        result.merges,
        len(result.conflicts),
        tolerance,
    )
    return result
