"""
Topology Builder

Assembles snapped wall segments into an undirected planar graph and extracts
the bounded faces as candidate rooms. Faces are traced over half-edges: from
each half-edge u->v the walk continues with the outgoing edge of v that
follows v->u in counter-clockwise angular order. With that rule bounded faces
come out clockwise and the exterior face of every connected component
counter-clockwise, so the exterior is the face with the largest signed area.

Walls that cross without a shared vertex are split at a new junction vertex
first, so the traced graph is planar. A component lying inside a room of
another component (a column, a free-standing core) becomes a hole of the
smallest such room; nesting alternates, so only faces at even depth are rooms.
"""

from __future__ import annotations

import math
from collections import deque
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Sequence, Set, Tuple

import numpy as np
import shapely
from shapely import STRtree
from shapely.geometry import LineString, Polygon

from floorplan_core.exceptions import InternalInvariantViolation, TransientProcessingError
from floorplan_core.geometry.contract import EPS_LENGTH
from floorplan_core.geometry.primitives import distance, project_onto_segment, segment_intersection, signed_area
from floorplan_core.ingest.detections import DetectionKind
from floorplan_core.normalize.units import NormalizedDetection
from floorplan_core.pipeline.context import JobContext
from floorplan_core.reconstruct.openings import HostSegment, OpeningCandidate, UnhostedOpening, host_openings
from floorplan_core.vector.snap import SnapConflict, SnapResult, TopologyVertex

Point = Tuple[float, float]
HalfEdge = Tuple[str, str]


@dataclass(frozen=True)
class TopologyEdge:
    """A wall segment between two snapped vertices."""

    id: str
    start: str
    end: str
    thickness: float
    height: float
    confidence: float
    sources: Tuple[int, ...]

    @property
    def degenerate(self) -> bool:
        return self.start == self.end


@dataclass(frozen=True)
class CandidateRoom:
    """A bounded face, counter-clockwise, starting at its lowest vertex id.

    ``holes`` are clockwise inner boundaries; ``edge_ids`` lists the outer
    boundary's walls first, then those of each hole.
    """

    id: str
    boundary: Tuple[str, ...]
    edge_ids: Tuple[str, ...]
    holes: Tuple[Tuple[str, ...], ...] = ()


@dataclass(frozen=True)
class WallCrossing:
    edge_ids: Tuple[str, str]
    point: Point


@dataclass
class Topology:
    vertices: Dict[str, TopologyVertex]
    edges: List[TopologyEdge]
    rooms: List[CandidateRoom] = field(default_factory=list)
    unclosed_edges: List[str] = field(default_factory=list)
    open_vertices: List[str] = field(default_factory=list)
    crossings: List[WallCrossing] = field(default_factory=list)
    openings: List[OpeningCandidate] = field(default_factory=list)
    unhosted_openings: List[UnhostedOpening] = field(default_factory=list)
    room_hints: List[NormalizedDetection] = field(default_factory=list)
    wall_chains: Dict[int, Tuple[str, ...]] = field(default_factory=dict)
    snap_conflicts: List[SnapConflict] = field(default_factory=list)

    def edge_map(self) -> Dict[str, TopologyEdge]:
        return {e.id: e for e in self.edges}

    def point(self, vertex_id: str) -> Point:
        return self.vertices[vertex_id].point

    def adjacency(self) -> Dict[str, List[str]]:
        adj: Dict[str, Set[str]] = {vid: set() for vid in self.vertices}
        for edge in self.edges:
            if edge.degenerate:
                continue
            adj[edge.start].add(edge.end)
            adj[edge.end].add(edge.start)
        return {vid: sorted(nbrs, key=vertex_number) for vid, nbrs in adj.items()}


@dataclass
class _EdgeDraft:
    start: str
    end: str
    thickness: float
    height: float
    confidence: float
    sources: List[int]

    @property
    def degenerate(self) -> bool:
        return self.start == self.end


def vertex_number(vertex_id: str) -> int:
    return int(vertex_id[1:])


def _edge_number(edge_id: str) -> int:
    return int(edge_id[1:])


def _pair_key(a: str, b: str) -> Tuple[str, str]:
    return (a, b) if vertex_number(a) <= vertex_number(b) else (b, a)


def _merge_duplicates(drafts: Sequence[_EdgeDraft]) -> List[_EdgeDraft]:
    merged: Dict[object, _EdgeDraft] = {}
    for idx, draft in enumerate(drafts):
        key: object = ("degenerate", idx) if draft.degenerate else _pair_key(draft.start, draft.end)
        existing = merged.get(key)
        if existing is None:
            merged[key] = _EdgeDraft(
                draft.start, draft.end, draft.thickness, draft.height, draft.confidence, list(draft.sources)
            )
            continue
        existing.confidence = max(existing.confidence, draft.confidence)
        existing.sources = sorted(set(existing.sources) | set(draft.sources))
    return list(merged.values())


def _split_t_junctions(
    drafts: Sequence[_EdgeDraft],
    positions: Dict[str, Point],
    tolerance: float,
) -> Tuple[List[_EdgeDraft], int]:
    """Split edges whose interior passes within tolerance of another vertex."""
    live = [idx for idx, d in enumerate(drafts) if not d.degenerate]
    if not live or not positions:
        return list(drafts), 0

    lines = [LineString([positions[drafts[idx].start], positions[drafts[idx].end]]) for idx in live]
    tree = STRtree(lines)
    vertex_ids = list(positions)
    coords = np.asarray([positions[vid] for vid in vertex_ids], dtype=float)
    boxes = shapely.box(
        coords[:, 0] - tolerance,
        coords[:, 1] - tolerance,
        coords[:, 0] + tolerance,
        coords[:, 1] + tolerance,
    )
    src, dst = tree.query(boxes)

    cuts: Dict[int, List[Tuple[float, int, str]]] = {}
    for v_idx, l_idx in zip(src.tolist(), dst.tolist()):
        draft_idx = live[l_idx]
        draft = drafts[draft_idx]
        vid = vertex_ids[v_idx]
        if vid == draft.start or vid == draft.end:
            continue
        a, b = positions[draft.start], positions[draft.end]
        param, dist = project_onto_segment(positions[vid], a, b)
        if dist > tolerance:
            continue
        if not (EPS_LENGTH < param < distance(a, b) - EPS_LENGTH):
            continue
        cuts.setdefault(draft_idx, []).append((param, vertex_number(vid), vid))

    return _apply_cuts(drafts, cuts)


def _split_crossings(
    drafts: Sequence[_EdgeDraft],
    positions: Dict[str, Point],
    tolerance: float,
) -> Tuple[List[_EdgeDraft], List[TopologyVertex]]:
    """Split edges crossing without a shared vertex at a new junction vertex.

    Crossing points within tolerance of each other share one vertex. New ids
    continue after the highest snapped vertex id.
    """
    live = [idx for idx, d in enumerate(drafts) if not d.degenerate]
    if len(live) < 2:
        return list(drafts), []

    lines = [LineString([positions[drafts[idx].start], positions[drafts[idx].end]]) for idx in live]
    tree = STRtree(lines)
    src, dst = tree.query(lines, predicate="crosses")
    pairs = sorted({(min(a, b), max(a, b)) for a, b in zip(src.tolist(), dst.tolist()) if a != b})

    next_number = max(vertex_number(vid) for vid in positions) + 1
    created: List[TopologyVertex] = []
    cuts: Dict[int, List[Tuple[float, int, str]]] = {}
    for i, j in pairs:
        first, second = drafts[live[i]], drafts[live[j]]
        ends = (first.start, first.end, second.start, second.end)
        if len(set(ends)) < 4:
            continue
        hit = segment_intersection(*(positions[vid] for vid in ends))
        # near an endpoint the T-junction split already joined them
        if hit is None or min(distance(hit, positions[vid]) for vid in ends) <= tolerance:
            continue
        vertex = next((v for v in created if distance(v.point, hit) <= tolerance), None)
        if vertex is None:
            vertex = TopologyVertex(id=f"v{next_number + len(created)}", x=hit[0], y=hit[1], members=())
            created.append(vertex)
        for idx in (live[i], live[j]):
            draft = drafts[idx]
            param, _ = project_onto_segment(vertex.point, positions[draft.start], positions[draft.end])
            cuts.setdefault(idx, []).append((param, vertex_number(vertex.id), vertex.id))

    result, _ = _apply_cuts(drafts, cuts)
    return result, created


def _apply_cuts(
    drafts: Sequence[_EdgeDraft],
    cuts: Dict[int, List[Tuple[float, int, str]]],
) -> Tuple[List[_EdgeDraft], int]:
    result: List[_EdgeDraft] = []
    count = 0
    for idx, draft in enumerate(drafts):
        if idx not in cuts:
            result.append(draft)
            continue
        chain = [draft.start]
        for _, _, vid in sorted(cuts[idx]):
            if vid != chain[-1]:
                chain.append(vid)
        chain.append(draft.end)
        count += len(chain) - 2
        for a, b in zip(chain, chain[1:]):
            result.append(_EdgeDraft(a, b, draft.thickness, draft.height, draft.confidence, list(draft.sources)))
    return result, count


def _find_crossings(edges: Sequence[TopologyEdge], positions: Dict[str, Point]) -> List[WallCrossing]:
    live = [e for e in edges if not e.degenerate]
    if len(live) < 2:
        return []
    lines = [LineString([positions[e.start], positions[e.end]]) for e in live]
    tree = STRtree(lines)
    src, dst = tree.query(lines)
    crossings: List[WallCrossing] = []
    for i, j in sorted(set((int(a), int(b)) for a, b in zip(src, dst) if a < b)):
        e1, e2 = live[i], live[j]
        if {e1.start, e1.end} & {e2.start, e2.end}:
            continue
        hit = segment_intersection(positions[e1.start], positions[e1.end], positions[e2.start], positions[e2.end])
        if hit is not None:
            crossings.append(WallCrossing(edge_ids=(e1.id, e2.id), point=hit))
    return crossings


def _find_bridges(incident: Dict[str, Set[str]], ends: Dict[str, Tuple[str, str]]) -> List[str]:
    """Iterative Tarjan bridge search over the active edges."""
    disc: Dict[str, int] = {}
    low: Dict[str, int] = {}
    bridges: List[str] = []
    timer = 0

    def neighbours(vid: str) -> Iterator[str]:
        return iter(sorted(incident[vid], key=_edge_number))

    for root in sorted(incident, key=vertex_number):
        if root in disc or not incident[root]:
            continue
        disc[root] = low[root] = timer
        timer += 1
        stack: List[Tuple[str, Optional[str], Iterator[str]]] = [(root, None, neighbours(root))]
        while stack:
            vid, via, it = stack[-1]
            advanced = False
            for eid in it:
                if eid == via:
                    continue
                a, b = ends[eid]
                other = b if a == vid else a
                if other not in disc:
                    disc[other] = low[other] = timer
                    timer += 1
                    stack.append((other, eid, neighbours(other)))
                    advanced = True
                    break
                low[vid] = min(low[vid], disc[other])
            if advanced:
                continue
            stack.pop()
            if stack and via is not None:
                parent = stack[-1][0]
                low[parent] = min(low[parent], low[vid])
                if low[vid] > disc[parent]:
                    bridges.append(via)
    return bridges


def _prune_unclosed(edges: Sequence[TopologyEdge]) -> Tuple[List[TopologyEdge], List[str]]:
    """Remove dangling filaments and bridges; they bound no closed face."""
    ends = {e.id: (e.start, e.end) for e in edges if not e.degenerate}
    incident: Dict[str, Set[str]] = {}
    for eid, (a, b) in ends.items():
        incident.setdefault(a, set()).add(eid)
        incident.setdefault(b, set()).add(eid)

    removed: List[str] = []

    def drop(eid: str) -> None:
        a, b = ends.pop(eid)
        incident[a].discard(eid)
        incident[b].discard(eid)
        removed.append(eid)

    changed = True
    while changed:
        changed = False
        queue = deque(sorted((v for v, es in incident.items() if len(es) == 1), key=vertex_number))
        while queue:
            vid = queue.popleft()
            if len(incident[vid]) != 1:
                continue
            eid = next(iter(incident[vid]))
            a, b = ends[eid]
            other = b if a == vid else a
            drop(eid)
            changed = True
            if len(incident[other]) == 1:
                queue.append(other)
        for eid in sorted(_find_bridges(incident, ends), key=_edge_number):
            drop(eid)
            changed = True

    kept = [e for e in edges if e.id in ends]
    return kept, sorted(removed, key=_edge_number)


def _angle(a: Point, b: Point) -> float:
    return math.atan2(b[1] - a[1], b[0] - a[0]) % (2.0 * math.pi)


def _trace_faces(edges: Sequence[TopologyEdge], positions: Dict[str, Point], job_id: str) -> List[List[str]]:
    rings: Dict[str, List[str]] = {}
    for edge in edges:
        rings.setdefault(edge.start, []).append(edge.end)
        rings.setdefault(edge.end, []).append(edge.start)
    position_in_ring: Dict[HalfEdge, int] = {}
    for vid, nbrs in rings.items():
        nbrs.sort(key=lambda n: (_angle(positions[vid], positions[n]), vertex_number(n)))
        for idx, nbr in enumerate(nbrs):
            position_in_ring[(vid, nbr)] = idx

    visited: Set[HalfEdge] = set()
    faces: List[List[str]] = []
    limit = 2 * len(edges) + 1
    for edge in edges:
        for start in ((edge.start, edge.end), (edge.end, edge.start)):
            if start in visited:
                continue
            face: List[str] = []
            current = start
            while True:
                visited.add(current)
                face.append(current[0])
                origin, dest = current
                ring = rings[dest]
                nxt = ring[(position_in_ring[(dest, origin)] + 1) % len(ring)]
                current = (dest, nxt)
                if current == start:
                    break
                if current in visited or len(face) > limit:
                    raise InternalInvariantViolation(
                        "Face traversal did not close",
                        job_id=job_id,
                        stage="topology",
                        entity_ids=[edge.id],
                    )
            faces.append(face)
    return faces


def _components(edges: Sequence[TopologyEdge]) -> Dict[str, int]:
    adj: Dict[str, List[str]] = {}
    for edge in edges:
        adj.setdefault(edge.start, []).append(edge.end)
        adj.setdefault(edge.end, []).append(edge.start)
    component: Dict[str, int] = {}
    label = 0
    for root in sorted(adj, key=vertex_number):
        if root in component:
            continue
        component[root] = label
        queue = deque([root])
        while queue:
            vid = queue.popleft()
            for nbr in adj[vid]:
                if nbr not in component:
                    component[nbr] = label
                    queue.append(nbr)
        label += 1
    return component


def _canonical_boundary(face: Sequence[str]) -> Tuple[str, ...]:
    ccw = list(reversed(face))
    pivot = min(range(len(ccw)), key=lambda i: vertex_number(ccw[i]))
    return tuple(ccw[pivot:] + ccw[:pivot])


def extract_rooms(
    edges: Sequence[TopologyEdge],
    positions: Dict[str, Point],
    job_id: str,
) -> Tuple[List[CandidateRoom], List[str], int]:
    """Return (candidate rooms, unclosed edge ids, traced face count)."""
    closed, unclosed = _prune_unclosed(edges)
    if not closed:
        return [], unclosed, 0

    faces = _trace_faces(closed, positions, job_id)
    component = _components(closed)
    exterior: Dict[int, Tuple[float, int]] = {}
    for idx, face in enumerate(faces):
        area = signed_area([positions[v] for v in face])
        comp = component[face[0]]
        best = exterior.get(comp)
        if best is None or area > best[0]:
            exterior[comp] = (area, idx)
    exterior_faces = {idx for _, idx in exterior.values()}

    def polygon(idx: int) -> Polygon:
        return Polygon([positions[v] for v in faces[idx]])

    # components never touch, so one vertex decides containment
    anchors = {comp: positions[faces[idx][0]] for comp, (_, idx) in exterior.items()}
    shells = {comp: polygon(idx) for comp, (_, idx) in exterior.items()}
    depth = {
        comp: sum(
            1
            for other, shell in shells.items()
            if other != comp and shapely.contains_xy(shell, *anchors[comp])
        )
        for comp in shells
    }

    room_faces = [
        idx
        for idx, face in enumerate(faces)
        if idx not in exterior_faces and depth[component[face[0]]] % 2 == 0
    ]
    holes: Dict[int, List[int]] = {}
    for comp, (_, ext_idx) in sorted(exterior.items()):
        if depth[comp] % 2 == 0:
            continue
        containing = [
            idx
            for idx in room_faces
            if depth[component[faces[idx][0]]] == depth[comp] - 1
            and shapely.contains_xy(polygon(idx), *anchors[comp])
        ]
        if not containing:
            raise InternalInvariantViolation(
                "Nested boundary has no enclosing room",
                job_id=job_id,
                stage="topology",
                entity_ids=sorted(set(faces[ext_idx]), key=vertex_number),
            )
        parent = min(containing, key=lambda idx: abs(signed_area([positions[v] for v in faces[idx]])))
        holes.setdefault(parent, []).append(ext_idx)

    lookup = {_pair_key(e.start, e.end): e.id for e in closed}

    def ring_edges(ring: Sequence[str]) -> Tuple[str, ...]:
        return tuple(lookup[_pair_key(ring[i], ring[(i + 1) % len(ring)])] for i in range(len(ring)))

    def numbers(ring: Sequence[str]) -> Tuple[int, ...]:
        return tuple(vertex_number(v) for v in ring)

    outlines = []
    for idx in room_faces:
        inner = tuple(sorted((_canonical_boundary(faces[h]) for h in holes.get(idx, [])), key=numbers))
        outlines.append((_canonical_boundary(faces[idx]), inner))
    outlines.sort(key=lambda item: numbers(item[0]))

    rooms: List[CandidateRoom] = []
    for number, (boundary, inner) in enumerate(outlines):
        edge_ids = ring_edges(boundary) + tuple(eid for ring in inner for eid in ring_edges(ring))
        rooms.append(CandidateRoom(id=f"r{number}", boundary=boundary, edge_ids=edge_ids, holes=inner))
    return rooms, unclosed, len(faces)


def build_topology(
    detections: Sequence[NormalizedDetection],
    snap: SnapResult,
    context: JobContext,
) -> Topology:
    log = context.log("topology")
    defaults = context.settings.defaults
    positions = {v.id: v.point for v in snap.vertices}

    drafts: List[_EdgeDraft] = []
    wall_chains: Dict[int, Tuple[str, ...]] = {}
    room_hints: List[NormalizedDetection] = []
    drawn_segments = 0
    for det in detections:
        if det.kind is DetectionKind.ROOM_HINT:
            room_hints.append(det)
            continue
        if det.kind is not DetectionKind.WALL:
            continue
        thickness = det.thickness if det.thickness is not None else defaults.wall_thickness_m
        height = det.height if det.height is not None else defaults.wall_height_m
        ids = [snap.vertex_for(det.index, k) for k in range(len(det.polyline))]
        wall_chains[det.index] = tuple(ids)
        if len(ids) == 1:
            drafts.append(_EdgeDraft(ids[0], ids[0], thickness, height, det.confidence, [det.index]))
            continue
        for k, (a, b) in enumerate(zip(ids, ids[1:])):
            if distance(det.polyline[k], det.polyline[k + 1]) > EPS_LENGTH:
                drawn_segments += 1
            drafts.append(_EdgeDraft(a, b, thickness, height, det.confidence, [det.index]))

    drafts = _merge_duplicates(drafts)
    drafts, splits = _split_t_junctions(drafts, positions, context.tolerance)
    drafts, junctions = _split_crossings(drafts, positions, context.tolerance)
    positions.update((v.id, v.point) for v in junctions)
    drafts = _merge_duplicates(drafts)

    edges = [
        TopologyEdge(
            id=f"w{number}",
            start=d.start,
            end=d.end,
            thickness=d.thickness,
            height=d.height,
            confidence=d.confidence,
            sources=tuple(d.sources),
        )
        for number, d in enumerate(drafts)
    ]
    live = [e for e in edges if not e.degenerate]
    if drawn_segments and not live:
        raise TransientProcessingError(
            "Snapping collapsed every wall segment",
            {"tolerance": context.tolerance, "segments": drawn_segments},
        )

    degree: Dict[str, int] = {}
    for edge in live:
        degree[edge.start] = degree.get(edge.start, 0) + 1
        degree[edge.end] = degree.get(edge.end, 0) + 1
    open_vertices = sorted((vid for vid, deg in degree.items() if deg == 1), key=vertex_number)

    rooms, unclosed, face_count = extract_rooms(live, positions, context.job_id)
    crossings = _find_crossings(edges, positions)

    hosts = [HostSegment(wall_id=e.id, start=positions[e.start], end=positions[e.end]) for e in live]
    openings, unhosted = host_openings(detections, hosts, context)

    metrics = context.metrics
    metrics.walls = len(edges)
    metrics.degenerate_walls = len(edges) - len(live)
    metrics.t_junction_splits = splits
    metrics.crossing_vertices = len(junctions)
    metrics.faces = face_count
    metrics.candidate_rooms = len(rooms)
    metrics.unclosed_edges = len(unclosed)
    log.debug(
        "Built topology: {} walls ({} degenerate), {} candidate rooms, {} unclosed edges, {} crossings",
        len(edges),
        len(edges) - len(live),
        len(rooms),
        len(unclosed),
        len(crossings),
    )

    return Topology(
        vertices={v.id: v for v in (*snap.vertices, *junctions)},
        edges=edges,
        rooms=rooms,
        unclosed_edges=unclosed,
        open_vertices=open_vertices,
        crossings=crossings,
        openings=openings,
        unhosted_openings=unhosted,
        room_hints=room_hints,
        wall_chains=wall_chains,
        snap_conflicts=list(snap.conflicts),
    )
