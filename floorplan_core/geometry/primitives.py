"""Planar primitives shared by the snapper, topology builder and validator."""

from __future__ import annotations

import math
from typing import Sequence, Tuple

from floorplan_core.geometry.contract import EPS_LENGTH

Point = Tuple[float, float]


def distance(a: Point, b: Point) -> float:
    return math.hypot(b[0] - a[0], b[1] - a[1])


def signed_area(coords: Sequence[Point]) -> float:
    """Shoelace area of an open ring; positive for counter-clockwise order."""
    n = len(coords)
    if n < 3:
        return 0.0
    total = 0.0
    for i in range(n):
        x1, y1 = coords[i]
        x2, y2 = coords[(i + 1) % n]
        total += x1 * y2 - x2 * y1
    return total / 2.0


def project_onto_segment(p: Point, a: Point, b: Point) -> Tuple[float, float]:
    """Return (t, dist): unclamped position of p along a->b in meters and its
    distance to the closed segment."""
    dx = b[0] - a[0]
    dy = b[1] - a[1]
    length = math.hypot(dx, dy)
    if length <= EPS_LENGTH:
        return 0.0, distance(p, a)
    ux, uy = dx / length, dy / length
    t = (p[0] - a[0]) * ux + (p[1] - a[1]) * uy
    tc = min(max(t, 0.0), length)
    cx, cy = a[0] + ux * tc, a[1] + uy * tc
    return t, math.hypot(p[0] - cx, p[1] - cy)


def _cross(ox: float, oy: float, ax: float, ay: float, bx: float, by: float) -> float:
    return (ax - ox) * (by - oy) - (ay - oy) * (bx - ox)


def segment_intersection(a1: Point, a2: Point, b1: Point, b2: Point) -> Point | None:
    """Intersection point of two closed segments, or None.

    Collinear overlaps return the first overlapping endpoint.
    """
    d1 = _cross(b1[0], b1[1], b2[0], b2[1], a1[0], a1[1])
    d2 = _cross(b1[0], b1[1], b2[0], b2[1], a2[0], a2[1])
    d3 = _cross(a1[0], a1[1], a2[0], a2[1], b1[0], b1[1])
    d4 = _cross(a1[0], a1[1], a2[0], a2[1], b2[0], b2[1])

    if ((d1 > 0 and d2 < 0) or (d1 < 0 and d2 > 0)) and ((d3 > 0 and d4 < 0) or (d3 < 0 and d4 > 0)):
        t = d1 / (d1 - d2)
        return (a1[0] + t * (a2[0] - a1[0]), a1[1] + t * (a2[1] - a1[1]))

    for d, p, s1, s2 in ((d1, a1, b1, b2), (d2, a2, b1, b2), (d3, b1, a1, a2), (d4, b2, a1, a2)):
        if abs(d) <= EPS_LENGTH and _on_segment(p, s1, s2):
            return (float(p[0]), float(p[1]))
    return None


def _on_segment(p: Point, a: Point, b: Point) -> bool:
    return (
        min(a[0], b[0]) - EPS_LENGTH <= p[0] <= max(a[0], b[0]) + EPS_LENGTH
        and min(a[1], b[1]) - EPS_LENGTH <= p[1] <= max(a[1], b[1]) + EPS_LENGTH
    )


def first_self_intersection(coords: Sequence[Point], closed: bool) -> Point | None:
    """First crossing between non-adjacent edges of a polyline (or ring), or None.

    Repeated vertices count as a self-intersection at that vertex.
    """
    pts = list(coords)
    if closed and len(pts) > 1 and pts[0] == pts[-1]:
        pts = pts[:-1]
    n = len(pts)
    segments = [(pts[i], pts[i + 1]) for i in range(n - 1)]
    if closed and n >= 3:
        segments.append((pts[-1], pts[0]))
    m_count = len(segments)

    seen: dict[Point, int] = {}
    for idx, p in enumerate(pts):
        if p in seen:
            return (float(p[0]), float(p[1]))
        seen[p] = idx

    for i in range(m_count):
        for j in range(i + 1, m_count):
            adjacent = j == i + 1 or (closed and i == 0 and j == m_count - 1)
            if adjacent:
                # adjacent edges may only share their common vertex; a fold-back overlaps
                if _folds_back(segments[i], segments[j]):
                    shared = segments[i][1] if j == i + 1 else segments[i][0]
                    return (float(shared[0]), float(shared[1]))
                continue
            hit = segment_intersection(segments[i][0], segments[i][1], segments[j][0], segments[j][1])
            if hit is not None:
                return hit
    return None


def _folds_back(s1: Tuple[Point, Point], s2: Tuple[Point, Point]) -> bool:
    ax, ay = s1[1][0] - s1[0][0], s1[1][1] - s1[0][1]
    bx, by = s2[1][0] - s2[0][0], s2[1][1] - s2[0][1]
    la, lb = math.hypot(ax, ay), math.hypot(bx, by)
    if la <= EPS_LENGTH or lb <= EPS_LENGTH:
        return False
    cross = (ax * by - ay * bx) / (la * lb)
    dot = (ax * bx + ay * by) / (la * lb)
    return abs(cross) <= 1e-9 and dot < 0.0
