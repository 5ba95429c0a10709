"""
Pipeline Metrics Collection

Collects metrics during one reconstruction job for monitoring and analysis.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class PipelineMetrics:
    """
    Metrics collected during pipeline execution.

    Tracks stage timings and entity counts for a single job.
    """

    # Input statistics
    total_detections: int = 0
    wall_detections: int = 0
    opening_detections: int = 0
    room_hints: int = 0

    # Snapping statistics
    endpoints: int = 0
    vertices: int = 0
    merges: int = 0
    snap_conflicts: int = 0

    # Topology statistics
    walls: int = 0
    degenerate_walls: int = 0
    t_junction_splits: int = 0
    crossing_vertices: int = 0
    faces: int = 0
    candidate_rooms: int = 0
    unclosed_edges: int = 0
    hosted_openings: int = 0
    unhosted_openings: int = 0

    # Validation statistics
    accepted: int = 0
    rejected: int = 0
    rejected_by_reason: dict[str, int] = field(default_factory=dict)

    # Performance metrics (in seconds)
    stage_times: dict[str, float] = field(default_factory=dict)
    time_total: float = 0.0

    def record_stage(self, stage: str, seconds: float) -> None:
        self.stage_times[stage] = self.stage_times.get(stage, 0.0) + seconds

    def add_rejection(self, reason: str) -> None:
        self.rejected += 1
        self.rejected_by_reason[reason] = self.rejected_by_reason.get(reason, 0) + 1

    def to_dict(self) -> dict[str, Any]:
        """Convert metrics to dictionary for serialization."""
        return {
            "input": {
                "total": self.total_detections,
                "walls": self.wall_detections,
                "openings": self.opening_detections,
                "room_hints": self.room_hints,
            },
            "snapping": {
                "endpoints": self.endpoints,
                "vertices": self.vertices,
                "merges": self.merges,
                "conflicts": self.snap_conflicts,
            },
            "topology": {
                "walls": self.walls,
                "degenerate_walls": self.degenerate_walls,
                "t_junction_splits": self.t_junction_splits,
                "crossing_vertices": self.crossing_vertices,
                "faces": self.faces,
                "candidate_rooms": self.candidate_rooms,
                "unclosed_edges": self.unclosed_edges,
                "openings": {
                    "hosted": self.hosted_openings,
                    "unhosted": self.unhosted_openings,
                },
            },
            "validation": {
                "accepted": self.accepted,
                "rejected": self.rejected,
                "by_reason": dict(sorted(self.rejected_by_reason.items())),
            },
            "performance": {
                "stages": dict(self.stage_times),
                "total": self.time_total,
            },
        }

    def get_summary(self) -> dict[str, Any]:
        """Get a summary of key metrics."""
        checked = self.accepted + self.rejected
        return {
            "total_time_seconds": self.time_total,
            "vertices": self.vertices,
            "walls": self.walls,
            "candidate_rooms": self.candidate_rooms,
            "acceptance_rate": self.accepted / checked if checked > 0 else 0.0,
        }
