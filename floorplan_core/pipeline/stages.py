"""
Reconstruction pipeline for a single blueprint.

normalize -> snap -> topology -> validate -> flag, strictly in that order. The
function is pure apart from logging: everything it needs arrives through its
arguments and the per-job context, and its only product is a SpatialData.
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from typing import Iterator, Optional, Sequence

from floorplan_core.ingest.detections import BlueprintMetadata, DetectionKind, RawDetection
from floorplan_core.normalize.units import NormalizationResult, normalize_detections
from floorplan_core.pipeline.context import JobContext
from floorplan_core.reconstruct.topology import Topology, build_topology
from floorplan_core.settings import EngineSettings
from floorplan_core.spatial import SpatialData
from floorplan_core.validate.flagger import assemble
from floorplan_core.validate.geometry_validation import GeometryValidationResult, validate_topology
from floorplan_core.vector.snap import snap_endpoints


@contextmanager
def _stage(context: JobContext, name: str) -> Iterator[None]:
    context.stage = name
    log = context.log(name)
    log.debug("Stage {} started", name)
    start = time.perf_counter()
    try:
        yield
    finally:
        seconds = time.perf_counter() - start
        context.metrics.record_stage(name, seconds)
        log.debug("Stage {} finished in {:.4f}s", name, seconds)


def _count_inputs(detections: Sequence[RawDetection], context: JobContext) -> None:
    metrics = context.metrics
    metrics.total_detections = len(detections)
    metrics.wall_detections = sum(1 for d in detections if d.kind is DetectionKind.WALL)
    metrics.opening_detections = sum(
        1 for d in detections if d.kind in (DetectionKind.DOOR, DetectionKind.WINDOW)
    )
    metrics.room_hints = sum(1 for d in detections if d.kind is DetectionKind.ROOM_HINT)


def run_pipeline(
    detections: Sequence[RawDetection],
    metadata: Optional[BlueprintMetadata],
    settings: EngineSettings,
    context: Optional[JobContext] = None,
) -> SpatialData:
    """Reconstruct one blueprint.

    The deadline is checked before every stage (and between entities during
    validation). Once it has passed, no further stage runs and the partial
    result is assembled with a processing-timeout warning.

    Raises:
        TransientProcessingError: Snapping collapsed every wall segment.
        InternalInvariantViolation: The reconstruction logic broke an invariant.
    """
    if context is None:
        context = JobContext(settings=settings)
    log = context.log("pipeline")
    started = time.perf_counter()
    _count_inputs(detections, context)

    normalization: Optional[NormalizationResult] = None
    topology: Optional[Topology] = None
    validation: Optional[GeometryValidationResult] = None

    def finish(timed_out: bool = False) -> SpatialData:
        if timed_out:
            log.warning(
                "Deadline {:g}s exceeded after {:.3f}s; emitting partial result",
                context.deadline_seconds,
                context.elapsed(),
            )
        with _stage(context, "flag"):
            result = assemble(normalization, topology, validation, context, timed_out=timed_out)
        context.metrics.time_total = time.perf_counter() - started
        log.info("Pipeline finished: {}", context.metrics.get_summary())
        return result

    if context.deadline_exceeded():
        return finish(timed_out=True)
    with _stage(context, "normalize"):
        normalization = normalize_detections(detections, metadata, context)

    if not normalization.detections:
        log.warning("No detections supplied")
        return finish()

    if context.deadline_exceeded():
        return finish(timed_out=True)
    with _stage(context, "snap"):
        snap = snap_endpoints(normalization.detections, context)

    if context.deadline_exceeded():
        return finish(timed_out=True)
    with _stage(context, "topology"):
        topology = build_topology(normalization.detections, snap, context)

    if context.deadline_exceeded():
        return finish(timed_out=True)
    with _stage(context, "validate"):
        validation = validate_topology(topology, context)

    return finish(timed_out=validation.truncated)


__all__ = ["run_pipeline"]
