"""
Unit Normalizer

Rescales raw detection coordinates from drawing units into canonical meters
using the blueprint's declared scale and unit. Missing or non-positive scale
metadata never fails a job: the 1:1 default is substituted and a
metadata-incomplete warning is emitted instead.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import List, Sequence, Tuple

from floorplan_core.geometry.contract import DEFAULT_SCALE, UNIT_TO_METERS
from floorplan_core.ingest.detections import BlueprintMetadata, DetectionKind, LengthUnit, RawDetection
from floorplan_core.pipeline.context import JobContext
from floorplan_core.validate.report import Issue, IssueCode, Severity

Point = Tuple[float, float]


@dataclass(frozen=True)
class NormalizedDetection:
    """A RawDetection rescaled to meters; ``index`` is its position in the input."""

    index: int
    kind: DetectionKind
    polyline: Tuple[Point, ...]
    confidence: float
    thickness: float | None = None
    height: float | None = None
    label: str | None = None


@dataclass(frozen=True)
class ScaleResolution:
    factor: float
    scale: float
    unit: LengthUnit
    warnings: Tuple[Issue, ...] = ()


@dataclass
class NormalizationResult:
    detections: List[NormalizedDetection]
    factor: float
    warnings: List[Issue] = field(default_factory=list)
    width_m: float | None = None
    height_m: float | None = None


def resolve_scale(metadata: BlueprintMetadata | None) -> ScaleResolution:
    """Meters per drawing unit for the given metadata, with any substitution warnings."""
    warnings: list[Issue] = []
    metadata = metadata or BlueprintMetadata()

    scale = metadata.scale
    if scale is None or not math.isfinite(scale) or scale <= 0.0:
        warnings.append(
            Issue(
                code=IssueCode.METADATA_INCOMPLETE,
                severity=Severity.WARNING,
                message=(
                    f"Blueprint scale missing or non-positive ({scale!r}); "
                    f"assuming 1 drawing unit = {DEFAULT_SCALE:g} unit"
                ),
                stage="normalize",
            )
        )
        scale = DEFAULT_SCALE

    unit = metadata.unit
    if unit is None:
        warnings.append(
            Issue(
                code=IssueCode.METADATA_INCOMPLETE,
                severity=Severity.WARNING,
                message="Blueprint unit missing; assuming meters",
                stage="normalize",
            )
        )
        unit = LengthUnit.METER

    factor = float(scale) * UNIT_TO_METERS[unit.value]
    return ScaleResolution(factor=factor, scale=float(scale), unit=unit, warnings=tuple(warnings))


def normalize_detections(
    detections: Sequence[RawDetection],
    metadata: BlueprintMetadata | None,
    context: JobContext,
) -> NormalizationResult:
    log = context.log("normalize")
    resolution = context.memo("scale_resolution", lambda: resolve_scale(metadata))
    factor = resolution.factor

    normalized: list[NormalizedDetection] = []
    for index, det in enumerate(detections):
        normalized.append(
            NormalizedDetection(
                index=index,
                kind=det.kind,
                polyline=tuple((x * factor, y * factor) for x, y in det.polyline),
                confidence=float(det.confidence),
                thickness=det.thickness * factor if det.thickness is not None else None,
                height=det.height,
                label=det.label,
            )
        )

    width_m = height_m = None
    if metadata is not None:
        width_m = metadata.width * factor if metadata.width is not None else None
        height_m = metadata.height * factor if metadata.height is not None else None

    log.debug(
        "Normalized {} detections (scale={}, unit={}, factor={})",
        len(normalized),
        resolution.scale,
        resolution.unit.value,
        factor,
    )
    for warning in resolution.warnings:
        log.warning(warning.message)

    return NormalizationResult(
        detections=normalized,
        factor=factor,
        warnings=list(resolution.warnings),
        width_m=width_m,
        height_m=height_m,
    )
