"""Raw detections and blueprint metadata handed over by the recognition process."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Mapping, Tuple

from loguru import logger

from floorplan_core.exceptions import InputValidationError

Point = Tuple[float, float]

_RATIO_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*:\s*(\d+(?:\.\d+)?)\s*$")


class DetectionKind(str, Enum):
    WALL = "WALL"
    DOOR = "DOOR"
    WINDOW = "WINDOW"
    ROOM_HINT = "ROOM_HINT"


class LengthUnit(str, Enum):
    MILLIMETER = "mm"
    CENTIMETER = "cm"
    METER = "m"
    INCH = "in"
    FOOT = "ft"


@dataclass(frozen=True)
class RawDetection:
    """Unvalidated geometric primitive in drawing units.

    ``thickness`` is in drawing units, ``height`` in meters. ``label`` is only
    meaningful for ROOM_HINT detections.
    """

    kind: DetectionKind
    polyline: Tuple[Point, ...]
    confidence: float
    thickness: float | None = None
    height: float | None = None
    label: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.kind, DetectionKind):
            raise InputValidationError(f"Unknown detection kind: {self.kind!r}")
        if not self.polyline:
            raise InputValidationError("Detection polyline is empty", {"kind": self.kind.value})
        for pt in self.polyline:
            if len(pt) != 2 or not all(math.isfinite(c) for c in pt):
                raise InputValidationError(f"Invalid polyline point: {pt!r}", {"kind": self.kind.value})
        if not (0.0 <= self.confidence <= 1.0):
            raise InputValidationError(
                f"Confidence {self.confidence} outside [0, 1]",
                {"kind": self.kind.value},
            )


@dataclass(frozen=True)
class BlueprintMetadata:
    """Declared drawing scale and unit.

    ``scale`` is the number of real-world ``unit``s represented by one drawing
    unit (a 1:100 plan drawn in millimeters has ``scale=100, unit=mm``).
    """

    scale: float | None = None
    unit: LengthUnit | None = None
    width: float | None = None
    height: float | None = None
    source: str | None = None


def parse_scale(value: Any) -> float | None:
    """Parse a numeric scale or a ratio string like ``"1:100"``.

    Unparseable values yield None so the normalizer can substitute its default.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        match = _RATIO_RE.match(value)
        if match:
            num, denom = float(match.group(1)), float(match.group(2))
            if num <= 0.0:
                return None
            return denom / num
        try:
            return float(value)
        except ValueError:
            logger.debug("Unparseable scale value {!r}", value)
            return None
    return None


def _parse_point(raw: Any) -> Point:
    if isinstance(raw, Mapping):
        try:
            return (float(raw["x"]), float(raw["y"]))
        except (KeyError, TypeError, ValueError) as exc:
            raise InputValidationError(f"Invalid point: {raw!r}") from exc
    if isinstance(raw, (list, tuple)) and len(raw) >= 2:
        # plan is 2D, a third coordinate is dropped
        try:
            return (float(raw[0]), float(raw[1]))
        except (TypeError, ValueError) as exc:
            raise InputValidationError(f"Invalid point: {raw!r}") from exc
    raise InputValidationError(f"Invalid point: {raw!r}")


def _optional_float(raw: Any, name: str) -> float | None:
    if raw is None:
        return None
    try:
        return float(raw)
    except (TypeError, ValueError) as exc:
        raise InputValidationError(f"Invalid {name}: {raw!r}") from exc


def detection_from_dict(raw: Mapping[str, Any]) -> RawDetection:
    kind_raw = str(raw.get("kind", "")).strip().upper()
    try:
        kind = DetectionKind(kind_raw)
    except ValueError as exc:
        raise InputValidationError(f"Unknown detection kind: {kind_raw!r}") from exc
    points = raw.get("polyline") or raw.get("points") or []
    if not isinstance(points, (list, tuple)):
        raise InputValidationError("Detection polyline must be a list", {"kind": kind.value})
    confidence = _optional_float(raw.get("confidence"), "confidence")
    if confidence is None:
        raise InputValidationError("Detection confidence is required", {"kind": kind.value})
    label = raw.get("label")
    return RawDetection(
        kind=kind,
        polyline=tuple(_parse_point(p) for p in points),
        confidence=confidence,
        thickness=_optional_float(raw.get("thickness"), "thickness"),
        height=_optional_float(raw.get("height"), "height"),
        label=str(label) if label is not None else None,
    )


def detections_from_payload(items: Iterable[Mapping[str, Any]]) -> list[RawDetection]:
    """Parse the recognizer's ordered detection records; order is preserved."""
    detections: list[RawDetection] = []
    for index, raw in enumerate(items):
        if not isinstance(raw, Mapping):
            raise InputValidationError(f"Detection {index} is not an object")
        try:
            detections.append(detection_from_dict(raw))
        except InputValidationError as exc:
            exc.details.setdefault("index", index)
            raise
    return detections


def metadata_from_payload(raw: Mapping[str, Any] | None) -> BlueprintMetadata:
    if not raw:
        return BlueprintMetadata()
    unit_raw = raw.get("unit")
    unit: LengthUnit | None = None
    if unit_raw is not None:
        try:
            unit = LengthUnit(str(unit_raw).strip().lower())
        except ValueError:
            # unknown units are treated as missing metadata
            logger.debug("Unknown unit {!r}", unit_raw)
            unit = None
    return BlueprintMetadata(
        scale=parse_scale(raw.get("scale")),
        unit=unit,
        width=_optional_float(raw.get("width"), "width"),
        height=_optional_float(raw.get("height"), "height"),
        source=str(raw["source"]) if raw.get("source") is not None else None,
    )
