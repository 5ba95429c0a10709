from __future__ import annotations

from floorplan_core.ingest.detections import DetectionKind, RawDetection

Point = tuple[float, float]


class ManualClock:
    """Deterministic clock for deadline tests."""

    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def wall(*points: Point, confidence: float = 0.95, **kwargs) -> RawDetection:
    return RawDetection(kind=DetectionKind.WALL, polyline=tuple(points), confidence=confidence, **kwargs)


def door(*points: Point, confidence: float = 0.95) -> RawDetection:
    return RawDetection(kind=DetectionKind.DOOR, polyline=tuple(points), confidence=confidence)


def window(*points: Point, confidence: float = 0.95) -> RawDetection:
    return RawDetection(kind=DetectionKind.WINDOW, polyline=tuple(points), confidence=confidence)


def room_hint(point: Point, label: str | None, confidence: float = 0.95) -> RawDetection:
    return RawDetection(kind=DetectionKind.ROOM_HINT, polyline=(point,), confidence=confidence, label=label)


def jittered_rectangle(width: float = 4.0, height: float = 3.0, jitter: float = 0.0075) -> list[RawDetection]:
    """Four separately drawn walls whose corners miss each other by 2 * jitter."""
    return [
        wall((jitter, 0.0), (width - jitter, 0.0)),
        wall((width + jitter, 0.0), (width + jitter, height)),
        wall((width - jitter, height), (jitter, height)),
        wall((-jitter, height), (-jitter, 0.0)),
    ]


def payload_from(detections: list[RawDetection], **metadata) -> dict:
    """Recognizer payload for the given detections."""
    return {
        "metadata": metadata or {"scale": 1.0, "unit": "m"},
        "detections": [
            {
                "kind": d.kind.value,
                "polyline": [list(p) for p in d.polyline],
                "confidence": d.confidence,
                **({"thickness": d.thickness} if d.thickness is not None else {}),
                **({"height": d.height} if d.height is not None else {}),
                **({"label": d.label} if d.label is not None else {}),
            }
            for d in detections
        ],
    }
