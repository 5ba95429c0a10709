"""The SpatialData aggregate handed to downstream model generation."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Tuple

from floorplan_core.validate.report import ValidationReport

Point = Tuple[float, float]


class ValidationStatus(str, Enum):
    VALID = "VALID"
    NEEDS_REVIEW = "NEEDS_REVIEW"
    INVALID = "INVALID"


class RoomType(str, Enum):
    LIVING = "LIVING"
    BEDROOM = "BEDROOM"
    KITCHEN = "KITCHEN"
    BATHROOM = "BATHROOM"
    DINING = "DINING"
    HALLWAY = "HALLWAY"
    OFFICE = "OFFICE"
    STORAGE = "STORAGE"
    GARAGE = "GARAGE"
    OTHER = "OTHER"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def from_label(cls, label: Optional[str]) -> "RoomType":
        """Map a free-text room hint label onto a room type."""
        if not label:
            return cls.UNKNOWN
        text = label.strip().lower()
        for room_type, words in _ROOM_KEYWORDS:
            if any(word in text for word in words):
                return room_type
        return cls.OTHER


_ROOM_KEYWORDS = (
    (RoomType.BEDROOM, ("bed", "schlaf")),
    (RoomType.BATHROOM, ("bath", "wc", "toilet", "shower", "bad")),
    (RoomType.KITCHEN, ("kitchen", "küche", "kueche")),
    (RoomType.DINING, ("dining", "essen")),
    (RoomType.LIVING, ("living", "lounge", "family", "wohn")),
    (RoomType.HALLWAY, ("hall", "corridor", "flur", "entry", "foyer")),
    (RoomType.OFFICE, ("office", "study", "büro", "buero")),
    (RoomType.STORAGE, ("storage", "closet", "pantry", "abstell")),
    (RoomType.GARAGE, ("garage",)),
)


class OpeningKind(str, Enum):
    DOOR = "DOOR"
    WINDOW = "WINDOW"
    OTHER = "OTHER"


@dataclass(frozen=True)
class Vertex:
    id: str
    x: float
    y: float

    @property
    def point(self) -> Point:
        return (self.x, self.y)


@dataclass(frozen=True)
class Wall:
    id: str
    start: str
    end: str
    thickness: float
    height: float
    confidence: float
    length: float
    material: str = "UNSPECIFIED"


@dataclass(frozen=True)
class Room:
    id: str
    boundary: Tuple[str, ...]
    wall_ids: Tuple[str, ...]
    area: float
    perimeter: float
    centroid: Point
    height: float
    confidence: float
    room_type: RoomType = RoomType.UNKNOWN
    holes: Tuple[Tuple[str, ...], ...] = ()


@dataclass(frozen=True)
class Opening:
    id: str
    kind: OpeningKind
    wall_id: str
    offset: float
    width: float
    height: float
    sill_height: float
    confidence: float


@dataclass(frozen=True)
class SpatialData:
    """One processed blueprint. Immutable; reprocessing produces a new instance."""

    vertices: Tuple[Vertex, ...] = ()
    walls: Tuple[Wall, ...] = ()
    rooms: Tuple[Room, ...] = ()
    openings: Tuple[Opening, ...] = ()
    extraction_accuracy: float = 0.0
    validation_status: ValidationStatus = ValidationStatus.INVALID
    report: Optional[ValidationReport] = None
    metadata: Dict[str, object] = field(default_factory=dict, compare=False, hash=False)

    def vertex_map(self) -> Dict[str, Vertex]:
        return {v.id: v for v in self.vertices}

    def wall_map(self) -> Dict[str, Wall]:
        return {w.id: w for w in self.walls}
