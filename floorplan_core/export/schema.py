"""Intermediate spatial-data document consumed by downstream model generation."""

from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

SCHEMA_VERSION = "1.0"


class Point2D(BaseModel):
    """2D point in meters."""
    x: float
    y: float


class VertexDoc(BaseModel):
    id: str
    x: float
    y: float


class WallDoc(BaseModel):
    """Wall element between two topology vertices."""
    id: str
    start: str = Field(..., description="Start vertex id")
    end: str = Field(..., description="End vertex id")
    startPoint: Point2D
    endPoint: Point2D
    thickness: float = Field(..., gt=0.0, description="Wall thickness in meters")
    height: float = Field(..., gt=0.0, description="Wall height in meters")
    length: float = Field(..., ge=0.0)
    material: str = "UNSPECIFIED"
    confidence: float = Field(..., ge=0.0, le=1.0, description="Source confidence score")


class RoomDoc(BaseModel):
    """Room polygon, counter-clockwise, not repeating its first vertex."""
    id: str
    boundary: List[str] = Field(..., min_length=3, description="Vertex ids in order")
    polygon: List[Point2D]
    boundaryWallIds: List[str] = Field(default_factory=list)
    area: float = Field(..., gt=0.0, description="Area in square meters")
    perimeter: float
    centroid: Point2D
    height: float
    confidence: float = Field(..., ge=0.0, le=1.0)
    roomType: str = "UNKNOWN"
    holes: List[List[str]] = Field(default_factory=list, description="Inner boundaries (columns, cores), clockwise")


class OpeningDoc(BaseModel):
    """Door or window opening."""
    id: str
    type: Literal["door", "window", "other"]
    hostWallId: str = Field(..., description="ID of wall containing this opening")
    offset: float = Field(..., ge=0.0, description="Distance of the centre from the wall start in meters")
    width: float
    height: float
    sillHeight: float = 0.0
    confidence: float = Field(..., ge=0.0, le=1.0)


class IssueDoc(BaseModel):
    code: str
    severity: Literal["INFO", "WARNING", "ERROR"]
    message: str
    stage: Optional[str] = None
    entityIds: List[str] = Field(default_factory=list)
    coordinates: List[List[float]] = Field(default_factory=list)


class ReportSummary(BaseModel):
    total_issues: int
    by_code: Dict[str, int] = Field(default_factory=dict)
    max_severity: Optional[str] = None


class ReportDoc(BaseModel):
    summary: ReportSummary
    issues: List[IssueDoc] = Field(default_factory=list)


class SpatialDocument(BaseModel):
    """Exported SpatialData aggregate."""

    model_config = ConfigDict(extra="forbid")

    version: str = SCHEMA_VERSION
    metadata: Dict[str, Optional[float | int | str]] = Field(default_factory=dict)
    vertices: List[VertexDoc] = Field(default_factory=list)
    walls: List[WallDoc] = Field(default_factory=list)
    rooms: List[RoomDoc] = Field(default_factory=list)
    openings: List[OpeningDoc] = Field(default_factory=list)
    extractionAccuracy: float = Field(..., ge=0.0, le=1.0)
    validationStatus: Literal["VALID", "NEEDS_REVIEW", "INVALID"]
    validationReport: Optional[ReportDoc] = None
