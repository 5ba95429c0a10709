"""
Export Adapter

Serializes a SpatialData aggregate into the intermediate document consumed by
downstream model generation, and reads such a document back. Export is pure:
an aggregate that references missing entities is a reconstruction bug and
raises InternalInvariantViolation instead of dropping anything.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Mapping, Union

from loguru import logger
from pydantic import ValidationError

from floorplan_core.exceptions import InputValidationError, InternalInvariantViolation
from floorplan_core.export.schema import (
    IssueDoc,
    OpeningDoc,
    Point2D,
    ReportDoc,
    RoomDoc,
    SpatialDocument,
    VertexDoc,
    WallDoc,
)
from floorplan_core.geometry.contract import EPS_LENGTH, EXPORT_PRECISION
from floorplan_core.spatial import (
    Opening,
    OpeningKind,
    Room,
    RoomType,
    SpatialData,
    ValidationStatus,
    Vertex,
    Wall,
)
from floorplan_core.validate.report import Issue, IssueCode, Severity, ValidationReport

STAGE = "export"


def _r(value: float) -> float:
    rounded = round(float(value), EXPORT_PRECISION)
    return rounded + 0.0  # normalizes -0.0


def _check_references(sd: SpatialData) -> None:
    vertices = sd.vertex_map()
    walls = sd.wall_map()

    for wall in sd.walls:
        missing = [vid for vid in (wall.start, wall.end) if vid not in vertices]
        if missing:
            raise InternalInvariantViolation(
                f"Wall {wall.id} references unknown vertices",
                stage=STAGE,
                entity_ids=[wall.id, *missing],
            )
        if wall.start == wall.end:
            raise InternalInvariantViolation(
                f"Wall {wall.id} starts and ends on the same vertex",
                stage=STAGE,
                entity_ids=[wall.id, wall.start],
            )

    for room in sd.rooms:
        missing = [vid for vid in room.boundary if vid not in vertices]
        missing += [vid for ring in room.holes for vid in ring if vid not in vertices]
        missing += [wid for wid in room.wall_ids if wid not in walls]
        if missing:
            raise InternalInvariantViolation(
                f"Room {room.id} references unknown entities",
                stage=STAGE,
                entity_ids=[room.id, *missing],
            )

    for opening in sd.openings:
        host = walls.get(opening.wall_id)
        if host is None:
            raise InternalInvariantViolation(
                f"Opening {opening.id} references unknown wall {opening.wall_id}",
                stage=STAGE,
                entity_ids=[opening.id, opening.wall_id],
            )
        if opening.offset < -EPS_LENGTH or opening.offset > host.length + EPS_LENGTH:
            raise InternalInvariantViolation(
                f"Opening {opening.id} lies outside wall {host.id}",
                stage=STAGE,
                entity_ids=[opening.id, host.id],
                details={"offset": opening.offset, "length": host.length},
            )


def _build_document(sd: SpatialData) -> SpatialDocument:
    vertices = sd.vertex_map()

    def point(vid: str) -> Point2D:
        v = vertices[vid]
        return Point2D(x=_r(v.x), y=_r(v.y))

    report = None
    if sd.report is not None:
        raw = sd.report.to_dict()
        for issue in raw["issues"]:
            issue["coordinates"] = [[_r(x), _r(y)] for x, y in issue["coordinates"]]
        report = ReportDoc.model_validate(raw)

    return SpatialDocument(
        metadata={
            key: (_r(value) if isinstance(value, float) else value)
            for key, value in sorted(sd.metadata.items())
        },
        vertices=[VertexDoc(id=v.id, x=_r(v.x), y=_r(v.y)) for v in sd.vertices],
        walls=[
            WallDoc(
                id=w.id,
                start=w.start,
                end=w.end,
                startPoint=point(w.start),
                endPoint=point(w.end),
                thickness=_r(w.thickness),
                height=_r(w.height),
                length=_r(w.length),
                material=w.material,
                confidence=_r(w.confidence),
            )
            for w in sd.walls
        ],
        rooms=[
            RoomDoc(
                id=room.id,
                boundary=list(room.boundary),
                polygon=[point(vid) for vid in room.boundary],
                boundaryWallIds=list(room.wall_ids),
                area=_r(room.area),
                perimeter=_r(room.perimeter),
                centroid=Point2D(x=_r(room.centroid[0]), y=_r(room.centroid[1])),
                height=_r(room.height),
                confidence=_r(room.confidence),
                roomType=room.room_type.value,
                holes=[list(ring) for ring in room.holes],
            )
            for room in sd.rooms
        ],
        openings=[
            OpeningDoc(
                id=o.id,
                type=o.kind.value.lower(),
                hostWallId=o.wall_id,
                offset=_r(o.offset),
                width=_r(o.width),
                height=_r(o.height),
                sillHeight=_r(o.sill_height),
                confidence=_r(o.confidence),
            )
            for o in sd.openings
        ],
        extractionAccuracy=_r(sd.extraction_accuracy),
        validationStatus=sd.validation_status.value,
        validationReport=report,
    )


def export_spatial_data(sd: SpatialData) -> Dict[str, Any]:
    """Serialize SpatialData into the downstream document (a plain dict)."""
    _check_references(sd)
    try:
        document = _build_document(sd)
    except ValidationError as exc:
        raise InternalInvariantViolation(
            "SpatialData violates the export schema",
            stage=STAGE,
            details={"errors": exc.errors(include_url=False)},
        ) from exc
    logger.bind(stage=STAGE).debug(
        "Exported {} walls, {} rooms, {} openings",
        len(document.walls),
        len(document.rooms),
        len(document.openings),
    )
    return document.model_dump(mode="json")


def to_json(sd: SpatialData, indent: int | None = None) -> bytes:
    """Deterministic JSON encoding: identical aggregates give identical bytes."""
    separators = (",", ": ") if indent else (",", ":")
    text = json.dumps(export_spatial_data(sd), sort_keys=True, indent=indent, separators=separators)
    return text.encode("utf-8")


def _issue_from_doc(doc: IssueDoc) -> Issue:
    return Issue(
        code=IssueCode(doc.code),
        severity=Severity(doc.severity),
        message=doc.message,
        stage=doc.stage,
        entity_ids=tuple(doc.entityIds),
        coordinates=tuple((float(c[0]), float(c[1])) for c in doc.coordinates),
    )


def import_spatial_data(payload: Union[Mapping[str, Any], str, bytes]) -> SpatialData:
    """Inverse of :func:`export_spatial_data`.

    Raises:
        InputValidationError: If the document is malformed or references
            entities it does not contain.
    """
    try:
        if isinstance(payload, (str, bytes)):
            document = SpatialDocument.model_validate_json(payload)
        else:
            document = SpatialDocument.model_validate(payload)
        issues: List[Issue] = []
        if document.validationReport is not None:
            issues = [_issue_from_doc(doc) for doc in document.validationReport.issues]
    except (ValidationError, ValueError) as exc:
        raise InputValidationError(f"Invalid spatial data document: {exc}") from exc

    vertices = tuple(Vertex(id=v.id, x=v.x, y=v.y) for v in document.vertices)
    walls = tuple(
        Wall(
            id=w.id,
            start=w.start,
            end=w.end,
            thickness=w.thickness,
            height=w.height,
            confidence=w.confidence,
            length=w.length,
            material=w.material,
        )
        for w in document.walls
    )
    rooms = tuple(
        Room(
            id=r.id,
            boundary=tuple(r.boundary),
            wall_ids=tuple(r.boundaryWallIds),
            area=r.area,
            perimeter=r.perimeter,
            centroid=(r.centroid.x, r.centroid.y),
            height=r.height,
            confidence=r.confidence,
            room_type=RoomType(r.roomType) if r.roomType in RoomType.__members__ else RoomType.UNKNOWN,
            holes=tuple(tuple(ring) for ring in r.holes),
        )
        for r in document.rooms
    )
    openings = tuple(
        Opening(
            id=o.id,
            kind=OpeningKind(o.type.upper()),
            wall_id=o.hostWallId,
            offset=o.offset,
            width=o.width,
            height=o.height,
            sill_height=o.sillHeight,
            confidence=o.confidence,
        )
        for o in document.openings
    )

    sd = SpatialData(
        vertices=vertices,
        walls=walls,
        rooms=rooms,
        openings=openings,
        extraction_accuracy=document.extractionAccuracy,
        validation_status=ValidationStatus(document.validationStatus),
        report=ValidationReport.from_issues(issues) if document.validationReport is not None else None,
        metadata=dict(document.metadata),
    )
    try:
        _check_references(sd)
    except InternalInvariantViolation as exc:
        raise InputValidationError(exc.message, {"entity_ids": list(exc.entity_ids)}) from exc
    return sd


__all__ = ["export_spatial_data", "import_spatial_data", "to_json"]
