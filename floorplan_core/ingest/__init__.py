from floorplan_core.ingest.detections import (
    BlueprintMetadata,
    DetectionKind,
    LengthUnit,
    RawDetection,
    detections_from_payload,
    metadata_from_payload,
)

__all__ = [
    "BlueprintMetadata",
    "DetectionKind",
    "LengthUnit",
    "RawDetection",
    "detections_from_payload",
    "metadata_from_payload",
]
