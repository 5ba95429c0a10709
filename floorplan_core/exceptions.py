"""Custom exception hierarchy for the floorplan engine."""

from __future__ import annotations

from typing import Any, Sequence


class FloorplanError(Exception):
    """Base exception for all engine-specific errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(FloorplanError):
    """Raised when configuration is invalid or missing."""
    pass


class InputValidationError(FloorplanError):
    """Raised when a detection payload or metadata record is malformed."""
    pass


class ReconstructionError(FloorplanError):
    """Base class for errors raised while reconstructing a blueprint."""
    pass


class TransientProcessingError(ReconstructionError):
    """Raised when a stage yields an unexpected empty result; the job may be retried."""
    pass


class InternalInvariantViolation(ReconstructionError):
    """Raised when the reconstruction logic breaks one of its own invariants.

    Never recovered locally: the job is terminated and surfaced as FAILED.
    """

    def __init__(
        self,
        message: str,
        *,
        job_id: str | None = None,
        stage: str | None = None,
        entity_ids: Sequence[str] = (),
        details: dict[str, Any] | None = None,
    ) -> None:
        merged = dict(details or {})
        merged.update(
            {
                "job_id": job_id,
                "stage": stage,
                "entity_ids": list(entity_ids),
            }
        )
        super().__init__(message, merged)
        self.job_id = job_id
        self.stage = stage
        self.entity_ids = tuple(entity_ids)

    def __str__(self) -> str:
        ids = ", ".join(self.entity_ids) or "-"
        return f"{self.message} (job={self.job_id}, stage={self.stage}, entities={ids})"


class JobStateError(FloorplanError):
    """Raised when a job is moved to an earlier or unknown state."""
    pass
