from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import uuid4

from floorplan_core.exceptions import JobStateError
from floorplan_core.spatial import SpatialData


class JobStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


class FailureReason(str, Enum):
    INVALID_INPUT = "INVALID_INPUT"
    TRANSIENT_ERROR = "TRANSIENT_ERROR"
    INVARIANT_VIOLATION = "INVARIANT_VIOLATION"


# Allowed forward moves; nothing leaves a terminal state.
_TRANSITIONS = {
    JobStatus.PENDING: {JobStatus.PROCESSING, JobStatus.FAILED},
    JobStatus.PROCESSING: {JobStatus.COMPLETED, JobStatus.FAILED},
    JobStatus.COMPLETED: set(),
    JobStatus.FAILED: set(),
}


@dataclass
class Job:
    """One blueprint's unit of work. Status only ever moves forward."""

    id: str = field(default_factory=lambda: uuid4().hex)
    status: JobStatus = JobStatus.PENDING
    attempts: int = 0
    history: List[JobStatus] = field(default_factory=lambda: [JobStatus.PENDING])
    meta: Dict[str, Any] = field(default_factory=dict)

    def transition(self, target: JobStatus) -> None:
        if target not in _TRANSITIONS[self.status]:
            raise JobStateError(
                f"Illegal job transition {self.status.value} -> {target.value}",
                {"job_id": self.id, "from": self.status.value, "to": target.value},
            )
        self.status = target
        self.history.append(target)

    def start(self) -> None:
        self.transition(JobStatus.PROCESSING)

    def complete(self) -> None:
        self.transition(JobStatus.COMPLETED)

    def fail(self) -> None:
        self.transition(JobStatus.FAILED)


@dataclass(frozen=True)
class JobResult:
    """Terminal outcome of a job: SpatialData on success, a reason code otherwise."""

    job_id: str
    status: JobStatus
    spatial_data: Optional[SpatialData] = None
    failure_reason: Optional[FailureReason] = None
    error_message: Optional[str] = None
    error_details: Dict[str, Any] = field(default_factory=dict)
    attempts: int = 0
    metrics: Dict[str, Any] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.status is JobStatus.COMPLETED

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "job_id": self.job_id,
            "status": self.status.value,
            "attempts": self.attempts,
            "metrics": self.metrics,
        }
        if self.failure_reason is not None:
            payload["failure"] = {
                "reason": self.failure_reason.value,
                "message": self.error_message,
                "details": self.error_details,
            }
        return payload


__all__ = ["FailureReason", "Job", "JobResult", "JobStatus"]
