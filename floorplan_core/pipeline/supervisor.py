"""
Retry supervisor around the pure pipeline.

The supervisor owns every side effect of running a job: state transitions,
retries with an alternate snapping tolerance, backoff and failure reporting.
``run_pipeline`` stays free of them.
"""

from __future__ import annotations

import time
from typing import Any, Callable, Mapping, Optional, Sequence

from loguru import logger

from floorplan_core.exceptions import (
    FloorplanError,
    InputValidationError,
    InternalInvariantViolation,
    TransientProcessingError,
)
from floorplan_core.ingest.detections import (
    BlueprintMetadata,
    RawDetection,
    detections_from_payload,
    metadata_from_payload,
)
from floorplan_core.pipeline.context import JobContext
from floorplan_core.pipeline.jobs import FailureReason, Job, JobResult, JobStatus
from floorplan_core.pipeline.stages import run_pipeline
from floorplan_core.settings import EngineSettings


def _failed(
    job: Job,
    reason: FailureReason,
    exc: FloorplanError,
    context: Optional[JobContext],
) -> JobResult:
    job.fail()
    return JobResult(
        job_id=job.id,
        status=job.status,
        failure_reason=reason,
        error_message=str(exc),
        error_details=dict(exc.details),
        attempts=job.attempts,
        metrics=context.metrics.to_dict() if context is not None else {},
    )


def supervise(
    job: Job,
    detections: Sequence[RawDetection],
    metadata: Optional[BlueprintMetadata],
    settings: EngineSettings,
    *,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
) -> JobResult:
    """Run ``job`` to a terminal state.

    A transient error is retried once with the policy's alternate tolerance;
    an invariant violation or any unexpected exception fails the job
    immediately. The deadline covers the whole job, retries included.
    """
    log = logger.bind(job_id=job.id, stage="supervisor")
    policy = settings.retry
    job.start()
    started_at = clock()
    context: Optional[JobContext] = None

    for attempt in range(1, policy.max_attempts + 1):
        tolerance = policy.alternate_tolerance(settings.snap_tolerance_m, attempt)
        attempt_settings = settings if attempt == 1 else settings.with_tolerance(tolerance)
        context = JobContext(
            settings=attempt_settings,
            job_id=job.id,
            clock=clock,
            started_at=started_at,
            attempt=attempt,
        )
        job.attempts = attempt
        try:
            spatial = run_pipeline(detections, metadata, attempt_settings, context)
        except TransientProcessingError as exc:
            if attempt < policy.max_attempts:
                next_tolerance = policy.alternate_tolerance(settings.snap_tolerance_m, attempt + 1)
                log.warning(
                    "Attempt {} failed transiently ({}); retrying with tolerance {:.4f} m",
                    attempt,
                    exc.message,
                    next_tolerance,
                )
                if policy.backoff_seconds > 0:
                    sleep(policy.backoff_seconds)
                continue
            log.error("Job failed after {} attempts: {}", attempt, exc.message)
            return _failed(job, FailureReason.TRANSIENT_ERROR, exc, context)
        except InternalInvariantViolation as exc:
            log.error("Invariant violation: {}", exc)
            return _failed(job, FailureReason.INVARIANT_VIOLATION, exc, context)
        except InputValidationError as exc:
            log.error("Invalid input: {}", exc.message)
            return _failed(job, FailureReason.INVALID_INPUT, exc, context)
        except Exception as exc:
            log.exception("Unexpected error on attempt {}", attempt)
            violation = InternalInvariantViolation(
                f"Unexpected {type(exc).__name__}: {exc}",
                job_id=job.id,
                stage=context.stage or "pipeline",
                details={"error_type": type(exc).__name__},
            )
            return _failed(job, FailureReason.INVARIANT_VIOLATION, violation, context)

        job.complete()
        log.info(
            "Job completed on attempt {}: status={} accuracy={:.3f}",
            attempt,
            spatial.validation_status.value,
            spatial.extraction_accuracy,
        )
        return JobResult(
            job_id=job.id,
            status=JobStatus.COMPLETED,
            spatial_data=spatial,
            attempts=attempt,
            metrics=context.metrics.to_dict(),
        )

    # max_attempts >= 1, so the loop always returns
    raise AssertionError("unreachable")


def supervise_payload(
    payload: Mapping[str, Any],
    settings: EngineSettings,
    job: Optional[Job] = None,
) -> JobResult:
    """Parse a recognizer payload ({"detections": [...], "metadata": {...}}) and supervise it."""
    job = job or Job()
    try:
        detections = detections_from_payload(payload.get("detections") or [])
        metadata = metadata_from_payload(payload.get("metadata"))
    except InputValidationError as exc:
        logger.bind(job_id=job.id, stage="ingest").error("Rejected payload: {}", exc.message)
        job.start()
        return _failed(job, FailureReason.INVALID_INPUT, exc, None)
    return supervise(job, detections, metadata, settings)


__all__ = ["supervise", "supervise_payload"]
