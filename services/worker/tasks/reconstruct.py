from __future__ import annotations

from typing import Any

from celery import shared_task
from loguru import logger

from floorplan_core.export.adapter import export_spatial_data
from floorplan_core.pipeline.jobs import Job
from floorplan_core.pipeline.supervisor import supervise_payload
from floorplan_core.settings import get_settings


@shared_task(name="services.worker.tasks.reconstruct_blueprint")
def reconstruct_blueprint(payload: dict[str, Any], job_id: str | None = None) -> dict[str, Any]:
    """Reconstruct one blueprint and return the exported document or a failure record."""
    job = Job(id=job_id) if job_id else Job()
    log = logger.bind(job_id=job.id, stage="worker")
    log.info("Received blueprint with {} detections", len(payload.get("detections") or []))

    result = supervise_payload(payload, get_settings(), job)
    response = result.to_dict()
    if result.spatial_data is not None:
        response["spatialData"] = export_spatial_data(result.spatial_data)
        log.info("Blueprint reconstructed: {}", result.spatial_data.validation_status.value)
    else:
        log.error("Blueprint failed: {}", response["failure"]["reason"])
    return response
