"""Per-job context passed explicitly through every stage."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Callable, TypeVar
from uuid import uuid4

from loguru import logger

from floorplan_core.metrics.pipeline_metrics import PipelineMetrics
from floorplan_core.settings import EngineSettings

T = TypeVar("T")


@dataclass
class JobContext:
    """State owned by exactly one job; discarded when the job completes.

    The cache holds job-scoped lookups (e.g. the resolved scale factor) and is
    never shared between jobs.
    """

    settings: EngineSettings
    job_id: str = field(default_factory=lambda: uuid4().hex)
    clock: Callable[[], float] = time.monotonic
    started_at: float | None = None
    deadline_seconds: float | None = None
    attempt: int = 1
    metrics: PipelineMetrics = field(default_factory=PipelineMetrics)
    cache: dict[str, Any] = field(default_factory=dict)
    # stage currently running, kept for failure reports
    stage: str | None = None

    def __post_init__(self) -> None:
        if self.started_at is None:
            self.started_at = self.clock()
        if self.deadline_seconds is None:
            self.deadline_seconds = self.settings.deadline_seconds

    @property
    def tolerance(self) -> float:
        return self.settings.snap_tolerance_m

    def elapsed(self) -> float:
        return self.clock() - float(self.started_at or 0.0)

    def deadline_exceeded(self) -> bool:
        return self.elapsed() >= float(self.deadline_seconds or 0.0)

    def memo(self, key: str, factory: Callable[[], T]) -> T:
        if key not in self.cache:
            self.cache[key] = factory()
        return self.cache[key]

    def log(self, stage: str | None = None) -> Any:
        return logger.bind(job_id=self.job_id, stage=stage, attempt=self.attempt)
