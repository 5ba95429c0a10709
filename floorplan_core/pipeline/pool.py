from __future__ import annotations

from concurrent.futures import Executor, Future, ProcessPoolExecutor
from typing import Any, Callable, Iterable, List, Mapping, Optional

from loguru import logger

from floorplan_core.pipeline.jobs import Job, JobResult
from floorplan_core.pipeline.supervisor import supervise_payload
from floorplan_core.settings import EngineSettings


def _run_one(payload: Mapping[str, Any], settings: EngineSettings, job_id: str) -> JobResult:
    return supervise_payload(payload, settings, Job(id=job_id))


class JobPool:
    """Bounded pool processing many blueprints concurrently.

    Each job runs start-to-finish in one worker and shares nothing with the
    others; results come back in submission order.
    """

    def __init__(
        self,
        settings: EngineSettings,
        max_workers: Optional[int] = None,
        executor_factory: Callable[[int], Executor] = ProcessPoolExecutor,
    ) -> None:
        self.settings = settings
        self.max_workers = settings.max_workers if max_workers is None else max_workers
        if self.max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self._executor_factory = executor_factory

    def run(self, payloads: Iterable[Mapping[str, Any]]) -> List[JobResult]:
        items = list(payloads)
        jobs = [Job() for _ in items]
        logger.bind(stage="pool").info("Processing {} jobs with {} workers", len(items), self.max_workers)
        with self._executor_factory(self.max_workers) as executor:
            futures: List[Future] = [
                executor.submit(_run_one, payload, self.settings, job.id)
                for payload, job in zip(items, jobs)
            ]
            return [future.result() for future in futures]


__all__ = ["JobPool"]
