from __future__ import annotations

from typing import Callable, Sequence

import pytest

from floorplan_core.ingest.detections import BlueprintMetadata, LengthUnit, RawDetection
from floorplan_core.pipeline.context import JobContext
from floorplan_core.settings import EngineSettings
from tests.utils_blueprints import jittered_rectangle


@pytest.fixture
def settings() -> EngineSettings:
    return EngineSettings(snap_tolerance_m=0.02, accuracy_threshold=0.9, deadline_seconds=30.0)


@pytest.fixture
def metric_metadata() -> BlueprintMetadata:
    return BlueprintMetadata(scale=1.0, unit=LengthUnit.METER)


@pytest.fixture
def make_context(settings: EngineSettings) -> Callable[..., JobContext]:
    def _make(custom: EngineSettings | None = None, **kwargs) -> JobContext:
        return JobContext(settings=custom or settings, job_id="test-job", **kwargs)

    return _make


@pytest.fixture
def rectangle() -> Sequence[RawDetection]:
    return jittered_rectangle()
