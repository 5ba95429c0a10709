from __future__ import annotations

from pathlib import Path

import pytest

from floorplan_core.exceptions import ConfigurationError
from floorplan_core.settings import EngineSettings, RetryPolicy

DEFAULT_CONFIG = Path(__file__).resolve().parent.parent / "config" / "default.yaml"


def test_defaults_match_bundled_yaml() -> None:
    loaded = EngineSettings.load(DEFAULT_CONFIG, environ={})
    assert loaded.snap_tolerance_m == pytest.approx(0.03)
    assert loaded.accuracy_threshold == pytest.approx(0.9)
    assert loaded.retry.max_attempts == 2
    assert loaded.retry.tolerance_factors == (0.5,)


def test_environment_overrides_yaml(tmp_path: Path) -> None:
    config = tmp_path / "engine.yaml"
    config.write_text("snap_tolerance_m: 0.05\ndeadline_seconds: 3\n", encoding="utf-8")
    env = {"FLOORPLAN_SNAP_TOLERANCE": "0.01", "FLOORPLAN_MAX_WORKERS": "2"}

    loaded = EngineSettings.load(config, environ=env)

    assert loaded.snap_tolerance_m == pytest.approx(0.01)
    assert loaded.deadline_seconds == pytest.approx(3.0)
    assert loaded.max_workers == 2


def test_config_path_from_environment(tmp_path: Path) -> None:
    config = tmp_path / "engine.yaml"
    config.write_text("accuracy_threshold: 0.75\n", encoding="utf-8")
    loaded = EngineSettings.load(environ={"FLOORPLAN_CONFIG": str(config)})
    assert loaded.accuracy_threshold == pytest.approx(0.75)


def test_missing_explicit_file_raises(tmp_path: Path) -> None:
    with pytest.raises(ConfigurationError):
        EngineSettings.load(tmp_path / "absent.yaml", environ={})


def test_invalid_override_raises() -> None:
    with pytest.raises(ConfigurationError):
        EngineSettings.load(DEFAULT_CONFIG, environ={"FLOORPLAN_ACCURACY_THRESHOLD": "1.5"})


def test_with_tolerance_returns_new_settings() -> None:
    base = EngineSettings()
    changed = base.with_tolerance(0.01)
    assert changed is not base
    assert changed.snap_tolerance_m == pytest.approx(0.01)
    assert base.snap_tolerance_m == pytest.approx(0.03)


def test_retry_policy_alternate_tolerance() -> None:
    policy = RetryPolicy(max_attempts=2, tolerance_factors=[0.5])
    assert policy.alternate_tolerance(0.04, 1) == pytest.approx(0.04)
    assert policy.alternate_tolerance(0.04, 2) == pytest.approx(0.02)


def test_retry_policy_rejects_more_than_one_retry() -> None:
    with pytest.raises(ValueError):
        RetryPolicy(max_attempts=3)
