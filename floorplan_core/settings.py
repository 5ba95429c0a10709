from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from config.building_standards import STANDARDS
from floorplan_core.exceptions import ConfigurationError
from floorplan_core.geometry.contract import DEFAULT_SNAP_TOLERANCE

# Load .env file from project root
_env_path = Path(__file__).parent.parent / ".env"
if _env_path.exists():
    load_dotenv(_env_path)


# env var -> settings key
_ENV_OVERRIDES = {
    "FLOORPLAN_SNAP_TOLERANCE": "snap_tolerance_m",
    "FLOORPLAN_ACCURACY_THRESHOLD": "accuracy_threshold",
    "FLOORPLAN_DEADLINE_SECONDS": "deadline_seconds",
    "FLOORPLAN_MAX_WORKERS": "max_workers",
}


class RetryPolicy(BaseModel):
    """Supervising policy around the pure pipeline: attempts, backoff, alternate tolerances."""

    model_config = ConfigDict(frozen=True)

    max_attempts: int = Field(2, ge=1, le=2)
    backoff_seconds: float = Field(0.0, ge=0.0)
    tolerance_factors: tuple[float, ...] = Field(default=(0.5,))

    @field_validator("tolerance_factors", mode="before")
    @classmethod
    def _normalize_factors(cls, value: Any) -> tuple[float, ...]:
        if value is None:
            return (0.5,)
        if isinstance(value, (int, float)):
            value = [value]
        factors = tuple(float(v) for v in value)
        if not factors or any(f <= 0.0 for f in factors):
            raise ValueError("tolerance_factors must be a non-empty list of positive numbers")
        return factors

    def alternate_tolerance(self, base: float, attempt: int) -> float:
        """Tolerance to use on the given (1-based) attempt."""
        if attempt <= 1:
            return base
        idx = min(attempt - 2, len(self.tolerance_factors) - 1)
        return base * self.tolerance_factors[idx]


class DimensionDefaults(BaseModel):
    model_config = ConfigDict(frozen=True)

    wall_thickness_m: float = Field(STANDARDS["WALL_THICKNESS"], gt=0.0)
    wall_height_m: float = Field(STANDARDS["WALL_HEIGHT"], gt=0.0)
    door_width_m: float = Field(STANDARDS["DOOR_WIDTH"], gt=0.0)
    door_height_m: float = Field(STANDARDS["DOOR_HEIGHT"], gt=0.0)
    window_width_m: float = Field(STANDARDS["WINDOW_WIDTH"], gt=0.0)
    window_height_m: float = Field(STANDARDS["WINDOW_OVERALL_HEIGHT"], gt=0.0)
    window_sill_m: float = Field(STANDARDS["WINDOW_SILL_HEIGHT"], ge=0.0)
    wall_material: str = STANDARDS["WALL_MATERIAL"]


class LoggingSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    level: str = "INFO"
    json_format: bool = False
    file: Path | None = None


class QueueSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    broker_url_env: str = "CELERY_BROKER_URL"
    result_backend_env: str | None = "CELERY_RESULT_BACKEND"

    @property
    def broker_url(self) -> str:
        return os.getenv(self.broker_url_env) or "memory://"

    @property
    def result_backend(self) -> str | None:
        if not self.result_backend_env:
            return None
        return os.getenv(self.result_backend_env)


class EngineSettings(BaseModel):
    """Configuration consumed by one reconstruction job."""

    model_config = ConfigDict(frozen=True)

    snap_tolerance_m: float = Field(
        DEFAULT_SNAP_TOLERANCE,
        gt=0.0,
        le=1.0,
        description="Merge distance for endpoints in meters",
    )
    accuracy_threshold: float = Field(
        0.9,
        ge=0.0,
        le=1.0,
        description="Minimum aggregate confidence for a VALID result",
    )
    deadline_seconds: float = Field(
        10.0,
        ge=0.0,
        description="Maximum wall-clock time per job",
    )
    opening_overlap_tolerance_m: float = Field(0.01, ge=0.0)
    opening_host_distance_m: float = Field(0.5, gt=0.0)
    max_workers: int = Field(4, ge=1, le=256)
    retry: RetryPolicy = Field(default_factory=RetryPolicy)
    defaults: DimensionDefaults = Field(default_factory=DimensionDefaults)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    queue: QueueSettings = Field(default_factory=QueueSettings)

    def with_tolerance(self, tolerance_m: float) -> "EngineSettings":
        """Return a copy using a different snap tolerance."""
        return self.model_copy(update={"snap_tolerance_m": float(tolerance_m)})

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "EngineSettings":
        try:
            return cls(**data)
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid configuration: {exc}") from exc

    @classmethod
    def load(cls, path: Path | None = None, environ: dict[str, str] | None = None) -> "EngineSettings":
        """Load settings from a YAML file and environment overrides.

        Args:
            path: Optional path to configuration file. If not provided, uses
                FLOORPLAN_CONFIG or config/default.yaml. A missing default file
                yields built-in defaults.
            environ: Environment mapping, ``os.environ`` if None.

        Raises:
            ConfigurationError: If the file or an override is invalid.
        """
        env = os.environ if environ is None else environ
        explicit = path or (Path(env["FLOORPLAN_CONFIG"]) if env.get("FLOORPLAN_CONFIG") else None)
        config_path = explicit or Path(__file__).parent.parent / "config" / "default.yaml"

        payload: dict[str, Any] = {}
        if config_path.exists():
            with config_path.open("r", encoding="utf-8") as fp:
                try:
                    payload = yaml.safe_load(fp) or {}
                except yaml.YAMLError as exc:
                    raise ConfigurationError(f"Unreadable configuration file: {config_path}") from exc
        elif explicit is not None:
            raise ConfigurationError(
                f"Configuration file not found: {config_path}",
                {"path": str(config_path)},
            )
        if not isinstance(payload, dict):
            raise ConfigurationError(f"Configuration root must be a mapping: {config_path}")

        for env_name, key in _ENV_OVERRIDES.items():
            raw = env.get(env_name)
            if raw is None or raw == "":
                continue
            payload[key] = raw

        return cls.from_dict(payload)


@lru_cache(maxsize=1)
def get_settings(path: str | None = None) -> EngineSettings:
    return EngineSettings.load(Path(path) if path else None)


__all__ = [
    "EngineSettings",
    "RetryPolicy",
    "DimensionDefaults",
    "LoggingSettings",
    "QueueSettings",
    "get_settings",
]
