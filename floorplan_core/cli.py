"""CLI for the reconstruction engine."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Sequence

from loguru import logger

from floorplan_core.exceptions import ConfigurationError
from floorplan_core.export.adapter import to_json
from floorplan_core.logging_config import setup_logging
from floorplan_core.pipeline.jobs import JobResult
from floorplan_core.pipeline.supervisor import supervise_payload
from floorplan_core.settings import EngineSettings


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="floorplan-engine",
        description="Reconstruct a validated floorplan from raw recognizer detections",
    )
    parser.add_argument("input", type=Path, help="Detections JSON ({'detections': [...], 'metadata': {...}})")
    parser.add_argument("-o", "--output", type=Path, help="Write the spatial data document here (default: stdout)")
    parser.add_argument("--config", type=Path, help="YAML configuration file")
    parser.add_argument("--tolerance", type=float, help="Snap tolerance in meters")
    parser.add_argument("--threshold", type=float, help="Accuracy threshold for a VALID result")
    parser.add_argument("--deadline", type=float, help="Per-job deadline in seconds")
    parser.add_argument("--log-level", default=None, help="Log level (DEBUG, INFO, WARNING, ERROR)")
    parser.add_argument("--json-logs", action="store_true", help="Emit logs as JSON lines")
    return parser


def _load_settings(args: argparse.Namespace) -> EngineSettings:
    settings = EngineSettings.load(args.config)
    overrides: dict[str, Any] = {}
    if args.tolerance is not None:
        overrides["snap_tolerance_m"] = args.tolerance
    if args.threshold is not None:
        overrides["accuracy_threshold"] = args.threshold
    if args.deadline is not None:
        overrides["deadline_seconds"] = args.deadline
    if not overrides:
        return settings
    return EngineSettings.from_dict({**settings.model_dump(), **overrides})


def _read_payload(path: Path) -> dict[str, Any]:
    data = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(data, list):
        # bare list of detections
        return {"detections": data}
    if not isinstance(data, dict):
        raise ValueError("Input must be a JSON object or a list of detections")
    return data


def _write_result(result: JobResult, output: Path | None) -> None:
    if result.spatial_data is not None:
        text = to_json(result.spatial_data, indent=2).decode("utf-8")
    else:
        text = json.dumps(result.to_dict(), indent=2, sort_keys=True, default=str)
    if output is None:
        sys.stdout.write(text + "\n")
        return
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(text + "\n", encoding="utf-8")
    logger.info("Saved spatial data to {}", output)


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = _load_settings(args)
    except ConfigurationError as exc:
        setup_logging(level=args.log_level or "INFO", json_format=args.json_logs)
        logger.error("Configuration error: {}", exc.message)
        return 1
    setup_logging(
        level=args.log_level or settings.logging.level,
        json_format=args.json_logs or settings.logging.json_format,
        log_file=settings.logging.file,
    )

    try:
        payload = _read_payload(args.input)
    except (OSError, ValueError) as exc:
        logger.error("Cannot read {}: {}", args.input, exc)
        return 1

    result = supervise_payload(payload, settings)
    _write_result(result, args.output)

    if not result.succeeded:
        logger.error("Job {} failed: {}", result.job_id, result.failure_reason.value if result.failure_reason else "?")
        return 1
    logger.info("Job {} finished with status {}", result.job_id, result.spatial_data.validation_status.value)
    return 0


if __name__ == "__main__":
    sys.exit(main())
