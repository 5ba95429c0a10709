"""Structured logging configuration for the floorplan engine."""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any

from loguru import logger

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<magenta>{extra[job_id]}</magenta>:<cyan>{extra[stage]}</cyan> | "
    "<level>{message}</level>"
)


class JSONFormatter:
    """One JSON object per line; job_id and stage bindings become top-level keys."""

    def __call__(self, record: dict[str, Any]) -> str:
        extra = dict(record.get("extra") or {})
        log_data = {
            "timestamp": record["time"].isoformat(),
            "level": record["level"].name,
            "job_id": extra.pop("job_id", "-"),
            "stage": extra.pop("stage", "-"),
            "message": record["message"],
            "module": record.get("module", ""),
            "function": record.get("function", ""),
            "line": record.get("line", 0),
        }
        if extra:
            log_data["context"] = extra

        exception = record.get("exception")
        if exception:
            log_data["exception"] = {
                "type": exception.type.__name__ if exception.type else None,
                "value": str(exception.value) if exception.value else None,
            }

        # loguru treats the returned string as a format template
        return json.dumps(log_data, ensure_ascii=False, default=str).replace("{", "{{").replace("}", "}}") + "\n"


def setup_logging(
    *,
    level: str = "INFO",
    json_format: bool = False,
    log_file: Path | None = None,
) -> None:
    """Configure loguru sinks for the engine.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        json_format: Emit JSON lines instead of the colorized console format.
        log_file: Optional rotating log file in addition to stderr.
    """
    logger.remove()
    # unbound records still render in the console format
    logger.configure(extra={"job_id": "-", "stage": "-"})

    formatter: Any = JSONFormatter() if json_format else CONSOLE_FORMAT
    logger.add(sys.stderr, format=formatter, level=level, colorize=not json_format)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_file,
            format=formatter,
            level=level,
            rotation="10 MB",
            retention="7 days",
            compression="zip",
        )


def get_logger(name: str | None = None) -> Any:
    """Get a logger, bound to a component name when one is given."""
    if name:
        return logger.bind(name=name)
    return logger
