from __future__ import annotations

import json
import sys
from pathlib import Path

import pytest
from loguru import logger

from floorplan_core.cli import main
from tests.utils_blueprints import jittered_rectangle, payload_from


@pytest.fixture(autouse=True)
def restore_logging():
    yield
    logger.remove()
    logger.add(sys.stderr)


def test_cli_writes_spatial_data(tmp_path: Path) -> None:
    source = tmp_path / "plan.json"
    source.write_text(json.dumps(payload_from(jittered_rectangle())), encoding="utf-8")
    output = tmp_path / "out" / "spatial.json"

    code = main([str(source), "-o", str(output), "--tolerance", "0.02", "--log-level", "WARNING"])

    assert code == 0
    document = json.loads(output.read_text(encoding="utf-8"))
    assert document["validationStatus"] == "VALID"
    assert document["rooms"][0]["area"] == 12.0


def test_cli_accepts_bare_detection_list(tmp_path: Path, capsys) -> None:
    source = tmp_path / "plan.json"
    source.write_text(json.dumps(payload_from(jittered_rectangle())["detections"]), encoding="utf-8")

    code = main([str(source), "--tolerance", "0.02", "--log-level", "ERROR"])

    assert code == 0
    document = json.loads(capsys.readouterr().out)
    # no metadata at all: scale and unit are defaulted and flagged
    assert document["validationStatus"] == "NEEDS_REVIEW"
    codes = {issue["code"] for issue in document["validationReport"]["issues"]}
    assert "MetadataIncomplete" in codes


def test_cli_exit_code_on_failure(tmp_path: Path) -> None:
    source = tmp_path / "plan.json"
    source.write_text(json.dumps({"detections": [{"kind": "WALL", "polyline": [[0, 0], [0.001, 0]], "confidence": 0.9}]}))
    output = tmp_path / "result.json"

    code = main([str(source), "-o", str(output), "--log-level", "ERROR"])

    assert code == 1
    assert json.loads(output.read_text(encoding="utf-8"))["failure"]["reason"] == "TRANSIENT_ERROR"


def test_cli_rejects_unreadable_input(tmp_path: Path) -> None:
    source = tmp_path / "plan.json"
    source.write_text("{not json", encoding="utf-8")
    assert main([str(source), "--log-level", "ERROR"]) == 1


def test_cli_rejects_invalid_threshold(tmp_path: Path) -> None:
    source = tmp_path / "plan.json"
    source.write_text(json.dumps({"detections": []}), encoding="utf-8")
    assert main([str(source), "--threshold", "2", "--log-level", "ERROR"]) == 1
