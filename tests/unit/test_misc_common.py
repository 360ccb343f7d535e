import json
import logging

import pytest

from carceral_pfas.common.errors import ElevationBatchError, PipelineError, StageError
from carceral_pfas.common.fs import read_json, remove_paths, write_csv, write_json
from carceral_pfas.common.logging import build_logger, get_logger, log_event
from carceral_pfas.common.run_meta import generate_run_id, parse_run_date, utc_today_iso


def test_generate_run_id_prefix():
    run_id = generate_run_id()
    assert run_id.startswith("run-")
    assert run_id.endswith("Z")


def test_parse_run_date():
    assert parse_run_date("2026-02-17") == "2026-02-17"
    assert parse_run_date(None) == utc_today_iso()
    with pytest.raises(ValueError):
        parse_run_date("17/02/2026")


def test_elevation_batch_error_carries_range():
    exc = ElevationBatchError("lookup failed", batch_start=200, batch_end=300)
    assert isinstance(exc, StageError)
    assert isinstance(exc, PipelineError)
    assert exc.error_code == "ELEVATION_BATCH_ERROR"
    assert (exc.batch_start, exc.batch_end) == (200, 300)
    assert str(exc) == "lookup failed (rows 200-300)"


def test_json_round_trip_and_csv_writer(tmp_path):
    write_json(tmp_path / "a" / "b.json", {"z": 1, "a": [1, 2]})
    assert read_json(tmp_path / "a" / "b.json") == {"z": 1, "a": [1, 2]}

    write_csv(tmp_path / "out.csv", ["label", "facilities"], [{"label": "FUDS", "facilities": 2, "extra": "x"}])
    assert (tmp_path / "out.csv").read_text(encoding="utf-8").splitlines() == ["label,facilities", "FUDS,2"]


def test_remove_paths_counts_existing_files(tmp_path):
    present = tmp_path / "present.json"
    present.write_text("{}", encoding="utf-8")
    assert remove_paths([present, tmp_path / "absent.json"]) == 1
    assert not present.exists()


def test_build_logger_writes_json_lines(tmp_path):
    logger = build_logger("run-log-test", data_dir=tmp_path)

    log_event(logger, "batch done", source="airports", event="ELEVATION_BATCH", batch_start=0, batch_end=10)
    log_event(logger, "batch failed", level=logging.ERROR, source="airports", error_code="ELEVATION_BATCH_ERROR")
    for handler in logger.handlers:
        handler.flush()

    lines = (tmp_path / "run_meta" / "run-log-test.log.jsonl").read_text(encoding="utf-8").splitlines()
    first, second = (json.loads(line) for line in lines)
    assert first["message"] == "batch done"
    assert first["status"] == "ok"
    assert first["batch_end"] == 10
    assert first["run_id"] is None
    assert second["status"] == "error"
    assert second["error_code"] == "ELEVATION_BATCH_ERROR"


def test_get_logger_falls_back_to_package_logger():
    assert get_logger(None).name == "carceral_pfas"
    custom = logging.getLogger("custom")
    assert get_logger(custom) is custom
