from __future__ import annotations

import json
import logging
from pathlib import Path

from laundry_pipeline.common.constants import JSON_LOG_FIELDS
from laundry_pipeline.common.fs import read_json, write_json_atomic
from laundry_pipeline.common.geometry import geodesic_distance_m, walking_distance_text
from laundry_pipeline.common.ids import generate_run_id
from laundry_pipeline.common.logging import build_logger, log_event
from laundry_pipeline.common.models import SourceRecord
from laundry_pipeline.pipeline.driver import RunStats
from laundry_pipeline.pipeline.jobs import JobResult
from laundry_pipeline.pipeline.reports import summary_status, write_job_summary
from laundry_pipeline.pipeline.transform import enrich_record


def test_generate_run_id_prefixes_job():
    assert generate_run_id("enrich").startswith("enrich-")


def test_geodesic_distance_is_symmetric_and_roughly_right():
    there = geodesic_distance_m(30.2672, -97.7431, 30.2762, -97.7431)
    back = geodesic_distance_m(30.2762, -97.7431, 30.2672, -97.7431)

    assert abs(there - back) < 1e-6
    assert 990 < there < 1005


def test_walking_distance_text_bands():
    assert walking_distance_text(None) == "Nearby"
    assert walking_distance_text(20) == "Less than 1 min walk"
    assert walking_distance_text(83) == "1 min walk"
    assert walking_distance_text(830) == "10 min walk"
    assert walking_distance_text(83 * 60) == "12 min drive"


def test_write_json_atomic_replaces_existing(tmp_path: Path):
    path = tmp_path / "out.json"
    write_json_atomic(path, {"a": 1})
    write_json_atomic(path, {"a": 2})

    assert read_json(path) == {"a": 2}


def test_logger_writes_json_lines_with_stable_fields(tmp_path: Path):
    logger = build_logger("run-1", "enrich", data_dir=tmp_path, level="INFO")
    log_event(logger, "hello", run_id="run-1", job="enrich", record_id=7, event="RECORD_DONE", status="processed")
    log_event(logger, "hidden", level=logging.DEBUG, event="NOISE")
    for handler in logger.handlers:
        handler.flush()

    lines = (tmp_path / "logs" / "enrich.log.jsonl").read_text(encoding="utf-8").splitlines()
    payload = json.loads(lines[-1])
    assert len(lines) == 1
    assert set(JSON_LOG_FIELDS) <= set(payload)
    assert payload["record_id"] == 7
    assert payload["event"] == "RECORD_DONE"
    assert payload["message"] == "hello"


def test_enriched_natural_key_ignores_case_and_padding():
    a = SourceRecord(1, "Spin  Cycle ", "100 Congress Ave", "Austin", "tx")
    b = SourceRecord(2, "spin cycle", " 100 CONGRESS AVE", "AUSTIN", "Texas")

    assert enrich_record(a).natural_key() == enrich_record(b).natural_key()


def test_job_summary_written_per_job(tmp_path: Path):
    result = JobResult("enrich", RunStats(processed=3, errored=1, cycles=1))

    path = write_job_summary(tmp_path, "run-9", result)

    payload = read_json(path)
    assert path == tmp_path / "reports" / "enrich_summary.json"
    assert payload["run_id"] == "run-9"
    assert payload["status"] == "partial"
    assert payload["stats"]["processed"] == 3
    assert summary_status(JobResult("enrich", RunStats(deferred=True))) == "deferred"
