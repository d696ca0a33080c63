"""Per-job run summaries."""

from __future__ import annotations

from pathlib import Path

from laundry_pipeline.common.fs import write_json
from laundry_pipeline.common.time_utils import utc_timestamp_iso, utc_today_iso
from laundry_pipeline.pipeline.jobs import JobResult


def summary_status(result: JobResult) -> str:
    stats = result.stats
    if stats.errored > 0:
        return "partial"
    if stats.deferred:
        return "deferred"
    if stats.interrupted:
        return "interrupted"
    return "success"


def write_job_summary(data_dir: Path, run_id: str, result: JobResult) -> Path:
    summary_path = data_dir / "reports" / f"{result.job}_summary.json"
    payload = {
        "run_id": run_id,
        "run_date": utc_today_iso(),
        "finished_at": utc_timestamp_iso(),
        "status": summary_status(result),
        **result.to_dict(),
    }
    write_json(summary_path, payload)
    return summary_path
