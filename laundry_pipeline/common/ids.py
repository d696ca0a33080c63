"""Run identifier helpers."""

from __future__ import annotations

from datetime import datetime, timezone


def generate_run_id(job: str = "run") -> str:
    now = datetime.now(tz=timezone.utc)
    return now.strftime(f"{job}-%Y%m%dT%H%M%S%fZ")
