"""On-disk checkpoint for resumable batch runs."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from laundry_pipeline.common.constants import MAX_PROGRESS_ERRORS
from laundry_pipeline.common.fs import read_json, write_json_atomic
from laundry_pipeline.common.logging import log_event
from laundry_pipeline.common.time_utils import utc_timestamp_iso


@dataclass
class ProgressState:
    last_processed_id: int = 0
    processed_count: int = 0
    skipped_count: int = 0
    total_count: int = 0
    completed_batches: int = 0
    errors: list[dict[str, Any]] = field(default_factory=list)
    per_state: dict[str, int] = field(default_factory=dict)

    def record_error(self, record_id: Any, message: str) -> None:
        self.errors.append({"id": record_id, "timestamp": utc_timestamp_iso(), "message": message})
        del self.errors[:-MAX_PROGRESS_ERRORS]

    def to_dict(self) -> dict[str, Any]:
        return {
            "lastProcessedId": self.last_processed_id,
            "processedCount": self.processed_count,
            "skippedCount": self.skipped_count,
            "totalCount": self.total_count,
            "completedBatches": self.completed_batches,
            "errors": list(self.errors),
            "perState": dict(self.per_state),
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "ProgressState":
        errors = payload.get("errors") or []
        per_state = payload.get("perState") or {}
        if not isinstance(errors, list) or not isinstance(per_state, dict):
            raise ValueError("errors must be a list and perState a mapping")
        return cls(
            last_processed_id=int(payload.get("lastProcessedId", 0) or 0),
            processed_count=int(payload.get("processedCount", 0) or 0),
            skipped_count=int(payload.get("skippedCount", 0) or 0),
            total_count=int(payload.get("totalCount", 0) or 0),
            completed_batches=int(payload.get("completedBatches", 0) or 0),
            errors=[e for e in errors if isinstance(e, dict)],
            per_state={str(k): int(v) for k, v in per_state.items()},
        )


class ProgressStore:
    """Single-writer JSON checkpoint file."""

    def __init__(self, path: Path, logger: logging.Logger | None = None) -> None:
        self.path = path
        self.logger = logger or logging.getLogger(__name__)

    def load(self) -> ProgressState:
        if not self.path.exists():
            return ProgressState()
        try:
            payload = read_json(self.path)
            if not isinstance(payload, dict):
                raise ValueError("progress file must contain a JSON object")
            return ProgressState.from_dict(payload)
        except (OSError, ValueError, TypeError) as exc:
            # json.JSONDecodeError is a ValueError.
            log_event(
                self.logger,
                f"progress file {self.path} unreadable ({exc}); starting fresh",
                level=logging.WARNING,
                event="PROGRESS_CORRUPT",
                status="warning",
                error_code="PROGRESS_CORRUPT",
            )
            return ProgressState()

    def save(self, state: ProgressState) -> None:
        write_json_atomic(self.path, state.to_dict())
