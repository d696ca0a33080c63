"""JSON-lines logging; every line carries the same set of keys."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from laundry_pipeline.common.constants import JSON_LOG_FIELDS
from laundry_pipeline.common.fs import ensure_dir
from laundry_pipeline.common.time_utils import utc_timestamp_iso


class JsonLineFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        line: dict[str, Any] = {field: getattr(record, field, None) for field in JSON_LOG_FIELDS}
        line["timestamp"] = utc_timestamp_iso()
        line["level"] = record.levelname
        line["message"] = record.getMessage()
        if record.exc_info:
            line["exception"] = self.formatException(record.exc_info)
        return json.dumps(line, ensure_ascii=False, default=str)


def build_logger(run_id: str, job: str, data_dir: Path, level: str = "INFO") -> logging.Logger:
    """Console plus ``<data_dir>/logs/<job>.log.jsonl``, appended across runs."""
    logger = logging.getLogger(f"laundry_pipeline.{run_id}")
    logger.setLevel(level.upper())
    logger.handlers.clear()

    formatter = JsonLineFormatter()
    log_path = data_dir / "logs" / f"{job}.log.jsonl"
    ensure_dir(log_path.parent)
    for handler in (logging.StreamHandler(), logging.FileHandler(log_path, mode="a", encoding="utf-8")):
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    return logger


def log_event(logger: logging.Logger, message: str, *, level: int = logging.INFO, **event_fields: Any) -> None:
    logger.log(level, message, extra=event_fields)
