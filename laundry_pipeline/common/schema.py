"""Minimal strict schemas for YAML config validation."""

from __future__ import annotations

from laundry_pipeline.common.constants import NEARBY_GROUPS
from laundry_pipeline.common.errors import ConfigError

DRIVER_KEYS = {
    "batch_size",
    "per_run_limit",
    "delay_between_items_ms",
    "delay_between_batches_ms",
    "max_cycles",
    "progress_file",
}


def _assert_required_keys(obj: dict, required: set[str], ctx: str) -> None:
    missing = required - set(obj)
    if missing:
        missing_str = ", ".join(sorted(missing))
        raise ConfigError(f"Missing keys in {ctx}: {missing_str}")


def _assert_positive_int(obj: dict, key: str, ctx: str) -> None:
    value = obj.get(key)
    if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
        raise ConfigError(f"{ctx}.{key} must be a positive integer, got {value!r}")


def validate_job_config(cfg: dict, job: str) -> dict:
    ctx = f"jobs.{job}"
    _assert_required_keys(cfg, DRIVER_KEYS, ctx)
    for key in ("batch_size", "per_run_limit", "max_cycles"):
        _assert_positive_int(cfg, key, ctx)
    rate_limit = cfg.get("rate_limit", {})
    if not isinstance(rate_limit, dict):
        raise ConfigError(f"{ctx}.rate_limit must be a mapping")
    return cfg


def validate_lookup_config(cfg: dict) -> dict:
    _assert_required_keys(
        cfg,
        {"text_search_url", "geocode_url", "radius_m", "max_radius_m", "results_per_category", "groups"},
        "lookup",
    )
    if cfg["max_radius_m"] < cfg["radius_m"]:
        raise ConfigError("lookup.max_radius_m must be >= lookup.radius_m")
    unknown_groups = set(cfg["groups"]) - set(NEARBY_GROUPS)
    if unknown_groups:
        raise ConfigError(f"Unknown keys in lookup.groups: {', '.join(sorted(unknown_groups))}")
    concurrency = int(cfg.get("max_concurrency", 3))
    if not 1 <= concurrency <= 4:
        raise ConfigError("lookup.max_concurrency must be between 1 and 4")
    return cfg


def validate_source_config(cfg: dict) -> dict:
    _assert_required_keys(cfg, {"columns"}, "source")
    _assert_required_keys(cfg["columns"], {"name", "address", "city", "state"}, "source.columns")
    return cfg


def validate_pipeline_config(cfg: dict) -> dict:
    _assert_required_keys(cfg, {"jobs", "lookup", "source"}, "pipeline config")
    for job, job_cfg in cfg["jobs"].items():
        validate_job_config(job_cfg, job)
    validate_lookup_config(cfg["lookup"])
    validate_source_config(cfg["source"])
    return cfg
