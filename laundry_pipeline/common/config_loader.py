"""Configuration loading: YAML settings plus required environment."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

from laundry_pipeline.common.constants import REQUIRED_ENV_VARS
from laundry_pipeline.common.errors import ConfigError
from laundry_pipeline.common.fs import read_yaml
from laundry_pipeline.common.schema import validate_pipeline_config


@dataclass(frozen=True)
class Settings:
    """Everything a run needs, built once at startup and passed down."""

    database_url: str
    api_key: str
    jobs: dict[str, dict]
    lookup: dict
    source: dict

    def job(self, name: str) -> dict:
        try:
            return self.jobs[name]
        except KeyError:
            raise ConfigError(f"No job configuration for {name!r}") from None


def _deep_merge(base: Any, overlay: Any) -> Any:
    if isinstance(base, dict) and isinstance(overlay, dict):
        merged = dict(base)
        for key, value in overlay.items():
            if key in merged:
                merged[key] = _deep_merge(merged[key], value)
            else:
                merged[key] = value
        return merged
    return overlay


def _load_yaml_with_overlay(path: Path, overlay_path: Path | None) -> dict:
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")
    base = read_yaml(path)
    if overlay_path is None or not overlay_path.exists():
        return base
    overlay = read_yaml(overlay_path)
    return _deep_merge(base, overlay)


def require_env(environ: Mapping[str, str] | None = None) -> dict[str, str]:
    env = os.environ if environ is None else environ
    missing = [name for name in REQUIRED_ENV_VARS if not env.get(name, "").strip()]
    if missing:
        raise ConfigError(f"Missing required environment variables: {', '.join(missing)}")
    return {name: env[name].strip() for name in REQUIRED_ENV_VARS}


def load_settings(
    config_dir: Path,
    *,
    overlay_config_dir: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> Settings:
    env = require_env(environ)
    overlay_path = (overlay_config_dir / "pipeline.yml") if overlay_config_dir is not None else None
    cfg = validate_pipeline_config(_load_yaml_with_overlay(config_dir / "pipeline.yml", overlay_path))
    return Settings(
        database_url=env["DATABASE_URL"],
        api_key=env["GOOGLE_MAPS_API_KEY"],
        jobs=cfg["jobs"],
        lookup=cfg["lookup"],
        source=cfg["source"],
    )
