from __future__ import annotations

from pathlib import Path

import pytest

from laundry_pipeline.common.config_loader import load_settings, require_env
from laundry_pipeline.common.errors import ConfigError

ENV = {"DATABASE_URL": "sqlite://", "GOOGLE_MAPS_API_KEY": "test-key"}


def test_load_settings_reads_repo_config():
    settings = load_settings(Path("config"), environ=ENV)

    assert settings.database_url == "sqlite://"
    assert settings.api_key == "test-key"
    assert settings.job("enrich")["batch_size"] == 25
    assert settings.job("enrich")["per_run_limit"] == 100
    assert settings.lookup["groups"]["food"] == ["restaurant", "cafe", "bar"]


def test_missing_env_vars_are_reported_together():
    with pytest.raises(ConfigError) as excinfo:
        require_env({"DATABASE_URL": "  "})

    assert "DATABASE_URL" in str(excinfo.value)
    assert "GOOGLE_MAPS_API_KEY" in str(excinfo.value)


def test_overlay_is_deep_merged(tmp_path: Path):
    overlay_dir = tmp_path / "overlay"
    overlay_dir.mkdir()
    (overlay_dir / "pipeline.yml").write_text(
        "jobs:\n  enrich:\n    batch_size: 5\nlookup:\n  radius_m: 250\n",
        encoding="utf-8",
    )

    settings = load_settings(Path("config"), overlay_config_dir=overlay_dir, environ=ENV)

    assert settings.job("enrich")["batch_size"] == 5
    assert settings.job("enrich")["per_run_limit"] == 100
    assert settings.lookup["radius_m"] == 250
    assert settings.lookup["max_radius_m"] == 4000


def test_invalid_values_raise_config_error(tmp_path: Path):
    overlay_dir = tmp_path / "overlay"
    overlay_dir.mkdir()
    (overlay_dir / "pipeline.yml").write_text("jobs:\n  import:\n    batch_size: 0\n", encoding="utf-8")

    with pytest.raises(ConfigError):
        load_settings(Path("config"), overlay_config_dir=overlay_dir, environ=ENV)


def test_missing_config_file_raises(tmp_path: Path):
    with pytest.raises(ConfigError):
        load_settings(tmp_path, environ=ENV)


def test_unknown_job_raises():
    settings = load_settings(Path("config"), environ=ENV)

    with pytest.raises(ConfigError):
        settings.job("export")
