from __future__ import annotations

import pytest

from laundry_pipeline.cli import build_options, main, parse_args
from laundry_pipeline.common.constants import EXIT_HARD_FAIL


def test_parse_args_defaults():
    args = parse_args(["enrich"])

    assert args.command == "enrich"
    assert args.start is None
    assert args.limit is None
    assert args.continuous is False
    assert args.config_dir == "./config"


def test_build_options_collects_overrides():
    args = parse_args(
        [
            "import",
            "--start",
            "5",
            "--limit",
            "20",
            "--batch-size",
            "4",
            "--state",
            "tx",
            "--state",
            "CA",
            "--source",
            "export.xlsx",
            "--state-atomic",
        ]
    )

    options = build_options(args)

    assert options.start == 5
    assert options.limit == 20
    assert options.batch_size == 4
    assert options.states == ("TX", "CA")
    assert options.source.name == "export.xlsx"
    assert options.state_atomic


def test_state_filter_accepts_full_state_names():
    args = parse_args(["import", "--state", "texas", "--state", "New York"])

    assert build_options(args).states == ("TX", "NY")


def test_parse_args_rejects_non_positive_limits():
    with pytest.raises(SystemExit):
        parse_args(["enrich", "--limit", "0"])


def test_parse_args_rejects_unknown_job():
    with pytest.raises(SystemExit):
        parse_args(["export"])


def test_missing_env_is_hard_failure_before_any_output(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.delenv("GOOGLE_MAPS_API_KEY", raising=False)
    data_dir = tmp_path / "data"

    exit_code = main(["recount", "--data-dir", str(data_dir)])

    assert exit_code == EXIT_HARD_FAIL
    assert not data_dir.exists()
