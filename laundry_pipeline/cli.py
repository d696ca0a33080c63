"""CLI entrypoint for the laundromat directory import and enrichment pipeline."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from dotenv import find_dotenv, load_dotenv

from laundry_pipeline.common.config_loader import load_settings
from laundry_pipeline.common.constants import EXIT_HARD_FAIL, EXIT_PARTIAL, EXIT_SUCCESS, JOBS
from laundry_pipeline.common.errors import ConfigError, FatalPipelineError, PipelineError
from laundry_pipeline.common.ids import generate_run_id
from laundry_pipeline.common.logging import build_logger, log_event
from laundry_pipeline.pipeline.driver import ShutdownFlag
from laundry_pipeline.pipeline.jobs import JobContext, JobOptions, run_job
from laundry_pipeline.pipeline.reports import summary_status, write_job_summary
from laundry_pipeline.sources.spreadsheet import normalize_state


def _positive_int(value: str) -> int:
    number = int(value)
    if number <= 0:
        raise argparse.ArgumentTypeError(f"expected a positive integer, got {value}")
    return number


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("command", choices=JOBS)
    parser.add_argument("--start", type=_positive_int, default=None, help="first record id to process this run")
    parser.add_argument("--limit", type=_positive_int, default=None, help="records per cycle")
    parser.add_argument("--batch-size", type=_positive_int, default=None)
    parser.add_argument("--continuous", action="store_true")
    parser.add_argument("--max-cycles", type=_positive_int, default=None)
    parser.add_argument(
        "--state", action="append", default=[], type=normalize_state, help="limit import to a state (code or name)"
    )
    parser.add_argument("--source", default=None, help="spreadsheet export (.xlsx or .csv)")
    parser.add_argument("--state-atomic", action="store_true", help="write each state in one transaction")
    parser.add_argument("--config-dir", default="./config")
    parser.add_argument("--overlay-config-dir", default=None)
    parser.add_argument("--data-dir", default="./data")
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    parser.add_argument("--run-id", default=None)
    return parser.parse_args(argv)


def build_options(args: argparse.Namespace) -> JobOptions:
    return JobOptions(
        start=args.start,
        limit=args.limit,
        batch_size=args.batch_size,
        max_cycles=args.max_cycles,
        continuous=args.continuous,
        states=tuple(args.state),
        source=Path(args.source) if args.source else None,
        state_atomic=args.state_atomic,
    )


def run_command(args: argparse.Namespace, shutdown: ShutdownFlag | None = None) -> int:
    load_dotenv(find_dotenv(usecwd=True))
    overlay_config_dir = Path(args.overlay_config_dir) if args.overlay_config_dir else None
    settings = load_settings(Path(args.config_dir), overlay_config_dir=overlay_config_dir)

    job = args.command
    run_id = args.run_id or generate_run_id(job)
    data_dir = Path(args.data_dir)
    logger = build_logger(run_id, job, data_dir=data_dir, level=args.log_level)
    if shutdown is None:
        shutdown = ShutdownFlag()
        shutdown.install()

    ctx = JobContext(
        settings=settings,
        data_dir=data_dir,
        logger=logger,
        run_id=run_id,
        options=build_options(args),
        shutdown=shutdown,
    )
    log_event(logger, "job start", run_id=run_id, job=job, event="JOB_START", status="ok")
    try:
        result = run_job(job, ctx)
    except FatalPipelineError as exc:
        log_event(
            logger,
            f"job aborted: {exc}",
            level=logging.ERROR,
            run_id=run_id,
            job=job,
            event="JOB_FAIL",
            status="error",
            error_code=exc.error_code,
        )
        return EXIT_HARD_FAIL
    finally:
        if ctx.places_client is not None:
            ctx.places_client.close()
        if ctx.engine is not None:
            ctx.engine.dispose()

    summary_path = write_job_summary(data_dir, run_id, result)
    stats = result.stats
    log_event(
        logger,
        f"job end; summary written to {summary_path}",
        run_id=run_id,
        job=job,
        event="JOB_END",
        status=summary_status(result),
        processed=stats.processed,
        skipped=stats.skipped,
        errored=stats.errored,
    )
    if result.had_errors:
        return EXIT_PARTIAL
    return EXIT_SUCCESS


def main(argv: list[str] | None = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    try:
        return run_command(args)
    except ConfigError as exc:
        print(f"configuration error: {exc}", file=sys.stderr)
        return EXIT_HARD_FAIL
    except PipelineError as exc:
        print(f"{exc.error_code}: {exc}", file=sys.stderr)
        return EXIT_HARD_FAIL


if __name__ == "__main__":
    raise SystemExit(main())
