"""Job runners wiring sources, lookups, transformer and writer to the driver."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

from sqlalchemy.engine import Engine

from laundry_pipeline.common.config_loader import Settings
from laundry_pipeline.common.errors import (
    ConfigError,
    DeferredRecordError,
    LookupUnavailableError,
    PersistenceError,
    RateLimitedError,
    StageError,
)
from laundry_pipeline.common.fs import write_csv
from laundry_pipeline.common.logging import log_event
from laundry_pipeline.common.models import EnrichedRecord, NearbyPlacesResult, StoredLaundromat
from laundry_pipeline.lookup.nearby import gather_nearby_places
from laundry_pipeline.lookup.places import LookupStatus, PlacesClient, SearchLocation
from laundry_pipeline.pipeline.driver import (
    OUTCOME_PROCESSED,
    OUTCOME_SKIPPED,
    BatchDriver,
    DriverConfig,
    RecordSource,
    RunStats,
    ShutdownFlag,
)
from laundry_pipeline.pipeline.progress import ProgressStore
from laundry_pipeline.pipeline.transform import enrich_record, find_duplicate_addresses
from laundry_pipeline.pipeline.writer import LaundromatTableSource, PersistenceWriter, build_engine, directory_status
from laundry_pipeline.sources.spreadsheet import (
    SpreadsheetSource,
    StateBatch,
    StateBatchSource,
    group_by_state,
    read_source_records,
)

ENRICHED_CSV_COLUMNS = [
    "name",
    "slug",
    "address",
    "city",
    "state",
    "zip",
    "phone",
    "website",
    "latitude",
    "longitude",
    "rating",
    "review_count",
    "hours",
    "services",
    "amenities",
    "seo_title",
    "seo_description",
    "seo_tags",
    "short_summary",
    "premium_score",
    "premium_potential",
    "is_24_hours",
]


@dataclass(frozen=True)
class JobOptions:
    start: int | None = None
    limit: int | None = None
    batch_size: int | None = None
    max_cycles: int | None = None
    continuous: bool = False
    states: tuple[str, ...] = ()
    source: Path | None = None
    state_atomic: bool = False


@dataclass
class JobContext:
    settings: Settings
    data_dir: Path
    logger: logging.Logger
    run_id: str
    options: JobOptions = field(default_factory=JobOptions)
    shutdown: ShutdownFlag = field(default_factory=ShutdownFlag)
    sleep: Callable[[float], None] | None = None
    engine: Engine | None = None
    places_client: Any = None

    def get_engine(self) -> Engine:
        if self.engine is None:
            self.engine = build_engine(self.settings.database_url)
        return self.engine

    def get_places_client(self) -> PlacesClient:
        if self.places_client is None:
            self.places_client = PlacesClient(self.settings.lookup, self.settings.api_key, logger=self.logger)
        return self.places_client

    @property
    def pause(self) -> Callable[[float], None]:
        return self.sleep or self.shutdown.wait


@dataclass
class JobResult:
    job: str
    stats: RunStats
    progress_file: Path | None = None
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def had_errors(self) -> bool:
        return self.stats.errored > 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "job": self.job,
            "stats": self.stats.to_dict(),
            "progress_file": str(self.progress_file) if self.progress_file else None,
            "details": self.details,
        }


def progress_path(ctx: JobContext, job: str, *, suffix: str = "") -> Path:
    name = Path(ctx.settings.job(job)["progress_file"])
    if suffix:
        name = name.with_name(f"{name.stem}-{suffix}{name.suffix}")
    return ctx.data_dir / "state" / name


def _drive(
    ctx: JobContext,
    job: str,
    source: RecordSource,
    processor: Callable[[Any], str],
    path: Path,
) -> RunStats:
    opts = ctx.options
    config = DriverConfig.from_mapping(
        ctx.settings.job(job),
        batch_size=opts.batch_size,
        per_run_limit=opts.limit,
        max_cycles=opts.max_cycles,
    )
    driver = BatchDriver(
        config,
        source,
        processor,
        ProgressStore(path, ctx.logger),
        logger=ctx.logger,
        run_id=ctx.run_id,
        job=job,
        start_at=opts.start,
        shutdown=ctx.shutdown,
        sleep=ctx.sleep,
    )
    return driver.run(continuous=opts.continuous)


def _require_source(ctx: JobContext, job: str) -> Path:
    if ctx.options.source is None:
        raise ConfigError(f"The {job} job needs --source pointing at a spreadsheet export")
    return ctx.options.source


def run_import(ctx: JobContext) -> JobResult:
    source_path = _require_source(ctx, "import")
    writer = PersistenceWriter(ctx.get_engine())
    records = read_source_records(source_path, ctx.settings.source)
    spreadsheet = SpreadsheetSource(records, states=ctx.options.states or None)
    log_event(
        ctx.logger,
        f"read {spreadsheet.count()} records covering {len(spreadsheet.states())} states from {source_path}",
        run_id=ctx.run_id,
        job="import",
        event="SOURCE_READ",
        status="ok",
    )

    if ctx.options.state_atomic:
        def process_state(batch: StateBatch) -> str:
            try:
                outcomes = writer.write_state_batch([enrich_record(record) for record in batch.records])
            except PersistenceError as exc:
                # the whole state rolled back; hold the checkpoint so it is retried next run
                raise DeferredRecordError(f"state {batch.state} rolled back: {exc}") from exc
            return OUTCOME_PROCESSED if any(outcome.inserted for outcome in outcomes) else OUTCOME_SKIPPED

        path = progress_path(ctx, "import", suffix="by-state")
        stats = _drive(ctx, "import", StateBatchSource(group_by_state(spreadsheet.records)), process_state, path)
    else:
        def process_record(record) -> str:
            outcome = writer.write(enrich_record(record))
            return OUTCOME_PROCESSED if outcome.inserted else OUTCOME_SKIPPED

        path = progress_path(ctx, "import")
        stats = _drive(ctx, "import", spreadsheet, process_record, path)

    return JobResult("import", stats, path, {"source": str(source_path), "state_atomic": ctx.options.state_atomic})


def _search_location(row: StoredLaundromat) -> SearchLocation:
    return SearchLocation(
        address=row.address,
        city=row.city,
        state=row.state,
        latitude=row.latitude,
        longitude=row.longitude,
    )


def run_enrich(ctx: JobContext) -> JobResult:
    engine = ctx.get_engine()
    writer = PersistenceWriter(engine)
    client = ctx.get_places_client()
    lookup = ctx.settings.lookup

    def process(row: StoredLaundromat) -> str:
        location = _search_location(row)
        try:
            location.describe()
        except ValueError:
            log_event(
                ctx.logger,
                f"laundromat {row.record_id} has no usable location; storing empty nearby places",
                level=logging.WARNING,
                run_id=ctx.run_id,
                job="enrich",
                record_id=row.record_id,
                event="LOCATION_MISSING",
                status="skipped",
            )
            writer.attach_nearby_places(row.record_id, NearbyPlacesResult.empty())
            return OUTCOME_SKIPPED

        result = gather_nearby_places(
            client,
            location,
            lookup["groups"],
            max_concurrency=int(lookup.get("max_concurrency", 3)),
            group_pause_ms=int(lookup.get("group_pause_ms", 500)),
            sleep=ctx.pause,
            logger=ctx.logger,
            record_id=row.record_id,
        )
        writer.attach_nearby_places(row.record_id, result)
        log_event(
            ctx.logger,
            f"stored {result.total()} nearby places for laundromat {row.record_id}",
            level=logging.DEBUG,
            run_id=ctx.run_id,
            job="enrich",
            record_id=row.record_id,
            event="NEARBY_STORED",
            status="ok",
        )
        return OUTCOME_PROCESSED

    path = progress_path(ctx, "enrich")
    stats = _drive(ctx, "enrich", LaundromatTableSource(engine), process, path)
    return JobResult("enrich", stats, path)


def run_fix_addresses(ctx: JobContext) -> JobResult:
    engine = ctx.get_engine()
    writer = PersistenceWriter(engine)
    client = ctx.get_places_client()

    def process(row: StoredLaundromat) -> str:
        result = client.reverse_geocode(row.latitude, row.longitude)
        if result.status is LookupStatus.RATE_LIMITED:
            raise RateLimitedError(f"Geocoding quota exhausted for laundromat {row.record_id}")
        if result.status is LookupStatus.NETWORK_ERROR:
            raise LookupUnavailableError(f"Geocoding unreachable for laundromat {row.record_id}: {result.detail}")
        if result.status is LookupStatus.EMPTY:
            return OUTCOME_SKIPPED
        if not result.ok:
            raise StageError(f"Reverse geocode failed ({result.status.value}): {result.detail}")
        address = result.results[0]
        if not address.street:
            return OUTCOME_SKIPPED
        writer.apply_address(row.record_id, address)
        return OUTCOME_PROCESSED

    path = progress_path(ctx, "fix-addresses")
    stats = _drive(ctx, "fix-addresses", LaundromatTableSource(engine, placeholder_only=True), process, path)
    return JobResult("fix-addresses", stats, path)


def run_recount(ctx: JobContext) -> JobResult:
    counts = PersistenceWriter(ctx.get_engine()).reconcile_counters()
    log_event(
        ctx.logger,
        f"recomputed counters for {counts['cities']} cities and {counts['states']} states",
        run_id=ctx.run_id,
        job="recount",
        event="COUNTERS_RECONCILED",
        status="ok",
    )
    return JobResult("recount", RunStats(processed=counts["cities"] + counts["states"], cycles=1), details=counts)


def _csv_row(record: EnrichedRecord) -> dict[str, Any]:
    row = record.to_row()
    for key in ("services", "amenities", "seo_tags"):
        row[key] = ", ".join(row[key])
    row["website"] = row["website"] or ""
    return row


def run_enrich_file(ctx: JobContext) -> JobResult:
    source_path = _require_source(ctx, "enrich-file")
    records = read_source_records(source_path, ctx.settings.source)
    duplicates = find_duplicate_addresses(records)
    stats = RunStats(fetched=len(records), skipped=len(duplicates), cycles=1)

    rows: list[dict[str, Any]] = []
    for record in records:
        if record.record_id in duplicates:
            continue
        try:
            rows.append(_csv_row(enrich_record(record)))
        except ValueError as exc:
            stats.errored += 1
            log_event(
                ctx.logger,
                f"could not enrich record {record.record_id}: {exc}",
                level=logging.ERROR,
                run_id=ctx.run_id,
                job="enrich-file",
                record_id=record.record_id,
                event="RECORD_FAILED",
                status="error",
                error_code="ENRICH_FAILED",
            )
            continue
        stats.processed += 1

    output_path = ctx.data_dir / "out" / f"{source_path.stem}_enriched.csv"
    write_csv(output_path, ENRICHED_CSV_COLUMNS, rows)
    stats.exhausted = True
    return JobResult(
        "enrich-file",
        stats,
        details={"output": str(output_path), "duplicates_removed": len(duplicates)},
    )


def _progress_summary(path: Path, ctx: JobContext) -> dict[str, Any]:
    state = ProgressStore(path, ctx.logger).load()
    done = state.processed_count + state.skipped_count
    return {
        "last_processed_id": state.last_processed_id,
        "processed": state.processed_count,
        "skipped": state.skipped_count,
        "total": state.total_count,
        "percent": round(100 * done / state.total_count, 1) if state.total_count else None,
        "errors": len(state.errors),
        "per_state": dict(state.per_state),
    }


def run_status(ctx: JobContext) -> JobResult:
    """Report stored totals plus the checkpoint of every resumable job; changes nothing."""
    counts = directory_status(ctx.get_engine())
    progress: dict[str, Any] = {}
    for job, suffix in (("import", ""), ("import", "by-state"), ("enrich", ""), ("fix-addresses", "")):
        path = progress_path(ctx, job, suffix=suffix)
        if path.exists():
            progress[f"{job}-{suffix}" if suffix else job] = _progress_summary(path, ctx)

    top = ", ".join(f"{row['state']} {row['count']}" for row in counts["top_states"]) or "none"
    log_event(
        ctx.logger,
        f"{counts['laundromats']} laundromats stored; top states: {top}; "
        f"{counts['missing_nearby_places']} without nearby places, "
        f"{counts['placeholder_addresses']} with placeholder addresses",
        run_id=ctx.run_id,
        job="status",
        event="DIRECTORY_STATUS",
        status="ok",
    )
    for name, summary in progress.items():
        log_event(
            ctx.logger,
            f"{name}: after record {summary['last_processed_id']} of {summary['total']} ({summary['percent']}%)",
            run_id=ctx.run_id,
            job="status",
            event="JOB_PROGRESS",
            status="ok",
            processed=summary["processed"],
            skipped=summary["skipped"],
            errored=summary["errors"],
        )
    return JobResult("status", RunStats(cycles=1, exhausted=True), details={**counts, "progress": progress})


JOB_RUNNERS: dict[str, Callable[[JobContext], JobResult]] = {
    "import": run_import,
    "enrich": run_enrich,
    "fix-addresses": run_fix_addresses,
    "recount": run_recount,
    "enrich-file": run_enrich_file,
    "status": run_status,
}


def run_job(job: str, ctx: JobContext) -> JobResult:
    try:
        runner = JOB_RUNNERS[job]
    except KeyError:
        raise ConfigError(f"Unknown job: {job}") from None
    return runner(ctx)
