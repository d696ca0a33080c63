"""Resumable, rate-limited batch driver.

Records are pulled in ascending id order after the checkpoint, processed one
at a time in chunks of ``batch_size`` and the checkpoint is saved after every
record, once the processor has committed its work. A rate-limited or
unreachable-lookup record is retried with exponential backoff and never
checkpointed until it succeeds; a deferred record ends the run in front of it.
"""

from __future__ import annotations

import logging
import random
import signal
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Protocol, Sequence

from tenacity import RetryCallState, Retrying, retry_if_exception_type, stop_after_attempt, stop_any, wait_exponential

from laundry_pipeline.common.errors import DeferredRecordError, FatalPipelineError, RetryLaterError
from laundry_pipeline.common.logging import log_event
from laundry_pipeline.pipeline.progress import ProgressState, ProgressStore

OUTCOME_PROCESSED = "processed"
OUTCOME_SKIPPED = "skipped"


class RecordSource(Protocol):
    def fetch_after(self, after_id: int, limit: int) -> Sequence[Any]:
        ...

    def count(self) -> int:
        ...


Processor = Callable[[Any], str]


@dataclass(frozen=True)
class DriverConfig:
    batch_size: int
    per_run_limit: int
    delay_between_items_ms: int = 0
    delay_between_batches_ms: int = 0
    jitter_ms: int = 0
    max_cycles: int = 1
    cycle_pause_ms: int = 5000
    rate_limit_max_attempts: int = 5
    rate_limit_backoff_ms: int = 1000
    rate_limit_max_backoff_ms: int = 30000

    @classmethod
    def from_mapping(
        cls,
        cfg: dict,
        *,
        batch_size: int | None = None,
        per_run_limit: int | None = None,
        max_cycles: int | None = None,
    ) -> "DriverConfig":
        rate_limit = cfg.get("rate_limit") or {}
        return cls(
            batch_size=int(batch_size or cfg["batch_size"]),
            per_run_limit=int(per_run_limit or cfg["per_run_limit"]),
            delay_between_items_ms=int(cfg.get("delay_between_items_ms", 0)),
            delay_between_batches_ms=int(cfg.get("delay_between_batches_ms", 0)),
            jitter_ms=int(cfg.get("jitter_ms", 0)),
            max_cycles=int(max_cycles or cfg.get("max_cycles", 1)),
            cycle_pause_ms=int(cfg.get("cycle_pause_ms", 5000)),
            rate_limit_max_attempts=int(rate_limit.get("max_attempts", 5)),
            rate_limit_backoff_ms=int(rate_limit.get("backoff_ms", 1000)),
            rate_limit_max_backoff_ms=int(rate_limit.get("max_backoff_ms", 30000)),
        )


@dataclass
class RunStats:
    fetched: int = 0
    processed: int = 0
    skipped: int = 0
    errored: int = 0
    cycles: int = 0
    exhausted: bool = False
    deferred: bool = False
    interrupted: bool = False

    def absorb(self, other: "RunStats") -> None:
        self.fetched += other.fetched
        self.processed += other.processed
        self.skipped += other.skipped
        self.errored += other.errored
        self.exhausted = other.exhausted
        self.deferred = other.deferred
        self.interrupted = other.interrupted

    def to_dict(self) -> dict[str, Any]:
        return {
            "fetched": self.fetched,
            "processed": self.processed,
            "skipped": self.skipped,
            "errored": self.errored,
            "cycles": self.cycles,
            "exhausted": self.exhausted,
            "deferred": self.deferred,
            "interrupted": self.interrupted,
        }


class ShutdownFlag:
    """Set by SIGINT/SIGTERM; checked before each record and during pauses."""

    def __init__(self) -> None:
        self._event = threading.Event()

    @property
    def requested(self) -> bool:
        return self._event.is_set()

    def request(self, *_args: Any) -> None:
        self._event.set()

    def wait(self, seconds: float) -> None:
        self._event.wait(seconds)

    def install(self) -> None:
        signal.signal(signal.SIGINT, self.request)
        signal.signal(signal.SIGTERM, self.request)


def _chunked(values: Sequence[Any], size: int) -> list[Sequence[Any]]:
    return [values[i : i + size] for i in range(0, len(values), size)]


class BatchDriver:
    def __init__(
        self,
        config: DriverConfig,
        source: RecordSource,
        processor: Processor,
        store: ProgressStore,
        *,
        logger: logging.Logger,
        run_id: str = "",
        job: str = "",
        start_at: int | None = None,
        shutdown: ShutdownFlag | None = None,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        self.config = config
        self.source = source
        self.processor = processor
        self.store = store
        self.logger = logger
        self.run_id = run_id
        self.job = job
        self.start_at = start_at
        self.shutdown = shutdown or ShutdownFlag()
        self.sleep = sleep or self.shutdown.wait

    def _log(self, message: str, *, level: int = logging.INFO, **fields: Any) -> None:
        log_event(self.logger, message, level=level, run_id=self.run_id, job=self.job, **fields)

    def _pause(self, base_ms: int) -> None:
        if base_ms <= 0 and self.config.jitter_ms <= 0:
            return
        jitter = random.uniform(0, self.config.jitter_ms) if self.config.jitter_ms > 0 else 0.0
        self.sleep((base_ms + jitter) / 1000)

    def _log_backoff(self, retry_state: RetryCallState) -> None:
        record = retry_state.args[0] if retry_state.args else None
        wait_s = retry_state.next_action.sleep if retry_state.next_action else 0
        failure = retry_state.outcome.exception() if retry_state.outcome else None
        self._log(
            f"{failure}; backing off {wait_s:.1f}s before retrying",
            level=logging.WARNING,
            record_id=getattr(record, "record_id", None),
            event="RETRY_BACKOFF",
            status="retry",
            attempt=retry_state.attempt_number,
            error_code=getattr(failure, "error_code", "RETRY_LATER"),
        )

    def _process_with_backoff(self, record: Any) -> str:
        cfg = self.config
        retrying = Retrying(
            stop=stop_any(
                stop_after_attempt(cfg.rate_limit_max_attempts),
                lambda _state: self.shutdown.requested,
            ),
            wait=wait_exponential(
                multiplier=cfg.rate_limit_backoff_ms / 1000,
                max=cfg.rate_limit_max_backoff_ms / 1000,
            ),
            retry=retry_if_exception_type(RetryLaterError),
            sleep=self.sleep,
            before_sleep=self._log_backoff,
            reraise=True,
        )
        return retrying(self.processor, record)

    def _first_after_id(self, state: ProgressState) -> int:
        if self.start_at is not None:
            after_id = max(self.start_at - 1, 0)
            self.start_at = None
            return after_id
        return state.last_processed_id

    def run_once(self, state: ProgressState) -> RunStats:
        """Process up to ``per_run_limit`` records after the checkpoint."""
        cfg = self.config
        stats = RunStats(cycles=1)
        records = list(self.source.fetch_after(self._first_after_id(state), cfg.per_run_limit))
        stats.fetched = len(records)
        if not records:
            stats.exhausted = True
            self._log("no more records to process", event="SOURCE_EXHAUSTED", status="ok")
            return stats

        self._log(f"fetched {len(records)} records", event="RUN_FETCH", status="ok")
        chunks = _chunked(records, cfg.batch_size)
        for chunk_index, chunk in enumerate(chunks):
            for position, record in enumerate(chunk):
                if self.shutdown.requested:
                    stats.interrupted = True
                    return stats

                record_id = record.record_id
                started = time.monotonic()
                try:
                    outcome = self._process_with_backoff(record)
                except (RetryLaterError, DeferredRecordError) as exc:
                    stats.deferred = True
                    self._log(
                        f"giving up on record {record_id} for this run: {exc}",
                        level=logging.WARNING,
                        record_id=record_id,
                        event="RECORD_DEFERRED",
                        status="deferred",
                        error_code=exc.error_code,
                    )
                    return stats
                except FatalPipelineError:
                    self.store.save(state)
                    raise
                except Exception as exc:
                    stats.errored += 1
                    state.record_error(record_id, str(exc))
                    self._log(
                        f"record {record_id} failed: {exc}",
                        level=logging.ERROR,
                        record_id=record_id,
                        event="RECORD_FAILED",
                        status="error",
                        error_code=getattr(exc, "error_code", "UNEXPECTED_ERROR"),
                    )
                else:
                    if outcome == OUTCOME_SKIPPED:
                        stats.skipped += 1
                        state.skipped_count += 1
                    else:
                        stats.processed += 1
                        state.processed_count += 1
                        region = getattr(record, "state", None)
                        if region:
                            weight = getattr(record, "size", 1)
                            state.per_state[region] = state.per_state.get(region, 0) + weight
                    self._log(
                        f"record {record_id} {outcome}",
                        level=logging.DEBUG,
                        record_id=record_id,
                        event="RECORD_DONE",
                        status=outcome,
                        duration_ms=round((time.monotonic() - started) * 1000, 1),
                    )

                state.last_processed_id = record_id
                self.store.save(state)

                if position < len(chunk) - 1:
                    self._pause(cfg.delay_between_items_ms)

            state.completed_batches += 1
            self.store.save(state)
            self._log(
                f"batch {chunk_index + 1}/{len(chunks)} complete",
                event="BATCH_DONE",
                status="ok",
                processed=state.processed_count,
                skipped=state.skipped_count,
                errored=len(state.errors),
            )
            if chunk_index < len(chunks) - 1:
                self._pause(cfg.delay_between_batches_ms)

        stats.exhausted = len(records) < cfg.per_run_limit
        return stats

    def run(self, *, continuous: bool = False) -> RunStats:
        state = self.store.load()
        state.total_count = self.source.count()
        self.store.save(state)
        self._log(
            f"starting after record {state.last_processed_id} of {state.total_count}",
            event="RUN_START",
            status="ok",
            processed=state.processed_count,
        )

        totals = RunStats()
        try:
            while True:
                stats = self.run_once(state)
                totals.absorb(stats)
                totals.cycles += 1
                if stats.interrupted or stats.exhausted or stats.deferred or not continuous:
                    break
                if totals.cycles >= self.config.max_cycles:
                    self._log("max cycles reached", event="MAX_CYCLES", status="ok")
                    break
                self._pause(self.config.cycle_pause_ms)
                if self.shutdown.requested:
                    totals.interrupted = True
                    break
        finally:
            self.store.save(state)

        if totals.interrupted:
            self._log("shutdown requested; progress flushed", event="RUN_INTERRUPTED", status="interrupted")
        self._log(
            f"run finished: {totals.processed} processed, {totals.skipped} skipped, {totals.errored} errored",
            event="RUN_END",
            status="deferred" if totals.deferred else "ok",
            processed=totals.processed,
            skipped=totals.skipped,
            errored=totals.errored,
        )
        return totals
