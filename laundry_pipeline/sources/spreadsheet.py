"""Spreadsheet export reader (xlsx or csv) producing SourceRecords."""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Iterator

from laundry_pipeline.common.constants import STATE_CODE_BY_NAME, STATE_NAME_BY_CODE
from laundry_pipeline.common.errors import SourceError
from laundry_pipeline.common.fs import read_csv_rows
from laundry_pipeline.common.models import SourceRecord

SUPPORTED_SUFFIXES = (".xlsx", ".xlsm", ".csv")
FALSY_FLAGS = {"", "0", "false", "no", "none", "null"}


def _header_key(value: object) -> str:
    return str(value or "").strip().lower().replace(" ", "_")


def _iter_xlsx_rows(path: Path, sheet_index: int) -> Iterator[dict[str, Any]]:
    from openpyxl import load_workbook

    workbook = load_workbook(path, read_only=True, data_only=True)
    try:
        worksheet = workbook.worksheets[sheet_index]
        rows = worksheet.iter_rows(values_only=True)
        header = next(rows, None)
        if header is None:
            return
        keys = [_header_key(cell) for cell in header]
        for values in rows:
            yield {key: value for key, value in zip(keys, values) if key}
    finally:
        workbook.close()


def _iter_csv_rows(path: Path) -> Iterator[dict[str, Any]]:
    for row in read_csv_rows(path):
        yield {_header_key(key): value for key, value in row.items() if key}


def iter_raw_rows(path: Path, sheet_index: int = 0) -> Iterator[dict[str, Any]]:
    if not path.exists():
        raise SourceError(f"Source file not found: {path}")
    suffix = path.suffix.lower()
    if suffix not in SUPPORTED_SUFFIXES:
        raise SourceError(f"Unsupported source file type: {path.suffix}")
    if suffix == ".csv":
        return _iter_csv_rows(path)
    return _iter_xlsx_rows(path, sheet_index)


def _lookup_first(row: dict[str, Any], candidates: Iterable[str]) -> Any:
    for key in candidates:
        value = row.get(key)
        if value not in (None, ""):
            return value
    return None


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


def _safe_float(value: Any) -> float | None:
    if value in (None, ""):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _safe_int(value: Any) -> int | None:
    number = _safe_float(value)
    if number is None:
        return None
    return int(number)


def _flag(value: Any) -> bool:
    return _text(value).lower() not in FALSY_FLAGS


def normalize_services(value: Any) -> tuple[str, ...]:
    """Accept a JSON list, a comma separated string or a list."""
    if value in (None, ""):
        return ()
    items: Iterable[Any]
    if isinstance(value, (list, tuple)):
        items = value
    else:
        text = str(value).strip()
        try:
            parsed = json.loads(text)
        except ValueError:
            parsed = None
        items = parsed if isinstance(parsed, list) else text.split(",")
    seen: set[str] = set()
    services: list[str] = []
    for item in items:
        cleaned = _text(item)
        if cleaned and cleaned.lower() not in seen:
            seen.add(cleaned.lower())
            services.append(cleaned)
    return tuple(services)


def normalize_state(value: Any) -> str:
    text = _text(value)
    if len(text) == 2 and text.upper() in STATE_NAME_BY_CODE:
        return text.upper()
    return STATE_CODE_BY_NAME.get(text.lower(), text.upper())


def _zip_text(value: Any) -> str:
    text = _text(value)
    if text.isdigit() and len(text) < 5:
        return text.zfill(5)
    return text


def row_to_record(row: dict[str, Any], record_id: int, columns: dict[str, list[str]]) -> SourceRecord | None:
    def pick(field: str) -> Any:
        return _lookup_first(row, columns.get(field, [field]))

    name = _text(pick("name"))
    address = _text(pick("address"))
    if not name and not address:
        return None

    return SourceRecord(
        record_id=record_id,
        name=name,
        address=address,
        city=_text(pick("city")),
        state=normalize_state(pick("state")),
        zip=_zip_text(pick("zip")),
        latitude=_safe_float(pick("latitude")),
        longitude=_safe_float(pick("longitude")),
        phone=_text(pick("phone")),
        website=_text(pick("website")),
        rating=_safe_float(pick("rating")),
        review_count=_safe_int(pick("review_count")),
        hours=_text(pick("hours")),
        services=normalize_services(pick("services")),
        categories=_text(pick("categories")),
        description=_text(pick("description")),
        photos=_flag(pick("photos")),
        logo=_flag(pick("logo")),
    )


def read_source_records(path: Path, source_config: dict) -> list[SourceRecord]:
    """Read every usable row; ``record_id`` is the 1-based data row number."""
    columns = source_config["columns"]
    sheet_index = int(source_config.get("sheet_index", 0))
    records: list[SourceRecord] = []
    for offset, row in enumerate(iter_raw_rows(path, sheet_index), start=1):
        record = row_to_record(row, offset, columns)
        if record is not None:
            records.append(record)
    return records


class SpreadsheetSource:
    """In-memory record source over a parsed spreadsheet, optionally limited to states."""

    def __init__(self, records: list[SourceRecord], states: Iterable[str] | None = None) -> None:
        wanted = {code.upper() for code in states} if states else None
        self.records = sorted(
            (r for r in records if wanted is None or r.state in wanted),
            key=lambda r: r.record_id,
        )

    def fetch_after(self, after_id: int, limit: int) -> list[SourceRecord]:
        pending = [record for record in self.records if record.record_id > after_id]
        return pending[:limit]

    def count(self) -> int:
        return len(self.records)

    def states(self) -> list[str]:
        return sorted({record.state for record in self.records if record.state})


@dataclass(frozen=True)
class StateBatch:
    """All records of one state, written as a single unit in whole-state mode."""

    record_id: int
    state: str
    records: tuple[SourceRecord, ...]

    @property
    def size(self) -> int:
        return len(self.records)


def group_by_state(records: Iterable[SourceRecord]) -> list[StateBatch]:
    """Group records per state; batch ids follow alphabetical state order."""
    grouped: dict[str, list[SourceRecord]] = {}
    for record in records:
        grouped.setdefault(record.state or "", []).append(record)
    return [
        StateBatch(record_id=index, state=state, records=tuple(sorted(grouped[state], key=lambda r: r.record_id)))
        for index, state in enumerate(sorted(grouped), start=1)
    ]


class StateBatchSource:
    def __init__(self, batches: list[StateBatch]) -> None:
        self.batches = batches

    def fetch_after(self, after_id: int, limit: int) -> list[StateBatch]:
        return [batch for batch in self.batches if batch.record_id > after_id][:limit]

    def count(self) -> int:
        return len(self.batches)
