"""Persistence writer over the relational store (SQLAlchemy Core).

A record's parent rows, the laundromat insert and the counter increments all
happen inside one transaction, so a checkpoint saved after ``write`` returns
never points past uncommitted work.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterator, Sequence

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Float,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    create_engine,
    func,
    or_,
    select,
    update,
)
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import DBAPIError, OperationalError, SQLAlchemyError

from laundry_pipeline.common.constants import PLACEHOLDER_ADDRESS_MARKERS, STATE_NAME_BY_CODE
from laundry_pipeline.common.errors import DatabaseUnavailableError, PersistenceError
from laundry_pipeline.common.models import EnrichedRecord, NearbyPlacesResult, StoredLaundromat, StructuredAddress
from laundry_pipeline.common.slugs import slugify, unique_slug

metadata = MetaData()

states_table = Table(
    "states",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("name", String(64), nullable=False, unique=True),
    Column("abbr", String(2), nullable=False, unique=True),
    Column("slug", String(128), nullable=False, unique=True),
    Column("laundry_count", Integer, nullable=False, default=0),
)

cities_table = Table(
    "cities",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("name", String(128), nullable=False),
    Column("state", String(2), nullable=False),
    Column("slug", String(256), nullable=False, unique=True),
    Column("laundry_count", Integer, nullable=False, default=0),
    UniqueConstraint("name", "state", name="uq_cities_name_state"),
)

laundromats_table = Table(
    "laundromats",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("name", String(256), nullable=False),
    Column("slug", String(320), nullable=False, unique=True),
    Column("address", String(256), nullable=False),
    Column("city", String(128), nullable=False),
    Column("state", String(2), nullable=False),
    Column("zip", String(16), nullable=False, default=""),
    Column("phone", String(64), nullable=False, default=""),
    Column("website", String(512)),
    Column("latitude", Float),
    Column("longitude", Float),
    Column("rating", Float),
    Column("review_count", Integer, nullable=False, default=0),
    Column("hours", Text, nullable=False, default=""),
    Column("services", JSON),
    Column("amenities", JSON),
    Column("seo_title", String(256)),
    Column("seo_description", Text),
    Column("seo_tags", JSON),
    Column("short_summary", String(160)),
    Column("premium_score", Integer, nullable=False, default=0),
    Column("premium_potential", String(16)),
    Column("is_24_hours", Boolean, nullable=False, default=False),
    Column("nearby_places", JSON),
    Column("city_id", Integer, ForeignKey("cities.id")),
    Column("state_id", Integer, ForeignKey("states.id")),
)


def build_engine(database_url: str) -> Engine:
    return create_engine(database_url, pool_pre_ping=True)


def create_schema(engine: Engine) -> None:
    metadata.create_all(engine)


def _translate_db_error(exc: SQLAlchemyError) -> Exception:
    if isinstance(exc, OperationalError) or (isinstance(exc, DBAPIError) and exc.connection_invalidated):
        return DatabaseUnavailableError(f"Database unavailable: {exc.__class__.__name__}: {exc}")
    return PersistenceError(f"Database write failed: {exc.__class__.__name__}: {exc}")


@contextmanager
def _transaction(engine: Engine) -> Iterator[Connection]:
    try:
        with engine.begin() as conn:
            yield conn
    except SQLAlchemyError as exc:
        raise _translate_db_error(exc) from exc


def _placeholder_filter():
    return or_(*[laundromats_table.c.address.contains(marker) for marker in PLACEHOLDER_ADDRESS_MARKERS])


def _has_coordinates_filter():
    c = laundromats_table.c
    return (c.latitude.isnot(None)) & (c.longitude.isnot(None)) & ~((c.latitude == 0) & (c.longitude == 0))


class LaundromatRepository:
    """Narrow interface the writer and the database-backed sources rely on."""

    def find_by_natural_key(self, key: tuple[str, str, str, str]) -> int | None:
        raise NotImplementedError

    def slug_exists(self, slug: str) -> bool:
        raise NotImplementedError

    def ensure_state(self, state_code: str) -> int:
        raise NotImplementedError

    def ensure_city(self, city: str, state_code: str) -> int:
        raise NotImplementedError

    def insert_laundromat(self, row: dict[str, Any]) -> int:
        raise NotImplementedError

    def increment_counters(self, city_id: int, state_id: int) -> None:
        raise NotImplementedError

    def recount_counters(self) -> dict[str, int]:
        raise NotImplementedError

    def fetch_after(self, after_id: int, limit: int) -> list[StoredLaundromat]:
        raise NotImplementedError

    def count(self) -> int:
        raise NotImplementedError

    def count_by_state(self, limit: int) -> list[tuple[str, int]]:
        raise NotImplementedError

    def count_missing_nearby_places(self) -> int:
        raise NotImplementedError

    def update_nearby_places(self, laundromat_id: int, payload: dict[str, Any]) -> None:
        raise NotImplementedError

    def fetch_placeholder_addresses(self, after_id: int, limit: int) -> list[StoredLaundromat]:
        raise NotImplementedError

    def count_placeholder_addresses(self) -> int:
        raise NotImplementedError

    def update_address(self, laundromat_id: int, address: StructuredAddress) -> None:
        raise NotImplementedError


class SqlLaundromatRepository(LaundromatRepository):
    """Repository bound to one open connection (and therefore one transaction)."""

    def __init__(self, conn: Connection) -> None:
        self.conn = conn

    def find_by_natural_key(self, key: tuple[str, str, str, str]) -> int | None:
        name, address, city, state = key
        c = laundromats_table.c
        stmt = (
            select(c.id)
            .where(func.lower(c.name) == name)
            .where(func.lower(c.address) == address)
            .where(func.lower(c.city) == city)
            .where(c.state == state)
            .limit(1)
        )
        return self.conn.execute(stmt).scalar()

    def slug_exists(self, slug: str) -> bool:
        stmt = select(laundromats_table.c.id).where(laundromats_table.c.slug == slug).limit(1)
        return self.conn.execute(stmt).first() is not None

    def ensure_state(self, state_code: str) -> int:
        code = state_code.upper()
        existing = self.conn.execute(select(states_table.c.id).where(states_table.c.abbr == code)).scalar()
        if existing is not None:
            return existing
        name = STATE_NAME_BY_CODE.get(code, code)
        result = self.conn.execute(
            states_table.insert().values(name=name, abbr=code, slug=slugify(name) or code.lower(), laundry_count=0)
        )
        return result.inserted_primary_key[0]

    def ensure_city(self, city: str, state_code: str) -> int:
        code = state_code.upper()
        c = cities_table.c
        existing = self.conn.execute(select(c.id).where(c.name == city).where(c.state == code)).scalar()
        if existing is not None:
            return existing
        slug = unique_slug(
            slugify(f"{city}-{code}") or code.lower(),
            lambda candidate: self.conn.execute(select(c.id).where(c.slug == candidate)).first() is not None,
        )
        result = self.conn.execute(cities_table.insert().values(name=city, state=code, slug=slug, laundry_count=0))
        return result.inserted_primary_key[0]

    def insert_laundromat(self, row: dict[str, Any]) -> int:
        result = self.conn.execute(laundromats_table.insert().values(**row))
        return result.inserted_primary_key[0]

    def increment_counters(self, city_id: int, state_id: int) -> None:
        self.conn.execute(
            update(cities_table)
            .where(cities_table.c.id == city_id)
            .values(laundry_count=cities_table.c.laundry_count + 1)
        )
        self.conn.execute(
            update(states_table)
            .where(states_table.c.id == state_id)
            .values(laundry_count=states_table.c.laundry_count + 1)
        )

    def recount_counters(self) -> dict[str, int]:
        lc = laundromats_table.c
        city_count = (
            select(func.count(lc.id)).where(lc.city_id == cities_table.c.id).scalar_subquery()
        )
        state_count = (
            select(func.count(lc.id)).where(lc.state_id == states_table.c.id).scalar_subquery()
        )
        cities = self.conn.execute(update(cities_table).values(laundry_count=city_count)).rowcount
        states = self.conn.execute(update(states_table).values(laundry_count=state_count)).rowcount
        return {"cities": cities, "states": states}

    def _stored(self, stmt) -> list[StoredLaundromat]:
        return [
            StoredLaundromat(
                record_id=row.id,
                name=row.name,
                address=row.address,
                city=row.city,
                state=row.state,
                zip=row.zip or "",
                latitude=row.latitude,
                longitude=row.longitude,
            )
            for row in self.conn.execute(stmt)
        ]

    def _select_stored(self):
        c = laundromats_table.c
        return select(c.id, c.name, c.address, c.city, c.state, c.zip, c.latitude, c.longitude)

    def fetch_after(self, after_id: int, limit: int) -> list[StoredLaundromat]:
        c = laundromats_table.c
        return self._stored(self._select_stored().where(c.id > after_id).order_by(c.id).limit(limit))

    def count(self) -> int:
        return int(self.conn.execute(select(func.count(laundromats_table.c.id))).scalar() or 0)

    def count_by_state(self, limit: int) -> list[tuple[str, int]]:
        c = laundromats_table.c
        total = func.count(c.id).label("total")
        stmt = select(c.state, total).group_by(c.state).order_by(total.desc(), c.state).limit(limit)
        return [(row.state, int(row.total)) for row in self.conn.execute(stmt)]

    def count_missing_nearby_places(self) -> int:
        stmt = select(func.count(laundromats_table.c.id)).where(laundromats_table.c.nearby_places.is_(None))
        return int(self.conn.execute(stmt).scalar() or 0)

    def update_nearby_places(self, laundromat_id: int, payload: dict[str, Any]) -> None:
        self.conn.execute(
            update(laundromats_table).where(laundromats_table.c.id == laundromat_id).values(nearby_places=payload)
        )

    def fetch_placeholder_addresses(self, after_id: int, limit: int) -> list[StoredLaundromat]:
        c = laundromats_table.c
        stmt = (
            self._select_stored()
            .where(c.id > after_id)
            .where(_placeholder_filter())
            .where(_has_coordinates_filter())
            .order_by(c.id)
            .limit(limit)
        )
        return self._stored(stmt)

    def count_placeholder_addresses(self) -> int:
        stmt = (
            select(func.count(laundromats_table.c.id))
            .where(_placeholder_filter())
            .where(_has_coordinates_filter())
        )
        return int(self.conn.execute(stmt).scalar() or 0)

    def update_address(self, laundromat_id: int, address: StructuredAddress) -> None:
        values = {"address": address.street}
        if address.zip:
            values["zip"] = address.zip
        self.conn.execute(update(laundromats_table).where(laundromats_table.c.id == laundromat_id).values(**values))


@dataclass(frozen=True)
class WriteOutcome:
    status: str
    laundromat_id: int
    slug: str = ""

    @property
    def inserted(self) -> bool:
        return self.status == "inserted"


def _write_one(repo: LaundromatRepository, record: EnrichedRecord) -> WriteOutcome:
    existing = repo.find_by_natural_key(record.natural_key())
    if existing is not None:
        return WriteOutcome("skipped", existing)

    state_id = repo.ensure_state(record.state_code)
    city_id = repo.ensure_city(record.source.city, record.state_code)
    slug = unique_slug(record.slug, repo.slug_exists)
    row = record.to_row()
    row.update(slug=slug, city_id=city_id, state_id=state_id)
    laundromat_id = repo.insert_laundromat(row)
    repo.increment_counters(city_id, state_id)
    return WriteOutcome("inserted", laundromat_id, slug)


class PersistenceWriter:
    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def write(self, record: EnrichedRecord) -> WriteOutcome:
        with _transaction(self.engine) as conn:
            return _write_one(SqlLaundromatRepository(conn), record)

    def write_state_batch(self, records: Sequence[EnrichedRecord]) -> list[WriteOutcome]:
        """Write all of one state's records in a single transaction."""
        with _transaction(self.engine) as conn:
            repo = SqlLaundromatRepository(conn)
            return [_write_one(repo, record) for record in records]

    def reconcile_counters(self) -> dict[str, int]:
        with _transaction(self.engine) as conn:
            return SqlLaundromatRepository(conn).recount_counters()

    def attach_nearby_places(self, laundromat_id: int, result: NearbyPlacesResult) -> None:
        with _transaction(self.engine) as conn:
            SqlLaundromatRepository(conn).update_nearby_places(laundromat_id, result.to_dict())

    def apply_address(self, laundromat_id: int, address: StructuredAddress) -> None:
        with _transaction(self.engine) as conn:
            SqlLaundromatRepository(conn).update_address(laundromat_id, address)


class LaundromatTableSource:
    """Record source over stored laundromats, optionally only placeholder addresses."""

    def __init__(self, engine: Engine, *, placeholder_only: bool = False) -> None:
        self.engine = engine
        self.placeholder_only = placeholder_only

    def fetch_after(self, after_id: int, limit: int) -> list[StoredLaundromat]:
        with _transaction(self.engine) as conn:
            repo = SqlLaundromatRepository(conn)
            if self.placeholder_only:
                return repo.fetch_placeholder_addresses(after_id, limit)
            return repo.fetch_after(after_id, limit)

    def count(self) -> int:
        with _transaction(self.engine) as conn:
            repo = SqlLaundromatRepository(conn)
            return repo.count_placeholder_addresses() if self.placeholder_only else repo.count()


def directory_status(engine: Engine, *, top: int = 10) -> dict[str, Any]:
    """Row totals, the largest states and the work still pending for the enrichment jobs."""
    with _transaction(engine) as conn:
        repo = SqlLaundromatRepository(conn)
        return {
            "laundromats": repo.count(),
            "top_states": [{"state": state, "count": count} for state, count in repo.count_by_state(top)],
            "missing_nearby_places": repo.count_missing_nearby_places(),
            "placeholder_addresses": repo.count_placeholder_addresses(),
        }
