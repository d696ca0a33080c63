from __future__ import annotations

from dataclasses import replace

import pytest
from sqlalchemy import create_engine, select

from laundry_pipeline.common.errors import PersistenceError
from laundry_pipeline.common.models import NearbyPlace, NearbyPlacesResult, SourceRecord, StructuredAddress
from laundry_pipeline.pipeline.transform import enrich_record
from laundry_pipeline.pipeline.writer import (
    LaundromatTableSource,
    PersistenceWriter,
    cities_table,
    create_schema,
    directory_status,
    laundromats_table,
    states_table,
)


@pytest.fixture()
def engine():
    engine = create_engine("sqlite://")
    create_schema(engine)
    yield engine
    engine.dispose()


def _record(record_id=1, **overrides) -> SourceRecord:
    base = SourceRecord(
        record_id=record_id,
        name="Spin Cycle",
        address="100 Congress Ave",
        city="Austin",
        state="TX",
        latitude=30.2672,
        longitude=-97.7431,
        rating=4.2,
        review_count=40,
    )
    return replace(base, **overrides)


def _counts(engine):
    with engine.connect() as conn:
        cities = {row.name: row.laundry_count for row in conn.execute(select(cities_table))}
        states = {row.abbr: row.laundry_count for row in conn.execute(select(states_table))}
    return cities, states


def test_write_inserts_parents_and_increments_counters(engine):
    writer = PersistenceWriter(engine)

    outcome = writer.write(enrich_record(_record()))

    assert outcome.inserted
    assert outcome.slug == "spin-cycle-austin-tx"
    cities, states = _counts(engine)
    assert cities == {"Austin": 1}
    assert states == {"TX": 1}
    with engine.connect() as conn:
        state_row = conn.execute(select(states_table)).one()
    assert (state_row.name, state_row.slug) == ("Texas", "texas")


def test_rewriting_same_record_is_skipped_and_counts_unchanged(engine):
    writer = PersistenceWriter(engine)
    writer.write(enrich_record(_record()))

    again = writer.write(enrich_record(_record(record_id=2, name="SPIN CYCLE")))

    assert again.status == "skipped"
    cities, states = _counts(engine)
    assert cities == {"Austin": 1}
    assert states == {"TX": 1}


def test_slug_collision_gets_sequence_token(engine):
    writer = PersistenceWriter(engine)
    first = writer.write(enrich_record(_record()))
    second = writer.write(enrich_record(_record(record_id=2, address="900 Lamar Blvd")))

    assert first.slug == "spin-cycle-austin-tx"
    assert second.slug == "spin-cycle-austin-tx-1"
    _cities, states = _counts(engine)
    assert states == {"TX": 2}


def test_state_batch_rolls_back_as_a_unit(engine):
    writer = PersistenceWriter(engine)
    good = enrich_record(_record())
    broken = replace(enrich_record(_record(record_id=2, address="1 Other St")), slug=None)

    with pytest.raises(PersistenceError):
        writer.write_state_batch([good, broken])

    with engine.connect() as conn:
        assert conn.execute(select(laundromats_table)).all() == []
    assert _counts(engine) == ({}, {})


def test_state_batch_commits_all_records(engine):
    writer = PersistenceWriter(engine)
    records = [enrich_record(_record(record_id=i, address=f"{i} Main Plaza")) for i in range(1, 4)]

    outcomes = writer.write_state_batch(records)

    assert [o.status for o in outcomes] == ["inserted"] * 3
    assert _counts(engine) == ({"Austin": 3}, {"TX": 3})


def test_reconcile_counters_recomputes_from_rows(engine):
    writer = PersistenceWriter(engine)
    writer.write(enrich_record(_record()))
    writer.write(enrich_record(_record(record_id=2, city="Dallas", address="5 Elm St")))
    with engine.begin() as conn:
        conn.execute(cities_table.update().values(laundry_count=99))
        conn.execute(states_table.update().values(laundry_count=0))

    result = writer.reconcile_counters()

    assert result == {"cities": 2, "states": 1}
    assert _counts(engine) == ({"Austin": 1, "Dallas": 1}, {"TX": 2})


def test_attach_nearby_places_and_table_source(engine):
    writer = PersistenceWriter(engine)
    inserted = writer.write(enrich_record(_record()))
    nearby = NearbyPlacesResult.empty()
    nearby.food.append(NearbyPlace(name="Joe's", category="Restaurant", walking_distance="2 min walk"))

    writer.attach_nearby_places(inserted.laundromat_id, nearby)

    with engine.connect() as conn:
        stored = conn.execute(select(laundromats_table.c.nearby_places)).scalar()
    assert stored["food"][0]["walkingDistance"] == "2 min walk"
    assert stored["transit"] == []

    source = LaundromatTableSource(engine)
    assert source.count() == 1
    assert [row.record_id for row in source.fetch_after(0, 10)] == [inserted.laundromat_id]
    assert source.fetch_after(inserted.laundromat_id, 10) == []


def test_placeholder_source_and_apply_address(engine):
    writer = PersistenceWriter(engine)
    placeholder = writer.write(enrich_record(_record(address="123 Main St")))
    writer.write(enrich_record(_record(record_id=2, address="Placeholder", latitude=None, longitude=None)))
    writer.write(enrich_record(_record(record_id=3, address="77 Real Rd")))
    source = LaundromatTableSource(engine, placeholder_only=True)

    assert source.count() == 1
    row = source.fetch_after(0, 10)[0]
    assert row.record_id == placeholder.laundromat_id

    writer.apply_address(row.record_id, StructuredAddress("101 Congress Ave", "Austin", "TX", "78701", "101 Congress"))

    assert source.count() == 0
    with engine.connect() as conn:
        updated = conn.execute(
            select(laundromats_table.c.address, laundromats_table.c.zip).where(laundromats_table.c.id == row.record_id)
        ).one()
    assert tuple(updated) == ("101 Congress Ave", "78701")


def test_directory_status_orders_states_by_count(engine):
    writer = PersistenceWriter(engine)
    writer.write(enrich_record(_record(1)))
    writer.write(enrich_record(_record(2, address="9 Lake Dr", city="Denver", state="CO", latitude=39.74, longitude=-104.99)))
    writer.write(enrich_record(_record(3, address="123 Main St", city="Dallas")))
    writer.attach_nearby_places(1, NearbyPlacesResult.empty())

    status = directory_status(engine, top=5)

    assert status["laundromats"] == 3
    assert status["top_states"] == [{"state": "TX", "count": 2}, {"state": "CO", "count": 1}]
    assert status["missing_nearby_places"] == 2
    assert status["placeholder_addresses"] == 1
