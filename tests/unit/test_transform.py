from __future__ import annotations

from dataclasses import replace

from laundry_pipeline.common.models import SourceRecord
from laundry_pipeline.pipeline.transform import (
    SEO_DESCRIPTION_MAX,
    SHORT_SUMMARY_MAX,
    detect_service_tags,
    enrich_record,
    find_duplicate_addresses,
    generate_seo_description,
    normalize_business_name,
)


def _record(**overrides) -> SourceRecord:
    base = SourceRecord(
        record_id=1,
        name="Spin Cycle Laundry",
        address="100 Congress Ave",
        city="Austin",
        state="TX",
        zip="78701",
        rating=4.6,
        review_count=120,
        website="https://spincycle.example",
        hours="Mon-Sun: 7AM-10PM",
        services=("Wash and Fold",),
        description="Coin operated machines, free WiFi and a friendly attendant.",
    )
    return replace(base, **overrides)


def test_normalize_business_name_de_shouts_and_strips_state_suffix():
    assert normalize_business_name("SUDS  CITY LAUNDROMAT - TX") == "Suds City Laundromat"
    assert normalize_business_name("  Clean Getaway   Coin Laundry ") == "Clean Getaway Coin Laundry"
    assert normalize_business_name("Wash-N-Go") == "Wash-N-Go"


def test_detect_service_tags_uses_keyword_table():
    tags = detect_service_tags(_record())

    assert "coin laundry" in tags
    assert "wash and fold" in tags
    assert "free wifi" in tags
    assert "attendant" in tags
    assert "open late" in tags
    assert "24 hour" not in tags


def test_open_late_needs_closing_at_nine_or_later():
    early = _record(hours="Mon-Sun: 7AM-8PM", description="", services=())
    late = _record(hours="Mon-Sun 6 am - 9 pm", description="", services=())
    after_midnight = _record(hours="Fri 8AM-2AM", description="", services=())

    assert "open late" not in detect_service_tags(early)
    assert "open late" in detect_service_tags(late)
    assert "open late" in detect_service_tags(after_midnight)


def test_twenty_four_hour_record():
    enriched = enrich_record(_record(hours="Open 24 hours"))

    assert enriched.is_24_hours
    assert "24 Hour Laundromat" in enriched.seo_title
    assert "Open 24 hours" in enriched.short_summary


def test_enrich_record_builds_full_listing():
    enriched = enrich_record(_record())

    assert enriched.slug == "spin-cycle-laundry-austin-tx"
    assert enriched.state_name == "Texas"
    assert enriched.seo_title == "Spin Cycle Laundry - Laundromat in Austin, Texas"
    assert "top-rated" in enriched.seo_description
    assert "laundromat in austin" in enriched.seo_tags
    assert enriched.services[0] == "Wash and Fold"
    assert "Coin Laundry" in enriched.services
    assert "Free WiFi" in enriched.amenities
    assert 0 <= enriched.premium_score <= 100
    assert enriched.premium_potential in {"High", "Medium", "Low"}


def test_enrich_record_is_deterministic():
    assert enrich_record(_record()) == enrich_record(_record())


def test_enrich_record_with_token_and_full_state_name():
    enriched = enrich_record(_record(state="texas"), token="2")

    assert enriched.state_code == "TX"
    assert enriched.slug == "spin-cycle-laundry-austin-tx-2"


def test_text_limits_are_respected():
    services = [f"Very Long Specialty Service Number {i}" for i in range(40)]
    description = generate_seo_description(
        "Spin Cycle Laundry",
        "Austin",
        "Texas",
        rating=4.9,
        services=services,
        is_24_hours=False,
        hours="Mon-Sun 7AM-10PM",
    )
    enriched = enrich_record(_record(services=tuple(services), description="pickup and delivery, 24/7"))

    assert len(description) <= SEO_DESCRIPTION_MAX
    assert description.endswith("...")
    assert len(enriched.seo_description) <= SEO_DESCRIPTION_MAX
    assert len(enriched.short_summary) <= SHORT_SUMMARY_MAX


def test_find_duplicate_addresses_marks_later_occurrences():
    records = [
        _record(record_id=1, address="100 Congress Ave"),
        _record(record_id=2, address=" 100 congress ave "),
        _record(record_id=3, address="200 Lamar Blvd"),
        _record(record_id=4, address=""),
        _record(record_id=5, address=""),
    ]

    assert find_duplicate_addresses(records) == {2}


def test_same_street_in_different_cities_is_not_a_duplicate():
    records = [
        _record(record_id=1, address="100 Main St", city="Austin", state="TX", zip="78701"),
        _record(record_id=2, address="100 Main St", city="Portland", state="OR", zip="97204"),
        _record(record_id=3, address="100 MAIN ST", city="austin", state="TX", zip="78701"),
    ]

    assert find_duplicate_addresses(records) == {3}
