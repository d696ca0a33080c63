from __future__ import annotations

import pytest

from laundry_pipeline.common.slugs import generate_slug, slugify, unique_slug


def test_slugify_lowercases_and_collapses_punctuation():
    assert slugify("  Suds & Duds -- Laundry!! ") == "suds-and-duds-laundry"


def test_generate_slug_is_idempotent():
    first = generate_slug("Spin Cycle", "Austin", "TX")
    second = generate_slug("Spin Cycle", "Austin", "TX")

    assert first == second == "spin-cycle-austin-tx"


def test_generate_slug_placeholders_for_missing_parts():
    assert generate_slug("", None, "  ") == "unnamed-laundromat-unknown-city-unknown-state"


def test_generate_slug_distinct_tokens_never_collide():
    slugs = {generate_slug("Spin Cycle", "Austin", "TX", token) for token in ("1", "2", "a7", 3)}

    assert len(slugs) == 4
    assert "spin-cycle-austin-tx-3" in slugs


def test_generate_slug_rejects_token_with_separators():
    with pytest.raises(ValueError):
        generate_slug("Spin Cycle", "Austin", "TX", "bad-token")


def test_unique_slug_appends_sequence_until_free():
    taken = {"spin-cycle-austin-tx", "spin-cycle-austin-tx-1"}

    assert unique_slug("spin-cycle-austin-tx", taken.__contains__) == "spin-cycle-austin-tx-2"
    assert unique_slug("wash-world-dallas-tx", taken.__contains__) == "wash-world-dallas-tx"


def test_unique_slug_gives_up_after_max_attempts():
    with pytest.raises(ValueError):
        unique_slug("x", lambda _slug: True, max_attempts=3)
