from __future__ import annotations

from laundry_pipeline.lookup.categories import DEFAULT_LABEL, classify_place, price_level_label


def test_dollar_store_name_wins_over_types():
    assert classify_place(["convenience_store", "store"], "Dollar General #1234") == "Dollar Store"


def test_first_matching_rule_wins():
    assert classify_place(["bar", "restaurant"]) == "Restaurant"
    assert classify_place(["store", "convenience_store"]) == "Convenience Store"
    assert classify_place(["transit_station", "bus_station"]) == "Bus Stop"


def test_unknown_types_fall_back_to_default_label():
    assert classify_place(["point_of_interest", "establishment"], "Mystery Spot") == DEFAULT_LABEL
    assert classify_place(None) == DEFAULT_LABEL


def test_price_level_labels():
    assert [price_level_label(level) for level in range(5)] == ["Free", "$", "$$", "$$$", "$$$$"]
    assert price_level_label(None) == ""
    assert price_level_label(7) == ""
    assert price_level_label(True) == ""
