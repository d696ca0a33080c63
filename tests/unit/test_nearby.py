from __future__ import annotations

import threading

import pytest

from laundry_pipeline.common.errors import RateLimitedError
from laundry_pipeline.lookup.nearby import gather_nearby_places, shape_place
from laundry_pipeline.lookup.places import LookupResult, LookupStatus, SearchLocation

ORIGIN = SearchLocation("100 Congress Ave", "Austin", "TX", 30.2672, -97.7431)
GROUPS = {
    "food": ["restaurant", "cafe", "bar"],
    "activities": ["park"],
    "shopping": ["convenience_store"],
    "transit": ["bus_station"],
    "community": ["library"],
}


class FakePlacesClient:
    def __init__(self, by_category=None, default=None):
        self.by_category = by_category or {}
        self.default = default or LookupResult(LookupStatus.EMPTY)
        self.calls = []
        self._lock = threading.Lock()

    def search_category(self, category, location):
        with self._lock:
            self.calls.append(category)
        return self.by_category.get(category, self.default)


def _ok(*places):
    return LookupResult(LookupStatus.OK, results=tuple(places))


def _place(name, place_id, lat=30.2680, lng=-97.7431, **extra):
    return {"name": name, "place_id": place_id, "geometry": {"location": {"lat": lat, "lng": lng}}, **extra}


def test_shape_place_computes_walking_text_and_labels():
    raw = _place("Joe's Diner", "p1", types=["restaurant", "food"], price_level=2, rating=4.4, vicinity="1 Main")

    place = shape_place(raw, ORIGIN)

    assert place.category == "Restaurant"
    assert place.price_level == "$$"
    assert place.rating == 4.4
    assert place.walking_distance == "1 min walk"


def test_shape_place_far_away_becomes_drive_time():
    raw = _place("Outlet Mall", "p2", lat=30.45, lng=-97.7431, types=["shopping_mall"])

    assert shape_place(raw, ORIGIN).walking_distance.endswith("min drive")


def test_shape_place_without_coordinates_is_nearby():
    place = shape_place({"name": "Somewhere", "types": []}, SearchLocation(city="Austin", state="TX"))

    assert place.walking_distance == "Nearby"
    assert place.category == "Point of Interest"


def test_gather_groups_results_and_dedupes_within_group():
    client = FakePlacesClient(
        {
            "restaurant": _ok(_place("Joe's", "p1", types=["restaurant"])),
            "bar": _ok(_place("Joe's", "p1", types=["restaurant"]), _place("Pub", "p3", types=["bar"])),
            "park": _ok(_place("Zilker", "p4", types=["park"])),
        }
    )
    pauses = []

    result = gather_nearby_places(client, ORIGIN, GROUPS, max_concurrency=3, group_pause_ms=500, sleep=pauses.append)

    assert [p.name for p in result.food] == ["Joe's", "Pub"]
    assert [p.name for p in result.activities] == ["Zilker"]
    assert result.total() == 3
    assert sorted(client.calls) == sorted(c for cats in GROUPS.values() for c in cats)
    assert pauses and all(p == 0.5 for p in pauses)


def test_all_empty_still_returns_valid_structure():
    result = gather_nearby_places(FakePlacesClient(), ORIGIN, GROUPS, group_pause_ms=0)

    assert result.to_dict() == {
        "food": [],
        "activities": [],
        "shopping": [],
        "transit": [],
        "community": [],
        "approximate": False,
    }


def test_upstream_and_network_errors_degrade_to_empty():
    client = FakePlacesClient(
        {
            "restaurant": LookupResult(LookupStatus.UPSTREAM_ERROR, detail="REQUEST_DENIED"),
            "cafe": LookupResult(LookupStatus.NETWORK_ERROR, detail="timeout"),
            "bar": _ok(_place("Pub", "p3", types=["bar"])),
        }
    )

    result = gather_nearby_places(client, ORIGIN, GROUPS, group_pause_ms=0)

    assert [p.name for p in result.food] == ["Pub"]


def test_rate_limited_category_raises():
    client = FakePlacesClient({"park": LookupResult(LookupStatus.RATE_LIMITED)})

    with pytest.raises(RateLimitedError):
        gather_nearby_places(client, ORIGIN, GROUPS, group_pause_ms=0)


def test_coordinates_only_location_is_flagged_approximate():
    location = SearchLocation(latitude=30.2672, longitude=-97.7431)

    result = gather_nearby_places(FakePlacesClient(), location, GROUPS, group_pause_ms=0)

    assert result.approximate is True
