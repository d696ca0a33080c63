"""Place-type classification into user-facing category labels."""

from __future__ import annotations

from typing import Callable, Iterable

DEFAULT_LABEL = "Point of Interest"
DOLLAR_STORE_NAMES = ("dollar tree", "dollar general", "family dollar", "99 cent")

PlacePredicate = Callable[[frozenset[str], str], bool]


def _has_type(place_type: str) -> PlacePredicate:
    return lambda types, _name: place_type in types


def _name_contains(needles: Iterable[str]) -> PlacePredicate:
    lowered = tuple(needle.lower() for needle in needles)
    return lambda _types, name: any(needle in name for needle in lowered)


# Evaluated top to bottom; the first matching rule wins.
CATEGORY_RULES: tuple[tuple[PlacePredicate, str], ...] = (
    (_name_contains(DOLLAR_STORE_NAMES), "Dollar Store"),
    (_has_type("restaurant"), "Restaurant"),
    (_has_type("cafe"), "Café"),
    (_has_type("bakery"), "Bakery"),
    (_has_type("bar"), "Bar"),
    (_has_type("night_club"), "Bar"),
    (_has_type("grocery_or_supermarket"), "Grocery Store"),
    (_has_type("supermarket"), "Grocery Store"),
    (_has_type("convenience_store"), "Convenience Store"),
    (_has_type("park"), "Park"),
    (_has_type("playground"), "Playground"),
    (_has_type("library"), "Library"),
    (_has_type("shopping_mall"), "Shopping"),
    (_has_type("store"), "Store"),
    (_has_type("church"), "Church"),
    (_has_type("school"), "School"),
    (_has_type("fire_station"), "Fire Station"),
    (_has_type("police"), "Police Station"),
    (_has_type("local_government_office"), "Community Center"),
    (_has_type("bus_station"), "Bus Stop"),
    (_has_type("transit_station"), "Bus Stop"),
    (_has_type("train_station"), "Train Station"),
    (_has_type("subway_station"), "Subway"),
    (_has_type("gas_station"), "Gas Station"),
    (_has_type("post_office"), "Post Office"),
)

PRICE_LEVEL_LABELS = {0: "Free", 1: "$", 2: "$$", 3: "$$$", 4: "$$$$"}


def classify_place(types: Iterable[str] | None, name: str | None = None) -> str:
    type_set = frozenset(types or ())
    lowered_name = (name or "").lower()
    for predicate, label in CATEGORY_RULES:
        if predicate(type_set, lowered_name):
            return label
    return DEFAULT_LABEL


def price_level_label(price_level: object) -> str:
    if isinstance(price_level, bool) or not isinstance(price_level, int):
        return ""
    return PRICE_LEVEL_LABELS.get(price_level, "")
