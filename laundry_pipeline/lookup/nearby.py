"""Nearby-places enrichment built on the places client."""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Iterable

from laundry_pipeline.common.constants import NEARBY_GROUPS
from laundry_pipeline.common.errors import RateLimitedError
from laundry_pipeline.common.geometry import extract_point, geodesic_distance_m, walking_distance_text
from laundry_pipeline.common.logging import log_event
from laundry_pipeline.common.models import NearbyPlace, NearbyPlacesResult
from laundry_pipeline.lookup.categories import classify_place, price_level_label
from laundry_pipeline.lookup.places import LookupResult, LookupStatus, PlacesClient, SearchLocation


def shape_place(raw: dict, origin: SearchLocation) -> NearbyPlace:
    name = str(raw.get("name") or "")
    distance = None
    place_lat, place_lon = extract_point((raw.get("geometry") or {}).get("location"))
    if origin.has_coordinates and place_lat is not None and place_lon is not None:
        distance = geodesic_distance_m(origin.latitude, origin.longitude, place_lat, place_lon)
    rating = raw.get("rating")
    return NearbyPlace(
        name=name,
        category=classify_place(raw.get("types"), name),
        walking_distance=walking_distance_text(distance),
        vicinity=str(raw.get("vicinity") or raw.get("formatted_address") or ""),
        rating=float(rating) if isinstance(rating, (int, float)) else None,
        price_level=price_level_label(raw.get("price_level")),
    )


def _chunked(values: list[str], size: int) -> Iterable[list[str]]:
    for i in range(0, len(values), size):
        yield values[i : i + size]


def _place_key(raw: dict) -> str:
    return str(raw.get("place_id") or f"{raw.get('name')}|{raw.get('vicinity') or raw.get('formatted_address')}")


def gather_nearby_places(
    client: PlacesClient,
    location: SearchLocation,
    groups: dict[str, list[str]],
    *,
    max_concurrency: int = 3,
    group_pause_ms: int = 500,
    sleep: Callable[[float], None] = time.sleep,
    logger: logging.Logger | None = None,
    record_id: int | None = None,
) -> NearbyPlacesResult:
    """Collect categorized nearby places for one location.

    Up to ``max_concurrency`` category searches run together, then the caller
    pauses for ``group_pause_ms``. A rate-limited search raises
    ``RateLimitedError`` so the driver can back off; upstream and network
    failures only empty that category.
    """
    logger = logger or logging.getLogger(__name__)
    _location_text, approximate = location.describe()
    nearby = NearbyPlacesResult.empty(approximate=approximate)
    width = max(1, min(4, max_concurrency))

    with ThreadPoolExecutor(max_workers=width) as pool:
        for group in NEARBY_GROUPS:
            categories = list(groups.get(group) or [])
            seen: set[str] = set()
            for chunk in _chunked(categories, width):
                results: list[LookupResult] = list(pool.map(lambda c: client.search_category(c, location), chunk))
                for category, result in zip(chunk, results):
                    if result.status is LookupStatus.RATE_LIMITED:
                        raise RateLimitedError(f"Places quota exhausted while searching {category}")
                    if result.status in (LookupStatus.UPSTREAM_ERROR, LookupStatus.NETWORK_ERROR):
                        log_event(
                            logger,
                            f"{category} lookup failed ({result.detail}); treating as empty",
                            level=logging.WARNING,
                            event="LOOKUP_DEGRADED",
                            record_id=record_id,
                            status=result.status.value,
                            error_code=result.status.name,
                        )
                        continue
                    for raw in result.results:
                        key = _place_key(raw)
                        if key in seen:
                            continue
                        seen.add(key)
                        nearby.group(group).append(shape_place(raw, location))
                if group_pause_ms > 0:
                    sleep(group_pause_ms / 1000)

    return nearby
