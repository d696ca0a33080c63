"""Distance helpers for nearby-place text."""

from __future__ import annotations

from pyproj import Geod

_GEOD = Geod(ellps="WGS84")
WALKING_METERS_PER_MINUTE = 83
MAX_WALKING_MINUTES = 30


def geodesic_distance_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    _fwd, _back, distance = _GEOD.inv(lon1, lat1, lon2, lat2)
    return abs(distance)


def walking_distance_text(distance_m: float | None) -> str:
    if distance_m is None:
        return "Nearby"
    minutes = round(distance_m / WALKING_METERS_PER_MINUTE)
    if minutes < 1:
        return "Less than 1 min walk"
    if minutes == 1:
        return "1 min walk"
    if minutes > MAX_WALKING_MINUTES:
        # Driving is roughly five times faster than walking.
        return f"{round(minutes / 5)} min drive"
    return f"{minutes} min walk"


def extract_point(location: dict | None) -> tuple[float | None, float | None]:
    if not location:
        return None, None
    lat = location.get("lat")
    lng = location.get("lng")
    if lat is None or lng is None:
        return None, None
    try:
        return float(lat), float(lng)
    except (TypeError, ValueError):
        return None, None
