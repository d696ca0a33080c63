"""Premium listing score.

Each signal contributes a capped number of points on top of a base value and
the total is clamped to [0, 100], so no single signal can dominate.
"""

from __future__ import annotations

SCORE_MIN = 0
SCORE_MAX = 100
BASE_SCORE = 20

RATING_POINTS_PER_STAR = 5
RATING_CAP = 25
REVIEW_BANDS = ((500, 15), (200, 12), (50, 8), (10, 4), (1, 2))
WEBSITE_POINTS = 10
HOURS_POINTS = 5
PHOTOS_POINTS = 10
LOGO_POINTS = 5
POINTS_PER_SERVICE = 3
SERVICES_CAP = 15
ALL_DAY_POINTS = 5

HIGH_POTENTIAL = 60
MEDIUM_POTENTIAL = 35


def clamp(value: int, *, minimum: int, maximum: int) -> int:
    return max(minimum, min(maximum, value))


def _rating_points(rating: float | None) -> int:
    if rating is None or rating != rating:
        return 0
    bounded = max(0.0, min(5.0, float(rating)))
    return clamp(int(round(bounded * RATING_POINTS_PER_STAR)), minimum=0, maximum=RATING_CAP)


def _review_points(review_count: int | None) -> int:
    if not review_count or review_count < 0:
        return 0
    for threshold, points in REVIEW_BANDS:
        if review_count >= threshold:
            return points
    return 0


def premium_score_breakdown(
    *,
    rating: float | None,
    review_count: int | None,
    has_website: bool,
    has_hours: bool,
    has_photos: bool = False,
    has_logo: bool = False,
    service_count: int = 0,
    is_24_hours: bool = False,
) -> dict[str, int]:
    return {
        "base": BASE_SCORE,
        "rating": _rating_points(rating),
        "reviews": _review_points(review_count),
        "website": WEBSITE_POINTS if has_website else 0,
        "hours": HOURS_POINTS if has_hours else 0,
        "photos": PHOTOS_POINTS if has_photos else 0,
        "logo": LOGO_POINTS if has_logo else 0,
        "services": clamp(POINTS_PER_SERVICE * max(service_count, 0), minimum=0, maximum=SERVICES_CAP),
        "all_day": ALL_DAY_POINTS if is_24_hours else 0,
    }


def calculate_premium_score(**signals) -> int:
    raw_score = sum(premium_score_breakdown(**signals).values())
    return clamp(raw_score, minimum=SCORE_MIN, maximum=SCORE_MAX)


def assess_premium_potential(score: int) -> str:
    if score >= HIGH_POTENTIAL:
        return "High"
    if score >= MEDIUM_POTENTIAL:
        return "Medium"
    return "Low"
