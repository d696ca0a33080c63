"""Record transformer: names, service tags, SEO text and scoring.

Everything here is pure and deterministic; the same record always produces
the same enriched record.
"""

from __future__ import annotations

import re
from typing import Iterable

from laundry_pipeline.common.constants import STATE_NAME_BY_CODE
from laundry_pipeline.common.models import EnrichedRecord, SourceRecord
from laundry_pipeline.common.scoring import assess_premium_potential, calculate_premium_score
from laundry_pipeline.common.slugs import generate_slug
from laundry_pipeline.sources.spreadsheet import normalize_services, normalize_state

SEO_DESCRIPTION_MAX = 400
SHORT_SUMMARY_MAX = 150

_STATE_SUFFIX_RE = re.compile(r"\s+-\s+[A-Z]{2}$")
_WHITESPACE_RE = re.compile(r"\s+")
_CLOSING_TIME_RE = re.compile(r"[-–]\s*(\d{1,2})(?::\d{2})?\s*([ap])\.?m\.?", re.IGNORECASE)

SERVICE_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("24 hour", ("open 24 hours", "24 hours", "24 hour", "24/7")),
    ("coin laundry", ("coin", "self-service", "self service")),
    ("self-service", ("self-service", "self service", "coin")),
    ("drop-off", ("drop-off", "drop off", "dropoff")),
    ("wash and fold", ("wash and fold", "wash & fold", "wash-n-fold", "fluff and fold")),
    ("pickup", ("pickup", "pick-up", "pick up")),
    ("delivery", ("delivery",)),
    ("dry cleaning", ("dry clean",)),
    ("eco-friendly", ("eco-friendly", "eco friendly", "environment")),
    ("free wifi", ("wifi", "wi-fi")),
    ("attendant", ("attendant", "attended")),
    ("card payment", ("credit card", "card payment", "card-operated", "accepts cards")),
)

AMENITY_LABELS = {
    "free wifi": "Free WiFi",
    "attendant": "Attendant on Duty",
    "card payment": "Card Payment",
    "eco-friendly": "Eco-Friendly",
}
SERVICE_LABELS = {
    "coin laundry": "Coin Laundry",
    "self-service": "Self-Service",
    "drop-off": "Drop-Off",
    "wash and fold": "Wash and Fold",
    "pickup": "Pickup",
    "delivery": "Delivery",
    "dry cleaning": "Dry Cleaning",
}


def normalize_business_name(name: str) -> str:
    cleaned = _STATE_SUFFIX_RE.sub("", _WHITESPACE_RE.sub(" ", name or "").strip())
    if cleaned and any(ch.isalpha() for ch in cleaned) and cleaned == cleaned.upper():
        cleaned = " ".join(word.capitalize() for word in cleaned.split(" "))
    return cleaned


def _closes_late(hours: str) -> bool:
    for hour_text, meridiem in _CLOSING_TIME_RE.findall(hours):
        hour = int(hour_text)
        if meridiem.lower() == "p" and 9 <= hour < 12:
            return True
        # Closing at midnight or in the small hours counts as late.
        if meridiem.lower() == "a" and (hour == 12 or 1 <= hour <= 4):
            return True
    return "midnight" in hours.lower()


def detect_service_tags(record: SourceRecord) -> tuple[str, ...]:
    haystack = " ".join(
        [record.name, record.categories, record.description, record.hours, " ".join(record.services)]
    ).lower()
    tags = [tag for tag, keywords in SERVICE_KEYWORDS if any(keyword in haystack for keyword in keywords)]
    if "24 hour" not in tags and record.hours and _closes_late(record.hours):
        tags.append("open late")
    return tuple(tags)


def _truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    cut = text[: limit - 3].rsplit(" ", 1)[0].rstrip(" ,.;")
    return f"{cut}..."


def _place_text(city: str, state_name: str) -> str:
    return ", ".join(part for part in (city, state_name) if part)


def _rating_phrase(rating: float | None) -> str:
    if rating is None:
        return ""
    if rating >= 4.5:
        return "top-rated"
    if rating >= 4.0:
        return "highly rated"
    return ""


def generate_seo_title(name: str, city: str, state_name: str, *, is_24_hours: bool = False) -> str:
    kind = "24 Hour Laundromat" if is_24_hours else "Laundromat"
    place = _place_text(city, state_name)
    title = name or "Local Laundromat"
    return f"{title} - {kind} in {place}" if place else f"{title} - {kind}"


def generate_seo_description(
    name: str,
    city: str,
    state_name: str,
    *,
    rating: float | None,
    services: Iterable[str],
    is_24_hours: bool,
    hours: str = "",
) -> str:
    place = _place_text(city, state_name) or "the area"
    phrase = _rating_phrase(rating)
    opener = f"{name or 'This laundromat'} is a {phrase + ' ' if phrase else ''}laundromat in {place}."
    sentences = [opener]
    service_list = list(services)
    if service_list:
        sentences.append(f"Services include {', '.join(service_list)}.")
    if is_24_hours:
        sentences.append("Open 24 hours a day for your convenience.")
    elif hours:
        sentences.append(f"Hours: {hours}.")
    sentences.append(f"Find directions, hours and nearby places for this laundromat in {city or 'your area'}.")
    return _truncate(" ".join(sentences), SEO_DESCRIPTION_MAX)


def generate_seo_tags(
    city: str,
    state_code: str,
    state_name: str,
    zip_code: str,
    detected_tags: Iterable[str],
) -> tuple[str, ...]:
    tags = ["laundromat", "laundry service", "laundromat near me"]
    if city:
        tags.append(f"laundromat in {city}")
    if state_name:
        tags.append(f"{state_name} laundromat")
    if city and state_code:
        tags.append(f"laundromat in {city}, {state_code}")
    if zip_code:
        tags.append(f"laundromat {zip_code}")
    tags.extend(detected_tags)

    seen: set[str] = set()
    unique: list[str] = []
    for tag in tags:
        key = tag.lower()
        if key not in seen:
            seen.add(key)
            unique.append(key)
    return tuple(unique)


def generate_short_summary(detected_tags: Iterable[str], rating: float | None) -> str:
    tags = set(detected_tags)
    if "coin laundry" in tags:
        summary = "Convenient coin-operated laundromat"
    elif "drop-off" in tags or "wash and fold" in tags:
        summary = "Professional laundry service with drop-off options"
    else:
        summary = "Local laundromat offering washing and drying services"
    if rating is not None and rating >= 4.0:
        summary += f" with {rating:g}-star rating"

    if "pickup" in tags and "delivery" in tags:
        summary += ". Pickup and delivery available"
    elif "pickup" in tags:
        summary += ". Pickup service available"
    elif "delivery" in tags:
        summary += ". Delivery service available"

    if "24 hour" in tags:
        summary += ". Open 24 hours"
    elif "open late" in tags:
        summary += ". Open late for convenience"
    return _truncate(summary + ".", SHORT_SUMMARY_MAX)


def _merge_services(source_services: Iterable[str], detected_tags: Iterable[str]) -> tuple[str, ...]:
    merged = list(source_services)
    seen = {service.lower() for service in merged}
    for tag in detected_tags:
        label = SERVICE_LABELS.get(tag)
        if label and label.lower() not in seen:
            seen.add(label.lower())
            merged.append(label)
    return tuple(merged)


def enrich_record(record: SourceRecord, token: str | int | None = None) -> EnrichedRecord:
    name = normalize_business_name(record.name)
    state_code = normalize_state(record.state)
    state_name = STATE_NAME_BY_CODE.get(state_code, state_code)
    detected = detect_service_tags(record)
    is_24_hours = "24 hour" in detected
    services = _merge_services(normalize_services(record.services), detected)
    amenities = tuple(AMENITY_LABELS[tag] for tag in detected if tag in AMENITY_LABELS)

    score = calculate_premium_score(
        rating=record.rating,
        review_count=record.review_count,
        has_website=bool(record.website),
        has_hours=bool(record.hours),
        has_photos=record.photos,
        has_logo=record.logo,
        service_count=len(services),
        is_24_hours=is_24_hours,
    )
    return EnrichedRecord(
        source=record,
        name=name,
        state_code=state_code,
        state_name=state_name,
        slug=generate_slug(name, record.city, state_code, token),
        seo_title=generate_seo_title(name, record.city, state_name, is_24_hours=is_24_hours),
        seo_description=generate_seo_description(
            name,
            record.city,
            state_name,
            rating=record.rating,
            services=services,
            is_24_hours=is_24_hours,
            hours=record.hours,
        ),
        seo_tags=generate_seo_tags(record.city, state_code, state_name, record.zip, detected),
        short_summary=generate_short_summary(detected, record.rating),
        premium_score=score,
        premium_potential=assess_premium_potential(score),
        services=services,
        amenities=amenities,
        is_24_hours=is_24_hours,
    )


def find_duplicate_addresses(records: Iterable[SourceRecord]) -> set[int]:
    """Return ids of records whose full address (street, city, state, zip) repeats an earlier one."""
    first_seen: set[tuple[str, ...]] = set()
    duplicates: set[int] = set()
    for record in records:
        if not record.address.strip():
            continue
        key = tuple(part.strip().lower() for part in (record.address, record.city, record.state, record.zip))
        if key in first_seen:
            duplicates.add(record.record_id)
        else:
            first_seen.add(key)
    return duplicates
