"""Data models used across the pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from laundry_pipeline.common.constants import NEARBY_GROUPS


@dataclass(frozen=True)
class SourceRecord:
    record_id: int
    name: str
    address: str
    city: str
    state: str
    zip: str = ""
    latitude: float | None = None
    longitude: float | None = None
    phone: str = ""
    website: str = ""
    rating: float | None = None
    review_count: int | None = None
    hours: str = ""
    services: tuple[str, ...] = ()
    categories: str = ""
    description: str = ""
    photos: bool = False
    logo: bool = False


@dataclass(frozen=True)
class EnrichedRecord:
    source: SourceRecord
    name: str
    state_code: str
    state_name: str
    slug: str
    seo_title: str
    seo_description: str
    seo_tags: tuple[str, ...]
    short_summary: str
    premium_score: int
    premium_potential: str
    services: tuple[str, ...]
    amenities: tuple[str, ...]
    is_24_hours: bool

    def natural_key(self) -> tuple[str, str, str, str]:
        return (
            self.name.strip().lower(),
            self.source.address.strip().lower(),
            self.source.city.strip().lower(),
            self.state_code,
        )

    def to_row(self) -> dict[str, Any]:
        src = self.source
        return {
            "name": self.name,
            "slug": self.slug,
            "address": src.address,
            "city": src.city,
            "state": self.state_code,
            "zip": src.zip,
            "phone": src.phone,
            "website": src.website or None,
            "latitude": src.latitude,
            "longitude": src.longitude,
            "rating": src.rating,
            "review_count": src.review_count or 0,
            "hours": src.hours,
            "services": list(self.services),
            "amenities": list(self.amenities),
            "seo_title": self.seo_title,
            "seo_description": self.seo_description,
            "seo_tags": list(self.seo_tags),
            "short_summary": self.short_summary,
            "premium_score": self.premium_score,
            "premium_potential": self.premium_potential,
            "is_24_hours": self.is_24_hours,
        }


@dataclass(frozen=True)
class NearbyPlace:
    name: str
    category: str
    walking_distance: str
    vicinity: str = ""
    rating: float | None = None
    price_level: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "vicinity": self.vicinity,
            "category": self.category,
            "priceLevel": self.price_level,
            "rating": self.rating,
            "walkingDistance": self.walking_distance,
        }


@dataclass
class NearbyPlacesResult:
    food: list[NearbyPlace] = field(default_factory=list)
    activities: list[NearbyPlace] = field(default_factory=list)
    shopping: list[NearbyPlace] = field(default_factory=list)
    transit: list[NearbyPlace] = field(default_factory=list)
    community: list[NearbyPlace] = field(default_factory=list)
    approximate: bool = False

    @classmethod
    def empty(cls, *, approximate: bool = False) -> "NearbyPlacesResult":
        return cls(approximate=approximate)

    def group(self, name: str) -> list[NearbyPlace]:
        if name not in NEARBY_GROUPS:
            raise KeyError(name)
        return getattr(self, name)

    def total(self) -> int:
        return sum(len(self.group(name)) for name in NEARBY_GROUPS)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {name: [place.to_dict() for place in self.group(name)] for name in NEARBY_GROUPS}
        payload["approximate"] = self.approximate
        return payload


@dataclass(frozen=True)
class StructuredAddress:
    street: str
    city: str
    state: str
    zip: str
    formatted: str


@dataclass(frozen=True)
class StoredLaundromat:
    """A laundromat row as read back from the database for enrichment jobs."""

    record_id: int
    name: str
    address: str
    city: str
    state: str
    zip: str = ""
    latitude: float | None = None
    longitude: float | None = None
