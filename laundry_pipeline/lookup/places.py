"""Places / geocoding API client returning typed lookup results.

HTTP failures never escape this module as exceptions: every call returns a
``LookupResult`` whose status tells the caller whether to back off (rate
limited), skip the category (upstream or network error) or use the results.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any

from laundry_pipeline.common.http import (
    HttpClient,
    HttpNetworkError,
    HttpRateLimitError,
    HttpRequestError,
    RetryConfig,
    TimeoutConfig,
    mask_api_key,
)
from laundry_pipeline.common.logging import log_event
from laundry_pipeline.common.models import StructuredAddress


class LookupStatus(str, Enum):
    OK = "ok"
    EMPTY = "empty"
    RATE_LIMITED = "rate_limited"
    UPSTREAM_ERROR = "upstream_error"
    NETWORK_ERROR = "network_error"


UPSTREAM_STATUS_MAP = {
    "OK": LookupStatus.OK,
    "ZERO_RESULTS": LookupStatus.EMPTY,
    "OVER_QUERY_LIMIT": LookupStatus.RATE_LIMITED,
    "RESOURCE_EXHAUSTED": LookupStatus.RATE_LIMITED,
}


@dataclass(frozen=True)
class LookupResult:
    status: LookupStatus
    results: tuple[Any, ...] = ()
    http_status: int | None = None
    detail: str = ""
    category: str | None = None
    radius_m: int | None = None
    approximate: bool = False

    @property
    def ok(self) -> bool:
        return self.status is LookupStatus.OK


@dataclass(frozen=True)
class SearchLocation:
    address: str = ""
    city: str = ""
    state: str = ""
    latitude: float | None = None
    longitude: float | None = None

    @property
    def has_coordinates(self) -> bool:
        if self.latitude is None or self.longitude is None:
            return False
        return not (self.latitude == 0 and self.longitude == 0)

    def describe(self) -> tuple[str, bool]:
        """Return the best location text and whether it is coordinates only."""
        if self.address and self.city and self.state:
            return f"{self.address}, {self.city}, {self.state}", False
        if self.city and self.state:
            return f"{self.city}, {self.state}", False
        if self.has_coordinates:
            return f"{self.latitude},{self.longitude}", True
        raise ValueError("Location needs a full address, city and state, or coordinates")


class PlacesClient:
    def __init__(
        self,
        lookup_config: dict,
        api_key: str,
        *,
        http_client: HttpClient | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.config = lookup_config
        self.api_key = api_key
        self.logger = logger or logging.getLogger(__name__)
        timeout_cfg = lookup_config.get("timeout", {})
        self.timeout = TimeoutConfig(
            connect=float(timeout_cfg.get("connect_s", 10)),
            read=float(timeout_cfg.get("read_s", 30)),
        )
        self.http = http_client or HttpClient(
            timeout=self.timeout,
            retry=RetryConfig(max_attempts=int(lookup_config.get("http_attempts", 3))),
            requests_per_sec=float(lookup_config.get("requests_per_sec", 10)),
            api_key=api_key,
            logger=self.logger,
        )
        self.radius_m = int(lookup_config["radius_m"])
        self.max_radius_m = int(lookup_config["max_radius_m"])
        self.results_per_category = int(lookup_config["results_per_category"])
        self.fallback_categories: dict[str, list[str]] = lookup_config.get("fallback_categories") or {}

    def close(self) -> None:
        self.http.close()

    def _get(self, url: str, params: dict[str, Any]) -> LookupResult:
        try:
            payload = self.http.get_json(url, params={**params, "key": self.api_key}, timeout=self.timeout)
        except HttpRateLimitError as exc:
            return LookupResult(LookupStatus.RATE_LIMITED, http_status=exc.status_code, detail=str(exc))
        except HttpNetworkError as exc:
            return LookupResult(LookupStatus.NETWORK_ERROR, detail=mask_api_key(str(exc), self.api_key))
        except HttpRequestError as exc:
            return LookupResult(
                LookupStatus.UPSTREAM_ERROR,
                http_status=exc.status_code,
                detail=mask_api_key(str(exc), self.api_key),
            )

        if not isinstance(payload, dict):
            return LookupResult(LookupStatus.UPSTREAM_ERROR, detail=f"unexpected {type(payload).__name__} payload")

        upstream = str(payload.get("status", "OK"))
        status = UPSTREAM_STATUS_MAP.get(upstream, LookupStatus.UPSTREAM_ERROR)
        results = tuple(payload.get("results") or ())
        if status is LookupStatus.OK and not results:
            status = LookupStatus.EMPTY
        return LookupResult(status, results=results if status is LookupStatus.OK else (), detail=upstream)

    def text_search(
        self,
        query: str,
        *,
        location: SearchLocation | None = None,
        radius: int | None = None,
    ) -> LookupResult:
        params: dict[str, Any] = {"query": query}
        if location is not None and location.has_coordinates and radius:
            params["location"] = f"{location.latitude},{location.longitude}"
            params["radius"] = radius
        result = self._get(self.config["text_search_url"], params)
        log_event(
            self.logger,
            f"text search {query!r} -> {result.status.value}",
            level=logging.DEBUG,
            event="LOOKUP_TEXT_SEARCH",
            status=result.status.value,
        )
        return replace(result, radius_m=radius)

    def _category_query(self, category: str, location_text: str) -> str:
        return f"{category.replace('_', ' ')} near {location_text}"

    def search_category(self, category: str, location: SearchLocation) -> LookupResult:
        """Search one category, widening the radius and then trying fallbacks."""
        location_text, approximate = location.describe()
        if approximate:
            log_event(
                self.logger,
                f"searching {category} by coordinates only; results are approximate",
                event="LOOKUP_APPROXIMATE",
                status="warning",
            )

        radius = self.radius_m
        result = self.text_search(self._category_query(category, location_text), location=location, radius=radius)
        while result.status is LookupStatus.EMPTY and location.has_coordinates and radius * 2 <= self.max_radius_m:
            radius *= 2
            result = self.text_search(self._category_query(category, location_text), location=location, radius=radius)
        used_category = category

        if result.status is LookupStatus.EMPTY:
            for fallback in self.fallback_categories.get(category, []):
                result = self.text_search(
                    self._category_query(fallback, location_text),
                    location=location,
                    radius=self.radius_m,
                )
                if result.status is not LookupStatus.EMPTY:
                    used_category = fallback
                    break

        return replace(
            result,
            results=result.results[: self.results_per_category],
            category=used_category,
            approximate=approximate,
        )

    def reverse_geocode(self, latitude: float, longitude: float) -> LookupResult:
        result = self._get(self.config["geocode_url"], {"latlng": f"{latitude},{longitude}"})
        if not result.ok:
            return result
        return replace(result, results=(parse_geocode_result(result.results[0]),))


def _component(components: list[dict], kind: str, key: str = "long_name") -> str:
    for component in components:
        if kind in (component.get("types") or []):
            return str(component.get(key) or "")
    return ""


def parse_geocode_result(result: dict) -> StructuredAddress:
    components = result.get("address_components") or []
    formatted = str(result.get("formatted_address") or "")
    street_number = _component(components, "street_number")
    route = _component(components, "route")
    city = _component(components, "locality") or _component(components, "administrative_area_level_3")
    if street_number and route:
        street = f"{street_number} {route}"
    else:
        street = formatted.split(",")[0].strip()
    return StructuredAddress(
        street=street,
        city=city,
        state=_component(components, "administrative_area_level_1", "short_name"),
        zip=_component(components, "postal_code"),
        formatted=formatted,
    )
