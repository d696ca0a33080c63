"""JSON-over-HTTP client for the places API: pacing, bounded retries, key masking."""

from __future__ import annotations

import logging
import re
import threading
import time
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlencode

import requests
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential_jitter

from laundry_pipeline.common.constants import USER_AGENT
from laundry_pipeline.common.errors import StageError

# 429 is never retried here; callers get HttpRateLimitError.
TRANSIENT_STATUSES = frozenset({408, 425, 500, 502, 503, 504})
QUOTA_STATUS = 429
KEY_IN_QUERY = re.compile(r"(?P<lead>[?&]key=)[^&\s]+")
MASKED_KEY = "API_KEY_HIDDEN"


@dataclass(frozen=True)
class TimeoutConfig:
    connect: float = 10.0
    read: float = 30.0

    def as_tuple(self) -> tuple[float, float]:
        return (self.connect, self.read)


@dataclass(frozen=True)
class RetryConfig:
    max_attempts: int = 3
    multiplier: float = 1.0
    max_wait: float = 30.0


class HttpRequestError(StageError):
    error_code = "HTTP_ERROR"

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RetryableHttpError(HttpRequestError):
    pass


class HttpNetworkError(RetryableHttpError):
    error_code = "NETWORK_ERROR"


class HttpRateLimitError(HttpRequestError):
    error_code = "RATE_LIMITED"


def mask_api_key(text: str, api_key: str | None = None) -> str:
    """Replace the key in ``key=`` query params and anywhere it appears literally."""
    hidden = KEY_IN_QUERY.sub(lambda match: match.group("lead") + MASKED_KEY, text)
    if api_key:
        hidden = hidden.replace(api_key, MASKED_KEY)
    return hidden


class RequestPacer:
    """Keeps successive requests at least ``1 / requests_per_sec`` apart."""

    def __init__(self, requests_per_sec: float) -> None:
        self.interval = 1.0 / requests_per_sec if requests_per_sec > 0 else 0.0
        self._next_slot = 0.0
        self._lock = threading.Lock()

    def wait_turn(self) -> None:
        with self._lock:
            now = time.monotonic()
            slot = max(now, self._next_slot)
            self._next_slot = slot + self.interval
        delay = slot - now
        if delay > 0:
            time.sleep(delay)


def _classify_status(status: int) -> None:
    if status == QUOTA_STATUS:
        raise HttpRateLimitError(f"HTTP status: {status}", status_code=status)
    if status in TRANSIENT_STATUSES:
        raise RetryableHttpError(f"Retryable HTTP status: {status}", status_code=status)
    if status >= 400:
        raise HttpRequestError(f"HTTP status: {status}", status_code=status)


class HttpClient:
    def __init__(
        self,
        *,
        timeout: TimeoutConfig | None = None,
        retry: RetryConfig | None = None,
        requests_per_sec: float = 10.0,
        api_key: str | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.timeout = timeout or TimeoutConfig()
        self.retry = retry or RetryConfig()
        self.session = requests.Session()
        self.session.headers.update({"User-Agent": USER_AGENT, "Accept": "application/json"})
        self.pacer = RequestPacer(requests_per_sec)
        self.api_key = api_key
        self.logger = logger or logging.getLogger(__name__)

    def close(self) -> None:
        self.session.close()

    def safe_url(self, url: str, params: dict[str, Any] | None = None) -> str:
        if params:
            url = f"{url}?{urlencode(params)}"
        return mask_api_key(url, self.api_key)

    def _fetch_once(
        self,
        url: str,
        params: dict[str, Any] | None,
        headers: dict[str, str] | None,
        timeout: TimeoutConfig,
    ) -> dict[str, Any]:
        self.pacer.wait_turn()
        self.logger.debug("GET %s", self.safe_url(url, params))
        try:
            response = self.session.request(
                method="GET",
                url=url,
                params=params,
                headers=headers,
                timeout=timeout.as_tuple(),
            )
        except requests.RequestException as exc:
            raise HttpNetworkError(f"{type(exc).__name__} calling {self.safe_url(url, params)}") from exc

        _classify_status(response.status_code)
        try:
            return response.json()
        except ValueError as exc:
            raise HttpRequestError(f"Response from {self.safe_url(url)} is not JSON") from exc

    def get_json(
        self,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        timeout: TimeoutConfig | None = None,
    ) -> dict[str, Any]:
        retrying = Retrying(
            stop=stop_after_attempt(self.retry.max_attempts),
            wait=wait_exponential_jitter(initial=self.retry.multiplier, max=self.retry.max_wait, jitter=1.0),
            retry=retry_if_exception_type(RetryableHttpError),
            reraise=True,
        )
        return retrying(self._fetch_once, url, params, headers, timeout or self.timeout)
