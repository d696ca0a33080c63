"""URL slug helpers."""

from __future__ import annotations

import re
from typing import Callable

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")
_TOKEN_RE = re.compile(r"[a-z0-9]+")


def slugify(text: str | None) -> str:
    value = (text or "").strip().lower().replace("&", " and ")
    return _NON_ALNUM_RE.sub("-", value).strip("-")


def generate_slug(name: str | None, city: str | None, state: str | None, token: str | int | None = None) -> str:
    parts = [
        slugify(name) or "unnamed-laundromat",
        slugify(city) or "unknown-city",
        slugify(state) or "unknown-state",
    ]
    if token not in (None, ""):
        token_text = str(token)
        if not _TOKEN_RE.fullmatch(token_text):
            raise ValueError(f"Slug token must be lower-case alphanumeric, got {token_text!r}")
        parts.append(token_text)
    return "-".join(parts)


def unique_slug(base_slug: str, exists: Callable[[str], bool], *, max_attempts: int = 1000) -> str:
    """Append ``-1``, ``-2`` ... to ``base_slug`` until ``exists`` says it is free."""
    if not exists(base_slug):
        return base_slug
    for counter in range(1, max_attempts + 1):
        candidate = f"{base_slug}-{counter}"
        if not exists(candidate):
            return candidate
    raise ValueError(f"Could not find a free slug for {base_slug!r} after {max_attempts} attempts")
