"""Text helpers for location names: normalization, slugs and SEO copy.

Everything here is pure; no database access.
"""
from __future__ import annotations

import re
from typing import Container, NamedTuple, Optional

_WS_RE = re.compile(r"\s+")
_DISALLOWED_RE = re.compile(r"[^a-z0-9 ]+")
_SLUG_SEP_RE = re.compile(r"[-_]+")
_HYPHENS_RE = re.compile(r"-+")

SEO_TITLE_MAX = 255
FALLBACK_SLUG = "location"


def normalize(text: Optional[str]) -> str:
    """Lowercase, drop anything outside ``[a-z0-9 ]`` and collapse whitespace.

    Non-ASCII letters are dropped, not transliterated: "Zürich" -> "zrich".
    """
    if not text:
        return ""
    s = _WS_RE.sub(" ", str(text).lower())
    s = _DISALLOWED_RE.sub("", s)
    return _WS_RE.sub(" ", s).strip()


def slugify(text: Optional[str]) -> str:
    """Kebab-case slug. Idempotent; may return "" for punctuation-only input."""
    # Existing separators count as word breaks so slugify(slugify(x)) == slugify(x)
    s = normalize(_SLUG_SEP_RE.sub(" ", text or ""))
    s = _HYPHENS_RE.sub("-", s.replace(" ", "-"))
    return s.strip("-")


def unique_slug(base: str, taken: Container[str]) -> str:
    """Return ``base`` or the first free ``base-N`` (N >= 2) not in ``taken``."""
    base = base or FALLBACK_SLUG
    if base not in taken:
        return base
    n = 2
    while f"{base}-{n}" in taken:
        n += 1
    return f"{base}-{n}"


class SeoContent(NamedTuple):
    title: str
    description: str


def seo_content(
    name: str,
    location_type: str,
    province: Optional[str] = None,
    city: Optional[str] = None,
    site_name: str = "Property Listify",
) -> SeoContent:
    if location_type == "province":
        title = f"Properties for Sale & Rent in {name} | {site_name}"
        description = (
            f"Discover properties for sale and rent in {name}. Browse houses, apartments, "
            f"and new developments across {name}'s cities and suburbs."
        )
    elif location_type == "city":
        parent = province or name
        title = f"{name} Properties for Sale & Rent | {parent}"
        description = (
            f"Explore properties in {name}, {parent}. Find houses, apartments, and new "
            f"developments in {name}'s best suburbs."
        )
    elif location_type == "suburb":
        parent = city or "the area"
        context = f", {province}" if province else ""
        title = f"{name} Properties for Sale & Rent | {parent}{context}"
        description = (
            f"Find properties in {name}, {parent}. Browse houses, apartments, and new "
            f"developments in {name}."
        )
    else:
        title = f"{name} Properties | {site_name}"
        description = f"Discover properties in {name}. Browse listings, view prices, and explore the area."
    return SeoContent(title[:SEO_TITLE_MAX], description)
