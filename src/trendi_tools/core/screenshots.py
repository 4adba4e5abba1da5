"""Screenshot references and their public URL resolution.

A tool's stored ``screenshot`` value comes in three shapes that co-exist in
the catalog:

* an absolute URL (seed data, external images),
* a legacy path already routed through the image endpoint
  (``/image?id=<storage id>`` or ``/images/<slug>-<storage id>.png``),
* a bare object-storage identifier.

Values are parsed once at the storage boundary into a :data:`ScreenshotRef`
and resolved by pattern matching, so every read path produces the same URL
for the same asset.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

IMAGE_ROUTE = "/image?id="
SEO_IMAGE_ROUTE = "/images/"
_DOUBLE_PREFIX = IMAGE_ROUTE + IMAGE_ROUTE

_SLUG_STRIP = re.compile(r"[^a-z0-9\s-]")
_SLUG_SPACES = re.compile(r"\s+")
_SLUG_DASHES = re.compile(r"-+")


@dataclass(frozen=True, slots=True)
class Absolute:
    url: str


@dataclass(frozen=True, slots=True)
class LegacyPath:
    path: str


@dataclass(frozen=True, slots=True)
class StorageId:
    id: str


ScreenshotRef = Absolute | LegacyPath | StorageId


def parse_screenshot_ref(value: Optional[str]) -> Optional[ScreenshotRef]:
    """Classify a stored screenshot value. Empty values have no reference."""
    if not value or not value.strip():
        return None
    value = value.strip()
    if value.startswith(("http://", "https://")):
        return Absolute(value)
    if value.startswith((IMAGE_ROUTE, SEO_IMAGE_ROUTE)):
        return LegacyPath(value)
    return StorageId(value)


def image_path_for(storage_id: str) -> str:
    """Relative path recorded for a freshly uploaded asset."""
    return f"{IMAGE_ROUTE}{storage_id}"


def slugify(name: str) -> str:
    slug = _SLUG_STRIP.sub("", name.lower())
    slug = _SLUG_SPACES.sub("-", slug)
    slug = _SLUG_DASHES.sub("-", slug)
    return slug.strip("-")


def resolve_screenshot_url(
    ref: Optional[ScreenshotRef], site_url: str, tool_name: Optional[str] = None
) -> Optional[str]:
    """Turn a reference into the public URL clients should load."""
    base = site_url.rstrip("/")
    match ref:
        case None:
            return None
        case Absolute(url=url):
            return url
        case LegacyPath(path=path):
            return f"{base}{path}"
        case StorageId(id=storage_id):
            slug = slugify(tool_name) if tool_name else ""
            if slug:
                return f"{base}{SEO_IMAGE_ROUTE}{slug}-{storage_id}.png"
            return f"{base}{IMAGE_ROUTE}{storage_id}"
    raise TypeError(f"Unsupported screenshot reference: {ref!r}")


class ScreenshotResolver:
    """Resolves stored screenshot values against one deployment base URL."""

    def __init__(self, site_url: str):
        self._site_url = site_url

    def __call__(self, value: Optional[str], tool_name: Optional[str] = None) -> Optional[str]:
        return resolve_screenshot_url(parse_screenshot_ref(value), self._site_url, tool_name)


def has_double_prefix(value: Optional[str]) -> bool:
    return bool(value) and _DOUBLE_PREFIX in value


def repair_double_prefix(value: str) -> Optional[str]:
    """Collapse ``/image?id=/image?id=<id>`` into ``/image?id=<id>``.

    Returns None when the value is not malformed.
    """
    if not has_double_prefix(value):
        return None
    storage_id = value.rsplit(IMAGE_ROUTE, 1)[1]
    if not storage_id:
        return None
    return image_path_for(storage_id)
