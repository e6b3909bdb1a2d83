"""Slug identifiers shared by library URLs, index records and content lookups."""

import re
from typing import NewType, Optional
from urllib.parse import urlparse

from schemas.content import ContentType

Slug = NewType("Slug", str)

_NON_WORD = re.compile(r"[^\w\s]", re.ASCII)
_WHITESPACE = re.compile(r"\s+")

LIBRARY_PREFIX = "library"


def slugify(name: str) -> Slug:
    """Lowercase, strip punctuation, hyphenate whitespace.

    "Startup Legal: Mechanics!" -> "startup-legal-mechanics"
    """
    lowered = (name or "").lower()
    return Slug(_WHITESPACE.sub("-", _NON_WORD.sub("", lowered)))


def library_url(content_type: ContentType, slug: Slug) -> str:
    return f"/{LIBRARY_PREFIX}/{content_type.url_segment}/{slug}"


def parse_library_url(url: Optional[str]) -> Optional[tuple[ContentType, Slug]]:
    """Recover (content type, slug) from a /library/{type}-content/{slug} URL.

    Accepts absolute URLs as well; returns None for anything else.
    """
    if not url:
        return None
    path = urlparse(url).path if "://" in url else url
    parts = [p for p in path.split("/") if p]
    if len(parts) < 3 or parts[0] != LIBRARY_PREFIX:
        return None
    content_type = ContentType.from_url_segment(parts[1])
    if content_type is None or not parts[2]:
        return None
    return content_type, Slug(parts[2])
