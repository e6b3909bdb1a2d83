"""Local content store: the videos and blog posts that back the vector index.

Items are loaded from JSON files (a list of objects per file) and indexed by
(content type, slug). The store is the source for seeding the index and for
backfilling search results whose passage text is missing.
"""

import logging
import re
from pathlib import Path
from typing import Iterable, Iterator, Optional

import orjson
from pydantic import ValidationError

from library.slug import Slug, library_url, slugify
from schemas.content import BlogPost, ContentItem, ContentType, VideoContent

logger = logging.getLogger(__name__)

VIDEO_DATA_FILE = "video_content.json"
BLOG_DATA_FILE = "blog_content.json"

_TERM = re.compile(r"[a-z0-9]{3,}")


class ContentStore:
    """In-memory, read-only view over the content library."""

    def __init__(self, items: Iterable[ContentItem] = ()):
        self._items: dict[tuple[ContentType, Slug], ContentItem] = {}
        for item in items:
            self.add(item)

    def add(self, item: ContentItem) -> None:
        key = (item.content_type, slugify(item.name))
        if key in self._items:
            # Names are assumed unique; last one wins.
            logger.warning("Duplicate %s content name '%s'", key[0].value, item.name)
        self._items[key] = item

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[ContentItem]:
        return iter(self._items.values())

    def videos(self) -> list[VideoContent]:
        return [i for i in self._items.values() if isinstance(i, VideoContent)]

    def blogs(self) -> list[BlogPost]:
        return [i for i in self._items.values() if isinstance(i, BlogPost)]

    def lookup(self, content_type: ContentType, slug: Slug) -> Optional[ContentItem]:
        return self._items.get((content_type, slug))

    def url_for(self, item: ContentItem) -> str:
        return library_url(item.content_type, slugify(item.name))

    def keyword_search(self, query: str, top_k: int = 5) -> list[tuple[ContentItem, float]]:
        """Rank items by the share of query terms they contain.

        Returns (item, score) pairs with score in (0, 1], best first.
        """
        terms = set(_TERM.findall(query.lower()))
        if not terms:
            return []
        scored = []
        for item in self._items.values():
            haystack = f"{item.name} {item.description} {item.long_form_text}".lower()
            hits = sum(1 for t in terms if t in haystack)
            if hits:
                scored.append((item, hits / len(terms)))
        scored.sort(key=lambda pair: pair[1], reverse=True)
        return scored[:top_k]

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    @classmethod
    def from_directory(cls, data_dir: Path) -> "ContentStore":
        """Load video_content.json and blog_content.json from a directory.

        Missing files yield an empty section; invalid entries are skipped.
        """
        data_dir = Path(data_dir)
        store = cls()
        for filename, model in ((VIDEO_DATA_FILE, VideoContent), (BLOG_DATA_FILE, BlogPost)):
            path = data_dir / filename
            if not path.exists():
                logger.warning("No content file at %s", path)
                continue
            loaded = skipped = 0
            for raw in _load_json_list(path):
                try:
                    store.add(model(**raw))
                    loaded += 1
                except (ValidationError, TypeError) as e:
                    skipped += 1
                    logger.debug("Skipping invalid entry in %s: %s", path.name, e)
            logger.info("Loaded %d items from %s (skipped %d invalid)", loaded, path.name, skipped)
        return store


def _load_json_list(path: Path) -> list[dict]:
    data = orjson.loads(path.read_bytes())
    return data if isinstance(data, list) else [data]
