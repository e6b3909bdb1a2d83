"""Pydantic models for records sent to and returned from the vector index."""

from typing import Optional

from pydantic import BaseModel, Field

NO_CONTENT_SENTINEL = "No content available"


class SearchResult(BaseModel):
    """A single passage returned by a search strategy."""

    title: str = "Untitled"
    url: str = "No URL"
    type: str = Field("unknown", description="'video' | 'blog' | 'unknown'")
    similarity: float = Field(0.0, description="Higher = more relevant")
    text: Optional[str] = NO_CONTENT_SENTINEL
    source: str = Field("", description="Name of the strategy that produced it")

    @property
    def needs_backfill(self) -> bool:
        return not self.text or self.text == NO_CONTENT_SENTINEL


class IndexRecord(BaseModel):
    """One passage paired with the metadata stored alongside it in the index."""

    id: str
    text: str
    title: str
    url: str
    type: str

    def to_upsert_payload(self) -> dict:
        return {
            "_id": self.id,
            "text": self.text,
            "title": self.title,
            "url": self.url,
            "type": self.type,
        }
