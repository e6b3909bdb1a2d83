"""Pydantic models for content-library items (videos and blog posts)."""

from enum import Enum
from typing import List, Optional, Union

from pydantic import BaseModel, Field


class ContentType(str, Enum):
    VIDEO = "video"
    BLOG = "blog"

    @property
    def url_segment(self) -> str:
        """Path segment used under /library/ for this content type."""
        return f"{self.value}-content"

    @classmethod
    def from_url_segment(cls, segment: str) -> Optional["ContentType"]:
        for member in cls:
            if member.url_segment == segment:
                return member
        return None


class VideoContent(BaseModel):
    name_video: str
    description_video: str = ""
    related_categories: List[str] = Field(default_factory=list)
    page_url: str = ""
    youtube_url: str = ""
    mp3_file: str = ""
    mp3_content: str = Field("", description="Transcript text")

    @property
    def content_type(self) -> ContentType:
        return ContentType.VIDEO

    @property
    def name(self) -> str:
        return self.name_video

    @property
    def description(self) -> str:
        return self.description_video

    @property
    def long_form_text(self) -> str:
        return self.mp3_content or ""


class BlogBody(BaseModel):
    table_of_contents: List[str] = Field(default_factory=list)
    whole_content: str = ""


class BlogPost(BaseModel):
    name_blog: str
    description_blog: str = ""
    page_url: Optional[str] = None
    authors: List[str] = Field(default_factory=list)
    related_categories: List[str] = Field(default_factory=list)
    content: BlogBody = Field(default_factory=BlogBody)
    image_url: Optional[str] = None
    date_published: Optional[str] = None

    @property
    def content_type(self) -> ContentType:
        return ContentType.BLOG

    @property
    def name(self) -> str:
        return self.name_blog

    @property
    def description(self) -> str:
        return self.description_blog

    @property
    def long_form_text(self) -> str:
        return self.content.whole_content or ""


ContentItem = Union[VideoContent, BlogPost]


def is_video_content(item: ContentItem) -> bool:
    return isinstance(item, VideoContent)


def is_blog_post(item: ContentItem) -> bool:
    return isinstance(item, BlogPost)
