from schemas.content import (
    BlogBody,
    BlogPost,
    ContentItem,
    ContentType,
    VideoContent,
    is_blog_post,
    is_video_content,
)
from schemas.search_result import NO_CONTENT_SENTINEL, IndexRecord, SearchResult
