from typing import Optional

import pytest

from library.content_store import ContentStore
from rag.errors import ContentLibraryError
from schemas.content import BlogBody, BlogPost, VideoContent
from schemas.search_result import SearchResult
from settings import Settings


class RateLimited(Exception):
    """Stands in for an SDK error carrying an HTTP 429."""

    status = 429


class FakeIndex:
    """In-memory VectorIndex with scripted search results and upsert failures."""

    def __init__(self, results_by_namespace=None, errors_by_namespace=None, upsert_errors=None):
        self.results_by_namespace = results_by_namespace or {}
        self.errors_by_namespace = errors_by_namespace or {}
        self.upsert_errors = list(upsert_errors or [])
        self.search_calls: list[tuple[str, int, str]] = []
        self.upsert_calls: list[tuple[str, list]] = []

    def search(self, query: str, top_k: int, namespace: str) -> list[SearchResult]:
        self.search_calls.append((query, top_k, namespace))
        if namespace in self.errors_by_namespace:
            raise self.errors_by_namespace[namespace]
        return [r.model_copy() for r in self.results_by_namespace.get(namespace, [])][:top_k]

    def upsert(self, records, namespace: str) -> None:
        self.upsert_calls.append((namespace, list(records)))
        if self.upsert_errors:
            error = self.upsert_errors.pop(0)
            if error is not None:
                raise error


class FakeLLM:
    """LLMClient double: returns a fixed reply or raises a scripted error."""

    provider = "fake"
    model = "fake-model"

    def __init__(self, reply: str = "Grounded answer.", error: Optional[ContentLibraryError] = None, retries: int = 0):
        self.reply = reply
        self.error = error
        self.retries = retries
        self.on_retry = None
        self.prompts: list[str] = []

    def generate(self, prompt: str, **kwargs) -> str:
        self.prompts.append(prompt)
        for attempt in range(self.retries):
            if self.on_retry is not None:
                self.on_retry(f"attempt {attempt + 1} overloaded")
        if self.error is not None:
            raise self.error
        return self.reply


class FakeEmbedder:
    """Maps text onto a 3-d vector by keyword, so similarities are predictable."""

    AXES = ("equity", "pricing", "hiring")

    def embed_single(self, text: str) -> list[float]:
        lowered = text.lower()
        return [1.0 if axis in lowered else 0.0 for axis in self.AXES]

    def embed(self, texts, show_progress: bool = True) -> list[list[float]]:
        return [self.embed_single(t) for t in texts]


@pytest.fixture
def video() -> VideoContent:
    return VideoContent(
        name_video="Startup Legal Mechanics: Founder Equity",
        description_video="How founders split equity and set up vesting.",
        mp3_content="A standard vesting schedule is four years with a one year cliff. "
                    "The cliff protects the company if a co-founder leaves early.",
    )


@pytest.fixture
def blog() -> BlogPost:
    return BlogPost(
        name_blog="The SAFE Explained",
        description_blog="What a SAFE is and how valuation caps work.",
        content=BlogBody(
            table_of_contents=["What is a SAFE"],
            whole_content="A SAFE converts into equity at a future priced round. It is not debt.",
        ),
    )


@pytest.fixture
def store(video, blog) -> ContentStore:
    return ContentStore([video, blog])


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        openai_api_key="sk-test",
        pinecone_api_key="pc-test",
        pinecone_index="content",
        data_dir=tmp_path,
    )
