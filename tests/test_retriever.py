import pytest

from library.content_store import ContentStore
from rag.errors import EmptyQueryError, NamespaceNotFoundError, SearchError
from rag.retriever import (
    NO_DETAILED_CONTENT,
    EmbeddingSearchStrategy,
    LocalContentStrategy,
    Retriever,
    VectorIndexStrategy,
    backfill,
    build_retriever,
    run_strategy,
)
from schemas.content import VideoContent
from schemas.search_result import NO_CONTENT_SENTINEL, SearchResult
from vectorstore.ingest import embed_content
from vectorstore.memory_store import InMemoryEmbeddingStore

from .conftest import FakeEmbedder, FakeIndex


def hit(title: str, similarity: float, text: str = "passage text", url: str = "/library/blog-content/x") -> SearchResult:
    return SearchResult(title=title, url=url, type="blog", similarity=similarity, text=text, source="vector_index")


class ExplodingStrategy:
    name = "exploding"

    def __init__(self):
        self.calls = 0

    def search(self, query, top_k, namespace=None):
        self.calls += 1
        raise SearchError("service down", strategy=self.name)


class StaticStrategy:
    def __init__(self, name, results):
        self.name = name
        self.results = results
        self.calls = 0

    def search(self, query, top_k, namespace=None):
        self.calls += 1
        return list(self.results)


# ---------------------------------------------------------------------------
# Vector index strategy and namespace fallback
# ---------------------------------------------------------------------------

def test_namespace_fallback_retries_once_with_default_namespace():
    index = FakeIndex(
        results_by_namespace={"": [hit("From default", 0.9)]},
        errors_by_namespace={"content-library": NamespaceNotFoundError("content-library")},
    )
    results = VectorIndexStrategy(index).search("equity", 5)

    assert [r.title for r in results] == ["From default"]
    assert [ns for _, _, ns in index.search_calls] == ["content-library", ""]


def test_namespace_fallback_failure_propagates_after_one_retry():
    error = NamespaceNotFoundError("content-library")
    index = FakeIndex(errors_by_namespace={"content-library": error, "": SearchError("also broken")})

    with pytest.raises(SearchError, match="also broken"):
        VectorIndexStrategy(index).search("equity", 5)
    assert len(index.search_calls) == 2


def test_no_fallback_for_non_default_namespace():
    index = FakeIndex(errors_by_namespace={"staging": NamespaceNotFoundError("staging")})
    with pytest.raises(NamespaceNotFoundError):
        VectorIndexStrategy(index, namespace="staging").search("equity", 5)
    assert len(index.search_calls) == 1


def test_per_call_namespace_overrides_strategy_default():
    index = FakeIndex(results_by_namespace={"staging": [hit("Staged", 0.5)]})
    results = VectorIndexStrategy(index).search("equity", 5, namespace="staging")
    assert results[0].title == "Staged"


# ---------------------------------------------------------------------------
# Embedding and local strategies
# ---------------------------------------------------------------------------

def test_embedding_strategy_applies_similarity_threshold(store):
    repo = InMemoryEmbeddingStore()
    embed_content(store, FakeEmbedder(), repo)
    strategy = EmbeddingSearchStrategy(FakeEmbedder(), repo)

    results = strategy.search("equity splits", 5)
    assert results
    assert all(r.similarity > 0.7 and r.source == "embedding" for r in results)
    assert strategy.search("hiring plans", 5) == []


def test_embedding_strategy_with_empty_repository():
    assert EmbeddingSearchStrategy(FakeEmbedder(), InMemoryEmbeddingStore()).search("equity", 5) == []


def test_local_strategy_returns_library_urls(store):
    results = LocalContentStrategy(store).search("valuation caps", 5)
    assert results[0].title == "The SAFE Explained"
    assert results[0].url == "/library/blog-content/the-safe-explained"
    assert results[0].text.startswith("The SAFE Explained.")
    assert results[0].source == "local_content"


def test_run_strategy_tags_failures():
    outcome = run_strategy(ExplodingStrategy(), "q", 3)
    assert not outcome.ok
    assert isinstance(outcome.error, SearchError)
    assert outcome.results == []


# ---------------------------------------------------------------------------
# Strategy chain
# ---------------------------------------------------------------------------

def test_first_non_empty_strategy_wins():
    first = StaticStrategy("first", [hit("low", 0.2), hit("high", 0.8)])
    second = StaticStrategy("second", [hit("unused", 0.9)])
    results = Retriever([first, second]).search("q", 5)

    assert [r.title for r in results] == ["high", "low"]
    assert second.calls == 0


def test_failing_strategy_falls_through_to_next():
    retriever = Retriever([ExplodingStrategy(), StaticStrategy("local", [hit("fallback", 0.4)])])
    results = retriever.search("q", 5)

    assert [r.title for r in results] == ["fallback"]
    assert [o.ok for o in retriever.last_outcomes] == [False, True]


def test_empty_results_everywhere_is_not_an_error():
    retriever = Retriever([StaticStrategy("a", []), StaticStrategy("b", [])])
    assert retriever.search("nothing matches", 5) == []


def test_failure_without_results_is_surfaced():
    retriever = Retriever([ExplodingStrategy(), StaticStrategy("local", [])])
    with pytest.raises(SearchError, match="service down"):
        retriever.search("q", 5)


@pytest.mark.parametrize("query", ["", "   "])
def test_empty_query_rejected(query):
    with pytest.raises(EmptyQueryError):
        Retriever([StaticStrategy("a", [])]).search(query, 5)


@pytest.mark.parametrize("top_k", [0, -1, 2.5])
def test_invalid_top_k_rejected(top_k):
    with pytest.raises(ValueError):
        Retriever([StaticStrategy("a", [])]).search("q", top_k)


def test_retriever_requires_strategies():
    with pytest.raises(ValueError):
        Retriever([])


def test_build_retriever_orders_strategies(settings, store):
    retriever = build_retriever(settings, store, repository=InMemoryEmbeddingStore(), index=FakeIndex())
    assert [s.name for s in retriever.strategies] == ["vector_index", "embedding", "local_content"]


def test_build_retriever_without_credentials(store):
    from settings import Settings

    retriever = build_retriever(Settings(), store)
    assert [s.name for s in retriever.strategies] == ["local_content"]


# ---------------------------------------------------------------------------
# Backfill
# ---------------------------------------------------------------------------

def test_backfill_is_a_no_op_for_present_text(store):
    result = hit("Has text", 0.5, text="already here")
    assert backfill(result, store) == "already here"


def test_backfill_recovers_text_from_store(store, video):
    result = hit(
        video.name, 0.5, text=NO_CONTENT_SENTINEL,
        url="https://example.com/library/video-content/startup-legal-mechanics-founder-equity",
    )
    text = backfill(result, store)
    assert text.startswith(video.description)
    assert "one year cliff" in text


@pytest.mark.parametrize(
    "url",
    ["/library/video-content/no-such-talk", "No URL", "/somewhere/else", "/library/unknown-content/x"],
)
def test_backfill_unknown_item_returns_marker(store, url):
    result = hit("Missing Talk", 0.5, text=NO_CONTENT_SENTINEL, url=url)
    text = backfill(result, store)
    assert "Missing Talk" in text
    assert NO_DETAILED_CONTENT in text


def test_backfill_item_without_text_returns_marker():
    store = ContentStore([VideoContent(name_video="Bare Talk")])
    result = hit("Bare Talk", 0.5, text=NO_CONTENT_SENTINEL, url="/library/video-content/bare-talk")
    assert backfill(result, store) == f"Bare Talk {NO_DETAILED_CONTENT}"


def test_backfill_without_store():
    result = hit("Orphan", 0.5, text=None)
    assert backfill(result, None) == f"Orphan {NO_DETAILED_CONTENT}"


def test_backfill_all_updates_in_place(store, blog):
    results = [
        hit("ok", 0.9, text="keep me"),
        hit(blog.name, 0.8, text=NO_CONTENT_SENTINEL, url="/library/blog-content/the-safe-explained"),
    ]
    Retriever([StaticStrategy("a", [])], store).backfill_all(results)
    assert results[0].text == "keep me"
    assert "It is not debt." in results[1].text
