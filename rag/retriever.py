"""Retrieval layer: ordered search strategies plus content backfill.

Strategies are tried in priority order:
  1. Hosted vector index (with a one-time fallback to the default namespace)
  2. Embedding search over an in-process embedding repository
  3. Keyword search over the local content store

Each attempt is captured as a StrategyOutcome so a failing strategy hands
over to the next one instead of aborting the query. Results whose passage
text is missing are backfilled from the local content store.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional, Protocol, Sequence

from library.content_store import ContentStore
from library.slug import parse_library_url
from rag.errors import EmptyQueryError, NamespaceNotFoundError, SearchError
from schemas.search_result import SearchResult
from settings import DEFAULT_NAMESPACE
from vectorstore.chunker import Chunker
from vectorstore.embedder import Embedder
from vectorstore.index import PineconeIndex, VectorIndex
from vectorstore.memory_store import EmbeddingRepository

logger = logging.getLogger(__name__)

DEFAULT_TOP_K = 5
DEFAULT_SIMILARITY_THRESHOLD = 0.7
NO_DETAILED_CONTENT = "(No detailed content available from original source)"


class SearchStrategy(Protocol):
    name: str

    def search(self, query: str, top_k: int, namespace: Optional[str] = None) -> list[SearchResult]: ...


@dataclass
class StrategyOutcome:
    """Result of running one strategy: either results or the error it raised."""
    strategy: str
    results: list[SearchResult] = field(default_factory=list)
    error: Optional[Exception] = None
    elapsed_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------

class VectorIndexStrategy:
    """Search the hosted index in the active namespace.

    If the index reports the default namespace missing, the search is retried
    once against the index's default (empty) namespace. Other errors, and
    the same error on any other namespace, propagate.
    """

    name = "vector_index"

    def __init__(self, index: VectorIndex, namespace: str = DEFAULT_NAMESPACE):
        self.index = index
        self.namespace = namespace
        self.on_retry: Optional[Callable[[str], None]] = None

    def search(self, query: str, top_k: int, namespace: Optional[str] = None) -> list[SearchResult]:
        namespace = self.namespace if namespace is None else namespace
        try:
            return self.index.search(query, top_k, namespace)
        except NamespaceNotFoundError:
            if namespace != DEFAULT_NAMESPACE:
                raise
            logger.warning("Namespace '%s' not found, retrying in the default namespace", namespace)
            if self.on_retry is not None:
                self.on_retry(f"namespace '{namespace}' not found")
            return self.index.search(query, top_k, "")


class EmbeddingSearchStrategy:
    """Embed the query and rank passages held in an embedding repository."""

    name = "embedding"

    def __init__(
        self,
        embedder: Embedder,
        repository: EmbeddingRepository,
        similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
    ):
        self.embedder = embedder
        self.repository = repository
        self.similarity_threshold = similarity_threshold

    def search(self, query: str, top_k: int, namespace: Optional[str] = None) -> list[SearchResult]:
        if len(self.repository) == 0:
            logger.info("Embedding store is empty, nothing to search")
            return []
        vector = self.embedder.embed_single(query)
        return [
            SearchResult(
                title=record.title,
                url=record.url,
                type=record.type,
                similarity=score,
                text=record.text,
                source=self.name,
            )
            for record, score in self.repository.query(vector, top_k)
            if score > self.similarity_threshold
        ]


class LocalContentStrategy:
    """Keyword overlap against the local content store; last resort."""

    name = "local_content"

    def __init__(self, store: ContentStore, chunker: Optional[Chunker] = None):
        self.store = store
        self.chunker = chunker or Chunker()

    def search(self, query: str, top_k: int, namespace: Optional[str] = None) -> list[SearchResult]:
        results = []
        for item, score in self.store.keyword_search(query, top_k):
            passages = self.chunker.chunk_item(item)
            results.append(SearchResult(
                title=item.name,
                url=self.store.url_for(item),
                type=item.content_type.value,
                similarity=score,
                text=passages[0].text if passages else None,
                source=self.name,
            ))
        return results


def run_strategy(
    strategy: SearchStrategy, query: str, top_k: int, namespace: Optional[str] = None
) -> StrategyOutcome:
    """Run one strategy and tag the outcome instead of raising."""
    start = time.perf_counter()
    try:
        results = strategy.search(query, top_k, namespace)
    except Exception as e:
        logger.warning("Search strategy '%s' failed: %s", strategy.name, e)
        return StrategyOutcome(strategy.name, error=e, elapsed_ms=int((time.perf_counter() - start) * 1000))
    return StrategyOutcome(strategy.name, results=results, elapsed_ms=int((time.perf_counter() - start) * 1000))


# ---------------------------------------------------------------------------
# Backfill
# ---------------------------------------------------------------------------

def backfill(result: SearchResult, store: Optional[ContentStore]) -> str:
    """Return the result's passage text, recovering it from the content store if missing.

    Never raises: an unknown URL or item yields the title with a marker.
    """
    if not result.needs_backfill:
        return result.text

    parsed = parse_library_url(result.url)
    if parsed is not None and store is not None:
        content_type, slug = parsed
        logger.info("Content missing, looking up %s/%s", content_type.url_segment, slug)
        item = store.lookup(content_type, slug)
        if item is not None:
            text = f"{item.description} {item.long_form_text}".strip()
            if text:
                return text
            logger.info("Content item %s/%s has no text to backfill", content_type.url_segment, slug)

    return f"{result.title} {NO_DETAILED_CONTENT}"


# ---------------------------------------------------------------------------
# Retriever
# ---------------------------------------------------------------------------

class Retriever:
    """Runs strategies in order and backfills the winning result set."""

    def __init__(
        self,
        strategies: Sequence[SearchStrategy],
        store: Optional[ContentStore] = None,
        on_retry: Optional[Callable[[str], None]] = None,
    ):
        if not strategies:
            raise ValueError("At least one search strategy is required")
        self.strategies = list(strategies)
        self.store = store
        self.last_outcomes: list[StrategyOutcome] = []
        self.on_retry = on_retry

    @property
    def on_retry(self) -> Optional[Callable[[str], None]]:
        """Called with a reason whenever a failed search is retried or handed to a fallback."""
        return self._on_retry

    @on_retry.setter
    def on_retry(self, callback: Optional[Callable[[str], None]]) -> None:
        self._on_retry = callback
        for strategy in self.strategies:
            if hasattr(strategy, "on_retry"):
                strategy.on_retry = callback

    def search(
        self, query: str, top_k: int = DEFAULT_TOP_K, namespace: Optional[str] = None
    ) -> list[SearchResult]:
        """Return the first non-empty result set, best first.

        An empty list means every strategy ran and found nothing. If nothing
        was found and at least one strategy failed, SearchError is raised so
        a service failure is never reported as "no results".
        """
        if not query or not query.strip():
            raise EmptyQueryError()
        if not isinstance(top_k, int) or top_k <= 0:
            raise ValueError(f"top_k must be a positive integer, got {top_k!r}")

        self.last_outcomes = []
        for strategy in self.strategies:
            outcome = run_strategy(strategy, query, top_k, namespace)
            self.last_outcomes.append(outcome)
            if outcome.ok and outcome.results:
                logger.info(
                    "Strategy '%s' returned %d results in %dms",
                    outcome.strategy, len(outcome.results), outcome.elapsed_ms,
                )
                return sorted(outcome.results, key=lambda r: r.similarity, reverse=True)
            if not outcome.ok and self._on_retry is not None and strategy is not self.strategies[-1]:
                self._on_retry(f"{outcome.strategy} failed: {outcome.error}")

        failures = [o for o in self.last_outcomes if not o.ok]
        if failures:
            summary = "; ".join(f"{o.strategy}: {o.error}" for o in failures)
            raise SearchError(f"Search failed: {summary}", strategy=failures[-1].strategy) from failures[-1].error
        return []

    def backfill_all(self, results: list[SearchResult]) -> list[SearchResult]:
        """Fill in missing passage text in place."""
        for result in results:
            if result.needs_backfill:
                result.text = backfill(result, self.store)
        return results


def build_retriever(
    settings,
    store: ContentStore,
    repository: Optional[EmbeddingRepository] = None,
    index: Optional[VectorIndex] = None,
    namespace: Optional[str] = None,
) -> Retriever:
    """Assemble the strategy chain from whatever credentials are configured."""
    strategies: list[SearchStrategy] = []
    if index is None and settings.pinecone_api_key and settings.pinecone_index:
        index = PineconeIndex(settings.pinecone_api_key, settings.pinecone_index, timeout=settings.search_timeout_s)
    if index is not None:
        strategies.append(VectorIndexStrategy(index, settings.namespace if namespace is None else namespace))
    if repository is not None and settings.openai_api_key:
        embedder = Embedder(api_key=settings.openai_api_key, timeout=settings.search_timeout_s)
        strategies.append(EmbeddingSearchStrategy(embedder, repository))
    strategies.append(LocalContentStrategy(store))
    return Retriever(strategies, store)
