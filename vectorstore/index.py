"""Hosted vector index (Pinecone, integrated inference).

The index embeds record text itself, so search takes raw query text and
upsert takes raw passage text. Records carry title, url and type alongside
the text. The empty namespace string addresses the index's default
namespace.
"""

import concurrent.futures
import logging
from typing import Any, Callable, Optional, Protocol, Sequence, TypeVar

from pinecone import Pinecone

from rag.errors import ConfigurationError, NamespaceNotFoundError, SearchError, SearchTimeoutError
from schemas.search_result import NO_CONTENT_SENTINEL, IndexRecord, SearchResult

logger = logging.getLogger(__name__)

DEFAULT_NAMESPACE_ALIAS = "__default__"
SEARCH_FIELDS = ["title", "text", "url", "type"]

T = TypeVar("T")


class VectorIndex(Protocol):
    def search(self, query: str, top_k: int, namespace: str) -> list[SearchResult]: ...

    def upsert(self, records: Sequence[IndexRecord], namespace: str) -> None: ...


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _get(obj: Any, name: str, default: Any = None) -> Any:
    """Read a field from an SDK model or a plain dict."""
    if obj is None:
        return default
    if isinstance(obj, dict):
        return obj.get(name, default)
    value = getattr(obj, name, None)
    if value is not None:
        return value
    try:
        return obj[name]
    except (KeyError, TypeError, IndexError):
        return default


def call_with_timeout(fn: Callable[[], T], timeout: Optional[float]) -> T:
    """Run fn on a worker thread and give up waiting after `timeout` seconds."""
    if not timeout:
        return fn()
    executor = concurrent.futures.ThreadPoolExecutor(max_workers=1)
    try:
        return executor.submit(fn).result(timeout=timeout)
    finally:
        executor.shutdown(wait=False)


def _error_status(exc: BaseException) -> Optional[int]:
    for attr in ("status", "status_code"):
        value = getattr(exc, attr, None)
        if isinstance(value, int):
            return value
    return None


def _error_texts(exc: BaseException) -> list[str]:
    texts = [str(exc)]
    if exc.__cause__ is not None:
        texts.append(str(exc.__cause__))
    return texts


def is_namespace_not_found(exc: BaseException) -> bool:
    return any("namespace" in t.lower() and "not found" in t.lower() for t in _error_texts(exc))


def is_rate_limited(exc: BaseException) -> bool:
    """HTTP 429, or a RESOURCE_EXHAUSTED / rate limit message on the error or its cause."""
    if _error_status(exc) == 429:
        return True
    return any("RESOURCE_EXHAUSTED" in t or "rate limit" in t.lower() for t in _error_texts(exc))


def parse_search_response(response: Any) -> list[SearchResult]:
    """Normalize both response shapes (result.hits and legacy matches).

    Results come back sorted by similarity, best first.
    """
    results: list[SearchResult] = []
    hits = _get(_get(response, "result"), "hits")
    matches = _get(response, "matches")

    if isinstance(hits, list):
        for hit in hits:
            fields = _get(hit, "fields") or {}
            results.append(_to_result(fields, _hit_score(hit)))
    elif isinstance(matches, list):
        for match in matches:
            record = _get(match, "record") or _get(match, "metadata") or {}
            results.append(_to_result(record, _get(match, "score", 0.0)))
    else:
        logger.warning("Unexpected response structure from vector index: %.200r", response)
        return []

    results.sort(key=lambda r: r.similarity, reverse=True)
    return results


def _hit_score(hit: Any) -> Any:
    """SDK hits expose `score`; the raw wire shape uses `_score`."""
    score = _get(hit, "score")
    return score if score is not None else _get(hit, "_score", 0.0)


def _to_result(fields: Any, score: Any) -> SearchResult:
    return SearchResult(
        title=_get(fields, "title") or "Untitled",
        text=_get(fields, "text") or NO_CONTENT_SENTINEL,
        url=_get(fields, "url") or "No URL",
        type=_get(fields, "type") or "unknown",
        similarity=float(score or 0.0),
        source="vector_index",
    )


# ---------------------------------------------------------------------------
# Pinecone implementation
# ---------------------------------------------------------------------------

class PineconeIndex:
    """Search and upsert against a Pinecone index with integrated embedding."""

    def __init__(
        self,
        api_key: Optional[str],
        index_name: Optional[str],
        timeout: Optional[float] = 15.0,
        client: Optional[Any] = None,
    ):
        if not index_name or (client is None and not api_key):
            raise ConfigurationError("Pinecone API key and index name are required")
        self.index_name = index_name
        self.timeout = timeout
        self._client = client or Pinecone(api_key=api_key)
        self._index: Any = None

    def _get_index(self) -> Any:
        if self._index is None:
            description = self._client.describe_index(self.index_name)
            status = _get(description, "status")
            if not _get(status, "ready", False):
                raise ConfigurationError(
                    f"Index {self.index_name} is not ready. Current state: {_get(status, 'state', 'unknown')}"
                )
            logger.info("Index %s is ready", self.index_name)
            self._index = self._client.Index(self.index_name)
        return self._index

    def search(self, query: str, top_k: int, namespace: str) -> list[SearchResult]:
        index = self._get_index()
        logger.info("Querying namespace '%s' (top_k=%d)", namespace or "(default)", top_k)
        try:
            response = call_with_timeout(
                lambda: index.search(
                    namespace=namespace or DEFAULT_NAMESPACE_ALIAS,
                    top_k=top_k,
                    inputs={"text": query},
                    fields=SEARCH_FIELDS,
                ),
                self.timeout,
            )
        except concurrent.futures.TimeoutError as e:
            raise SearchTimeoutError(
                f"Vector index search timed out after {self.timeout}s", strategy="vector_index"
            ) from e
        except Exception as e:
            if is_namespace_not_found(e):
                raise NamespaceNotFoundError(namespace, str(e)) from e
            raise SearchError(f"Vector index search failed: {e}", strategy="vector_index") from e
        return parse_search_response(response)

    def upsert(self, records: Sequence[IndexRecord], namespace: str) -> None:
        """Upsert records; SDK errors propagate unchanged so callers can classify them."""
        index = self._get_index()
        index.upsert_records(
            namespace=namespace or DEFAULT_NAMESPACE_ALIAS,
            records=[r.to_upsert_payload() for r in records],
        )
