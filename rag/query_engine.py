"""RAG query engine: search → backfill → prompt assembly → generation.

Steps run strictly in order for each query. A search that finds nothing
short-circuits with a "no relevant content" answer and never calls the LLM;
a search that fails raises instead, so failures and empty results stay
distinguishable. A namespace fallback, a hand-over after a failed strategy
or a retried generation call moves the query into RETRYING until that
phase finishes.
"""

import logging
import re
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

import orjson

from rag.errors import ContentLibraryError, EmptyQueryError
from rag.llm import LLMClient
from rag.prompts import NO_RESULTS_ANSWER, TOPIC_EXTRACTION_TEMPLATE, assemble_prompt
from rag.retriever import DEFAULT_TOP_K, Retriever, build_retriever
from schemas.search_result import SearchResult

logger = logging.getLogger(__name__)

MAX_TOPICS = 5


class QueryState(str, Enum):
    IDLE = "idle"
    SEARCHING = "searching"
    BACKFILLING = "backfilling"
    PROMPT_ASSEMBLY = "prompt_assembly"
    GENERATING = "generating"
    RETRYING = "retrying"
    DONE = "done"
    FAILED = "failed"


@dataclass
class QueryResult:
    """Complete result of a RAG query."""
    query: str
    answer: str
    sources: list[SearchResult]
    found: bool
    metadata: dict = field(default_factory=dict)  # timings, strategy, model, namespace


class QueryEngine:
    """Orchestrates one grounded answer per call."""

    def __init__(self, retriever: Retriever, llm: LLMClient, top_k: int = DEFAULT_TOP_K):
        self.retriever = retriever
        self.llm = llm
        self.top_k = top_k
        self.state = QueryState.IDLE
        self.history: list[QueryState] = []
        self.retriever.on_retry = self._retrying
        self.llm.on_retry = self._retrying

    def _enter(self, state: QueryState):
        logger.debug("Query state: %s -> %s", self.state.value, state.value)
        self.state = state
        self.history.append(state)

    def _retrying(self, reason: str):
        """Enter RETRYING from SEARCHING or GENERATING; it lasts until the phase ends."""
        logger.info("Retrying during %s: %s", self.state.value, reason)
        if self.state != QueryState.RETRYING:
            self._enter(QueryState.RETRYING)

    def answer(self, query: str, namespace: Optional[str] = None, top_k: Optional[int] = None) -> QueryResult:
        if not query or not query.strip():
            raise EmptyQueryError()
        query = query.strip()
        top_k = top_k or self.top_k
        self.history = []
        timings: dict[str, int] = {}
        metadata = {"namespace": namespace, "top_k": top_k, "timings": timings}

        try:
            self._enter(QueryState.SEARCHING)
            t0 = time.perf_counter()
            results = self.retriever.search(query, top_k, namespace)
            timings["search_ms"] = int((time.perf_counter() - t0) * 1000)
            winning = next((o.strategy for o in self.retriever.last_outcomes if o.ok and o.results), None)
            metadata["strategy"] = winning

            if not results:
                logger.info("No relevant content found for query: %.80s", query)
                self._enter(QueryState.DONE)
                return QueryResult(query=query, answer=NO_RESULTS_ANSWER, sources=[], found=False, metadata=metadata)

            self._enter(QueryState.BACKFILLING)
            t0 = time.perf_counter()
            self.retriever.backfill_all(results)
            timings["backfill_ms"] = int((time.perf_counter() - t0) * 1000)

            self._enter(QueryState.PROMPT_ASSEMBLY)
            prompt = assemble_prompt(query, results)

            self._enter(QueryState.GENERATING)
            t0 = time.perf_counter()
            answer = self.llm.generate(prompt)
            timings["generation_ms"] = int((time.perf_counter() - t0) * 1000)
        except ContentLibraryError:
            self._enter(QueryState.FAILED)
            raise

        metadata["model"] = self.llm.model
        metadata["provider"] = self.llm.provider
        self._enter(QueryState.DONE)
        logger.info(
            "Answered with %d sources via %s (search %dms, generation %dms)",
            len(results), winning, timings["search_ms"], timings["generation_ms"],
        )
        return QueryResult(query=query, answer=answer, sources=results, found=True, metadata=metadata)

    def extract_key_topics(self, text: str) -> list[str]:
        return extract_key_topics(self.llm, text)


# ---------------------------------------------------------------------------
# Topic extraction
# ---------------------------------------------------------------------------

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.MULTILINE)
_ARRAY_RE = re.compile(r"\[[^\[\]]*\]", re.DOTALL)
_QUOTED_RE = re.compile(r'"([^"]+)"')


def parse_topics(raw: str) -> list[str]:
    """Pull a list of topic strings out of an LLM reply.

    Accepts a bare JSON array, one wrapped in markdown fences, or one embedded
    in prose; as a last resort collects quoted strings.
    """
    cleaned = _FENCE_RE.sub("", raw.strip()).strip()
    candidates = [cleaned]
    match = _ARRAY_RE.search(cleaned)
    if match:
        candidates.append(match.group(0))

    for candidate in candidates:
        try:
            parsed = orjson.loads(candidate)
        except orjson.JSONDecodeError:
            continue
        if isinstance(parsed, list):
            return [str(t).strip() for t in parsed if str(t).strip()][:MAX_TOPICS]

    return [t.strip() for t in _QUOTED_RE.findall(cleaned) if t.strip()][:MAX_TOPICS]


def extract_key_topics(llm: LLMClient, text: str) -> list[str]:
    """Ask the LLM for 3-5 key topics. Returns [] on any failure."""
    if not text or not text.strip():
        return []
    try:
        raw = llm.generate(TOPIC_EXTRACTION_TEMPLATE.format(text=text))
    except ContentLibraryError as e:
        logger.warning("Topic extraction failed: %s", e)
        return []
    topics = parse_topics(raw)
    if not topics:
        logger.warning("Could not parse topics from reply: %.200r", raw)
    return topics


def build_query_engine(settings, store, repository=None, index=None, namespace: Optional[str] = None,
                       llm: Optional[LLMClient] = None) -> QueryEngine:
    """Wire a QueryEngine from settings; any piece may be injected instead."""
    retriever = build_retriever(settings, store, repository=repository, index=index, namespace=namespace)
    if llm is None:
        llm = LLMClient(
            provider=settings.llm_provider,
            model=settings.llm_model,
            api_key=settings.require_llm_key(),
            timeout=settings.generation_timeout_s,
        )
    return QueryEngine(retriever, llm)
