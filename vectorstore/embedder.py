"""OpenAI embeddings for the in-process embedding-search fallback.

Passages are embedded once when the local embedding store is filled, and
each query is embedded at search time. Inputs over the model's token limit
are cut down with tiktoken before they are sent.
"""

import logging
import os
import time
from typing import Optional, Sequence

import tiktoken
from openai import APIConnectionError, APITimeoutError, InternalServerError, OpenAI, RateLimitError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from rag.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "text-embedding-3-small"
DEFAULT_DIMENSIONS = 1536
REQUEST_BATCH_SIZE = 256
TOKEN_LIMIT = 8000  # model accepts 8192
INTER_REQUEST_PAUSE_S = 0.5

_TRANSIENT_ERRORS = (RateLimitError, APIConnectionError, APITimeoutError, InternalServerError)


def _log_retry(retry_state) -> None:
    logger.warning(
        "Embedding request failed (attempt %d), retrying: %s",
        retry_state.attempt_number,
        retry_state.outcome.exception() if retry_state.outcome else "unknown",
    )


class Embedder:
    """Query and passage embeddings from the OpenAI embeddings endpoint."""

    def __init__(
        self,
        model: str = DEFAULT_MODEL,
        dimensions: int = DEFAULT_DIMENSIONS,
        api_key: Optional[str] = None,
        timeout: float = 30.0,
        client: Optional[OpenAI] = None,
    ):
        self.model = model
        self.dimensions = dimensions
        if client is None:
            api_key = api_key or os.getenv("OPENAI_API_KEY")
            if not api_key:
                raise ConfigurationError("An OpenAI API key is required for embedding search")
            client = OpenAI(api_key=api_key, timeout=timeout)
        self.client = client
        self._tokenizer: Optional[tiktoken.Encoding] = None

    @property
    def tokenizer(self) -> tiktoken.Encoding:
        if self._tokenizer is None:
            self._tokenizer = tiktoken.encoding_for_model(self.model)
        return self._tokenizer

    def fit_to_limit(self, text: str) -> str:
        """Cut text down to TOKEN_LIMIT tokens; shorter text is returned as is."""
        tokens = self.tokenizer.encode(text)
        if len(tokens) <= TOKEN_LIMIT:
            return text
        logger.warning("Passage of %d tokens cut to %d: '%.60s'", len(tokens), TOKEN_LIMIT, text)
        return self.tokenizer.decode(tokens[:TOKEN_LIMIT])

    @retry(
        stop=stop_after_attempt(4),
        wait=wait_exponential(multiplier=2, min=2, max=30),
        retry=retry_if_exception_type(_TRANSIENT_ERRORS),
        reraise=True,
        before_sleep=_log_retry,
    )
    def _request(self, texts: Sequence[str]) -> list[list[float]]:
        response = self.client.embeddings.create(
            model=self.model,
            input=list(texts),
            dimensions=self.dimensions,
        )
        return [item.embedding for item in sorted(response.data, key=lambda d: d.index)]

    def embed(self, texts: Sequence[str], show_progress: bool = True) -> list[list[float]]:
        """Vectors for `texts`, in input order."""
        prepared = [self.fit_to_limit(t.strip()) for t in texts]
        vectors: list[list[float]] = []
        started = time.perf_counter()

        for offset in range(0, len(prepared), REQUEST_BATCH_SIZE):
            if offset:
                time.sleep(INTER_REQUEST_PAUSE_S)
            vectors.extend(self._request(prepared[offset:offset + REQUEST_BATCH_SIZE]))
            if show_progress:
                logger.info("Embedded %d/%d passages (%.1fs)", len(vectors), len(prepared), time.perf_counter() - started)

        return vectors

    def embed_single(self, text: str) -> list[float]:
        """Vector for one query string."""
        return self.embed([text], show_progress=False)[0]
