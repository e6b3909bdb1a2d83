"""Seeding pipeline: content items → passages → index records → batched upsert.

Usage (standalone):
  python -m vectorstore.ingest
  python -m vectorstore.ingest --namespace content-library --batch-size 32

Or via the main CLI:
  python pipeline.py seed
"""

import argparse
import logging
import sys
import time
from typing import Callable, Iterable, Optional, Sequence

from tenacity import RetryError, Retrying, retry_if_exception, stop_after_attempt, wait_exponential

from library.slug import library_url, slugify
from rag.errors import IndexingError, RateLimitExceededError
from schemas.content import ContentItem
from schemas.search_result import IndexRecord
from vectorstore.chunker import Chunker
from vectorstore.embedder import Embedder
from vectorstore.index import VectorIndex, is_rate_limited
from vectorstore.memory_store import EmbeddingRecord, EmbeddingRepository

logger = logging.getLogger(__name__)

BATCH_SIZE = 32
BATCH_DELAY_S = 5.0
MAX_RETRIES = 5
INITIAL_RETRY_DELAY_S = 10.0
MAX_RETRY_DELAY_S = 600.0
MIN_PASSAGE_CHARS = 20


# ---------------------------------------------------------------------------
# Record building
# ---------------------------------------------------------------------------

def build_records(items: Iterable[ContentItem], chunker: Optional[Chunker] = None) -> list[IndexRecord]:
    """Chunk every item and pair each passage with its index metadata.

    Passages shorter than MIN_PASSAGE_CHARS are dropped. Record ids are
    "{type}-{slug}-{ordinal}", where ordinal counts records across the whole
    run, so a rebuild over the same items produces the same ids.
    """
    chunker = chunker or Chunker()
    records: list[IndexRecord] = []
    skipped = 0
    for item in items:
        slug = slugify(item.name)
        url = library_url(item.content_type, slug)
        for passage in chunker.chunk_item(item):
            if len(passage.text) < MIN_PASSAGE_CHARS:
                skipped += 1
                logger.debug("Skipping short passage: %r", passage.text)
                continue
            records.append(IndexRecord(
                id=f"{item.content_type.value}-{slug}-{len(records)}",
                text=passage.text,
                title=item.name,
                url=url,
                type=item.content_type.value,
            ))
    logger.info("Built %d index records (skipped %d short passages)", len(records), skipped)
    return records


# ---------------------------------------------------------------------------
# Batched upsert with throttle and rate-limit backoff
# ---------------------------------------------------------------------------

class BatchIndexer:
    """Upserts records in fixed-size batches.

    Every batch is followed by a fixed delay (except the last). A batch that
    hits a rate limit is retried in place with exponential backoff; running
    out of retries aborts the whole run. Any other error aborts immediately.
    """

    def __init__(
        self,
        index: VectorIndex,
        batch_size: int = BATCH_SIZE,
        batch_delay_s: float = BATCH_DELAY_S,
        max_retries: int = MAX_RETRIES,
        initial_retry_delay_s: float = INITIAL_RETRY_DELAY_S,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        self.index = index
        self.batch_size = batch_size
        self.batch_delay_s = batch_delay_s
        self.max_retries = max_retries
        self.initial_retry_delay_s = initial_retry_delay_s
        self.sleep = sleep

    def _upsert_batch(self, batch: Sequence[IndexRecord], namespace: str, batch_number: int) -> int:
        """Upsert one batch; returns the number of attempts it took."""
        retrying = Retrying(
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_exponential(multiplier=self.initial_retry_delay_s, max=MAX_RETRY_DELAY_S),
            retry=retry_if_exception(is_rate_limited),
            sleep=self.sleep,
            before_sleep=lambda retry_state: logger.warning(
                "Rate limit hit on batch %d. Retrying in %.1fs (retry %d/%d)",
                batch_number,
                retry_state.next_action.sleep if retry_state.next_action else 0.0,
                retry_state.attempt_number,
                self.max_retries,
            ),
        )
        attempts = 0
        try:
            for attempt in retrying:
                with attempt:
                    attempts += 1
                    self.index.upsert(batch, namespace)
        except RetryError as e:
            raise RateLimitExceededError(batch_number, attempts) from e.last_attempt.exception()
        return attempts

    def run(self, records: Sequence[IndexRecord], namespace: str) -> dict:
        total_batches = (len(records) + self.batch_size - 1) // self.batch_size
        logger.info("Upserting %d records in %d batches of %d", len(records), total_batches, self.batch_size)
        stats = {"records": len(records), "batches": total_batches, "attempts": 0}
        start = time.perf_counter()

        for batch_idx in range(total_batches):
            batch = records[batch_idx * self.batch_size:(batch_idx + 1) * self.batch_size]
            batch_number = batch_idx + 1
            try:
                stats["attempts"] += self._upsert_batch(batch, namespace, batch_number)
            except IndexingError:
                raise
            except Exception as e:
                raise IndexingError(f"Batch {batch_number} failed: {e}") from e
            logger.info("Inserted batch %d/%d", batch_number, total_batches)

            if batch_number < total_batches:
                self.sleep(self.batch_delay_s)

        stats["elapsed_s"] = round(time.perf_counter() - start, 1)
        return stats


def seed_content(
    items: Iterable[ContentItem],
    index: VectorIndex,
    namespace: str,
    chunker: Optional[Chunker] = None,
    indexer: Optional[BatchIndexer] = None,
) -> dict:
    """Chunk all items and upsert them into the hosted index."""
    t0 = time.perf_counter()
    records = build_records(items, chunker)
    build_s = time.perf_counter() - t0
    if not records:
        logger.warning("No records to seed")
        return {"records": 0, "batches": 0, "attempts": 0}

    indexer = indexer or BatchIndexer(index)
    stats = indexer.run(records, namespace)
    stats["build_s"] = round(build_s, 2)
    logger.info("Seeding complete: %s", stats)
    return stats


def embed_content(
    items: Iterable[ContentItem],
    embedder: Embedder,
    repository: EmbeddingRepository,
    chunker: Optional[Chunker] = None,
) -> int:
    """Embed every passage locally and add it to an embedding repository."""
    records = build_records(items, chunker)
    if not records:
        return 0
    vectors = embedder.embed([r.text for r in records])
    for record, vector in zip(records, vectors):
        repository.add(EmbeddingRecord(
            id=record.id,
            text=record.text,
            embedding=vector,
            title=record.title,
            url=record.url,
            type=record.type,
        ))
    logger.info("Added %d passages to the embedding store", len(records))
    return len(records)


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------

def main(argv: Optional[list[str]] = None):
    from library.content_store import ContentStore
    from settings import Settings
    from vectorstore.index import PineconeIndex

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    settings = Settings.from_env()
    parser = argparse.ArgumentParser(description="Seed the content library into the vector index")
    parser.add_argument("--namespace", default=settings.namespace, help="Target namespace")
    parser.add_argument("--batch-size", type=int, default=BATCH_SIZE, help="Records per upsert")
    parser.add_argument("--batch-delay", type=float, default=BATCH_DELAY_S, help="Seconds between batches")
    args = parser.parse_args(argv)

    api_key, index_name = settings.require_pinecone()
    store = ContentStore.from_directory(settings.data_dir)
    index = PineconeIndex(api_key, index_name, timeout=settings.search_timeout_s)
    indexer = BatchIndexer(index, batch_size=args.batch_size, batch_delay_s=args.batch_delay)
    return seed_content(store, index, args.namespace, indexer=indexer)


if __name__ == "__main__":
    main()
