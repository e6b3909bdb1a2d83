"""Embedding repository used by the embedding-search fallback.

`EmbeddingRepository` is the interface the retriever depends on; the
in-process list store below is one implementation of it, created and injected
by whoever assembles the pipeline.
"""

import math
from dataclasses import dataclass, field
from typing import Protocol, Sequence


@dataclass
class EmbeddingRecord:
    id: str
    text: str
    embedding: list[float]
    title: str
    url: str
    type: str
    metadata: dict = field(default_factory=dict)


class EmbeddingRepository(Protocol):
    def add(self, record: EmbeddingRecord) -> None: ...

    def query(self, vector: Sequence[float], k: int) -> list[tuple[EmbeddingRecord, float]]: ...

    def __len__(self) -> int: ...


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity; 0.0 for empty, mismatched or zero-length vectors."""
    if not a or not b or len(a) != len(b):
        return 0.0
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)


class InMemoryEmbeddingStore:
    """Brute-force cosine search over a list of records.

    Re-adding a record with an existing id replaces it.
    """

    def __init__(self):
        self._records: dict[str, EmbeddingRecord] = {}

    def add(self, record: EmbeddingRecord) -> None:
        self._records[record.id] = record

    def query(self, vector: Sequence[float], k: int) -> list[tuple[EmbeddingRecord, float]]:
        if k <= 0:
            return []
        scored = [(r, cosine_similarity(vector, r.embedding)) for r in self._records.values()]
        scored.sort(key=lambda pair: pair[1], reverse=True)
        return scored[:k]

    def clear(self) -> None:
        self._records.clear()

    def __len__(self) -> int:
        return len(self._records)
