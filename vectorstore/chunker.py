"""Sentence-aware passage chunker for content-library items.

Text is normalized, segmented into sentences, and sentences are packed
greedily into paragraph-sized passages bounded by character thresholds:

  - MIN_PARAGRAPH_CHARS   avoid emitting tiny fragments
  - IDEAL_PARAGRAPH_CHARS preferred stopping point
  - MAX_PARAGRAPH_CHARS   hard ceiling for every passage

A passage never ends mid-sentence unless a single sentence is longer than
the ceiling on its own; such sentences are broken at word boundaries.
"""

import logging
import re
import time
from typing import Iterable, Optional

from schemas.content import ContentItem

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

MIN_PARAGRAPH_CHARS = 200
IDEAL_PARAGRAPH_CHARS = 800
MAX_PARAGRAPH_CHARS = 1000

# A period glued to the next character ("end.Next") gets a space; runs of
# periods are left alone so ellipses stay intact.
_GLUED_PERIOD = re.compile(r"\.([^\s.])")
_SENTENCE_END = re.compile(r"[.!?](?=\s|$)")
_TERMINAL_PUNCT = re.compile(r"[.!?]$")


# ---------------------------------------------------------------------------
# Passage (lightweight, converted to an IndexRecord during ingestion)
# ---------------------------------------------------------------------------

class Passage:
    """One chunk of an item's text, with its position in that item."""

    __slots__ = ("text", "index", "source_name", "content_type")

    def __init__(self, text: str, index: int, source_name: str = "", content_type: str = ""):
        self.text = text
        self.index = index
        self.source_name = source_name
        self.content_type = content_type

    def __repr__(self) -> str:
        return f"Passage({self.source_name!r}#{self.index}, {len(self.text)} chars)"


# ---------------------------------------------------------------------------
# Sentence segmentation
# ---------------------------------------------------------------------------

def normalize_spacing(text: str) -> str:
    return _GLUED_PERIOD.sub(r". \1", text.strip())


def split_sentences(text: str) -> list[str]:
    """Split text into sentences that keep their terminal punctuation.

    A trailing fragment without terminal punctuation becomes the final
    sentence with a period appended.
    """
    text = normalize_spacing(text)
    sentences: list[str] = []
    last = 0
    for match in _SENTENCE_END.finditer(text):
        sentence = text[last:match.end()].strip()
        if sentence:
            sentences.append(sentence)
        last = match.end()

    remaining = text[last:].strip()
    if remaining:
        if not _TERMINAL_PUNCT.search(remaining):
            remaining += "."
        sentences.append(remaining)
    return sentences


def compose_item_text(item: ContentItem) -> str:
    """Text indexed for an item: its name, description and long-form body."""
    return f"{item.name}. {item.description} {item.long_form_text}".strip()


# ---------------------------------------------------------------------------
# Chunker
# ---------------------------------------------------------------------------

class Chunker:
    """Greedy sentence packer with min / ideal / max character thresholds."""

    def __init__(
        self,
        min_length: int = MIN_PARAGRAPH_CHARS,
        ideal_length: int = IDEAL_PARAGRAPH_CHARS,
        max_length: int = MAX_PARAGRAPH_CHARS,
    ):
        if not 0 < min_length <= ideal_length <= max_length:
            raise ValueError(
                f"thresholds must satisfy 0 < min <= ideal <= max, got "
                f"{min_length}/{ideal_length}/{max_length}"
            )
        self.min_length = min_length
        self.ideal_length = ideal_length
        self.max_length = max_length

    def chunk(self, text: Optional[str]) -> list[str]:
        """Split text into ordered, non-empty passages. Never raises."""
        if not isinstance(text, str) or not text.strip():
            return []

        units: list[str] = []
        for sentence in split_sentences(text):
            units.extend(self._split_oversized(sentence))

        paragraphs: list[str] = []
        current = ""
        for i, unit in enumerate(units):
            if current and len(current) + len(unit) + 1 > self.max_length:
                paragraphs.append(current)
                current = ""

            current = f"{current} {unit}" if current else unit

            is_last = i == len(units) - 1
            if is_last or (len(current) >= self.ideal_length and len(current) >= self.min_length):
                paragraphs.append(current)
                current = ""

        # Short tail: fold into the previous passage when it still fits
        if len(paragraphs) > 1 and len(paragraphs[-1]) < self.min_length:
            if len(paragraphs[-2]) + 1 + len(paragraphs[-1]) <= self.max_length:
                tail = paragraphs.pop()
                paragraphs[-1] = f"{paragraphs[-1]} {tail}"

        # A short document split into 2-3 pieces goes back to one passage
        if 1 < len(paragraphs) <= 3:
            combined = " ".join(paragraphs)
            if len(combined) <= self.max_length:
                return [combined]

        return paragraphs

    def chunk_item(self, item: ContentItem) -> list[Passage]:
        """Chunk a single content item into positioned passages."""
        return [
            Passage(text=text, index=i, source_name=item.name, content_type=item.content_type.value)
            for i, text in enumerate(self.chunk(compose_item_text(item)))
        ]

    def chunk_items(self, items: Iterable[ContentItem]) -> list[Passage]:
        """Chunk a batch of content items."""
        items = list(items)
        all_passages: list[Passage] = []
        start = time.perf_counter()
        for item in items:
            all_passages.extend(self.chunk_item(item))
        logger.info(
            "Chunked %d items into %d passages (avg %.1f passages/item) in %.2fs",
            len(items), len(all_passages),
            len(all_passages) / max(len(items), 1), time.perf_counter() - start,
        )
        return all_passages

    def _split_oversized(self, sentence: str) -> list[str]:
        """Break a sentence longer than max_length at word boundaries."""
        if len(sentence) <= self.max_length:
            return [sentence]

        pieces: list[str] = []
        current = ""
        for word in sentence.split():
            while len(word) > self.max_length:
                if current:
                    pieces.append(current)
                    current = ""
                pieces.append(word[:self.max_length])
                word = word[self.max_length:]
            if current and len(current) + 1 + len(word) > self.max_length:
                pieces.append(current)
                current = ""
            current = f"{current} {word}" if current else word
        if current:
            pieces.append(current)
        return pieces


_DEFAULT_CHUNKER = Chunker()


def generate_chunks(text: Optional[str]) -> list[str]:
    """Chunk text with the default thresholds."""
    return _DEFAULT_CHUNKER.chunk(text)
