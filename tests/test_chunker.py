import pytest

from schemas.content import VideoContent
from vectorstore.chunker import Chunker, compose_item_text, generate_chunks, normalize_spacing, split_sentences

TEN_SENTENCES = [
    "Hi there.",
    "I am fine.",
    "How are you?",
    "Let's talk more.",
    "The weather is nice today.",
    "We could go for a walk.",
    "Maybe we will see some birds.",
    "I like the park near the river.",
    "It is quiet in the morning.",
    "See you there soon!",
]


@pytest.fixture
def small_chunker() -> Chunker:
    return Chunker(min_length=50, ideal_length=120, max_length=150)


def long_text(n: int = 60) -> str:
    return " ".join(
        f"Sentence number {i} talks about topic {i % 7} in some detail." for i in range(n)
    )


# ---------------------------------------------------------------------------
# Sentence segmentation
# ---------------------------------------------------------------------------

def test_split_sentences_keeps_terminal_punctuation():
    assert split_sentences("One. Two! Three?") == ["One.", "Two!", "Three?"]


def test_trailing_fragment_gets_a_period():
    assert split_sentences("First sentence. and a trailing bit") == ["First sentence.", "and a trailing bit."]


def test_text_without_punctuation_is_one_sentence():
    assert split_sentences("no punctuation at all") == ["no punctuation at all."]


def test_glued_periods_are_separated():
    assert normalize_spacing("end.Next") == "end. Next"
    assert split_sentences("end.Next one.") == ["end.", "Next one."]


def test_ellipsis_is_left_alone():
    assert normalize_spacing("Wait... what") == "Wait... what"
    assert normalize_spacing(normalize_spacing("a.b... c")) == normalize_spacing("a.b... c")


# ---------------------------------------------------------------------------
# Chunker
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("text", ["", "   ", "\n\t", None])
def test_empty_input_yields_no_passages(text):
    assert generate_chunks(text) == []


def test_short_text_is_a_single_passage():
    text = "Short text. Only two sentences."
    assert generate_chunks(text) == [text]


def test_ten_sentence_example(small_chunker):
    passages = small_chunker.chunk(" ".join(TEN_SENTENCES))

    assert len(passages) == 2
    assert all(len(p) <= 150 for p in passages)
    assert passages[0] == " ".join(TEN_SENTENCES[:7])
    assert passages[1] == " ".join(TEN_SENTENCES[7:])
    assert passages[-1].endswith("See you there soon!")


def test_no_sentence_dropped_or_duplicated():
    text = long_text()
    passages = generate_chunks(text)
    assert len(passages) > 1
    assert " ".join(passages) == " ".join(split_sentences(text))


def test_passages_respect_max_length():
    chunker = Chunker(min_length=50, ideal_length=100, max_length=140)
    passages = chunker.chunk(long_text(40))
    assert all(p for p in passages)
    assert all(len(p) <= 140 for p in passages)


def test_oversized_sentence_is_split_at_word_boundaries(small_chunker):
    sentence = " ".join(["word"] * 80) + "."
    passages = small_chunker.chunk(sentence)
    assert len(passages) > 1
    assert all(len(p) <= 150 for p in passages)
    assert " ".join(passages) == sentence


def test_single_huge_word_is_hard_sliced(small_chunker):
    passages = small_chunker.chunk("x" * 400 + ".")
    assert all(len(p) <= 150 for p in passages)
    assert "".join(passages) == "x" * 400 + "."


def test_rechunking_is_stable():
    first = generate_chunks(long_text(80))
    assert generate_chunks(" ".join(first)) == first


def test_short_tail_is_merged_into_previous_passage():
    chunker = Chunker(min_length=40, ideal_length=60, max_length=120)
    third = "Third sentence here to pass the ideal length again."
    fourth = "Another sentence to push past the ideal length."
    text = (
        "This first sentence is comfortably long enough by itself. "
        "So is this second sentence, which also runs long. "
        f"{third} {fourth} Tail."
    )
    passages = chunker.chunk(text)
    assert len(passages) == 2
    assert passages[1] == f"{third} {fourth} Tail."


@pytest.mark.parametrize("thresholds", [(0, 10, 20), (30, 20, 40), (10, 50, 40)])
def test_invalid_thresholds_rejected(thresholds):
    with pytest.raises(ValueError):
        Chunker(*thresholds)


def test_chunk_item_positions_passages():
    item = VideoContent(
        name_video="Long Talk",
        description_video="A long talk.",
        mp3_content=long_text(60),
    )
    passages = Chunker().chunk_item(item)
    assert [p.index for p in passages] == list(range(len(passages)))
    assert all(p.source_name == "Long Talk" and p.content_type == "video" for p in passages)
    assert passages[0].text.startswith("Long Talk. A long talk.")


def test_compose_item_text_without_long_form():
    item = VideoContent(name_video="Intro", description_video="Short description.")
    assert compose_item_text(item) == "Intro. Short description."
