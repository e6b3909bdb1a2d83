import pytest

from pipeline import build_parser, cmd_chunk, run_chat
from rag.errors import AuthenticationFailedError, SearchError
from rag.query_engine import QueryResult
from schemas.search_result import SearchResult


class FakeEngine:
    def __init__(self, error=None):
        self.error = error
        self.calls = []

    def answer(self, query, namespace=None, top_k=None):
        self.calls.append((query, namespace))
        if self.error is not None:
            raise self.error
        source = SearchResult(title="The SAFE Explained", url="/library/blog-content/the-safe-explained",
                              type="blog", similarity=0.876, text="A SAFE is not debt.", source="vector_index")
        return QueryResult(query=query, answer="It is not debt.", sources=[source], found=True,
                           metadata={"timings": {"search_ms": 3}})


def chat(engine, settings, *lines) -> tuple[str, list[str]]:
    output: list[str] = []
    namespace = run_chat(engine, settings, iter(lines), write=output.append)
    return namespace, output


def test_chat_answers_and_prints_documents(settings):
    engine = FakeEngine()
    _, output = chat(engine, settings, "What is a SAFE?", "exit")
    text = "\n".join(output)

    assert engine.calls == [("What is a SAFE?", "content-library")]
    assert "The SAFE Explained (blog) | similarity 87.6%" in text
    assert "URL: /library/blog-content/the-safe-explained" in text
    assert "It is not debt." in text
    assert output[-1] == "Goodbye."


def test_chat_namespace_switching(settings):
    engine = FakeEngine()
    namespace, output = chat(engine, settings, "namespace staging", "q1", "namespace", "q2")

    assert engine.calls == [("q1", "staging"), ("q2", "")]
    assert "Switched to namespace: staging" in output
    assert "Switched to namespace: (default)" in output
    assert namespace == ""


def test_chat_debug_shows_masked_credentials(settings):
    _, output = chat(FakeEngine(), settings, "debug", "exit")
    text = "\n".join(output)
    assert "openai_api_key: set" in text
    assert "anthropic_api_key: missing" in text
    assert "sk-test" not in text


def test_chat_exit_stops_reading(settings):
    engine = FakeEngine()
    chat(engine, settings, "exit", "never asked")
    assert engine.calls == []


@pytest.mark.parametrize(
    "error, expected",
    [
        (AuthenticationFailedError("bad key"), "update your API key"),
        (SearchError("index down"), "index down"),
    ],
)
def test_chat_reports_errors_and_keeps_going(settings, error, expected):
    engine = FakeEngine(error=error)
    _, output = chat(engine, settings, "q1", "q2", "exit")
    errors = [line for line in output if line.startswith("Error:")]
    assert len(errors) == 2
    assert expected in errors[0]


def test_parser_subcommands():
    parser = build_parser()
    args = parser.parse_args(["seed", "--namespace", "staging", "--batch-size", "8"])
    assert (args.command, args.namespace, args.batch_size) == ("seed", "staging", 8)

    args = parser.parse_args(["ask", "what is a safe?"])
    assert args.top_k == 5 and args.namespace is None and not args.local_embeddings

    assert parser.parse_args(["search", "q"]).top_k == 25


def test_chunk_command_prints_passages(tmp_path, capsys):
    path = tmp_path / "notes.txt"
    path.write_text("One sentence. Two sentences. Three.")
    args = build_parser().parse_args(["chunk", "--file", str(path)])
    cmd_chunk(args)
    out = capsys.readouterr().out
    assert "Passage 1" in out
    assert "1 passages" in out
