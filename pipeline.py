#!/usr/bin/env python3
"""Command-line entry point for the content-library RAG pipeline.

Usage:
  python pipeline.py seed                                 # Chunk + upsert all content
  python pipeline.py seed --namespace staging --batch-size 16

  python pipeline.py search "startup legal mechanics"     # Retrieved passages only
  python pipeline.py ask "How do I set up a cap table?"   # Passages + grounded answer
  python pipeline.py chat                                 # Interactive Q&A
  python pipeline.py chat --local-embeddings              # Also embed content in-process

  python pipeline.py chunk --file notes.txt               # Show passage boundaries
  python pipeline.py topics "some text"                   # Key topic extraction

  python pipeline.py serve --port 8501                    # Launch the HTTP API

Chat commands:
  namespace <name>   switch the active namespace (no name = default namespace)
  debug              show which credentials are configured
  exit               quit
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Callable, Iterable, Iterator, Optional

from rag.errors import ContentLibraryError, GenerationError
from settings import PROJECT_ROOT, Settings

logger = logging.getLogger(__name__)

TEXT_PREVIEW_CHARS = 300

Writer = Callable[[str], None]


def setup_logging(level: int = logging.INFO):
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(PROJECT_ROOT / "pipeline.log"),
        ],
    )


def _load_store(settings: Settings):
    from library.content_store import ContentStore

    store = ContentStore.from_directory(settings.data_dir)
    logger.info("Content library: %d videos, %d blog posts", len(store.videos()), len(store.blogs()))
    return store


def _local_embeddings(settings: Settings, store):
    """Embed every passage into an in-process store for the embedding fallback."""
    from vectorstore.embedder import Embedder
    from vectorstore.ingest import embed_content
    from vectorstore.memory_store import InMemoryEmbeddingStore

    repository = InMemoryEmbeddingStore()
    embedder = Embedder(api_key=settings.openai_api_key, timeout=settings.search_timeout_s)
    embed_content(store, embedder, repository)
    return repository


def _build_engine(args, settings: Settings):
    from rag.query_engine import build_query_engine

    store = _load_store(settings)
    repository = _local_embeddings(settings, store) if getattr(args, "local_embeddings", False) else None
    return build_query_engine(settings, store, repository=repository)


# ---------------------------------------------------------------------------
# Output formatting
# ---------------------------------------------------------------------------

def print_results(results, write: Writer = print):
    write(f"\nRetrieved {len(results)} documents:")
    write("-" * 50)
    for i, r in enumerate(results, 1):
        write(f"\n[{i}] {r.title} ({r.type}) | similarity {r.similarity * 100:.1f}% | via {r.source}")
        write(f"    URL: {r.url}")
        preview = (r.text or "").replace("\n", " ")
        if len(preview) > TEXT_PREVIEW_CHARS:
            preview = preview[:TEXT_PREVIEW_CHARS] + "..."
        write(f"    Text: {preview}")


def print_answer(result, write: Writer = print):
    if result.sources:
        print_results(result.sources, write)
    write("\n" + "=" * 70)
    write("ANSWER")
    write("=" * 70)
    write(result.answer)
    timings = result.metadata.get("timings", {})
    if timings:
        write("\n" + ", ".join(f"{k}={v}" for k, v in timings.items()))


# ---------------------------------------------------------------------------
# CHAT
# ---------------------------------------------------------------------------

def _stdin_lines(prompt: str = "\nQuery> ") -> Iterator[str]:
    while True:
        try:
            yield input(prompt)
        except (EOFError, KeyboardInterrupt):
            return


def run_chat(
    engine,
    settings: Settings,
    lines: Iterable[str],
    write: Writer = print,
    top_k: Optional[int] = None,
) -> str:
    """Answer queries line by line until `exit` or end of input.

    Returns the namespace that was active when the session ended.
    """
    namespace = settings.namespace
    write(f"Content library chat. Active namespace: {namespace or '(default)'}")
    write("Type 'namespace <name>', 'debug' or 'exit'.")

    for line in lines:
        command = line.strip()
        if not command:
            continue
        lowered = command.lower()

        if lowered == "exit":
            write("Goodbye.")
            break
        if lowered == "debug":
            for key, value in settings.describe().items():
                write(f"  {key}: {value}")
            write(f"  active namespace: {namespace or '(default)'}")
            continue
        if lowered == "namespace" or lowered.startswith("namespace "):
            namespace = command[len("namespace"):].strip()
            write(f"Switched to namespace: {namespace or '(default)'}")
            continue

        try:
            result = engine.answer(command, namespace=namespace, top_k=top_k)
        except GenerationError as e:
            write(f"Error: {e.user_message()}")
            continue
        except ContentLibraryError as e:
            write(f"Error: {e}")
            continue
        print_answer(result, write)

    return namespace


def cmd_chat(args):
    settings = Settings.from_env()
    engine = _build_engine(args, settings)
    run_chat(engine, settings, _stdin_lines(), top_k=args.top_k)


# ---------------------------------------------------------------------------
# SEARCH / ASK
# ---------------------------------------------------------------------------

def cmd_search(args):
    """Retrieve passages without generating an answer."""
    from rag.retriever import build_retriever

    settings = Settings.from_env()
    store = _load_store(settings)
    repository = _local_embeddings(settings, store) if args.local_embeddings else None
    retriever = build_retriever(settings, store, repository=repository)
    namespace = args.namespace if args.namespace is not None else settings.namespace

    results = retriever.backfill_all(retriever.search(args.query, args.top_k, namespace))
    print(f"\nQuery: \"{args.query}\" (namespace: {namespace or '(default)'})")
    print_results(results)


def cmd_ask(args):
    settings = Settings.from_env()
    engine = _build_engine(args, settings)
    namespace = args.namespace if args.namespace is not None else settings.namespace
    result = engine.answer(args.query, namespace=namespace, top_k=args.top_k)
    print(f"\nQuery: \"{result.query}\"")
    print_answer(result)


# ---------------------------------------------------------------------------
# SEED
# ---------------------------------------------------------------------------

def cmd_seed(args):
    """Chunk all content and upsert it into the vector index."""
    from vectorstore.index import PineconeIndex
    from vectorstore.ingest import BatchIndexer, seed_content

    settings = Settings.from_env()
    api_key, index_name = settings.require_pinecone()
    namespace = args.namespace if args.namespace is not None else settings.namespace
    store = _load_store(settings)

    logger.info("=" * 60)
    logger.info("SEEDING index '%s', namespace '%s'", index_name, namespace or "(default)")
    logger.info("=" * 60)

    index = PineconeIndex(api_key, index_name, timeout=settings.search_timeout_s)
    indexer = BatchIndexer(index, batch_size=args.batch_size, batch_delay_s=args.batch_delay)
    stats = seed_content(store, index, namespace, indexer=indexer)
    print(f"\nSeeded {stats['records']} records in {stats['batches']} batches")


# ---------------------------------------------------------------------------
# CHUNK / TOPICS
# ---------------------------------------------------------------------------

def cmd_chunk(args):
    """Print the passages the chunker produces for a file or stdin."""
    from vectorstore.chunker import Chunker

    text = Path(args.file).read_text() if args.file else sys.stdin.read()
    chunker = Chunker(args.min_chars, args.ideal_chars, args.max_chars)
    passages = chunker.chunk(text)
    for i, passage in enumerate(passages, 1):
        print(f"\n--- Passage {i} ({len(passage)} chars) ---")
        print(passage)
    print(f"\n{len(passages)} passages")


def cmd_topics(args):
    from rag.llm import LLMClient
    from rag.query_engine import extract_key_topics

    settings = Settings.from_env()
    llm = LLMClient(
        provider=settings.llm_provider,
        model=settings.llm_model,
        api_key=settings.require_llm_key(),
        timeout=settings.generation_timeout_s,
    )
    topics = extract_key_topics(llm, args.text)
    print("\n".join(f"  - {t}" for t in topics) or "  (no topics extracted)")


# ---------------------------------------------------------------------------
# SERVE
# ---------------------------------------------------------------------------

def cmd_serve(args):
    """Launch the HTTP API."""
    import uvicorn

    logger.info("=" * 60)
    logger.info("LAUNCHING CONTENT LIBRARY API")
    logger.info("  http://localhost:%d", args.port)
    logger.info("=" * 60)

    uvicorn.run(
        "webapp.app:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level="info",
    )


# ---------------------------------------------------------------------------
# MAIN
# ---------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    from vectorstore.chunker import IDEAL_PARAGRAPH_CHARS, MAX_PARAGRAPH_CHARS, MIN_PARAGRAPH_CHARS
    from vectorstore.ingest import BATCH_DELAY_S, BATCH_SIZE

    parser = argparse.ArgumentParser(
        description="Content Library RAG Pipeline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    subparsers = parser.add_subparsers(dest="command", help="Pipeline command")

    # Seed
    seed_parser = subparsers.add_parser("seed", help="Chunk and upsert content into the vector index")
    seed_parser.add_argument("--namespace", default=None, help="Target namespace (default: from env)")
    seed_parser.add_argument("--batch-size", type=int, default=BATCH_SIZE, help=f"Records per upsert (default: {BATCH_SIZE})")
    seed_parser.add_argument(
        "--batch-delay", type=float, default=BATCH_DELAY_S,
        help=f"Seconds between batches (default: {BATCH_DELAY_S})",
    )

    # Search / ask
    for name, help_text, default_top_k in (
        ("search", "Retrieve passages for a query", 25),
        ("ask", "Answer a query from the content library", 5),
    ):
        p = subparsers.add_parser(name, help=help_text)
        p.add_argument("query", help="Query text")
        p.add_argument("--top-k", type=int, default=default_top_k, help=f"Number of results (default: {default_top_k})")
        p.add_argument("--namespace", default=None, help="Namespace (default: from env)")
        p.add_argument("--local-embeddings", action="store_true", help="Enable the in-process embedding fallback")

    # Chat
    chat_parser = subparsers.add_parser("chat", help="Interactive Q&A session")
    chat_parser.add_argument("--top-k", type=int, default=5, help="Number of results (default: 5)")
    chat_parser.add_argument("--local-embeddings", action="store_true", help="Enable the in-process embedding fallback")

    # Chunk
    chunk_parser = subparsers.add_parser("chunk", help="Show passage boundaries for a text")
    chunk_parser.add_argument("--file", default=None, help="Text file (default: stdin)")
    chunk_parser.add_argument("--min-chars", type=int, default=MIN_PARAGRAPH_CHARS)
    chunk_parser.add_argument("--ideal-chars", type=int, default=IDEAL_PARAGRAPH_CHARS)
    chunk_parser.add_argument("--max-chars", type=int, default=MAX_PARAGRAPH_CHARS)

    # Topics
    topics_parser = subparsers.add_parser("topics", help="Extract key topics from a text")
    topics_parser.add_argument("text", help="Text to analyze")

    # Serve
    serve_parser = subparsers.add_parser("serve", help="Launch the HTTP API")
    serve_parser.add_argument("--port", type=int, default=8501, help="Port (default: 8501)")
    serve_parser.add_argument("--host", default="0.0.0.0", help="Host (default: 0.0.0.0)")
    serve_parser.add_argument("--reload", action="store_true", help="Auto-reload on code changes")

    return parser


def main(argv: Optional[list[str]] = None):
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    setup_logging()

    commands = {
        "seed": cmd_seed,
        "search": cmd_search,
        "ask": cmd_ask,
        "chat": cmd_chat,
        "chunk": cmd_chunk,
        "topics": cmd_topics,
        "serve": cmd_serve,
    }

    try:
        commands[args.command](args)
    except GenerationError as e:
        logger.error("Generation failed: %s", e)
        print(f"\nError: {e.user_message()}")
        sys.exit(1)
    except Exception as e:
        logger.exception("Pipeline error: %s", e)
        sys.exit(1)


if __name__ == "__main__":
    main()
