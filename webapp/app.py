"""FastAPI surface over the content-library query engine.

Launch:
    python -m uvicorn webapp.app:app --reload --port 8501

Or via pipeline:
    python pipeline.py serve --port 8501

Credentials come from the environment, and may be overridden per request
with the x-api-key, x-pinecone-api-key, x-pinecone-index-name and
x-namespace headers.
"""

import dataclasses
import logging
from typing import Optional

from fastapi import Depends, FastAPI, Header, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from library.content_store import ContentStore
from rag.errors import (
    AuthenticationFailedError,
    ConfigurationError,
    ContentLibraryError,
    EmptyQueryError,
    GenerationError,
    RateLimitExceededError,
    ServiceOverloadedError,
)
from rag.llm import LLMClient
from rag.query_engine import QueryEngine, build_query_engine, extract_key_topics
from rag.retriever import DEFAULT_TOP_K
from settings import Settings
from vectorstore.index import PineconeIndex, VectorIndex
from vectorstore.ingest import BATCH_SIZE, BatchIndexer, seed_content

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# App setup
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Content Library Q&A",
    description="Grounded answers over the video and blog content library",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---------------------------------------------------------------------------
# Global state, lazy-initialized on first request
# ---------------------------------------------------------------------------

_settings: Optional[Settings] = None
_store: Optional[ContentStore] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings


def get_content_store() -> ContentStore:
    global _store
    if _store is None:
        _store = ContentStore.from_directory(get_settings().data_dir)
    return _store


def request_settings(
    x_api_key: Optional[str] = Header(None),
    x_pinecone_api_key: Optional[str] = Header(None),
    x_pinecone_index_name: Optional[str] = Header(None),
    x_namespace: Optional[str] = Header(None),
) -> Settings:
    """Environment settings with any per-request header overrides applied."""
    settings = get_settings()
    overrides = {}
    if x_api_key:
        key_field = "anthropic_api_key" if settings.llm_provider == "anthropic" else "openai_api_key"
        overrides[key_field] = x_api_key
    if x_pinecone_api_key:
        overrides["pinecone_api_key"] = x_pinecone_api_key
    if x_pinecone_index_name:
        overrides["pinecone_index"] = x_pinecone_index_name
    if x_namespace is not None:
        overrides["namespace"] = x_namespace
    return dataclasses.replace(settings, **overrides) if overrides else settings


def get_query_engine(
    settings: Settings = Depends(request_settings),
    store: ContentStore = Depends(get_content_store),
) -> QueryEngine:
    return build_query_engine(settings, store)


def get_llm(settings: Settings = Depends(request_settings)) -> LLMClient:
    return LLMClient(
        provider=settings.llm_provider,
        model=settings.llm_model,
        api_key=settings.require_llm_key(),
        timeout=settings.generation_timeout_s,
    )


def get_vector_index(settings: Settings = Depends(request_settings)) -> VectorIndex:
    api_key, index_name = settings.require_pinecone()
    return PineconeIndex(api_key, index_name, timeout=settings.search_timeout_s)


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------

def status_for(exc: ContentLibraryError) -> int:
    if isinstance(exc, (EmptyQueryError, ConfigurationError)):
        return 400
    if isinstance(exc, AuthenticationFailedError):
        return 401
    if isinstance(exc, (ServiceOverloadedError, RateLimitExceededError)):
        return 429
    if isinstance(exc, GenerationError):
        return 502
    return 500


@app.exception_handler(ContentLibraryError)
async def content_library_error_handler(request: Request, exc: ContentLibraryError):
    status = status_for(exc)
    if status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    detail = exc.user_message() if isinstance(exc, GenerationError) else str(exc)
    category = exc.category.value if isinstance(exc, GenerationError) else type(exc).__name__
    return JSONResponse(status_code=status, content={"error": category, "detail": detail})


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------

class QueryRequest(BaseModel):
    query: str
    top_k: int = Field(DEFAULT_TOP_K, ge=1, le=50)
    namespace: Optional[str] = None


class SeedRequest(BaseModel):
    namespace: Optional[str] = None
    batch_size: int = Field(BATCH_SIZE, ge=1, le=96)


class TopicsRequest(BaseModel):
    text: str


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

@app.post("/api/query")
def api_query(
    req: QueryRequest,
    settings: Settings = Depends(request_settings),
    engine: QueryEngine = Depends(get_query_engine),
):
    """Answer a query from the content library, with the passages used."""
    namespace = req.namespace if req.namespace is not None else settings.namespace
    result = engine.answer(req.query, namespace=namespace, top_k=req.top_k)
    return {
        "query": result.query,
        "answer": result.answer,
        "found": result.found,
        "sources": [s.model_dump() for s in result.sources],
        "metadata": result.metadata,
    }


@app.post("/api/seed")
def api_seed(
    req: SeedRequest,
    settings: Settings = Depends(request_settings),
    index: VectorIndex = Depends(get_vector_index),
    store: ContentStore = Depends(get_content_store),
):
    """Chunk the whole content library and upsert it into the vector index."""
    namespace = req.namespace if req.namespace is not None else settings.namespace
    stats = seed_content(store, index, namespace, indexer=BatchIndexer(index, batch_size=req.batch_size))
    return {"status": "ok", "namespace": namespace, "stats": stats}


@app.post("/api/topics")
def api_topics(req: TopicsRequest, llm: LLMClient = Depends(get_llm)):
    return {"topics": extract_key_topics(llm, req.text)}


@app.get("/api/settings")
def api_settings(settings: Settings = Depends(request_settings)):
    """Which credentials are configured (secrets masked)."""
    return settings.describe()


@app.get("/api/health")
def api_health(store: ContentStore = Depends(get_content_store)):
    return {"status": "ok", "content_items": len(store)}
