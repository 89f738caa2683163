"""Shared FastAPI dependencies."""

from __future__ import annotations

from functools import lru_cache

from voice_search.core.config import Settings, get_settings
from voice_search.ingest.chunker import RecordChunker
from voice_search.ingest.embeddings import HashedEmbedder
from voice_search.ingest.orchestrator import IndexOrchestrator
from voice_search.ingest.records import MarkdownRecordStore
from voice_search.retrieval import HybridQueryEngine, KeywordIndexManager, VectorStore

_RECORD_STORE: MarkdownRecordStore | None = None
_VECTOR_STORE: VectorStore | None = None
_KEYWORD_INDEX: KeywordIndexManager | None = None
_ORCHESTRATOR: IndexOrchestrator | None = None
_QUERY_ENGINE: HybridQueryEngine | None = None


@lru_cache(maxsize=1)
def get_app_settings() -> Settings:
    return get_settings()


def get_record_store() -> MarkdownRecordStore:
    global _RECORD_STORE
    if _RECORD_STORE is None:
        _RECORD_STORE = MarkdownRecordStore(get_app_settings().records_dir)
    return _RECORD_STORE


def get_embedder() -> HashedEmbedder:
    settings = get_app_settings()
    return HashedEmbedder.get(settings.embedding_model, dim=settings.embedding_dim)


def get_vector_store() -> VectorStore:
    global _VECTOR_STORE
    if _VECTOR_STORE is None:
        _VECTOR_STORE = VectorStore(get_app_settings().db_path)
    return _VECTOR_STORE


def get_keyword_index() -> KeywordIndexManager:
    global _KEYWORD_INDEX
    if _KEYWORD_INDEX is None:
        _KEYWORD_INDEX = KeywordIndexManager(get_record_store())
    return _KEYWORD_INDEX


def get_orchestrator() -> IndexOrchestrator:
    global _ORCHESTRATOR
    if _ORCHESTRATOR is None:
        settings = get_app_settings()
        chunker = RecordChunker(
            get_embedder(),
            target_tokens=settings.chunk_target_tokens,
            max_tokens=settings.chunk_max_tokens,
            min_tokens=settings.chunk_min_tokens,
            overlap_tokens=settings.chunk_overlap_tokens,
        )
        _ORCHESTRATOR = IndexOrchestrator(
            vector_store=get_vector_store(),
            keyword_index=get_keyword_index(),
            chunker=chunker,
            provider=get_record_store(),
        )
    return _ORCHESTRATOR


def get_query_engine() -> HybridQueryEngine:
    global _QUERY_ENGINE
    if _QUERY_ENGINE is None:
        settings = get_app_settings()
        _QUERY_ENGINE = HybridQueryEngine(
            vector_store=get_vector_store(),
            keyword_index=get_keyword_index(),
            embedder=get_embedder(),
            provider=get_record_store(),
            rrf_k=settings.rrf_k,
            candidate_multiplier=settings.candidate_multiplier,
            min_score=settings.min_score,
        )
    return _QUERY_ENGINE


def reset_singletons() -> None:
    """Forget every cached service; the next accessor call rebuilds it."""
    global _RECORD_STORE, _VECTOR_STORE, _KEYWORD_INDEX, _ORCHESTRATOR, _QUERY_ENGINE
    get_app_settings.cache_clear()
    get_settings.cache_clear()
    _RECORD_STORE = None
    _VECTOR_STORE = None
    _KEYWORD_INDEX = None
    _ORCHESTRATOR = None
    _QUERY_ENGINE = None


__all__ = [
    "get_app_settings",
    "get_record_store",
    "get_embedder",
    "get_vector_store",
    "get_keyword_index",
    "get_orchestrator",
    "get_query_engine",
    "reset_singletons",
]
