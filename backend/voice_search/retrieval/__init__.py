"""Retrieval components: vector store, keyword index and hybrid search."""

from .vector_store import VectorStore
from .keyword_index import KeywordIndex, KeywordIndexManager
from .search import HybridQueryEngine
from .hybrid import fuse, rrf_score

__all__ = [
    "VectorStore",
    "KeywordIndex",
    "KeywordIndexManager",
    "HybridQueryEngine",
    "fuse",
    "rrf_score",
]
