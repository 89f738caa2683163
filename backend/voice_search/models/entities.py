"""Internal dataclasses shared by the indexing and retrieval layers."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Sequence

SEARCHABLE_FIELDS = ("title", "summary", "context", "tags", "text")
CHUNK_FIELDS = ("title", "summary", "context", "text")
FULL_RECORD_FIELD = "full"


@dataclass(frozen=True, slots=True)
class Record:
    """A voice note as provided by the record store. Never mutated here."""

    id: str
    title: str = ""
    summary: str = ""
    context: str = ""
    tags: tuple[str, ...] = ()
    text: str = ""
    timestamp: datetime | None = None
    duration_seconds: float | None = None
    size_bytes: int | None = None
    path: Path | None = None


@dataclass(slots=True)
class Chunk:
    """An embedded slice of one record field, ready for the vector store."""

    record_id: str
    field: str
    chunk_index: int
    chunk_text: str
    embedding: Sequence[float]
    created_at: datetime = field(default_factory=lambda: datetime.now(tz=timezone.utc))


@dataclass(frozen=True, slots=True)
class ManifestEntry:
    record_id: str
    fingerprint: str
    indexed_at: datetime
    chunk_count: int


@dataclass(frozen=True, slots=True)
class VectorHit:
    chunk_id: int
    record_id: str
    field: str
    chunk_index: int
    chunk_text: str
    score: float


@dataclass(frozen=True, slots=True)
class KeywordHit:
    record: Record
    score: float
    matched_fields: frozenset[str] = frozenset()


@dataclass(slots=True)
class SearchResult:
    """A ranked hybrid result enriched with its full record.

    ``rrf_score`` is the sum of reciprocal-rank contributions from every
    retrieval path that found the record. Vector and keyword provenance stay
    ``None`` when that path did not return the record.
    """

    record: Record
    matched_field: str
    rrf_score: float
    matched_chunk: str | None = None
    matched_fields: frozenset[str] = frozenset()
    vector_score: float | None = None
    keyword_score: float | None = None
    vector_rank: int | None = None
    keyword_rank: int | None = None

    @property
    def has_vector_match(self) -> bool:
        return self.vector_score is not None

    @property
    def has_keyword_match(self) -> bool:
        return self.keyword_score is not None

    @property
    def is_both_match(self) -> bool:
        return self.has_vector_match and self.has_keyword_match

    @property
    def relevance_label(self) -> str:
        if self.rrf_score > 0.03:
            return "High relevance"
        if self.rrf_score > 0.02:
            return "Medium relevance"
        return "Low relevance"

    def snippet(self, max_length: int = 150) -> str:
        source = self.matched_chunk or self.record.text
        if not source:
            return ""
        if len(source) <= max_length:
            return source
        return f"{source[:max_length]}..."


@dataclass(frozen=True, slots=True)
class VectorStoreStats:
    total_chunks: int = 0
    total_records: int = 0
    approx_size_bytes: int = 0


@dataclass(frozen=True, slots=True)
class KeywordIndexStats:
    is_built: bool = False
    is_building: bool = False
    size: int = 0
    last_built: datetime | None = None


class IndexingPhase(str, Enum):
    IDLE = "idle"
    SYNCING = "syncing"
    INDEXING = "indexing"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class OrchestratorSnapshot:
    phase: IndexingPhase = IndexingPhase.IDLE
    total_to_process: int = 0
    processed_count: int = 0
    progress: float = 0.0
    error_message: str | None = None
    is_syncing: bool = False


@dataclass(frozen=True, slots=True)
class IndexStats:
    vector: VectorStoreStats
    keyword: KeywordIndexStats
    status: OrchestratorSnapshot


@dataclass(frozen=True, slots=True)
class SyncReport:
    """Outcome of one reconciliation pass between the record store and the indexes."""

    new: tuple[str, ...] = ()
    modified: tuple[str, ...] = ()
    unchanged: tuple[str, ...] = ()
    deleted: tuple[str, ...] = ()
    failed: tuple[str, ...] = ()
    duration_seconds: float = 0.0

    @property
    def indexed(self) -> int:
        return len(self.new) + len(self.modified) - len(self.failed)


__all__ = [
    "SEARCHABLE_FIELDS",
    "CHUNK_FIELDS",
    "FULL_RECORD_FIELD",
    "Record",
    "Chunk",
    "ManifestEntry",
    "VectorHit",
    "KeywordHit",
    "SearchResult",
    "VectorStoreStats",
    "KeywordIndexStats",
    "IndexingPhase",
    "OrchestratorSnapshot",
    "IndexStats",
    "SyncReport",
]
