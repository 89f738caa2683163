"""Pydantic DTOs exposed via API."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from voice_search.models.entities import IndexStats, OrchestratorSnapshot, SearchResult, SyncReport


class SearchRequest(BaseModel):
    query: str
    limit: int | None = Field(default=None, ge=1, le=100)


class RecordSummary(BaseModel):
    id: str
    title: str
    summary: str = ""
    tags: list[str] = Field(default_factory=list)
    timestamp: datetime | None = None
    duration_seconds: float | None = None


class SearchHit(BaseModel):
    record: RecordSummary
    matched_field: str
    matched_fields: list[str] = Field(default_factory=list)
    snippet: str
    rrf_score: float
    relevance: str
    vector_score: float | None = None
    keyword_score: float | None = None
    vector_rank: int | None = None
    keyword_rank: int | None = None

    @classmethod
    def from_result(cls, result: SearchResult) -> "SearchHit":
        record = result.record
        return cls(
            record=RecordSummary(
                id=record.id,
                title=record.title,
                summary=record.summary,
                tags=list(record.tags),
                timestamp=record.timestamp,
                duration_seconds=record.duration_seconds,
            ),
            matched_field=result.matched_field,
            matched_fields=sorted(result.matched_fields),
            snippet=result.snippet(),
            rrf_score=result.rrf_score,
            relevance=result.relevance_label,
            vector_score=result.vector_score,
            keyword_score=result.keyword_score,
            vector_rank=result.vector_rank,
            keyword_rank=result.keyword_rank,
        )


class SearchResponse(BaseModel):
    query: str
    results: list[SearchHit]


class StatusResponse(BaseModel):
    phase: Literal["idle", "syncing", "indexing", "error"]
    total_to_process: int
    processed_count: int
    progress: float
    error_message: str | None = None
    is_syncing: bool

    @classmethod
    def from_snapshot(cls, snapshot: OrchestratorSnapshot) -> "StatusResponse":
        return cls(
            phase=snapshot.phase.value,
            total_to_process=snapshot.total_to_process,
            processed_count=snapshot.processed_count,
            progress=snapshot.progress,
            error_message=snapshot.error_message,
            is_syncing=snapshot.is_syncing,
        )


class VectorStats(BaseModel):
    total_chunks: int
    total_records: int
    approx_size_bytes: int


class KeywordStats(BaseModel):
    is_built: bool
    is_building: bool
    size: int
    last_built: datetime | None = None


class StatsResponse(BaseModel):
    vector: VectorStats
    keyword: KeywordStats
    status: StatusResponse

    @classmethod
    def from_stats(cls, stats: IndexStats) -> "StatsResponse":
        return cls(
            vector=VectorStats(
                total_chunks=stats.vector.total_chunks,
                total_records=stats.vector.total_records,
                approx_size_bytes=stats.vector.approx_size_bytes,
            ),
            keyword=KeywordStats(
                is_built=stats.keyword.is_built,
                is_building=stats.keyword.is_building,
                size=stats.keyword.size,
                last_built=stats.keyword.last_built,
            ),
            status=StatusResponse.from_snapshot(stats.status),
        )


class SyncResponse(BaseModel):
    new: list[str]
    modified: list[str]
    unchanged: int
    deleted: list[str]
    failed: list[str]
    duration_seconds: float

    @classmethod
    def from_report(cls, report: SyncReport) -> "SyncResponse":
        return cls(
            new=list(report.new),
            modified=list(report.modified),
            unchanged=len(report.unchanged),
            deleted=list(report.deleted),
            failed=list(report.failed),
            duration_seconds=report.duration_seconds,
        )


class IndexRecordResponse(BaseModel):
    record_id: str
    chunks: int


class DeleteResponse(BaseModel):
    status: Literal["ok", "noop"]
    record_id: str


__all__ = [
    "SearchRequest",
    "SearchResponse",
    "SearchHit",
    "RecordSummary",
    "StatusResponse",
    "StatsResponse",
    "VectorStats",
    "KeywordStats",
    "SyncResponse",
    "IndexRecordResponse",
    "DeleteResponse",
]
