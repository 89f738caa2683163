"""Reciprocal rank fusion of vector and keyword result lists."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

from voice_search.models.entities import FULL_RECORD_FIELD, KeywordHit, Record, VectorHit

DEFAULT_RRF_K = 60


@dataclass(slots=True)
class FusedCandidate:
    """A record-level fusion result, before enrichment with the full record."""

    record_id: str
    matched_field: str
    rrf_score: float
    matched_chunk: str | None = None
    matched_fields: frozenset[str] = frozenset()
    vector_score: float | None = None
    vector_rank: int | None = None
    keyword_score: float | None = None
    keyword_rank: int | None = None
    record: Record | None = None


@dataclass(slots=True)
class _Bucket:
    record_id: str
    field: str
    text: str | None
    score: float = 0.0
    order: int = 0


@dataclass(slots=True)
class _Group:
    buckets: list[_Bucket] = field(default_factory=list)
    vector: tuple[float, int] | None = None
    keyword: tuple[float, int] | None = None
    keyword_hit: KeywordHit | None = None


def rrf_score(rank: int, k: int = DEFAULT_RRF_K) -> float:
    """Reciprocal-rank contribution of a 0-based ``rank``."""
    if rank < 0:
        raise ValueError("rank must be >= 0")
    return 1.0 / (k + rank)


def vector_only(hits: Sequence[VectorHit], k: int = DEFAULT_RRF_K) -> list[FusedCandidate]:
    """Rank records by their best chunk, scored with that chunk's position in ``hits``."""
    seen: set[str] = set()
    fused: list[FusedCandidate] = []
    for rank, hit in enumerate(hits):
        if hit.record_id in seen:
            continue
        seen.add(hit.record_id)
        fused.append(
            FusedCandidate(
                record_id=hit.record_id,
                matched_field=hit.field,
                matched_chunk=hit.chunk_text,
                rrf_score=rrf_score(rank, k),
                vector_score=hit.score,
                vector_rank=rank,
            )
        )
    return fused


def keyword_only(hits: Sequence[KeywordHit], k: int = DEFAULT_RRF_K) -> list[FusedCandidate]:
    return [
        FusedCandidate(
            record_id=hit.record.id,
            matched_field=FULL_RECORD_FIELD,
            rrf_score=rrf_score(rank, k),
            matched_fields=hit.matched_fields,
            keyword_score=hit.score,
            keyword_rank=rank,
            record=hit.record,
        )
        for rank, hit in enumerate(hits)
    ]


def fuse(
    vector_hits: Sequence[VectorHit],
    keyword_hits: Sequence[KeywordHit],
    k: int = DEFAULT_RRF_K,
) -> list[FusedCandidate]:
    """Merge both lists with RRF and collapse the buckets to one candidate per record.

    Vector hits are bucketed per chunk and keyword hits per record; each
    bucket accumulates ``1 / (k + rank)``. A record's score is the sum of its
    buckets; its field and snippet come from its highest-scoring bucket.
    """
    buckets: dict[tuple[str, str, int], _Bucket] = {}
    groups: dict[str, _Group] = {}

    def bucket_for(key: tuple[str, str, int], text: str | None) -> _Bucket:
        bucket = buckets.get(key)
        if bucket is None:
            bucket = _Bucket(record_id=key[0], field=key[1], text=text, order=len(buckets))
            buckets[key] = bucket
            groups.setdefault(key[0], _Group()).buckets.append(bucket)
        return bucket

    for rank, hit in enumerate(vector_hits):
        bucket_for((hit.record_id, hit.field, hit.chunk_index), hit.chunk_text).score += rrf_score(rank, k)
        group = groups[hit.record_id]
        if group.vector is None:
            group.vector = (hit.score, rank)

    for rank, hit in enumerate(keyword_hits):
        record_id = hit.record.id
        bucket_for((record_id, FULL_RECORD_FIELD, 0), None).score += rrf_score(rank, k)
        group = groups[record_id]
        if group.keyword is None:
            group.keyword = (hit.score, rank)
            group.keyword_hit = hit

    fused: list[FusedCandidate] = []
    for record_id, group in groups.items():
        ranked = sorted(group.buckets, key=lambda bucket: (-bucket.score, bucket.order))
        best = ranked[0]
        snippet = best.text or next((bucket.text for bucket in ranked if bucket.text), None)
        keyword_hit = group.keyword_hit
        fused.append(
            FusedCandidate(
                record_id=record_id,
                matched_field=best.field,
                matched_chunk=snippet,
                rrf_score=sum(bucket.score for bucket in group.buckets),
                matched_fields=keyword_hit.matched_fields if keyword_hit else frozenset(),
                vector_score=group.vector[0] if group.vector else None,
                vector_rank=group.vector[1] if group.vector else None,
                keyword_score=group.keyword[0] if group.keyword else None,
                keyword_rank=group.keyword[1] if group.keyword else None,
                record=keyword_hit.record if keyword_hit else None,
            )
        )
    fused.sort(key=lambda candidate: candidate.rrf_score, reverse=True)
    return fused


__all__ = ["DEFAULT_RRF_K", "FusedCandidate", "rrf_score", "vector_only", "keyword_only", "fuse"]
