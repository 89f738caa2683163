"""Search orchestration."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Sequence

from voice_search.core.errors import SearchUnavailableError
from voice_search.core.metrics import SEARCH_FALLBACKS
from voice_search.ingest.types import Embedder, RecordProvider
from voice_search.models.entities import KeywordHit, SearchResult, VectorHit
from voice_search.retrieval.hybrid import (
    DEFAULT_RRF_K,
    FusedCandidate,
    fuse,
    keyword_only,
    vector_only,
)
from voice_search.retrieval.keyword_index import KeywordIndexManager
from voice_search.retrieval.vector_store import VectorStore

logger = logging.getLogger(__name__)


class HybridQueryEngine:
    """Runs vector and keyword retrieval concurrently and fuses them with RRF.

    If one path fails the other answers alone; if both fail the search
    raises :class:`SearchUnavailableError`.
    """

    def __init__(
        self,
        vector_store: VectorStore,
        keyword_index: KeywordIndexManager,
        embedder: Embedder,
        provider: RecordProvider,
        rrf_k: int = DEFAULT_RRF_K,
        candidate_multiplier: int = 2,
        min_score: float = 0.0,
    ) -> None:
        self.vector_store = vector_store
        self.keyword_index = keyword_index
        self.embedder = embedder
        self.provider = provider
        self.rrf_k = rrf_k
        self.candidate_multiplier = candidate_multiplier
        self.min_score = min_score

    async def search(self, query: str, limit: int = 20) -> list[SearchResult]:
        if not query or not query.strip() or limit <= 0:
            return []
        started = time.perf_counter()
        candidates = limit * self.candidate_multiplier
        vector_outcome, keyword_outcome = await asyncio.gather(
            self._vector_search(query, candidates),
            self._keyword_search(query, candidates),
            return_exceptions=True,
        )
        vector_hits = self._unwrap("vector", vector_outcome)
        keyword_hits = self._unwrap("keyword", keyword_outcome)

        if vector_hits is None and keyword_hits is None:
            raise SearchUnavailableError("Both search methods failed")
        if keyword_hits is None:
            SEARCH_FALLBACKS.labels(failed_side="keyword").inc()
            fused = vector_only(vector_hits, self.rrf_k)
        elif vector_hits is None:
            SEARCH_FALLBACKS.labels(failed_side="vector").inc()
            fused = keyword_only(keyword_hits, self.rrf_k)
        else:
            fused = fuse(vector_hits, keyword_hits, self.rrf_k)

        results = await self._enrich(fused, limit)
        logger.debug(
            "Search %r returned %d results in %.1fms",
            query,
            len(results),
            (time.perf_counter() - started) * 1000,
        )
        return results

    # ------------------------------------------------------------------

    async def _vector_search(self, query: str, limit: int) -> list[VectorHit]:
        embedding = await self.embedder.embed(query)
        return await self.vector_store.search(embedding, limit=limit, min_score=self.min_score)

    async def _keyword_search(self, query: str, limit: int) -> list[KeywordHit]:
        await self.keyword_index.ensure_ready()
        return self.keyword_index.index.search(query, limit=limit)

    @staticmethod
    def _unwrap(side: str, outcome: Any) -> Sequence[Any] | None:
        if isinstance(outcome, BaseException):
            if not isinstance(outcome, Exception):
                raise outcome
            logger.warning("%s search failed: %s", side.capitalize(), outcome, exc_info=outcome)
            return None
        return outcome

    async def _enrich(self, fused: Sequence[FusedCandidate], limit: int) -> list[SearchResult]:
        results: list[SearchResult] = []
        for candidate in fused:
            if len(results) >= limit:
                break
            record = await self.provider.get_record(candidate.record_id)
            if record is None:
                logger.debug("Dropping result for missing record %s", candidate.record_id)
                continue
            results.append(
                SearchResult(
                    record=record,
                    matched_field=candidate.matched_field,
                    matched_chunk=candidate.matched_chunk,
                    matched_fields=candidate.matched_fields,
                    rrf_score=candidate.rrf_score,
                    vector_score=candidate.vector_score,
                    keyword_score=candidate.keyword_score,
                    vector_rank=candidate.vector_rank,
                    keyword_rank=candidate.keyword_rank,
                )
            )
        return results


__all__ = ["HybridQueryEngine"]
