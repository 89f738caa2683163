"""In-memory BM25 keyword index over whole records."""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime
from typing import Iterable, Sequence

from rank_bm25 import BM25Plus

from voice_search.core.errors import NotInitializedError
from voice_search.ingest.types import RecordProvider
from voice_search.models.entities import KeywordHit, KeywordIndexStats, Record
from voice_search.utils.text import query_terms, tokenize
from voice_search.utils.time import utc_now

logger = logging.getLogger(__name__)


def record_document(record: Record) -> str:
    """Text indexed for a record. The title is repeated to weight it twice."""
    sections = [
        record.title,
        record.title,
        record.summary,
        record.context,
        " ".join(record.tags),
        record.text,
    ]
    return "\n".join(section for section in sections if section)


def matched_fields(record: Record, terms: Sequence[str]) -> frozenset[str]:
    """Fields whose lowercase text contains at least one query term."""
    values = {
        "title": record.title,
        "summary": record.summary,
        "context": record.context,
        "tags": " ".join(record.tags),
        "text": record.text,
    }
    matched = set()
    for name, value in values.items():
        lowered = (value or "").lower()
        if lowered and any(term in lowered for term in terms):
            matched.add(name)
    return frozenset(matched)


class KeywordIndex:
    """BM25Plus ranking over one document per record.

    The index is not persisted; it is rebuilt from the record provider when
    :attr:`needs_rebuild` is set.
    """

    def __init__(self) -> None:
        self._records: list[Record] = []
        self._token_sets: list[frozenset[str]] = []
        self._model: BM25Plus | None = None
        self._built = False

    @property
    def size(self) -> int:
        return len(self._records)

    @property
    def needs_rebuild(self) -> bool:
        return not self._built

    def build(self, records: Iterable[Record]) -> None:
        records = list(records)
        corpus = [tokenize(record_document(record)) for record in records]
        model = BM25Plus(corpus) if any(corpus) else None
        # Swap state in one step so concurrent readers never see a partial index.
        self._records, self._token_sets, self._model = (
            records,
            [frozenset(tokens) for tokens in corpus],
            model,
        )
        self._built = True
        logger.debug("Keyword index built over %d records", len(records))

    def search(self, query: str, limit: int = 20) -> list[KeywordHit]:
        if not self._built:
            raise NotInitializedError("Keyword index not built")
        if limit <= 0 or not query.strip():
            return []
        records, token_sets, model = self._records, self._token_sets, self._model
        if model is None:
            return []
        query_tokens = tokenize(query)
        if not query_tokens:
            return []
        wanted = set(query_tokens)
        scores = model.get_scores(query_tokens)
        candidates = [
            (position, float(scores[position]))
            for position, tokens in enumerate(token_sets)
            if wanted & tokens
        ]
        candidates.sort(key=lambda item: item[1], reverse=True)
        terms = query_terms(query)
        return [
            KeywordHit(
                record=records[position],
                score=score,
                matched_fields=matched_fields(records[position], terms),
            )
            for position, score in candidates[:limit]
        ]

    def clear(self) -> None:
        self._records = []
        self._token_sets = []
        self._model = None
        self._built = False


class KeywordIndexManager:
    """Keeps a :class:`KeywordIndex` in step with the record provider.

    Concurrent rebuild requests share a single in-flight build.
    """

    def __init__(self, provider: RecordProvider, index: KeywordIndex | None = None) -> None:
        self.provider = provider
        self.index = index or KeywordIndex()
        self._task: asyncio.Future[None] | None = None
        self._dirty = False
        self._generation = 0
        self._last_built: datetime | None = None

    @property
    def is_building(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def last_built(self) -> datetime | None:
        return self._last_built

    @property
    def needs_rebuild(self) -> bool:
        return self._dirty or self.index.needs_rebuild

    @property
    def generation(self) -> int:
        """Bumped by every :meth:`invalidate`."""
        return self._generation

    async def ensure_ready(self) -> None:
        if self.needs_rebuild:
            await self.rebuild()

    async def rebuild(self, records: Sequence[Record] | None = None, generation: int | None = None) -> None:
        """Rebuild the index, from the provider unless ``records`` is given.

        ``generation`` is the value of :attr:`generation` read before
        ``records`` were fetched. An invalidation after that point keeps the
        index marked for rebuild once this build finishes.
        """
        task = self._task
        if task is not None and not task.done():
            if records is None:
                logger.debug("Keyword index build already in progress, waiting")
                await asyncio.shield(task)
                return
            await asyncio.wait([task])
        task = asyncio.ensure_future(self._build(records, generation))
        self._task = task
        task.add_done_callback(self._release)
        await asyncio.shield(task)

    def invalidate(self) -> None:
        logger.debug("Invalidating keyword index")
        self._generation += 1
        self._dirty = True
        self.index.clear()
        self._last_built = None

    def stats(self) -> KeywordIndexStats:
        return KeywordIndexStats(
            is_built=not self.needs_rebuild,
            is_building=self.is_building,
            size=self.index.size,
            last_built=self._last_built,
        )

    async def _build(self, records: Sequence[Record] | None, generation: int | None) -> None:
        if generation is None:
            generation = self._generation
        started = time.perf_counter()
        if records is None:
            records = await self.provider.list_records()
        await asyncio.to_thread(self.index.build, records)
        self._last_built = utc_now()
        if generation == self._generation:
            self._dirty = False
        else:
            logger.debug("Keyword index invalidated during build, keeping it marked stale")
        logger.info(
            "Keyword index rebuilt in %.1fms (%d records)",
            (time.perf_counter() - started) * 1000,
            len(records),
        )

    def _release(self, task: asyncio.Future[None]) -> None:
        if self._task is task:
            self._task = None
        if not task.cancelled() and task.exception() is not None:
            logger.error("Keyword index rebuild failed: %s", task.exception())


__all__ = ["KeywordIndex", "KeywordIndexManager", "record_document", "matched_fields"]
