"""Keeps the vector store and keyword index in step with the record provider."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable

from voice_search.core.errors import RecordNotFoundError
from voice_search.core.events import StatusBroadcaster
from voice_search.core.metrics import INDEX_FAILURES, INDEX_SIZE, SYNC_DURATION
from voice_search.ingest.fingerprint import fingerprint, has_changed
from voice_search.ingest.types import Chunker, RecordProvider
from voice_search.models.entities import (
    IndexingPhase,
    IndexStats,
    OrchestratorSnapshot,
    Record,
    SyncReport,
)
from voice_search.retrieval.keyword_index import KeywordIndexManager
from voice_search.retrieval.vector_store import VectorStore

logger = logging.getLogger(__name__)

StatusListener = Callable[[OrchestratorSnapshot], None]


class IndexOrchestrator:
    """Coordinate change detection, chunking, storage and keyword rebuilds.

    ``sync_indexes`` is single-flight: callers that arrive while a pass is
    running await that pass and receive its report (or its exception).
    """

    def __init__(
        self,
        vector_store: VectorStore,
        keyword_index: KeywordIndexManager,
        chunker: Chunker,
        provider: RecordProvider,
    ) -> None:
        self.vector_store = vector_store
        self.keyword_index = keyword_index
        self.chunker = chunker
        self.provider = provider
        self._events: StatusBroadcaster[OrchestratorSnapshot] = StatusBroadcaster()
        self._phase = IndexingPhase.IDLE
        self._error_message: str | None = None
        self._total = 0
        self._processed = 0
        self._sync_task: asyncio.Future[SyncReport] | None = None

    # Observable state -------------------------------------------------

    @property
    def phase(self) -> IndexingPhase:
        return self._phase

    @property
    def error_message(self) -> str | None:
        return self._error_message

    @property
    def total_to_process(self) -> int:
        return self._total

    @property
    def processed_count(self) -> int:
        return self._processed

    @property
    def progress(self) -> float:
        return self._processed / self._total if self._total > 0 else 0.0

    @property
    def is_syncing(self) -> bool:
        return self._sync_task is not None and not self._sync_task.done()

    def snapshot(self) -> OrchestratorSnapshot:
        return OrchestratorSnapshot(
            phase=self._phase,
            total_to_process=self._total,
            processed_count=self._processed,
            progress=self.progress,
            error_message=self._error_message,
            is_syncing=self.is_syncing,
        )

    def subscribe(self, listener: StatusListener) -> Callable[[], None]:
        return self._events.subscribe(listener)

    # Operations -------------------------------------------------------

    async def sync_indexes(self) -> SyncReport:
        task = self._sync_task
        if task is not None and not task.done():
            logger.debug("Sync already in progress, waiting")
        else:
            task = asyncio.ensure_future(self._run_sync())
            self._sync_task = task
            task.add_done_callback(self._release_sync)
        return await asyncio.shield(task)

    async def index_record(self, record: Record) -> int:
        """Index one record immediately. Returns the number of chunks stored."""
        logger.info("Indexing record %s", record.id)
        count = await self._index_one(record)
        self.keyword_index.invalidate()
        return count

    async def index_record_by_id(self, record_id: str) -> int:
        record = await self.provider.get_record(record_id)
        if record is None:
            raise RecordNotFoundError(record_id)
        return await self.index_record(record)

    async def remove_record(self, record_id: str) -> bool:
        logger.info("Removing record %s", record_id)
        removed = await self.vector_store.delete_chunks(record_id)
        self.keyword_index.invalidate()
        return removed

    async def force_full_reindex(self) -> SyncReport:
        logger.info("Full reindex requested")
        inflight = self._sync_task
        if inflight is not None and not inflight.done():
            await asyncio.wait([inflight])
        await self.vector_store.clear()
        self.keyword_index.invalidate()
        return await self.sync_indexes()

    async def stats(self) -> IndexStats:
        return IndexStats(
            vector=await self.vector_store.stats(),
            keyword=self.keyword_index.stats(),
            status=self.snapshot(),
        )

    async def close(self) -> None:
        self._events.clear()
        await self.vector_store.close()

    # Internal helpers -------------------------------------------------

    async def _run_sync(self) -> SyncReport:
        started = time.perf_counter()
        try:
            report = await self._reconcile(started)
        except Exception as exc:
            logger.exception("Index sync failed")
            self._set_phase(IndexingPhase.ERROR, str(exc))
            raise
        SYNC_DURATION.observe(report.duration_seconds)
        logger.info(
            "Sync complete: %d new, %d modified, %d deleted, %d failed in %.2fs",
            len(report.new),
            len(report.modified),
            len(report.deleted),
            len(report.failed),
            report.duration_seconds,
        )
        return report

    async def _reconcile(self, started: float) -> SyncReport:
        self._set_phase(IndexingPhase.SYNCING)
        keyword_generation = self.keyword_index.generation
        records = await self.provider.list_records()
        indexed_ids = await self.vector_store.list_indexed_record_ids()
        logger.debug("Found %d records, %d indexed", len(records), len(indexed_ids))

        new: list[Record] = []
        modified: list[Record] = []
        unchanged: list[str] = []
        for record in records:
            stored = await self.vector_store.get_fingerprint(record.id)
            if stored is None:
                new.append(record)
            elif has_changed(record, stored):
                modified.append(record)
            else:
                unchanged.append(record.id)
        present = {record.id for record in records}
        deleted = [record_id for record_id in indexed_ids if record_id not in present]

        self._total = len(deleted) + len(new) + len(modified)
        self._processed = 0
        self._set_phase(IndexingPhase.INDEXING)

        for record_id in deleted:
            await self.vector_store.delete_chunks(record_id)
            self._advance()

        failed: list[str] = []
        for record in [*new, *modified]:
            try:
                await self._index_one(record)
            except Exception:
                logger.exception("Failed to index record %s", record.id)
                INDEX_FAILURES.inc()
                failed.append(record.id)
            self._advance()

        await self.keyword_index.rebuild(records, generation=keyword_generation)
        vector_stats = await self.vector_store.stats()
        INDEX_SIZE.set(vector_stats.total_chunks)

        self._set_phase(IndexingPhase.IDLE)
        return SyncReport(
            new=tuple(record.id for record in new),
            modified=tuple(record.id for record in modified),
            unchanged=tuple(unchanged),
            deleted=tuple(deleted),
            failed=tuple(failed),
            duration_seconds=time.perf_counter() - started,
        )

    async def _index_one(self, record: Record) -> int:
        await self.vector_store.delete_chunks(record.id)
        chunks = await self.chunker.chunk_record(record)
        if not chunks:
            logger.warning("No chunks generated for record %s", record.id)
        count = await self.vector_store.upsert_chunks(record.id, chunks)
        await self.vector_store.set_manifest(record.id, fingerprint(record), count)
        return count

    def _advance(self) -> None:
        self._processed += 1
        self._events.publish(self.snapshot())

    def _set_phase(self, phase: IndexingPhase, error_message: str | None = None) -> None:
        self._phase = phase
        self._error_message = error_message
        self._events.publish(self.snapshot())

    def _release_sync(self, task: asyncio.Future[SyncReport]) -> None:
        if self._sync_task is task:
            self._sync_task = None
        # Waiters that were cancelled leave the exception unobserved otherwise.
        if not task.cancelled():
            task.exception()
        self._events.publish(self.snapshot())


__all__ = ["IndexOrchestrator", "StatusListener"]
