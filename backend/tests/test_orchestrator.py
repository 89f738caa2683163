"""Tests for index synchronisation."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import pytest
import pytest_asyncio

from voice_search.core.errors import RecordNotFoundError
from voice_search.ingest.fingerprint import fingerprint
from voice_search.ingest.orchestrator import IndexOrchestrator
from voice_search.ingest.records import InMemoryRecordStore
from voice_search.models.entities import IndexingPhase, OrchestratorSnapshot, Record
from voice_search.retrieval.keyword_index import KeywordIndexManager
from voice_search.retrieval.search import HybridQueryEngine
from voice_search.retrieval.vector_store import VectorStore


@pytest_asyncio.fixture
async def vector_store(tmp_path: Path):
    store = VectorStore(tmp_path / "index.db")
    await store.init()
    yield store
    await store.close()


@pytest.fixture
def provider() -> InMemoryRecordStore:
    return InMemoryRecordStore()


@pytest.fixture
def orchestrator(vector_store, provider, field_chunker) -> IndexOrchestrator:
    return IndexOrchestrator(
        vector_store=vector_store,
        keyword_index=KeywordIndexManager(provider),
        chunker=field_chunker,
        provider=provider,
    )


@pytest.mark.asyncio
async def test_sync_classifies_new_modified_unchanged_deleted(orchestrator, provider, vector_store) -> None:
    for record_id in ("A", "B", "D"):
        provider.put(Record(id=record_id, title=f"{record_id} alpha", text="original"))
    first = await orchestrator.sync_indexes()
    assert sorted(first.new) == ["A", "B", "D"]

    provider.put(Record(id="B", title="B alpha", text="edited"))
    provider.put(Record(id="C", title="C beta"))
    provider.remove("D")
    report = await orchestrator.sync_indexes()

    assert report.unchanged == ("A",)
    assert report.modified == ("B",)
    assert report.new == ("C",)
    assert report.deleted == ("D",)
    assert report.failed == ()
    assert report.indexed == 2
    assert await vector_store.list_indexed_record_ids() == ["A", "B", "C"]
    assert await vector_store.get_fingerprint("B") == fingerprint(provider._records["B"])
    assert orchestrator.phase is IndexingPhase.IDLE
    assert orchestrator.progress == 1.0


@pytest.mark.asyncio
async def test_unchanged_records_are_not_rechunked(orchestrator, provider, field_chunker) -> None:
    provider.put(Record(id="A", title="alpha"))
    await orchestrator.sync_indexes()
    await orchestrator.sync_indexes()
    assert field_chunker.calls == ["A"]


@pytest.mark.asyncio
async def test_record_without_chunks_still_gets_manifest(orchestrator, provider, vector_store) -> None:
    provider.put(Record(id="empty", title=""))
    first = await orchestrator.sync_indexes()
    assert first.new == ("empty",)
    manifest = await vector_store.get_manifest("empty")
    assert manifest is not None and manifest.chunk_count == 0
    second = await orchestrator.sync_indexes()
    assert second.unchanged == ("empty",)


@pytest.mark.asyncio
async def test_overlapping_syncs_share_one_pass(vector_store, field_chunker) -> None:
    class SlowStore(InMemoryRecordStore):
        calls = 0

        async def list_records(self) -> list[Record]:
            SlowStore.calls += 1
            await asyncio.sleep(0.02)
            return await super().list_records()

    provider = SlowStore([Record(id="A", title="alpha")])
    orchestrator = IndexOrchestrator(vector_store, KeywordIndexManager(provider), field_chunker, provider)

    first, second = await asyncio.gather(orchestrator.sync_indexes(), orchestrator.sync_indexes())
    assert first is second
    assert SlowStore.calls == 1
    assert field_chunker.calls == ["A"]
    assert orchestrator.is_syncing is False


@pytest.mark.asyncio
async def test_overlapping_syncs_share_failure(vector_store, field_chunker) -> None:
    class BrokenStore(InMemoryRecordStore):
        async def list_records(self) -> list[Record]:
            await asyncio.sleep(0.01)
            raise OSError("disk unavailable")

    provider = BrokenStore()
    orchestrator = IndexOrchestrator(vector_store, KeywordIndexManager(provider), field_chunker, provider)

    outcomes = await asyncio.gather(
        orchestrator.sync_indexes(),
        orchestrator.sync_indexes(),
        return_exceptions=True,
    )
    assert all(isinstance(outcome, OSError) for outcome in outcomes)
    assert outcomes[0] is outcomes[1]
    assert orchestrator.phase is IndexingPhase.ERROR
    assert orchestrator.error_message == "disk unavailable"


@pytest.mark.asyncio
async def test_error_phase_clears_on_next_sync(orchestrator, provider, monkeypatch) -> None:
    original = provider.list_records

    async def failing() -> list[Record]:
        raise RuntimeError("boom")

    monkeypatch.setattr(provider, "list_records", failing)
    with pytest.raises(RuntimeError):
        await orchestrator.sync_indexes()
    assert orchestrator.phase is IndexingPhase.ERROR

    monkeypatch.setattr(provider, "list_records", original)
    await orchestrator.sync_indexes()
    assert orchestrator.phase is IndexingPhase.IDLE
    assert orchestrator.error_message is None


@pytest.mark.asyncio
async def test_per_record_failure_is_skipped(orchestrator, provider, field_chunker, vector_store) -> None:
    chunk_record = field_chunker.chunk_record

    async def flaky(record: Record):
        if record.id == "bad":
            raise RuntimeError("embedding failed")
        return await chunk_record(record)

    field_chunker.chunk_record = flaky
    provider.put(Record(id="bad", title="alpha"))
    provider.put(Record(id="good", title="beta"))

    report = await orchestrator.sync_indexes()
    assert report.failed == ("bad",)
    assert report.indexed == 1
    assert orchestrator.processed_count == orchestrator.total_to_process == 2
    assert await vector_store.get_fingerprint("bad") is None
    assert await vector_store.is_indexed("good")
    assert orchestrator.keyword_index.index.size == 2


@pytest.mark.asyncio
async def test_index_and_remove_single_record(orchestrator, provider, vector_store) -> None:
    record = Record(id="A", title="alpha", text="gamma delta")
    provider.put(record)
    await orchestrator.keyword_index.ensure_ready()

    assert await orchestrator.index_record(record) == 2
    assert await vector_store.get_fingerprint("A") == fingerprint(record)
    assert orchestrator.keyword_index.needs_rebuild

    await orchestrator.keyword_index.ensure_ready()
    assert await orchestrator.remove_record("A") is True
    assert orchestrator.keyword_index.needs_rebuild
    assert await orchestrator.remove_record("A") is False


@pytest.mark.asyncio
async def test_index_record_by_id(orchestrator, provider) -> None:
    provider.put(Record(id="A", title="alpha"))
    assert await orchestrator.index_record_by_id("A") == 1
    with pytest.raises(RecordNotFoundError):
        await orchestrator.index_record_by_id("missing")


@pytest.mark.asyncio
async def test_index_record_propagates_errors(orchestrator, field_chunker) -> None:
    async def broken(record: Record):
        raise RuntimeError("chunker down")

    field_chunker.chunk_record = broken
    with pytest.raises(RuntimeError, match="chunker down"):
        await orchestrator.index_record(Record(id="A", title="alpha"))


@pytest.mark.asyncio
async def test_force_full_reindex(orchestrator, provider, field_chunker) -> None:
    provider.put(Record(id="A", title="alpha"))
    provider.put(Record(id="B", title="beta"))
    await orchestrator.sync_indexes()

    report = await orchestrator.force_full_reindex()
    assert sorted(report.new) == ["A", "B"]
    assert report.unchanged == ()
    assert sorted(field_chunker.calls) == ["A", "A", "B", "B"]


@pytest.mark.asyncio
async def test_subscribers_are_isolated(orchestrator, provider) -> None:
    provider.put(Record(id="A", title="alpha"))
    seen: list[OrchestratorSnapshot] = []

    def broken(snapshot: OrchestratorSnapshot) -> None:
        raise ValueError("listener bug")

    orchestrator.subscribe(broken)
    unsubscribe = orchestrator.subscribe(seen.append)
    await orchestrator.sync_indexes()

    phases = [snapshot.phase for snapshot in seen]
    assert phases[0] is IndexingPhase.SYNCING
    assert IndexingPhase.INDEXING in phases
    assert phases[-1] is IndexingPhase.IDLE
    assert seen[-1].is_syncing is False
    assert any(snapshot.progress == 1.0 for snapshot in seen)

    unsubscribe()
    count = len(seen)
    await orchestrator.sync_indexes()
    assert len(seen) == count


@pytest.mark.asyncio
async def test_stats(orchestrator, provider) -> None:
    provider.put(Record(id="A", title="alpha", text="beta"))
    await orchestrator.sync_indexes()
    stats = await orchestrator.stats()
    assert stats.vector.total_records == 1
    assert stats.vector.total_chunks == 2
    assert stats.keyword.is_built is True
    assert stats.keyword.size == 1
    assert stats.status.phase is IndexingPhase.IDLE


@pytest.mark.asyncio
async def test_sync_then_hybrid_search(orchestrator, provider, vector_store, keyword_embedder) -> None:
    provider.put(Record(id="both", title="alpha report", text="alpha alpha"))
    provider.put(Record(id="vector", title="gamma"))
    provider.put(Record(id="neither", title="delta"))
    await orchestrator.sync_indexes()

    engine = HybridQueryEngine(
        vector_store=vector_store,
        keyword_index=orchestrator.keyword_index,
        embedder=keyword_embedder,
        provider=provider,
        min_score=0.1,
    )
    results = await engine.search("alpha")
    assert results[0].record.id == "both"
    assert results[0].is_both_match
    assert "neither" not in {result.record.id for result in results}


@pytest.mark.asyncio
async def test_record_indexed_during_sync_reaches_keyword_index(orchestrator, provider, field_chunker) -> None:
    provider.put(Record(id="A", title="alpha"))
    entered = asyncio.Event()
    release = asyncio.Event()
    chunk_record = field_chunker.chunk_record

    async def held(record: Record):
        if record.id == "A":
            entered.set()
            await release.wait()
        return await chunk_record(record)

    field_chunker.chunk_record = held
    sync = asyncio.ensure_future(orchestrator.sync_indexes())
    await entered.wait()

    late = Record(id="C", title="zebra briefing")
    provider.put(late)
    await orchestrator.index_record(late)
    release.set()
    report = await sync

    assert report.new == ("A",)
    assert orchestrator.keyword_index.needs_rebuild
    await orchestrator.keyword_index.ensure_ready()
    assert [hit.record.id for hit in orchestrator.keyword_index.index.search("zebra")] == ["C"]


@pytest.mark.asyncio
async def test_failures_are_logged_under_module_logger(orchestrator, provider, field_chunker, caplog) -> None:
    async def broken(record: Record):
        raise RuntimeError("chunker down")

    field_chunker.chunk_record = broken
    provider.put(Record(id="A", title="alpha"))
    with caplog.at_level(logging.ERROR, logger="voice_search.ingest.orchestrator"):
        await orchestrator.sync_indexes()
    [entry] = [entry for entry in caplog.records if entry.name == "voice_search.ingest.orchestrator"]
    assert entry.getMessage() == "Failed to index record A"
    assert entry.exc_info is not None
