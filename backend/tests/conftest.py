"""Test fixtures for Voice Search."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Sequence

import pytest

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from voice_search.models.entities import Chunk, Record  # noqa: E402


@pytest.fixture(autouse=True)
def reset_state(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Reset global singletons and environment between tests."""
    monkeypatch.setenv("VSRCH_DB_PATH", str(tmp_path / "index.db"))
    monkeypatch.setenv("VSRCH_RECORDS_DIR", str(tmp_path / "records"))
    monkeypatch.setenv("VSRCH_SYNC_ON_STARTUP", "false")
    monkeypatch.setenv("VSRCH_WATCH_RECORDS", "false")
    monkeypatch.delenv("VSRCH_CONFIG", raising=False)

    from voice_search.api import dependencies as deps
    from voice_search.ingest.embeddings import HashedEmbedder

    HashedEmbedder._instances.clear()
    deps.reset_singletons()
    yield
    HashedEmbedder._instances.clear()
    deps.reset_singletons()


class KeywordEmbedder:
    """Embeds text onto a tiny fixed vocabulary so similarities are predictable."""

    def __init__(self, vocabulary: Sequence[str] = ("alpha", "beta", "gamma", "delta")) -> None:
        self.vocabulary = list(vocabulary)
        self.calls: list[str] = []

    async def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        lowered = text.lower()
        return [float(lowered.count(word)) for word in self.vocabulary]


class FieldChunker:
    """One chunk per non-empty field, embedded with the given embedder."""

    def __init__(self, embedder: KeywordEmbedder) -> None:
        self.embedder = embedder
        self.calls: list[str] = []

    async def chunk_record(self, record: Record) -> list[Chunk]:
        self.calls.append(record.id)
        chunks = []
        for name in ("title", "summary", "context", "text"):
            value = getattr(record, name)
            if value:
                chunks.append(
                    Chunk(
                        record_id=record.id,
                        field=name,
                        chunk_index=0,
                        chunk_text=value,
                        embedding=await self.embedder.embed(value),
                    )
                )
        return chunks


@pytest.fixture
def keyword_embedder() -> KeywordEmbedder:
    return KeywordEmbedder()


@pytest.fixture
def field_chunker(keyword_embedder: KeywordEmbedder) -> FieldChunker:
    return FieldChunker(keyword_embedder)


@pytest.fixture
def make_record():
    def _make(record_id: str, **fields) -> Record:
        fields.setdefault("title", f"Record {record_id}")
        return Record(id=record_id, **fields)

    return _make


@pytest.fixture(scope="session")
def sample_text() -> str:
    return "Title\n\nParagraph one.\n\nParagraph two is here."
