"""SQLite-backed chunk store with exact cosine-similarity search.

Embeddings are L2-normalised on write, so similarity at query time is a dot
product against the normalised query. Search is a linear scan over every
stored chunk, which is fine for tens of thousands of chunks; an approximate
index could replace :meth:`VectorStore.search` without changing its interface.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Sequence

import numpy as np

from voice_search.core.errors import NotInitializedError
from voice_search.db.sqlite import SQLiteDatabase, iter_rows
from voice_search.models.entities import Chunk, ManifestEntry, VectorHit, VectorStoreStats
from voice_search.retrieval.vectors import decode_embedding, encode_embedding, normalize
from voice_search.utils.time import parse_iso, to_iso, utc_now

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS chunks (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  record_id TEXT NOT NULL,
  field TEXT NOT NULL,
  chunk_index INTEGER NOT NULL,
  chunk_text TEXT NOT NULL,
  embedding BLOB NOT NULL,
  created_at TEXT NOT NULL,
  UNIQUE(record_id, field, chunk_index)
);

CREATE INDEX IF NOT EXISTS idx_chunks_record ON chunks(record_id);

CREATE TABLE IF NOT EXISTS index_manifest (
  record_id TEXT PRIMARY KEY,
  fingerprint TEXT NOT NULL,
  indexed_at TEXT NOT NULL,
  chunk_count INTEGER NOT NULL
);
"""


class VectorStore:
    """Durable record → chunks store plus the manifest used for change detection."""

    def __init__(self, db_path: Path | None = None, database: SQLiteDatabase | None = None) -> None:
        if database is None:
            if db_path is None:
                raise ValueError("VectorStore needs a db_path or a database")
            database = SQLiteDatabase(db_path)
        self.db = database
        self._initialized = False

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    async def init(self) -> None:
        if self._initialized:
            return
        logger.info("Initialising vector store at %s", self.db.db_path)
        self.db.ensure_schema(SCHEMA_SQL)
        self._initialized = True

    async def upsert_chunks(self, record_id: str, chunks: Sequence[Chunk]) -> int:
        """Atomically replace every chunk stored for ``record_id``."""
        self._require_init()
        for chunk in chunks:
            if chunk.record_id != record_id:
                raise ValueError(f"Chunk for record {chunk.record_id!r} passed to upsert of {record_id!r}")
        with self.db.transaction() as cursor:
            cursor.execute("DELETE FROM chunks WHERE record_id = ?", [record_id])
            cursor.executemany(
                """
                INSERT INTO chunks (record_id, field, chunk_index, chunk_text, embedding, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        record_id,
                        chunk.field,
                        chunk.chunk_index,
                        chunk.chunk_text,
                        encode_embedding(normalize(chunk.embedding)),
                        to_iso(chunk.created_at),
                    )
                    for chunk in chunks
                ],
            )
        logger.debug("Stored %d chunks for record %s", len(chunks), record_id)
        return len(chunks)

    async def delete_chunks(self, record_id: str) -> bool:
        """Remove a record's chunks and manifest entry. Returns whether anything was removed."""
        self._require_init()
        with self.db.transaction() as cursor:
            chunk_count = cursor.execute("DELETE FROM chunks WHERE record_id = ?", [record_id]).rowcount
            manifest_count = cursor.execute(
                "DELETE FROM index_manifest WHERE record_id = ?", [record_id]
            ).rowcount
        removed = chunk_count > 0 or manifest_count > 0
        if removed:
            logger.debug("Removed %d chunks for record %s", chunk_count, record_id)
        return removed

    async def is_indexed(self, record_id: str) -> bool:
        self._require_init()
        count = self.db.scalar("SELECT COUNT(*) FROM chunks WHERE record_id = ?", [record_id])
        return bool(count)

    async def get_fingerprint(self, record_id: str) -> str | None:
        self._require_init()
        return self.db.scalar("SELECT fingerprint FROM index_manifest WHERE record_id = ?", [record_id])

    async def get_manifest(self, record_id: str) -> ManifestEntry | None:
        self._require_init()
        row = self.db.execute(
            "SELECT record_id, fingerprint, indexed_at, chunk_count FROM index_manifest WHERE record_id = ?",
            [record_id],
        ).fetchone()
        if row is None:
            return None
        return ManifestEntry(
            record_id=row["record_id"],
            fingerprint=row["fingerprint"],
            indexed_at=parse_iso(row["indexed_at"]),
            chunk_count=int(row["chunk_count"]),
        )

    async def set_manifest(self, record_id: str, fingerprint: str, chunk_count: int) -> None:
        self._require_init()
        with self.db.transaction() as cursor:
            cursor.execute(
                """
                INSERT INTO index_manifest (record_id, fingerprint, indexed_at, chunk_count)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(record_id) DO UPDATE SET
                  fingerprint = excluded.fingerprint,
                  indexed_at = excluded.indexed_at,
                  chunk_count = excluded.chunk_count
                """,
                [record_id, fingerprint, to_iso(utc_now()), chunk_count],
            )

    async def search(
        self,
        query_embedding: Sequence[float],
        limit: int = 20,
        min_score: float = 0.0,
    ) -> list[VectorHit]:
        self._require_init()
        if limit <= 0:
            return []
        query = normalize(query_embedding)
        cursor = self.db.execute(
            "SELECT id, record_id, field, chunk_index, chunk_text, embedding FROM chunks ORDER BY id"
        )
        hits: list[VectorHit] = []
        skipped = 0
        for row in iter_rows(cursor):
            embedding = decode_embedding(row["embedding"])
            if embedding.shape != query.shape:
                skipped += 1
                continue
            score = float(np.clip(np.dot(query, embedding), 0.0, 1.0))
            if score < min_score:
                continue
            hits.append(
                VectorHit(
                    chunk_id=int(row["id"]),
                    record_id=row["record_id"],
                    field=row["field"],
                    chunk_index=int(row["chunk_index"]),
                    chunk_text=row["chunk_text"],
                    score=score,
                )
            )
        if skipped:
            logger.warning("Skipped %d chunks with embedding dimension != %d", skipped, query.shape[0])
        hits.sort(key=lambda hit: (-hit.score, hit.chunk_id))
        return hits[:limit]

    async def list_indexed_record_ids(self) -> list[str]:
        self._require_init()
        rows = self.db.query(
            """
            SELECT record_id FROM chunks
            UNION
            SELECT record_id FROM index_manifest
            ORDER BY record_id
            """
        )
        return [row["record_id"] for row in rows]

    async def stats(self) -> VectorStoreStats:
        self._require_init()
        row = self.db.execute(
            "SELECT COUNT(*) AS chunks, COUNT(DISTINCT record_id) AS records FROM chunks"
        ).fetchone()
        return VectorStoreStats(
            total_chunks=int(row["chunks"]),
            total_records=int(row["records"]),
            approx_size_bytes=self.db.size_on_disk(),
        )

    async def clear(self) -> None:
        self._require_init()
        logger.info("Clearing vector store")
        with self.db.transaction() as cursor:
            cursor.execute("DELETE FROM chunks")
            cursor.execute("DELETE FROM index_manifest")

    async def close(self) -> None:
        if self.db.is_open:
            logger.debug("Closing vector store")
        self.db.close()
        self._initialized = False

    def _require_init(self) -> None:
        if not self._initialized:
            raise NotInitializedError("Vector store not initialised. Call init() first.")


__all__ = ["VectorStore", "SCHEMA_SQL"]
