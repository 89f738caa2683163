"""Collaborator contracts consumed by the indexing pipeline."""

from __future__ import annotations

from typing import Protocol, Sequence, runtime_checkable

from voice_search.models.entities import Chunk, Record


@runtime_checkable
class RecordProvider(Protocol):
    """Source of truth for records. The indexes never write back to it."""

    async def list_records(self) -> list[Record]:
        ...

    async def get_record(self, record_id: str) -> Record | None:
        ...


@runtime_checkable
class Embedder(Protocol):
    async def embed(self, text: str) -> Sequence[float]:
        ...


@runtime_checkable
class Chunker(Protocol):
    """Splits a record into embedded chunks.

    Returned chunks carry the record's id; an empty list is valid.
    """

    async def chunk_record(self, record: Record) -> list[Chunk]:
        ...


__all__ = ["RecordProvider", "Embedder", "Chunker"]
