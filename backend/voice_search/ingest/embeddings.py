"""Embedding utilities."""

from __future__ import annotations

import asyncio
import hashlib
import logging
from dataclasses import dataclass
from typing import Iterable

import numpy as np

from voice_search.retrieval.vectors import normalize
from voice_search.utils.text import tokenize

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class EmbeddingBatch:
    vectors: list[list[float]]
    model: str
    dim: int
    backend: str


class HashedEmbedder:
    """Lightweight hashed bag-of-words embedder with deterministic output.

    Stands in for a neural model runtime: texts sharing words land close
    together, which is enough to exercise the vector path end to end.
    """

    _instances: dict[tuple[str, int], "HashedEmbedder"] = {}

    def __init__(self, model_name: str = "hashed", dim: int = 256) -> None:
        if dim <= 0:
            raise ValueError("Embedding dimension must be positive")
        self.model_name = model_name
        self._dim = dim
        self._backend = "hashed"

    @classmethod
    def get(cls, model_name: str, dim: int = 256) -> "HashedEmbedder":
        key = (model_name or "hashed", dim)
        if key not in cls._instances:
            cls._instances[key] = HashedEmbedder(model_name=key[0], dim=dim)
        return cls._instances[key]

    @property
    def dim(self) -> int:
        return self._dim

    @property
    def backend(self) -> str:
        return self._backend

    def encode(self, texts: Iterable[str]) -> EmbeddingBatch:
        vectors: list[list[float]] = []
        for text in texts:
            vector = np.zeros(self._dim, dtype=np.float32)
            for token in tokenize(text or ""):
                vector[_hash_token(token, self._dim)] += 1.0
            vectors.append(normalize(vector).tolist())
        return EmbeddingBatch(vectors=vectors, model=self.model_name, dim=self._dim, backend=self._backend)

    async def embed(self, text: str) -> list[float]:
        batch = await asyncio.to_thread(self.encode, [text])
        return batch.vectors[0]


def _hash_token(token: str, dim: int) -> int:
    digest = hashlib.blake2b(token.encode("utf-8"), digest_size=8).digest()
    return int.from_bytes(digest, "big") % dim


__all__ = ["HashedEmbedder", "EmbeddingBatch"]
