"""Embedding codec and similarity math.

Embeddings are persisted as little-endian float32 blobs. Any reader or
writer of the chunk table must use the same encoding.
"""

from __future__ import annotations

from typing import Sequence

import numpy as np

EMBEDDING_DTYPE = np.dtype("<f4")


def encode_embedding(vector: Sequence[float] | np.ndarray) -> bytes:
    """Serialise a vector as fixed-width little-endian float32 bytes."""
    return np.asarray(vector, dtype=EMBEDDING_DTYPE).tobytes()


def decode_embedding(blob: bytes) -> np.ndarray:
    """Inverse of :func:`encode_embedding`."""
    if len(blob) % EMBEDDING_DTYPE.itemsize:
        raise ValueError(f"Embedding blob length {len(blob)} is not a multiple of 4")
    return np.frombuffer(blob, dtype=EMBEDDING_DTYPE)


def normalize(vector: Sequence[float] | np.ndarray) -> np.ndarray:
    """Return the L2-normalised float32 copy of ``vector``; zero vectors are returned as-is."""
    array = np.asarray(vector, dtype=np.float32)
    norm = float(np.linalg.norm(array))
    if norm == 0.0:
        return array.copy()
    return array / norm


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """Dot product of two normalised vectors clamped to [0, 1]."""
    if a.shape != b.shape:
        raise ValueError(f"Vectors must have the same length ({a.shape[0]} != {b.shape[0]})")
    return float(np.clip(np.dot(a, b), 0.0, 1.0))


__all__ = [
    "EMBEDDING_DTYPE",
    "encode_embedding",
    "decode_embedding",
    "normalize",
    "cosine_similarity",
]
