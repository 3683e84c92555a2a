"""Vector blob codec and cosine scoring."""

from __future__ import annotations

from typing import Sequence

import numpy as np

from notefinder.errors import CorruptVectorError

VECTOR_DTYPE = np.dtype("<f4")


def vector_to_blob(vector: Sequence[float] | np.ndarray) -> bytes:
    """Pack a vector as little-endian IEEE-754 float32 values."""
    return np.asarray(vector, dtype=VECTOR_DTYPE).tobytes()


def blob_to_vector(blob: bytes) -> np.ndarray:
    """Unpack a stored blob; the dimension is implicit in its length."""
    if len(blob) % VECTOR_DTYPE.itemsize:
        raise CorruptVectorError(
            f"Vector blob of {len(blob)} bytes is not a whole number of float32 values"
        )
    # frombuffer copies nothing; sqlite hands back immutable bytes so the view is safe.
    return np.frombuffer(blob, dtype=VECTOR_DTYPE)


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """Cosine of two vectors; zero when dimensions differ or either norm is zero."""
    if a.shape != b.shape:
        return 0.0
    norm = float(np.linalg.norm(a)) * float(np.linalg.norm(b))
    if norm == 0.0:
        return 0.0
    return float(np.dot(a, b) / norm)


def cosine_scores(query: np.ndarray, vectors: Sequence[np.ndarray]) -> np.ndarray:
    """Cosine of ``query`` against each vector, scoring mismatched dimensions as zero."""
    query = np.asarray(query, dtype="float32")
    scores = np.zeros(len(vectors), dtype="float64")
    if not len(vectors):
        return scores

    matching = [i for i, vector in enumerate(vectors) if vector.shape == query.shape]
    if not matching:
        return scores

    matrix = np.vstack([vectors[i] for i in matching]).astype("float64")
    query64 = query.astype("float64")
    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query64)
    dots = matrix @ query64
    with np.errstate(divide="ignore", invalid="ignore"):
        values = np.where(norms > 0, dots / np.where(norms > 0, norms, 1.0), 0.0)
    scores[matching] = values
    return scores
