"""Tests for the vector blob codec and cosine scoring."""

from __future__ import annotations

import struct

import numpy as np
import pytest

from notefinder.errors import CorruptVectorError
from notefinder.index.vectors import (
    blob_to_vector,
    cosine_scores,
    cosine_similarity,
    vector_to_blob,
)


class TestBlobCodec:
    """Tests for vector_to_blob / blob_to_vector."""

    def test_little_endian_float32_layout(self) -> None:
        assert vector_to_blob([1.0, -2.5]) == struct.pack("<2f", 1.0, -2.5)

    def test_dimension_is_implicit(self) -> None:
        vector = blob_to_vector(struct.pack("<3f", 0.5, 0.25, 0.125))

        assert vector.shape == (3,)
        assert vector.tolist() == [0.5, 0.25, 0.125]

    def test_empty_blob(self) -> None:
        assert blob_to_vector(b"").shape == (0,)

    def test_partial_float_is_corrupt(self) -> None:
        with pytest.raises(CorruptVectorError):
            blob_to_vector(b"\x00\x01\x02")


class TestCosine:
    """Tests for cosine helpers."""

    def test_identical_and_orthogonal(self) -> None:
        a = np.array([1.0, 0.0], dtype="float32")
        b = np.array([0.0, 2.0], dtype="float32")

        assert cosine_similarity(a, a) == pytest.approx(1.0)
        assert cosine_similarity(a, b) == pytest.approx(0.0)
        assert cosine_similarity(a, -a) == pytest.approx(-1.0)

    def test_zero_norm_scores_zero(self) -> None:
        zero = np.zeros(2, dtype="float32")
        assert cosine_similarity(zero, np.array([1.0, 1.0], dtype="float32")) == 0.0

    def test_dimension_mismatch_scores_zero(self) -> None:
        assert cosine_similarity(np.ones(2), np.ones(3)) == 0.0

    def test_cosine_scores_mixed_vectors(self) -> None:
        query = np.array([1.0, 0.0], dtype="float32")
        vectors = [
            np.array([2.0, 0.0], dtype="float32"),
            np.array([1.0, 1.0, 1.0], dtype="float32"),
            np.zeros(2, dtype="float32"),
            np.array([0.0, -1.0], dtype="float32"),
        ]

        scores = cosine_scores(query, vectors)

        assert scores.tolist() == pytest.approx([1.0, 0.0, 0.0, 0.0])

    def test_cosine_scores_empty(self) -> None:
        assert cosine_scores(np.ones(2), []).shape == (0,)
