"""Exception hierarchy for indexing and search failures.

Build operations absorb most of these per document and report counts; search
surfaces them to the caller. Callers can react to the broad categories
(embedding unavailable vs. store corruption) or to the specific subclasses.
"""

from __future__ import annotations

from typing import Optional

__all__ = [
    "NoteFinderError",
    "ConfigurationError",
    "EmbeddingError",
    "EmbeddingUnavailable",
    "TransportError",
    "QuotaExceeded",
    "InvalidK",
    "StoreError",
    "CorruptVectorError",
    "BlobStoreError",
]


class NoteFinderError(RuntimeError):
    """Base exception for NoteFinder failures."""


class ConfigurationError(NoteFinderError):
    """Raised when configuration values are invalid or incomplete."""


class EmbeddingError(NoteFinderError):
    """Raised when the embedding service cannot produce a full set of vectors."""


class EmbeddingUnavailable(EmbeddingError):
    """Raised when the embedding service cannot be used at all."""


class TransportError(EmbeddingUnavailable):
    """Raised when the embedding service could not be reached or answered badly."""

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class QuotaExceeded(EmbeddingError):
    """Raised when a user's embedding budget, or the provider's, is consumed."""

    def __init__(
        self,
        user_id: Optional[str],
        *,
        requested: int = 0,
        remaining: int = 0,
    ) -> None:
        if user_id is None:
            message = "Embedding quota exceeded at the provider"
        else:
            message = (
                f"Embedding quota exceeded for user {user_id}: "
                f"requested {requested} tokens, {remaining} remaining"
            )
        super().__init__(message)
        self.user_id = user_id
        self.requested = requested
        self.remaining = remaining


class InvalidK(NoteFinderError, ValueError):
    """Raised when a search asks for fewer than one result."""


class StoreError(NoteFinderError):
    """Raised when persisted index state cannot be used."""


class CorruptVectorError(StoreError):
    """Raised when a stored vector blob is not a whole number of float32 values."""


class BlobStoreError(NoteFinderError):
    """Raised when canonical document bytes cannot be fetched."""
