"""Batched embedding client with per-user quota accounting."""

from __future__ import annotations

import logging
import threading
from typing import Dict, List, Optional, Protocol, Sequence

import numpy as np

from notefinder.errors import (
    EmbeddingError,
    EmbeddingUnavailable,
    NoteFinderError,
    QuotaExceeded,
)
from notefinder.utils.text import estimate_tokens

LOGGER = logging.getLogger(__name__)

EMBED_BATCH_SIZE = 20
EMBED_TEXT_CAP = 8000


class EmbeddingService(Protocol):
    def embed(self, texts: Sequence[str]) -> np.ndarray: ...


class QuotaTracker:
    """Thread-safe per-user token budget for embedding calls.

    A ``budget_tokens`` of ``None`` disables accounting.
    """

    def __init__(self, budget_tokens: Optional[int] = None) -> None:
        self.budget_tokens = budget_tokens
        self._used: Dict[str, int] = {}
        self._lock = threading.Lock()

    def charge(self, user_id: str, tokens: int) -> None:
        if self.budget_tokens is None:
            return
        with self._lock:
            used = self._used.get(user_id, 0)
            remaining = self.budget_tokens - used
            if tokens > remaining:
                raise QuotaExceeded(user_id, requested=tokens, remaining=max(remaining, 0))
            self._used[user_id] = used + tokens

    def refund(self, user_id: str, tokens: int) -> None:
        """Return tokens charged for a batch the service never embedded."""
        if self.budget_tokens is None:
            return
        with self._lock:
            self._used[user_id] = max(self._used.get(user_id, 0) - tokens, 0)

    def used(self, user_id: str) -> int:
        with self._lock:
            return self._used.get(user_id, 0)

    def remaining(self, user_id: str) -> Optional[int]:
        if self.budget_tokens is None:
            return None
        return max(self.budget_tokens - self.used(user_id), 0)

    def reset(self, user_id: Optional[str] = None) -> None:
        with self._lock:
            if user_id is None:
                self._used.clear()
            else:
                self._used.pop(user_id, None)


class EmbeddingClient:
    """Slice texts into API-sized batches and reassemble vectors in order.

    Either every text gets a vector or the whole call raises.
    """

    def __init__(
        self,
        service: EmbeddingService,
        *,
        batch_size: int = EMBED_BATCH_SIZE,
        text_cap: int = EMBED_TEXT_CAP,
        quota: Optional[QuotaTracker] = None,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be positive")
        self.service = service
        self.batch_size = batch_size
        self.text_cap = text_cap
        self.quota = quota or QuotaTracker()

    def embed(self, user_id: str, texts: Sequence[str]) -> np.ndarray:
        capped = [text[: self.text_cap] for text in texts]
        if not capped:
            return np.zeros((0, 0), dtype="float32")

        parts: List[np.ndarray] = []
        for start in range(0, len(capped), self.batch_size):
            batch = capped[start : start + self.batch_size]
            tokens = sum(estimate_tokens(text) for text in batch)
            self.quota.charge(user_id, tokens)
            try:
                vectors = np.asarray(self.service.embed(batch), dtype="float32")
            except QuotaExceeded as exc:
                self.quota.refund(user_id, tokens)
                if exc.user_id is not None:
                    raise
                raise QuotaExceeded(user_id, requested=tokens) from exc
            except NoteFinderError:
                self.quota.refund(user_id, tokens)
                raise
            except Exception as exc:
                self.quota.refund(user_id, tokens)
                raise EmbeddingUnavailable(f"Embedding service failed: {exc}") from exc
            if vectors.ndim != 2 or vectors.shape[0] != len(batch):
                raise EmbeddingError(
                    f"Embedding service returned shape {vectors.shape} for {len(batch)} texts"
                )
            if parts and vectors.shape[1] != parts[0].shape[1]:
                raise EmbeddingError(
                    f"Embedding dimension changed within one call: "
                    f"{parts[0].shape[1]} != {vectors.shape[1]}"
                )
            parts.append(vectors)

        LOGGER.debug("Embedded %d texts in %d batches", len(capped), len(parts))
        return np.vstack(parts)

    def embed_query(self, user_id: str, text: str) -> np.ndarray:
        """Convenience wrapper for single-query embedding."""
        return self.embed(user_id, [text])[0]
