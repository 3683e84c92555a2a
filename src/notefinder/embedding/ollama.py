"""Remote embedding service speaking the Ollama ``/api/embed`` protocol."""

from __future__ import annotations

import logging
from typing import Dict, Sequence

import httpx
import numpy as np

from notefinder.errors import EmbeddingError, QuotaExceeded, TransportError

LOGGER = logging.getLogger(__name__)

DEFAULT_OLLAMA_URL = "http://localhost:11434"
DEFAULT_OLLAMA_MODEL = "nomic-embed-text"


class OllamaEmbeddingService:
    """Synchronous HTTP client for an Ollama-compatible embedding endpoint."""

    endpoint = "/api/embed"

    def __init__(
        self,
        base_url: str = DEFAULT_OLLAMA_URL,
        model: str = DEFAULT_OLLAMA_MODEL,
        *,
        api_key: str | None = None,
        timeout: float = 60.0,
        client: httpx.Client | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.model = model
        self._client = client or httpx.Client(
            base_url=self.base_url,
            headers=self._auth_header(api_key),
            timeout=timeout,
        )

    @staticmethod
    def _auth_header(api_key: str | None) -> Dict[str, str]:
        if api_key:
            return {"Authorization": f"Bearer {api_key}"}
        return {}

    def close(self) -> None:
        self._client.close()

    def embed(self, texts: Sequence[str]) -> np.ndarray:
        """Embed ``texts`` in one request; vectors come back in input order."""
        payload = {"model": self.model, "input": list(texts)}
        try:
            response = self._client.post(self.endpoint, json=payload)
        except httpx.HTTPError as exc:
            raise TransportError(f"Embedding request failed: {exc}") from exc

        if response.status_code == 429:
            raise QuotaExceeded(None)
        if response.is_error:
            raise TransportError(
                f"Embedding service returned HTTP {response.status_code}",
                status_code=response.status_code,
            )

        try:
            embeddings = response.json()["embeddings"]
        except (ValueError, KeyError, TypeError) as exc:
            raise TransportError("Malformed embedding response") from exc

        if len(embeddings) != len(payload["input"]):
            raise EmbeddingError(
                f"Expected {len(payload['input'])} embeddings, got {len(embeddings)}"
            )
        LOGGER.debug("Embedded %d texts with %s", len(embeddings), self.model)
        try:
            return np.asarray(embeddings, dtype="float32")
        except ValueError as exc:
            raise EmbeddingError("Embedding vectors have inconsistent dimensions") from exc
