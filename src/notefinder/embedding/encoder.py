"""Local embedding service backed by sentence-transformers."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Literal, Sequence

import numpy as np
from sentence_transformers import SentenceTransformer

DEFAULT_MODEL = "sentence-transformers/all-MiniLM-L6-v2"

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class EmbeddingConfig:
    model_name: str = DEFAULT_MODEL
    batch_size: int = 16
    normalize: bool = True
    backend: Literal["torch", "onnx", "openvino"] = "torch"
    device: str | None = None


class EmbeddingModel:
    """Thin wrapper around `SentenceTransformer` producing float32 vectors.

    Falls back to the PyTorch backend when an alternative backend fails to
    load, so a missing ONNX runtime never prevents indexing.
    """

    def __init__(self, config: EmbeddingConfig | None = None) -> None:
        self.config = config or EmbeddingConfig()
        try:
            self._model = self._load_model()
        except Exception as e:
            if self.config.backend == "torch":
                raise
            logger.warning(
                f"Failed to load model with backend '{self.config.backend}': {e}. "
                "Falling back to PyTorch."
            )
            self.config.backend = "torch"
            self._model = self._load_model()

        self.dimension = int(self._model.get_sentence_embedding_dimension())
        logger.info(
            "Loaded %s (backend: %s, dimension: %d)",
            self.config.model_name,
            self.config.backend,
            self.dimension,
        )

    def _load_model(self) -> SentenceTransformer:
        return SentenceTransformer(
            self.config.model_name,
            backend=self.config.backend,
            device=self.config.device,
        )

    def embed(self, texts: Sequence[str] | Iterable[str]) -> np.ndarray:
        """Return float32 embeddings for input texts."""
        sentences = list(texts)
        if not sentences:
            return np.zeros((0, self.dimension), dtype="float32")
        embeddings = self._model.encode(
            sentences,
            batch_size=self.config.batch_size,
            show_progress_bar=False,
            convert_to_numpy=True,
            normalize_embeddings=self.config.normalize,
        )
        return embeddings.astype("float32", copy=False)
