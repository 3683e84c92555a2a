"""Application configuration defaults."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from notefinder.embedding.client import EMBED_BATCH_SIZE, EMBED_TEXT_CAP
from notefinder.embedding.encoder import DEFAULT_MODEL
from notefinder.embedding.ollama import DEFAULT_OLLAMA_MODEL, DEFAULT_OLLAMA_URL
from notefinder.errors import ConfigurationError
from notefinder.index.search import RRF_K
from notefinder.ingestion.chunker import ChunkerConfig

EMBED_BACKENDS = ("sentence-transformers", "ollama")
ENCODER_BACKENDS = ("torch", "onnx", "openvino")


def _get_default_data_dir() -> Path:
    """Prefer a local data/ directory when running from a checkout."""
    local = Path("data")
    if local.exists():
        return local
    return Path.home() / "Documents" / "NoteFinder"


@dataclass(slots=True)
class AppConfig:
    db_path: Path | None = None
    vault_root: Path | None = None
    embed_backend: str = "sentence-transformers"
    model_name: str | None = None
    encoder_backend: str = "torch"
    ollama_url: str = DEFAULT_OLLAMA_URL
    max_tokens: int = 500
    min_tokens: int = 50
    overlap_tokens: int = 50
    embed_batch_size: int = EMBED_BATCH_SIZE
    embed_text_cap: int = EMBED_TEXT_CAP
    token_budget: int | None = None
    rrf_k: int = RRF_K
    top_k: int = 5
    min_score: float = 0.3

    def __post_init__(self) -> None:
        if self.embed_backend not in EMBED_BACKENDS:
            raise ConfigurationError(
                f"Unknown embedding backend {self.embed_backend!r}; "
                f"expected one of {', '.join(EMBED_BACKENDS)}"
            )
        if self.encoder_backend not in ENCODER_BACKENDS:
            raise ConfigurationError(
                f"Unknown encoder backend {self.encoder_backend!r}; "
                f"expected one of {', '.join(ENCODER_BACKENDS)}"
            )
        if self.model_name is None:
            self.model_name = (
                DEFAULT_OLLAMA_MODEL if self.embed_backend == "ollama" else DEFAULT_MODEL
            )
        if self.db_path is None:
            self.db_path = _get_default_data_dir() / "notefinder.db"
        if self.vault_root is None:
            self.vault_root = _get_default_data_dir() / "vault"
        if self.overlap_tokens >= self.max_tokens:
            raise ConfigurationError("overlap_tokens must be smaller than max_tokens")

    def resolve_db_path(self, base_dir: Path | None = None) -> Path:
        return self._resolve(Path(self.db_path), base_dir)

    def resolve_vault_root(self, base_dir: Path | None = None) -> Path:
        return self._resolve(Path(self.vault_root), base_dir)

    @staticmethod
    def _resolve(path: Path, base_dir: Path | None) -> Path:
        if path.is_absolute() or base_dir is None:
            return path
        return base_dir / path

    def chunker_config(self) -> ChunkerConfig:
        return ChunkerConfig(
            max_tokens=self.max_tokens,
            min_tokens=self.min_tokens,
            overlap_tokens=self.overlap_tokens,
        )
