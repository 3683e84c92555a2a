"""Inbound operations of the retrieval engine."""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import List, Optional

from notefinder.config import AppConfig
from notefinder.embedding.client import EmbeddingClient, EmbeddingService, QuotaTracker
from notefinder.embedding.encoder import EmbeddingConfig, EmbeddingModel
from notefinder.embedding.ollama import OllamaEmbeddingService
from notefinder.index.indexer import IndexBuilder
from notefinder.index.search import RRF_K, HybridSearcher
from notefinder.index.singleflight import INDEXING_USERS, SingleFlight
from notefinder.index.storage import SQLiteChunkStore
from notefinder.ingestion.chunker import ChunkerConfig
from notefinder.models import BuildReport, IndexStatus, IntegrityReport, SearchHit
from notefinder.sources import BlobStore, DocumentRegistry, VaultDirectory

LOGGER = logging.getLogger(__name__)


class RetrievalService:
    """Per-user index build, hybrid search and index lifecycle."""

    def __init__(
        self,
        store: SQLiteChunkStore,
        registry: DocumentRegistry,
        blob_store: BlobStore,
        embedder: EmbeddingClient,
        *,
        chunker_config: Optional[ChunkerConfig] = None,
        rrf_k: int = RRF_K,
        guard: SingleFlight = INDEXING_USERS,
    ) -> None:
        self.store = store
        self.registry = registry
        self.builder = IndexBuilder(
            store,
            registry,
            blob_store,
            embedder,
            chunker_config=chunker_config,
            guard=guard,
        )
        self.searcher = HybridSearcher(embedder, store, rrf_k=rrf_k)

    def build_index(
        self,
        user_id: str,
        force: bool = False,
        *,
        cancel_event: Optional[threading.Event] = None,
    ) -> BuildReport:
        return self.builder.build(user_id, force, cancel_event=cancel_event)

    def search(
        self,
        user_id: str,
        query: str,
        k: int = 5,
        min_score: float = 0.3,
    ) -> List[SearchHit]:
        return self.searcher.search(user_id, query, k=k, min_score=min_score)

    def status(self, user_id: str) -> IndexStatus:
        return IndexStatus(
            total_documents=sum(1 for _ in self.registry.list_documents(user_id)),
            indexed_documents=self.store.count_indexed(user_id),
            total_chunks=self.store.count_chunks(user_id),
            is_indexing=self.builder.is_running(user_id),
            last_indexed=self.store.last_indexed(user_id),
        )

    def delete_index(self, user_id: str) -> None:
        removed = self.store.delete_user(user_id)
        LOGGER.info("Deleted index for user %s (%d chunks)", user_id, removed)

    def token_estimate(self, user_id: str) -> int:
        return self.store.token_estimate(user_id)

    def check_integrity(self, user_id: Optional[str] = None) -> IntegrityReport:
        return self.store.check_integrity(user_id)

    def close(self) -> None:
        self.store.close()


def create_embedding_service(config: AppConfig) -> EmbeddingService:
    if config.embed_backend == "ollama":
        return OllamaEmbeddingService(config.ollama_url, config.model_name)
    return EmbeddingModel(
        EmbeddingConfig(model_name=config.model_name, backend=config.encoder_backend)
    )


def create_service(
    config: AppConfig,
    *,
    base_dir: Path | None = None,
    embedding_service: EmbeddingService | None = None,
) -> RetrievalService:
    """Wire a service over the configured database, vault and embedding backend."""
    db_path = config.resolve_db_path(base_dir)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    vault = VaultDirectory(config.resolve_vault_root(base_dir))
    embedder = EmbeddingClient(
        embedding_service or create_embedding_service(config),
        batch_size=config.embed_batch_size,
        text_cap=config.embed_text_cap,
        quota=QuotaTracker(config.token_budget),
    )
    return RetrievalService(
        SQLiteChunkStore(db_path),
        vault,
        vault,
        embedder,
        chunker_config=config.chunker_config(),
        rrf_k=config.rrf_k,
    )
