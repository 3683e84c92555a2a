"""Shared fixtures."""

from __future__ import annotations

import pytest

from notefinder.embedding.client import EmbeddingClient
from notefinder.index.singleflight import SingleFlight
from notefinder.index.storage import SQLiteChunkStore
from notefinder.service import RetrievalService
from tests.fakes import SMALL_CHUNKS, FakeEmbeddingService, MemoryCorpus


@pytest.fixture
def temp_store(tmp_path):
    """Create a temporary chunk store for testing."""
    store = SQLiteChunkStore(tmp_path / "test.db")
    yield store
    store.close()

@pytest.fixture
def corpus() -> MemoryCorpus:
    return MemoryCorpus()

@pytest.fixture
def fake_service() -> FakeEmbeddingService:
    return FakeEmbeddingService()

@pytest.fixture
def embedder(fake_service) -> EmbeddingClient:
    return EmbeddingClient(fake_service)

@pytest.fixture
def guard() -> SingleFlight:
    return SingleFlight()

@pytest.fixture
def retrieval(temp_store, corpus, embedder, guard) -> RetrievalService:
    """RetrievalService over a temp store, an in-memory corpus and the fake embedder."""
    return RetrievalService(
        temp_store,
        corpus,
        corpus,
        embedder,
        chunker_config=SMALL_CHUNKS,
        guard=guard,
    )
