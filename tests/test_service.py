"""Tests for RetrievalService lifecycle operations and wiring."""

from __future__ import annotations

import logging
from pathlib import Path
from unittest.mock import patch

from notefinder.config import AppConfig
from notefinder.embedding.ollama import OllamaEmbeddingService
from notefinder.service import RetrievalService, create_embedding_service, create_service
from notefinder.utils.log import request_logger
from tests.fakes import FakeEmbeddingService, paragraph

NOTE = "# Note\n\n" + paragraph("remember to water the ferns every morning")


class TestStatus:
    """Tests for status reporting."""

    def test_status_before_and_after_build(self, retrieval, corpus) -> None:
        corpus.put("u1", "a.md", NOTE)
        corpus.put("u1", "b.md", NOTE + " Extra words here.")

        before = retrieval.status("u1")
        assert (before.total_documents, before.indexed_documents, before.total_chunks) == (2, 0, 0)
        assert before.last_indexed is None
        assert before.is_indexing is False

        retrieval.build_index("u1")
        after = retrieval.status("u1")

        assert after.indexed_documents == 2
        assert after.total_chunks >= 2
        assert after.last_indexed is not None


class TestLifecycle:
    """Tests for delete_index, token_estimate and check_integrity."""

    def test_delete_index(self, retrieval, corpus, temp_store) -> None:
        corpus.put("u1", "a.md", NOTE)
        corpus.put("u2", "a.md", NOTE)
        retrieval.build_index("u1")
        retrieval.build_index("u2")

        retrieval.delete_index("u1")

        assert temp_store.count_chunks("u1") == 0
        assert temp_store.count_indexed("u1") == 0
        assert temp_store.count_chunks("u2") > 0
        assert retrieval.search("u1", "ferns") == []

    def test_delete_index_for_unknown_user(self, retrieval) -> None:
        retrieval.delete_index("nobody")
        assert retrieval.token_estimate("nobody") == 0

    def test_token_estimate_sums_chunks(self, retrieval, corpus, temp_store) -> None:
        corpus.put("u1", "a.md", NOTE)
        retrieval.build_index("u1")

        expected = sum(c.token_estimate for c in temp_store.user_chunks("u1"))
        assert retrieval.token_estimate("u1") == expected > 0

    def test_check_integrity_after_builds(self, retrieval, corpus) -> None:
        corpus.put("u1", "a.md", NOTE)
        retrieval.build_index("u1")
        corpus.remove("u1", "a.md")
        retrieval.build_index("u1")

        assert retrieval.check_integrity().ok
        assert retrieval.check_integrity("u1").ok


class TestCreateService:
    """Tests for create_service wiring."""

    def test_wires_vault_and_store(self, tmp_path: Path) -> None:
        vault = tmp_path / "vault"
        (vault / "alice").mkdir(parents=True)
        (vault / "alice" / "ferns.md").write_text(NOTE)
        config = AppConfig(
            db_path=Path("nested/index.db"), vault_root=Path("vault"), min_tokens=5
        )

        service = create_service(config, base_dir=tmp_path, embedding_service=FakeEmbeddingService())
        try:
            assert isinstance(service, RetrievalService)
            assert (tmp_path / "nested" / "index.db").exists()

            report = service.build_index("alice")
            hits = service.search("alice", "ferns morning", min_score=0.0)
        finally:
            service.close()

        assert report.indexed == 1
        assert hits[0].document_path == "/ferns"

    def test_ollama_backend(self) -> None:
        config = AppConfig(db_path=Path("x.db"), vault_root=Path("v"), embed_backend="ollama")
        service = create_embedding_service(config)

        assert isinstance(service, OllamaEmbeddingService)
        assert service.model == config.model_name
        service.close()

    def test_sentence_transformers_backend(self) -> None:
        config = AppConfig(
            db_path=Path("x.db"), vault_root=Path("v"), model_name="tiny-model", encoder_backend="onnx"
        )
        with patch("notefinder.service.EmbeddingModel") as model:
            create_embedding_service(config)

        assert model.call_args.args[0].model_name == "tiny-model"
        assert model.call_args.args[0].backend == "onnx"


class TestRequestLogger:
    """Tests for the per-request log adapter."""

    def test_prefixes_user_and_request(self, caplog) -> None:
        log = request_logger(logging.getLogger("notefinder.test"), "u1", "req42")

        with caplog.at_level(logging.INFO, logger="notefinder.test"):
            log.info("hello %s", "world")

        assert caplog.messages == ["user=u1 req=req42 hello world"]

    def test_generates_request_id(self) -> None:
        log = request_logger(logging.getLogger("notefinder.test"), "u1")
        assert len(log.extra["request_id"]) == 8
