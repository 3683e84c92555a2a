"""Tests for CLI commands."""

from __future__ import annotations

import logging
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from typer.testing import CliRunner

from notefinder.cli import _make_config, _setup_logging, app
from notefinder.errors import InvalidK, TransportError
from notefinder.models import BuildReport, IndexStatus, IntegrityReport, SearchHit

runner = CliRunner()


@pytest.fixture
def mock_service():
    """Patch create_service so commands run against a MagicMock."""
    with patch("notefinder.cli.create_service") as factory:
        service = MagicMock()
        factory.return_value = service
        yield service


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    path = tmp_path / "test.db"
    path.touch()
    return path


class TestHelpers:
    """Tests for CLI helpers."""

    def test_setup_logging_verbose(self) -> None:
        """Verbose mode sets DEBUG level."""
        with patch("notefinder.cli.logging.basicConfig") as mock_config:
            _setup_logging(verbose=True)
            assert mock_config.call_args[1]["level"] == logging.DEBUG

    def test_setup_logging_normal(self) -> None:
        """Normal mode sets INFO level."""
        with patch("notefinder.cli.logging.basicConfig") as mock_config:
            _setup_logging(verbose=False)
            assert mock_config.call_args[1]["level"] == logging.INFO

    def test_make_config(self, tmp_path: Path) -> None:
        config = _make_config(tmp_path / "a.db", tmp_path / "vault", "ollama", None)

        assert config.db_path == tmp_path / "a.db"
        assert config.vault_root == tmp_path / "vault"
        assert config.embed_backend == "ollama"
        assert config.encoder_backend == "torch"


class TestIndexCommand:
    """Tests for the index command."""

    def test_index_reports_counts(self, mock_service: MagicMock, db_path: Path) -> None:
        mock_service.build_index.return_value = BuildReport(indexed=2, skipped=1, total_chunks=7)

        result = runner.invoke(app, ["index", "alice", "--db", str(db_path)])

        assert result.exit_code == 0
        assert "Indexed: 2" in result.stdout
        assert "chunks: 7" in result.stdout
        mock_service.build_index.assert_called_once_with("alice", force=False)
        mock_service.close.assert_called_once()

    def test_index_force(self, mock_service: MagicMock, db_path: Path) -> None:
        mock_service.build_index.return_value = BuildReport()

        result = runner.invoke(app, ["index", "alice", "--force", "--db", str(db_path), "-v"])

        assert result.exit_code == 0
        mock_service.build_index.assert_called_once_with("alice", force=True)

    def test_index_already_running(self, mock_service: MagicMock, db_path: Path) -> None:
        mock_service.build_index.return_value = BuildReport(already_running=True)

        result = runner.invoke(app, ["index", "alice", "--db", str(db_path)])

        assert result.exit_code == 0
        assert "already in progress" in result.stdout

    def test_index_encoder_backend(self, db_path: Path) -> None:
        with patch("notefinder.cli.create_service") as factory:
            factory.return_value.build_index.return_value = BuildReport()

            result = runner.invoke(
                app, ["index", "alice", "--db", str(db_path), "--encoder-backend", "openvino"]
            )

        assert result.exit_code == 0
        assert factory.call_args.args[0].encoder_backend == "openvino"


class TestSearchCommand:
    """Tests for the search command."""

    def test_search_database_not_found(self, mock_service: MagicMock, tmp_path: Path) -> None:
        """Raises a usage error when the database doesn't exist."""
        result = runner.invoke(
            app, ["search", "alice", "query", "--db", str(tmp_path / "missing.db")]
        )

        assert result.exit_code == 2
        mock_service.search.assert_not_called()

    def test_search_no_results(self, mock_service: MagicMock, db_path: Path) -> None:
        mock_service.search.return_value = []

        result = runner.invoke(app, ["search", "alice", "query", "--db", str(db_path)])

        assert result.exit_code == 0
        assert "No matches found" in result.stdout

    def test_search_with_results(self, mock_service: MagicMock, db_path: Path) -> None:
        mock_service.search.return_value = [
            SearchHit(content="water the ferns", heading="Plants", document_path="/ferns", score=0.8123)
        ]

        result = runner.invoke(
            app,
            ["search", "alice", "ferns", "--db", str(db_path), "--top-k", "3", "--min-score", "0.1"],
        )

        assert result.exit_code == 0
        assert "0.8123" in result.stdout
        assert "/ferns" in result.stdout
        mock_service.search.assert_called_once_with("alice", "ferns", k=3, min_score=0.1)

    def test_search_invalid_k(self, mock_service: MagicMock, db_path: Path) -> None:
        mock_service.search.side_effect = InvalidK("k must be at least 1, got 0")

        result = runner.invoke(app, ["search", "alice", "q", "--db", str(db_path), "--top-k", "0"])

        assert result.exit_code == 2

    def test_search_embedding_unavailable(self, mock_service: MagicMock, db_path: Path) -> None:
        mock_service.search.side_effect = TransportError("connection refused")

        result = runner.invoke(app, ["search", "alice", "q", "--db", str(db_path)])

        assert result.exit_code == 1
        assert "Embedding service unavailable" in result.stdout
        mock_service.close.assert_called_once()


class TestOtherCommands:
    """Tests for status, delete, tokens and check."""

    def test_status(self, mock_service: MagicMock, db_path: Path) -> None:
        mock_service.status.return_value = IndexStatus(3, 2, 9, True, "2024-05-01 10:00:00")

        result = runner.invoke(app, ["status", "alice", "--db", str(db_path)])

        assert result.exit_code == 0
        assert "2/3 indexed" in result.stdout
        assert "Chunks: 9" in result.stdout
        assert "Indexing in progress" in result.stdout

    def test_delete(self, mock_service: MagicMock, db_path: Path) -> None:
        result = runner.invoke(app, ["delete", "alice", "--db", str(db_path)])

        assert result.exit_code == 0
        mock_service.delete_index.assert_called_once_with("alice")

    def test_delete_without_database(self, mock_service: MagicMock, tmp_path: Path) -> None:
        result = runner.invoke(app, ["delete", "alice", "--db", str(tmp_path / "missing.db")])

        assert result.exit_code == 0
        assert "nothing to delete" in result.stdout
        mock_service.delete_index.assert_not_called()

    def test_tokens(self, mock_service: MagicMock, db_path: Path) -> None:
        mock_service.token_estimate.return_value = 1234

        result = runner.invoke(app, ["tokens", "alice", "--db", str(db_path)])

        assert result.exit_code == 0
        assert "1234" in result.stdout

    def test_check_ok(self, mock_service: MagicMock, db_path: Path) -> None:
        mock_service.check_integrity.return_value = IntegrityReport()

        result = runner.invoke(app, ["check", "--db", str(db_path)])

        assert result.exit_code == 0
        assert "consistent" in result.stdout
        mock_service.check_integrity.assert_called_once_with(None)

    def test_check_problems(self, mock_service: MagicMock, db_path: Path) -> None:
        mock_service.check_integrity.return_value = IntegrityReport(chunks_without_lexical=2)

        result = runner.invoke(app, ["check", "alice", "--db", str(db_path)])

        assert result.exit_code == 1
        mock_service.check_integrity.assert_called_once_with("alice")


class TestWebCommand:
    """Tests for the web command."""

    def test_web_starts_uvicorn_with_config(self, db_path: Path) -> None:
        with patch("uvicorn.run") as mock_run:
            result = runner.invoke(app, ["web", "--port", "9001", "--db", str(db_path)])

        assert result.exit_code == 0
        assert mock_run.call_args.kwargs["port"] == 9001
        web_app = mock_run.call_args.args[0]
        assert web_app.state.config.db_path == db_path
