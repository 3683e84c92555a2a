"""Command line interface for NoteFinder."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from notefinder.config import AppConfig
from notefinder.errors import EmbeddingError, InvalidK
from notefinder.service import RetrievalService, create_service

console = Console()
app = typer.Typer(help="NoteFinder - hybrid semantic and keyword search over your notes")


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="[%(levelname)s] %(message)s")


def _make_config(
    db: Optional[Path],
    vault: Optional[Path],
    backend: str,
    model: Optional[str],
    encoder_backend: str = "torch",
) -> AppConfig:
    return AppConfig(
        db_path=db,
        vault_root=vault,
        embed_backend=backend,
        model_name=model,
        encoder_backend=encoder_backend,
    )


def _open_service(config: AppConfig) -> RetrievalService:
    return create_service(config, base_dir=Path.cwd())


DbOption = typer.Option(None, "--db", help="SQLite database path")
VaultOption = typer.Option(None, "--vault", help="Root directory holding one folder per user")
BackendOption = typer.Option("sentence-transformers", "--backend", help="Embedding backend")
ModelOption = typer.Option(None, "--model", help="Embedding model name")
EncoderBackendOption = typer.Option(
    "torch", "--encoder-backend", help="sentence-transformers runtime: torch, onnx or openvino"
)
VerboseOption = typer.Option(False, "--verbose", "-v", help="Verbose logging")


@app.command()
def index(
    user: str = typer.Argument(..., help="User whose notes to index"),
    force: bool = typer.Option(False, "--force", help="Re-index unchanged documents"),
    db: Path = DbOption,
    vault: Path = VaultOption,
    backend: str = BackendOption,
    model: str = ModelOption,
    encoder_backend: str = EncoderBackendOption,
    verbose: bool = VerboseOption,
) -> None:
    """Incrementally index a user's notes."""
    _setup_logging(verbose)
    config = _make_config(db, vault, backend, model, encoder_backend)
    service = _open_service(config)
    try:
        console.print(f"Indexing notes of [bold]{user}[/bold] into {config.resolve_db_path(Path.cwd())}...")
        report = service.build_index(user, force=force)
    finally:
        service.close()

    if report.already_running:
        console.print("[yellow]Indexing already in progress for this user.[/yellow]")
        return
    console.print(
        f"Indexed: {report.indexed}, deleted: {report.deleted}, "
        f"skipped: {report.skipped}, errors: {report.errors}, chunks: {report.total_chunks}"
    )


@app.command()
def search(
    user: str = typer.Argument(..., help="User whose notes to search"),
    query: str = typer.Argument(..., help="Query text"),
    top_k: int = typer.Option(AppConfig().top_k, help="Number of results to display"),
    min_score: float = typer.Option(AppConfig().min_score, help="Minimum fused score"),
    db: Path = DbOption,
    vault: Path = VaultOption,
    backend: str = BackendOption,
    model: str = ModelOption,
    encoder_backend: str = EncoderBackendOption,
    verbose: bool = VerboseOption,
) -> None:
    """Run a hybrid search."""
    _setup_logging(verbose)
    config = _make_config(db, vault, backend, model, encoder_backend)
    resolved_db = config.resolve_db_path(Path.cwd())
    if not resolved_db.exists():
        raise typer.BadParameter(f"Database not found: {resolved_db}")

    service = _open_service(config)
    try:
        results = service.search(user, query, k=top_k, min_score=min_score)
    except InvalidK as exc:
        raise typer.BadParameter(str(exc)) from exc
    except EmbeddingError as exc:
        console.print(f"[red]Embedding service unavailable: {exc}[/red]")
        raise typer.Exit(code=1)
    finally:
        service.close()

    if not results:
        console.print("[yellow]No matches found.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Score")
    table.add_column("Document")
    table.add_column("Heading")
    table.add_column("Snippet")

    for hit in results:
        snippet = hit.content.replace("\n", " ")
        table.add_row(f"{hit.score:.4f}", hit.document_path, hit.heading or "", snippet[:180])

    console.print(table)


@app.command()
def status(
    user: str = typer.Argument(..., help="User to report on"),
    db: Path = DbOption,
    vault: Path = VaultOption,
    backend: str = BackendOption,
    model: str = ModelOption,
) -> None:
    """Show how much of a user's vault is indexed."""
    service = _open_service(_make_config(db, vault, backend, model))
    try:
        info = service.status(user)
    finally:
        service.close()

    console.print(f"Documents: {info.indexed_documents}/{info.total_documents} indexed")
    console.print(f"Chunks: {info.total_chunks}")
    console.print(f"Last indexed: {info.last_indexed or 'never'}")
    if info.is_indexing:
        console.print("[yellow]Indexing in progress[/yellow]")


@app.command()
def delete(
    user: str = typer.Argument(..., help="User whose index to delete"),
    db: Path = DbOption,
    backend: str = BackendOption,
    model: str = ModelOption,
) -> None:
    """Delete a user's entire index."""
    config = _make_config(db, None, backend, model)
    if not config.resolve_db_path(Path.cwd()).exists():
        console.print("[yellow]Database not found, nothing to delete.[/yellow]")
        return
    service = _open_service(config)
    try:
        service.delete_index(user)
    finally:
        service.close()
    console.print(f"Deleted index for {user}.")


@app.command()
def tokens(
    user: str = typer.Argument(..., help="User to report on"),
    db: Path = DbOption,
    backend: str = BackendOption,
    model: str = ModelOption,
) -> None:
    """Print the estimated token count of a user's indexed chunks."""
    service = _open_service(_make_config(db, None, backend, model))
    try:
        estimate = service.token_estimate(user)
    finally:
        service.close()
    console.print(str(estimate))


@app.command()
def check(
    user: Optional[str] = typer.Argument(None, help="Limit the check to one user"),
    db: Path = DbOption,
    backend: str = BackendOption,
    model: str = ModelOption,
) -> None:
    """Verify that chunks, lexical entries and registry rows line up."""
    service = _open_service(_make_config(db, None, backend, model))
    try:
        report = service.check_integrity(user)
    finally:
        service.close()

    if report.ok:
        console.print("[green]Index is consistent.[/green]")
        return
    console.print(
        f"[red]Chunks without lexical entry: {report.chunks_without_lexical}, "
        f"lexical entries without chunk: {report.lexical_without_chunk}, "
        f"chunks without registry row: {report.chunks_without_registry}[/red]"
    )
    raise typer.Exit(code=1)


@app.command()
def web(
    host: str = typer.Option("127.0.0.1", help="Host interface"),
    port: int = typer.Option(8000, help="Server port"),
    db: Path = DbOption,
    vault: Path = VaultOption,
    backend: str = BackendOption,
    model: str = ModelOption,
    encoder_backend: str = EncoderBackendOption,
) -> None:
    """Start the HTTP API."""
    try:
        import uvicorn
    except ImportError as exc:  # pragma: no cover
        raise typer.BadParameter(
            "uvicorn is not installed. Install it with \"python -m pip install uvicorn\""
        ) from exc

    from notefinder.web.app import app as web_app

    web_app.state.config = _make_config(db, vault, backend, model, encoder_backend)
    console.print(f"Starting HTTP API on http://{host}:{port}")
    uvicorn.run(web_app, host=host, port=port, reload=False, log_level="info")


if __name__ == "__main__":
    app()
