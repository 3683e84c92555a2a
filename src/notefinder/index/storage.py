"""SQLite store for chunks, their vectors, an FTS5 lexical index and the indexed-document registry."""

from __future__ import annotations

import logging
import sqlite3
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence

import numpy as np

from notefinder.index.vectors import vector_to_blob
from notefinder.models import (
    Chunk,
    DocumentRef,
    IndexedDocument,
    IntegrityReport,
    StoredChunk,
)

LOGGER = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS chunks (
    id INTEGER PRIMARY KEY,
    chunk_id TEXT NOT NULL,
    user_id TEXT NOT NULL,
    document_id TEXT NOT NULL,
    document_path TEXT NOT NULL,
    chunk_index INTEGER NOT NULL,
    content TEXT NOT NULL,
    heading TEXT,
    embedding BLOB NOT NULL,
    token_estimate INTEGER NOT NULL,
    UNIQUE(user_id, chunk_id)
);

CREATE INDEX IF NOT EXISTS idx_chunks_user ON chunks(user_id);
CREATE INDEX IF NOT EXISTS idx_chunks_user_document ON chunks(user_id, document_id);

CREATE VIRTUAL TABLE IF NOT EXISTS chunks_fts USING fts5(
    content,
    heading,
    tokenize='unicode61'
);

-- Lexical rows live and die with their chunk row, inside the same transaction.
CREATE TRIGGER IF NOT EXISTS chunks_ai AFTER INSERT ON chunks
BEGIN
    INSERT INTO chunks_fts(rowid, content, heading)
    VALUES (new.id, new.content, COALESCE(new.heading, ''));
END;

CREATE TRIGGER IF NOT EXISTS chunks_ad AFTER DELETE ON chunks
BEGIN
    DELETE FROM chunks_fts WHERE rowid = old.id;
END;

CREATE TRIGGER IF NOT EXISTS chunks_au AFTER UPDATE OF content, heading ON chunks
BEGIN
    DELETE FROM chunks_fts WHERE rowid = old.id;
    INSERT INTO chunks_fts(rowid, content, heading)
    VALUES (new.id, new.content, COALESCE(new.heading, ''));
END;

CREATE TABLE IF NOT EXISTS indexed_documents (
    user_id TEXT NOT NULL,
    document_id TEXT NOT NULL,
    document_path TEXT NOT NULL,
    content_hash TEXT NOT NULL,
    chunk_count INTEGER NOT NULL DEFAULT 0,
    total_chars INTEGER NOT NULL DEFAULT 0,
    indexed_at TEXT NOT NULL DEFAULT (datetime('now')),
    PRIMARY KEY (user_id, document_id)
);
"""

_CHUNK_COLUMNS = (
    "id, chunk_id, user_id, document_id, document_path, chunk_index, "
    "content, heading, embedding, token_estimate"
)


@dataclass(frozen=True)
class Statements:
    """SQL owned by the store; sqlite3 keeps the compiled forms per connection."""

    indexed_docs: str = (
        "SELECT user_id, document_id, document_path, content_hash, chunk_count, "
        "total_chars, indexed_at FROM indexed_documents WHERE user_id = ?"
    )
    indexed_doc: str = (
        "SELECT user_id, document_id, document_path, content_hash, chunk_count, "
        "total_chars, indexed_at FROM indexed_documents WHERE user_id = ? AND document_id = ?"
    )
    count_chunks: str = "SELECT COUNT(*) FROM chunks WHERE user_id = ?"
    count_indexed: str = "SELECT COUNT(*) FROM indexed_documents WHERE user_id = ?"
    last_indexed: str = "SELECT MAX(indexed_at) FROM indexed_documents WHERE user_id = ?"
    token_estimate: str = (
        "SELECT COALESCE(SUM(token_estimate), 0) FROM chunks WHERE user_id = ?"
    )
    user_chunks: str = (
        f"SELECT {_CHUNK_COLUMNS} FROM chunks WHERE user_id = ? "
        "ORDER BY document_id, chunk_index"
    )
    document_chunks: str = (
        f"SELECT {_CHUNK_COLUMNS} FROM chunks WHERE user_id = ? AND document_id = ? "
        "ORDER BY chunk_index"
    )
    insert_chunk: str = (
        "INSERT INTO chunks(chunk_id, user_id, document_id, document_path, chunk_index, "
        "content, heading, embedding, token_estimate) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)"
    )
    upsert_indexed_doc: str = """
        INSERT INTO indexed_documents
            (user_id, document_id, document_path, content_hash, chunk_count, total_chars, indexed_at)
        VALUES (?, ?, ?, ?, ?, ?, datetime('now'))
        ON CONFLICT(user_id, document_id) DO UPDATE SET
            document_path = excluded.document_path,
            content_hash = excluded.content_hash,
            chunk_count = excluded.chunk_count,
            total_chars = excluded.total_chars,
            indexed_at = excluded.indexed_at
    """
    delete_doc_chunks: str = "DELETE FROM chunks WHERE user_id = ? AND document_id = ?"
    delete_indexed_doc: str = (
        "DELETE FROM indexed_documents WHERE user_id = ? AND document_id = ?"
    )
    delete_user_chunks: str = "DELETE FROM chunks WHERE user_id = ?"
    delete_user_indexed: str = "DELETE FROM indexed_documents WHERE user_id = ?"
    lexical_search: str = """
        SELECT chunks_fts.rowid AS rowid, bm25(chunks_fts) AS rank
        FROM chunks_fts
        JOIN chunks c ON c.id = chunks_fts.rowid
        WHERE chunks_fts MATCH ? AND c.user_id = ?
        ORDER BY rank, chunks_fts.rowid
        LIMIT ?
    """
    chunks_without_lexical: str = """
        SELECT COUNT(*) FROM chunks c
        WHERE (:user_id IS NULL OR c.user_id = :user_id)
          AND NOT EXISTS (SELECT 1 FROM chunks_fts f WHERE f.rowid = c.id)
    """
    lexical_without_chunk: str = """
        SELECT COUNT(*) FROM chunks_fts f
        WHERE NOT EXISTS (SELECT 1 FROM chunks c WHERE c.id = f.rowid)
    """
    chunks_without_registry: str = """
        SELECT COUNT(*) FROM chunks c
        WHERE (:user_id IS NULL OR c.user_id = :user_id)
          AND NOT EXISTS (
              SELECT 1 FROM indexed_documents d
              WHERE d.user_id = c.user_id AND d.document_id = c.document_id
          )
    """


def _row_to_chunk(row: sqlite3.Row) -> StoredChunk:
    return StoredChunk(
        rowid=row["id"],
        chunk_id=row["chunk_id"],
        user_id=row["user_id"],
        document_id=row["document_id"],
        document_path=row["document_path"],
        chunk_index=row["chunk_index"],
        content=row["content"],
        heading=row["heading"],
        embedding=bytes(row["embedding"]),
        token_estimate=row["token_estimate"],
    )


def _row_to_indexed(row: sqlite3.Row) -> IndexedDocument:
    return IndexedDocument(
        user_id=row["user_id"],
        document_id=row["document_id"],
        document_path=row["document_path"],
        content_hash=row["content_hash"],
        chunk_count=row["chunk_count"],
        total_chars=row["total_chars"],
        indexed_at=row["indexed_at"],
    )


class SQLiteChunkStore:
    """Persistence layer for chunks, vectors, lexical postings and the registry.

    Each thread gets its own connection to the WAL-mode database, so readers
    run alongside a writer and always see committed state only. Writes go
    through :meth:`transaction` (``BEGIN IMMEDIATE``), which SQLite serialises.
    """

    def __init__(self, db_path: Path, *, timeout: float = 30.0) -> None:
        self.db_path = Path(db_path)
        self.timeout = timeout
        self.sql = Statements()
        self._local = threading.local()
        self._connections: List[sqlite3.Connection] = []
        self._connections_lock = threading.Lock()
        self._ensure_schema()

    @property
    def connection(self) -> sqlite3.Connection:
        conn = getattr(self._local, "conn", None)
        if conn is None:
            conn = self._connect()
            self._local.conn = conn
            with self._connections_lock:
                self._connections.append(conn)
        return conn

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(
            self.db_path,
            timeout=self.timeout,
            isolation_level=None,
            check_same_thread=False,
        )
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute("PRAGMA synchronous=NORMAL;")
        return conn

    def close(self) -> None:
        with self._connections_lock:
            connections, self._connections = self._connections, []
        for conn in connections:
            conn.close()
        self._local = threading.local()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Write transaction; joins the caller's transaction when one is open."""
        with self._begin("BEGIN IMMEDIATE") as conn:
            yield conn

    @contextmanager
    def snapshot(self) -> Iterator[sqlite3.Connection]:
        """Read transaction giving a single consistent view across queries."""
        with self._begin("BEGIN") as conn:
            yield conn

    @contextmanager
    def _begin(self, statement: str) -> Iterator[sqlite3.Connection]:
        conn = self.connection
        if conn.in_transaction:
            yield conn
            return
        conn.execute(statement)
        try:
            yield conn
        except BaseException:
            conn.execute("ROLLBACK")
            raise
        conn.execute("COMMIT")

    def _ensure_schema(self) -> None:
        self.connection.executescript(_SCHEMA)

    # Registry

    def indexed_documents(self, user_id: str) -> Dict[str, IndexedDocument]:
        rows = self.connection.execute(self.sql.indexed_docs, (user_id,)).fetchall()
        return {row["document_id"]: _row_to_indexed(row) for row in rows}

    def get_indexed_document(self, user_id: str, document_id: str) -> Optional[IndexedDocument]:
        row = self.connection.execute(self.sql.indexed_doc, (user_id, document_id)).fetchone()
        return _row_to_indexed(row) if row else None

    # Writes

    def replace_document(
        self,
        user_id: str,
        document: DocumentRef,
        chunks: Sequence[Chunk],
        embeddings: Optional[np.ndarray],
        *,
        total_chars: int,
    ) -> None:
        """Swap in a document's chunks and registry row in one transaction."""
        count = 0 if embeddings is None else len(embeddings)
        if count != len(chunks):
            raise ValueError("Embeddings and chunks length mismatch")

        rows = [
            (
                chunk.chunk_id,
                user_id,
                document.document_id,
                chunk.document_path,
                chunk.chunk_index,
                chunk.content,
                chunk.heading,
                sqlite3.Binary(vector_to_blob(vector)),
                chunk.token_estimate,
            )
            for chunk, vector in zip(chunks, embeddings if embeddings is not None else [])
        ]
        with self.transaction() as conn:
            conn.execute(self.sql.delete_doc_chunks, (user_id, document.document_id))
            conn.executemany(self.sql.insert_chunk, rows)
            conn.execute(
                self.sql.upsert_indexed_doc,
                (
                    user_id,
                    document.document_id,
                    document.path,
                    document.content_hash,
                    len(chunks),
                    total_chars,
                ),
            )

    def delete_document(self, user_id: str, document_id: str) -> bool:
        """Remove a document's chunks, lexical rows and registry row."""
        with self.transaction() as conn:
            conn.execute(self.sql.delete_doc_chunks, (user_id, document_id))
            cursor = conn.execute(self.sql.delete_indexed_doc, (user_id, document_id))
        return cursor.rowcount > 0

    def delete_user(self, user_id: str) -> int:
        """Remove every chunk and registry row for ``user_id``; returns chunks removed."""
        with self.transaction() as conn:
            cursor = conn.execute(self.sql.delete_user_chunks, (user_id,))
            conn.execute(self.sql.delete_user_indexed, (user_id,))
        return cursor.rowcount

    # Reads

    def user_chunks(self, user_id: str) -> List[StoredChunk]:
        rows = self.connection.execute(self.sql.user_chunks, (user_id,)).fetchall()
        return [_row_to_chunk(row) for row in rows]

    def document_chunks(self, user_id: str, document_id: str) -> List[StoredChunk]:
        rows = self.connection.execute(
            self.sql.document_chunks, (user_id, document_id)
        ).fetchall()
        return [_row_to_chunk(row) for row in rows]

    def chunks_by_rowid(self, user_id: str, rowids: Sequence[int]) -> Dict[int, StoredChunk]:
        if not rowids:
            return {}
        placeholders = ", ".join("?" for _ in rowids)
        rows = self.connection.execute(
            f"SELECT {_CHUNK_COLUMNS} FROM chunks WHERE user_id = ? AND id IN ({placeholders})",
            (user_id, *rowids),
        ).fetchall()
        return {row["id"]: _row_to_chunk(row) for row in rows}

    def lexical_query(self, user_id: str, expression: str, limit: int) -> List[tuple[int, float]]:
        """BM25 matches as ``(rowid, rank)``, most relevant (lowest rank) first."""
        rows = self.connection.execute(
            self.sql.lexical_search, (expression, user_id, limit)
        ).fetchall()
        return [(row["rowid"], float(row["rank"])) for row in rows]

    def count_chunks(self, user_id: str) -> int:
        return self.connection.execute(self.sql.count_chunks, (user_id,)).fetchone()[0]

    def count_indexed(self, user_id: str) -> int:
        return self.connection.execute(self.sql.count_indexed, (user_id,)).fetchone()[0]

    def last_indexed(self, user_id: str) -> Optional[str]:
        return self.connection.execute(self.sql.last_indexed, (user_id,)).fetchone()[0]

    def token_estimate(self, user_id: str) -> int:
        return self.connection.execute(self.sql.token_estimate, (user_id,)).fetchone()[0]

    def check_integrity(self, user_id: Optional[str] = None) -> IntegrityReport:
        """Count rows that break the chunk / lexical / registry pairing."""
        params = {"user_id": user_id}
        with self.snapshot() as conn:
            report = IntegrityReport(
                chunks_without_lexical=conn.execute(
                    self.sql.chunks_without_lexical, params
                ).fetchone()[0],
                lexical_without_chunk=conn.execute(self.sql.lexical_without_chunk).fetchone()[0],
                chunks_without_registry=conn.execute(
                    self.sql.chunks_without_registry, params
                ).fetchone()[0],
            )
        if not report.ok:
            LOGGER.warning("Index integrity problems detected: %s", report)
        return report
