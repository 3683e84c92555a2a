"""Core NoteFinder data models."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional


@dataclass(slots=True, frozen=True)
class DocumentRef:
    """Upstream document as seen through the document registry."""

    document_id: str
    user_id: str
    path: str
    content_hash: str


@dataclass(slots=True)
class Chunk:
    """Passage of document text produced by the chunker."""

    chunk_id: str
    document_id: str
    document_path: str
    chunk_index: int
    content: str
    heading: Optional[str]
    token_estimate: int


@dataclass(slots=True)
class StoredChunk:
    """Chunk row as read back from the store, including its raw vector blob."""

    rowid: int
    chunk_id: str
    user_id: str
    document_id: str
    document_path: str
    chunk_index: int
    content: str
    heading: Optional[str]
    embedding: bytes
    token_estimate: int


@dataclass(slots=True)
class IndexedDocument:
    """Registry row asserting that a content hash is fully indexed."""

    user_id: str
    document_id: str
    document_path: str
    content_hash: str
    chunk_count: int
    total_chars: int
    indexed_at: Optional[str] = None


@dataclass(slots=True)
class IndexPlan:
    to_index: List[DocumentRef] = field(default_factory=list)
    to_delete: List[IndexedDocument] = field(default_factory=list)
    to_skip: List[DocumentRef] = field(default_factory=list)


@dataclass(slots=True)
class BuildReport:
    indexed: int = 0
    deleted: int = 0
    skipped: int = 0
    errors: int = 0
    total_chunks: int = 0
    already_running: bool = False
    cancelled: bool = False

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class IndexStatus:
    total_documents: int
    indexed_documents: int
    total_chunks: int
    is_indexing: bool
    last_indexed: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class SearchHit:
    """Ranked passage with provenance."""

    content: str
    heading: Optional[str]
    document_path: str
    score: float
    document_id: str = ""
    chunk_id: str = ""
    chunk_index: int = 0

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class IntegrityReport:
    """Cross-table consistency counts; all zero on a healthy store."""

    chunks_without_lexical: int = 0
    lexical_without_chunk: int = 0
    chunks_without_registry: int = 0

    @property
    def ok(self) -> bool:
        return not (
            self.chunks_without_lexical
            or self.lexical_without_chunk
            or self.chunks_without_registry
        )
