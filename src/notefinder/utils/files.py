"""Utility helpers for hashing and working with note files."""

from __future__ import annotations

import hashlib
from pathlib import Path
from typing import Iterable, Iterator

NOTE_SUFFIXES = (".md", ".markdown", ".txt")
CHUNK_ID_PREFIX_CHARS = 50


def iter_note_paths(root: Path, suffixes: Iterable[str] = NOTE_SUFFIXES) -> Iterator[Path]:
    """Yield note files under ``root`` in sorted order, skipping hidden and trashed paths."""
    wanted = {suffix.lower() for suffix in suffixes}
    if not root.is_dir():
        return
    for item in sorted(root.rglob("*")):
        relative = item.relative_to(root)
        if any(part.startswith(".") for part in relative.parts):
            continue
        if item.is_file() and item.suffix.lower() in wanted:
            yield item


def compute_sha256(path: Path) -> str:
    """Compute SHA256 hash for a file."""
    sha = hashlib.sha256()
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(1 << 20), b""):
            sha.update(chunk)
    return sha.hexdigest()


def hash_bytes(content: bytes) -> str:
    return hashlib.sha256(content).hexdigest()


def make_chunk_id(document_id: str, chunk_index: int, content: str) -> str:
    """Deterministic chunk id from the document, ordinal and content prefix."""
    key = f"{document_id}:{chunk_index}:{content[:CHUNK_ID_PREFIX_CHARS]}"
    digest = hashlib.sha256(key.encode("utf-8")).hexdigest()[:16]
    return f"chunk_{digest}"
