"""Collaborator interfaces for upstream documents and their canonical bytes."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Protocol

from notefinder.models import DocumentRef
from notefinder.utils.files import NOTE_SUFFIXES, compute_sha256, iter_note_paths

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class BlobContent:
    content: bytes


class DocumentRegistry(Protocol):
    """Read-only view over a user's non-deleted documents."""

    def list_documents(self, user_id: str) -> Iterable[DocumentRef]: ...


class BlobStore(Protocol):
    """Canonical bytes of a document, or ``None`` when it does not exist."""

    def get(self, user_id: str, document_id: str) -> Optional[BlobContent]: ...


class VaultDirectory:
    """Filesystem-backed document registry and blob store.

    Layout: ``<root>/<user_id>/<any/relative/path>.md``. The relative posix
    path is the document id; hidden paths (including ``.trash``) count as
    deleted.
    """

    def __init__(self, root: Path, *, suffixes: Iterable[str] = NOTE_SUFFIXES) -> None:
        self.root = Path(root)
        self.suffixes = tuple(suffixes)

    def user_dir(self, user_id: str) -> Path:
        user_dir = (self.root / user_id).resolve()
        if user_dir.parent != self.root.resolve():
            raise ValueError(f"Invalid user id: {user_id!r}")
        return user_dir

    def list_documents(self, user_id: str) -> List[DocumentRef]:
        user_dir = self.user_dir(user_id)
        documents = []
        for path in iter_note_paths(user_dir, self.suffixes):
            relative = path.relative_to(user_dir)
            documents.append(
                DocumentRef(
                    document_id=relative.as_posix(),
                    user_id=user_id,
                    path="/" + relative.with_suffix("").as_posix(),
                    content_hash=compute_sha256(path),
                )
            )
        return documents

    def get(self, user_id: str, document_id: str) -> Optional[BlobContent]:
        user_dir = self.user_dir(user_id)
        path = (user_dir / document_id).resolve()
        if user_dir not in path.parents:
            LOGGER.warning("Rejected document id outside the vault: %s", document_id)
            return None
        if not path.is_file():
            return None
        return BlobContent(content=path.read_bytes())
