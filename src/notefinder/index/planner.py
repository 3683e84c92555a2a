"""Differential planning between the upstream corpus and the indexed state."""

from __future__ import annotations

import logging
from typing import Iterable, Mapping

from notefinder.index.storage import SQLiteChunkStore
from notefinder.models import DocumentRef, IndexedDocument, IndexPlan
from notefinder.sources import DocumentRegistry

LOGGER = logging.getLogger(__name__)


def compute_plan(
    upstream: Iterable[DocumentRef],
    indexed: Mapping[str, IndexedDocument],
    *,
    force: bool = False,
) -> IndexPlan:
    """Compare upstream content hashes against registry rows.

    Registry rows whose document vanished upstream are deleted; documents with
    no row, a different hash, or ``force`` set are (re)indexed; the rest are
    skipped. Lists are ordered by ``document_id``.
    """
    plan = IndexPlan()
    seen = set()
    for document in sorted(upstream, key=lambda doc: doc.document_id):
        seen.add(document.document_id)
        existing = indexed.get(document.document_id)
        if force or existing is None or existing.content_hash != document.content_hash:
            plan.to_index.append(document)
        else:
            plan.to_skip.append(document)

    plan.to_delete = [
        indexed[document_id] for document_id in sorted(indexed) if document_id not in seen
    ]
    return plan


class DifferentialPlanner:
    """Produce per-user index plans from the document registry and the store."""

    def __init__(self, registry: DocumentRegistry, store: SQLiteChunkStore) -> None:
        self.registry = registry
        self.store = store

    def plan(self, user_id: str, force: bool = False) -> IndexPlan:
        upstream = list(self.registry.list_documents(user_id))
        plan = compute_plan(upstream, self.store.indexed_documents(user_id), force=force)
        LOGGER.debug(
            "Plan for %s: %d to index, %d to delete, %d to skip",
            user_id,
            len(plan.to_index),
            len(plan.to_delete),
            len(plan.to_skip),
        )
        return plan
