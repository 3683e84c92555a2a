"""Incremental index builder."""

from __future__ import annotations

import logging
import threading
from typing import Optional

from notefinder.embedding.client import EmbeddingClient
from notefinder.errors import EmbeddingError
from notefinder.index.planner import DifferentialPlanner
from notefinder.index.singleflight import INDEXING_USERS, SingleFlight
from notefinder.index.storage import SQLiteChunkStore
from notefinder.ingestion.chunker import ChunkerConfig, chunk_document
from notefinder.models import BuildReport, DocumentRef
from notefinder.sources import BlobStore, DocumentRegistry
from notefinder.utils.log import RequestLogger, request_logger

LOGGER = logging.getLogger(__name__)


class IndexBuilder:
    """Brings a user's index in line with their upstream documents.

    Each document is fetched, chunked and embedded outside any transaction,
    then committed together with its registry row in a single transaction, so
    a failure anywhere leaves the previous state of that document intact and
    the next build retries it.
    """

    def __init__(
        self,
        store: SQLiteChunkStore,
        registry: DocumentRegistry,
        blob_store: BlobStore,
        embedder: EmbeddingClient,
        *,
        chunker_config: Optional[ChunkerConfig] = None,
        guard: SingleFlight = INDEXING_USERS,
    ) -> None:
        self.store = store
        self.blob_store = blob_store
        self.embedder = embedder
        self.chunker_config = chunker_config or ChunkerConfig()
        self.guard = guard
        self.planner = DifferentialPlanner(registry, store)

    def is_running(self, user_id: str) -> bool:
        return self.guard.is_running(user_id)

    def build(
        self,
        user_id: str,
        force: bool = False,
        *,
        cancel_event: Optional[threading.Event] = None,
    ) -> BuildReport:
        log = request_logger(LOGGER, user_id)
        with self.guard.claim(user_id) as acquired:
            if not acquired:
                log.warning("Indexing already in progress, skipping")
                return BuildReport(already_running=True)
            log.info("Starting document indexing (force=%s)", force)
            report = self._run(user_id, force, cancel_event, log)

        report.total_chunks = self.store.count_chunks(user_id)
        log.info(
            "Indexing complete: indexed=%d deleted=%d skipped=%d errors=%d chunks=%d%s",
            report.indexed,
            report.deleted,
            report.skipped,
            report.errors,
            report.total_chunks,
            " (cancelled)" if report.cancelled else "",
        )
        return report

    def _run(
        self,
        user_id: str,
        force: bool,
        cancel_event: Optional[threading.Event],
        log: RequestLogger,
    ) -> BuildReport:
        report = BuildReport()
        plan = self.planner.plan(user_id, force=force)
        report.skipped = len(plan.to_skip)

        for indexed in plan.to_delete:
            if cancel_event is not None and cancel_event.is_set():
                report.cancelled = True
                return report
            log.debug("Removing deleted document %s from index", indexed.document_id)
            self.store.delete_document(user_id, indexed.document_id)
            report.deleted += 1

        if plan.to_index:
            log.info("Documents to index: %d", len(plan.to_index))

        for document in plan.to_index:
            if cancel_event is not None and cancel_event.is_set():
                report.cancelled = True
                return report
            if self._index_document(user_id, document, log):
                report.indexed += 1
            else:
                report.errors += 1

        return report

    def _index_document(self, user_id: str, document: DocumentRef, log: RequestLogger) -> bool:
        try:
            blob = self.blob_store.get(user_id, document.document_id)
        except Exception as exc:
            log.error("Failed to download %s: %s", document.document_id, exc)
            return False
        if blob is None or not blob.content:
            log.warning("No content for %s, skipping", document.document_id)
            return False

        text = blob.content.decode("utf-8", errors="replace")
        chunks = chunk_document(
            text, document.document_id, document.path, config=self.chunker_config
        )

        embeddings = None
        if chunks:
            try:
                embeddings = self.embedder.embed(user_id, [chunk.content for chunk in chunks])
            except EmbeddingError as exc:
                log.error("Failed to embed %s: %s", document.document_id, exc)
                return False

        self.store.replace_document(
            user_id, document, chunks, embeddings, total_chars=len(text)
        )
        log.debug("Indexed %s (%d chunks)", document.document_id, len(chunks))
        return True
