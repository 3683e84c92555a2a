"""Hybrid search: cosine similarity and BM25 fused with Reciprocal Rank Fusion."""

from __future__ import annotations

import logging
import math
import sqlite3
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from notefinder.embedding.client import EmbeddingClient
from notefinder.errors import InvalidK
from notefinder.index.storage import SQLiteChunkStore
from notefinder.index.vectors import blob_to_vector, cosine_scores
from notefinder.models import SearchHit, StoredChunk
from notefinder.utils.log import RequestLogger, request_logger
from notefinder.utils.text import normalize_query_terms

LOGGER = logging.getLogger(__name__)

RRF_K = 60
# Each ranker contributes this many candidates per requested result.
CANDIDATE_FACTOR = 3


@dataclass(slots=True)
class FusedCandidate:
    chunk_id: str
    rrf_score: float
    dense_rank: Optional[int] = None
    lexical_rank: Optional[int] = None


def build_match_expression(query: str) -> str:
    """FTS5 expression OR-ing each quoted query term; empty when no terms remain."""
    return " OR ".join(f'"{term}"' for term in normalize_query_terms(query))


def reciprocal_rank_fusion(
    dense_ids: Sequence[str],
    lexical_ids: Sequence[str],
    *,
    rrf_k: int = RRF_K,
) -> List[FusedCandidate]:
    """Fuse two rankings with ``sum(1 / (rrf_k + rank))`` over 1-based ranks.

    Ties go to the better dense rank, then to the smaller chunk id.
    """
    fused: Dict[str, FusedCandidate] = {}
    for rank, chunk_id in enumerate(dense_ids, start=1):
        fused[chunk_id] = FusedCandidate(chunk_id, 1.0 / (rrf_k + rank), dense_rank=rank)
    for rank, chunk_id in enumerate(lexical_ids, start=1):
        score = 1.0 / (rrf_k + rank)
        candidate = fused.get(chunk_id)
        if candidate is None:
            fused[chunk_id] = FusedCandidate(chunk_id, score, lexical_rank=rank)
        else:
            candidate.rrf_score += score
            candidate.lexical_rank = rank

    return sorted(
        fused.values(),
        key=lambda c: (
            -c.rrf_score,
            c.dense_rank if c.dense_rank is not None else math.inf,
            c.chunk_id,
        ),
    )


class HybridSearcher:
    """High-level API to query a user's chunks."""

    def __init__(
        self,
        embedder: EmbeddingClient,
        store: SQLiteChunkStore,
        *,
        rrf_k: int = RRF_K,
    ) -> None:
        self.embedder = embedder
        self.store = store
        self.rrf_k = rrf_k

    def search(
        self,
        user_id: str,
        query: str,
        k: int = 5,
        min_score: float = 0.3,
    ) -> List[SearchHit]:
        if k < 1:
            raise InvalidK(f"k must be at least 1, got {k}")
        query = query.strip()
        if not query:
            return []
        if self.store.count_chunks(user_id) == 0:
            return []

        log = request_logger(LOGGER, user_id)
        query_vector = self.embedder.embed_query(user_id, query)
        limit = k * CANDIDATE_FACTOR

        with self.store.snapshot():
            chunks = self.store.user_chunks(user_id)
            dense = self._dense_ranking(query_vector, chunks, limit)
            lexical = self._lexical_ranking(user_id, query, limit, log)

        cosines = {chunk.chunk_id: score for chunk, score in dense}
        lookup = {chunk.chunk_id: chunk for chunk, _ in dense}
        lookup.update((chunk.chunk_id, chunk) for chunk in lexical)

        fused = reciprocal_rank_fusion(
            [chunk.chunk_id for chunk, _ in dense],
            [chunk.chunk_id for chunk in lexical],
            rrf_k=self.rrf_k,
        )[:k]
        max_rrf = max((candidate.rrf_score for candidate in fused), default=0.0)

        hits: List[SearchHit] = []
        for candidate in fused:
            normalized = candidate.rrf_score / max_rrf if max_rrf > 0 else 0.0
            if candidate.dense_rank is not None:
                score = (normalized + cosines[candidate.chunk_id]) / 2
            else:
                score = normalized
            if score < min_score:
                continue
            chunk = lookup[candidate.chunk_id]
            hits.append(
                SearchHit(
                    content=chunk.content,
                    heading=chunk.heading,
                    document_path=chunk.document_path,
                    score=score,
                    document_id=chunk.document_id,
                    chunk_id=chunk.chunk_id,
                    chunk_index=chunk.chunk_index,
                )
            )
        hits.sort(key=lambda hit: -hit.score)

        log.debug(
            "Search complete: query=%r dense=%d lexical=%d returned=%d",
            query[:80],
            len(dense),
            len(lexical),
            len(hits),
        )
        return hits

    @staticmethod
    def _dense_ranking(
        query_vector, chunks: Sequence[StoredChunk], limit: int
    ) -> List[tuple[StoredChunk, float]]:
        if not chunks:
            return []
        scores = cosine_scores(query_vector, [blob_to_vector(chunk.embedding) for chunk in chunks])
        order = sorted(range(len(chunks)), key=lambda i: (-scores[i], chunks[i].chunk_id))
        return [(chunks[i], float(scores[i])) for i in order[:limit]]

    def _lexical_ranking(
        self, user_id: str, query: str, limit: int, log: RequestLogger
    ) -> List[StoredChunk]:
        expression = build_match_expression(query)
        if not expression:
            return []
        try:
            matches = self.store.lexical_query(user_id, expression, limit)
        except sqlite3.Error as exc:
            log.warning("Lexical search failed, using dense ranking only: %s", exc)
            return []

        rows = self.store.chunks_by_rowid(user_id, [rowid for rowid, _ in matches])
        ranked: List[StoredChunk] = []
        for rowid, _rank in matches:
            chunk = rows.get(rowid)
            if chunk is None:
                log.warning("Lexical entry %d has no chunk row, skipping", rowid)
                continue
            ranked.append(chunk)
        return ranked
