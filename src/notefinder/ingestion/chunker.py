"""Markdown-aware chunking of note text into overlapping passages.

Sections are separated by blank lines. Sections accumulate into a buffer until
the next one would push it past ``max_tokens``; the buffer is then flushed
and its trailing ``overlap_tokens`` worth of characters seed the next buffer.
A heading line starts a new passage once the buffer holds enough text, so a
chunk's heading is the nearest heading at or before where the chunk begins.
Oversized sections are fed through the same accumulator sentence by sentence.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from notefinder.models import Chunk
from notefinder.utils.files import make_chunk_id
from notefinder.utils.text import (
    CHARS_PER_TOKEN,
    Heading,
    Span,
    estimate_tokens,
    extract_headings,
    heading_at,
    split_fixed,
    split_leading_heading,
    split_sections,
    split_sentences,
)

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class ChunkerConfig:
    max_tokens: int = 500
    min_tokens: int = 50
    overlap_tokens: int = 50

    @property
    def max_chars(self) -> int:
        return self.max_tokens * CHARS_PER_TOKEN

    @property
    def overlap_chars(self) -> int:
        return self.overlap_tokens * CHARS_PER_TOKEN


class _Accumulator:
    def __init__(
        self,
        document_id: str,
        document_path: str,
        headings: Sequence[Heading],
        config: ChunkerConfig,
    ) -> None:
        self.document_id = document_id
        self.document_path = document_path
        self.headings = headings
        self.config = config
        self.chunks: List[Chunk] = []
        self.buffer = ""
        self.start = 0
        self.seed_len = 0
        self.last_end = 0

    @property
    def has_fresh(self) -> bool:
        # Text beyond the overlap carried in from the previous chunk.
        return len(self.buffer) > self.seed_len

    def add(self, piece: Span, separator: str) -> None:
        if self.buffer and (
            estimate_tokens(self.buffer) + estimate_tokens(piece.text) > self.config.max_tokens
        ):
            self._overflow()
        if self.buffer:
            self.buffer += separator + piece.text
        else:
            self.buffer = piece.text
            self.start = piece.offset
        self.last_end = piece.end

    def heading_boundary(self, heading_line: Span) -> None:
        if not self.has_fresh:
            self._reset()
        elif estimate_tokens(self.buffer) >= self.config.min_tokens:
            self._emit()
            self._reset()
        else:
            self.add(heading_line, "\n\n")

    def finish(self) -> List[Chunk]:
        if self.has_fresh:
            self._emit()
        self._reset()
        return self.chunks

    def _overflow(self) -> None:
        if not self.has_fresh:
            self._reset()
            return
        self._emit()
        overlap = self.config.overlap_chars
        tail = self.buffer[-overlap:] if overlap > 0 else ""
        if not tail.strip():
            self._reset()
            return
        self.start = max(self.start, self.last_end - len(tail))
        self.buffer = tail
        self.seed_len = len(tail)

    def _emit(self) -> None:
        content = self.buffer.strip()
        if not content or estimate_tokens(self.buffer) < self.config.min_tokens:
            LOGGER.debug(
                "Dropping %d-char passage below min_tokens in %s",
                len(content),
                self.document_path,
            )
            return
        index = len(self.chunks)
        self.chunks.append(
            Chunk(
                chunk_id=make_chunk_id(self.document_id, index, content),
                document_id=self.document_id,
                document_path=self.document_path,
                chunk_index=index,
                content=content,
                heading=heading_at(self.headings, self.start),
                token_estimate=estimate_tokens(content),
            )
        )

    def _reset(self) -> None:
        self.buffer = ""
        self.seed_len = 0


def chunk_document(
    text: str,
    document_id: str,
    document_path: str,
    *,
    config: Optional[ChunkerConfig] = None,
) -> List[Chunk]:
    """Split ``text`` into an ordered, reproducible list of chunks."""
    config = config or ChunkerConfig()
    headings = extract_headings(text)
    acc = _Accumulator(document_id, document_path, headings, config)

    for section in split_sections(text):
        heading_line, body = split_leading_heading(section)
        while heading_line is not None:
            acc.heading_boundary(heading_line)
            if body is None:
                break
            heading_line, body = split_leading_heading(body)
        if body is None:
            continue

        if estimate_tokens(body.text) > config.max_tokens:
            for sentence in split_sentences(body):
                for piece in split_fixed(sentence, config.max_chars):
                    acc.add(piece, " ")
        else:
            acc.add(body, "\n\n")

    return acc.finish()
