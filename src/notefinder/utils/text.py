"""Text helpers for markdown-aware chunking."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Iterator, List, Optional, Sequence

HEADING_RE = re.compile(r"^(#{1,6})\s+(.+)$")
SECTION_BREAK_RE = re.compile(r"\n\s*\n")
SENTENCE_BREAK_RE = re.compile(r"(?<=[.!?])\s+")

CHARS_PER_TOKEN = 4


@dataclass(slots=True, frozen=True)
class Heading:
    level: int
    text: str
    offset: int


@dataclass(slots=True, frozen=True)
class Span:
    """Slice of a larger text together with the offset where it starts."""

    text: str
    offset: int

    @property
    def end(self) -> int:
        return self.offset + len(self.text)


def estimate_tokens(text: str) -> int:
    """Approximate token count at roughly four characters per token."""
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def extract_headings(text: str) -> List[Heading]:
    """Return every markdown heading with the offset of the line it starts."""
    headings: List[Heading] = []
    offset = 0
    for line in text.split("\n"):
        match = HEADING_RE.match(line)
        if match:
            headings.append(Heading(len(match.group(1)), match.group(2).strip(), offset))
        offset += len(line) + 1
    return headings


def heading_at(headings: Sequence[Heading], offset: int) -> Optional[str]:
    """Text of the nearest heading starting at or before ``offset``."""
    current: Optional[str] = None
    for heading in headings:
        if heading.offset > offset:
            break
        current = heading.text
    return current


def _split_spans(text: str, pattern: re.Pattern[str], base: int) -> Iterator[Span]:
    start = 0
    for match in pattern.finditer(text):
        yield Span(text[start : match.start()], base + start)
        start = match.end()
    yield Span(text[start:], base + start)


def split_sections(text: str) -> List[Span]:
    """Split text on runs of blank lines, dropping whitespace-only sections."""
    return [span for span in _split_spans(text, SECTION_BREAK_RE, 0) if span.text.strip()]


def split_sentences(span: Span) -> List[Span]:
    """Split a span after ``.``, ``!`` or ``?`` followed by whitespace."""
    return [s for s in _split_spans(span.text, SENTENCE_BREAK_RE, span.offset) if s.text]


def split_fixed(span: Span, max_chars: int) -> List[Span]:
    """Cut a span into consecutive windows of at most ``max_chars`` characters."""
    if max_chars <= 0 or len(span.text) <= max_chars:
        return [span]
    return [
        Span(span.text[start : start + max_chars], span.offset + start)
        for start in range(0, len(span.text), max_chars)
    ]


def split_leading_heading(span: Span) -> tuple[Optional[Span], Optional[Span]]:
    """Separate a leading heading line from the rest of a section.

    Returns ``(heading_line, body)``; ``heading_line`` is ``None`` when the
    section does not open with a heading and ``body`` is ``None`` when nothing
    but whitespace follows it.
    """
    first, newline, rest = span.text.partition("\n")
    if not HEADING_RE.match(first):
        return None, span
    heading_line = Span(first, span.offset)
    if not rest.strip():
        return heading_line, None
    return heading_line, Span(rest, span.offset + len(first) + len(newline))


def normalize_query_terms(query: str) -> List[str]:
    """Whitespace tokens of a query with single and double quotes removed."""
    return [term for term in query.replace("'", "").replace('"', "").split() if term]
