"""Chunking utilities."""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from typing import Iterator, Sequence

from voice_search.ingest.types import Embedder
from voice_search.models.entities import Chunk, Record

logger = logging.getLogger(__name__)

_PARAGRAPH_RE = re.compile(r"\n\s*\n", re.MULTILINE)
_SENTENCE_RE = re.compile(r"[^.!?\n]+[.!?]?", re.MULTILINE)
_WORD_RE = re.compile(r"\S+")


@dataclass(slots=True)
class Span:
    text: str
    start: int
    end: int

    @property
    def tokens(self) -> int:
        return count_tokens(self.text)


def split_text(
    text: str,
    target_tokens: int = 200,
    max_tokens: int = 256,
    min_tokens: int = 80,
    overlap_tokens: int = 20,
) -> list[str]:
    """Split ``text`` into passages that respect paragraph and sentence boundaries.

    Paragraphs are packed together up to ``max_tokens``; oversized paragraphs
    are broken at sentences, then by length. A passage shorter than
    ``min_tokens`` absorbs the next span even past the budget. Consecutive
    passages share up to ``overlap_tokens`` of trailing spans.
    """
    if not text.strip():
        return []
    budget = max(max_tokens, target_tokens)

    spans: list[Span] = []
    for paragraph in _paragraphs(text):
        spans.extend(_fit(paragraph, budget))

    passages: list[str] = []
    window: list[Span] = []
    for span in spans:
        size = sum(item.tokens for item in window)
        if window and size + span.tokens > budget and size >= min_tokens:
            passages.append(_join(text, window))
            window = _tail(window, overlap_tokens)
        window.append(span)
    if window:
        passages.append(_join(text, window))
    return passages


def count_tokens(text: str) -> int:
    return max(1, len(text.split()))


def _paragraphs(text: str) -> Iterator[Span]:
    cursor = 0
    for match in _PARAGRAPH_RE.finditer(text):
        span = _strip(text, cursor, match.start())
        if span is not None:
            yield span
        cursor = match.end()
    if cursor < len(text):
        span = _strip(text, cursor, len(text))
        if span is not None:
            yield span


def _strip(text: str, start: int, end: int) -> Span | None:
    while start < end and text[start].isspace():
        start += 1
    while end > start and text[end - 1].isspace():
        end -= 1
    if start >= end:
        return None
    return Span(text=text[start:end], start=start, end=end)


def _fit(span: Span, budget: int) -> list[Span]:
    if span.tokens <= budget:
        return [span]
    sentences = list(_sentences(span))
    if len(sentences) > 1:
        fitted: list[Span] = []
        for sentence in sentences:
            fitted.extend(_fit(sentence, budget))
        return fitted
    return _slice(span, budget)


def _sentences(span: Span) -> Iterator[Span]:
    for match in _SENTENCE_RE.finditer(span.text):
        stripped = _strip(span.text, *match.span())
        if stripped is not None:
            yield Span(
                text=stripped.text,
                start=span.start + stripped.start,
                end=span.start + stripped.end,
            )


def _slice(span: Span, budget: int) -> list[Span]:
    words = list(_WORD_RE.finditer(span.text))
    pieces = max(2, math.ceil(len(words) / budget))
    step = math.ceil(len(words) / pieces)
    sliced: list[Span] = []
    for offset in range(0, len(words), step):
        piece = words[offset : offset + step]
        local_start, local_end = piece[0].start(), piece[-1].end()
        sliced.append(
            Span(
                text=span.text[local_start:local_end],
                start=span.start + local_start,
                end=span.start + local_end,
            )
        )
    return sliced


def _join(text: str, window: Sequence[Span]) -> str:
    return text[window[0].start : window[-1].end]


def _tail(window: Sequence[Span], overlap_tokens: int) -> list[Span]:
    if overlap_tokens <= 0:
        return []
    kept: list[Span] = []
    used = 0
    for span in reversed(window):
        if used + span.tokens > overlap_tokens:
            break
        kept.insert(0, span)
        used += span.tokens
    return kept


class RecordChunker:
    """Turns a record into embedded chunks.

    Title, summary and context become one chunk each; the transcript text is
    split with :func:`split_text`. Empty fields produce no chunk.
    """

    def __init__(
        self,
        embedder: Embedder,
        target_tokens: int = 200,
        max_tokens: int = 256,
        min_tokens: int = 80,
        overlap_tokens: int = 20,
    ) -> None:
        self.embedder = embedder
        self.target_tokens = target_tokens
        self.max_tokens = max_tokens
        self.min_tokens = min_tokens
        self.overlap_tokens = overlap_tokens

    async def chunk_record(self, record: Record) -> list[Chunk]:
        chunks: list[Chunk] = []
        for field_name in ("title", "summary", "context"):
            value = (getattr(record, field_name, "") or "").strip()
            if value:
                chunks.append(await self._embed(record.id, field_name, 0, value))
        passages = split_text(
            record.text or "",
            target_tokens=self.target_tokens,
            max_tokens=self.max_tokens,
            min_tokens=self.min_tokens,
            overlap_tokens=self.overlap_tokens,
        )
        for index, passage in enumerate(passages):
            chunks.append(await self._embed(record.id, "text", index, passage))
        logger.debug("Chunked record %s into %d chunks", record.id, len(chunks))
        return chunks

    async def _embed(self, record_id: str, field_name: str, index: int, text: str) -> Chunk:
        embedding = await self.embedder.embed(text)
        return Chunk(
            record_id=record_id,
            field=field_name,
            chunk_index=index,
            chunk_text=text,
            embedding=embedding,
        )


__all__ = ["split_text", "count_tokens", "RecordChunker"]
