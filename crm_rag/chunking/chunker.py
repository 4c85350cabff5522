"""
Overlapping Character Chunker
-------------------------------
Splits extracted document text into fixed-size character windows that
overlap, so a sentence cut at one boundary still appears whole in the next
chunk and similarity search keeps its context.

Window logic:
  - Each window spans `chunk_size` characters from the current start.
  - A window that stops short of the end of the text is snapped back to the
    last '.' or newline inside it, provided that boundary sits at least
    `boundary_ratio * chunk_size` into the window.  Earlier boundaries are
    ignored so snapping never produces a stub.
  - The next window starts `overlap` characters before the unsnapped end.
  - The walk stops once a window reaches the end of the text.
  - Chunks shorter than `min_chunk_chars` (after stripping) are dropped.
"""
from __future__ import annotations

from typing import Iterator

from loguru import logger

# ── Constants ─────────────────────────────────────────────────────────────────

CHUNK_SIZE = 1000
OVERLAP = 200
MIN_CHUNK_CHARS = 50
BOUNDARY_RATIO = 0.7


def split_text(
    text: str,
    chunk_size: int = CHUNK_SIZE,
    overlap: int = OVERLAP,
    min_chunk_chars: int = MIN_CHUNK_CHARS,
    boundary_ratio: float = BOUNDARY_RATIO,
) -> Iterator[str]:
    """
    Yield overlapping, sentence-snapped chunks of `text`.

    Raises:
        ValueError: if chunk_size is not positive or overlap is not in
            [0, chunk_size).
    """
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")
    if not 0 <= overlap < chunk_size:
        raise ValueError(f"overlap must be in [0, {chunk_size}), got {overlap}")

    length = len(text)
    min_break = int(chunk_size * boundary_ratio)
    start = 0

    while start < length:
        end = min(start + chunk_size, length)
        window = text[start:end]
        emitted_end = end

        if end < length:
            break_point = max(window.rfind("."), window.rfind("\n"))
            if break_point >= min_break:
                window = window[: break_point + 1]
                emitted_end = start + break_point + 1

        chunk = window.strip()
        if len(chunk) >= min_chunk_chars:
            yield chunk

        if end >= length:
            break
        # overlap counts back from the emitted end, not the unsnapped window end
        start = max(emitted_end - overlap, start + 1)


class TextChunker:
    """
    Holds chunking parameters and applies split_text().

    Usage:
        chunker = TextChunker(chunk_size=1000, overlap=200)
        chunks = chunker.split(document_text)
    """

    def __init__(
        self,
        chunk_size: int = CHUNK_SIZE,
        overlap: int = OVERLAP,
        min_chunk_chars: int = MIN_CHUNK_CHARS,
        boundary_ratio: float = BOUNDARY_RATIO,
    ) -> None:
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")
        if not 0 <= overlap < chunk_size:
            raise ValueError(f"overlap must be in [0, {chunk_size}), got {overlap}")
        self.chunk_size = chunk_size
        self.overlap = overlap
        self.min_chunk_chars = min_chunk_chars
        self.boundary_ratio = boundary_ratio

    @classmethod
    def from_config(cls, cfg) -> "TextChunker":
        """Build from a ChunkingConfig section."""
        return cls(
            chunk_size=cfg.chunk_size,
            overlap=cfg.overlap,
            min_chunk_chars=cfg.min_chunk_chars,
            boundary_ratio=cfg.boundary_ratio,
        )

    def iter_chunks(self, text: str) -> Iterator[str]:
        return split_text(
            text,
            chunk_size=self.chunk_size,
            overlap=self.overlap,
            min_chunk_chars=self.min_chunk_chars,
            boundary_ratio=self.boundary_ratio,
        )

    def split(self, text: str) -> list[str]:
        chunks = list(self.iter_chunks(text))
        logger.debug(
            f"[Chunker] {len(text)} chars | size={self.chunk_size} "
            f"overlap={self.overlap} -> {len(chunks)} chunk(s)"
        )
        return chunks
