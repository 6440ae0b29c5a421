"""Split long documents into overlapping, model-sized windows."""
from __future__ import annotations

import logging

from doc_study.models import Chunk

_log = logging.getLogger("doc_study.chunking")

# Maximum characters per chunk before splitting
CHUNK_SIZE = 6000

# Characters shared between adjacent chunks
CHUNK_OVERLAP = 500

SENTENCE_TERMINATORS = ".!?"


def _find_split_point(text: str, start: int, end: int, overlap: int) -> int:
    """Pick the cut position for the window ``text[start:end]``.

    Prefers the last paragraph break, then the last sentence terminator
    followed by whitespace, and falls back to a hard cut at *end*.  A
    candidate must leave more than *overlap* characters in the chunk so the
    next window still starts past *start*.
    """
    floor = start + overlap

    # 1. Paragraph boundary, cut after the blank line
    idx = text.rfind("\n\n", start, end)
    if idx >= 0 and idx + 2 > floor:
        return idx + 2

    # 2. Sentence boundary, cut after the punctuation
    for i in range(end, floor, -1):
        if text[i - 1] in SENTENCE_TERMINATORS:
            if i >= len(text) or text[i].isspace():
                return i

    # 3. Hard cut
    return end


def split_into_chunks(
    text: str,
    chunk_size: int = CHUNK_SIZE,
    overlap: int = CHUNK_OVERLAP,
) -> list[Chunk]:
    """Split *text* into overlapping :class:`Chunk` windows.

    Offsets are in characters (code points), so a window can never end in
    the middle of a multi-byte character.
    """
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive (got {chunk_size})")
    if overlap < 0 or overlap >= chunk_size:
        raise ValueError(f"overlap must be in [0, chunk_size) (got {overlap})")

    if not text:
        return []
    if len(text) <= chunk_size:
        return [Chunk(0, text)]

    chunks: list[Chunk] = []
    start = 0
    while start < len(text):
        if start + chunk_size >= len(text):
            chunks.append(Chunk(start, text[start:]))
            break

        end = start + chunk_size
        split_at = _find_split_point(text, start, end, overlap)
        chunks.append(Chunk(start, text[start:split_at]))

        next_start = max(0, split_at - overlap)
        if next_start <= start:
            # Never re-emit the same window
            next_start = split_at
        start = next_start

    _log.debug("Split %d chars into %d chunks (size=%d, overlap=%d)",
               len(text), len(chunks), chunk_size, overlap)
    return chunks


def split_text(
    text: str,
    chunk_size: int = CHUNK_SIZE,
    overlap: int = CHUNK_OVERLAP,
) -> list[str]:
    """Split *text* into overlapping substrings of at most *chunk_size* chars."""
    return [c.text for c in split_into_chunks(text, chunk_size, overlap)]


def reconstruct(chunks: list[Chunk]) -> str:
    """Join chunks back into the source text, dropping the overlaps."""
    out: list[str] = []
    covered = 0
    for c in chunks:
        skip = covered - c.start_offset
        out.append(c.text[skip:])
        covered = c.end_offset
    return "".join(out)
