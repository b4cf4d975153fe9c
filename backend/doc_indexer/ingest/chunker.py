"""Chunking utilities.

Text is split recursively: paragraph breaks first, then line breaks, sentence
ends, spaces and finally single characters. Pieces are merged back greedily
up to ``chunk_size`` characters, and each new chunk starts with up to
``chunk_overlap`` trailing characters of the previous one.
"""

from __future__ import annotations

import re
from typing import Iterable, Sequence

from doc_indexer.core.errors import NoValidChunksError
from doc_indexer.core.logging import get_logger
from doc_indexer.ingest.types import Chunk, ChunkCandidate, RawSegment
from doc_indexer.utils.ids import new_id

logger = get_logger(__name__)

DEFAULT_SEPARATORS: tuple[str, ...] = ("\n\n", "\n", ". ", " ", "")


def chunk_text(
    text: str,
    chunk_size: int = 1000,
    chunk_overlap: int = 200,
    separators: Sequence[str] = DEFAULT_SEPARATORS,
) -> list[str]:
    """Split text into overlapping pieces no longer than ``chunk_size``."""
    if chunk_overlap >= chunk_size:
        raise ValueError("chunk_overlap must be smaller than chunk_size")
    if not text.strip():
        return []
    return _split_recursive(text, list(separators), chunk_size, chunk_overlap)


def _split_recursive(text: str, separators: list[str], chunk_size: int, chunk_overlap: int) -> list[str]:
    separator = separators[-1]
    remaining: list[str] = []
    for index, candidate in enumerate(separators):
        if candidate == "":
            separator = candidate
            break
        if candidate in text:
            separator = candidate
            remaining = separators[index + 1 :]
            break

    chunks: list[str] = []
    pending: list[str] = []
    for piece in _split_keeping_separator(text, separator):
        if len(piece) < chunk_size:
            pending.append(piece)
            continue
        if pending:
            chunks.extend(_merge(pending, chunk_size, chunk_overlap))
            pending = []
        if remaining:
            chunks.extend(_split_recursive(piece, remaining, chunk_size, chunk_overlap))
        else:
            chunks.append(piece)
    if pending:
        chunks.extend(_merge(pending, chunk_size, chunk_overlap))
    return chunks


def _split_keeping_separator(text: str, separator: str) -> list[str]:
    """Split on *separator*, leaving it attached to the end of each piece."""
    if separator == "":
        return list(text)
    parts = re.split(f"({re.escape(separator)})", text)
    pieces = [parts[i] + parts[i + 1] for i in range(0, len(parts) - 1, 2)]
    if len(parts) % 2 == 1:
        pieces.append(parts[-1])
    return [piece for piece in pieces if piece]


def _merge(pieces: Iterable[str], chunk_size: int, chunk_overlap: int) -> list[str]:
    merged: list[str] = []
    window: list[str] = []
    total = 0
    for piece in pieces:
        length = len(piece)
        if window and total + length > chunk_size:
            _append_joined(merged, window)
            # Keep a tail of at most chunk_overlap characters that still leaves room for piece.
            while window and (total > chunk_overlap or total + length > chunk_size):
                total -= len(window[0])
                window.pop(0)
        window.append(piece)
        total += length
    _append_joined(merged, window)
    return merged


def _append_joined(merged: list[str], window: Sequence[str]) -> None:
    joined = "".join(window).strip()
    if joined:
        merged.append(joined)


def chunk_segments(
    segments: Iterable[RawSegment],
    chunk_size: int = 1000,
    chunk_overlap: int = 200,
) -> list[ChunkCandidate]:
    """Chunk every segment, copying its metadata onto each piece."""
    candidates: list[ChunkCandidate] = []
    for segment in segments:
        for piece in chunk_text(segment.text, chunk_size=chunk_size, chunk_overlap=chunk_overlap):
            candidates.append(ChunkCandidate(text=piece, metadata=dict(segment.metadata)))
    return candidates


def filter_chunks(candidates: Sequence[ChunkCandidate], min_chars: int = 10) -> tuple[list[ChunkCandidate], int]:
    """Drop chunks shorter than ``min_chars`` once trimmed.

    Returns the survivors (trimmed) and how many were dropped. Raises
    :class:`NoValidChunksError` when nothing survives.
    """
    kept = [
        ChunkCandidate(text=candidate.text.strip(), metadata=candidate.metadata)
        for candidate in candidates
        if len(candidate.text.strip()) >= min_chars
    ]
    dropped = len(candidates) - len(kept)
    if dropped:
        logger.info("Dropped %s chunks shorter than %s characters", dropped, min_chars)
    if not kept:
        raise NoValidChunksError(
            "No valid chunks left after filtering empty or short content",
            produced=len(candidates),
            dropped=dropped,
        )
    return kept, dropped


def build_chunks(
    document_id: str,
    candidates: Iterable[ChunkCandidate],
    file_name: str,
    uploaded_at: str,
) -> list[Chunk]:
    """Assign ids and contiguous 0-based indices to filtered candidates."""
    return [
        Chunk(
            id=new_id(),
            document_id=document_id,
            chunk_index=index,
            text=candidate.text,
            file_name=file_name,
            uploaded_at=uploaded_at,
            page=candidate.metadata.get("page"),
        )
        for index, candidate in enumerate(candidates)
    ]


__all__ = ["chunk_text", "chunk_segments", "filter_chunks", "build_chunks", "DEFAULT_SEPARATORS"]
