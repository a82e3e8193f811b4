"""
Document chunking with positional metadata.

Splits extracted document text into overlapping, size-bounded passages:
    - Whitespace is normalized before splitting
    - Windows of chunk_size characters advance by chunk_size - overlap
    - Each chunk records its index and an estimated page number

The page number is a proportional estimate (chunk position relative to the
total number of chunks, scaled to the page count). It is approximate and
drifts for documents with uneven text density per page.
"""

import re
from dataclasses import dataclass
from typing import Optional

from docrag.models import Passage, Position

WHITESPACE_RE = re.compile(r"\s+")


@dataclass
class Chunk:
    """A slice of normalized document text."""

    content: str
    """The text content of the chunk."""

    chunk_index: int
    """0-based position of the chunk in the document."""

    page: int = 1
    """Estimated 1-based page number."""

    start: int = 0
    """Offset of the chunk in the normalized text."""


def normalize_whitespace(text: str) -> str:
    """Collapse runs of whitespace to single spaces and trim the ends."""
    return WHITESPACE_RE.sub(" ", text or "").strip()


def estimate_page(chunk_index: int, total_chunks: int, page_count: int) -> int:
    """
    Map a chunk index proportionally onto a page number.

    Args:
        chunk_index: 0-based index of the chunk
        total_chunks: Number of chunks in the document
        page_count: Number of pages in the document

    Returns:
        Page number clamped to [1, page_count]
    """
    if total_chunks <= 0 or page_count <= 1:
        return 1
    page = (chunk_index * page_count) // total_chunks + 1
    return max(1, min(page, page_count))


def chunk_text(
    text: str,
    chunk_size: int,
    overlap: int,
    page_count: int = 1,
) -> list[Chunk]:
    """
    Split text into overlapping character windows.

    Args:
        text: Raw extracted text
        chunk_size: Maximum characters per chunk
        overlap: Characters shared by consecutive chunks
        page_count: Number of pages in the source document

    Returns:
        Ordered list of chunks; empty when the text has no content

    Raises:
        ValueError: If overlap is not in (0, chunk_size) or page_count < 1
    """
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")
    if overlap <= 0:
        raise ValueError(f"overlap must be positive, got {overlap}")
    if overlap >= chunk_size:
        raise ValueError(
            f"overlap ({overlap}) must be less than chunk_size ({chunk_size})"
        )
    if page_count < 1:
        raise ValueError(f"page_count must be at least 1, got {page_count}")

    clean = normalize_whitespace(text)
    if not clean:
        return []

    step = chunk_size - overlap
    windows: list[tuple[int, int]] = []
    start = 0
    while True:
        end = min(start + chunk_size, len(clean))
        windows.append((start, end))
        if end == len(clean):
            break
        start += step

    total = len(windows)
    return [
        Chunk(
            content=clean[start:end],
            chunk_index=i,
            page=estimate_page(i, total, page_count),
            start=start,
        )
        for i, (start, end) in enumerate(windows)
    ]


def passage_id(document_id: str, chunk_index: int) -> str:
    """Deterministic passage identifier; sorts by document then chunk order."""
    return f"{document_id}:{chunk_index:06d}"


def build_passages(
    document_id: str,
    scope_id: str,
    text: str,
    chunk_size: int,
    overlap: int,
    page_count: int = 1,
    metadata: Optional[dict[str, str]] = None,
) -> list[Passage]:
    """
    Chunk a document and wrap the chunks as immutable passages.

    Args:
        document_id: Source document identifier
        scope_id: Scope ingesting the document
        text: Raw extracted text
        chunk_size: Maximum characters per passage
        overlap: Characters shared by consecutive passages
        page_count: Number of pages in the source document
        metadata: Metadata copied onto every passage (title, source_type, ...)

    Returns:
        Passages in chunk order
    """
    base = dict(metadata or {})
    return [
        Passage(
            id=passage_id(document_id, chunk.chunk_index),
            scope_id=scope_id,
            document_id=document_id,
            content=chunk.content,
            position=Position(page_or_section=chunk.page, chunk_index=chunk.chunk_index),
            metadata=dict(base),
        )
        for chunk in chunk_text(text, chunk_size, overlap, page_count)
    ]
