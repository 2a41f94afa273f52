"""
Fixed-Size Overlapping Chunker

Splits extracted document text into character windows of `chunk_size` with
`chunk_overlap` characters shared between consecutive windows, and tags each
chunk with its provenance (file, jurisdiction folder, estimated page).

Chunk ids are assigned sequentially across the whole corpus in extraction
order, so re-chunking the same corpus snapshot reproduces the same ids. The
embedding cache relies on this to rejoin persisted vectors with chunk text.
"""

import math
import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from .settings import ChunkConfig
from .source_extractor import ExtractedSource

logger = logging.getLogger(__name__)


class ChunkConfigError(ValueError):
    """Raised for chunk size/overlap combinations that cannot make progress."""


@dataclass(frozen=True)
class Chunk:
    """A provenance-tagged slice of document text."""
    id: str
    origin_file: str
    origin_path: str
    category_tag: str
    page_estimate: int
    text: str
    ordinal: int  # position within its file

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "origin_file": self.origin_file,
            "origin_path": self.origin_path,
            "category_tag": self.category_tag,
            "page_estimate": self.page_estimate,
            "text": self.text,
            "ordinal": self.ordinal,
        }


def validate_chunk_params(size: int, overlap: int) -> None:
    """Reject parameters that would stall or skip text."""
    if size <= 0:
        raise ChunkConfigError(f"chunk size must be positive, got {size}")
    if overlap < 0:
        raise ChunkConfigError(f"chunk overlap must be >= 0, got {overlap}")
    if overlap >= size:
        raise ChunkConfigError(
            f"chunk overlap ({overlap}) must be smaller than chunk size ({size})"
        )


def chunk_text(text: str, size: int, overlap: int) -> list[str]:
    """
    Split text into overlapping windows.

    Each window after the first starts `size - overlap` characters after the
    previous one; the final window may be shorter than `size`.

    Args:
        text: Text to split
        size: Window length in characters
        overlap: Characters shared by consecutive windows

    Returns:
        Ordered list of segments (empty for empty text)
    """
    validate_chunk_params(size, overlap)

    step = size - overlap
    return [text[start:start + size] for start in range(0, len(text), step)]


def estimate_page(char_offset: int, total_chars: int, total_units: int) -> int:
    """
    Approximate the page a character offset falls on.

    Assumes text is spread evenly across pages; never returns less than 1.
    """
    if total_units <= 0 or total_chars <= 0:
        return 1
    chars_per_page = total_chars / total_units
    return max(1, math.ceil(char_offset / chars_per_page))


class DocumentChunker:
    """
    Chunks extracted sources into provenance-tagged Chunk records.

    Invalid size/overlap settings are rejected at construction.
    """

    def __init__(self, config: Optional[ChunkConfig] = None):
        self.config = config or ChunkConfig()
        validate_chunk_params(self.config.chunk_size, self.config.chunk_overlap)

    def chunk_corpus(self, sources: Iterable[ExtractedSource]) -> list[Chunk]:
        """
        Chunk every source, numbering chunks sequentially across the corpus.

        Args:
            sources: Extracted sources in a stable order

        Returns:
            All chunks, grouped by source in input order
        """
        chunks: list[Chunk] = []
        for source in sources:
            file_chunks = self.chunk_source(source, start_id=len(chunks))
            logger.info(f"Created {len(file_chunks)} chunks from {source.filename}")
            chunks.extend(file_chunks)

        logger.info(f"Total chunks created: {len(chunks)}")
        return chunks

    def chunk_source(self, source: ExtractedSource, start_id: int = 0) -> list[Chunk]:
        """Chunk one source; ids continue from `start_id`."""
        size = self.config.chunk_size
        step = size - self.config.chunk_overlap
        segments = chunk_text(source.text, size, self.config.chunk_overlap)
        total_chars = len(source.text)

        return [
            Chunk(
                id=f"chunk_{start_id + i}",
                origin_file=source.filename,
                origin_path=str(source.path),
                category_tag=source.category_tag,
                page_estimate=estimate_page(i * step, total_chars, source.unit_count),
                text=segment,
                ordinal=i,
            )
            for i, segment in enumerate(segments)
        ]
