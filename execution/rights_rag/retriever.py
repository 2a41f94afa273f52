"""
Semantic Retriever

Ranks embedding records against a query vector by cosine similarity, keeps
those above a minimum similarity and truncates to top-K. Holds no state: the
records to rank are handed in on every call.

Ties keep the original record order, so rankings are deterministic for a
given table.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Sequence

import numpy as np

from .embedding_cache import EmbeddingRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetrievalResult:
    """One ranked piece of evidence for a query."""
    chunk_id: str
    origin_file: str
    category_tag: str
    page_estimate: int
    text: str
    similarity: float

    def to_dict(self) -> dict:
        return {
            "chunk_id": self.chunk_id,
            "origin_file": self.origin_file,
            "category_tag": self.category_tag,
            "page_estimate": self.page_estimate,
            "similarity": round(self.similarity, 4),
        }


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity of two equal-length vectors.

    Raises:
        ValueError: if the vectors differ in length

    Returns 0.0 when either vector has zero norm.
    """
    if len(a) != len(b):
        raise ValueError(f"Vector length mismatch: {len(a)} != {len(b)}")

    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    norm = np.linalg.norm(va) * np.linalg.norm(vb)
    if norm == 0:
        return 0.0
    return float(np.dot(va, vb) / norm)


def rank(
    query_vector: Sequence[float],
    records: Iterable[EmbeddingRecord],
    top_k: int,
    min_similarity: float,
) -> list[RetrievalResult]:
    """
    Rank records by similarity to the query.

    Args:
        query_vector: Embedded query
        records: Candidate records, in table order
        top_k: Maximum results to return
        min_similarity: Results below this score are dropped

    Returns:
        Results sorted by similarity descending, ties in input order
    """
    if top_k <= 0:
        return []

    scored = [
        RetrievalResult(
            chunk_id=r.chunk_id,
            origin_file=r.origin_file,
            category_tag=r.category_tag,
            page_estimate=r.page_estimate,
            text=r.text,
            similarity=cosine_similarity(query_vector, r.vector),
        )
        for r in records
    ]
    # sorted() is stable, reverse=True keeps equal keys in input order
    scored = sorted(scored, key=lambda r: r.similarity, reverse=True)
    return [r for r in scored if r.similarity >= min_similarity][:top_k]


def rank_by_category(
    query_vector: Sequence[float],
    records: Iterable[EmbeddingRecord],
    category_tag: str,
    top_k: int,
    min_similarity: float,
) -> list[RetrievalResult]:
    """
    Rank only records whose category tag matches (case-insensitive).

    An unmatched tag yields an empty list; callers fall back to rank().
    """
    wanted = category_tag.strip().lower()
    scoped = [r for r in records if r.category_tag.lower() == wanted]
    if not scoped:
        logger.debug(f"No records tagged '{category_tag}'")
        return []
    return rank(query_vector, scoped, top_k, min_similarity)
