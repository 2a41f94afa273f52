"""Formats ranked retrieval results into one evidence block for generation."""

from typing import Sequence

from .retriever import RetrievalResult

NO_DOCUMENTS_MARKER = "No relevant legal documents found."
SEPARATOR = "\n\n"


def format_result(index: int, result: RetrievalResult) -> str:
    return (
        f"[Document {index}: {result.origin_file}, Page {result.page_estimate}, "
        f"Similarity: {result.similarity * 100:.1f}%]\n"
        f"{result.text}\n\n---"
    )


def assemble_context(results: Sequence[RetrievalResult], max_count: int = 5) -> str:
    """
    Build the evidence block for a generation prompt.

    Args:
        results: Ranked results, best first
        max_count: Maximum number of results to include

    Returns:
        Formatted block, or NO_DOCUMENTS_MARKER when there is no evidence
    """
    selected = list(results)[:max(max_count, 0)]
    if not selected:
        return NO_DOCUMENTS_MARKER

    return SEPARATOR.join(
        format_result(i, result) for i, result in enumerate(selected, start=1)
    )
