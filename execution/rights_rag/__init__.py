"""
Refugee Rights RAG System - cited legal reports for refugee caseworkers

This module provides:
- Extraction and fixed-size chunking of a jurisdiction-foldered PDF corpus
- A persisted, versioned embedding cache paid for once per corpus snapshot
- Cosine-similarity retrieval with top-K and similarity thresholds
- Parallel per-category report synthesis with partial-failure tolerance
- Streaming retrieval-augmented chat
"""

from .chunker import DocumentChunker, Chunk
from .document_index import DocumentIndex
from .embedding_cache import EmbeddingCacheStore, EmbeddingRecord
from .embeddings import get_embedding_service
from .orchestrator import ReportOrchestrator
from .chat import ChatService
from .settings import AppSettings

__all__ = [
    "DocumentChunker",
    "Chunk",
    "DocumentIndex",
    "EmbeddingCacheStore",
    "EmbeddingRecord",
    "get_embedding_service",
    "ReportOrchestrator",
    "ChatService",
    "AppSettings",
]

__version__ = "0.1.0"
