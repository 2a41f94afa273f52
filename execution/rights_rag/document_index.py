"""
Document Index

Explicitly constructed service that owns the corpus snapshot: extracted
chunks plus their embedding table. Built once by initialize() and read-only
afterwards.

If initialization fails (no documents, provider down, unreadable root) the
index stays empty and every search returns no results. Callers treat that as
"no documents" and switch to general-knowledge prompts.
"""

import asyncio
import logging
from typing import Optional

from .chunker import Chunk, DocumentChunker
from .embedding_cache import EmbeddingCacheStore, EmbeddingRecord
from .embeddings import BaseEmbeddingService
from .retriever import RetrievalResult, rank, rank_by_category
from .settings import AppSettings
from .source_extractor import SourceExtractor, TextExtractor

logger = logging.getLogger(__name__)


class DocumentIndex:
    """Searchable semantic index over the document root."""

    def __init__(
        self,
        settings: AppSettings,
        embedding_service: BaseEmbeddingService,
        extractor: Optional[TextExtractor] = None,
    ):
        self.settings = settings
        self._embeddings = embedding_service
        self._source_extractor = SourceExtractor(settings.document_root, extractor)
        self._chunker = DocumentChunker(settings.chunking)
        self._cache = EmbeddingCacheStore(
            settings.embeddings.cache_path,
            embedding_service,
            batch_size=settings.embeddings.batch_size,
        )
        self._chunks: tuple[Chunk, ...] = ()
        self._records: tuple[EmbeddingRecord, ...] = ()
        self._initialized = False
        self._error: Optional[str] = None
        self._lock = asyncio.Lock()

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def has_documents(self) -> bool:
        return bool(self._records)

    @property
    def chunks(self) -> tuple[Chunk, ...]:
        return self._chunks

    @property
    def records(self) -> tuple[EmbeddingRecord, ...]:
        return self._records

    def status(self) -> dict:
        return {
            "initialized": self._initialized,
            "chunks": len(self._chunks),
            "embeddings": len(self._records),
            "has_documents": self.has_documents,
            "error": self._error,
        }

    async def initialize(self) -> None:
        """
        Extract, chunk and embed the corpus once.

        Safe to call repeatedly and concurrently; only the first call does
        any work. Failures are logged and leave the index empty.
        """
        async with self._lock:
            if self._initialized:
                return

            try:
                sources = await self._source_extractor.extract_all()
                chunks = self._chunker.chunk_corpus(sources)
                table = await self._cache.initialize(chunks)
                self._chunks = tuple(chunks)
                self._records = tuple(table.values())
            except Exception as e:
                logger.error(f"Document index initialization failed: {type(e).__name__}: {e}")
                self._error = str(e)
                self._chunks = ()
                self._records = ()
            finally:
                self._initialized = True

            if self._records:
                logger.info(
                    f"Document index ready: {len(self._chunks)} chunks, "
                    f"{len(self._records)} embeddings"
                )
            else:
                logger.warning("Document index is empty; using general knowledge mode")

    async def search(
        self,
        query: str,
        top_k: Optional[int] = None,
        min_similarity: Optional[float] = None,
        category_tag: Optional[str] = None,
        scoped_min_similarity: Optional[float] = None,
    ) -> list[RetrievalResult]:
        """
        Embed a query and rank the corpus against it.

        Args:
            query: Natural-language query
            top_k: Maximum results (default from retrieval config)
            min_similarity: Score floor (default from retrieval config)
            category_tag: Preferred jurisdiction folder; falls back to the
                whole corpus when nothing in that folder qualifies
            scoped_min_similarity: Score floor for the folder-scoped pass
                (defaults to min_similarity)

        Returns:
            Ranked results (empty when the index has no documents)
        """
        if not self._records:
            return []

        retrieval = self.settings.retrieval
        top_k = retrieval.default_top_k if top_k is None else top_k
        min_similarity = (
            retrieval.default_min_similarity if min_similarity is None else min_similarity
        )

        query_vector = await self._embeddings.embed_query(query)
        if not query_vector:
            logger.warning("Empty query embedding, returning no results")
            return []

        if category_tag:
            if scoped_min_similarity is None:
                scoped_min_similarity = min_similarity
            results = rank_by_category(
                query_vector, self._records, category_tag, top_k, scoped_min_similarity,
            )
            if results:
                return results
            logger.debug(f"No scoped results for '{category_tag}', searching all documents")

        return rank(query_vector, self._records, top_k, min_similarity)
