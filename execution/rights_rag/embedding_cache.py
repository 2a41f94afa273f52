"""
Embedding Cache Store

Owns the corpus vectors. Embedding a whole corpus is the most expensive step
of startup, so vectors are persisted once per corpus snapshot and reloaded on
every later start.

Persisted layout (single JSON document):

    {"version": "1.0", "createdAt": "...",
     "provider": "voyage", "model": "voyage-law-2", "dimensions": 1024,
     "corpusFingerprint": "<sha256 of the chunk set>",
     "embeddings": [
        {"chunkId": "chunk_0", "vector": [...], "originFile": "a.pdf",
         "categoryTag": "switzerland", "pageEstimate": 1, "textHash": "..."},
        ...
    ]}

Chunk text is deliberately not persisted; it is rejoined from the live chunk
set by chunkId when the cache is loaded. A record only gets text back when
the live chunk with its id has the same origin file, tag and text hash.

A cache is discarded (and the corpus re-embedded) when its version, provider,
model or vector dimensions differ from the current configuration, or when the
corpus snapshot it was built from no longer matches the live chunks.
"""

import os
import json
import hashlib
import logging
from pathlib import Path
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Mapping, Optional, Sequence

from .chunker import Chunk
from .embeddings import BaseEmbeddingService
from .metrics import get_metrics_collector

logger = logging.getLogger(__name__)

CACHE_VERSION = "1.0"


def text_digest(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()[:16]


def corpus_fingerprint(chunks: Sequence[Chunk]) -> str:
    """
    Identify a corpus snapshot by its chunk set.

    Covers chunk ids, origin files, tags, page estimates and text, so adding,
    removing, reordering or editing a document, or changing the chunk
    settings, all produce a different fingerprint.
    """
    digest = hashlib.sha256()
    for chunk in chunks:
        digest.update(
            f"{chunk.id}|{chunk.category_tag}|{chunk.origin_file}|"
            f"{chunk.page_estimate}|{text_digest(chunk.text)}\n".encode("utf-8")
        )
    return digest.hexdigest()


def _same_chunk(item: dict, chunk: Chunk) -> bool:
    return (
        item["originFile"] == chunk.origin_file
        and item["categoryTag"] == chunk.category_tag
        and item.get("textHash") == text_digest(chunk.text)
    )


@dataclass(frozen=True)
class EmbeddingRecord:
    """A chunk vector with the provenance needed for retrieval."""
    chunk_id: str
    vector: list[float]
    origin_file: str
    category_tag: str
    page_estimate: int
    text: str = field(default="", compare=False)  # rejoined at load, never persisted

    def to_cache_dict(self) -> dict:
        return {
            "chunkId": self.chunk_id,
            "vector": self.vector,
            "originFile": self.origin_file,
            "categoryTag": self.category_tag,
            "pageEstimate": self.page_estimate,
            "textHash": text_digest(self.text),
        }

    @classmethod
    def from_cache_dict(cls, data: dict, text: str = "") -> "EmbeddingRecord":
        return cls(
            chunk_id=str(data["chunkId"]),
            vector=[float(v) for v in data["vector"]],
            origin_file=str(data["originFile"]),
            category_tag=str(data["categoryTag"]),
            page_estimate=int(data["pageEstimate"]),
            text=text,
        )

    @classmethod
    def from_chunk(cls, chunk: Chunk, vector: list[float]) -> "EmbeddingRecord":
        return cls(
            chunk_id=chunk.id,
            vector=vector,
            origin_file=chunk.origin_file,
            category_tag=chunk.category_tag,
            page_estimate=chunk.page_estimate,
            text=chunk.text,
        )


class EmbeddingCacheStore:
    """
    Loads, computes and persists chunk embeddings.

    The in-memory table is built once by initialize() and is read-only
    afterwards, so concurrent retrievals can share it without locking.
    """

    def __init__(
        self,
        cache_path: str,
        embedding_service: BaseEmbeddingService,
        batch_size: int = 100,
    ):
        """
        Initialize the store.

        Args:
            cache_path: Location of the persisted cache document
            embedding_service: Provider used when no usable cache exists
            batch_size: Chunks per embedding request
        """
        if batch_size <= 0:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        self.cache_path = Path(cache_path)
        self._embeddings = embedding_service
        self._batch_size = batch_size
        self._table: Optional[Mapping[str, EmbeddingRecord]] = None

    @property
    def is_initialized(self) -> bool:
        return self._table is not None

    @property
    def records(self) -> tuple[EmbeddingRecord, ...]:
        """Records in corpus order (empty before initialization)."""
        if self._table is None:
            return ()
        return tuple(self._table.values())

    async def initialize(self, chunks: Sequence[Chunk]) -> Mapping[str, EmbeddingRecord]:
        """
        Build the chunkId -> record table, preferring the persisted cache.

        Calling this again after a successful initialization returns the
        existing table without touching the cache or the provider.

        Args:
            chunks: The current corpus snapshot

        Returns:
            Read-only mapping of chunk id to embedding record
        """
        if self._table is not None:
            return self._table

        metrics = get_metrics_collector()
        records = self.load(chunks)
        if records:
            logger.info("Using cached embeddings")
            metrics.record_cache_hit()
        elif not chunks:
            logger.info("No chunks to process")
            records = []
        else:
            logger.info("No usable cache found, generating new embeddings...")
            metrics.record_cache_miss()
            records = await self.generate(chunks)
            if records:
                self.save(records, chunks)

        self._table = MappingProxyType({r.chunk_id: r for r in records})
        return self._table

    def load(
        self,
        chunks: Sequence[Chunk],
        require_same_corpus: bool = True,
    ) -> Optional[list[EmbeddingRecord]]:
        """
        Load persisted records and rejoin them with chunk text.

        Args:
            chunks: The live chunk set
            require_same_corpus: Discard the cache when it was built from a
                different chunk set. When False, records whose chunk changed
                or disappeared are kept with empty text.

        Returns:
            Records, or None when the cache is missing, unreadable or
            incompatible with the current embedding configuration
        """
        if not self.cache_path.exists():
            logger.info("No cache file found")
            return None

        try:
            with open(self.cache_path, encoding="utf-8") as f:
                cache = json.load(f)

            reason = self._incompatibility(cache, chunks if require_same_corpus else None)
            if reason:
                logger.warning(f"Discarding embedding cache {self.cache_path}: {reason}")
                return None

            dimensions = cache.get("dimensions")
            chunk_by_id = {chunk.id: chunk for chunk in chunks}
            records = []
            missing = 0
            for item in cache["embeddings"]:
                record = EmbeddingRecord.from_cache_dict(item)
                if dimensions is not None and len(record.vector) != dimensions:
                    raise ValueError(
                        f"{record.chunk_id} has {len(record.vector)} dimensions, expected {dimensions}"
                    )
                chunk = chunk_by_id.get(record.chunk_id)
                if chunk is not None and _same_chunk(item, chunk):
                    record = replace(record, text=chunk.text)
                else:
                    missing += 1
                records.append(record)

        except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
            logger.error(f"Error loading embedding cache {self.cache_path}: {e}")
            return None

        if missing:
            logger.warning(f"{missing} cached embeddings have no matching chunk; their text is empty")
        logger.info(
            f"Loaded {len(records)} embeddings from cache (created: {cache.get('createdAt')})"
        )
        return records

    def _incompatibility(self, cache: dict, chunks: Optional[Sequence[Chunk]]) -> Optional[str]:
        """Why a parsed cache cannot be used, or None if it can."""
        version = cache.get("version")
        if version != CACHE_VERSION:
            return f"version {version!r} (expected {CACHE_VERSION!r})"

        config = self._embeddings.config
        built_with = (cache.get("provider"), cache.get("model"))
        if built_with != (config.provider, config.model):
            return f"built with {built_with[0]}/{built_with[1]}, configured {config.provider}/{config.model}"

        dimensions = cache.get("dimensions")
        if config.dimensions and dimensions != config.dimensions:
            return f"{dimensions}-dimension vectors, provider returns {config.dimensions}"

        if chunks is not None and cache.get("corpusFingerprint") != corpus_fingerprint(chunks):
            return "corpus changed since the cache was built"
        return None

    def save(self, records: Sequence[EmbeddingRecord], chunks: Sequence[Chunk]) -> None:
        """
        Persist records one at a time to a temp file, then swap it in.

        The header identifies the embedding configuration and the corpus
        snapshot (`chunks`) the records were computed from. A crash mid-write
        leaves the previous cache file untouched.
        """
        config = self._embeddings.config
        header = {
            "version": CACHE_VERSION,
            "createdAt": datetime.now(timezone.utc).isoformat(),
            "provider": config.provider,
            "model": config.model,
            "dimensions": len(records[0].vector) if records else config.dimensions,
            "corpusFingerprint": corpus_fingerprint(chunks),
        }
        tmp_path = self.cache_path.with_name(self.cache_path.name + ".tmp")
        try:
            self.cache_path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                f.write(json.dumps(header, separators=(",", ":"))[:-1])
                f.write(',"embeddings":[')
                for i, record in enumerate(records):
                    if i:
                        f.write(",")
                    f.write(json.dumps(record.to_cache_dict(), separators=(",", ":")))
                f.write("]}")
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.cache_path)
            logger.info(f"Saved {len(records)} embeddings to cache")
        except OSError as e:
            logger.error(f"Error saving embedding cache: {e}")
            tmp_path.unlink(missing_ok=True)

    async def generate(self, chunks: Sequence[Chunk]) -> list[EmbeddingRecord]:
        """
        Embed chunks in sequential fixed-size batches.

        A failed batch is logged and skipped; the remaining batches still run.
        """
        metrics = get_metrics_collector()
        total_batches = (len(chunks) + self._batch_size - 1) // self._batch_size
        logger.info(f"Generating embeddings for {len(chunks)} chunks in {total_batches} batches")

        records: list[EmbeddingRecord] = []
        for batch_idx, start in enumerate(range(0, len(chunks), self._batch_size)):
            batch = chunks[start:start + self._batch_size]
            logger.info(f"Processing batch {batch_idx + 1}/{total_batches}")
            try:
                vectors = await self._embeddings.embed_documents([c.text for c in batch])
            except Exception as e:
                logger.error(
                    f"Failed to process batch {start}-{start + len(batch)}: "
                    f"{type(e).__name__}: {e}"
                )
                metrics.record_embedding_batch(succeeded=False)
                continue

            metrics.record_embedding_batch(succeeded=True)
            records.extend(
                EmbeddingRecord.from_chunk(chunk, vector)
                for chunk, vector in zip(batch, vectors)
            )

        logger.info(f"Successfully generated {len(records)} embeddings")
        return records
