"""
Embedding Service for the Refugee Rights RAG System

Provides embeddings via Voyage AI (voyage-law-2), Cohere or OpenAI.
Every provider exposes the same async capability:

    embed_documents(batch) -> vectors   (one call, may raise per batch)
    embed_query(text)      -> vector    (memoized, least recently used evicted)

Batching and the persisted corpus cache live in embedding_cache.py; this
module only talks to the providers.

Architecture:
    BaseEmbeddingService  -- client checks, query memoization, input types
        VoyageEmbeddingService   -- Voyage AI voyage-law-2 provider
        CohereEmbeddingService   -- Cohere embed-v3 provider
        OpenAIEmbeddingService   -- OpenAI text-embedding-3 provider
"""

import os
import hashlib
import logging
from collections import OrderedDict
from typing import Optional

from .settings import EmbeddingConfig

logger = logging.getLogger(__name__)


class BaseEmbeddingService:
    """
    Base class for API-based embedding services.

    Subclasses implement:
    - _init_client(): create the provider's async client (or leave it None)
    - _request(texts, input_type): one provider call returning vectors

    And set these class attributes:
    - _provider_name: Human-readable provider name for error messages
    - _env_var_name: Environment variable name for the API key
    - _doc_input_type / _query_input_type: provider input type strings
    """

    _provider_name: str = "Base"
    _env_var_name: str = ""
    _doc_input_type: Optional[str] = "document"
    _query_input_type: Optional[str] = "query"
    _query_cache_max_size: int = 1000

    def __init__(self, config: Optional[EmbeddingConfig] = None):
        """
        Initialize embedding service.

        Args:
            config: Optional configuration. Uses defaults if not provided.
        """
        self.config = config or EmbeddingConfig()
        self._client = None
        self._query_cache: OrderedDict[str, list[float]] = OrderedDict()
        self._init_client()

    def _init_client(self):
        """Initialize the provider-specific API client. Must be overridden by subclasses."""
        raise NotImplementedError("Subclasses must implement _init_client()")

    async def _request(self, texts: list[str], input_type: Optional[str]) -> list[list[float]]:
        """Call the provider once. Must be overridden by subclasses."""
        raise NotImplementedError("Subclasses must implement _request()")

    def _require_client(self) -> None:
        if not self._client:
            raise RuntimeError(
                f"{self._provider_name} client not initialized. "
                f"Check {self._env_var_name}."
            )

    async def embed_documents(self, texts: list[str]) -> list[list[float]]:
        """
        Embed one batch of document chunks.

        Args:
            texts: Batch of chunk texts

        Returns:
            One vector per input text, in input order
        """
        if not texts:
            return []
        self._require_client()

        vectors = await self._request(texts, self._doc_input_type)
        if len(vectors) != len(texts):
            raise RuntimeError(
                f"{self._provider_name} returned {len(vectors)} vectors for {len(texts)} texts"
            )
        return [list(v) for v in vectors]

    async def embed_query(self, query: str) -> list[float]:
        """
        Generate embedding for a search query.

        Uses the provider's query input type for better query-document matching.
        """
        self._require_client()

        cache_key = self._get_cache_key(query, "query")
        cached = self._query_cache.get(cache_key)
        if cached is not None:
            self._query_cache.move_to_end(cache_key)
            return cached

        result = await self._request([query], self._query_input_type)
        if not result:
            return []

        vector = list(result[0])
        self._query_cache[cache_key] = vector
        while len(self._query_cache) > self._query_cache_max_size:
            self._query_cache.popitem(last=False)
        return vector

    def _get_cache_key(self, text: str, input_type: str) -> str:
        """Generate cache key for text."""
        content = f"{self.config.model}:{input_type}:{text}"
        return hashlib.sha256(content.encode()).hexdigest()[:32]


class VoyageEmbeddingService(BaseEmbeddingService):
    """
    Embedding service using Voyage AI's voyage-law-2 model.

    voyage-law-2 is tuned for legal text and distinguishes document and
    query input types.
    """

    _provider_name = "Voyage AI"
    _env_var_name = "VOYAGE_API_KEY"
    _doc_input_type = "document"
    _query_input_type = "query"

    def _init_client(self):
        """Initialize the Voyage AI async client."""
        api_key = os.getenv("VOYAGE_API_KEY")

        if not api_key:
            logger.warning(
                "VOYAGE_API_KEY not found. Embeddings will fail. "
                "Get your API key at https://dash.voyageai.com/"
            )
            return

        import voyageai
        self._client = voyageai.AsyncClient(api_key=api_key)
        logger.info(f"Voyage AI client initialized with model {self.config.model}")

    async def _request(self, texts, input_type):
        response = await self._client.embed(
            texts, model=self.config.model, input_type=input_type,
        )
        return response.embeddings


class CohereEmbeddingService(BaseEmbeddingService):
    """Generates embeddings using Cohere's embed-v3 model."""

    _provider_name = "Cohere"
    _env_var_name = "COHERE_API_KEY"
    _doc_input_type = "search_document"
    _query_input_type = "search_query"

    def _init_client(self):
        """Initialize the Cohere async client."""
        api_key = os.getenv("COHERE_API_KEY")

        if not api_key:
            logger.warning(
                "COHERE_API_KEY not found. Embeddings will fail. "
                "Set the environment variable or use a different provider."
            )
            return

        import cohere
        self._client = cohere.AsyncClient(api_key)
        logger.info(f"Cohere client initialized with model {self.config.model}")

    async def _request(self, texts, input_type):
        response = await self._client.embed(
            texts=texts, model=self.config.model, input_type=input_type,
        )
        return response.embeddings


class OpenAIEmbeddingService(BaseEmbeddingService):
    """Embedding service using OpenAI's text-embedding-3 models."""

    _provider_name = "OpenAI"
    _env_var_name = "OPENAI_API_KEY"
    _doc_input_type = None
    _query_input_type = None

    def _init_client(self):
        """Initialize the OpenAI async client."""
        api_key = os.getenv("OPENAI_API_KEY")

        if not api_key:
            logger.warning("OPENAI_API_KEY not found. Embeddings will fail.")
            return

        from openai import AsyncOpenAI
        self._client = AsyncOpenAI(api_key=api_key)
        logger.info(f"OpenAI embedding client initialized with model {self.config.model}")

    async def _request(self, texts, input_type):
        response = await self._client.embeddings.create(model=self.config.model, input=texts)
        return [item.embedding for item in response.data]


_PROVIDERS = {
    "voyage": VoyageEmbeddingService,
    "cohere": CohereEmbeddingService,
    "openai": OpenAIEmbeddingService,
}


def get_embedding_service(config: Optional[EmbeddingConfig] = None) -> BaseEmbeddingService:
    """
    Factory function to get the configured embedding service.

    Args:
        config: Embedding configuration; `provider` selects the backend

    Returns:
        Configured embedding service (voyage when the provider is unknown)
    """
    config = config or EmbeddingConfig()
    service_cls = _PROVIDERS.get(config.provider)
    if service_cls is None:
        logger.warning(f"Unknown embedding provider '{config.provider}', using voyage")
        config = EmbeddingConfig.for_provider(
            "voyage", batch_size=config.batch_size, cache_path=config.cache_path,
        )
        service_cls = VoyageEmbeddingService
    return service_cls(config)
