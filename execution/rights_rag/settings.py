"""
Application Configuration for the Refugee Rights RAG System

Groups chunking, embedding, retrieval, generation and report settings into
plain dataclasses. Defaults mirror the values the pipeline was tuned with;
every field can be overridden through environment variables via
AppSettings.from_env().
"""

import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv


SUPPORTED_EMBEDDING_PROVIDERS = {
    "voyage": {
        "model": "voyage-law-2",
        "dimensions": 1024,
        "env_var": "VOYAGE_API_KEY",
    },
    "cohere": {
        "model": "embed-english-v3.0",
        "dimensions": 1024,
        "env_var": "COHERE_API_KEY",
    },
    "openai": {
        "model": "text-embedding-3-small",
        "dimensions": 1536,
        "env_var": "OPENAI_API_KEY",
    },
}

DEFAULT_DISCLAIMER = (
    "This report is generated by AI analysis of legal documents and should be "
    "reviewed by a qualified legal professional. It does not constitute legal advice."
)


@dataclass
class ChunkConfig:
    """Fixed-size character chunking parameters."""
    chunk_size: int = 1000
    chunk_overlap: int = 200


@dataclass
class EmbeddingConfig:
    """Configuration for the embedding provider and the persisted cache."""
    provider: str = "voyage"  # "voyage", "cohere" or "openai"
    model: str = "voyage-law-2"
    dimensions: Optional[int] = 1024  # None when unknown for a custom model
    batch_size: int = 100
    cache_path: str = "data/embeddings-cache.json"

    @classmethod
    def for_provider(cls, provider: str, **overrides) -> "EmbeddingConfig":
        """Defaults for a given provider; unknown providers fall back to voyage."""
        if provider not in SUPPORTED_EMBEDDING_PROVIDERS:
            provider = "voyage"
        defaults = SUPPORTED_EMBEDDING_PROVIDERS[provider]
        model = overrides.pop("model", None) or defaults["model"]
        dimensions = overrides.pop("dimensions", None)
        if dimensions is None and model == defaults["model"]:
            dimensions = defaults["dimensions"]
        return cls(provider=provider, model=model, dimensions=dimensions, **overrides)


@dataclass
class RetrievalConfig:
    """Top-K and similarity floors for each retrieval path."""
    default_top_k: int = 5
    default_min_similarity: float = 0.7
    report_top_k: int = 5
    report_min_similarity: float = 0.65
    category_min_similarity: float = 0.6
    chat_max_chunks: int = 8
    chat_min_similarity: float = 0.65


@dataclass
class GenerationConfig:
    """Chat-completions model settings (OpenAI-compatible endpoint)."""
    model: str = "gpt-4o"
    base_url: Optional[str] = None
    api_key: Optional[str] = None
    analysis_temperature: float = 0.3
    precedent_temperature: float = 0.4
    intake_temperature: float = 0.3
    chat_temperature: float = 0.7
    timeout: float = 120.0


@dataclass
class ReportConfig:
    """Report orchestration settings."""
    timeout_seconds: float = 180.0
    max_precedents: int = 5
    default_host_country: str = "Switzerland"
    disclaimer: str = DEFAULT_DISCLAIMER


@dataclass
class AppSettings:
    """Top-level settings for the API and the offline index build."""
    document_root: str = "data"
    chunking: ChunkConfig = field(default_factory=ChunkConfig)
    embeddings: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    retrieval: RetrievalConfig = field(default_factory=RetrievalConfig)
    generation: GenerationConfig = field(default_factory=GenerationConfig)
    report: ReportConfig = field(default_factory=ReportConfig)
    cors_origins: list[str] = field(
        default_factory=lambda: ["http://localhost:5173", "http://localhost:3000"]
    )

    @classmethod
    def from_env(cls) -> "AppSettings":
        """
        Build settings from environment variables (and a local .env file).

        Returns:
            AppSettings with defaults for every variable that is not set
        """
        load_dotenv()

        document_root = os.getenv("DOCUMENT_ROOT", "data")
        embeddings = EmbeddingConfig.for_provider(
            os.getenv("EMBEDDING_PROVIDER", "voyage"),
            model=os.getenv("EMBEDDING_MODEL"),
            dimensions=int(os.getenv("EMBEDDING_DIMENSIONS", "0")) or None,
            batch_size=int(os.getenv("EMBEDDING_BATCH_SIZE", "100")),
            cache_path=os.getenv(
                "EMBEDDINGS_CACHE_PATH",
                os.path.join(document_root, "embeddings-cache.json"),
            ),
        )
        chunking = ChunkConfig(
            chunk_size=int(os.getenv("CHUNK_SIZE", "1000")),
            chunk_overlap=int(os.getenv("CHUNK_OVERLAP", "200")),
        )
        generation = GenerationConfig(
            model=os.getenv("LLM_MODEL", "gpt-4o"),
            base_url=os.getenv("LLM_BASE_URL") or None,
            api_key=os.getenv("OPENAI_API_KEY"),
        )
        report = ReportConfig(
            timeout_seconds=float(os.getenv("REPORT_TIMEOUT_SECONDS", "180")),
        )
        cors = os.getenv("CORS_ORIGINS", "http://localhost:5173,http://localhost:3000")

        return cls(
            document_root=document_root,
            chunking=chunking,
            embeddings=embeddings,
            generation=generation,
            report=report,
            cors_origins=[o.strip() for o in cors.split(",") if o.strip()],
        )
