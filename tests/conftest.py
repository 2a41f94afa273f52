"""
Shared fixtures and test utilities for Refugee Rights RAG System tests.

Provides deterministic fake collaborators (embedding provider, text
extractor, generation model), sample case data and corpus helpers so that
all tests run without API keys or network access.
"""

import re
import sys
import json
import asyncio
import hashlib
from pathlib import Path

import pytest

# ---------------------------------------------------------------------------
# Path setup - ensure the execution package is importable
# ---------------------------------------------------------------------------
PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from execution.rights_rag.embeddings import BaseEmbeddingService
from execution.rights_rag.models import ExtractedEntities
from execution.rights_rag.prompts import LLM_PROMPTS
from execution.rights_rag.settings import (
    AppSettings, ChunkConfig, EmbeddingConfig, ReportConfig,
)
from execution.rights_rag.source_extractor import ExtractionResult
from execution.rights_rag.storage import CaseStore, ReportStore


# ---------------------------------------------------------------------------
# Fake embedding provider
# ---------------------------------------------------------------------------

def deterministic_vector(text: str, dimensions: int = 8) -> list[float]:
    digest = hashlib.sha256(text.encode()).digest()
    return [(b - 127.5) / 127.5 for b in digest[:dimensions]]


class FakeEmbeddingService(BaseEmbeddingService):
    """Deterministic embedding provider -- never calls external APIs."""

    _provider_name = "Fake"
    _env_var_name = "FAKE_API_KEY"

    def __init__(self, dimensions=8, fail_on_calls=(), query_vector=None):
        self.dimensions = dimensions
        self.fail_on_calls = set(fail_on_calls)
        self.query_vector = query_vector
        self.document_calls = 0
        self.query_calls = 0
        super().__init__(EmbeddingConfig(provider="fake", model="fake-model", dimensions=dimensions))

    def _init_client(self):
        self._client = object()

    async def _request(self, texts, input_type):
        if input_type == self._query_input_type:
            self.query_calls += 1
            if self.query_vector is not None:
                return [list(self.query_vector)]
        else:
            call = self.document_calls
            self.document_calls += 1
            if call in self.fail_on_calls:
                raise RuntimeError(f"batch {call} rejected")
        return [deterministic_vector(t, self.dimensions) for t in texts]


@pytest.fixture
def fake_embeddings():
    return FakeEmbeddingService()


# ---------------------------------------------------------------------------
# Fake text extractor (corpus files are plain text with a .pdf suffix)
# ---------------------------------------------------------------------------

class FakeTextExtractor:
    """Reads files as UTF-8; files starting with CORRUPT raise."""

    def __init__(self, page_counts=None):
        self.page_counts = page_counts or {}

    def extract(self, path):
        text = Path(path).read_text(encoding="utf-8")
        if text.startswith("CORRUPT"):
            raise ValueError("cannot open broken document")
        return ExtractionResult(text=text, unit_count=self.page_counts.get(Path(path).name, 1))


@pytest.fixture
def fake_extractor():
    return FakeTextExtractor()


def write_corpus(root: Path, files: dict) -> Path:
    """Create corpus files {relative_path: text} under root."""
    for relative, text in files.items():
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
    return root


# ---------------------------------------------------------------------------
# Fake generation model
# ---------------------------------------------------------------------------

_ANALYSIS_CATEGORY = re.compile(r"regarding (\w+) rights")
_PRECEDENT_CATEGORY = re.compile(r"Rights Type: (\w+) rights")


def analysis_json(category: str, confidence: str = "high") -> str:
    return json.dumps({
        "summary": f"Summary of {category} rights.",
        "legalBasis": "Asylum Act, Art. 12",
        "citation": {
            "quote": "Everyone has the right to adequate care.",
            "source": "Art. 12 Asylum Act",
            "filename": "asylum-act.pdf",
            "pageNumber": 2,
        },
        "complications": ["Waiting periods apply"],
        "risks": ["Cantonal differences"],
        "confidenceLevel": confidence,
    })


def precedents_json(count: int = 2) -> str:
    cases = [
        {
            "title": f"Decision {i}",
            "description": "Relevant decision",
            "url": f"refworld.org/case/{i}",
            "source": "RefWorld.org",
            "relevance": 0.9,
            "confidence": "high",
        }
        for i in range(count)
    ]
    cases.append({"title": "No link", "description": "dropped"})
    return json.dumps({"cases": cases})


class FakeGenerationService:
    """
    Scriptable stand-in for GenerationService.

    Routes complete_json() calls by prompt: intake, category analysis or
    precedent lookup. Per-category failures, malformed output and delays can
    be configured.
    """

    def __init__(
        self,
        entities=None,
        fail_categories=(),
        malformed_categories=(),
        delays=None,
        fail_precedents=False,
        precedent_delay=0,
        tokens=("The ", "answer."),
        fail_stream_after=None,
    ):
        self.entities = entities or {}
        self.fail_categories = set(fail_categories)
        self.malformed_categories = set(malformed_categories)
        self.delays = delays or {}
        self.fail_precedents = fail_precedents
        self.precedent_delay = precedent_delay
        self.tokens = list(tokens)
        self.fail_stream_after = fail_stream_after
        self.analysis_prompts = {}
        self.precedent_calls = []
        self.stream_prompts = []
        self.stream_closed = False
        self.is_available = True

    async def complete_json(self, system_prompt, user_prompt, temperature):
        if system_prompt == LLM_PROMPTS["intake_system"]:
            return json.dumps(self.entities)

        match = _PRECEDENT_CATEGORY.search(user_prompt)
        if match:
            category = match.group(1)
            self.precedent_calls.append(category)
            if self.precedent_delay:
                await asyncio.sleep(self.precedent_delay)
            if self.fail_precedents:
                raise RuntimeError("precedent service down")
            return precedents_json()

        category = _ANALYSIS_CATEGORY.search(user_prompt).group(1)
        self.analysis_prompts[category] = user_prompt
        if category in self.delays:
            await asyncio.sleep(self.delays[category])
        if category in self.fail_categories:
            raise RuntimeError(f"generation failed for {category}")
        if category in self.malformed_categories:
            return '{"summary": "missing everything else"'
        return analysis_json(category)

    async def stream(self, system_prompt, user_prompt, temperature):
        self.stream_prompts.append((system_prompt, user_prompt))
        try:
            for i, token in enumerate(self.tokens):
                if self.fail_stream_after is not None and i >= self.fail_stream_after:
                    raise RuntimeError("stream interrupted")
                yield token
        finally:
            self.stream_closed = True


@pytest.fixture
def fake_generation():
    return FakeGenerationService()


# ---------------------------------------------------------------------------
# Settings, stores and sample cases
# ---------------------------------------------------------------------------

@pytest.fixture
def settings(tmp_path):
    return AppSettings(
        document_root=str(tmp_path / "data"),
        chunking=ChunkConfig(chunk_size=1000, chunk_overlap=200),
        embeddings=EmbeddingConfig(
            provider="fake",
            model="fake-model",
            batch_size=2,
            cache_path=str(tmp_path / "cache" / "embeddings-cache.json"),
        ),
        report=ReportConfig(timeout_seconds=5.0),
    )


@pytest.fixture
def case_store():
    return CaseStore()


@pytest.fixture
def report_store():
    return ReportStore()


@pytest.fixture
def diabetes_case(case_store):
    """Case whose only qualifying fact is a medical need."""
    return case_store.create(
        case_number="UNHCR-CH-2025-12345",
        notes="Applicant in Switzerland needs insulin for diabetes.",
        extracted_entities=ExtractedEntities(
            host_country="Switzerland",
            medical_needs=["diabetes"],
            family_size=1,
            urgency_level="high",
        ),
    )


@pytest.fixture
def baseline_case(case_store):
    """Case with no qualifying facts beyond the baseline."""
    return case_store.create(
        case_number="UNHCR-CH-2025-54321",
        notes="Single adult, no specific needs recorded.",
        extracted_entities=ExtractedEntities(host_country="Switzerland"),
    )


@pytest.fixture
def full_case(case_store):
    """Case that qualifies for every category with a predicate."""
    return case_store.create(
        case_number="UNHCR-CH-2025-67890",
        notes="Family of four, child needs school enrolment, mother has asthma.",
        extracted_entities=ExtractedEntities(
            host_country="Switzerland",
            medical_needs=["asthma"],
            education_needs=["school enrollment"],
            family_size=4,
        ),
    )


# ---------------------------------------------------------------------------
# Singleton resets between tests
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def reset_metrics_singleton():
    """Reset the MetricsCollector singleton between tests."""
    import execution.rights_rag.metrics as metrics_mod
    metrics_mod.MetricsCollector._instance = None
    metrics_mod._collector = None
    yield
    metrics_mod.MetricsCollector._instance = None
    metrics_mod._collector = None
