"""
Tests for execution/rights_rag/embedding_cache.py

Covers: batch generation with partial failure, save/load round trip, text
rejoin, version and corruption handling, idempotent initialization, and
discarding caches built for another provider, model or corpus snapshot.
"""

import json
from dataclasses import replace

import pytest

from execution.rights_rag.chunker import Chunk
from execution.rights_rag.embedding_cache import (
    CACHE_VERSION, EmbeddingCacheStore, corpus_fingerprint,
)
from execution.rights_rag.metrics import get_metrics_collector

from conftest import FakeEmbeddingService


def make_chunks(n: int, tag: str = "switzerland") -> list[Chunk]:
    return [
        Chunk(
            id=f"chunk_{i}",
            origin_file=f"doc{i // 3}.pdf",
            origin_path=f"/data/{tag}/doc{i // 3}.pdf",
            category_tag=tag,
            page_estimate=i + 1,
            text=f"Chunk number {i} about refugee rights.",
            ordinal=i % 3,
        )
        for i in range(n)
    ]


@pytest.fixture
def cache_path(tmp_path):
    return tmp_path / "cache" / "embeddings-cache.json"


class TestGenerate:

    @pytest.mark.asyncio
    async def test_batches_are_sequential_and_complete(self, cache_path):
        embedder = FakeEmbeddingService()
        store = EmbeddingCacheStore(str(cache_path), embedder, batch_size=2)
        records = await store.generate(make_chunks(5))
        assert embedder.document_calls == 3
        assert [r.chunk_id for r in records] == [f"chunk_{i}" for i in range(5)]

    @pytest.mark.asyncio
    async def test_failed_batch_is_skipped(self, cache_path):
        embedder = FakeEmbeddingService(fail_on_calls={1})
        store = EmbeddingCacheStore(str(cache_path), embedder, batch_size=2)

        table = await store.initialize(make_chunks(6))

        assert sorted(table) == ["chunk_0", "chunk_1", "chunk_4", "chunk_5"]
        metrics = get_metrics_collector().get_metrics()
        assert metrics.embedding_batches == 3
        assert metrics.embedding_batches_failed == 1

    @pytest.mark.asyncio
    async def test_all_batches_failing_saves_nothing(self, cache_path):
        embedder = FakeEmbeddingService(fail_on_calls={0, 1})
        store = EmbeddingCacheStore(str(cache_path), embedder, batch_size=2)
        table = await store.initialize(make_chunks(3))
        assert dict(table) == {}
        assert not cache_path.exists()

    def test_batch_size_must_be_positive(self, cache_path):
        with pytest.raises(ValueError):
            EmbeddingCacheStore(str(cache_path), FakeEmbeddingService(), batch_size=0)


class TestPersistence:

    @pytest.mark.asyncio
    async def test_round_trip_is_bit_identical(self, cache_path):
        chunks = make_chunks(4)
        embedder = FakeEmbeddingService(dimensions=16)
        original = await EmbeddingCacheStore(str(cache_path), embedder).initialize(chunks)

        reloaded = EmbeddingCacheStore(str(cache_path), FakeEmbeddingService(dimensions=16)).load(chunks)

        assert reloaded is not None
        by_id = {r.chunk_id: r for r in reloaded}
        for chunk_id, record in original.items():
            assert by_id[chunk_id].vector == record.vector
            assert by_id[chunk_id].text == record.text
            assert by_id[chunk_id].page_estimate == record.page_estimate

    @pytest.mark.asyncio
    async def test_persisted_layout_excludes_text(self, cache_path):
        await EmbeddingCacheStore(str(cache_path), FakeEmbeddingService()).initialize(make_chunks(2))
        data = json.loads(cache_path.read_text())
        assert data["version"] == CACHE_VERSION
        assert "createdAt" in data
        assert set(data["embeddings"][0]) == {
            "chunkId", "vector", "originFile", "categoryTag", "pageEstimate", "textHash",
        }
        assert not cache_path.with_name(cache_path.name + ".tmp").exists()

    @pytest.mark.asyncio
    async def test_missing_chunk_gets_empty_text(self, cache_path):
        chunks = make_chunks(3)
        await EmbeddingCacheStore(str(cache_path), FakeEmbeddingService()).initialize(chunks)

        reloaded = EmbeddingCacheStore(str(cache_path), FakeEmbeddingService()).load(
            chunks[:2], require_same_corpus=False,
        )

        texts = {r.chunk_id: r.text for r in reloaded}
        assert texts["chunk_2"] == ""
        assert texts["chunk_0"] == chunks[0].text

    def test_missing_file_loads_none(self, cache_path):
        assert EmbeddingCacheStore(str(cache_path), FakeEmbeddingService()).load([]) is None

    def test_unparsable_file_loads_none(self, cache_path):
        cache_path.parent.mkdir(parents=True)
        cache_path.write_text('{"version": "1.0", "embeddings": [')
        assert EmbeddingCacheStore(str(cache_path), FakeEmbeddingService()).load([]) is None

    def test_incompatible_version_loads_none(self, cache_path):
        cache_path.parent.mkdir(parents=True)
        cache_path.write_text(json.dumps({"version": "0.9", "createdAt": "x", "embeddings": []}))
        assert EmbeddingCacheStore(str(cache_path), FakeEmbeddingService()).load([]) is None


class TestInitialize:

    @pytest.mark.asyncio
    async def test_second_call_does_not_reembed(self, cache_path):
        embedder = FakeEmbeddingService()
        store = EmbeddingCacheStore(str(cache_path), embedder, batch_size=10)
        chunks = make_chunks(3)

        first = await store.initialize(chunks)
        second = await store.initialize(chunks)

        assert first is second
        assert embedder.document_calls == 1

    @pytest.mark.asyncio
    async def test_warm_cache_skips_provider(self, cache_path):
        chunks = make_chunks(3)
        await EmbeddingCacheStore(str(cache_path), FakeEmbeddingService()).initialize(chunks)

        embedder = FakeEmbeddingService()
        table = await EmbeddingCacheStore(str(cache_path), embedder).initialize(chunks)

        assert len(table) == 3
        assert embedder.document_calls == 0
        metrics = get_metrics_collector().get_metrics()
        assert metrics.cache_hits == 1
        assert metrics.cache_misses == 1

    @pytest.mark.asyncio
    async def test_old_version_triggers_recompute(self, cache_path):
        cache_path.parent.mkdir(parents=True)
        cache_path.write_text(json.dumps({"version": "0.1", "createdAt": "x", "embeddings": []}))
        embedder = FakeEmbeddingService()

        table = await EmbeddingCacheStore(str(cache_path), embedder).initialize(make_chunks(2))

        assert len(table) == 2
        assert embedder.document_calls == 1
        assert json.loads(cache_path.read_text())["version"] == CACHE_VERSION

    @pytest.mark.asyncio
    async def test_table_is_read_only(self, cache_path):
        table = await EmbeddingCacheStore(str(cache_path), FakeEmbeddingService()).initialize(make_chunks(1))
        with pytest.raises(TypeError):
            table["chunk_99"] = None

    @pytest.mark.asyncio
    async def test_no_chunks_no_cache(self, cache_path):
        embedder = FakeEmbeddingService()
        table = await EmbeddingCacheStore(str(cache_path), embedder).initialize([])
        assert len(table) == 0
        assert embedder.document_calls == 0
        assert not cache_path.exists()


class TestCompatibility:

    @pytest.mark.asyncio
    async def test_header_identifies_configuration_and_corpus(self, cache_path):
        chunks = make_chunks(2)
        await EmbeddingCacheStore(str(cache_path), FakeEmbeddingService()).initialize(chunks)
        data = json.loads(cache_path.read_text())
        assert data["provider"] == "fake"
        assert data["model"] == "fake-model"
        assert data["dimensions"] == 8
        assert data["corpusFingerprint"] == corpus_fingerprint(chunks)

    @pytest.mark.asyncio
    async def test_dimension_change_discards_cache(self, cache_path):
        chunks = make_chunks(3)
        await EmbeddingCacheStore(str(cache_path), FakeEmbeddingService(dimensions=8)).initialize(chunks)

        embedder = FakeEmbeddingService(dimensions=4)
        table = await EmbeddingCacheStore(str(cache_path), embedder).initialize(chunks)

        assert embedder.document_calls == 1
        assert {len(r.vector) for r in table.values()} == {4}
        assert json.loads(cache_path.read_text())["dimensions"] == 4

    @pytest.mark.asyncio
    async def test_model_change_discards_cache(self, cache_path):
        chunks = make_chunks(2)
        await EmbeddingCacheStore(str(cache_path), FakeEmbeddingService()).initialize(chunks)

        embedder = FakeEmbeddingService()
        embedder.config.model = "fake-model-v2"
        assert EmbeddingCacheStore(str(cache_path), embedder).load(chunks) is None

    @pytest.mark.asyncio
    async def test_corpus_change_discards_cache(self, cache_path):
        chunks = make_chunks(3)
        await EmbeddingCacheStore(str(cache_path), FakeEmbeddingService()).initialize(chunks)

        edited = [replace(chunks[0], text="Amended text."), *chunks[1:]]
        embedder = FakeEmbeddingService()
        store = EmbeddingCacheStore(str(cache_path), embedder)

        assert store.load(edited) is None
        table = await store.initialize(edited)
        assert embedder.document_calls == 1
        assert table["chunk_0"].text == "Amended text."

    @pytest.mark.asyncio
    async def test_reassigned_chunk_id_gets_empty_text(self, cache_path):
        chunks = make_chunks(2)
        await EmbeddingCacheStore(str(cache_path), FakeEmbeddingService()).initialize(chunks)

        moved = [replace(chunks[0], origin_file="other.pdf", text="Other document."), chunks[1]]
        reloaded = EmbeddingCacheStore(str(cache_path), FakeEmbeddingService()).load(
            moved, require_same_corpus=False,
        )

        by_id = {r.chunk_id: r for r in reloaded}
        assert by_id["chunk_0"].origin_file == "doc0.pdf"
        assert by_id["chunk_0"].text == ""
        assert by_id["chunk_1"].text == chunks[1].text

    def test_inconsistent_vector_length_loads_none(self, cache_path):
        chunks = make_chunks(1)
        record = {
            "chunkId": "chunk_0", "vector": [0.1, 0.2], "originFile": "doc0.pdf",
            "categoryTag": "switzerland", "pageEstimate": 1,
        }
        cache_path.parent.mkdir(parents=True)
        cache_path.write_text(json.dumps({
            "version": CACHE_VERSION, "createdAt": "x", "provider": "fake",
            "model": "fake-model", "dimensions": 8,
            "corpusFingerprint": corpus_fingerprint(chunks), "embeddings": [record],
        }))
        assert EmbeddingCacheStore(str(cache_path), FakeEmbeddingService()).load(chunks) is None
