"""
Unit tests for the embedding client.
"""

import math

import pytest

from app.core.errors import MalformedResponseError, UpstreamTimeoutError
from app.memory.embedder import EmbeddingCache, EmbeddingClient
from app.models.schemas import EmbeddingTask
from tests.fakes import FakeEmbeddingBackend


def make_client(backend, **kwargs):
    options = dict(dimension=8, timeout=1.0, backoff_multiplier=0, backoff_max=0)
    options.update(kwargs)
    return EmbeddingClient(backend, **options)


class TestEmbeddingClient:
    """Validation, retries and caching."""

    @pytest.mark.asyncio
    async def test_returns_vector_of_configured_dimension(self):
        backend = FakeEmbeddingBackend(dimension=8)
        client = make_client(backend)

        vector = await client.embed("personal record gym", EmbeddingTask.QUERY)

        assert len(vector) == 8
        assert backend.calls[0]["task_type"] == "retrieval_query"

    @pytest.mark.asyncio
    async def test_wrong_dimension_is_malformed(self):
        backend = FakeEmbeddingBackend(dimension=4)
        client = make_client(backend, dimension=8)

        with pytest.raises(MalformedResponseError):
            await client.embed("gym")

    @pytest.mark.asyncio
    async def test_non_finite_values_are_malformed(self):
        backend = FakeEmbeddingBackend()
        backend.overrides["gym"] = [math.nan] + [0.0] * 7
        client = make_client(backend)

        with pytest.raises(MalformedResponseError):
            await client.embed("gym")

    @pytest.mark.asyncio
    async def test_non_numeric_values_are_malformed(self):
        backend = FakeEmbeddingBackend()
        backend.overrides["gym"] = ["a"] * 8
        client = make_client(backend)

        with pytest.raises(MalformedResponseError):
            await client.embed("gym")

    @pytest.mark.asyncio
    async def test_empty_text_rejected(self):
        client = make_client(FakeEmbeddingBackend())

        with pytest.raises(ValueError):
            await client.embed("   ")

    @pytest.mark.asyncio
    async def test_transient_failures_are_retried(self):
        backend = FakeEmbeddingBackend(errors=[UpstreamTimeoutError("slow")])
        client = make_client(backend, max_attempts=2)

        vector = await client.embed("gym")

        assert len(vector) == 8
        assert len(backend.calls) == 2

    @pytest.mark.asyncio
    async def test_exhausted_retries_raise(self):
        backend = FakeEmbeddingBackend(errors=[UpstreamTimeoutError("slow")] * 3)
        client = make_client(backend, max_attempts=3)

        with pytest.raises(UpstreamTimeoutError):
            await client.embed("gym")

    @pytest.mark.asyncio
    async def test_repeated_text_served_from_cache(self):
        backend = FakeEmbeddingBackend()
        client = make_client(backend)

        first = await client.embed("gym", EmbeddingTask.QUERY)
        second = await client.embed("gym", EmbeddingTask.QUERY)

        assert first == second
        assert len(backend.calls) == 1
        assert client.get_cache_stats()["hits"] == 1

    @pytest.mark.asyncio
    async def test_cache_keyed_by_task(self):
        backend = FakeEmbeddingBackend()
        client = make_client(backend)

        await client.embed("gym", EmbeddingTask.QUERY)
        await client.embed("gym", EmbeddingTask.DOCUMENT)

        assert len(backend.calls) == 2

    @pytest.mark.asyncio
    async def test_cache_can_be_bypassed(self):
        backend = FakeEmbeddingBackend()
        client = make_client(backend)

        await client.embed("gym", use_cache=False)
        await client.embed("gym", use_cache=False)

        assert len(backend.calls) == 2
        assert client.get_cache_stats()["total_entries"] == 0


class TestEmbeddingCache:
    """LRU eviction."""

    def test_least_recently_used_is_evicted(self):
        cache = EmbeddingCache(cache_size=2)
        cache.put("a", [1.0], "m", "t")
        cache.put("b", [2.0], "m", "t")
        cache.get("a", "m", "t")
        cache.put("c", [3.0], "m", "t")

        assert cache.get("a", "m", "t") == [1.0]
        assert cache.get("b", "m", "t") is None
        assert cache.get("c", "m", "t") == [3.0]

    def test_zero_size_disables_cache(self):
        cache = EmbeddingCache(cache_size=0)
        cache.put("a", [1.0], "m", "t")

        assert cache.get("a", "m", "t") is None
