"""
Integration tests for write-time processing.

Runs the real orchestrator, store and worker pool against the in-memory
database, with fake LLM and embedding backends.
"""

import pytest

from app.core.errors import NotFoundError, RateLimitError, StaleResultError, UpstreamError
from app.memory.embedder import EmbeddingClient
from app.memory.enhancer import MemoryEnhancer
from app.memory.summarizer import MemorySummarizer
from app.services.ingestion import IngestionOrchestrator
from tests.conftest import GYM_SUMMARY, TEST_DIMENSION
from tests.fakes import FakeEmbeddingBackend

GYM_NOTE = "Gym PR on deadlifts! 315x5"


class EditingBackend(FakeEmbeddingBackend):
    """Edits the memory right before returning its embedding."""

    def __init__(self, store, owner_id, memory_id, new_text):
        super().__init__(dimension=TEST_DIMENSION)
        self.store = store
        self.owner_id = owner_id
        self.memory_id = memory_id
        self.new_text = new_text

    async def embed(self, text, task_type):
        self.store.update(self.owner_id, self.memory_id, {"raw_text": self.new_text})
        return await super().embed(text, task_type)


def make_orchestrator(store, text_service, backend):
    return IngestionOrchestrator(
        store,
        enhancer=MemoryEnhancer(text_service),
        summarizer=MemorySummarizer(text_service, backoff_multiplier=0, backoff_max=0),
        embedder=EmbeddingClient(backend, dimension=TEST_DIMENSION, backoff_multiplier=0, backoff_max=0),
    )


class TestIngestionOrchestrator:
    """One memory through the full write path."""

    @pytest.mark.asyncio
    async def test_writes_summary_and_embedding(self, memory_service, store):
        record = store.create("alice", GYM_NOTE, mood="pumped")

        result = await memory_service.ingestion.process("alice", record.id)

        stored = store.get("alice", record.id)
        assert result.applied is True
        assert result.summary == GYM_SUMMARY
        assert result.embedding_dimensions == TEST_DIMENSION
        assert result.emotional_tone == "proud"
        assert stored.summary == GYM_SUMMARY
        assert len(stored.get_embedding()) == TEST_DIMENSION
        assert stored.is_processed

    @pytest.mark.asyncio
    async def test_embeds_the_composed_document(self, memory_service, store, embedding_backend):
        record = store.create("alice", GYM_NOTE, context="Morning session", mood="pumped")

        await memory_service.ingestion.process("alice", record.id)

        call = embedding_backend.calls[-1]
        assert call["task_type"] == "retrieval_document"
        assert GYM_NOTE in call["text"]
        assert GYM_SUMMARY in call["text"]
        assert "Morning session" in call["text"]

    @pytest.mark.asyncio
    async def test_embedding_failure_leaves_record_untouched(self, memory_service, store, embedding_backend):
        record = store.create("alice", GYM_NOTE)
        embedding_backend.errors.append(UpstreamError("invalid request"))

        with pytest.raises(UpstreamError):
            await memory_service.ingestion.process("alice", record.id)

        stored = store.get("alice", record.id)
        assert stored.summary is None
        assert stored.get_embedding() is None
        assert stored.processed_at is None

    @pytest.mark.asyncio
    async def test_summarizer_failure_is_fatal(self, memory_service, store, text_service):
        record = store.create("alice", GYM_NOTE)
        text_service.fail("summarizer", *[RateLimitError("429") for _ in range(3)])

        with pytest.raises(RateLimitError):
            await memory_service.ingestion.process("alice", record.id)

        assert store.get("alice", record.id).is_processed is False

    @pytest.mark.asyncio
    async def test_enhancer_failure_degrades(self, memory_service, store, text_service):
        record = store.create("alice", GYM_NOTE, mood="pumped")
        text_service.fail("enhancer", RateLimitError("429"))

        result = await memory_service.ingestion.process("alice", record.id)

        assert result.applied is True
        assert result.enhanced_text == GYM_NOTE
        assert result.key_entities == []
        assert result.emotional_tone == "pumped"
        assert store.get("alice", record.id).is_processed

    @pytest.mark.asyncio
    async def test_unknown_memory(self, memory_service):
        with pytest.raises(NotFoundError):
            await memory_service.ingestion.process("alice", "6f1c1d2e-0000-4000-8000-000000000000")

    @pytest.mark.asyncio
    async def test_other_owner_cannot_ingest(self, memory_service, store):
        record = store.create("alice", GYM_NOTE)

        with pytest.raises(NotFoundError):
            await memory_service.ingest("bob", record.id, GYM_NOTE)

    @pytest.mark.asyncio
    async def test_edit_during_processing_discards_result(self, store, text_service):
        record = store.create("alice", GYM_NOTE)
        backend = EditingBackend(store, "alice", record.id, "Gym PR on squats! 405x3")
        orchestrator = make_orchestrator(store, text_service, backend)

        result = await orchestrator.process("alice", record.id)

        stored = store.get("alice", record.id)
        assert result.applied is False
        assert stored.raw_text == "Gym PR on squats! 405x3"
        assert stored.summary is None
        assert stored.get_embedding() is None

    @pytest.mark.asyncio
    async def test_synchronous_ingest_reports_stale_result(self, store, text_service):
        record = store.create("alice", GYM_NOTE)
        backend = EditingBackend(store, "alice", record.id, "Gym PR on squats! 405x3")
        orchestrator = make_orchestrator(store, text_service, backend)

        with pytest.raises(StaleResultError):
            await orchestrator.ingest("alice", record.id, GYM_NOTE)

    @pytest.mark.asyncio
    async def test_ingest_of_outdated_text_is_stale(self, memory_service, store):
        record = store.create("alice", GYM_NOTE)

        with pytest.raises(StaleResultError):
            await memory_service.ingest("alice", record.id, "Gym PR on bench press")

        assert store.get("alice", record.id).is_processed is False

    @pytest.mark.asyncio
    async def test_reprocessing_is_idempotent(self, memory_service, store):
        record = store.create("alice", GYM_NOTE)

        first = await memory_service.ingest("alice", record.id, GYM_NOTE)
        second = await memory_service.ingest("alice", record.id, GYM_NOTE)

        assert first.summary == second.summary
        assert store.get("alice", record.id).summary == GYM_SUMMARY


class TestIngestionWorkerPool:
    """Background processing of created and edited memories."""

    @pytest.mark.asyncio
    async def test_created_memory_is_processed_in_background(self, memory_service):
        memory_service.start()
        try:
            record = memory_service.create_memory("alice", GYM_NOTE)
            assert record.is_processed is False

            await memory_service.workers.join()

            assert memory_service.get_memory("alice", record.id).summary == GYM_SUMMARY
            assert memory_service.workers.completed == 1
            assert memory_service.workers.pending() == 0
        finally:
            await memory_service.stop()

        assert memory_service.workers.running is False

    @pytest.mark.asyncio
    async def test_edited_memory_is_reprocessed(self, memory_service, text_service):
        memory_service.start()
        try:
            record = memory_service.create_memory("alice", GYM_NOTE)
            await memory_service.workers.join()

            text_service.summary = "Squat personal record of 405 lbs for 3 reps."
            memory_service.update_memory("alice", record.id, {"raw_text": "Gym PR on squats! 405x3"})
            await memory_service.workers.join()

            stored = memory_service.get_memory("alice", record.id)
            assert stored.raw_text == "Gym PR on squats! 405x3"
            assert stored.summary == "Squat personal record of 405 lbs for 3 reps."
        finally:
            await memory_service.stop()

    @pytest.mark.asyncio
    async def test_outdated_job_is_skipped(self, memory_service, store):
        record = store.create("alice", GYM_NOTE)
        memory_service.workers.submit("alice", record.id, GYM_NOTE)
        store.update("alice", record.id, {"raw_text": "Gym PR on squats! 405x3"})

        memory_service.start()
        try:
            await memory_service.workers.join()
        finally:
            await memory_service.stop()

        assert memory_service.workers.stale == 1
        assert memory_service.workers.completed == 0
        assert store.get("alice", record.id).is_processed is False

    @pytest.mark.asyncio
    async def test_failed_job_does_not_stop_workers(self, memory_service, embedding_backend):
        embedding_backend.errors.append(UpstreamError("invalid request"))
        memory_service.start()
        try:
            failing = memory_service.create_memory("alice", GYM_NOTE)
            await memory_service.workers.join()
            working = memory_service.create_memory("alice", "Sushi dinner with Ana")
            await memory_service.workers.join()

            assert memory_service.workers.failed == 1
            assert memory_service.workers.completed == 1
            assert memory_service.workers.running is True
            assert memory_service.get_memory("alice", failing.id).is_processed is False
            assert memory_service.get_memory("alice", working.id).is_processed is True
        finally:
            await memory_service.stop()

    @pytest.mark.asyncio
    async def test_deleted_memory_job_fails_quietly(self, memory_service, store):
        record = store.create("alice", GYM_NOTE)
        job = memory_service.workers.submit("alice", record.id, GYM_NOTE)
        store.delete("alice", record.id)

        result = await memory_service.workers.run_job(job)

        assert result is None
        assert memory_service.workers.failed == 1
