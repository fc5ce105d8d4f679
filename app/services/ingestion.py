"""
Write-time memory processing.

IngestionOrchestrator turns one stored memory into its searchable form
(summary + embedding). IngestionWorkerPool runs orchestrator jobs in the
background so that creating or editing a memory returns immediately.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import date
from typing import Callable, List, Optional

from app.core.deadline import Deadline
from app.core.errors import MemoryPipelineError, StaleResultError
from app.memory.embedder import EmbeddingClient
from app.memory.embedding_text import build_embedding_text
from app.memory.enhancer import MemoryEnhancer
from app.memory.summarizer import MemorySummarizer
from app.models.memory import compute_content_hash, utcnow
from app.models.schemas import EmbeddingTask, IngestionResult
from app.services.memory_store import MemoryStore

logger = logging.getLogger(__name__)


class IngestionOrchestrator:
    """
    Enhancer -> Summarizer -> Embedding Text Builder -> Embedding Client
    -> conditional write.

    Nothing is persisted until both the summary and the embedding exist,
    so a failed run leaves the record exactly as it was.
    """

    def __init__(
        self,
        store: MemoryStore,
        enhancer: MemoryEnhancer,
        summarizer: MemorySummarizer,
        embedder: EmbeddingClient,
        deadline_seconds: float = 120.0,
        clock: Callable[[], date] = lambda: utcnow().date(),
    ):
        """
        Initialize ingestion orchestrator.

        Args:
            store: Persistence gateway
            enhancer: Memory enhancer
            summarizer: Memory summarizer
            embedder: Embedding client
            deadline_seconds: Whole-run deadline
            clock: Returns the date used for the embedding text's date label
        """
        self.store = store
        self.enhancer = enhancer
        self.summarizer = summarizer
        self.embedder = embedder
        self.deadline_seconds = deadline_seconds
        self.clock = clock

    async def process(
        self,
        owner_id: str,
        memory_id: str,
        raw_text: Optional[str] = None,
        deadline: Optional[Deadline] = None,
    ) -> IngestionResult:
        """
        Process one memory.

        Args:
            owner_id: Owning user
            memory_id: Record id
            raw_text: Text to process (defaults to the stored text)
            deadline: Overall deadline (defaults to a fresh run deadline)

        Returns:
            IngestionResult: Pipeline output; ``applied`` is False when the
            record changed or vanished before the final write

        Raises:
            NotFoundError: If the record is not visible to the owner
            UpstreamError: If summarization or embedding fails
        """
        start_time = time.time()
        deadline = deadline or Deadline(self.deadline_seconds)

        record = self.store.get(owner_id, memory_id)
        raw_text = raw_text if raw_text is not None else record.raw_text
        content_hash = compute_content_hash(raw_text)

        logger.info(f"Processing memory {memory_id}")

        enhancement = await self.enhancer.enhance(
            raw_text,
            context=record.context,
            mood=record.mood,
            deadline=deadline,
        )

        summary = await self.summarizer.summarize(
            raw_text,
            enhancement.enhanced_text,
            context=record.context,
            mood=record.mood,
            key_entities=enhancement.key_entities,
            deadline=deadline,
        )

        embedding_text = build_embedding_text(
            raw_text=raw_text,
            enhanced_text=enhancement.enhanced_text,
            summary=summary,
            context=record.context,
            mood=record.mood,
            emotional_tone=enhancement.emotional_tone,
            key_entities=enhancement.key_entities,
            current_date=self.clock(),
        )

        embedding = await self.embedder.embed(
            embedding_text,
            EmbeddingTask.DOCUMENT,
            deadline=deadline,
            use_cache=False,
        )

        applied = self.store.apply_processing_result(
            owner_id,
            memory_id,
            summary=summary,
            embedding=embedding,
            content_hash=content_hash,
        )

        processing_time_ms = (time.time() - start_time) * 1000
        logger.info(
            f"Processed memory {memory_id} in {processing_time_ms:.1f}ms "
            f"(applied={applied}, degraded={enhancement.degraded})"
        )

        return IngestionResult(
            memory_id=memory_id,
            summary=summary,
            embedding_dimensions=len(embedding),
            enhanced_text=enhancement.enhanced_text,
            key_entities=enhancement.key_entities,
            emotional_tone=enhancement.emotional_tone,
            processing_time_ms=processing_time_ms,
            applied=applied,
        )

    async def ingest(self, owner_id: str, memory_id: str, raw_text: str) -> IngestionResult:
        """
        Process a memory on behalf of a synchronous caller.

        Raises:
            StaleResultError: If the record changed while it was processed
        """
        result = await self.process(owner_id, memory_id, raw_text)
        if not result.applied:
            raise StaleResultError("Memory changed while it was being processed")
        return result


@dataclass
class IngestionJob:
    """A queued request to (re)process one memory."""
    owner_id: str
    memory_id: str
    content_hash: str
    enqueued_at: float = 0.0


class IngestionWorkerPool:
    """
    Fixed pool of asyncio workers draining an ingestion queue.

    Job failures are logged and never propagate; the record stays
    unprocessed and is picked up again on its next edit.
    """

    def __init__(self, orchestrator: IngestionOrchestrator, workers: int = 2, queue_size: int = 0):
        """
        Initialize worker pool.

        Args:
            orchestrator: Orchestrator that runs each job
            workers: Number of concurrent workers
            queue_size: Queue bound (0 = unbounded)
        """
        self.orchestrator = orchestrator
        self.workers = workers
        self.queue: "asyncio.Queue[IngestionJob]" = asyncio.Queue(maxsize=queue_size)
        self._tasks: List[asyncio.Task] = []
        self.completed = 0
        self.failed = 0
        self.stale = 0

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    def pending(self) -> int:
        """Jobs waiting in the queue."""
        return self.queue.qsize()

    def start(self) -> None:
        """Start the workers (idempotent)."""
        if self.running:
            return
        self._tasks = [
            asyncio.create_task(self._worker(i), name=f"ingestion-worker-{i}")
            for i in range(self.workers)
        ]
        logger.info(f"Started {self.workers} ingestion workers")

    async def stop(self) -> None:
        """Cancel the workers and wait for them to exit."""
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.info("Ingestion workers stopped")

    async def join(self) -> None:
        """Wait until every queued job has been handled."""
        await self.queue.join()

    def submit(self, owner_id: str, memory_id: str, raw_text: str) -> IngestionJob:
        """
        Queue a memory for processing without waiting for it.

        Raises:
            asyncio.QueueFull: If the queue is bounded and full
        """
        job = IngestionJob(
            owner_id=owner_id,
            memory_id=memory_id,
            content_hash=compute_content_hash(raw_text),
            enqueued_at=time.time(),
        )
        self.queue.put_nowait(job)
        logger.debug(f"Queued ingestion of memory {memory_id} ({self.pending()} pending)")
        return job

    async def run_job(self, job: IngestionJob) -> Optional[IngestionResult]:
        """Run one job, logging instead of raising on failure."""
        try:
            record = self.orchestrator.store.get(job.owner_id, job.memory_id)
            if record.content_hash != job.content_hash:
                self.stale += 1
                logger.info(f"Skipping stale ingestion job for memory {job.memory_id}")
                return None

            result = await self.orchestrator.process(job.owner_id, job.memory_id, record.raw_text)
        except MemoryPipelineError as e:
            self.failed += 1
            logger.error(f"Ingestion of memory {job.memory_id} failed: {e.message}")
            return None
        except Exception as e:
            self.failed += 1
            logger.exception(f"Unexpected error ingesting memory {job.memory_id}: {e}")
            return None

        if result.applied:
            self.completed += 1
        else:
            self.stale += 1
        return result

    async def _worker(self, index: int) -> None:
        while True:
            job = await self.queue.get()
            try:
                await self.run_job(job)
            finally:
                self.queue.task_done()
