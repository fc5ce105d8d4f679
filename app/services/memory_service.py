"""
Core memory service for business logic.

Wires the persistence gateway, the ingestion and recall orchestrators and
the ingestion worker pool together, and exposes the high-level operations
the API layer calls.
"""

import asyncio
import logging
from datetime import date
from typing import Any, Dict, List, Optional

from sqlalchemy.engine import Engine

from app.core.config import Settings
from app.core.database import (
    check_database_connection, create_db_engine, create_session_factory, init_database,
)
from app.core.gemini import EmbeddingBackend, TextService, build_gemini_services
from app.memory.embedder import EmbeddingClient
from app.memory.enhancer import MemoryEnhancer
from app.memory.ranker import SimilarityRanker
from app.memory.retriever import CandidateRetriever
from app.memory.summarizer import MemorySummarizer
from app.memory.temporal import TemporalParser
from app.models.memory import MemoryRecord
from app.models.schemas import IngestionResult, RecallResult
from app.services.ingestion import IngestionOrchestrator, IngestionWorkerPool
from app.services.memory_store import MemoryStore
from app.services.recall import RecallOrchestrator

logger = logging.getLogger(__name__)


class MemoryService:
    """
    High-level memory management service.

    Record changes return as soon as they are stored; processing is
    handed to the worker pool.
    """

    def __init__(
        self,
        store: MemoryStore,
        ingestion: IngestionOrchestrator,
        recall_orchestrator: RecallOrchestrator,
        workers: IngestionWorkerPool,
        config: Settings,
        engine: Optional[Engine] = None,
        upstream_configured: bool = True,
    ):
        self.store = store
        self.ingestion = ingestion
        self.recall_orchestrator = recall_orchestrator
        self.workers = workers
        self.config = config
        self.engine = engine
        self.upstream_configured = upstream_configured

    # ================================
    # Lifecycle
    # ================================

    def start(self) -> None:
        """Create tables (if needed) and start ingestion workers."""
        if self.engine is not None:
            init_database(self.engine)
        self.workers.start()

    async def stop(self) -> None:
        """Stop ingestion workers; queued jobs are dropped."""
        if self.workers.pending():
            logger.warning(f"Stopping with {self.workers.pending()} ingestion jobs still queued")
        await self.workers.stop()

    # ================================
    # Record management
    # ================================

    def create_memory(
        self,
        owner_id: str,
        raw_text: str,
        context: Optional[str] = None,
        mood: Optional[str] = None,
    ) -> MemoryRecord:
        """
        Store a memory and queue it for processing.

        Example:
            >>> record = service.create_memory("user123", "Gym PR on deadlifts! 315x5")
            >>> record.is_processed
            False
        """
        record = self.store.create(owner_id, raw_text, context=context, mood=mood)
        self.enqueue(record)
        return record

    def update_memory(self, owner_id: str, memory_id: str, changes: Dict[str, Any]) -> MemoryRecord:
        """Apply a partial update and queue the record for reprocessing."""
        record = self.store.update(owner_id, memory_id, changes)
        if changes:
            self.enqueue(record)
        return record

    def delete_memory(self, owner_id: str, memory_id: str) -> None:
        self.store.delete(owner_id, memory_id)

    def get_memory(self, owner_id: str, memory_id: str) -> MemoryRecord:
        return self.store.get(owner_id, memory_id)

    def list_memories(self, owner_id: str, limit: int = 100, offset: int = 0) -> List[MemoryRecord]:
        return self.store.list(owner_id, limit=limit, offset=offset)

    def enqueue(self, record: MemoryRecord) -> bool:
        """
        Queue a record for background processing.

        Returns:
            bool: False if the queue was full (the record stays unprocessed)
        """
        try:
            self.workers.submit(record.owner_id, record.id, record.raw_text)
        except asyncio.QueueFull as e:
            logger.error(f"Could not queue memory {record.id} for processing: {e}")
            return False
        return True

    # ================================
    # Pipelines
    # ================================

    async def ingest(self, owner_id: str, memory_id: str, raw_text: str) -> IngestionResult:
        """
        Process a memory synchronously.

        Raises:
            NotFoundError: If the record is not visible to the owner
            StaleResultError: If the record changed during processing
            UpstreamError: If summarization or embedding fails
        """
        return await self.ingestion.ingest(owner_id, memory_id, raw_text)

    async def recall(
        self,
        owner_id: str,
        query: str,
        limit: Optional[int] = None,
        today: Optional[date] = None,
    ) -> RecallResult:
        """
        Recall memories for a natural-language query.

        Args:
            owner_id: Owning user
            query: Search query
            limit: Maximum results (defaults to default_recall_limit, capped at max_recall_limit)
            today: Current date override

        Returns:
            RecallResult: Ranked results
        """
        top_k = min(limit or self.config.default_recall_limit, self.config.max_recall_limit)
        return await self.recall_orchestrator.recall(owner_id, query, top_k=top_k, today=today)

    # ================================
    # Health
    # ================================

    def health(self) -> Dict[str, Any]:
        """
        Component health.

        Returns:
            Dict: ``status``, per-component flags and ingestion queue depth
        """
        components = {
            "database": check_database_connection(self.engine) if self.engine is not None else True,
            "upstream_configured": self.upstream_configured,
            "ingestion_workers": self.workers.running,
        }

        return {
            "status": "healthy" if all(components.values()) else "degraded",
            "components": components,
            "queue_depth": self.workers.pending(),
            "cache": self.ingestion.embedder.get_cache_stats(),
        }


def build_memory_service(
    config: Settings,
    text_service: Optional[TextService] = None,
    embedding_backend: Optional[EmbeddingBackend] = None,
    engine: Optional[Engine] = None,
) -> MemoryService:
    """
    Assemble the memory service from configuration.

    Service handles are injected here rather than held in module globals;
    pass fakes for text_service / embedding_backend / engine in tests.

    Args:
        config: Application settings
        text_service: LLM text service (defaults to Gemini)
        embedding_backend: Embedding backend (defaults to Gemini)
        engine: Database engine (defaults to one built from database_url)

    Returns:
        MemoryService: Ready-to-start service
    """
    upstream_configured = True
    if text_service is None or embedding_backend is None:
        upstream_configured = bool(config.gemini_api_key)
        if not upstream_configured:
            logger.warning("GEMINI_API_KEY is not set; ingestion and recall will fail")
        gemini_text, gemini_embeddings = build_gemini_services(config)
        text_service = text_service or gemini_text
        embedding_backend = embedding_backend or gemini_embeddings

    engine = engine or create_db_engine(config)
    store = MemoryStore(create_session_factory(engine))

    embedder = EmbeddingClient(
        embedding_backend,
        dimension=config.embedding_dimension,
        timeout=config.embedding_timeout_seconds,
        max_attempts=config.retry_max_attempts,
        backoff_multiplier=config.retry_backoff_multiplier,
        backoff_max=config.retry_backoff_max,
        cache_size=config.embedding_cache_size,
    )

    ingestion = IngestionOrchestrator(
        store,
        enhancer=MemoryEnhancer(text_service, timeout=config.llm_timeout_seconds),
        summarizer=MemorySummarizer(
            text_service,
            timeout=config.llm_timeout_seconds,
            max_attempts=config.retry_max_attempts,
            backoff_multiplier=config.retry_backoff_multiplier,
            backoff_max=config.retry_backoff_max,
            max_chars=config.summary_max_chars,
        ),
        embedder=embedder,
        deadline_seconds=config.ingestion_deadline_seconds,
    )

    recall = RecallOrchestrator(
        parser=TemporalParser(
            text_service,
            timezone=config.timezone,
            timeout=config.llm_timeout_seconds,
            llm_enabled=config.temporal_llm_enabled,
        ),
        embedder=embedder,
        retriever=CandidateRetriever(
            store,
            recency_window=config.recency_window,
            date_slack_days=config.date_slack_days,
        ),
        ranker=SimilarityRanker(threshold=config.similarity_threshold),
        deadline_seconds=config.recall_deadline_seconds,
    )

    workers = IngestionWorkerPool(
        ingestion,
        workers=config.ingestion_workers,
        queue_size=config.ingestion_queue_size,
    )

    logger.info("Memory service assembled")
    return MemoryService(
        store, ingestion, recall, workers, config,
        engine=engine,
        upstream_configured=upstream_configured,
    )
