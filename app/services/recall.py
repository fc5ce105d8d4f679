"""
Read-time hybrid recall.

Temporal Parser -> Embedding Client -> Candidate Retrieval -> Similarity
Ranker, strictly in that order, under one request deadline.
"""

import logging
import time
from datetime import date
from typing import Optional

from app.core.deadline import Deadline
from app.memory.embedder import EmbeddingClient
from app.memory.ranker import SimilarityRanker
from app.memory.retriever import CandidateRetriever
from app.memory.temporal import TemporalParser
from app.models.schemas import EmbeddingTask, RecallResult

logger = logging.getLogger(__name__)


class RecallOrchestrator:
    """Answers natural-language recall queries for one owner at a time."""

    def __init__(
        self,
        parser: TemporalParser,
        embedder: EmbeddingClient,
        retriever: CandidateRetriever,
        ranker: SimilarityRanker,
        deadline_seconds: float = 30.0,
    ):
        self.parser = parser
        self.embedder = embedder
        self.retriever = retriever
        self.ranker = ranker
        self.deadline_seconds = deadline_seconds

    async def recall(
        self,
        owner_id: str,
        query: str,
        top_k: int = 20,
        today: Optional[date] = None,
        deadline: Optional[Deadline] = None,
    ) -> RecallResult:
        """
        Recall memories matching a query.

        Args:
            owner_id: Owning user
            query: Natural-language query, may contain relative dates
            top_k: Maximum number of results
            today: Current date override (defaults to the parser's clock)
            deadline: Overall deadline (defaults to a fresh request deadline)

        Returns:
            RecallResult: Query analysis, ranked results and timing

        Raises:
            UpstreamError: If the query cannot be embedded

        Example:
            >>> result = await orchestrator.recall(owner_id, "last Monday at the gym")
            >>> result.query.date_range is not None
            True
        """
        start_time = time.time()
        deadline = deadline or Deadline(self.deadline_seconds)

        analysis = await self.parser.parse(query, today=today, deadline=deadline)

        semantic_text = analysis.semantic_query or analysis.original_query
        query_vector = await self.embedder.embed(semantic_text, EmbeddingTask.QUERY, deadline=deadline)

        candidates = self.retriever.fetch(owner_id, analysis.date_range)

        results = self.ranker.rank(
            query_vector,
            candidates,
            top_k=top_k,
            date_filtered=analysis.date_range is not None,
        )

        elapsed_ms = (time.time() - start_time) * 1000
        logger.info(
            f"Recall for owner {owner_id}: {len(results)} results from "
            f"{len(candidates)} candidates in {elapsed_ms:.1f}ms (temporal={analysis.has_temporal})"
        )

        return RecallResult(
            query=analysis,
            results=results,
            count=len(results),
            elapsed_ms=elapsed_ms,
        )
