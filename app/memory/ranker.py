"""
Similarity ranking of recall candidates.

Scores candidates by cosine similarity to the query vector, filters by a
threshold and returns a deterministic top-k.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Sequence

import numpy as np

from app.models.schemas import MatchType, SearchResult

logger = logging.getLogger(__name__)


@dataclass
class Candidate:
    """A stored memory considered for a recall query."""
    id: str
    embedding: Optional[Sequence[float]]
    created_at: datetime
    raw_text: str = ""
    summary: Optional[str] = None
    context: Optional[str] = None
    mood: Optional[str] = None

    @classmethod
    def from_record(cls, record) -> "Candidate":
        return cls(
            id=record.id,
            embedding=record.get_embedding(),
            created_at=record.created_at,
            raw_text=record.raw_text,
            summary=record.summary,
            context=record.context,
            mood=record.mood,
        )


def cosine_similarity(vec1: Sequence[float], vec2: Sequence[float]) -> float:
    """
    Calculate cosine similarity between two vectors.

    Returns 0.0 when either vector has zero norm or the dimensions differ.

    Args:
        vec1: First vector
        vec2: Second vector

    Returns:
        float: Cosine similarity in [-1, 1]

    Example:
        >>> cosine_similarity([1.0, 0.0], [1.0, 0.0])
        1.0
    """
    v1 = np.asarray(vec1, dtype=float)
    v2 = np.asarray(vec2, dtype=float)

    if v1.ndim != 1 or v1.shape != v2.shape or v1.size == 0:
        return 0.0

    norm_v1 = np.linalg.norm(v1)
    norm_v2 = np.linalg.norm(v2)

    if norm_v1 == 0 or norm_v2 == 0:
        return 0.0

    similarity = float(np.dot(v1, v2) / (norm_v1 * norm_v2))
    return max(-1.0, min(1.0, similarity))


class SimilarityRanker:
    """
    Ranks candidates against a query vector.

    Ordering: similarity descending, then most recent created_at, then id,
    so equal inputs always produce the same output.
    """

    def __init__(self, threshold: float = 0.3):
        """
        Initialize ranker.

        Args:
            threshold: Results must score strictly above this value
        """
        self.threshold = threshold

    def rank(
        self,
        query_vector: Sequence[float],
        candidates: List[Candidate],
        top_k: int,
        date_filtered: bool,
    ) -> List[SearchResult]:
        """
        Score, filter, sort and truncate candidates.

        Args:
            query_vector: Embedding of the query
            candidates: Candidate memories (unprocessed ones are skipped)
            top_k: Maximum number of results
            date_filtered: Whether candidates came from a date-range query

        Returns:
            List[SearchResult]: Ranked results
        """
        if top_k <= 0:
            return []

        match_type = MatchType.TEMPORAL_SEMANTIC if date_filtered else MatchType.SEMANTIC_ONLY
        scored = []
        skipped = 0

        for candidate in candidates:
            if candidate.embedding is None:
                skipped += 1
                continue

            similarity = cosine_similarity(query_vector, candidate.embedding)
            if similarity > self.threshold:
                scored.append((similarity, candidate))

        if skipped:
            logger.debug(f"Skipped {skipped} unprocessed candidates")

        # Stable sorts: newest first with id ascending among equal timestamps, then by similarity
        scored.sort(key=lambda item: item[1].id)
        scored.sort(key=lambda item: item[1].created_at, reverse=True)
        scored.sort(key=lambda item: item[0], reverse=True)

        results = [
            SearchResult(
                id=candidate.id,
                raw_text=candidate.raw_text,
                summary=candidate.summary,
                context=candidate.context,
                mood=candidate.mood,
                created_at=candidate.created_at,
                similarity=similarity,
                match_type=match_type,
            )
            for similarity, candidate in scored[:top_k]
        ]

        logger.debug(f"Ranked {len(candidates)} candidates: {len(scored)} above threshold, returning {len(results)}")
        return results
