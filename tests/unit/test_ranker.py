"""
Unit tests for cosine similarity and candidate ranking.
"""

import time
from datetime import datetime, timedelta

import pytest

from app.memory.ranker import Candidate, SimilarityRanker, cosine_similarity
from app.models.schemas import MatchType

BASE_TIME = datetime(2026, 2, 2, 12, 0, 0)


def make_candidate(memory_id, embedding, minutes=0):
    return Candidate(
        id=memory_id,
        embedding=embedding,
        created_at=BASE_TIME + timedelta(minutes=minutes),
        raw_text=f"memory {memory_id}",
    )


class TestCosineSimilarity:
    """Range and degenerate inputs."""

    def test_identical_vectors(self):
        assert cosine_similarity([0.3, -1.2, 4.0], [0.3, -1.2, 4.0]) == pytest.approx(1.0)

    def test_opposite_vectors(self):
        assert cosine_similarity([1.0, 2.0], [-1.0, -2.0]) == pytest.approx(-1.0)

    def test_orthogonal_vectors(self):
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)

    def test_zero_norm_is_zero(self):
        assert cosine_similarity([0.0, 0.0], [1.0, 1.0]) == 0.0

    def test_dimension_mismatch_is_zero(self):
        assert cosine_similarity([1.0, 0.0, 0.0], [1.0, 0.0]) == 0.0

    def test_empty_is_zero(self):
        assert cosine_similarity([], []) == 0.0

    @pytest.mark.parametrize("a, b", [
        ([1e9, 1e-9], [1e9, 1e-9]),
        ([0.1, 0.2, 0.3], [-0.3, 0.2, -0.1]),
        ([5, 5, 5, 5], [1, 2, 3, 4]),
    ])
    def test_result_stays_in_range(self, a, b):
        assert -1.0 <= cosine_similarity(a, b) <= 1.0


class TestSimilarityRanker:
    """Threshold, ordering, truncation and match type."""

    def test_threshold_is_exclusive(self):
        ranker = SimilarityRanker(threshold=0.6)
        # cos([1,0],[1,1]) = 0.7071, cos([1,0],[3,4]) = 0.6
        candidates = [
            make_candidate("above", [1.0, 1.0]),
            make_candidate("at", [3.0, 4.0]),
            make_candidate("below", [0.0, 1.0]),
        ]

        results = ranker.rank([1.0, 0.0], candidates, top_k=10, date_filtered=False)

        assert [r.id for r in results] == ["above"]
        assert all(r.similarity > 0.6 for r in results)

    def test_candidates_without_embedding_are_skipped(self):
        ranker = SimilarityRanker(threshold=0.0)
        candidates = [make_candidate("pending", None), make_candidate("done", [1.0, 0.0])]

        results = ranker.rank([1.0, 0.0], candidates, top_k=10, date_filtered=False)

        assert [r.id for r in results] == ["done"]

    def test_sorted_by_similarity_descending(self):
        ranker = SimilarityRanker(threshold=0.0)
        candidates = [
            make_candidate("weak", [1.0, 2.0]),
            make_candidate("strong", [1.0, 0.1]),
            make_candidate("medium", [1.0, 1.0]),
        ]

        results = ranker.rank([1.0, 0.0], candidates, top_k=10, date_filtered=False)

        assert [r.id for r in results] == ["strong", "medium", "weak"]

    def test_ties_broken_by_recency_then_id(self):
        ranker = SimilarityRanker(threshold=0.0)
        candidates = [
            make_candidate("b-old", [1.0, 0.0], minutes=0),
            make_candidate("c-new", [2.0, 0.0], minutes=10),
            make_candidate("a-old", [3.0, 0.0], minutes=0),
        ]

        results = ranker.rank([1.0, 0.0], candidates, top_k=10, date_filtered=False)

        assert [r.id for r in results] == ["c-new", "a-old", "b-old"]

    @pytest.mark.skipif(not hasattr(time, "tzset"), reason="needs time.tzset")
    def test_recency_independent_of_host_timezone(self, monkeypatch):
        # 02:30 falls in the US spring-forward gap on 2026-03-08
        monkeypatch.setenv("TZ", "America/New_York")
        time.tzset()
        try:
            ranker = SimilarityRanker(threshold=0.0)
            in_gap = Candidate(id="in-gap", embedding=[1.0, 0.0], created_at=datetime(2026, 3, 8, 2, 30))
            later = Candidate(id="later", embedding=[1.0, 0.0], created_at=datetime(2026, 3, 8, 3, 10))

            results = ranker.rank([1.0, 0.0], [in_gap, later], top_k=10, date_filtered=False)

            assert [r.id for r in results] == ["later", "in-gap"]
        finally:
            monkeypatch.undo()
            time.tzset()

    def test_ranking_is_deterministic_across_input_orders(self):
        ranker = SimilarityRanker(threshold=0.0)
        candidates = [
            make_candidate("x", [1.0, 0.5], minutes=1),
            make_candidate("y", [1.0, 0.5], minutes=1),
            make_candidate("z", [1.0, 0.2], minutes=2),
        ]

        forward = ranker.rank([1.0, 0.0], candidates, top_k=10, date_filtered=True)
        backward = ranker.rank([1.0, 0.0], list(reversed(candidates)), top_k=10, date_filtered=True)

        assert [r.id for r in forward] == [r.id for r in backward]

    def test_truncates_to_top_k(self):
        ranker = SimilarityRanker(threshold=0.0)
        candidates = [make_candidate(str(i), [1.0, i / 10]) for i in range(10)]

        results = ranker.rank([1.0, 0.0], candidates, top_k=3, date_filtered=False)

        assert len(results) == 3
        assert [r.id for r in results] == ["0", "1", "2"]

    def test_count_never_exceeds_passing_candidates(self):
        ranker = SimilarityRanker(threshold=0.3)
        candidates = [make_candidate("hit", [1.0, 0.0]), make_candidate("miss", [0.0, 1.0])]

        results = ranker.rank([1.0, 0.0], candidates, top_k=20, date_filtered=False)

        assert len(results) == 1

    def test_non_positive_top_k_returns_nothing(self):
        ranker = SimilarityRanker()
        assert ranker.rank([1.0], [make_candidate("a", [1.0])], top_k=0, date_filtered=False) == []

    @pytest.mark.parametrize("date_filtered, expected", [
        (True, MatchType.TEMPORAL_SEMANTIC),
        (False, MatchType.SEMANTIC_ONLY),
    ])
    def test_match_type(self, date_filtered, expected):
        ranker = SimilarityRanker()

        results = ranker.rank([1.0, 0.0], [make_candidate("a", [1.0, 0.0])], top_k=5, date_filtered=date_filtered)

        assert results[0].match_type == expected
