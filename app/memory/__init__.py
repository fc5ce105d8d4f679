"""Memory processing components."""

from .embedder import EmbeddingClient
from .embedding_text import build_embedding_text
from .enhancer import MemoryEnhancer
from .ranker import SimilarityRanker, cosine_similarity
from .retriever import CandidateRetriever
from .summarizer import MemorySummarizer
from .temporal import TemporalParser

__all__ = [
    "EmbeddingClient",
    "build_embedding_text",
    "MemoryEnhancer",
    "SimilarityRanker",
    "cosine_similarity",
    "CandidateRetriever",
    "MemorySummarizer",
    "TemporalParser",
]
