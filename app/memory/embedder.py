"""
Embedding client for converting text to vectors.

Wraps an embedding backend with dimension and sanity validation,
deadline-scoped calls, bounded retries and an in-process cache.
"""

import hashlib
import logging
import math
import time
from collections import OrderedDict
from typing import Dict, List, Optional

from app.core.deadline import Deadline, call_with_timeout
from app.core.errors import MalformedResponseError
from app.core.gemini import EmbeddingBackend
from app.core.rate_limiter import call_with_retry
from app.models.schemas import EmbeddingTask

logger = logging.getLogger(__name__)


class EmbeddingCache:
    """
    Bounded in-memory cache for embeddings.

    Avoids redundant API calls for repeated texts (typically repeated
    recall queries). Least recently used entries are evicted first.
    """

    def __init__(self, cache_size: int = 1000):
        """
        Initialize embedding cache.

        Args:
            cache_size: Maximum number of embeddings to cache (0 disables)
        """
        self.cache_size = cache_size
        self.cache: "OrderedDict[str, List[float]]" = OrderedDict()
        self.hits = 0
        self.misses = 0

    def _get_cache_key(self, text: str, model: str, task: str) -> str:
        """
        Generate cache key for text, model and task.

        Returns:
            str: Cache key
        """
        content = f"{model}:{task}:{text}"
        return hashlib.md5(content.encode('utf-8')).hexdigest()

    def get(self, text: str, model: str, task: str) -> Optional[List[float]]:
        key = self._get_cache_key(text, model, task)
        embedding = self.cache.get(key)
        if embedding is None:
            self.misses += 1
            return None
        self.cache.move_to_end(key)
        self.hits += 1
        return embedding

    def put(self, text: str, embedding: List[float], model: str, task: str) -> None:
        if self.cache_size <= 0:
            return
        key = self._get_cache_key(text, model, task)
        self.cache[key] = embedding
        self.cache.move_to_end(key)
        while len(self.cache) > self.cache_size:
            self.cache.popitem(last=False)

    def clear(self) -> None:
        """Clear all cached embeddings."""
        self.cache.clear()
        logger.info("Embedding cache cleared")


class EmbeddingClient:
    """
    Client for generating fixed-dimension text embeddings.

    Failures are fatal to the calling pipeline run; transient ones are
    retried with jittered backoff first.
    """

    def __init__(
        self,
        backend: EmbeddingBackend,
        dimension: int,
        timeout: float = 10.0,
        max_attempts: int = 3,
        backoff_multiplier: float = 1.0,
        backoff_max: float = 20.0,
        cache_size: int = 1000,
    ):
        """
        Initialize embedding client.

        Args:
            backend: Embedding service implementation
            dimension: Expected vector dimension (D)
            timeout: Per-call timeout in seconds
            max_attempts: Attempts for transient failures
            backoff_multiplier: Jittered backoff multiplier (seconds)
            backoff_max: Maximum backoff (seconds)
            cache_size: Embedding cache size (0 disables caching)
        """
        self.backend = backend
        self.dimension = dimension
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.backoff_multiplier = backoff_multiplier
        self.backoff_max = backoff_max
        self.cache = EmbeddingCache(cache_size=cache_size)

    def _validate(self, embedding) -> List[float]:
        """
        Check an embedding has dimension D and finite values.

        Raises:
            MalformedResponseError: If the vector is unusable
        """
        try:
            vector = [float(x) for x in embedding]
        except (TypeError, ValueError) as e:
            raise MalformedResponseError(f"Embedding is not a numeric vector: {e}")

        if len(vector) != self.dimension:
            raise MalformedResponseError(
                f"Embedding has {len(vector)} dimensions, expected {self.dimension}"
            )
        if not all(math.isfinite(x) for x in vector):
            raise MalformedResponseError("Embedding contains non-finite values")
        return vector

    async def embed(
        self,
        text: str,
        task: EmbeddingTask = EmbeddingTask.DOCUMENT,
        deadline: Optional[Deadline] = None,
        use_cache: bool = True,
    ) -> List[float]:
        """
        Get embedding for text.

        Args:
            text: Text to embed
            task: Document (ingestion) or query (recall) embedding
            deadline: Overall request/job deadline
            use_cache: Whether to use cached embeddings

        Returns:
            List[float]: Embedding vector of dimension D

        Raises:
            ValueError: If text is empty
            UpstreamError: If embedding fails

        Example:
            >>> vector = await client.embed("personal record gym", EmbeddingTask.QUERY)
            >>> len(vector) == client.dimension
            True
        """
        if not text or not text.strip():
            raise ValueError("Text cannot be empty")

        text = text.strip()
        model = self.backend.model_name

        if use_cache:
            cached = self.cache.get(text, model, task.value)
            if cached is not None:
                logger.debug(f"Cache hit for text: {text[:50]}...")
                return cached

        start_time = time.time()

        async def _attempt() -> List[float]:
            embedding = await call_with_timeout(
                lambda: self.backend.embed(text, task.value),
                self.timeout,
                deadline,
                description="embedding generation",
            )
            return self._validate(embedding)

        vector = await call_with_retry(
            _attempt,
            max_attempts=self.max_attempts,
            backoff_multiplier=self.backoff_multiplier,
            backoff_max=self.backoff_max,
            description="embedding generation",
        )

        if use_cache:
            self.cache.put(text, vector, model, task.value)

        logger.debug(f"Generated {len(vector)}-dimensional embedding in {time.time() - start_time:.2f}s")
        return vector

    def get_cache_stats(self) -> Dict[str, int]:
        """
        Get cache statistics.

        Returns:
            Dict: Cache statistics
        """
        return {
            'total_entries': len(self.cache.cache),
            'max_size': self.cache.cache_size,
            'hits': self.cache.hits,
            'misses': self.cache.misses,
        }
