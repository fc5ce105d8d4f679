"""
Gemini-backed text and embedding services.

The pipeline depends only on the small TextService / EmbeddingBackend
protocols defined here; the Gemini classes are the production
implementations and are injected explicitly (never module-global).
"""

import logging
from typing import List, Optional, Protocol

import google.generativeai as genai

from app.core.config import Settings
from app.core.rate_limiter import RateLimiter, call_upstream

logger = logging.getLogger(__name__)


class TextService(Protocol):
    """Prompt in, text (or JSON text) out."""

    async def generate(
        self,
        prompt: str,
        *,
        system: Optional[str] = None,
        temperature: float = 0.3,
        max_output_tokens: int = 512,
        json_output: bool = False,
    ) -> str:
        ...


class EmbeddingBackend(Protocol):
    """Text in, vector out."""

    model_name: str

    async def embed(self, text: str, task_type: str) -> List[float]:
        ...


class GeminiTextService:
    """
    LLM Text Service using Gemini generative models.

    Each call is paced by the shared RateLimiter; failures are translated
    into the pipeline's upstream error taxonomy.
    """

    def __init__(self, api_key: str, model_name: str, rate_limiter: Optional[RateLimiter] = None):
        """
        Initialize Gemini text service.

        Args:
            api_key: Gemini API key
            model_name: Generative model name (e.g. gemini-1.5-flash)
            rate_limiter: Optional shared request pacer
        """
        if api_key:
            genai.configure(api_key=api_key)
        self.model_name = model_name
        self.rate_limiter = rate_limiter

    async def generate(
        self,
        prompt: str,
        *,
        system: Optional[str] = None,
        temperature: float = 0.3,
        max_output_tokens: int = 512,
        json_output: bool = False,
    ) -> str:
        """
        Generate a completion for a prompt.

        Args:
            prompt: User prompt
            system: Optional system instruction
            temperature: Sampling temperature
            max_output_tokens: Output token cap
            json_output: Request a JSON response body

        Returns:
            str: Model output text

        Raises:
            UpstreamError: On transport, quota or response failures
        """
        if self.rate_limiter is not None:
            await self.rate_limiter.acquire()

        generation_config = genai.types.GenerationConfig(
            temperature=temperature,
            max_output_tokens=max_output_tokens,
            candidate_count=1,
            response_mime_type="application/json" if json_output else "text/plain",
        )

        async def _call() -> str:
            model = genai.GenerativeModel(self.model_name, system_instruction=system)
            logger.debug(f"Calling Gemini API: {self.model_name}")
            response = await model.generate_content_async(prompt, generation_config=generation_config)
            # response.text raises ValueError when the candidate was blocked
            return response.text

        return await call_upstream(_call, f"Gemini generation ({self.model_name})")


class GeminiEmbeddingBackend:
    """Embedding Service using Gemini embedding models."""

    def __init__(
        self,
        api_key: str,
        model_name: str,
        dimension: Optional[int] = None,
        rate_limiter: Optional[RateLimiter] = None,
    ):
        if api_key:
            genai.configure(api_key=api_key)
        self.model_name = model_name
        self.dimension = dimension
        self.rate_limiter = rate_limiter

    async def embed(self, text: str, task_type: str) -> List[float]:
        """
        Embed text with the configured model.

        Args:
            text: Text to embed
            task_type: Gemini task type (retrieval_document / retrieval_query)

        Returns:
            List[float]: Embedding vector
        """
        if self.rate_limiter is not None:
            await self.rate_limiter.acquire()

        async def _call() -> List[float]:
            logger.debug(f"Calling Gemini embedding API: {self.model_name}")
            response = await genai.embed_content_async(
                model=self.model_name,
                content=text,
                task_type=task_type,
                output_dimensionality=self.dimension,
            )
            return response["embedding"]

        return await call_upstream(_call, f"Gemini embedding ({self.model_name})")


def build_gemini_services(config: Settings):
    """
    Build the production text service and embedding backend.

    Both share one RateLimiter so the per-minute budget covers all calls.

    Returns:
        Tuple[GeminiTextService, GeminiEmbeddingBackend]
    """
    limiter = RateLimiter(max_requests_per_minute=config.rate_limit_per_minute)
    text_service = GeminiTextService(config.gemini_api_key, config.gemini_model, limiter)
    embedding_backend = GeminiEmbeddingBackend(
        config.gemini_api_key,
        config.gemini_embedding_model,
        dimension=config.embedding_dimension,
        rate_limiter=limiter,
    )
    return text_service, embedding_backend
