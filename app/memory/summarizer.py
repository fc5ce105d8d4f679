"""
Recall-optimized memory summarization.

Produces a 1-2 sentence summary that leads with the details a person is
most likely to search for later (names, numbers, places) while keeping
the emotional significance of the moment.
"""

import logging
from typing import Iterable, Optional

from app.core.deadline import Deadline, call_with_timeout
from app.core.errors import MalformedResponseError
from app.core.gemini import TextService
from app.core.rate_limiter import call_with_retry

logger = logging.getLogger(__name__)

SUMMARIZER_SYSTEM_PROMPT = """You write summaries of personal memories that make them easy to find again later.

Rules:
1. 1-2 sentences, no more.
2. Lead with distinctive anchors: names, numbers, places, specific activities. Prefer "Deadlift PR of 315 lbs x5" over "Had a good workout".
3. Keep the emotional significance (proud, anxious, relieved, ...).
4. Only use facts present in the note, its context, mood or the expanded meaning.
5. Output the summary text only, no quotes or labels."""


class MemorySummarizer:
    """
    Summarizes a memory for later recall.

    Failure is fatal for the ingestion run: there is no fallback summary.
    """

    def __init__(
        self,
        text_service: TextService,
        timeout: float = 20.0,
        max_attempts: int = 3,
        backoff_multiplier: float = 1.0,
        backoff_max: float = 20.0,
        max_chars: int = 400,
    ):
        """
        Initialize memory summarizer.

        Args:
            text_service: LLM text service
            timeout: Per-call timeout in seconds
            max_attempts: Attempts for transient failures
            backoff_multiplier: Jittered backoff multiplier (seconds)
            backoff_max: Maximum backoff (seconds)
            max_chars: Summary length cap
        """
        self.text_service = text_service
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.backoff_multiplier = backoff_multiplier
        self.backoff_max = backoff_max
        self.max_chars = max_chars

    def _build_prompt(
        self,
        raw_text: str,
        enhanced_text: str,
        context: Optional[str],
        mood: Optional[str],
        key_entities: Iterable[str],
    ) -> str:
        """
        Build prompt for memory summarization.

        Returns:
            str: Summarization prompt
        """
        entities = ", ".join(key_entities)
        lines = [
            f"Note: {raw_text}",
            f"Expanded meaning: {enhanced_text}",
        ]
        if context:
            lines.append(f"Context: {context}")
        if mood:
            lines.append(f"Mood: {mood}")
        if entities:
            lines.append(f"Key entities: {entities}")
        lines.append("")
        lines.append("Summary:")
        return "\n".join(lines)

    def _clean_summary(self, text: str) -> str:
        """
        Normalize model output into a summary.

        Raises:
            MalformedResponseError: If nothing usable remains
        """
        summary = " ".join((text or "").split())
        if summary.lower().startswith("summary:"):
            summary = summary[len("summary:"):].strip()
        summary = summary.strip("\"'`").strip()

        if not summary:
            raise MalformedResponseError("Summarizer returned an empty summary")

        return self._truncate_to_budget(summary, self.max_chars)

    def _truncate_to_budget(self, text: str, max_chars: int) -> str:
        """
        Truncate text to fit within the character budget.

        Args:
            text: Text to truncate
            max_chars: Maximum characters

        Returns:
            str: Truncated text
        """
        if len(text) <= max_chars:
            return text

        # Truncate at sentence boundary if possible
        truncated = text[:max_chars]
        last_period = truncated.rfind('.')
        last_comma = truncated.rfind(',')

        if last_period > max_chars * 0.6:
            return truncated[:last_period + 1]
        elif last_comma > max_chars * 0.8:
            return truncated[:last_comma] + "..."
        else:
            return truncated.rstrip() + "..."

    async def summarize(
        self,
        raw_text: str,
        enhanced_text: str,
        context: Optional[str] = None,
        mood: Optional[str] = None,
        key_entities: Iterable[str] = (),
        deadline: Optional[Deadline] = None,
    ) -> str:
        """
        Summarize a memory.

        Args:
            raw_text: Memory text
            enhanced_text: Enhancer output
            context: Optional situational context
            mood: Optional user mood
            key_entities: Entities found by the enhancer
            deadline: Overall job deadline

        Returns:
            str: Recall-optimized summary

        Raises:
            UpstreamError: If the summary cannot be produced

        Example:
            >>> summary = await summarizer.summarize(
            ...     "Gym PR on deadlifts! 315x5",
            ...     "I set a new personal record on deadlifts at the gym: 315 pounds for 5 reps."
            ... )
            >>> "315" in summary
            True
        """
        prompt = self._build_prompt(raw_text, enhanced_text, context, mood, list(key_entities))

        async def _attempt() -> str:
            text = await call_with_timeout(
                lambda: self.text_service.generate(
                    prompt,
                    system=SUMMARIZER_SYSTEM_PROMPT,
                    temperature=0.3,
                    max_output_tokens=150,
                ),
                self.timeout,
                deadline,
                description="memory summarization",
            )
            return self._clean_summary(text)

        summary = await call_with_retry(
            _attempt,
            max_attempts=self.max_attempts,
            backoff_multiplier=self.backoff_multiplier,
            backoff_max=self.backoff_max,
            description="memory summarization",
        )

        logger.debug(f"Created summary: {len(summary)} chars")
        return summary
