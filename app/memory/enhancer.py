"""
Memory enhancement using the LLM text service.

Makes the implicit meaning of a short note explicit and extracts the
entities and emotional tone, so that later vague queries have more to
match against. This is the one write-path stage allowed to degrade.
"""

import json
import logging
from typing import Optional

from pydantic import ValidationError as PydanticValidationError

from app.core.deadline import Deadline, call_with_timeout
from app.core.errors import MalformedResponseError, PartialDegradation, UpstreamError
from app.core.gemini import TextService
from app.models.schemas import Enhancement, EnhancerOutput

logger = logging.getLogger(__name__)

ENHANCER_SYSTEM_PROMPT = """You help a personal memory app understand short notes people write to themselves.

Rewrite the note so its implicit meaning is explicit:
- Expand abbreviations and shorthand (e.g. "PR" -> "personal record", "315x5" -> "315 pounds for 5 reps").
- Say what kind of moment this is (achievement, meal, conversation, trip, worry, ...).
- Do NOT invent facts that are not implied by the note, its context or its mood.
- Write 2-4 sentences in the first person.

Also list the key entities (people, places, activities, objects, numbers) and describe the emotional tone in one or two words.

Respond with JSON only:
{"enhanced_text": "...", "key_entities": ["..."], "emotional_tone": "..."}"""


def build_enhancer_prompt(raw_text: str, context: Optional[str], mood: Optional[str]) -> str:
    lines = [f"Note: {raw_text}"]
    if context:
        lines.append(f"Context: {context}")
    if mood:
        lines.append(f"Mood: {mood}")
    return "\n".join(lines)


def parse_enhancer_output(text: str) -> EnhancerOutput:
    """
    Validate the Enhancer's JSON answer.

    Raises:
        MalformedResponseError: If the text is not valid JSON of the expected shape
    """
    try:
        payload = json.loads(text)
    except (TypeError, ValueError) as e:
        raise MalformedResponseError(f"Enhancer returned invalid JSON: {e}")

    try:
        return EnhancerOutput.model_validate(payload)
    except PydanticValidationError as e:
        raise MalformedResponseError(f"Enhancer JSON failed validation: {e.errors()}")


class MemoryEnhancer:
    """
    Expands a raw memory into explicit text, entities and tone.

    Any upstream failure (transport, timeout, malformed JSON, deadline)
    results in the fallback enhancement rather than an error.
    """

    def __init__(self, text_service: TextService, timeout: float = 20.0):
        """
        Initialize memory enhancer.

        Args:
            text_service: LLM text service
            timeout: Per-call timeout in seconds
        """
        self.text_service = text_service
        self.timeout = timeout

    @staticmethod
    def fallback(raw_text: str, mood: Optional[str]) -> Enhancement:
        """Enhancement used when the LLM cannot be used."""
        return Enhancement(
            enhanced_text=raw_text,
            key_entities=[],
            emotional_tone=mood or "neutral",
            degraded=True,
        )

    async def enhance(
        self,
        raw_text: str,
        context: Optional[str] = None,
        mood: Optional[str] = None,
        deadline: Optional[Deadline] = None,
    ) -> Enhancement:
        """
        Enhance a memory.

        Args:
            raw_text: Memory text
            context: Optional situational context
            mood: Optional user mood
            deadline: Overall job deadline

        Returns:
            Enhancement: LLM enhancement, or the fallback on failure

        Example:
            >>> enhancement = await enhancer.enhance("Gym PR on deadlifts! 315x5")
            >>> enhancement.emotional_tone
            'proud'
        """
        prompt = build_enhancer_prompt(raw_text, context, mood)

        try:
            text = await call_with_timeout(
                lambda: self.text_service.generate(
                    prompt,
                    system=ENHANCER_SYSTEM_PROMPT,
                    temperature=0.3,
                    max_output_tokens=512,
                    json_output=True,
                ),
                self.timeout,
                deadline,
                description="memory enhancement",
            )
            output = parse_enhancer_output(text)
        except UpstreamError as e:
            logger.warning(str(PartialDegradation("enhancer", e)))
            return self.fallback(raw_text, mood)

        logger.debug(f"Enhanced memory: {len(output.key_entities)} entities, tone={output.emotional_tone}")
        return Enhancement(
            enhanced_text=output.enhanced_text,
            key_entities=output.key_entities,
            emotional_tone=output.emotional_tone,
        )
