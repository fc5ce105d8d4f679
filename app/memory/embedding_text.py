"""
Embedding text construction.

Combines everything known about a memory into one labelled document.
Sections always appear in this order (empty optional ones are skipped):

    Memory:          raw text as written
    Meaning:         enhanced text
    Summary:         recall-optimized summary
    Context:         situational context
    Mood:            mood supplied by the user
    Emotional tone:  tone reported by the enhancer
    Entities:        key entities, sorted case-insensitively
    Date:            YYYY-MM-DD (Weekday)

A stable layout keeps structurally similar memories close in vector space.
"""

from datetime import date
from typing import Iterable, List, Optional, Tuple

SECTION_ORDER = (
    "Memory",
    "Meaning",
    "Summary",
    "Context",
    "Mood",
    "Emotional tone",
    "Entities",
    "Date",
)


def format_date_label(day: date) -> str:
    return f"{day.isoformat()} ({day.strftime('%A')})"


def build_embedding_text(
    raw_text: str,
    enhanced_text: Optional[str],
    summary: Optional[str],
    context: Optional[str],
    mood: Optional[str],
    emotional_tone: Optional[str],
    key_entities: Iterable[str],
    current_date: date,
) -> str:
    """
    Build the text that is embedded for a memory.

    Args:
        raw_text: Memory text as written
        enhanced_text: Enhancer output
        summary: Summarizer output
        context: Optional situational context
        mood: Optional user mood
        emotional_tone: Enhancer tone
        key_entities: Extracted entities (order does not matter)
        current_date: Date label for the document

    Returns:
        str: Newline-separated labelled sections

    Example:
        >>> build_embedding_text("Gym PR", None, "Deadlift PR", None, None,
        ...                      "proud", ["gym"], date(2026, 2, 7))
        'Memory: Gym PR\\nSummary: Deadlift PR\\nEmotional tone: proud\\nEntities: gym\\nDate: 2026-02-07 (Saturday)'
    """
    entities = sorted({e.strip() for e in key_entities if e and e.strip()}, key=lambda e: (e.lower(), e))

    values: List[Tuple[str, Optional[str]]] = [
        ("Memory", raw_text),
        ("Meaning", enhanced_text),
        ("Summary", summary),
        ("Context", context),
        ("Mood", mood),
        ("Emotional tone", emotional_tone),
        ("Entities", ", ".join(entities)),
        ("Date", format_date_label(current_date)),
    ]

    lines = []
    for label, value in values:
        if value is None:
            continue
        value = " ".join(value.split())
        if value:
            lines.append(f"{label}: {value}")
    return "\n".join(lines)
