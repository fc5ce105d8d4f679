"""
Security utilities for input validation and sanitization.

Normalizes memory text and recall queries before they reach storage or an
LLM prompt, and validates record identifiers.
"""

import re
import uuid
from typing import Optional

from app.core.errors import ValidationError

# Control characters except tab and newline
CONTROL_CHARS = re.compile(r'[\x00-\x08\x0b-\x1f\x7f-\x9f]')


def normalize_memory_text(text: Optional[str], max_length: int = 5000, field: str = "raw_text") -> str:
    """
    Normalize memory text for storage.

    Strips control characters and surrounding whitespace and collapses
    runs of blank lines. Punctuation is left alone: memories are free text.

    Args:
        text: Raw text input from user
        max_length: Maximum allowed length
        field: Field name used in error messages

    Returns:
        Normalized text

    Raises:
        ValidationError: If text is missing, blank or too long
    """
    if not text or not isinstance(text, str):
        raise ValidationError(f"{field} is required")

    text = CONTROL_CHARS.sub('', text)
    text = re.sub(r'[ \t]+', ' ', text)
    text = re.sub(r'\n\s*\n+', '\n\n', text)
    text = text.strip()

    if not text:
        raise ValidationError(f"{field} cannot be empty")

    if len(text) > max_length:
        raise ValidationError(f"{field} too long. Maximum {max_length} characters allowed.")

    return text


def normalize_optional_text(text: Optional[str], max_length: int = 1000, field: str = "field") -> Optional[str]:
    """Normalize optional text such as context or mood; blank becomes None."""
    if text is None:
        return None

    text = CONTROL_CHARS.sub('', text).strip()
    if not text:
        return None

    if len(text) > max_length:
        raise ValidationError(f"{field} too long. Maximum {max_length} characters allowed.")

    return text


def validate_search_query(query: Optional[str], max_length: int = 500) -> str:
    """
    Validate and sanitize search query.

    Args:
        query: Search query string
        max_length: Maximum allowed length

    Returns:
        Sanitized search query

    Raises:
        ValidationError: If query is invalid
    """
    if not query or not isinstance(query, str):
        raise ValidationError("Query is required")

    query = CONTROL_CHARS.sub('', query)
    query = ' '.join(query.split())

    if not query:
        raise ValidationError("Query is required")

    if len(query) > max_length:
        raise ValidationError(f"Search query too long. Maximum {max_length} characters allowed.")

    return query


def validate_memory_id(memory_id: Optional[str]) -> str:
    """
    Validate a memory id.

    Args:
        memory_id: Memory identifier

    Returns:
        Canonical (lower-case, hyphenated) UUID string

    Raises:
        ValidationError: If memory_id is missing or not a UUID
    """
    if not memory_id or not isinstance(memory_id, str):
        raise ValidationError("memory_id is required")

    try:
        return str(uuid.UUID(memory_id.strip()))
    except ValueError:
        raise ValidationError("memory_id must be a UUID")
