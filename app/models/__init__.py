"""Database models and schemas for the memory pipeline."""

from .memory import MemoryRecord
from .schemas import (
    APIResponse,
    DateRange,
    HealthResponse,
    MatchType,
    QueryAnalysis,
    SearchResult,
)

__all__ = [
    # SQLAlchemy models
    "MemoryRecord",
    # Pydantic schemas
    "APIResponse",
    "DateRange",
    "HealthResponse",
    "MatchType",
    "QueryAnalysis",
    "SearchResult",
]
