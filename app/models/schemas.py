"""
Pydantic schemas for API request/response validation.

Defines the domain models passed between pipeline stages, the strict
schemas LLM output is validated against, and the API payloads.
"""

from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from app.models.memory import utcnow


class MatchType(str, Enum):
    """
    How a recall result was found.

    - temporal_semantic: ranked within a resolved date range
    - semantic_only: ranked over the recent-records window
    """
    TEMPORAL_SEMANTIC = "temporal_semantic"
    SEMANTIC_ONLY = "semantic_only"


class EmbeddingTask(str, Enum):
    """Embedding task types understood by the embedding service."""
    DOCUMENT = "retrieval_document"
    QUERY = "retrieval_query"


# ================================
# Pipeline domain models
# ================================

class DateRange(BaseModel):
    """Inclusive calendar date range (no time component)."""
    start: date
    end: date

    @model_validator(mode="after")
    def check_order(self):
        """Reject ranges that end before they start."""
        if self.end < self.start:
            raise ValueError("date_range end must not precede start")
        return self


class QueryAnalysis(BaseModel):
    """
    Result of temporal parsing of a recall query.

    semantic_query is the query with temporal phrasing removed; it equals
    original_query when no temporal phrase was found.
    """
    original_query: str
    semantic_query: str
    has_temporal: bool = False
    date_range: Optional[DateRange] = None
    degraded: bool = Field(default=False, description="Parser fell back after a failure")


class Enhancement(BaseModel):
    """Enhancer output: explicit meaning, entities and tone."""
    enhanced_text: str
    key_entities: List[str] = Field(default_factory=list)
    emotional_tone: str = "neutral"
    degraded: bool = False


class SearchResult(BaseModel):
    """A ranked recall hit."""
    id: str
    raw_text: str
    summary: Optional[str] = None
    context: Optional[str] = None
    mood: Optional[str] = None
    created_at: datetime
    similarity: float
    match_type: MatchType


class IngestionResult(BaseModel):
    """Outcome of one ingestion run."""
    memory_id: str
    summary: str
    embedding_dimensions: int
    enhanced_text: str
    key_entities: List[str]
    emotional_tone: str
    processing_time_ms: float
    applied: bool = Field(..., description="Whether the conditional write landed")


class RecallResult(BaseModel):
    """Outcome of one recall run."""
    query: QueryAnalysis
    results: List[SearchResult]
    count: int
    elapsed_ms: float


# ================================
# LLM output schemas (strict)
# ================================

class EnhancerOutput(BaseModel):
    """JSON the Enhancer prompt must produce."""
    model_config = ConfigDict(extra="ignore")

    enhanced_text: str = Field(..., min_length=1)
    key_entities: List[str] = Field(default_factory=list)
    emotional_tone: str = Field(..., min_length=1)

    @field_validator("enhanced_text", "emotional_tone")
    @classmethod
    def strip_required(cls, v: str) -> str:
        """Reject whitespace-only strings."""
        if not v.strip():
            raise ValueError("must not be blank")
        return v.strip()

    @field_validator("key_entities", mode="before")
    @classmethod
    def clean_entities(cls, v: Any) -> List[str]:
        """Stringify scalars, then drop blanks and duplicates, keeping first-seen order."""
        if not isinstance(v, list):
            raise ValueError("key_entities must be a list")
        seen = set()
        cleaned = []
        for entity in v:
            if isinstance(entity, bool) or not isinstance(entity, (str, int, float)):
                continue
            entity = str(entity).strip()
            if entity and entity.lower() not in seen:
                seen.add(entity.lower())
                cleaned.append(entity)
        return cleaned


class TemporalOutput(BaseModel):
    """JSON the Temporal Parser prompt must produce."""
    model_config = ConfigDict(extra="ignore")

    has_temporal: bool
    date_range: Optional[DateRange] = None
    semantic_query: str = ""

    @model_validator(mode="after")
    def check_consistency(self):
        """A temporal answer needs a range; a range needs has_temporal."""
        if self.has_temporal and self.date_range is None:
            raise ValueError("has_temporal is true but date_range is missing")
        if not self.has_temporal and self.date_range is not None:
            raise ValueError("date_range given but has_temporal is false")
        return self


# ================================
# API payloads
# ================================

class IngestRequest(BaseModel):
    """Request to process one memory synchronously."""
    memory_id: Optional[str] = Field(None, description="Memory identifier")
    raw_text: Optional[str] = Field(None, description="Memory text to process")

    @model_validator(mode="after")
    def check_required(self):
        """Both fields are required and must not be blank."""
        if not (self.memory_id and self.memory_id.strip() and self.raw_text and self.raw_text.strip()):
            raise ValueError("memory_id and raw_text are required")
        self.memory_id = self.memory_id.strip()
        self.raw_text = self.raw_text.strip()
        return self

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "memory_id": "123e4567-e89b-12d3-a456-426614174000",
            "raw_text": "Gym PR on deadlifts! 315x5"
        }
    })


class IngestMetadata(BaseModel):
    """Processing details returned with an ingest response."""
    enhanced_text_preview: str
    key_entities: List[str]
    emotional_tone: str
    processing_time_ms: float


class IngestResponse(BaseModel):
    """Successful ingest response."""
    success: bool = True
    memory_id: str
    summary: str
    embedding_dimensions: int
    metadata: IngestMetadata


class RecallRequest(BaseModel):
    """Natural-language recall request."""
    query: Optional[str] = Field(None, description="Search query, may contain relative dates")
    limit: Optional[int] = Field(default=None, ge=1, description="Maximum number of results")

    @field_validator("query")
    @classmethod
    def validate_query(cls, v: Optional[str]) -> str:
        """Validate query is not empty."""
        if not v or not v.strip():
            raise ValueError("Query is required")
        return v.strip()

    @model_validator(mode="after")
    def check_query_present(self):
        """Catch an omitted query (field validators skip defaults)."""
        if self.query is None:
            raise ValueError("Query is required")
        return self

    model_config = ConfigDict(json_schema_extra={
        "example": {"query": "last Monday at the gym", "limit": 20}
    })


class RecallQuery(BaseModel):
    """Query analysis as reported to API callers."""
    original: str
    semantic: str
    has_temporal: bool
    date_range: Optional[DateRange] = None


class RecallResponse(BaseModel):
    """Successful recall response."""
    success: bool = True
    query: RecallQuery
    results: List[SearchResult]
    count: int
    processing_time_ms: float


class MemoryCreateRequest(BaseModel):
    """Request to capture a new memory."""
    raw_text: str = Field(..., min_length=1, description="Memory text")
    context: Optional[str] = Field(None, description="Where / with whom / doing what")
    mood: Optional[str] = Field(None, max_length=255, description="How the user felt")

    @field_validator("raw_text")
    @classmethod
    def validate_text(cls, v: str) -> str:
        """Validate text is not empty."""
        if not v.strip():
            raise ValueError("raw_text cannot be empty")
        return v.strip()

    model_config = ConfigDict(json_schema_extra={
        "example": {"raw_text": "Gym PR on deadlifts! 315x5", "context": "Morning workout", "mood": "proud"}
    })


class MemoryUpdateRequest(BaseModel):
    """Partial update of a memory."""
    raw_text: Optional[str] = Field(None, min_length=1)
    context: Optional[str] = None
    mood: Optional[str] = Field(None, max_length=255)

    @field_validator("raw_text")
    @classmethod
    def validate_text(cls, v: Optional[str]) -> Optional[str]:
        """Validate text is not blank when provided."""
        if v is not None and not v.strip():
            raise ValueError("raw_text cannot be empty")
        return v.strip() if v is not None else v


class APIResponse(BaseModel):
    """
    Standard API response wrapper.

    Provides consistent response format across record-management endpoints.
    """
    success: bool = Field(..., description="Whether request was successful")
    data: Optional[Union[Dict[str, Any], List[Any], str, int, float]] = Field(
        None,
        description="Response data"
    )
    error: Optional[str] = Field(None, description="Error message if failed")
    timestamp: datetime = Field(
        default_factory=utcnow,
        description="Response timestamp"
    )


class HealthResponse(BaseModel):
    """
    Schema for health check response.

    Provides status of all system components.
    """
    status: str = Field(..., description="Overall system status")
    components: Dict[str, bool] = Field(..., description="Component health status")
    queue_depth: int = Field(0, description="Ingestion jobs waiting")
    timestamp: datetime = Field(
        default_factory=utcnow,
        description="Health check timestamp"
    )
    version: str = Field(..., description="API version")
