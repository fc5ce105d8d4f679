"""
Memory API endpoints.

Provides the ingest and recall endpoints, record management and the
health check. Errors from the pipeline propagate to the application's
exception handlers, which render them as ``{"success": false, "error": ...}``.
"""

import asyncio
import logging
from typing import Any, Awaitable, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from app.api.dependencies import get_current_owner, get_memory_service
from app.core.config import settings
from app.models.memory import MemoryRecord, utcnow
from app.models.schemas import (
    APIResponse, HealthResponse, IngestMetadata, IngestRequest, IngestResponse,
    MemoryCreateRequest, MemoryUpdateRequest, RecallQuery, RecallRequest, RecallResponse,
)
from app.services.memory_service import MemoryService
from app.utils.security import (
    normalize_memory_text, normalize_optional_text, validate_memory_id, validate_search_query,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/memory", tags=["memory"])
records_router = APIRouter(prefix="/memories", tags=["memories"])

PREVIEW_CHARS = 200
DISCONNECT_POLL_SECONDS = 0.5


def create_api_response(success: bool, data=None, error: str = None) -> APIResponse:
    """
    Create standardized API response.

    Args:
        success: Whether operation was successful
        data: Response data
        error: Error message if failed

    Returns:
        APIResponse: Standardized response
    """
    return APIResponse(
        success=success,
        data=data,
        error=error,
        timestamp=utcnow()
    )


def _preview(text: str, limit: int = PREVIEW_CHARS) -> str:
    return text if len(text) <= limit else text[:limit].rstrip() + "..."


def _record_payload(record: MemoryRecord) -> dict:
    return record.to_dict()


async def run_until_disconnect(request: Request, work: Awaitable[Any]) -> Optional[Any]:
    """
    Await work, cancelling it if the client goes away first.

    Returns:
        The work's result, or None if the client disconnected
    """
    task = asyncio.ensure_future(work)
    try:
        while True:
            done, _ = await asyncio.wait({task}, timeout=DISCONNECT_POLL_SECONDS)
            if done:
                return task.result()
            if await request.is_disconnected():
                logger.info(f"Client disconnected; cancelling {request.url.path}")
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)
                return None
    finally:
        if not task.done():
            task.cancel()


# ================================
# Pipelines
# ================================

@router.post("/ingest", response_model=IngestResponse)
async def ingest_memory(
    request: IngestRequest,
    owner_id: str = Depends(get_current_owner),
    service: MemoryService = Depends(get_memory_service),
):
    """
    Process a memory: enhance, summarize, embed and store.

    Example:
        POST /api/v1/memory/ingest
        {"memory_id": "123e4567-e89b-12d3-a456-426614174000", "raw_text": "Gym PR on deadlifts! 315x5"}

        Response:
        {
            "success": true,
            "memory_id": "123e4567-e89b-12d3-a456-426614174000",
            "summary": "New 315 lb x5 deadlift personal record at the gym.",
            "embedding_dimensions": 768,
            "metadata": {...}
        }
    """
    memory_id = validate_memory_id(request.memory_id)
    raw_text = normalize_memory_text(request.raw_text, max_length=settings.max_text_length)

    logger.info(f"Ingest request for memory {memory_id}")
    result = await service.ingest(owner_id, memory_id, raw_text)

    return IngestResponse(
        memory_id=result.memory_id,
        summary=result.summary,
        embedding_dimensions=result.embedding_dimensions,
        metadata=IngestMetadata(
            enhanced_text_preview=_preview(result.enhanced_text),
            key_entities=result.key_entities,
            emotional_tone=result.emotional_tone,
            processing_time_ms=round(result.processing_time_ms, 1),
        ),
    )


@router.post("/recall", response_model=RecallResponse)
async def recall_memories(
    request: RecallRequest,
    http_request: Request,
    owner_id: str = Depends(get_current_owner),
    service: MemoryService = Depends(get_memory_service),
):
    """
    Recall memories with a natural-language query.

    Relative dates ("yesterday", "last Monday", "last month") narrow the
    candidates to that period; the rest of the query is matched
    semantically.

    Example:
        POST /api/v1/memory/recall
        {"query": "last Monday at the gym", "limit": 5}
    """
    query = validate_search_query(request.query)

    result = await run_until_disconnect(
        http_request,
        service.recall(owner_id, query, limit=request.limit),
    )
    if result is None:
        return JSONResponse(status_code=499, content={"success": False, "error": "Client closed request"})

    return RecallResponse(
        query=RecallQuery(
            original=result.query.original_query,
            semantic=result.query.semantic_query,
            has_temporal=result.query.has_temporal,
            date_range=result.query.date_range,
        ),
        results=result.results,
        count=result.count,
        processing_time_ms=round(result.elapsed_ms, 1),
    )


@router.get("/health", response_model=HealthResponse)
async def health_check(service: MemoryService = Depends(get_memory_service)):
    """
    Check health of memory system components.

    Returns:
        HealthResponse: Database, upstream configuration and worker status
    """
    health = service.health()
    return HealthResponse(
        status=health["status"],
        components=health["components"],
        queue_depth=health["queue_depth"],
        version=settings.api_version,
    )


# ================================
# Record management
# ================================

@records_router.post("", response_model=APIResponse, status_code=201)
async def create_memory(
    request: MemoryCreateRequest,
    owner_id: str = Depends(get_current_owner),
    service: MemoryService = Depends(get_memory_service),
):
    """
    Capture a memory. Processing runs in the background.

    Example:
        POST /api/v1/memories
        {"raw_text": "Gym PR on deadlifts! 315x5", "mood": "proud"}
    """
    record = service.create_memory(
        owner_id,
        normalize_memory_text(request.raw_text, max_length=settings.max_text_length),
        context=normalize_optional_text(request.context, field="context"),
        mood=normalize_optional_text(request.mood, max_length=255, field="mood"),
    )

    data = _record_payload(record)
    data["processing"] = "queued"
    return create_api_response(success=True, data=data)


@records_router.get("", response_model=APIResponse)
async def list_memories(
    limit: int = Query(100, ge=1, le=500, description="Maximum number of records"),
    offset: int = Query(0, ge=0, description="Records to skip"),
    owner_id: str = Depends(get_current_owner),
    service: MemoryService = Depends(get_memory_service),
):
    """List the caller's memories, newest first."""
    records = service.list_memories(owner_id, limit=limit, offset=offset)
    return create_api_response(
        success=True,
        data={
            "memories": [_record_payload(record) for record in records],
            "count": len(records),
        },
    )


@records_router.get("/{memory_id}", response_model=APIResponse)
async def get_memory(
    memory_id: str,
    owner_id: str = Depends(get_current_owner),
    service: MemoryService = Depends(get_memory_service),
):
    record = service.get_memory(owner_id, validate_memory_id(memory_id))
    return create_api_response(success=True, data=_record_payload(record))


@records_router.patch("/{memory_id}", response_model=APIResponse)
async def update_memory(
    memory_id: str,
    request: MemoryUpdateRequest,
    owner_id: str = Depends(get_current_owner),
    service: MemoryService = Depends(get_memory_service),
):
    """
    Edit a memory and queue it for reprocessing.

    Changing raw_text clears the summary and embedding until the
    reprocessing run completes.
    """
    changes = request.model_dump(exclude_unset=True)
    if "raw_text" in changes:
        changes["raw_text"] = normalize_memory_text(changes["raw_text"], max_length=settings.max_text_length)
    if "context" in changes:
        changes["context"] = normalize_optional_text(changes["context"], field="context")
    if "mood" in changes:
        changes["mood"] = normalize_optional_text(changes["mood"], max_length=255, field="mood")

    record = service.update_memory(owner_id, validate_memory_id(memory_id), changes)
    data = _record_payload(record)
    data["processing"] = "queued" if changes else "unchanged"
    return create_api_response(success=True, data=data)


@records_router.delete("/{memory_id}", response_model=APIResponse)
async def delete_memory(
    memory_id: str,
    owner_id: str = Depends(get_current_owner),
    service: MemoryService = Depends(get_memory_service),
):
    memory_id = validate_memory_id(memory_id)
    service.delete_memory(owner_id, memory_id)
    return create_api_response(success=True, data={"id": memory_id, "deleted": True})
