"""
FastAPI dependencies for dependency injection.

Provides the memory service and the authenticated owner id. Both are
resolved from ``app.state`` so tests can install their own instances.
"""

import logging
from typing import Optional

from fastapi import Header, Request

from app.core.errors import AuthError
from app.core.identity import IdentityProvider, extract_bearer_token
from app.services.memory_service import MemoryService

logger = logging.getLogger(__name__)


def get_memory_service(request: Request) -> MemoryService:
    """
    Get the memory service built for this application.

    Returns:
        MemoryService: Service instance from app.state

    Example:
        >>> @router.get("/test")
        >>> async def test(service: MemoryService = Depends(get_memory_service)):
        ...     return service.health()
    """
    return request.app.state.memory_service


def get_identity_provider(request: Request) -> IdentityProvider:
    return request.app.state.identity_provider


async def get_current_owner(
    request: Request,
    authorization: Optional[str] = Header(default=None),
) -> str:
    """
    Resolve the caller's owner id from the bearer token.

    Raises:
        AuthError: If the token is missing or rejected
    """
    token = extract_bearer_token(authorization)
    owner_id = await get_identity_provider(request).authenticate(token)
    if not owner_id:
        raise AuthError("Unauthorized")
    return owner_id
