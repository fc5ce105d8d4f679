"""Business logic services."""

from .memory_service import MemoryService, build_memory_service
from .memory_store import MemoryStore

__all__ = ["MemoryService", "MemoryStore", "build_memory_service"]
