"""Core application components."""

from .config import settings, get_settings, create_directories
from .errors import MemoryPipelineError

__all__ = ["settings", "get_settings", "create_directories", "MemoryPipelineError"]
