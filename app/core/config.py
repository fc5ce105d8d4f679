"""
Configuration management using Pydantic Settings.

Handles environment variables, validation, and application settings
with proper type checking and default values.
"""

import os
from typing import Dict, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings with environment variable support.

    All settings can be overridden via environment variables.
    See .env.example for all available configuration options.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ================================
    # LLM API Configuration
    # ================================
    gemini_api_key: str = Field(default="", description="Google Gemini API key")
    gemini_model: str = Field(default="gemini-1.5-flash", description="Gemini model name")
    gemini_embedding_model: str = Field(
        default="models/text-embedding-004",
        description="Gemini embedding model name"
    )
    embedding_dimension: int = Field(default=768, ge=1, description="Embedding dimension (D)")
    embedding_cache_size: int = Field(
        default=1000,
        ge=0,
        description="Maximum number of embeddings kept in the in-process cache"
    )

    # Timeouts (seconds)
    llm_timeout_seconds: float = Field(default=20.0, gt=0, description="Per-call LLM timeout")
    embedding_timeout_seconds: float = Field(default=10.0, gt=0, description="Per-call embedding timeout")
    recall_deadline_seconds: float = Field(default=30.0, gt=0, description="Whole recall request deadline")
    ingestion_deadline_seconds: float = Field(default=120.0, gt=0, description="Whole ingestion job deadline")

    # Retry policy for Summarizer / Embedding Client
    retry_max_attempts: int = Field(default=3, ge=1, description="Attempts for retryable upstream calls")
    retry_backoff_multiplier: float = Field(default=1.0, ge=0, description="Jittered backoff multiplier (s)")
    retry_backoff_max: float = Field(default=20.0, ge=0, description="Maximum backoff between attempts (s)")

    rate_limit_per_minute: int = Field(default=60, ge=1, description="Upstream requests per minute")

    # ================================
    # Recall Configuration
    # ================================
    similarity_threshold: float = Field(
        default=0.3,
        description="Minimum cosine similarity (exclusive) for a recall hit"
    )
    recency_window: int = Field(
        default=500,
        ge=1,
        description="Most recent records scanned when the query has no date range"
    )
    date_slack_days: int = Field(
        default=1,
        ge=0,
        description="Days added on each side of a resolved date range"
    )
    default_recall_limit: int = Field(default=20, ge=1, description="Default number of recall results")
    max_recall_limit: int = Field(default=100, ge=1, description="Maximum number of recall results")

    # Temporal parsing
    timezone: str = Field(default="UTC", description="Timezone used to compute 'today'")
    temporal_llm_enabled: bool = Field(
        default=True,
        description="Ask the LLM when no deterministic temporal rule matches"
    )

    # ================================
    # Ingestion Configuration
    # ================================
    ingestion_workers: int = Field(default=2, ge=1, description="Background ingestion workers")
    ingestion_queue_size: int = Field(default=1000, ge=0, description="Queue bound (0 = unbounded)")
    summary_max_chars: int = Field(default=400, ge=40, description="Maximum summary length")
    max_text_length: int = Field(default=5000, ge=1, description="Maximum memory text length")

    # ================================
    # Database Configuration
    # ================================
    database_url: str = Field(
        default="sqlite:///./memories.db",
        description="SQLAlchemy database URL"
    )
    db_pool_size: int = Field(default=10, description="Database connection pool size")
    db_max_overflow: int = Field(default=20, description="Database max overflow connections")
    db_pool_timeout: int = Field(default=30, description="Database pool timeout")
    db_pool_recycle: int = Field(default=3600, description="Database pool recycle time")

    # ================================
    # Identity Configuration
    # ================================
    auth_static_tokens: str = Field(
        default="",
        description="Comma-separated token:owner_id pairs for development"
    )
    identity_userinfo_url: Optional[str] = Field(
        default=None,
        description="Identity provider userinfo endpoint validating bearer tokens"
    )
    identity_timeout_seconds: float = Field(default=5.0, gt=0, description="Identity provider timeout")

    # ================================
    # Application Configuration
    # ================================
    log_level: str = Field(default="INFO", description="Logging level")
    log_file: Optional[str] = Field(default=None, description="Optional log file path")
    api_title: str = Field(default="Memory Recall API", description="FastAPI application title")
    api_description: str = Field(
        default="Capture personal memories and recall them with natural language",
        description="API description"
    )
    api_version: str = Field(default="1.0.0", description="API version")
    cors_origins: str = Field(
        default="http://localhost:3000,http://localhost:8081",
        description="Comma-separated list of allowed CORS origins"
    )
    max_request_bytes: int = Field(default=1024 * 1024, description="Maximum request body size")

    def static_token_map(self) -> Dict[str, str]:
        """
        Parse ``auth_static_tokens`` into a token -> owner mapping.

        Returns:
            Dict[str, str]: Token to owner id mapping
        """
        tokens = {}
        for pair in self.auth_static_tokens.split(","):
            token, sep, owner_id = pair.strip().partition(":")
            if sep and token and owner_id:
                tokens[token.strip()] = owner_id.strip()
        return tokens


def get_settings() -> Settings:
    """
    Get application settings.

    Returns:
        Settings: Validated application settings

    Example:
        >>> settings = get_settings()
        >>> print(settings.similarity_threshold)
        0.3
    """
    return Settings()


# Global settings instance
settings = get_settings()


def create_directories(config: Optional[Settings] = None) -> None:
    """
    Create directories needed by local logging and SQLite storage.

    Args:
        config: Settings to read paths from (defaults to global settings)
    """
    config = config or settings

    if config.log_file:
        log_dir = os.path.dirname(config.log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)

    if config.database_url.startswith("sqlite:///") and ":memory:" not in config.database_url:
        db_dir = os.path.dirname(config.database_url[len("sqlite:///"):])
        if db_dir:
            os.makedirs(db_dir, exist_ok=True)
