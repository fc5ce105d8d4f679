"""
SQLAlchemy models for memory storage.

Defines the memories table: raw user notes plus the summary and
embedding written by the ingestion pipeline.
"""

import hashlib
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, Column, DateTime, Index, String, Text

from app.core.database import Base


def utcnow() -> datetime:
    """Current UTC time as a naive datetime (the storage convention)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def compute_content_hash(raw_text: str) -> str:
    """
    Idempotency key of a memory's text.

    Args:
        raw_text: Memory text

    Returns:
        str: Hex SHA-256 digest
    """
    return hashlib.sha256(raw_text.encode("utf-8")).hexdigest()


class MemoryRecord(Base):
    """
    A captured memory.

    Attributes:
        id: UUID primary key
        owner_id: Owning user
        raw_text: Text as the user wrote it
        summary: Recall-optimized summary (null until processed)
        context: Optional situational context
        mood: Optional mood
        embedding: Vector of the embedding text (null until processed)
        content_hash: SHA-256 of raw_text; guards ingestion writes
        created_at: Capture timestamp (UTC)
        updated_at: Last modification timestamp (UTC)
        processed_at: Last successful ingestion write (UTC)
    """

    __tablename__ = "memories"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    owner_id = Column(String(255), nullable=False, index=True)
    raw_text = Column(Text, nullable=False)
    summary = Column(Text, nullable=True)
    context = Column(Text, nullable=True)
    mood = Column(String(255), nullable=True)
    embedding = Column(JSON(none_as_null=True), nullable=True)
    content_hash = Column(String(64), nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
    processed_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("idx_memory_owner_created", "owner_id", "created_at"),
    )

    @property
    def is_processed(self) -> bool:
        return self.summary is not None and self.embedding is not None

    def get_embedding(self) -> Optional[List[float]]:
        """Embedding as a list of floats, or None while unprocessed."""
        if self.embedding is None:
            return None
        return [float(x) for x in self.embedding]

    def to_dict(self, include_embedding: bool = False) -> Dict[str, Any]:
        """
        Serialize for API responses.

        Args:
            include_embedding: Include the raw vector

        Returns:
            Dict: Record fields
        """
        data = {
            "id": self.id,
            "owner_id": self.owner_id,
            "raw_text": self.raw_text,
            "summary": self.summary,
            "context": self.context,
            "mood": self.mood,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "processed_at": self.processed_at.isoformat() if self.processed_at else None,
            "is_processed": self.is_processed,
        }
        if include_embedding:
            data["embedding"] = self.get_embedding()
        return data

    def __repr__(self) -> str:
        return f"<MemoryRecord(id='{self.id}', owner_id='{self.owner_id}', processed={self.is_processed})>"
