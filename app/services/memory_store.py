"""
Owner-scoped persistence gateway for memory records.

Every operation takes the owner id and only ever touches that owner's
rows. Each call runs in its own session so the gateway can be shared by
request handlers and background ingestion workers alike.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session, sessionmaker

from app.core.errors import NotFoundError, ValidationError
from app.models.memory import MemoryRecord, compute_content_hash, utcnow

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("raw_text", "context", "mood")


class MemoryStore:
    """
    CRUD and filtered queries over MemoryRecord.

    The summary/embedding pair is only ever written by
    ``apply_processing_result``, in a single conditional UPDATE.
    """

    def __init__(self, session_factory: sessionmaker):
        """
        Initialize memory store.

        Args:
            session_factory: SQLAlchemy session factory
        """
        self.session_factory = session_factory

    def _get_owned(self, session: Session, owner_id: str, memory_id: str) -> MemoryRecord:
        record = session.execute(
            select(MemoryRecord).where(
                MemoryRecord.id == memory_id,
                MemoryRecord.owner_id == owner_id,
            )
        ).scalar_one_or_none()

        if record is None:
            raise NotFoundError("Memory not found")
        return record

    def create(
        self,
        owner_id: str,
        raw_text: str,
        context: Optional[str] = None,
        mood: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> MemoryRecord:
        """
        Store a new, unprocessed memory.

        Args:
            owner_id: Owning user
            raw_text: Memory text
            context: Optional situational context
            mood: Optional mood
            created_at: Capture time (defaults to now, UTC)

        Returns:
            MemoryRecord: The stored record
        """
        now = utcnow()
        record = MemoryRecord(
            owner_id=owner_id,
            raw_text=raw_text,
            context=context,
            mood=mood,
            content_hash=compute_content_hash(raw_text),
            created_at=created_at or now,
            updated_at=now,
        )

        with self.session_factory() as session:
            session.add(record)
            session.commit()

        logger.info(f"Created memory {record.id} for owner {owner_id}")
        return record

    def get(self, owner_id: str, memory_id: str) -> MemoryRecord:
        """
        Fetch one of the owner's records.

        Raises:
            NotFoundError: If absent or owned by someone else
        """
        with self.session_factory() as session:
            return self._get_owned(session, owner_id, memory_id)

    def list(self, owner_id: str, limit: int = 100, offset: int = 0) -> List[MemoryRecord]:
        """Owner's records, newest first."""
        with self.session_factory() as session:
            return list(session.execute(
                select(MemoryRecord)
                .where(MemoryRecord.owner_id == owner_id)
                .order_by(MemoryRecord.created_at.desc(), MemoryRecord.id)
                .offset(offset)
                .limit(limit)
            ).scalars())

    def update(self, owner_id: str, memory_id: str, changes: Dict[str, Any]) -> MemoryRecord:
        """
        Apply a partial update.

        Changing raw_text rehashes the record and clears summary, embedding
        and processed_at in the same transaction, leaving it unprocessed.

        Args:
            owner_id: Owning user
            memory_id: Record id
            changes: Subset of raw_text / context / mood

        Returns:
            MemoryRecord: Updated record

        Raises:
            NotFoundError: If the record is not visible
            ValidationError: If an unknown field is given
        """
        unknown = set(changes) - set(UPDATABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Cannot update fields: {', '.join(sorted(unknown))}")

        with self.session_factory() as session:
            record = self._get_owned(session, owner_id, memory_id)

            for field, value in changes.items():
                setattr(record, field, value)

            if "raw_text" in changes:
                new_hash = compute_content_hash(changes["raw_text"])
                if new_hash != record.content_hash:
                    record.content_hash = new_hash
                    record.summary = None
                    record.embedding = None
                    record.processed_at = None

            record.updated_at = utcnow()
            session.commit()

        logger.info(f"Updated memory {memory_id} ({', '.join(sorted(changes)) or 'no fields'})")
        return record

    def delete(self, owner_id: str, memory_id: str) -> None:
        """
        Delete one of the owner's records.

        Raises:
            NotFoundError: If the record is not visible
        """
        with self.session_factory() as session:
            record = self._get_owned(session, owner_id, memory_id)
            session.delete(record)
            session.commit()

        logger.info(f"Deleted memory {memory_id}")

    def fetch_created_between(self, owner_id: str, start: datetime, end: datetime) -> List[MemoryRecord]:
        """
        Owner's records with start <= created_at < end, newest first.

        Args:
            owner_id: Owning user
            start: Inclusive lower bound (UTC, naive)
            end: Exclusive upper bound (UTC, naive)
        """
        with self.session_factory() as session:
            return list(session.execute(
                select(MemoryRecord)
                .where(
                    MemoryRecord.owner_id == owner_id,
                    MemoryRecord.created_at >= start,
                    MemoryRecord.created_at < end,
                )
                .order_by(MemoryRecord.created_at.desc())
            ).scalars())

    def fetch_recent(self, owner_id: str, limit: int) -> List[MemoryRecord]:
        """Owner's most recent records, newest first."""
        with self.session_factory() as session:
            return list(session.execute(
                select(MemoryRecord)
                .where(MemoryRecord.owner_id == owner_id)
                .order_by(MemoryRecord.created_at.desc())
                .limit(limit)
            ).scalars())

    def apply_processing_result(
        self,
        owner_id: str,
        memory_id: str,
        summary: str,
        embedding: List[float],
        content_hash: str,
    ) -> bool:
        """
        Atomically write summary and embedding, if the text is unchanged.

        The write is conditioned on the content hash captured when the
        ingestion run was triggered, so a run over stale text never
        overwrites the result for a newer edit.

        Args:
            owner_id: Owning user
            memory_id: Record id
            summary: Recall-optimized summary
            embedding: Embedding vector
            content_hash: Hash of the text the run processed

        Returns:
            bool: True if the row was updated, False if it changed or vanished
        """
        now = utcnow()

        with self.session_factory() as session:
            result = session.execute(
                update(MemoryRecord)
                .where(
                    MemoryRecord.id == memory_id,
                    MemoryRecord.owner_id == owner_id,
                    MemoryRecord.content_hash == content_hash,
                )
                .values(
                    summary=summary,
                    embedding=list(embedding),
                    processed_at=now,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            session.commit()

        applied = result.rowcount == 1
        if not applied:
            logger.info(f"Discarded stale processing result for memory {memory_id}")
        return applied
