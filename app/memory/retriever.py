"""
Candidate retrieval for recall queries.

Decides which stored memories are scored against a query:

- with a date range: every record created within the range widened by
  ``date_slack_days`` on each side (whole calendar days, UTC);
- without one: the owner's ``recency_window`` most recent records.

The recency window is a brute-force stand-in for a vector index and caps
pure-semantic recall on large collections. An approximate-nearest-neighbour
index can replace ``fetch_recent`` behind the same interface.
"""

import logging
from datetime import datetime, time, timedelta
from typing import TYPE_CHECKING, List, Optional, Tuple

from app.memory.ranker import Candidate
from app.models.schemas import DateRange

if TYPE_CHECKING:
    from app.services.memory_store import MemoryStore

logger = logging.getLogger(__name__)


class CandidateRetriever:
    """Fetches recall candidates from the persistence gateway."""

    def __init__(self, store: "MemoryStore", recency_window: int = 500, date_slack_days: int = 1):
        """
        Initialize candidate retriever.

        Args:
            store: Persistence gateway
            recency_window: Records scanned for queries without a date range
            date_slack_days: Days added on each side of a date range
        """
        self.store = store
        self.recency_window = recency_window
        self.date_slack_days = date_slack_days

    def created_at_bounds(self, date_range: DateRange) -> Tuple[datetime, datetime]:
        """
        Timestamp bounds for a date range including the slack.

        Returns:
            Tuple[datetime, datetime]: Inclusive start, exclusive end

        Example:
            >>> retriever.created_at_bounds(DateRange(start=date(2026, 2, 3), end=date(2026, 2, 3)))
            (datetime.datetime(2026, 2, 2, 0, 0), datetime.datetime(2026, 2, 5, 0, 0))
        """
        slack = timedelta(days=self.date_slack_days)
        start = datetime.combine(date_range.start - slack, time.min)
        end = datetime.combine(date_range.end + slack + timedelta(days=1), time.min)
        return start, end

    def fetch(self, owner_id: str, date_range: Optional[DateRange]) -> List[Candidate]:
        """
        Fetch candidates for a query.

        Args:
            owner_id: Owning user
            date_range: Resolved date range, if any

        Returns:
            List[Candidate]: Candidates, newest first
        """
        if date_range is not None:
            start, end = self.created_at_bounds(date_range)
            records = self.store.fetch_created_between(owner_id, start, end)
            logger.info(f"Fetched {len(records)} candidates created in [{start.date()}, {end.date()})")
        else:
            records = self.store.fetch_recent(owner_id, self.recency_window)
            logger.info(f"Fetched {len(records)} most recent candidates")

        return [Candidate.from_record(record) for record in records]
