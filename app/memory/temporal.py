"""
Temporal parsing of recall queries.

Resolves relative date phrases ("yesterday", "last Monday", "last month")
into inclusive calendar date ranges and strips them from the query so the
remainder can be embedded. Well-known phrases are resolved by fixed rules;
anything else that looks temporal is handed to the LLM text service.

Resolution rules:
    yesterday            today - 1
    last <weekday>       most recent such weekday strictly before today
    last week            [today - 7, today - 1]
    last month           the whole previous calendar month
    today                [today, today]
    day before yesterday today - 2
    N days ago           today - N
    this week            [Monday of this week, today]
    this month           [1st of this month, today]
"""

import json
import logging
import re
from datetime import date, datetime, timedelta
from typing import Callable, List, Optional, Pattern, Tuple
from zoneinfo import ZoneInfo

from pydantic import ValidationError as PydanticValidationError

from app.core.deadline import Deadline, call_with_timeout
from app.core.errors import MalformedResponseError, PartialDegradation, UpstreamError
from app.core.gemini import TextService
from app.models.schemas import DateRange, QueryAnalysis, TemporalOutput

logger = logging.getLogger(__name__)

WEEKDAYS = {
    "monday": 0,
    "tuesday": 1,
    "wednesday": 2,
    "thursday": 3,
    "friday": 4,
    "saturday": 5,
    "sunday": 6,
}

NUMBER_WORDS = {
    "one": 1, "two": 2, "three": 3, "four": 4, "five": 5,
    "six": 6, "seven": 7, "eight": 8, "nine": 9, "ten": 10,
}

_PREFIX = r"(?:\b(?:on|from|during|in|at|since)\s+)?"
_WEEKDAY = r"(monday|tuesday|wednesday|thursday|friday|saturday|sunday)"
_COUNT = r"(\d{1,3}|one|two|three|four|five|six|seven|eight|nine|ten)"

TEMPORAL_HINT = re.compile(
    r"\b(ago|week|weekend|month|year|yesterday|today|tonight|morning|evening|afternoon|night|"
    r"recently|earlier|last|since|before|after|monday|tuesday|wednesday|thursday|friday|saturday|sunday|"
    r"january|february|march|april|may|june|july|august|september|october|november|december|"
    r"spring|summer|autumn|fall|winter|christmas|thanksgiving|easter|birthday|holiday|"
    r"\d{4}|\d{1,2}/\d{1,2})\b",
    re.IGNORECASE,
)

TEMPORAL_SYSTEM_PROMPT = """You are a date parser. Extract date ranges from natural-language memory search queries.

IMPORTANT RULES:
- "last Monday" means the most recent Monday BEFORE today (never today, never the upcoming one)
- "yesterday" means exactly 1 day ago
- "last week" means 7 days ago to yesterday
- "last month" means the entire previous calendar month
- Dates are calendar dates in YYYY-MM-DD format; start <= end
- semantic_query keeps only the non-temporal part of the query (empty string if nothing is left)

Return JSON only:
{"has_temporal": true|false, "date_range": {"start": "YYYY-MM-DD", "end": "YYYY-MM-DD"} or null, "semantic_query": "..."}"""


def _single(day: date) -> Tuple[date, date]:
    return day, day


def resolve_last_weekday(today: date, weekday: int) -> date:
    """
    Most recent occurrence of a weekday strictly before today.

    Example:
        >>> resolve_last_weekday(date(2026, 2, 6), 0)  # Friday -> Monday
        datetime.date(2026, 2, 2)
    """
    delta = (today.weekday() - weekday) % 7
    if delta == 0:
        delta = 7
    return today - timedelta(days=delta)


def resolve_last_month(today: date) -> Tuple[date, date]:
    """Whole previous calendar month."""
    end = today.replace(day=1) - timedelta(days=1)
    return end.replace(day=1), end


def _count(token: str) -> int:
    token = token.lower()
    return NUMBER_WORDS[token] if token in NUMBER_WORDS else int(token)


Resolver = Callable[[re.Match, date], Tuple[date, date]]

# Checked in order; the first rule that matches wins.
TEMPORAL_RULES: List[Tuple[Pattern, Resolver]] = [
    (re.compile(_PREFIX + r"\b(?:the\s+)?day\s+before\s+yesterday\b", re.IGNORECASE),
     lambda m, today: _single(today - timedelta(days=2))),
    (re.compile(_PREFIX + r"\byesterday\b", re.IGNORECASE),
     lambda m, today: _single(today - timedelta(days=1))),
    (re.compile(_PREFIX + r"\b(?:today|tonight|this\s+morning|this\s+afternoon|this\s+evening)\b", re.IGNORECASE),
     lambda m, today: _single(today)),
    (re.compile(_PREFIX + r"\b" + _COUNT + r"\s+days?\s+ago\b", re.IGNORECASE),
     lambda m, today: _single(today - timedelta(days=_count(m.group(1))))),
    (re.compile(_PREFIX + r"\b(?:last|this\s+past|past|on)\s+" + _WEEKDAY + r"(?:'s)?\b", re.IGNORECASE),
     lambda m, today: _single(resolve_last_weekday(today, WEEKDAYS[m.group(1).lower()]))),
    (re.compile(_PREFIX + r"\b(?:last|the\s+past|past)\s+week\b", re.IGNORECASE),
     lambda m, today: (today - timedelta(days=7), today - timedelta(days=1))),
    (re.compile(_PREFIX + r"\bthis\s+week\b", re.IGNORECASE),
     lambda m, today: (today - timedelta(days=today.weekday()), today)),
    (re.compile(_PREFIX + r"\blast\s+month\b", re.IGNORECASE),
     lambda m, today: resolve_last_month(today)),
    (re.compile(_PREFIX + r"\bthis\s+month\b", re.IGNORECASE),
     lambda m, today: (today.replace(day=1), today)),
]


def strip_phrase(query: str, start: int, end: int) -> str:
    """
    Remove query[start:end] and tidy the remainder.

    Returns:
        str: Remaining text (may be empty)
    """
    remainder = f"{query[:start]} {query[end:]}"
    remainder = " ".join(remainder.split())
    return remainder.strip(" ,.;:-!?")


def apply_rules(query: str, today: date) -> Optional[QueryAnalysis]:
    """
    Resolve the query with the deterministic rules.

    Args:
        query: Original query
        today: Current date

    Returns:
        Optional[QueryAnalysis]: Analysis if a rule matched, else None
    """
    for pattern, resolver in TEMPORAL_RULES:
        match = pattern.search(query)
        if match is None:
            continue
        start, end = resolver(match, today)
        return QueryAnalysis(
            original_query=query,
            semantic_query=strip_phrase(query, match.start(), match.end()),
            has_temporal=True,
            date_range=DateRange(start=start, end=end),
        )
    return None


def parse_temporal_output(text: str) -> TemporalOutput:
    """
    Validate the parser LLM's JSON answer.

    Raises:
        MalformedResponseError: If the text is not valid JSON of the expected shape
    """
    try:
        payload = json.loads(text)
    except (TypeError, ValueError) as e:
        raise MalformedResponseError(f"Temporal parser returned invalid JSON: {e}")

    try:
        return TemporalOutput.model_validate(payload)
    except PydanticValidationError as e:
        raise MalformedResponseError(f"Temporal parser JSON failed validation: {e.errors()}")


class TemporalParser:
    """
    Extracts date ranges from natural-language queries.

    Never raises: any failure yields a non-temporal analysis of the
    original query so recall degrades to pure semantic search.
    """

    def __init__(
        self,
        text_service: Optional[TextService] = None,
        timezone: str = "UTC",
        timeout: float = 20.0,
        llm_enabled: bool = True,
    ):
        """
        Initialize temporal parser.

        Args:
            text_service: LLM text service for phrases the rules do not cover
            timezone: IANA timezone used to compute today's date
            timeout: Per-call timeout in seconds
            llm_enabled: Whether to consult the LLM at all
        """
        self.text_service = text_service
        self.tz = ZoneInfo(timezone)
        self.timeout = timeout
        self.llm_enabled = llm_enabled and text_service is not None

    def today(self) -> date:
        return datetime.now(self.tz).date()

    @staticmethod
    def fallback(query: str, degraded: bool = False) -> QueryAnalysis:
        return QueryAnalysis(
            original_query=query,
            semantic_query=query,
            has_temporal=False,
            degraded=degraded,
        )

    async def parse(
        self,
        query: str,
        today: Optional[date] = None,
        deadline: Optional[Deadline] = None,
    ) -> QueryAnalysis:
        """
        Analyse a recall query.

        Args:
            query: Natural-language query
            today: Current date (defaults to today in the configured timezone)
            deadline: Overall request deadline

        Returns:
            QueryAnalysis: Date range and residual semantic query

        Example:
            >>> analysis = await parser.parse("yesterday at the gym", today=date(2026, 2, 7))
            >>> analysis.date_range.start, analysis.semantic_query
            (datetime.date(2026, 2, 6), 'at the gym')
        """
        today = today or self.today()

        try:
            analysis = apply_rules(query, today)
        except (ValueError, OverflowError) as e:
            # e.g. "9999 days ago" running off the calendar
            logger.warning(str(PartialDegradation("temporal parser", e)))
            return self.fallback(query, degraded=True)

        if analysis is not None:
            logger.debug(f"Temporal rule matched: {analysis.date_range}")
            return analysis

        if not self.llm_enabled or not TEMPORAL_HINT.search(query):
            return self.fallback(query)

        try:
            return await self._parse_with_llm(query, today, deadline)
        except UpstreamError as e:
            logger.warning(str(PartialDegradation("temporal parser", e)))
            return self.fallback(query, degraded=True)

    async def _parse_with_llm(self, query: str, today: date, deadline: Optional[Deadline]) -> QueryAnalysis:
        prompt = (
            f"Current date: {today.isoformat()} ({today.strftime('%A')}).\n"
            f"Parse this query: \"{query}\""
        )

        text = await call_with_timeout(
            lambda: self.text_service.generate(
                prompt,
                system=TEMPORAL_SYSTEM_PROMPT,
                temperature=0.1,
                max_output_tokens=200,
                json_output=True,
            ),
            self.timeout,
            deadline,
            description="temporal parsing",
        )
        output = parse_temporal_output(text)

        if not output.has_temporal:
            return self.fallback(query)

        logger.debug(f"LLM resolved date range: {output.date_range}")
        return QueryAnalysis(
            original_query=query,
            semantic_query=output.semantic_query.strip(),
            has_temporal=True,
            date_range=output.date_range,
        )
