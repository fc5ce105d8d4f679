"""
Unit tests for temporal query parsing.

Reference date: Friday 2026-02-06.
"""

from datetime import date, timedelta

import pytest

from app.core.errors import UpstreamTimeoutError
from app.memory.temporal import WEEKDAYS, TemporalParser, resolve_last_month, resolve_last_weekday
from tests.fakes import FakeTextService

FRIDAY = date(2026, 2, 6)


@pytest.fixture
def llm():
    return FakeTextService()


@pytest.fixture
def parser(llm):
    return TemporalParser(llm, timezone="UTC", timeout=1.0)


class TestDateArithmetic:
    """Pure resolution helpers."""

    def test_last_monday_from_friday(self):
        assert resolve_last_weekday(FRIDAY, WEEKDAYS["monday"]) == date(2026, 2, 2)

    def test_last_weekday_never_returns_today(self):
        monday = date(2026, 2, 2)
        assert resolve_last_weekday(monday, WEEKDAYS["monday"]) == date(2026, 1, 26)

    @pytest.mark.parametrize("weekday", list(WEEKDAYS.values()))
    def test_last_weekday_is_within_previous_seven_days(self, weekday):
        resolved = resolve_last_weekday(FRIDAY, weekday)
        assert resolved.weekday() == weekday
        assert FRIDAY - timedelta(days=7) <= resolved < FRIDAY

    def test_last_month_is_whole_previous_calendar_month(self):
        assert resolve_last_month(FRIDAY) == (date(2026, 1, 1), date(2026, 1, 31))

    def test_last_month_across_year_boundary(self):
        assert resolve_last_month(date(2026, 1, 15)) == (date(2025, 12, 1), date(2025, 12, 31))


class TestRuleParsing:
    """Phrases resolved without calling the LLM."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("query, start, end, semantic", [
        ("yesterday at the gym", date(2026, 2, 5), date(2026, 2, 5), "at the gym"),
        ("gym last Monday", date(2026, 2, 2), date(2026, 2, 2), "gym"),
        ("what did I eat on Monday", date(2026, 2, 2), date(2026, 2, 2), "what did I eat"),
        ("dinner last week", date(2026, 1, 30), date(2026, 2, 5), "dinner"),
        ("concerts last month", date(2026, 1, 1), date(2026, 1, 31), "concerts"),
        ("coffee today", FRIDAY, FRIDAY, "coffee"),
        ("run 3 days ago", date(2026, 2, 3), date(2026, 2, 3), "run"),
        ("two days ago with mom", date(2026, 2, 4), date(2026, 2, 4), "with mom"),
        ("the day before yesterday", date(2026, 2, 4), date(2026, 2, 4), ""),
        ("meetings this week", date(2026, 2, 2), FRIDAY, "meetings"),
        ("books this month", date(2026, 2, 1), FRIDAY, "books"),
    ])
    async def test_rule(self, parser, llm, query, start, end, semantic):
        analysis = await parser.parse(query, today=FRIDAY)

        assert analysis.has_temporal is True
        assert analysis.date_range.start == start
        assert analysis.date_range.end == end
        assert analysis.semantic_query == semantic
        assert analysis.original_query == query
        assert analysis.degraded is False
        assert llm.calls == []

    @pytest.mark.asyncio
    async def test_yesterday_is_today_minus_one(self, parser):
        today = date(2026, 3, 1)

        analysis = await parser.parse("yesterday", today=today)

        assert (analysis.date_range.start, analysis.date_range.end) == (date(2026, 2, 28), date(2026, 2, 28))

    @pytest.mark.asyncio
    async def test_case_insensitive(self, parser):
        analysis = await parser.parse("LAST MONDAY gym", today=FRIDAY)
        assert analysis.date_range.start == date(2026, 2, 2)


class TestNonTemporal:
    """Queries without temporal phrases."""

    @pytest.mark.asyncio
    async def test_plain_query_passes_through(self, parser, llm):
        analysis = await parser.parse("pizza with friends", today=FRIDAY)

        assert analysis.has_temporal is False
        assert analysis.date_range is None
        assert analysis.semantic_query == "pizza with friends"
        assert analysis.degraded is False
        assert llm.calls == []


class TestLLMParsing:
    """Phrases the rules do not cover."""

    @pytest.mark.asyncio
    async def test_llm_resolves_range(self, parser, llm):
        llm.temporal = {
            "has_temporal": True,
            "date_range": {"start": "2025-12-24", "end": "2025-12-26"},
            "semantic_query": "presents",
        }

        analysis = await parser.parse("presents around christmas", today=FRIDAY)

        assert analysis.has_temporal is True
        assert analysis.date_range.start == date(2025, 12, 24)
        assert analysis.date_range.end == date(2025, 12, 26)
        assert analysis.semantic_query == "presents"
        assert len(llm.calls_for("temporal")) == 1
        assert "2026-02-06 (Friday)" in llm.calls_for("temporal")[0]["prompt"]

    @pytest.mark.asyncio
    async def test_llm_says_not_temporal(self, parser, llm):
        analysis = await parser.parse("my winter coat", today=FRIDAY)

        assert analysis.has_temporal is False
        assert analysis.semantic_query == "my winter coat"
        assert analysis.degraded is False

    @pytest.mark.asyncio
    async def test_upstream_failure_degrades(self, parser, llm):
        llm.fail("temporal", UpstreamTimeoutError("too slow"))

        analysis = await parser.parse("presents around christmas", today=FRIDAY)

        assert analysis.has_temporal is False
        assert analysis.date_range is None
        assert analysis.semantic_query == "presents around christmas"
        assert analysis.degraded is True

    @pytest.mark.asyncio
    @pytest.mark.parametrize("raw", [
        "not json at all",
        '{"has_temporal": true, "date_range": null, "semantic_query": "x"}',
        '{"has_temporal": true, "date_range": {"start": "2026-02-05", "end": "2026-02-01"}}',
        '{"has_temporal": false, "date_range": {"start": "2026-02-01", "end": "2026-02-01"}}',
    ])
    async def test_malformed_output_degrades(self, parser, llm, raw):
        llm.raw["temporal"] = raw

        analysis = await parser.parse("presents around christmas", today=FRIDAY)

        assert analysis.has_temporal is False
        assert analysis.degraded is True

    @pytest.mark.asyncio
    async def test_llm_disabled(self, llm):
        parser = TemporalParser(llm, llm_enabled=False)

        analysis = await parser.parse("presents around christmas", today=FRIDAY)

        assert analysis.has_temporal is False
        assert analysis.degraded is False
        assert llm.calls == []

    @pytest.mark.asyncio
    async def test_without_text_service(self):
        parser = TemporalParser(None)

        analysis = await parser.parse("last Monday gym", today=FRIDAY)

        assert analysis.date_range.start == date(2026, 2, 2)
