"""
Temporal Resolver

Resolves colloquial date phrases in a query to an explicit date or date
range. All boundaries are computed with calendar arithmetic; weeks start
on Monday.

    today           -> [today, today]
    tomorrow        -> [today+1, today+1]
    friday          -> nearest upcoming Friday (a week out if today is Friday)
    this friday     -> same as "friday"
    next friday     -> nearest upcoming Friday + 7 days
    this week       -> [today, upcoming Sunday]
    next week       -> [next Monday, next Sunday]
    this month      -> [first, last day of the current month]
    next month      -> [first, last day of the following month]
    2026-02-03      -> that day
"""

import calendar
import logging
import re
from datetime import date, datetime, timedelta
from typing import Optional, Tuple
from zoneinfo import ZoneInfo

from ..common.schemas import TemporalRange, parse_iso_date

logger = logging.getLogger("recall.retriever.temporal")


WEEKDAYS = {
    "monday": 0,
    "tuesday": 1,
    "wednesday": 2,
    "thursday": 3,
    "friday": 4,
    "saturday": 5,
    "sunday": 6,
}

_WEEKDAY_ALT = "|".join(WEEKDAYS)


def today_in(tz_name: str = "UTC") -> date:
    """Current calendar date in the given IANA timezone"""
    return datetime.now(ZoneInfo(tz_name)).date()


def upcoming_weekday(today: date, weekday: int) -> date:
    """Closest future occurrence of weekday, never today itself"""
    return today + timedelta(days=(weekday - today.weekday()) % 7 or 7)


def month_bounds(year: int, month: int) -> Tuple[date, date]:
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


class TemporalResolver:
    """
    Turns a query into a TemporalRange.

    Rules are tried in a fixed order; the first that matches wins.
    A query with no date phrase resolves to TemporalRange.unresolved().
    """

    RULES = [
        ("iso_date", re.compile(r"\b(\d{4}-\d{2}-\d{2})\b")),
        ("today", re.compile(r"\btoday\b")),
        ("tomorrow", re.compile(r"\btomorrow\b")),
        ("next_week", re.compile(r"\bnext\s+week\b")),
        ("this_week", re.compile(r"\bthis\s+week\b")),
        ("next_month", re.compile(r"\bnext\s+month\b")),
        ("this_month", re.compile(r"\bthis\s+month\b")),
        ("next_weekday", re.compile(rf"\bnext\s+({_WEEKDAY_ALT})\b")),
        ("weekday", re.compile(rf"\b(?:this\s+)?({_WEEKDAY_ALT})\b")),
    ]

    def __init__(self, timezone: str = "UTC"):
        self._timezone = timezone
        ZoneInfo(timezone)  # Fail fast on an unknown zone

    @property
    def timezone(self) -> str:
        return self._timezone

    def today(self) -> date:
        return today_in(self._timezone)

    def resolve(self, query: str, today: Optional[date] = None) -> TemporalRange:
        """
        Resolve the first date phrase in query.

        Args:
            query: Raw user query
            today: Reference date (defaults to today in the configured zone)

        Returns:
            TemporalRange; unresolved when no phrase is present
        """
        today = today or self.today()
        text = query.lower()

        for name, pattern in self.RULES:
            match = pattern.search(text)
            if not match:
                continue
            resolved = self._apply(name, match, today)
            if resolved is not None:
                logger.debug("Resolved %r via %s -> %s", query, name, resolved.to_dict())
                return resolved

        return TemporalRange.unresolved()

    def _apply(self, rule: str, match: re.Match, today: date) -> Optional[TemporalRange]:
        if rule == "iso_date":
            day = parse_iso_date(match.group(1))
            return TemporalRange.single(day) if day else None

        if rule == "today":
            return TemporalRange.single(today)

        if rule == "tomorrow":
            return TemporalRange.single(today + timedelta(days=1))

        if rule == "this_week":
            sunday = today + timedelta(days=6 - today.weekday())
            return TemporalRange.span(today, sunday)

        if rule == "next_week":
            monday = today + timedelta(days=7 - today.weekday())
            return TemporalRange.span(monday, monday + timedelta(days=6))

        if rule == "this_month":
            return TemporalRange.span(*month_bounds(today.year, today.month))

        if rule == "next_month":
            year, month = (today.year + 1, 1) if today.month == 12 else (today.year, today.month + 1)
            return TemporalRange.span(*month_bounds(year, month))

        if rule == "next_weekday":
            nearest = upcoming_weekday(today, WEEKDAYS[match.group(1)])
            return TemporalRange.single(nearest + timedelta(days=7))

        if rule == "weekday":
            return TemporalRange.single(upcoming_weekday(today, WEEKDAYS[match.group(1)]))

        return None

    async def aresolve(self, query: str, today: Optional[date] = None) -> TemporalRange:
        """Awaitable form so resolution runs in the same wave as embedding"""
        return self.resolve(query, today=today)


def explicit_range(
    target_date: Optional[str] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
) -> Optional[TemporalRange]:
    """
    Caller-supplied dates that override inference.

    An explicit start/end pair wins over a single target date. A single
    target date always yields a non-range. Malformed values are ignored
    (None is returned and inference proceeds).
    """
    if start_date:
        start = parse_iso_date(start_date)
        end = parse_iso_date(end_date) if end_date else start
        if start is None or end is None or end < start:
            logger.warning("Ignoring malformed explicit range: %r to %r", start_date, end_date)
        elif end == start:
            return TemporalRange.single(start)
        else:
            return TemporalRange.span(start, end)

    if target_date:
        day = parse_iso_date(target_date)
        if day is None:
            logger.warning("Ignoring malformed target_date: %r", target_date)
            return None
        return TemporalRange.single(day)

    return None
