"""
Reminder Schemas

Stored reminders, retrieval candidates, resolved date ranges and the
answer payload returned to clients.

Core principle: whether a reminder exists on a resolved date is decided
from these records by code, never by a generative call.
"""

import datetime
import re
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, NewType, Optional

from pydantic import BaseModel, Field


ReminderId = NewType("ReminderId", str)

ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def parse_iso_date(value: Any) -> Optional[datetime.date]:
    """Parse a strict YYYY-MM-DD value. Anything else yields None."""
    if isinstance(value, datetime.date):
        return value
    if not isinstance(value, str) or not ISO_DATE_RE.match(value):
        return None
    try:
        return datetime.date.fromisoformat(value)
    except ValueError:
        return None


# ============================================================================
# Enums
# ============================================================================

class CandidateSource(str, Enum):
    """Retrieval strategy that produced a candidate"""
    DATE = "date"
    KEYWORD_EMBED = "keyword_embed"
    VECTOR = "vector"
    KEYWORD = "keyword"

    @property
    def priority(self) -> int:
        """Lower value wins when two strategies return the same reminder"""
        return _SOURCE_PRIORITY[self]

    @property
    def fixed_score(self) -> Optional[float]:
        """Score assigned regardless of strategy output (None for vector)"""
        return _SOURCE_SCORES.get(self)


_SOURCE_PRIORITY = {
    CandidateSource.DATE: 0,
    CandidateSource.KEYWORD_EMBED: 1,
    CandidateSource.VECTOR: 2,
    CandidateSource.KEYWORD: 3,
}

_SOURCE_SCORES = {
    CandidateSource.DATE: 1.0,
    CandidateSource.KEYWORD_EMBED: 0.9,
    CandidateSource.KEYWORD: 0.7,
}


class AnswerState(str, Enum):
    """Branch taken by the answer synthesizer"""
    DETERMINISTIC_FOUND = "deterministic-found"
    DETERMINISTIC_EMPTY = "deterministic-empty"
    GENERAL = "general"


# ============================================================================
# Stored reminder
# ============================================================================

class Reminder(BaseModel):
    """Canonical reminder row as held by the reminder store"""
    id: str
    user_id: str = ""
    title: str
    date: Optional[datetime.date] = None
    time: Optional[str] = Field(default=None, description="HH:MM, local to the user")
    completed: bool = False
    tag_id: Optional[str] = None
    priority_id: Optional[str] = None


# ============================================================================
# Temporal range
# ============================================================================

@dataclass(frozen=True)
class TemporalRange:
    """Explicit date or date range resolved from a query"""
    start_date: Optional[datetime.date] = None
    end_date: Optional[datetime.date] = None
    is_range: bool = False
    confidence: float = 0.0

    @classmethod
    def unresolved(cls) -> "TemporalRange":
        return cls()

    @classmethod
    def single(cls, day: datetime.date, confidence: float = 1.0) -> "TemporalRange":
        return cls(start_date=day, end_date=day, is_range=False, confidence=confidence)

    @classmethod
    def span(cls, start: datetime.date, end: datetime.date, confidence: float = 1.0) -> "TemporalRange":
        return cls(start_date=start, end_date=end, is_range=True, confidence=confidence)

    @classmethod
    def from_dict(cls, raw: Any) -> "TemporalRange":
        """
        Build a range from resolver-style output
        ({startDate, endDate, isRange, confidence}).

        Malformed output is treated as "no date resolved".
        """
        if not isinstance(raw, dict):
            return cls.unresolved()

        start = parse_iso_date(raw.get("startDate"))
        if start is None:
            return cls.unresolved()

        end = parse_iso_date(raw.get("endDate")) or start
        if end < start:
            return cls.unresolved()

        try:
            confidence = float(raw.get("confidence", 1.0))
        except (TypeError, ValueError):
            confidence = 1.0

        is_range = bool(raw.get("isRange", False)) and end != start
        return cls(start_date=start, end_date=end, is_range=is_range, confidence=confidence)

    @property
    def is_resolved(self) -> bool:
        return self.start_date is not None

    def contains(self, day: Optional[datetime.date]) -> bool:
        """Inclusive membership test; unresolved ranges contain nothing"""
        if day is None or not self.is_resolved:
            return False
        if self.is_range:
            return self.start_date <= day <= self.end_date
        return day == self.start_date

    def to_dict(self) -> Dict[str, Any]:
        return {
            "startDate": self.start_date.isoformat() if self.start_date else None,
            "endDate": self.end_date.isoformat() if self.end_date else None,
            "isRange": self.is_range,
            "confidence": self.confidence,
        }


# ============================================================================
# Candidates
# ============================================================================

@dataclass
class CandidateRecord:
    """A reminder surfaced by one retrieval strategy"""
    reminder_id: ReminderId
    title: str
    source: CandidateSource
    score: float
    date: Optional[datetime.date] = None
    time: Optional[str] = None
    completed: bool = False
    tag_id: Optional[str] = None
    priority_id: Optional[str] = None

    @classmethod
    def from_reminder(
        cls,
        reminder: Reminder,
        source: CandidateSource,
        score: Optional[float] = None,
    ) -> "CandidateRecord":
        if score is None:
            score = source.fixed_score if source.fixed_score is not None else 0.0
        return cls(
            reminder_id=ReminderId(reminder.id),
            title=reminder.title,
            source=source,
            score=score,
            date=reminder.date,
            time=reminder.time,
            completed=reminder.completed,
            tag_id=reminder.tag_id,
            priority_id=reminder.priority_id,
        )

    def hydrate(self, reminder: Reminder) -> "CandidateRecord":
        """Copy canonical fields from the store, keeping source and score"""
        return replace(
            self,
            title=reminder.title,
            date=reminder.date,
            time=reminder.time,
            completed=reminder.completed,
            tag_id=reminder.tag_id,
            priority_id=reminder.priority_id,
        )

    @property
    def display(self) -> str:
        """Title with the time in parentheses when one is set"""
        return f"{self.title} ({self.time})" if self.time else self.title

    def to_context(self) -> Dict[str, Any]:
        """Compact form handed to the generative call"""
        return {
            "title": self.title,
            "date": self.date.isoformat() if self.date else None,
            "time": self.time or None,
            "completed": self.completed,
            "score": round(self.score, 4),
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reminder_id": self.reminder_id,
            "title": self.title,
            "date": self.date.isoformat() if self.date else None,
            "time": self.time,
            "completed": self.completed,
            "tag_id": self.tag_id,
            "priority_id": self.priority_id,
            "source": self.source.value,
            "score": self.score,
        }


# ============================================================================
# Answer payload
# ============================================================================

@dataclass
class AnswerPayload:
    """Final response for one search request"""
    answer: str
    follow_up: str
    state: AnswerState
    resolved_range: TemporalRange
    query: str = ""
    evidence: List[CandidateRecord] = field(default_factory=list)
    actions: List[Dict[str, Any]] = field(default_factory=list)
    date_match_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        start = self.resolved_range.start_date
        end = self.resolved_range.end_date
        return {
            "answer": self.answer,
            "follow_up": self.follow_up,
            "evidence": [c.to_dict() for c in self.evidence],
            "actions": self.actions,
            "resolved_range": self.resolved_range.to_dict(),
            "state": self.state.value,
            "query": self.query,
            "targetDate": start.isoformat() if start else None,
            "endDate": end.isoformat() if end and self.resolved_range.is_range else None,
            "reminders_for_target_date": self.date_match_count,
        }
