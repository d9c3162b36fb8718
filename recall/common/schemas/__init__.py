"""
Reminder Recall Schemas

Reminders, retrieval candidates, resolved date ranges and answer payloads.
"""

from .reminder import (
    Reminder,
    ReminderId,
    CandidateRecord,
    CandidateSource,
    TemporalRange,
    AnswerPayload,
    AnswerState,
    parse_iso_date,
)
from .content import build_content_string, title_from_content

__all__ = [
    "Reminder",
    "ReminderId",
    "CandidateRecord",
    "CandidateSource",
    "TemporalRange",
    "AnswerPayload",
    "AnswerState",
    "parse_iso_date",
    "build_content_string",
    "title_from_content",
]
