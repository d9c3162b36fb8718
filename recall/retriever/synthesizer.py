"""
Synthesizer

Turns fused candidates into an answer and one follow-up question.

Key principle: date-scoped answers are built by code.
- date resolved, matches found   -> "deterministic-found" (string formatting)
- date resolved, nothing matched -> "deterministic-empty" (string formatting)
- no date resolved               -> "general" (one constrained generative call)

The generative call is never made on a deterministic branch, so it cannot
claim or deny the existence of a reminder on a specific date.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional

from ..common.errors import SynthesisParseError
from ..common.llm_client import LLMClient
from ..common.llm_utils import parse_llm_json
from ..common.schemas import AnswerState, CandidateRecord, TemporalRange

logger = logging.getLogger("recall.retriever.synthesizer")


FOLLOW_UP_ALL_TIMED = "Want to add another reminder for that day?"
FOLLOW_UP_SOME_UNTIMED = "Want me to set a time for any of these or add another reminder?"
FOLLOW_UP_EMPTY = "Want me to add a reminder for that day? Tell me what it should be and what time."
FOLLOW_UP_GENERIC = "Anything else I can help you with?"

NO_ANSWER = "I'm sorry, I couldn't generate an answer."
APOLOGY = "I'm sorry, I couldn't put together an answer right now. Please try again in a moment."


@dataclass
class Synthesis:
    """Synthesized answer for one request"""
    state: AnswerState
    answer: str
    follow_up: str
    evidence: List[CandidateRecord] = field(default_factory=list)
    actions: List[Dict[str, Any]] = field(default_factory=list)
    date_matches: int = 0


# General-query system prompt
SYSTEM_PROMPT = """You are a helpful reminder assistant. Today is {today}.

Answer the user's question using ONLY the reminders below. Do NOT invent reminders.

Reminders (JSON, most relevant first):
{context}

Rules:
1. Answer conversationally and concisely.
2. Ask exactly ONE follow-up question.
3. If nothing below is relevant, say so plainly.
4. Respond with a JSON object and nothing else:
   {{"answer": "...", "follow_up": "...", "actions": []}}
   "actions" is a list of objects describing anything the user might want done next
   (for example {{"type": "create_reminder", "title": "..."}}), or an empty list."""


# Listing used when no generative provider is configured
FALLBACK_TEMPLATE = """Here's what I found for "{query}":

{formatted_results}"""

FALLBACK_EMPTY = "I couldn't find any reminders matching that."


class AnswerSynthesizer:
    """
    Synthesizes answers from fused candidates.

    Falls back to a plain listing if no LLM is configured.
    """

    def __init__(self, llm_client: Optional[LLMClient] = None, timeout: float = 15.0):
        """
        Initialize synthesizer.

        Args:
            llm_client: Generative provider (optional)
            timeout: Upper bound for the generative call, in seconds
        """
        self._llm = llm_client
        self._timeout = timeout

    @property
    def has_llm(self) -> bool:
        """Check if LLM is available"""
        return self._llm is not None and self._llm.is_available

    async def synthesize(
        self,
        query: str,
        fused: List[CandidateRecord],
        temporal: TemporalRange,
        today: Optional[date] = None,
    ) -> Synthesis:
        """
        Synthesize an answer.

        Args:
            query: Raw user query
            fused: Ranked, hydrated candidates (top-N)
            temporal: Resolved range; decides the branch
            today: Reference date quoted in the generative prompt

        Returns:
            Synthesis with state, answer, follow-up and evidence
        """
        if temporal.is_resolved:
            matches = [c for c in fused if not c.completed and temporal.contains(c.date)]
            if matches:
                logger.info("Deterministic answer: %d reminder(s) in range", len(matches))
                return self._found(matches, temporal)
            logger.info("Deterministic answer: nothing in range")
            return self._empty(temporal)

        logger.info("General answer over %d candidate(s)", len(fused))
        return await self._general(query, fused, today or date.today())

    # ------------------------------------------------------------------
    # Deterministic branches
    # ------------------------------------------------------------------

    @staticmethod
    def _found(matches: List[CandidateRecord], temporal: TemporalRange) -> Synthesis:
        listing = ", ".join(c.display for c in matches)
        if temporal.is_range:
            answer = (
                f"Reminders from {temporal.start_date.isoformat()} to "
                f"{temporal.end_date.isoformat()}: {listing}."
            )
        else:
            answer = f"{temporal.start_date.isoformat()}: {listing}."

        follow_up = FOLLOW_UP_ALL_TIMED if all(c.time for c in matches) else FOLLOW_UP_SOME_UNTIMED
        return Synthesis(
            state=AnswerState.DETERMINISTIC_FOUND,
            answer=answer,
            follow_up=follow_up,
            evidence=matches,
            date_matches=len(matches),
        )

    @staticmethod
    def _empty(temporal: TemporalRange) -> Synthesis:
        if temporal.is_range:
            answer = (
                f"Nothing scheduled between {temporal.start_date.isoformat()} "
                f"and {temporal.end_date.isoformat()}."
            )
        else:
            answer = f"Nothing scheduled for {temporal.start_date.isoformat()}."
        return Synthesis(
            state=AnswerState.DETERMINISTIC_EMPTY,
            answer=answer,
            follow_up=FOLLOW_UP_EMPTY,
        )

    # ------------------------------------------------------------------
    # General branch
    # ------------------------------------------------------------------

    async def _general(self, query: str, fused: List[CandidateRecord], today: date) -> Synthesis:
        if not self.has_llm:
            return self._synthesize_fallback(query, fused)

        system = SYSTEM_PROMPT.format(
            today=today.isoformat(),
            context=json.dumps([c.to_context() for c in fused], indent=2),
        )

        try:
            raw = await asyncio.wait_for(
                asyncio.to_thread(
                    self._llm.generate,
                    query,
                    system=system,
                    temperature=0.0,
                    json_mode=True,
                    timeout=self._timeout,
                ),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("Answer generation timed out after %.1fs", self._timeout)
            return self._apology(fused)
        except Exception as e:
            logger.warning("Answer generation failed: %s", e)
            return self._apology(fused)

        try:
            parsed = parse_llm_json(raw)
        except SynthesisParseError as e:
            logger.info("Generated answer was not JSON, using raw text")
            return Synthesis(
                state=AnswerState.GENERAL,
                answer=e.raw.strip() or NO_ANSWER,
                follow_up=FOLLOW_UP_GENERIC,
                evidence=list(fused),
            )

        answer = parsed.get("answer")
        follow_up = parsed.get("follow_up")
        actions = parsed.get("actions")
        return Synthesis(
            state=AnswerState.GENERAL,
            answer=answer if isinstance(answer, str) and answer.strip() else NO_ANSWER,
            follow_up=follow_up if isinstance(follow_up, str) and follow_up.strip() else FOLLOW_UP_GENERIC,
            evidence=list(fused),
            actions=[a for a in actions if isinstance(a, dict)] if isinstance(actions, list) else [],
        )

    @staticmethod
    def _apology(fused: List[CandidateRecord]) -> Synthesis:
        return Synthesis(
            state=AnswerState.GENERAL,
            answer=APOLOGY,
            follow_up=FOLLOW_UP_GENERIC,
            evidence=list(fused),
        )

    def _synthesize_fallback(self, query: str, fused: List[CandidateRecord]) -> Synthesis:
        """Fallback synthesis without LLM"""
        if not fused:
            answer = FALLBACK_EMPTY
        else:
            formatted_results = []
            for i, c in enumerate(fused, 1):
                when = c.date.isoformat() if c.date else "no date"
                status = " (done)" if c.completed else ""
                formatted_results.append(f"{i}. {c.display}, {when}{status}")
            answer = FALLBACK_TEMPLATE.format(
                query=query,
                formatted_results="\n".join(formatted_results),
            )

        return Synthesis(
            state=AnswerState.GENERAL,
            answer=answer,
            follow_up=FOLLOW_UP_GENERIC,
            evidence=list(fused),
        )
