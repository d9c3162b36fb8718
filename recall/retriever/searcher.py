"""
Searcher

Runs the retrieval strategies for one request concurrently:

- vector (always): nearest neighbours over the user's embedding index
- keyword (always): substring match of the query against titles
- date (date resolved): exact day or inclusive range match
- keyword_embed (date resolved): resolved date string against embedded content

Each strategy is individually time-bounded. A failure or timeout becomes
an empty contribution and never aborts the request. Results are returned
only after every strategy has finished, so fusion never sees a partial wave.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional

from ..common.config import RetrieverConfig
from ..common.errors import PartialRetrievalError
from ..common.schemas import (
    CandidateRecord,
    CandidateSource,
    ReminderId,
    TemporalRange,
    title_from_content,
)
from ..common.stores import EmbeddedContentStore, ReminderStore, VectorIndex, VectorMatch

logger = logging.getLogger("recall.retriever.searcher")


@dataclass
class StrategyResult:
    """Buffered output of one retrieval strategy"""
    source: CandidateSource
    candidates: List[CandidateRecord] = field(default_factory=list)
    error: Optional[PartialRetrievalError] = None
    elapsed_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None


class Searcher:
    """
    Searches a user's reminders with up to four strategies.

    Features:
    - Concurrent strategy execution
    - Per-strategy timeout
    - Date-gated strategies skipped when no date resolved
    """

    def __init__(
        self,
        store: ReminderStore,
        vector_index: VectorIndex,
        content_store: EmbeddedContentStore,
        config: Optional[RetrieverConfig] = None,
    ):
        """
        Initialize searcher.

        Args:
            store: Canonical reminder rows
            vector_index: Per-user embedding index
            content_store: Embedded-content text for keyword recall
            config: Thresholds, caps and timeouts
        """
        self._store = store
        self._index = vector_index
        self._content = content_store
        self._config = config or RetrieverConfig()

    async def search(
        self,
        user_id: str,
        query: str,
        embedding: List[float],
        temporal: TemporalRange,
    ) -> List[StrategyResult]:
        """
        Run every applicable strategy and wait for all of them.

        Args:
            user_id: Scope for every strategy
            query: Raw query text (used by the keyword strategy)
            embedding: Query vector (used by the vector strategy)
            temporal: Resolved range; unresolved skips date-gated strategies

        Returns:
            One StrategyResult per strategy that ran
        """
        strategies: Dict[CandidateSource, Callable[[], Awaitable[List[CandidateRecord]]]] = {
            CandidateSource.VECTOR: lambda: self._vector(user_id, embedding),
            CandidateSource.KEYWORD: lambda: self._keyword(user_id, query),
        }
        if temporal.is_resolved:
            strategies[CandidateSource.DATE] = lambda: self._date(user_id, temporal)
            strategies[CandidateSource.KEYWORD_EMBED] = lambda: self._keyword_embed(user_id, temporal)

        results = await asyncio.gather(
            *(self._run(source, factory) for source, factory in strategies.items())
        )

        logger.info(
            "Retrieval complete: %s",
            ", ".join(f"{r.source.value}={len(r.candidates)}{'' if r.ok else '(failed)'}" for r in results),
        )
        return list(results)

    async def _run(
        self,
        source: CandidateSource,
        factory: Callable[[], Awaitable[List[CandidateRecord]]],
    ) -> StrategyResult:
        """Execute one strategy under its timeout, degrading failures to empty"""
        started = time.perf_counter()
        try:
            candidates = await asyncio.wait_for(factory(), timeout=self._config.strategy_timeout)
            return StrategyResult(
                source=source,
                candidates=candidates,
                elapsed_ms=(time.perf_counter() - started) * 1000,
            )
        except asyncio.TimeoutError:
            error = PartialRetrievalError(source.value)
        except Exception as e:
            error = PartialRetrievalError(source.value, cause=e)

        logger.warning("%s", error)
        return StrategyResult(
            source=source,
            error=error,
            elapsed_ms=(time.perf_counter() - started) * 1000,
        )

    async def _vector(self, user_id: str, embedding: List[float]) -> List[CandidateRecord]:
        matches = await self._index.match(
            user_id,
            embedding,
            threshold=self._config.similarity_threshold,
            count=self._config.vector_count,
        )
        return [
            self._from_vector_match(m) for m in matches
            if m.similarity > self._config.similarity_threshold
        ][:self._config.vector_count]

    @staticmethod
    def _from_vector_match(match: VectorMatch) -> CandidateRecord:
        if match.reminder is not None:
            return CandidateRecord.from_reminder(match.reminder, CandidateSource.VECTOR, score=match.similarity)
        # Id + score only; hydration fills in the rest
        return CandidateRecord(
            reminder_id=ReminderId(match.reminder_id),
            title=title_from_content(match.content),
            source=CandidateSource.VECTOR,
            score=match.similarity,
        )

    async def _keyword(self, user_id: str, query: str) -> List[CandidateRecord]:
        reminders = await self._store.search_title(user_id, query.strip(), self._config.keyword_limit)
        return [
            CandidateRecord.from_reminder(r, CandidateSource.KEYWORD)
            for r in reminders[:self._config.keyword_limit]
        ]

    async def _date(self, user_id: str, temporal: TemporalRange) -> List[CandidateRecord]:
        if temporal.is_range:
            reminders = await self._store.find_by_range(user_id, temporal.start_date, temporal.end_date)
        else:
            reminders = await self._store.find_by_date(user_id, temporal.start_date)
        return [
            CandidateRecord.from_reminder(r, CandidateSource.DATE)
            for r in reminders
            if not r.completed
        ]

    async def _keyword_embed(self, user_id: str, temporal: TemporalRange) -> List[CandidateRecord]:
        matches = await self._content.search_content(
            user_id,
            temporal.start_date.isoformat(),
            self._config.embed_keyword_limit,
        )
        return [
            CandidateRecord(
                reminder_id=ReminderId(m.reminder_id),
                title=title_from_content(m.content),
                source=CandidateSource.KEYWORD_EMBED,
                score=CandidateSource.KEYWORD_EMBED.fixed_score,
            )
            for m in matches[:self._config.embed_keyword_limit]
        ]
