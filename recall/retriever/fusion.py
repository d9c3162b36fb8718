"""
Result Fusion

Merges strategy outputs into one deduplicated, hydrated, ranked list.

Insertion order follows strategy priority (date, keyword_embed, vector,
keyword). A reminder already present is never overwritten, so the
highest-priority strategy decides its source and score.
"""

import asyncio
import logging
from collections import OrderedDict
from typing import Dict, Iterable, List

from ..common.schemas import CandidateRecord, Reminder
from ..common.stores import ReminderStore
from .searcher import StrategyResult

logger = logging.getLogger("recall.retriever.fusion")


class ResultFusion:
    """Deduplicate, hydrate, rank and cap retrieval candidates"""

    def __init__(
        self,
        store: ReminderStore,
        fused_limit: int = 10,
        hydration_timeout: float = 5.0,
    ):
        self._store = store
        self.fused_limit = fused_limit
        self._hydration_timeout = hydration_timeout

    @staticmethod
    def merge(results: Iterable[StrategyResult]) -> List[CandidateRecord]:
        """
        Deduplicate by reminder id, first-inserted wins.

        Failed strategies contribute nothing. The returned order is
        insertion order, not score order.
        """
        merged: "OrderedDict[str, CandidateRecord]" = OrderedDict()
        for result in sorted(results, key=lambda r: r.source.priority):
            for candidate in result.candidates:
                if candidate.reminder_id not in merged:
                    merged[candidate.reminder_id] = candidate
        return list(merged.values())

    async def hydrate(self, user_id: str, candidates: List[CandidateRecord]) -> List[CandidateRecord]:
        """
        Replace partial fields with canonical store rows.

        A hydration failure keeps the partial records.
        """
        if not candidates:
            return []

        ids = [c.reminder_id for c in candidates]
        try:
            rows = await asyncio.wait_for(
                self._store.fetch_by_ids(user_id, ids),
                timeout=self._hydration_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("Hydration timed out, keeping partial records")
            return candidates
        except Exception as e:
            logger.warning("Hydration failed, keeping partial records: %s", e)
            return candidates

        by_id: Dict[str, Reminder] = {r.id: r for r in rows}
        return [
            c.hydrate(by_id[c.reminder_id]) if c.reminder_id in by_id else c
            for c in candidates
        ]

    async def fuse(self, user_id: str, results: Iterable[StrategyResult]) -> List[CandidateRecord]:
        """
        Merge, hydrate, sort by score descending and cap.

        Args:
            user_id: Owner of every candidate
            results: Buffered output of every strategy

        Returns:
            At most fused_limit candidates, best first
        """
        merged = self.merge(results)
        hydrated = await self.hydrate(user_id, merged)

        # sorted() is stable, so equal scores keep priority order
        ranked = sorted(hydrated, key=lambda c: c.score, reverse=True)
        fused = ranked[:self.fused_limit]

        logger.debug("Fused %d candidates into %d", len(merged), len(fused))
        return fused
