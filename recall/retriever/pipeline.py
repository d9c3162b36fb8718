"""
Search Pipeline

Orchestrates one search request in three waves:

1. temporal resolution + query embedding (concurrent, both required)
2. retrieval strategies (concurrent, each individually time-bounded)
3. fusion with hydration, then answer synthesis

Each request is independent; the pipeline holds no per-request state.
"""

import asyncio
import logging
from datetime import date
from typing import Optional

from ..common.config import RecallConfig
from ..common.embedding_service import EmbeddingService, get_embedding_service
from ..common.errors import QueryValidationError, UpstreamError
from ..common.llm_client import LLMClient
from ..common.schemas import AnswerPayload, TemporalRange
from ..common.stores import create_store
from .assembler import ResponseAssembler
from .fusion import ResultFusion
from .searcher import Searcher
from .synthesizer import AnswerSynthesizer
from .temporal import TemporalResolver

logger = logging.getLogger("recall.retriever.pipeline")


class SearchPipeline:
    """
    Hybrid reminder search.

    Usage:
        pipeline = SearchPipeline.from_config(load_config())
        payload = await pipeline.search("what do I have on friday?", user_id)
    """

    def __init__(
        self,
        resolver: TemporalResolver,
        embedding_service: EmbeddingService,
        searcher: Searcher,
        fusion: ResultFusion,
        synthesizer: AnswerSynthesizer,
        assembler: Optional[ResponseAssembler] = None,
        store=None,
    ):
        self.resolver = resolver
        self.embedding_service = embedding_service
        self.searcher = searcher
        self.fusion = fusion
        self.synthesizer = synthesizer
        self.assembler = assembler or ResponseAssembler()
        self.store = store

    @classmethod
    def from_config(cls, config: RecallConfig, store=None, embedding_service=None, llm_client=None):
        """Wire every component from configuration; explicit arguments win"""
        store = store if store is not None else create_store(config.store)
        embedding_service = embedding_service or get_embedding_service(config.embedding)
        llm_client = llm_client or LLMClient(
            provider=config.llm.provider,
            model=config.llm.model,
            api_key=config.llm.api_key,
        )
        retriever = config.retriever
        return cls(
            resolver=TemporalResolver(timezone=retriever.timezone),
            embedding_service=embedding_service,
            searcher=Searcher(store, store, store, config=retriever),
            fusion=ResultFusion(
                store,
                fused_limit=retriever.fused_limit,
                hydration_timeout=retriever.hydration_timeout,
            ),
            synthesizer=AnswerSynthesizer(llm_client, timeout=retriever.synthesis_timeout),
            store=store,
        )

    async def close(self) -> None:
        """Release store connections, if the store holds any"""
        close = getattr(self.store, "close", None)
        if close is not None:
            await close()

    async def search(
        self,
        query: str,
        user_id: str,
        explicit_date: Optional[date] = None,
        explicit_range: Optional[TemporalRange] = None,
    ) -> AnswerPayload:
        """
        Answer a free-text query over one user's reminders.

        Args:
            query: Non-empty query text
            user_id: Owner scope for every store call
            explicit_date: Caller-supplied day, overrides resolution
            explicit_range: Caller-supplied range, overrides explicit_date and resolution

        Returns:
            AnswerPayload

        Raises:
            QueryValidationError: empty or non-string query
            UpstreamError: temporal resolution or embedding failed
        """
        if not isinstance(query, str) or not query.strip():
            raise QueryValidationError("Query is required")
        if not user_id:
            raise QueryValidationError("User id is required")

        query = query.strip()
        today = self.resolver.today()

        override = explicit_range
        if override is None and explicit_date is not None:
            override = TemporalRange.single(explicit_date)
        if override is not None and not override.is_resolved:
            override = None

        # Wave 1
        temporal, embedding = await self._resolve_and_embed(query, today, override)
        logger.info("Resolved range for %r: %s", query, temporal.to_dict())

        # Wave 2
        results = await self.searcher.search(user_id, query, embedding, temporal)

        # Wave 3
        fused = await self.fusion.fuse(user_id, results)
        synthesis = await self.synthesizer.synthesize(query, fused, temporal, today=today)

        return self.assembler.assemble(query, synthesis, temporal)

    async def _resolve_and_embed(self, query: str, today: date, override: Optional[TemporalRange]):
        async def resolve() -> TemporalRange:
            if override is not None:
                return override
            return await self.resolver.aresolve(query, today=today)

        temporal, embedding = await asyncio.gather(
            resolve(),
            self.embedding_service.aembed(query),
            return_exceptions=True,
        )

        if isinstance(temporal, BaseException):
            logger.error("Temporal resolution failed: %s", temporal)
            raise UpstreamError("temporal resolution", str(temporal)) from temporal
        if isinstance(embedding, BaseException):
            logger.error("Query embedding failed: %s", embedding)
            raise UpstreamError("embedding", str(embedding)) from embedding

        return temporal, embedding
