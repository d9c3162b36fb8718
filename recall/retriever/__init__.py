"""
Retriever - Reminder Search and Answer Synthesis

Key Components:
- TemporalResolver: Resolves date phrases to an explicit date or range
- Searcher: Runs the retrieval strategies concurrently
- ResultFusion: Deduplicates, hydrates and ranks candidates
- AnswerSynthesizer: Deterministic date answers, generative general answers
- SearchPipeline: Wires the above into one request

Pipeline:
1. Resolve dates and embed the query (concurrently)
2. Run vector, keyword, date and embedded-keyword search (concurrently)
3. Fuse by strategy priority and hydrate
4. Synthesize the answer and one follow-up
"""

from .temporal import TemporalResolver, explicit_range
from .searcher import Searcher, StrategyResult
from .fusion import ResultFusion
from .synthesizer import AnswerSynthesizer, Synthesis
from .assembler import ResponseAssembler
from .pipeline import SearchPipeline

__all__ = [
    "TemporalResolver",
    "explicit_range",
    "Searcher",
    "StrategyResult",
    "ResultFusion",
    "AnswerSynthesizer",
    "Synthesis",
    "ResponseAssembler",
    "SearchPipeline",
]
