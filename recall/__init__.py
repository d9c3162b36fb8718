"""
Reminder Recall

Hybrid reminder retrieval and answer synthesis.

Philosophy:
- Date-scoped answers are decided by code, never by a generative call
- Every retrieval strategy is optional; one failing never fails the request
- One pipeline, parameterised by its embedding backend

Usage:
    from recall.common import load_config, EmbeddingService, InMemoryReminderStore
    from recall.common.schemas import Reminder, TemporalRange
    from recall.retriever import SearchPipeline, TemporalResolver
"""

__version__ = "0.1.0"
