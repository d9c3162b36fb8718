"""
Reminder Recall Common Module

Shared infrastructure for the retriever and the HTTP server.
"""

from .config import RecallConfig, load_config
from .embedding_service import EmbeddingService, get_embedding_service
from .errors import (
    RecallError,
    QueryValidationError,
    AuthError,
    UpstreamError,
    PartialRetrievalError,
    SynthesisParseError,
)
from .llm_client import LLMClient
from .stores import InMemoryReminderStore, SupabaseReminderStore, create_store

__all__ = [
    "RecallConfig",
    "load_config",
    "EmbeddingService",
    "get_embedding_service",
    "RecallError",
    "QueryValidationError",
    "AuthError",
    "UpstreamError",
    "PartialRetrievalError",
    "SynthesisParseError",
    "LLMClient",
    "InMemoryReminderStore",
    "SupabaseReminderStore",
    "create_store",
]
