"""
Error taxonomy for the recall pipeline.

Only QueryValidationError, AuthError and UpstreamError abort a request.
PartialRetrievalError and SynthesisParseError are recovered where they
are raised and never reach the HTTP boundary.
"""

from typing import Optional


class RecallError(Exception):
    """Base class for pipeline errors."""
    status_code = 500


class QueryValidationError(RecallError):
    """Missing or malformed request input."""
    status_code = 400


class AuthError(RecallError):
    """Missing or invalid credential."""
    status_code = 401


class UpstreamError(RecallError):
    """Embedding or temporal resolution failed; no retrieval is attempted."""
    status_code = 500

    def __init__(self, capability: str, message: str):
        self.capability = capability
        super().__init__(f"{capability} failed: {message}")


class PartialRetrievalError(RecallError):
    """A single retrieval strategy failed or timed out."""

    def __init__(self, strategy: str, cause: Optional[BaseException] = None):
        self.strategy = strategy
        self.cause = cause
        reason = "timed out" if cause is None else f"{type(cause).__name__}: {cause}"
        super().__init__(f"{strategy} strategy {reason}")


class SynthesisParseError(RecallError):
    """The generative call returned something that is not a JSON object."""

    def __init__(self, raw: str):
        self.raw = raw
        super().__init__(f"Generated answer is not valid JSON: {raw[:80]!r}")
