"""Custom exception hierarchy.

Architecture:
    Every error raised by the library derives from DataError. Upstream
    failures derive from ProviderError and carry the HTTP status and JSON-RPC
    error code when the provider reported one. The retry layer turns the
    recoverable kinds (rate limits, transient failures, oversized results,
    corrected ranges) into retries, splits or corrected fetches; only
    FatalProviderError and its subclasses ever reach callers of the
    retrieval engine.

See Also:
    - BackoffClassifier: Maps exceptions to FailureKind
    - ChunkedLogRetriever: Absorbs recoverable kinds per chunk
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..models import BlockRange


class DataError(Exception):
    """Base exception for all library errors."""

    pass


class ProviderError(DataError):
    """Error from the upstream JSON-RPC provider."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code


class RateLimitError(ProviderError):
    """Provider asked us to slow down."""

    def __init__(self, message: str, retry_after_ms: int | None = None) -> None:
        super().__init__(message, status_code=429)
        self.retry_after_ms = retry_after_ms


class TransientProviderError(ProviderError):
    """Infrastructure hiccup (5xx, reset connection, per-call timeout)."""

    pass


class ResultTooLargeError(ProviderError):
    """Provider refused a range because it matches too many records."""

    pass


class SuggestedRangeError(ProviderError):
    """Provider rejected a range and named a corrected one to retry with."""

    def __init__(self, message: str, suggested: BlockRange) -> None:
        super().__init__(message)
        self.suggested = suggested


class FatalProviderError(ProviderError):
    """Upstream is unavailable or rejected the call; never retried.

    Callers should map this to an "upstream unavailable" condition rather
    than a generic internal error.
    """

    pass


class RetryExhaustedError(FatalProviderError):
    """Retry budget ran out on a retryable failure."""

    def __init__(self, message: str, attempts: int, last_error: BaseException) -> None:
        super().__init__(message, status_code=getattr(last_error, "status_code", None))
        self.attempts = attempts
        self.last_error = last_error


class RetrievalTimeoutError(FatalProviderError):
    """End-to-end retrieval deadline expired."""

    pass
