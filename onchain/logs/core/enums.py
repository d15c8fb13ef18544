"""Core enumerations.

Key Types:
    - FailureKind: How an upstream failure should be handled by the retry
      layer and the chunked retriever.
"""

from enum import Enum


class FailureKind(str, Enum):
    """Classification of an upstream failure.

    Architecture:
        String enum so the value can be logged and compared without imports.
        RATE_LIMITED and TRANSIENT are retried with backoff. SUGGESTED_RANGE
        triggers an immediate retry against the provider's corrected range.
        RESULT_TOO_LARGE triggers a chunk split. FATAL is never retried.
    """

    RATE_LIMITED = "rate_limited"
    TRANSIENT = "transient"
    SUGGESTED_RANGE = "suggested_range"
    RESULT_TOO_LARGE = "result_too_large"
    FATAL = "fatal"

    @property
    def retryable(self) -> bool:
        """Whether the failure is retried verbatim after a backoff wait."""
        return self in (FailureKind.RATE_LIMITED, FailureKind.TRANSIENT)
