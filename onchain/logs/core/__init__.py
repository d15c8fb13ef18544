"""Core components."""

from .enums import FailureKind
from .exceptions import (
    DataError,
    FatalProviderError,
    ProviderError,
    RateLimitError,
    ResultTooLargeError,
    RetrievalTimeoutError,
    RetryExhaustedError,
    SuggestedRangeError,
    TransientProviderError,
)

__all__ = [
    "FailureKind",
    "DataError",
    "ProviderError",
    "RateLimitError",
    "TransientProviderError",
    "ResultTooLargeError",
    "SuggestedRangeError",
    "FatalProviderError",
    "RetryExhaustedError",
    "RetrievalTimeoutError",
]
