"""onchain-logs - Resilient bulk retrieval of on-chain event logs."""

from .api import LogAPI, parse_window_seconds, sort_records
from .config import RetrievalSettings
from .core import (
    DataError,
    FailureKind,
    FatalProviderError,
    ProviderError,
    RateLimitError,
    ResultTooLargeError,
    RetrievalTimeoutError,
    RetryExhaustedError,
    SuggestedRangeError,
    TransientProviderError,
)
from .models import BlockRange, Record, TimeModel
from .providers import JsonRpcProvider
from .runtime import (
    ApproximateTimestampModel,
    BackoffClassifier,
    BlockClock,
    BlockRangeEstimator,
    ChunkedLogRetriever,
    ChunkPolicy,
    ExpiringCache,
    RetrievalResult,
    apply_approximate_timestamps,
    approximate_timestamp,
    deduplicate_records,
    with_retry,
)

__version__ = "0.1.0"

__all__ = [
    # Facade
    "LogAPI",
    "RetrievalSettings",
    "parse_window_seconds",
    "sort_records",
    # Models
    "BlockRange",
    "Record",
    "TimeModel",
    # Runtime
    "ExpiringCache",
    "BackoffClassifier",
    "with_retry",
    "BlockClock",
    "ApproximateTimestampModel",
    "approximate_timestamp",
    "apply_approximate_timestamps",
    "BlockRangeEstimator",
    "ChunkPolicy",
    "ChunkedLogRetriever",
    "RetrievalResult",
    "deduplicate_records",
    # Providers
    "JsonRpcProvider",
    # Errors
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
